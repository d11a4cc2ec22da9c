"""
Runtime factory.
Builds the store, card source, policy and session objects from configuration
and runs the bootstrap sequence: open -> seed -> top-up.
"""

import logging
from dataclasses import dataclass, field

from guessthat.application.config import AppConfig
from guessthat.application.replenishment import AutoTopUpWatcher, ReplenishmentPolicy
from guessthat.application.session import ConsumptionSet, TurnQueue
from guessthat.domain.models import Bucket
from guessthat.domain.ports import CardSource
from guessthat.infrastructure.adapters.card_service import HttpCardSource
from guessthat.infrastructure.store.card_store import CardStore

logger = logging.getLogger(__name__)


def get_card_source(config: AppConfig) -> CardSource | None:
    """Returns the remote card source, or None when running offline."""
    if config.offline:
        return None
    return HttpCardSource(base_url=config.api_base, timeout=config.request_timeout)


@dataclass
class CardCache:
    """Everything one running app instance needs, wired together."""

    config: AppConfig
    store: CardStore
    source: CardSource | None
    policy: ReplenishmentPolicy
    used: ConsumptionSet = field(default_factory=ConsumptionSet)
    watcher: AutoTopUpWatcher | None = None

    @property
    def bucket(self) -> Bucket:
        return self.config.bucket

    def new_turn_queue(self) -> TurnQueue:
        return TurnQueue(self.used)

    def on_foreground(self) -> None:
        """Start the auto top-up watcher (idempotent)."""
        if self.watcher is None:
            self.watcher = AutoTopUpWatcher(
                self.store, self.policy, self.used, self.bucket, reserve=self.config.reserve
            )
        self.watcher.start()

    def on_background(self) -> None:
        """Stop the auto top-up watcher (idempotent)."""
        if self.watcher is not None:
            self.watcher.stop()

    async def aclose(self) -> None:
        self.on_background()
        if self.watcher is not None:
            await self.watcher.wait_idle()
        if self.source is not None:
            await self.source.aclose()
        await self.store.close()


def build_cache(config: AppConfig, source: CardSource | None = None) -> CardCache:
    """Wire the components for `config`; pass `source` to override the remote adapter."""
    store = CardStore(config.db_path, trash_ttl=config.trash_ttl)
    if source is None:
        source = get_card_source(config)
    policy = ReplenishmentPolicy(
        store, source, threshold=config.threshold, topup_size=config.topup_size
    )
    return CardCache(config=config, store=store, source=source, policy=policy)


async def open_cache(config: AppConfig, source: CardSource | None = None) -> CardCache:
    """Build the components and open the store; no seeding or network."""
    cache = build_cache(config, source)
    await cache.store.ensure_open()
    return cache


async def bootstrap(config: AppConfig, source: CardSource | None = None) -> CardCache:
    """
    Startup sequence every draw depends on: open the store, seed the
    configured bucket if empty, then one stock-based top-up.
    """
    cache = await open_cache(config, source)
    await cache.policy.ensure_seed(cache.bucket)
    await cache.policy.top_up_if_low(cache.bucket)
    logger.info(f"Card cache ready for {cache.bucket}")
    return cache
