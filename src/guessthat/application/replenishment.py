"""
Replenishment policy: keeps each bucket stocked without over-fetching.

Two triggers exist:
1. Stock-based: `top_up_if_low` runs before every draw and fetches when the
   bucket holds fewer than `threshold` cards.
2. Usage-based: `AutoTopUpWatcher` follows the session consumption set and
   fetches when `stock - used <= reserve`, with at most one fetch in flight.

Remote failures never escape this module; the game keeps playing offline on
whatever stock exists.
"""

import asyncio
import logging
from collections.abc import Callable

from guessthat.application.seed import load_seed_cards
from guessthat.application.session import ConsumptionSet
from guessthat.domain.constants import RESERVE, THRESHOLD, TOPUP_SIZE
from guessthat.domain.errors import StorageError
from guessthat.domain.models import Bucket, Card
from guessthat.domain.ports import CardSource
from guessthat.infrastructure.store.card_store import CardStore

logger = logging.getLogger(__name__)


class ReplenishmentPolicy:
    """
    Application service deciding when and how many cards to fetch.

    Depends on the CardSource port; `source=None` means offline and turns
    every fetch into a no-op.
    """

    def __init__(
        self,
        store: CardStore,
        source: CardSource | None,
        threshold: int = THRESHOLD,
        topup_size: int = TOPUP_SIZE,
        seed_loader: Callable[[Bucket], list[Card]] = load_seed_cards,
    ):
        self._store = store
        self._source = source
        self.threshold = threshold
        self.topup_size = topup_size
        self._seed_loader = seed_loader

    async def ensure_seed(self, bucket: Bucket) -> int:
        """Insert the bundled starter cards for `bucket` if it is empty. Returns cards inserted."""
        if await self._store.count(bucket) > 0:
            return 0
        seed = self._seed_loader(bucket)
        if not seed:
            logger.info(f"No bundled starter cards for {bucket}")
            return 0
        await self._store.insert_batch(seed)
        logger.info(f"Seeded {bucket} with {len(seed)} starter card(s)")
        return len(seed)

    async def top_up_if_low(self, bucket: Bucket) -> int:
        """Fetch `topup_size` cards when stock is below the threshold. Returns cards merged."""
        stock = await self._store.count(bucket)
        if stock >= self.threshold:
            return 0
        logger.info(f"Stock for {bucket} is low ({stock} < {self.threshold}), topping up")
        return await self.fetch_and_merge(bucket)

    async def draw_for_turn(self, count: int, bucket: Bucket) -> list[Card]:
        """The draw path used during play: try to replenish, then draw from local stock."""
        await self.top_up_if_low(bucket)
        return await self._store.draw_random(bucket, count)

    async def fetch_and_merge(self, bucket: Bucket) -> int:
        """
        Download cards for `bucket` and merge them into the store.

        Remote and storage failures are logged and reported as zero cards.
        """
        if self._source is None:
            logger.debug(f"Offline: skipping download for {bucket}")
            return 0

        try:
            cards = await self._source.download(bucket, self.topup_size)
        except Exception as e:
            logger.warning(f"Top-up download failed for {bucket} (continuing offline): {e}")
            return 0

        try:
            return await self._store.insert_batch(cards)
        except StorageError as e:
            logger.error(f"Could not merge downloaded cards for {bucket}: {e}")
            return 0


class AutoTopUpWatcher:
    """
    Usage-aware background refill for one bucket.

    Subscribes to size changes of the consumption set. Each change schedules a
    check; a check fetches when `count(bucket) - len(used) <= reserve` and no
    fetch is in flight. Triggers arriving while a fetch runs are dropped.

    `start()` and `stop()` are idempotent. Checks still queued at `stop()` do
    not fetch; a fetch already running finishes and merges on its own.
    """

    def __init__(
        self,
        store: CardStore,
        policy: ReplenishmentPolicy,
        used: ConsumptionSet,
        bucket: Bucket,
        reserve: int = RESERVE,
    ):
        self._store = store
        self._policy = policy
        self._used = used
        self.bucket = bucket
        self.reserve = reserve
        self._inflight = False
        self._unsubscribe: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    @property
    def inflight(self) -> bool:
        return self._inflight

    def start(self) -> Callable[[], None]:
        """Begin watching; must be called from a running event loop. Returns the stop handle."""
        if self._unsubscribe is not None:
            return self.stop
        self._unsubscribe = self._used.subscribe(self._on_size_change)
        logger.info(f"Auto top-up watcher started for {self.bucket} (reserve={self.reserve})")
        self._schedule()
        return self.stop

    def stop(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        logger.info(f"Auto top-up watcher stopped for {self.bucket}")

    async def wait_idle(self) -> None:
        """Wait for every scheduled check (and its fetch) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_size_change(self, size: int) -> None:
        self._schedule()

    def _schedule(self) -> None:
        task = asyncio.get_running_loop().create_task(self.check(scheduled=True))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def check(self, scheduled: bool = False) -> bool:
        """
        Run one reserve check. Returns True if this call performed a fetch.

        Scheduled checks that reach the fetch after `stop()` return False.
        """
        try:
            stock = await self._store.count(self.bucket)
            remaining = stock - len(self._used)
            if remaining > self.reserve:
                return False
            if scheduled and not self.running:
                return False
            if self._inflight:
                logger.debug(f"Auto top-up already in flight for {self.bucket}; trigger dropped")
                return False

            self._inflight = True
            try:
                logger.info(
                    f"Auto top-up for {self.bucket}: {remaining} unused card(s) left "
                    f"(reserve={self.reserve})"
                )
                await self._policy.fetch_and_merge(self.bucket)
            finally:
                self._inflight = False
            return True
        except Exception as e:
            logger.error(f"Auto top-up check failed: {e}")
            return False
