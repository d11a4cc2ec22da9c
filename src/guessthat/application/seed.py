"""Loader for the bundled starter card set."""

import logging
from functools import lru_cache
from importlib.resources import files

import yaml

from guessthat.domain.models import Bucket, Card

logger = logging.getLogger(__name__)

SEED_RESOURCE = "assets/seed.yaml"


@lru_cache(maxsize=1)
def _load_raw() -> tuple[dict, ...]:
    text = files("guessthat").joinpath(SEED_RESOURCE).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    cards = data.get("cards", [])
    if not isinstance(cards, list):
        logger.warning(f"Seed file has no card list: {SEED_RESOURCE}")
        return ()
    return tuple(c for c in cards if isinstance(c, dict))


def load_seed_cards(bucket: Bucket | None = None) -> list[Card]:
    """Return the bundled starter cards, optionally only those in `bucket`."""
    cards = [
        Card(
            id=str(raw["id"]),
            language=raw["language"],
            category=raw["category"],
            difficulty=raw["difficulty"],
            target=raw["target"],
            forbidden=[str(w) for w in raw.get("forbidden", [])],
        )
        for raw in _load_raw()
    ]
    if bucket is None:
        return cards
    return [c for c in cards if c.bucket == bucket]
