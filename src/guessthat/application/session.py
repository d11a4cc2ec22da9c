"""
Session consumption tracking and the playable turn queue.

The consumption set lives only as long as the process: it is never persisted
and is emptied by `clear()` or by starting a new process.
"""

import logging
from collections.abc import Callable, Iterable

from guessthat.application.utils.text import normalize_target
from guessthat.domain.models import Card

logger = logging.getLogger(__name__)

SizeListener = Callable[[int], None]


class ConsumptionSet:
    """
    Normalized targets already shown during the current play session.

    Listeners registered with `subscribe` are called with the new size
    whenever the size changes.
    """

    def __init__(self):
        self._keys: set[str] = set()
        self._listeners: list[SizeListener] = []

    def mark_used(self, target: str | None) -> None:
        if not target:
            return
        key = normalize_target(target)
        if not key or key in self._keys:
            return
        self._keys.add(key)
        self._notify()

    def clear(self) -> None:
        if not self._keys:
            return
        self._keys.clear()
        logger.info("Session consumption set cleared")
        self._notify()

    def is_used(self, target: str | None) -> bool:
        return normalize_target(target) in self._keys

    def __contains__(self, target: object) -> bool:
        return isinstance(target, str) and self.is_used(target)

    def __len__(self) -> int:
        return len(self._keys)

    def subscribe(self, listener: SizeListener) -> Callable[[], None]:
        """Register a size listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        size = len(self._keys)
        for listener in list(self._listeners):
            listener(size)


class TurnQueue:
    """
    The queue of cards a player works through during a turn.

    Loading filters out cards already used this session and duplicate
    targets (first occurrence wins). Consuming the head card marks it used
    and re-filters the rest against the grown set.
    """

    def __init__(self, used: ConsumptionSet):
        self.used = used
        self._cards: list[Card] = []

    def load(self, cards: Iterable[Card]) -> None:
        self._cards = self._filtered(cards)
        logger.debug(f"Turn queue loaded with {len(self._cards)} card(s)")

    @property
    def current(self) -> Card | None:
        return self._cards[0] if self._cards else None

    @property
    def needs_refill(self) -> bool:
        return not self._cards

    def correct(self) -> Card | None:
        """The current card was guessed; advance to the next one."""
        return self._consume()

    def skip(self) -> Card | None:
        """The current card was passed; advance to the next one."""
        return self._consume()

    def _consume(self) -> Card | None:
        if not self._cards:
            return None
        head, rest = self._cards[0], self._cards[1:]
        self.used.mark_used(head.target)
        self._cards = self._filtered(rest)
        return self.current

    def _filtered(self, cards: Iterable[Card]) -> list[Card]:
        out: list[Card] = []
        seen: set[str] = set()
        for card in cards:
            key = normalize_target(card.target)
            if self.used.is_used(card.target) or key in seen:
                continue
            seen.add(key)
            out.append(card)
        return out

    def __len__(self) -> int:
        return len(self._cards)
