"""
Domain models for the card cache.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from typing import Literal, get_args

from .constants import TRASH_TTL

Difficulty = Literal["easy", "medium", "hard"]
DIFFICULTIES: tuple[str, ...] = get_args(Difficulty)


@dataclass(frozen=True)
class Bucket:
    """
    The (language, category, difficulty) scope all counts and draws are partitioned by.
    """

    language: str
    category: str
    difficulty: Difficulty

    def __str__(self) -> str:
        return f"{self.language}/{self.category}/{self.difficulty}"


@dataclass
class Card:
    """
    A target word plus the words a player may not say while describing it.

    Attributes:
        id: Opaque id, assigned by the remote service or generated locally.
        language: Language code, e.g. "de-CH".
        category: Category tag, e.g. "family".
        difficulty: One of easy, medium, hard.
        target: The word to guess (display form).
        forbidden: Forbidden words (display form), order preserved.
    """

    id: str
    language: str
    category: str
    difficulty: Difficulty
    target: str
    forbidden: list[str] = field(default_factory=list)

    @property
    def bucket(self) -> Bucket:
        return Bucket(self.language, self.category, self.difficulty)


@dataclass
class TrashCard(Card):
    """A soft-deleted card; `deleted_at` is epoch seconds."""

    deleted_at: int = 0
    ttl: int = field(default=TRASH_TTL, repr=False, compare=False)

    @property
    def expires_at(self) -> int:
        return self.deleted_at + self.ttl

    def seconds_left(self, now: float) -> int:
        """Seconds until the purge sweep removes this entry (never negative)."""
        return max(0, int(self.expires_at - now))


@dataclass
class CardDraft:
    """User-authored card input, before an id is assigned."""

    language: str
    category: str
    difficulty: str
    target: str
    forbidden: list[str] = field(default_factory=list)
