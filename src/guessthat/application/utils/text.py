import unicodedata
from collections.abc import Iterable

from guessthat.domain.errors import InvalidCard
from guessthat.domain.models import DIFFICULTIES, Card, CardDraft

# ---------- Target normalization ----------


def normalize_target(text: str | None) -> str:
    """Map a display string to the key used for every "same word" comparison.

    Decomposes, drops combining marks, recomposes, case-folds and trims, so
    "Müller ", "MULLER" and "müller" all map to "muller".
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", stripped).casefold().strip()


# ---------- Forbidden word helpers ----------


def unique_words(words: Iterable[str], strip: bool = False) -> list[str]:
    """Deduplicate by exact value, keeping first-seen order and dropping empty entries."""
    out: list[str] = []
    seen: set[str] = set()
    for word in words:
        if word is None:
            continue
        if strip:
            word = word.strip()
        if not word or word in seen:
            continue
        seen.add(word)
        out.append(word)
    return out


def split_forbidden(text: str) -> list[str]:
    """Split user input (one word per line or comma separated) into clean forbidden words."""
    parts = text.replace("\r\n", "\n").replace(",", "\n").split("\n")
    return unique_words(parts, strip=True)


# ---------- Draft validation ----------


def clean_draft(draft: CardDraft) -> CardDraft:
    """Trim and validate user-authored card input.

    Raises InvalidCard on a blank target, language or category, or an
    unknown difficulty.
    """
    target = (draft.target or "").strip()
    language = (draft.language or "").strip()
    category = (draft.category or "").strip()
    difficulty = (draft.difficulty or "").strip().lower()

    if not target:
        raise InvalidCard("Target word must not be empty.")
    if not language:
        raise InvalidCard("Language must not be empty.")
    if not category:
        raise InvalidCard("Category must not be empty.")
    if difficulty not in DIFFICULTIES:
        raise InvalidCard(f"Difficulty must be one of {', '.join(DIFFICULTIES)}.")

    return CardDraft(
        language=language,
        category=category,
        difficulty=difficulty,
        target=target,
        forbidden=unique_words(draft.forbidden, strip=True),
    )


def apply_edit(card: Card, draft: CardDraft) -> Card:
    """Return `card` with a user edit applied.

    Target and difficulty are validated like a new card; a blank language or
    category keeps the card's current value.
    """
    target = (draft.target or "").strip()
    difficulty = (draft.difficulty or "").strip().lower()
    if not target:
        raise InvalidCard("Target word must not be empty.")
    if difficulty not in DIFFICULTIES:
        raise InvalidCard(f"Difficulty must be one of {', '.join(DIFFICULTIES)}.")

    return Card(
        id=card.id,
        language=(draft.language or "").strip() or card.language,
        category=(draft.category or "").strip() or card.category,
        difficulty=difficulty,
        target=target,
        forbidden=unique_words(draft.forbidden, strip=True),
    )
