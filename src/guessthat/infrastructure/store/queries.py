"""Query helpers shared by the card store and the trash manager."""

from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from guessthat.domain.models import Bucket, Card

from .schema import CardRow, ForbiddenRow, TrashForbiddenRow, TrashRow

# SQLite caps bound parameters per statement; stay well below it
CHUNK_SIZE = 500

WordModel = type[ForbiddenRow] | type[TrashForbiddenRow]


def bucket_filter(model: type[CardRow] | type[TrashRow], bucket: Bucket) -> tuple:
    return (
        model.language == bucket.language,
        model.category == bucket.category,
        model.difficulty == bucket.difficulty,
    )


async def load_words(
    session: AsyncSession, model: WordModel, card_ids: Iterable[str]
) -> dict[str, list[str]]:
    """Fetch forbidden words for many cards at once, keyed by card id, in insertion order."""
    ids = list(card_ids)
    out: dict[str, list[str]] = {}
    for i in range(0, len(ids), CHUNK_SIZE):
        chunk = ids[i : i + CHUNK_SIZE]
        result = await session.execute(
            select(model.card_id, model.word)
            .where(model.card_id.in_(chunk))
            .order_by(model.id)
        )
        for card_id, word in result:
            out.setdefault(card_id, []).append(word)
    return out


async def replace_words(
    session: AsyncSession, model: WordModel, card_id: str, words: Iterable[str]
) -> None:
    """Delete every forbidden word of a card and insert `words` in order."""
    await delete_words(session, model, card_id)
    session.add_all([model(card_id=card_id, word=w) for w in words])


async def delete_words(session: AsyncSession, model: WordModel, card_id: str) -> None:
    await session.execute(
        delete(model)
        .where(model.card_id == card_id)
        .execution_options(synchronize_session=False)
    )


def to_card(row: CardRow | TrashRow, words: list[str]) -> Card:
    return Card(
        id=row.id,
        language=row.language,
        category=row.category,
        difficulty=row.difficulty,
        target=row.target,
        forbidden=list(words),
    )
