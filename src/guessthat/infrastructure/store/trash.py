"""
Trash Lifecycle Manager.

Cards move Active -> Trashed -> Purged, or Trashed -> Active on restore.
There is no background scheduler: expired entries are swept at store open and
at the start of every trash read or mutation, inside the same transaction.

Deletion times are wall-clock epoch seconds, so changing the device clock can
purge entries early or late.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from guessthat.application.utils.text import normalize_target, unique_words
from guessthat.domain.constants import TRASH_TTL
from guessthat.domain.models import TrashCard

from .queries import delete_words, load_words, replace_words
from .schema import CardRow, ForbiddenRow, TrashForbiddenRow, TrashRow

if TYPE_CHECKING:
    from .card_store import CardStore

logger = logging.getLogger(__name__)


class TrashManager:
    def __init__(
        self,
        store: CardStore,
        ttl: int = TRASH_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.ttl = ttl
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    async def delete(self, card_id: str) -> bool:
        """
        Move an active card into the trash, stamping the deletion time.

        A previous trash entry with the same id is overwritten. Returns False
        (and changes nothing) if the id is not an active card.
        """
        async with self._store.transaction() as session:
            await self._sweep(session)

            row = await session.get(CardRow, card_id)
            if row is None:
                logger.debug(f"Delete ignored: no active card {card_id}")
                return False
            words = (await load_words(session, ForbiddenRow, [card_id])).get(card_id, [])

            trash = await session.get(TrashRow, card_id)
            if trash is None:
                trash = TrashRow(id=card_id)
                session.add(trash)
            trash.language = row.language
            trash.category = row.category
            trash.difficulty = row.difficulty
            trash.target = row.target
            trash.normalized_target = row.normalized_target
            trash.deleted_at = self.now()
            await replace_words(
                session, TrashForbiddenRow, card_id, unique_words(words, strip=True)
            )

            await delete_words(session, ForbiddenRow, card_id)
            await session.delete(row)

        logger.info(f"Moved card {card_id} to trash")
        return True

    async def restore(self, card_id: str) -> bool:
        """
        Bring a trashed card back under its original id.

        Returns False if the id is not in the trash, including entries that
        expired and were swept at the start of this call.
        """
        async with self._store.transaction() as session:
            await self._sweep(session)

            trash = await session.get(TrashRow, card_id)
            if trash is None:
                logger.debug(f"Restore ignored: no trashed card {card_id}")
                return False
            words = (await load_words(session, TrashForbiddenRow, [card_id])).get(card_id, [])

            row = await session.get(CardRow, card_id)
            if row is None:
                row = CardRow(id=card_id)
                session.add(row)
            row.language = trash.language
            row.category = trash.category
            row.difficulty = trash.difficulty
            row.target = trash.target
            row.normalized_target = normalize_target(trash.target)
            await replace_words(session, ForbiddenRow, card_id, words)

            await delete_words(session, TrashForbiddenRow, card_id)
            await session.delete(trash)

        logger.info(f"Restored card {card_id} from trash")
        return True

    async def purge_expired(self) -> int:
        """Delete every trash entry older than the TTL. Returns the number purged."""
        async with self._store.transaction() as session:
            return await self._sweep(session)

    async def list_trash(self) -> list[TrashCard]:
        """Remaining trash entries after a sweep, most recently deleted first."""
        async with self._store.transaction() as session:
            await self._sweep(session)
            rows = (
                await session.scalars(
                    select(TrashRow).order_by(TrashRow.deleted_at.desc(), TrashRow.id)
                )
            ).all()
            words = await load_words(session, TrashForbiddenRow, [r.id for r in rows])

        return [
            TrashCard(
                id=r.id,
                language=r.language,
                category=r.category,
                difficulty=r.difficulty,
                target=r.target,
                forbidden=words.get(r.id, []),
                deleted_at=r.deleted_at,
                ttl=self.ttl,
            )
            for r in rows
        ]

    async def _sweep(self, session: AsyncSession) -> int:
        cutoff = self.now() - self.ttl
        expired = select(TrashRow.id).where(TrashRow.deleted_at <= cutoff)

        await session.execute(
            delete(TrashForbiddenRow)
            .where(TrashForbiddenRow.card_id.in_(expired))
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(
            delete(TrashRow)
            .where(TrashRow.deleted_at <= cutoff)
            .execution_options(synchronize_session=False)
        )
        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} expired trash card(s)")
        return purged
