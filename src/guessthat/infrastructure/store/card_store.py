"""
Card Store: persistent storage for active and trashed cards.

Backed by a single SQLite file accessed through SQLAlchemy's asyncio extension
(aiosqlite driver). Every multi-statement write runs inside `transaction()`,
which commits on success and rolls back on any error, so readers never observe
a card row without its forbidden words or vice versa.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import event, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from ulid import ULID

from guessthat.application.utils.text import clean_draft, normalize_target, unique_words
from guessthat.domain.constants import TRASH_TTL
from guessthat.domain.errors import DuplicateTarget, NotInitializedError, StorageError
from guessthat.domain.models import Bucket, Card, CardDraft, TrashCard

from .queries import bucket_filter, load_words, replace_words, to_card
from .schema import Base, CardRow, ForbiddenRow
from .trash import TrashManager

logger = logging.getLogger(__name__)


def generate_card_id() -> str:
    """Generate a locally unique id for a user-authored card."""
    return f"custom_{ULID()}"


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    """Take over transaction control from the sqlite3 driver and enable WAL."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable the driver's implicit BEGIN; SQLAlchemy emits it below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA busy_timeout=30000;")
        finally:
            cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class CardStore:
    """
    Durable storage of active cards, trashed cards and their forbidden words.

    Lifecycle: construct, `await ensure_open()` (idempotent, concurrent callers
    share one initialization), use, `await close()`. Every operation invoked
    while the store is not open raises NotInitializedError.
    """

    def __init__(
        self,
        db_path: Path | str,
        trash_ttl: int = TRASH_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = Path(db_path)
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._init_task: asyncio.Future | None = None
        # Single writer: transactions are serialized inside the process
        self._write_lock = asyncio.Lock()
        self.trash = TrashManager(self, ttl=trash_ttl, clock=clock)

    # ---------- Lifecycle ----------

    @property
    def is_open(self) -> bool:
        return self._sessionmaker is not None

    async def ensure_open(self) -> "CardStore":
        """Open the database and create the schema once; later calls await the same work."""
        task = self._init_task
        if task is None:
            task = self._init_task = asyncio.ensure_future(self._open())
        try:
            await asyncio.shield(task)
        except BaseException:
            if self._init_task is task and task.done():
                self._init_task = None
            raise
        return self

    async def open(self) -> "CardStore":
        return await self.ensure_open()

    async def _open(self) -> None:
        engine = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_async_engine(f"sqlite+aiosqlite:///{self.db_path}", echo=False)
            _install_sqlite_hooks(engine)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to open card store at {self.db_path}: {e}")
            if engine is not None:
                await engine.dispose()
            raise StorageError(f"Could not open card store: {e}") from e

        self._engine = engine
        self._sessionmaker = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False, autoflush=True
        )
        try:
            await self.trash.purge_expired()
        except BaseException:
            self._engine = None
            self._sessionmaker = None
            await engine.dispose()
            raise
        logger.debug(f"Card store opened at {self.db_path}")

    async def close(self) -> None:
        task = self._init_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)
        if self._engine is not None:
            await self._engine.dispose()
            logger.debug("Card store closed")
        self._engine = None
        self._sessionmaker = None
        self._init_task = None

    async def __aenter__(self) -> "CardStore":
        return await self.ensure_open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_open(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise NotInitializedError("Card store is not open: await ensure_open() first")
        return self._sessionmaker

    # ---------- Sessions ----------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Scoped write transaction: BEGIN, run the unit of work, COMMIT.

        Any exception rolls the whole unit back and propagates; database
        errors are re-raised as StorageError.
        """
        sessionmaker = self._require_open()
        async with self._write_lock:
            async with sessionmaker() as session:
                try:
                    async with session.begin():
                        yield session
                except SQLAlchemyError as e:
                    logger.error(f"Transaction rolled back: {e}")
                    raise StorageError(str(e)) from e

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[AsyncSession]:
        """Short-lived session for reads; never commits."""
        sessionmaker = self._require_open()
        async with sessionmaker() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                logger.error(f"Read failed: {e}")
                raise StorageError(str(e)) from e

    # ---------- Reads ----------

    async def count(self, bucket: Bucket) -> int:
        """Number of active cards in the bucket."""
        async with self.reading() as session:
            stmt = select(func.count()).select_from(CardRow).where(*bucket_filter(CardRow, bucket))
            return int(await session.scalar(stmt) or 0)

    async def bucket_counts(self) -> dict[Bucket, int]:
        """Active card counts grouped by bucket."""
        async with self.reading() as session:
            result = await session.execute(
                select(CardRow.language, CardRow.category, CardRow.difficulty, func.count())
                .group_by(CardRow.language, CardRow.category, CardRow.difficulty)
                .order_by(CardRow.language, CardRow.category, CardRow.difficulty)
            )
            return {Bucket(lang, cat, diff): n for lang, cat, diff, n in result}

    async def draw_random(self, bucket: Bucket, count: int) -> list[Card]:
        """Up to `count` distinct random cards from the bucket, with forbidden words."""
        if count <= 0:
            return []
        async with self.reading() as session:
            rows = (
                await session.scalars(
                    select(CardRow)
                    .where(*bucket_filter(CardRow, bucket))
                    .order_by(func.random())
                    .limit(count)
                )
            ).all()
            words = await load_words(session, ForbiddenRow, [r.id for r in rows])
        return [to_card(r, words.get(r.id, [])) for r in rows]

    async def list_all(self) -> list[Card]:
        """All active cards across buckets, ordered by target case-insensitively."""
        async with self.reading() as session:
            rows = (await session.scalars(select(CardRow))).all()
            words = await load_words(session, ForbiddenRow, [r.id for r in rows])
        cards = [to_card(r, words.get(r.id, [])) for r in rows]
        cards.sort(key=lambda c: c.target.casefold())
        return cards

    async def get_by_id(self, card_id: str) -> Card | None:
        async with self.reading() as session:
            row = await session.get(CardRow, card_id)
            if row is None:
                return None
            words = await load_words(session, ForbiddenRow, [card_id])
        return to_card(row, words.get(card_id, []))

    # ---------- Writes ----------

    async def insert_batch(self, cards: Iterable[Card]) -> int:
        """
        Merge cards into the store in one atomic transaction.

        A card matching an active card's bucket and normalized target updates
        that card; otherwise a card with the same id is updated; otherwise a
        new row is inserted. The forbidden list always mirrors the input.

        Returns:
            Number of cards processed.
        """
        batch = list(cards)
        if not batch:
            return 0

        async with self.transaction() as session:
            for card in batch:
                await self._merge(session, card)

        logger.info(f"Merged {len(batch)} card(s) into the store")
        return len(batch)

    async def _merge(self, session: AsyncSession, card: Card) -> None:
        key = normalize_target(card.target)
        row = await session.scalar(
            select(CardRow)
            .where(*bucket_filter(CardRow, card.bucket), CardRow.normalized_target == key)
            .limit(1)
        )
        if row is None:
            row = await session.get(CardRow, card.id)
        if row is None:
            row = CardRow(id=card.id)
            session.add(row)
        else:
            logger.debug(f"Merging '{card.target}' into existing card {row.id}")

        row.language = card.language
        row.category = card.category
        row.difficulty = card.difficulty
        row.target = card.target
        row.normalized_target = key
        await replace_words(session, ForbiddenRow, row.id, unique_words(card.forbidden))

    async def update_card(self, card: Card) -> bool:
        """
        Overwrite display fields and the forbidden list of an existing card.

        Intended for direct user edits: no dedup is applied. Returns False if
        the id is not an active card.
        """
        async with self.transaction() as session:
            row = await session.get(CardRow, card.id)
            if row is None:
                return False
            row.language = card.language
            row.category = card.category
            row.difficulty = card.difficulty
            row.target = card.target
            row.normalized_target = normalize_target(card.target)
            await replace_words(session, ForbiddenRow, card.id, unique_words(card.forbidden))

        logger.info(f"Updated card {card.id}")
        return True

    async def create_custom_card(self, draft: CardDraft) -> Card:
        """
        Create a user-authored card with a fresh id.

        Raises:
            InvalidCard: The draft fails validation.
            DuplicateTarget: The bucket already holds an active card with the
                same normalized target. Nothing is written.
        """
        draft = clean_draft(draft)
        card = Card(
            id=generate_card_id(),
            language=draft.language,
            category=draft.category,
            difficulty=draft.difficulty,
            target=draft.target,
            forbidden=draft.forbidden,
        )
        key = normalize_target(card.target)

        async with self.transaction() as session:
            existing = await session.scalar(
                select(CardRow.id)
                .where(*bucket_filter(CardRow, card.bucket), CardRow.normalized_target == key)
                .limit(1)
            )
            if existing is not None:
                raise DuplicateTarget(card.bucket, key)

            session.add(
                CardRow(
                    id=card.id,
                    language=card.language,
                    category=card.category,
                    difficulty=card.difficulty,
                    target=card.target,
                    normalized_target=key,
                )
            )
            session.add_all([ForbiddenRow(card_id=card.id, word=w) for w in card.forbidden])

        logger.info(f"Created custom card {card.id} '{card.target}' in {card.bucket}")
        return card

    # ---------- Trash (delegates to TrashManager) ----------

    async def delete_card(self, card_id: str) -> bool:
        return await self.trash.delete(card_id)

    async def restore_card(self, card_id: str) -> bool:
        return await self.trash.restore(card_id)

    async def list_trash(self) -> list[TrashCard]:
        return await self.trash.list_trash()

    async def purge_expired(self) -> int:
        return await self.trash.purge_expired()
