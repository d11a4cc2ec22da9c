"""Tests for CardStore: lifecycle, dedup merge, draws and user edits."""

import asyncio
from unittest.mock import patch

import pytest
from helpers import DE_FAMILY, EN_EASY, make_card, make_cards
from sqlalchemy import create_engine, text
from sqlalchemy.ext.asyncio import create_async_engine

from guessthat.domain.errors import DuplicateTarget, InvalidCard, NotInitializedError, StorageError
from guessthat.domain.models import Card, CardDraft
from guessthat.infrastructure.store.card_store import CardStore, generate_card_id

# --- Lifecycle ---


@pytest.mark.asyncio
async def test_operations_before_open_raise(db_path):
    s = CardStore(db_path)
    assert not s.is_open
    with pytest.raises(NotInitializedError):
        await s.count(DE_FAMILY)
    with pytest.raises(NotInitializedError):
        await s.insert_batch([make_card("a", "Velo")])


@pytest.mark.asyncio
async def test_operations_after_close_raise(store):
    await store.close()
    with pytest.raises(NotInitializedError):
        await store.list_all()


@pytest.mark.asyncio
async def test_concurrent_ensure_open_initializes_once(db_path):
    s = CardStore(db_path)
    with patch(
        "guessthat.infrastructure.store.card_store.create_async_engine",
        wraps=create_async_engine,
    ) as engine_factory:
        results = await asyncio.gather(*(s.ensure_open() for _ in range(5)))
        await s.ensure_open()

    assert engine_factory.call_count == 1
    assert all(r is s for r in results)
    assert s.is_open
    await s.close()


@pytest.mark.asyncio
async def test_open_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "cards.db"
    async with CardStore(path) as s:
        assert await s.count(DE_FAMILY) == 0
    assert path.exists()


@pytest.mark.asyncio
async def test_open_failure_is_storage_error_and_retryable(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    s = CardStore(blocker / "cards.db")
    with pytest.raises(StorageError):
        await s.ensure_open()
    assert s._init_task is None
    assert not s.is_open


@pytest.mark.asyncio
async def test_failed_open_sweep_leaves_store_closed(db_path):
    # A legacy trash table without deleted_at makes the opening sweep fail
    legacy = create_engine(f"sqlite:///{db_path}")
    with legacy.begin() as conn:
        conn.execute(text("CREATE TABLE trash_cards (id VARCHAR PRIMARY KEY)"))
    legacy.dispose()

    s = CardStore(db_path)
    with patch(
        "guessthat.infrastructure.store.card_store.create_async_engine",
        wraps=create_async_engine,
    ) as engine_factory:
        with pytest.raises(StorageError):
            await s.ensure_open()
        assert not s.is_open
        assert s._engine is None
        assert s._init_task is None
        with pytest.raises(NotInitializedError):
            await s.count(DE_FAMILY)

        with pytest.raises(StorageError):
            await s.ensure_open()
    assert engine_factory.call_count == 2
    assert not s.is_open


@pytest.mark.asyncio
async def test_data_survives_reopen(db_path, clock):
    async with CardStore(db_path, clock=clock) as s:
        await s.insert_batch([make_card("a", "Velo", ["Rad", "fahren"])])
    async with CardStore(db_path, clock=clock) as s:
        card = await s.get_by_id("a")
    assert card.forbidden == ["Rad", "fahren"]


# --- insert_batch ---


@pytest.mark.asyncio
async def test_insert_batch_dedups_by_normalized_target_within_bucket(store):
    n = await store.insert_batch(
        [
            make_card("a", "Käse", ["Milch"]),
            make_card("b", " KASE", ["Fondue", "Kuh"]),
        ]
    )
    assert n == 2
    assert await store.count(DE_FAMILY) == 1

    card = await store.get_by_id("a")
    assert card.target == " KASE"
    assert card.forbidden == ["Fondue", "Kuh"]
    assert await store.get_by_id("b") is None


@pytest.mark.asyncio
async def test_insert_batch_is_idempotent(store):
    batch = make_cards(10)
    await store.insert_batch(batch)
    await store.insert_batch(batch)
    assert await store.count(DE_FAMILY) == 10


@pytest.mark.asyncio
async def test_same_target_in_different_buckets_is_kept(store):
    await store.insert_batch([make_card("a", "Velo"), make_card("b", "Velo", bucket=EN_EASY)])
    assert await store.count(DE_FAMILY) == 1
    assert await store.count(EN_EASY) == 1


@pytest.mark.asyncio
async def test_insert_batch_matches_by_id_when_target_changed(store):
    await store.insert_batch([make_card("a", "Velo")])
    await store.insert_batch([make_card("a", "Fahrrad", ["Pedal"])])
    assert await store.count(DE_FAMILY) == 1
    card = await store.get_by_id("a")
    assert card.target == "Fahrrad"
    assert card.forbidden == ["Pedal"]


@pytest.mark.asyncio
async def test_insert_batch_dedups_forbidden_and_keeps_order(store):
    await store.insert_batch([make_card("a", "Zug", ["SBB", "Gleis", "SBB", "Perron"])])
    assert (await store.get_by_id("a")).forbidden == ["SBB", "Gleis", "Perron"]


@pytest.mark.asyncio
async def test_insert_batch_rolls_back_whole_batch_on_error(store):
    bad = Card(id="bad", language=None, category="family", difficulty="medium", target="X")
    with pytest.raises(StorageError):
        await store.insert_batch([make_card("good", "Velo"), bad])
    assert await store.count(DE_FAMILY) == 0
    assert await store.get_by_id("good") is None


@pytest.mark.asyncio
async def test_insert_empty_batch(store):
    assert await store.insert_batch([]) == 0


# --- Reads ---


@pytest.mark.asyncio
async def test_draw_random_returns_distinct_cards_from_bucket(store):
    await store.insert_batch(make_cards(20) + make_cards(5, prefix="e", bucket=EN_EASY))

    drawn = await store.draw_random(DE_FAMILY, 8)
    assert len(drawn) == 8
    assert len({c.id for c in drawn}) == 8
    assert all(c.bucket == DE_FAMILY for c in drawn)
    assert all(c.forbidden == ["eins", "zwei"] for c in drawn)


@pytest.mark.asyncio
async def test_draw_random_bounds(store):
    await store.insert_batch(make_cards(3))
    assert len(await store.draw_random(DE_FAMILY, 10)) == 3
    assert await store.draw_random(DE_FAMILY, 0) == []
    assert await store.draw_random(DE_FAMILY, -1) == []
    assert await store.draw_random(EN_EASY, 5) == []


@pytest.mark.asyncio
async def test_list_all_sorted_case_insensitively(store):
    await store.insert_batch(
        [make_card("1", "zoo"), make_card("2", "Apfel"), make_card("3", "banane", bucket=EN_EASY)]
    )
    assert [c.target for c in await store.list_all()] == ["Apfel", "banane", "zoo"]


@pytest.mark.asyncio
async def test_bucket_counts(store):
    await store.insert_batch(make_cards(4) + make_cards(2, prefix="e", bucket=EN_EASY))
    assert await store.bucket_counts() == {DE_FAMILY: 4, EN_EASY: 2}


@pytest.mark.asyncio
async def test_get_by_id_missing(store):
    assert await store.get_by_id("nope") is None


# --- update_card ---


@pytest.mark.asyncio
async def test_update_card_replaces_fields_and_words(store):
    await store.insert_batch([make_card("a", "Velo", ["Rad"])])
    ok = await store.update_card(make_card("a", "Velö", ["Helm", "Pedal"], bucket=EN_EASY))
    assert ok
    card = await store.get_by_id("a")
    assert card.target == "Velö"
    assert card.bucket == EN_EASY
    assert card.forbidden == ["Helm", "Pedal"]


@pytest.mark.asyncio
async def test_update_card_unknown_id(store):
    assert await store.update_card(make_card("ghost", "Velo")) is False


@pytest.mark.asyncio
async def test_update_card_does_not_dedup(store):
    await store.insert_batch([make_card("a", "Velo"), make_card("b", "Zug")])
    await store.update_card(make_card("b", "velo"))
    assert await store.count(DE_FAMILY) == 2


# --- create_custom_card ---


def _draft(target, **kw):
    base = dict(language="de-CH", category="family", difficulty="medium", target=target, forbidden=["x"])
    base.update(kw)
    return CardDraft(**base)


@pytest.mark.asyncio
async def test_create_custom_card(store):
    card = await store.create_custom_card(_draft(" Schoggi ", forbidden=["süss", "süss", "braun"]))
    assert card.id.startswith("custom_")
    assert card.target == "Schoggi"
    stored = await store.get_by_id(card.id)
    assert stored == card
    assert stored.forbidden == ["süss", "braun"]


@pytest.mark.asyncio
async def test_create_custom_card_duplicate_raises_and_writes_nothing(store):
    await store.insert_batch([make_card("a", "Käse")])
    with pytest.raises(DuplicateTarget) as exc:
        await store.create_custom_card(_draft("KÄSE"))
    assert exc.value.normalized_target == "kase"
    assert exc.value.bucket == DE_FAMILY
    assert await store.count(DE_FAMILY) == 1


@pytest.mark.asyncio
async def test_create_custom_card_other_bucket_allowed(store):
    await store.insert_batch([make_card("a", "Käse")])
    card = await store.create_custom_card(_draft("Käse", language="en", difficulty="easy"))
    assert card.bucket == EN_EASY


@pytest.mark.asyncio
async def test_create_custom_card_invalid(store):
    with pytest.raises(InvalidCard):
        await store.create_custom_card(_draft("  "))
    assert await store.list_all() == []


def test_generate_card_id_unique():
    ids = {generate_card_id() for _ in range(100)}
    assert len(ids) == 100
