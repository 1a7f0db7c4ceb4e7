import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.db.base import build_engine
from app.core.db.errors import StoreError
from app.core.db_services import HistoryStore
from app.modules.learning.models import Card


def _cards(*titles):
    return [Card(title=t, content=f"About {t}") for t in titles]


@pytest.mark.asyncio
async def test_save_then_lookup_round_trip(store):
    await store.save("u1", "Gravity", _cards("Intro", "Orbits"))
    cards = await store.lookup("u1", "Gravity")
    assert [c.model_dump() for c in cards] == [c.model_dump() for c in _cards("Intro", "Orbits")]


@pytest.mark.asyncio
async def test_lookup_is_exact_and_scoped_to_owner(store):
    await store.save("u1", "Gravity", _cards("Intro"))
    assert await store.lookup("u1", "gravity") is None
    assert await store.lookup("u2", "Gravity") is None


@pytest.mark.asyncio
async def test_save_overwrites_existing_topic(store):
    await store.save("u1", "Gravity", _cards("Old"))
    await store.save("u1", "Gravity", _cards("New"))
    entries = await store.list_recent("u1")
    assert len(entries) == 1
    assert entries[0].content[0]["title"] == "New"


@pytest.mark.asyncio
async def test_lookup_moves_entry_to_front(store):
    for topic in ("a", "b", "c"):
        await store.save("u1", topic, _cards(topic))
    await store.lookup("u1", "a")
    assert [e.topic for e in await store.list_recent("u1")] == ["a", "c", "b"]


@pytest.mark.asyncio
async def test_trim_keeps_most_recent_per_owner(store):
    for i in range(5):
        await store.save("u1", f"t{i}", _cards("x"))
    await store.save("u2", "other", _cards("x"))
    assert await store.trim("u1", 3) == 2
    assert [e.topic for e in await store.list_recent("u1")] == ["t4", "t3", "t2"]
    assert len(await store.list_recent("u2")) == 1


@pytest.mark.asyncio
async def test_delete_is_scoped_to_owner(store):
    await store.save("u1", "Gravity", _cards("x"))
    (entry,) = await store.list_recent("u1")
    assert await store.delete("u2", entry.id) is False
    assert await store.delete("u1", entry.id) is True
    assert await store.list_recent("u1") == []


@pytest.mark.asyncio
async def test_writes_publish_change_events(store, events):
    q = events.subscribe("u1")
    await store.save("u1", "Gravity", _cards("x"))
    await store.lookup("u1", "Gravity")
    await store.save("u1", "Light", _cards("x"))
    await store.trim("u1", 1)

    seen = []
    while not q.empty():
        seen.append(q.get_nowait())
    assert [(e.type, e.topic) for e in seen] == [
        ("insert", "Gravity"),
        ("update", "Gravity"),
        ("insert", "Light"),
        ("delete", None),
    ]
    events.unsubscribe("u1", q)
    assert events.count("u1") == 0


@pytest.mark.asyncio
async def test_database_failures_surface_as_store_error(tmp_path):
    # No tables created
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        broken = HistoryStore(async_sessionmaker(engine, expire_on_commit=False))
        with pytest.raises(StoreError):
            await broken.lookup("u1", "Gravity")
        with pytest.raises(StoreError):
            await broken.save("u1", "Gravity", _cards("x"))
    finally:
        await engine.dispose()
