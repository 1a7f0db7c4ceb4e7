import os
import tempfile

# Settings are read at import time, so the environment is fixed before any app import
os.environ["MODE"] = "test"
os.environ["DB_CREATE_TABLES"] = "false"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["AVATARS_DIR"] = tempfile.mkdtemp(prefix="study-bot-avatars-")
os.environ.pop("GEMINI_API_KEY", None)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from app.core.db.base import build_engine, create_tables  # noqa: E402
from app.core.db_services import HistoryStore  # noqa: E402
from app.core.history_events import HistoryEvents  # noqa: E402


@pytest.fixture
def events():
    return HistoryEvents()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}")
    await create_tables(bind=engine)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def store(session_factory, events):
    return HistoryStore(session_factory, events=events)
