import pytest
import pytest_asyncio
from helpers import FakeClock

from guessthat.infrastructure.store.card_store import CardStore


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cards.db"


@pytest_asyncio.fixture
async def store(db_path, clock):
    s = CardStore(db_path, clock=clock)
    await s.ensure_open()
    yield s
    await s.close()


@pytest.fixture
def isolated_config_dir(tmp_path, monkeypatch):
    """Point the config directory at a temp dir so no real config.toml is read."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr("guessthat.application.config.CONFIG_DIR", home)
    for var in (
        "GUESSTHAT_DB_PATH",
        "GUESSTHAT_OFFLINE",
        "GUESSTHAT_LANGUAGE",
        "GUESSTHAT_API_BASE",
        "GUESSTHAT_VERBOSE",
    ):
        monkeypatch.delenv(var, raising=False)
    return home
