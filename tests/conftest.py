from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from relay.app import create_app
from relay.config import RelaySettings
from services.settings_store import SettingsStore
from services.tasks import TaskService
from storage.db import create_sqlite_engine, init_db


API_KEY = "test-key"
AUTH = {"X-API-Key": API_KEY}
RELAY_URL = "http://testserver"


@pytest.fixture()
def session_factory():
    # One shared connection so worker threads see the same in-memory database.
    engine = create_sqlite_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    def factory():
        return Session(engine)

    yield factory
    engine.dispose()


@pytest.fixture()
def repo(session_factory):
    return TaskService(session_factory)


@pytest.fixture()
def settings_store(session_factory):
    return SettingsStore(session_factory)


@pytest.fixture()
def relay_settings(tmp_path):
    return RelaySettings(
        api_key=API_KEY,
        cors_origin="https://tasks.example.com",
        database_url=f"sqlite:///{(tmp_path / 'relay.db').as_posix()}",
    )


@pytest.fixture()
def relay_app(relay_settings):
    return create_app(relay_settings)


@pytest.fixture()
def relay_store(relay_app):
    return relay_app.state.store


@pytest.fixture()
def http(relay_app):
    return TestClient(relay_app, raise_server_exceptions=False)
