import importlib
import random

import pytest

from recommender.context import RecommenderContext
from recommender.events import EventChannel
from recommender.store import InMemoryLibraryStore
from helpers import CURRENT_YEAR, LIBRARY_ID, FakeTimer


@pytest.fixture()
def timer():
    return FakeTimer()


@pytest.fixture()
def channel():
    return EventChannel()


@pytest.fixture()
def store(channel):
    return InMemoryLibraryStore(channel=channel)


@pytest.fixture()
def ctx(store, channel, timer):
    return RecommenderContext(
        store,
        LIBRARY_ID,
        channel=channel,
        rng=random.Random(7),
        timer=timer,
        current_year=CURRENT_YEAR,
    )


@pytest.fixture()
def app_client(tmp_path, monkeypatch):
    """Create an isolated Flask test client backed by a temporary sqlite DB."""
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("PAPERS_DB_PATH", str(db_path))
    monkeypatch.setenv("RECOMMENDER_LIBRARY_ID", LIBRARY_ID)
    monkeypatch.setenv("RECOMMENDER_LOG_LEVEL", "WARNING")
    monkeypatch.delenv("WORD_VECTORS_PATH", raising=False)

    import app.app as app_module

    app_module = importlib.reload(app_module)
    app = app_module.create_app()
    app.config.update(TESTING=True)

    with app.test_client() as client:
        yield app, client, db_path
