"""Shared fixtures: an in-memory store, a hand-driven clock, and player factories."""

from datetime import datetime, timedelta, timezone

import pytest

from gameport import ledger, tournaments
from gameport.app import GamePortApp
from gameport.config import GamePortConfig, StorageConfig
from gameport.models import Mode
from gameport.storage import DocumentStore

PASSWORD = "secret123"
# 11:45 in UTC+05:45, inside the 10:00-17:00 service window
START = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return GamePortConfig(storage=StorageConfig(path=":memory:"))


@pytest.fixture
def documents():
    """Fresh in-memory document store for each test."""
    store = DocumentStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def app(config, documents, clock):
    return GamePortApp(config, documents=documents, clock=clock).start()


@pytest.fixture
def restart(config, documents, clock):
    """Start a second engine over the same durable store, as a relaunch would."""

    def _restart() -> GamePortApp:
        return GamePortApp(config, documents=documents, clock=clock).start()

    return _restart


@pytest.fixture
def fund(app):
    def _fund(user_id: str, amount: int) -> None:
        user = app.store.user(user_id)
        with app.store.batch():
            ledger.credit(user, amount, "Test top-up", app.clock())
            app.store.put_user(user)

    return _fund


@pytest.fixture
def make_player(app, fund):
    """Sign up a player (leaving them logged in) and optionally fund them."""

    def _make(name: str, balance: int = 0) -> str:
        user = app.sign_up(f"{name.lower()}@example.com", PASSWORD, name)
        if balance:
            fund(user.id, balance)
        return user.id

    return _make


@pytest.fixture
def login_as(app):
    def _login(user_id: str) -> None:
        app.login(user_id, PASSWORD)

    return _login


@pytest.fixture
def make_tournament(app):
    def _make(
        name: str = "Weekend Cup",
        mode: Mode = Mode.SOLO,
        entry_fee: int = 50,
        category: str = "Classic",
    ) -> str:
        tournament = tournaments.create_tournament(
            app.store, name, category, mode, entry_fee,
            start_date=app.clock() + timedelta(days=2), now=app.clock(),
        )
        return tournament.id

    return _make


@pytest.fixture
def as_admin(app, config):
    def _as_admin() -> None:
        app.admin_login(config.admin.password)

    return _as_admin
