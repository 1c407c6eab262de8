"""
tests/test_store.py - Collections, batches and the durable mirror.
"""

from datetime import datetime, timezone

import pytest

from gameport.errors import NotFoundError, NotPermitted
from gameport.models import HeroSlide, Override, Role, SystemStatusConfig, User
from gameport.storage import (
    SESSION_KEY,
    SYSTEM_STATUS_KEY,
    TEAMS_KEY,
    TOURNAMENTS_KEY,
    USERS_KEY,
)
from gameport.store import Store

START = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(documents):
    s = Store(documents)
    s.load(START)
    return s


def _user(uid: str, name: str | None = None) -> User:
    return User(id=uid, name=name or uid.title(), email=f"{uid}@example.com", password="pw1234")


# ======================================================================
# Batches
# ======================================================================


class TestBatch:
    def test_commit_writes_touched_collection(self, store, documents):
        with store.batch():
            store.put_user(_user("u1"))
        assert [u["id"] for u in documents.load(USERS_KEY)] == ["u1"]
        assert store.dirty == frozenset()

    def test_untouched_collections_not_written(self, store, documents):
        with store.batch():
            store.put_user(_user("u1"))
        assert documents.load(TOURNAMENTS_KEY) is None
        assert documents.load(TEAMS_KEY) is None

    def test_exception_rolls_back_everything(self, store, documents):
        with store.batch():
            store.put_user(_user("u1"))

        with pytest.raises(RuntimeError):
            with store.batch():
                store.users["u1"].wallet.balance = 500
                store.put_user(_user("u2"))
                store.set_system_status(SystemStatusConfig(Override.OFFLINE))
                raise RuntimeError("boom")

        assert set(store.users) == {"u1"}
        assert store.users["u1"].wallet.balance == 0
        assert store.system_status.override is Override.AUTO
        assert [u["id"] for u in documents.load(USERS_KEY)] == ["u1"]
        assert documents.load(SYSTEM_STATUS_KEY) is None

    def test_nested_batches_commit_once_at_outermost(self, store, documents):
        with store.batch():
            with store.batch():
                store.put_user(_user("u1"))
            # Inner exit does not write
            assert documents.load(USERS_KEY) is None
        assert documents.load(USERS_KEY) is not None

    def test_inner_failure_rolls_back_outer_batch(self, store):
        with pytest.raises(ValueError):
            with store.batch():
                store.put_user(_user("u1"))
                with store.batch():
                    raise ValueError("nope")
        assert store.users == {}

    def test_named_batch_rolls_back_named_collections(self, store):
        with store.batch():
            store.put_user(_user("u1"))

        with pytest.raises(RuntimeError):
            with store.batch("users"):
                store.users["u1"].wallet.balance = 500
                store.set_session_user("u1")
                raise RuntimeError("boom")

        assert store.users["u1"].wallet.balance == 0
        assert store.session_user_id is None

    def test_named_batch_leaves_other_collections_alone(self, store):
        slide = HeroSlide(id="slide_1", image_url="https://img.example/1.png")
        with store.batch():
            store.put_user(_user("u1"))
            store.set_hero_slides([slide])
        kept = store.hero_slides[0]

        with pytest.raises(RuntimeError):
            with store.batch("users"):
                store.users["u1"].wallet.balance = 500
                raise RuntimeError("boom")

        # Only the users collection was copied and put back
        assert store.hero_slides[0] is kept

    def test_nested_batch_extends_snapshot(self, store):
        with pytest.raises(RuntimeError):
            with store.batch("users"):
                store.put_user(_user("u1"))
                with store.batch("system_status"):
                    store.set_system_status(SystemStatusConfig(Override.OFFLINE))
                raise RuntimeError("boom")

        assert store.users == {}
        assert store.system_status.override is Override.AUTO

    def test_unknown_collection_name(self, store):
        with pytest.raises(ValueError, match="Unknown collections: wallets"):
            with store.batch("wallets"):
                pass

    def test_commit_skipped_while_loading(self, store, documents):
        store.loading = True
        store.put_user(_user("u1"))
        store.commit()
        assert documents.load(USERS_KEY) is None
        assert "users" in store.dirty

        store.loading = False
        store.commit()
        assert documents.load(USERS_KEY) is not None


# ======================================================================
# Loading
# ======================================================================


class TestLoad:
    def test_empty_store_loads_empty(self, store):
        assert store.users == {}
        assert store.tournaments == {}
        assert store.system_status == SystemStatusConfig()

    def test_reload_round_trip(self, store, documents):
        with store.batch():
            store.put_user(_user("u1", "Ram"))
            store.set_system_status(SystemStatusConfig(Override.ONLINE, "open late"))

        fresh = Store(documents)
        assert fresh.load(START) is False
        assert fresh.users["u1"].name == "Ram"
        assert fresh.users["u1"].is_online is False
        assert fresh.system_status.override is Override.ONLINE
        assert fresh.system_status.message == "open late"

    def test_corrupt_document_starts_empty(self, documents):
        documents.save_raw(TOURNAMENTS_KEY, "[{broken")
        documents.save(TEAMS_KEY, {"not": "a list"})
        documents.save(USERS_KEY, [_user("u1").to_dict()])

        store = Store(documents)
        store.load(START)
        assert store.tournaments == {}
        assert store.teams == {}
        assert set(store.users) == {"u1"}

    def test_record_missing_id_starts_empty(self, documents):
        documents.save(TOURNAMENTS_KEY, [{"name": "no id"}])
        store = Store(documents)
        store.load(START)
        assert store.tournaments == {}

    def test_load_does_not_write(self, documents):
        documents.save_raw(TEAMS_KEY, "garbage")
        store = Store(documents)
        store.load(START)
        # The corrupt body stays until something is actually saved over it
        assert documents.keys() == [TEAMS_KEY]
        assert store.dirty == frozenset()

    def test_stored_admin_records_dropped(self, documents):
        admin = _user("admin_001")
        admin.role = Role.ADMIN
        documents.save(USERS_KEY, [admin.to_dict(), _user("u1").to_dict()])
        store = Store(documents)
        store.load(START)
        assert set(store.users) == {"u1"}


# ======================================================================
# Lookups and mutations
# ======================================================================


class TestLookups:
    def test_missing_user_raises(self, store):
        with pytest.raises(NotFoundError, match="User not found"):
            store.user("ghost")
        assert store.find_user("ghost") is None
        assert store.find_user(None) is None

    def test_missing_tournament_and_team(self, store):
        with pytest.raises(NotFoundError, match="Tournament not found"):
            store.tournament("t_x")
        with pytest.raises(NotFoundError, match="Team not found"):
            store.team("team_x")

    def test_admin_never_stored(self, store):
        admin = _user("admin_001")
        admin.role = Role.ADMIN
        with pytest.raises(NotPermitted):
            store.put_user(admin)
        assert store.users == {}

    def test_users_document_excludes_admin(self, store):
        store.users["u1"] = _user("u1")
        admin = _user("admin_001")
        admin.role = Role.ADMIN
        store.users[admin.id] = admin
        assert [u["id"] for u in store.users_document()] == ["u1"]


class TestSessionSlot:
    def test_session_pointer_mirrors_user(self, store, documents):
        with store.batch():
            store.put_user(_user("u1"))
            store.set_session_user("u1")
        assert documents.load(SESSION_KEY)["id"] == "u1"

        with store.batch():
            store.users["u1"].wallet.balance = 40
            store.put_user(store.users["u1"])
        assert documents.load(SESSION_KEY)["wallet"]["balance"] == 40

    def test_clearing_session_deletes_slot(self, store, documents):
        with store.batch():
            store.put_user(_user("u1"))
            store.set_session_user("u1")
        with store.batch():
            store.set_session_user(None)
        assert documents.load(SESSION_KEY) is None

    def test_load_session_pointer(self, store, documents):
        documents.save(SESSION_KEY, _user("u1").to_dict())
        saved = store.load_session_pointer(START)
        assert saved is not None and saved.id == "u1"

    def test_unreadable_session_pointer_ignored(self, store, documents):
        documents.save_raw(SESSION_KEY, "{{{")
        assert store.load_session_pointer(START) is None
        documents.save(SESSION_KEY, ["not", "a", "user"])
        assert store.load_session_pointer(START) is None
