"""
gameport/store.py - The in-memory collections and their durable mirror.

Store owns every collection, indexed by id. Engine operations mutate it
inside batch(); when the outermost batch exits cleanly, the collections it
touched are written back to the DocumentStore in full. If anything raises
inside the batch, the collections it named (all of them when it names
none) are restored to their state on entry, so an operation either lands
completely or not at all.

Nothing is written while load() is running, so a startup that has not
finished reading cannot overwrite durable state with empty defaults.
"""

import copy
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator

from . import backup
from .errors import NotFoundError, NotPermitted, StorageCorruption
from .models import (
    HeroSlide,
    LoginBanner,
    SystemStatusConfig,
    Team,
    Tournament,
    TournamentRequest,
    User,
    VipJoinRequest,
    utcnow,
)
from .storage import (
    HERO_SLIDES_KEY,
    LOGIN_BANNERS_KEY,
    REQUESTS_KEY,
    SESSION_KEY,
    SYSTEM_STATUS_KEY,
    TEAMS_KEY,
    TOURNAMENTS_KEY,
    USERS_KEY,
    VIP_REQUESTS_KEY,
    DocumentStore,
)

logger = logging.getLogger(__name__)

# Collection name -> durable key
COLLECTION_KEYS = {
    "users": USERS_KEY,
    "tournaments": TOURNAMENTS_KEY,
    "teams": TEAMS_KEY,
    "tournament_requests": REQUESTS_KEY,
    "vip_requests": VIP_REQUESTS_KEY,
    "hero_slides": HERO_SLIDES_KEY,
    "login_banners": LOGIN_BANNERS_KEY,
}


# Anything batch() can snapshot by name
SNAPSHOT_NAMES = frozenset(COLLECTION_KEYS) | {"system_status"}

class Store:
    """Id-indexed collections plus the bookkeeping to persist them."""

    def __init__(self, documents: DocumentStore):
        self.documents = documents
        self.users: dict[str, User] = {}
        self.tournaments: dict[str, Tournament] = {}
        self.teams: dict[str, Team] = {}
        self.tournament_requests: dict[str, TournamentRequest] = {}
        self.vip_requests: dict[str, VipJoinRequest] = {}
        self.hero_slides: list[HeroSlide] = []
        self.login_banners: list[LoginBanner] = []
        self.system_status = SystemStatusConfig()
        # Player id mirrored to the session slot; None when logged out or admin
        self.session_user_id: str | None = None

        self.loading = False
        self._dirty: set[str] = set()
        self._depth = 0
        self._saved: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def load(self, now: datetime | None = None) -> bool:
        """Rebuild every collection from durable storage.

        Corrupt documents fall back to empty collections. An empty or
        unreadable user collection is rebuilt from the backup slot.

        Returns True if users were recovered from the backup.
        """
        now = now or utcnow()
        recovered = False
        self.loading = True
        try:
            users = self._load_list(USERS_KEY, lambda d: User.from_dict(d, now)) or []
            users = [u for u in users if not u.is_admin]
            if not users:
                users = backup.restore_users(self.documents, now)
                recovered = bool(users)
            self.users = {u.id: u for u in users}

            self.tournaments = _index(
                self._load_list(TOURNAMENTS_KEY, lambda d: Tournament.from_dict(d, now))
            )
            self.teams = _index(self._load_list(TEAMS_KEY, Team.from_dict))
            self.tournament_requests = _index(
                self._load_list(REQUESTS_KEY, TournamentRequest.from_dict)
            )
            self.vip_requests = _index(self._load_list(VIP_REQUESTS_KEY, VipJoinRequest.from_dict))
            self.hero_slides = self._load_list(HERO_SLIDES_KEY, HeroSlide.from_dict) or []
            self.login_banners = self._load_list(LOGIN_BANNERS_KEY, LoginBanner.from_dict) or []
            self.system_status = self._load_status()
        finally:
            self.loading = False
            self._dirty.clear()

        if recovered:
            # Put the recovered users back in the primary slot
            self._dirty.add("users")
        logger.info(
            f"Loaded {len(self.users)} users, {len(self.tournaments)} tournaments, "
            f"{len(self.teams)} teams" + (" (recovered from backup)" if recovered else "")
        )
        return recovered

    def _load_list(self, key: str, decode: Callable[[dict], Any]) -> list | None:
        try:
            raw = self.documents.load(key)
            if raw is None:
                return None
            if not isinstance(raw, list):
                raise StorageCorruption(key, f"expected a list, got {type(raw).__name__}")
            return [decode(item) for item in raw]
        except StorageCorruption as e:
            logger.warning(f"{e} - starting empty")
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Corrupt document {key!r}: {e} - starting empty")
        return None

    def _load_status(self) -> SystemStatusConfig:
        try:
            raw = self.documents.load(SYSTEM_STATUS_KEY)
            if raw is None:
                return SystemStatusConfig()
            if not isinstance(raw, dict):
                raise StorageCorruption(SYSTEM_STATUS_KEY, "expected an object")
            return SystemStatusConfig.from_dict(raw)
        except StorageCorruption as e:
            logger.warning(f"{e} - using defaults")
        except ValueError as e:
            logger.warning(f"Corrupt document {SYSTEM_STATUS_KEY!r}: {e} - using defaults")
        return SystemStatusConfig()

    def load_session_pointer(self, now: datetime | None = None) -> User | None:
        """The user snapshot left in the session slot, if readable."""
        try:
            raw = self.documents.load(SESSION_KEY)
            if not isinstance(raw, dict):
                return None
            return User.from_dict(raw, now)
        except StorageCorruption as e:
            logger.warning(f"{e} - ignoring saved session")
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Unreadable saved session: {e}")
        return None

    # ------------------------------------------------------------------
    # Batches and commit
    # ------------------------------------------------------------------

    @contextmanager
    def batch(self, *collections: str) -> Iterator["Store"]:
        """Group mutations. All-or-nothing; commits when the outermost batch exits.

        Name the collections the batch changes to snapshot only those;
        with no names every collection is snapshotted. A nested batch that
        names a collection the enclosing one did not adds it to the
        snapshot before its own mutations run.
        """
        names = _snapshot_names(collections)
        outermost = self._depth == 0
        if outermost:
            self._saved = self._snapshot(names)
        else:
            missing = names.difference(self._saved)
            self._saved.update(self._snapshot(missing, bookkeeping=False))
        self._depth += 1
        try:
            yield self
        except BaseException:
            if outermost:
                self._restore(self._saved)
            raise
        finally:
            self._depth -= 1
            if outermost:
                self._saved = {}
        if outermost:
            self.commit()

    def _snapshot(self, names, bookkeeping: bool = True) -> dict[str, Any]:
        state = {name: copy.deepcopy(getattr(self, name)) for name in names}
        if bookkeeping:
            state["session_user_id"] = self.session_user_id
            state["_dirty"] = set(self._dirty)
        return state

    def _restore(self, snapshot: dict[str, Any]) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)

    def mark_dirty(self, *names: str) -> None:
        self._dirty.update(names)

    @property
    def dirty(self) -> frozenset[str]:
        return frozenset(self._dirty)

    def commit(self) -> None:
        """Write every changed collection back in full.

        Skipped while loading. A failed write is logged and the collection
        stays dirty so the next commit retries it.
        """
        if self.loading or not self._dirty:
            return
        pending = set(self._dirty)
        for name in sorted(pending):
            try:
                self._write(name)
            except sqlite3.Error as e:
                logger.warning(f"Failed to persist {name}: {e}")
                continue
            self._dirty.discard(name)

    def _write(self, name: str) -> None:
        if name == "system_status":
            self.documents.save(SYSTEM_STATUS_KEY, self.system_status.to_dict())
        elif name == "session":
            self._write_session()
        elif name == "users":
            self.documents.save(USERS_KEY, self.users_document())
            # The session slot mirrors the logged-in player's latest state
            if self.session_user_id is not None:
                self._write_session()
        elif name in ("hero_slides", "login_banners"):
            items = getattr(self, name)
            self.documents.save(COLLECTION_KEYS[name], [item.to_dict() for item in items])
        else:
            items = getattr(self, name).values()
            self.documents.save(COLLECTION_KEYS[name], [item.to_dict() for item in items])

    def _write_session(self) -> None:
        user = self.users.get(self.session_user_id) if self.session_user_id else None
        if user is None:
            self.documents.delete(SESSION_KEY)
        else:
            self.documents.save(SESSION_KEY, user.to_dict())

    def users_document(self) -> list[dict[str, Any]]:
        return [u.to_dict() for u in self.users.values() if not u.is_admin]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_user(self, user_id: str | None) -> User | None:
        if user_id is None:
            return None
        return self.users.get(user_id)

    def user(self, user_id: str) -> User:
        user = self.find_user(user_id)
        if user is None:
            raise NotFoundError("User not found. Check Player ID.")
        return user

    def tournament(self, tournament_id: str) -> Tournament:
        tournament = self.tournaments.get(tournament_id)
        if tournament is None:
            raise NotFoundError("Tournament not found.")
        return tournament

    def find_team(self, team_id: str | None) -> Team | None:
        if team_id is None:
            return None
        return self.teams.get(team_id)

    def team(self, team_id: str) -> Team:
        team = self.find_team(team_id)
        if team is None:
            raise NotFoundError("Team not found.")
        return team

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def put_user(self, user: User) -> None:
        if user.is_admin:
            raise NotPermitted("Admin accounts are not stored.")
        self.users[user.id] = user
        self.mark_dirty("users")

    def remove_user(self, user_id: str) -> User:
        user = self.user(user_id)
        del self.users[user_id]
        self.mark_dirty("users")
        return user

    def put_tournament(self, tournament: Tournament) -> None:
        self.tournaments[tournament.id] = tournament
        self.mark_dirty("tournaments")

    def put_team(self, team: Team) -> None:
        self.teams[team.id] = team
        self.mark_dirty("teams")

    def remove_team(self, team_id: str) -> None:
        self.teams.pop(team_id, None)
        self.mark_dirty("teams")

    def put_tournament_request(self, request: TournamentRequest) -> None:
        self.tournament_requests[request.id] = request
        self.mark_dirty("tournament_requests")

    def put_vip_request(self, request: VipJoinRequest) -> None:
        self.vip_requests[request.id] = request
        self.mark_dirty("vip_requests")

    def set_hero_slides(self, slides: list[HeroSlide]) -> None:
        self.hero_slides = list(slides)
        self.mark_dirty("hero_slides")

    def set_login_banners(self, banners: list[LoginBanner]) -> None:
        self.login_banners = list(banners)
        self.mark_dirty("login_banners")

    def set_system_status(self, status: SystemStatusConfig) -> None:
        self.system_status = status
        self.mark_dirty("system_status")

    def set_session_user(self, user_id: str | None) -> None:
        self.session_user_id = user_id
        self.mark_dirty("session")


def _index(items: list | None) -> dict:
    return {item.id: item for item in items or []}


def _snapshot_names(collections: tuple[str, ...]) -> frozenset[str]:
    if not collections:
        return SNAPSHOT_NAMES
    unknown = set(collections) - SNAPSHOT_NAMES
    if unknown:
        raise ValueError(f"Unknown collections: {', '.join(sorted(unknown))}")
    return frozenset(collections)
