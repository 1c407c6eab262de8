"""
gameport/app.py - GamePortApp, the single owner of engine state.

Screens talk to the engine only through this class. Every mutating
method either returns a fresh snapshot or raises a GamePortError whose
message is meant for the player; state is never left half-changed.
Reads always hand out copies, never the live records.

Two timers run off tick(): the user-collection backup and the
availability check. Nothing here enforces the availability window; the
screens decide what a closed service means for a player session.
"""

import asyncio
import copy
import logging
from datetime import datetime
from typing import Any, Callable

from . import backup, friends, ledger, teams, tournaments
from .config import GamePortConfig
from .errors import DuplicateUsername, NotFoundError, PolicyViolation, ValidationError
from .models import (
    SYSTEM_CATEGORY,
    HeroSlide,
    KycData,
    KycStatus,
    LoginBanner,
    Mode,
    Notification,
    NotificationType,
    OrganizerRequestDetails,
    Override,
    RequestStatus,
    SystemStatusConfig,
    Team,
    Tournament,
    TournamentRequest,
    TxStatus,
    TxType,
    User,
    VipGameDetails,
    VipJoinRequest,
    VipPersonalDetails,
    VipStatus,
    new_id,
    utcnow,
)
from .scheduler import Availability, PeriodicTask, ServiceStatus, evaluate
from .session import MIN_USERNAME_LENGTH, SessionManager
from .storage import DocumentStore
from .store import Store
from .tournaments import PaymentPrompt

logger = logging.getLogger(__name__)

DEPOSIT_METHODS = ("esewa", "khalti")


class GamePortApp:
    """Engine facade: collections, session, timers and every operation."""

    def __init__(
        self,
        config: GamePortConfig | None = None,
        documents: DocumentStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or GamePortConfig()
        self.documents = documents or DocumentStore(self.config.storage.path)
        self.clock = clock
        self.store = Store(self.documents)
        self.session = SessionManager(self.store, self.config.admin, self.config.session)

        self.popup: Notification | None = None
        self.recovered_from_backup = False
        self._availability = Availability(ServiceStatus.ONLINE)

        self.backup_task = PeriodicTask(
            "backup", self.config.backup.interval_seconds, self.run_backup
        )
        self.availability_task = PeriodicTask(
            "availability", self.config.schedule.check_interval_seconds, self.check_availability
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, restore_session: bool = True) -> "GamePortApp":
        """Load state, restore the saved session and evaluate availability once.

        Operator tools pass restore_session=False so the saved player
        session is left exactly as they found it.
        """
        now = self.clock()
        self.recovered_from_backup = self.store.load(now)
        if restore_session:
            self.popup = self.session.restore(now)
        self.check_availability(now)
        self.backup_task.start(now)
        self.availability_task.start(now)
        self.store.commit()
        return self

    def tick(self, now: datetime | None = None) -> list[str]:
        """Run whichever timers are due. Returns the names of those that ran."""
        now = now or self.clock()
        ran = []
        for task in (self.backup_task, self.availability_task):
            if task.tick(now):
                ran.append(task.name)
        return ran

    async def run_timers(self, stop: asyncio.Event | None = None) -> None:
        """Drive tick() until stop is set. For long-running hosts."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            self.tick()
            now = self.clock()
            delay = min(
                self.backup_task.seconds_until_due(now),
                self.availability_task.seconds_until_due(now),
            )
            try:
                await asyncio.wait_for(stop.wait(), timeout=max(delay, 0.5))
            except asyncio.TimeoutError:
                continue

    def run_backup(self, now: datetime | None = None) -> bool:
        return backup.write_snapshot(self.documents, self.store.users_document())

    def check_availability(self, now: datetime | None = None) -> Availability:
        now = now or self.clock()
        status = self.store.system_status
        result = evaluate(now, status.override, self.config.schedule, status.message)
        if result.status is not self._availability.status:
            logger.info(f"Service is now {result.status.value}")
        self._availability = result
        return result

    def close(self) -> None:
        self.store.commit()
        self.documents.close()

    # ------------------------------------------------------------------
    # Read surface (copies only)
    # ------------------------------------------------------------------

    @property
    def availability(self) -> Availability:
        """Service status for the current session. Admins are never gated."""
        if self.session.is_admin:
            return Availability(ServiceStatus.ONLINE, message=self._availability.message)
        return copy.deepcopy(self._availability)

    @property
    def current_user(self) -> User | None:
        return copy.deepcopy(self.session.user)

    @property
    def is_admin(self) -> bool:
        return self.session.is_admin

    def list_users(self) -> list[User]:
        return copy.deepcopy(list(self.store.users.values()))

    def list_tournaments(self) -> list[Tournament]:
        return copy.deepcopy(list(self.store.tournaments.values()))

    def list_teams(self) -> list[Team]:
        return copy.deepcopy(list(self.store.teams.values()))

    def list_vip_requests(self) -> list[VipJoinRequest]:
        """Newest first."""
        requests = sorted(self.store.vip_requests.values(), key=lambda r: r.created_at, reverse=True)
        return copy.deepcopy(requests)

    def list_tournament_requests(self) -> list[TournamentRequest]:
        return copy.deepcopy(list(self.store.tournament_requests.values()))

    def hero_slides(self) -> list[HeroSlide]:
        return copy.deepcopy(self.store.hero_slides)

    def login_banners(self) -> list[LoginBanner]:
        return copy.deepcopy(self.store.login_banners)

    def system_status(self) -> SystemStatusConfig:
        return copy.deepcopy(self.store.system_status)

    def dismiss_popup(self) -> None:
        self.popup = None

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def login(self, identifier: str, secret: str) -> User:
        return copy.deepcopy(self.session.login(identifier, secret, self.clock()))

    def sign_up(self, email: str, secret: str, name: str) -> User:
        return copy.deepcopy(self.session.sign_up(email, secret, name, self.clock()))

    def admin_login(self, secret: str) -> User:
        return copy.deepcopy(self.session.admin_login(secret, self.clock()))

    def logout(self) -> None:
        self.session.logout(self.clock())
        self.popup = None

    def forgot_password(self, email: str) -> str:
        return self.session.forgot_password(email)

    def reset_password(self, email: str, code: str, new_password: str) -> None:
        self.session.reset_password(email, code, new_password)

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    def add_money_request(self, amount: int, method: str, screenshot_url: str) -> User:
        """Record a pending deposit. The balance moves only once it is approved."""
        user = self.session.require_player()
        method = _deposit_method(method)
        if not screenshot_url:
            raise ValidationError("Payment screenshot is required.")
        with self.store.batch("users"):
            ledger.record_request(
                user, amount, TxType.CREDIT, f"Deposit via {method}", self.clock(),
                proof_url=screenshot_url,
            )
            self.store.put_user(user)
        logger.info(f"{user.name} requested deposit of {amount} via {method}")
        return copy.deepcopy(user)

    def withdraw_request(self, amount: int, method: str, account_id: str) -> User:
        """Record a pending withdrawal. Nothing is deducted until it is approved."""
        user = self.session.require_player()
        method = _deposit_method(method)
        if not account_id or not account_id.strip():
            raise ValidationError("Account ID is required.")
        ledger.require_positive(amount)
        ledger.ensure_funds(user, amount)
        with self.store.batch("users"):
            ledger.record_request(
                user, amount, TxType.DEBIT, f"Withdraw to {method} ({account_id.strip()})",
                self.clock(),
            )
            self.store.put_user(user)
        logger.info(f"{user.name} requested withdrawal of {amount} to {method}")
        return copy.deepcopy(user)

    def diamond_topup_request(self, player_id: str, diamonds: int, price: int) -> User:
        """Buy an in-game top-up: paid now, delivered after admin review."""
        user = self.session.require_player()
        if not player_id or not player_id.strip():
            raise ValidationError("Player ID is required.")
        ledger.require_positive(diamonds, "Choose a valid package.")
        ledger.require_positive(price, "Choose a valid package.")
        ledger.ensure_funds(user, price, "Insufficient Balance")
        with self.store.batch("users"):
            ledger.debit(
                user, price, f"Diamond Topup ({diamonds}D) for {player_id.strip()}",
                self.clock(), status=TxStatus.PENDING, prefix="tx_dia",
            )
            self.store.put_user(user)
        return copy.deepcopy(user)

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    def join_tournament(self, tournament_id: str) -> Tournament:
        user = self.session.require_player()
        return copy.deepcopy(
            tournaments.join_tournament(self.store, user.id, tournament_id, self.clock())
        )

    def request_vip_join(
        self,
        tournament_id: str,
        personal_details: VipPersonalDetails | dict,
        game_details: VipGameDetails | dict,
        proofs: list[str] | None = None,
    ) -> VipJoinRequest:
        user = self.session.require_player()
        return copy.deepcopy(tournaments.request_vip_join(
            self.store, user.id, tournament_id, personal_details, game_details,
            proofs or [], self.clock(),
        ))

    def update_vip_join_request(self, request_id: str, status: VipStatus | str) -> VipJoinRequest:
        self.session.require_admin()
        return copy.deepcopy(
            tournaments.update_vip_join_request(self.store, request_id, status, self.clock())
        )

    def open_vip_payment(self, tournament_id: str) -> PaymentPrompt:
        user = self.session.require_player()
        return tournaments.open_vip_payment(self.store, user.id, tournament_id)

    def confirm_vip_payment(self, tournament_id: str, proof_url: str) -> VipJoinRequest:
        user = self.session.require_player()
        return copy.deepcopy(
            tournaments.confirm_vip_payment(self.store, user.id, tournament_id, proof_url)
        )

    def organize_request(self, details: OrganizerRequestDetails | dict) -> TournamentRequest:
        user = self.session.require_player()
        return copy.deepcopy(
            tournaments.organize_request(self.store, user.id, details, self.clock())
        )

    def update_tournament_request(
        self, request_id: str, status: RequestStatus | str, admin_fee: int | None = None
    ) -> TournamentRequest:
        self.session.require_admin()
        return copy.deepcopy(
            tournaments.update_tournament_request(self.store, request_id, status, admin_fee)
        )

    def create_tournament(
        self,
        name: str,
        category: str,
        mode: Mode | str,
        entry_fee: int,
        start_date: datetime,
        game: str = "",
        prize_pool: int = 0,
    ) -> Tournament:
        self.session.require_admin()
        return copy.deepcopy(tournaments.create_tournament(
            self.store, name, category, mode, entry_fee, start_date, self.clock(),
            game=game, prize_pool=prize_pool,
        ))

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def create_team(self, name: str, avatar: str | None = None) -> Team:
        user = self.session.require_player()
        return copy.deepcopy(
            teams.create_team(self.store, user.id, name, avatar, self.clock(), self.config.fees)
        )

    def join_team(self, team_id: str) -> Team:
        user = self.session.require_player()
        return copy.deepcopy(
            teams.join_team(self.store, user.id, team_id, self.clock(), self.config.fees)
        )

    def leave_team(self) -> Team | None:
        user = self.session.require_player()
        return copy.deepcopy(teams.leave_team(self.store, user.id))

    # ------------------------------------------------------------------
    # Profile, KYC, notifications
    # ------------------------------------------------------------------

    def submit_kyc(self, full_name: str, id_number: str, front_url: str, back_url: str) -> User:
        user = self.session.require_player()
        if not all(v and v.strip() for v in (full_name, id_number, front_url, back_url)):
            raise ValidationError("All KYC fields are required.")
        if user.kyc_status is KycStatus.VERIFIED:
            raise PolicyViolation("KYC already verified.")
        with self.store.batch("users"):
            user.kyc_status = KycStatus.PENDING
            user.kyc_data = KycData(
                full_name=full_name.strip(),
                id_number=id_number.strip(),
                front_url=front_url,
                back_url=back_url,
                submitted_at=self.clock(),
            )
            self.store.put_user(user)
        logger.info(f"{user.name} submitted KYC")
        return copy.deepcopy(user)

    def update_profile(self, name: str, avatar: str | None = None) -> User:
        user = self.session.require_player()
        name = (name or "").strip()
        if len(name) < MIN_USERNAME_LENGTH:
            raise ValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters.")
        if any(u.id != user.id and u.name.lower() == name.lower() for u in self.store.users.values()):
            raise DuplicateUsername()
        with self.store.batch("users"):
            user.name = name
            if avatar:
                user.avatar = avatar
            self.store.put_user(user)
        return copy.deepcopy(user)

    def mark_notification_read(self, notification_id: str) -> User:
        user = self.session.require_player()
        with self.store.batch("users"):
            for notification in user.notifications:
                if notification.id == notification_id:
                    notification.read = True
            self.store.put_user(user)
        return copy.deepcopy(user)

    def mark_all_notifications_read(self) -> User:
        user = self.session.require_player()
        with self.store.batch("users"):
            for notification in user.notifications:
                notification.read = True
            self.store.put_user(user)
        return copy.deepcopy(user)

    def clear_notifications(self) -> User:
        user = self.session.require_player()
        with self.store.batch("users"):
            user.notifications = []
            self.store.put_user(user)
        return copy.deepcopy(user)

    # ------------------------------------------------------------------
    # Friends
    # ------------------------------------------------------------------

    def search_user(self, query: str) -> User:
        """Exact player-id lookup. Returns the public view of the account."""
        user = self.store.find_user((query or "").strip())
        if user is None:
            raise NotFoundError("User not found. Check Player ID.")
        return _public_view(user)

    def get_public_profile(self, user_id: str) -> User:
        return _public_view(self.store.user(user_id))

    def send_friend_request(self, to_id: str) -> bool:
        user = self.session.require_player()
        return friends.send_request(self.store, user.id, to_id, self.clock())

    def accept_friend_request(self, from_id: str) -> User:
        user = self.session.require_player()
        return copy.deepcopy(friends.accept_request(self.store, user.id, from_id, self.clock()))

    def reject_friend_request(self, from_id: str) -> User:
        user = self.session.require_player()
        return copy.deepcopy(friends.reject_request(self.store, user.id, from_id))

    def unfriend(self, friend_id: str) -> User:
        user = self.session.require_player()
        return copy.deepcopy(friends.unfriend(self.store, user.id, friend_id))

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def broadcast_notification(self, message: str, category: str = SYSTEM_CATEGORY) -> int:
        """Send a notification to every player. Returns how many received it."""
        self.session.require_admin()
        if not message or not message.strip():
            raise ValidationError("Message is required.")
        now = self.clock()
        with self.store.batch("users"):
            for user in self.store.users.values():
                user.notify(message.strip(), now, category=category, prefix="b")
                self.store.put_user(user)
        logger.info(f"Broadcast to {len(self.store.users)} users: {message.strip()[:60]}")
        return len(self.store.users)

    def delete_user(self, user_id: str) -> None:
        """Remove an account and every reference other records hold to it."""
        self.session.require_admin()
        user = self.store.user(user_id)
        with self.store.batch("users", "teams"):
            if user.team_id:
                teams.leave_team(self.store, user.id)
            for other in self.store.users.values():
                if other.id == user.id:
                    continue
                if user.id in other.friends or any(r.from_id == user.id for r in other.friend_requests):
                    other.friends = [f for f in other.friends if f != user.id]
                    other.friend_requests = [r for r in other.friend_requests if r.from_id != user.id]
                    self.store.put_user(other)
            self.store.remove_user(user.id)
        logger.info(f"Deleted user {user.name} ({user.id})")

    def ban_user(self, user_id: str, reason: str) -> User:
        self.session.require_admin()
        user = self.store.user(user_id)
        with self.store.batch("users"):
            user.is_banned = True
            user.ban_reason = (reason or "").strip() or None
            user.is_online = False
            self.store.put_user(user)
        logger.info(f"Banned {user.name}: {user.ban_reason}")
        return copy.deepcopy(user)

    def unban_user(self, user_id: str) -> User:
        self.session.require_admin()
        user = self.store.user(user_id)
        with self.store.batch("users"):
            user.is_banned = False
            user.ban_reason = None
            self.store.put_user(user)
        logger.info(f"Unbanned {user.name}")
        return copy.deepcopy(user)

    def review_kyc(self, user_id: str, approve: bool) -> User:
        """Settle a pending KYC submission and tell the player the outcome."""
        self.session.require_admin()
        user = self.store.user(user_id)
        if user.kyc_status is not KycStatus.PENDING:
            raise PolicyViolation(f"KYC is {user.kyc_status.value}, nothing to review.")
        now = self.clock()
        with self.store.batch("users"):
            if approve:
                user.kyc_status = KycStatus.VERIFIED
                user.notify(
                    "KYC Verified! You can now join paid matches.",
                    now, type=NotificationType.SUCCESS, prefix="notif_kyc",
                )
            else:
                user.kyc_status = KycStatus.REJECTED
                user.notify(
                    "KYC Rejected. Please check your documents and submit again.",
                    now, type=NotificationType.ERROR, prefix="notif_kyc",
                )
            self.store.put_user(user)
        logger.info(f"KYC for {user.name} -> {user.kyc_status.value}")
        return copy.deepcopy(user)

    def set_system_override(self, override: Override | str, message: str | None = None) -> Availability:
        self.session.require_admin()
        try:
            override = Override(override)
        except ValueError as e:
            raise ValidationError(f"Unknown override: {override}") from e
        current = self.store.system_status
        status = SystemStatusConfig(
            override=override, message=current.message if message is None else message
        )
        with self.store.batch("system_status"):
            self.store.set_system_status(status)
        logger.info(f"System override set to {override.value}")
        return self.check_availability()

    def set_hero_slides(self, slides: list[HeroSlide | dict[str, Any]]) -> list[HeroSlide]:
        self.session.require_admin()
        parsed = [_slide(s) for s in slides]
        with self.store.batch("hero_slides"):
            self.store.set_hero_slides(parsed)
        return copy.deepcopy(parsed)

    def set_login_banners(self, banners: list[LoginBanner | dict[str, Any]]) -> list[LoginBanner]:
        self.session.require_admin()
        parsed = [_banner(b) for b in banners]
        with self.store.batch("login_banners"):
            self.store.set_login_banners(parsed)
        return copy.deepcopy(parsed)


# ============================================================================
# Helpers
# ============================================================================


def _deposit_method(method: str) -> str:
    method = (method or "").strip().lower()
    if method not in DEPOSIT_METHODS:
        raise ValidationError(f"Unsupported payment method: {method or '(none)'}")
    return method


def _public_view(user: User) -> User:
    view = copy.deepcopy(user)
    view.password = ""
    view.kyc_data = None
    view.wallet.transactions = []
    return view


def _slide(item: HeroSlide | dict[str, Any]) -> HeroSlide:
    if isinstance(item, HeroSlide):
        return item
    if not item.get("image_url"):
        raise ValidationError("Slide image is required.")
    return HeroSlide.from_dict({**item, "id": item.get("id") or new_id("slide")})


def _banner(item: LoginBanner | dict[str, Any]) -> LoginBanner:
    if isinstance(item, LoginBanner):
        return item
    if not item.get("image_url"):
        raise ValidationError("Banner image is required.")
    return LoginBanner.from_dict({**item, "id": item.get("id") or new_id("banner")})
