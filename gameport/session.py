"""
gameport/session.py - Login, signup, logout and auto-login.

Players are matched by email, display name or id (case-insensitive) and
their password by exact comparison. The admin identity is not a stored
user: it is built from config with role=ADMIN and never persisted.

The logged-in player's id is mirrored to the session slot so the next
start can restore it.
"""

import logging
import random
from datetime import datetime, timedelta

from .config import AdminConfig, SessionConfig
from .errors import (
    AccountBanned,
    AccountNotFound,
    DuplicateEmail,
    DuplicateUsername,
    IncorrectPassword,
    NotPermitted,
    ValidationError,
)
from .models import (
    SYSTEM_CATEGORY,
    KycStatus,
    Notification,
    Role,
    User,
    Wallet,
    new_id,
)
from .store import Store

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MIN_USERNAME_LENGTH = 3
WELCOME_MESSAGE = "Welcome to GamePort! Complete KYC to join paid matches."


def build_admin(config: AdminConfig) -> User:
    return User(
        id=config.user_id,
        name=config.display_name,
        email=config.email,
        avatar="https://cdn-icons-png.flaticon.com/512/2922/2922510.png",
        level=99,
        coins=9999,
        wallet=Wallet(balance=999999),
        kyc_status=KycStatus.VERIFIED,
        is_online=True,
        role=Role.ADMIN,
    )


def _validate_password(secret: str) -> None:
    if len(secret) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")


class SessionManager:
    """Who is logged in, and the operations that change it."""

    def __init__(self, store: Store, admin: AdminConfig, config: SessionConfig | None = None):
        self.store = store
        self.admin_config = admin
        self.config = config or SessionConfig()
        self._admin: User | None = None
        self._reset_codes: dict[str, str] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_logged_in(self) -> bool:
        return self._admin is not None or self.store.session_user_id is not None

    @property
    def is_admin(self) -> bool:
        return self._admin is not None

    @property
    def user(self) -> User | None:
        """The live record of whoever is logged in."""
        if self._admin is not None:
            return self._admin
        return self.store.find_user(self.store.session_user_id)

    def require_player(self) -> User:
        """The logged-in player. Raises if nobody is, or if they are banned."""
        if self._admin is not None:
            raise NotPermitted("Admins cannot do this.")
        user = self.store.find_user(self.store.session_user_id)
        if user is None:
            raise NotPermitted("Please log in first.")
        if user.is_banned:
            raise AccountBanned(user.ban_reason)
        return user

    def require_admin(self) -> User:
        if self._admin is None:
            raise NotPermitted("Admin access required.")
        return self._admin

    # ------------------------------------------------------------------
    # Login / signup / logout
    # ------------------------------------------------------------------

    def _is_admin_identifier(self, identifier: str) -> bool:
        lowered = identifier.lower()
        return lowered in (self.admin_config.email.lower(), self.admin_config.username.lower())

    def find_account(self, identifier: str) -> User | None:
        lowered = identifier.strip().lower()
        for user in self.store.users.values():
            if (
                (user.email and user.email.lower() == lowered)
                or user.name.lower() == lowered
                or user.id.lower() == lowered
            ):
                return user
        return None

    def login(self, identifier: str, secret: str, now: datetime) -> User:
        """Log in by email, username or player id.

        Raises:
            AccountNotFound: no account matches the identifier.
            IncorrectPassword: the password does not match.
            AccountBanned: the account is banned (message carries the reason).
        """
        identifier = identifier.strip()
        if self._is_admin_identifier(identifier):
            return self.admin_login(secret, now)

        user = self.find_account(identifier)
        if user is None:
            raise AccountNotFound()
        if str(user.password) != secret:
            logger.warning(f"Login failed for {user.name}: wrong password")
            raise IncorrectPassword()
        if user.is_banned:
            logger.warning(f"Login refused for banned account {user.name}")
            raise AccountBanned(user.ban_reason)

        with self.store.batch("users"):
            self._admin = None
            if self.store.session_user_id != user.id:
                self._sign_out_player(now)
            user.is_online = True
            self.store.put_user(user)
            self.store.set_session_user(user.id)
        logger.info(f"{user.name} logged in")
        return user

    def admin_login(self, secret: str, now: datetime) -> User:
        if secret != self.admin_config.password:
            logger.warning("Admin login failed: wrong password")
            raise IncorrectPassword("Incorrect Admin Password.")
        if self.store.session_user_id is not None:
            with self.store.batch("users"):
                self._sign_out_player(now)
        self._admin = build_admin(self.admin_config)
        logger.info("Admin logged in")
        return self._admin

    def sign_up(self, email: str, secret: str, name: str, now: datetime) -> User:
        """Create an account and log straight into it.

        Raises:
            ValidationError: malformed email, short password or username.
            DuplicateEmail / DuplicateUsername: case-insensitive clash.
        """
        email = (email or "").strip().lower()
        name = (name or "").strip()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError("Please enter a valid email.")
        _validate_password(secret)
        if len(name) < MIN_USERNAME_LENGTH:
            raise ValidationError(
                f"Username must be at least {MIN_USERNAME_LENGTH} characters."
            )
        if self._is_admin_identifier(email) or self._is_admin_identifier(name):
            raise DuplicateUsername()

        if any(u.email and u.email.lower() == email for u in self.store.users.values()):
            raise DuplicateEmail()
        if any(u.name.lower() == name.lower() for u in self.store.users.values()):
            raise DuplicateUsername()

        user = User(
            id=new_id("user"),
            name=name,
            email=email,
            password=secret,
            is_online=True,
            last_seen=now,
        )
        user.notify(WELCOME_MESSAGE, now, prefix="welcome")

        with self.store.batch("users"):
            self._admin = None
            self._sign_out_player(now)
            self.store.put_user(user)
            self.store.set_session_user(user.id)
        logger.info(f"New account {user.name} ({user.id})")
        return user

    def logout(self, now: datetime) -> None:
        if self._admin is not None:
            self._admin = None
            logger.info("Admin logged out")
            return

        with self.store.batch("users"):
            user = self._sign_out_player(now)
        self._reset_codes.clear()
        if user is not None:
            logger.info(f"{user.name} logged out")

    def _sign_out_player(self, now: datetime) -> User | None:
        """Mark the session's player offline and clear the pointer. Call inside a batch."""
        user = self.store.find_user(self.store.session_user_id)
        if user is not None:
            user.is_online = False
            user.last_seen = now
            self.store.put_user(user)
        if self.store.session_user_id is not None:
            self.store.set_session_user(None)
        return user

    # ------------------------------------------------------------------
    # Auto-login
    # ------------------------------------------------------------------

    def restore(self, now: datetime) -> Notification | None:
        """Resume the saved session if its account still exists.

        Returns an unread system broadcast younger than the popup window,
        to be shown once, or None.
        """
        saved = self.store.load_session_pointer(now)
        if saved is None:
            return None

        user = self.store.find_user(saved.id)
        if user is None:
            logger.info(f"Saved session for {saved.id} no longer matches an account")
            with self.store.batch("users"):
                self.store.set_session_user(None)
            return None

        with self.store.batch("users"):
            user.is_online = True
            self.store.put_user(user)
            self.store.set_session_user(user.id)
        logger.info(f"Restored session for {user.name}")
        return self.pending_broadcast(user, now)

    def pending_broadcast(self, user: User, now: datetime) -> Notification | None:
        window = timedelta(seconds=self.config.popup_window_seconds)
        for notification in user.notifications:
            if (
                not notification.read
                and notification.category == SYSTEM_CATEGORY
                and now - notification.date < window
            ):
                return notification
        return None

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> str:
        """Issue a verification code for an existing email.

        The code is handed back to the caller to display; there is no
        delivery channel.
        """
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Please enter your email.")
        if not any(u.email and u.email.lower() == email for u in self.store.users.values()):
            raise AccountNotFound("Email address not found.")
        code = f"GP-{random.randint(1000, 9999)}"
        self._reset_codes[email] = code
        logger.info(f"Issued password reset code for {email}")
        return code

    def reset_password(self, email: str, code: str, new_password: str) -> User:
        email = (email or "").strip().lower()
        expected = self._reset_codes.get(email)
        if expected is None or (code or "").strip().upper() != expected:
            raise ValidationError("Invalid Verification Code.")
        _validate_password(new_password)

        user = next(
            (u for u in self.store.users.values() if u.email and u.email.lower() == email), None
        )
        if user is None:
            raise AccountNotFound("Email address not found.")
        with self.store.batch("users"):
            user.password = new_password
            self.store.put_user(user)
        del self._reset_codes[email]
        logger.info(f"Password reset for {user.name}")
        return user
