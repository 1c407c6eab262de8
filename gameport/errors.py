"""
gameport/errors.py - Failure kinds raised by engine operations.

Every error's str() is the short message a screen shows to the player.
Operations raise before mutating anything, so catching one of these
never leaves half-applied state behind.
"""


class GamePortError(Exception):
    """Base for every failure an engine operation can surface."""


# ----------------------------------------------------------------------
# Input / lookup
# ----------------------------------------------------------------------


class ValidationError(GamePortError, ValueError):
    """Malformed input (short password, bad payload)."""


class NotFoundError(GamePortError, KeyError):
    """Unknown account, team, tournament or request."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


# ----------------------------------------------------------------------
# Policy
# ----------------------------------------------------------------------


class PolicyViolation(GamePortError):
    """The request is well-formed but the rules forbid it."""


class InsufficientBalance(PolicyViolation):
    def __init__(self, message: str = "Insufficient balance! Add money to wallet."):
        super().__init__(message)


class AlreadyRegistered(PolicyViolation):
    def __init__(self, message: str = "You are already registered for this tournament."):
        super().__init__(message)


class TeamAlreadyRegistered(AlreadyRegistered):
    def __init__(self, message: str = "Your team is already registered!"):
        super().__init__(message)


class NoTeam(PolicyViolation):
    def __init__(self, message: str = "You must create or join a team first!"):
        super().__init__(message)


class NotCaptain(PolicyViolation):
    def __init__(self, captain_name: str):
        super().__init__(f"Only the Team Captain ({captain_name}) can register for matches.")
        self.captain_name = captain_name


class VipRequiresApproval(PolicyViolation):
    def __init__(self, message: str = "Please submit a request for this VIP Match."):
        super().__init__(message)


class TeamFull(PolicyViolation):
    def __init__(self, message: str = "This team is full."):
        super().__init__(message)


class DuplicateEmail(PolicyViolation):
    def __init__(self, message: str = "Email already registered. Please login."):
        super().__init__(message)


class DuplicateUsername(PolicyViolation):
    def __init__(self, message: str = "Username already taken."):
        super().__init__(message)


class NotPermitted(PolicyViolation):
    """Caller's session lacks the role the operation needs."""


# ----------------------------------------------------------------------
# Authentication
# ----------------------------------------------------------------------


class AuthError(GamePortError):
    """Login failed. No state was touched."""


class AccountNotFound(AuthError, NotFoundError):
    def __init__(self, message: str = "Account not found. Please Sign Up."):
        super().__init__(message)


class IncorrectPassword(AuthError):
    def __init__(self, message: str = "Incorrect Password."):
        super().__init__(message)


class AccountBanned(AuthError):
    def __init__(self, reason: str | None = None):
        self.reason = reason or "Violation of rules"
        super().__init__(f"Account Banned: {self.reason}")


# ----------------------------------------------------------------------
# Storage
# ----------------------------------------------------------------------


class StorageCorruption(GamePortError):
    """A durable document could not be decoded. Recovered, never surfaced."""

    def __init__(self, key: str, detail: str):
        super().__init__(f"Corrupt document {key!r}: {detail}")
        self.key = key
