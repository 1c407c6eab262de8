"""
GamePort - tournament platform engine

Accounts, wallet-funded tournament entry, teams, VIP match approvals and
friends, held in memory and mirrored to a local SQLite store.
"""

__version__ = "0.1.0"

from .app import GamePortApp

from .config import (
    GamePortConfig,
    load_config,
)

from .errors import (
    GamePortError,
    ValidationError,
    NotFoundError,
    PolicyViolation,
    AuthError,
    AccountNotFound,
    IncorrectPassword,
    AccountBanned,
    InsufficientBalance,
    AlreadyRegistered,
    NoTeam,
    NotCaptain,
    VipRequiresApproval,
    TeamFull,
    DuplicateEmail,
    DuplicateUsername,
)

from .models import (
    User,
    Wallet,
    Transaction,
    Tournament,
    Team,
    VipJoinRequest,
    TournamentRequest,
    Mode,
    Override,
    VipStatus,
)

from .scheduler import Availability, ServiceStatus

__all__ = [
    # Version
    "__version__",
    # Engine
    "GamePortApp",
    "GamePortConfig",
    "load_config",
    # Errors
    "GamePortError",
    "ValidationError",
    "NotFoundError",
    "PolicyViolation",
    "AuthError",
    "AccountNotFound",
    "IncorrectPassword",
    "AccountBanned",
    "InsufficientBalance",
    "AlreadyRegistered",
    "NoTeam",
    "NotCaptain",
    "VipRequiresApproval",
    "TeamFull",
    "DuplicateEmail",
    "DuplicateUsername",
    # Records
    "User",
    "Wallet",
    "Transaction",
    "Tournament",
    "Team",
    "VipJoinRequest",
    "TournamentRequest",
    "Mode",
    "Override",
    "VipStatus",
    # Availability
    "Availability",
    "ServiceStatus",
]
