"""
gameport/models.py - Records held by the store, and their stored form.

Every record is a plain dataclass linked to others by id only. to_dict()
gives the JSON-ready document; from_dict() rehydrates one, turning ISO
timestamps back into datetimes and defaulting fields that older documents
never had. Documents written by the web client use camelCase
keys, so from_dict() accepts both spellings.

Submission payloads (organizer proposals, VIP entry details) are pydantic
models, validated at the boundary before they reach the store.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import pydantic
from pydantic import BaseModel, Field

from .errors import ValidationError

# Category with its own approval-gated join path
VIP_CATEGORY = "VIP Big Match"
# Notification categories
SYSTEM_CATEGORY = "System"
BIG_MATCH_CATEGORY = "Big Match"

DEFAULT_PASSWORD = "123456"  # stored users that predate the password field
DEFAULT_AVATAR = "https://via.placeholder.com/150"


# ============================================================================
# Enumerations
# ============================================================================


class Role(str, Enum):
    PLAYER = "player"
    ADMIN = "admin"


class KycStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class TxType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TxStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Mode(str, Enum):
    SOLO = "Solo"
    DUO = "Duo"
    SQUAD = "Squad"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED_WAITING_PAYMENT = "accepted_waiting_payment"
    PAYMENT_SUBMITTED = "payment_submitted"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Override(str, Enum):
    AUTO = "auto"
    ONLINE = "online"
    OFFLINE = "offline"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


# ============================================================================
# Rehydration helpers
# ============================================================================


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Opaque record id, e.g. user_3f9a1c2b7d4e."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def parse_datetime(value: Any, default: datetime | None = None) -> datetime | None:
    """Turn a stored timestamp back into an aware datetime.

    Accepts ISO strings (including the trailing "Z" JavaScript writes),
    epoch milliseconds, and datetimes. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value / 1000, timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Not a timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _get(data: dict, key: str, alt: str | None = None, default: Any = None) -> Any:
    """Read a key in snake_case, falling back to the camelCase spelling."""
    if key in data and data[key] is not None:
        return data[key]
    if alt is not None and alt in data and data[alt] is not None:
        return data[alt]
    return default


def _list(data: dict, key: str, alt: str | None = None) -> list:
    value = _get(data, key, alt, [])
    if not isinstance(value, list):
        raise ValueError(f"Expected a list for {key!r}, got {type(value).__name__}")
    return value


def _enum(enum_cls, value: Any, default):
    if value is None:
        return default
    return enum_cls(value)


# ============================================================================
# Wallet
# ============================================================================


@dataclass
class Transaction:
    """One ledger line. Only its status ever changes after creation."""

    id: str
    description: str
    amount: int
    type: TxType
    date: datetime
    status: TxStatus = TxStatus.COMPLETED
    proof_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "amount": self.amount,
            "type": self.type.value,
            "date": format_datetime(self.date),
            "status": self.status.value,
            "proof_url": self.proof_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        return cls(
            id=str(data["id"]),
            description=_get(data, "description", default=""),
            amount=int(_get(data, "amount", default=0)),
            type=TxType(_get(data, "type", default="debit")),
            date=parse_datetime(_get(data, "date"), utcnow()),
            status=_enum(TxStatus, _get(data, "status"), TxStatus.COMPLETED),
            proof_url=_get(data, "proof_url", "screenshotUrl"),
        )


@dataclass
class Wallet:
    balance: int = 0
    transactions: list[Transaction] = field(default_factory=list)  # newest first

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": self.balance,
            "transactions": [t.to_dict() for t in self.transactions],
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "Wallet":
        data = data or {}
        return cls(
            balance=int(_get(data, "balance", default=0)),
            transactions=[Transaction.from_dict(t) for t in _list(data, "transactions")],
        )


# ============================================================================
# User and embedded records
# ============================================================================


@dataclass
class Notification:
    id: str
    message: str
    date: datetime
    read: bool = False
    type: NotificationType = NotificationType.INFO
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "date": format_datetime(self.date),
            "read": self.read,
            "type": self.type.value,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        return cls(
            id=str(data["id"]),
            message=_get(data, "message", default=""),
            date=parse_datetime(_get(data, "date"), utcnow()),
            read=bool(_get(data, "read", default=False)),
            type=_enum(NotificationType, _get(data, "type"), NotificationType.INFO),
            category=_get(data, "category"),
        )


@dataclass
class FriendRequest:
    """Pending inbound request, stored on the recipient."""

    from_id: str
    from_name: str
    from_avatar: str
    date: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_id": self.from_id,
            "from_name": self.from_name,
            "from_avatar": self.from_avatar,
            "date": format_datetime(self.date),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FriendRequest":
        return cls(
            from_id=str(_get(data, "from_id", "fromId")),
            from_name=_get(data, "from_name", "fromName", ""),
            from_avatar=_get(data, "from_avatar", "fromAvatar", ""),
            date=parse_datetime(_get(data, "date"), utcnow()),
        )


@dataclass
class JoinedTournament:
    tournament_id: str
    status: str = "joined"

    def to_dict(self) -> dict[str, Any]:
        return {"tournament_id": self.tournament_id, "status": self.status}

    @classmethod
    def from_dict(cls, data: dict) -> "JoinedTournament":
        return cls(
            tournament_id=str(_get(data, "tournament_id", "tournamentId")),
            status=_get(data, "status", default="joined"),
        )


@dataclass
class KycData:
    full_name: str
    id_number: str
    front_url: str
    back_url: str
    submitted_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "full_name": self.full_name,
            "id_number": self.id_number,
            "front_url": self.front_url,
            "back_url": self.back_url,
            "submitted_at": format_datetime(self.submitted_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KycData":
        return cls(
            full_name=_get(data, "full_name", "fullName", ""),
            id_number=_get(data, "id_number", "idNumber", ""),
            front_url=_get(data, "front_url", "frontUrl", ""),
            back_url=_get(data, "back_url", "backUrl", ""),
            submitted_at=parse_datetime(_get(data, "submitted_at", "submittedAt"), utcnow()),
        )


@dataclass
class User:
    """A player account (or, with role=ADMIN, the in-memory admin identity).

    The password is kept and compared as plain text.
    """

    id: str
    name: str
    email: str | None = None
    password: str = ""
    avatar: str = DEFAULT_AVATAR
    level: int = 1
    coins: int = 0
    wallet: Wallet = field(default_factory=Wallet)
    joined_tournaments: list[JoinedTournament] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)  # newest first
    friends: list[str] = field(default_factory=list)
    friend_requests: list[FriendRequest] = field(default_factory=list)
    team_id: str | None = None
    kyc_status: KycStatus = KycStatus.NONE
    kyc_data: KycData | None = None
    is_banned: bool = False
    ban_reason: str | None = None
    is_online: bool = False
    last_seen: datetime | None = None
    role: Role = Role.PLAYER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def has_joined(self, tournament_id: str) -> bool:
        return any(jt.tournament_id == tournament_id for jt in self.joined_tournaments)

    def notify(
        self,
        message: str,
        now: datetime,
        type: NotificationType = NotificationType.INFO,
        category: str | None = None,
        prefix: str = "notif",
    ) -> Notification:
        """Put a new unread notification at the top of the list."""
        notification = Notification(
            id=new_id(prefix), message=message, date=now, type=type, category=category
        )
        self.notifications.insert(0, notification)
        return notification

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "password": self.password,
            "avatar": self.avatar,
            "level": self.level,
            "coins": self.coins,
            "wallet": self.wallet.to_dict(),
            "joined_tournaments": [jt.to_dict() for jt in self.joined_tournaments],
            "notifications": [n.to_dict() for n in self.notifications],
            "friends": list(self.friends),
            "friend_requests": [r.to_dict() for r in self.friend_requests],
            "team_id": self.team_id,
            "kyc_status": self.kyc_status.value,
            "kyc_data": self.kyc_data.to_dict() if self.kyc_data else None,
            "is_banned": self.is_banned,
            "ban_reason": self.ban_reason,
            "is_online": self.is_online,
            "last_seen": format_datetime(self.last_seen),
            "role": self.role.value,
        }

    @classmethod
    def from_dict(cls, data: dict, loaded_at: datetime | None = None) -> "User":
        """Rehydrate a stored user.

        Loaded users always start offline, last seen at load time; the
        session layer marks the restored account online again.
        """
        password = _get(data, "password")
        kyc_data = _get(data, "kyc_data", "kycData")
        return cls(
            id=str(data["id"]),
            name=_get(data, "name", default=""),
            email=_get(data, "email"),
            password=str(password) if password is not None else DEFAULT_PASSWORD,
            avatar=_get(data, "avatar", default=DEFAULT_AVATAR),
            level=int(_get(data, "level", default=1)),
            coins=int(_get(data, "coins", default=0)),
            wallet=Wallet.from_dict(_get(data, "wallet")),
            joined_tournaments=[
                JoinedTournament.from_dict(jt)
                for jt in _list(data, "joined_tournaments", "joinedTournaments")
            ],
            notifications=[Notification.from_dict(n) for n in _list(data, "notifications")],
            friends=[str(f) for f in _list(data, "friends")],
            friend_requests=[
                FriendRequest.from_dict(r) for r in _list(data, "friend_requests", "friendRequests")
            ],
            team_id=_get(data, "team_id", "teamId"),
            kyc_status=_enum(KycStatus, _get(data, "kyc_status", "kycStatus"), KycStatus.NONE),
            kyc_data=KycData.from_dict(kyc_data) if kyc_data else None,
            is_banned=bool(_get(data, "is_banned", "isBanned", False)),
            ban_reason=_get(data, "ban_reason", "banReason"),
            is_online=False,
            last_seen=loaded_at or utcnow(),
            role=_enum(Role, _get(data, "role"), Role.PLAYER),
        )


# ============================================================================
# Teams and tournaments
# ============================================================================


@dataclass
class TeamMember:
    """Snapshot of a user taken when they joined the roster."""

    id: str
    name: str
    avatar: str = DEFAULT_AVATAR

    @classmethod
    def of(cls, user: User) -> "TeamMember":
        return cls(id=user.id, name=user.name, avatar=user.avatar)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "avatar": self.avatar}

    @classmethod
    def from_dict(cls, data: dict) -> "TeamMember":
        return cls(
            id=str(data["id"]),
            name=_get(data, "name", default=""),
            avatar=_get(data, "avatar", default=DEFAULT_AVATAR),
        )


@dataclass
class Team:
    id: str
    name: str
    captain: TeamMember
    members: list[TeamMember] = field(default_factory=list)  # captain included
    avatar: str = DEFAULT_AVATAR

    MAX_MEMBERS = 4

    def member_ids(self) -> list[str]:
        return [m.id for m in self.members]

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.MAX_MEMBERS

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "captain": self.captain.to_dict(),
            "members": [m.to_dict() for m in self.members],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Team":
        return cls(
            id=str(data["id"]),
            name=_get(data, "name", default=""),
            avatar=_get(data, "avatar", default=DEFAULT_AVATAR),
            captain=TeamMember.from_dict(data["captain"]),
            members=[TeamMember.from_dict(m) for m in _list(data, "members")],
        )


@dataclass
class Tournament:
    """A scheduled event.

    registered_team_ids holds user ids (Solo) or team ids (Duo/Squad).
    The registration count is derived from it, so the two cannot drift.
    """

    id: str
    name: str
    category: str
    mode: Mode
    entry_fee: int
    start_date: datetime
    registered_team_ids: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    game: str = ""
    prize_pool: int = 0

    @property
    def registered_teams(self) -> int:
        return len(self.registered_team_ids)

    @property
    def is_vip(self) -> bool:
        return self.category == VIP_CATEGORY

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "mode": self.mode.value,
            "entry_fee": self.entry_fee,
            "start_date": format_datetime(self.start_date),
            "registered_team_ids": list(self.registered_team_ids),
            "registered_teams": self.registered_teams,
            "created_at": format_datetime(self.created_at),
            "game": self.game,
            "prize_pool": self.prize_pool,
        }

    @classmethod
    def from_dict(cls, data: dict, loaded_at: datetime | None = None) -> "Tournament":
        ids: list[str] = []
        for rid in _list(data, "registered_team_ids", "registeredTeamIds"):
            if str(rid) not in ids:
                ids.append(str(rid))
        return cls(
            id=str(data["id"]),
            name=_get(data, "name", default=""),
            category=_get(data, "category", default=""),
            mode=Mode(_get(data, "mode", default="Solo")),
            entry_fee=int(_get(data, "entry_fee", "entryFee", 0)),
            start_date=parse_datetime(_get(data, "start_date", "startDate"), loaded_at or utcnow()),
            registered_team_ids=ids,
            created_at=parse_datetime(_get(data, "created_at", "createdAt"), loaded_at or utcnow()),
            game=_get(data, "game", default=""),
            prize_pool=int(_get(data, "prize_pool", "prizePool", 0)),
        )


# ============================================================================
# Submission payloads (validated at the boundary)
# ============================================================================


class OrganizerRequestDetails(BaseModel):
    """A player's proposal for a tournament they want to host."""

    name: str = Field(min_length=3)
    game: str = Field(min_length=1)
    mode: Mode = Mode.SOLO
    start_date: datetime
    max_teams: int = Field(default=16, ge=2)
    prize_pool: int = Field(default=0, ge=0)
    notes: str = ""


class VipPersonalDetails(BaseModel):
    full_name: str = Field(min_length=1)
    phone: str = Field(min_length=5)
    email: str | None = None


class VipGameDetails(BaseModel):
    in_game_name: str = Field(min_length=1)
    game_id: str = Field(min_length=1)
    type: Mode = Mode.SOLO
    team_name: str | None = None


def validate_payload(model: type[BaseModel], data: Any) -> BaseModel:
    """Validate a raw submission, turning pydantic failures into ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "invalid value")
        raise ValidationError(f"Invalid {where}: {message}" if where else message) from e


# ============================================================================
# Workflow records
# ============================================================================


@dataclass
class TournamentRequest:
    """Organizer proposal awaiting admin pricing and approval."""

    id: str
    user_id: str
    user_name: str
    details: OrganizerRequestDetails
    status: RequestStatus = RequestStatus.PENDING
    admin_fee: int | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "details": self.details.model_dump(mode="json"),
            "status": self.status.value,
            "admin_fee": self.admin_fee,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TournamentRequest":
        return cls(
            id=str(data["id"]),
            user_id=str(_get(data, "user_id", "userId")),
            user_name=_get(data, "user_name", "userName", ""),
            details=OrganizerRequestDetails.model_validate(
                _get(data, "details", "tournamentDetails", {})
            ),
            status=_enum(RequestStatus, _get(data, "status"), RequestStatus.PENDING),
            admin_fee=_get(data, "admin_fee", "adminFee"),
            created_at=parse_datetime(_get(data, "created_at", "createdAt"), utcnow()),
        )


@dataclass
class VipJoinRequest:
    id: str
    user_id: str
    tournament_id: str
    tournament_name: str
    tournament_fee: int
    personal_details: VipPersonalDetails
    game_details: VipGameDetails
    proofs: list[str] = field(default_factory=list)
    status: VipStatus = VipStatus.PENDING
    payment_proof: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "tournament_id": self.tournament_id,
            "tournament_name": self.tournament_name,
            "tournament_fee": self.tournament_fee,
            "personal_details": self.personal_details.model_dump(mode="json"),
            "game_details": self.game_details.model_dump(mode="json"),
            "proofs": list(self.proofs),
            "status": self.status.value,
            "payment_proof": self.payment_proof,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VipJoinRequest":
        return cls(
            id=str(data["id"]),
            user_id=str(_get(data, "user_id", "userId")),
            tournament_id=str(_get(data, "tournament_id", "tournamentId")),
            tournament_name=_get(data, "tournament_name", "tournamentName", ""),
            tournament_fee=int(_get(data, "tournament_fee", "tournamentFee", 0)),
            personal_details=VipPersonalDetails.model_validate(
                _get(data, "personal_details", "personalDetails", {})
            ),
            game_details=VipGameDetails.model_validate(
                _get(data, "game_details", "gameDetails", {})
            ),
            proofs=[str(p) for p in _list(data, "proofs")],
            status=_enum(VipStatus, _get(data, "status"), VipStatus.PENDING),
            payment_proof=_get(data, "payment_proof", "paymentProof"),
            created_at=parse_datetime(_get(data, "created_at", "createdAt"), utcnow()),
        )


# ============================================================================
# Presentation config
# ============================================================================


@dataclass
class HeroSlide:
    id: str
    image_url: str
    title: str = ""
    subtitle: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "image_url": self.image_url,
            "title": self.title,
            "subtitle": self.subtitle,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HeroSlide":
        return cls(
            id=str(data["id"]),
            image_url=_get(data, "image_url", "imageUrl", ""),
            title=_get(data, "title", default=""),
            subtitle=_get(data, "subtitle", default=""),
        )


@dataclass
class LoginBanner:
    id: str
    image_url: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "image_url": self.image_url}

    @classmethod
    def from_dict(cls, data: dict) -> "LoginBanner":
        return cls(id=str(data["id"]), image_url=_get(data, "image_url", "imageUrl", ""))


@dataclass
class SystemStatusConfig:
    override: Override = Override.AUTO
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"override": self.override.value, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict | None) -> "SystemStatusConfig":
        data = data or {}
        return cls(
            override=_enum(Override, _get(data, "override"), Override.AUTO),
            message=_get(data, "message", default=""),
        )
