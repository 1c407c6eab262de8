"""
gameport/tournaments.py - Tournament registration and the VIP entry workflow.

Registrant ids: a Solo tournament registers the player's own id, Duo and
Squad tournaments register the player's team id. Direct registration and
VIP completion both go through registrant_for() so they agree.

VIP Big Match tournaments are never joined directly. A player files a
VipJoinRequest, which moves through

    pending -> accepted_waiting_payment -> payment_submitted -> completed
       \\-> rejected

Admins drive every step except payment_submitted, which the player
triggers by handing in payment proof.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from . import ledger
from .errors import (
    AlreadyRegistered,
    NoTeam,
    NotCaptain,
    NotFoundError,
    PolicyViolation,
    TeamAlreadyRegistered,
    ValidationError,
    VipRequiresApproval,
)
from .models import (
    BIG_MATCH_CATEGORY,
    JoinedTournament,
    Mode,
    NotificationType,
    OrganizerRequestDetails,
    RequestStatus,
    Tournament,
    TournamentRequest,
    User,
    VipGameDetails,
    VipJoinRequest,
    VipPersonalDetails,
    VipStatus,
    new_id,
    validate_payload,
)
from .store import Store

logger = logging.getLogger(__name__)

# Admin-driven VIP transitions. payment_submitted is entered only by the player.
VIP_ADMIN_TRANSITIONS: dict[VipStatus, set[VipStatus]] = {
    VipStatus.PENDING: {VipStatus.ACCEPTED_WAITING_PAYMENT, VipStatus.REJECTED},
    VipStatus.ACCEPTED_WAITING_PAYMENT: set(),
    VipStatus.PAYMENT_SUBMITTED: {VipStatus.COMPLETED},
    VipStatus.COMPLETED: set(),
    VipStatus.REJECTED: set(),
}


@dataclass
class PaymentPrompt:
    """What the payment screen asks the player to pay."""

    tournament_id: str
    amount: int
    description: str


def registrant_for(user: User, mode: Mode) -> str | None:
    """The id a registration by this user places in the tournament.

    None when the mode needs a team and the user has none.
    """
    if mode is Mode.SOLO:
        return user.id
    return user.team_id


def _add_registrant(tournament: Tournament, registrant_id: str) -> bool:
    if registrant_id in tournament.registered_team_ids:
        return False
    # Replace the list wholesale; the count is derived from it
    tournament.registered_team_ids = [*tournament.registered_team_ids, registrant_id]
    return True


# ============================================================================
# Direct registration
# ============================================================================


def join_tournament(store: Store, user_id: str, tournament_id: str, now: datetime) -> Tournament:
    """Register a player (Solo) or their team (Duo/Squad) and charge the entry fee.

    Raises:
        VipRequiresApproval: VIP Big Match tournaments go through request_vip_join().
        AlreadyRegistered: the player or their team is already in.
        NoTeam / NotCaptain / TeamAlreadyRegistered: team-mode preconditions.
        InsufficientBalance: wallet does not cover the entry fee.
    """
    user = store.user(user_id)
    tournament = store.tournament(tournament_id)

    if tournament.is_vip:
        raise VipRequiresApproval()

    if user.id in tournament.registered_team_ids or user.has_joined(tournament.id):
        raise AlreadyRegistered()

    if tournament.mode is not Mode.SOLO:
        if not user.team_id:
            raise NoTeam()
        team = store.find_team(user.team_id)
        if team is None:
            raise NotFoundError("Team error. Please leave and rejoin your team.")
        if team.captain.id != user.id:
            raise NotCaptain(team.captain.name)
        if team.id in tournament.registered_team_ids:
            raise TeamAlreadyRegistered()

    registrant_id = registrant_for(user, tournament.mode)
    ledger.ensure_funds(user, tournament.entry_fee)

    with store.batch("users", "tournaments"):
        ledger.debit(user, tournament.entry_fee, f"Joined {tournament.name}", now, prefix="tx_join")
        user.joined_tournaments.append(JoinedTournament(tournament_id=tournament.id))
        _add_registrant(tournament, registrant_id)
        store.put_user(user)
        store.put_tournament(tournament)

    logger.info(
        f"{user.name} joined {tournament.name} as {registrant_id} "
        f"({tournament.registered_teams} registered)"
    )
    return tournament


def create_tournament(
    store: Store,
    name: str,
    category: str,
    mode: Mode | str,
    entry_fee: int,
    start_date: datetime,
    now: datetime,
    game: str = "",
    prize_pool: int = 0,
) -> Tournament:
    if not name or not name.strip():
        raise ValidationError("Tournament name is required.")
    if entry_fee < 0 or prize_pool < 0:
        raise ValidationError("Fees and prizes must not be negative.")
    try:
        mode = Mode(mode)
    except ValueError as e:
        raise ValidationError(f"Unknown mode: {mode}") from e

    tournament = Tournament(
        id=new_id("t"),
        name=name.strip(),
        category=category,
        mode=mode,
        entry_fee=entry_fee,
        start_date=start_date,
        created_at=now,
        game=game,
        prize_pool=prize_pool,
    )
    with store.batch("tournaments"):
        store.put_tournament(tournament)
    logger.info(f"Created tournament {tournament.name} ({tournament.category}, {mode.value})")
    return tournament


# ============================================================================
# VIP workflow
# ============================================================================


def request_vip_join(
    store: Store,
    user_id: str,
    tournament_id: str,
    personal_details: VipPersonalDetails | dict,
    game_details: VipGameDetails | dict,
    proofs: list[str],
    now: datetime,
) -> VipJoinRequest:
    """File a VIP entry request for admin review."""
    user = store.user(user_id)
    tournament = store.tournament(tournament_id)
    if not tournament.is_vip:
        raise PolicyViolation("This tournament does not take VIP requests.")
    if user.has_joined(tournament.id):
        raise AlreadyRegistered()

    personal = validate_payload(VipPersonalDetails, personal_details)
    game = validate_payload(VipGameDetails, game_details)

    for existing in store.vip_requests.values():
        if (
            existing.user_id == user.id
            and existing.tournament_id == tournament.id
            and existing.status is not VipStatus.REJECTED
        ):
            raise PolicyViolation("You already have a request for this match.")

    request = VipJoinRequest(
        id=new_id("vip_req"),
        user_id=user.id,
        tournament_id=tournament.id,
        tournament_name=tournament.name,
        tournament_fee=tournament.entry_fee,
        personal_details=personal,
        game_details=game,
        proofs=[str(p) for p in proofs],
        created_at=now,
    )
    with store.batch("vip_requests"):
        store.put_vip_request(request)
    logger.info(f"VIP request {request.id} from {user.name} for {tournament.name}")
    return request


def update_vip_join_request(
    store: Store, request_id: str, status: VipStatus | str, now: datetime
) -> VipJoinRequest:
    """Admin step of the VIP workflow.

    A request whose player no longer exists still changes status, but
    nobody is notified or registered.
    """
    request = store.vip_requests.get(request_id)
    if request is None:
        raise NotFoundError("Request not found.")
    try:
        status = VipStatus(status)
    except ValueError as e:
        raise ValidationError(f"Unknown request status: {status}") from e
    if status not in VIP_ADMIN_TRANSITIONS[request.status]:
        raise PolicyViolation(
            f"Cannot move request from {request.status.value} to {status.value}."
        )

    user = store.find_user(request.user_id)
    with store.batch("users", "tournaments", "vip_requests"):
        if user is None:
            logger.debug(f"VIP request {request.id}: user {request.user_id} is gone, status only")
        elif status is VipStatus.ACCEPTED_WAITING_PAYMENT:
            user.notify(
                f"Congratulations! Your request for {request.tournament_name} is SELECTED. "
                "Please pay the entry fee to confirm your slot.",
                now,
                type=NotificationType.SUCCESS,
                category=BIG_MATCH_CATEGORY,
                prefix="notif_vip",
            )
            store.put_user(user)
        elif status is VipStatus.COMPLETED:
            _complete_vip_entry(store, request, user, now)

        request.status = status
        store.put_vip_request(request)

    logger.info(f"VIP request {request.id} -> {status.value}")
    return request


def _complete_vip_entry(store: Store, request: VipJoinRequest, user: User, now: datetime) -> None:
    if user.has_joined(request.tournament_id):
        return

    user.joined_tournaments.append(JoinedTournament(tournament_id=request.tournament_id))
    user.notify(
        f"Payment Verified! You have successfully JOINED {request.tournament_name}. Good luck!",
        now,
        type=NotificationType.SUCCESS,
        category=BIG_MATCH_CATEGORY,
        prefix="notif_vip_join",
    )
    store.put_user(user)

    tournament = store.tournaments.get(request.tournament_id)
    if tournament is None:
        logger.warning(f"VIP request {request.id}: tournament {request.tournament_id} is gone")
        return
    registrant_id = registrant_for(user, request.game_details.type) or user.id
    if _add_registrant(tournament, registrant_id):
        store.put_tournament(tournament)


def _payable_request(store: Store, user_id: str, tournament_id: str) -> VipJoinRequest:
    candidates = [
        r for r in store.vip_requests.values()
        if r.user_id == user_id and r.tournament_id == tournament_id
    ]
    if not candidates:
        raise NotFoundError("Request not found.")
    for request in candidates:
        if request.status is VipStatus.ACCEPTED_WAITING_PAYMENT:
            return request
    raise PolicyViolation("This request is not awaiting payment.")


def open_vip_payment(store: Store, user_id: str, tournament_id: str) -> PaymentPrompt:
    """Amount and label for the payment screen of an accepted VIP request."""
    tournament = store.tournament(tournament_id)
    _payable_request(store, user_id, tournament_id)
    return PaymentPrompt(
        tournament_id=tournament.id,
        amount=tournament.entry_fee,
        description=f"Fee for VIP Match: {tournament.name}",
    )


def confirm_vip_payment(
    store: Store, user_id: str, tournament_id: str, proof_url: str
) -> VipJoinRequest:
    """Player hands in payment proof. No money moves until an admin completes it."""
    if not proof_url or not proof_url.strip():
        raise ValidationError("Payment proof is required.")
    request = _payable_request(store, user_id, tournament_id)
    with store.batch("vip_requests"):
        request.status = VipStatus.PAYMENT_SUBMITTED
        request.payment_proof = proof_url.strip()
        store.put_vip_request(request)
    logger.info(f"VIP request {request.id}: payment proof submitted")
    return request


# ============================================================================
# Organizer requests
# ============================================================================


def organize_request(
    store: Store, user_id: str, details: OrganizerRequestDetails | dict, now: datetime
) -> TournamentRequest:
    """A player proposes a tournament for the admin to price and approve."""
    user = store.user(user_id)
    validated = validate_payload(OrganizerRequestDetails, details)
    request = TournamentRequest(
        id=new_id("req"),
        user_id=user.id,
        user_name=user.name,
        details=validated,
        created_at=now,
    )
    with store.batch("tournament_requests"):
        store.put_tournament_request(request)
    logger.info(f"Organizer request {request.id} from {user.name}: {validated.name}")
    return request


def update_tournament_request(
    store: Store, request_id: str, status: RequestStatus | str, admin_fee: int | None = None
) -> TournamentRequest:
    request = store.tournament_requests.get(request_id)
    if request is None:
        raise NotFoundError("Request not found.")
    try:
        status = RequestStatus(status)
    except ValueError as e:
        raise ValidationError(f"Unknown request status: {status}") from e
    if request.status is not RequestStatus.PENDING:
        raise PolicyViolation(f"Request already {request.status.value}.")
    if admin_fee is not None and admin_fee < 0:
        raise ValidationError("Fee must not be negative.")

    with store.batch("tournament_requests"):
        request.status = status
        request.admin_fee = admin_fee
        store.put_tournament_request(request)
    logger.info(f"Organizer request {request.id} -> {status.value} (fee={admin_fee})")
    return request
