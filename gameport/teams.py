"""
gameport/teams.py - Team creation, joining and leaving.

A team has 1-4 members with the captain always among them. Creating or
joining costs a fee; leaving never refunds. A captain leaving dissolves
the team and clears every member's team id.
"""

import logging
from datetime import datetime

from . import ledger
from .config import FeesConfig
from .errors import InsufficientBalance, PolicyViolation, TeamFull, ValidationError
from .models import DEFAULT_AVATAR, Team, TeamMember, new_id
from .store import Store

logger = logging.getLogger(__name__)


def create_team(
    store: Store, user_id: str, name: str, avatar: str | None, now: datetime, fees: FeesConfig
) -> Team:
    """Found a team with the user as captain and sole member."""
    user = store.user(user_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Team name is required.")
    if user.team_id and store.find_team(user.team_id) is not None:
        raise PolicyViolation("Leave your current team first.")
    if user.wallet.balance < fees.team_create:
        raise InsufficientBalance(f"Need रू{fees.team_create} to create team")

    member = TeamMember.of(user)
    team = Team(
        id=new_id("team"),
        name=name,
        avatar=avatar or DEFAULT_AVATAR,
        captain=member,
        members=[member],
    )
    with store.batch("users", "teams"):
        ledger.debit(user, fees.team_create, f"Created team {team.name}", now, prefix="tx_team")
        user.team_id = team.id
        store.put_team(team)
        store.put_user(user)

    logger.info(f"{user.name} created team {team.name}")
    return team


def join_team(store: Store, user_id: str, team_id: str, now: datetime, fees: FeesConfig) -> Team:
    user = store.user(user_id)
    team = store.team(team_id)
    if user.id in team.member_ids():
        raise PolicyViolation("You are already in this team.")
    if user.team_id and store.find_team(user.team_id) is not None:
        raise PolicyViolation("Leave your current team first.")
    if team.is_full:
        raise TeamFull()
    if user.wallet.balance < fees.team_join:
        raise InsufficientBalance(f"Need रू{fees.team_join} to join team")

    with store.batch("users", "teams"):
        ledger.debit(user, fees.team_join, f"Joined team {team.name}", now, prefix="tx_team")
        team.members = [*team.members, TeamMember.of(user)]
        user.team_id = team.id
        store.put_team(team)
        store.put_user(user)

    logger.info(f"{user.name} joined team {team.name} ({len(team.members)}/{Team.MAX_MEMBERS})")
    return team


def leave_team(store: Store, user_id: str) -> Team | None:
    """Leave the user's team. Returns the team as it stands afterwards, or
    None if it was dissolved (or the user had no team)."""
    user = store.user(user_id)
    if not user.team_id:
        return None

    team = store.find_team(user.team_id)
    with store.batch("users", "teams"):
        if team is None:
            # Dangling pointer to a team that no longer exists
            user.team_id = None
            store.put_user(user)
            return None

        if team.captain.id == user.id:
            for member_id in team.member_ids():
                member = store.find_user(member_id)
                if member is not None and member.team_id == team.id:
                    member.team_id = None
                    store.put_user(member)
            user.team_id = None
            store.put_user(user)
            store.remove_team(team.id)
            logger.info(f"Captain {user.name} left - team {team.name} dissolved")
            return None

        team.members = [m for m in team.members if m.id != user.id]
        user.team_id = None
        store.put_team(team)
        store.put_user(user)

    logger.info(f"{user.name} left team {team.name}")
    return team

