"""
gameport/friends.py - Friend requests and the friend graph.

Requests live on the recipient, keyed by sender id. Friendship is kept
symmetric: accepting and unfriending update both users in one batch.
"""

import logging
from datetime import datetime

from .errors import NotFoundError, PolicyViolation
from .models import FriendRequest, NotificationType, User
from .store import Store

logger = logging.getLogger(__name__)


def are_friends(a: User, b: User) -> bool:
    return b.id in a.friends and a.id in b.friends


def send_request(store: Store, from_id: str, to_id: str, now: datetime) -> bool:
    """Send a friend request. Returns False when it was a no-op
    (already friends, or a request from this sender is already pending)."""
    sender = store.user(from_id)
    target = store.user(to_id)
    if sender.id == target.id:
        raise PolicyViolation("You cannot add yourself.")

    if target.id in sender.friends:
        logger.debug(f"{sender.id} and {target.id} are already friends")
        return False
    if any(r.from_id == sender.id for r in target.friend_requests):
        logger.debug(f"Request {sender.id} -> {target.id} already pending")
        return False

    with store.batch("users"):
        target.friend_requests = [
            *target.friend_requests,
            FriendRequest(
                from_id=sender.id, from_name=sender.name, from_avatar=sender.avatar, date=now
            ),
        ]
        target.notify(f"{sender.name} sent you a friend request.", now, prefix="freq")
        store.put_user(target)
    logger.info(f"Friend request {sender.id} -> {target.id}")
    return True


def accept_request(store: Store, user_id: str, from_id: str, now: datetime) -> User:
    """Accept the pending request from from_id. Both sides gain the edge together."""
    me = store.user(user_id)
    if not any(r.from_id == from_id for r in me.friend_requests):
        raise NotFoundError("Friend request not found.")
    requester = store.find_user(from_id)
    if requester is None:
        raise NotFoundError("User not found. Check Player ID.")

    with store.batch("users"):
        me.friend_requests = [r for r in me.friend_requests if r.from_id != from_id]
        if requester.id not in me.friends:
            me.friends = [*me.friends, requester.id]
        if me.id not in requester.friends:
            requester.friends = [*requester.friends, me.id]
        # A crossed request in the other direction is settled too
        requester.friend_requests = [r for r in requester.friend_requests if r.from_id != me.id]
        requester.notify(
            f"{me.name} accepted your friend request!",
            now,
            type=NotificationType.SUCCESS,
            prefix="facc",
        )
        store.put_user(me)
        store.put_user(requester)
    logger.info(f"{me.id} and {requester.id} are now friends")
    return me


def reject_request(store: Store, user_id: str, from_id: str) -> User:
    me = store.user(user_id)
    with store.batch("users"):
        me.friend_requests = [r for r in me.friend_requests if r.from_id != from_id]
        store.put_user(me)
    return me


def unfriend(store: Store, user_id: str, friend_id: str) -> User:
    """Drop the edge on both sides. If the other user is gone, only our
    side is updated."""
    me = store.user(user_id)
    friend = store.find_user(friend_id)
    with store.batch("users"):
        me.friends = [f for f in me.friends if f != friend_id]
        store.put_user(me)
        if friend is not None:
            friend.friends = [f for f in friend.friends if f != me.id]
            store.put_user(friend)
        else:
            logger.debug(f"Unfriend: {friend_id} no longer exists, updating {me.id} only")
    logger.info(f"{me.id} unfriended {friend_id}")
    return me
