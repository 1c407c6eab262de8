"""
gameport/backup.py - Auto-recovery snapshots of the user collection.

A periodic copy of every user goes to a secondary slot. If the primary
user document is missing, empty or unreadable at startup, the store
rebuilds users from this copy. Anything written after the last snapshot
is lost; this only covers a clobbered primary slot.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Any

from .errors import StorageCorruption
from .models import User
from .storage import BACKUP_KEY, DocumentStore

logger = logging.getLogger(__name__)


def write_snapshot(documents: DocumentStore, users_document: list[dict[str, Any]]) -> bool:
    """Copy the serialized users into the backup slot.

    Does nothing for an empty collection, so a wiped primary never
    overwrites a good backup. Returns True if a snapshot was written.
    """
    if not users_document:
        logger.debug("No users to back up")
        return False
    try:
        documents.save(BACKUP_KEY, users_document)
    except sqlite3.Error as e:
        logger.warning(f"Backup snapshot failed: {e}")
        return False
    logger.debug(f"Backed up {len(users_document)} users")
    return True


def restore_users(documents: DocumentStore, now: datetime | None = None) -> list[User]:
    """Rehydrate users from the backup slot. Empty list if there is none."""
    try:
        raw = documents.load(BACKUP_KEY)
    except StorageCorruption as e:
        logger.warning(f"{e} - no recovery possible")
        return []
    if not raw:
        return []
    if not isinstance(raw, list):
        logger.warning("Backup slot does not hold a user list - no recovery possible")
        return []

    try:
        users = [User.from_dict(item, now) for item in raw]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Backup snapshot unreadable: {e}")
        return []
    users = [u for u in users if not u.is_admin]
    logger.warning(f"Primary user collection empty - recovered {len(users)} users from backup")
    return users
