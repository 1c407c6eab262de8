#!/usr/bin/env python3
"""
gameport/cli.py - Operator command line for a GamePort data store

Usage:
    gameport status
    gameport users
    gameport backup
    gameport recover [--force]
    gameport override <auto|online|offline> [--message TEXT]
"""

import argparse
import logging
import sys
from pathlib import Path

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _open_app(args):
    """Load config and start an engine over the configured store."""
    from gameport.app import GamePortApp
    from gameport.config import load_config

    config = load_config(Path(args.config) if args.config else None)
    if args.db:
        config.storage.path = args.db
    if config.storage.path != ":memory:":
        Path(config.storage.path).parent.mkdir(parents=True, exist_ok=True)
    return GamePortApp(config).start(restore_session=False)


def cmd_status(args):
    """Show whether the service is open right now."""
    app = _open_app(args)
    try:
        status = app.system_status()
        availability = app.availability
        print(f"Service: {availability.status.value.upper()} (override: {status.override.value})")
        if availability.next_opening is not None:
            print(f"Opens:   {availability.next_opening:%Y-%m-%d %H:%M %z}")
        if status.message:
            print(f"Message: {status.message}")
    finally:
        app.close()
    return 0


def cmd_users(args):
    """List stored accounts."""
    app = _open_app(args)
    try:
        users = app.list_users()
        if not users:
            print("No users.")
            return 0
        for user in users:
            flags = []
            if user.is_banned:
                flags.append("BANNED")
            if user.team_id:
                flags.append(f"team={user.team_id}")
            extra = f"  [{', '.join(flags)}]" if flags else ""
            print(f"{user.id:<20} {user.name:<20} {user.email or '-':<30} रू{user.wallet.balance}{extra}")
        print(f"\n{len(users)} users")
    finally:
        app.close()
    return 0


def cmd_backup(args):
    """Write a backup snapshot now."""
    app = _open_app(args)
    try:
        if app.run_backup():
            logger.info(f"Backed up {len(app.store.users)} users")
            return 0
        logger.error("Nothing to back up (no users)")
        return 1
    finally:
        app.close()


def cmd_recover(args):
    """Rebuild the user collection from the backup slot."""
    from gameport import backup

    app = _open_app(args)
    try:
        if app.recovered_from_backup:
            logger.info(f"Recovered {len(app.store.users)} users at startup")
            return 0
        if app.store.users and not args.force:
            logger.error(
                f"Primary collection holds {len(app.store.users)} users - use --force to replace it"
            )
            return 1
        users = backup.restore_users(app.documents)
        if not users:
            logger.error("No usable backup snapshot")
            return 1
        with app.store.batch("users"):
            app.store.users = {}
            for user in users:
                app.store.put_user(user)
        logger.info(f"Restored {len(users)} users from backup")
        return 0
    finally:
        app.close()


def cmd_override(args):
    """Force the service open/closed, or hand control back to the clock."""
    from gameport.errors import GamePortError

    app = _open_app(args)
    try:
        app.admin_login(app.config.admin.password)
        availability = app.set_system_override(args.mode, args.message)
        logger.info(f"Override {args.mode}: service is {availability.status.value}")
        return 0
    except GamePortError as e:
        logger.error(str(e))
        return 1
    finally:
        app.close()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="gameport",
        description="Inspect and maintain a GamePort data store",
    )
    parser.add_argument("--config", default=None, help="Config file (default: ~/.gameport/config.toml)")
    parser.add_argument("--db", default=None, help="SQLite store path (overrides config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status", help="Show service availability")
    status_parser.set_defaults(func=cmd_status)

    users_parser = subparsers.add_parser("users", help="List accounts")
    users_parser.set_defaults(func=cmd_users)

    backup_parser = subparsers.add_parser("backup", help="Write a backup snapshot now")
    backup_parser.set_defaults(func=cmd_backup)

    recover_parser = subparsers.add_parser("recover", help="Rebuild users from the backup snapshot")
    recover_parser.add_argument("--force", action="store_true", help="Replace a non-empty user collection")
    recover_parser.set_defaults(func=cmd_recover)

    override_parser = subparsers.add_parser("override", help="Set the availability override")
    override_parser.add_argument("mode", choices=["auto", "online", "offline"])
    override_parser.add_argument("--message", default=None, help="Maintenance message")
    override_parser.set_defaults(func=cmd_override)

    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
