#!/usr/bin/env python3
"""
PlayPlanet auth -- administrative command line.

Usage:
  python main.py init-permissions
  python main.py create-account alice 'correct horse battery staple'
  python main.py grant alice news.create news.update
  python main.py grant-all alice
  python main.py list-permissions            # the whole catalog
  python main.py list-permissions alice      # what alice holds
  python main.py machine-session news-service
  python main.py revoke alice
  python main.py lock alice
  python main.py unlock alice
  python main.py --db-url sqlite:///other.db list-permissions

machine-session is the only way to mint a machine session; it prints the
Session JSON the client presents as "Authorization: Bearer <id>".

Environment variables are read through core.config (DATABASE_URL,
SESSION_LENGTH_SECONDS, REFRESH_LENGTH_SECONDS, ...).
"""

import argparse
import json
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from api.models import SessionResponse
from auth.authentication import new_account
from auth.models import Account, SessionTarget
from auth.permissions import PERMISSIONS, get_permission, grant_permission, init_permissions, list_permissions
from auth.session import SessionManager
from auth.store import AuthStore
from core.config import get_settings
from core.errors import ApplicationError


def _require_account(store: AuthStore, username: str) -> Account:
    account = store.get_account_by_username(username)
    if account is None:
        raise ApplicationError(f"no account named '{username}'")
    return account


def _cmd_init_permissions(store: AuthStore, args: argparse.Namespace) -> None:
    created = init_permissions(store)
    print(f"  {len(created)} permission record(s) created.")


def _cmd_create_account(store: AuthStore, args: argparse.Namespace) -> None:
    try:
        account = store.create_account(new_account(args.username, args.password))
    except IntegrityError:
        raise ApplicationError(f"username '{args.username}' is already taken") from None
    print(f"  Created {account.id}")


def _cmd_grant(store: AuthStore, args: argparse.Namespace) -> None:
    account = _require_account(store, args.username)
    permissions = [get_permission(name) for name in args.permissions]
    init_permissions(store)
    for permission in permissions:
        state = "granted" if grant_permission(store, account, permission) else "already held"
        print(f"  {permission}: {state}")


def _cmd_grant_all(store: AuthStore, args: argparse.Namespace) -> None:
    account = _require_account(store, args.username)
    init_permissions(store)
    granted = sum(1 for p in PERMISSIONS if grant_permission(store, account, p))
    print(f"  {granted} permission(s) granted to {account.username}.")


def _cmd_list_permissions(store: AuthStore, args: argparse.Namespace) -> None:
    if args.username is None:
        permissions = list(PERMISSIONS)
    else:
        permissions = list_permissions(store, _require_account(store, args.username))
    for permission in permissions:
        print(permission)


def _session_manager(store: AuthStore) -> SessionManager:
    settings = get_settings()
    return SessionManager(
        store,
        session_length=settings.session_length_seconds,
        refresh_length=settings.refresh_length_seconds,
    )


def _cmd_machine_session(store: AuthStore, args: argparse.Namespace) -> None:
    session = _session_manager(store).init(SessionTarget.machine(args.client_id))
    print(json.dumps(SessionResponse.from_session(session).model_dump(by_alias=True), indent=2))


def _cmd_revoke(store: AuthStore, args: argparse.Namespace) -> None:
    account = _require_account(store, args.username)
    _session_manager(store).end_for_target(SessionTarget.human(account.id))
    print(f"  Session of {account.username} ended.")


def _cmd_set_locked(store: AuthStore, args: argparse.Namespace) -> None:
    account = _require_account(store, args.username)
    account.locked = args.command == "lock"
    store.update_account(account)
    print(f"  {account.username} {'locked' if account.locked else 'unlocked'}.")


_COMMANDS = {
    "init-permissions": _cmd_init_permissions,
    "create-account": _cmd_create_account,
    "grant": _cmd_grant,
    "grant-all": _cmd_grant_all,
    "list-permissions": _cmd_list_permissions,
    "machine-session": _cmd_machine_session,
    "revoke": _cmd_revoke,
    "lock": _cmd_set_locked,
    "unlock": _cmd_set_locked,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="PlayPlanet auth administration",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--db-url",
        metavar="URL",
        help="SQLAlchemy database URL (default: settings.database_url)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-permissions", help="Create missing permission records")

    p = sub.add_parser("create-account", help="Create an account with TOTP disabled")
    p.add_argument("username")
    p.add_argument("password")

    p = sub.add_parser("grant", help="Grant one or more permissions to an account")
    p.add_argument("username")
    p.add_argument("permissions", nargs="+", metavar="PERMISSION")

    p = sub.add_parser("grant-all", help="Grant every catalog permission to an account")
    p.add_argument("username")

    p = sub.add_parser("list-permissions", help="List the catalog, or one account's permissions")
    p.add_argument("username", nargs="?")

    p = sub.add_parser("machine-session", help="Start a session for an API client and print it")
    p.add_argument("client_id")

    p = sub.add_parser("revoke", help="End an account's session")
    p.add_argument("username")

    for name in ("lock", "unlock"):
        p = sub.add_parser(name, help=f"{name.capitalize()} an account")
        p.add_argument("username")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    store = AuthStore(args.db_url)
    try:
        _COMMANDS[args.command](store, args)
    except ApplicationError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
