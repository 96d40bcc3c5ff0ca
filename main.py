#!/usr/bin/env python3
"""
AuthGate -- operator command line.

Usage:
  python main.py create-user --email admin@example.com --name "Site Admin" --role admin
  python main.py purge-sessions
  python main.py issue-token --email admin@example.com

Configuration comes from the same environment variables / .env file as the
API (JWT_SECRET, DATABASE_URL, ENVIRONMENT, ...). The password for
create-user is read from --password-stdin or prompted for, never taken as a
command-line argument, so it does not end up in shell history.
"""

import argparse
import getpass
import sys

from api.main import build_auth_service
from auth.errors import AuthError
from auth.models import ROLE_USER, ROLES
from auth.store import AuthStore
from auth.validation import normalize_email
from core.config import get_settings


def _read_password(from_stdin: bool) -> str:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise SystemExit("  [!] Passwords do not match.")
    return first


def cmd_create_user(args: argparse.Namespace, store: AuthStore) -> int:
    service = build_auth_service(get_settings(), store)
    password = _read_password(args.password_stdin)
    try:
        user = service.create_user(args.email, password, args.name, role=args.role)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    print(f"  Created {user.role} {user.email} ({user.id})")
    return 0


def cmd_purge_sessions(args: argparse.Namespace, store: AuthStore) -> int:
    removed = store.purge_expired_sessions()
    print(f"  Purged {removed} expired session(s).")
    return 0


def cmd_issue_token(args: argparse.Namespace, store: AuthStore) -> int:
    """Print a fresh access token for an existing user (for smoke tests and scripts)."""
    service = build_auth_service(get_settings(), store)
    user = store.get_user_by_email(normalize_email(args.email))
    if user is None:
        print(f"  [!] No user with email {args.email!r}.")
        return 1
    print(service.codec.issue_access(user))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="authgate", description="AuthGate operator tools.")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a password account with any role.")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--role", choices=sorted(ROLES), default=ROLE_USER)
    create.add_argument("--password-stdin", action="store_true", help="Read the password from stdin.")
    create.set_defaults(handler=cmd_create_user)

    purge = sub.add_parser("purge-sessions", help="Delete expired sessions now.")
    purge.set_defaults(handler=cmd_purge_sessions)

    token = sub.add_parser("issue-token", help="Print an access token for an existing user.")
    token.add_argument("--email", required=True)
    token.set_defaults(handler=cmd_issue_token)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    store = AuthStore(get_settings().database_url)
    try:
        return args.handler(args, store)
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
