#!/usr/bin/env python3
"""
Scout portal management CLI -- create members and issue or inspect credentials.

Usage:
  python main.py create-user --email leader@example.org --name "Sam Leader" --role leader --password ...
  python main.py create-user --email dual@example.org --name "Dual" --role parent --flag leader --password ...
  python main.py issue-token leader@example.org
  python main.py verify-token eyJhbGciOi...

Environment variables:
  SECRET_KEY     Required. Signing key for credentials (min 32 characters).
  DATABASE_URL   Optional. SQLAlchemy URL of the user database.
"""

import argparse
import sys

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.roles import ROLES
from auth.store import UserStore
from auth.tokens import TokenAuthenticator, hash_password
from core.config import ConfigurationError, get_settings


def _create_user(args: argparse.Namespace, store: UserStore) -> int:
    flags = {f"is_{name}": True for name in set(args.flag) | {args.role}}
    user = User(
        email=args.email,
        name=args.name,
        role=args.role,
        hashed_password=hash_password(args.password),
        **flags,
    )
    try:
        user_id = store.create_user(user)
    except IntegrityError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    print(user_id)
    return 0


def _issue_token(args: argparse.Namespace, store: UserStore, authenticator: TokenAuthenticator) -> int:
    user = store.get_by_email(args.email)
    if user is None:
        print(f"  [!] No user with email '{args.email}'.")
        return 1
    print(authenticator.issue(user.id))
    return 0


def _verify_token(args: argparse.Namespace, authenticator: TokenAuthenticator) -> int:
    check = authenticator.verify(args.token)
    if not check.valid:
        print("invalid")
        return 1
    print(check.subject)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scoutportal",
        description="Scout portal member and credential management.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a member account")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--role", required=True, choices=ROLES, help="Primary role")
    create.add_argument(
        "--flag",
        action="append",
        default=[],
        choices=ROLES,
        help="Extra capability flag (repeatable), e.g. --flag leader for a parent who leads a group",
    )
    create.add_argument("--password", required=True)

    issue = sub.add_parser("issue-token", help="Print a 24h credential for an existing member")
    issue.add_argument("email")

    verify = sub.add_parser("verify-token", help="Print the subject of a credential, or 'invalid'")
    verify.add_argument("token")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        print(f"  [!] Configuration error: {exc}")
        return 2

    authenticator = TokenAuthenticator.from_settings(settings)
    if args.command == "verify-token":
        return _verify_token(args, authenticator)

    store = UserStore(settings.database_url)
    try:
        if args.command == "create-user":
            return _create_user(args, store)
        return _issue_token(args, store, authenticator)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
