#!/usr/bin/env python3
"""
Rolegate admin CLI -- bootstrap and maintenance tasks that run without the API.

Usage:
  python main.py seed-roles
  python main.py create-user --name "Ada Admin" --username adaadmin --email ada@example.com --role admin
  python main.py purge-sessions

create-user prompts for the password unless --password is given.

Environment variables:
  DATABASE_URL  Database to operate on (default: auth/rolegate.db).
  SECRET_KEY    Required unless DEBUG=true -- same rules as the API.
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.bootstrap import DEFAULT_ROLE, seed_default_roles
from auth.models import User
from auth.store import RoleStore, SessionStore, UserStore, create_db_engine
from auth.tokens import hash_password
from core.config import get_settings


def _cmd_seed_roles(args: argparse.Namespace, engine) -> int:
    created = seed_default_roles(RoleStore(engine))
    if created:
        print(f"  Created roles: {', '.join(created)}")
    else:
        print("  Default roles already present.")
    return 0


def _cmd_create_user(args: argparse.Namespace, engine) -> int:
    roles = RoleStore(engine)
    users = UserStore(engine)

    names = args.role or [DEFAULT_ROLE]
    found = roles.get_by_names(names)
    missing = sorted(set(names) - {r.name for r in found})
    if missing:
        print(f"  [!] Unknown role(s): {', '.join(missing)}. Run 'seed-roles' or create them first.")
        return 1

    password: Optional[str] = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters long.")
        return 1

    try:
        user_id = users.create_user(
            User(
                name=args.name,
                username=args.username,
                email=args.email,
                hashed_password=hash_password(password),
                role_ids=[r.id for r in found],
                permissions=list(args.permission or []),
            )
        )
    except IntegrityError:
        print("  [!] A user with that username or email already exists.")
        return 1
    print(f"  Created user {args.username} (id={user_id}) with roles: {', '.join(r.name for r in found)}")
    return 0


def _cmd_purge_sessions(args: argparse.Namespace, engine) -> int:
    settings = get_settings()
    removed = SessionStore(engine, ttl_seconds=settings.token_expire_seconds).purge_expired()
    print(f"  Removed {removed} expired session(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rolegate",
        description="Rolegate admin tasks: seed roles, create users, purge expired sessions.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        metavar="URL",
        help="SQLAlchemy database URL (default: DATABASE_URL from the environment)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed-roles", help="Create the default admin and guest roles if missing")
    seed.set_defaults(func=_cmd_seed_roles)

    create = sub.add_parser("create-user", help="Create a user account")
    create.add_argument("--name", required=True)
    create.add_argument("--username", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--password", default=None, help="Read from a prompt when omitted")
    create.add_argument(
        "--role",
        action="append",
        metavar="NAME",
        help=f"Role name; repeat for several (default: {DEFAULT_ROLE})",
    )
    create.add_argument(
        "--permission",
        action="append",
        metavar="PERM",
        help="Direct permission; when any are given they replace the roles' permissions",
    )
    create.set_defaults(func=_cmd_create_user)

    purge = sub.add_parser("purge-sessions", help="Delete session rows older than the token lifetime")
    purge.set_defaults(func=_cmd_purge_sessions)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    engine = create_db_engine(args.database_url or get_settings().database_url)
    try:
        return args.func(args, engine)
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
