#!/usr/bin/env python3
"""
IDAM-PAM Platform -- administrative command line.

Usage:
  python main.py generate-keys
  python main.py create-admin --username root --email root@example.com
  python main.py grant-role --username alice --role admin

Environment variables:
  SECRET_KEY, ENCRYPTION_KEY, DATABASE_URL   see core/config.py
"""

from __future__ import annotations

import argparse
import getpass
import secrets
import sys

from sqlalchemy.exc import IntegrityError

from auth.models import Identity
from auth.passwords import CredentialVerifier
from auth.store import ADMIN_ROLE, USER_ROLE, IdentityStore
from core.config import get_settings


def _cmd_generate_keys(args: argparse.Namespace) -> int:
    print(f"SECRET_KEY={secrets.token_hex(32)}")
    print(f"ENCRYPTION_KEY={secrets.token_hex(32)}")
    return 0


def _read_password() -> str:
    password = getpass.getpass("Password: ")
    if not password:
        print("  [!] Password must not be empty.", file=sys.stderr)
        return ""
    if getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.", file=sys.stderr)
        return ""
    return password


def _cmd_create_admin(args: argparse.Namespace, store: IdentityStore) -> int:
    password = _read_password()
    if not password:
        return 1
    identity = Identity(
        username=args.username,
        email=args.email,
        password_hash=CredentialVerifier().hash(password),
    )
    try:
        user_id = store.create_identity(identity)
    except IntegrityError:
        print(f"  [!] User '{args.username}' already exists.", file=sys.stderr)
        return 1
    store.assign_role(user_id, USER_ROLE)
    store.assign_role(user_id, ADMIN_ROLE)
    print(f"  Created admin '{args.username}' ({user_id})")
    return 0


def _cmd_grant_role(args: argparse.Namespace, store: IdentityStore) -> int:
    identity = store.get_by_username(args.username)
    if identity is None:
        print(f"  [!] No such user '{args.username}'.", file=sys.stderr)
        return 1
    try:
        created = store.assign_role(identity.id, args.role)
    except LookupError as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1
    print(f"  {'Granted' if created else 'Already had'} role '{args.role}' for '{args.username}'")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="idampam", description="IDAM-PAM platform administration")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("generate-keys", help="Print fresh SECRET_KEY and ENCRYPTION_KEY values")

    create = sub.add_parser("create-admin", help="Create an identity holding the admin role")
    create.add_argument("--username", required=True)
    create.add_argument("--email", default=None)

    grant = sub.add_parser("grant-role", help="Bind an existing role to an existing identity")
    grant.add_argument("--username", required=True)
    grant.add_argument("--role", required=True)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "generate-keys":
        return _cmd_generate_keys(args)

    store = IdentityStore(get_settings().database_url)
    try:
        if args.command == "create-admin":
            return _cmd_create_admin(args, store)
        return _cmd_grant_role(args, store)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
