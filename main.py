#!/usr/bin/env python3
"""
Marketplace auth admin CLI.

Stands in for the approval workflow: the HTTP API never changes a vendor's
status or an account's active flag; operators do it from here.

Usage:
  python main.py vendor-status vendor@example.com approved
  python main.py vendor-status vendor@example.com suspended
  python main.py set-active someone@example.com --inactive
  python main.py create-admin admin@example.com

Environment variables:
  DATABASE_URL          Database to operate on (defaults to the local SQLite file).
  ACCESS_TOKEN_SECRET   Required unless DEBUG=true (settings are validated on start).
  REFRESH_TOKEN_SECRET  Required unless DEBUG=true.
"""

import argparse
import getpass
import sys

from auth.db import create_auth_engine
from auth.errors import DuplicateEmail
from auth.models import Role, User, VendorStatus
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from auth.store import CredentialStore
from core.config import get_settings


def _lookup(store: CredentialStore, email: str) -> User | None:
    user = store.find_by_email(email)
    if user is None:
        print(f"  [!] No account registered for '{email}'.")
    return user


def cmd_vendor_status(store: CredentialStore, args: argparse.Namespace) -> int:
    user = _lookup(store, args.email)
    if user is None:
        return 1
    if user.role is not Role.vendor:
        print(f"  [!] '{user.email}' is a {user.role.value}, not a vendor.")
        return 1
    if not store.set_vendor_status(user.id, args.status):
        print(f"  [!] '{user.email}' has no vendor profile.")
        return 1
    print(f"  {user.email}: vendor status set to {args.status}.")
    return 0


def cmd_set_active(store: CredentialStore, args: argparse.Namespace) -> int:
    user = _lookup(store, args.email)
    if user is None:
        return 1
    store.set_active(user.id, args.active)
    print(f"  {user.email}: {'activated' if args.active else 'deactivated'}.")
    return 0


def cmd_create_admin(store: CredentialStore, args: argparse.Namespace) -> int:
    password = getpass.getpass("  Password: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return 1
    if password != getpass.getpass("  Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1
    hasher = PasswordHasher(rounds=get_settings().bcrypt_rounds)
    user = User(email=args.email, password_hash=hasher.hash(password), role=Role.admin, email_verified=True)
    try:
        with store.engine.begin() as conn:
            created = store.create_user(conn, user)
    except DuplicateEmail:
        print(f"  [!] '{args.email}' is already registered.")
        return 1
    print(f"  Admin {created.email} created (id={created.id}).")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="marketplace-auth",
        description="Operator commands for the marketplace auth store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py vendor-status vendor@example.com approved
  python main.py set-active client@example.com --inactive
  python main.py create-admin admin@example.com
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_status = sub.add_parser("vendor-status", help="Set a vendor's approval status")
    p_status.add_argument("email")
    p_status.add_argument("status", choices=[s.value for s in VendorStatus])
    p_status.set_defaults(func=cmd_vendor_status)

    p_active = sub.add_parser("set-active", help="Activate or deactivate an account")
    p_active.add_argument("email")
    group = p_active.add_mutually_exclusive_group(required=True)
    group.add_argument("--active", dest="active", action="store_true")
    group.add_argument("--inactive", dest="active", action="store_false")
    p_active.set_defaults(func=cmd_set_active)

    p_admin = sub.add_parser("create-admin", help="Create an admin principal (prompts for password)")
    p_admin.add_argument("email")
    p_admin.set_defaults(func=cmd_create_admin)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return

    engine = create_auth_engine(get_settings().database_url)
    try:
        code = args.func(CredentialStore(engine), args)
    finally:
        engine.dispose()
    sys.exit(code)


if __name__ == "__main__":
    main()
