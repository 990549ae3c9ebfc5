#!/usr/bin/env python3
"""
MotorGhar auth -- operator CLI for the admin-console user and session store.

Usage:
  python main.py bootstrap-admin
  python main.py create-user --email a@motorghar.com --name "A" --role OWNER
  python main.py set-password --email a@motorghar.com
  python main.py list-sessions --email a@motorghar.com
  python main.py revoke-sessions --email a@motorghar.com
  python main.py reap-sessions
  python main.py unblacklist --token <access token>

Environment variables (see core/config.py for the full list):
  DATABASE_URL    SQLAlchemy URL of the user/session database.
  REDIS_URL       Token blacklist. Required for `unblacklist` to affect a
                  running server; the in-process fallback only lives here.
  ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_NAME
                  Used by bootstrap-admin.
  BCRYPT_ROUNDS   Cost factor for new password hashes (10-15).
"""

import argparse
import getpass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.passwords import MAX_PASSWORD_BYTES, hash_password, password_too_long
from auth.revocation import build_blacklist
from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore
from auth.tokens import decode_unsafe, token_expires_at
from core.config import Settings, get_settings

_MIN_PASSWORD_LENGTH = 8


def _read_password(given: Optional[str]) -> Optional[str]:
    """Return the password from the flag, or prompt twice without echo."""
    if given:
        password = given
    else:
        password = getpass.getpass("  Password: ")
        if getpass.getpass("  Confirm:  ") != password:
            print("  [!] Passwords do not match.")
            return None
    if len(password) < _MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        return None
    if password_too_long(password):
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes (UTF-8).")
        return None
    return password


def _session_manager(settings: Settings) -> tuple[SessionStore, SessionManager]:
    session_store = SessionStore(db_url=settings.database_url)
    return session_store, SessionManager(
        session_store,
        max_sessions_per_user=settings.session_max_per_user,
        session_ttl_seconds=settings.session_ttl_seconds,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_bootstrap_admin(args: argparse.Namespace, settings: Settings) -> int:
    """Create the first ADMIN from ADMIN_* settings. Safe to run repeatedly."""
    if not settings.admin_password:
        print("  [!] ADMIN_PASSWORD is not set.")
        return 1
    if password_too_long(settings.admin_password):
        print(f"  [!] ADMIN_PASSWORD must be at most {MAX_PASSWORD_BYTES} bytes (UTF-8).")
        return 1
    store = UserStore(db_url=settings.database_url)
    try:
        if store.find_by_email(settings.admin_email) is not None:
            print(f"  Admin {settings.admin_email} already exists, nothing to do.")
            return 0
        user_id = store.create_user(
            User(
                email=settings.admin_email,
                name=settings.admin_name,
                password_hash=hash_password(settings.admin_password, settings.bcrypt_rounds),
                role=Role.ADMIN,
            )
        )
        print(f"  Created admin {settings.admin_email} ({user_id}).")
        return 0
    finally:
        store.close()


def cmd_create_user(args: argparse.Namespace, settings: Settings) -> int:
    password = _read_password(args.password)
    if password is None:
        return 1
    store = UserStore(db_url=settings.database_url)
    try:
        user_id = store.create_user(
            User(
                email=args.email,
                name=args.name,
                phone=args.phone,
                password_hash=hash_password(password, settings.bcrypt_rounds),
                role=Role(args.role),
            )
        )
    except IntegrityError:
        print(f"  [!] A user with email {args.email} already exists.")
        return 1
    finally:
        store.close()
    print(f"  Created {args.role} {args.email} ({user_id}).")
    return 0


def cmd_set_password(args: argparse.Namespace, settings: Settings) -> int:
    """Reset a password without knowing the old one, and sign the user out everywhere."""
    store = UserStore(db_url=settings.database_url)
    session_store, manager = _session_manager(settings)
    try:
        user = store.find_by_email(args.email)
        if user is None:
            print(f"  [!] No user with email {args.email}.")
            return 1
        password = _read_password(args.password)
        if password is None:
            return 1
        store.update_password(user.id, hash_password(password, settings.bcrypt_rounds))
        revoked = manager.revoke_all(user.id)
        print(f"  Password updated for {args.email}; {revoked} session(s) revoked.")
        return 0
    finally:
        store.close()
        session_store.close()


def cmd_list_sessions(args: argparse.Namespace, settings: Settings) -> int:
    store = UserStore(db_url=settings.database_url)
    session_store, manager = _session_manager(settings)
    try:
        user = store.find_by_email(args.email)
        if user is None:
            print(f"  [!] No user with email {args.email}.")
            return 1
        sessions = manager.list_active(user.id)
        if not sessions:
            print(f"  No active sessions for {args.email}.")
            return 0
        print(f"  {len(sessions)} active session(s) for {args.email}:")
        for s in sessions:
            print(
                f"    {s.id}  {s.device_info.device_type.value:<8} {s.ip_address:<16}"
                f" created {s.created_at:%Y-%m-%d %H:%M} expires {s.expires_at:%Y-%m-%d %H:%M}"
            )
        return 0
    finally:
        store.close()
        session_store.close()


def cmd_revoke_sessions(args: argparse.Namespace, settings: Settings) -> int:
    store = UserStore(db_url=settings.database_url)
    session_store, manager = _session_manager(settings)
    try:
        user = store.find_by_email(args.email)
        if user is None:
            print(f"  [!] No user with email {args.email}.")
            return 1
        revoked = manager.revoke_all(user.id)
        print(f"  Revoked {revoked} session(s) for {args.email}.")
        return 0
    finally:
        store.close()
        session_store.close()


def cmd_reap_sessions(args: argparse.Namespace, settings: Settings) -> int:
    session_store, manager = _session_manager(settings)
    try:
        count = manager.reap_expired()
    finally:
        session_store.close()
    print(f"  Deleted {count} expired session(s).")
    return 0


def cmd_unblacklist(args: argparse.Namespace, settings: Settings) -> int:
    """Lift a blacklist entry before its TTL runs out."""
    blacklist = build_blacklist(settings)
    try:
        payload = decode_unsafe(args.token)
        expires_at = token_expires_at(args.token)
        if payload is not None:
            print(f"  Token for {payload.email} ({payload.role.value}), expires {expires_at or 'unknown'}.")
        if not blacklist.is_blacklisted(args.token):
            print("  Token is not blacklisted, nothing to do.")
            return 0
        blacklist.remove(args.token)
        print("  Token removed from the blacklist.")
        return 0
    finally:
        blacklist.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="motorghar-auth",
        description="Manage MotorGhar admin-console users, sessions, and token blacklist.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ADMIN_PASSWORD=... python main.py bootstrap-admin
  python main.py create-user --email owner@motorghar.com --name "Dealer One" --role OWNER
  python main.py revoke-sessions --email owner@motorghar.com
  python main.py reap-sessions
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("bootstrap-admin", help="Create the first ADMIN from ADMIN_* settings")
    p.set_defaults(func=cmd_bootstrap_admin)

    p = sub.add_parser("create-user", help="Create an OWNER or ADMIN account")
    p.add_argument("--email", required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--phone", default=None)
    p.add_argument("--role", choices=[r.value for r in Role], default=Role.OWNER.value)
    p.add_argument("--password", default=None, help="Prompted for when omitted")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("set-password", help="Reset a user's password and revoke their sessions")
    p.add_argument("--email", required=True)
    p.add_argument("--password", default=None, help="Prompted for when omitted")
    p.set_defaults(func=cmd_set_password)

    p = sub.add_parser("list-sessions", help="Show a user's active sessions")
    p.add_argument("--email", required=True)
    p.set_defaults(func=cmd_list_sessions)

    p = sub.add_parser("revoke-sessions", help="Revoke every active session of a user")
    p.add_argument("--email", required=True)
    p.set_defaults(func=cmd_revoke_sessions)

    p = sub.add_parser("reap-sessions", help="Delete sessions past their expiry")
    p.set_defaults(func=cmd_reap_sessions)

    p = sub.add_parser("unblacklist", help="Remove an access token from the blacklist")
    p.add_argument("--token", required=True)
    p.set_defaults(func=cmd_unblacklist)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1
    return args.func(args, get_settings())


if __name__ == "__main__":
    raise SystemExit(main())
