#!/usr/bin/env python3
"""
Auth Service -- signup, login with optional email second factor, and
revocable bearer tokens.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 3000
  python main.py check-config
  python main.py hash-password

Environment variables (or .env):
  JWT_SECRET      Required. Signing key for bearer tokens.
  STORE_BACKEND   memory (default) or sql.
  DATABASE_URL    SQLAlchemy URL used when STORE_BACKEND=sql.
  EMAIL_BACKEND   mock (default) or postmark.
"""

import argparse
import asyncio
import getpass
import sys

from pydantic import ValidationError

from auth.errors import PasswordError
from auth.hashing import PasswordHasher
from auth.models import Password
from core.config import Settings, get_settings


def _load_settings() -> Settings:
    """Load settings or exit with a readable message instead of a traceback."""
    try:
        return get_settings()
    except ValidationError as e:
        print("  [!] Invalid configuration:")
        for err in e.errors():
            print(f"      {err['msg']}")
        sys.exit(2)


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    _load_settings()
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)


def _cmd_check_config(args: argparse.Namespace) -> None:
    settings = _load_settings()
    print("\nAuth Service -- configuration")
    print("-" * 40)
    print(f"  store backend   : {settings.store_backend}")
    if settings.store_backend == "sql":
        print(f"  database url    : {settings.database_url}")
    print(f"  email backend   : {settings.email_backend}")
    print(f"  token ttl       : {settings.token_ttl_seconds}s")
    print(f"  cookie          : {settings.jwt_cookie_name} (secure={settings.secure_cookies})")
    print(
        f"  argon2id        : t={settings.argon2_time_cost} m={settings.argon2_memory_cost}KiB "
        f"p={settings.argon2_parallelism} workers={settings.hash_workers}"
    )
    print("  jwt secret      : set\n")


def _cmd_hash_password(args: argparse.Namespace) -> None:
    """Print an Argon2id hash for a password read from the terminal.

    Useful for seeding the users table by hand. The password is never echoed.
    """
    settings = _load_settings()
    raw = getpass.getpass("Password: ")
    try:
        password = Password.parse(raw)
    except PasswordError as e:
        print(f"  [!] Password rejected: {e.kind.value}")
        sys.exit(1)

    hasher = PasswordHasher(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_cost,
        parallelism=settings.argon2_parallelism,
        max_workers=1,
    )
    try:
        hashed = asyncio.run(hasher.hash(password))
    finally:
        hasher.shutdown()
    print(hashed.value)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Auth Service -- authentication core with email second factor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=3000, help="Bind port (default: 3000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=_cmd_serve)

    check = sub.add_parser("check-config", help="Validate settings and print a summary")
    check.set_defaults(func=_cmd_check_config)

    hash_pw = sub.add_parser("hash-password", help="Print an Argon2id hash for a password")
    hash_pw.set_defaults(func=_cmd_hash_password)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
