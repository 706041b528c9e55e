#!/usr/bin/env python3
"""Management helpers for bootstrapping the authkit service."""
from __future__ import annotations

import argparse
import secrets
import sys
from pathlib import Path
from typing import Dict, Iterable, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from authkit import database
from authkit.auth.audit import record_audit_event
from authkit.auth.errors import ValidationError
from authkit.auth.models import Role
from authkit.auth.passwords import PasswordHasher
from authkit.auth.repository import AccountRepository
from authkit.auth.service import create_account, init_auth_storage, validate_password
from authkit.config import AuthConfig, settings


def _update_env_file(env_path: Path, updates: Dict[str, str]) -> None:
    lines: List[str]
    if env_path.exists():
        lines = env_path.read_text().splitlines()
    else:
        lines = []

    rendered: List[str] = []
    seen: set[str] = set()
    for line in lines:
        key, sep, _value = line.partition("=")
        stripped_key = key.strip()
        if sep and stripped_key in updates:
            rendered.append(f"{stripped_key}={updates[stripped_key]}")
            seen.add(stripped_key)
        else:
            rendered.append(line)

    for key, value in updates.items():
        if key not in seen:
            rendered.append(f"{key}={value}")

    env_path.write_text("\n".join(rendered) + "\n")


def _command_create_admin(args: argparse.Namespace) -> int:
    config = AuthConfig.from_settings()
    try:
        validate_password(config, args.password)
    except ValidationError as exc:
        print(exc.detail, file=sys.stderr)
        return 2

    init_auth_storage(config)
    hasher = PasswordHasher(config)
    with database.SessionLocal() as session:
        repository = AccountRepository(session)
        existing = repository.find_by_email(args.email)
        if existing:
            if not args.force:
                print(f"Account '{existing.email}' already exists; skipping")
                return 0
            account = repository.save(
                existing.id,
                password_hash=hasher.hash(args.password),
                role=Role.ADMIN,
                is_verified=True,
            )
            record_audit_event(
                session,
                actor=None,
                action="admin_password_rotated",
                summary=f"Promoted and rotated credentials for {account.email}",
                data={"account_id": account.id},
            )
            print(f"Updated existing account '{account.email}' as admin")
            return 0

        account = create_account(
            repository,
            hasher,
            config,
            name=args.name,
            email=args.email,
            password=args.password,
            role=Role.ADMIN,
            is_verified=True,
        )
        record_audit_event(
            session,
            actor=None,
            action="admin_bootstrap",
            summary=f"Created admin {account.email}",
            data={"account_id": account.id},
        )
        print(f"Created admin '{account.email}' (id={account.id})")
        return 0


def _command_rotate_secrets(args: argparse.Namespace) -> int:
    env_path = Path(args.env_file).expanduser().resolve()
    updates = {"SESSION_SECRET": secrets.token_urlsafe(48)}
    env_path.parent.mkdir(parents=True, exist_ok=True)
    _update_env_file(env_path, updates)
    init_auth_storage()
    with database.SessionLocal() as session:
        record_audit_event(
            session,
            actor=None,
            action="secrets_rotated",
            summary="Generated a new session secret",
            data={"env_file": str(env_path), "keys": sorted(updates)},
        )
    print(f"Wrote new secrets to {env_path}; existing sessions end on restart")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--database-url",
        dest="database_url",
        help="Override the account database URL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_admin = subparsers.add_parser(
        "create-admin", help="Create an administrator or promote an existing account",
    )
    create_admin.add_argument("--email", required=True)
    create_admin.add_argument("--password", required=True)
    create_admin.add_argument("--name", default="Administrator")
    create_admin.add_argument(
        "--force",
        action="store_true",
        help="Promote and reset the password if the account already exists",
    )
    create_admin.set_defaults(func=_command_create_admin)

    rotate = subparsers.add_parser(
        "rotate-secrets", help="Generate a new session secret and update the env file",
    )
    rotate.add_argument(
        "--env-file",
        default=".env",
        help="Path to the environment file (default: %(default)s)",
    )
    rotate.set_defaults(func=_command_rotate_secrets)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.database_url:
        database.reset_session_factory(args.database_url)
        settings.AUTH_DB_URL = args.database_url

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
