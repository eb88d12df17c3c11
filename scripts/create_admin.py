#!/usr/bin/env python3
"""
Create the first administrator account directly in the database.

Usage:
  python scripts/create_admin.py --email admin@example.com --name "Admin" [--password secret123]

Without --password a random one is generated and printed once.
"""
from __future__ import annotations

import argparse
import secrets
import sys

from accounts_api.core.security import check_password_policy, hash_password
from accounts_api.db import create_all
from accounts_api.domain.policy import Role
from accounts_api.repositories.sql_repository import SQLRepository


def gen_password(length: int = 16) -> str:
    return secrets.token_urlsafe(length)[:length]


def main() -> None:
    ap = argparse.ArgumentParser(description="Create an administrator account")
    ap.add_argument("--email", required=True, help="admin email (unique)")
    ap.add_argument("--name", default="Administrator", help="display name")
    ap.add_argument("--password", help="initial password (default: random)")
    ap.add_argument("--create-tables", action="store_true", help="create the schema first")
    args = ap.parse_args()

    if args.create_tables:
        create_all()

    repo = SQLRepository()
    email = (args.email or "").strip().lower()
    if not email or "@" not in email:
        raise SystemExit("Invalid email")
    if repo.get_user_by_email(email):
        raise SystemExit(f"User '{email}' already exists")

    password = (args.password or "").strip() or gen_password()
    check_password_policy(password)

    user = repo.create_user(args.name.strip() or "Administrator", email, hash_password(password), role=Role.ADMIN.value)
    print("OK: administrator created")
    print(f"  ID: {user.id}")
    print(f"  Email: {email}")
    if not args.password:
        print(f"  Password: {password}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover - CLI usage
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
