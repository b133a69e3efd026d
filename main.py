#!/usr/bin/env python3
"""
Storefront auth -- operator command line.

Usage:
  python main.py migrate-passwords
  python main.py migrate-passwords --dry-run
  python main.py migrate-passwords --database-url sqlite:///path/to/auth.db

Commands:
  migrate-passwords   Find stored passwords that are not bcrypt hashes (rows
                      written before hashing was introduced) and replace each
                      with a bcrypt hash at the configured cost. Rows that
                      already hold a bcrypt hash -- including the cost-10
                      hashes of the first migration -- are left alone.

Environment variables:
  DATABASE_URL    Credential store to migrate (default: auth/storefront_auth.db)
  BCRYPT_ROUNDS   Cost for the new hashes (default: 12)
  DEBUG           Must be true when SECRET_KEY is not set (dev machines)
"""

import argparse
import logging
import sys
from typing import Optional

from auth.passwords import PasswordHasher, fits_bcrypt, is_bcrypt_hash
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("storefront.cli")


def migrate_passwords(store: UserStore, hasher: PasswordHasher, dry_run: bool = False) -> tuple[int, int]:
    """Rehash every plaintext password in store.

    Returns (migrated, skipped). In dry-run mode nothing is written and
    `migrated` counts the rows that would have been rehashed. Plaintexts over
    bcrypt's 72-byte input cannot be hashed faithfully; they are logged,
    left untouched and counted as skipped.
    """
    migrated = 0
    skipped = 0
    for user in store.list_users():
        if is_bcrypt_hash(user.password_hash):
            skipped += 1
            continue
        if not fits_bcrypt(user.password_hash):
            logger.warning("User %s has a stored password over 72 bytes; not migrated", user.id)
            skipped += 1
            continue
        if dry_run:
            print(f"  would migrate {user.email}")
            migrated += 1
            continue
        # The stored value IS the plaintext for unmigrated rows.
        if store.update_by_id(user.id, password_hash=hasher.hash(user.password_hash)):
            print(f"  migrated {user.email}")
            migrated += 1
        else:
            logger.warning("User %s disappeared during migration", user.id)
    return migrated, skipped


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storefront-auth",
        description="Storefront auth -- operator tools for the credential store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    migrate = sub.add_parser(
        "migrate-passwords",
        help="Rehash stored plaintext passwords with bcrypt",
    )
    migrate.add_argument(
        "--dry-run",
        action="store_true",
        help="List the accounts that would be migrated without writing anything",
    )
    migrate.add_argument(
        "--database-url",
        default=None,
        metavar="URL",
        help="SQLAlchemy URL of the credential store (default: DATABASE_URL setting)",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command != "migrate-passwords":
        parser.print_help()
        return 1

    settings = get_settings()
    store = UserStore(db_url=args.database_url or settings.database_url)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)

    print("\nStorefront auth -- password migration")
    print("-" * 40)
    if args.dry_run:
        print("Dry run: no records will be changed.\n")
    try:
        migrated, skipped = migrate_passwords(store, hasher, dry_run=args.dry_run)
    finally:
        store.close()

    verb = "to migrate" if args.dry_run else "migrated"
    print(f"\n{migrated} password(s) {verb}, {skipped} skipped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
