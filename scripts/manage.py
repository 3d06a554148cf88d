"""
Maintenance commands for the dokasah database.

    python scripts/manage.py seed-structure kyc forms/kyc.json
    python scripts/manage.py set-role someone@example.com admin
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dokasah.config import get_settings
from dokasah.db import SqlDbClient

logger = logging.getLogger(__name__)

ROLES = ("user", "admin")


def seed_structure(db: SqlDbClient, args: argparse.Namespace) -> int:
    with open(args.path, "r", encoding="utf-8") as f:
        structure = json.load(f)
    if not isinstance(structure, dict):
        logger.error("%s must contain a JSON object", args.path)
        return 1
    db.save_form_structure(args.form_type, structure)
    logger.info("Saved form structure %s from %s", args.form_type, args.path)
    return 0


def set_role(db: SqlDbClient, args: argparse.Namespace) -> int:
    if not db.set_user_role(args.email, args.role):
        logger.error("No user with email %s; they must log in once first", args.email)
        return 1
    logger.info("Set role of %s to %s", args.email, args.role)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Dokasah maintenance commands")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed-structure", help="Create or replace a form template")
    seed.add_argument("form_type", type=str)
    seed.add_argument("path", type=str, help="JSON file with the form structure")
    seed.set_defaults(handler=seed_structure)

    role = sub.add_parser("set-role", help="Change a user's role")
    role.add_argument("email", type=str)
    role.add_argument("role", type=str, choices=ROLES)
    role.set_defaults(handler=set_role)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("DATABASE_URL is not set")
        return 1

    db = SqlDbClient(database_url)
    try:
        return args.handler(db, args)
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
