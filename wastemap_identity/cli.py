"""Operator command line: serve the API, set up the schema, bootstrap a superadmin.

Usage:
  wastemap-identity serve
  wastemap-identity init-db
  wastemap-identity create-superadmin --email ops@example.org --password s3cret!
  wastemap-identity create-superadmin --email ops@example.org --password s3cret! --promote

Exit codes:
  0 = done
  1 = rejected (validation error or the email is already taken)
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from psycopg_pool import ConnectionPool

from .config import get_settings
from .domain.roles import get_profile
from .domain.service import AccountService
from .errors import IdentityError
from .repository import AccountRepository
from .security.passwords import PasswordHasher

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wastemap-identity", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="run the HTTP API with uvicorn")
    sub.add_parser("init-db", help="create tables and indexes if missing")

    create = sub.add_parser("create-superadmin", help="create the top-tier operator account")
    create.add_argument("--email", required=True)
    create.add_argument("--password", required=True)
    create.add_argument("--name", default="Super Admin")
    create.add_argument("--phone", default="")
    create.add_argument(
        "--promote",
        action="store_true",
        help="upgrade an existing account with this email instead of failing",
    )
    return parser


def create_superadmin(service: AccountService, args: argparse.Namespace) -> int:
    try:
        account = service.bootstrap_superadmin(
            display_name=args.name,
            email=args.email,
            password=args.password,
            phone=args.phone,
            promote=args.promote,
        )
    except IdentityError as exc:
        print(f"[ERROR] {exc.message}", file=sys.stderr)
        if exc.code == "conflict":
            print("use --promote to upgrade the existing account", file=sys.stderr)
        return 1
    print(f"{account.role} ready: {account.email} ({account.account_id})")
    return 0


def main(argv: Sequence[str] | None = None, service: AccountService | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(message)s")

    if args.command == "serve":
        import uvicorn

        uvicorn.run("wastemap_identity.main:app", host=settings.http_host, port=settings.http_port)
        return 0
    if service is not None and args.command == "create-superadmin":
        return create_superadmin(service, args)

    with ConnectionPool(settings.database_url) as pool:
        repository = AccountRepository(pool)
        if args.command == "init-db":
            repository.ensure_schema()
            logger.info("schema ready on %s", pool.name)
            return 0
        service = AccountService(
            repository,
            PasswordHasher(rounds=settings.bcrypt_rounds),
            get_profile(settings.role_profile),
        )
        return create_superadmin(service, args)


if __name__ == "__main__":
    sys.exit(main())
