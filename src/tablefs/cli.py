"""Command line entry point.

Usage:
    tablefs migrate SOURCE_STORAGE TARGET_STORAGE [-s FOLDER] [-t FOLDER]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tablefs.fs.dialect import enable_sqlite_foreign_keys
from tablefs.fs.migration import MigrationService

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tablefs.fs.types import MigrationResult

DATABASE_URL_ENV = "TABLEFS_DATABASE_URL"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tablefs", description="Table-backed file storage tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    migrate = commands.add_parser(
        "migrate",
        help="move a folder tree from one storage into another",
        description=(
            "Move all files and folders of the source folder into the target folder. "
            "Source entries are deleted only after the target side has committed."
        ),
    )
    migrate.add_argument("source_storage", type=int, help="uid of the source storage")
    migrate.add_argument("target_storage", type=int, help="uid of the target storage")
    migrate.add_argument(
        "-s", "--source-folder", default=None, help="source folder identifier (default: root)"
    )
    migrate.add_argument(
        "-t", "--target-folder", default=None, help="target folder identifier (default: root)"
    )
    migrate.add_argument(
        "--database-url",
        default=os.environ.get(DATABASE_URL_ENV),
        help=f"SQLAlchemy async database URL (default: ${DATABASE_URL_ENV})",
    )
    return parser


async def _migrate(args: argparse.Namespace) -> MigrationResult:
    engine = create_async_engine(args.database_url, echo=False)
    enable_sqlite_foreign_keys(engine)
    try:
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        service = MigrationService(factory)
        return await service.migrate_folder(
            args.source_storage,
            args.target_storage,
            args.source_folder,
            args.target_folder,
        )
    finally:
        await engine.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.database_url:
        parser.error(f"--database-url is required when ${DATABASE_URL_ENV} is not set")

    result = asyncio.run(_migrate(args))
    if result.success:
        return 0
    for message in result.messages:
        print(message)
    return 1


if __name__ == "__main__":
    sys.exit(main())
