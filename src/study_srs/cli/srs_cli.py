"""
Command-line interface for scheduling-engine maintenance.

This CLI tool connects straight to MongoDB and provides commands for creating the SRS indexes,
repairing error-notebook links and checking connectivity.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from study_srs.database import db_manager
from study_srs.database.srs_indexes import SRS_INDEXES, create_srs_indexes
from study_srs.managers.logging_manager import configure_logging, get_logger
from study_srs.services.error_notebook_service import error_notebook_service
from study_srs.services.exceptions import PartialBatchFailureError

logger = get_logger(prefix="[SRSCLI]")


class SRSCLI:
    """CLI tool for SRS maintenance operations."""

    async def create_indexes(self) -> bool:
        """
        Create every index in `SRS_INDEXES`.

        Returns:
            True if all indexes were applied, False otherwise
        """
        await db_manager.connect()
        try:
            created = await create_srs_indexes()
        finally:
            await db_manager.disconnect()

        logger.info(f"{created}/{len(SRS_INDEXES)} indexes in place")
        return created == len(SRS_INDEXES)

    async def repair_links(self, user_id: Optional[str] = None) -> bool:
        """
        Link every error-notebook entry to its review record.

        Args:
            user_id: Only repair this user's entries (default: all users)

        Returns:
            True if every chunk was written, False otherwise
        """
        await db_manager.connect()
        try:
            report = await error_notebook_service.repair_links(user_id=user_id)
        except PartialBatchFailureError as e:
            logger.error(f"Link repair stopped after {e.processed}/{e.total} entries: {e.cause}")
            return False
        finally:
            await db_manager.disconnect()

        logger.info(
            f"Scanned {report.scanned} entries: {report.already_linked} already linked, "
            f"{report.relinked} relinked, {report.created} records created"
        )
        return True

    async def health(self) -> bool:
        await db_manager.connect()
        try:
            return await db_manager.health_check()
        finally:
            await db_manager.disconnect()


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="study-srs",
        description="Study SRS maintenance CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override DEFAULT_LOG_LEVEL for this run",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("create-indexes", help="Create review record, flashcard and entry indexes")

    repair_parser = subparsers.add_parser("repair-links", help="Repair error-notebook review record links")
    repair_parser.add_argument(
        "--user-id",
        help="Only repair entries of this user (default: all users)",
    )

    subparsers.add_parser("health", help="Ping MongoDB")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(level=args.log_level, force=args.log_level is not None)
    cli = SRSCLI()

    if args.command == "create-indexes":
        success = asyncio.run(cli.create_indexes())
    elif args.command == "repair-links":
        success = asyncio.run(cli.repair_links(user_id=args.user_id))
    elif args.command == "health":
        success = asyncio.run(cli.health())
    else:
        parser.print_help()
        sys.exit(1)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
