#!/usr/bin/env python3
"""
Mirror backfill script.

Rebuilds the Student (or app configuration) mirrors in the data bucket by
replaying every primary row of the data table as a creation event.
"""

import argparse
import asyncio
import sys
from datetime import datetime

import structlog

from shared.framework.config import AwsConfig
from shared.storage import AwsClients, DynamoTable, S3BlobStore
from shared.utils.logging import setup_logging

from services.change_propagation.app.handlers import AppConfigMirrorHandler, StudentMirrorWriter
from services.student_lifecycle.app.backfill import BackfillMode, MirrorBackfill


logger = structlog.get_logger()


async def main():
    """Main entry point."""
    aws = AwsConfig()

    parser = argparse.ArgumentParser(description="Rebuild the blob mirrors from the data table")
    parser.add_argument("--mode", choices=[m.value for m in BackfillMode], default=BackfillMode.STUDENT.value,
                        help="Rows to replay")
    parser.add_argument("--table", default=aws.data_table, help="Data table name")
    parser.add_argument("--bucket", default=aws.data_bucket, help="Mirror bucket name")
    parser.add_argument("--page-limit", type=int, default=10, help="Rows per scan page")
    parser.add_argument("--region", default=aws.region, help="AWS region")
    parser.add_argument("--dry-run", action="store_true", help="Scan and decode only, write nothing")
    parser.add_argument("--log-level", default="info", help="Log level")

    args = parser.parse_args()

    setup_logging("backfill-mirror", log_level=args.log_level, format_type="console")

    if not args.table or not args.bucket:
        logger.error("Both a data table and a bucket are required")
        sys.exit(2)

    started = datetime.now()
    try:
        aws.region = args.region
        clients = AwsClients.from_service_config(aws)
        blobs = S3BlobStore(args.bucket, clients)

        backfill = MirrorBackfill(
            table=DynamoTable(args.table, clients),
            student_mirror=StudentMirrorWriter(blobs),
            app_mirror=AppConfigMirrorHandler(blobs),
            page_limit=args.page_limit,
            dry_run=args.dry_run,
        )
        summary = await backfill.run(BackfillMode(args.mode))

    except Exception as e:
        logger.error("Mirror backfill failed", error=str(e), exc_info=True)
        sys.exit(1)

    runtime = (datetime.now() - started).total_seconds()
    print("\n--- Mirror Backfill Metrics ---")
    print(f"Mode: {summary.mode}{' (dry run)' if args.dry_run else ''}")
    print(f"Pages scanned: {summary.pages}")
    print(f"Rows scanned: {summary.scanned}")
    print(f"Rows replayed: {summary.replayed}")
    print(f"Rows skipped: {summary.skipped}")
    print(f"Rows failed: {len(summary.failures)}")
    print(f"Runtime: {runtime:.2f} seconds")
    print("--- End Metrics ---\n")

    if summary.failures:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
