#!/usr/bin/env python3
"""
Orphaned student scan.

Finds students whose team has no active member and starts the removal
workflow for each of them.
"""

import argparse
import asyncio
import sys
from datetime import datetime

import structlog

from shared.framework.config import AwsConfig
from shared.storage import AwsClients, DynamoTable, StepFunctionsOrchestrator
from shared.utils.logging import setup_logging

from services.student_lifecycle.app.orphans import OrphanScanner


logger = structlog.get_logger()


async def main():
    """Main entry point."""
    aws = AwsConfig()

    parser = argparse.ArgumentParser(description="Start removal for students without an active team")
    parser.add_argument("--student-table", default=aws.student_table, help="Student table name")
    parser.add_argument("--team-table", default=aws.team_table, help="Team table name")
    parser.add_argument("--workflow-arn", default=aws.student_removal_workflow_arn,
                        help="Removal state machine ARN")
    parser.add_argument("--page-limit", type=int, help="Rows per scan page")
    parser.add_argument("--region", default=aws.region, help="AWS region")
    parser.add_argument("--dry-run", action="store_true", help="Report orphans without starting workflows")
    parser.add_argument("--log-level", default="info", help="Log level")

    args = parser.parse_args()

    setup_logging("scan-orphans", log_level=args.log_level, format_type="console")

    if not args.student_table or not args.team_table:
        logger.error("Student and team tables are required")
        sys.exit(2)
    if not args.workflow_arn and not args.dry_run:
        logger.error("A removal workflow ARN is required unless --dry-run is set")
        sys.exit(2)

    started = datetime.now()
    try:
        aws.region = args.region
        clients = AwsClients.from_service_config(aws)

        scanner = OrphanScanner(
            students=DynamoTable(args.student_table, clients),
            team=DynamoTable(args.team_table, clients),
            orchestrator=StepFunctionsOrchestrator(clients),
            workflow_id=args.workflow_arn,
            page_limit=args.page_limit,
            dry_run=args.dry_run,
        )
        summary = await scanner.scan()

    except Exception as e:
        logger.error("Orphan scan failed", error=str(e), exc_info=True)
        sys.exit(1)

    runtime = (datetime.now() - started).total_seconds()
    print("\n--- Orphan Scan Metrics ---")
    print(f"Pages scanned: {summary.pages}")
    print(f"Students scanned: {summary.scanned}")
    print(f"Orphaned students: {len(summary.orphaned)}")
    print(f"Workflows started: {summary.workflows_started}")
    print(f"Failures: {len(summary.failures)}")
    print(f"Runtime: {runtime:.2f} seconds")
    print("--- End Metrics ---\n")

    if summary.failures:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
