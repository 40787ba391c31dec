#!/usr/bin/env python3
"""
Final student removal.

Runs the removal step for one student, the same step the removal
workflow executes for every orphan found by the scan.
"""

import argparse
import asyncio
import inspect
import json
import sys

import structlog

from services.change_propagation.app.config import ChangePropagationConfig
from services.change_propagation.app.main import load_collaborator_factory
from services.student_lifecycle.app.removal import StudentRemovalStep
from shared.storage import AwsClients, DynamoTable, S3BlobStore
from shared.utils.logging import setup_logging


logger = structlog.get_logger()


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Remove an orphaned student and its mirrors")
    parser.add_argument("student_id", help="Student to remove")
    parser.add_argument("--log-level", default="info", help="Log level")

    args = parser.parse_args()

    setup_logging("remove-student", log_level=args.log_level, format_type="console")

    try:
        config = ChangePropagationConfig()
        clients = AwsClients.from_service_config(config.aws)

        collaborators = load_collaborator_factory(config.collaborator_factory)(config, clients)
        if inspect.isawaitable(collaborators):
            collaborators = await collaborators

        step = StudentRemovalStep(
            students=collaborators.students,
            team=DynamoTable(config.aws.team_table, clients),
            blobs=collaborators.blobs or S3BlobStore(config.aws.data_bucket, clients),
        )
        result = await step.run({"studentId": args.student_id})

    except Exception as e:
        logger.error("Student removal failed", error=str(e), student_id=args.student_id, exc_info=True)
        sys.exit(1)

    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
