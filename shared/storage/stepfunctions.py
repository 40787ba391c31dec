"""Step Functions workflow orchestrator."""

import asyncio
import json
from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError
import structlog

from shared.utils.errors import StorageError

from .aws import AwsClients


logger = structlog.get_logger()


class StepFunctionsOrchestrator:
    """Starts state machine executions."""

    def __init__(self, clients: AwsClients):
        self.clients = clients
        self.logger = structlog.get_logger("stepfunctions")

    async def start(self, workflow_id: str, input: Dict[str, Any]) -> str:
        """Start ``workflow_id`` (a state machine ARN) and return the execution ARN."""
        try:
            response = await asyncio.to_thread(
                self.clients.stepfunctions.start_execution,
                stateMachineArn=workflow_id,
                input=json.dumps(input),
            )
        except (BotoCoreError, ClientError) as e:
            self.logger.error("Workflow start error", error=str(e), workflow=workflow_id)
            raise StorageError("Failed to start workflow", operation="start_execution", resource=workflow_id) from e

        execution_arn = response["executionArn"]
        self.logger.info("Workflow started", workflow=workflow_id, execution=execution_arn)
        return execution_arn
