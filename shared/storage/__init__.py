"""
Storage adapters for propagation services.

Provides async wrappers over boto3 for:
- S3 (record mirrors)
- DynamoDB (batch scans and partition queries)
- Step Functions (lifecycle workflows)
"""

from .aws import AwsClients, AwsClientConfig
from .dynamodb import DynamoTable, ScanPage
from .s3 import S3BlobStore, canonical_json
from .stepfunctions import StepFunctionsOrchestrator

__all__ = [
    "AwsClients",
    "AwsClientConfig",
    "DynamoTable",
    "ScanPage",
    "S3BlobStore",
    "canonical_json",
    "StepFunctionsOrchestrator",
]
