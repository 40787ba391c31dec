"""S3-backed blob store for record mirrors.

Mirrors are written as canonical JSON (sorted keys) so re-asserting the
same state produces byte-identical objects.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError
import structlog

from shared.utils.errors import StorageError

from .aws import AwsClients


logger = structlog.get_logger()


def canonical_json(document: Any) -> str:
    """Serialize ``document`` deterministically."""
    return json.dumps(document, sort_keys=True, separators=(",", ":"), default=str)


class S3BlobStore:
    """Blob store writing JSON documents to a single bucket."""

    def __init__(self, bucket: str, clients: AwsClients):
        self.bucket = bucket
        self.clients = clients
        self.logger = structlog.get_logger("s3-blob-store").bind(bucket=bucket)

    async def put_json(self, key: str, document: Any) -> None:
        """Write ``document`` to ``key``."""
        body = canonical_json(document).encode("utf-8")
        try:
            await asyncio.to_thread(
                self.clients.s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType="application/json",
            )
            self.logger.debug("Blob written", key=key, size=len(body))
        except (BotoCoreError, ClientError) as e:
            self.logger.error("S3 put error", error=str(e), key=key)
            raise StorageError(f"Failed to write {key}", operation="put_object", resource=self.bucket) from e

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Read a JSON document, or ``None`` when the key does not exist."""
        try:
            response = await asyncio.to_thread(self.clients.s3.get_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            self.logger.error("S3 get error", error=str(e), key=key)
            raise StorageError(f"Failed to read {key}", operation="get_object", resource=self.bucket) from e
        body = await asyncio.to_thread(response["Body"].read)
        return json.loads(body)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.clients.s3.delete_object, Bucket=self.bucket, Key=key)
            self.logger.debug("Blob deleted", key=key)
        except (BotoCoreError, ClientError) as e:
            self.logger.error("S3 delete error", error=str(e), key=key)
            raise StorageError(f"Failed to delete {key}", operation="delete_object", resource=self.bucket) from e

    async def list_keys(self, prefix: str) -> List[str]:
        """List every key under ``prefix``, following continuation tokens."""
        keys: List[str] = []
        token: Optional[str] = None
        while True:
            kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
            if token:
                kwargs["ContinuationToken"] = token
            try:
                response = await asyncio.to_thread(self.clients.s3.list_objects_v2, **kwargs)
            except (BotoCoreError, ClientError) as e:
                self.logger.error("S3 list error", error=str(e), prefix=prefix)
                raise StorageError(f"Failed to list {prefix}", operation="list_objects_v2", resource=self.bucket) from e

            keys.extend(item["Key"] for item in response.get("Contents", []))
            if not response.get("IsTruncated"):
                return keys
            token = response.get("NextContinuationToken")

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every object under ``prefix`` and return how many were removed."""
        keys = await self.list_keys(prefix)
        for key in keys:
            await self.delete(key)
        self.logger.info("Blob prefix cleared", prefix=prefix, deleted=len(keys))
        return len(keys)
