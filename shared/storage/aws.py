"""
Process-scoped AWS client handles.

boto3 clients are created lazily on first use and reused for the life of
the process. A single ``AwsClients`` instance is built at startup and
passed to every adapter that needs it.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
import structlog


logger = structlog.get_logger()


@dataclass
class AwsClientConfig:
    """AWS client configuration."""
    region: str
    endpoint_url: Optional[str] = None
    max_attempts: int = 3
    max_pool_connections: int = 50


class AwsClients:
    """Lazily initialized boto3 clients keyed by service name."""

    def __init__(self, config: AwsClientConfig, session: Optional[boto3.session.Session] = None):
        self.config = config
        self._session = session
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_service_config(cls, aws_config) -> "AwsClients":
        return cls(AwsClientConfig(region=aws_config.region, endpoint_url=aws_config.endpoint_url))

    def client(self, service_name: str) -> Any:
        """Return the shared client for ``service_name``, creating it on first use."""
        with self._lock:
            client = self._clients.get(service_name)
            if client is None:
                session = self._session or boto3.session.Session()
                client = session.client(
                    service_name,
                    region_name=self.config.region,
                    endpoint_url=self.config.endpoint_url,
                    config=Config(
                        retries={"max_attempts": self.config.max_attempts, "mode": "standard"},
                        max_pool_connections=self.config.max_pool_connections,
                    ),
                )
                self._clients[service_name] = client
                logger.debug("Created AWS client", service=service_name, region=self.config.region)
            return client

    def register(self, service_name: str, client: Any) -> None:
        """Install a pre-built client, e.g. a stubbed one in tests."""
        with self._lock:
            self._clients[service_name] = client

    @property
    def s3(self) -> Any:
        return self.client("s3")

    @property
    def dynamodb(self) -> Any:
        return self.client("dynamodb")

    @property
    def stepfunctions(self) -> Any:
        return self.client("stepfunctions")
