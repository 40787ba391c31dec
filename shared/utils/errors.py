"""
Custom error classes for change propagation services.

Provides structured error handling with error codes,
context information, and proper exception chaining.
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Error context information."""
    service: str
    operation: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class PropagationError(Exception):
    """Base exception for change propagation errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        result = {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

        if self.context:
            result["context"] = {
                "service": self.context.service,
                "operation": self.context.operation,
                "entity_type": self.context.entity_type,
                "entity_id": self.context.entity_id,
                "correlation_id": self.context.correlation_id,
                "metadata": self.context.metadata,
            }

        return result


class MalformedEventError(PropagationError):
    """Raised when a change envelope cannot be decoded.

    Malformed events are rejected before dispatch and are never retried.
    """

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            context=context,
            details=details or {}
        )
        self.entity_type = entity_type

        if entity_type:
            self.details["entity_type"] = entity_type


class PartialPropagationError(PropagationError):
    """Raised when one or more fan-out targets failed.

    Writes that already succeeded are not rolled back; the next event or a
    backfill run re-converges the projections.
    """

    def __init__(
        self,
        message: str,
        failures: Optional[List[Dict[str, Any]]] = None,
        succeeded: int = 0,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PARTIAL_PROPAGATION",
            context=context,
            details=details or {}
        )
        self.failures = failures or []
        self.succeeded = succeeded

        self.details["failed"] = len(self.failures)
        self.details["succeeded"] = succeeded
        if self.failures:
            self.details["failures"] = self.failures


class ConcurrentModificationError(PropagationError):
    """Raised when a conditional write lost a race with another writer."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONCURRENT_MODIFICATION",
            context=context,
            details=details or {}
        )
        self.key = key

        if key:
            self.details["key"] = key


class StorageError(PropagationError):
    """Error raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        resource: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            context=context,
            details=details or {}
        )
        self.operation = operation
        self.resource = resource

        if operation:
            self.details["operation"] = operation
        if resource:
            self.details["resource"] = resource


class ConfigurationError(PropagationError):
    """Error raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            context=context,
            details=details or {}
        )
        self.config_key = config_key
        self.config_value = config_value

        if config_key:
            self.details["config_key"] = config_key
        if config_value is not None:
            self.details["config_value"] = str(config_value)


def create_error_context(
    service: str,
    operation: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> ErrorContext:
    """Create error context."""
    return ErrorContext(
        service=service,
        operation=operation,
        entity_type=entity_type,
        entity_id=entity_id,
        correlation_id=correlation_id,
        metadata=metadata or {}
    )
