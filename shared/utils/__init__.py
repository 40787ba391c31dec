"""
Utility modules for change propagation services.

Provides common utilities for:
- Structured logging
- OpenTelemetry tracing
- Error handling
"""

from .logging import setup_logging
from .tracing import setup_tracing
from .errors import (
    PropagationError,
    MalformedEventError,
    PartialPropagationError,
    ConcurrentModificationError,
    StorageError,
    ConfigurationError,
)

__all__ = [
    "setup_logging",
    "setup_tracing",
    "PropagationError",
    "MalformedEventError",
    "PartialPropagationError",
    "ConcurrentModificationError",
    "StorageError",
    "ConfigurationError",
]
