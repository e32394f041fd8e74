"""
Exception hierarchy for pg_checkpointer.

Database failures (schema bootstrap, reads, upserts) are NOT wrapped: the
psycopg error is logged with operation context and re-raised unchanged so
callers can rely on psycopg's own error classes (e.g. ``psycopg.OperationalError``).
The types below cover failures that originate in this package.

Exception Hierarchy:
    CheckpointerError (base)
    ├── ConfigurationError
    └── SerializationError → CheckpointEncodeError, CheckpointDecodeError

Usage:
    from pg_checkpointer.exceptions import CheckpointDecodeError

    try:
        entry = store.get(thread_id, checkpoint_id)
    except CheckpointDecodeError as e:
        logger.error(f"Stored payload is unreadable: {e} ({e.details})")
"""

from typing import Any, Dict, Optional


class CheckpointerError(Exception):
    """Base exception for all pg_checkpointer errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {type(self.cause).__name__}: {self.cause})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(CheckpointerError):
    """Invalid connection configuration (bad port, unusable conninfo)."""
    pass


# =============================================================================
# Serialization Errors
# =============================================================================

class SerializationError(CheckpointerError):
    """Error passing a value through the injected serializer."""
    pass


class CheckpointEncodeError(SerializationError):
    """Checkpoint or metadata value could not be serialized."""
    pass


class CheckpointDecodeError(SerializationError):
    """Stored checkpoint or metadata payload could not be deserialized."""
    pass
