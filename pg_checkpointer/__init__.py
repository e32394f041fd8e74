"""PostgreSQL checkpoint store for long-running agent workflows.

Provides durable, per-thread checkpoint history for:
- Workflow resume after interruption
- Branching from any earlier checkpoint (parent references)
- Newest-first history browsing with keyset pagination
- LangGraph checkpointing (PostgresCheckpointSaver)
"""

from .aio import AsyncCheckpointStore
from .config import PostgresConfig
from .exceptions import (
    CheckpointDecodeError,
    CheckpointEncodeError,
    CheckpointerError,
    ConfigurationError,
    SerializationError,
)
from .models import CheckpointEntry, CheckpointRef
from .saver import AsyncPostgresCheckpointSaver, PostgresCheckpointSaver
from .serde import JsonSerializer, LangGraphSerializer, Serializer
from .store import CheckpointStore

__all__ = [
    "CheckpointStore",
    "AsyncCheckpointStore",
    "CheckpointRef",
    "CheckpointEntry",
    "PostgresConfig",
    "Serializer",
    "JsonSerializer",
    "LangGraphSerializer",
    "PostgresCheckpointSaver",
    "AsyncPostgresCheckpointSaver",
    "CheckpointerError",
    "ConfigurationError",
    "SerializationError",
    "CheckpointEncodeError",
    "CheckpointDecodeError",
]
