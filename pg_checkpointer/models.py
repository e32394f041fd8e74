"""Checkpoint data models: references, decoded entries and raw table rows."""

from dataclasses import dataclass
from typing import Any, Optional, TypedDict

from .exceptions import CheckpointDecodeError, CheckpointEncodeError
from .serde import Serializer


@dataclass(frozen=True)
class CheckpointRef:
    """
    Identity of a checkpoint within a thread.

    ``checkpoint_id`` is optional: a ref without it addresses the thread as a
    whole (latest lookup, or a ``put`` with no parent).
    """

    thread_id: str
    checkpoint_id: Optional[str] = None


@dataclass(frozen=True)
class CheckpointEntry:
    """A decoded checkpoint together with its resolved identity and parent."""

    ref: CheckpointRef
    checkpoint: Any
    metadata: Any
    parent_ref: Optional[CheckpointRef] = None

    @property
    def thread_id(self) -> str:
        return self.ref.thread_id

    @property
    def checkpoint_id(self) -> Optional[str]:
        return self.ref.checkpoint_id


class CheckpointRow(TypedDict):
    """Row shape of the checkpoints table, as returned by ``dict_row``."""

    thread_id: str
    checkpoint_id: str
    parent_id: Optional[str]
    checkpoint: Optional[str]
    metadata: Optional[str]


def encode_payload(
    serializer: Serializer, value: Any, ref: CheckpointRef, column: str
) -> str:
    """
    Serialize one payload column for ``ref``.

    Raises:
        CheckpointEncodeError: If the serializer rejects the value
    """
    try:
        return serializer.serialize(value)
    except Exception as e:
        raise CheckpointEncodeError(
            f"Failed to serialize {column} for checkpoint {ref.thread_id}/{ref.checkpoint_id}",
            details={
                "thread_id": ref.thread_id,
                "checkpoint_id": ref.checkpoint_id,
                "column": column,
            },
            cause=e,
        ) from e


def _decode(serializer: Serializer, row: CheckpointRow, column: str) -> Any:
    try:
        return serializer.deserialize(row[column])
    except Exception as e:
        raise CheckpointDecodeError(
            f"Failed to deserialize {column} for checkpoint "
            f"{row['thread_id']}/{row['checkpoint_id']}",
            details={
                "thread_id": row["thread_id"],
                "checkpoint_id": row["checkpoint_id"],
                "column": column,
            },
            cause=e,
        ) from e


def row_to_entry(row: CheckpointRow, serializer: Serializer) -> CheckpointEntry:
    """
    Map a table row to a decoded entry.

    Both payload columns are deserialized eagerly. A ``parent_ref`` is only
    attached when ``parent_id`` is set.

    Raises:
        CheckpointDecodeError: If either payload cannot be deserialized
    """
    thread_id = row["thread_id"]
    parent_id = row["parent_id"]

    return CheckpointEntry(
        ref=CheckpointRef(thread_id=thread_id, checkpoint_id=row["checkpoint_id"]),
        checkpoint=_decode(serializer, row, "checkpoint"),
        metadata=_decode(serializer, row, "metadata"),
        parent_ref=CheckpointRef(thread_id=thread_id, checkpoint_id=parent_id) if parent_id else None,
    )
