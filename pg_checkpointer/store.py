"""
PostgreSQL Checkpoint Store - durable per-thread checkpoint history.

Stores versioned execution snapshots in a single table keyed by
(thread_id, checkpoint_id) and provides:
1. Point lookup and "latest checkpoint for a thread"
2. Reverse-chronological listing with keyset pagination
3. Idempotent upsert of checkpoint + metadata
4. Lazy, idempotent schema bootstrap

Checkpoint ids are compared as strings: lexicographic order is treated as
chronological order, so callers must generate sortable ids (zero-padded
counters, UUIDv6/v7, ISO timestamps).
"""

import logging
from typing import Any, Iterator, Optional, Union

import psycopg
from psycopg import Connection
from psycopg.rows import dict_row

from . import queries
from .config import PostgresConfig
from .models import CheckpointEntry, CheckpointRef, encode_payload, row_to_entry
from .serde import JsonSerializer, Serializer

logger = logging.getLogger(__name__)


def resolve_before_id(before: Union[CheckpointRef, str, None]) -> Optional[str]:
    """Exclusive upper bound for listing, given as an id or a ref."""
    if isinstance(before, CheckpointRef):
        return before.checkpoint_id
    return before


class CheckpointStore:
    """
    Checkpoint store over a single shared psycopg connection.

    Every operation is a single statement run inside ``conn.transaction()``,
    so writes are committed and a failed statement is rolled back whether or
    not the connection is in autocommit mode. No application-level locks.
    """

    def __init__(
        self,
        conn: Connection,
        serializer: Optional[Serializer] = None,
        table_name: str = queries.DEFAULT_TABLE_NAME,
    ):
        """
        Initialize checkpoint store.

        Args:
            conn: Live psycopg connection (autocommit or not)
            serializer: Payload codec (default: JsonSerializer)
            table_name: Name of the checkpoints table
        """
        self.conn = conn
        self.serializer = serializer or JsonSerializer()
        self.table_name = table_name

        # Per-process bootstrap flag, set only after CREATE TABLE succeeded
        self.is_setup = False
        self._owns_connection = False

    @classmethod
    def connect(
        cls,
        config: Union[PostgresConfig, str, None] = None,
        serializer: Optional[Serializer] = None,
        table_name: Optional[str] = None,
    ) -> "CheckpointStore":
        """
        Open a dedicated connection and build a store that owns it.

        Args:
            config: PostgresConfig or conninfo string (default: PostgresConfig from env)
            serializer: Payload codec (default: JsonSerializer)
            table_name: Overrides ``config.table_name``

        Returns:
            CheckpointStore; close it with ``close()`` or use it as a context manager
        """
        if config is None:
            config = PostgresConfig()

        if isinstance(config, PostgresConfig):
            conninfo = config.resolve_conninfo()
            target = config.describe()
            table_name = table_name or config.table_name
        else:
            conninfo = config
            target = "conninfo"

        try:
            conn = psycopg.connect(conninfo, autocommit=True)
        except Exception as e:
            logger.error(
                f"Database connection failed ({target}): {type(e).__name__}: {e}. "
                f"Check: (1) PostgreSQL is running, (2) credentials are correct, (3) database exists."
            )
            raise

        logger.info(f"Connected to checkpoint database ({target})")

        store = cls(conn, serializer=serializer, table_name=table_name or queries.DEFAULT_TABLE_NAME)
        store._owns_connection = True
        return store

    def ensure_schema(self) -> None:
        """
        Create the checkpoints table if it does not exist.

        Safe to call concurrently from several processes (CREATE TABLE IF NOT
        EXISTS). After the first success the statement is skipped for the
        lifetime of this instance. On failure the error is re-raised and the
        next call retries.
        """
        if self.is_setup:
            return

        try:
            with self.conn.transaction(), self.conn.cursor() as cur:
                cur.execute(queries.create_table(self.table_name))
        except Exception as e:
            logger.error(
                f"Failed to create checkpoint table {self.table_name}: "
                f"{type(e).__name__}: {e}. "
                f"Check: (1) User has CREATE TABLE permission, (2) Database is reachable.",
                exc_info=True
            )
            raise

        self.is_setup = True
        logger.info(f"Checkpoint table ready (table={self.table_name})")

    def get(self, thread_id: str, checkpoint_id: Optional[str] = None) -> Optional[CheckpointEntry]:
        """
        Look up a checkpoint.

        Args:
            thread_id: Thread identifier
            checkpoint_id: Exact checkpoint to fetch; if omitted, the latest
                checkpoint of the thread (highest id) is returned

        Returns:
            Decoded CheckpointEntry, or None if no matching row exists

        Raises:
            CheckpointDecodeError: If a stored payload cannot be deserialized
        """
        self.ensure_schema()

        if checkpoint_id:
            query = queries.select_checkpoint(self.table_name)
            params = (thread_id, checkpoint_id)
        else:
            query = queries.select_latest(self.table_name)
            params = (thread_id,)

        try:
            with self.conn.transaction(), self.conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        except Exception as e:
            logger.error(
                f"Error retrieving checkpoint {thread_id}/{checkpoint_id or 'latest'}: "
                f"{type(e).__name__}: {e}",
                exc_info=True
            )
            raise

        if row is None:
            logger.debug(f"No checkpoint found: thread={thread_id}, checkpoint={checkpoint_id or 'latest'}")
            return None

        return row_to_entry(row, self.serializer)

    def get_latest(self, thread_id: str) -> Optional[CheckpointEntry]:
        """Latest checkpoint of a thread, or None for an unknown thread."""
        return self.get(thread_id)

    def list(
        self,
        thread_id: str,
        limit: Optional[int] = None,
        before: Union[CheckpointRef, str, None] = None,
    ) -> Iterator[CheckpointEntry]:
        """
        Iterate a thread's checkpoints, newest first.

        The query runs when iteration starts; rows are decoded one at a time
        as they are produced. The cursor is closed when iteration finishes,
        fails, or is abandoned.

        Args:
            thread_id: Thread identifier
            limit: Maximum number of entries. Falsy values (None, 0) mean
                no limit.
            before: Exclusive upper bound (checkpoint id or CheckpointRef)
                for keyset pagination

        Yields:
            Decoded CheckpointEntry objects
        """
        self.ensure_schema()

        before_id = resolve_before_id(before)
        query = queries.select_list(
            self.table_name, with_before=before_id is not None, with_limit=bool(limit)
        )

        params = [thread_id]
        if before_id is not None:
            params.append(before_id)
        if limit:
            params.append(limit)

        cur = self.conn.cursor(row_factory=dict_row)
        try:
            # Rows are buffered client-side, so the transaction can end before iteration
            with self.conn.transaction():
                cur.execute(query, params)

            count = 0
            for row in cur:
                yield row_to_entry(row, self.serializer)
                count += 1

            logger.debug(f"Listed {count} checkpoints for thread {thread_id}")
        except Exception as e:
            logger.error(
                f"Error listing checkpoints for thread {thread_id}: {type(e).__name__}: {e}",
                exc_info=True
            )
            raise
        finally:
            cur.close()

    def put(
        self,
        parent_ref: CheckpointRef,
        checkpoint_id: str,
        checkpoint: Any,
        metadata: Any,
    ) -> CheckpointRef:
        """
        Insert a checkpoint, or replace the payloads of an existing one.

        On an identity collision only ``checkpoint`` and ``metadata`` are
        overwritten; the ``parent_id`` recorded by the first write is kept.

        Args:
            parent_ref: Target thread, plus the checkpoint to attach to (optional)
            checkpoint_id: Identity of the new checkpoint
            checkpoint: Checkpoint value (serialized before writing)
            metadata: Metadata value (serialized before writing)

        Returns:
            Reference to the written checkpoint

        Raises:
            CheckpointEncodeError: If a value cannot be serialized (nothing is written)
        """
        self.ensure_schema()

        ref = CheckpointRef(thread_id=parent_ref.thread_id, checkpoint_id=checkpoint_id)
        params = (
            ref.thread_id,
            ref.checkpoint_id,
            parent_ref.checkpoint_id,
            encode_payload(self.serializer, checkpoint, ref, "checkpoint"),
            encode_payload(self.serializer, metadata, ref, "metadata"),
        )

        try:
            with self.conn.transaction(), self.conn.cursor() as cur:
                cur.execute(queries.upsert(self.table_name), params)
        except Exception as e:
            logger.error(
                f"Error saving checkpoint {ref.thread_id}/{ref.checkpoint_id}: {type(e).__name__}: {e}",
                exc_info=True
            )
            raise

        logger.debug(
            f"Checkpoint saved: thread={ref.thread_id}, checkpoint={ref.checkpoint_id}, "
            f"parent={parent_ref.checkpoint_id}"
        )
        return ref

    def close(self) -> None:
        """Close the connection if this store opened it."""
        if self._owns_connection and not self.conn.closed:
            self.conn.close()
            logger.info("Checkpoint store connection closed")

    def __enter__(self) -> "CheckpointStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
