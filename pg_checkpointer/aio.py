"""
Async PostgreSQL Checkpoint Store.

Same table, queries and semantics as ``CheckpointStore``, over a psycopg
``AsyncConnection``. Use this for asyncio applications (astream, ainvoke).
"""

import logging
from typing import Any, AsyncIterator, Optional, Union

import psycopg
from psycopg import AsyncConnection
from psycopg.rows import dict_row

from . import queries
from .config import PostgresConfig
from .models import CheckpointEntry, CheckpointRef, encode_payload, row_to_entry
from .serde import JsonSerializer, Serializer
from .store import resolve_before_id

logger = logging.getLogger(__name__)


class AsyncCheckpointStore:
    """Checkpoint store over a single shared async psycopg connection."""

    def __init__(
        self,
        conn: AsyncConnection,
        serializer: Optional[Serializer] = None,
        table_name: str = queries.DEFAULT_TABLE_NAME,
    ):
        self.conn = conn
        self.serializer = serializer or JsonSerializer()
        self.table_name = table_name
        self.is_setup = False
        self._owns_connection = False

    @classmethod
    async def connect(
        cls,
        config: Union[PostgresConfig, str, None] = None,
        serializer: Optional[Serializer] = None,
        table_name: Optional[str] = None,
    ) -> "AsyncCheckpointStore":
        """
        Open a dedicated async connection and build a store that owns it.

        Args:
            config: PostgresConfig or conninfo string (default: PostgresConfig from env)
            serializer: Payload codec (default: JsonSerializer)
            table_name: Overrides ``config.table_name``
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
            conn = await psycopg.AsyncConnection.connect(conninfo, autocommit=True)
        except Exception as e:
            logger.error(
                f"Database connection failed ({target}): {type(e).__name__}: {e}. "
                f"Check: (1) PostgreSQL is running, (2) credentials are correct, (3) database exists."
            )
            raise

        logger.info(f"Connected to checkpoint database ({target}, async)")

        store = cls(conn, serializer=serializer, table_name=table_name or queries.DEFAULT_TABLE_NAME)
        store._owns_connection = True
        return store

    async def ensure_schema(self) -> None:
        """Create the checkpoints table if needed (once per instance, retried on failure)."""
        if self.is_setup:
            return

        try:
            async with self.conn.transaction(), self.conn.cursor() as cur:
                await cur.execute(queries.create_table(self.table_name))
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

    async def get(self, thread_id: str, checkpoint_id: Optional[str] = None) -> Optional[CheckpointEntry]:
        """Exact lookup when ``checkpoint_id`` is given, otherwise the latest checkpoint."""
        await self.ensure_schema()

        if checkpoint_id:
            query = queries.select_checkpoint(self.table_name)
            params = (thread_id, checkpoint_id)
        else:
            query = queries.select_latest(self.table_name)
            params = (thread_id,)

        try:
            async with self.conn.transaction(), self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, params)
                row = await cur.fetchone()
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

    async def get_latest(self, thread_id: str) -> Optional[CheckpointEntry]:
        return await self.get(thread_id)

    async def list(
        self,
        thread_id: str,
        limit: Optional[int] = None,
        before: Union[CheckpointRef, str, None] = None,
    ) -> AsyncIterator[CheckpointEntry]:
        """
        Iterate a thread's checkpoints, newest first (see ``CheckpointStore.list``).

        Falsy ``limit`` means no limit; ``before`` is an exclusive bound.
        """
        await self.ensure_schema()

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
            async with self.conn.transaction():
                await cur.execute(query, params)

            count = 0
            async for row in cur:
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
            await cur.close()

    async def put(
        self,
        parent_ref: CheckpointRef,
        checkpoint_id: str,
        checkpoint: Any,
        metadata: Any,
    ) -> CheckpointRef:
        """Upsert a checkpoint; ``parent_id`` from the first write is kept on conflict."""
        await self.ensure_schema()

        ref = CheckpointRef(thread_id=parent_ref.thread_id, checkpoint_id=checkpoint_id)
        params = (
            ref.thread_id,
            ref.checkpoint_id,
            parent_ref.checkpoint_id,
            encode_payload(self.serializer, checkpoint, ref, "checkpoint"),
            encode_payload(self.serializer, metadata, ref, "metadata"),
        )

        try:
            async with self.conn.transaction(), self.conn.cursor() as cur:
                await cur.execute(queries.upsert(self.table_name), params)
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

    async def aclose(self) -> None:
        """Close the connection if this store opened it."""
        if self._owns_connection and not self.conn.closed:
            await self.conn.close()
            logger.info("Checkpoint store async connection closed")

    async def __aenter__(self) -> "AsyncCheckpointStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
