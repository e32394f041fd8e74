"""
LangGraph integration - checkpoint savers backed by the checkpoints table.

Exposes CheckpointStore / AsyncCheckpointStore through LangGraph's
BaseCheckpointSaver interface so compiled graphs can persist state:

    with PostgresCheckpointSaver.from_conn_string(conninfo) as saver:
        app = workflow.compile(checkpointer=saver)
        app.invoke(inputs, config={"configurable": {"thread_id": "session_123"}})

Subgraph checkpoints (non-empty ``checkpoint_ns``) are stored under their own
thread key, ``"<thread_id>\\x1f<checkpoint_ns>"``, so they never mix with the
parent thread's history. Pending writes (put_writes) are not persisted; the
table has no columns for them.
"""

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Dict, Iterator, Optional, Sequence, Tuple, Union

import psycopg
from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.base import (
    BaseCheckpointSaver,
    ChannelVersions,
    Checkpoint,
    CheckpointMetadata,
    CheckpointTuple,
)
from langgraph.checkpoint.serde.base import SerializerProtocol
from psycopg import AsyncConnection, Connection

from . import queries
from .aio import AsyncCheckpointStore
from .config import PostgresConfig
from .models import CheckpointEntry, CheckpointRef
from .serde import LangGraphSerializer
from .store import CheckpointStore

logger = logging.getLogger(__name__)

# Joins thread_id and a subgraph namespace into the stored thread key
NS_SEPARATOR = "\x1f"


def _configurable(config: Optional[RunnableConfig]) -> Dict[str, Any]:
    if not config:
        raise ValueError("A config with configurable.thread_id is required")

    configurable = config.get("configurable", {})
    if not configurable.get("thread_id"):
        raise ValueError("Missing configurable.thread_id in checkpoint config")
    return configurable


def storage_thread_id(thread_id: Any, checkpoint_ns: str = "") -> str:
    """Thread key used in the table; the root namespace keeps the plain thread_id."""
    if checkpoint_ns:
        return f"{thread_id}{NS_SEPARATOR}{checkpoint_ns}"
    return thread_id


def _storage_thread_id(configurable: Dict[str, Any]) -> str:
    return storage_thread_id(configurable["thread_id"], configurable.get("checkpoint_ns") or "")


def _to_config(thread_id: Any, checkpoint_id: Optional[str], checkpoint_ns: str = "") -> RunnableConfig:
    return {
        "configurable": {
            "thread_id": thread_id,
            "checkpoint_ns": checkpoint_ns,
            "checkpoint_id": checkpoint_id,
        }
    }


def _parent_ref(config: RunnableConfig) -> CheckpointRef:
    configurable = _configurable(config)
    return CheckpointRef(
        thread_id=_storage_thread_id(configurable),
        checkpoint_id=configurable.get("checkpoint_id"),
    )


def _before_id(before: Optional[RunnableConfig]) -> Optional[str]:
    if not before:
        return None
    return before.get("configurable", {}).get("checkpoint_id")


def _matches(metadata: Any, filter: Optional[Dict[str, Any]]) -> bool:
    if not filter:
        return True
    if not isinstance(metadata, dict):
        return False
    return all(metadata.get(key) == value for key, value in filter.items())


def entry_to_tuple(
    entry: CheckpointEntry,
    checkpoint_ns: str = "",
    config: Optional[RunnableConfig] = None,
    thread_id: Any = None,
) -> CheckpointTuple:
    """
    Map a store entry to a LangGraph CheckpointTuple.

    Args:
        entry: Decoded store entry
        checkpoint_ns: Namespace echoed into the generated configs
        config: Config to return as-is (exact lookups); otherwise built from
            the entry's resolved identity
        thread_id: Caller-facing thread id (default: the entry's stored
            thread key); stored keys of subgraph namespaces are never parsed back
    """
    if thread_id is None:
        thread_id = entry.ref.thread_id

    parent_config = None
    if entry.parent_ref:
        parent_config = _to_config(thread_id, entry.parent_ref.checkpoint_id, checkpoint_ns)

    return CheckpointTuple(
        config=config or _to_config(thread_id, entry.checkpoint_id, checkpoint_ns),
        checkpoint=entry.checkpoint,
        metadata=entry.metadata,
        parent_config=parent_config,
        pending_writes=[],
    )


class PostgresCheckpointSaver(BaseCheckpointSaver):
    """
    Synchronous LangGraph checkpointer.

    Payloads are encoded with the saver's LangGraph serde (JsonPlusSerializer
    by default) and stored as text.

    LIMITATION: pending writes are not persisted (``put_writes`` is a no-op).
    Resuming an interrupted run works, but interrupts raised with
    ``interrupt()`` are not reported back: ``get_state(config).tasks[*].interrupts``
    is always empty, and writes of tasks that finished before a failure are
    re-run instead of replayed.
    """

    def __init__(
        self,
        conn: Connection,
        *,
        serde: Optional[SerializerProtocol] = None,
        table_name: str = queries.DEFAULT_TABLE_NAME,
    ):
        super().__init__(serde=serde)
        self.store = CheckpointStore(
            conn, serializer=LangGraphSerializer(self.serde), table_name=table_name
        )

    @classmethod
    @contextmanager
    def from_conn_string(
        cls,
        conn_string: Union[PostgresConfig, str, None] = None,
        *,
        serde: Optional[SerializerProtocol] = None,
    ) -> Iterator["PostgresCheckpointSaver"]:
        """
        Create a saver with its own connection, closed on exit.

        Args:
            conn_string: Conninfo string or PostgresConfig (default: PostgresConfig from env)
            serde: LangGraph serializer override
        """
        config = conn_string if isinstance(conn_string, PostgresConfig) else None
        if conn_string is None:
            config = PostgresConfig()

        conninfo = config.resolve_conninfo() if config else conn_string
        table_name = config.table_name if config else queries.DEFAULT_TABLE_NAME

        with psycopg.connect(conninfo, autocommit=True) as conn:
            logger.info("PostgresCheckpointSaver connected")
            yield cls(conn, serde=serde, table_name=table_name)

    def setup(self) -> None:
        """Create the checkpoints table (normally done lazily on first use)."""
        self.store.ensure_schema()

    def get_tuple(self, config: RunnableConfig) -> Optional[CheckpointTuple]:
        configurable = _configurable(config)
        checkpoint_id = configurable.get("checkpoint_id")

        entry = self.store.get(_storage_thread_id(configurable), checkpoint_id)
        if entry is None:
            return None

        # Exact lookups echo the caller's config; latest lookups report the resolved id
        return entry_to_tuple(
            entry,
            checkpoint_ns=configurable.get("checkpoint_ns", ""),
            config=config if checkpoint_id else None,
            thread_id=configurable["thread_id"],
        )

    def list(
        self,
        config: Optional[RunnableConfig],
        *,
        filter: Optional[Dict[str, Any]] = None,
        before: Optional[RunnableConfig] = None,
        limit: Optional[int] = None,
    ) -> Iterator[CheckpointTuple]:
        """
        List checkpoints of one thread, newest first.

        ``filter`` is matched against decoded metadata in Python (the column
        is opaque), so ``limit`` is applied after filtering.
        """
        configurable = _configurable(config)
        checkpoint_ns = configurable.get("checkpoint_ns", "")

        entries = self.store.list(
            _storage_thread_id(configurable),
            limit=None if filter else limit,
            before=_before_id(before),
        )

        produced = 0
        try:
            for entry in entries:
                if not _matches(entry.metadata, filter):
                    continue
                yield entry_to_tuple(entry, checkpoint_ns=checkpoint_ns, thread_id=configurable["thread_id"])
                produced += 1
                if filter and limit and produced >= limit:
                    break
        finally:
            entries.close()

    def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        new_versions: ChannelVersions,
    ) -> RunnableConfig:
        ref = self.store.put(_parent_ref(config), checkpoint["id"], checkpoint, metadata)
        configurable = config["configurable"]
        return _to_config(configurable["thread_id"], ref.checkpoint_id, configurable.get("checkpoint_ns", ""))

    def put_writes(
        self,
        config: RunnableConfig,
        writes: Sequence[Tuple[str, Any]],
        task_id: str,
        task_path: str = "",
    ) -> None:
        logger.debug(f"Pending writes are not persisted (task={task_id}, writes={len(writes)})")


class AsyncPostgresCheckpointSaver(BaseCheckpointSaver):
    """
    Asynchronous LangGraph checkpointer.

    IMPORTANT: Use this for async workflows (astream, ainvoke). Sync methods
    are not implemented.

    LIMITATION: as with ``PostgresCheckpointSaver``, pending writes are not
    persisted, so ``(await aget_state(config)).tasks[*].interrupts`` is always
    empty after an ``interrupt()``.
    """

    def __init__(
        self,
        conn: AsyncConnection,
        *,
        serde: Optional[SerializerProtocol] = None,
        table_name: str = queries.DEFAULT_TABLE_NAME,
    ):
        super().__init__(serde=serde)
        self.store = AsyncCheckpointStore(
            conn, serializer=LangGraphSerializer(self.serde), table_name=table_name
        )

    @classmethod
    @asynccontextmanager
    async def from_conn_string(
        cls,
        conn_string: Union[PostgresConfig, str, None] = None,
        *,
        serde: Optional[SerializerProtocol] = None,
    ) -> AsyncIterator["AsyncPostgresCheckpointSaver"]:
        """Create a saver with its own async connection, closed on exit."""
        config = conn_string if isinstance(conn_string, PostgresConfig) else None
        if conn_string is None:
            config = PostgresConfig()

        conninfo = config.resolve_conninfo() if config else conn_string
        table_name = config.table_name if config else queries.DEFAULT_TABLE_NAME

        async with await psycopg.AsyncConnection.connect(conninfo, autocommit=True) as conn:
            logger.info("AsyncPostgresCheckpointSaver connected")
            yield cls(conn, serde=serde, table_name=table_name)

    async def setup(self) -> None:
        await self.store.ensure_schema()

    async def aget_tuple(self, config: RunnableConfig) -> Optional[CheckpointTuple]:
        configurable = _configurable(config)
        checkpoint_id = configurable.get("checkpoint_id")

        entry = await self.store.get(_storage_thread_id(configurable), checkpoint_id)
        if entry is None:
            return None

        return entry_to_tuple(
            entry,
            checkpoint_ns=configurable.get("checkpoint_ns", ""),
            config=config if checkpoint_id else None,
            thread_id=configurable["thread_id"],
        )

    async def alist(
        self,
        config: Optional[RunnableConfig],
        *,
        filter: Optional[Dict[str, Any]] = None,
        before: Optional[RunnableConfig] = None,
        limit: Optional[int] = None,
    ) -> AsyncIterator[CheckpointTuple]:
        configurable = _configurable(config)
        checkpoint_ns = configurable.get("checkpoint_ns", "")

        entries = self.store.list(
            _storage_thread_id(configurable),
            limit=None if filter else limit,
            before=_before_id(before),
        )

        produced = 0
        try:
            async for entry in entries:
                if not _matches(entry.metadata, filter):
                    continue
                yield entry_to_tuple(entry, checkpoint_ns=checkpoint_ns, thread_id=configurable["thread_id"])
                produced += 1
                if filter and limit and produced >= limit:
                    break
        finally:
            await entries.aclose()

    async def aput(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        new_versions: ChannelVersions,
    ) -> RunnableConfig:
        ref = await self.store.put(_parent_ref(config), checkpoint["id"], checkpoint, metadata)
        configurable = config["configurable"]
        return _to_config(configurable["thread_id"], ref.checkpoint_id, configurable.get("checkpoint_ns", ""))

    async def aput_writes(
        self,
        config: RunnableConfig,
        writes: Sequence[Tuple[str, Any]],
        task_id: str,
        task_path: str = "",
    ) -> None:
        logger.debug(f"Pending writes are not persisted (task={task_id}, writes={len(writes)})")
