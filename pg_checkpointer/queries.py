"""
SQL for the checkpoints table.

The table layout is shared with existing deployments and must not change:

    thread_id      TEXT NOT NULL
    checkpoint_id  TEXT NOT NULL
    parent_id      TEXT            -- nullable, never overwritten on conflict
    checkpoint     TEXT            -- serialized payload
    metadata       TEXT            -- serialized payload
    PRIMARY KEY (thread_id, checkpoint_id)

Table names are always composed as identifiers, never interpolated as text.
"""

from psycopg import sql

DEFAULT_TABLE_NAME = "checkpoints"

COLUMNS = ("thread_id", "checkpoint_id", "parent_id", "checkpoint", "metadata")

_CREATE_TABLE = sql.SQL("""
    CREATE TABLE IF NOT EXISTS {table} (
        thread_id TEXT NOT NULL,
        checkpoint_id TEXT NOT NULL,
        parent_id TEXT,
        checkpoint TEXT,
        metadata TEXT,
        PRIMARY KEY (thread_id, checkpoint_id)
    )
""")

_SELECT_CHECKPOINT = sql.SQL("""
    SELECT {columns} FROM {table}
    WHERE thread_id = %s AND checkpoint_id = %s
""")

_SELECT_LATEST = sql.SQL("""
    SELECT {columns} FROM {table}
    WHERE thread_id = %s
    ORDER BY checkpoint_id DESC
    LIMIT 1
""")

_UPSERT = sql.SQL("""
    INSERT INTO {table} (thread_id, checkpoint_id, parent_id, checkpoint, metadata)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (thread_id, checkpoint_id) DO UPDATE
    SET checkpoint = EXCLUDED.checkpoint, metadata = EXCLUDED.metadata
""")


def _columns() -> sql.Composed:
    return sql.SQL(", ").join(sql.Identifier(column) for column in COLUMNS)


def create_table(table_name: str = DEFAULT_TABLE_NAME) -> sql.Composed:
    return _CREATE_TABLE.format(table=sql.Identifier(table_name))


def select_checkpoint(table_name: str = DEFAULT_TABLE_NAME) -> sql.Composed:
    """Exact lookup. Params: (thread_id, checkpoint_id)."""
    return _SELECT_CHECKPOINT.format(columns=_columns(), table=sql.Identifier(table_name))


def select_latest(table_name: str = DEFAULT_TABLE_NAME) -> sql.Composed:
    """Latest checkpoint by id ordering. Params: (thread_id,)."""
    return _SELECT_LATEST.format(columns=_columns(), table=sql.Identifier(table_name))


def select_list(
    table_name: str = DEFAULT_TABLE_NAME,
    with_before: bool = False,
    with_limit: bool = False,
) -> sql.Composed:
    """
    Reverse listing for one thread.

    Params, in order: thread_id, then before (if ``with_before``), then
    limit (if ``with_limit``).
    """
    parts = [
        sql.SQL("SELECT {columns} FROM {table} WHERE thread_id = %s").format(
            columns=_columns(), table=sql.Identifier(table_name)
        )
    ]

    if with_before:
        parts.append(sql.SQL("AND checkpoint_id < %s"))

    parts.append(sql.SQL("ORDER BY checkpoint_id DESC"))

    if with_limit:
        parts.append(sql.SQL("LIMIT %s"))

    return sql.SQL(" ").join(parts)


def upsert(table_name: str = DEFAULT_TABLE_NAME) -> sql.Composed:
    """Insert-or-replace payloads. Params: (thread_id, checkpoint_id, parent_id, checkpoint, metadata)."""
    return _UPSERT.format(table=sql.Identifier(table_name))
