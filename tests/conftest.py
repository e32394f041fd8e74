"""
Shared pytest fixtures for checkpoint store tests.

Provides mock psycopg connections/cursors (sync and async) and row factories.
Integration tests against a real database live in tests/integration and are
skipped unless PG_CHECKPOINTER_TEST_DSN is set.
"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest


# ============================================================================
# Row Fixtures
# ============================================================================

@pytest.fixture
def make_row():
    """Factory for checkpoints table rows with JSON payloads."""
    def _make_row(
        checkpoint_id: str,
        thread_id: str = "thread-1",
        parent_id: Optional[str] = None,
        checkpoint: Any = None,
        metadata: Any = None,
    ) -> Dict[str, Any]:
        return {
            "thread_id": thread_id,
            "checkpoint_id": checkpoint_id,
            "parent_id": parent_id,
            "checkpoint": json.dumps(checkpoint if checkpoint is not None else {"id": checkpoint_id}),
            "metadata": json.dumps(metadata if metadata is not None else {"step": 1}),
        }

    return _make_row


# ============================================================================
# Sync Connection Fixtures
# ============================================================================

@pytest.fixture
def mock_cursor():
    """
    Mock psycopg cursor.

    Usage in tests:
        mock_cursor.fetchone.return_value = row            # get()
        mock_cursor.__iter__.return_value = iter(rows)     # list()
    """
    cursor = MagicMock()
    cursor.__enter__.return_value = cursor
    cursor.__exit__.return_value = False
    cursor.fetchone.return_value = None
    cursor.__iter__.return_value = iter([])
    return cursor


@pytest.fixture
def mock_conn(mock_cursor):
    """Mock autocommit psycopg connection whose cursor() always returns mock_cursor."""
    conn = MagicMock()
    conn.autocommit = True
    conn.closed = False
    conn.cursor.return_value = mock_cursor
    # transaction() block must not swallow errors raised inside it
    conn.transaction.return_value.__exit__.return_value = False
    return conn


@pytest.fixture
def executed_statements():
    """Returns a helper listing all statements passed to cursor.execute, in order."""
    def _executed(cursor) -> List[Any]:
        return [call.args[0] for call in cursor.execute.call_args_list]

    return _executed


# ============================================================================
# Async Connection Fixtures
# ============================================================================

@pytest.fixture
def mock_async_cursor():
    """
    Mock psycopg AsyncCursor.

    Usage in tests:
        mock_async_cursor.fetchone.return_value = row
        mock_async_cursor.__aiter__.return_value = rows
    """
    cursor = MagicMock()
    cursor.__aenter__.return_value = cursor
    cursor.__aexit__.return_value = False
    cursor.execute = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.close = AsyncMock()
    cursor.__aiter__.return_value = []
    return cursor


@pytest.fixture
def mock_async_conn(mock_async_cursor):
    """Mock AsyncConnection whose cursor() always returns mock_async_cursor."""
    conn = MagicMock()
    conn.autocommit = True
    conn.closed = False
    conn.cursor.return_value = mock_async_cursor
    conn.transaction.return_value.__aexit__.return_value = False
    conn.close = AsyncMock()
    return conn
