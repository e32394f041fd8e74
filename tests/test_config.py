"""
Tests for PostgresConfig environment resolution.

Precedence per field: explicit value → DB_* → PG* → default.
"""

import pytest

from pg_checkpointer.config import PostgresConfig
from pg_checkpointer.exceptions import ConfigurationError

ENV_VARS = [
    "DB_USERNAME", "DB_PASSWORD", "DB_HOST", "DB_PORT", "DB_NAME",
    "PGUSER", "PGPASSWORD", "PGHOST", "PGPORT", "PGDATABASE",
    "USER", "DATABASE_URL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate tests from the developer's environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep python-dotenv from pulling in a stray .env file
    monkeypatch.setattr("pg_checkpointer.config.load_dotenv", lambda: False)


def test_defaults():
    config = PostgresConfig()

    assert config.user == "postgres"
    assert config.password is None
    assert config.host == "localhost"
    assert config.port == 5432
    assert config.database == "postgres"
    assert config.table_name == "checkpoints"


def test_explicit_values_win(monkeypatch):
    monkeypatch.setenv("DB_HOST", "service-host")
    monkeypatch.setenv("PGHOST", "generic-host")
    monkeypatch.setenv("DB_PORT", "6543")

    config = PostgresConfig(host="explicit-host", port=7000)

    assert config.host == "explicit-host"
    assert config.port == 7000


def test_service_env_beats_generic_env(monkeypatch):
    monkeypatch.setenv("DB_USERNAME", "agent")
    monkeypatch.setenv("PGUSER", "libpq-user")
    monkeypatch.setenv("DB_HOST", "service-host")
    monkeypatch.setenv("PGHOST", "generic-host")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("PGPORT", "6544")
    monkeypatch.setenv("DB_NAME", "agents")
    monkeypatch.setenv("PGDATABASE", "other")
    monkeypatch.setenv("DB_PASSWORD", "secret")

    config = PostgresConfig()

    assert config.user == "agent"
    assert config.host == "service-host"
    assert config.port == 6543
    assert config.database == "agents"
    assert config.password == "secret"


def test_generic_env_fallback(monkeypatch):
    monkeypatch.setenv("PGHOST", "generic-host")
    monkeypatch.setenv("PGPORT", "6544")
    monkeypatch.setenv("PGPASSWORD", "pw")

    config = PostgresConfig()

    assert config.host == "generic-host"
    assert config.port == 6544
    assert config.password == "pw"


def test_database_defaults_to_user(monkeypatch):
    monkeypatch.setenv("USER", "alice")

    config = PostgresConfig()

    assert config.user == "alice"
    assert config.database == "alice"


@pytest.mark.parametrize("value", ["abc", "0", "70000"])
def test_invalid_env_port(monkeypatch, value):
    monkeypatch.setenv("DB_PORT", value)

    with pytest.raises(ConfigurationError) as exc_info:
        PostgresConfig()

    assert exc_info.value.details["source"] == "DB_PORT"


@pytest.mark.parametrize("value", [0, 70000, -1, "abc"])
def test_invalid_explicit_port(value):
    with pytest.raises(ConfigurationError) as exc_info:
        PostgresConfig(port=value)

    assert exc_info.value.details["source"] == "port"


def test_explicit_port_string_is_parsed():
    assert PostgresConfig(port="5433").port == 5433


def test_conninfo_renders_fields():
    config = PostgresConfig(user="agent", host="db", port=5433, database="agents", connect_timeout=5)

    params = dict(item.split("=", 1) for item in config.conninfo().split())

    assert params == {
        "host": "db",
        "port": "5433",
        "user": "agent",
        "dbname": "agents",
        "connect_timeout": "5",
    }


def test_database_url_takes_precedence(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@remote:5432/cp")

    config = PostgresConfig(host="ignored")

    assert config.resolve_conninfo() == "postgresql://u:p@remote:5432/cp"
    assert config.describe() == "DATABASE_URL"


def test_from_env_ignores_none_overrides(monkeypatch):
    monkeypatch.setenv("DB_HOST", "service-host")

    config = PostgresConfig.from_env(host=None, table_name="agent_checkpoints")

    assert config.host == "service-host"
    assert config.table_name == "agent_checkpoints"
    assert "secret" not in config.describe()
