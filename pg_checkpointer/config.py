"""
PostgreSQL connection configuration.

Each connection parameter is resolved with the following precedence:

    explicit value  →  service variable (DB_*)  →  libpq variable (PG*)  →  default

| Field      | Service env   | Generic env          | Default     |
|------------|---------------|----------------------|-------------|
| user       | DB_USERNAME   | PGUSER, then USER    | postgres    |
| password   | DB_PASSWORD   | PGPASSWORD           | (none)      |
| host       | DB_HOST       | PGHOST               | localhost   |
| port       | DB_PORT       | PGPORT               | 5432        |
| database   | DB_NAME       | PGDATABASE           | same as user|

``DATABASE_URL`` (or an explicit ``database_url``) short-circuits the table
above and is used verbatim as the conninfo.

Variables from a ``.env`` file are loaded on construction (existing
environment variables win).

Usage:
    from pg_checkpointer.config import PostgresConfig

    config = PostgresConfig(host="db.internal")
    conninfo = config.resolve_conninfo()
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, Field, field_validator, model_validator

from .exceptions import ConfigurationError
from .queries import DEFAULT_TABLE_NAME

logger = logging.getLogger(__name__)

DEFAULT_USER = "postgres"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5432


def _first_env(*names: str) -> Optional[str]:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _parse_port(value: str, source: str) -> int:
    try:
        port = int(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid PostgreSQL port {value!r} from {source}",
            details={"port": value, "source": source},
            cause=e,
        ) from e

    if not 0 < port < 65536:
        raise ConfigurationError(
            f"PostgreSQL port out of range: {port}",
            details={"port": port, "source": source},
        )
    return port


class PostgresConfig(BaseModel):
    """Connection parameters for the checkpoint database."""

    user: Optional[str] = Field(default=None, description="Database user (DB_USERNAME / PGUSER / USER)")
    password: Optional[str] = Field(default=None, description="Database password (DB_PASSWORD / PGPASSWORD)")
    host: Optional[str] = Field(default=None, description="Database host (DB_HOST / PGHOST)")
    port: Optional[int] = Field(default=None, description="Database port (DB_PORT / PGPORT), default 5432")
    database: Optional[str] = Field(default=None, description="Database name (DB_NAME / PGDATABASE), default = user")
    database_url: Optional[str] = Field(
        default=None,
        description="Complete conninfo/URL; overrides the individual fields (DATABASE_URL)",
    )
    connect_timeout: Optional[int] = Field(default=None, description="Connection timeout in seconds")
    table_name: str = Field(default=DEFAULT_TABLE_NAME, description="Checkpoint table name")

    @field_validator("port", mode="before")
    @classmethod
    def validate_port(cls, value):
        """Explicit ports get the same range check as ports read from the environment."""
        if value is None:
            return value
        return _parse_port(str(value), "port")

    @model_validator(mode="after")
    def load_from_env(self):
        """Fill unset fields from the environment (.env file included)."""
        load_dotenv()

        self.user = self.user or _first_env("DB_USERNAME", "PGUSER", "USER") or DEFAULT_USER
        self.password = self.password or _first_env("DB_PASSWORD", "PGPASSWORD")
        self.host = self.host or _first_env("DB_HOST", "PGHOST") or DEFAULT_HOST
        self.database = self.database or _first_env("DB_NAME", "PGDATABASE") or self.user
        self.database_url = self.database_url or _first_env("DATABASE_URL")

        if self.port is None:
            if os.getenv("DB_PORT"):
                self.port = _parse_port(os.environ["DB_PORT"], "DB_PORT")
            elif os.getenv("PGPORT"):
                self.port = _parse_port(os.environ["PGPORT"], "PGPORT")
            else:
                self.port = DEFAULT_PORT

        return self

    @classmethod
    def from_env(cls, **overrides) -> "PostgresConfig":
        """Build a config from the environment; keyword arguments are explicit values."""
        return cls(**{key: value for key, value in overrides.items() if value is not None})

    def conninfo(self) -> str:
        """Render the individual fields as a libpq keyword/value string."""
        params = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "dbname": self.database,
            "connect_timeout": self.connect_timeout,
        }
        return make_conninfo("", **{key: value for key, value in params.items() if value is not None})

    def resolve_conninfo(self) -> str:
        """Conninfo to connect with: ``database_url`` if set, else the rendered fields."""
        if self.database_url:
            logger.debug("Using DATABASE_URL for checkpoint store connection")
            return self.database_url
        return self.conninfo()

    def describe(self) -> str:
        """Human readable target without the password, for log messages."""
        if self.database_url:
            return "DATABASE_URL"
        return f"{self.user}@{self.host}:{self.port}/{self.database}"
