"""
Configuration management for the ObsDB server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - The partition prefix is fixed for the lifetime of a store
    - Locking mode is opt-in and off by default

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Changing TSDB_TABLE_PREFIX points the store at a different set of
      partitions; existing data stays under the old prefix
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})

LOG_FORMATS = ("json", "text")


def env_flag(name: str, default: str = "false") -> bool:
    """Read a boolean environment variable."""
    return os.getenv(name, default).strip().lower() in TRUE_VALUES


@dataclass(frozen=True)
class StorageConfig:
    """SQLite storage configuration.

    Attributes:
        db_path: SQLite database file (":memory:" for a private in-memory db)
        busy_timeout_ms: SQLite busy timeout in milliseconds
        wal_mode: SQLite WAL journal mode enabled
    """

    db_path: str = "/var/lib/obsdb/obsdb.db"
    busy_timeout_ms: int = 5000
    wal_mode: bool = True

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=os.getenv("TSDB_DB_PATH", "/var/lib/obsdb/obsdb.db"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            wal_mode=env_flag("SQLITE_WAL_MODE", "true"),
        )


@dataclass(frozen=True)
class StoreConfig:
    """Time series store configuration.

    Attributes:
        table_prefix: Prefix for the per-kind partition tables; disjoint
            prefixes keep disjoint series in one database
        enable_lock: Take a partition-set lock around every operation
    """

    table_prefix: str = "obsdb"
    enable_lock: bool = False

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            table_prefix=os.getenv("TSDB_TABLE_PREFIX", "obsdb"),
            enable_lock=env_flag("TSDB_ENABLE_LOCK"),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Bind host
        port: Bind port
        cors_origins: Allowed CORS origins
    """

    host: str = "0.0.0.0"
    port: int = 8081
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8081")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json").lower(),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: SQLite storage configuration
        store: Time series store configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            store=StoreConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.store.table_prefix:
            raise ValueError("TSDB_TABLE_PREFIX must not be empty")
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", self.store.table_prefix):
            raise ValueError(
                f"Invalid TSDB_TABLE_PREFIX '{self.store.table_prefix}'. "
                "Use letters, digits and underscores, not starting with a digit"
            )
        if not self.storage.db_path:
            raise ValueError("TSDB_DB_PATH must not be empty")
        if not 0 < self.http.port < 65536:
            raise ValueError(f"Invalid HTTP_PORT {self.http.port}")
        if self.observability.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "db_path": self.storage.db_path,
                "table_prefix": self.store.table_prefix,
                "lock_enabled": self.store.enable_lock,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
