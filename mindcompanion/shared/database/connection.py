"""PostgreSQL connection management.

Manages a threaded psycopg2 pool with:
- lazy initialization on first use
- a per-session statement timeout so no query blocks indefinitely
- health checks for readiness probes
- Secrets Manager integration for credentials
"""
import json
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3
from psycopg2 import pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Credentials come from Secrets Manager in production and from
    environment variables in development.
    """
    host: str
    port: int = 5432
    database: str = "mindcompanion"
    username: str = ""
    password: str = ""
    min_connections: int = 1
    max_connections: int = 10
    connect_timeout: int = 10
    statement_timeout_ms: int = 5000
    ssl_mode: str = "require"

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables.

        Environment variables:
            DB_HOST: Database host
            DB_PORT: Database port (default 5432)
            DB_NAME: Database name (default mindcompanion)
            DB_USER: Database username
            DB_PASSWORD: Database password
            DB_MIN_CONN: Minimum pool connections (default 1)
            DB_MAX_CONN: Maximum pool connections (default 10)
            DB_STATEMENT_TIMEOUT_MS: Per-statement timeout (default 5000)
            DB_SSL_MODE: SSL mode (default require)
        """
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "mindcompanion"),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            min_connections=int(os.getenv("DB_MIN_CONN", "1")),
            max_connections=int(os.getenv("DB_MAX_CONN", "10")),
            statement_timeout_ms=int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000")),
            ssl_mode=os.getenv("DB_SSL_MODE", "require"),
        )

    @classmethod
    def from_secrets_manager(cls, secret_arn: str, region: str = "us-east-1") -> "DatabaseConfig":
        """Load config from AWS Secrets Manager.

        Host, port and database name fall back to the environment when the
        secret does not carry them.
        """
        try:
            client = boto3.client("secretsmanager", region_name=region)
            response = client.get_secret_value(SecretId=secret_arn)
            secret = json.loads(response["SecretString"])
        except Exception as e:
            logger.error(
                "SECRETS_MANAGER_LOAD_FAILED",
                extra={"error": str(e), "secret_arn": secret_arn}
            )
            raise

        base = cls.from_env()
        return cls(
            host=secret.get("host", base.host),
            port=int(secret.get("port", base.port)),
            database=secret.get("dbname", base.database),
            username=secret.get("username", ""),
            password=secret.get("password", ""),
            min_connections=base.min_connections,
            max_connections=base.max_connections,
            statement_timeout_ms=base.statement_timeout_ms,
            ssl_mode=base.ssl_mode,
        )


class ConnectionManager:
    """Owns the psycopg2 connection pool."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[pool.ThreadedConnectionPool] = None

        logger.info(
            "CONNECTION_MANAGER_CREATED",
            extra={
                "host": config.host,
                "database": config.database,
                "max_connections": config.max_connections,
            }
        )

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        """Create the pool. Safe to call more than once."""
        if self._pool is not None:
            return

        try:
            self._pool = pool.ThreadedConnectionPool(
                minconn=self.config.min_connections,
                maxconn=self.config.max_connections,
                host=self.config.host,
                port=self.config.port,
                dbname=self.config.database,
                user=self.config.username,
                password=self.config.password,
                connect_timeout=self.config.connect_timeout,
                sslmode=self.config.ssl_mode,
                options=f"-c statement_timeout={self.config.statement_timeout_ms}",
            )
        except Exception as e:
            logger.error(
                "CONNECTION_POOL_INIT_FAILED",
                extra={"host": self.config.host, "error": str(e)}
            )
            raise

        logger.info(
            "CONNECTION_POOL_INITIALIZED",
            extra={"host": self.config.host, "database": self.config.database}
        )

    @contextmanager
    def get_connection(self):
        """Borrow a connection from the pool.

        The transaction is rolled back if the block raises.

        Usage:
            with manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        self.initialize()

        conn = self._pool.getconn()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def health_check(self) -> Dict[str, Any]:
        """Check database connectivity for readiness probes."""
        if self._pool is None:
            return {"status": "not_initialized", "healthy": False}

        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
        except Exception as e:
            logger.error(
                "DATABASE_HEALTH_CHECK_FAILED",
                extra={"error": str(e)}
            )
            return {"status": "error", "healthy": False, "error": str(e)}

        return {
            "status": "connected",
            "healthy": True,
            "host": self.config.host,
            "database": self.config.database,
        }

    def close(self) -> None:
        """Close every pooled connection. Call at shutdown."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("CONNECTION_POOL_CLOSED")


_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Return the process-wide connection manager, creating it from env."""
    global _connection_manager

    if _connection_manager is None:
        _connection_manager = ConnectionManager(DatabaseConfig.from_env())

    return _connection_manager
