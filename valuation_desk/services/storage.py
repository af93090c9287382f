"""
Key-value persistence for the Valuation Desk.

Collections are stored as JSON documents under fixed keys (``files``,
``invoices``, ``banks``, ``users`` and ``currentUser``). Every write also bumps
a companion ``{key}Version`` counter, which the record store polls to notice
writes made by another process.

Backends:
- MemoryStorage: a dict, used by tests and throwaway sessions
- JsonFileStorage: a single JSON file on disk (the default)
- PostgresStorage: a key-value table accessed through a ThreadedConnectionPool
"""

import json
import os
import tempfile
import threading
import time
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import pool, sql

from valuation_desk.models.entities import CURRENT_USER_KEY
from valuation_desk.utils.logging_config import get_logger, log_database_operation

VERSION_SUFFIX = "Version"


def version_key(key: str) -> str:
    return f"{key}{VERSION_SUFFIX}"


class KeyValueStorage:
    """
    Base class for string key-value backends.

    Subclasses implement the raw ``get_item``/``set_item``/``remove_item``/``keys``
    primitives; JSON parsing, fallbacks and version counters live here.
    """

    backend_name = "base"

    def __init__(self):
        self.logger = get_logger(f"storage.{self.backend_name}")

    # Raw primitives
    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def health_check(self) -> bool:
        """Return True when the backend can be read"""
        try:
            self.keys()
            return True
        except Exception as e:
            self.logger.error(
                "Storage health check failed",
                extra={"category": "storage_health_failed", "error": str(e), "error_type": type(e).__name__},
            )
            return False

    # JSON helpers
    def get_parsed(self, key: str, fallback: Any = None) -> Any:
        """
        Read and parse a JSON document.

        Malformed JSON is logged and replaced by ``fallback``; it is never fatal.
        """
        if fallback is None:
            fallback = []
        raw = self.get_item(key)
        if raw is None or raw == "":
            return fallback
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            self.logger.error(
                f"Failed to parse {key} from storage",
                extra={"category": "storage_parse_failed", "key": key, "error": str(e), "error_type": type(e).__name__},
            )
            return fallback

    def set_json(self, key: str, value: Any) -> bool:
        """Serialize ``value`` under ``key`` and bump its version counter"""
        try:
            payload = json.dumps(value, default=str)
            new_version = self.get_version(key) + 1
            self.set_item(key, payload)
            self.set_item(version_key(key), str(new_version))
            log_database_operation("set", key, version=new_version, backend=self.backend_name)
            return True
        except Exception as e:
            self.logger.error(
                f"Failed to save {key} to storage",
                extra={"category": "storage_write_failed", "key": key, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            return False

    def get_version(self, key: str) -> int:
        raw = self.get_item(version_key(key))
        if not raw:
            return 0
        try:
            return int(float(raw))
        except (TypeError, ValueError):
            self.logger.warning(
                f"Invalid version counter for {key}",
                extra={"category": "storage_bad_version", "key": key, "raw_value": raw},
            )
            return 0

    def remove(self, key: str) -> bool:
        try:
            self.remove_item(key)
            self.remove_item(version_key(key))
            log_database_operation("remove", key, backend=self.backend_name)
            return True
        except Exception as e:
            self.logger.error(
                f"Failed to remove {key} from storage",
                extra={"category": "storage_remove_failed", "key": key, "error": str(e)},
            )
            return False

    def clear_user_session(self) -> bool:
        return self.remove(CURRENT_USER_KEY)

    def close(self) -> None:
        """Release backend resources"""


class MemoryStorage(KeyValueStorage):
    """Process-local dict storage"""

    backend_name = "memory"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        super().__init__()
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)


class JsonFileStorage(KeyValueStorage):
    """
    All keys kept in one JSON object on disk.

    The file is re-read on every access so that writes from another process are
    visible, and replaced atomically on every write.
    """

    backend_name = "json"

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        self._lock = threading.Lock()
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            self.logger.error(
                "Storage file is unreadable, starting from empty storage",
                extra={"category": "storage_file_corrupt", "path": self.path, "error": str(e)},
            )
            return {}
        if not isinstance(data, dict):
            self.logger.error(
                "Storage file does not hold a JSON object, starting from empty storage",
                extra={"category": "storage_file_corrupt", "path": self.path},
            )
            return {}
        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

    def _write_all(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".storage-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._read_all())


class ConnectionPoolManager:
    """
    Manages a ThreadedConnectionPool with retry logic.
    """

    def __init__(
        self,
        connection_params: Dict[str, Any],
        min_connections: int = 1,
        max_connections: int = 5,
        connection_timeout: int = 10,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Initialize the connection pool manager.

        Args:
            connection_params: Database connection parameters
            min_connections: Minimum number of connections to maintain
            max_connections: Maximum number of connections in pool
            connection_timeout: Connection timeout in seconds
            retry_attempts: Number of attempts when acquiring a connection
            retry_delay: Base delay between attempts in seconds
        """
        self.connection_params = connection_params.copy()
        self.connection_params["connect_timeout"] = connection_timeout
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._pool = None
        self._pool_lock = threading.Lock()
        self._failed_connections = 0
        self.logger = get_logger("storage.pool")

        self._initialize_pool()

    def _initialize_pool(self):
        try:
            with self._pool_lock:
                if self._pool is not None:
                    self._pool.closeall()

                self._pool = pool.ThreadedConnectionPool(
                    minconn=self.min_connections, maxconn=self.max_connections, **self.connection_params
                )
                self.logger.info(
                    "Connection pool initialized successfully",
                    extra={
                        "category": "pool_initialized",
                        "min_connections": self.min_connections,
                        "max_connections": self.max_connections,
                    },
                )
        except Exception as e:
            self.logger.error(
                "Failed to initialize connection pool",
                extra={"category": "pool_init_failed", "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            raise

    def get_connection(self):
        """
        Get a connection from the pool with retry logic.

        Raises:
            psycopg2.OperationalError: If every attempt fails
        """
        last_error: Optional[Exception] = None
        for attempt in range(self.retry_attempts):
            try:
                with self._pool_lock:
                    if self._pool is None:
                        raise psycopg2.OperationalError("Connection pool is closed")
                    return self._pool.getconn()
            except Exception as e:
                last_error = e
                self._failed_connections += 1
                self.logger.warning(
                    "Connection attempt failed",
                    extra={
                        "category": "connection_attempt_failed",
                        "attempt": attempt + 1,
                        "max_attempts": self.retry_attempts,
                        "error": str(e),
                    },
                )
                if attempt < self.retry_attempts - 1:
                    time.sleep(self.retry_delay * (attempt + 1))

        raise psycopg2.OperationalError(f"All connection attempts failed: {last_error}")

    def return_connection(self, conn):
        try:
            with self._pool_lock:
                if self._pool and conn:
                    self._pool.putconn(conn)
        except Exception as e:
            self.logger.error(
                "Failed to return connection to pool",
                extra={"category": "connection_return_failed", "error": str(e)},
            )

    def close_all_connections(self):
        with self._pool_lock:
            if self._pool:
                self._pool.closeall()
                self._pool = None
                self.logger.info("All connections closed", extra={"category": "all_connections_closed"})

    def get_pool_stats(self) -> Dict[str, Any]:
        return {
            "min_connections": self.min_connections,
            "max_connections": self.max_connections,
            "failed_connections": self._failed_connections,
            "pool_initialized": self._pool is not None,
        }


class PostgresStorage(KeyValueStorage):
    """Key-value rows in a PostgreSQL table: ``(key TEXT PRIMARY KEY, value TEXT, updated_at)``"""

    backend_name = "postgres"

    def __init__(self, pool_manager: ConnectionPoolManager, table: str = "kv_store"):
        super().__init__()
        self.pool_manager = pool_manager
        self.table = table
        self.ensure_schema()

    def _execute(self, query, params=None, fetch: Optional[str] = None):
        conn = self.pool_manager.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(query, params)
                result = None
                if fetch == "one":
                    result = cursor.fetchone()
                elif fetch == "all":
                    result = cursor.fetchall()
            conn.commit()
            return result
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pool_manager.return_connection(conn)

    def ensure_schema(self) -> None:
        self._execute(
            sql.SQL(
                "CREATE TABLE IF NOT EXISTS {} ("
                "key TEXT PRIMARY KEY, "
                "value TEXT NOT NULL, "
                "updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP)"
            ).format(sql.Identifier(self.table))
        )

    def get_item(self, key: str) -> Optional[str]:
        row = self._execute(
            sql.SQL("SELECT value FROM {} WHERE key = %s").format(sql.Identifier(self.table)), (key,), fetch="one"
        )
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        self._execute(
            sql.SQL(
                "INSERT INTO {} (key, value, updated_at) VALUES (%s, %s, CURRENT_TIMESTAMP) "
                "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = CURRENT_TIMESTAMP"
            ).format(sql.Identifier(self.table)),
            (key, value),
        )

    def remove_item(self, key: str) -> None:
        self._execute(sql.SQL("DELETE FROM {} WHERE key = %s").format(sql.Identifier(self.table)), (key,))

    def keys(self) -> List[str]:
        rows = self._execute(sql.SQL("SELECT key FROM {}").format(sql.Identifier(self.table)), fetch="all")
        return [row[0] for row in rows or []]

    def close(self) -> None:
        self.pool_manager.close_all_connections()


def create_storage(config_class) -> KeyValueStorage:
    """Build the storage backend selected by ``STORAGE_BACKEND``"""
    backend = getattr(config_class, "STORAGE_BACKEND", "json")
    if backend == "postgres":
        pool_manager = ConnectionPoolManager(config_class.get_database_config())
        return PostgresStorage(pool_manager, table=getattr(config_class, "DB_TABLE", "kv_store"))
    if backend == "memory":
        return MemoryStorage()
    return JsonFileStorage(config_class.STORAGE_PATH)
