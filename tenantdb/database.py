"""Persistence layer: per-table lock manager and document stores.

Every record (project, table, auth user, bucket, file) is stored as a JSON
document in a named collection and tagged with its owning project. A table
document carries its whole column list and row list, so a table mutation is
a single read-modify-write of one document:

    with lock_manager.acquire(project_id, table_id):
        table = store.get("tables", table_id)
        ...build a new document...
        store.put("tables", table_id, new_table, project_id=project_id)

Two stores implement the same interface:
- DuckDBDocumentStore: durable, one `documents` table in a DuckDB file
- MemoryDocumentStore: process-local, used by tests and ephemeral setups
"""

import copy
import json
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import duckdb
import structlog

from tenantdb import metrics
from tenantdb.errors import InternalError

logger = structlog.get_logger()

PROJECTS = "projects"
TABLES = "tables"
AUTH_USERS = "auth_users"
BUCKETS = "buckets"
FILES = "files"

COLLECTIONS = (PROJECTS, TABLES, AUTH_USERS, BUCKETS, FILES)

# Per-project lock keys serializing record creation against the delete cascade
CATALOG_LOCK = "_catalog"
BUCKETS_LOCK = "_buckets"
USERS_LOCK = "_auth_users"


# ============================================
# Table Lock Manager
# ============================================


class TableLockManager:
    """
    Per-table write lock manager.

    All mutating operations on a table (column changes and row writes)
    run under that table's lock, so the read-modify-write of the table
    document is never interleaved with another writer. Readers do not
    take the lock.
    """

    def __init__(self):
        self._locks: dict[str, threading.Lock] = {}
        self._manager_lock = threading.Lock()  # Protects _locks dict

    def _get_table_key(self, project_id: str, table_id: str) -> str:
        """Generate unique key for a table."""
        return f"{project_id}/{table_id}"

    def get_lock(self, project_id: str, table_id: str) -> threading.Lock:
        """
        Get or create a lock for a specific table.

        Thread-safe: uses internal lock to protect the locks dictionary.
        """
        key = self._get_table_key(project_id, table_id)

        with self._manager_lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
                logger.debug("table_lock_created", table_key=key)
            return self._locks[key]

    @contextmanager
    def acquire(self, project_id: str, table_id: str) -> Generator[None, None, None]:
        """
        Context manager to acquire a table lock.

        Usage:
            with table_lock_manager.acquire("proj", "table"):
                # exclusive write access to table
                pass
        """
        lock = self.get_lock(project_id, table_id)
        key = self._get_table_key(project_id, table_id)

        logger.debug("table_lock_acquiring", table_key=key)

        wait_start = time.perf_counter()
        lock.acquire()
        wait_duration = time.perf_counter() - wait_start

        metrics.TABLE_LOCK_WAIT_TIME.observe(wait_duration)
        metrics.TABLE_LOCK_ACQUISITIONS.labels(project_id=project_id, table=table_id).inc()
        metrics.TABLE_LOCKS_ACTIVE.inc()

        logger.debug("table_lock_acquired", table_key=key, wait_ms=wait_duration * 1000)

        try:
            yield
        finally:
            lock.release()
            metrics.TABLE_LOCKS_ACTIVE.dec()
            logger.debug("table_lock_released", table_key=key)

    def remove_lock(self, project_id: str, table_id: str) -> None:
        """
        Remove a lock for a dropped table.

        Safe to call for tables that never had a lock.
        """
        key = self._get_table_key(project_id, table_id)

        with self._manager_lock:
            if key in self._locks:
                del self._locks[key]
                logger.debug("table_lock_removed", table_key=key)

    def clear_project_locks(self, project_id: str) -> None:
        """Remove all locks for a project (called when a project is deleted)."""
        prefix = f"{project_id}/"

        with self._manager_lock:
            keys_to_remove = [k for k in self._locks if k.startswith(prefix)]
            for key in keys_to_remove:
                del self._locks[key]

            if keys_to_remove:
                logger.debug(
                    "project_locks_cleared",
                    project_id=project_id,
                    count=len(keys_to_remove),
                )

    @property
    def active_locks_count(self) -> int:
        """Return count of tracked locks (for monitoring/debugging)."""
        return len(self._locks)


# ============================================
# Document stores
# ============================================


class DocumentStore:
    """
    Get/put interface over the durable medium.

    `put` must be atomic per document: a concurrent `get` returns either
    the complete previous body or the complete new one.
    """

    backend = "abstract"

    def initialize(self) -> None:
        """Prepare the underlying storage (idempotent)."""

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def put(
        self,
        collection: str,
        doc_id: str,
        body: dict[str, Any],
        project_id: str | None = None,
    ) -> None:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    def scan(self, collection: str, project_id: str | None = None) -> list[dict[str, Any]]:
        """Return documents in insertion order, optionally for one project."""
        raise NotImplementedError

    def delete_project_documents(self, collection: str, project_id: str) -> int:
        raise NotImplementedError

    def count(self, collection: str) -> int:
        return len(self.scan(collection))

    def is_available(self) -> bool:
        return True


class MemoryDocumentStore(DocumentStore):
    """Process-local store. Bodies are deep-copied in and out."""

    backend = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: dict[str, dict[str, tuple[str | None, dict[str, Any]]]] = {
            name: {} for name in COLLECTIONS
        }

    def _collection(self, collection: str) -> dict[str, tuple[str | None, dict[str, Any]]]:
        return self._collections.setdefault(collection, {})

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._collection(collection).get(doc_id)
            return copy.deepcopy(entry[1]) if entry else None

    def put(
        self,
        collection: str,
        doc_id: str,
        body: dict[str, Any],
        project_id: str | None = None,
    ) -> None:
        snapshot = copy.deepcopy(body)
        with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                # Keep the original owner tag and insertion position
                project_id = docs[doc_id][0]
            docs[doc_id] = (project_id, snapshot)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None

    def scan(self, collection: str, project_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(body)
                for owner, body in self._collection(collection).values()
                if project_id is None or owner == project_id
            ]

    def delete_project_documents(self, collection: str, project_id: str) -> int:
        with self._lock:
            docs = self._collection(collection)
            doomed = [doc_id for doc_id, (owner, _) in docs.items() if owner == project_id]
            for doc_id in doomed:
                del docs[doc_id]
            return len(doomed)

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collection(collection))


DOCUMENTS_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS documents_seq;

-- One row per stored record; body holds the full JSON document
CREATE TABLE IF NOT EXISTS documents (
    collection VARCHAR NOT NULL,
    id VARCHAR NOT NULL,
    project_id VARCHAR,
    seq BIGINT DEFAULT nextval('documents_seq'),
    body JSON NOT NULL,
    created_at TIMESTAMPTZ DEFAULT now(),
    updated_at TIMESTAMPTZ,
    PRIMARY KEY (collection, id)
);
"""


class DuckDBDocumentStore(DocumentStore):
    """
    Durable document store backed by a single DuckDB file.

    Thread-safe: every call opens its own connection; an upsert is a
    single statement, so readers never see a partially written body.
    """

    backend = "duckdb"

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._init_lock = threading.Lock()

    def initialize(self) -> None:
        """Create the database file and schema."""
        with self._init_lock:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = duckdb.connect(str(self._db_path))
            try:
                conn.execute(DOCUMENTS_SCHEMA)
                conn.commit()
                logger.info("document_store_schema_created", path=str(self._db_path))
            finally:
                conn.close()

    @contextmanager
    def connection(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Get a connection to the documents database.

        Usage:
            with store.connection() as conn:
                conn.execute("SELECT count(*) FROM documents")
        """
        metrics.STORE_CONNECTIONS_ACTIVE.inc()
        try:
            conn = duckdb.connect(str(self._db_path))
        except duckdb.Error as e:
            metrics.STORE_CONNECTIONS_ACTIVE.dec()
            logger.error("document_store_connect_failed", path=str(self._db_path), error=str(e))
            raise InternalError("Storage is unavailable") from e
        try:
            yield conn
        finally:
            conn.close()
            metrics.STORE_CONNECTIONS_ACTIVE.dec()

    def execute(self, query: str, params: list | None = None) -> list[tuple]:
        """Execute a read query and return results."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                return conn.execute(query, params or []).fetchall()
        except duckdb.Error as e:
            logger.error("document_store_read_failed", error=str(e))
            raise InternalError("Failed to read from storage") from e
        finally:
            duration = time.time() - start_time
            metrics.STORE_QUERIES_TOTAL.labels(operation="read").inc()
            metrics.STORE_QUERY_DURATION.labels(operation="read").observe(duration)

    def execute_write(self, query: str, params: list | None = None) -> int:
        """Execute a write query (INSERT, UPDATE, DELETE) and return affected rows."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                result = conn.execute(query, params or []).fetchone()
                conn.commit()
                return result[0] if result else 0
        except duckdb.Error as e:
            logger.error("document_store_write_failed", error=str(e))
            raise InternalError("Failed to write to storage") from e
        finally:
            duration = time.time() - start_time
            metrics.STORE_QUERIES_TOTAL.labels(operation="write").inc()
            metrics.STORE_QUERY_DURATION.labels(operation="write").observe(duration)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        rows = self.execute(
            "SELECT body FROM documents WHERE collection = ? AND id = ?",
            [collection, doc_id],
        )
        return _load_body(rows[0][0]) if rows else None

    def put(
        self,
        collection: str,
        doc_id: str,
        body: dict[str, Any],
        project_id: str | None = None,
    ) -> None:
        now = datetime.now(timezone.utc)
        self.execute_write(
            """
            INSERT INTO documents (collection, id, project_id, body, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (collection, id) DO UPDATE
            SET body = excluded.body, updated_at = excluded.updated_at
            """,
            [collection, doc_id, project_id, json.dumps(body), now, now],
        )

    def delete(self, collection: str, doc_id: str) -> bool:
        deleted = self.execute_write(
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            [collection, doc_id],
        )
        return deleted > 0

    def scan(self, collection: str, project_id: str | None = None) -> list[dict[str, Any]]:
        if project_id is None:
            rows = self.execute(
                "SELECT body FROM documents WHERE collection = ? ORDER BY seq",
                [collection],
            )
        else:
            rows = self.execute(
                "SELECT body FROM documents WHERE collection = ? AND project_id = ? ORDER BY seq",
                [collection, project_id],
            )
        return [_load_body(row[0]) for row in rows]

    def delete_project_documents(self, collection: str, project_id: str) -> int:
        return self.execute_write(
            "DELETE FROM documents WHERE collection = ? AND project_id = ?",
            [collection, project_id],
        )

    def count(self, collection: str) -> int:
        rows = self.execute(
            "SELECT COUNT(*) FROM documents WHERE collection = ?", [collection]
        )
        return rows[0][0] if rows else 0

    def is_available(self) -> bool:
        try:
            self.execute("SELECT 1")
            return True
        except InternalError:
            return False


def _load_body(raw: Any) -> dict[str, Any]:
    """DuckDB returns JSON columns as strings."""
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


def create_document_store(backend: str, db_path: Path | None = None) -> DocumentStore:
    """Build the document store selected by configuration."""
    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "duckdb":
        if db_path is None:
            raise ValueError("db_path is required for the duckdb backend")
        return DuckDBDocumentStore(db_path)
    raise ValueError(f"Unknown storage backend: {backend}")
