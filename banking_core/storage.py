"""
Storage Backend Module

Provides the persistence capability the core consumes: keyed record
save/insert/load, filtered and ordered lookups, an atomic increment-by-delta
for numeric fields, per-table id sequences, and atomic units of work.

Implementations: in-memory (testing) and SQLite (persistence). Records are
JSON documents; monetary values are stored as integer minor units.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union
from decimal import Decimal
from datetime import date, datetime, timezone
from enum import Enum
import copy
import json
import re
import sqlite3
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import ConflictError, NotFoundError

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table or field name: {name!r}")
    return name


def _to_storable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: Union[str, int]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {key: _to_storable(value) for key, value in asdict(self).items()}


def _sort_key(record: Dict[str, Any], order_by: Sequence[str]) -> tuple:
    # Missing values sort first; (flag, value) avoids comparing None to str/int
    return tuple((record.get(f) is not None, record.get(f)) for f in order_by)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save (insert or replace) a record"""
        pass

    @abstractmethod
    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a new record; raises ConflictError if the key is taken"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    def increment(self, table: str, record_id: str, field: str, delta: int) -> int:
        """Atomically add delta to a numeric field and return the new value"""
        pass

    @abstractmethod
    def next_id(self, table: str) -> int:
        """Allocate the next value of the table's id sequence (starts at 1)"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def find_ordered(self, table: str, filters: Dict[str, Any],
                     order_by: Sequence[str], descending: bool = False) -> List[Dict[str, Any]]:
        """Find records and sort them by the given fields, first field most significant"""
        records = self.find(table, filters)
        records.sort(key=lambda record: _sort_key(record, order_by), reverse=descending)
        return records

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations.

        Writes inside the block become visible together or not at all. Nested
        blocks join the outermost unit of work.
        """
        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._sequences: Dict[str, int] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    @staticmethod
    def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
        # JSON round trip gives a deep copy with storage-equivalent types
        return json.loads(json.dumps(record, default=str))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            self._data[table][str(record_id)] = self._copy(data)

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a record, refusing to overwrite"""
        with self._lock:
            self._ensure_table(table)
            if str(record_id) in self._data[table]:
                raise ConflictError(f"Record {record_id} already exists in {table}")
            self._data[table][str(record_id)] = self._copy(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(str(record_id))
            if record:
                return self._copy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            return [self._copy(record) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            self._ensure_table(table)
            if str(record_id) in self._data[table]:
                del self._data[table][str(record_id)]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            return str(record_id) in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(self._copy(record))
            return results

    def increment(self, table: str, record_id: str, field: str, delta: int) -> int:
        """Add delta to a numeric field under the storage lock"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(str(record_id))
            if record is None:
                raise NotFoundError(f"Record {record_id} not found in {table}")
            record[field] = record.get(field, 0) + delta
            return record[field]

    def next_id(self, table: str) -> int:
        """Allocate the next id; sequences are not rolled back"""
        with self._lock:
            self._sequences[table] = self._sequences.get(table, 0) + 1
            return self._sequences[table]

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        """Take the storage lock and snapshot data for rollback"""
        self._lock.acquire()
        self._depth += 1
        if self._depth == 1:
            self._snapshot = copy.deepcopy(self._data)

    def commit(self) -> None:
        """Finish the unit of work and release the lock"""
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        """Restore the snapshot once the outermost unit of work unwinds"""
        self._depth -= 1
        if self._depth == 0 and self._snapshot is not None:
            self._data = self._snapshot
            self._snapshot = None
        self._lock.release()

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    SEQUENCES_TABLE = "_sequences"

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.SEQUENCES_TABLE} (
                    name TEXT PRIMARY KEY,
                    value INTEGER NOT NULL
                )
            """)
            self._connection.commit()

    @property
    def _in_transaction(self) -> bool:
        return self._depth > 0

    def _maybe_commit(self) -> None:
        # Only commit if not in transaction
        if not self._in_transaction:
            self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        _check_identifier(table)
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            self._maybe_commit()
            self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # Use INSERT OR REPLACE to handle updates
            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (str(record_id), data_json, str(record_id), now, now))
            self._maybe_commit()

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a record; the primary key makes the check-and-insert atomic"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            try:
                self._connection.execute(f"""
                    INSERT INTO {table} (id, data, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                """, (str(record_id), json.dumps(data, default=str), now, now))
            except sqlite3.IntegrityError:
                raise ConflictError(f"Record {record_id} already exists in {table}")
            self._maybe_commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (str(record_id),))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (str(record_id),))
            self._maybe_commit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (str(record_id),))
            return cursor.fetchone() is not None

    def _select(self, table: str, filters: Dict[str, Any], order_clause: str) -> List[Dict[str, Any]]:
        conditions = []
        params: List[Any] = []
        for key, value in filters.items():
            conditions.append(f"json_extract(data, '$.{_check_identifier(key)}') = ?")
            params.append(value)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        cursor = self._connection.execute(f"""
            SELECT data FROM {table} {where_clause} {order_clause}
        """, params)
        return [json.loads(row['data']) for row in cursor.fetchall()]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters using JSON1 field extraction"""
        with self._lock:
            self._ensure_table(table)
            return self._select(table, filters, "ORDER BY created_at")

    def find_ordered(self, table: str, filters: Dict[str, Any],
                     order_by: Sequence[str], descending: bool = False) -> List[Dict[str, Any]]:
        """Find records ordered by JSON fields in SQL"""
        direction = "DESC" if descending else "ASC"
        terms = ", ".join(
            f"json_extract(data, '$.{_check_identifier(field)}') {direction}" for field in order_by
        )
        with self._lock:
            self._ensure_table(table)
            return self._select(table, filters, f"ORDER BY {terms}")

    def increment(self, table: str, record_id: str, field: str, delta: int) -> int:
        """Apply the delta in a single UPDATE so no read-modify-write happens in Python"""
        path = f"$.{_check_identifier(field)}"
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                UPDATE {table}
                SET data = json_set(data, ?, COALESCE(json_extract(data, ?), 0) + ?),
                    updated_at = ?
                WHERE id = ?
            """, (path, path, delta, datetime.now(timezone.utc).isoformat(), str(record_id)))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Record {record_id} not found in {table}")
            value = self._connection.execute(f"""
                SELECT json_extract(data, ?) AS value FROM {table} WHERE id = ?
            """, (path, str(record_id))).fetchone()['value']
            self._maybe_commit()
            return value

    def next_id(self, table: str) -> int:
        """Allocate the next id from the sequences table"""
        with self._lock:
            self._connection.execute(f"""
                INSERT INTO {self.SEQUENCES_TABLE} (name, value) VALUES (?, 1)
                ON CONFLICT(name) DO UPDATE SET value = value + 1
            """, (table,))
            value = self._connection.execute(f"""
                SELECT value FROM {self.SEQUENCES_TABLE} WHERE name = ?
            """, (table,)).fetchone()['value']
            self._maybe_commit()
            return value

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._maybe_commit()

    def begin_transaction(self) -> None:
        """Start a database transaction, holding the lock until it ends"""
        self._lock.acquire()
        # SQLite with isolation_level='DEFERRED' starts the transaction on first write
        self._depth += 1

    def commit(self) -> None:
        """Commit current transaction"""
        try:
            self._depth -= 1
            if self._depth == 0:
                self._connection.commit()
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction"""
        try:
            self._depth -= 1
            if self._depth == 0:
                self._connection.rollback()
                # Tables created inside the rolled back transaction are gone
                self._tables.clear()
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """Build a storage backend from a database URL"""
    if database_url == "memory://":
        return InMemoryStorage()
    prefix = "sqlite:///"
    if database_url.startswith(prefix):
        return SQLiteStorage(database_url[len(prefix):])
    raise ValueError(f"Unsupported database URL: {database_url}")
