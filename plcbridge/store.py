"""
SQLite tag store.

Persists canonical :class:`~plcbridge.models.Tag` rows keyed on
``(project_id, name)``. Writing a tag whose name already exists in the project
updates that row in place; each row-level upsert is a single atomic statement.

Thread safety follows the usual SQLite arrangement: file databases get one
connection per thread, an in-memory database shares one connection guarded by
a lock so that its contents survive between calls.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .errors import PersistenceError
from .models import CreateTagData, Tag

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id", "project_id", "user_id", "name", "type", "data_type", "vendor", "description",
    "address", "default_value", "scope", "tag_type", "is_ai_generated", "created_at", "updated_at",
)

_UPSERT = """
    INSERT INTO tags (project_id, user_id, name, type, data_type, vendor, description, address,
                      default_value, scope, tag_type, is_ai_generated, created_at, updated_at)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(project_id, name) DO UPDATE SET
        user_id = excluded.user_id,
        type = excluded.type,
        data_type = excluded.data_type,
        description = excluded.description,
        address = excluded.address,
        default_value = excluded.default_value,
        scope = excluded.scope,
        tag_type = excluded.tag_type,
        is_ai_generated = excluded.is_ai_generated,
        updated_at = excluded.updated_at
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_tag(row: sqlite3.Row) -> Tag:
    values = dict(zip(_COLUMNS, row))
    values["is_ai_generated"] = bool(values["is_ai_generated"])
    return Tag(**values)


class TagStore:
    """Tag persistence backed by SQLite.

    Example:
        >>> store = TagStore(":memory:")
        >>> tag = store.upsert_tag(CreateTagData(project_id=1, user_id="u1", name="Start",
        ...                                      type="BOOL", data_type="BOOL", vendor="rockwell"))
        >>> store.count_tags(1)
        1
    """

    def __init__(self, db_path: str = ":memory:"):
        """Open (and if needed create) the tag database.

        Args:
            db_path: Path to the SQLite file, or ":memory:" for a private in-memory store.
        """
        self.db_path = str(db_path)
        self._is_memory = self.db_path == ":memory:"
        self._local = threading.local()
        self._memory_conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        if self._is_memory:
            if self._memory_conn is None:
                with self._lock:
                    if self._memory_conn is None:
                        self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
            return self._memory_conn

        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(self.db_path)
            logger.debug(f"Opened tag database {self.db_path} for thread {threading.current_thread().name}")
        return self._local.conn

    def _init_db(self) -> None:
        try:
            with self._lock:
                conn = self._get_connection()
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS tags (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        project_id INTEGER NOT NULL,
                        user_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        type TEXT NOT NULL,
                        data_type TEXT NOT NULL,
                        vendor TEXT NOT NULL,
                        description TEXT NOT NULL DEFAULT '',
                        address TEXT NOT NULL DEFAULT '',
                        default_value TEXT,
                        scope TEXT NOT NULL DEFAULT 'global',
                        tag_type TEXT NOT NULL DEFAULT 'memory',
                        is_ai_generated INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        UNIQUE(project_id, name)
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_tags_project_vendor ON tags(project_id, vendor)")
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not initialise tag store at {self.db_path}: {e}", cause=e) from e

    def upsert_tag(self, data: CreateTagData) -> Tag:
        """Insert a tag, or update the existing tag with the same name in the project.

        The vendor of an existing tag is never changed.

        Raises:
            PersistenceError: if the database rejects the write
        """
        timestamp = _now()
        params = (
            data.project_id, data.user_id, data.name, data.type, data.data_type, data.vendor,
            data.description or "", data.address or "", data.default_value, data.scope,
            data.tag_type, int(bool(data.is_ai_generated)), timestamp, timestamp,
        )
        try:
            with self._lock:
                conn = self._get_connection()
                conn.execute(_UPSERT, params)
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to upsert tag {data.name!r}: {e}", tag_name=data.name, cause=e) from e

        tag = self.get_tag_by_name(data.project_id, data.name)
        if tag is None:
            raise PersistenceError(f"Tag {data.name!r} missing after upsert", tag_name=data.name)
        return tag

    def upsert_tags(self, rows: Iterable[CreateTagData]) -> List[Tag]:
        return [self.upsert_tag(row) for row in rows]

    def _query(self, sql: str, params: tuple) -> List[Tag]:
        try:
            with self._lock:
                cursor = self._get_connection().execute(sql, params)
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Tag query failed: {e}", cause=e) from e
        return [_row_to_tag(row) for row in rows]

    def get_tags(self, project_id: int, vendor: Optional[str] = None) -> List[Tag]:
        """Return the tags of a project ordered by name, optionally only one vendor's."""
        columns = ", ".join(_COLUMNS)
        if vendor:
            return self._query(
                f"SELECT {columns} FROM tags WHERE project_id = ? AND vendor = ? ORDER BY name",
                (project_id, str(vendor).lower()),
            )
        return self._query(f"SELECT {columns} FROM tags WHERE project_id = ? ORDER BY name", (project_id,))

    def get_tag_by_name(self, project_id: int, name: str) -> Optional[Tag]:
        columns = ", ".join(_COLUMNS)
        tags = self._query(f"SELECT {columns} FROM tags WHERE project_id = ? AND name = ?", (project_id, name))
        return tags[0] if tags else None

    def count_tags(self, project_id: int) -> int:
        try:
            with self._lock:
                cursor = self._get_connection().execute(
                    "SELECT COUNT(*) FROM tags WHERE project_id = ?", (project_id,)
                )
                return cursor.fetchone()[0]
        except sqlite3.Error as e:
            raise PersistenceError(f"Tag count failed: {e}", cause=e) from e

    def close(self) -> None:
        """Close the connection owned by the calling thread (or the shared in-memory one)."""
        with self._lock:
            if self._is_memory:
                if self._memory_conn is not None:
                    self._memory_conn.close()
                    self._memory_conn = None
                return
            conn = getattr(self._local, "conn", None)
            if conn is not None:
                conn.close()
                self._local.conn = None
