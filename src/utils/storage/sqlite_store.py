"""SQLite-based key-value store for persisted workflow documents.

The store uses a simple key-value schema with namespace support. All values
are JSON-serialized, so a workflow definition is always written and read as
one whole document.

Key features:
- Automatic table creation on first use
- Namespace isolation (e.g. ("workflow", "definitions"))
- JSON serialization for complex data types
"""

import json
import sqlite3
from typing import Any, List, Optional, Sequence

from src.utils.logging import get_logger

logger = get_logger()


class SQLiteStore:
    """SQLite key-value store with namespace support.

    Schema:
        namespace TEXT: JSON-encoded namespace tuple
        key TEXT: Unique identifier within namespace
        value TEXT: JSON-serialized data
        PRIMARY KEY (namespace, key)

    Example:
        >>> store = SQLiteStore("./workflows.db")
        >>> store.put(("workflow", "definitions"), "wf-1", [{"id": "s1", ...}])
        >>> store.get(("workflow", "definitions"), "wf-1")
    """

    def __init__(self, db_path: str = "workflows.db", check_same_thread: bool = True):
        self.db_path = db_path
        self.conn = sqlite3.connect(self.db_path, check_same_thread=check_same_thread)
        self._create_table()
        logger.info("sqlite_init", component="storage", db_path=db_path)

    def _create_table(self):
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS store (
                namespace TEXT,
                key TEXT,
                value TEXT,
                PRIMARY KEY (namespace, key)
            )
            """
        )
        self.conn.commit()

    @staticmethod
    def _namespace_key(namespace: Sequence[str]) -> str:
        return json.dumps(list(namespace))

    def get(self, namespace: Sequence[str], key: str) -> Optional[Any]:
        """Retrieve a value by namespace and key, or None if absent."""
        cursor = self.conn.execute(
            "SELECT value FROM store WHERE namespace = ? AND key = ?",
            (self._namespace_key(namespace), key)
        )
        row = cursor.fetchone()
        result = json.loads(row[0]) if row else None
        logger.debug("sqlite_get", component="storage",
                     namespace=namespace, key=key, found=row is not None)
        return result

    def put(self, namespace: Sequence[str], key: str, value: Any):
        """Insert or replace a value. The whole value is rewritten."""
        self.conn.execute(
            "REPLACE INTO store (namespace, key, value) VALUES (?, ?, ?)",
            (self._namespace_key(namespace), key, json.dumps(value))
        )
        self.conn.commit()
        logger.debug("sqlite_put", component="storage", namespace=namespace, key=key)

    def delete(self, namespace: Sequence[str], key: str) -> bool:
        """Delete a value. Returns True if a row was removed."""
        cursor = self.conn.execute(
            "DELETE FROM store WHERE namespace = ? AND key = ?",
            (self._namespace_key(namespace), key)
        )
        self.conn.commit()
        logger.debug("sqlite_delete", component="storage",
                     namespace=namespace, key=key, deleted=cursor.rowcount > 0)
        return cursor.rowcount > 0

    def list_keys(self, namespace: Sequence[str]) -> List[str]:
        """List keys in a namespace, sorted."""
        cursor = self.conn.execute(
            "SELECT key FROM store WHERE namespace = ? ORDER BY key",
            (self._namespace_key(namespace),)
        )
        return [row[0] for row in cursor.fetchall()]

    def close(self):
        self.conn.close()
