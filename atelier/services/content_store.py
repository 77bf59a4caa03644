"""
Content Store Module.
Provides a document store on top of SQLite: named collections of JSON
documents with dotted-path partial updates, a server-assigned update
timestamp and change subscriptions.

This is the persistence adapter the autosave layer writes through.
"""

import copy
import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from atelier.core.protocols import DocumentCallback, is_server_timestamp

logger = logging.getLogger(__name__)


class DocumentNotFoundError(KeyError):
    """Raised when a partial update targets a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"No document to update: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id

    def __str__(self) -> str:
        return self.args[0]


def split_path(path: str) -> List[str]:
    """
    Splits a dotted field path into its segments.

    Raises:
        ValueError: If the path is empty or has an empty segment.
    """
    segments = path.split(".")
    if not path or any(not s for s in segments):
        raise ValueError(f"Invalid field path: {path!r}")
    return segments


def get_path(data: dict, path: str, default: Any = None) -> Any:
    """
    Reads a value at a dotted path.

    Args:
        data: The document data.
        path: Field name or dotted path (e.g. ``irisContactInfo.email``).
        default: Returned if any segment is missing.
    """
    current: Any = data
    for segment in split_path(path):
        if not isinstance(current, dict) or segment not in current:
            return default
        current = current[segment]
    return current


def set_path(data: dict, path: str, value: Any) -> None:
    """
    Writes a value at a dotted path, creating intermediate objects.
    A non-object value found on the way is replaced by an object.
    """
    segments = split_path(path)
    current = data
    for segment in segments[:-1]:
        child = current.get(segment)
        if not isinstance(child, dict):
            child = {}
            current[segment] = child
        current = child
    current[segments[-1]] = value


class ContentStore:
    """
    Handles all raw interactions with the SQLite content database.

    Documents are stored as JSON blobs keyed by (collection, id). Nested
    fields are addressed with dotted paths; arrays are always written whole.
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """
        Args:
            db_path: Path to the content database file.
                     Defaults to :memory: for testing.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        self._subscribers: Dict[Tuple[str, str], List[DocumentCallback]] = {}
        logger.info(f"ContentStore initialized with path: {self.db_path}")

    def connect(self) -> None:
        """Establishes connection to the database."""
        try:
            self._connection = sqlite3.connect(self.db_path)
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode=WAL;")
                logger.debug("WAL mode enabled for content database.")
            self._connection.row_factory = sqlite3.Row
            logger.debug("Content database connection established.")
            self._init_schema()
        except sqlite3.Error as e:
            logger.critical(f"Failed to connect to content database: {e}")
            raise

    def close(self) -> None:
        """Closes the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.debug("Content database connection closed.")

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for safe transaction handling.

        Yields:
            The database connection within a transaction context.
        """
        if not self._connection:
            self.connect()
        assert self._connection is not None
        try:
            yield self._connection
            self._connection.commit()
        except Exception as e:
            self._connection.rollback()
            logger.error(f"Transaction rolled back due to error: {e}")
            raise

    def _init_schema(self) -> None:
        """Creates the documents table if it doesn't exist."""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data JSON NOT NULL DEFAULT '{}',
            created_at REAL,
            updated_at REAL,
            PRIMARY KEY (collection, id)
        );
        CREATE INDEX IF NOT EXISTS idx_documents_collection
            ON documents(collection);
        """
        try:
            with self.transaction() as conn:
                conn.executescript(schema_sql)
            logger.debug("Content schema initialized.")
        except sqlite3.Error as e:
            logger.critical(f"Schema initialization failed: {e}")
            raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """
        Reads a document.

        Returns:
            A copy of the document data, or None if it does not exist.
        """
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
        if row is None:
            return None
        return self._deserialize(row["data"])

    def list_documents(self, collection: str) -> List[Tuple[str, dict]]:
        """Returns (id, data) pairs for a collection, ordered by id."""
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? ORDER BY id",
                (collection,),
            ).fetchall()
        return [(row["id"], self._deserialize(row["data"])) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = False
    ) -> None:
        """
        Creates or overwrites a document.

        Args:
            collection: Collection name.
            doc_id: Document identifier.
            data: Document data. Keys may be dotted paths when merging.
            merge: If True, apply data on top of the existing document.
        """
        now = time.time()
        with self.transaction() as conn:
            existing = self._fetch(conn, collection, doc_id)
            if merge and existing is not None:
                document = existing
                for key, value in data.items():
                    set_path(document, key, self._resolve(value, now))
            else:
                document = {}
                for key, value in data.items():
                    set_path(document, key, self._resolve(value, now))
            conn.execute(
                """
                INSERT INTO documents (collection, id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(collection, id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (collection, doc_id, self._serialize(document), now, now),
            )
        logger.debug(f"Document written: {collection}/{doc_id}")
        self._notify(collection, doc_id, document)

    def partial_update(self, collection: str, doc_id: str, updates: dict) -> None:
        """
        Updates some fields of an existing document.

        Args:
            collection: Collection name.
            doc_id: Document identifier.
            updates: Mapping of field name or dotted path to new value.
                SERVER_TIMESTAMP values are replaced by the commit time.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            ValueError: If a field path is malformed.
            sqlite3.Error: If the write fails.
        """
        if not updates:
            return
        now = time.time()
        with self.transaction() as conn:
            document = self._fetch(conn, collection, doc_id)
            if document is None:
                raise DocumentNotFoundError(collection, doc_id)
            for key, value in updates.items():
                set_path(document, key, self._resolve(value, now))
            conn.execute(
                "UPDATE documents SET data = ?, updated_at = ? "
                "WHERE collection = ? AND id = ?",
                (self._serialize(document), now, collection, doc_id),
            )
        logger.debug(
            f"Partial update on {collection}/{doc_id}: {', '.join(updates.keys())}"
        )
        self._notify(collection, doc_id, document)

    def delete_document(self, collection: str, doc_id: str) -> bool:
        """
        Deletes a document.

        Returns:
            bool: True if a document was removed.
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Document deleted: {collection}/{doc_id}")
            self._notify(collection, doc_id, None)
        return deleted

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self, collection: str, doc_id: str, callback: DocumentCallback
    ) -> Callable[[], None]:
        """
        Registers a callback invoked with the new document data after each
        committed write (None after a delete).

        Returns:
            A function that removes the subscription.
        """
        key = (collection, doc_id)
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(key, None)

        return unsubscribe

    def _notify(self, collection: str, doc_id: str, document: Optional[dict]) -> None:
        for callback in list(self._subscribers.get((collection, doc_id), [])):
            try:
                callback(copy.deepcopy(document))
            except Exception:
                logger.exception(
                    f"Subscriber for {collection}/{doc_id} raised; ignoring."
                )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch(
        self, conn: sqlite3.Connection, collection: str, doc_id: str
    ) -> Optional[dict]:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ).fetchone()
        return None if row is None else self._deserialize(row["data"])

    @staticmethod
    def _resolve(value: Any, now: float) -> Any:
        if is_server_timestamp(value):
            return datetime.fromtimestamp(now, tz=timezone.utc).isoformat()
        return copy.deepcopy(value)

    @staticmethod
    def _serialize(data: dict) -> str:
        return json.dumps(data, ensure_ascii=False)

    @staticmethod
    def _deserialize(json_str: str) -> dict:
        if not json_str:
            return {}
        try:
            result = json.loads(json_str)
            return result if isinstance(result, dict) else {}
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Failed to parse document JSON: {e}. Returning empty dict.")
            return {}
