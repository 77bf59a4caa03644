"""
Protocol Interfaces for Loose Coupling.

This module defines Protocol interfaces (PEP 544) for the collaborators the
autosave layer talks to. Savers receive an adapter instance explicitly, so a
SQLite store, a remote client or a test double all satisfy the same contract
without inheriting from a common base.
"""

from typing import Any, Callable, Optional, Protocol, runtime_checkable

DocumentCallback = Callable[[Optional[dict]], None]


class _ServerTimestamp:
    """Sentinel replaced by the store's commit time on write."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __reduce__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@runtime_checkable
class PersistenceAdapter(Protocol):
    """
    Protocol for the content database used by field savers.

    Implementations must support dotted-path partial updates of nested
    object fields, whole-field overwrite of array fields and resolution of
    SERVER_TIMESTAMP to a store-assigned time.
    """

    def partial_update(self, collection: str, doc_id: str, updates: dict) -> None:
        """
        Update some fields of an existing document.

        Args:
            collection: Collection (path) name.
            doc_id: Document identifier.
            updates: Mapping of field name or dotted path to new value.

        Raises:
            Exception: Any failure to persist the update.
        """
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """
        Read a document.

        Returns:
            The document data, or None if it does not exist.
        """
        ...

    def subscribe(
        self, collection: str, doc_id: str, callback: DocumentCallback
    ) -> Callable[[], None]:
        """
        Register a callback invoked with the document after each change.

        Returns:
            A function that removes the subscription.
        """
        ...


def is_server_timestamp(value: Any) -> bool:
    """Returns True if value is the SERVER_TIMESTAMP sentinel."""
    return value is SERVER_TIMESTAMP
