"""
Field Saver Module.
Provides debounced, per-field autosave of one value into one document.

Each field saves independently: a failing or slow field never blocks the
others. Write failures are converted into the ``error`` status and are
never raised to the caller.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from atelier.app.constants import AUTOSAVE_DELAY_MS, UPDATED_AT_FIELD
from atelier.core.protocols import SERVER_TIMESTAMP, PersistenceAdapter
from atelier.core.save_status import SaveStatus, values_equal

logger = logging.getLogger(__name__)


class FieldSaver(QObject):
    """
    Debounced autosave state machine for a single field.

    States: idle -> dirty -> saving -> saved | error. The value passed at
    construction is the last-saved baseline; only later changes are written.

    A value arriving while a write is in flight is queued: once the write
    settles, the saver re-enters dirty and starts a new debounce cycle if the
    queued value differs from what was just persisted. At most one write per
    saver is ever in flight.
    """

    status_changed = Signal(object)  # SaveStatus
    saved = Signal(object)  # value written
    error_occurred = Signal(str)
    disposed = Signal()

    def __init__(
        self,
        store: PersistenceAdapter,
        collection: str,
        doc_id: Optional[str],
        field_name: str,
        initial_value: Any = None,
        debounce_ms: int = AUTOSAVE_DELAY_MS,
        parent: Optional[QObject] = None,
    ) -> None:
        """
        Initialize the field saver.

        Args:
            store: Persistence adapter that performs partial updates.
            collection: Collection (path) of the target document.
            doc_id: Target document id. None means no document yet; writes
                are skipped until set_doc_id() is called.
            field_name: Field name or dotted path inside the document.
            initial_value: The value already persisted (the baseline).
            debounce_ms: Delay between the last change and the write.
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self._store = store
        self._collection = collection
        self._doc_id = doc_id
        self._field_name = field_name

        self._value = copy.deepcopy(initial_value)
        self._last_saved_value = copy.deepcopy(initial_value)
        self._last_attempted_value: Any = None
        self._status = SaveStatus.IDLE
        self._error: Optional[Exception] = None
        self._last_saved: Optional[datetime] = None
        self._in_flight = False
        self._disposed = False

        self._debounce_timer = QTimer(self)
        self._debounce_timer.setSingleShot(True)
        self._debounce_timer.setInterval(debounce_ms)
        self._debounce_timer.timeout.connect(self._on_debounce_elapsed)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def value(self) -> Any:
        return copy.deepcopy(self._value)

    @property
    def last_saved_value(self) -> Any:
        return copy.deepcopy(self._last_saved_value)

    @property
    def last_attempted_value(self) -> Any:
        return copy.deepcopy(self._last_attempted_value)

    @property
    def last_saved(self) -> Optional[datetime]:
        return self._last_saved

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def field_name(self) -> str:
        return self._field_name

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def doc_id(self) -> Optional[str]:
        return self._doc_id

    @property
    def debounce_ms(self) -> int:
        return self._debounce_timer.interval()

    @property
    def is_pending(self) -> bool:
        """True while a debounce timer is waiting to fire."""
        return self._debounce_timer.isActive()

    @property
    def is_in_flight(self) -> bool:
        return self._in_flight

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_value(self, value: Any) -> None:
        """
        Reports the current value of the bound input.

        Args:
            value: Any JSON-serializable value.
        """
        if self._disposed:
            return
        self._value = copy.deepcopy(value)
        if self._in_flight:
            logger.debug(f"[{self._field_name}] Value queued behind in-flight write.")
            return
        self._evaluate()

    def flush(self) -> bool:
        """
        Cancels the pending debounce and writes the current value now.

        Returns:
            bool: True if the write succeeded.
        """
        self._debounce_timer.stop()
        if self._disposed:
            return False
        if self._in_flight:
            logger.debug(f"[{self._field_name}] Flush ignored; write already in flight.")
            return False
        return self._write(self._value)

    def retry(self) -> bool:
        """
        Re-issues the last failed write with the exact value that failed.

        Returns:
            bool: True if the write succeeded. False if the saver was not in
            the error state or the write failed again.
        """
        if self._disposed or self._in_flight or self._status is not SaveStatus.ERROR:
            return False
        logger.info(f"[{self._field_name}] Retrying failed save.")
        return self._write(self._last_attempted_value)

    def reset_baseline(self, value: Any) -> None:
        """
        Adopts a value loaded from the store without writing it.

        Cancels any pending write and returns to idle.

        Args:
            value: The value now known to be persisted.
        """
        if self._disposed:
            return
        if self._in_flight:
            logger.debug(f"[{self._field_name}] Baseline reset skipped during write.")
            return
        self._debounce_timer.stop()
        self._value = copy.deepcopy(value)
        self._last_saved_value = copy.deepcopy(value)
        self._error = None
        self._set_status(SaveStatus.IDLE)

    def set_doc_id(self, doc_id: Optional[str]) -> None:
        """
        Binds the saver to a (newly created) document.
        A change waiting for a document restarts its debounce.
        """
        self._doc_id = doc_id
        if doc_id is not None and self._status is SaveStatus.DIRTY:
            self._debounce_timer.start()

    def set_debounce_ms(self, debounce_ms: int) -> None:
        self._debounce_timer.setInterval(debounce_ms)

    def dispose(self) -> None:
        """
        Stops the saver when its input goes away.

        A write already in flight is not cancelled, but its outcome is no
        longer reported.
        """
        if self._disposed:
            return
        self._disposed = True
        self._debounce_timer.stop()
        logger.debug(f"[{self._field_name}] Saver disposed.")
        self.disposed.emit()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evaluate(self) -> None:
        """Moves between idle/dirty after a value change."""
        if values_equal(self._value, self._last_saved_value):
            if self._status is SaveStatus.DIRTY:
                self._debounce_timer.stop()
                self._set_status(SaveStatus.IDLE)
            return

        self._set_status(SaveStatus.DIRTY)
        self._debounce_timer.start()

    def _on_debounce_elapsed(self) -> None:
        if self._disposed or self._in_flight:
            return
        self._write(self._value)

    def _build_updates(self, value: Any) -> dict:
        """Returns the partial update payload for one write."""
        return {self._field_name: value, UPDATED_AT_FIELD: SERVER_TIMESTAMP}

    def _write(self, value: Any) -> bool:
        if self._doc_id is None:
            logger.debug(f"[{self._field_name}] No document bound; write skipped.")
            return False

        value = copy.deepcopy(value)
        self._in_flight = True
        self._last_attempted_value = copy.deepcopy(value)
        self._error = None
        self._set_status(SaveStatus.SAVING)

        try:
            self._store.partial_update(
                self._collection, self._doc_id, self._build_updates(value)
            )
        except Exception as e:
            self._in_flight = False
            logger.error(f"Error saving field {self._field_name}: {e}")
            if self._disposed:
                return False
            self._error = e
            self._set_status(SaveStatus.ERROR)
            self.error_occurred.emit(str(e))
            if not values_equal(self._value, value):
                # A newer value arrived during the failed write.
                self._evaluate()
            return False

        self._in_flight = False
        self._last_saved_value = value
        if self._disposed:
            return True

        self._last_saved = datetime.now()
        logger.debug(f"[{self._field_name}] Saved.")
        self._set_status(SaveStatus.SAVED)
        self._on_write_succeeded(value)
        self.saved.emit(copy.deepcopy(value))
        if not values_equal(self._value, self._last_saved_value):
            self._evaluate()
        return True

    def _on_write_succeeded(self, value: Any) -> None:
        """Hook for subclasses; called after a successful write."""

    def _adopt_persisted(self, value: Any) -> None:
        """
        Records that another writer persisted ``value`` for this field.

        A pending or failed change that matches it is considered saved.
        """
        if self._disposed or self._in_flight:
            return
        self._last_saved_value = copy.deepcopy(value)
        if self._status in (SaveStatus.DIRTY, SaveStatus.ERROR) and values_equal(
            self._value, value
        ):
            self._debounce_timer.stop()
            self._error = None
            self._last_saved = datetime.now()
            self._set_status(SaveStatus.SAVED)

    def _set_status(self, status: SaveStatus) -> None:
        if status is self._status:
            return
        logger.debug(f"[{self._field_name}] {self._status.value} -> {status.value}")
        self._status = status
        if not self._disposed:
            self.status_changed.emit(status)
