"""
Unsaved Changes Guard Module.

Aggregates the statuses of every field saver on a page and decides whether
leaving the page should warn the user.
"""

import logging
from typing import List, Optional

from PySide6.QtCore import QObject, Signal
from PySide6.QtWidgets import QMessageBox, QWidget

from atelier.app.constants import UNSAVED_CHANGES_MESSAGE, UNSAVED_CHANGES_TITLE
from atelier.core.save_status import SaveStatus, has_unsaved_changes
from atelier.gui.autosave.array_item_saver import ArrayFieldBuffer
from atelier.gui.autosave.field_saver import FieldSaver

logger = logging.getLogger(__name__)


class UnsavedChangesGuard(QObject):
    """
    Tracks field savers and warns before navigation while any of them is
    dirty or saving.
    """

    active_changed = Signal(bool)

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._savers: List[FieldSaver] = []
        self._active = False

    def track(self, saver: FieldSaver) -> None:
        """Starts following a saver's status."""
        if saver in self._savers:
            return
        self._savers.append(saver)
        saver.status_changed.connect(self._refresh)
        saver.disposed.connect(lambda s=saver: self.untrack(s))
        saver.destroyed.connect(lambda _obj=None, s=saver: self.untrack(s))
        self._refresh()

    def track_buffer(self, buffer: ArrayFieldBuffer) -> None:
        """Follows every saver of an array field, including future ones."""
        for saver in buffer.savers():
            self.track(saver)
        buffer.saver_created.connect(self.track)

    def untrack(self, saver: FieldSaver) -> None:
        """Stops following a saver. Disposed savers are untracked automatically."""
        if saver not in self._savers:
            return
        self._savers.remove(saver)
        try:
            saver.status_changed.disconnect(self._refresh)
        except (RuntimeError, TypeError):
            # Already disconnected or the C++ object is gone.
            pass
        self._refresh()

    def savers(self) -> List[FieldSaver]:
        """Tracked savers that have not been disposed."""
        return [s for s in self._savers if not s.is_disposed]

    def statuses(self) -> List[SaveStatus]:
        return [s.status for s in self.savers()]

    def has_unsaved_changes(self) -> bool:
        return has_unsaved_changes(self.statuses())

    @property
    def is_active(self) -> bool:
        return self._active

    def flush_all(self) -> int:
        """
        Writes every dirty saver immediately.

        Returns:
            int: Number of savers whose write failed.
        """
        failures = 0
        for saver in self.savers():
            if saver.status is SaveStatus.DIRTY and not saver.flush():
                failures += 1
        if failures:
            logger.warning(f"{failures} field(s) could not be saved on flush.")
        return failures

    def confirm_leave(self, parent: Optional[QWidget] = None) -> bool:
        """
        Asks the user what to do with unsaved changes.

        Args:
            parent: Parent widget for the message box.

        Returns:
            bool: True if safe to proceed (Saved, Discarded, or Clean).
                  False if the user cancelled.
        """
        if not self.has_unsaved_changes():
            return True

        reply = QMessageBox.warning(
            parent,
            UNSAVED_CHANGES_TITLE,
            UNSAVED_CHANGES_MESSAGE,
            QMessageBox.StandardButton.Save
            | QMessageBox.StandardButton.Discard
            | QMessageBox.StandardButton.Cancel,
        )

        if reply == QMessageBox.StandardButton.Save:
            self.flush_all()
            return True
        elif reply == QMessageBox.StandardButton.Discard:
            logger.info("Leaving with unsaved changes discarded.")
            return True
        else:  # Cancel
            return False

    def _refresh(self, *_args: object) -> None:
        active = self.has_unsaved_changes()
        if active != self._active:
            self._active = active
            self.active_changed.emit(active)
