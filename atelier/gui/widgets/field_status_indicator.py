"""
Field Status Indicator Module.

Provides a compact, calm per-field autosave indicator shared by every
admin editor:
- dirty: subtle amber dot
- saving: minimal busy marker
- saved: green check, auto-fades after ``auto_fade_ms``
- error: red label with inline retry
"""

from datetime import datetime
from typing import Optional

from PySide6.QtCore import QTimer, Signal
from PySide6.QtWidgets import QHBoxLayout, QLabel, QPushButton, QWidget

from atelier.app.constants import SAVED_INDICATOR_FADE_MS
from atelier.core.save_status import IndicatorState, SaveStatus, describe_status
from atelier.gui.autosave.field_saver import FieldSaver

STATUS_STYLES = {
    SaveStatus.DIRTY: "color: rgba(251, 191, 36, 0.7);",
    SaveStatus.SAVING: "color: #94a3b8;",
    SaveStatus.SAVED: "color: rgba(74, 222, 128, 0.7);",
    SaveStatus.ERROR: "color: #f87171;",
}
STATUS_MARKERS = {
    SaveStatus.DIRTY: "●",
    SaveStatus.SAVING: "…",
    SaveStatus.SAVED: "✓",
    SaveStatus.ERROR: "!",
}


class FieldStatusIndicator(QWidget):
    """
    Renders the save status of one field saver.

    The saved confirmation hides itself after a fixed delay; this is purely
    visual and does not change the saver's status.
    """

    retry_requested = Signal()

    def __init__(
        self,
        saver: Optional[FieldSaver] = None,
        auto_fade_ms: int = SAVED_INDICATOR_FADE_MS,
        show_timestamp: bool = False,
        parent: Optional[QWidget] = None,
    ) -> None:
        """
        Initializes the indicator.

        Args:
            saver: Saver to bind to. Can be bound later with bind().
            auto_fade_ms: How long the saved confirmation stays visible.
            show_timestamp: Show the save time (HH:MM) instead of a label.
            parent: The parent widget, if any.
        """
        super().__init__(parent)
        self._saver: Optional[FieldSaver] = None
        self._status = SaveStatus.IDLE
        self._last_saved: Optional[datetime] = None
        self._show_saved = False
        self._show_timestamp = show_timestamp

        layout = QHBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(4)

        self.marker_label = QLabel(self)
        self.text_label = QLabel(self)
        self.retry_button = QPushButton(self)
        self.retry_button.setFlat(True)
        self.retry_button.clicked.connect(self._on_retry_clicked)

        layout.addWidget(self.marker_label)
        layout.addWidget(self.text_label)
        layout.addWidget(self.retry_button)

        self._fade_timer = QTimer(self)
        self._fade_timer.setSingleShot(True)
        self._fade_timer.setInterval(auto_fade_ms)
        self._fade_timer.timeout.connect(self._on_fade_elapsed)

        if saver is not None:
            self.bind(saver)
        else:
            self._render()

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def state(self) -> Optional[IndicatorState]:
        """The indicator state currently rendered (None if hidden)."""
        return describe_status(
            self._status,
            show_saved=self._show_saved,
            last_saved=self._last_saved,
            show_timestamp=self._show_timestamp,
        )

    def bind(self, saver: FieldSaver) -> None:
        """Follows the status of the given saver."""
        if self._saver is not None:
            self._saver.status_changed.disconnect(self.set_status)
            self._saver.saved.disconnect(self._on_saved)
        self._saver = saver
        saver.status_changed.connect(self.set_status)
        saver.saved.connect(self._on_saved)
        self._last_saved = saver.last_saved
        self.set_status(saver.status)

    def set_status(self, status: SaveStatus) -> None:
        """Updates the rendered status."""
        self._status = SaveStatus(status)
        if self._status is SaveStatus.SAVED:
            self._start_fade()
        else:
            self._fade_timer.stop()
            self._show_saved = False
        self._render()

    def _on_saved(self, _value: object) -> None:
        if self._saver is not None:
            self._last_saved = self._saver.last_saved
        # Consecutive saves keep the SAVED status; restart the fade each time.
        if self._status is SaveStatus.SAVED:
            self._start_fade()
            self._render()

    def _start_fade(self) -> None:
        self._show_saved = True
        self._fade_timer.start()

    def _on_fade_elapsed(self) -> None:
        self._show_saved = False
        self._render()

    def _on_retry_clicked(self) -> None:
        self.retry_requested.emit()
        if self._saver is not None:
            self._saver.retry()

    def _render(self) -> None:
        state = self.state
        if state is None:
            self.setVisible(False)
            return

        style = STATUS_STYLES.get(state.status, "")
        self.marker_label.setText(STATUS_MARKERS.get(state.status, ""))
        self.marker_label.setStyleSheet(style)
        self.text_label.setText(state.text)
        self.text_label.setStyleSheet(style)
        self.text_label.setVisible(bool(state.text))
        self.setToolTip(state.accessible_text)
        self.setAccessibleName(state.accessible_text)
        self.setProperty("statusClass", state.css_class)

        if state.retry_label:
            self.retry_button.setText(state.retry_label)
            self.retry_button.setVisible(True)
        else:
            self.retry_button.setVisible(False)
        self.setVisible(True)
