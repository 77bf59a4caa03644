"""
Site Content Editor Module.

Admin editor for the ``siteContent/main`` document. Every input autosaves
through its own field saver and shows its own status indicator; leaving
the editor with unsaved changes asks for confirmation.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import (
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPlainTextEdit,
    QPushButton,
    QScrollArea,
    QVBoxLayout,
    QWidget,
)

from atelier.app.constants import (
    AUTOSAVE_DELAY_MS,
    AUTOSAVE_LONG_TEXT_DELAY_MS,
    SITE_CONTENT_COLLECTION,
    SITE_CONTENT_DOC_ID,
)
from atelier.core.save_status import SaveStatus, values_equal
from atelier.gui.autosave import ArrayFieldBuffer, FieldSaver
from atelier.gui.mixins.unsaved_changes_guard import UnsavedChangesGuard
from atelier.gui.widgets.field_status_indicator import FieldStatusIndicator
from atelier.services.content_store import ContentStore, get_path

logger = logging.getLogger(__name__)

# (field path, label, long text)
SCALAR_FIELDS = [
    ("heroHeadline", "Hero titel", False),
    ("heroSubheadline", "Hero subtitel", False),
    ("introText", "Introductie", True),
    ("atelierText", "Atelier tekst", True),
    ("irisBio", "Over Iris", True),
    ("irisContactInfo.email", "E-mail", False),
]
HIGHLIGHTS_FIELD = "atelierHighlights"
STEPS_FIELD = "werkwijzeSteps"
STEP_KEYS = ("title", "description")

DEFAULT_SITE_CONTENT: Dict[str, Any] = {
    "heroHeadline": "",
    "heroSubheadline": "",
    "introText": "",
    "atelierText": "",
    "irisBio": "",
    "irisContactInfo": {"email": ""},
    HIGHLIGHTS_FIELD: [],
    STEPS_FIELD: [],
}

# Statuses in which a stored value may replace what the input shows.
_REBASELINE_STATUSES = (SaveStatus.IDLE, SaveStatus.SAVED)


def _make_input(long_text: bool) -> QWidget:
    if long_text:
        edit = QPlainTextEdit()
        edit.setMinimumHeight(90)
        return edit
    return QLineEdit()


def _input_text(widget: QWidget) -> str:
    if isinstance(widget, QPlainTextEdit):
        return widget.toPlainText()
    return widget.text()


def _set_input_text(widget: QWidget, text: str) -> None:
    """Updates an input without reporting the change to its saver."""
    was_blocked = widget.blockSignals(True)
    try:
        if isinstance(widget, QPlainTextEdit):
            widget.setPlainText(text)
        else:
            widget.setText(text)
    finally:
        widget.blockSignals(was_blocked)


def _connect_input(widget: QWidget, callback: Callable[[str], None]) -> None:
    if isinstance(widget, QPlainTextEdit):
        widget.textChanged.connect(lambda: callback(widget.toPlainText()))
    else:
        widget.textChanged.connect(callback)


class ArrayFieldSection(QGroupBox):
    """
    Editable list of array elements, one row per element.

    Rows are rebuilt whenever the array structure changes; each row input is
    bound to the element saver of the shared buffer.
    """

    def __init__(
        self,
        title: str,
        buffer: ArrayFieldBuffer,
        sub_keys: Optional[tuple] = None,
        new_item: Any = "",
        debounce_ms: int = AUTOSAVE_DELAY_MS,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(title, parent)
        self.buffer = buffer
        self._sub_keys = sub_keys
        self._new_item = new_item
        self._debounce_ms = debounce_ms
        self.rows: List[Dict[Optional[str], QWidget]] = []

        layout = QVBoxLayout(self)
        self._rows_layout = QVBoxLayout()
        layout.addLayout(self._rows_layout)

        footer = QHBoxLayout()
        self.structure_indicator = FieldStatusIndicator(buffer.structure_saver)
        self.add_button = QPushButton("Toevoegen")
        self.add_button.clicked.connect(self._on_add_clicked)
        footer.addWidget(self.add_button)
        footer.addWidget(self.structure_indicator)
        footer.addStretch()
        layout.addLayout(footer)

        buffer.items_changed.connect(self._rebuild_rows)
        self._rebuild_rows()

    def _rebuild_rows(self, *_args: object) -> None:
        while self._rows_layout.count():
            item = self._rows_layout.takeAt(0)
            if item.widget() is not None:
                item.widget().deleteLater()
        self.rows = []

        for index in range(len(self.buffer)):
            row_widget = QWidget(self)
            row_layout = QHBoxLayout(row_widget)
            row_layout.setContentsMargins(0, 0, 0, 0)
            inputs: Dict[Optional[str], QWidget] = {}

            for sub_key in self._sub_keys or (None,):
                saver = self.buffer.saver_for(
                    index, sub_key, debounce_ms=self._debounce_ms
                )
                widget = _make_input(sub_key == "description")
                value = self.buffer.item_value(index, sub_key)
                _set_input_text(widget, value if isinstance(value, str) else "")
                _connect_input(widget, saver.set_value)
                inputs[sub_key] = widget
                row_layout.addWidget(widget)
                row_layout.addWidget(FieldStatusIndicator(saver, parent=row_widget))

            remove_button = QPushButton("Verwijderen", row_widget)
            remove_button.clicked.connect(
                lambda _checked=False, i=index: self.buffer.remove(i)
            )
            row_layout.addWidget(remove_button)

            self._rows_layout.addWidget(row_widget)
            self.rows.append(inputs)

    def _on_add_clicked(self) -> None:
        item = dict(self._new_item) if isinstance(self._new_item, dict) else self._new_item
        self.buffer.append(item)


class SiteContentEditor(QWidget):
    """
    Editor for the global site content document.

    Loads (or creates) the document, binds one saver per field and follows
    store snapshots so that fields nobody is editing show the stored value.
    """

    def __init__(
        self,
        store: ContentStore,
        doc_id: str = SITE_CONTENT_DOC_ID,
        debounce_ms: Optional[int] = None,
        parent: Optional[QWidget] = None,
    ) -> None:
        """
        Initializes the editor.

        Args:
            store: The content store holding the document.
            doc_id: Id of the site content document.
            debounce_ms: Overrides every field's autosave delay.
            parent: The parent widget, if any.
        """
        super().__init__(parent)
        self.store = store
        self.collection = SITE_CONTENT_COLLECTION
        self.doc_id = doc_id
        self.guard = UnsavedChangesGuard(self)
        self.savers: Dict[str, FieldSaver] = {}
        self.inputs: Dict[str, QWidget] = {}
        self.indicators: Dict[str, FieldStatusIndicator] = {}

        document = self._load_document()

        outer = QVBoxLayout(self)
        scroll = QScrollArea(self)
        scroll.setWidgetResizable(True)
        content = QWidget()
        layout = QVBoxLayout(content)
        scroll.setWidget(content)
        outer.addWidget(scroll)

        self.banner = QLabel("Wijzigingen worden automatisch opgeslagen.")
        self.banner.setAlignment(Qt.AlignmentFlag.AlignLeft)
        layout.addWidget(self.banner)

        form = QFormLayout()
        for field_path, label, long_text in SCALAR_FIELDS:
            delay = debounce_ms or (
                AUTOSAVE_LONG_TEXT_DELAY_MS if long_text else AUTOSAVE_DELAY_MS
            )
            value = get_path(document, field_path, "") or ""
            saver = FieldSaver(
                store,
                self.collection,
                doc_id,
                field_path,
                initial_value=value,
                debounce_ms=delay,
                parent=self,
            )
            widget = _make_input(long_text)
            _set_input_text(widget, value)
            _connect_input(widget, saver.set_value)

            indicator = FieldStatusIndicator(saver)
            row = QHBoxLayout()
            row.addWidget(widget)
            row.addWidget(indicator)
            form.addRow(label, row)

            self.savers[field_path] = saver
            self.inputs[field_path] = widget
            self.indicators[field_path] = indicator
            self.guard.track(saver)
        layout.addLayout(form)

        self.highlights = ArrayFieldBuffer(
            store,
            self.collection,
            doc_id,
            HIGHLIGHTS_FIELD,
            items=document.get(HIGHLIGHTS_FIELD) or [],
            parent=self,
        )
        self.steps = ArrayFieldBuffer(
            store,
            self.collection,
            doc_id,
            STEPS_FIELD,
            items=document.get(STEPS_FIELD) or [],
            parent=self,
        )
        self.guard.track_buffer(self.highlights)
        self.guard.track_buffer(self.steps)

        self.highlights_section = ArrayFieldSection(
            "Atelier highlights",
            self.highlights,
            debounce_ms=debounce_ms or AUTOSAVE_DELAY_MS,
        )
        self.steps_section = ArrayFieldSection(
            "Werkwijze",
            self.steps,
            sub_keys=STEP_KEYS,
            new_item={"title": "", "description": ""},
            debounce_ms=debounce_ms or AUTOSAVE_LONG_TEXT_DELAY_MS,
        )
        layout.addWidget(self.highlights_section)
        layout.addWidget(self.steps_section)
        layout.addStretch()

        self.guard.active_changed.connect(self._on_guard_changed)
        self._unsubscribe: Optional[Callable[[], None]] = store.subscribe(
            self.collection, doc_id, self._on_snapshot
        )

    def _load_document(self) -> Dict[str, Any]:
        document = self.store.get(self.collection, self.doc_id)
        if document is None:
            logger.info(
                f"Creating missing document {self.collection}/{self.doc_id}"
            )
            self.store.set_document(
                self.collection, self.doc_id, DEFAULT_SITE_CONTENT
            )
            document = self.store.get(self.collection, self.doc_id) or {}
        return document

    def _on_snapshot(self, document: Optional[dict]) -> None:
        """Rebaselines fields that are not being edited."""
        if document is None:
            logger.warning(f"Document {self.collection}/{self.doc_id} was deleted")
            return

        for field_path, saver in self.savers.items():
            if saver.status not in _REBASELINE_STATUSES or saver.is_in_flight:
                continue
            stored = get_path(document, field_path, "") or ""
            if values_equal(stored, saver.last_saved_value):
                continue
            logger.debug(f"Field {field_path} changed in store; reloading.")
            saver.reset_baseline(stored)
            _set_input_text(self.inputs[field_path], stored)

        for buffer in (self.highlights, self.steps):
            stored_items = document.get(buffer.field_name) or []
            if values_equal(stored_items, buffer.items()):
                continue
            if any(
                s.status not in _REBASELINE_STATUSES or s.is_in_flight
                for s in buffer.savers()
            ):
                continue
            logger.debug(f"Array {buffer.field_name} changed in store; reloading.")
            buffer.reload(stored_items)

    def _on_guard_changed(self, active: bool) -> None:
        if active:
            self.banner.setText("Er zijn wijzigingen die nog niet zijn opgeslagen.")
        else:
            self.banner.setText("Wijzigingen worden automatisch opgeslagen.")

    def has_unsaved_changes(self) -> bool:
        return self.guard.has_unsaved_changes()

    def dispose(self) -> None:
        """Stops every saver and the store subscription."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for saver in self.savers.values():
            saver.dispose()
        self.highlights.dispose()
        self.steps.dispose()

    def closeEvent(self, event: QCloseEvent) -> None:
        """Asks before closing with unsaved changes."""
        if self.guard.confirm_leave(self):
            self.dispose()
            event.accept()
        else:
            event.ignore()
