"""
Save Status Module.

Defines the per-field save states shared by every autosave binding, the
aggregation rule used by the unsaved-changes guard and the pure mapping
from a status to what the field status indicator shows.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from atelier.app.constants import (
    STATUS_LABEL_DIRTY,
    STATUS_LABEL_ERROR,
    STATUS_LABEL_RETRY,
    STATUS_LABEL_SAVED,
    STATUS_LABEL_SAVING,
)


class SaveStatus(str, Enum):
    """Lifecycle of a single field binding."""

    IDLE = "idle"
    DIRTY = "dirty"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


UNSAVED_STATUSES = frozenset({SaveStatus.DIRTY, SaveStatus.SAVING})


def values_equal(a: Any, b: Any) -> bool:
    """
    Compares two field values structurally.

    Values are compared through their canonical JSON form so that freshly
    built lists and dicts compare equal to the stored ones regardless of
    identity or dict key order.

    Args:
        a: First value.
        b: Second value.

    Returns:
        bool: True if both values serialize identically.
    """
    if a is b:
        return True
    try:
        return _canonical(a) == _canonical(b)
    except (TypeError, ValueError):
        return a == b


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def has_unsaved_changes(statuses: Iterable[SaveStatus]) -> bool:
    """
    Returns True if any status is dirty or saving.

    Args:
        statuses: Statuses of every active binding on a page.
    """
    return any(SaveStatus(s) in UNSAVED_STATUSES for s in statuses)


@dataclass(frozen=True)
class IndicatorState:
    """
    What a field status indicator should display.

    Attributes:
        status: The status being rendered.
        text: Visible text, empty when only a marker is shown.
        accessible_text: Text for screen readers and tooltips.
        css_class: Style hook (``field-status--<status>``).
        pulsing: True for the subtle dirty marker.
        busy: True while a write is in progress.
        retry_label: Label of the retry action, None if no retry is offered.
    """

    status: SaveStatus
    text: str
    accessible_text: str
    css_class: str
    pulsing: bool = False
    busy: bool = False
    retry_label: Optional[str] = None


def describe_status(
    status: SaveStatus,
    *,
    show_saved: bool = True,
    last_saved: Optional[datetime] = None,
    show_timestamp: bool = False,
) -> Optional[IndicatorState]:
    """
    Maps a save status to its indicator contract.

    Args:
        status: The current save status.
        show_saved: False once the saved confirmation has faded out.
        last_saved: Time of the last successful write.
        show_timestamp: Show ``HH:MM`` of the last save instead of a label.

    Returns:
        Optional[IndicatorState]: None when nothing should be rendered.
    """
    status = SaveStatus(status)
    css_class = f"field-status--{status.value}"

    if status is SaveStatus.IDLE:
        return None

    if status is SaveStatus.DIRTY:
        return IndicatorState(
            status=status,
            text="",
            accessible_text=STATUS_LABEL_DIRTY,
            css_class=css_class,
            pulsing=True,
        )

    if status is SaveStatus.SAVING:
        return IndicatorState(
            status=status,
            text="",
            accessible_text=STATUS_LABEL_SAVING,
            css_class=css_class,
            busy=True,
        )

    if status is SaveStatus.SAVED:
        if not show_saved:
            return None
        text = STATUS_LABEL_SAVED
        if show_timestamp and last_saved is not None:
            text = last_saved.strftime("%H:%M")
        return IndicatorState(
            status=status,
            text=text,
            accessible_text=STATUS_LABEL_SAVED,
            css_class=css_class,
        )

    return IndicatorState(
        status=status,
        text=STATUS_LABEL_ERROR,
        accessible_text=STATUS_LABEL_ERROR,
        css_class=css_class,
        retry_label=STATUS_LABEL_RETRY,
    )
