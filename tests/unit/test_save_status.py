"""
Tests for save status aggregation and the indicator mapping.
"""

from datetime import datetime

import pytest

from atelier.core.save_status import (
    SaveStatus,
    describe_status,
    has_unsaved_changes,
    values_equal,
)


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ([], False),
        ([SaveStatus.IDLE, SaveStatus.SAVED], False),
        ([SaveStatus.IDLE, SaveStatus.ERROR], False),
        ([SaveStatus.IDLE, SaveStatus.DIRTY], True),
        ([SaveStatus.SAVED, SaveStatus.SAVING], True),
    ],
)
def test_has_unsaved_changes(statuses, expected):
    assert has_unsaved_changes(statuses) is expected


def test_has_unsaved_changes_accepts_plain_strings():
    assert has_unsaved_changes(["idle", "dirty"])


def test_values_equal_ignores_key_order_and_identity():
    assert values_equal({"a": 1, "b": [1, 2]}, {"b": [1, 2], "a": 1})
    assert values_equal(["x", "y"], ["x", "y"])
    assert not values_equal(["x", "y"], ["y", "x"])
    assert not values_equal("", None)


def test_idle_renders_nothing():
    assert describe_status(SaveStatus.IDLE) is None


def test_dirty_is_a_pulsing_marker_without_text():
    state = describe_status(SaveStatus.DIRTY)
    assert state.text == ""
    assert state.pulsing
    assert state.accessible_text == "Niet opgeslagen"
    assert state.css_class == "field-status--dirty"


def test_saving_is_busy():
    state = describe_status(SaveStatus.SAVING)
    assert state.busy
    assert state.retry_label is None


def test_saved_label_and_fade():
    assert describe_status(SaveStatus.SAVED).text == "Opgeslagen"
    assert describe_status(SaveStatus.SAVED, show_saved=False) is None


def test_saved_timestamp():
    state = describe_status(
        SaveStatus.SAVED,
        last_saved=datetime(2024, 5, 1, 9, 7),
        show_timestamp=True,
    )
    assert state.text == "09:07"


def test_error_offers_retry():
    state = describe_status(SaveStatus.ERROR)
    assert state.text == "Fout"
    assert state.retry_label == "Opnieuw"
