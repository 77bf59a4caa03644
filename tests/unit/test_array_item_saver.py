"""
Tests for array element savers and the shared array buffer.
"""

import pytest

from atelier.core.save_status import SaveStatus
from atelier.gui.autosave import ArrayFieldBuffer, ArrayItemSaver

DEBOUNCE_MS = 50


@pytest.fixture
def steps_buffer(qapp, content_store):
    content_store.set_document(
        "siteContent",
        "main",
        {"werkwijzeSteps": [{"title": "A", "description": "a"}, {"title": "B"}]},
    )
    buffer = ArrayFieldBuffer(
        content_store,
        "siteContent",
        "main",
        "werkwijzeSteps",
        items=content_store.get("siteContent", "main")["werkwijzeSteps"],
    )
    yield buffer
    buffer.dispose()


@pytest.fixture
def highlights_buffer(qapp, content_store):
    content_store.set_document(
        "siteContent", "main", {"atelierHighlights": ["one", "two", "three"]}
    )
    buffer = ArrayFieldBuffer(
        content_store,
        "siteContent",
        "main",
        "atelierHighlights",
        items=["one", "two", "three"],
    )
    yield buffer
    buffer.dispose()


def stored(content_store, field_name):
    return content_store.get("siteContent", "main")[field_name]


def test_editing_one_item_leaves_siblings_untouched(
    qtbot, steps_buffer, content_store
):
    saver = steps_buffer.saver_for(0, "title", debounce_ms=DEBOUNCE_MS)
    assert isinstance(saver, ArrayItemSaver)

    saver.set_value("A2")
    qtbot.waitUntil(lambda: saver.status is SaveStatus.SAVED, timeout=1000)

    assert stored(content_store, "werkwijzeSteps") == [
        {"title": "A2", "description": "a"},
        {"title": "B"},
    ]


def test_item_saver_skips_write_for_existing_value(qtbot, steps_buffer, content_store):
    received = []
    content_store.subscribe("siteContent", "main", received.append)
    steps_buffer.saver_for(1, "title", debounce_ms=DEBOUNCE_MS)
    qtbot.wait(DEBOUNCE_MS * 3)
    assert received == []


def test_overlapping_sibling_edits_both_land(qtbot, highlights_buffer, content_store):
    first = highlights_buffer.saver_for(0, debounce_ms=DEBOUNCE_MS)
    second = highlights_buffer.saver_for(1, debounce_ms=DEBOUNCE_MS * 4)

    first.set_value("one!")
    second.set_value("two!")

    qtbot.waitUntil(lambda: first.status is SaveStatus.SAVED, timeout=1000)
    # The first write already carried the second element's local edit.
    assert stored(content_store, "atelierHighlights") == ["one!", "two!", "three"]
    assert second.status is SaveStatus.SAVED
    assert not second.is_pending

    qtbot.wait(DEBOUNCE_MS * 6)
    assert stored(content_store, "atelierHighlights") == ["one!", "two!", "three"]


def test_append_writes_whole_array_immediately(highlights_buffer, content_store):
    assert highlights_buffer.append("four") is True
    assert stored(content_store, "atelierHighlights") == [
        "one",
        "two",
        "three",
        "four",
    ]
    assert highlights_buffer.structure_saver.status is SaveStatus.SAVED


def test_remove_reindexes_later_savers(qtbot, highlights_buffer, content_store):
    last = highlights_buffer.saver_for(2, debounce_ms=DEBOUNCE_MS)
    removed = highlights_buffer.saver_for(0, debounce_ms=DEBOUNCE_MS)

    assert highlights_buffer.remove(0) is True
    assert removed.is_disposed
    assert last.index == 1
    assert stored(content_store, "atelierHighlights") == ["two", "three"]

    last.set_value("THREE")
    qtbot.waitUntil(lambda: last.status is SaveStatus.SAVED, timeout=1000)
    assert stored(content_store, "atelierHighlights") == ["two", "THREE"]


def test_move_reorders_items_and_savers(highlights_buffer, content_store):
    saver = highlights_buffer.saver_for(0)
    assert highlights_buffer.move(0, 2) is True
    assert saver.index == 2
    assert stored(content_store, "atelierHighlights") == ["two", "three", "one"]


def test_saver_for_out_of_range_raises(highlights_buffer):
    with pytest.raises(IndexError):
        highlights_buffer.saver_for(5)


def test_write_for_vanished_index_is_an_error(qtbot, highlights_buffer):
    saver = highlights_buffer.saver_for(2, debounce_ms=DEBOUNCE_MS)
    saver.set_value("gone soon")
    # Shrink the live array behind the saver's back.
    highlights_buffer._items = ["one"]

    qtbot.waitUntil(lambda: saver.status is SaveStatus.ERROR, timeout=1000)
    assert isinstance(saver.error, IndexError)


def test_reload_rebaselines_and_drops_vanished_savers(highlights_buffer):
    keep = highlights_buffer.saver_for(0)
    drop = highlights_buffer.saver_for(2)

    highlights_buffer.reload(["uno", "dos"])

    assert keep.value == "uno"
    assert keep.status is SaveStatus.IDLE
    assert drop.is_disposed
    assert highlights_buffer.items() == ["uno", "dos"]


def test_saver_created_signal(qtbot, highlights_buffer):
    with qtbot.waitSignal(highlights_buffer.saver_created, timeout=1000) as blocker:
        highlights_buffer.saver_for(1)
    assert blocker.args[0].index == 1


def test_sub_key_edit_of_scalar_element_is_ignored(highlights_buffer):
    highlights_buffer.apply_local(0, "title", "x")
    assert highlights_buffer.items() == ["one", "two", "three"]


@pytest.fixture
def letters_buffer(qapp, recording_store):
    recording_store.document["letters"] = ["A", "B", "C"]
    buffer = ArrayFieldBuffer(
        recording_store, "siteContent", "main", "letters", items=["A", "B", "C"]
    )
    yield buffer
    buffer.dispose()


def test_failed_item_write_retries_with_current_siblings(
    letters_buffer, recording_store
):
    first = letters_buffer.saver_for(0, debounce_ms=10_000)
    second = letters_buffer.saver_for(1, debounce_ms=10_000)

    recording_store.fail_next = 1
    first.set_value("A2")
    assert first.flush() is False
    assert first.status is SaveStatus.ERROR
    assert recording_store.document["letters"] == ["A", "B", "C"]

    second.set_value("B2")
    assert first.retry() is True

    assert recording_store.document["letters"] == ["A2", "B2", "C"]
    assert first.status is SaveStatus.SAVED
    assert second.status is SaveStatus.SAVED


def test_sibling_write_settles_failed_append(letters_buffer, recording_store):
    structure = letters_buffer.structure_saver
    first = letters_buffer.saver_for(0, debounce_ms=10_000)

    recording_store.fail_next = 1
    assert letters_buffer.append("D") is False
    assert structure.status is SaveStatus.ERROR

    first.set_value("A2")
    assert first.flush() is True
    assert recording_store.document["letters"] == ["A2", "B", "C", "D"]
    assert structure.status is SaveStatus.SAVED
    assert structure.error is None

    # Nothing left to retry, so the sibling edit is never overwritten.
    assert structure.retry() is False
    assert recording_store.document["letters"] == ["A2", "B", "C", "D"]


def test_append_retry_writes_the_live_array(letters_buffer, recording_store):
    structure = letters_buffer.structure_saver
    first = letters_buffer.saver_for(0, debounce_ms=10_000)

    recording_store.fail_next = 1
    assert letters_buffer.append("D") is False
    first.set_value("A2")
    assert first.status is SaveStatus.DIRTY

    assert structure.retry() is True

    assert recording_store.document["letters"] == ["A2", "B", "C", "D"]
    assert structure.status is SaveStatus.SAVED
    assert first.status is SaveStatus.SAVED


def test_remove_retry_after_failure(letters_buffer, recording_store):
    structure = letters_buffer.structure_saver

    recording_store.fail_next = 1
    assert letters_buffer.remove(1) is False
    assert letters_buffer.items() == ["A", "C"]
    assert recording_store.document["letters"] == ["A", "B", "C"]

    assert structure.retry() is True
    assert recording_store.document["letters"] == ["A", "C"]
    assert structure.status is SaveStatus.SAVED


@pytest.mark.parametrize("failures", [0, 1])
def test_dispose_during_write_reports_nothing(
    letters_buffer, recording_store, failures
):
    saver = letters_buffer.saver_for(0, debounce_ms=10_000)
    emitted = []
    saver.status_changed.connect(emitted.append)
    saver.saved.connect(emitted.append)
    saver.error_occurred.connect(emitted.append)
    saver.array_written.connect(emitted.append)
    saver.set_value("A2")

    def dispose_mid_write():
        saver.dispose()
        emitted.clear()

    recording_store.fail_next = failures
    recording_store.on_write = dispose_mid_write

    assert saver.flush() is (failures == 0)
    assert emitted == []
    assert saver.is_disposed
    assert not saver.is_in_flight
