import os
import pathlib
import sys

import pytest

# Ensure project root is in sys.path
repo_root = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

# Run Qt headless unless a platform is chosen explicitly
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

try:
    from PySide6.QtWidgets import QApplication
except ImportError:
    QApplication = None


@pytest.fixture(scope="session")
def qapp():
    """
    Ensure QApplication is instantiated only once.
    """
    if QApplication is None:
        yield None
        return

    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


@pytest.fixture
def content_store():
    """
    Provides a fresh in-memory content store for each test.
    """
    from atelier.services.content_store import ContentStore

    store = ContentStore(":memory:")
    store.connect()
    yield store
    store.close()


class RecordingStore:
    """
    Persistence adapter double that records partial updates.

    Failures are scripted per call through ``fail_next``; ``on_write`` runs
    inside the write, before it completes.
    """

    def __init__(self, document=None):
        self.document = dict(document or {})
        self.calls = []
        self.fail_next = 0
        self.on_write = None
        self.active_writes = 0
        self.max_concurrent = 0

    def partial_update(self, collection, doc_id, updates):
        self.active_writes += 1
        self.max_concurrent = max(self.max_concurrent, self.active_writes)
        try:
            self.calls.append((collection, doc_id, dict(updates)))
            if self.on_write is not None:
                callback, self.on_write = self.on_write, None
                callback()
            if self.fail_next:
                self.fail_next -= 1
                raise ConnectionError("network unavailable")
            self.document.update(updates)
        finally:
            self.active_writes -= 1

    def get(self, collection, doc_id):
        return dict(self.document)

    def subscribe(self, collection, doc_id, callback):
        return lambda: None


@pytest.fixture
def recording_store():
    return RecordingStore()
