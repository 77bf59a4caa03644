"""
Autosave package.

Debounced per-field persistence used by every admin editor.
"""

from atelier.gui.autosave.array_item_saver import (
    ArrayFieldBuffer,
    ArrayItemSaver,
    ArrayStructureSaver,
)
from atelier.gui.autosave.field_saver import FieldSaver

__all__ = [
    "ArrayFieldBuffer",
    "ArrayItemSaver",
    "ArrayStructureSaver",
    "FieldSaver",
]
