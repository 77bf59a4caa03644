"""
Array-Item Saver Module.

The content store cannot patch a single array index, so a change to one
element is persisted by rewriting the whole array. ArrayFieldBuffer keeps the
latest local state of every element of one array field; each item saver
applies its edits to the buffer as they happen and composes its write from
the buffer, so a write always carries the newest local value of every
sibling element.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from PySide6.QtCore import QObject, Signal

from atelier.app.constants import AUTOSAVE_DELAY_MS, UPDATED_AT_FIELD
from atelier.core.protocols import SERVER_TIMESTAMP, PersistenceAdapter
from atelier.core.save_status import SaveStatus, values_equal
from atelier.gui.autosave.field_saver import FieldSaver

logger = logging.getLogger(__name__)

SaverKey = Tuple[int, Optional[str]]


class ArrayItemSaver(FieldSaver):
    """
    Field saver for one element (or one key of one element) of an array.

    The write step reads the full array from the buffer, replaces slot
    ``index`` (or ``element[sub_key]``) with this saver's value and writes
    the entire array back.
    """

    array_written = Signal(list)  # full array persisted by this saver

    def __init__(
        self,
        buffer: "ArrayFieldBuffer",
        index: int,
        sub_key: Optional[str] = None,
        debounce_ms: int = AUTOSAVE_DELAY_MS,
        parent: Optional[QObject] = None,
    ) -> None:
        """
        Args:
            buffer: Live state of the array field.
            index: Position of the element owned by this saver.
            sub_key: Key inside an object element, or None for scalar items.
            debounce_ms: Delay between the last change and the write.
            parent: Optional parent QObject. Defaults to the buffer.
        """
        super().__init__(
            buffer.store,
            buffer.collection,
            buffer.doc_id,
            buffer.field_name,
            initial_value=buffer.item_value(index, sub_key),
            debounce_ms=debounce_ms,
            parent=parent if parent is not None else buffer,
        )
        self._buffer = buffer
        self._index = index
        self._sub_key = sub_key
        self._written_items: List[Any] = []

    @property
    def index(self) -> int:
        return self._index

    @property
    def sub_key(self) -> Optional[str]:
        return self._sub_key

    def set_value(self, value: Any) -> None:
        if self.is_disposed:
            return
        self._buffer.apply_local(self._index, self._sub_key, value)
        super().set_value(value)

    def _set_index(self, index: int) -> None:
        self._index = index

    def _build_updates(self, value: Any) -> dict:
        items = self._buffer.items()
        if not 0 <= self._index < len(items):
            raise IndexError(
                f"{self.field_name}[{self._index}] no longer exists "
                f"(array has {len(items)} items)"
            )
        if self._sub_key is None:
            items[self._index] = copy.deepcopy(value)
        else:
            element = items[self._index]
            if not isinstance(element, dict):
                raise TypeError(
                    f"{self.field_name}[{self._index}] is not an object; "
                    f"cannot set '{self._sub_key}'"
                )
            element[self._sub_key] = copy.deepcopy(value)
        self._written_items = items
        return {self.field_name: items, UPDATED_AT_FIELD: SERVER_TIMESTAMP}

    def _on_write_succeeded(self, value: Any) -> None:
        self.array_written.emit(copy.deepcopy(self._written_items))


class ArrayStructureSaver(FieldSaver):
    """
    Whole-array saver for structural edits (append/remove/move).

    Its value always mirrors the buffer: a retry writes the live array rather
    than the one that failed, and a sibling write that already persisted the
    live array settles a failed structural write.
    """

    def __init__(
        self, buffer: "ArrayFieldBuffer", parent: Optional[QObject] = None
    ) -> None:
        super().__init__(
            buffer.store,
            buffer.collection,
            buffer.doc_id,
            buffer.field_name,
            initial_value=buffer.items(),
            parent=parent if parent is not None else buffer,
        )
        self._buffer = buffer

    def retry(self) -> bool:
        if self.status is SaveStatus.ERROR and not self.is_in_flight:
            items = self._buffer.items()
            self._value = copy.deepcopy(items)
            self._last_attempted_value = items
        return super().retry()

    def _adopt_persisted(self, value: Any) -> None:
        if values_equal(value, self._buffer.items()):
            self._value = copy.deepcopy(value)
        super()._adopt_persisted(value)


class ArrayFieldBuffer(QObject):
    """
    Shared live accessor for one array-valued field.

    Holds the in-memory array that every item saver of the field reads and
    mutates, creates the item savers, and performs structural edits
    (append/remove/move) as immediate whole-array writes.
    """

    saver_created = Signal(object)  # ArrayItemSaver
    items_changed = Signal(list)

    def __init__(
        self,
        store: PersistenceAdapter,
        collection: str,
        doc_id: Optional[str],
        field_name: str,
        items: Optional[List[Any]] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        """
        Args:
            store: Persistence adapter that performs partial updates.
            collection: Collection (path) of the target document.
            doc_id: Target document id, or None if there is no document yet.
            field_name: Name of the array field.
            items: The array as currently persisted.
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self._store = store
        self._collection = collection
        self._doc_id = doc_id
        self._field_name = field_name
        self._items: List[Any] = copy.deepcopy(items) if items else []
        self._savers: Dict[SaverKey, ArrayItemSaver] = {}

        # Whole-array saver used for structural edits.
        self._structure_saver = ArrayStructureSaver(self)
        self._structure_saver.saved.connect(
            lambda items: self._on_array_written(items, self._structure_saver)
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def store(self) -> PersistenceAdapter:
        return self._store

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def doc_id(self) -> Optional[str]:
        return self._doc_id

    @property
    def field_name(self) -> str:
        return self._field_name

    @property
    def structure_saver(self) -> ArrayStructureSaver:
        return self._structure_saver

    def items(self) -> List[Any]:
        """Returns a deep copy of the live array."""
        return copy.deepcopy(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def item_value(self, index: int, sub_key: Optional[str] = None) -> Any:
        """Returns the live value of one element (or one of its keys)."""
        element = self._items[index]
        if sub_key is None:
            return copy.deepcopy(element)
        if not isinstance(element, dict):
            raise TypeError(f"{self._field_name}[{index}] is not an object")
        return copy.deepcopy(element.get(sub_key))

    def savers(self) -> List[FieldSaver]:
        """All active savers of this field, structure saver included."""
        active: List[FieldSaver] = [self._structure_saver]
        active.extend(s for s in self._savers.values() if not s.is_disposed)
        return active

    # ------------------------------------------------------------------
    # Item savers
    # ------------------------------------------------------------------

    def saver_for(
        self,
        index: int,
        sub_key: Optional[str] = None,
        debounce_ms: int = AUTOSAVE_DELAY_MS,
    ) -> ArrayItemSaver:
        """
        Returns the saver bound to one element, creating it on first use.

        Raises:
            IndexError: If index is outside the array.
        """
        if not 0 <= index < len(self._items):
            raise IndexError(f"{self._field_name}[{index}] out of range")
        key = (index, sub_key)
        saver = self._savers.get(key)
        if saver is None or saver.is_disposed:
            saver = ArrayItemSaver(self, index, sub_key, debounce_ms=debounce_ms)
            saver.array_written.connect(
                lambda items, source=saver: self._on_array_written(items, source)
            )
            self._savers[key] = saver
            self.saver_created.emit(saver)
        return saver

    def apply_local(self, index: int, sub_key: Optional[str], value: Any) -> None:
        """Applies an element edit to the live array."""
        if not 0 <= index < len(self._items):
            logger.warning(
                f"Ignoring edit of {self._field_name}[{index}]: index out of range"
            )
            return
        if sub_key is None:
            self._items[index] = copy.deepcopy(value)
        else:
            element = self._items[index]
            if not isinstance(element, dict):
                logger.warning(
                    f"Ignoring edit of {self._field_name}[{index}].{sub_key}: "
                    f"element is not an object"
                )
                return
            element[sub_key] = copy.deepcopy(value)

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def append(self, item: Any) -> bool:
        """
        Appends an element and writes the whole array.

        Returns:
            bool: True if the write succeeded.
        """
        self._items.append(copy.deepcopy(item))
        return self._persist_structure()

    def remove(self, index: int) -> bool:
        """
        Removes an element, disposes its savers and re-indexes later ones.

        Raises:
            IndexError: If index is outside the array.

        Returns:
            bool: True if the write succeeded.
        """
        if not 0 <= index < len(self._items):
            raise IndexError(f"{self._field_name}[{index}] out of range")
        del self._items[index]

        remapped: Dict[SaverKey, ArrayItemSaver] = {}
        for (idx, sub_key), saver in self._savers.items():
            if idx == index:
                saver.dispose()
                saver.deleteLater()
                continue
            new_idx = idx - 1 if idx > index else idx
            saver._set_index(new_idx)
            remapped[(new_idx, sub_key)] = saver
        self._savers = remapped
        return self._persist_structure()

    def move(self, source: int, target: int) -> bool:
        """
        Moves an element to a new position and writes the whole array.

        Raises:
            IndexError: If either position is outside the array.
        """
        count = len(self._items)
        if not (0 <= source < count and 0 <= target < count):
            raise IndexError(f"Cannot move {self._field_name}[{source}] to {target}")
        if source == target:
            return True

        order = list(range(count))
        order.insert(target, order.pop(source))
        new_position = {old: new for new, old in enumerate(order)}
        self._items = [self._items[old] for old in order]

        remapped: Dict[SaverKey, ArrayItemSaver] = {}
        for (idx, sub_key), saver in self._savers.items():
            new_idx = new_position[idx]
            saver._set_index(new_idx)
            remapped[(new_idx, sub_key)] = saver
        self._savers = remapped
        return self._persist_structure()

    def reload(self, items: List[Any]) -> None:
        """
        Adopts the array as loaded from the store.

        Savers whose element no longer exists are disposed; all others take
        their slot's stored value as the new baseline.
        """
        self._items = copy.deepcopy(items) if items else []
        for key, saver in list(self._savers.items()):
            index, sub_key = key
            if index >= len(self._items):
                saver.dispose()
                saver.deleteLater()
                del self._savers[key]
                continue
            saver.reset_baseline(self.item_value(index, sub_key))
        self._structure_saver.reset_baseline(self.items())
        self.items_changed.emit(self.items())

    def set_doc_id(self, doc_id: Optional[str]) -> None:
        self._doc_id = doc_id
        self._structure_saver.set_doc_id(doc_id)
        for saver in self._savers.values():
            saver.set_doc_id(doc_id)

    def dispose(self) -> None:
        """Disposes every saver of this field."""
        self._structure_saver.dispose()
        for saver in self._savers.values():
            saver.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _persist_structure(self) -> bool:
        self.items_changed.emit(self.items())
        self._structure_saver.set_value(self.items())
        return self._structure_saver.flush()

    def _on_array_written(self, items: list, source: FieldSaver) -> None:
        """Lets every other saver know which values are now persisted."""
        for (index, sub_key), saver in self._savers.items():
            if saver is source or index >= len(items):
                continue
            element = items[index]
            if sub_key is None:
                saver._adopt_persisted(element)
            elif isinstance(element, dict):
                saver._adopt_persisted(element.get(sub_key))
        if source is not self._structure_saver:
            self._structure_saver._adopt_persisted(items)
