from __future__ import annotations

from collections import OrderedDict
import logging
from threading import Lock

from sqlalchemy.orm import Session

from timetable_editor.core.config import get_settings
from timetable_editor.services.collaborators import ConflictChecker, SlotAssignmentSaver
from timetable_editor.services.snapshot_repository import delete_snapshot, load_snapshot, save_snapshot
from timetable_editor.services.timetable_store import TimetableStore

logger = logging.getLogger(__name__)


class EditorRegistry:
    """Live TimetableStores by editor id, restored from their saved snapshot on first use.

    At most `max_entries` stores stay cached; the least recently used one is dropped first.
    Every change is already saved, so a dropped store comes back from its snapshot.
    """

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max(1, max_entries)
        self._stores: OrderedDict[str, TimetableStore] = OrderedDict()
        self._lock = Lock()

    def __contains__(self, editor_id: str) -> bool:
        with self._lock:
            return editor_id in self._stores

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)

    def get_or_load(
        self,
        editor_id: str,
        db: Session,
        *,
        conflict_checker: ConflictChecker,
        slot_saver: SlotAssignmentSaver,
        cache: bool = True,
    ) -> TimetableStore:
        """Return the cached store for `editor_id`, loading its snapshot when not cached.

        With `cache=False` an editor that has no snapshot gets a fresh store that is not
        kept, so read-only lookups of unknown ids hold no memory.
        """
        with self._lock:
            store = self._stores.get(editor_id)
            if store is not None:
                self._stores.move_to_end(editor_id)
                return store
            store = TimetableStore(conflict_checker, slot_saver)
            snapshot = load_snapshot(db, editor_id)
            if snapshot is not None:
                store.restore(snapshot)
                logger.info(
                    "Restored editor %s (class %s, %d slots)",
                    editor_id,
                    snapshot.selectedClassId,
                    len(snapshot.timetableSlots),
                )
            elif not cache:
                return store
            self._stores[editor_id] = store
            self._evict()
            return store

    def _evict(self) -> None:
        # The newest entry and stores in the middle of a locked operation stay; a later pass drops them.
        for editor_id in list(self._stores)[:-1]:
            if len(self._stores) <= self.max_entries:
                return
            if self._stores[editor_id].lock.locked():
                continue
            del self._stores[editor_id]
            logger.debug("Evicted editor %s from the cache", editor_id)

    def persist(self, editor_id: str, store: TimetableStore, db: Session) -> None:
        save_snapshot(db, editor_id, store.snapshot())

    def discard(self, editor_id: str, db: Session) -> None:
        with self._lock:
            self._stores.pop(editor_id, None)
        delete_snapshot(db, editor_id)

    def clear(self) -> None:
        with self._lock:
            self._stores.clear()


editor_registry = EditorRegistry(max_entries=get_settings().max_cached_editors)


def clear_editor_registry() -> None:
    editor_registry.clear()
