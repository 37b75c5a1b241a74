from __future__ import annotations

import logging

from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.orm import Session

from timetable_editor.models.editor_snapshot import EditorSnapshot
from timetable_editor.schemas.timetable import StoreSnapshot

logger = logging.getLogger(__name__)


def load_snapshot(db: Session, editor_id: str) -> StoreSnapshot | None:
    record = db.get(EditorSnapshot, editor_id)
    if record is None:
        return None
    try:
        return StoreSnapshot.model_validate(record.payload)
    except ValidationError:
        # A snapshot written by an older layout is not worth failing the session over.
        logger.warning("Discarding unreadable snapshot for editor %s", editor_id, exc_info=True)
        return None


def save_snapshot(db: Session, editor_id: str, snapshot: StoreSnapshot) -> None:
    payload = snapshot.model_dump(mode="json")
    record = db.get(EditorSnapshot, editor_id)
    if record is None:
        record = EditorSnapshot(editor_id=editor_id, payload=payload)
        db.add(record)
    else:
        record.payload = payload
    record.selected_class_id = snapshot.selectedClassId
    db.commit()


def delete_snapshot(db: Session, editor_id: str) -> None:
    db.execute(delete(EditorSnapshot).where(EditorSnapshot.editor_id == editor_id))
    db.commit()
