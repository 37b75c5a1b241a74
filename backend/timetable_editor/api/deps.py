from collections.abc import Generator

from fastapi import Depends, Path, Request
from sqlalchemy.orm import Session

from timetable_editor.db.session import SessionLocal
from timetable_editor.services.collaborators import HttpScheduleCollaborator
from timetable_editor.services.editor_registry import editor_registry
from timetable_editor.services.timetable_store import TimetableStore

EDITOR_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_schedule_collaborator(request: Request) -> HttpScheduleCollaborator:
    return request.app.state.schedule_collaborator


def get_editor_store(
    editor_id: str = Path(min_length=1, max_length=64, pattern=EDITOR_ID_PATTERN),
    db: Session = Depends(get_db),
    collaborator: HttpScheduleCollaborator = Depends(get_schedule_collaborator),
) -> TimetableStore:
    return editor_registry.get_or_load(
        editor_id,
        db,
        conflict_checker=collaborator,
        slot_saver=collaborator,
    )


def get_editor_store_for_read(
    editor_id: str = Path(min_length=1, max_length=64, pattern=EDITOR_ID_PATTERN),
    db: Session = Depends(get_db),
    collaborator: HttpScheduleCollaborator = Depends(get_schedule_collaborator),
) -> TimetableStore:
    return editor_registry.get_or_load(
        editor_id,
        db,
        conflict_checker=collaborator,
        slot_saver=collaborator,
        cache=False,
    )
