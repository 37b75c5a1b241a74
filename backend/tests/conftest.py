import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import pytest
from fastapi.testclient import TestClient #gives you a fake http client that can call your FastAPI routes without running a real server.
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timetable_editor.api.deps import get_db, get_schedule_collaborator
from timetable_editor.db.base import Base
from timetable_editor.main import app
from timetable_editor.schemas.timetable import (
    ConflictCheckResponse,
    ConflictCheckResult,
    SavedSlotTeacher,
    SlotSaveResponse,
)
from timetable_editor.services.editor_registry import clear_editor_registry
from timetable_editor.services.timetable_store import TimetableStore


class FakeScheduleCollaborator:
    """Stands in for the school backend; records every call it receives."""

    def __init__(self):
        self.has_conflict = False
        self.conflict_error = None
        self.conflict_response = None
        self.save_error = None
        self.save_response = None
        self.conflict_requests = []
        self.save_requests = []

    async def check_teacher_conflict(self, request):
        self.conflict_requests.append(request)
        if self.conflict_error is not None:
            raise self.conflict_error
        if self.conflict_response is not None:
            return self.conflict_response
        return ConflictCheckResponse(success=True, data=ConflictCheckResult(hasConflict=self.has_conflict))

    async def assign_teacher(self, request):
        self.save_requests.append(request)
        if self.save_error is not None:
            raise self.save_error
        if self.save_response is not None:
            return self.save_response
        return SlotSaveResponse(
            success=True,
            data=SavedSlotTeacher(teacherId=request.teacherId, hasConflict=self.has_conflict),
        )


@pytest.fixture()
def collaborator():
    return FakeScheduleCollaborator()


@pytest.fixture()
def store(collaborator):
    return TimetableStore(collaborator, collaborator)


@pytest.fixture()
def session_factory():
    engine = create_engine( #create isolate DB
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def _serve(session_factory, collaborator):
    clear_editor_registry() #cached stores from a previous test would leak state into this one.

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_schedule_collaborator] = lambda: collaborator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    clear_editor_registry()


@pytest.fixture() #test client
def client(session_factory, collaborator):
    yield from _serve(session_factory, collaborator)


@pytest.fixture()
def threaded_client(tmp_path, collaborator):
    # One connection per thread; the in-memory StaticPool connection cannot be shared by parallel requests.
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'editor.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield from _serve(sessionmaker(autocommit=False, autoflush=False, bind=engine), collaborator)
    engine.dispose()
