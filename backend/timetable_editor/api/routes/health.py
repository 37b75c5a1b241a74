from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from timetable_editor.core.config import get_settings
from timetable_editor.db.session import engine
from timetable_editor.models.editor_snapshot import EditorSnapshot

router = APIRouter()

settings = get_settings()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    db_ok = True
    snapshot_table = EditorSnapshot.__tablename__
    table_ok = False
    db_error: str | None = None

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            table_ok = snapshot_table in set(inspect(connection).get_table_names())
    except Exception as exc:  # pragma: no cover - environment dependent
        db_ok = False
        db_error = str(exc)

    ready = db_ok and table_ok
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {
            "ok": db_ok,
            "snapshot_table": table_ok,
            "error": db_error,
        },
        "upstream": {
            "url": settings.upstream_api_url,
            "timeout_seconds": settings.upstream_timeout_seconds,
        },
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
