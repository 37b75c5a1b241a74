from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import timetable_editor.models  # noqa: F401
from timetable_editor.api.routes import editor, health
from timetable_editor.core.config import get_settings
from timetable_editor.core.exceptions import AppError
from timetable_editor.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from timetable_editor.db.base import Base
from timetable_editor.db.session import engine
from timetable_editor.services.collaborators import HttpScheduleCollaborator

settings = get_settings()
logging.getLogger("timetable_editor").setLevel(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    app.state.schedule_collaborator = HttpScheduleCollaborator(settings)
    try:
        yield
    finally:
        await app.state.schedule_collaborator.aclose()


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )

app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(editor.router, prefix=f"{settings.api_prefix}/editor/{{editor_id}}", tags=["editor"])
