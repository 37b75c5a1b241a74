from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from timetable_editor.core.config import Settings
from timetable_editor.core.exceptions import CollaboratorError
from timetable_editor.schemas.timetable import (
    ConflictCheckRequest,
    ConflictCheckResponse,
    SlotSaveResponse,
    SlotTeacherAssignment,
)

logger = logging.getLogger(__name__)

CONFLICT_CHECK_PATH = "/api/v1/schedules/check-teacher-conflict"
ASSIGN_TEACHER_PATH = "/api/v1/timetable/assign-teacher"


class ConflictChecker(Protocol):
    async def check_teacher_conflict(self, request: ConflictCheckRequest) -> ConflictCheckResponse: ...


class SlotAssignmentSaver(Protocol):
    async def assign_teacher(self, request: SlotTeacherAssignment) -> SlotSaveResponse: ...


def _envelope(body: Any) -> dict[str, Any]:
    # The backend answers either {"success": ..., "data": ...} or the bare data object.
    if isinstance(body, dict) and "success" in body:
        return body
    return {"success": True, "data": body}


class HttpScheduleCollaborator:
    """Conflict-check and slot-save calls against the school backend."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=settings.upstream_api_url,
            timeout=settings.upstream_timeout_seconds,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = exc.response.text[:200] or exc.response.reason_phrase
            raise CollaboratorError(
                f"POST {path} failed with status {exc.response.status_code}: {message}",
                upstream_status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"POST {path} failed: {exc}") from exc
        try:
            return _envelope(response.json())
        except ValueError as exc:
            raise CollaboratorError(f"POST {path} returned a non-JSON body") from exc

    async def check_teacher_conflict(self, request: ConflictCheckRequest) -> ConflictCheckResponse:
        body = await self._post(CONFLICT_CHECK_PATH, request.model_dump(exclude_none=True))
        try:
            return ConflictCheckResponse.model_validate(body)
        except ValidationError as exc:
            logger.warning("Unexpected conflict-check payload for teacher %s: %s", request.teacherId, exc)
            return ConflictCheckResponse(success=False, error="Malformed conflict-check response")

    async def assign_teacher(self, request: SlotTeacherAssignment) -> SlotSaveResponse:
        body = await self._post(ASSIGN_TEACHER_PATH, request.model_dump())
        try:
            return SlotSaveResponse.model_validate(body)
        except ValidationError as exc:
            logger.warning("Unexpected assign-teacher payload for slot %s: %s", request.slotId, exc)
            return SlotSaveResponse(success=False, error="Malformed assign-teacher response")
