from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from timetable_editor.api.deps import get_db, get_editor_store, get_editor_store_for_read
from timetable_editor.core.exceptions import ResourceNotFoundError
from timetable_editor.schemas.editor import (
    AssignRoomRequest,
    AssignSubjectRequest,
    AssignTeacherRequest,
    ClassDataRequest,
    EditorState,
    ScheduleRequest,
    SelectClassRequest,
    SlotAssignmentResponse,
    SubjectsRequest,
    TeacherModalRequest,
    TeachersRequest,
    TimeSlotsRequest,
    TimeSlotUpdate,
    TimetableSlotsRequest,
    UiStateUpdate,
)
from timetable_editor.schemas.timetable import TimeSlot, ValidationResult
from timetable_editor.services.editor_registry import editor_registry
from timetable_editor.services.timetable_store import TimetableStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _state(store: TimetableStore) -> EditorState:
    return EditorState(
        selectedClassId=store.selected_class_id,
        selectedClass=store.selected_class,
        selectedGrade=store.selected_grade,
        selectedSection=store.selected_section,
        currentSchedule=store.current_schedule,
        hasExistingTimetable=store.has_existing_timetable,
        isLoadingTimetable=store.is_loading_timetable,
        isLoadingSubjects=store.is_loading_subjects,
        isLoadingTeachers=store.is_loading_teachers,
        timeSlots=store.time_slots,
        timetableSlots=store.timetable_slots,
        classSubjects=store.class_subjects,
        availableSubjects=store.available_subjects,
        availableTeachers=store.available_teachers,
        filteredSubjects=store.filtered_subjects(),
        filteredTeachers=store.filtered_teachers(),
        validationErrors=store.validation_errors,
        validationWarnings=store.validation_warnings,
        subjectFilter=store.subject_filter,
        teacherFilter=store.teacher_filter,
        activeTab=store.active_tab,
        isEditMode=store.is_edit_mode,
        isTeacherModalOpen=store.is_teacher_modal_open,
        selectedSlotForTeacher=store.selected_slot_for_teacher,
        draggedSubject=store.dragged_subject,
        dropZoneHighlight=store.drop_zone_highlight,
    )


def _saved(editor_id: str, store: TimetableStore, db: Session) -> EditorState:
    editor_registry.persist(editor_id, store, db)
    return _state(store)


@router.get("/state", response_model=EditorState)
def read_state(store: TimetableStore = Depends(get_editor_store_for_read)) -> EditorState:
    with store.lock:
        return _state(store)


@router.put("/class", response_model=EditorState)
def select_class(
    payload: SelectClassRequest,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.select_class(payload.classId)
        logger.info("Editor %s switched to class %s", editor_id, store.selected_class_id)
        return _saved(editor_id, store, db)


@router.put("/class-data", response_model=EditorState)
def set_class_data(
    payload: ClassDataRequest,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.set_selected_class_data(payload.classData)
        return _saved(editor_id, store, db)


@router.put("/schedule", response_model=EditorState)
def set_schedule(
    payload: ScheduleRequest,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.set_current_schedule(payload.schedule)
        if payload.hasExistingTimetable is not None:
            store.set_has_existing_timetable(payload.hasExistingTimetable)
        return _saved(editor_id, store, db)


@router.put("/subjects", response_model=EditorState)
def set_subjects(payload: SubjectsRequest, store: TimetableStore = Depends(get_editor_store)) -> EditorState:
    with store.lock:
        store.set_class_subjects(payload.classSubjects)
        available = payload.availableSubjects if payload.availableSubjects is not None else payload.classSubjects
        store.set_available_subjects(available)
        store.is_loading_subjects = False
        return _state(store)


@router.put("/teachers", response_model=EditorState)
def set_teachers(payload: TeachersRequest, store: TimetableStore = Depends(get_editor_store)) -> EditorState:
    with store.lock:
        store.set_available_teachers(payload.teachers)
        store.is_loading_teachers = False
        return _state(store)


@router.put("/time-slots", response_model=EditorState)
def replace_time_slots(
    payload: TimeSlotsRequest,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.set_time_slots(payload.timeSlots)
        return _saved(editor_id, store, db)


@router.post("/time-slots", response_model=EditorState, status_code=201)
def add_time_slot(
    payload: TimeSlot,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.add_time_slot(payload)
        return _saved(editor_id, store, db)


@router.post("/time-slots/default", response_model=EditorState)
def seed_default_time_slots(
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.load_default_time_slots()
        return _saved(editor_id, store, db)


@router.patch("/time-slots/{time_slot_id}", response_model=EditorState)
def update_time_slot(
    time_slot_id: str,
    payload: TimeSlotUpdate,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        if store.update_time_slot(time_slot_id, payload.model_dump(exclude_none=True)) is None:
            raise ResourceNotFoundError("TimeSlot", time_slot_id)
        return _saved(editor_id, store, db)


@router.delete("/time-slots/{time_slot_id}", response_model=EditorState)
def remove_time_slot(
    time_slot_id: str,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.remove_time_slot(time_slot_id)
        return _saved(editor_id, store, db)


@router.put("/slots", response_model=EditorState)
def replace_timetable_slots(
    payload: TimetableSlotsRequest,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.set_timetable_slots(payload.slots)
        store.is_loading_timetable = False
        return _saved(editor_id, store, db)


@router.post("/slots/assign-subject", response_model=SlotAssignmentResponse)
def assign_subject(
    payload: AssignSubjectRequest,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> SlotAssignmentResponse:
    with store.lock:
        slot = store.assign_subject_to_slot(payload.timeSlotId, payload.day, payload.subject)
        if slot is None:
            raise ResourceNotFoundError("TimeSlot", payload.timeSlotId)
        editor_registry.persist(editor_id, store, db)
    return SlotAssignmentResponse(slot=slot, applied=True)


def _persist_locked(editor_id: str, store: TimetableStore, db: Session) -> None:
    with store.lock:
        editor_registry.persist(editor_id, store, db)


@router.post("/slots/{slot_id}/teacher", response_model=SlotAssignmentResponse)
async def assign_teacher(
    slot_id: str,
    payload: AssignTeacherRequest,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> SlotAssignmentResponse:
    if store.find_slot(slot_id) is None:
        raise ResourceNotFoundError("TimetableSlot", slot_id)
    slot = await store.assign_teacher_to_slot(slot_id, payload.teacher)
    if slot is None:
        return SlotAssignmentResponse(slot=store.find_slot(slot_id), applied=False)
    await run_in_threadpool(_persist_locked, editor_id, store, db)
    return SlotAssignmentResponse(slot=slot, applied=True)


@router.put("/slots/{slot_id}/room", response_model=SlotAssignmentResponse)
def assign_room(
    slot_id: str,
    payload: AssignRoomRequest,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> SlotAssignmentResponse:
    with store.lock:
        slot = store.assign_room_to_slot(slot_id, payload.roomId, payload.roomName)
        if slot is None:
            raise ResourceNotFoundError("TimetableSlot", slot_id)
        editor_registry.persist(editor_id, store, db)
    return SlotAssignmentResponse(slot=slot, applied=True)


@router.delete("/slots/{slot_id}", response_model=EditorState)
def remove_assignment(
    slot_id: str,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.remove_assignment_from_slot(slot_id)
        return _saved(editor_id, store, db)


@router.post("/validate", response_model=ValidationResult)
def validate_schedule(store: TimetableStore = Depends(get_editor_store)) -> ValidationResult:
    with store.lock:
        result = store.validate_schedule()
        store.set_validation_messages(result.errors, result.warnings)
    return result


@router.patch("/ui", response_model=EditorState)
def update_ui_state(
    payload: UiStateUpdate,
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        if payload.clearDraggedSubject:
            store.set_dragged_subject(None)
        elif payload.draggedSubject is not None:
            store.set_dragged_subject(payload.draggedSubject)
        if payload.clearDropZone:
            store.set_drop_zone_highlight(None)
        elif payload.dropZoneDay is not None:
            store.set_drop_zone_highlight(payload.dropZoneDay, payload.dropZoneTimeSlotId)
        if payload.subjectFilter is not None:
            store.set_subject_filter(payload.subjectFilter)
        if payload.teacherFilter is not None:
            store.set_teacher_filter(payload.teacherFilter)
        if payload.isEditMode is not None:
            store.set_edit_mode(payload.isEditMode)
        if payload.isLoadingTimetable is not None:
            store.is_loading_timetable = payload.isLoadingTimetable
        if payload.isLoadingSubjects is not None:
            store.is_loading_subjects = payload.isLoadingSubjects
        if payload.isLoadingTeachers is not None:
            store.is_loading_teachers = payload.isLoadingTeachers
        if payload.activeTab is not None:
            store.set_active_tab(payload.activeTab)
            # activeTab is part of the saved snapshot
            return _saved(editor_id, store, db)
        return _state(store)


@router.post("/teacher-modal", response_model=EditorState)
def open_teacher_modal(payload: TeacherModalRequest, store: TimetableStore = Depends(get_editor_store)) -> EditorState:
    with store.lock:
        if not store.open_teacher_modal(payload.slotId):
            raise ResourceNotFoundError("TimetableSlot", payload.slotId)
        return _state(store)


@router.delete("/teacher-modal", response_model=EditorState)
def close_teacher_modal(store: TimetableStore = Depends(get_editor_store)) -> EditorState:
    with store.lock:
        store.close_teacher_modal()
        return _state(store)


@router.post("/reset", response_model=EditorState)
def reset_timetable(
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.reset_timetable()
        return _saved(editor_id, store, db)


@router.post("/reset-all", response_model=EditorState)
def reset_all(
    editor_id: str,
    store: TimetableStore = Depends(get_editor_store),
    db: Session = Depends(get_db),
) -> EditorState:
    with store.lock:
        store.reset_all()
        editor_registry.discard(editor_id, db)
        logger.info("Editor %s reset", editor_id)
        return _state(store)
