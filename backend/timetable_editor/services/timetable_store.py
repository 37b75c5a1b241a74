from __future__ import annotations

import itertools
import logging
import uuid
from collections import defaultdict
from threading import Lock
from typing import Any

from timetable_editor.core.exceptions import SlotTimeUnresolvedError
from timetable_editor.schemas.timetable import (
    REGULAR_SLOT_TYPE,
    ConflictCheckRequest,
    SavedSlotTeacher,
    Schedule,
    SlotTeacherAssignment,
    StoreSnapshot,
    Subject,
    Teacher,
    TimeSlot,
    TimetableSlot,
    ValidationResult,
    normalize_slot_type,
)
from timetable_editor.services.collaborators import ConflictChecker, SlotAssignmentSaver
from timetable_editor.services.time_slots import default_time_slots

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"


def new_temporary_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temporary_id(slot_id: str) -> bool:
    return slot_id.startswith(TEMP_ID_PREFIX)


class TimetableStore:
    """In-memory state of one weekly timetable being edited for a single class.

    Every operation except `assign_teacher_to_slot` is synchronous. Fetching subjects,
    teachers and saved slots is the caller's job; results arrive through the setters.

    The store itself is not thread-safe. Callers sharing one instance across threads hold
    `lock` around each operation; `assign_teacher_to_slot` takes it itself, never across an await.
    """

    def __init__(self, conflict_checker: ConflictChecker, slot_saver: SlotAssignmentSaver) -> None:
        self._conflict_checker = conflict_checker
        self._slot_saver = slot_saver
        self._tickets = itertools.count(1)
        self._latest_ticket: dict[str, int] = {}
        self.lock = Lock()
        self._reset_state()

    def _reset_state(self) -> None:
        self.selected_class_id: str | None = None
        self.selected_class: dict[str, Any] | None = None
        self.selected_grade: int = 0
        self.selected_section: str = ""

        self.current_schedule: Schedule | None = None
        self.has_existing_timetable = False
        self.is_loading_timetable = False
        self.is_loading_subjects = False
        self.is_loading_teachers = False

        self.time_slots: list[TimeSlot] = default_time_slots()
        self.timetable_slots: list[TimetableSlot] = []
        self.class_subjects: list[Subject] = []
        self.available_subjects: list[Subject] = []
        self.available_teachers: list[Teacher] = []

        self.validation_errors: list[str] = []
        self.validation_warnings: list[str] = []

        self.subject_filter = ""
        self.teacher_filter = ""
        self.active_tab = 0
        self.is_edit_mode = False
        self.is_teacher_modal_open = False
        self.selected_slot_for_teacher: TimetableSlot | None = None
        self.dragged_subject: Subject | None = None
        self.drop_zone_highlight: str | None = None

        self._latest_ticket.clear()

    # Selection & lifecycle

    def select_class(self, class_id: str | None) -> None:
        cleaned = (class_id or "").strip()
        self.selected_class_id = cleaned or None
        self.selected_class = None
        self.selected_grade = 0
        self.selected_section = ""
        self.class_subjects = []
        self.available_subjects = []
        self.timetable_slots = []
        self.validation_errors = []
        self.validation_warnings = []
        self.current_schedule = None
        self.has_existing_timetable = False
        self.is_teacher_modal_open = False
        self.selected_slot_for_teacher = None
        self._latest_ticket.clear()
        if not self.time_slots:
            self.time_slots = default_time_slots(self.selected_class_id)

    def set_selected_class_data(self, class_data: dict[str, Any] | None) -> None:
        if not class_data:
            return
        self.selected_class = class_data
        self.selected_grade = int(class_data.get("grade") or 0)
        self.selected_section = str(class_data.get("section") or "")

    def set_current_schedule(self, schedule: Schedule | None) -> None:
        self.current_schedule = schedule

    def set_has_existing_timetable(self, value: bool) -> None:
        self.has_existing_timetable = value

    def set_class_subjects(self, subjects: list[Subject]) -> None:
        self.class_subjects = list(subjects)

    def set_available_subjects(self, subjects: list[Subject]) -> None:
        self.available_subjects = list(subjects)

    def set_available_teachers(self, teachers: list[Teacher]) -> None:
        self.available_teachers = list(teachers)

    # Time-slot template

    def add_time_slot(self, slot: TimeSlot) -> None:
        self.time_slots = [*self.time_slots, slot]

    def update_time_slot(self, time_slot_id: str, changes: dict[str, Any]) -> TimeSlot | None:
        updated: TimeSlot | None = None
        slots: list[TimeSlot] = []
        for slot in self.time_slots:
            if slot.id == time_slot_id:
                slot = TimeSlot.model_validate({**slot.model_dump(), **changes, "id": slot.id})
                updated = slot
            slots.append(slot)
        self.time_slots = slots
        return updated

    def remove_time_slot(self, time_slot_id: str) -> None:
        self.time_slots = [slot for slot in self.time_slots if slot.id != time_slot_id]
        self.timetable_slots = [slot for slot in self.timetable_slots if slot.timeSlotId != time_slot_id]

    def set_time_slots(self, slots: list[TimeSlot]) -> None:
        self.time_slots = list(slots)

    def load_default_time_slots(self) -> None:
        self.time_slots = default_time_slots(self.selected_class_id)

    def find_time_slot(self, time_slot_id: str) -> TimeSlot | None:
        return next((slot for slot in self.time_slots if slot.id == time_slot_id), None)

    # Timetable slots

    def set_timetable_slots(self, slots: list[TimetableSlot]) -> None:
        self.timetable_slots = [
            slot.model_copy(update={"type": normalize_slot_type(slot.type)}) for slot in slots
        ]
        self._latest_ticket.clear()

    def find_slot(self, slot_id: str) -> TimetableSlot | None:
        return next((slot for slot in self.timetable_slots if slot.id == slot_id), None)

    def slot_at(self, day: str, time_slot_id: str) -> TimetableSlot | None:
        day = day.strip().lower()
        return next(
            (slot for slot in self.timetable_slots if slot.timeSlotId == time_slot_id and slot.day == day),
            None,
        )

    def _replace_slot(self, slot_id: str, changes: dict[str, Any]) -> TimetableSlot | None:
        updated: TimetableSlot | None = None
        slots: list[TimetableSlot] = []
        for slot in self.timetable_slots:
            if slot.id == slot_id:
                slot = slot.model_copy(update=changes)
                updated = slot
            slots.append(slot)
        self.timetable_slots = slots
        modal_slot = self.selected_slot_for_teacher
        if updated is not None and modal_slot is not None and modal_slot.id == slot_id:
            self.selected_slot_for_teacher = updated
        return updated

    def assign_subject_to_slot(self, time_slot_id: str, day: str, subject: Subject) -> TimetableSlot | None:
        time_slot = self.find_time_slot(time_slot_id)
        if time_slot is None:
            logger.debug("Ignoring subject drop on unknown time slot %s", time_slot_id)
            return None

        slot_type = normalize_slot_type(time_slot.type)
        existing = self.slot_at(day, time_slot_id)
        if existing is not None:
            # A new subject invalidates whichever teacher was picked for the old one.
            self._latest_ticket.pop(existing.id, None)
            return self._replace_slot(
                existing.id,
                {
                    "subjectId": subject.id,
                    "subjectName": subject.name,
                    "subjectCode": subject.code,
                    "subject": subject,
                    "type": slot_type,
                    "teacherId": None,
                    "teacherName": None,
                    "teacher": None,
                    "roomId": None,
                    "roomName": None,
                    "hasConflict": False,
                },
            )

        slot = TimetableSlot(
            id=new_temporary_id(),
            timeSlotId=time_slot_id,
            day=day,
            scheduleId=self.current_schedule.id if self.current_schedule else None,
            subjectId=subject.id,
            subjectName=subject.name,
            subjectCode=subject.code,
            subject=subject,
            type=slot_type,
            hasConflict=False,
        )
        self.timetable_slots = [*self.timetable_slots, slot]
        return slot

    def _resolve_slot_times(self, slot: TimetableSlot) -> tuple[str, str]:
        if slot.timeslot is not None:
            return slot.timeslot.startTime, slot.timeslot.endTime
        time_slot = self.find_time_slot(slot.timeSlotId)
        if time_slot is None:
            raise SlotTimeUnresolvedError(slot.id, slot.timeSlotId)
        return time_slot.startTime, time_slot.endTime

    async def _check_conflict(self, request: ConflictCheckRequest) -> bool:
        try:
            response = await self._conflict_checker.check_teacher_conflict(request)
        except Exception:
            logger.warning(
                "Conflict check failed for teacher %s on %s, assuming no conflict",
                request.teacherId,
                request.day,
                exc_info=True,
            )
            return False
        if not response.success or response.data is None:
            logger.info("Conflict check for teacher %s was unsuccessful: %s", request.teacherId, response.error)
            return False
        return response.data.hasConflict

    async def _save_teacher(self, slot_id: str, teacher_id: str) -> SavedSlotTeacher | None:
        try:
            response = await self._slot_saver.assign_teacher(
                SlotTeacherAssignment(slotId=slot_id, teacherId=teacher_id)
            )
        except Exception:
            logger.warning("Saving teacher %s on slot %s failed", teacher_id, slot_id, exc_info=True)
            return None
        if not response.success or response.data is None:
            logger.info("Saving teacher %s on slot %s was unsuccessful: %s", teacher_id, slot_id, response.error)
            return None
        return response.data

    async def assign_teacher_to_slot(self, slot_id: str, teacher: Teacher) -> TimetableSlot | None:
        """Bind a teacher to a slot, preferring the backend's answer over local state.

        The conflict check always runs first. Saved slots are then persisted through the
        slot saver; unsaved (temporary id) slots keep the assignment locally until the next
        bulk save. Collaborator failures never drop the user's selection: a failed check
        means no conflict, a failed save falls back to the local teacher and conflict flag.

        Returns the updated slot, or None when the slot is unknown, disappears while the
        calls are in flight, or a newer assignment for the same slot has started since.
        """
        with self.lock:
            slot = self.find_slot(slot_id)
            if slot is None:
                logger.debug("Ignoring teacher assignment for unknown slot %s", slot_id)
                return None

            start_time, end_time = self._resolve_slot_times(slot)
            ticket = next(self._tickets)
            self._latest_ticket[slot_id] = ticket
        persisted = not is_temporary_id(slot_id)

        has_conflict = await self._check_conflict(
            ConflictCheckRequest(
                teacherId=teacher.id,
                day=slot.day,
                startTime=start_time,
                endTime=end_time,
                excludeSlotId=slot_id if persisted else None,
            )
        )

        bound_teacher: Teacher | None = teacher
        teacher_id = teacher.id
        if persisted:
            saved = await self._save_teacher(slot_id, teacher.id)
            if saved is not None:
                teacher_id = saved.teacherId
                has_conflict = saved.hasConflict
                if saved.teacher is not None:
                    bound_teacher = saved.teacher
                elif saved.teacherId != teacher.id:
                    bound_teacher = None

        with self.lock:
            if self._latest_ticket.get(slot_id) != ticket:
                logger.debug("Discarding superseded teacher assignment for slot %s", slot_id)
                return None
            del self._latest_ticket[slot_id]

            return self._replace_slot(
                slot_id,
                {
                    "teacherId": teacher_id,
                    "teacher": bound_teacher,
                    "teacherName": bound_teacher.display_name if bound_teacher else None,
                    "hasConflict": has_conflict,
                },
            )

    def assign_room_to_slot(self, slot_id: str, room_id: str | None, room_name: str | None = None) -> TimetableSlot | None:
        return self._replace_slot(slot_id, {"roomId": room_id, "roomName": room_name if room_id else None})

    def remove_assignment_from_slot(self, slot_id: str) -> None:
        self.timetable_slots = [slot for slot in self.timetable_slots if slot.id != slot_id]
        self._latest_ticket.pop(slot_id, None)
        if self.selected_slot_for_teacher is not None and self.selected_slot_for_teacher.id == slot_id:
            self.close_teacher_modal()

    def reset_timetable(self) -> None:
        self.timetable_slots = []
        self.validation_errors = []
        self.validation_warnings = []
        self._latest_ticket.clear()

    def reset_all(self) -> None:
        self._reset_state()

    # Drag-and-drop, filters and modal

    def set_dragged_subject(self, subject: Subject | None) -> None:
        self.dragged_subject = subject

    def set_drop_zone_highlight(self, day: str | None, time_slot_id: str | None = None) -> None:
        if not day or not time_slot_id:
            self.drop_zone_highlight = None
            return
        self.drop_zone_highlight = f"{day}-{time_slot_id}"

    def set_subject_filter(self, value: str) -> None:
        self.subject_filter = value

    def set_teacher_filter(self, value: str) -> None:
        self.teacher_filter = value

    def set_edit_mode(self, value: bool) -> None:
        self.is_edit_mode = value

    def set_active_tab(self, index: int) -> None:
        self.active_tab = index

    def open_teacher_modal(self, slot_id: str) -> bool:
        slot = self.find_slot(slot_id)
        if slot is None:
            return False
        self.is_teacher_modal_open = True
        self.selected_slot_for_teacher = slot
        return True

    def close_teacher_modal(self) -> None:
        self.is_teacher_modal_open = False
        self.selected_slot_for_teacher = None

    def filtered_subjects(self) -> list[Subject]:
        needle = self.subject_filter.strip().lower()
        if not needle:
            return list(self.available_subjects)
        return [
            subject
            for subject in self.available_subjects
            if needle in subject.name.lower() or needle in subject.code.lower()
        ]

    def filtered_teachers(self) -> list[Teacher]:
        needle = self.teacher_filter.strip().lower()
        if not needle:
            return list(self.available_teachers)
        matches = []
        for teacher in self.available_teachers:
            haystack = " ".join(
                part for part in (teacher.display_name, teacher.employeeId, teacher.designation) if part
            ).lower()
            if needle in haystack:
                matches.append(teacher)
        return matches

    # Validation

    def set_validation_messages(self, errors: list[str], warnings: list[str] | None = None) -> None:
        self.validation_errors = list(errors)
        self.validation_warnings = list(warnings or [])

    def validate_schedule(self) -> ValidationResult:
        """Client-side pre-check; the backend remains the authority on conflicts."""
        errors: list[str] = []
        warnings: list[str] = []

        if not self.timetable_slots:
            errors.append("No subjects assigned to the timetable")

        bookings: dict[str, list[TimetableSlot]] = defaultdict(list)
        for slot in self.timetable_slots:
            if slot.teacherId:
                bookings[f"{slot.teacherId}-{slot.day}-{slot.timeSlotId}"].append(slot)
        for slots in bookings.values():
            if len(slots) > 1:
                first = slots[0]
                teacher_name = first.teacherName or first.teacherId
                errors.append(
                    f"Teacher {teacher_name} is double-booked on {first.day} ({len(slots)} classes in one period)"
                )

        flagged = sum(1 for slot in self.timetable_slots if slot.hasConflict)
        if flagged:
            warnings.append(f"Found {flagged} teacher scheduling conflicts")
        missing_teacher = sum(
            1
            for slot in self.timetable_slots
            if slot.type == REGULAR_SLOT_TYPE and slot.subjectId and not slot.teacherId
        )
        if missing_teacher:
            warnings.append(f"Found {missing_teacher} subjects without assigned teachers")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # Snapshot boundary

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            selectedClassId=self.selected_class_id,
            selectedGrade=self.selected_grade,
            selectedSection=self.selected_section,
            currentSchedule=self.current_schedule,
            hasExistingTimetable=self.has_existing_timetable,
            timeSlots=list(self.time_slots),
            timetableSlots=list(self.timetable_slots),
            activeTab=self.active_tab,
        )

    def restore(self, snapshot: StoreSnapshot) -> None:
        self._reset_state()
        self.selected_class_id = snapshot.selectedClassId
        self.selected_grade = snapshot.selectedGrade
        self.selected_section = snapshot.selectedSection
        self.current_schedule = snapshot.currentSchedule
        self.has_existing_timetable = snapshot.hasExistingTimetable
        self.time_slots = list(snapshot.timeSlots)
        self.timetable_slots = list(snapshot.timetableSlots)
        self.active_tab = snapshot.activeTab
