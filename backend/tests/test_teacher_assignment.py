import asyncio

import pytest

from timetable_editor.core.exceptions import CollaboratorError, SlotTimeUnresolvedError
from timetable_editor.schemas.timetable import (
    ConflictCheckResponse,
    SavedSlotTeacher,
    SlotSaveResponse,
    Subject,
    Teacher,
    TeacherUser,
    TimeSlot,
    TimetableSlot,
)
from timetable_editor.services.timetable_store import TimetableStore


def make_teacher(teacher_id: str, full_name: str = "Asha Rai") -> Teacher:
    return Teacher(id=teacher_id, employeeId=f"EMP-{teacher_id}", user=TeacherUser(fullName=full_name))


def persisted_slot(slot_id: str = "slot-1", **extra) -> TimetableSlot:
    return TimetableSlot(id=slot_id, timeSlotId="ts-1", day="monday", subjectId="sub-1", **extra)


@pytest.fixture()
def prepared_store(store):
    store.set_time_slots([TimeSlot(id="ts-1", day="monday", startTime="08:00", endTime="09:00")])
    return store


def test_conflict_check_failure_defaults_to_no_conflict(prepared_store, collaborator):
    collaborator.conflict_error = CollaboratorError("backend unreachable")
    prepared_store.set_timetable_slots([persisted_slot()])

    slot = asyncio.run(prepared_store.assign_teacher_to_slot("slot-1", make_teacher("t-1")))

    assert slot.teacherId == "t-1"
    assert slot.hasConflict is False
    assert prepared_store.find_slot("slot-1").teacherId == "t-1"


def test_unsuccessful_conflict_check_defaults_to_no_conflict(prepared_store, collaborator):
    collaborator.conflict_response = ConflictCheckResponse(success=False, error="timeout")
    slot = prepared_store.assign_subject_to_slot("ts-1", "monday", Subject(id="sub-1", name="Maths", code="M"))

    updated = asyncio.run(prepared_store.assign_teacher_to_slot(slot.id, make_teacher("t-1")))

    assert updated.hasConflict is False
    assert updated.teacherId == "t-1"


def test_failed_save_falls_back_to_local_assignment(prepared_store, collaborator):
    collaborator.has_conflict = True
    collaborator.save_response = SlotSaveResponse(success=False, error="validation failed")
    prepared_store.set_timetable_slots([persisted_slot()])

    slot = asyncio.run(prepared_store.assign_teacher_to_slot("slot-1", make_teacher("t-7", "Bilal Khan")))

    assert slot.teacherId == "t-7"
    assert slot.teacherName == "Bilal Khan"
    assert slot.hasConflict is True
    assert len(collaborator.save_requests) == 1


def test_save_exception_falls_back_to_local_assignment(prepared_store, collaborator):
    collaborator.save_error = RuntimeError("connection reset")
    prepared_store.set_timetable_slots([persisted_slot()])

    slot = asyncio.run(prepared_store.assign_teacher_to_slot("slot-1", make_teacher("t-2")))

    assert slot.teacherId == "t-2"
    assert slot.hasConflict is False


def test_persisted_slot_prefers_server_answer(prepared_store, collaborator):
    collaborator.has_conflict = False
    collaborator.save_response = SlotSaveResponse(
        success=True,
        data=SavedSlotTeacher(
            teacherId="t-1",
            hasConflict=True,
            teacher=Teacher(id="t-1", user=TeacherUser(fullName="Asha Rai (Maths)")),
        ),
    )
    prepared_store.set_timetable_slots([persisted_slot()])

    slot = asyncio.run(prepared_store.assign_teacher_to_slot("slot-1", make_teacher("t-1")))

    assert slot.hasConflict is True
    assert slot.teacherName == "Asha Rai (Maths)"
    request = collaborator.conflict_requests[0]
    assert request.excludeSlotId == "slot-1"
    assert (request.day, request.startTime, request.endTime) == ("monday", "08:00", "09:00")
    assert collaborator.save_requests[0].slotId == "slot-1"
    assert collaborator.save_requests[0].teacherId == "t-1"


def test_unsaved_slot_is_only_updated_locally(prepared_store, collaborator):
    collaborator.has_conflict = True
    slot = prepared_store.assign_subject_to_slot("ts-1", "monday", Subject(id="sub-1", name="Maths", code="M"))

    updated = asyncio.run(prepared_store.assign_teacher_to_slot(slot.id, make_teacher("t-1")))

    assert updated.teacherId == "t-1"
    assert updated.hasConflict is True
    assert collaborator.save_requests == []
    assert collaborator.conflict_requests[0].excludeSlotId is None


def test_embedded_timeslot_detail_wins_over_template(prepared_store, collaborator):
    embedded = TimeSlot(id="ts-1", day="monday", startTime="11:00", endTime="11:45")
    prepared_store.set_timetable_slots([persisted_slot(timeslot=embedded)])

    asyncio.run(prepared_store.assign_teacher_to_slot("slot-1", make_teacher("t-1")))

    request = collaborator.conflict_requests[0]
    assert (request.startTime, request.endTime) == ("11:00", "11:45")


def test_unresolvable_slot_times_raise_before_any_call(store, collaborator):
    store.set_timetable_slots([persisted_slot()])

    with pytest.raises(SlotTimeUnresolvedError):
        asyncio.run(store.assign_teacher_to_slot("slot-1", make_teacher("t-1")))

    assert collaborator.conflict_requests == []
    assert store.find_slot("slot-1").teacherId is None


def test_unknown_slot_is_ignored(prepared_store, collaborator):
    assert asyncio.run(prepared_store.assign_teacher_to_slot("slot-missing", make_teacher("t-1"))) is None
    assert collaborator.conflict_requests == []


class GatedCollaborator:
    """Holds conflict checks for the listed teachers until the gate opens."""

    def __init__(self, held_teachers):
        self.held_teachers = set(held_teachers)
        self.gate = asyncio.Event()

    async def check_teacher_conflict(self, request):
        if request.teacherId in self.held_teachers:
            await self.gate.wait()
        return ConflictCheckResponse(success=True, data={"hasConflict": request.teacherId in self.held_teachers})

    async def assign_teacher(self, request):
        return SlotSaveResponse(success=False, error="not reachable")


def test_superseded_assignment_is_discarded():
    async def scenario():
        collaborator = GatedCollaborator({"t-slow"})
        store = TimetableStore(collaborator, collaborator)
        store.set_time_slots([TimeSlot(id="ts-1", day="monday", startTime="08:00", endTime="09:00")])
        store.set_timetable_slots([persisted_slot()])

        slow = asyncio.create_task(store.assign_teacher_to_slot("slot-1", make_teacher("t-slow")))
        await asyncio.sleep(0)
        fast = await store.assign_teacher_to_slot("slot-1", make_teacher("t-fast"))
        collaborator.gate.set()
        return store, await slow, fast

    store, slow_result, fast_result = asyncio.run(scenario())

    assert slow_result is None
    assert fast_result.teacherId == "t-fast"
    assert store.find_slot("slot-1").teacherId == "t-fast"
    assert store.find_slot("slot-1").hasConflict is False


def test_in_flight_assignment_dropped_after_subject_change():
    async def scenario():
        collaborator = GatedCollaborator({"t-1"})
        store = TimetableStore(collaborator, collaborator)
        store.set_time_slots([TimeSlot(id="ts-1", day="monday", startTime="08:00", endTime="09:00")])
        slot = store.assign_subject_to_slot("ts-1", "monday", Subject(id="sub-1", name="Maths", code="M"))

        pending = asyncio.create_task(store.assign_teacher_to_slot(slot.id, make_teacher("t-1")))
        await asyncio.sleep(0)
        store.assign_subject_to_slot("ts-1", "monday", Subject(id="sub-2", name="Art", code="A"))
        collaborator.gate.set()
        return store, slot.id, await pending

    store, slot_id, result = asyncio.run(scenario())

    assert result is None
    assert store.find_slot(slot_id).subjectId == "sub-2"
    assert store.find_slot(slot_id).teacherId is None


def test_in_flight_assignment_dropped_after_class_switch():
    async def scenario():
        collaborator = GatedCollaborator({"t-1"})
        store = TimetableStore(collaborator, collaborator)
        store.select_class("class-a")
        store.set_time_slots([TimeSlot(id="ts-1", day="monday", startTime="08:00", endTime="09:00")])
        store.set_timetable_slots([persisted_slot()])

        pending = asyncio.create_task(store.assign_teacher_to_slot("slot-1", make_teacher("t-1")))
        await asyncio.sleep(0)
        store.select_class("class-b")
        store.set_timetable_slots([persisted_slot()])
        collaborator.gate.set()
        return store, await pending

    store, result = asyncio.run(scenario())

    assert result is None
    assert store.find_slot("slot-1").teacherId is None


def test_assignment_releases_store_lock(prepared_store):
    prepared_store.set_timetable_slots([persisted_slot()])
    prepared_store.open_teacher_modal("slot-1")

    asyncio.run(prepared_store.assign_teacher_to_slot("slot-1", make_teacher("t-1")))

    assert prepared_store.lock.locked() is False
    assert prepared_store.selected_slot_for_teacher.teacherId == "t-1"
