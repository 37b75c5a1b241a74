from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from timetable_editor.schemas.timetable import (
    Schedule,
    Subject,
    Teacher,
    TimeSlot,
    TimetableSlot,
    normalize_day,
    parse_time_to_minutes,
)


class SelectClassRequest(BaseModel):
    classId: str | None = None


class ClassDataRequest(BaseModel):
    classData: dict[str, Any]


class ScheduleRequest(BaseModel):
    schedule: Schedule | None = None
    hasExistingTimetable: bool | None = None


class SubjectsRequest(BaseModel):
    classSubjects: list[Subject] = Field(default_factory=list)
    availableSubjects: list[Subject] | None = None


class TeachersRequest(BaseModel):
    teachers: list[Teacher] = Field(default_factory=list)


class TimeSlotsRequest(BaseModel):
    timeSlots: list[TimeSlot] = Field(default_factory=list)


class TimeSlotUpdate(BaseModel):
    day: str | None = None
    startTime: str | None = None
    endTime: str | None = None
    type: str | None = None
    label: str | None = None

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str | None) -> str | None:
        return None if value is None else normalize_day(value)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is not None:
            parse_time_to_minutes(value)
        return value


class TimetableSlotsRequest(BaseModel):
    slots: list[TimetableSlot] = Field(default_factory=list)


class AssignSubjectRequest(BaseModel):
    timeSlotId: str = Field(min_length=1)
    day: str
    subject: Subject

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return normalize_day(value)


class AssignTeacherRequest(BaseModel):
    teacher: Teacher


class AssignRoomRequest(BaseModel):
    roomId: str | None = None
    roomName: str | None = None


class TeacherModalRequest(BaseModel):
    slotId: str


class UiStateUpdate(BaseModel):
    draggedSubject: Subject | None = None
    clearDraggedSubject: bool = False
    dropZoneDay: str | None = None
    dropZoneTimeSlotId: str | None = None
    clearDropZone: bool = False
    subjectFilter: str | None = None
    teacherFilter: str | None = None
    isEditMode: bool | None = None
    activeTab: int | None = Field(default=None, ge=0)
    isLoadingTimetable: bool | None = None
    isLoadingSubjects: bool | None = None
    isLoadingTeachers: bool | None = None


class EditorState(BaseModel):
    selectedClassId: str | None
    selectedClass: dict[str, Any] | None
    selectedGrade: int
    selectedSection: str
    currentSchedule: Schedule | None
    hasExistingTimetable: bool
    isLoadingTimetable: bool
    isLoadingSubjects: bool
    isLoadingTeachers: bool
    timeSlots: list[TimeSlot]
    timetableSlots: list[TimetableSlot]
    classSubjects: list[Subject]
    availableSubjects: list[Subject]
    availableTeachers: list[Teacher]
    filteredSubjects: list[Subject]
    filteredTeachers: list[Teacher]
    validationErrors: list[str]
    validationWarnings: list[str]
    subjectFilter: str
    teacherFilter: str
    activeTab: int
    isEditMode: bool
    isTeacherModalOpen: bool
    selectedSlotForTeacher: TimetableSlot | None
    draggedSubject: Subject | None
    dropZoneHighlight: str | None


class SlotAssignmentResponse(BaseModel):
    slot: TimetableSlot | None
    applied: bool
