from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DAY_VALUES = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

REGULAR_SLOT_TYPE = "regular"
LEGACY_REGULAR_TYPES = {"regular", "period"}


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def normalize_day(value: str) -> str:
    day = value.strip().lower()
    if day not in DAY_VALUES:
        raise ValueError(f"Invalid day value: {value}")
    return day


def normalize_slot_type(value: str | None) -> str:
    """Fold the legacy "period" label (and any casing of "regular") into "regular"."""
    label = (value or "").strip().lower()
    if not label or label in LEGACY_REGULAR_TYPES:
        return REGULAR_SLOT_TYPE
    return label


class TimeSlot(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    day: str
    startTime: str
    endTime: str
    type: str = REGULAR_SLOT_TYPE
    label: str | None = None
    classId: str | None = None

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return normalize_day(value)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value


class Subject(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str
    code: str
    description: str | None = None
    maxMarks: int | None = None
    passMarks: int | None = None


class TeacherUser(BaseModel):
    id: str | None = None
    fullName: str
    email: str | None = None


class Teacher(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    userId: str | None = None
    employeeId: str | None = None
    designation: str | None = None
    user: TeacherUser | None = None

    @property
    def display_name(self) -> str:
        if self.user and self.user.fullName:
            return self.user.fullName
        return self.employeeId or self.id


class Schedule(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    classId: str
    academicYearId: str | None = None
    name: str | None = None
    isActive: bool = True


class TimetableSlot(BaseModel):
    id: str = Field(min_length=1, max_length=128)
    timeSlotId: str
    day: str
    scheduleId: str | None = None
    subjectId: str | None = None
    teacherId: str | None = None
    roomId: str | None = None
    type: str = REGULAR_SLOT_TYPE
    hasConflict: bool = False
    subjectName: str | None = None
    subjectCode: str | None = None
    teacherName: str | None = None
    roomName: str | None = None
    subject: Subject | None = None
    teacher: Teacher | None = None
    timeslot: TimeSlot | None = None

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return normalize_day(value)


class ConflictCheckRequest(BaseModel):
    teacherId: str
    day: str
    startTime: str
    endTime: str
    excludeSlotId: str | None = None


class ConflictCheckResult(BaseModel):
    hasConflict: bool = False
    conflictingSlots: list[dict[str, Any]] = Field(default_factory=list)


class ConflictCheckResponse(BaseModel):
    success: bool
    data: ConflictCheckResult | None = None
    error: str | None = None


class SlotTeacherAssignment(BaseModel):
    slotId: str
    teacherId: str


class SavedSlotTeacher(BaseModel):
    model_config = ConfigDict(extra="ignore")

    teacherId: str
    hasConflict: bool = False
    teacher: Teacher | None = None


class SlotSaveResponse(BaseModel):
    success: bool
    data: SavedSlotTeacher | None = None
    error: str | None = None


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class StoreSnapshot(BaseModel):
    selectedClassId: str | None = None
    selectedGrade: int = 0
    selectedSection: str = ""
    currentSchedule: Schedule | None = None
    hasExistingTimetable: bool = False
    timeSlots: list[TimeSlot] = Field(default_factory=list)
    timetableSlots: list[TimetableSlot] = Field(default_factory=list)
    activeTab: int = 0
