from __future__ import annotations

from timetable_editor.schemas.timetable import REGULAR_SLOT_TYPE, TimeSlot

TEMPLATE_DAYS = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday")

# 12:00-13:00 stays free for lunch.
TEMPLATE_PERIODS = (
    ("08:00", "09:00"),
    ("09:00", "10:00"),
    ("10:00", "11:00"),
    ("11:00", "12:00"),
    ("13:00", "14:00"),
    ("14:00", "15:00"),
)


def default_time_slots(class_id: str | None = None) -> list[TimeSlot]:
    """Weekly template used to seed a schedule before the user customises it."""
    slots: list[TimeSlot] = []
    for day in TEMPLATE_DAYS:
        for index, (start, end) in enumerate(TEMPLATE_PERIODS, start=1):
            slots.append(
                TimeSlot(
                    id=f"ts-{day}-{index}",
                    day=day,
                    startTime=start,
                    endTime=end,
                    type=REGULAR_SLOT_TYPE,
                    label=f"Period {index}",
                    classId=class_id,
                )
            )
    return slots
