class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource": resource_type, "id": resource_id},
        )

class SlotTimeUnresolvedError(AppError):
    """Raised when a timetable slot has no start/end time to check a teacher against."""
    def __init__(self, slot_id: str, time_slot_id: str):
        super().__init__(
            f"Cannot resolve start and end time for slot {slot_id}",
            status_code=422,
            details={"slotId": slot_id, "timeSlotId": time_slot_id},
        )

class CollaboratorError(AppError):
    """Raised when the school backend cannot be reached or answers with an error status."""
    def __init__(self, message: str, upstream_status: int | None = None):
        details = {} if upstream_status is None else {"upstreamStatus": upstream_status}
        super().__init__(message, status_code=502, details=details)
