from datetime import date


class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised when a submission or decision payload is malformed or not allowed for the session."""
    def __init__(self, message: str, *, code: str = "INVALID_INPUT", details: dict = None):
        super().__init__(message, status_code=400, details={"code": code, **(details or {})})


class AuthorizationError(AppError):
    """Raised when the caller is not allowed to act on a request."""
    def __init__(self, message: str = "Insufficient permissions", *, code: str = "FORBIDDEN"):
        super().__init__(message, status_code=403, details={"code": code})


class NotFoundError(AppError):
    """Raised when a requested entity is not found."""
    def __init__(self, resource_type: str, resource_id: str | None):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"code": "NOT_FOUND", "resource_type": resource_type, "resource_id": resource_id},
        )


class StateConflictError(AppError):
    """Raised when a change request is not in the state a transition expects."""
    def __init__(self, message: str, *, code: str = "INVALID_STATE", details: dict = None):
        super().__init__(message, status_code=409, details={"code": code, **(details or {})})


class ResourceConflictError(AppError):
    """Raised when a resource is already occupied at a date and timeslot."""
    def __init__(self, *, resource_id: str, session_date: date, time_slot_id: str):
        self.resource_id = resource_id
        self.session_date = session_date
        self.time_slot_id = time_slot_id
        super().__init__(
            f"Resource {resource_id} is already booked on {session_date.isoformat()} for timeslot {time_slot_id}",
            status_code=409,
            details={
                "code": "RESOURCE_NOT_AVAILABLE",
                "resource_id": resource_id,
                "session_date": session_date.isoformat(),
                "time_slot_id": time_slot_id,
            },
        )


class ScheduleConflictError(AppError):
    """Raised when a teacher or a rostered student is already busy at the target slot."""
    def __init__(self, message: str, *, code: str, details: dict = None):
        super().__init__(message, status_code=409, details={"code": code, **(details or {})})


class PayloadTooLargeError(AppError):
    """Raised when a request body exceeds the configured size limit."""
    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Request body too large ({size} bytes). Maximum allowed is {limit} bytes.",
            status_code=413,
            details={"code": "PAYLOAD_TOO_LARGE", "limit": limit},
        )


def error_payload(exc: AppError) -> dict:
    return {"message": exc.message, "details": exc.details}
