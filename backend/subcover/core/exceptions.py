class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Raised when a request is well-formed but semantically invalid."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ScheduleConflictError(AppError):
    """Raised when a lecture would double-book a room or a teacher."""
    def __init__(self, message: str, conflict: dict):
        super().__init__(message, status_code=409, details={"conflict": conflict})

class InvalidTransitionError(AppError):
    """Raised when a leave request or assignment has already left the state an action requires."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class SubstituteRaceError(AppError):
    """Raised when a lecture gained a substitute between candidate selection and the write."""
    def __init__(self, lecture_id: str):
        super().__init__(
            f"Lecture {lecture_id} was covered by a concurrent assignment",
            status_code=409,
            details={"lecture_id": lecture_id},
        )
