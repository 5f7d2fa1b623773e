"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


# Booking errors. All are client errors (400) with a distinct type name so the
# caller can tell them apart from the "error" field of the response.


class BookingValidationException(BadRequestException):
    """Malformed or inconsistent booking input."""

    def __init__(self, message: str = "Invalid booking request"):
        """Initialize with 400 status code."""
        super().__init__(message)


class MissingIdentityException(BadRequestException):
    """Neither an authenticated patient nor complete guest info was supplied."""

    def __init__(self, message: str = "Either a registered user or guest info is required"):
        """Initialize with 400 status code."""
        super().__init__(message)


class SlotNotAvailableException(BadRequestException):
    """Requested time is outside the doctor's recurring hours."""

    def __init__(self, message: str = "Time slot not valid for doctor availability"):
        """Initialize with 400 status code."""
        super().__init__(message)


class SlotTakenException(BadRequestException):
    """Requested time collides with an existing appointment."""

    def __init__(self, message: str = "This time slot is not available"):
        """Initialize with 400 status code."""
        super().__init__(message)


class SlotBlockedException(BadRequestException):
    """Requested time is manually blocked by the doctor."""

    def __init__(self, message: str = "This time slot is blocked by the doctor"):
        """Initialize with 400 status code."""
        super().__init__(message)
