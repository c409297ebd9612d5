"""Domain errors. Each one maps to an HTTP status and a stable error code for the JSON body."""

from typing import Optional


class BookingAppError(Exception):
    status_code = 500
    error = "INTERNAL_ERROR"
    message = "Something went wrong!"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class ValidationError(BookingAppError):
    status_code = 400
    error = "VALIDATION_ERROR"
    message = "Invalid request."


# --- 401 ---
class AuthError(BookingAppError):
    status_code = 401
    error = "UNAUTHORIZED"
    message = "Authentication required."


class SessionExpired(AuthError):
    error = "SESSION_EXPIRED"
    message = "Your session has expired. Please sign in again."


class SessionInvalid(AuthError):
    """Raised when the client fingerprint no longer matches the one bound to the session."""
    error = "SESSION_INVALID"
    message = "Session expired or invalidated"


class InvalidCredentials(AuthError):
    error = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


# --- 403 ---
class AccessDenied(BookingAppError):
    status_code = 403
    error = "ACCESS_DENIED"
    message = "Access denied."


# --- 404 ---
class NotFound(BookingAppError):
    status_code = 404
    error = "NOT_FOUND"
    message = "Not found."


class CounselorNotFound(NotFound):
    message = "Counselor not found"


class BookingNotFound(NotFound):
    message = "Booking not found or not authorized"


# --- 409 ---
class Conflict(BookingAppError):
    status_code = 409
    error = "CONFLICT"
    message = "Conflict."


class DuplicateUsername(Conflict):
    error = "USERNAME_TAKEN"
    message = "Username already exists"


class SlotTaken(Conflict):
    error = "SLOT_TAKEN"
    message = "This time slot is already booked. Please select another time."


# --- 413 / 429 ---
class PayloadTooLarge(BookingAppError):
    status_code = 413
    error = "PAYLOAD_TOO_LARGE"
    message = "Request body too large"


class RateLimited(BookingAppError):
    status_code = 429
    error = "RATE_LIMITED"
    message = "Too many requests, please try again later."


class InternalError(BookingAppError):
    pass
