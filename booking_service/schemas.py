"""Pydantic models (schemas) for request validation and response shaping."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Mayor entero que cabe en una columna INTEGER (64 bits con signo)
MAX_ID = 2**63 - 1

# --- Auth schemas ---

class UserCreate(BaseModel):
    """Data required to register a new user."""
    username: str = Field(..., min_length=3, max_length=30, strict=True)
    password: str = Field(..., min_length=8, strict=True, description="At least 8 characters")


class LoginRequest(BaseModel):
    """Login credentials. No length rules here: failures must look the same as a wrong password."""
    username: str = Field(..., strict=True)
    password: str = Field(..., strict=True)


class SessionUser(BaseModel):
    id: int
    username: str


class SessionStatus(BaseModel):
    authenticated: bool
    user: Optional[SessionUser] = None


# --- Counselor schemas ---

class CounselorResponse(BaseModel):
    id: int
    name: str
    title: str
    specialty: str
    bio: Optional[str] = None
    avatar_color: str

    model_config = ConfigDict(from_attributes=True)


class BookedSlot(BaseModel):
    date: str
    timeSlot: str


class AvailabilityResponse(BaseModel):
    bookedSlots: List[BookedSlot] = []


# --- Booking schemas ---

class BookingCreate(BaseModel):
    """Booking request. The owner comes from the session, never from the body."""
    counselor_id: int = Field(..., alias="counselorId", gt=0, le=MAX_ID, strict=True)
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$", strict=True)
    time_slot: str = Field(..., alias="timeSlot", min_length=1, max_length=50, strict=True)
    reason: Optional[str] = Field(None, max_length=4000, strict=True)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("date")
    @classmethod
    def date_must_exist(cls, value: str) -> str:
        # The pattern accepts 2025-02-30; the calendar does not.
        try:
            datetime.strptime(value, "%Y-%m-%d")
        except ValueError:
            raise ValueError("Invalid date format")
        return value


class BookingResponse(BaseModel):
    """A booking as shown to its owner, with the counselor's display data."""
    id: int
    counselor_id: int
    booking_date: str
    time_slot: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    counselor_name: str
    counselor_title: str
    avatar_color: str
