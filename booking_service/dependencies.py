"""FastAPI dependencies. Everything comes from `app.state`, populated by `create_app`."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .bookings import BookingService
from .credentials import CredentialStore
from .db import get_db
from .errors import SessionExpired
from .security import AttemptLimiter
from .sessions import SessionManager, SessionRecord
from .slots import SlotRegistry


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_credential_store(request: Request, db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(
        db,
        request.app.state.pwd_context,
        max_accounts_per_ip=request.app.state.settings.max_accounts_per_ip,
    )


def get_slot_registry(db: Session = Depends(get_db)) -> SlotRegistry:
    return SlotRegistry(db)


def get_booking_service(registry: SlotRegistry = Depends(get_slot_registry)) -> BookingService:
    return BookingService(registry)


def require_auth(request: Request) -> SessionRecord:
    """
    Returns the session attached by the session middleware.
    No authenticated session means SESSION_EXPIRED (401).
    """
    session = getattr(request.state, "session", None)
    if session is None:
        raise SessionExpired()
    return session


def get_auth_attempts(request: Request) -> AttemptLimiter:
    return request.app.state.auth_attempts


def enforce_booking_rate_limit(request: Request) -> None:
    request.app.state.booking_attempts.hit(request)
