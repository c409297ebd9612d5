"""API endpoints: authentication, counselors, bookings, monitoring."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Path, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi.util import get_remote_address
from sqlalchemy import text

from . import schemas
from .bookings import BookingService
from .config import SESSION_COOKIE_NAME
from .credentials import CredentialStore
from .dependencies import (
    enforce_booking_rate_limit,
    get_auth_attempts,
    get_booking_service,
    get_credential_store,
    get_session_manager,
    require_auth,
)
from .errors import BookingAppError
from .security import AttemptLimiter
from .sessions import SessionManager, SessionRecord

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["Authentication"])
counselor_router = APIRouter(prefix="/api/counselors", tags=["Counselors"])
booking_router = APIRouter(prefix="/api/bookings", tags=["Bookings"])
monitoring_router = APIRouter(tags=["Monitoring"])


def _start_session(request: Request, response: Response, sessions: SessionManager, user) -> SessionRecord:
    """Replaces whatever session the request carried with a fresh one for `user`."""
    previous = getattr(request.state, "session", None)
    if previous is not None:
        sessions.destroy(previous.session_id)
    record = sessions.create(user.id, user.username, request.headers.get("user-agent"))
    request.state.session = record
    sessions.attach(response, record)
    return record


# --- Authentication ---

@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    response: Response,
    user: schemas.UserCreate,
    store: CredentialStore = Depends(get_credential_store),
    sessions: SessionManager = Depends(get_session_manager),
    attempts: AttemptLimiter = Depends(get_auth_attempts),
):
    """
    Registers a new user and signs them in.
    At most MAX_ACCOUNTS_PER_IP accounts may be created from one address.
    """
    attempts.check(request)
    logger.info(f"Registration attempt for username: {user.username}")
    try:
        new_user = store.create_user(user, get_remote_address(request))
    except BookingAppError:
        attempts.record_failure(request)
        raise
    _start_session(request, response, sessions, new_user)
    return {"success": True, "message": "Account created successfully"}


@auth_router.post("/login")
def login(
    request: Request,
    response: Response,
    credentials: schemas.LoginRequest,
    store: CredentialStore = Depends(get_credential_store),
    sessions: SessionManager = Depends(get_session_manager),
    attempts: AttemptLimiter = Depends(get_auth_attempts),
):
    """Authenticates a user and issues the session cookie. Only failed attempts count against the limit."""
    attempts.check(request)
    logger.info(f"Login attempt for user: {credentials.username}")
    try:
        user = store.verify_user(credentials.username, credentials.password)
    except BookingAppError:
        attempts.record_failure(request)
        raise
    _start_session(request, response, sessions, user)
    logger.info(f"Login successful for user_id: {user.id}")
    return {"success": True, "message": "Signed in successfully"}


@auth_router.post("/logout")
def logout(request: Request, response: Response, sessions: SessionManager = Depends(get_session_manager)):
    """Destroys the session and clears the cookie. Safe to call without a session."""
    sessions.destroy(request.cookies.get(SESSION_COOKIE_NAME))
    request.state.session = None
    sessions.detach(response)
    return {"success": True}


@auth_router.get("/session", response_model=schemas.SessionStatus, response_model_exclude_none=True)
def session_status(request: Request):
    session = getattr(request.state, "session", None)
    if session is None:
        return {"authenticated": False}
    return {"authenticated": True, "user": {"id": session.user_id, "username": session.username}}


# --- Counselors ---

@counselor_router.get("", response_model=List[schemas.CounselorResponse])
def list_counselors(service: BookingService = Depends(get_booking_service)):
    return service.list_counselors()


@counselor_router.get("/{counselor_id}/availability", response_model=schemas.AvailabilityResponse)
def counselor_availability(
    counselor_id: int = Path(..., gt=0, le=schemas.MAX_ID),
    session: SessionRecord = Depends(require_auth),
    service: BookingService = Depends(get_booking_service),
):
    return {"bookedSlots": service.availability(counselor_id)}


# --- Bookings ---

@booking_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_booking_rate_limit)],
)
def create_booking(
    booking_in: schemas.BookingCreate,
    session: SessionRecord = Depends(require_auth),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.create_booking(session.user_id, booking_in)
    return {"success": True, "message": "Booking created successfully", "bookingId": booking.id}


@booking_router.get("", response_model=List[schemas.BookingResponse])
def list_my_bookings(
    session: SessionRecord = Depends(require_auth),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings of the signed-in user, by date then time slot."""
    return service.list_for_user(session.user_id)


@booking_router.delete("/{booking_id}")
def cancel_booking(
    booking_id: int = Path(..., gt=0, le=schemas.MAX_ID),
    session: SessionRecord = Depends(require_auth),
    service: BookingService = Depends(get_booking_service),
):
    service.cancel(booking_id, session.user_id)
    return {"success": True, "message": "Booking cancelled successfully"}


# --- Health and metrics ---

@monitoring_router.get("/metrics")
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@monitoring_router.get("/health")
def health_check(request: Request, response: Response):
    """Basic health check, including a database ping."""
    db_status = "ok"
    try:
        with request.app.state.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed - database error: {e}", exc_info=True)
        db_status = "error"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "ok" if db_status == "ok" else "degraded", "service": "booking_service", "database": db_status}
