"""Counselor booking service: app factory, middleware and exception handlers."""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from prometheus_client import Counter, Histogram
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from .config import SESSION_COOKIE_NAME, Settings
from .db import build_engine, build_session_factory, init_db
from .errors import BookingAppError, InternalError, SessionInvalid
from .routes import auth_router, booking_router, counselor_router, health_check, metrics, monitoring_router
from .security import AttemptLimiter, BodySizeLimitMiddleware, apply_security_headers, build_limiter
from .seed import seed_counselors
from .sessions import SessionManager
from .utils import build_password_context

# Configuración del logger
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Prometheus metrics ---
REQUEST_COUNT = Counter(
    "booking_requests_total",
    "Total requests processed by the booking service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "booking_request_latency_seconds",
    "Request latency in seconds for the booking service",
    ["endpoint"]
)
SESSIONS_INVALIDATED_COUNT = Counter(
    "booking_sessions_invalidated_total",
    "Sessions destroyed because the client fingerprint changed"
)


def _endpoint_label(path: str) -> str:
    # /api/bookings/42 -> /api/bookings/{id}, keeps label cardinality bounded
    return "/".join("{id}" if part.isdigit() else part for part in path.split("/"))


def _describe_validation_errors(errors: list) -> str:
    # Only locations and messages: the offending input may be a password.
    parts = []
    for error in errors:
        field = ".".join(str(p) for p in error.get("loc", ()) if p != "body") or "body"
        parts.append(f"{field}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts) or "Invalid request."


def _sets_session_cookie(response) -> bool:
    return any(value.startswith(f"{SESSION_COOKIE_NAME}=") for value in response.headers.getlist("set-cookie"))


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(BookingAppError)
    async def booking_error_handler(request: Request, exc: BookingAppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "VALIDATION_ERROR", "message": _describe_validation_errors(exc.errors())},
        )

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        logger.warning(f"Rate limit exceeded on {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "RATE_LIMITED", "message": "Too many requests, please try again later."},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND and request.url.path.startswith("/api/"):
            return JSONResponse(status_code=404, content={"error": "NOT_FOUND", "message": "API endpoint not found"})
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "HTTP_ERROR", "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Builds the application with its own engine, session factory and session manager.

    Nothing is module-global except the Prometheus collectors: endpoints reach
    storage, sessions and rate limits through `app.state`.
    """
    settings = settings or Settings()
    session_secret = settings.resolved_session_secret()

    logger.info(f"Initializing booking service. Environment: {settings.environment}")

    engine = build_engine(settings.database_url)
    init_db(engine)
    session_factory = build_session_factory(engine)

    db = session_factory()
    try:
        seed_counselors(db)
    finally:
        db.close()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, closing database...")
        engine.dispose()

    app = FastAPI(
        title="Counselor Booking Service",
        description="Handles user registration, sessions, and counselor slot bookings.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.pwd_context = build_password_context(
        memory_cost=settings.argon2_memory_cost,
        time_cost=settings.argon2_time_cost,
        parallelism=settings.argon2_parallelism,
    )
    app.state.session_manager = SessionManager(
        secret=session_secret,
        ttl_minutes=settings.session_ttl_minutes,
        cookie_secure=settings.cookie_secure,
    )

    # Limitador propio de esta app: contadores y flag "enabled" no se comparten entre apps
    limiter = build_limiter(settings)
    limiter.exempt(metrics)
    limiter.exempt(health_check)
    app.state.limiter = limiter
    app.state.auth_attempts = AttemptLimiter(limiter, settings.auth_rate_limit, scope="auth")
    app.state.booking_attempts = AttemptLimiter(limiter, settings.booking_rate_limit, scope="bookings")

    register_exception_handlers(app)

    # --- Middlewares (se registran del más interno al más externo) ---

    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        """
        Resolves the session cookie into `request.state.session` (a SessionRecord or None).
        A fingerprint mismatch ends the request here with SESSION_INVALID.
        """
        sessions: SessionManager = request.app.state.session_manager
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        request.state.session = None

        if session_id:
            try:
                request.state.session = sessions.validate(session_id, request.headers.get("user-agent"))
            except SessionInvalid as exc:
                SESSIONS_INVALIDATED_COUNT.inc()
                response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
                sessions.detach(response)
                return response

        response = await call_next(request)

        current = getattr(request.state, "session", None)
        if current is not None and current.session_id == session_id:
            # Expiración deslizante: se reenvía la cookie con un Max-Age nuevo
            sessions.attach(response, current)
        elif session_id and current is None and not _sets_session_cookie(response):
            # Cookie huérfana de una sesión desconocida o expirada
            sessions.detach(response)
        return response

    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)

    @app.middleware("http")
    async def security_middleware(request: Request, call_next):
        if not settings.is_development:
            forwarded_proto = request.headers.get("x-forwarded-proto")
            if request.url.scheme != "https" and forwarded_proto != "https":
                return RedirectResponse(str(request.url.replace(scheme="https")))

        response = await call_next(request)
        return apply_security_headers(response)

    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start_time = time.time()
        response = None
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
            body = InternalError().to_dict()
            if settings.is_development:
                body["message"] = str(exc)
            response = JSONResponse(status_code=500, content=body)
        finally:
            latency = time.time() - start_time
            endpoint = _endpoint_label(request.url.path)
            final_status_code = getattr(response, 'status_code', status_code)

            REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=final_status_code
            ).inc()

        return response

    # --- Rutas ---
    app.include_router(monitoring_router)
    app.include_router(auth_router)
    app.include_router(counselor_router)
    app.include_router(booking_router)

    return app


def run():
    """Entry point for `booking-service`. Production deployments sit behind a TLS-terminating proxy."""
    uvicorn.run(
        "booking_service.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        proxy_headers=True,
    )


if __name__ == "__main__":
    run()
