"""Rate limiting, request body limits and HTTP security headers."""

import logging

from limits import parse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .config import Settings
from .errors import PayloadTooLarge, RateLimited

logger = logging.getLogger(__name__)

CSP_DIRECTIVES = {
    "default-src": ["'self'"],
    "script-src": ["'self'"],
    "style-src": ["'self'", "'unsafe-inline'"],
    "img-src": ["'self'", "data:", "https:"],
    "connect-src": ["'self'"],
    "font-src": ["'self'"],
    "object-src": ["'none'"],
    "media-src": ["'self'"],
    "frame-src": ["'none'"],
}

CONTENT_SECURITY_POLICY = "; ".join(f"{name} {' '.join(sources)}" for name, sources in CSP_DIRECTIVES.items())

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
}


def apply_security_headers(response: Response) -> Response:
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# --- Rate limiting ---

def build_limiter(settings: Settings) -> Limiter:
    """
    One limiter (and one in-memory counter storage) per application.
    The global limit is applied to every route by SlowAPIMiddleware.
    """
    return Limiter(
        key_func=get_remote_address,
        default_limits=[settings.global_rate_limit],
        enabled=settings.rate_limit_enabled,
    )


class AttemptLimiter:
    """
    A named limit checked from endpoint code, keyed by client address.

    Counters live in the app limiter's storage, so they follow its
    `enabled` flag. `hit` counts every call; `check` + `record_failure`
    count only the attempts that failed.
    """

    def __init__(self, limiter: Limiter, limit: str, scope: str):
        self.limiter = limiter
        self.item = parse(limit)
        self.scope = scope

    def check(self, request: Request) -> None:
        if not self.limiter.enabled:
            return
        if not self.limiter.limiter.test(self.item, self.scope, get_remote_address(request)):
            logger.warning(f"Rate limit '{self.scope}' exhausted for {get_remote_address(request)}")
            raise RateLimited()

    def hit(self, request: Request) -> None:
        if not self.limiter.enabled:
            return
        if not self.limiter.limiter.hit(self.item, self.scope, get_remote_address(request)):
            logger.warning(f"Rate limit '{self.scope}' exceeded for {get_remote_address(request)}")
            raise RateLimited()

    def record_failure(self, request: Request) -> None:
        if self.limiter.enabled:
            self.limiter.limiter.hit(self.item, self.scope, get_remote_address(request))


# --- Request body size ---

class BodySizeLimitMiddleware:
    """
    Rejects request bodies larger than `max_body_bytes` with 413.

    A declared Content-Length is checked up front. Bodies without one
    (chunked) are read here, counting bytes, and replayed to the app only
    if they stay under the limit.
    """

    def __init__(self, app, max_body_bytes: int):
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def _reject(self, scope, receive, send):
        response = JSONResponse(status_code=PayloadTooLarge.status_code, content=PayloadTooLarge().to_dict())
        await response(scope, receive, send)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length is not None:
            if content_length.isdigit() and int(content_length) > self.max_body_bytes:
                await self._reject(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        chunks = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body = message.get("body", b"")
            received += len(body)
            if received > self.max_body_bytes:
                logger.warning(f"Chunked request body over {self.max_body_bytes} bytes on {scope.get('path')}")
                await self._reject(scope, receive, send)
                return
            chunks.append(body)
            more_body = message.get("more_body", False)

        buffered = {"type": "http.request", "body": b"".join(chunks), "more_body": False}
        replayed = False

        async def replay():
            nonlocal replayed
            if not replayed:
                replayed = True
                return buffered
            return await receive()

        await self.app(scope, replay, send)
