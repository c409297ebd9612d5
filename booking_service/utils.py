"""Utility functions: password hashing, client fingerprinting and free-text sanitization."""

import hashlib
import hmac
import logging
from typing import Optional

import nh3
from passlib.context import CryptContext

logger = logging.getLogger(__name__)


def build_password_context(memory_cost: int = 65536, time_cost: int = 3, parallelism: int = 4) -> CryptContext:
    """
    Builds the passlib context used to hash passwords with Argon2id.

    Args:
        memory_cost: Memory in KiB (65536 = 64 MB).
        time_cost: Number of iterations.
        parallelism: Number of lanes.
    """
    return CryptContext(
        schemes=["argon2"],
        deprecated="auto",
        argon2__type="id",
        argon2__memory_cost=memory_cost,
        argon2__rounds=time_cost,
        argon2__parallelism=parallelism,
    )


def verify_password(pwd_context: CryptContext, plain_password: str, hashed_password: str) -> bool:
    """Checks a plain password against a stored hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(pwd_context: CryptContext, password: str) -> str:
    """Hashes a plain password with the context's scheme."""
    return pwd_context.hash(password)


def hash_user_agent(user_agent: Optional[str], secret: str) -> str:
    """
    Computes the client fingerprint bound to a session.

    HMAC-SHA256 of the User-Agent header keyed with the session secret, so the
    stored value cannot be precomputed from a known User-Agent string.
    """
    return hmac.new(secret.encode("utf-8"), (user_agent or "").encode("utf-8"), hashlib.sha256).hexdigest()


def fingerprints_match(expected: str, actual: str) -> bool:
    return hmac.compare_digest(expected, actual)


def sanitize_text(text: Optional[str]) -> Optional[str]:
    """
    Strips every tag and attribute from user supplied text.

    Script and style elements are dropped together with their content. Returns
    None for missing or empty input (including input that was only markup).
    """
    if not text:
        return None
    cleaned = nh3.clean(text.strip(), tags=set(), attributes={}).strip()
    return cleaned or None
