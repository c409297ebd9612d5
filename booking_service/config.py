"""Configuration for the counselor booking service, read from the environment (and .env)."""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Carga las variables de entorno desde .env
load_dotenv()

logger = logging.getLogger(__name__)

DEVELOPMENT = "development"

# Nombre fijo de la cookie, distinto del que usan los frameworks por defecto
SESSION_COOKIE_NAME = "counselor.sid"

DEV_SESSION_SECRET = "dev-secret-change-in-production-PLEASE"


def _get_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")


def _get_int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _database_url_from_env() -> str:
    """
    Resolves the SQLAlchemy URL.

    DATABASE_URL wins. Otherwise, if the MariaDB/MySQL credentials are all
    present, a PyMySQL URL is built from them. Falls back to a local SQLite file.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_vars = {name: os.getenv(name) for name in ("DB_USER", "DB_PASS", "DB_HOST", "DB_NAME")}
    if all(db_vars.values()):
        return f"mysql+pymysql://{db_vars['DB_USER']}:{db_vars['DB_PASS']}@{db_vars['DB_HOST']}/{db_vars['DB_NAME']}"

    if any(db_vars.values()):
        missing = [name for name, value in db_vars.items() if not value]
        logger.error(f"Missing database environment variables: {', '.join(missing)}. Falling back to SQLite.")

    return "sqlite:///./database.db"


@dataclass(frozen=True)
class Settings:
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "production").lower())
    database_url: str = field(default_factory=_database_url_from_env)

    # Sesiones
    session_secret: Optional[str] = field(default_factory=lambda: os.getenv("SESSION_SECRET"))
    session_ttl_minutes: int = field(default_factory=lambda: _get_int("SESSION_TTL_MINUTES", 30))

    # Tope de cuentas por IP (abuso en el registro)
    max_accounts_per_ip: int = field(default_factory=lambda: _get_int("MAX_ACCOUNTS_PER_IP", 3))

    # Coste de Argon2id (memoria en KiB)
    argon2_memory_cost: int = field(default_factory=lambda: _get_int("ARGON2_MEMORY_COST", 65536))
    argon2_time_cost: int = field(default_factory=lambda: _get_int("ARGON2_TIME_COST", 3))
    argon2_parallelism: int = field(default_factory=lambda: _get_int("ARGON2_PARALLELISM", 4))

    # --- Límites de peticiones (notación de slowapi / limits) ---
    rate_limit_enabled: bool = field(default_factory=lambda: _get_bool("RATE_LIMIT_ENABLED", True))
    global_rate_limit: str = field(default_factory=lambda: os.getenv("GLOBAL_RATE_LIMIT", "100 per 15 minutes"))
    # Solo cuentan los intentos fallidos de login/registro
    auth_rate_limit: str = field(default_factory=lambda: os.getenv("AUTH_RATE_LIMIT", "5 per 15 minutes"))
    booking_rate_limit: str = field(default_factory=lambda: os.getenv("BOOKING_RATE_LIMIT", "10 per minute"))

    frontend_url: Optional[str] = field(default_factory=lambda: os.getenv("FRONTEND_URL"))
    max_body_bytes: int = field(default_factory=lambda: _get_int("MAX_BODY_BYTES", 1024 * 1024))

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @property
    def cookie_secure(self) -> bool:
        return not self.is_development

    @property
    def cors_origins(self) -> list:
        if self.is_development:
            return ["https://localhost:3000", "http://localhost:5173"]
        return [self.frontend_url] if self.frontend_url else []

    def resolved_session_secret(self) -> str:
        """Returns the fingerprint key, refusing to run production without one."""
        if self.session_secret:
            return self.session_secret
        if not self.is_development:
            logger.critical("SESSION_SECRET is not defined. It must be set in production.")
            raise EnvironmentError("SESSION_SECRET must be set in production")
        logger.warning("SESSION_SECRET is not defined. Using an insecure development default.")
        return DEV_SESSION_SECRET
