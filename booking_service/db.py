"""Database connection setup (engine, session factory, declarative Base) using SQLAlchemy."""

import logging
from fastapi import Request
from sqlalchemy import create_engine, event, exc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)

# Base declarativa: todos los modelos de tabla (User, Counselor, Booking) heredan de ella
Base = declarative_base()


def _enable_sqlite_pragmas(dbapi_connection, connection_record):
    # SQLite ignores foreign keys (and therefore ON DELETE CASCADE) unless asked per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def build_engine(database_url: str) -> Engine:
    """
    Creates the SQLAlchemy engine: the entry point to the database.

    SQLite connections are shared across FastAPI's threadpool workers, so
    `check_same_thread` is disabled and foreign keys are switched on for every
    connection. Other backends get `pool_pre_ping` to survive idle connections.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _enable_sqlite_pragmas)
    else:
        engine = create_engine(database_url, pool_pre_ping=True, pool_recycle=300)

    try:
        with engine.connect():
            logger.info("Database connection established.")
    except exc.SQLAlchemyError as e:
        logger.error(f"Error connecting to the database: {e}", exc_info=True)
        raise

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    # Cada petición usa su propia sesión
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Creates the tables if they don't exist."""
    # Registra las tablas en Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables verified/created.")


# --- Dependencia de FastAPI ---
def get_db(request: Request):
    """
    FastAPI dependency that yields a database session from the app's session factory.
    Rolls back on database errors and always closes the session after the request.
    """
    SessionLocal = request.app.state.session_factory
    db = SessionLocal()
    try:
        yield db
    except exc.SQLAlchemyError as e:
        logger.error(f"Database error during request: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
