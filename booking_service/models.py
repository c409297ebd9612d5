"""Defines the 'users', 'counselors' and 'bookings' tables using SQLAlchemy ORM."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .db import Base


class User(Base):
    """
    SQLAlchemy model for the 'users' table.
    Stores the authentication data of the users.
    """
    __tablename__ = "users"
    __table_args__ = (
        # Usernames are stored lower-cased, so the UNIQUE constraint is case-insensitive.
        CheckConstraint("username = lower(username)", name="ck_users_username_lowercase"),
    )

    id = Column(Integer, primary_key=True, index=True)

    username = Column(String(30), unique=True, index=True, nullable=False)

    # Hash Argon2id; la contraseña en claro nunca se guarda
    password_hash = Column(String(255), nullable=False)

    # Se usa para limitar las cuentas creadas desde una misma IP
    signup_ip = Column(String(45), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bookings = relationship("Booking", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)


class Counselor(Base):
    """Static reference data: the counselor roster. Seeded once, read-only afterwards."""
    __tablename__ = "counselors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    title = Column(String(100), nullable=False)
    specialty = Column(String(100), nullable=False)
    bio = Column(Text, nullable=True)
    avatar_color = Column(String(7), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bookings = relationship("Booking", back_populates="counselor", cascade="all, delete-orphan", passive_deletes=True)


class Booking(Base):
    """
    SQLAlchemy model for the 'bookings' table.
    A booking occupies one slot: (counselor_id, booking_date, time_slot) is unique.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("counselor_id", "booking_date", "time_slot", name="uq_bookings_slot"),
        Index("idx_bookings_counselor_date", "counselor_id", "booking_date", "time_slot"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    counselor_id = Column(Integer, ForeignKey("counselors.id", ondelete="CASCADE"), nullable=False)

    # Fecha ISO, YYYY-MM-DD
    booking_date = Column(String(10), nullable=False)
    time_slot = Column(String(50), nullable=False)

    # Texto libre saneado: sin etiquetas HTML
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="bookings")
    counselor = relationship("Counselor", back_populates="bookings")
