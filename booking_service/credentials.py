"""Credential store: user registration and password verification."""

import logging

from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import errors, schemas
from .models import User
from .utils import get_password_hash, verify_password

logger = logging.getLogger(__name__)


def normalize_username(username: str) -> str:
    return username.strip().lower()


class CredentialStore:
    """Persists users. Every lookup and insert goes through `normalize_username`."""

    def __init__(self, db: Session, pwd_context: CryptContext, max_accounts_per_ip: int = 3):
        self.db = db
        self.pwd_context = pwd_context
        self.max_accounts_per_ip = max_accounts_per_ip

    def count_by_signup_ip(self, signup_ip: str) -> int:
        return self.db.query(func.count(User.id)).filter(User.signup_ip == signup_ip).scalar() or 0

    def get_by_username(self, username: str):
        return self.db.query(User).filter(User.username == normalize_username(username)).first()

    def create_user(self, credentials: schemas.UserCreate, signup_ip: str) -> User:
        """
        Registers a new user.

        The credentials were already validated by the schema (username 3-30
        characters, password at least 8). Raises AccessDenied when the address
        already owns `max_accounts_per_ip` accounts and DuplicateUsername when
        the storage layer rejects the (normalized) username.
        """
        username = normalize_username(credentials.username)
        if len(username) < 3:
            raise errors.ValidationError("Username must be 3-30 characters, password must be at least 8 characters.")

        if self.count_by_signup_ip(signup_ip) >= self.max_accounts_per_ip:
            logger.warning(f"Registration refused for '{username}': account limit reached for {signup_ip}.")
            raise errors.AccessDenied("Account limit reached for this IP address")

        new_user = User(
            username=username,
            password_hash=get_password_hash(self.pwd_context, credentials.password),
            signup_ip=signup_ip,
        )

        try:
            self.db.add(new_user)
            self.db.commit()
            self.db.refresh(new_user)
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Registration failed: username '{username}' already exists.")
            raise errors.DuplicateUsername()

        logger.info(f"User created with ID: {new_user.id} for username: {username}")
        return new_user

    def verify_user(self, username: str, password: str) -> User:
        """Returns the user for a valid username/password pair; the same error for any mismatch."""
        user = self.get_by_username(username)
        if not user or not verify_password(self.pwd_context, password, user.password_hash):
            logger.warning(f"Login failed for user: {normalize_username(username)}")
            raise errors.InvalidCredentials()
        return user
