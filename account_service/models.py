"""SQLAlchemy ORM models for the 'users' and 'email_verifications' tables."""

from sqlalchemy import Column, Integer, String, DateTime, func
from account_service.db import Base


class User(Base):
    """
    SQLAlchemy model for the 'users' table.
    Stores the account credentials and the loyalty point balance.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Unique login identifier, compared case-sensitively as stored
    email = Column(String(255), unique=True, index=True, nullable=False)

    # bcrypt hash; the plaintext password is never stored
    hashed_password = Column(String(255), nullable=False)

    point = Column(Integer, nullable=False, default=0)

    # Embedded in every session token; bumping it revokes older tokens
    session_version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class EmailVerification(Base):
    """Pending signup verification code, one per email address."""
    __tablename__ = "email_verifications"

    email = Column(String(255), primary_key=True)
    code = Column(String(12), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    # wrong guesses against this code
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
