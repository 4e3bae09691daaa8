"""Storage operations on the users and email_verifications tables."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from account_service.errors import Duplicate
from account_service.models import EmailVerification, User

logger = logging.getLogger(__name__)

MSG_DUPLICATE_EMAIL = "중복된 email입니다."


# --- Users ---

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def create_user(db: Session, email: str, hashed_password: str) -> User:
    """
    Inserts a new user.
    The unique index on email is the final arbiter: a concurrent signup that
    wins the race makes this raise Duplicate.
    """
    new_user = User(email=email, hashed_password=hashed_password, point=0)
    try:
        db.add(new_user)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"User creation failed: email {email} already exists.")
        raise Duplicate(MSG_DUPLICATE_EMAIL)
    db.refresh(new_user)
    logger.info(f"User created with ID: {new_user.id} for email: {email}")
    return new_user


def update_user_password(db: Session, user: User, new_hash: str) -> User:
    """Stores a new password hash and revokes the sessions issued with the old one."""
    user.hashed_password = new_hash
    user.session_version = (user.session_version or 0) + 1
    db.commit()
    db.refresh(user)
    return user


def bump_session_version(db: Session, user: User) -> User:
    user.session_version = (user.session_version or 0) + 1
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user: User) -> None:
    db.delete(user)
    db.commit()


# --- Verification codes ---

def save_verification_code(db: Session, email: str, code: str, expires_at: datetime) -> EmailVerification:
    """Stores the pending code for an email, replacing any earlier one."""
    entry = db.query(EmailVerification).filter(EmailVerification.email == email).first()
    if entry is None:
        entry = EmailVerification(email=email, code=code, expires_at=expires_at, attempts=0)
        db.add(entry)
    else:
        entry.code = code
        entry.expires_at = expires_at
        entry.attempts = 0
    db.commit()
    db.refresh(entry)
    return entry


def get_verification_code(db: Session, email: str) -> Optional[EmailVerification]:
    return db.query(EmailVerification).filter(EmailVerification.email == email).first()


def delete_verification_code(db: Session, email: str) -> None:
    db.query(EmailVerification).filter(EmailVerification.email == email).delete()
    db.commit()


def record_failed_attempt(db: Session, entry: EmailVerification) -> int:
    """Counts a wrong guess against the pending code and returns the new total."""
    entry.attempts = (entry.attempts or 0) + 1
    db.commit()
    db.refresh(entry)
    return entry.attempts
