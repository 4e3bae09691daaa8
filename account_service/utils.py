"""Utility functions for the account service: password policy, hashing and JWT handling."""

import os
import re
import logging
import secrets
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from jose import JWTError, jwt
from dotenv import load_dotenv
from typing import Dict, Optional

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

# --- Security configuration ---
SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not SECRET_KEY:
    logger.warning("JWT_SECRET_KEY is not set. Using a random per-process key; sessions will not survive a restart.")
    SECRET_KEY = secrets.token_urlsafe(48)

ALGORITHM = "HS256"

ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

# bcrypt work factor
BCRYPT_ROUNDS = 10

PASSWORD_MIN_LENGTH = 4
# bcrypt ignores everything past 72 bytes
PASSWORD_MAX_BYTES = 72
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).*$", re.DOTALL | re.ASCII)


pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
    bcrypt__truncate_error=True,
)


# --- Password utilities ---

def fits_bcrypt(password: str) -> bool:
    """True if bcrypt sees the whole password (at most 72 UTF-8 bytes)."""
    return len(password.encode("utf-8")) <= PASSWORD_MAX_BYTES


def validate_password_policy(candidate: Optional[str]) -> bool:
    """True iff the candidate has a lowercase letter, an uppercase letter, a digit and at least 4 characters."""
    if not isinstance(candidate, str) or not candidate:
        return False
    if not fits_bcrypt(candidate):
        return False
    return len(candidate) >= PASSWORD_MIN_LENGTH and PASSWORD_PATTERN.match(candidate) is not None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Checks a plaintext password against a stored hash."""
    if not plain_password or not hashed_password:
        return False
    if not fits_bcrypt(plain_password):
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        # unknown or corrupted hash format
        logger.warning(f"Password verification failed on malformed hash: {e}")
        return False


def get_password_hash(password: str) -> str:
    """Hashes a plaintext password with bcrypt."""
    if not password:
        raise ValueError("Cannot hash an empty password")
    if not fits_bcrypt(password):
        raise ValueError(f"Cannot hash a password longer than {PASSWORD_MAX_BYTES} bytes")
    return pwd_context.hash(password)


# --- JWT utilities ---

def create_access_token(user_id: int, session_version: int = 0, expires_delta: Optional[timedelta] = None) -> str:
    """
    Builds a signed JWT access token for a user.

    Args:
        user_id: Stored as the 'sub' claim.
        session_version: Stored as 'ver'; tokens with an outdated version are rejected.
        expires_delta: Token lifetime, ACCESS_TOKEN_EXPIRE_MINUTES by default.

    Returns:
        The encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": str(user_id),
        "ver": session_version,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str, secret_key: Optional[str] = None) -> Optional[Dict]:
    """
    Decodes and validates a JWT.

    Only ALGORITHM is accepted, so unsigned ('none') tokens and tokens signed
    with any other algorithm fail verification.

    Returns:
        The payload when the signature is valid and the token has not expired,
        otherwise None.
    """
    if not token:
        return None
    try:
        return jwt.decode(
            token,
            secret_key or SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"require_exp": True, "require_sub": True, "verify_aud": False},
        )
    except JWTError as e:
        logger.warning(f"Token decoding failed: {e}")
        return None
