"""
Authentication utilities: Password hashing and JWT token management
"""

import jwt
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from typing import Optional
from config import settings

# Password hashing context
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto"
)

# JWT configuration
ALGORITHM = "HS256"

# Token purposes
ACCESS_TOKEN = "access"
EMAIL_CONFIRM_TOKEN = "email_confirm"

EMAIL_CONFIRM_TTL = timedelta(hours=48)


def hash_password(password: str) -> str:
    """Hash a password using argon2"""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(password, password_hash)


def create_jwt(user_id: str, purpose: str = ACCESS_TOKEN, expires_in: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT for a user.

    Args:
        user_id: Subject of the token
        purpose: ACCESS_TOKEN for API sessions, EMAIL_CONFIRM_TOKEN for confirmation links
        expires_in: Lifetime (defaults to JWT_EXPIRE_DAYS for access tokens)

    Raises:
        ValueError: If JWT_SECRET_KEY is not set
    """
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot create JWT token.")

    if expires_in is None:
        expires_in = EMAIL_CONFIRM_TTL if purpose == EMAIL_CONFIRM_TOKEN else timedelta(days=settings.jwt_expire_days)

    payload = {
        "sub": user_id,
        "purpose": purpose,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_jwt(token: str, purpose: str = ACCESS_TOKEN) -> Optional[dict]:
    """Decode a JWT token. Returns None if invalid, expired or issued for another purpose."""
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot decode JWT token.")

    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    if payload.get("purpose", ACCESS_TOKEN) != purpose:
        return None
    return payload


def create_expired_jwt(user_id: str, expired_seconds_ago: int = 1) -> str:
    """
    Create an expired access token for testing purposes.

    Args:
        user_id: User ID to include in token
        expired_seconds_ago: How many seconds ago the token should have expired (default: 1)
    """
    return create_jwt(user_id, expires_in=timedelta(seconds=-expired_seconds_ago))
