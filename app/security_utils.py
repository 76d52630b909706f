"""
Security Utilities
JWT helpers for bearer tokens and the signed state parameter of the Google OAuth flow
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from jose import JWTError
from jose import jwt as jose_jwt

from .config import JWT_ALGORITHM, JWT_SECRET

logger = logging.getLogger(__name__)

OAUTH_STATE_PURPOSE = "google_oauth_state"
OAUTH_STATE_TTL = timedelta(minutes=15)


def create_jwt_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT token

    Args:
        data: Data to encode in the token
        expires_delta: Token expiration time (default 15 minutes)
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=15)

    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_jwt_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def create_oauth_state(doctor_id: str, return_to: Optional[str] = None) -> str:
    """Signed, short-lived state so the unauthenticated callback knows which doctor consented"""
    data = {"purpose": OAUTH_STATE_PURPOSE, "doctor_id": doctor_id}
    if return_to:
        data["return_to"] = return_to
    return create_jwt_token(data, OAUTH_STATE_TTL)


def verify_oauth_state(state: str) -> Optional[dict[str, Any]]:
    payload = verify_jwt_token(state)
    if not payload or payload.get("purpose") != OAUTH_STATE_PURPOSE or not payload.get("doctor_id"):
        return None
    return payload
