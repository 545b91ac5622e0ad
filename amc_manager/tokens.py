"""
amc_manager/tokens.py

Token helpers.

- Access tokens: signed JWTs (python-jose) carrying the user id in "sub".
- Password reset tokens: random URL-safe strings; only their SHA-256 digest is stored.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from flask import current_app
from jose import JWTError, jwt


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None, version: int = 0) -> str:
    """Create a JWT access token for a user.

    version must match User.token_version when the token is used (see security.py).
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=current_app.config["JWT_EXPIRES_MINUTES"])

    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + expires_delta,
        "type": "access",
        "ver": version,
    }
    return jwt.encode(
        claims,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the token claims, or None if the token is invalid, expired or not an access token."""
    try:
        payload = jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError as e:
        current_app.logger.info("Rejected access token: %s", e)
        return None

    if payload.get("type") != "access":
        return None
    return payload


def identity_from_token(token: str) -> Optional[Tuple[int, int]]:
    """(user_id, token_version) carried by a valid access token."""
    payload = decode_access_token(token)
    if not payload:
        return None
    try:
        return int(payload.get("sub")), int(payload.get("ver", 0))
    except (TypeError, ValueError):
        return None


def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
