"""
JWT helpers.

Bearer tokens are issued by the external identity service; this API only
verifies them. ``create_access_token`` exists for local tooling and tests.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a token carrying ``sub``, ``user_id`` and ``role`` claims.

    Example payload:
        {"sub": "driver@example.com", "user_id": 12, "role": "DRIVER"}
    """
    claims = dict(data)
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims["exp"] = expire
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the verified claims, or None for a bad signature or expired token."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
