# stashbox/app/security/jwt.py
"""
Bearer token helpers.

Tokens are issued by the identity provider, which shares SECRET_KEY with
this service. ``create_access_token`` exists for that provider and for
tests; request handling only ever calls ``decode_access_token``.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from stashbox.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Raises ``jose.JWTError`` on a bad signature or an expired token."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
