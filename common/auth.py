"""JWT handling for staff bearer tokens."""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from .config import get_settings
from .errors import AuthorizationError, ConfigurationError


def _jwt_secret() -> str:
    secret = get_settings().jwt_secret
    if not secret:
        raise ConfigurationError("JWT secret is not configured")
    return secret


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, _jwt_secret(), algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthorizationError("Invalid bearer token") from exc
