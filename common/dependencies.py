"""Reusable FastAPI dependencies for caller trust and database access."""
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from .auth import decode_token
from .config import get_settings
from .errors import AuthorizationError

service_api_key_header = APIKeyHeader(name="X-Service-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    trusted: bool
    subject: Optional[str] = None
    role: Optional[str] = None


ANONYMOUS = Caller(trusted=False)


def _valid_service_key(api_key: Optional[str]) -> bool:
    expected = get_settings().service_api_key
    if not api_key or not expected:
        return False
    return hmac.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8"))


def get_caller(
    api_key: Optional[str] = Security(service_api_key_header),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Caller:
    """Classify the caller. Presented credentials that fail verification are rejected."""

    if api_key is not None:
        if not _valid_service_key(api_key):
            raise AuthorizationError("Invalid service key")
        return Caller(trusted=True, subject="service", role="service")

    if credentials is not None:
        payload = decode_token(credentials.credentials)
        role = payload.get("role")
        trusted = role in get_settings().trusted_roles
        return Caller(trusted=trusted, subject=payload.get("sub"), role=role)

    return ANONYMOUS


def require_trusted_caller(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.trusted:
        raise AuthorizationError("Trusted caller credentials required")
    return caller
