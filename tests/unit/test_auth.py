"""Unit tests for bearer tokens and caller classification."""
from datetime import timedelta

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from common.auth import create_access_token, decode_token
from common.config import get_settings
from common.dependencies import ANONYMOUS, get_caller, require_trusted_caller
from common.errors import AuthorizationError


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestJWTTokens:
    """Test JWT token creation and decoding."""

    def test_create_access_token(self):
        token = create_access_token({"sub": "frontdesk", "role": "staff"})
        settings = get_settings()

        decoded = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        assert decoded["sub"] == "frontdesk"
        assert decoded["role"] == "staff"
        assert "exp" in decoded

    def test_decode_token_invalid(self):
        with pytest.raises(AuthorizationError):
            decode_token("invalid.token.here")

    def test_decode_token_expired(self):
        token = create_access_token({"sub": "frontdesk"}, expires_delta=timedelta(seconds=-1))

        with pytest.raises(AuthorizationError):
            decode_token(token)


class TestCallerClassification:
    def test_no_credentials_is_anonymous(self):
        assert get_caller(api_key=None, credentials=None) == ANONYMOUS

    def test_valid_service_key_is_trusted(self):
        caller = get_caller(api_key="test-service-key", credentials=None)

        assert caller.trusted is True
        assert caller.role == "service"

    def test_wrong_service_key_is_rejected(self):
        with pytest.raises(AuthorizationError):
            get_caller(api_key="guess", credentials=None)

    def test_staff_bearer_is_trusted(self):
        token = create_access_token({"sub": "frontdesk", "role": "staff"})

        caller = get_caller(api_key=None, credentials=_bearer(token))

        assert caller.trusted is True
        assert caller.subject == "frontdesk"

    def test_guest_bearer_is_not_trusted(self):
        token = create_access_token({"sub": "guest-1", "role": "guest"})

        caller = get_caller(api_key=None, credentials=_bearer(token))

        assert caller.trusted is False
        with pytest.raises(AuthorizationError):
            require_trusted_caller(caller)

    def test_service_key_unset_rejects_every_key(self, monkeypatch):
        class _Unset:
            service_api_key = None

        monkeypatch.setattr("common.dependencies.get_settings", lambda: _Unset())

        with pytest.raises(AuthorizationError):
            get_caller(api_key="test-service-key", credentials=None)
