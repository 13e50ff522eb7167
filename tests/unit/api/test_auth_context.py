import time

import jwt
import pytest
from fastapi import HTTPException

from homologation.api.auth.context import get_auth_context, get_optional_auth_context
from homologation.config import config
from homologation.workflow.models import SYSTEM_ACTOR_ID


@pytest.fixture(autouse=True)
def strict_auth(monkeypatch):
    monkeypatch.setattr(config.auth, "jwt_secret", "secret")
    monkeypatch.setattr(config.auth, "jwt_issuer", None)
    monkeypatch.setattr(config.auth, "jwt_audience", None)
    monkeypatch.setattr(config.auth, "allow_insecure_headers", False)
    monkeypatch.setattr(config.auth, "env", "prod")


def _token(claims, secret="secret"):
    return jwt.encode(claims, secret, algorithm="HS256")


def test_auth_missing_token_fails_closed_401():
    with pytest.raises(HTTPException) as exc:
        get_auth_context(authorization=None, x_actor_id="admin-1", x_role="admin")
    assert exc.value.status_code == 401
    assert "authentication" in str(exc.value.detail).lower()


def test_auth_invalid_token_fails_closed_401():
    with pytest.raises(HTTPException) as exc:
        get_auth_context(authorization="Bearer invalid.token.here")
    assert exc.value.status_code == 401
    assert "invalid token" in str(exc.value.detail).lower()


def test_auth_wrong_secret_401():
    token = _token({"sub": "admin-1", "role": "admin"}, secret="other")

    with pytest.raises(HTTPException) as exc:
        get_auth_context(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401


def test_auth_expired_token_401():
    token = _token({"sub": "admin-1", "role": "admin", "exp": int(time.time()) - 60})

    with pytest.raises(HTTPException) as exc:
        get_auth_context(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401
    assert "expired" in str(exc.value.detail).lower()


def test_auth_valid_token_threads_subject_and_role():
    token = _token({"sub": "admin-1", "role": "ADMIN", "department": "itv"})

    auth_ctx = get_auth_context(authorization=f"Bearer {token}")
    assert auth_ctx.subject == "admin-1"
    assert auth_ctx.role == "admin"
    assert auth_ctx.is_admin
    assert auth_ctx.auth_type == "jwt"
    assert auth_ctx.claims_subset == {"department": "itv"}


def test_unknown_role_downgrades_to_applicant():
    token = _token({"sub": "user-1", "role": "superuser"})

    auth_ctx = get_auth_context(authorization=f"Bearer {token}")
    assert auth_ctx.role == "applicant"
    assert not auth_ctx.is_admin


def test_token_without_subject_401():
    token = _token({"role": "admin"})

    with pytest.raises(HTTPException) as exc:
        get_auth_context(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401


def test_missing_secret_is_configuration_error(monkeypatch):
    monkeypatch.setattr(config.auth, "jwt_secret", None)

    with pytest.raises(HTTPException) as exc:
        get_auth_context(authorization="Bearer anything")
    assert exc.value.status_code == 500


def test_insecure_header_fallback_only_when_env_enabled_and_dev(monkeypatch):
    monkeypatch.setattr(config.auth, "allow_insecure_headers", True)
    monkeypatch.setattr(config.auth, "env", "dev")

    auth_ctx = get_auth_context(authorization=None, x_actor_id="admin-7", x_role="admin")
    assert auth_ctx.subject == "admin-7"
    assert auth_ctx.role == "admin"
    assert auth_ctx.auth_type == "header"

    # Negative test (env != dev)
    monkeypatch.setattr(config.auth, "env", "prod")
    with pytest.raises(HTTPException) as exc:
        get_auth_context(authorization=None, x_actor_id="admin-7", x_role="admin")
    assert exc.value.status_code == 401


def test_optional_context_defaults_to_system_actor():
    auth_ctx = get_optional_auth_context(authorization=None, x_actor_id=None, x_role=None)

    assert auth_ctx.subject == SYSTEM_ACTOR_ID
    assert auth_ctx.role == "applicant"
    assert auth_ctx.auth_type == "anonymous"


def test_optional_context_still_rejects_bad_token():
    with pytest.raises(HTTPException) as exc:
        get_optional_auth_context(authorization="Bearer nope", x_actor_id=None, x_role=None)
    assert exc.value.status_code == 401


def test_optional_context_uses_token_when_present():
    token = _token({"sub": "owner-1"})

    auth_ctx = get_optional_auth_context(authorization=f"Bearer {token}", x_actor_id=None, x_role=None)
    assert auth_ctx.subject == "owner-1"
