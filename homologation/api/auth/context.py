"""
Auth Context
Strict JWT validation for the homologation API; fails closed.
"""

import logging
from typing import Any, Dict, Literal, Optional

import jwt
from fastapi import Header, HTTPException
from pydantic import BaseModel, ConfigDict

from homologation.config import config
from homologation.workflow.models import SYSTEM_ACTOR_ID

logger = logging.getLogger(__name__)

ROLES = ("applicant", "admin")


class AuthContextV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject: str
    role: Literal["applicant", "admin"]
    issuer: Optional[str] = None
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None
    auth_type: Literal["jwt", "header", "anonymous"]
    claims_subset: Dict[str, Any] = {}

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


ANONYMOUS = AuthContextV1(subject=SYSTEM_ACTOR_ID, role="applicant", auth_type="anonymous")


def _normalize_role(raw: Optional[str]) -> str:
    role_str = (raw or "applicant").strip().lower()
    return role_str if role_str in ROLES else "applicant"


def _decode_bearer(token: str) -> AuthContextV1:
    if not config.auth.jwt_secret:
        logger.error("AUTH_JWT_SECRET is not configured.")
        raise HTTPException(status_code=500, detail="Configuration error")

    try:
        # HS256 only
        options = {
            "verify_signature": True,
            "verify_exp": True,
            "verify_iss": bool(config.auth.jwt_issuer),
            "verify_aud": bool(config.auth.jwt_audience),
        }
        claims = jwt.decode(
            token,
            key=config.auth.jwt_secret,
            algorithms=["HS256"],
            issuer=config.auth.jwt_issuer,
            audience=config.auth.jwt_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Expired JWT token.")
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    subject = claims.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="JWT missing subject (sub)")

    whitelisted_claims = {
        k: v
        for k, v in claims.items()
        if k not in ("role", "sub", "iss", "iat", "exp", "aud")
    }

    return AuthContextV1(
        subject=subject,
        role=_normalize_role(claims.get("role")),
        issuer=claims.get("iss"),
        issued_at=claims.get("iat"),
        expires_at=claims.get("exp"),
        auth_type="jwt",
        claims_subset=whitelisted_claims,
    )


def _header_fallback(x_actor_id: Optional[str], x_role: Optional[str]) -> Optional[AuthContextV1]:
    """Dev-only identity from X-Actor-Id / X-Role. Triple-gated."""
    if not (config.auth.allow_insecure_headers and config.auth.env == "dev"):
        return None
    if not x_actor_id or not x_actor_id.strip():
        return None
    return AuthContextV1(
        subject=x_actor_id.strip(),
        role=_normalize_role(x_role),
        auth_type="header",
    )


def get_auth_context(
    authorization: Optional[str] = Header(default=None),
    x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    x_role: Optional[str] = Header(default=None, alias="X-Role"),
) -> AuthContextV1:
    """Extract and validate the authentication context from JWT or dev fallback."""
    # 1. JWT
    if authorization and authorization.startswith("Bearer "):
        return _decode_bearer(authorization[len("Bearer "):])

    # 2. Header fallback
    if not authorization:
        context = _header_fallback(x_actor_id, x_role)
        if context is not None:
            return context

    # 3. Fail closed
    raise HTTPException(status_code=401, detail="Missing or invalid authentication")


def get_optional_auth_context(
    authorization: Optional[str] = Header(default=None),
    x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    x_role: Optional[str] = Header(default=None, alias="X-Role"),
) -> AuthContextV1:
    """
    Like get_auth_context, but an unauthenticated caller becomes the
    anonymous applicant acting as the system actor. A bad token still 401s.
    """
    if authorization:
        if not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Missing or invalid authentication")
        return _decode_bearer(authorization[len("Bearer "):])

    context = _header_fallback(x_actor_id, x_role)
    return context if context is not None else ANONYMOUS
