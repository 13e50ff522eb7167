"""
API Dependencies
Service access and strict role checks.
"""

from fastapi import Depends, HTTPException

from homologation.api.auth.context import AuthContextV1, get_auth_context
from homologation.wiring import Services
from homologation.wiring import get_services as _get_services


def get_services() -> Services:
    """Shared workflow + intake services. Overridden in tests."""
    return _get_services()


def require_admin(auth: AuthContextV1 = Depends(get_auth_context)) -> AuthContextV1:
    """Enforce admin role."""
    if not auth.is_admin:
        raise HTTPException(
            status_code=403,
            detail={"error_code": "FORBIDDEN", "message": "Operation requires admin privileges"},
        )
    return auth
