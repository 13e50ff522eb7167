"""
HTTP error mapping for workflow results and intake exceptions.
"""

import logging
from typing import Dict

from fastapi import HTTPException

from homologation.workflow.engine import TransitionResult
from homologation.workflow.errors import (
    AttachmentNotFoundError,
    AttachmentRejectedError,
    ErrorKind,
    SubmissionLockedError,
    SubmissionNotFoundError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.REQUIRES_ELEVATED_PRIVILEGE: 403,
    ErrorKind.MISSING_PREREQUISITES: 422,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNEXPECTED: 500,
}

INTAKE_ERRORS = (
    SubmissionNotFoundError,
    AttachmentNotFoundError,
    SubmissionLockedError,
    VersionConflictError,
    AttachmentRejectedError,
    ValueError,
)


def transition_error(result: TransitionResult) -> HTTPException:
    """HTTPException for a failed TransitionResult."""
    detail = {"error_code": result.error_kind.value, "message": result.message}
    detail.update(result.details)
    return HTTPException(status_code=STATUS_BY_KIND[result.error_kind], detail=detail)


def intake_error(exc: Exception) -> HTTPException:
    """HTTPException for an exception raised by the intake service."""
    if isinstance(exc, (SubmissionNotFoundError, AttachmentNotFoundError)):
        status_code, code = 404, ErrorKind.NOT_FOUND.value
    elif isinstance(exc, VersionConflictError):
        status_code, code = 409, ErrorKind.CONFLICT.value
    elif isinstance(exc, SubmissionLockedError):
        status_code, code = 409, "SUBMISSION_LOCKED"
    elif isinstance(exc, AttachmentRejectedError):
        status_code, code = 422, "ATTACHMENT_REJECTED"
    else:
        status_code, code = 422, "VALIDATION_ERROR"

    detail = {"error_code": code, "message": str(exc)}
    detail.update(getattr(exc, "details", None) or {})
    return HTTPException(status_code=status_code, detail=detail)
