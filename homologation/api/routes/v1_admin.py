"""
Administrator routes: review, status changes, audit and deletion.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from homologation.api.auth.context import AuthContextV1, get_auth_context
from homologation.api.contracts.v1 import (
    AuditEntryV1,
    AuditHistoryV1,
    ReasonRequestV1,
    SubmissionListV1,
    SubmissionV1,
    TransitionRequestV1,
    TransitionResponseV1,
)
from homologation.api.deps import get_services, require_admin
from homologation.api.errors import INTAKE_ERRORS, intake_error, transition_error
from homologation.workflow.engine import TransitionResult
from homologation.workflow.models import SubmissionStatus
from homologation.wiring import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/submissions", tags=["admin"])


def _respond(result: TransitionResult) -> TransitionResponseV1:
    if not result.ok:
        raise transition_error(result)
    return TransitionResponseV1.from_result(result)


@router.get("", response_model=SubmissionListV1)
def list_submissions(
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    auth: AuthContextV1 = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """List submissions newest first, optionally filtered by status."""
    status_enum = None
    if status:
        try:
            status_enum = SubmissionStatus.parse(status)
        except ValueError as e:
            raise HTTPException(
                status_code=422,
                detail={"error_code": "VALIDATION_ERROR", "message": str(e)},
            )

    submissions = services.intake.list(status=status_enum)[:limit]
    items = [SubmissionV1.from_domain(s) for s in submissions]
    return SubmissionListV1(items=items, count=len(items))


@router.post("/{submission_id}/status", response_model=TransitionResponseV1)
def change_status(
    submission_id: str,
    request: TransitionRequestV1,
    auth: AuthContextV1 = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """Generic transition; privilege follows the caller's role."""
    result = services.workflow.transition(
        submission_id,
        request.target_status,
        actor_id=auth.subject,
        is_elevated=auth.is_admin,
        reason=request.reason,
    )
    return _respond(result)


@router.post("/{submission_id}/approve", response_model=TransitionResponseV1)
def approve_submission(
    submission_id: str,
    request: Optional[ReasonRequestV1] = None,
    auth: AuthContextV1 = Depends(require_admin),
    services: Services = Depends(get_services),
):
    reason = request.reason if request else None
    return _respond(services.workflow.approve(submission_id, actor_id=auth.subject, reason=reason))


@router.post("/{submission_id}/reject", response_model=TransitionResponseV1)
def reject_submission(
    submission_id: str,
    request: Optional[ReasonRequestV1] = None,
    auth: AuthContextV1 = Depends(require_admin),
    services: Services = Depends(get_services),
):
    reason = request.reason if request else None
    return _respond(services.workflow.reject(submission_id, actor_id=auth.subject, reason=reason))


@router.post("/{submission_id}/incomplete", response_model=TransitionResponseV1)
def mark_incomplete(
    submission_id: str,
    request: Optional[ReasonRequestV1] = None,
    auth: AuthContextV1 = Depends(require_admin),
    services: Services = Depends(get_services),
):
    reason = request.reason if request else None
    return _respond(
        services.workflow.mark_incomplete(submission_id, actor_id=auth.subject, reason=reason)
    )


@router.post("/{submission_id}/complete", response_model=TransitionResponseV1)
def complete_submission(
    submission_id: str,
    request: Optional[ReasonRequestV1] = None,
    auth: AuthContextV1 = Depends(require_admin),
    services: Services = Depends(get_services),
):
    reason = request.reason if request else None
    return _respond(services.workflow.complete(submission_id, actor_id=auth.subject, reason=reason))


@router.get("/{submission_id}/audit", response_model=AuditHistoryV1)
def get_audit_history(
    submission_id: str,
    auth: AuthContextV1 = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Audit entries for a submission, newest first."""
    entries = services.intake.history(submission_id)
    return AuditHistoryV1(
        submission_id=submission_id,
        entries=[AuditEntryV1.from_domain(e) for e in entries],
    )


@router.delete("/{submission_id}", status_code=204)
def delete_submission(
    submission_id: str,
    auth: AuthContextV1 = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Soft-delete a submission."""
    try:
        services.intake.soft_delete(submission_id, actor_id=auth.subject)
    except INTAKE_ERRORS as e:
        raise intake_error(e)
    logger.info(f"Submission {submission_id} deleted via API by {auth.subject}")
