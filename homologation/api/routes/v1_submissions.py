"""
Applicant-facing submission routes.

Authentication is optional; anonymous callers act as the system actor.
"""

import logging

from fastapi import APIRouter, Depends

from homologation.api.auth.context import AuthContextV1, get_optional_auth_context
from homologation.api.contracts.v1 import (
    AttachmentRequestV1,
    AttachmentV1,
    LookupRequestV1,
    LookupResponseV1,
    SubmissionFieldsV1,
    SubmissionUpdateV1,
    SubmissionV1,
    TransitionResponseV1,
    TransitionsV1,
)
from homologation.api.deps import get_services
from homologation.api.errors import INTAKE_ERRORS, intake_error, transition_error
from homologation.wiring import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("", response_model=SubmissionV1, status_code=201)
def create_submission(
    request: SubmissionFieldsV1,
    auth: AuthContextV1 = Depends(get_optional_auth_context),
    services: Services = Depends(get_services),
):
    """Start a Draft submission."""
    try:
        submission = services.intake.create(request.to_changes(), actor_id=auth.subject)
    except INTAKE_ERRORS as e:
        raise intake_error(e)
    return SubmissionV1.from_domain(submission)


@router.post("/lookup", response_model=LookupResponseV1)
def lookup_submission(
    request: LookupRequestV1,
    auth: AuthContextV1 = Depends(get_optional_auth_context),
    services: Services = Depends(get_services),
):
    """Resume the owner's latest submission, or start a new one."""
    try:
        submission, created = services.intake.lookup_or_create(
            request.national_id, request.phone, actor_id=auth.subject
        )
    except INTAKE_ERRORS as e:
        raise intake_error(e)
    return LookupResponseV1(submission=SubmissionV1.from_domain(submission), created=created)


@router.get("/{submission_id}", response_model=SubmissionV1)
def get_submission(
    submission_id: str,
    services: Services = Depends(get_services),
):
    try:
        submission = services.intake.get(submission_id)
    except INTAKE_ERRORS as e:
        raise intake_error(e)
    return SubmissionV1.from_domain(submission)


@router.patch("/{submission_id}", response_model=SubmissionV1)
def update_submission(
    submission_id: str,
    request: SubmissionUpdateV1,
    auth: AuthContextV1 = Depends(get_optional_auth_context),
    services: Services = Depends(get_services),
):
    """Edit a Draft or Incomplete submission."""
    try:
        submission = services.intake.update_fields(
            submission_id,
            request.to_changes(),
            actor_id=auth.subject,
            expected_version=request.expected_version,
        )
    except INTAKE_ERRORS as e:
        raise intake_error(e)
    return SubmissionV1.from_domain(submission)


@router.post("/{submission_id}/attachments", response_model=AttachmentV1, status_code=201)
def add_attachment(
    submission_id: str,
    request: AttachmentRequestV1,
    auth: AuthContextV1 = Depends(get_optional_auth_context),
    services: Services = Depends(get_services),
):
    """Register attachment metadata after type and size checks."""
    try:
        attachment = services.intake.add_attachment(
            submission_id,
            request.file_name,
            request.mime_type,
            request.size_bytes,
            actor_id=auth.subject,
            kind=request.kind,
        )
    except INTAKE_ERRORS as e:
        raise intake_error(e)
    return AttachmentV1.from_domain(attachment)


@router.delete("/{submission_id}/attachments/{attachment_id}", status_code=204)
def remove_attachment(
    submission_id: str,
    attachment_id: str,
    auth: AuthContextV1 = Depends(get_optional_auth_context),
    services: Services = Depends(get_services),
):
    """Remove an attachment while the submission is still editable."""
    try:
        services.intake.remove_attachment(submission_id, attachment_id, actor_id=auth.subject)
    except INTAKE_ERRORS as e:
        raise intake_error(e)
    logger.info(f"Attachment {attachment_id} removed via API by {auth.subject}")


@router.get("/{submission_id}/transitions", response_model=TransitionsV1)
def get_transitions(
    submission_id: str,
    services: Services = Depends(get_services),
):
    try:
        submission = services.intake.get(submission_id)
    except INTAKE_ERRORS as e:
        raise intake_error(e)
    return TransitionsV1(
        current_status=submission.status,
        allowed_transitions=services.workflow.allowed_transitions(submission.status),
    )


@router.post("/{submission_id}/submit", response_model=TransitionResponseV1)
def submit_submission(
    submission_id: str,
    auth: AuthContextV1 = Depends(get_optional_auth_context),
    services: Services = Depends(get_services),
):
    """Send the submission to review."""
    result = services.workflow.submit_for_review(submission_id, actor_id=auth.subject)
    if not result.ok:
        raise transition_error(result)
    return TransitionResponseV1.from_result(result)
