"""
v1 API Contracts

Wire format is camelCase; snake_case names are accepted on input too.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from homologation.workflow.engine import TransitionResult
from homologation.workflow.models import (
    Attachment,
    AttachmentKind,
    AuditEntry,
    Submission,
    SubmissionStatus,
    VehicleType,
)


class RoleEnum(str, Enum):
    APPLICANT = "applicant"
    ADMIN = "admin"


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Requests
# =============================================================================

class SubmissionFieldsV1(_WireModel):
    """Applicant-editable fields. Omitted fields are left untouched."""
    owner_full_name: Optional[str] = None
    owner_national_id: Optional[str] = None
    owner_phone: Optional[str] = None
    owner_email: Optional[str] = None
    vehicle_type: Optional[VehicleType] = None
    vehicle_dimensions: Optional[str] = None
    vehicle_axle_count: Optional[int] = Field(None, ge=1)
    license_plate: Optional[str] = None

    def to_changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"expected_version"})


class SubmissionUpdateV1(SubmissionFieldsV1):
    expected_version: Optional[int] = Field(None, ge=1)


class LookupRequestV1(_WireModel):
    national_id: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class AttachmentRequestV1(_WireModel):
    """Metadata of a file already uploaded to object storage."""
    file_name: str
    mime_type: str
    size_bytes: int
    kind: AttachmentKind = AttachmentKind.PHOTO


class ReasonRequestV1(_WireModel):
    reason: Optional[str] = None


class TransitionRequestV1(_WireModel):
    target_status: str
    reason: Optional[str] = None


# =============================================================================
# Responses
# =============================================================================

class SubmissionV1(_WireModel):
    submission_id: str
    status: SubmissionStatus
    owner_full_name: Optional[str] = None
    owner_national_id: Optional[str] = None
    owner_phone: Optional[str] = None
    owner_email: Optional[str] = None
    vehicle_type: Optional[VehicleType] = None
    vehicle_dimensions: Optional[str] = None
    vehicle_axle_count: Optional[int] = None
    license_plate: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    created_by: str
    updated_by: str

    @classmethod
    def from_domain(cls, submission: Submission) -> "SubmissionV1":
        return cls(
            submission_id=submission.submission_id,
            status=submission.status,
            owner_full_name=submission.owner_full_name,
            owner_national_id=submission.owner_national_id,
            owner_phone=submission.owner_phone,
            owner_email=submission.owner_email,
            vehicle_type=submission.vehicle_type,
            vehicle_dimensions=submission.vehicle_dimensions,
            vehicle_axle_count=submission.vehicle_axle_count,
            license_plate=submission.license_plate,
            version=submission.version,
            created_at=submission.created_at,
            updated_at=submission.updated_at,
            created_by=submission.created_by,
            updated_by=submission.updated_by,
        )


class SubmissionListV1(_WireModel):
    contract_version: Literal["v1"] = "v1"
    items: List[SubmissionV1]
    count: int


class LookupResponseV1(_WireModel):
    submission: SubmissionV1
    created: bool


class AttachmentV1(_WireModel):
    attachment_id: str
    submission_id: str
    file_name: str
    mime_type: str
    size_bytes: int
    kind: AttachmentKind
    created_at: datetime

    @classmethod
    def from_domain(cls, attachment: Attachment) -> "AttachmentV1":
        return cls(
            attachment_id=attachment.attachment_id,
            submission_id=attachment.submission_id,
            file_name=attachment.file_name,
            mime_type=attachment.mime_type,
            size_bytes=attachment.size_bytes,
            kind=attachment.kind,
            created_at=attachment.created_at,
        )


class TransitionsV1(_WireModel):
    current_status: SubmissionStatus
    allowed_transitions: List[SubmissionStatus]


class NotificationV1(_WireModel):
    status: str
    recipient: Optional[str] = None
    error: Optional[str] = None


class TransitionResponseV1(_WireModel):
    contract_version: Literal["v1"] = "v1"
    submission: SubmissionV1
    notification: Optional[NotificationV1] = None

    @classmethod
    def from_result(cls, result: TransitionResult) -> "TransitionResponseV1":
        notification = None
        if result.notification is not None:
            notification = NotificationV1(**result.notification.to_dict())
        return cls(submission=SubmissionV1.from_domain(result.submission), notification=notification)


class AuditEntryV1(_WireModel):
    entry_id: str
    action: str
    actor_id: str
    created_at: datetime
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditEntryV1":
        return cls(
            entry_id=entry.entry_id,
            action=entry.action,
            actor_id=entry.actor_id,
            created_at=entry.created_at,
            old_values=entry.old_values,
            new_values=entry.new_values,
        )


class AuditHistoryV1(_WireModel):
    contract_version: Literal["v1"] = "v1"
    submission_id: str
    entries: List[AuditEntryV1]
