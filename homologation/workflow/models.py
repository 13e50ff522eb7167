"""
Homologation Domain Models

Submission, attachment and audit records shared by the workflow engine,
the stores and the transport layers.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

# Actor used for public (unauthenticated) intake
SYSTEM_ACTOR_ID = "00000000-0000-0000-0000-000000000000"


# =============================================================================
# Enums
# =============================================================================

class SubmissionStatus(str, Enum):
    """Homologation lifecycle states. Values are the display labels."""
    DRAFT = "Draft"
    PENDING_REVIEW = "Pending Review"
    PAID = "Paid"
    INCOMPLETE = "Incomplete"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"

    @classmethod
    def parse(cls, raw: "str | SubmissionStatus") -> "SubmissionStatus":
        """
        Resolve a status from its value, member name or compact form.

        "Pending Review", "PENDING_REVIEW", "pending_review" and
        "PendingReview" all resolve to PENDING_REVIEW.
        Raises ValueError for anything else.
        """
        if isinstance(raw, cls):
            return raw
        text = str(raw).strip()
        key = text.replace(" ", "").replace("_", "").lower()
        for status in cls:
            if text == status.value or key == status.name.replace("_", "").lower():
                return status
        raise ValueError(
            f"Unknown status: {raw!r}. Valid: {', '.join(s.value for s in cls)}"
        )

    @property
    def action_label(self) -> str:
        """Audit action suffix, e.g. PENDING_REVIEW."""
        return self.value.upper().replace(" ", "_")


class VehicleType(str, Enum):
    """Vehicle categories accepted for homologation."""
    TRAILER = "Trailer"
    ROLLING_BOX = "Rolling Box"
    MOTORHOME = "Motorhome"


class AttachmentKind(str, Enum):
    PHOTO = "photo"
    ID_DOCUMENT = "id_document"
    DOCUMENT = "document"


# =============================================================================
# Records
# =============================================================================

@dataclass
class Submission:
    """A homologation request tracked through its lifecycle."""
    submission_id: str
    status: SubmissionStatus = SubmissionStatus.DRAFT

    owner_full_name: Optional[str] = None
    owner_national_id: Optional[str] = None
    owner_phone: Optional[str] = None
    owner_email: Optional[str] = None

    vehicle_type: Optional[VehicleType] = None
    vehicle_dimensions: Optional[str] = None
    vehicle_axle_count: Optional[int] = None
    license_plate: Optional[str] = None

    version: int = 1
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    created_by: str = SYSTEM_ACTOR_ID
    updated_by: str = SYSTEM_ACTOR_ID

    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    def is_terminal(self) -> bool:
        from .engine import TERMINAL_STATES
        return self.status in TERMINAL_STATES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "status": self.status.value,
            "owner_full_name": self.owner_full_name,
            "owner_national_id": self.owner_national_id,
            "owner_phone": self.owner_phone,
            "owner_email": self.owner_email,
            "vehicle_type": self.vehicle_type.value if self.vehicle_type else None,
            "vehicle_dimensions": self.vehicle_dimensions,
            "vehicle_axle_count": self.vehicle_axle_count,
            "license_plate": self.license_plate,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "is_deleted": self.is_deleted,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "deleted_by": self.deleted_by,
        }


# Fields the intake service may change directly
EDITABLE_FIELDS = frozenset({
    "owner_full_name",
    "owner_national_id",
    "owner_phone",
    "owner_email",
    "vehicle_type",
    "vehicle_dimensions",
    "vehicle_axle_count",
    "license_plate",
})


@dataclass
class Attachment:
    """Metadata of an uploaded photo or document."""
    attachment_id: str
    submission_id: str
    file_name: str
    mime_type: str
    size_bytes: int
    kind: AttachmentKind = AttachmentKind.PHOTO
    created_at: datetime = field(default_factory=datetime.now)
    created_by: str = SYSTEM_ACTOR_ID
    is_deleted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attachment_id": self.attachment_id,
            "submission_id": self.submission_id,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "kind": self.kind.value,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
        }


@dataclass(frozen=True)
class AttachmentSummary:
    """Read-only attachment counts for a submission."""
    submission_id: str
    photos: int = 0
    documents: int = 0

    @property
    def count(self) -> int:
        return self.photos + self.documents


@dataclass(frozen=True)
class AuditEntry:
    """An immutable record of what changed, by whom, and when."""
    entry_id: str
    entity_type: str
    entity_id: str
    action: str
    actor_id: str
    created_at: datetime
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "created_at": self.created_at.isoformat(),
            "old_values": self.old_values,
            "new_values": self.new_values,
        }
