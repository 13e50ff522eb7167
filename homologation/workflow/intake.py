"""
Submission Intake Service

Create, edit and look up submissions and register attachment metadata.
Status changes are not made here; they go through HomologationWorkflow.
"""

import logging
import uuid
from datetime import datetime
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from homologation.config import UploadConfig, config

from .audit import ENTITY_TYPE
from .errors import (
    AttachmentNotFoundError,
    AttachmentRejectedError,
    SubmissionLockedError,
    SubmissionNotFoundError,
)
from .models import (
    EDITABLE_FIELDS,
    Attachment,
    AttachmentKind,
    AttachmentSummary,
    AuditEntry,
    Submission,
    SubmissionStatus,
    VehicleType,
)

if TYPE_CHECKING:
    from .audit import AuditRecorder
    from .store import AttachmentStore, SubmissionStore

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
    "application/pdf",
})

ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".heic", ".heif", ".pdf"})

# Statuses in which the applicant may still edit the submission
EDITABLE_STATUSES = frozenset({SubmissionStatus.DRAFT, SubmissionStatus.INCOMPLETE})


def _normalize_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Validate field names and coerce values to model types."""
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields are not editable: {', '.join(unknown)}")

    normalized: Dict[str, Any] = {}
    for name, value in changes.items():
        if isinstance(value, str):
            value = value.strip() or None
        if name == "vehicle_type" and value is not None and not isinstance(value, VehicleType):
            try:
                value = VehicleType(value)
            except ValueError:
                valid = ", ".join(v.value for v in VehicleType)
                raise ValueError(f"Invalid vehicle type: {value!r}. Valid: {valid}") from None
        if name == "vehicle_axle_count" and value is not None:
            value = int(value)
            if value < 1:
                raise ValueError("vehicle_axle_count must be at least 1")
        normalized[name] = value
    return normalized


def _audit_value(value: Any) -> Any:
    return value.value if isinstance(value, VehicleType) else value


class SubmissionIntakeService:
    """
    Applicant-facing operations around the workflow engine.

    Every mutation writes an audit entry (CREATE, UPDATE, ATTACHMENT_ADDED,
    ATTACHMENT_REMOVED, DELETE).
    """

    def __init__(
        self,
        store: Optional["SubmissionStore"] = None,
        attachments: Optional["AttachmentStore"] = None,
        audit: Optional["AuditRecorder"] = None,
        uploads: Optional[UploadConfig] = None,
    ):
        if store is None:
            from .store import InMemorySubmissionStore
            store = InMemorySubmissionStore()
        if attachments is None:
            from .store import InMemoryAttachmentStore
            attachments = InMemoryAttachmentStore()
        if audit is None:
            from .audit import InMemoryAuditRecorder
            audit = InMemoryAuditRecorder()

        self._store = store
        self._attachments = attachments
        self._audit = audit
        self._uploads = uploads or config.uploads

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, submission_id: str) -> Submission:
        """Get a submission or raise SubmissionNotFoundError."""
        submission = self._store.find_by_id(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(f"Submission not found: {submission_id}")
        return submission

    def list(
        self,
        status: Optional[SubmissionStatus] = None,
        created_by: Optional[str] = None,
    ) -> List[Submission]:
        """Non-deleted submissions, newest first."""
        return self._store.list_submissions(status=status, created_by=created_by)

    def attachments(self, submission_id: str) -> List[Attachment]:
        self.get(submission_id)
        return self._attachments.list_attachments(submission_id)

    def attachment_summary(self, submission_id: str) -> AttachmentSummary:
        """Photo and document counts for a submission."""
        self.get(submission_id)
        return self._attachments.summarize(submission_id)

    def history(self, submission_id: str) -> List[AuditEntry]:
        """Audit entries for a submission, newest first."""
        return self._audit.history(submission_id)

    # =========================================================================
    # Mutations
    # =========================================================================

    def create(self, fields: Dict[str, Any], actor_id: str) -> Submission:
        """Create a Draft submission. Any status in `fields` is ignored."""
        fields = {k: v for k, v in fields.items() if k != "status"}
        values = _normalize_changes(fields)
        now = datetime.now()
        submission = Submission(
            submission_id=Submission.new_id(),
            status=SubmissionStatus.DRAFT,
            created_at=now,
            updated_at=now,
            created_by=actor_id,
            updated_by=actor_id,
            **values,
        )
        created = self._store.insert(submission)
        self._audit.record(
            entity_type=ENTITY_TYPE,
            entity_id=created.submission_id,
            action="CREATE",
            old_values=None,
            new_values={k: _audit_value(v) for k, v in values.items()},
            actor_id=actor_id,
        )
        logger.info(f"Submission created: {created.submission_id} by {actor_id}")
        return created

    def lookup_or_create(
        self,
        national_id: str,
        phone: str,
        actor_id: str,
    ) -> Tuple[Submission, bool]:
        """
        Find the owner's most recent submission, or start a new Draft.

        Returns (submission, created).
        """
        national_id = (national_id or "").strip()
        phone = (phone or "").strip()
        if not national_id or not phone:
            raise ValueError("national_id and phone are required")

        existing = self._store.find_latest_by_owner(national_id, phone)
        if existing is not None:
            return existing, False

        created = self.create(
            {"owner_national_id": national_id, "owner_phone": phone},
            actor_id,
        )
        return created, True

    def update_fields(
        self,
        submission_id: str,
        changes: Dict[str, Any],
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Submission:
        """
        Edit applicant fields while the submission is Draft or Incomplete.

        Raises SubmissionLockedError in any other status. A change set that
        alters nothing returns the submission without writing or auditing.
        Without expected_version the write is conditioned on the version
        that was read, so a concurrent status change raises
        VersionConflictError instead of editing a locked submission.
        """
        values = _normalize_changes(changes)
        current = self.get(submission_id)
        if current.status not in EDITABLE_STATUSES:
            raise SubmissionLockedError(
                f'Submission {submission_id} cannot be edited in status "{current.status.value}"'
            )

        changed = {k: v for k, v in values.items() if getattr(current, k) != v}
        if not changed:
            return current

        # Pin the write to the snapshot the lock check saw
        updated = self._store.update_fields(
            submission_id,
            changed,
            actor_id,
            expected_version=expected_version if expected_version is not None else current.version,
        )
        self._audit.record(
            entity_type=ENTITY_TYPE,
            entity_id=submission_id,
            action="UPDATE",
            old_values={k: _audit_value(getattr(current, k)) for k in changed},
            new_values={k: _audit_value(v) for k, v in changed.items()},
            actor_id=actor_id,
        )
        logger.info(f"Submission {submission_id} updated by {actor_id}: {sorted(changed)}")
        return updated

    def add_attachment(
        self,
        submission_id: str,
        file_name: str,
        mime_type: str,
        size_bytes: int,
        actor_id: str,
        kind: AttachmentKind = AttachmentKind.PHOTO,
    ) -> Attachment:
        """Register attachment metadata after type and size validation."""
        current = self.get(submission_id)
        if current.status not in EDITABLE_STATUSES:
            raise SubmissionLockedError(
                f'Attachments cannot be added in status "{current.status.value}"'
            )
        self.validate_attachment(file_name, mime_type, size_bytes)

        attachment = Attachment(
            attachment_id=f"att_{uuid.uuid4().hex[:12]}",
            submission_id=submission_id,
            file_name=file_name,
            mime_type=mime_type.lower(),
            size_bytes=size_bytes,
            kind=AttachmentKind(kind),
            created_by=actor_id,
        )
        stored = self._attachments.add_attachment(attachment)
        self._audit.record(
            entity_type=ENTITY_TYPE,
            entity_id=submission_id,
            action="ATTACHMENT_ADDED",
            old_values=None,
            new_values={
                "attachment_id": stored.attachment_id,
                "file_name": stored.file_name,
                "kind": stored.kind.value,
            },
            actor_id=actor_id,
        )
        logger.info(f"Attachment {stored.attachment_id} added to {submission_id} by {actor_id}")
        return stored

    def validate_attachment(self, file_name: str, mime_type: str, size_bytes: int) -> None:
        """Raise AttachmentRejectedError if the file would not be accepted."""
        if (mime_type or "").lower() not in ALLOWED_MIME_TYPES:
            raise AttachmentRejectedError(
                f"Invalid file type: {mime_type}. Allowed types: {', '.join(sorted(ALLOWED_MIME_TYPES))}"
            )
        extension = PurePosixPath(file_name or "").suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise AttachmentRejectedError(
                f"Invalid file extension: {extension or '(none)'}. "
                f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )
        if size_bytes <= 0:
            raise AttachmentRejectedError("File is empty")
        if size_bytes > self._uploads.max_file_size:
            limit_mb = self._uploads.max_file_size / (1024 * 1024)
            raise AttachmentRejectedError(f"File too large. Maximum size: {limit_mb:g}MB")

    def remove_attachment(self, submission_id: str, attachment_id: str, actor_id: str) -> Attachment:
        """Soft-delete an attachment while the submission is still editable."""
        current = self.get(submission_id)
        if current.status not in EDITABLE_STATUSES:
            raise SubmissionLockedError(
                f'Attachments cannot be removed in status "{current.status.value}"'
            )
        owned = {a.attachment_id for a in self._attachments.list_attachments(submission_id)}
        if attachment_id not in owned:
            raise AttachmentNotFoundError(
                f"Attachment not found: {attachment_id} on submission {submission_id}"
            )

        removed = self._attachments.remove_attachment(attachment_id)
        self._audit.record(
            entity_type=ENTITY_TYPE,
            entity_id=removed.submission_id,
            action="ATTACHMENT_REMOVED",
            old_values={"attachment_id": removed.attachment_id, "file_name": removed.file_name},
            new_values=None,
            actor_id=actor_id,
        )
        logger.info(f"Attachment {attachment_id} removed by {actor_id}")
        return removed

    def soft_delete(self, submission_id: str, actor_id: str) -> Submission:
        deleted = self._store.soft_delete(submission_id, actor_id)
        self._audit.record(
            entity_type=ENTITY_TYPE,
            entity_id=submission_id,
            action="DELETE",
            old_values={"status": deleted.status.value},
            new_values={"is_deleted": True},
            actor_id=actor_id,
        )
        logger.info(f"Submission {submission_id} soft-deleted by {actor_id}")
        return deleted
