"""
Submission Store Abstraction

Persistence for homologation submissions and their attachments.
Provides InMemory (testing) and TypeDB (production) implementations.

INVARIANTS:
- version increases by exactly one on every write (fields, status, delete)
- update_status is conditional on expected_version when one is given
- soft-deleted records are invisible to every read
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from homologation.db.typedb_client import (
    CommitConflictError,
    TypeDBConnection,
    escape,
    first_value,
    parse_datetime,
    typeql_datetime,
    unwrap_document,
)

from .errors import AttachmentNotFoundError, SubmissionNotFoundError, VersionConflictError
from .models import (
    EDITABLE_FIELDS,
    Attachment,
    AttachmentKind,
    AttachmentSummary,
    Submission,
    SubmissionStatus,
    VehicleType,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Store Protocol (Interface)
# =============================================================================

class SubmissionStore(ABC):
    """
    Abstract store for homologation submissions.

    Two implementations:
    - InMemorySubmissionStore: For unit tests and demos
    - TypeDBSubmissionStore: For production
    """

    @abstractmethod
    def find_by_id(self, submission_id: str) -> Optional[Submission]:
        """Get a non-deleted submission by ID. Returns None if not found."""
        pass

    @abstractmethod
    def list_submissions(
        self,
        status: Optional[SubmissionStatus] = None,
        created_by: Optional[str] = None,
    ) -> List[Submission]:
        """List non-deleted submissions, newest first."""
        pass

    @abstractmethod
    def find_latest_by_owner(self, national_id: str, phone: str) -> Optional[Submission]:
        """Most recent non-deleted submission for an owner identity."""
        pass

    @abstractmethod
    def insert(self, submission: Submission) -> Submission:
        """Insert a new submission. Raises ValueError if the ID exists."""
        pass

    @abstractmethod
    def update_fields(
        self,
        submission_id: str,
        changes: Dict[str, Any],
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Submission:
        """
        Apply editable field changes and bump the version.

        Raises SubmissionNotFoundError or VersionConflictError.
        """
        pass

    @abstractmethod
    def update_status(
        self,
        submission_id: str,
        new_status: SubmissionStatus,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Submission:
        """
        Persist a new status and bump the version.

        The write only happens if the stored version still equals
        expected_version; otherwise VersionConflictError is raised.
        """
        pass

    @abstractmethod
    def soft_delete(self, submission_id: str, actor_id: str) -> Submission:
        """Mark a submission deleted. Raises SubmissionNotFoundError."""
        pass


class AttachmentInventory(ABC):
    """Read side of attachment storage, as seen by the workflow engine."""

    @abstractmethod
    def count_attachments(self, submission_id: str) -> int:
        """Number of non-deleted attachments of a submission."""
        pass

    @abstractmethod
    def list_attachments(self, submission_id: str) -> List[Attachment]:
        """Non-deleted attachments of a submission, oldest first."""
        pass

    def summarize(self, submission_id: str) -> AttachmentSummary:
        attachments = self.list_attachments(submission_id)
        photos = sum(1 for a in attachments if a.kind == AttachmentKind.PHOTO)
        return AttachmentSummary(
            submission_id=submission_id,
            photos=photos,
            documents=len(attachments) - photos,
        )


class AttachmentStore(AttachmentInventory):
    """Attachment metadata registry used by the intake service."""

    @abstractmethod
    def add_attachment(self, attachment: Attachment) -> Attachment:
        pass

    @abstractmethod
    def remove_attachment(self, attachment_id: str) -> Attachment:
        """Soft-delete an attachment. Raises AttachmentNotFoundError."""
        pass


def _check_version(submission: Submission, expected_version: Optional[int]) -> None:
    if expected_version is not None and submission.version != expected_version:
        raise VersionConflictError(
            f"Submission {submission.submission_id} was modified concurrently "
            f"(expected version {expected_version}, found {submission.version})",
            {"expected_version": expected_version, "actual_version": submission.version},
        )


def _commit_conflict(submission_id: str, expected_version: Optional[int]) -> VersionConflictError:
    return VersionConflictError(
        f"Submission {submission_id} was modified concurrently (commit rejected)",
        {"expected_version": expected_version},
    )


def _check_editable(changes: Dict[str, Any]) -> None:
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields are not editable: {', '.join(unknown)}")


# =============================================================================
# In-Memory Implementation (Testing)
# =============================================================================

class InMemorySubmissionStore(SubmissionStore):
    """
    In-memory store for unit tests and local demos.

    All reads return copies; a lock makes each read-compare-write atomic.
    """

    def __init__(self):
        self._submissions: Dict[str, Submission] = {}
        self._lock = threading.Lock()

    def _get_live(self, submission_id: str) -> Submission:
        submission = self._submissions.get(submission_id)
        if submission is None or submission.is_deleted:
            raise SubmissionNotFoundError(f"Submission not found: {submission_id}")
        return submission

    def find_by_id(self, submission_id: str) -> Optional[Submission]:
        with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is None or submission.is_deleted:
                return None
            return replace(submission)

    def list_submissions(
        self,
        status: Optional[SubmissionStatus] = None,
        created_by: Optional[str] = None,
    ) -> List[Submission]:
        with self._lock:
            results = [
                replace(s) for s in self._submissions.values()
                if not s.is_deleted
                and (status is None or s.status == status)
                and (created_by is None or s.created_by == created_by)
            ]
        return sorted(results, key=lambda s: s.created_at, reverse=True)

    def find_latest_by_owner(self, national_id: str, phone: str) -> Optional[Submission]:
        matches = [
            s for s in self.list_submissions()
            if s.owner_national_id == national_id and s.owner_phone == phone
        ]
        return matches[0] if matches else None

    def insert(self, submission: Submission) -> Submission:
        with self._lock:
            if submission.submission_id in self._submissions:
                raise ValueError(f"Submission already exists: {submission.submission_id}")
            self._submissions[submission.submission_id] = replace(submission)
        return replace(submission)

    def update_fields(
        self,
        submission_id: str,
        changes: Dict[str, Any],
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Submission:
        _check_editable(changes)
        with self._lock:
            current = self._get_live(submission_id)
            _check_version(current, expected_version)
            updated = replace(
                current,
                **changes,
                version=current.version + 1,
                updated_at=datetime.now(),
                updated_by=actor_id,
            )
            self._submissions[submission_id] = updated
            return replace(updated)

    def update_status(
        self,
        submission_id: str,
        new_status: SubmissionStatus,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Submission:
        with self._lock:
            current = self._get_live(submission_id)
            _check_version(current, expected_version)
            updated = replace(
                current,
                status=new_status,
                version=current.version + 1,
                updated_at=datetime.now(),
                updated_by=actor_id,
            )
            self._submissions[submission_id] = updated
            return replace(updated)

    def soft_delete(self, submission_id: str, actor_id: str) -> Submission:
        with self._lock:
            current = self._get_live(submission_id)
            now = datetime.now()
            deleted = replace(
                current,
                is_deleted=True,
                deleted_at=now,
                deleted_by=actor_id,
                version=current.version + 1,
                updated_at=now,
                updated_by=actor_id,
            )
            self._submissions[submission_id] = deleted
            return replace(deleted)


class InMemoryAttachmentStore(AttachmentStore):
    """In-memory attachment registry."""

    def __init__(self):
        self._attachments: Dict[str, Attachment] = {}
        self._lock = threading.Lock()

    def count_attachments(self, submission_id: str) -> int:
        return len(self.list_attachments(submission_id))

    def list_attachments(self, submission_id: str) -> List[Attachment]:
        with self._lock:
            results = [
                replace(a) for a in self._attachments.values()
                if a.submission_id == submission_id and not a.is_deleted
            ]
        return sorted(results, key=lambda a: a.created_at)

    def add_attachment(self, attachment: Attachment) -> Attachment:
        with self._lock:
            if attachment.attachment_id in self._attachments:
                raise ValueError(f"Attachment already exists: {attachment.attachment_id}")
            self._attachments[attachment.attachment_id] = replace(attachment)
        return replace(attachment)

    def remove_attachment(self, attachment_id: str) -> Attachment:
        with self._lock:
            current = self._attachments.get(attachment_id)
            if current is None or current.is_deleted:
                raise AttachmentNotFoundError(f"Attachment not found: {attachment_id}")
            removed = replace(current, is_deleted=True)
            self._attachments[attachment_id] = removed
            return replace(removed)


# =============================================================================
# TypeDB Implementation (Production)
# =============================================================================

# Python field -> TypeDB attribute type
_SUBMISSION_ATTRS: Dict[str, str] = {
    "owner_full_name": "owner-full-name",
    "owner_national_id": "owner-national-id",
    "owner_phone": "owner-phone",
    "owner_email": "owner-email",
    "vehicle_type": "vehicle-type",
    "vehicle_dimensions": "vehicle-dimensions",
    "vehicle_axle_count": "vehicle-axle-count",
    "license_plate": "license-plate",
}


def _literal(value: Any) -> str:
    """Render a Python value as a TypeQL literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, datetime):
        return typeql_datetime(value)
    if isinstance(value, VehicleType):
        value = value.value
    return f'"{escape(str(value))}"'


class TypeDBSubmissionStore(SubmissionStore):
    """
    TypeDB-backed submission store.

    Mutable attributes use the delete+insert pattern. The version read, the
    comparison and the write share one write transaction; a concurrent
    writer makes the commit fail, which is raised as VersionConflictError.
    """

    def __init__(self, connection: TypeDBConnection):
        self.connection = connection

    # =========================================================================
    # Mapping
    # =========================================================================

    @staticmethod
    def _from_document(document: Dict[str, Any]) -> Submission:
        doc = unwrap_document(document, "submission")

        def get(attr):
            return first_value(doc.get(attr))

        vehicle = get("vehicle-type")
        axles = get("vehicle-axle-count")
        return Submission(
            submission_id=get("submission-id"),
            status=SubmissionStatus.parse(get("submission-status")),
            owner_full_name=get("owner-full-name"),
            owner_national_id=get("owner-national-id"),
            owner_phone=get("owner-phone"),
            owner_email=get("owner-email"),
            vehicle_type=VehicleType(vehicle) if vehicle else None,
            vehicle_dimensions=get("vehicle-dimensions"),
            vehicle_axle_count=int(axles) if axles is not None else None,
            license_plate=get("license-plate"),
            version=int(get("record-version")),
            created_at=parse_datetime(get("created-at")),
            updated_at=parse_datetime(get("updated-at")),
            created_by=get("created-by"),
            updated_by=get("updated-by"),
            is_deleted=bool(get("is-deleted")),
            deleted_at=parse_datetime(get("deleted-at")),
            deleted_by=get("deleted-by"),
        )

    @staticmethod
    def _match(submission_id: str) -> str:
        return (
            f'match $s isa homologation-submission, '
            f'has submission-id "{escape(submission_id)}", has is-deleted false;'
        )

    def _fetch(self, tx, match: str) -> List[Submission]:
        rows = self.connection.query_rows(tx, f'{match}\nfetch {{ "submission": {{ $s.* }} }};')
        return [self._from_document(r) for r in rows]

    def _load_for_write(self, tx, submission_id: str, expected_version: Optional[int]) -> Submission:
        found = self._fetch(tx, self._match(submission_id))
        if not found:
            raise SubmissionNotFoundError(f"Submission not found: {submission_id}")
        _check_version(found[0], expected_version)
        return found[0]

    def _bump_queries(
        self,
        submission: Submission,
        actor_id: str,
        now: datetime,
        extra: Dict[str, Any],
    ) -> List[str]:
        """delete+insert queries that replace `extra` attrs and bump the version."""
        sid = escape(submission.submission_id)
        replaced = dict(extra)
        replaced["record-version"] = submission.version + 1
        replaced["updated-at"] = now
        replaced["updated-by"] = actor_id

        queries = []
        for attr in replaced:
            queries.append(
                f'match $s isa homologation-submission, has submission-id "{sid}", '
                f'has {attr} $old;\ndelete has $old of $s;'
            )
        inserts = [
            f"has {attr} {_literal(value)}"
            for attr, value in replaced.items()
            if value is not None
        ]
        queries.append(
            f'match $s isa homologation-submission, has submission-id "{sid}";\n'
            f'insert $s {", ".join(inserts)};'
        )
        return queries

    # =========================================================================
    # Reads
    # =========================================================================

    def find_by_id(self, submission_id: str) -> Optional[Submission]:
        with self.connection.transaction() as tx:
            found = self._fetch(tx, self._match(submission_id))
        return found[0] if found else None

    def list_submissions(
        self,
        status: Optional[SubmissionStatus] = None,
        created_by: Optional[str] = None,
    ) -> List[Submission]:
        clauses = ["$s isa homologation-submission, has is-deleted false"]
        if status is not None:
            clauses.append(f'has submission-status "{escape(status.value)}"')
        if created_by is not None:
            clauses.append(f'has created-by "{escape(created_by)}"')
        with self.connection.transaction() as tx:
            results = self._fetch(tx, f"match {', '.join(clauses)};")
        return sorted(results, key=lambda s: s.created_at, reverse=True)

    def find_latest_by_owner(self, national_id: str, phone: str) -> Optional[Submission]:
        match = (
            f'match $s isa homologation-submission, has is-deleted false, '
            f'has owner-national-id "{escape(national_id)}", '
            f'has owner-phone "{escape(phone)}";'
        )
        with self.connection.transaction() as tx:
            results = self._fetch(tx, match)
        if not results:
            return None
        return max(results, key=lambda s: s.created_at)

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(self, submission: Submission) -> Submission:
        attributes = [
            f'has submission-id "{escape(submission.submission_id)}"',
            f'has submission-status "{escape(submission.status.value)}"',
            f"has record-version {submission.version}",
            f"has created-at {typeql_datetime(submission.created_at)}",
            f"has updated-at {typeql_datetime(submission.updated_at)}",
            f'has created-by "{escape(submission.created_by)}"',
            f'has updated-by "{escape(submission.updated_by)}"',
            "has is-deleted false",
        ]
        for field_name, attr in _SUBMISSION_ATTRS.items():
            value = getattr(submission, field_name)
            if value is not None:
                attributes.append(f"has {attr} {_literal(value)}")

        attr_block = ",\n                ".join(attributes)
        query = f"""
            insert $s isa homologation-submission,
                {attr_block};
        """
        with self.connection.transaction(write=True) as tx:
            existing = self.connection.query_rows(
                tx,
                f'match $s isa homologation-submission, '
                f'has submission-id "{escape(submission.submission_id)}"; '
                f'fetch {{ "id": $s.submission-id }};',
            )
            if existing:
                raise ValueError(f"Submission already exists: {submission.submission_id}")
            self.connection.execute(tx, query)

        logger.info(f"Inserted submission: {submission.submission_id}")
        return replace(submission)

    def update_fields(
        self,
        submission_id: str,
        changes: Dict[str, Any],
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Submission:
        _check_editable(changes)
        now = datetime.now()
        try:
            with self.connection.transaction(write=True) as tx:
                current = self._load_for_write(tx, submission_id, expected_version)
                extra = {_SUBMISSION_ATTRS[k]: v for k, v in changes.items()}
                for query in self._bump_queries(current, actor_id, now, extra):
                    self.connection.execute(tx, query)
        except CommitConflictError as e:
            raise _commit_conflict(submission_id, expected_version) from e

        logger.info(f"Updated submission {submission_id} fields: {sorted(changes)}")
        return replace(
            current,
            **changes,
            version=current.version + 1,
            updated_at=now,
            updated_by=actor_id,
        )

    def update_status(
        self,
        submission_id: str,
        new_status: SubmissionStatus,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Submission:
        now = datetime.now()
        try:
            with self.connection.transaction(write=True) as tx:
                current = self._load_for_write(tx, submission_id, expected_version)
                extra = {"submission-status": new_status.value}
                for query in self._bump_queries(current, actor_id, now, extra):
                    self.connection.execute(tx, query)
        except CommitConflictError as e:
            raise _commit_conflict(submission_id, expected_version) from e

        logger.info(f"Updated submission {submission_id} status to {new_status.value}")
        return replace(
            current,
            status=new_status,
            version=current.version + 1,
            updated_at=now,
            updated_by=actor_id,
        )

    def soft_delete(self, submission_id: str, actor_id: str) -> Submission:
        now = datetime.now()
        try:
            with self.connection.transaction(write=True) as tx:
                current = self._load_for_write(tx, submission_id, None)
                extra = {"is-deleted": True, "deleted-at": now, "deleted-by": actor_id}
                for query in self._bump_queries(current, actor_id, now, extra):
                    self.connection.execute(tx, query)
        except CommitConflictError as e:
            raise _commit_conflict(submission_id, None) from e

        logger.info(f"Soft-deleted submission {submission_id}")
        return replace(
            current,
            is_deleted=True,
            deleted_at=now,
            deleted_by=actor_id,
            version=current.version + 1,
            updated_at=now,
            updated_by=actor_id,
        )


class TypeDBAttachmentStore(AttachmentStore):
    """TypeDB-backed attachment metadata registry."""

    def __init__(self, connection: TypeDBConnection):
        self.connection = connection

    @staticmethod
    def _from_document(document: Dict[str, Any]) -> Attachment:
        doc = unwrap_document(document, "attachment")

        def get(attr):
            return first_value(doc.get(attr))

        return Attachment(
            attachment_id=get("attachment-id"),
            submission_id=get("submission-ref"),
            file_name=get("file-name"),
            mime_type=get("mime-type"),
            size_bytes=int(get("size-bytes")),
            kind=AttachmentKind(get("attachment-kind")),
            created_at=parse_datetime(get("created-at")),
            created_by=get("created-by"),
            is_deleted=bool(get("is-deleted")),
        )

    def count_attachments(self, submission_id: str) -> int:
        return len(self.list_attachments(submission_id))

    def list_attachments(self, submission_id: str) -> List[Attachment]:
        query = f'''
            match $a isa attachment,
                has submission-ref "{escape(submission_id)}",
                has is-deleted false;
            fetch {{ "attachment": {{ $a.* }} }};
        '''
        rows = self.connection.read(query)
        return sorted((self._from_document(r) for r in rows), key=lambda a: a.created_at)

    def add_attachment(self, attachment: Attachment) -> Attachment:
        query = f'''
            insert $a isa attachment,
                has attachment-id "{escape(attachment.attachment_id)}",
                has submission-ref "{escape(attachment.submission_id)}",
                has file-name "{escape(attachment.file_name)}",
                has mime-type "{escape(attachment.mime_type)}",
                has size-bytes {attachment.size_bytes},
                has attachment-kind "{attachment.kind.value}",
                has created-at {typeql_datetime(attachment.created_at)},
                has created-by "{escape(attachment.created_by)}",
                has is-deleted false;
        '''
        self.connection.write(query)
        logger.info(f"Registered attachment {attachment.attachment_id} for {attachment.submission_id}")
        return replace(attachment)

    def remove_attachment(self, attachment_id: str) -> Attachment:
        aid = escape(attachment_id)
        with self.connection.transaction(write=True) as tx:
            rows = self.connection.query_rows(
                tx,
                f'match $a isa attachment, has attachment-id "{aid}", has is-deleted false;\n'
                f'fetch {{ "attachment": {{ $a.* }} }};',
            )
            if not rows:
                raise AttachmentNotFoundError(f"Attachment not found: {attachment_id}")
            self.connection.execute(
                tx,
                f'match $a isa attachment, has attachment-id "{aid}", has is-deleted $d;\n'
                f'delete has $d of $a;\n'
                f'insert $a has is-deleted true;',
            )
        return replace(self._from_document(rows[0]), is_deleted=True)