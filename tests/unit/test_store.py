"""
Unit Tests: In-memory submission and attachment stores
"""

from datetime import datetime, timedelta

import pytest

from homologation.workflow.errors import (
    AttachmentNotFoundError,
    SubmissionNotFoundError,
    VersionConflictError,
)
from homologation.workflow.models import Attachment, AttachmentKind, Submission, SubmissionStatus
from homologation.workflow.store import InMemoryAttachmentStore, InMemorySubmissionStore


@pytest.fixture
def store():
    return InMemorySubmissionStore()


def _submission(submission_id, created_at=None, **fields):
    created_at = created_at or datetime(2026, 1, 1)
    return Submission(submission_id=submission_id, created_at=created_at, updated_at=created_at, **fields)


class TestInMemorySubmissionStore:

    def test_reads_return_copies(self, store):
        store.insert(_submission("sub-1"))

        copy = store.find_by_id("sub-1")
        copy.status = SubmissionStatus.APPROVED

        assert store.find_by_id("sub-1").status == SubmissionStatus.DRAFT

    def test_insert_duplicate_raises(self, store):
        store.insert(_submission("sub-1"))

        with pytest.raises(ValueError, match="already exists"):
            store.insert(_submission("sub-1"))

    def test_update_status_bumps_version(self, store):
        store.insert(_submission("sub-1"))

        updated = store.update_status("sub-1", SubmissionStatus.PENDING_REVIEW, "owner", expected_version=1)

        assert updated.version == 2
        assert updated.updated_by == "owner"
        assert store.find_by_id("sub-1").status == SubmissionStatus.PENDING_REVIEW

    def test_stale_version_conflicts(self, store):
        store.insert(_submission("sub-1"))
        store.update_status("sub-1", SubmissionStatus.PENDING_REVIEW, "owner", expected_version=1)

        with pytest.raises(VersionConflictError) as exc:
            store.update_status("sub-1", SubmissionStatus.PAID, "owner", expected_version=1)

        assert exc.value.details == {"expected_version": 1, "actual_version": 2}
        assert store.find_by_id("sub-1").status == SubmissionStatus.PENDING_REVIEW

    def test_update_fields_only_editable(self, store):
        store.insert(_submission("sub-1"))

        with pytest.raises(ValueError):
            store.update_fields("sub-1", {"status": SubmissionStatus.APPROVED}, "owner")

        updated = store.update_fields("sub-1", {"license_plate": "1234ABC"}, "owner")
        assert updated.license_plate == "1234ABC"
        assert updated.version == 2

    def test_soft_deleted_is_invisible(self, store):
        store.insert(_submission("sub-1"))
        store.soft_delete("sub-1", "admin-1")

        assert store.find_by_id("sub-1") is None
        assert store.list_submissions() == []
        with pytest.raises(SubmissionNotFoundError):
            store.update_status("sub-1", SubmissionStatus.PENDING_REVIEW, "owner")
        with pytest.raises(SubmissionNotFoundError):
            store.soft_delete("sub-1", "admin-1")

    def test_soft_delete_bumps_version(self, store):
        store.insert(_submission("sub-1"))
        store.update_fields("sub-1", {"license_plate": "1234ABC"}, "owner")

        deleted = store.soft_delete("sub-1", "admin-1")

        assert deleted.version == 3
        assert deleted.updated_by == "admin-1"
        assert deleted.deleted_by == "admin-1"

    def test_list_newest_first_with_filters(self, store):
        base = datetime(2026, 1, 1)
        store.insert(_submission("a", base, created_by="owner-1"))
        store.insert(_submission("b", base + timedelta(days=1), created_by="owner-2"))
        store.insert(_submission("c", base + timedelta(days=2), created_by="owner-1",
                                 status=SubmissionStatus.PENDING_REVIEW))

        assert [s.submission_id for s in store.list_submissions()] == ["c", "b", "a"]
        assert [s.submission_id for s in store.list_submissions(created_by="owner-1")] == ["c", "a"]
        assert [s.submission_id for s in store.list_submissions(status=SubmissionStatus.DRAFT)] == ["b", "a"]

    def test_find_latest_by_owner(self, store):
        base = datetime(2026, 1, 1)
        owner = dict(owner_national_id="12345678A", owner_phone="+34600000000")
        store.insert(_submission("old", base, **owner))
        store.insert(_submission("new", base + timedelta(days=3), **owner))
        store.insert(_submission("other", base + timedelta(days=5), owner_national_id="X", owner_phone="+34600000000"))

        assert store.find_latest_by_owner("12345678A", "+34600000000").submission_id == "new"
        assert store.find_latest_by_owner("12345678A", "+34999999999") is None


class TestInMemoryAttachmentStore:

    def _attachment(self, attachment_id, submission_id="sub-1", kind=AttachmentKind.PHOTO):
        return Attachment(
            attachment_id=attachment_id,
            submission_id=submission_id,
            file_name=f"{attachment_id}.jpg",
            mime_type="image/jpeg",
            size_bytes=100,
            kind=kind,
        )

    def test_count_ignores_removed_and_other_submissions(self):
        attachments = InMemoryAttachmentStore()
        attachments.add_attachment(self._attachment("att_1"))
        attachments.add_attachment(self._attachment("att_2"))
        attachments.add_attachment(self._attachment("att_3", submission_id="sub-2"))
        attachments.remove_attachment("att_2")

        assert attachments.count_attachments("sub-1") == 1
        assert attachments.count_attachments("sub-404") == 0

    def test_remove_twice_raises(self):
        attachments = InMemoryAttachmentStore()
        attachments.add_attachment(self._attachment("att_1"))
        attachments.remove_attachment("att_1")

        with pytest.raises(AttachmentNotFoundError):
            attachments.remove_attachment("att_1")

    def test_summarize(self):
        attachments = InMemoryAttachmentStore()
        attachments.add_attachment(self._attachment("att_1"))
        attachments.add_attachment(self._attachment("att_2", kind=AttachmentKind.ID_DOCUMENT))
        attachments.add_attachment(self._attachment("att_3", kind=AttachmentKind.DOCUMENT))

        summary = attachments.summarize("sub-1")

        assert (summary.photos, summary.documents, summary.count) == (1, 2, 3)
