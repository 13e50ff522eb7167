"""
Homologation Workflow Engine

Guarded status machine for homologation submissions.
Transports (HTTP, CLI) are ports that call this engine; the rules live here.

State machine:
    Draft → Pending Review → Paid | Incomplete | Approved | Rejected
    Paid → Approved | Rejected | Incomplete
    Incomplete → Pending Review | Rejected
    Approved → Completed

Guard order:
    1. submission exists (NOT_FOUND)
    2. admin-only target needs an elevated actor (REQUIRES_ELEVATED_PRIVILEGE)
    3. edge is in the table (INVALID_TRANSITION)
    4. Draft → Pending Review needs owner fields and an attachment (MISSING_PREREQUISITES)

INVARIANTS:
    - A rejected request never writes, audits or notifies
    - Status write and audit entry must both succeed for a success result
    - Notification failure never changes the result
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from .audit import ENTITY_TYPE
from .errors import (
    ElevatedPrivilegeRequiredError,
    ErrorKind,
    InvalidTransitionError,
    MissingPrerequisitesError,
    SubmissionNotFoundError,
    WorkflowError,
)
from .models import Submission, SubmissionStatus
from .notifier import DeliveryStatus, NotificationContext, NotificationOutcome

if TYPE_CHECKING:
    from .audit import AuditRecorder
    from .notifier import Notifier
    from .store import AttachmentInventory, SubmissionStore

logger = logging.getLogger(__name__)

S = SubmissionStatus


# =============================================================================
# Transition Tables
# =============================================================================

# Allowed transitions (from -> ordered targets)
ALLOWED_TRANSITIONS: Mapping[SubmissionStatus, Tuple[SubmissionStatus, ...]] = MappingProxyType({
    S.DRAFT: (S.PENDING_REVIEW,),
    S.PENDING_REVIEW: (S.PAID, S.APPROVED, S.INCOMPLETE, S.REJECTED),
    S.PAID: (S.APPROVED, S.REJECTED, S.INCOMPLETE),
    S.INCOMPLETE: (S.PENDING_REVIEW, S.REJECTED),
    S.APPROVED: (S.COMPLETED,),
    # Terminal states have no outgoing transitions
    S.REJECTED: (),
    S.COMPLETED: (),
})

_uncovered = set(SubmissionStatus) - set(ALLOWED_TRANSITIONS)
if _uncovered:
    raise RuntimeError(f"Transition table misses statuses: {sorted(s.value for s in _uncovered)}")

TERMINAL_STATES: FrozenSet[SubmissionStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Targets only an elevated (admin) actor may request
ELEVATED_TARGETS: FrozenSet[SubmissionStatus] = frozenset({
    S.APPROVED,
    S.REJECTED,
    S.COMPLETED,
})

# (attribute, wire name) pairs that must be filled before review
REQUIRED_SUBMISSION_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("owner_full_name", "ownerFullName"),
    ("owner_national_id", "ownerNationalId"),
    ("owner_phone", "ownerPhone"),
    ("owner_email", "ownerEmail"),
    ("vehicle_type", "vehicleType"),
)

STATUS_CHANGE_PREFIX = "STATUS_CHANGE_"


def allowed_transitions(current_status: Union[SubmissionStatus, str]) -> List[SubmissionStatus]:
    """Targets reachable from a status, in table order."""
    return list(ALLOWED_TRANSITIONS[SubmissionStatus.parse(current_status)])


def _format_targets(targets) -> str:
    return ", ".join(t.value for t in targets) if targets else "none"


def missing_required_fields(submission: Submission) -> List[str]:
    """Wire names of required fields that are absent or blank."""
    missing = []
    for attr, wire_name in REQUIRED_SUBMISSION_FIELDS:
        value = getattr(submission, attr)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(wire_name)
    return missing


# =============================================================================
# Result
# =============================================================================

@dataclass
class TransitionResult:
    """Outcome of a transition request. Failures carry a kind and details."""
    ok: bool
    submission: Optional[Submission] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    notification: Optional[NotificationOutcome] = None

    @classmethod
    def success(
        cls,
        submission: Submission,
        notification: Optional[NotificationOutcome] = None,
    ) -> "TransitionResult":
        return cls(ok=True, submission=submission, notification=notification)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> "TransitionResult":
        return cls(ok=False, error_kind=kind, message=message, details=details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "submission": self.submission.to_dict() if self.submission else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "details": self.details,
            "notification": self.notification.to_dict() if self.notification else None,
        }


# =============================================================================
# Workflow Engine (Core)
# =============================================================================

class HomologationWorkflow:
    """
    Core service for the submission status lifecycle.

    Holds no mutable state of its own; every call reads the submission,
    evaluates the guards and then drives the collaborators:
    - SubmissionStore for the status write (conditioned on version)
    - AuditRecorder for the STATUS_CHANGE_* entry
    - Notifier for the best-effort owner e-mail
    """

    def __init__(
        self,
        store: Optional["SubmissionStore"] = None,
        inventory: Optional["AttachmentInventory"] = None,
        audit: Optional["AuditRecorder"] = None,
        notifier: Optional["Notifier"] = None,
    ):
        """
        Initialize with collaborators.

        Missing store, inventory or audit default to in-memory versions;
        a missing notifier defaults to EmailNotifier from config.
        """
        if store is None:
            from .store import InMemorySubmissionStore
            store = InMemorySubmissionStore()
        if inventory is None:
            from .store import InMemoryAttachmentStore
            inventory = InMemoryAttachmentStore()
        if audit is None:
            from .audit import InMemoryAuditRecorder
            audit = InMemoryAuditRecorder()
        if notifier is None:
            from .notifier import EmailNotifier
            notifier = EmailNotifier()

        self._store = store
        self._inventory = inventory
        self._audit = audit
        self._notifier = notifier

    # =========================================================================
    # Guards
    # =========================================================================

    def _get_or_raise(self, submission_id: str) -> Submission:
        submission = self._store.find_by_id(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(f"Submission not found: {submission_id}")
        return submission

    @staticmethod
    def _resolve_target(current: SubmissionStatus, target: Union[SubmissionStatus, str]) -> SubmissionStatus:
        try:
            return SubmissionStatus.parse(target)
        except ValueError:
            allowed = ALLOWED_TRANSITIONS[current]
            raise InvalidTransitionError(
                f'Unknown target status "{target}". Allowed transitions: {_format_targets(allowed)}',
                {"allowed_transitions": [t.value for t in allowed]},
            ) from None

    @staticmethod
    def _assert_privilege(target: SubmissionStatus, is_elevated: bool) -> None:
        if target in ELEVATED_TARGETS and not is_elevated:
            raise ElevatedPrivilegeRequiredError(
                f'Transition to "{target.value}" requires administrator privileges'
            )

    @staticmethod
    def _assert_transition_allowed(current: SubmissionStatus, target: SubmissionStatus) -> None:
        allowed = ALLOWED_TRANSITIONS[current]
        if target not in allowed:
            raise InvalidTransitionError(
                f'Cannot transition from "{current.value}" to "{target.value}". '
                f"Allowed transitions: {_format_targets(allowed)}",
                {"allowed_transitions": [t.value for t in allowed]},
            )

    def _assert_ready_for_review(self, submission: Submission) -> None:
        """Draft → Pending Review needs every owner field and one attachment."""
        missing_fields = missing_required_fields(submission)
        # Inventory failures propagate: they are not "zero attachments"
        has_attachments = self._inventory.count_attachments(submission.submission_id) > 0

        if not missing_fields and has_attachments:
            return

        sentences = []
        if missing_fields:
            sentences.append(f"Missing required fields for submission: {', '.join(missing_fields)}.")
        if not has_attachments:
            sentences.append("At least one photo or document is required for submission.")
        raise MissingPrerequisitesError(
            " ".join(sentences),
            {"missing_fields": missing_fields, "missing_attachments": not has_attachments},
        )

    # =========================================================================
    # Transition
    # =========================================================================

    def allowed_transitions(self, current_status: Union[SubmissionStatus, str]) -> List[SubmissionStatus]:
        return allowed_transitions(current_status)

    def transition(
        self,
        submission_id: str,
        target_status: Union[SubmissionStatus, str],
        actor_id: str,
        is_elevated: bool,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move a submission to target_status if every guard passes.

        Returns a TransitionResult; guard failures and collaborator errors
        are reported in it rather than raised. BaseException (cancellation,
        KeyboardInterrupt) is not intercepted.
        """
        stage = "load"
        try:
            submission = self._get_or_raise(submission_id)
            target = self._resolve_target(submission.status, target_status)
            self._assert_privilege(target, is_elevated)
            self._assert_transition_allowed(submission.status, target)
            if submission.status == S.DRAFT and target == S.PENDING_REVIEW:
                stage = "readiness"
                self._assert_ready_for_review(submission)

            stage = "update"
            updated = self._store.update_status(
                submission.submission_id,
                target,
                actor_id,
                expected_version=submission.version,
            )

            stage = "audit"
            self._audit.record(
                entity_type=ENTITY_TYPE,
                entity_id=submission.submission_id,
                action=f"{STATUS_CHANGE_PREFIX}{target.action_label}",
                old_values={"status": submission.status.value},
                new_values={"status": target.value, "reason": reason},
                actor_id=actor_id,
            )
        except WorkflowError as e:
            logger.info(
                f"Submission {submission_id}: transition to {target_status} rejected "
                f"({e.kind.value}) for {actor_id}: {e.message}"
            )
            return TransitionResult.failure(e.kind, e.message, e.details)
        except Exception as e:
            if stage == "audit":
                logger.error(
                    f"Submission {submission_id}: status written but audit entry failed; "
                    f"audit trail is missing this transition: {e}",
                    exc_info=True,
                )
            else:
                logger.exception(f"Submission {submission_id}: transition failed during {stage}")
            return TransitionResult.failure(
                ErrorKind.UNEXPECTED,
                "The transition could not be completed because of an internal error",
                {"stage": stage},
            )

        logger.info(
            f"Submission {submission_id}: {submission.status.value} → {target.value} by {actor_id}"
        )

        notification = self._notify(updated, reason)
        return TransitionResult.success(updated, notification)

    def _notify(self, submission: Submission, reason: Optional[str]) -> NotificationOutcome:
        """Best-effort owner notification. Failures are logged and returned, never raised."""
        context = NotificationContext(
            owner_name=submission.owner_full_name,
            owner_email=submission.owner_email,
            submission_id=submission.submission_id,
            status=submission.status,
            reason=reason,
        )
        try:
            outcome = self._notifier.send_status_notification(context)
        except Exception as e:
            logger.warning(
                f"Notification for submission {submission.submission_id} failed: {e}",
                exc_info=True,
            )
            return NotificationOutcome(
                status=DeliveryStatus.FAILED,
                recipient=submission.owner_email,
                error=str(e),
            )

        if outcome.status == DeliveryStatus.FAILED:
            logger.warning(
                f"Notification for submission {submission.submission_id} not delivered: {outcome.error}"
            )
        return outcome

    # =========================================================================
    # Named Transitions
    # =========================================================================

    def submit_for_review(self, submission_id: str, actor_id: str) -> TransitionResult:
        """Draft | Incomplete → Pending Review. Never elevated."""
        return self.transition(submission_id, S.PENDING_REVIEW, actor_id, is_elevated=False)

    def confirm_payment(
        self,
        submission_id: str,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Pending Review → Paid."""
        return self.transition(submission_id, S.PAID, actor_id, is_elevated=False, reason=reason)

    def approve(
        self,
        submission_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        *,
        is_elevated: bool = True,
    ) -> TransitionResult:
        return self.transition(submission_id, S.APPROVED, actor_id, is_elevated, reason)

    def reject(
        self,
        submission_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        *,
        is_elevated: bool = True,
    ) -> TransitionResult:
        return self.transition(submission_id, S.REJECTED, actor_id, is_elevated, reason)

    def mark_incomplete(
        self,
        submission_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        *,
        is_elevated: bool = True,
    ) -> TransitionResult:
        return self.transition(submission_id, S.INCOMPLETE, actor_id, is_elevated, reason)

    def complete(
        self,
        submission_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        *,
        is_elevated: bool = True,
    ) -> TransitionResult:
        return self.transition(submission_id, S.COMPLETED, actor_id, is_elevated, reason)
