"""
Homologation workflow: status machine, intake and their collaborators.
"""

from .audit import AuditRecorder, InMemoryAuditRecorder, TypeDBAuditRecorder
from .engine import (
    ALLOWED_TRANSITIONS,
    ELEVATED_TARGETS,
    REQUIRED_SUBMISSION_FIELDS,
    TERMINAL_STATES,
    HomologationWorkflow,
    TransitionResult,
    allowed_transitions,
)
from .errors import (
    AttachmentNotFoundError,
    AttachmentRejectedError,
    ElevatedPrivilegeRequiredError,
    ErrorKind,
    InvalidTransitionError,
    MissingPrerequisitesError,
    SubmissionLockedError,
    SubmissionNotFoundError,
    VersionConflictError,
    WorkflowError,
)
from .intake import SubmissionIntakeService
from .models import (
    SYSTEM_ACTOR_ID,
    Attachment,
    AttachmentKind,
    AttachmentSummary,
    AuditEntry,
    Submission,
    SubmissionStatus,
    VehicleType,
)
from .notifier import (
    DeliveryStatus,
    EmailNotifier,
    NotificationContext,
    NotificationOutcome,
    Notifier,
)
from .store import (
    AttachmentInventory,
    AttachmentStore,
    InMemoryAttachmentStore,
    InMemorySubmissionStore,
    SubmissionStore,
    TypeDBAttachmentStore,
    TypeDBSubmissionStore,
)

__all__ = [
    # Engine
    "HomologationWorkflow",
    "TransitionResult",
    "allowed_transitions",
    "ALLOWED_TRANSITIONS",
    "ELEVATED_TARGETS",
    "REQUIRED_SUBMISSION_FIELDS",
    "TERMINAL_STATES",
    # Intake
    "SubmissionIntakeService",
    # Models
    "Submission",
    "SubmissionStatus",
    "VehicleType",
    "Attachment",
    "AttachmentKind",
    "AttachmentSummary",
    "AuditEntry",
    "SYSTEM_ACTOR_ID",
    # Errors
    "ErrorKind",
    "WorkflowError",
    "SubmissionNotFoundError",
    "InvalidTransitionError",
    "ElevatedPrivilegeRequiredError",
    "MissingPrerequisitesError",
    "VersionConflictError",
    "SubmissionLockedError",
    "AttachmentRejectedError",
    "AttachmentNotFoundError",
    # Collaborators
    "SubmissionStore",
    "InMemorySubmissionStore",
    "TypeDBSubmissionStore",
    "AttachmentInventory",
    "AttachmentStore",
    "InMemoryAttachmentStore",
    "TypeDBAttachmentStore",
    "AuditRecorder",
    "InMemoryAuditRecorder",
    "TypeDBAuditRecorder",
    "Notifier",
    "EmailNotifier",
    "NotificationContext",
    "NotificationOutcome",
    "DeliveryStatus",
]
