"""
Workflow Errors

Typed failure kinds for the status workflow and the exceptions that carry
them. The engine raises these internally and converts them into a failed
TransitionResult; the intake service lets them propagate.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Classification of a failed transition."""
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    REQUIRES_ELEVATED_PRIVILEGE = "REQUIRES_ELEVATED_PRIVILEGE"
    MISSING_PREREQUISITES = "MISSING_PREREQUISITES"
    CONFLICT = "CONFLICT"
    UNEXPECTED = "UNEXPECTED"

    @property
    def is_retryable(self) -> bool:
        """Only a lost version race is worth retrying after a reload."""
        return self is ErrorKind.CONFLICT

    @property
    def is_caller_error(self) -> bool:
        return self is not ErrorKind.UNEXPECTED


class WorkflowError(Exception):
    """Base class for classified workflow failures."""
    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SubmissionNotFoundError(WorkflowError):
    """Raised when a submission does not exist or is soft-deleted."""
    kind = ErrorKind.NOT_FOUND


class InvalidTransitionError(WorkflowError):
    """Raised when the requested edge is not in the transition table."""
    kind = ErrorKind.INVALID_TRANSITION


class ElevatedPrivilegeRequiredError(WorkflowError):
    """Raised when a non-elevated actor requests an admin-only target."""
    kind = ErrorKind.REQUIRES_ELEVATED_PRIVILEGE


class MissingPrerequisitesError(WorkflowError):
    """Raised when a submission is not ready to be submitted."""
    kind = ErrorKind.MISSING_PREREQUISITES


class VersionConflictError(WorkflowError):
    """Raised by stores when the expected version no longer matches."""
    kind = ErrorKind.CONFLICT


# =============================================================================
# Intake Errors
# =============================================================================

class SubmissionLockedError(Exception):
    """Raised when fields are edited outside Draft or Incomplete."""
    pass


class AttachmentRejectedError(Exception):
    """Raised when an attachment fails type or size validation."""
    pass


class AttachmentNotFoundError(Exception):
    """Raised when an attachment does not exist or was removed."""
    pass
