"""
Service Wiring

Constructs the stores, audit recorder, notifier, workflow engine and
intake service based on environment.

Production: TypeDB-backed stores (HOMOLOGATION_STORE=typedb)
Testing: in-memory stores (HOMOLOGATION_TEST_MODE=1 or HOMOLOGATION_STORE=memory)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from homologation.config import config
from homologation.workflow.audit import AuditRecorder, InMemoryAuditRecorder, TypeDBAuditRecorder
from homologation.workflow.engine import HomologationWorkflow
from homologation.workflow.intake import SubmissionIntakeService
from homologation.workflow.notifier import EmailNotifier, Notifier
from homologation.workflow.store import (
    AttachmentStore,
    InMemoryAttachmentStore,
    InMemorySubmissionStore,
    SubmissionStore,
    TypeDBAttachmentStore,
    TypeDBSubmissionStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Engine and intake service sharing one set of collaborators."""
    workflow: HomologationWorkflow
    intake: SubmissionIntakeService


def resolve_backend() -> str:
    """Return "memory" or "typedb"."""
    if os.environ.get("HOMOLOGATION_TEST_MODE") == "1":
        return "memory"
    backend = config.store_backend.strip().lower()
    if backend not in ("memory", "typedb"):
        raise ValueError(f"Unknown HOMOLOGATION_STORE: {config.store_backend!r} (expected memory or typedb)")
    return backend


def build_services(
    store: Optional[SubmissionStore] = None,
    attachments: Optional[AttachmentStore] = None,
    audit: Optional[AuditRecorder] = None,
    notifier: Optional[Notifier] = None,
    backend: Optional[str] = None,
) -> Services:
    """
    Wire the services. Collaborators passed in are used as-is; the rest
    come from the selected backend.
    """
    backend = backend or resolve_backend()

    if backend == "typedb":
        from homologation.db.typedb_client import TypeDBConnection

        connection = TypeDBConnection()
        store = store or TypeDBSubmissionStore(connection)
        attachments = attachments or TypeDBAttachmentStore(connection)
        audit = audit or TypeDBAuditRecorder(connection)
    else:
        store = store or InMemorySubmissionStore()
        attachments = attachments or InMemoryAttachmentStore()
        audit = audit or InMemoryAuditRecorder()

    notifier = notifier or EmailNotifier()
    logger.info(f"Services wired with {backend} backend")

    return Services(
        workflow=HomologationWorkflow(
            store=store,
            inventory=attachments,
            audit=audit,
            notifier=notifier,
        ),
        intake=SubmissionIntakeService(store=store, attachments=attachments, audit=audit),
    )


# Global services instance (lazily initialized)
_services: Optional[Services] = None


def get_services() -> Services:
    """Get or create the global Services instance."""
    global _services
    if _services is None:
        _services = build_services()
    return _services
