"""
Homologation Audit Log

Append-only record of every mutation: status transitions, field edits,
attachment registration and soft deletes.
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from homologation.db.typedb_client import (
    TypeDBConnection,
    escape,
    first_value,
    parse_datetime,
    typeql_datetime,
    unwrap_document,
)

from .models import AuditEntry

logger = logging.getLogger(__name__)

ENTITY_TYPE = "Homologation"


def _new_entry_id() -> str:
    return f"aud_{uuid.uuid4().hex[:12]}"


class AuditRecorder(ABC):
    """
    Append-only audit sink.

    Properties:
        - Append-only (no modifications)
        - Timestamped
        - Actor-tracked
    """

    @abstractmethod
    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        old_values: Optional[Dict[str, Any]],
        new_values: Optional[Dict[str, Any]],
        actor_id: str,
    ) -> AuditEntry:
        """Append an entry. NEVER modify or delete entries."""
        pass

    @abstractmethod
    def history(self, entity_id: str) -> List[AuditEntry]:
        """Entries for one entity, newest first."""
        pass


class InMemoryAuditRecorder(AuditRecorder):
    """
    In-memory audit log with optional JSONL mirroring.

    When log_path is set each entry is also appended to that file as a
    JSON line.
    """

    def __init__(self, log_path: Optional[Path] = None):
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()
        self.log_path = log_path

    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        old_values: Optional[Dict[str, Any]],
        new_values: Optional[Dict[str, Any]],
        actor_id: str,
    ) -> AuditEntry:
        entry = AuditEntry(
            entry_id=_new_entry_id(),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            created_at=datetime.now(),
            old_values=dict(old_values) if old_values is not None else None,
            new_values=dict(new_values) if new_values is not None else None,
        )

        if self.log_path:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), default=str) + "\n")

        with self._lock:
            self._entries.append(entry)

        logger.info(f"Audit entry {entry.entry_id}: {action} on {entity_type} {entity_id}")
        return entry

    def history(self, entity_id: str) -> List[AuditEntry]:
        with self._lock:
            entries = [e for e in self._entries if e.entity_id == entity_id]
        return list(reversed(entries))


class TypeDBAuditRecorder(AuditRecorder):
    """TypeDB-backed audit log. Entries are insert-only."""

    def __init__(self, connection: TypeDBConnection):
        self.connection = connection

    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        old_values: Optional[Dict[str, Any]],
        new_values: Optional[Dict[str, Any]],
        actor_id: str,
    ) -> AuditEntry:
        entry = AuditEntry(
            entry_id=_new_entry_id(),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            created_at=datetime.now(),
            old_values=old_values,
            new_values=new_values,
        )

        query = f'''
            insert $e isa audit-entry,
                has entry-id "{entry.entry_id}",
                has entity-type "{escape(entity_type)}",
                has entity-ref "{escape(entity_id)}",
                has audit-action "{escape(action)}",
                has actor-id "{escape(actor_id)}",
                has created-at {typeql_datetime(entry.created_at)}'''
        if old_values is not None:
            query += f',\n                has old-values "{escape(json.dumps(old_values, default=str))}"'
        if new_values is not None:
            query += f',\n                has new-values "{escape(json.dumps(new_values, default=str))}"'
        query += ";"

        self.connection.write(query)
        logger.info(f"Audit entry {entry.entry_id}: {action} on {entity_type} {entity_id}")
        return entry

    def history(self, entity_id: str) -> List[AuditEntry]:
        query = f'''
            match $e isa audit-entry, has entity-ref "{escape(entity_id)}";
            fetch {{ "entry": {{ $e.* }} }};
        '''
        entries = []
        for row in self.connection.read(query):
            doc = unwrap_document(row, "entry")
            old_raw = first_value(doc.get("old-values"))
            new_raw = first_value(doc.get("new-values"))
            entries.append(AuditEntry(
                entry_id=first_value(doc.get("entry-id")),
                entity_type=first_value(doc.get("entity-type")),
                entity_id=first_value(doc.get("entity-ref")),
                action=first_value(doc.get("audit-action")),
                actor_id=first_value(doc.get("actor-id")),
                created_at=parse_datetime(first_value(doc.get("created-at"))),
                old_values=json.loads(old_raw) if old_raw else None,
                new_values=json.loads(new_raw) if new_raw else None,
            ))
        return sorted(entries, key=lambda e: e.created_at, reverse=True)
