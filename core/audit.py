"""
Audit trail for all financial and lifecycle changes.

Every mutation is logged here, inside the same atomic unit as the change
itself, so an audit entry exists if and only if the change committed.
The audit log is:
- Append-only (entries never modified or deleted)
- Actor-attributed (client, admin, or system)
- Detailed (captures old and new values)
"""

from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from utils.actor_context import get_current_actor
from utils.timezone import now_utc


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditEntry(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    actor: str
    entity_type: str
    entity_id: str
    action: AuditAction
    changes: dict[str, Any]
    created_at: datetime = Field(default_factory=now_utc)


class AuditSink(Protocol):
    """Where entries go. Implemented by ledger units."""

    def insert_audit(self, entry: AuditEntry) -> None: ...

    def list_audit(self, entity_type: str, entity_id: str) -> list[AuditEntry]: ...


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail bound to one ledger unit.

    Always use model_dump(mode="json") when passing Pydantic models so UUIDs,
    enums and datetimes are JSON-compatible. log_create/log_update do this.

    Usage:
        with store.unit_of_work() as unit:
            unit.save_domain(updated)
            unit.audit.log_update("domain", previous, updated)
    """

    def __init__(self, sink: AuditSink):
        self._sink = sink

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID | str,
        action: AuditAction,
        changes: dict[str, Any],
        actor: str | None = None
    ) -> AuditEntry:
        """
        Log an entity change.

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        entry = AuditEntry(
            actor=actor or get_current_actor(),
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            changes=changes,
        )
        self._sink.insert_audit(entry)
        return entry

    def log_create(self, entity_type: str, entity: BaseModel, entity_id: UUID | str | None = None) -> AuditEntry:
        data = entity.model_dump(mode="json")
        return self.log_change(
            entity_type=entity_type,
            entity_id=entity_id or data["id"],
            action=AuditAction.CREATE,
            changes={"created": data},
        )

    def log_update(
        self,
        entity_type: str,
        old: BaseModel,
        new: BaseModel,
        entity_id: UUID | str | None = None,
    ) -> AuditEntry | None:
        """Log the field-level diff. Returns None when nothing changed."""
        old_data = old.model_dump(mode="json")
        changes = compute_changes(old_data, new.model_dump(mode="json"))
        if not changes:
            return None
        return self.log_change(
            entity_type=entity_type,
            entity_id=entity_id or old_data["id"],
            action=AuditAction.UPDATE,
            changes=changes,
        )

    def get_entity_history(self, entity_type: str, entity_id: UUID | str) -> list[AuditEntry]:
        """Full audit history for an entity, newest first."""
        return self._sink.list_audit(entity_type, str(entity_id))
