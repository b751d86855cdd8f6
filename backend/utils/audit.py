"""
Audit trail for projects, accounts and the rate table.

Entries go to the audit_logs collection. Writing one never fails the action
being audited: a database error is logged and an empty id comes back.
"""
import logging
from typing import Optional, Dict, Any, List

from database import database
from models import AuditLog, AuditAction, UserRole

logger = logging.getLogger(__name__)

_MISSING = object()


def changed_fields(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Field-level changes between two snapshots, as {field: {"from": old, "to": new}}.
    A field present on one side only reads as None on the other.
    """
    before = before or {}
    after = after or {}
    changes = {}
    for field in sorted(set(before) | set(after)):
        old = before.get(field, _MISSING)
        new = after.get(field, _MISSING)
        if old == new:
            continue
        changes[field] = {
            "from": None if old is _MISSING else old,
            "to": None if new is _MISSING else new,
        }
    return changes


async def create_audit_log(
    action: AuditAction,
    actor_role: Optional[UserRole] = None,
    actor_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Record one audit entry and return its id ("" when it could not be stored).

    When both snapshots are given, the field-level changes are kept under
    metadata["changes"] so a timeline can show them without recomputing.
    """
    details = dict(metadata or {})
    if before_state is not None and after_state is not None:
        changes = changed_fields(before_state, after_state)
        if changes:
            details["changes"] = changes

    try:
        entry = AuditLog(
            action=action,
            actor_role=actor_role,
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            before_state=before_state,
            after_state=after_state,
            metadata=details or None,
        )
        await database.get_db().audit_logs.insert_one(entry.model_dump(mode="json"))
    except Exception as e:
        logger.error(f"Audit entry {action.value} for {resource_type}/{resource_id} not stored: {e}")
        return ""

    logger.debug(f"Audit {action.value} {resource_type}/{resource_id} by {actor_id or 'system'}")
    return entry.audit_id


async def audit_trail(resource_type: str, resource_id: str, limit: int = 100) -> List[Dict[str, Any]]:
    """Entries for one resource in the order they happened."""
    db = database.get_db()
    cursor = db.audit_logs.find(
        {"resource_type": resource_type, "resource_id": resource_id},
        {"_id": 0},
    ).sort("timestamp", 1).limit(limit)
    return await cursor.to_list(length=limit)
