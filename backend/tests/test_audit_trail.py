"""
Audit trail: field-level change records, failure isolation, chronological timeline.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from models import AuditAction, UserRole
from utils.audit import changed_fields, create_audit_log, audit_trail


def test_changed_fields_reports_only_differences():
    before = {"status": "SUBMITTED", "eta_days": 3, "name": "Brochure"}
    after = {"status": "IN_PROGRESS", "eta_days": 3, "name": "Brochure"}
    assert changed_fields(before, after) == {"status": {"from": "SUBMITTED", "to": "IN_PROGRESS"}}


def test_changed_fields_missing_side_reads_as_none():
    changes = changed_fields({"translated_file_ref": "t-1"}, {"completed_at": "2026-01-02"})
    assert changes == {
        "completed_at": {"from": None, "to": "2026-01-02"},
        "translated_file_ref": {"from": "t-1", "to": None},
    }
    assert changed_fields(None, None) == {}


@pytest.mark.asyncio
async def test_entry_keeps_changes_beside_caller_metadata():
    db = MagicMock()
    db.audit_logs.insert_one = AsyncMock()
    with patch("utils.audit.database.get_db", return_value=db):
        audit_id = await create_audit_log(
            action=AuditAction.MULTIPLIER_UPDATED,
            actor_role=UserRole.ROLE_ADMIN,
            actor_id="admin-1",
            resource_type="rate_table",
            resource_id="rate_table",
            before_state={"project_type_multiplier": 1.3},
            after_state={"project_type_multiplier": 1.5},
            metadata={"version": 4},
        )

    assert audit_id
    stored = db.audit_logs.insert_one.call_args.args[0]
    assert stored["action"] == AuditAction.MULTIPLIER_UPDATED.value
    assert stored["metadata"] == {
        "version": 4,
        "changes": {"project_type_multiplier": {"from": 1.3, "to": 1.5}},
    }


@pytest.mark.asyncio
async def test_unchanged_snapshots_add_no_changes_key():
    db = MagicMock()
    db.audit_logs.insert_one = AsyncMock()
    with patch("utils.audit.database.get_db", return_value=db):
        await create_audit_log(
            action=AuditAction.PROJECT_ETA_UPDATED,
            resource_type="project",
            resource_id="p-1",
            before_state={"eta_days": 2},
            after_state={"eta_days": 2},
        )
    assert db.audit_logs.insert_one.call_args.args[0]["metadata"] is None


@pytest.mark.asyncio
async def test_storage_failure_returns_empty_id():
    db = MagicMock()
    db.audit_logs.insert_one = AsyncMock(side_effect=RuntimeError("mongo down"))
    with patch("utils.audit.database.get_db", return_value=db):
        audit_id = await create_audit_log(action=AuditAction.PROJECT_CREATED, resource_type="project", resource_id="p-1")
    assert audit_id == ""


@pytest.mark.asyncio
async def test_trail_reads_oldest_first():
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[{"action": "PROJECT_CREATED"}, {"action": "PROJECT_SUBMITTED"}])
    db = MagicMock()
    db.audit_logs.find.return_value = cursor
    with patch("utils.audit.database.get_db", return_value=db):
        entries = await audit_trail("project", "p-1")

    assert [e["action"] for e in entries] == ["PROJECT_CREATED", "PROJECT_SUBMITTED"]
    assert db.audit_logs.find.call_args.args[0] == {"resource_type": "project", "resource_id": "p-1"}
    cursor.sort.assert_called_once_with("timestamp", 1)
