"""
Project Service - Business Logic Layer
Quote analysis, project materialization and every status transition.

All status changes go through this module so the rules in project_workflow.py
and the side effects (audit, files, notifications) stay in one place.
There is no lock: concurrent admin edits of the same project are last-writer-wins.
Submission uses a conditional update so a double submit cannot both succeed.
"""
import os
import uuid
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, List, Any, Tuple

from pymongo.errors import DuplicateKeyError

from database import database
from auth import Actor
from models import AuditAction, ProjectType
from utils.audit import create_audit_log, audit_trail
from services.errors import InvalidInput, InvalidTransition, Forbidden, NotFound, Conflict
from services.project_workflow import (
    ProjectStatus,
    TransitionType,
    is_valid_owner_transition,
    is_admin_settable,
    is_active,
    can_owner_delete,
    requires_artifact,
    PIPELINE_COLUMNS,
)
from services.quote_calculator import compute_quote, quote_to_document
from services.rate_table import get_rate_table
from services.unit_counter import validate_upload, count_units
from services.id_generator import next_project_id
from services.storage_adapter import (
    storage_adapter,
    store_source_document,
    store_translated_document,
    retrieve,
    delete_project_files,
    list_source_documents,
    ArtifactNotFoundError,
    FileMetadata,
)
from services.notification_service import (
    notification_service,
    ProjectNotificationEvent,
    build_project_payload,
)

logger = logging.getLogger(__name__)

# Analyze uploads that never became a project are removed after this many days
UNCLAIMED_UPLOAD_RETENTION_DAYS = int(os.getenv("UNCLAIMED_UPLOAD_RETENTION_DAYS", "7"))


def generate_project_id() -> str:
    """Internal primary key. The human-facing reference comes from id_generator."""
    return str(uuid.uuid4())


async def _get_owner(owner_id: str) -> Optional[Dict]:
    db = database.get_db()
    return await db.users.find_one(
        {"user_id": owner_id},
        {"_id": 0, "user_id": 1, "email": 1, "name": 1, "account_number": 1},
    )


async def _notify(event: str, project: Dict, owner: Optional[Dict]) -> None:
    """Fire-and-forget: a failed notification is logged, never raised."""
    result = await notification_service.notify(event, build_project_payload(project, owner))
    if not result.success:
        logger.warning(f"Notification {event} for project {project.get('project_id')} failed: {result.error}")


async def _audit_transition(
    project: Dict,
    previous_status: Optional[str],
    new_status: str,
    action: AuditAction,
    actor: Optional[Actor],
    transition_type: TransitionType,
    metadata: Optional[Dict] = None,
) -> None:
    await create_audit_log(
        action=action,
        actor_role=actor.role if actor else None,
        actor_id=actor.user_id if actor else None,
        resource_type="project",
        resource_id=project["project_id"],
        before_state={"status": previous_status} if previous_status else None,
        after_state={"status": new_status},
        metadata={
            "project_ref": project.get("project_ref"),
            "transition_type": transition_type.value,
            **(metadata or {}),
        },
    )


# ============================================
# READS
# ============================================

async def get_project(project_id: str) -> Optional[Dict]:
    db = database.get_db()
    return await db.projects.find_one({"project_id": project_id}, {"_id": 0})


async def get_owned_project(project_id: str, actor: Actor) -> Dict:
    """Project visible to the caller: the owner, or any admin."""
    project = await get_project(project_id)
    if not project or (project["owner_id"] != actor.user_id and not actor.is_admin):
        raise NotFound("Project not found or access denied")
    return project


async def find_project_by_ref(project_ref: str) -> Optional[Dict]:
    db = database.get_db()
    return await db.projects.find_one({"project_ref": project_ref.strip().upper()}, {"_id": 0})


async def list_projects_for_owner(owner_id: str) -> List[Dict]:
    db = database.get_db()
    cursor = db.projects.find({"owner_id": owner_id}, {"_id": 0}).sort("created_at", -1)
    return await cursor.to_list(length=None)


async def list_projects_for_owners(owner_ids: List[str]) -> List[Dict]:
    if not owner_ids:
        return []
    db = database.get_db()
    cursor = db.projects.find({"owner_id": {"$in": owner_ids}}, {"_id": 0}).sort("created_at", -1)
    return await cursor.to_list(length=None)


async def list_all_projects(
    status_filter: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
) -> Dict[str, Any]:
    """Admin listing with owner name and email attached."""
    db = database.get_db()

    query = {}
    if status_filter:
        try:
            query["status"] = ProjectStatus(status_filter).value
        except ValueError:
            raise InvalidInput(f"Invalid status: {status_filter}")

    cursor = db.projects.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit)
    projects = await cursor.to_list(length=None)
    total = await db.projects.count_documents(query)

    owner_ids = list({p["owner_id"] for p in projects})
    owners = {}
    if owner_ids:
        owner_cursor = db.users.find(
            {"user_id": {"$in": owner_ids}},
            {"_id": 0, "user_id": 1, "email": 1, "name": 1},
        )
        owners = {u["user_id"]: u for u in await owner_cursor.to_list(length=None)}

    for project in projects:
        owner = owners.get(project["owner_id"], {})
        project["owner_name"] = owner.get("name")
        project["owner_email"] = owner.get("email")

    return {"projects": projects, "total": total, "limit": limit, "skip": skip}


async def get_pipeline_counts() -> Dict[str, int]:
    """Project count per status, every column present."""
    db = database.get_db()
    pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
    rows = await db.projects.aggregate(pipeline).to_list(length=None)
    counts = {col["status"].value: 0 for col in PIPELINE_COLUMNS}
    for row in rows:
        if row["_id"] in counts:
            counts[row["_id"]] = row["count"]
    return counts


async def get_project_timeline(project_id: str) -> List[Dict]:
    """Audit entries for the project, oldest first."""
    return await audit_trail("project", project_id)


# ============================================
# QUOTING
# ============================================

async def analyze_document(
    content: bytes,
    filename: str,
    content_type: Optional[str],
    languages: List[str],
    project_type: ProjectType,
    actor: Actor,
) -> Dict[str, Any]:
    """
    Count words, price them against the current rate table and keep the upload
    so a project can be created from it later.
    """
    validate_upload(content, filename, content_type)
    unit_count = count_units(content, filename, content_type)

    rate_table = await get_rate_table()
    quote = compute_quote(unit_count, languages, project_type, rate_table)

    stored = await store_source_document(
        content=content,
        filename=filename,
        content_type=content_type or "application/octet-stream",
        uploaded_by=actor.user_id,
        unit_count=unit_count,
    )

    logger.info(
        f"Quote for {filename}: {unit_count} words, {len(quote.breakdown)} languages, "
        f"subtotal {quote.subtotal}, PM fee {quote.pm_fee}, total {quote.total}"
    )

    return {
        "file_name": filename,
        "upload_ref": stored.file_id,
        **quote_to_document(quote),
    }


async def create_project(
    actor: Actor,
    name: str,
    upload_ref: str,
    languages: List[str],
    project_type: ProjectType = ProjectType.FUSION,
    notes: Optional[str] = None,
) -> Dict:
    """
    Materialize a quote into a project in QUOTE_GENERATED.
    The price is recomputed here from the stored word count and the current rate table.
    """
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Project name is required")
    if not upload_ref:
        raise InvalidInput("Uploaded file reference is required")

    source: Optional[FileMetadata] = await storage_adapter.get_file_metadata(upload_ref)
    if not source or source.uploaded_by != actor.user_id:
        raise NotFound("Uploaded file not found")
    unit_count = source.metadata.get("unit_count")
    if unit_count is None:
        raise InvalidInput("Uploaded file has no word count")

    # One upload backs at most one project; deleting a project removes its source file
    db = database.get_db()
    if await db.projects.find_one({"source_file_ref": upload_ref}, {"_id": 1}):
        raise Conflict("This upload already belongs to a project")

    rate_table = await get_rate_table()
    quote = compute_quote(int(unit_count), languages, project_type, rate_table)

    project_ref = await next_project_id()
    now = datetime.now(timezone.utc)

    project_doc = {
        "project_id": generate_project_id(),
        "project_ref": project_ref,
        "owner_id": actor.user_id,
        "name": name,
        "file_name": source.metadata.get("original_filename") or source.filename,
        "source_file_ref": upload_ref,
        **quote_to_document(quote),
        "status": ProjectStatus.QUOTE_GENERATED.value,
        "eta_days": None,
        "notes": notes or "",
        "translated_file_ref": None,
        "translated_file_name": None,
        "rate_table_version": rate_table.version,
        "created_at": now,
        "updated_at": now,
        "submitted_at": None,
        "completed_at": None,
    }

    try:
        await db.projects.insert_one(project_doc)
    except DuplicateKeyError:
        raise Conflict("This upload already belongs to a project")
    project_doc.pop("_id", None)

    logger.info(f"Project created: {project_ref} ({project_doc['project_id']}) total {project_doc['total']}")

    await _audit_transition(
        project_doc, None, ProjectStatus.QUOTE_GENERATED.value,
        AuditAction.PROJECT_CREATED, actor, TransitionType.CUSTOMER_ACTION,
        metadata={"total": project_doc["total"], "rate_table_version": rate_table.version},
    )
    await _notify(
        ProjectNotificationEvent.PROJECT_CREATED,
        project_doc,
        {"email": actor.email, "name": actor.name},
    )
    return project_doc


# ============================================
# TRANSITIONS
# ============================================

async def submit_project(project_id: str, actor: Actor) -> Dict:
    """Owner orders a quoted project: QUOTE_GENERATED -> SUBMITTED, operator notified."""
    project = await get_project(project_id)
    if not project:
        raise NotFound("Project not found")
    if project["owner_id"] != actor.user_id:
        raise Forbidden("Only the project owner can submit this project")

    current_status = ProjectStatus(project["status"])
    if not is_valid_owner_transition(current_status, ProjectStatus.SUBMITTED):
        raise InvalidTransition(f"Project cannot be submitted from {current_status.value}")

    now = datetime.now(timezone.utc)
    db = database.get_db()
    # Conditional on the current status: a concurrent second submit matches nothing
    result = await db.projects.update_one(
        {"project_id": project_id, "status": ProjectStatus.QUOTE_GENERATED.value},
        {"$set": {
            "status": ProjectStatus.SUBMITTED.value,
            "submitted_at": now,
            "updated_at": now,
        }},
    )
    if result.modified_count == 0:
        raise InvalidTransition("Project has already been submitted")

    project.update({"status": ProjectStatus.SUBMITTED.value, "submitted_at": now, "updated_at": now})
    logger.info(f"Project submitted: {project.get('project_ref')} ({project_id})")

    await _audit_transition(
        project, current_status.value, ProjectStatus.SUBMITTED.value,
        AuditAction.PROJECT_SUBMITTED, actor, TransitionType.CUSTOMER_ACTION,
    )
    await _notify(
        ProjectNotificationEvent.PROJECT_SUBMITTED,
        project,
        {"email": actor.email, "name": actor.name},
    )
    return project


async def set_project_status(project_id: str, new_status: str, actor: Actor) -> Dict:
    """Admin moves an active project to a chosen status."""
    if not actor.is_admin:
        raise Forbidden("Admin access required")

    try:
        target = ProjectStatus(new_status)
    except ValueError:
        raise InvalidInput(f"Invalid status: {new_status}")
    if not is_admin_settable(target):
        raise InvalidInput(f"Status {target.value} cannot be set manually")

    project = await get_project(project_id)
    if not project:
        raise NotFound("Project not found")

    current_status = ProjectStatus(project["status"])
    if not is_active(current_status):
        raise InvalidTransition(f"Project is {current_status.value}; its status can no longer be changed")
    if requires_artifact(target) and not project.get("translated_file_ref"):
        raise InvalidTransition("Upload the translated file to complete a project")

    now = datetime.now(timezone.utc)
    update_fields = {"status": target.value, "updated_at": now}
    if target == ProjectStatus.SUBMITTED and not project.get("submitted_at"):
        update_fields["submitted_at"] = now

    db = database.get_db()
    await db.projects.update_one({"project_id": project_id}, {"$set": update_fields})
    project.update(update_fields)

    logger.info(f"Project {project.get('project_ref')} status {current_status.value} -> {target.value} by {actor.email}")
    await _audit_transition(
        project, current_status.value, target.value,
        AuditAction.PROJECT_STATUS_CHANGED, actor, TransitionType.ADMIN_MANUAL,
    )
    return project


async def set_project_eta(project_id: str, eta_days: int, actor: Actor) -> Dict:
    """Admin sets the delivery estimate in days. Status is unchanged."""
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    if eta_days is None or eta_days < 1:
        raise InvalidInput("Valid ETA (days) is required")

    project = await get_project(project_id)
    if not project:
        raise NotFound("Project not found")
    if not is_active(ProjectStatus(project["status"])):
        raise InvalidTransition("ETA cannot be changed on a completed project")

    previous_eta = project.get("eta_days")
    update_fields = {"eta_days": int(eta_days), "updated_at": datetime.now(timezone.utc)}

    db = database.get_db()
    await db.projects.update_one({"project_id": project_id}, {"$set": update_fields})
    project.update(update_fields)

    await create_audit_log(
        action=AuditAction.PROJECT_ETA_UPDATED,
        actor_role=actor.role,
        actor_id=actor.user_id,
        resource_type="project",
        resource_id=project_id,
        before_state={"eta_days": previous_eta},
        after_state={"eta_days": int(eta_days)},
    )
    return project


async def attach_translated_file(
    project_id: str,
    content: bytes,
    filename: str,
    content_type: Optional[str],
    actor: Actor,
) -> Dict:
    """
    Store the translated deliverable and force the project to COMPLETED,
    whatever its current status. The owner is told it is ready for download.
    """
    if not actor.is_admin:
        raise Forbidden("Admin access required")
    if not content:
        raise InvalidInput("No file uploaded")

    project = await get_project(project_id)
    if not project:
        raise NotFound("Project not found")

    validate_upload(content, filename, content_type)
    stored = await store_translated_document(
        project_id=project_id,
        content=content,
        filename=filename,
        content_type=content_type or "application/octet-stream",
        uploaded_by=actor.user_id,
    )

    previous_status = project["status"]
    previous_ref = project.get("translated_file_ref")
    now = datetime.now(timezone.utc)
    update_fields = {
        "status": ProjectStatus.COMPLETED.value,
        "translated_file_ref": stored.file_id,
        "translated_file_name": filename,
        "completed_at": now,
        "updated_at": now,
    }

    db = database.get_db()
    await db.projects.update_one({"project_id": project_id}, {"$set": update_fields})
    project.update(update_fields)

    # A re-upload replaces the previous deliverable
    if previous_ref and previous_ref != stored.file_id:
        await storage_adapter.delete_file(previous_ref)

    logger.info(f"Translated file attached to {project.get('project_ref')}: {filename}")
    await _audit_transition(
        project, previous_status, ProjectStatus.COMPLETED.value,
        AuditAction.TRANSLATED_FILE_ATTACHED, actor, TransitionType.ADMIN_MANUAL,
        metadata={"file_name": filename, "file_ref": stored.file_id},
    )

    owner = await _get_owner(project["owner_id"])
    await _notify(ProjectNotificationEvent.PROJECT_COMPLETED, project, owner)
    return project


async def delete_project(project_id: str, actor: Actor) -> None:
    """
    Remove a project and its stored files.
    Owners may delete before work starts; super admins may delete any project.
    """
    project = await get_project(project_id)
    if not project:
        raise NotFound("Project not found")

    if not actor.is_super_admin:
        if project["owner_id"] != actor.user_id:
            raise Forbidden("Only the project owner can delete this project")
        current_status = ProjectStatus(project["status"])
        if not can_owner_delete(current_status):
            raise InvalidTransition(f"Project cannot be deleted once it is {current_status.value}")

    await delete_project_files(project)
    db = database.get_db()
    await db.projects.delete_one({"project_id": project_id})

    logger.info(f"Project deleted: {project.get('project_ref')} ({project_id}) by {actor.email}")
    await create_audit_log(
        action=AuditAction.PROJECT_DELETED,
        actor_role=actor.role,
        actor_id=actor.user_id,
        resource_type="project",
        resource_id=project_id,
        before_state={"status": project["status"], "project_ref": project.get("project_ref")},
    )


# ============================================
# FILES
# ============================================

async def get_translated_file(project_id: str, actor: Actor) -> Tuple[bytes, str, str]:
    """Translated deliverable for the owner (or an admin)."""
    project = await get_owned_project(project_id, actor)
    file_ref = project.get("translated_file_ref")
    if project["status"] != ProjectStatus.COMPLETED.value or not file_ref:
        raise NotFound("No translated file available for this project")
    return await _read_file(file_ref, project.get("translated_file_name"))


async def get_source_file(project_id: str) -> Tuple[bytes, str, str]:
    """Original uploaded document (admin download)."""
    project = await get_project(project_id)
    if not project:
        raise NotFound("Project not found")
    if not project.get("source_file_ref"):
        raise NotFound("No source file stored for this project")
    return await _read_file(project["source_file_ref"], project.get("file_name"))


async def _read_file(file_ref: str, fallback_name: Optional[str]) -> Tuple[bytes, str, str]:
    try:
        content, meta = await retrieve(file_ref)
    except ArtifactNotFoundError:
        raise NotFound("File not found in storage")
    filename = meta.metadata.get("original_filename") or fallback_name or meta.filename
    return content, filename, meta.content_type


async def purge_unclaimed_uploads(
    older_than_days: int = UNCLAIMED_UPLOAD_RETENTION_DAYS,
    actor: Optional[Actor] = None,
) -> Dict[str, int]:
    """
    Delete analyze-time uploads older than the cutoff that no project references.
    Quotes that were never materialized leave their source file behind; this is
    the only place those files are removed.
    """
    if older_than_days is None or older_than_days < 1:
        raise InvalidInput("Retention must be at least 1 day")

    cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    candidates = await list_source_documents(cutoff)
    if not candidates:
        return {"checked": 0, "deleted": 0}

    db = database.get_db()
    claimed = set(await db.projects.distinct(
        "source_file_ref",
        {"source_file_ref": {"$in": [meta.file_id for meta in candidates]}},
    ))

    deleted = 0
    for meta in candidates:
        if meta.file_id in claimed:
            continue
        if await storage_adapter.delete_file(meta.file_id):
            deleted += 1

    logger.info(f"Unclaimed upload purge: {len(candidates)} checked, {deleted} deleted (older than {older_than_days}d)")
    if deleted:
        await create_audit_log(
            action=AuditAction.UPLOADS_PURGED,
            actor_role=actor.role if actor else None,
            actor_id=actor.user_id if actor else None,
            resource_type="project_files",
            metadata={"checked": len(candidates), "deleted": deleted, "older_than_days": older_than_days},
        )
    return {"checked": len(candidates), "deleted": deleted}
