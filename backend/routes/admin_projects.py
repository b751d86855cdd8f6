"""
Admin Project Routes
Pipeline listing, status and ETA edits, translated file delivery, source download.
"""
from fastapi import APIRouter, Depends, UploadFile, File
from fastapi.responses import Response
from typing import Optional
import logging

from auth import Actor
from middleware import admin_route_guard, super_admin_route_guard
from models import StatusUpdateRequest, EtaUpdateRequest
from services.project_workflow import PIPELINE_COLUMNS
from services.project_service import (
    list_all_projects, get_pipeline_counts, get_owned_project, get_project_timeline,
    set_project_status, set_project_eta, attach_translated_file, delete_project,
    get_source_file, find_project_by_ref, purge_unclaimed_uploads,
    UNCLAIMED_UPLOAD_RETENTION_DAYS,
)
from services.errors import NotFound

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/projects", tags=["admin-projects"])


# ============================================
# PIPELINE VIEW
# ============================================

@router.get("")
async def list_projects(
    status: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
    actor: Actor = Depends(admin_route_guard),
):
    return await list_all_projects(status_filter=status, limit=limit, skip=skip)


@router.get("/pipeline/counts")
async def get_pipeline_status_counts(actor: Actor = Depends(admin_route_guard)):
    """Project count per status, with board column labels."""
    counts = await get_pipeline_counts()
    return {
        "counts": counts,
        "columns": [
            {"status": col["status"].value, "label": col["label"], "color": col["color"]}
            for col in PIPELINE_COLUMNS
        ],
    }


@router.get("/by-ref/{project_ref}")
async def get_project_by_ref(project_ref: str, actor: Actor = Depends(admin_route_guard)):
    """Look a project up by its human-facing reference, e.g. 712-QX."""
    project = await find_project_by_ref(project_ref)
    if not project:
        raise NotFound("Project not found")
    return project


@router.get("/{project_id}")
async def get_project_detail(project_id: str, actor: Actor = Depends(admin_route_guard)):
    return await get_owned_project(project_id, actor)


@router.get("/{project_id}/timeline")
async def get_timeline(project_id: str, actor: Actor = Depends(admin_route_guard)):
    await get_owned_project(project_id, actor)
    return {"project_id": project_id, "timeline": await get_project_timeline(project_id)}


# ============================================
# STATUS / ETA
# ============================================

@router.put("/{project_id}/status")
async def update_status(
    project_id: str,
    request: StatusUpdateRequest,
    actor: Actor = Depends(admin_route_guard),
):
    project = await set_project_status(project_id, request.status, actor)
    return {"success": True, "project": project}


@router.put("/{project_id}/eta")
async def update_eta(
    project_id: str,
    request: EtaUpdateRequest,
    actor: Actor = Depends(admin_route_guard),
):
    project = await set_project_eta(project_id, request.eta_days, actor)
    return {"success": True, "project": project}


# ============================================
# FILES
# ============================================

@router.post("/{project_id}/translated")
async def upload_translated(
    project_id: str,
    file: UploadFile = File(...),
    actor: Actor = Depends(admin_route_guard),
):
    """Attach the translated document. The project becomes COMPLETED and the owner is emailed."""
    content = await file.read()
    project = await attach_translated_file(
        project_id=project_id,
        content=content,
        filename=file.filename or "translated",
        content_type=file.content_type,
        actor=actor,
    )
    return {"success": True, "project": project}


@router.get("/{project_id}/source")
async def download_source(project_id: str, actor: Actor = Depends(admin_route_guard)):
    content, filename, content_type = await get_source_file(project_id)
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.post("/uploads/purge")
async def purge_uploads(older_than_days: int = UNCLAIMED_UPLOAD_RETENTION_DAYS, actor: Actor = Depends(super_admin_route_guard)):
    """Delete analyze uploads older than the cutoff that no project references."""
    result = await purge_unclaimed_uploads(older_than_days, actor)
    return {"success": True, **result}


@router.delete("/{project_id}")
async def admin_delete_project(project_id: str, actor: Actor = Depends(super_admin_route_guard)):
    await delete_project(project_id, actor)
    return {"success": True, "message": "Project deleted"}
