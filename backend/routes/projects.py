"""
Project Routes (owner side)
Create projects from quotes, submit them, download deliverables.
"""
from fastapi import APIRouter, Depends, status
from fastapi.responses import Response
import logging

from auth import Actor
from middleware import require_auth
from models import CreateProjectRequest
from services.project_service import (
    create_project, get_owned_project, list_projects_for_owner, list_projects_for_owners,
    submit_project, delete_project, get_translated_file,
)
from services.account_service import list_sub_accounts, has_sub_accounts

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["projects"])


# ============================================
# PROJECTS
# ============================================

@router.get("/projects")
async def list_my_projects(actor: Actor = Depends(require_auth)):
    projects = await list_projects_for_owner(actor.user_id)
    return {"projects": projects, "total": len(projects)}


@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_my_project(
    request: CreateProjectRequest,
    actor: Actor = Depends(require_auth),
):
    """Turn an analyzed upload into a project. The price is recomputed server side."""
    project = await create_project(
        actor=actor,
        name=request.name,
        upload_ref=request.upload_ref,
        languages=request.languages,
        project_type=request.project_type,
        notes=request.notes,
    )
    return {"success": True, "project": project}


@router.get("/projects/{project_id}")
async def get_my_project(project_id: str, actor: Actor = Depends(require_auth)):
    return await get_owned_project(project_id, actor)


@router.post("/projects/{project_id}/submit")
async def submit_my_project(project_id: str, actor: Actor = Depends(require_auth)):
    project = await submit_project(project_id, actor)
    return {"success": True, "project": project}


@router.delete("/projects/{project_id}")
async def delete_my_project(project_id: str, actor: Actor = Depends(require_auth)):
    await delete_project(project_id, actor)
    return {"success": True, "message": "Project deleted"}


@router.get("/projects/{project_id}/download")
async def download_translated(project_id: str, actor: Actor = Depends(require_auth)):
    content, filename, content_type = await get_translated_file(project_id, actor)
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


# ============================================
# SUB-ACCOUNTS
# ============================================

@router.get("/sub-account-projects")
async def get_sub_account_projects(actor: Actor = Depends(require_auth)):
    """Projects owned by the caller's sub-accounts, each tagged with its owner."""
    subs = await list_sub_accounts(actor.user_id)
    by_id = {s["user_id"]: s for s in subs}
    projects = await list_projects_for_owners(list(by_id))
    for project in projects:
        owner = by_id.get(project["owner_id"], {})
        project["owner_name"] = owner.get("name")
        project["owner_email"] = owner.get("email")
        project["owner_account_number"] = owner.get("account_number")
    return {"projects": projects, "total": len(projects)}


@router.get("/has-sub-accounts")
async def get_has_sub_accounts(actor: Actor = Depends(require_auth)):
    return {"has_sub_accounts": await has_sub_accounts(actor.user_id)}
