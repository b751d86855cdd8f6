"""
Admin User Routes
Users, licenses, sub-account hierarchy, and (super admin only) admin accounts.
"""
from fastapi import APIRouter, Depends, status
import logging

from auth import Actor
from middleware import admin_route_guard, super_admin_route_guard
from models import (
    CreateUserRequest, CreateAdminRequest, LicenseUpdateRequest, AttachSubAccountRequest,
)
from services.errors import NotFound
from services.account_service import (
    list_users, get_user_detail, get_user, create_user, delete_user, update_license,
    attach_sub_account, detach_sub_account, list_sub_accounts,
    list_admins, create_admin, remove_admin,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin-users"])


# ============================================
# USERS
# ============================================

@router.get("/users")
async def get_users(actor: Actor = Depends(admin_route_guard)):
    users = await list_users()
    return {"users": users, "total": len(users)}


@router.get("/users/{user_id}")
async def get_user_by_id(user_id: str, actor: Actor = Depends(admin_route_guard)):
    return await get_user_detail(user_id)


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user_account(
    request: CreateUserRequest,
    actor: Actor = Depends(admin_route_guard),
):
    user = await create_user(
        email=request.email,
        password=request.password,
        name=request.name,
        license=request.license,
        actor=actor,
    )
    return {"success": True, "user": user}


@router.delete("/users/{user_id}")
async def delete_user_account(user_id: str, actor: Actor = Depends(admin_route_guard)):
    """Deletes the user with its projects and files."""
    result = await delete_user(user_id, actor)
    return {"success": True, **result}


@router.put("/users/license")
async def set_user_license(
    request: LicenseUpdateRequest,
    actor: Actor = Depends(admin_route_guard),
):
    user = await update_license(request.user_id, request.license, actor)
    return {"success": True, "user": user}


# ============================================
# SUB-ACCOUNTS
# ============================================

@router.get("/users/{user_id}/sub-users")
async def get_sub_users(user_id: str, actor: Actor = Depends(admin_route_guard)):
    if not await get_user(user_id):
        raise NotFound("User not found")
    return {"sub_users": await list_sub_accounts(user_id)}


@router.post("/users/{account_number}/sub-users")
async def add_sub_user(
    account_number: int,
    request: AttachSubAccountRequest,
    actor: Actor = Depends(admin_route_guard),
):
    sub = await attach_sub_account(account_number, request.sub_account_number, actor)
    return {"success": True, "sub_user": sub}


@router.delete("/users/{account_number}/sub-users/{sub_account_number}")
async def remove_sub_user(
    account_number: int,
    sub_account_number: int,
    actor: Actor = Depends(admin_route_guard),
):
    sub = await detach_sub_account(account_number, sub_account_number, actor)
    return {"success": True, "sub_user": sub}


# ============================================
# ADMINS (super admin)
# ============================================

@router.get("/admins")
async def get_admins(actor: Actor = Depends(super_admin_route_guard)):
    return {"admins": await list_admins()}


@router.post("/admins", status_code=status.HTTP_201_CREATED)
async def add_admin(
    request: CreateAdminRequest,
    actor: Actor = Depends(super_admin_route_guard),
):
    admin = await create_admin(request.email, request.password, request.name, actor)
    return {"success": True, "admin": admin}


@router.delete("/admins/{user_id}")
async def delete_admin(user_id: str, actor: Actor = Depends(super_admin_route_guard)):
    await remove_admin(user_id, actor)
    return {"success": True, "message": "Admin removed"}
