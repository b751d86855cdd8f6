"""
Account Service
User records, the parent / sub-account hierarchy, licenses and admin accounts.

Hierarchy rules:
- A sub-account has exactly one parent (parent_user_id) and always holds the
  "Professional - Sub Account" license while attached.
- Detaching clears the parent and drops the license back to Free.
- Attaching does not check for cycles; a cycle is logged as a warning only.
"""
import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, List, Any

from pymongo.errors import DuplicateKeyError

from database import database
from auth import Actor, hash_password, verify_password, validate_password_strength
from models import UserRole, License, AuditAction
from utils.audit import create_audit_log
from services.errors import InvalidInput, Forbidden, NotFound, Conflict
from services.id_generator import next_user_id
from services.storage_adapter import delete_project_files

logger = logging.getLogger(__name__)

# Never returned to callers
PRIVATE_FIELDS = {"_id": 0, "password_hash": 0}

ASSIGNABLE_LICENSES = (License.FREE, License.PROFESSIONAL)

# Upper bound on the parent-chain walk used for cycle detection
MAX_HIERARCHY_DEPTH = 50


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ============================================
# USERS
# ============================================

async def create_user(
    email: str,
    password: str,
    name: str,
    role: UserRole = UserRole.ROLE_USER,
    license: License = License.FREE,
    actor: Optional[Actor] = None,
) -> Dict[str, Any]:
    """Create a user with the next account number. Raises Conflict on a taken email."""
    email = _normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Name is required")

    is_valid, message = validate_password_strength(password or "")
    if not is_valid:
        raise InvalidInput(message)
    if license == License.PROFESSIONAL_SUB_ACCOUNT:
        raise InvalidInput("Sub-account license is assigned by attaching to a parent")

    db = database.get_db()
    if await db.users.find_one({"email": email}, {"_id": 1}):
        raise Conflict("Email already registered")

    user_doc = {
        "user_id": str(uuid.uuid4()),
        "account_number": await next_user_id(),
        "email": email,
        "name": name,
        "password_hash": hash_password(password),
        "role": role.value,
        "license": license.value,
        "parent_user_id": None,
        "created_at": datetime.now(timezone.utc),
    }
    try:
        await db.users.insert_one(user_doc)
    except DuplicateKeyError:
        # Lost a signup race; the unique email index decides
        raise Conflict("Email already registered")

    if role == UserRole.ROLE_USER and actor is None:
        action = AuditAction.USER_SIGNUP
    elif role == UserRole.ROLE_USER:
        action = AuditAction.USER_CREATED_BY_ADMIN
    else:
        action = AuditAction.ADMIN_CREATED

    await create_audit_log(
        action=action,
        actor_role=actor.role if actor else None,
        actor_id=actor.user_id if actor else user_doc["user_id"],
        resource_type="user",
        resource_id=user_doc["user_id"],
        after_state={
            "email": email,
            "role": role.value,
            "license": license.value,
            "account_number": user_doc["account_number"],
        },
    )
    logger.info(f"User created: {email} (#{user_doc['account_number']}, {role.value})")
    return public_user(user_doc)


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k not in ("_id", "password_hash")}


async def authenticate(email: str, password: str) -> Optional[Dict[str, Any]]:
    """Return the user for valid credentials, None otherwise."""
    email = _normalize_email(email)
    db = database.get_db()
    user = await db.users.find_one({"email": email}, {"_id": 0})

    if not user or not verify_password(password, user.get("password_hash", "")):
        await create_audit_log(
            action=AuditAction.USER_LOGIN_FAILED,
            resource_type="user",
            resource_id=user["user_id"] if user else None,
            metadata={"email": email},
        )
        return None

    await create_audit_log(
        action=AuditAction.USER_LOGIN_SUCCESS,
        actor_role=UserRole(user["role"]),
        actor_id=user["user_id"],
        resource_type="user",
        resource_id=user["user_id"],
    )
    return public_user(user)


async def get_user(user_id: str) -> Optional[Dict[str, Any]]:
    db = database.get_db()
    return await db.users.find_one({"user_id": user_id}, PRIVATE_FIELDS)


async def get_user_by_account_number(account_number: int) -> Optional[Dict[str, Any]]:
    db = database.get_db()
    return await db.users.find_one({"account_number": int(account_number)}, PRIVATE_FIELDS)


async def list_users(role: Optional[UserRole] = UserRole.ROLE_USER) -> List[Dict[str, Any]]:
    db = database.get_db()
    query = {"role": role.value} if role else {}
    cursor = db.users.find(query, PRIVATE_FIELDS).sort("account_number", 1)
    return await cursor.to_list(length=None)


async def get_user_detail(user_id: str) -> Dict[str, Any]:
    """User with its sub-accounts, for the admin user page."""
    user = await get_user(user_id)
    if not user:
        raise NotFound("User not found")
    user["sub_accounts"] = await list_sub_accounts(user_id)
    return user


async def update_license(user_id: str, license: License, actor: Actor) -> Dict[str, Any]:
    """Admin sets Free or Professional. The sub-account license only comes from attaching."""
    if license not in ASSIGNABLE_LICENSES:
        raise InvalidInput("License must be Free or Professional")

    user = await get_user(user_id)
    if not user:
        raise NotFound("User not found")
    if user.get("parent_user_id"):
        raise Conflict("Detach the sub-account before changing its license")

    db = database.get_db()
    await db.users.update_one({"user_id": user_id}, {"$set": {"license": license.value}})

    await create_audit_log(
        action=AuditAction.LICENSE_UPDATED,
        actor_role=actor.role,
        actor_id=actor.user_id,
        resource_type="user",
        resource_id=user_id,
        before_state={"license": user.get("license")},
        after_state={"license": license.value},
    )
    logger.info(f"License for {user['email']} set to {license.value} by {actor.email}")
    user["license"] = license.value
    return user


async def delete_user(user_id: str, actor: Actor) -> Dict[str, int]:
    """Delete a user, its projects and their stored files. Sub-accounts are detached."""
    user = await get_user(user_id)
    if not user:
        raise NotFound("User not found")
    if user["role"] != UserRole.ROLE_USER.value:
        raise Forbidden("Admin accounts are removed through admin management")

    db = database.get_db()
    projects = await db.projects.find(
        {"owner_id": user_id},
        {"_id": 0, "project_id": 1, "source_file_ref": 1, "translated_file_ref": 1},
    ).to_list(length=None)
    for project in projects:
        await delete_project_files(project)
    project_result = await db.projects.delete_many({"owner_id": user_id})

    orphan_result = await db.users.update_many(
        {"parent_user_id": user_id},
        {"$set": {"parent_user_id": None, "license": License.FREE.value}},
    )
    await db.users.delete_one({"user_id": user_id})

    await create_audit_log(
        action=AuditAction.USER_DELETED,
        actor_role=actor.role,
        actor_id=actor.user_id,
        resource_type="user",
        resource_id=user_id,
        before_state={"email": user["email"], "account_number": user.get("account_number")},
        metadata={
            "projects_deleted": project_result.deleted_count,
            "sub_accounts_detached": orphan_result.modified_count,
        },
    )
    logger.info(f"User deleted: {user['email']} with {project_result.deleted_count} projects")
    return {
        "projects_deleted": project_result.deleted_count,
        "sub_accounts_detached": orphan_result.modified_count,
    }


# ============================================
# SUB-ACCOUNTS
# ============================================

async def _closes_cycle(parent: Dict[str, Any], sub: Dict[str, Any]) -> bool:
    """True if the sub is already an ancestor of the parent."""
    db = database.get_db()
    current = parent
    for _ in range(MAX_HIERARCHY_DEPTH):
        if current["user_id"] == sub["user_id"]:
            return True
        parent_id = current.get("parent_user_id")
        if not parent_id:
            return False
        current = await db.users.find_one({"user_id": parent_id}, {"_id": 0, "user_id": 1, "parent_user_id": 1})
        if not current:
            return False
    return True


async def attach_sub_account(parent_number: int, sub_number: int, actor: Actor) -> Dict[str, Any]:
    parent = await get_user_by_account_number(parent_number)
    if not parent:
        raise NotFound(f"Parent account {parent_number} not found")
    sub = await get_user_by_account_number(sub_number)
    if not sub:
        raise NotFound(f"Account {sub_number} not found")
    if sub.get("parent_user_id"):
        raise Conflict(f"Account {sub_number} is already a sub-account")

    if await _closes_cycle(parent, sub):
        logger.warning(f"Attaching {sub_number} under {parent_number} creates an account hierarchy cycle")

    db = database.get_db()
    # Conditional on no parent: two concurrent attaches cannot both win
    result = await db.users.update_one(
        {"user_id": sub["user_id"], "parent_user_id": None},
        {"$set": {
            "parent_user_id": parent["user_id"],
            "license": License.PROFESSIONAL_SUB_ACCOUNT.value,
        }},
    )
    if result.modified_count == 0:
        raise Conflict(f"Account {sub_number} is already a sub-account")

    await create_audit_log(
        action=AuditAction.SUB_ACCOUNT_ATTACHED,
        actor_role=actor.role,
        actor_id=actor.user_id,
        resource_type="user",
        resource_id=sub["user_id"],
        before_state={"parent_user_id": None, "license": sub.get("license")},
        after_state={"parent_user_id": parent["user_id"], "license": License.PROFESSIONAL_SUB_ACCOUNT.value},
        metadata={"parent_account_number": parent_number, "sub_account_number": sub_number},
    )
    logger.info(f"Account {sub_number} attached under {parent_number}")

    sub.update({"parent_user_id": parent["user_id"], "license": License.PROFESSIONAL_SUB_ACCOUNT.value})
    return sub


async def detach_sub_account(parent_number: int, sub_number: int, actor: Actor) -> Dict[str, Any]:
    parent = await get_user_by_account_number(parent_number)
    sub = await get_user_by_account_number(sub_number)
    if not parent or not sub or sub.get("parent_user_id") != parent["user_id"]:
        raise NotFound(f"Account {sub_number} is not a sub-account of {parent_number}")

    db = database.get_db()
    # Detaching drops the license to Free even if the account paid for Professional before
    await db.users.update_one(
        {"user_id": sub["user_id"]},
        {"$set": {"parent_user_id": None, "license": License.FREE.value}},
    )

    await create_audit_log(
        action=AuditAction.SUB_ACCOUNT_DETACHED,
        actor_role=actor.role,
        actor_id=actor.user_id,
        resource_type="user",
        resource_id=sub["user_id"],
        before_state={"parent_user_id": parent["user_id"], "license": sub.get("license")},
        after_state={"parent_user_id": None, "license": License.FREE.value},
        metadata={"parent_account_number": parent_number, "sub_account_number": sub_number},
    )
    logger.info(f"Account {sub_number} detached from {parent_number}")

    sub.update({"parent_user_id": None, "license": License.FREE.value})
    return sub


async def list_sub_accounts(parent_user_id: str) -> List[Dict[str, Any]]:
    db = database.get_db()
    cursor = db.users.find({"parent_user_id": parent_user_id}, PRIVATE_FIELDS).sort("account_number", 1)
    return await cursor.to_list(length=None)


async def has_sub_accounts(parent_user_id: str) -> bool:
    db = database.get_db()
    return await db.users.count_documents({"parent_user_id": parent_user_id}, limit=1) > 0


# ============================================
# ADMINS
# ============================================

async def list_admins() -> List[Dict[str, Any]]:
    db = database.get_db()
    cursor = db.users.find(
        {"role": {"$in": [UserRole.ROLE_ADMIN.value, UserRole.ROLE_SUPER_ADMIN.value]}},
        PRIVATE_FIELDS,
    ).sort("created_at", 1)
    return await cursor.to_list(length=None)


async def create_admin(email: str, password: str, name: str, actor: Actor) -> Dict[str, Any]:
    if not actor.is_super_admin:
        raise Forbidden("Super admin access required")
    return await create_user(email, password, name, role=UserRole.ROLE_ADMIN, actor=actor)


async def remove_admin(user_id: str, actor: Actor) -> None:
    """Delete an admin account. Super admins cannot be removed here."""
    if not actor.is_super_admin:
        raise Forbidden("Super admin access required")

    admin = await get_user(user_id)
    if not admin or admin["role"] not in (UserRole.ROLE_ADMIN.value, UserRole.ROLE_SUPER_ADMIN.value):
        raise NotFound("Admin not found")
    if admin["role"] == UserRole.ROLE_SUPER_ADMIN.value:
        raise Forbidden("Super admin accounts cannot be removed")

    db = database.get_db()
    await db.users.delete_one({"user_id": user_id})

    await create_audit_log(
        action=AuditAction.ADMIN_REMOVED,
        actor_role=actor.role,
        actor_id=actor.user_id,
        resource_type="user",
        resource_id=user_id,
        before_state={"email": admin["email"], "role": admin["role"]},
    )
    logger.info(f"Admin removed: {admin['email']} by {actor.email}")


async def bootstrap_super_admin(email: str, password: str, name: str = "Super Admin") -> Dict[str, str]:
    """Idempotent: creates the super admin from startup env only if the email is free."""
    db = database.get_db()
    existing = await db.users.find_one({"email": _normalize_email(email)}, {"_id": 0, "role": 1})
    if existing:
        return {"action": "skipped", "message": f"{email} already exists as {existing.get('role')}"}
    await create_user(email, password, name, role=UserRole.ROLE_SUPER_ADMIN)
    return {"action": "created", "message": f"Super admin {email} created"}
