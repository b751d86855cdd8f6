"""
Account service: signup numbering, sub-account attach/detach license rules, license updates, admin management.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from models import License, UserRole, AuditAction
from services.errors import InvalidInput, Forbidden, NotFound, Conflict


def _user(user_id, account_number, license=License.FREE, parent_user_id=None, role=UserRole.ROLE_USER):
    return {
        "user_id": user_id,
        "account_number": account_number,
        "email": f"{user_id}@example.com",
        "name": user_id,
        "role": role.value,
        "license": license.value,
        "parent_user_id": parent_user_id,
    }


def _users_db(by_number=None, by_id=None, modified_count=1):
    """users.find_one answers account_number and user_id lookups from the given maps."""
    by_number = by_number or {}
    by_id = by_id or {}

    async def find_one(query, projection=None, **kwargs):
        if "account_number" in query:
            return dict(by_number[query["account_number"]]) if query["account_number"] in by_number else None
        if "user_id" in query:
            return dict(by_id[query["user_id"]]) if query["user_id"] in by_id else None
        return None

    db = MagicMock()
    db.users.find_one = AsyncMock(side_effect=find_one)
    db.users.update_one = AsyncMock(return_value=MagicMock(modified_count=modified_count))
    db.users.insert_one = AsyncMock()
    db.users.delete_one = AsyncMock()
    return db


@pytest.fixture
def audit():
    with patch("services.account_service.create_audit_log", new_callable=AsyncMock) as mock:
        yield mock


# ============================================
# SIGNUP
# ============================================

@pytest.mark.asyncio
async def test_signup_creates_free_user_with_next_account_number(audit):
    from services.account_service import create_user

    db = _users_db()
    with patch("services.account_service.database.get_db", return_value=db), \
         patch("services.account_service.next_user_id", new_callable=AsyncMock, return_value=70000), \
         patch("services.account_service.hash_password", return_value="hashed"):
        user = await create_user("New@Example.com ", "secret123", "New User")

    assert user["account_number"] == 70000
    assert user["email"] == "new@example.com"
    assert user["license"] == License.FREE.value
    assert user["role"] == UserRole.ROLE_USER.value
    assert "password_hash" not in user
    inserted = db.users.insert_one.call_args.args[0]
    assert inserted["password_hash"] == "hashed"
    assert audit.call_args.kwargs["action"] == AuditAction.USER_SIGNUP


@pytest.mark.asyncio
async def test_signup_duplicate_email_conflicts():
    from services.account_service import create_user

    db = MagicMock()
    db.users.find_one = AsyncMock(return_value={"_id": "x"})
    with patch("services.account_service.database.get_db", return_value=db):
        with pytest.raises(Conflict):
            await create_user("taken@example.com", "secret123", "Someone")


@pytest.mark.asyncio
async def test_signup_race_on_unique_email_index_conflicts(audit):
    from pymongo.errors import DuplicateKeyError
    from services.account_service import create_user

    db = _users_db()
    db.users.insert_one = AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key error: email"))
    with patch("services.account_service.database.get_db", return_value=db), \
         patch("services.account_service.next_user_id", new_callable=AsyncMock, return_value=70001), \
         patch("services.account_service.hash_password", return_value="hashed"):
        with pytest.raises(Conflict, match="Email already registered"):
            await create_user("racer@example.com", "secret123", "Racer")
    audit.assert_not_called()


@pytest.mark.asyncio
async def test_signup_weak_password_rejected():
    from services.account_service import create_user

    with pytest.raises(InvalidInput):
        await create_user("a@example.com", "short", "Someone")


# ============================================
# SUB-ACCOUNTS
# ============================================

@pytest.mark.asyncio
async def test_attach_sets_parent_and_sub_account_license(admin_actor, audit):
    from services.account_service import attach_sub_account

    parent = _user("parent", 70000, License.PROFESSIONAL)
    sub = _user("sub", 70001, License.PROFESSIONAL)
    db = _users_db(by_number={70000: parent, 70001: sub}, by_id={"parent": parent, "sub": sub})
    with patch("services.account_service.database.get_db", return_value=db):
        result = await attach_sub_account(70000, 70001, admin_actor)

    assert result["parent_user_id"] == "parent"
    assert result["license"] == License.PROFESSIONAL_SUB_ACCOUNT.value
    query, update = db.users.update_one.call_args.args
    assert query == {"user_id": "sub", "parent_user_id": None}
    assert update["$set"] == {"parent_user_id": "parent", "license": License.PROFESSIONAL_SUB_ACCOUNT.value}
    assert audit.call_args.kwargs["action"] == AuditAction.SUB_ACCOUNT_ATTACHED


@pytest.mark.asyncio
async def test_attach_already_attached_conflicts(admin_actor):
    from services.account_service import attach_sub_account

    parent = _user("parent", 70000)
    sub = _user("sub", 70001, License.PROFESSIONAL_SUB_ACCOUNT, parent_user_id="someone-else")
    db = _users_db(by_number={70000: parent, 70001: sub})
    with patch("services.account_service.database.get_db", return_value=db):
        with pytest.raises(Conflict):
            await attach_sub_account(70000, 70001, admin_actor)


@pytest.mark.asyncio
async def test_attach_missing_account(admin_actor):
    from services.account_service import attach_sub_account

    db = _users_db(by_number={70000: _user("parent", 70000)})
    with patch("services.account_service.database.get_db", return_value=db):
        with pytest.raises(NotFound):
            await attach_sub_account(70000, 79999, admin_actor)


@pytest.mark.asyncio
async def test_attach_closing_a_cycle_is_allowed_with_warning(admin_actor, audit, caplog):
    from services.account_service import attach_sub_account

    # b is already under a; attaching a under b closes a -> b -> a
    a = _user("a", 70000)
    b = _user("b", 70001, License.PROFESSIONAL_SUB_ACCOUNT, parent_user_id="a")
    db = _users_db(by_number={70000: a, 70001: b}, by_id={"a": a, "b": b})
    with patch("services.account_service.database.get_db", return_value=db):
        with caplog.at_level("WARNING"):
            result = await attach_sub_account(70001, 70000, admin_actor)

    assert result["parent_user_id"] == "b"
    assert "cycle" in caplog.text


@pytest.mark.asyncio
async def test_detach_resets_license_to_free_whatever_it_was(admin_actor, audit):
    from services.account_service import detach_sub_account

    parent = _user("parent", 70000)
    sub = _user("sub", 70001, License.PROFESSIONAL_SUB_ACCOUNT, parent_user_id="parent")
    db = _users_db(by_number={70000: parent, 70001: sub})
    with patch("services.account_service.database.get_db", return_value=db):
        result = await detach_sub_account(70000, 70001, admin_actor)

    assert result["license"] == License.FREE.value
    assert result["parent_user_id"] is None
    assert db.users.update_one.call_args.args[1]["$set"] == {"parent_user_id": None, "license": License.FREE.value}


@pytest.mark.asyncio
async def test_detach_from_wrong_parent_not_found(admin_actor):
    from services.account_service import detach_sub_account

    parent = _user("parent", 70000)
    sub = _user("sub", 70001, License.PROFESSIONAL_SUB_ACCOUNT, parent_user_id="other")
    db = _users_db(by_number={70000: parent, 70001: sub})
    with patch("services.account_service.database.get_db", return_value=db):
        with pytest.raises(NotFound):
            await detach_sub_account(70000, 70001, admin_actor)


# ============================================
# LICENSES / ADMINS
# ============================================

@pytest.mark.asyncio
async def test_license_update(admin_actor, audit):
    from services.account_service import update_license

    user = _user("u", 70005)
    db = _users_db(by_id={"u": user})
    with patch("services.account_service.database.get_db", return_value=db):
        result = await update_license("u", License.PROFESSIONAL, admin_actor)
    assert result["license"] == License.PROFESSIONAL.value
    assert audit.call_args.kwargs["before_state"] == {"license": License.FREE.value}


@pytest.mark.asyncio
async def test_sub_account_license_cannot_be_set_directly(admin_actor):
    from services.account_service import update_license

    with pytest.raises(InvalidInput):
        await update_license("u", License.PROFESSIONAL_SUB_ACCOUNT, admin_actor)


@pytest.mark.asyncio
async def test_only_super_admin_creates_admins(admin_actor):
    from services.account_service import create_admin

    with pytest.raises(Forbidden):
        await create_admin("new-admin@example.com", "secret123", "New Admin", admin_actor)


@pytest.mark.asyncio
async def test_super_admin_cannot_be_removed(super_admin_actor):
    from services.account_service import remove_admin

    other_super = _user("s2", 70010, role=UserRole.ROLE_SUPER_ADMIN)
    db = _users_db(by_id={"s2": other_super})
    with patch("services.account_service.database.get_db", return_value=db):
        with pytest.raises(Forbidden):
            await remove_admin("s2", super_admin_actor)
    db.users.delete_one.assert_not_called()


@pytest.mark.asyncio
async def test_remove_admin(super_admin_actor, audit):
    from services.account_service import remove_admin

    admin = _user("a1", 70011, role=UserRole.ROLE_ADMIN)
    db = _users_db(by_id={"a1": admin})
    with patch("services.account_service.database.get_db", return_value=db):
        await remove_admin("a1", super_admin_actor)
    db.users.delete_one.assert_awaited_once_with({"user_id": "a1"})
    assert audit.call_args.kwargs["action"] == AuditAction.ADMIN_REMOVED
