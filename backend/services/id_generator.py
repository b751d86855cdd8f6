"""
Human-facing identifier generation.

Business rules:
- User account numbers are sequential integers starting at 70000.
- Project references are "<N>-<LL>": N sequential from 700, LL two random uppercase letters.
- Next value = current max + 1. This is NOT serialized: two concurrent callers can
  read the same max and get the same number. Accepted trade-off: the ids only need
  to be legible and roughly sequential, and project references get a random letter
  suffix. Do not add a lock here; it would serialize every signup and project creation.
- A failed read never blocks the caller: fall back to a time-derived value.
"""
import logging
import random
import string
import time

from database import database

logger = logging.getLogger(__name__)

USER_ID_FLOOR = 70000
PROJECT_NUMBER_FLOOR = 700
PROJECT_REF_PATTERN = r"^[0-9]+-[A-Z]{2}$"
PROJECT_REF_FORMAT = "{number}-{letters}"

USER_ID_FALLBACK_SPAN = 100000
USER_ID_FALLBACK_JITTER = 999


def random_letters(count: int = 2) -> str:
    return "".join(random.choice(string.ascii_uppercase) for _ in range(count))


def fallback_user_id() -> int:
    """Time-derived account number with a bounded random offset."""
    return USER_ID_FLOOR + int(time.time()) % USER_ID_FALLBACK_SPAN + random.randint(0, USER_ID_FALLBACK_JITTER)


def fallback_project_id() -> str:
    return PROJECT_REF_FORMAT.format(number=int(time.time() * 1000), letters=random_letters())


async def next_user_id() -> int:
    """Next account number: max(existing >= 70000) + 1, never below 70000."""
    try:
        db = database.get_db()
        latest = await db.users.find_one(
            {"account_number": {"$gte": USER_ID_FLOOR}},
            {"_id": 0, "account_number": 1},
            sort=[("account_number", -1)],
        )
        next_id = USER_ID_FLOOR
        if latest and latest.get("account_number") is not None:
            next_id = max(USER_ID_FLOOR, int(latest["account_number"]) + 1)
        logger.info(f"Generated account number {next_id}")
        return next_id
    except Exception as e:
        fallback = fallback_user_id()
        logger.error(f"Failed to read max account number: {e}. Using fallback {fallback}")
        return fallback


async def next_project_id() -> str:
    """Next project reference: max numeric prefix of well-formed refs + 1 (floor 700) and two random letters."""
    try:
        db = database.get_db()
        pipeline = [
            {"$match": {"project_ref": {"$regex": PROJECT_REF_PATTERN}}},
            {"$project": {
                "number": {"$toLong": {"$arrayElemAt": [{"$split": ["$project_ref", "-"]}, 0]}},
            }},
            {"$group": {"_id": None, "max_number": {"$max": "$number"}}},
        ]
        rows = await db.projects.aggregate(pipeline).to_list(length=1)
        next_number = PROJECT_NUMBER_FLOOR
        if rows and rows[0].get("max_number") is not None:
            next_number = max(PROJECT_NUMBER_FLOOR, int(rows[0]["max_number"]) + 1)
        project_ref = PROJECT_REF_FORMAT.format(number=next_number, letters=random_letters())
        logger.info(f"Generated project reference {project_ref}")
        return project_ref
    except Exception as e:
        fallback = fallback_project_id()
        logger.error(f"Failed to read max project number: {e}. Using fallback {fallback}")
        return fallback
