"""
Rate Table Service
Per-language prices (integer cents per word), the Pure project multiplier and
the project-management fee percentage.

Business rules:
- Stored as ONE versioned document in the settings collection (_id = "rate_table").
- Every read goes to the database. No caching: an admin edit is visible to the
  very next quote.
- Every write bumps `version`; concurrent admin edits are last-writer-wins.
- Default languages can be repriced but never deleted.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Dict, Optional

from pymongo import ReturnDocument
from database import database
from models import RateTable, AuditAction
from auth import Actor
from utils.audit import create_audit_log
from services.errors import InvalidInput, NotFound, Conflict

logger = logging.getLogger(__name__)

SETTINGS_COLLECTION = "settings"
RATE_TABLE_ID = "rate_table"

DEFAULT_MULTIPLIER = 1.3
DEFAULT_PM_FEE_PERCENT = 1.0

MIN_LANGUAGE_PRICE = 0.01
MAX_LANGUAGE_PRICE = 999.99

DEFAULT_LANGUAGES: Dict[str, int] = {
    "English": 25,
    "Arabic": 50,
    "Chinese (Simplified)": 35,
    "Dutch": 40,
    "French": 35,
    "German": 45,
    "Portuguese (Brazil)": 35,
    "Portuguese (Portugal)": 35,
    "Spanish (Latin America)": 35,
    "Spanish (Spain)": 35,
    "Italian": 40,
    "Japanese": 45,
    "Korean": 40,
    "Russian": 35,
    "Turkish": 35,
    "Vietnamese": 30,
    "Thai": 35,
    "Indonesian": 30,
    "Malay": 30,
    "Filipino": 30,
    "Hindi": 25,
    "Bengali": 25,
    "Urdu": 25,
    "Persian": 35,
    "Hebrew": 40,
    "Greek": 40,
    "Polish": 35,
    "Czech": 35,
    "Hungarian": 35,
    "Romanian": 35,
    "Bulgarian": 35,
    "Croatian": 35,
    "Serbian": 35,
    "Slovak": 35,
    "Slovenian": 35,
    "Estonian": 40,
    "Latvian": 40,
    "Lithuanian": 40,
    "Finnish": 45,
    "Swedish": 45,
    "Norwegian": 45,
    "Danish": 45,
    "Icelandic": 50,
    "Catalan": 35,
    "Basque": 45,
    "Galician": 35,
    "Welsh": 45,
    "Irish": 45,
    "Scottish Gaelic": 50,
    "Maltese": 45,
    "Luxembourgish": 50,
    "Faroese": 55,
    "Greenlandic": 60,
}


def _validate_language_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Language name is required")
    # Language names are stored as document keys
    if "." in name or name.startswith("$"):
        raise InvalidInput(f"Invalid language name: {name}")
    return name


def validate_rates(rates: Dict[str, int]) -> Dict[str, int]:
    """Every rate must be a positive whole number of cents."""
    if not isinstance(rates, dict):
        raise InvalidInput("Languages must be a mapping of language name to price")
    cleaned = {}
    for name, rate in rates.items():
        name = _validate_language_name(name)
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate != int(rate) or rate <= 0:
            raise InvalidInput(f"Price for {name} must be a positive whole number of cents")
        cleaned[name] = int(rate)
    return cleaned


async def get_rate_table() -> RateTable:
    """Read the current rate table. A missing document reads as an empty table with default settings."""
    db = database.get_db()
    doc = await db[SETTINGS_COLLECTION].find_one({"_id": RATE_TABLE_ID})
    if not doc:
        return RateTable(
            rates={},
            project_type_multiplier=DEFAULT_MULTIPLIER,
            pm_fee_percent=DEFAULT_PM_FEE_PERCENT,
            version=0,
        )
    return RateTable(**doc)


async def ensure_rate_table_seeded() -> None:
    """Insert the default table at first boot. Never overwrites an existing table."""
    db = database.get_db()
    result = await db[SETTINGS_COLLECTION].update_one(
        {"_id": RATE_TABLE_ID},
        {"$setOnInsert": {
            "rates": DEFAULT_LANGUAGES,
            "project_type_multiplier": DEFAULT_MULTIPLIER,
            "pm_fee_percent": DEFAULT_PM_FEE_PERCENT,
            "version": 1,
            "updated_at": datetime.now(timezone.utc),
            "updated_by": "system",
        }},
        upsert=True,
    )
    if getattr(result, "upserted_id", None) is not None:
        logger.info(f"Rate table seeded with {len(DEFAULT_LANGUAGES)} default languages")


async def _write(
    fields: Dict,
    actor: Optional[Actor],
    action: AuditAction,
    before: Optional[Dict] = None,
    metadata: Optional[Dict] = None,
) -> RateTable:
    update = {
        "$set": {
            **fields,
            "updated_at": datetime.now(timezone.utc),
            "updated_by": actor.user_id if actor else "system",
        },
        "$inc": {"version": 1},
    }
    if "rates" not in fields:
        update["$setOnInsert"] = {"rates": {}}

    db = database.get_db()
    doc = await db[SETTINGS_COLLECTION].find_one_and_update(
        {"_id": RATE_TABLE_ID},
        update,
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    table = RateTable(**doc)
    logger.info(f"Rate table updated ({action.value}) -> version {table.version}")

    await create_audit_log(
        action=action,
        actor_role=actor.role if actor else None,
        actor_id=actor.user_id if actor else None,
        resource_type="rate_table",
        resource_id=RATE_TABLE_ID,
        before_state=before,
        after_state=fields,
        metadata=metadata,
    )
    return table


async def replace_rates(rates: Dict[str, int], actor: Optional[Actor] = None) -> RateTable:
    """Replace the whole language price map."""
    cleaned = validate_rates(rates)
    current = await get_rate_table()
    return await _write(
        {"rates": cleaned},
        actor,
        AuditAction.RATE_TABLE_UPDATED,
        before={"rates": current.rates},
    )


async def reset_rates(actor: Optional[Actor] = None) -> RateTable:
    """Restore the default language prices. Multiplier and PM percentage are left as they are."""
    current = await get_rate_table()
    return await _write(
        {"rates": dict(DEFAULT_LANGUAGES)},
        actor,
        AuditAction.RATE_TABLE_RESET,
        before={"rates": current.rates},
    )


async def add_language(name: str, price: float, actor: Optional[Actor] = None) -> RateTable:
    name = _validate_language_name(name)
    if price is None or not math.isfinite(price) or price < MIN_LANGUAGE_PRICE or price > MAX_LANGUAGE_PRICE:
        raise InvalidInput(f"Price must be between {MIN_LANGUAGE_PRICE} and {MAX_LANGUAGE_PRICE} cents")
    if price != int(price):
        raise InvalidInput("Price must be a whole number of cents")

    current = await get_rate_table()
    if name in current.rates:
        raise Conflict("Language already exists")

    rates = dict(current.rates)
    rates[name] = int(price)
    return await _write(
        {"rates": rates},
        actor,
        AuditAction.LANGUAGE_ADDED,
        before={"rates": current.rates},
        metadata={"language": name, "price": int(price)},
    )


async def delete_language(name: str, actor: Optional[Actor] = None) -> RateTable:
    name = _validate_language_name(name)
    current = await get_rate_table()
    if name not in current.rates:
        raise NotFound("Language not found")
    if name in DEFAULT_LANGUAGES:
        raise InvalidInput("Cannot delete default language")

    rates = {k: v for k, v in current.rates.items() if k != name}
    return await _write(
        {"rates": rates},
        actor,
        AuditAction.LANGUAGE_DELETED,
        before={"rates": current.rates},
        metadata={"language": name},
    )


async def set_multiplier(multiplier: float, actor: Optional[Actor] = None) -> RateTable:
    if multiplier is None or not math.isfinite(multiplier) or multiplier < 1.0:
        raise InvalidInput("Multiplier must be at least 1.0")
    current = await get_rate_table()
    return await _write(
        {"project_type_multiplier": float(multiplier)},
        actor,
        AuditAction.MULTIPLIER_UPDATED,
        before={"project_type_multiplier": current.project_type_multiplier},
    )


async def set_pm_fee_percent(percentage: float, actor: Optional[Actor] = None) -> RateTable:
    if percentage is None or not math.isfinite(percentage) or not 0 <= percentage <= 100:
        raise InvalidInput("Percentage must be between 0 and 100")
    current = await get_rate_table()
    return await _write(
        {"pm_fee_percent": float(percentage)},
        actor,
        AuditAction.PM_PERCENTAGE_UPDATED,
        before={"pm_fee_percent": current.pm_fee_percent},
    )


async def reset_rates_if_empty(actor: Actor) -> RateTable:
    """Bootstrap path open to any signed-in user: only acts when no language is priced."""
    current = await get_rate_table()
    if current.rates:
        return current
    logger.warning(f"Rate table empty; restoring defaults on behalf of {actor.email}")
    return await reset_rates(actor)
