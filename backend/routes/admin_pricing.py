"""
Admin Pricing Routes
Language prices, the Pure multiplier and the PM fee percentage.
"""
from fastapi import APIRouter, Depends, status
import logging

from auth import Actor
from middleware import admin_route_guard
from models import (
    LanguagesUpdateRequest, AddLanguageRequest, MultiplierUpdateRequest, PmPercentageUpdateRequest,
)
from services.rate_table import (
    DEFAULT_LANGUAGES, get_rate_table, replace_rates, reset_rates, add_language,
    delete_language, set_multiplier, set_pm_fee_percent,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin-pricing"])


def _table_response(table) -> dict:
    return {
        "languages": table.rates,
        "multiplier": table.project_type_multiplier,
        "pm_fee_percent": table.pm_fee_percent,
        "version": table.version,
        "updated_at": table.updated_at,
        "updated_by": table.updated_by,
    }


# ============================================
# LANGUAGES
# ============================================

@router.get("/languages")
async def get_languages(actor: Actor = Depends(admin_route_guard)):
    return _table_response(await get_rate_table())


@router.get("/languages/defaults")
async def get_default_languages(actor: Actor = Depends(admin_route_guard)):
    return {"languages": DEFAULT_LANGUAGES}


@router.put("/languages")
async def update_languages(
    request: LanguagesUpdateRequest,
    actor: Actor = Depends(admin_route_guard),
):
    """Replace the whole price list."""
    return _table_response(await replace_rates(request.languages, actor))


@router.post("/languages/reset")
async def reset_languages(actor: Actor = Depends(admin_route_guard)):
    return _table_response(await reset_rates(actor))


@router.post("/languages", status_code=status.HTTP_201_CREATED)
async def create_language(
    request: AddLanguageRequest,
    actor: Actor = Depends(admin_route_guard),
):
    return _table_response(await add_language(request.language_name, request.price, actor))


@router.delete("/languages/{language_name}")
async def remove_language(language_name: str, actor: Actor = Depends(admin_route_guard)):
    return _table_response(await delete_language(language_name, actor))


# ============================================
# MULTIPLIER / PM FEE
# ============================================

@router.put("/multiplier")
async def update_multiplier(
    request: MultiplierUpdateRequest,
    actor: Actor = Depends(admin_route_guard),
):
    return _table_response(await set_multiplier(request.multiplier, actor))


@router.put("/pm-percentage")
async def update_pm_percentage(
    request: PmPercentageUpdateRequest,
    actor: Actor = Depends(admin_route_guard),
):
    return _table_response(await set_pm_fee_percent(request.percentage, actor))
