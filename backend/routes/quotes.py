"""
Quote Routes
Upload a document, get an itemized price. Also the public price list the quote form is built from.
"""
from fastapi import APIRouter, Depends, UploadFile, File, Form
from typing import List
import json
import logging

from auth import Actor
from middleware import require_auth
from models import ProjectType
from services.errors import InvalidInput
from services.project_service import analyze_document
from services.rate_table import get_rate_table, reset_rates_if_empty

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["quotes"])


def parse_languages_field(raw: str) -> List[str]:
    """Multipart forms send the language list as a JSON array or a comma-separated string."""
    raw = (raw or "").strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            raise InvalidInput("Languages must be a JSON array of names")
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise InvalidInput("Languages must be a JSON array of names")
        return parsed
    return [item for item in raw.split(",")]


def parse_project_type(raw: str) -> ProjectType:
    try:
        return ProjectType((raw or ProjectType.FUSION.value).strip().upper())
    except ValueError:
        raise InvalidInput(f"Invalid project type: {raw}")


@router.post("/analyze")
async def analyze(
    file: UploadFile = File(...),
    languages: str = Form(...),
    project_type: str = Form(ProjectType.FUSION.value),
    actor: Actor = Depends(require_auth),
):
    """
    Count the words in an uploaded document and price them for each selected language.
    The returned upload_ref is passed back when the quote is turned into a project.
    """
    content = await file.read()
    return await analyze_document(
        content=content,
        filename=file.filename or "upload",
        content_type=file.content_type,
        languages=parse_languages_field(languages),
        project_type=parse_project_type(project_type),
        actor=actor,
    )


@router.get("/languages")
async def get_languages():
    """Language price list, cents per word."""
    table = await get_rate_table()
    return {"languages": table.rates}


@router.get("/multiplier")
async def get_multiplier():
    table = await get_rate_table()
    return {
        "multiplier": table.project_type_multiplier,
        "pm_fee_percent": table.pm_fee_percent,
    }


@router.post("/languages/bootstrap")
async def bootstrap_languages(actor: Actor = Depends(require_auth)):
    """Restore default prices when the table is empty. A populated table is returned unchanged."""
    table = await reset_rates_if_empty(actor)
    return {"languages": table.rates, "version": table.version}
