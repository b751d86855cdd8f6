from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from database import database
from routes import auth, quotes, projects, admin_projects, admin_pricing, admin_users
from services.errors import EngineError

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

from job_runner import run_unclaimed_upload_purge


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Translation Quotes API")
    await database.connect()

    # Default language prices on an empty database
    try:
        from services.rate_table import ensure_rate_table_seeded
        await ensure_rate_table_seeded()
    except Exception as e:
        logger.error(f"Failed to seed rate table: {e}")

    # Idempotent super admin bootstrap when email+password env are set
    bootstrap_email = (os.environ.get("BOOTSTRAP_SUPER_ADMIN_EMAIL") or "").strip()
    bootstrap_password = (os.environ.get("BOOTSTRAP_SUPER_ADMIN_PASSWORD") or "").strip()
    if bootstrap_email and bootstrap_password:
        try:
            from services.account_service import bootstrap_super_admin
            result = await bootstrap_super_admin(bootstrap_email, bootstrap_password)
            logger.info("Bootstrap super admin: %s - %s", result.get("action"), result.get("message"))
        except Exception as e:
            logger.warning("Bootstrap super admin failed: %s", e)

    # Analyze uploads never turned into a project, daily at 03:00 UTC
    scheduler.add_job(
        run_unclaimed_upload_purge,
        CronTrigger(hour=3, minute=0, timezone="UTC"),
        id="unclaimed_upload_purge",
        name="Unclaimed Upload Purge",
        replace_existing=True
    )
    scheduler.start()
    logger.info("Background job scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down Translation Quotes API")
    scheduler.shutdown(wait=False)
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Translation Quotes API",
    description="Document word counts, translation quotes and project tracking",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(quotes.router)
app.include_router(projects.router)
app.include_router(admin_projects.router)
app.include_router(admin_pricing.router)
app.include_router(admin_users.router)

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": "Translation Quotes",
        "version": "1.0.0",
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# Engine errors carry their own HTTP status and error code
@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(errors), "request_id": request_id},
    )


def jsonable_errors(errors):
    """Pydantic may put exception objects in ctx; keep only what serializes."""
    return [
        {"loc": e.get("loc"), "msg": e.get("msg"), "type": e.get("type")}
        for e in errors
    ]


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
