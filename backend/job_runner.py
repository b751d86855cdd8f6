"""
Scheduled background jobs.
Used by the server scheduler and by the admin run-now endpoint.
Each run_* returns a dict with "message" and a count for the admin toast.
"""
import logging

logger = logging.getLogger(__name__)


async def run_unclaimed_upload_purge():
    try:
        from services.project_service import purge_unclaimed_uploads
        result = await purge_unclaimed_uploads()
        return {
            "message": f"Unclaimed uploads: {result['deleted']} deleted of {result['checked']} checked",
            "count": result["deleted"],
        }
    except Exception as e:
        logger.error(f"Unclaimed upload purge job failed: {e}")
        raise
