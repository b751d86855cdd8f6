from fastapi import Request, HTTPException, status
from typing import Optional
import logging
from auth import decode_access_token, Actor

logger = logging.getLogger(__name__)

async def get_current_actor(request: Request) -> Optional[Actor]:
    """Extract the caller from the bearer token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ", 1)[1]
    payload = decode_access_token(token)

    if not payload:
        return None

    return Actor.from_token_payload(payload)

async def require_auth(request: Request) -> Actor:
    """Require valid authentication."""
    actor = await get_current_actor(request)
    if not actor:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return actor

async def admin_route_guard(request: Request) -> Actor:
    """Guard for admin routes (admin or super admin)."""
    actor = await require_auth(request)
    if not actor.is_admin:
        logger.warning(f"Admin access denied for {actor.email} on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return actor

async def super_admin_route_guard(request: Request) -> Actor:
    """Guard for super admin routes."""
    actor = await require_auth(request)
    if not actor.is_super_admin:
        logger.warning(f"Super admin access denied for {actor.email} on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required"
        )
    return actor
