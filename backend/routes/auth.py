from fastapi import APIRouter, HTTPException, Depends, status
from models import SignupRequest, LoginRequest, TokenResponse
from auth import Actor, token_for_user
from middleware import require_auth
from services.account_service import create_user, authenticate, get_user
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest):
    """Create a Free account and sign it in."""
    user = await create_user(
        email=payload.email,
        password=payload.password,
        name=payload.name,
    )
    return TokenResponse(access_token=token_for_user(user), user=user)


@router.post("/login", response_model=TokenResponse)
async def login(credentials: LoginRequest):
    user = await authenticate(credentials.email, credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )
    logger.info(f"Login: {user['email']}")
    return TokenResponse(access_token=token_for_user(user), user=user)


@router.get("/me")
async def get_me(actor: Actor = Depends(require_auth)):
    """Current user profile."""
    user = await get_user(actor.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


@router.get("/check-admin")
async def check_admin(actor: Actor = Depends(require_auth)):
    return {
        "is_admin": actor.is_admin,
        "is_super_admin": actor.is_super_admin,
        "role": actor.role.value,
    }
