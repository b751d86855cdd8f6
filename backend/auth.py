from passlib.context import CryptContext
from jose import JWTError, jwt
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
import os
from models import UserRole

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

ADMIN_ROLES = (UserRole.ROLE_ADMIN.value, UserRole.ROLE_SUPER_ADMIN.value)

def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)

def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRATION_HOURS)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None

def validate_password_strength(password: str) -> tuple[bool, str]:
    """Validate password meets security requirements."""
    if len(password) < 8:
        return False, "Password must be at least 8 characters"
    if not any(c.isalpha() for c in password):
        return False, "Password must contain at least one letter"
    if not any(c.isdigit() for c in password):
        return False, "Password must contain at least one number"
    return True, "Password is valid"


@dataclass(frozen=True)
class Actor:
    """
    The authenticated caller with its capabilities resolved once per request.
    Route guards build it from the bearer token and hand it to the services.
    """
    user_id: str
    email: str
    role: UserRole
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role.value in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.ROLE_SUPER_ADMIN

    @classmethod
    def from_token_payload(cls, payload: Dict) -> Optional["Actor"]:
        try:
            return cls(
                user_id=payload["user_id"],
                email=payload["email"],
                role=UserRole(payload.get("role", UserRole.ROLE_USER.value)),
                name=payload.get("name"),
            )
        except (KeyError, ValueError):
            return None


def token_for_user(user: Dict) -> str:
    """Issue a bearer token identifying a user record."""
    return create_access_token({
        "user_id": user["user_id"],
        "email": user["email"],
        "role": user.get("role", UserRole.ROLE_USER.value),
        "name": user.get("name"),
    })
