from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, Dict, Any, List
from datetime import datetime
from decimal import Decimal
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class UserRole(str, Enum):
    ROLE_USER = "ROLE_USER"
    ROLE_ADMIN = "ROLE_ADMIN"
    ROLE_SUPER_ADMIN = "ROLE_SUPER_ADMIN"

class License(str, Enum):
    FREE = "Free"
    PROFESSIONAL = "Professional"
    PROFESSIONAL_SUB_ACCOUNT = "Professional - Sub Account"

class ProjectType(str, Enum):
    FUSION = "FUSION"
    PURE = "PURE"

class AuditAction(str, Enum):
    # Auth
    USER_SIGNUP = "USER_SIGNUP"
    USER_LOGIN_SUCCESS = "USER_LOGIN_SUCCESS"
    USER_LOGIN_FAILED = "USER_LOGIN_FAILED"

    # Users
    USER_CREATED_BY_ADMIN = "USER_CREATED_BY_ADMIN"
    USER_DELETED = "USER_DELETED"
    LICENSE_UPDATED = "LICENSE_UPDATED"
    SUB_ACCOUNT_ATTACHED = "SUB_ACCOUNT_ATTACHED"
    SUB_ACCOUNT_DETACHED = "SUB_ACCOUNT_DETACHED"
    ADMIN_CREATED = "ADMIN_CREATED"
    ADMIN_REMOVED = "ADMIN_REMOVED"

    # Pricing
    RATE_TABLE_UPDATED = "RATE_TABLE_UPDATED"
    RATE_TABLE_RESET = "RATE_TABLE_RESET"
    LANGUAGE_ADDED = "LANGUAGE_ADDED"
    LANGUAGE_DELETED = "LANGUAGE_DELETED"
    MULTIPLIER_UPDATED = "MULTIPLIER_UPDATED"
    PM_PERCENTAGE_UPDATED = "PM_PERCENTAGE_UPDATED"

    # Projects
    PROJECT_CREATED = "PROJECT_CREATED"
    PROJECT_SUBMITTED = "PROJECT_SUBMITTED"
    PROJECT_STATUS_CHANGED = "PROJECT_STATUS_CHANGED"
    PROJECT_ETA_UPDATED = "PROJECT_ETA_UPDATED"
    TRANSLATED_FILE_ATTACHED = "TRANSLATED_FILE_ATTACHED"
    PROJECT_DELETED = "PROJECT_DELETED"
    UPLOADS_PURGED = "UPLOADS_PURGED"

    # Email
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"

class EmailTemplateAlias(str, Enum):
    PROJECT_CREATED = "project-created"
    PROJECT_CREATED_ADMIN = "project-created-admin"
    PROJECT_SUBMITTED_ADMIN = "project-submitted-admin"
    PROJECT_COMPLETED = "project-completed"

# ============================================================================
# QUOTES
# ============================================================================

class BreakdownItem(BaseModel):
    language: str
    rate_cents: int
    cost: Decimal

class Quote(BaseModel):
    """Itemized price for one document and a set of target languages."""
    unit_count: int
    project_type: ProjectType
    multiplier_applied: float
    breakdown: List[BreakdownItem]
    subtotal: Decimal
    pm_fee_percent: float
    pm_fee: Decimal
    total: Decimal

class RateTable(BaseModel):
    model_config = ConfigDict(extra="ignore")

    rates: Dict[str, int]
    project_type_multiplier: float = 1.3
    pm_fee_percent: float = 1.0
    version: int = 0
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

# ============================================================================
# AUDIT / MESSAGING
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[UserRole] = None
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(datetime.now().astimezone().tzinfo))

class MessageLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    postmark_message_id: Optional[str] = None
    event: str
    recipient: EmailStr
    template_alias: EmailTemplateAlias
    subject: str
    project_id: Optional[str] = None
    status: str = "queued"
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(datetime.now().astimezone().tzinfo))

# ============================================================================
# REQUEST / RESPONSE PAYLOADS
# ============================================================================

class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    name: str

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]

class CreateProjectRequest(BaseModel):
    name: str
    upload_ref: str
    languages: List[str]
    project_type: ProjectType = ProjectType.FUSION
    notes: Optional[str] = None

class StatusUpdateRequest(BaseModel):
    status: str

class EtaUpdateRequest(BaseModel):
    eta_days: int

class LanguagesUpdateRequest(BaseModel):
    languages: Dict[str, int]

class AddLanguageRequest(BaseModel):
    language_name: str
    price: float = Field(allow_inf_nan=False)

class MultiplierUpdateRequest(BaseModel):
    multiplier: float = Field(allow_inf_nan=False)

class PmPercentageUpdateRequest(BaseModel):
    percentage: float = Field(allow_inf_nan=False)

class CreateUserRequest(BaseModel):
    email: EmailStr
    password: str
    name: str
    license: License = License.FREE

class CreateAdminRequest(BaseModel):
    email: EmailStr
    password: str
    name: str

class LicenseUpdateRequest(BaseModel):
    user_id: str
    license: License

class AttachSubAccountRequest(BaseModel):
    sub_account_number: int
