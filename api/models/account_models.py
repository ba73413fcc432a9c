from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from entitlements import Entitlement
from models.user_profile_models import ProfileResponse, TenantResponse


class RegisterRequest(BaseModel):
    mode: Literal["create", "join"] = "create"
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    company_name: Optional[str] = None  # mode == "create"
    invite_code: Optional[str] = None  # mode == "join"
    plan_id: Optional[str] = None
    billing_cycle: Literal["monthly", "yearly"] = "monthly"


class RegisterResponse(BaseModel):
    profile: ProfileResponse
    tenant: TenantResponse
    entitlement: Entitlement
    redirect_url: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    uid: str
    id_token: str
    refresh_token: str
    expires_in: int
    role: str
