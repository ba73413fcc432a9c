from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, field_serializer

from entitlements import Entitlement


def _iso_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    role: str
    tenant_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_serializer("created_at")
    def serialize_datetime(self, value: datetime) -> Optional[str]:
        return _iso_utc(value)


class UpdateProfileRequest(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class TenantResponse(BaseModel):
    id: str
    name: str
    slug: str
    invite_code: Optional[str] = None
    logo_url: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_serializer("created_at")
    def serialize_datetime(self, value: datetime) -> Optional[str]:
        return _iso_utc(value)


class TenantOverview(BaseModel):
    tenant: TenantResponse
    entitlement: Entitlement


class TeamResponse(BaseModel):
    members: List[ProfileResponse]
    seats_used: int
    max_users: int
    seats_left: int
    limit_reached: bool


class UpdateTenantRequest(BaseModel):
    name: str


class JoinTenantRequest(BaseModel):
    invite_code: str


class InviteShareResponse(BaseModel):
    invite_code: str
    text: str
    whatsapp_url: str


class SessionResponse(BaseModel):
    uid: str
    email: Optional[str] = None
    profile: ProfileResponse
    tenant: Optional[TenantResponse] = None
    entitlement: Entitlement
