from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class PlanIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    monthly_price: float = Field(gt=0)
    is_pro: bool = False
    max_users: int = Field(1, ge=1)
    features: List[str] = []
    highlight: bool = False
    cta: Optional[str] = None
    monthly_payment_link: Optional[str] = None
    yearly_payment_link: Optional[str] = None
    sort_order: int = 0
    sync_stripe: bool = True


class PlanUpdate(BaseModel):
    description: Optional[str] = None
    is_pro: Optional[bool] = None
    max_users: Optional[int] = Field(None, ge=1)
    features: Optional[List[str]] = None
    highlight: Optional[bool] = None
    cta: Optional[str] = None
    monthly_payment_link: Optional[str] = None
    yearly_payment_link: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class PlanOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    monthly_price: float
    is_pro: bool
    max_users: int
    features: List[str] = []
    highlight: bool = False
    cta: Optional[str] = None
    monthly_payment_link: Optional[str] = None
    yearly_payment_link: Optional[str] = None
    stripe_product_id: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0

    class Config:
        from_attributes = True


class CouponIn(BaseModel):
    name: str = Field(min_length=1)
    duration: Literal["once", "repeating", "forever"] = "once"
    duration_in_months: Optional[int] = Field(None, ge=1)
    percent_off: Optional[float] = Field(None, gt=0, le=100)
    amount_off: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_discount(self):
        if not self.percent_off and not self.amount_off:
            raise ValueError("Must provide either percent_off or amount_off")
        if self.duration == "repeating" and not self.duration_in_months:
            raise ValueError("duration_in_months is required for repeating coupons")
        return self


class CouponOut(BaseModel):
    coupon_id: str
    valid: bool
    name: Optional[str] = None


class AdminTenantIn(BaseModel):
    name: str = Field(min_length=1)
    slug: Optional[str] = None


class AdminTenantUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None


class AdminTenantOut(BaseModel):
    id: str
    name: str
    slug: str
    invite_code: Optional[str] = None
    members: int
    plan_name: str
    is_pro: bool
    subscription_status: str
    created_at: Optional[datetime] = None


class AssignSubscriptionRequest(BaseModel):
    plan_id: str
    billing_cycle: Literal["monthly", "yearly"] = "monthly"
    status: Literal["active", "canceled", "past_due"] = "active"
    next_billing: Optional[datetime] = None


class SubscriptionOut(BaseModel):
    id: str
    tenant_id: str
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    status: str
    billing_cycle: str
    next_billing: Optional[datetime] = None

    class Config:
        from_attributes = True


class PlatformStats(BaseModel):
    tenants: int
    users: int
    clients: int
    pets: int
    appointments: int
    active_subscriptions: int
