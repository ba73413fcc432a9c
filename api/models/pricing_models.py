from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class PlanOffer(BaseModel):
    """A plan as shown on the pricing section for one billing cycle."""

    id: str
    name: str
    description: Optional[str] = None
    features: List[str] = []
    highlight: bool = False
    cta: Optional[str] = None
    is_pro: bool = False
    max_users: int = 1
    billing_cycle: str
    monthly_price: float  # stored list price, never altered by the cycle
    display_price: float  # per month for the chosen cycle
    charged_amount: float  # billed at checkout for the chosen cycle
    yearly_savings: Optional[float] = None
    checkout_available: bool


class CalculatorRequest(BaseModel):
    weekly_appointments: int = Field(50, ge=10, le=300)
    average_ticket: float = Field(80, ge=30, le=300)
    no_show_rate: float = Field(15, ge=0, le=50)


class CalculatorResponse(BaseModel):
    monthly_revenue: float
    lost_revenue: float
    recovered_revenue: float
    growth_revenue: float
    total_extra: float


class CheckoutRequest(BaseModel):
    plan_id: str
    billing_cycle: Literal["monthly", "yearly"] = "monthly"
    email: EmailStr


class CheckoutResponse(BaseModel):
    plan_name: str
    billing_cycle: str
    charged_amount: float
    url: str
