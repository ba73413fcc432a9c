"""
Plans API - public plan catalog, profit calculator and checkout links
"""
from typing import List, Literal

import logfire
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session

from database import get_db, SubscriptionPlanDB
from pricing import charged_amount, checkout_link, display_price, project_profit, yearly_savings
from models.pricing_models import (
    CalculatorRequest,
    CalculatorResponse,
    CheckoutRequest,
    CheckoutResponse,
    PlanOffer,
)

router = APIRouter()


def plan_offer(plan: SubscriptionPlanDB, cycle: str) -> PlanOffer:
    link = plan.yearly_payment_link if cycle == "yearly" else plan.monthly_payment_link
    return PlanOffer(
        id=plan.id,
        name=plan.name,
        description=plan.description,
        features=list(plan.features or []),
        highlight=bool(plan.highlight),
        cta=plan.cta,
        is_pro=bool(plan.is_pro),
        max_users=plan.max_users or 1,
        billing_cycle=cycle,
        monthly_price=plan.monthly_price,
        display_price=display_price(plan.monthly_price, cycle),
        charged_amount=charged_amount(plan.monthly_price, cycle),
        yearly_savings=yearly_savings(plan.monthly_price) if cycle == "yearly" else None,
        checkout_available=bool(link),
    )


@router.get("/plans", response_model=List[PlanOffer])
async def list_plans(cycle: Literal["monthly", "yearly"] = "monthly", db: Session = Depends(get_db)):
    plans = (
        db.query(SubscriptionPlanDB)
        .filter(SubscriptionPlanDB.is_active.is_(True))
        .order_by(SubscriptionPlanDB.sort_order.asc(), SubscriptionPlanDB.monthly_price.asc())
        .all()
    )
    return [plan_offer(p, cycle) for p in plans]


@router.post("/calculator", response_model=CalculatorResponse)
async def calculate_profit(request: CalculatorRequest):
    return project_profit(request.weekly_appointments, request.average_ticket, request.no_show_rate)


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(request: CheckoutRequest, db: Session = Depends(get_db)):
    """Payment link of the chosen cycle, prefilled with the buyer's e-mail"""
    plan = (
        db.query(SubscriptionPlanDB)
        .filter(SubscriptionPlanDB.id == request.plan_id, SubscriptionPlanDB.is_active.is_(True))
        .first()
    )
    if not plan:
        raise HTTPException(status_code=404, detail="Plano não encontrado")

    url = checkout_link(plan, request.billing_cycle, request.email)
    logfire.info("Checkout link issued", plan_id=plan.id, billing_cycle=request.billing_cycle)
    return CheckoutResponse(
        plan_name=plan.name,
        billing_cycle=request.billing_cycle,
        charged_amount=charged_amount(plan.monthly_price, request.billing_cycle),
        url=url,
    )
