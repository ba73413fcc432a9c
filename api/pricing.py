"""
Plan pricing shown on the landing page, checkout links and the profit calculator.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict
from urllib.parse import quote

from fastapi import HTTPException

from database import SubscriptionPlanDB

YEARLY_DISCOUNT = Decimal("0.8")  # 20% off
BILLING_CYCLES = ("monthly", "yearly")

# Calculator premises: the CRM recovers 80% of no-shows and grows recurrence by 15%
NO_SHOW_RECOVERY = 0.8
RECURRENCE_GROWTH = 0.15
WEEKS_PER_MONTH = 4

CENTS = Decimal("0.01")


def _money(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def display_price(monthly_price: float, cycle: str) -> float:
    """Monthly price shown for a billing cycle; the yearly cycle is 20% off."""
    if cycle not in BILLING_CYCLES:
        raise ValueError(f"Unknown billing cycle: {cycle}")
    price = Decimal(str(monthly_price))
    if cycle == "yearly":
        price = price * YEARLY_DISCOUNT
    return _money(price)


def yearly_savings(monthly_price: float) -> float:
    full_year = Decimal(str(monthly_price)) * 12
    discounted_year = Decimal(str(display_price(monthly_price, "yearly"))) * 12
    return _money(full_year - discounted_year)


def charged_amount(monthly_price: float, cycle: str) -> float:
    """Amount billed per checkout: one month, or twelve discounted months."""
    price = Decimal(str(display_price(monthly_price, cycle)))
    if cycle == "yearly":
        price = price * 12
    return _money(price)


def payment_link_for(plan: SubscriptionPlanDB, cycle: str) -> str:
    link = plan.yearly_payment_link if cycle == "yearly" else plan.monthly_payment_link
    if not link:
        raise HTTPException(
            status_code=409,
            detail=f"O plano {plan.name} não possui cobrança {'anual' if cycle == 'yearly' else 'mensal'} configurada",
        )
    return link


def checkout_link(plan: SubscriptionPlanDB, cycle: str, email: str) -> str:
    link = payment_link_for(plan, cycle)
    separator = "&" if "?" in link else "?"
    return f"{link}{separator}prefilled_email={quote(email, safe='')}"


def project_profit(weekly_appointments: int, average_ticket: float, no_show_rate: float) -> Dict[str, float]:
    """
    Projection of the revenue the CRM recovers for a shop.
    Pure function of its three inputs.
    """
    monthly_revenue = weekly_appointments * WEEKS_PER_MONTH * average_ticket
    lost_revenue = monthly_revenue * (no_show_rate / 100)
    recovered_revenue = lost_revenue * NO_SHOW_RECOVERY
    growth_revenue = monthly_revenue * RECURRENCE_GROWTH
    return {
        "monthly_revenue": round(monthly_revenue, 2),
        "lost_revenue": round(lost_revenue, 2),
        "recovered_revenue": round(recovered_revenue, 2),
        "growth_revenue": round(growth_revenue, 2),
        "total_extra": round(recovered_revenue + growth_revenue, 2),
    }
