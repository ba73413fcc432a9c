"""
Stripe REST calls used by the super-admin console: plan products, prices,
payment links and coupons.
"""
import os
from typing import Any, Dict, Optional

import httpx
import logfire

from pricing import charged_amount

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_BASE_URL = "https://api.stripe.com/v1"
CURRENCY = "brl"


class StripeError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def is_configured() -> bool:
    return bool(STRIPE_SECRET_KEY)


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=STRIPE_BASE_URL, auth=(STRIPE_SECRET_KEY or "", ""), timeout=30.0)


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


async def _post(client: httpx.AsyncClient, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        resp = await client.post(path, data=data)
    except httpx.RequestError as e:
        logfire.error("Stripe request error", path=path, error=str(e))
        raise StripeError(f"Stripe unreachable: {e}")

    if resp.status_code >= 400:
        try:
            message = resp.json().get("error", {}).get("message", resp.text)
        except ValueError:
            message = resp.text
        logfire.error("Stripe API error", path=path, status_code=resp.status_code, body=message)
        raise StripeError(message, resp.status_code)
    return resp.json()


async def create_plan_prices(name: str, description: Optional[str], monthly_price: float) -> Dict[str, str]:
    """
    Create the Stripe product of a plan with one monthly and one yearly price,
    each with its own payment link. The yearly price is what the landing page
    shows: twelve months at the discounted rate.
    """
    with logfire.span("stripe_create_plan", plan_name=name):
        async with _http_client() as client:
            product_data = {"name": name}
            if description:
                product_data["description"] = description
            product = await _post(client, "/products", product_data)

            prices = {}
            links = {}
            for cycle, interval in (("monthly", "month"), ("yearly", "year")):
                price = await _post(client, "/prices", {
                    "product": product["id"],
                    "unit_amount": to_cents(charged_amount(monthly_price, cycle)),
                    "currency": CURRENCY,
                    "recurring[interval]": interval,
                })
                link = await _post(client, "/payment_links", {
                    "line_items[0][price]": price["id"],
                    "line_items[0][quantity]": 1,
                })
                prices[cycle] = price["id"]
                links[cycle] = link["url"]

        logfire.info("Stripe plan created", product_id=product["id"])
        return {
            "stripe_product_id": product["id"],
            "stripe_monthly_price_id": prices["monthly"],
            "stripe_yearly_price_id": prices["yearly"],
            "monthly_payment_link": links["monthly"],
            "yearly_payment_link": links["yearly"],
        }


async def create_coupon(
    name: str,
    duration: str = "once",
    duration_in_months: Optional[int] = None,
    percent_off: Optional[float] = None,
    amount_off: Optional[float] = None,
) -> Dict[str, Any]:
    if not percent_off and not amount_off:
        raise ValueError("Must provide either percent_off or amount_off")

    data: Dict[str, Any] = {"name": name, "duration": duration}
    if duration == "repeating":
        data["duration_in_months"] = duration_in_months
    if percent_off:
        data["percent_off"] = percent_off
    if amount_off:
        data["amount_off"] = to_cents(amount_off)
        data["currency"] = CURRENCY

    async with _http_client() as client:
        coupon = await _post(client, "/coupons", data)

    logfire.info("Stripe coupon created", coupon_id=coupon["id"])
    return {"coupon_id": coupon["id"], "valid": coupon.get("valid", True), "name": coupon.get("name")}
