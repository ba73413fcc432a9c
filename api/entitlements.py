"""
Plan entitlements for a signed-in user.

Resolves profile -> tenant -> tenant subscription -> plan and derives the
PRO flag, seat cap and subscription state the dashboard and the join flow
rely on.
"""
import re
import secrets
import unicodedata
from datetime import datetime
from typing import Optional

import logfire
from fastapi import HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from database import ProfileDB, TenantDB, SubscriptionDB, SubscriptionPlanDB, PetDB

FREE_PLAN_NAME = "Free"
FREE_MAX_USERS = 1
PRO_DEFAULT_MAX_USERS = 30
FREE_PET_LIMIT = 30

# Tier words recognised when a subscription has no matching plan row
PRO_TIER_WORDS = {"pro", "profissional", "elite"}


class Entitlement(BaseModel):
    tenant_id: Optional[str] = None
    tenant_name: Optional[str] = None
    plan_id: Optional[str] = None
    plan_name: str = FREE_PLAN_NAME
    is_pro: bool = False
    max_users: int = FREE_MAX_USERS
    seats_used: int = 0
    seats_left: int = FREE_MAX_USERS
    subscription_status: str = "none"  # active | expired | none
    has_active_subscription: bool = False


def _strip_accents(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(c for c in normalized if not unicodedata.combining(c))


def slugify(name: str) -> str:
    slug = _strip_accents(name).lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    return re.sub(r"[^a-z0-9-]", "", slug)


def is_pro_plan_name(plan_name: Optional[str]) -> bool:
    """
    Classify a plan by name when no plan row is available.

    Matches whole words only, so "Plano PRO" and "Elite Anual" are PRO
    while "Proposta" is not.
    """
    if not plan_name:
        return False
    words = re.split(r"[^a-z0-9]+", _strip_accents(plan_name).lower())
    return any(word in PRO_TIER_WORDS for word in words)


def subscription_status(subscription: Optional[SubscriptionDB], now: Optional[datetime] = None) -> str:
    if subscription is None:
        return "none"
    now = now or datetime.utcnow()
    if subscription.status == "active" and (subscription.next_billing is None or subscription.next_billing > now):
        return "active"
    return "expired"


def get_tenant_subscription(db: Session, tenant_id: str) -> Optional[SubscriptionDB]:
    """Latest tenant-level subscription; client plans (client_name set) are ignored."""
    return (
        db.query(SubscriptionDB)
        .filter(SubscriptionDB.tenant_id == tenant_id, SubscriptionDB.client_name.is_(None))
        .order_by(SubscriptionDB.created_at.desc())
        .first()
    )


def find_plan(db: Session, subscription: SubscriptionDB) -> Optional[SubscriptionPlanDB]:
    plan = None
    if subscription.plan_id:
        plan = db.query(SubscriptionPlanDB).filter(SubscriptionPlanDB.id == subscription.plan_id).first()
    if plan is None and subscription.plan_name:
        plan = db.query(SubscriptionPlanDB).filter(SubscriptionPlanDB.name == subscription.plan_name).first()
    return plan


def count_members(db: Session, tenant_id: str) -> int:
    return db.query(ProfileDB).filter(ProfileDB.tenant_id == tenant_id).count()


def resolve_tenant_entitlement(db: Session, tenant: TenantDB, now: Optional[datetime] = None) -> Entitlement:
    seats_used = count_members(db, tenant.id)
    entitlement = Entitlement(tenant_id=tenant.id, tenant_name=tenant.name, seats_used=seats_used)

    subscription = get_tenant_subscription(db, tenant.id)
    status = subscription_status(subscription, now)
    entitlement.subscription_status = status

    if subscription is not None:
        plan = find_plan(db, subscription)
        if plan is not None:
            entitlement.plan_id = plan.id
            entitlement.plan_name = plan.name
        else:
            entitlement.plan_name = subscription.plan_name or FREE_PLAN_NAME

        if status == "active":
            entitlement.has_active_subscription = True
            if plan is not None:
                entitlement.is_pro = bool(plan.is_pro)
                entitlement.max_users = plan.max_users or FREE_MAX_USERS
            else:
                entitlement.is_pro = is_pro_plan_name(subscription.plan_name)
                entitlement.max_users = PRO_DEFAULT_MAX_USERS if entitlement.is_pro else FREE_MAX_USERS
                logfire.warn(
                    "Subscription without plan row, classified by name",
                    tenant_id=tenant.id,
                    plan_name=subscription.plan_name,
                    is_pro=entitlement.is_pro,
                )

    entitlement.max_users = max(entitlement.max_users, 1)
    entitlement.seats_left = max(entitlement.max_users - seats_used, 0)
    return entitlement


def resolve_entitlement(db: Session, user_id: str, now: Optional[datetime] = None) -> Entitlement:
    with logfire.span("resolve_entitlement", user_id=user_id):
        profile = db.query(ProfileDB).filter(ProfileDB.id == user_id).first()
        if profile is None or not profile.tenant_id:
            return Entitlement()

        tenant = db.query(TenantDB).filter(TenantDB.id == profile.tenant_id).first()
        if tenant is None:
            logfire.warn("Profile points to missing tenant", user_id=user_id, tenant_id=profile.tenant_id)
            return Entitlement()

        return resolve_tenant_entitlement(db, tenant, now)


def check_seat_available(db: Session, tenant: TenantDB) -> Entitlement:
    entitlement = resolve_tenant_entitlement(db, tenant)
    if entitlement.seats_used >= entitlement.max_users:
        logfire.info("Tenant seat limit reached", tenant_id=tenant.id, max_users=entitlement.max_users)
        raise HTTPException(
            status_code=402,
            detail=(
                f"A empresa {tenant.name} atingiu o limite de {entitlement.max_users} usuário(s) do plano atual. "
                "Entre em contato com o administrador para fazer upgrade."
            ),
        )
    return entitlement


def check_pet_limit(db: Session, tenant: TenantDB) -> None:
    entitlement = resolve_tenant_entitlement(db, tenant)
    if entitlement.is_pro:
        return
    pets = db.query(PetDB).filter(PetDB.tenant_id == tenant.id).count()
    if pets >= FREE_PET_LIMIT:
        raise HTTPException(
            status_code=402,
            detail=f"Limite de {FREE_PET_LIMIT} pets do plano gratuito atingido. Faça upgrade para o PRO.",
        )


def generate_invite_code(slug: str) -> str:
    return f"{slug}-{100000 + secrets.randbelow(900000)}"


def new_unique_invite_code(db: Session, slug: str, attempts: int = 10) -> str:
    for _ in range(attempts):
        code = generate_invite_code(slug)
        if not db.query(TenantDB).filter(TenantDB.invite_code == code).first():
            return code
    raise HTTPException(status_code=500, detail="Não foi possível gerar um código de convite")
