"""
Super Admin API - companies, subscription plans, Stripe coupons, suggestions and platform stats
"""
from typing import List, Optional

import logfire
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session

import billing
from auth import require_super_admin
from database import (
    get_db,
    AppointmentDB,
    ClientDB,
    FinancialTransactionDB,
    PetDB,
    ProfileDB,
    ServiceDB,
    SubscriptionDB,
    SubscriptionPlanDB,
    SuggestionDB,
    TenantDB,
)
from entitlements import (
    get_tenant_subscription,
    new_unique_invite_code,
    resolve_tenant_entitlement,
    slugify,
    subscription_status,
)
from routers.tenants import get_tenant_or_404
from models.academy_models import SuggestionOut, SuggestionUpdate
from models.admin_models import (
    AdminTenantIn,
    AdminTenantOut,
    AdminTenantUpdate,
    AssignSubscriptionRequest,
    CouponIn,
    CouponOut,
    PlanIn,
    PlanOut,
    PlanUpdate,
    PlatformStats,
    SubscriptionOut,
)

router = APIRouter(dependencies=[Depends(require_super_admin)])

TENANT_SCOPED_TABLES = (AppointmentDB, FinancialTransactionDB, PetDB, ClientDB, ServiceDB, SubscriptionDB)


def admin_tenant_out(db: Session, tenant: TenantDB) -> AdminTenantOut:
    entitlement = resolve_tenant_entitlement(db, tenant)
    return AdminTenantOut(
        id=tenant.id,
        name=tenant.name,
        slug=tenant.slug,
        invite_code=tenant.invite_code,
        members=entitlement.seats_used,
        plan_name=entitlement.plan_name,
        is_pro=entitlement.is_pro,
        subscription_status=entitlement.subscription_status,
        created_at=tenant.created_at,
    )


def _clean_slug(value: str) -> str:
    slug = slugify(value)
    if not slug:
        raise HTTPException(status_code=400, detail="Slug inválido")
    return slug


# --- Tenants ---

@router.get("/tenants", response_model=List[AdminTenantOut])
async def list_tenants(db: Session = Depends(get_db)):
    tenants = db.query(TenantDB).order_by(TenantDB.created_at.desc()).all()
    return [admin_tenant_out(db, t) for t in tenants]


@router.post("/tenants", response_model=AdminTenantOut, status_code=201)
async def create_tenant(request: AdminTenantIn, db: Session = Depends(get_db)):
    slug = _clean_slug(request.slug or request.name)
    tenant = TenantDB(name=request.name.strip(), slug=slug, invite_code=new_unique_invite_code(db, slug))
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    logfire.info("Tenant created by super admin", tenant_id=tenant.id)
    return admin_tenant_out(db, tenant)


@router.put("/tenants/{tenant_id}", response_model=AdminTenantOut)
async def update_tenant(tenant_id: str, request: AdminTenantUpdate, db: Session = Depends(get_db)):
    tenant = get_tenant_or_404(db, tenant_id)
    if request.name is not None:
        tenant.name = request.name.strip()
    if request.slug is not None:
        tenant.slug = _clean_slug(request.slug)
    elif request.name is not None:
        tenant.slug = _clean_slug(request.name)
    db.commit()
    db.refresh(tenant)
    return admin_tenant_out(db, tenant)


@router.delete("/tenants/{tenant_id}")
async def delete_tenant(tenant_id: str, db: Session = Depends(get_db)):
    """Delete a company with its data. Members keep their accounts as plain tutors."""
    tenant = get_tenant_or_404(db, tenant_id)
    with logfire.span("delete_tenant", tenant_id=tenant.id):
        for member in db.query(ProfileDB).filter(ProfileDB.tenant_id == tenant.id).all():
            member.tenant_id = None
            if member.role != "super_admin":
                member.role = "tutor"
        for model in TENANT_SCOPED_TABLES:
            db.query(model).filter(model.tenant_id == tenant.id).delete(synchronize_session=False)
        db.delete(tenant)
        db.commit()
    return {"status": "deleted", "id": tenant_id}


@router.post("/tenants/{tenant_id}/invite-code", response_model=AdminTenantOut)
async def regenerate_tenant_invite_code(tenant_id: str, db: Session = Depends(get_db)):
    tenant = get_tenant_or_404(db, tenant_id)
    tenant.invite_code = new_unique_invite_code(db, tenant.slug)
    db.commit()
    db.refresh(tenant)
    return admin_tenant_out(db, tenant)


@router.post("/tenants/{tenant_id}/subscription", response_model=SubscriptionOut, status_code=201)
async def assign_subscription(tenant_id: str, request: AssignSubscriptionRequest, db: Session = Depends(get_db)):
    """Record a new subscription for the company; the latest one is the one in effect"""
    tenant = get_tenant_or_404(db, tenant_id)
    plan = db.query(SubscriptionPlanDB).filter(SubscriptionPlanDB.id == request.plan_id).first()
    if not plan:
        raise HTTPException(status_code=404, detail="Plano não encontrado")

    subscription = SubscriptionDB(
        tenant_id=tenant.id,
        plan_id=plan.id,
        plan_name=plan.name,
        status=request.status,
        billing_cycle=request.billing_cycle,
        next_billing=request.next_billing,
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    logfire.info("Subscription assigned", tenant_id=tenant.id, plan_id=plan.id, status=request.status)
    return subscription


# --- Plans ---

@router.get("/plans", response_model=List[PlanOut])
async def list_all_plans(db: Session = Depends(get_db)):
    return db.query(SubscriptionPlanDB).order_by(SubscriptionPlanDB.sort_order.asc()).all()


@router.post("/plans", response_model=PlanOut, status_code=201)
async def create_plan(request: PlanIn, db: Session = Depends(get_db)):
    """
    Create a plan. With sync_stripe the Stripe product, both prices and both
    payment links are created first and stored on the plan.
    """
    name = request.name.strip()
    if db.query(SubscriptionPlanDB).filter(SubscriptionPlanDB.name == name).first():
        raise HTTPException(status_code=409, detail=f"Já existe um plano chamado {name}")

    data = request.model_dump(exclude={"sync_stripe"})
    data["name"] = name

    if request.sync_stripe:
        if billing.is_configured():
            try:
                data.update(await billing.create_plan_prices(name, request.description, request.monthly_price))
            except billing.StripeError as e:
                raise HTTPException(status_code=502, detail=f"Erro no Stripe: {e}")
        else:
            logfire.warn("STRIPE_SECRET_KEY not set, plan stored without Stripe prices", plan_name=name)

    plan = SubscriptionPlanDB(**data)
    db.add(plan)
    db.commit()
    db.refresh(plan)
    logfire.info("Plan created", plan_id=plan.id, stripe_product_id=plan.stripe_product_id)
    return plan


@router.put("/plans/{plan_id}", response_model=PlanOut)
async def update_plan(plan_id: str, request: PlanUpdate, db: Session = Depends(get_db)):
    plan = db.query(SubscriptionPlanDB).filter(SubscriptionPlanDB.id == plan_id).first()
    if not plan:
        raise HTTPException(status_code=404, detail="Plano não encontrado")
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(plan, field, value)
    db.commit()
    db.refresh(plan)
    return plan


@router.delete("/plans/{plan_id}")
async def delete_plan(plan_id: str, db: Session = Depends(get_db)):
    """Plans still referenced by a subscription are only deactivated"""
    plan = db.query(SubscriptionPlanDB).filter(SubscriptionPlanDB.id == plan_id).first()
    if not plan:
        raise HTTPException(status_code=404, detail="Plano não encontrado")

    in_use = db.query(SubscriptionDB).filter(SubscriptionDB.plan_id == plan.id).first() is not None
    if in_use:
        plan.is_active = False
        db.commit()
        return {"status": "deactivated", "id": plan_id}

    db.delete(plan)
    db.commit()
    return {"status": "deleted", "id": plan_id}


# --- Coupons ---

@router.post("/coupons", response_model=CouponOut, status_code=201)
async def create_coupon(request: CouponIn):
    if not billing.is_configured():
        raise HTTPException(status_code=502, detail="Stripe não configurado")
    try:
        return await billing.create_coupon(
            name=request.name,
            duration=request.duration,
            duration_in_months=request.duration_in_months,
            percent_off=request.percent_off,
            amount_off=request.amount_off,
        )
    except billing.StripeError as e:
        raise HTTPException(status_code=502, detail=f"Erro no Stripe: {e}")


# --- Suggestions ---

@router.get("/suggestions", response_model=List[SuggestionOut])
async def list_suggestions(status: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(SuggestionDB)
    if status:
        query = query.filter(SuggestionDB.status == status)
    return query.order_by(SuggestionDB.created_at.desc()).all()


@router.put("/suggestions/{suggestion_id}", response_model=SuggestionOut)
async def update_suggestion(suggestion_id: str, request: SuggestionUpdate, db: Session = Depends(get_db)):
    suggestion = db.query(SuggestionDB).filter(SuggestionDB.id == suggestion_id).first()
    if not suggestion:
        raise HTTPException(status_code=404, detail="Sugestão não encontrada")
    suggestion.status = request.status
    if request.admin_notes is not None:
        suggestion.admin_notes = request.admin_notes
    db.commit()
    db.refresh(suggestion)
    return suggestion


# --- Stats ---

@router.get("/stats", response_model=PlatformStats)
async def get_platform_stats(db: Session = Depends(get_db)):
    tenants = db.query(TenantDB).all()
    active = sum(
        1 for t in tenants
        if subscription_status(get_tenant_subscription(db, t.id)) == "active"
    )
    return PlatformStats(
        tenants=len(tenants),
        users=db.query(ProfileDB).count(),
        clients=db.query(ClientDB).count(),
        pets=db.query(PetDB).count(),
        appointments=db.query(AppointmentDB).count(),
        active_subscriptions=active,
    )
