"""
Tenants API - the caller's company, team seats and invite codes
"""
import os
from urllib.parse import quote

import logfire
from fastapi import APIRouter, HTTPException, Depends, File, UploadFile
from sqlalchemy.orm import Session

from auth import get_current_profile, require_tenant_member, require_tenant_admin
from database import get_db, ProfileDB, TenantDB
from entitlements import check_seat_available, new_unique_invite_code, resolve_tenant_entitlement, slugify
from redis_manager import notify_tenant
from routers.profile import store_image
from models.user_profile_models import (
    InviteShareResponse,
    JoinTenantRequest,
    ProfileResponse,
    TeamResponse,
    TenantOverview,
    TenantResponse,
    UpdateTenantRequest,
)

router = APIRouter()

PUBLIC_SITE_URL = os.getenv("PUBLIC_SITE_URL", "https://flowpet.com.br")


def get_tenant_or_404(db: Session, tenant_id: str) -> TenantDB:
    tenant = db.query(TenantDB).filter(TenantDB.id == tenant_id).first()
    if not tenant:
        raise HTTPException(status_code=404, detail="Empresa não encontrada")
    return tenant


def invite_share_text(tenant: TenantDB) -> str:
    return (
        f"Olá! Você foi convidado para a equipe da {tenant.name} no Flow Pet. "
        f"Crie sua conta em {PUBLIC_SITE_URL} e use o código de convite: {tenant.invite_code}"
    )


@router.get("/mine", response_model=TenantOverview)
async def get_my_tenant(profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    tenant = get_tenant_or_404(db, profile.tenant_id)
    return TenantOverview(
        tenant=TenantResponse.model_validate(tenant),
        entitlement=resolve_tenant_entitlement(db, tenant),
    )


@router.put("/mine", response_model=TenantResponse)
async def update_my_tenant(
    request: UpdateTenantRequest,
    profile: ProfileDB = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
):
    """Rename the company. The slug follows the name; the invite code is kept."""
    name = request.name.strip()
    slug = slugify(name)
    if not slug:
        raise HTTPException(status_code=400, detail="Nome da empresa inválido")

    tenant = get_tenant_or_404(db, profile.tenant_id)
    tenant.name = name
    tenant.slug = slug
    db.commit()
    db.refresh(tenant)
    logfire.info("Tenant renamed", tenant_id=tenant.id, slug=slug)
    return tenant


@router.post("/mine/logo", response_model=TenantResponse)
async def upload_logo(
    file: UploadFile = File(...),
    profile: ProfileDB = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
):
    tenant = get_tenant_or_404(db, profile.tenant_id)
    tenant.logo_url = await store_image(f"tenants/{tenant.id}/logo", file)
    db.commit()
    db.refresh(tenant)
    return tenant


@router.get("/mine/team", response_model=TeamResponse)
async def get_team(profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    tenant = get_tenant_or_404(db, profile.tenant_id)
    members = (
        db.query(ProfileDB)
        .filter(ProfileDB.tenant_id == tenant.id)
        .order_by(ProfileDB.full_name.asc())
        .all()
    )
    entitlement = resolve_tenant_entitlement(db, tenant)
    return TeamResponse(
        members=[ProfileResponse.model_validate(m) for m in members],
        seats_used=entitlement.seats_used,
        max_users=entitlement.max_users,
        seats_left=entitlement.seats_left,
        limit_reached=entitlement.seats_used >= entitlement.max_users,
    )


@router.post("/mine/invite-code", response_model=TenantResponse)
async def regenerate_invite_code(profile: ProfileDB = Depends(require_tenant_admin), db: Session = Depends(get_db)):
    """Replace the invite code; the old one stops working immediately"""
    tenant = get_tenant_or_404(db, profile.tenant_id)
    tenant.invite_code = new_unique_invite_code(db, tenant.slug)
    db.commit()
    db.refresh(tenant)
    logfire.info("Invite code regenerated", tenant_id=tenant.id)
    return tenant


@router.get("/mine/invite-share", response_model=InviteShareResponse)
async def get_invite_share(profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    tenant = get_tenant_or_404(db, profile.tenant_id)
    if not tenant.invite_code:
        tenant.invite_code = new_unique_invite_code(db, tenant.slug)
        db.commit()
        db.refresh(tenant)

    text = invite_share_text(tenant)
    return InviteShareResponse(
        invite_code=tenant.invite_code,
        text=text,
        whatsapp_url=f"https://wa.me/?text={quote(text, safe='')}",
    )


@router.post("/join", response_model=TenantOverview)
async def join_tenant(
    request: JoinTenantRequest,
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    """A signed-in user without a company joins one by invite code"""
    if profile.tenant_id:
        raise HTTPException(status_code=409, detail="Você já faz parte de uma empresa")

    code = request.invite_code.strip()
    tenant = db.query(TenantDB).filter(TenantDB.invite_code == code).first()
    if not tenant:
        raise HTTPException(status_code=404, detail="Código de convite inválido")
    check_seat_available(db, tenant)

    profile.tenant_id = tenant.id
    if profile.role != "super_admin":
        profile.role = "employee"
    db.commit()
    db.refresh(profile)

    logfire.info("User joined tenant", user_id=profile.id, tenant_id=tenant.id)
    await notify_tenant(tenant.id, "team.joined", {"user_id": profile.id, "full_name": profile.full_name})
    return TenantOverview(
        tenant=TenantResponse.model_validate(tenant),
        entitlement=resolve_tenant_entitlement(db, tenant),
    )


@router.delete("/mine/team/{user_id}")
async def remove_member(user_id: str, profile: ProfileDB = Depends(require_tenant_admin), db: Session = Depends(get_db)):
    if user_id == profile.id:
        raise HTTPException(status_code=400, detail="Você não pode remover a si mesmo")

    member = (
        db.query(ProfileDB)
        .filter(ProfileDB.id == user_id, ProfileDB.tenant_id == profile.tenant_id)
        .first()
    )
    if not member:
        raise HTTPException(status_code=404, detail="Membro não encontrado")

    member.tenant_id = None
    member.role = "tutor"
    db.commit()
    logfire.info("Member removed", tenant_id=profile.tenant_id, user_id=user_id)
    return {"status": "removed", "user_id": user_id}
