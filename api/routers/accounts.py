"""
Accounts API - registration (new company or join by invite), password login and session
"""
import os

import logfire
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session

import auth
from auth import get_current_user, ensure_profile
from database import get_db, ProfileDB, TenantDB, SubscriptionPlanDB
from entitlements import (
    check_seat_available,
    new_unique_invite_code,
    resolve_entitlement,
    resolve_tenant_entitlement,
    slugify,
)
from pricing import checkout_link, payment_link_for
from redis_manager import notify_tenant
from models.account_models import RegisterRequest, RegisterResponse, LoginRequest, LoginResponse
from models.user_profile_models import ProfileResponse, TenantResponse, SessionResponse

router = APIRouter()

CRM_URL = os.getenv("CRM_URL", "http://localhost:3001")


def _find_tenant_by_invite(db: Session, invite_code: str) -> TenantDB:
    code = (invite_code or "").strip()
    if not code:
        raise HTTPException(status_code=400, detail="Informe o código de convite")
    tenant = db.query(TenantDB).filter(TenantDB.invite_code == code).first()
    if not tenant:
        logfire.info("Unknown invite code", invite_code=code)
        raise HTTPException(status_code=404, detail="Código de convite inválido")
    return tenant


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Create a company account or join an existing company.

    Every check that can reject the request (invite code, seat cap, plan and
    its checkout link) runs before the Firebase account exists.
    """
    with logfire.span("register", mode=request.mode, email=request.email):
        tenant = None
        plan = None
        company_name = None
        slug = None

        if request.mode == "join":
            tenant = _find_tenant_by_invite(db, request.invite_code)
            check_seat_available(db, tenant)
        else:
            company_name = (request.company_name or "").strip()
            if not company_name:
                raise HTTPException(status_code=400, detail="Informe o nome da empresa")
            slug = slugify(company_name)
            if not slug:
                raise HTTPException(status_code=400, detail="Nome da empresa inválido")
            if request.plan_id:
                plan = (
                    db.query(SubscriptionPlanDB)
                    .filter(SubscriptionPlanDB.id == request.plan_id, SubscriptionPlanDB.is_active.is_(True))
                    .first()
                )
                if not plan:
                    raise HTTPException(status_code=404, detail="Plano não encontrado")
                payment_link_for(plan, request.billing_cycle)

        try:
            uid = auth.create_account(request.email, request.password, request.name)
        except auth.AccountExistsError:
            raise HTTPException(status_code=409, detail="Este e-mail já está cadastrado")

        try:
            if tenant is None:
                tenant = TenantDB(
                    name=company_name,
                    slug=slug,
                    invite_code=new_unique_invite_code(db, slug),
                    owner_id=uid,
                )
                db.add(tenant)
                db.flush()
                role = "admin"
            else:
                role = "employee"

            profile = ProfileDB(
                id=uid,
                email=request.email,
                full_name=request.name,
                role=role,
                tenant_id=tenant.id,
            )
            db.add(profile)
            db.commit()
            db.refresh(profile)
            db.refresh(tenant)
        except Exception as e:
            db.rollback()
            logfire.error("Registration failed after account creation", uid=uid, error=str(e))
            try:
                auth.delete_account(uid)
            except Exception as cleanup_error:
                logfire.error("Could not delete orphaned account", uid=uid, error=str(cleanup_error))
            raise

        logfire.info("User registered", uid=uid, tenant_id=tenant.id, role=role)

        if request.mode == "join":
            await notify_tenant(tenant.id, "team.joined", {"user_id": uid, "full_name": request.name})
            redirect_url = CRM_URL
        elif plan is not None:
            redirect_url = checkout_link(plan, request.billing_cycle, request.email)
        else:
            redirect_url = CRM_URL

        return RegisterResponse(
            profile=ProfileResponse.model_validate(profile),
            tenant=TenantResponse.model_validate(tenant),
            entitlement=resolve_tenant_entitlement(db, tenant),
            redirect_url=redirect_url,
        )


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    try:
        data = await auth.sign_in_with_password(request.email, request.password)
    except auth.InvalidCredentialsError:
        raise HTTPException(status_code=401, detail="E-mail ou senha inválidos")

    uid = data["localId"]
    profile = db.query(ProfileDB).filter(ProfileDB.id == uid).first()
    logfire.info("User signed in", uid=uid)
    return LoginResponse(
        uid=uid,
        id_token=data["idToken"],
        refresh_token=data["refreshToken"],
        expires_in=int(data.get("expiresIn", 3600)),
        role=profile.role if profile else "tutor",
    )


@router.get("/session", response_model=SessionResponse)
async def get_session(user: dict = Depends(get_current_user), db: Session = Depends(get_db)):
    """Current user, profile, company and plan in one payload"""
    profile = ensure_profile(db, user)
    tenant = None
    if profile.tenant_id:
        tenant = db.query(TenantDB).filter(TenantDB.id == profile.tenant_id).first()

    return SessionResponse(
        uid=user["uid"],
        email=user.get("email"),
        profile=ProfileResponse.model_validate(profile),
        tenant=TenantResponse.model_validate(tenant) if tenant else None,
        entitlement=resolve_entitlement(db, user["uid"]),
    )


@router.post("/logout")
async def logout(user: dict = Depends(get_current_user)):
    auth.revoke_sessions(user["uid"])
    logfire.info("Sessions revoked", uid=user["uid"])
    return {"status": "ok"}
