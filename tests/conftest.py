"""Shared pytest fixtures for the test suite.

Fixture overview
----------------
db            : SQLAlchemy session on a fresh in-memory SQLite database
current_user  : decoded-token dict the app sees as the signed-in user;
                mutate it inside a test to switch users
client        : TestClient with get_db / get_current_user overridden
firebase      : fake Firebase account/storage calls, patched into `auth`
make          : small factory for tenants, members, plans, subscriptions,
                clients and pets
shop          : "Pet Feliz" tenant with the current user as its admin
"""

from __future__ import annotations

import os

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("CRM_URL", "https://crm.example.com")
os.environ.setdefault("PUBLIC_SITE_URL", "https://flowpet.example.com")

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import auth
from database import (
    Base,
    ClientDB,
    PetDB,
    ProfileDB,
    SubscriptionDB,
    SubscriptionPlanDB,
    TenantDB,
    get_db,
)
from main import app

# ── Database ─────────────────────────────────────────────────────────────────


@pytest.fixture
def db() -> Session:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


# ── App ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def current_user() -> Dict[str, Any]:
    return {"uid": "user-ana", "email": "ana@petfeliz.com", "name": "Ana Souza"}


@pytest.fixture
def client(db: Session, current_user: Dict[str, Any]) -> TestClient:
    """TestClient without lifespan, so no Redis connection is attempted."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[auth.get_current_user] = lambda: current_user
    yield TestClient(app)
    app.dependency_overrides.clear()


# ── External services ────────────────────────────────────────────────────────


class FakeFirebase:
    """Records account and storage calls instead of reaching Firebase."""

    def __init__(self) -> None:
        self.created: List[Dict[str, str]] = []
        self.deleted: List[str] = []
        self.revoked: List[str] = []
        self.uploads: List[str] = []
        self.existing_emails: set = set()
        self.passwords: Dict[str, str] = {}

    def create_account(self, email: str, password: str, display_name: str) -> str:
        if email in self.existing_emails:
            raise auth.AccountExistsError(email)
        uid = f"uid-{len(self.created) + 1}"
        self.created.append({"uid": uid, "email": email, "name": display_name})
        self.existing_emails.add(email)
        self.passwords[email] = password
        return uid

    def delete_account(self, uid: str) -> None:
        self.deleted.append(uid)

    def revoke_sessions(self, uid: str) -> None:
        self.revoked.append(uid)

    async def sign_in_with_password(self, email: str, password: str) -> dict:
        if self.passwords.get(email) != password:
            raise auth.InvalidCredentialsError("INVALID_LOGIN_CREDENTIALS")
        uid = next(a["uid"] for a in self.created if a["email"] == email)
        return {"localId": uid, "idToken": "id-token", "refreshToken": "refresh-token", "expiresIn": "3600"}

    def upload_public_file(self, path: str, data: bytes, content_type: str) -> str:
        self.uploads.append(path)
        return f"https://storage.example.com/{path}"


@pytest.fixture
def firebase(monkeypatch: pytest.MonkeyPatch) -> FakeFirebase:
    fake = FakeFirebase()
    monkeypatch.setattr(auth, "create_account", fake.create_account)
    monkeypatch.setattr(auth, "delete_account", fake.delete_account)
    monkeypatch.setattr(auth, "revoke_sessions", fake.revoke_sessions)
    monkeypatch.setattr(auth, "sign_in_with_password", fake.sign_in_with_password)
    monkeypatch.setattr(auth, "upload_public_file", fake.upload_public_file)
    return fake


# ── Factories ────────────────────────────────────────────────────────────────


class Factory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def tenant(self, name: str = "Pet Feliz", invite_code: Optional[str] = None) -> TenantDB:
        slug = name.lower().replace(" ", "-")
        return self._save(TenantDB(name=name, slug=slug, invite_code=invite_code or f"{slug}-123456"))

    def member(self, tenant: Optional[TenantDB], uid: str, role: str = "employee", full_name: Optional[str] = None) -> ProfileDB:
        return self._save(ProfileDB(
            id=uid,
            email=f"{uid}@example.com",
            full_name=full_name or uid,
            role=role,
            tenant_id=tenant.id if tenant else None,
        ))

    def plan(self, name: str = "Pro", monthly_price: float = 100.0, is_pro: bool = True, max_users: int = 5, **kwargs) -> SubscriptionPlanDB:
        kwargs.setdefault("monthly_payment_link", "https://buy.stripe.com/monthly")
        return self._save(SubscriptionPlanDB(name=name, monthly_price=monthly_price, is_pro=is_pro, max_users=max_users, **kwargs))

    def subscription(
        self,
        tenant: TenantDB,
        plan: Optional[SubscriptionPlanDB] = None,
        plan_name: Optional[str] = None,
        status: str = "active",
        next_billing: Optional[datetime] = None,
        **kwargs,
    ) -> SubscriptionDB:
        return self._save(SubscriptionDB(
            tenant_id=tenant.id,
            plan_id=plan.id if plan else None,
            plan_name=plan_name or (plan.name if plan else None),
            status=status,
            next_billing=next_billing,
            **kwargs,
        ))

    def client(self, tenant: TenantDB, name: str = "Carlos Lima", **kwargs) -> ClientDB:
        return self._save(ClientDB(tenant_id=tenant.id, name=name, **kwargs))

    def pet(self, tenant: TenantDB, client: ClientDB, name: str = "Thor", **kwargs) -> PetDB:
        return self._save(PetDB(tenant_id=tenant.id, client_id=client.id, name=name, **kwargs))

    def pro(self, tenant: TenantDB, max_users: int = 5) -> SubscriptionDB:
        plan = self.plan(name=f"Pro {tenant.name}", max_users=max_users)
        return self.subscription(tenant, plan)


@pytest.fixture
def make(db: Session) -> Factory:
    return Factory(db)


@pytest.fixture
def shop(make: Factory, current_user: Dict[str, Any]) -> TenantDB:
    """Tenant whose admin is the signed-in user."""
    tenant = make.tenant("Pet Feliz")
    make.member(tenant, current_user["uid"], role="admin", full_name=current_user["name"])
    return tenant
