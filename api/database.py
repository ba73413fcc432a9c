import os
from sqlalchemy import create_engine, Column, String, Boolean, DateTime, Date, Text, Integer, Float, JSON
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.mutable import MutableList
from datetime import datetime
from typing import Generator
import uuid

# Database URL from environment
DATABASE_URL = os.getenv("DATABASE_URL")

# Fix postgres:// to postgresql:// for SQLAlchemy compatibility
if DATABASE_URL and DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

if not DATABASE_URL:
    print("WARNING: DATABASE_URL not set. Database operations will fail.")
    DATABASE_URL = "postgresql://localhost/flowpet"

engine = create_engine(DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONList = MutableList.as_mutable(JSON().with_variant(JSONB(), "postgresql"))


def new_id() -> str:
    return str(uuid.uuid4())


# --- Database Models ---

class TenantDB(Base):
    __tablename__ = "tenants"

    id = Column(String, primary_key=True, index=True, default=new_id)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, index=True)
    invite_code = Column(String, unique=True, nullable=True, index=True)
    logo_url = Column(String, nullable=True)
    owner_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProfileDB(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True)  # Firebase uid
    email = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(String, nullable=False, default="tutor")  # super_admin | admin | employee | tutor
    tenant_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SubscriptionPlanDB(Base):
    __tablename__ = "subscription_plans"

    id = Column(String, primary_key=True, index=True, default=new_id)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    monthly_price = Column(Float, nullable=False)
    is_pro = Column(Boolean, default=False)
    max_users = Column(Integer, default=1)
    features = Column(JSONList, default=list)
    highlight = Column(Boolean, default=False)
    cta = Column(String, nullable=True)
    monthly_payment_link = Column(String, nullable=True)
    yearly_payment_link = Column(String, nullable=True)
    stripe_product_id = Column(String, nullable=True)
    stripe_monthly_price_id = Column(String, nullable=True)
    stripe_yearly_price_id = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class SubscriptionDB(Base):
    """Tenant subscription. Rows with client_name are plans a shop sells to its own clients."""
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True, index=True, default=new_id)
    tenant_id = Column(String, nullable=False, index=True)
    plan_id = Column(String, nullable=True)
    plan_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    billing_cycle = Column(String, nullable=False, default="monthly")
    next_billing = Column(DateTime, nullable=True)
    client_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ClientDB(Base):
    __tablename__ = "clients"

    id = Column(String, primary_key=True, index=True, default=new_id)
    tenant_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)  # portal account, if any
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class PetDB(Base):
    __tablename__ = "pets"

    id = Column(String, primary_key=True, index=True, default=new_id)
    tenant_id = Column(String, nullable=False, index=True)
    client_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    species = Column(String, nullable=True)
    breed = Column(String, nullable=True)
    weight = Column(Float, nullable=True)
    birth_date = Column(Date, nullable=True)
    photo_url = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ServiceDB(Base):
    __tablename__ = "services"

    id = Column(String, primary_key=True, index=True, default=new_id)
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=True)
    duration_minutes = Column(Integer, default=60)
    price = Column(Float, default=0.0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AppointmentDB(Base):
    __tablename__ = "appointments"

    id = Column(String, primary_key=True, index=True, default=new_id)
    tenant_id = Column(String, nullable=False, index=True)
    client_id = Column(String, nullable=True, index=True)
    pet_id = Column(String, nullable=True, index=True)
    service_id = Column(String, nullable=True)
    service = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String, nullable=False)  # HH:MM
    duration = Column(Integer, default=60)
    status = Column(String, nullable=False, default="pending")
    professional = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    checklist_state = Column(JSONList, default=list)
    current_step = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class FinancialTransactionDB(Base):
    __tablename__ = "financial_transactions"

    id = Column(String, primary_key=True, index=True, default=new_id)
    tenant_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)  # income | expense
    amount = Column(Float, nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, nullable=True)
    client_name = Column(String, nullable=True)
    pet_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")  # pending | paid | late
    date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CourseDB(Base):
    __tablename__ = "courses"

    id = Column(String, primary_key=True, index=True, default=new_id)
    title = Column(String, nullable=False)
    instructor = Column(String, nullable=True)
    duration = Column(String, nullable=True)
    lessons = Column(Integer, default=0)
    category = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    video_url = Column(String, nullable=True)
    pro_only = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class TutorialDB(Base):
    __tablename__ = "tutorials"

    id = Column(String, primary_key=True, index=True, default=new_id)
    step = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String, nullable=True)
    video_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class SuggestionDB(Base):
    __tablename__ = "user_suggestions"

    id = Column(String, primary_key=True, index=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    user_name = Column(String, nullable=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="pending")
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# --- Sessions ---

def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get a database session.
    Use this in FastAPI endpoints with Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
