"""Request/response models for the operations dashboard."""
import datetime as dt
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

AppointmentStatus = Literal["pending", "confirmed", "in-progress", "ready", "completed", "finished", "cancelled"]


def _check_hhmm(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        dt.datetime.strptime(value, "%H:%M")
    except ValueError:
        raise ValueError("start_time must be HH:MM")
    return value


# --- Clients ---

class ClientIn(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    notes: Optional[str] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    notes: Optional[str] = None


class ClientOut(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    notes: Optional[str] = None
    pet_count: int = 0

    class Config:
        from_attributes = True


# --- Pets ---

class PetIn(BaseModel):
    client_id: str
    name: str = Field(min_length=1)
    species: Optional[str] = None
    breed: Optional[str] = None
    weight: Optional[float] = Field(None, ge=0)
    birth_date: Optional[dt.date] = None
    photo_url: Optional[str] = None
    notes: Optional[str] = None


class PetUpdate(BaseModel):
    name: Optional[str] = None
    species: Optional[str] = None
    breed: Optional[str] = None
    weight: Optional[float] = Field(None, ge=0)
    birth_date: Optional[dt.date] = None
    photo_url: Optional[str] = None
    notes: Optional[str] = None


class PetOut(BaseModel):
    id: str
    tenant_id: str
    client_id: str
    owner_name: Optional[str] = None
    name: str
    species: Optional[str] = None
    breed: Optional[str] = None
    weight: Optional[float] = None
    birth_date: Optional[dt.date] = None
    photo_url: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


# --- Services ---

class ServiceIn(BaseModel):
    name: str = Field(min_length=1)
    category: Optional[str] = None
    duration_minutes: int = Field(60, gt=0)
    price: float = Field(0.0, ge=0)


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    price: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ServiceOut(BaseModel):
    id: str
    name: str
    category: Optional[str] = None
    duration_minutes: int
    price: float
    is_active: bool

    class Config:
        from_attributes = True


# --- Appointments ---

class AppointmentIn(BaseModel):
    client_id: Optional[str] = None
    pet_id: Optional[str] = None
    service_id: Optional[str] = None
    service: Optional[str] = None
    date: dt.date
    start_time: str
    duration: Optional[int] = Field(None, gt=0)
    status: AppointmentStatus = "confirmed"
    professional: Optional[str] = None
    notes: Optional[str] = None

    check_start_time = field_validator("start_time")(_check_hhmm)


class AppointmentUpdate(BaseModel):
    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    duration: Optional[int] = Field(None, gt=0)
    professional: Optional[str] = None
    notes: Optional[str] = None

    check_start_time = field_validator("start_time")(_check_hhmm)


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class ChecklistUpdate(BaseModel):
    checklist_state: List[str]
    current_step: int = Field(0, ge=0)


class AppointmentOut(BaseModel):
    id: str
    tenant_id: str
    client_id: Optional[str] = None
    pet_id: Optional[str] = None
    service_id: Optional[str] = None
    service: str
    date: dt.date
    start_time: str
    duration: int
    status: str
    professional: Optional[str] = None
    notes: Optional[str] = None
    checklist_state: List[str] = []
    current_step: int = 0

    class Config:
        from_attributes = True


# --- Finance ---

class TransactionIn(BaseModel):
    type: Literal["income", "expense"]
    amount: float = Field(gt=0)
    description: Optional[str] = None
    category: Optional[str] = None
    client_name: Optional[str] = None
    pet_name: Optional[str] = None
    status: Literal["pending", "paid", "late"] = "pending"
    date: Optional[dt.date] = None


class TransactionUpdate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None
    category: Optional[str] = None
    client_name: Optional[str] = None
    pet_name: Optional[str] = None
    date: Optional[dt.date] = None


class TransactionOut(BaseModel):
    id: str
    type: str
    amount: float
    description: Optional[str] = None
    category: Optional[str] = None
    client_name: Optional[str] = None
    pet_name: Optional[str] = None
    status: str
    date: Optional[dt.date] = None
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class FinanceSummary(BaseModel):
    total_income: float
    total_expenses: float
    balance: float
    pending_income: float
    late_income: float
    paid_income: float
    late_count: int


class DashboardOverview(BaseModel):
    date: dt.date
    appointments_today: int
    appointments_by_status: Dict[str, int]
    clients: int
    pets: int
    month_income: float
