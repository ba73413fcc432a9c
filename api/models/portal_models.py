import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from models.crm_models import _check_hhmm
from models.insights_models import CopilotMessage


class PetShop(BaseModel):
    id: str
    name: str
    slug: str
    logo_url: Optional[str] = None

    class Config:
        from_attributes = True


class PortalClient(BaseModel):
    id: str
    tenant_id: str
    name: str

    class Config:
        from_attributes = True


class PortalPetIn(BaseModel):
    tenant_id: str
    name: str = Field(min_length=1)
    species: Optional[str] = None
    breed: Optional[str] = None
    weight: Optional[float] = Field(None, ge=0)
    birth_date: Optional[dt.date] = None
    photo_url: Optional[str] = None


class BookingDay(BaseModel):
    date: dt.date
    weekday: int  # Monday == 0


class TimeSlot(BaseModel):
    time: str
    available: bool


class AvailabilityResponse(BaseModel):
    date: dt.date
    slots: List[TimeSlot]


class BookAppointmentRequest(BaseModel):
    tenant_id: str
    pet_id: str
    service_id: Optional[str] = None
    service: Optional[str] = None
    date: dt.date
    start_time: str
    notes: Optional[str] = None

    check_start_time = field_validator("start_time")(_check_hhmm)


class AssistantRequest(BaseModel):
    message: str = Field(min_length=1)
    history: List[CopilotMessage] = []


class AssistantResponse(BaseModel):
    text: str
