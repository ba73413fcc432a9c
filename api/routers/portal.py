"""
Tutor Portal API - pet owners pick a pet shop, register pets and book appointments
"""
from datetime import date, datetime, timedelta
from typing import List, Optional

import logfire
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session

from auth import get_current_profile
from database import get_db, AppointmentDB, ClientDB, PetDB, ProfileDB, ServiceDB, TenantDB
from entitlements import check_pet_limit
from redis_manager import notify_tenant
from routers.crm import ensure_slot_free
from routers.insights import run_tutor_assistant
from routers.tenants import get_tenant_or_404
from models.crm_models import AppointmentOut, PetOut, ServiceOut
from models.portal_models import (
    AssistantRequest,
    AssistantResponse,
    AvailabilityResponse,
    BookAppointmentRequest,
    BookingDay,
    PetShop,
    PortalClient,
    PortalPetIn,
    TimeSlot,
)

router = APIRouter()

BOOKING_WINDOW_DAYS = 14
SLOT_MINUTES = 30
FIRST_SLOT_HOUR = 8
LAST_SLOT_HOUR = 18
SUNDAY = 6


def slot_times() -> List[str]:
    """08:00, 08:30 ... 18:30"""
    return [
        f"{hour:02d}:{minute:02d}"
        for hour in range(FIRST_SLOT_HOUR, LAST_SLOT_HOUR + 1)
        for minute in range(0, 60, SLOT_MINUTES)
    ]


def now() -> datetime:
    return datetime.now()


def slot_has_passed(day: date, start_time: str) -> bool:
    current = now()
    return day < current.date() or (day == current.date() and start_time <= current.strftime("%H:%M"))


def booking_days(today: Optional[date] = None) -> List[date]:
    """The next two weeks starting today, without Sundays"""
    today = today or now().date()
    days = (today + timedelta(days=offset) for offset in range(BOOKING_WINDOW_DAYS))
    return [day for day in days if day.weekday() != SUNDAY]


def available_slots(db: Session, tenant_id: str, day: date) -> List[TimeSlot]:
    booked = {
        row.start_time
        for row in db.query(AppointmentDB.start_time).filter(
            AppointmentDB.tenant_id == tenant_id,
            AppointmentDB.date == day,
            AppointmentDB.status != "cancelled",
        )
    }
    return [
        TimeSlot(time=t, available=t not in booked and not slot_has_passed(day, t))
        for t in slot_times()
    ]


def get_or_create_client(db: Session, profile: ProfileDB, tenant: TenantDB) -> ClientDB:
    client = (
        db.query(ClientDB)
        .filter(ClientDB.tenant_id == tenant.id, ClientDB.user_id == profile.id)
        .first()
    )
    if client:
        return client

    client = ClientDB(
        tenant_id=tenant.id,
        user_id=profile.id,
        name=profile.full_name or profile.email or "Tutor",
        email=profile.email,
        phone=profile.phone,
        avatar_url=profile.avatar_url,
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    logfire.info("Portal client created", tenant_id=tenant.id, user_id=profile.id)
    return client


def _own_client_ids(db: Session, profile: ProfileDB) -> List[str]:
    return [row.id for row in db.query(ClientDB.id).filter(ClientDB.user_id == profile.id)]


def _own_appointment(db: Session, profile: ProfileDB, appointment_id: str) -> AppointmentDB:
    appointment = (
        db.query(AppointmentDB)
        .filter(AppointmentDB.id == appointment_id, AppointmentDB.client_id.in_(_own_client_ids(db, profile)))
        .first()
    )
    if not appointment:
        raise HTTPException(status_code=404, detail="Agendamento não encontrado")
    return appointment


# --- Pet shops ---

@router.get("/petshops", response_model=List[PetShop])
async def list_petshops(profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    return db.query(TenantDB).order_by(TenantDB.name.asc()).all()


@router.post("/petshops/{tenant_id}/select", response_model=PortalClient)
async def select_petshop(tenant_id: str, profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    """Become a client of a pet shop. Calling it again returns the same record."""
    tenant = get_tenant_or_404(db, tenant_id)
    return get_or_create_client(db, profile, tenant)


@router.get("/petshops/{tenant_id}/services", response_model=List[ServiceOut])
async def list_petshop_services(tenant_id: str, profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    get_tenant_or_404(db, tenant_id)
    return (
        db.query(ServiceDB)
        .filter(ServiceDB.tenant_id == tenant_id, ServiceDB.is_active.is_(True))
        .order_by(ServiceDB.name.asc())
        .all()
    )


@router.get("/booking-days", response_model=List[BookingDay])
async def get_booking_days(profile: ProfileDB = Depends(get_current_profile)):
    return [BookingDay(date=day, weekday=day.weekday()) for day in booking_days()]


@router.get("/petshops/{tenant_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    tenant_id: str,
    day: date = Query(..., alias="date"),
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    get_tenant_or_404(db, tenant_id)
    return AvailabilityResponse(date=day, slots=available_slots(db, tenant_id, day))


# --- Pets ---

@router.get("/pets", response_model=List[PetOut])
async def list_my_pets(profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    pets = (
        db.query(PetDB)
        .filter(PetDB.client_id.in_(_own_client_ids(db, profile)))
        .order_by(PetDB.name.asc())
        .all()
    )
    result = []
    for pet in pets:
        out = PetOut.model_validate(pet)
        out.owner_name = profile.full_name
        result.append(out)
    return result


@router.post("/pets", response_model=PetOut, status_code=201)
async def create_my_pet(request: PortalPetIn, profile: ProfileDB = Depends(get_current_profile), db: Session = Depends(get_db)):
    tenant = get_tenant_or_404(db, request.tenant_id)
    client = get_or_create_client(db, profile, tenant)
    check_pet_limit(db, tenant)

    pet = PetDB(client_id=client.id, **request.model_dump())
    db.add(pet)
    db.commit()
    db.refresh(pet)
    logfire.info("Pet registered by tutor", tenant_id=tenant.id, pet_id=pet.id)

    out = PetOut.model_validate(pet)
    out.owner_name = client.name
    return out


# --- Appointments ---

@router.post("/appointments", response_model=AppointmentOut, status_code=201)
async def book_appointment(
    request: BookAppointmentRequest,
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    get_tenant_or_404(db, request.tenant_id)
    pet = (
        db.query(PetDB)
        .filter(
            PetDB.id == request.pet_id,
            PetDB.tenant_id == request.tenant_id,
            PetDB.client_id.in_(_own_client_ids(db, profile)),
        )
        .first()
    )
    if not pet:
        raise HTTPException(status_code=404, detail="Pet não encontrado")

    if request.date not in booking_days():
        raise HTTPException(status_code=400, detail="Data indisponível para agendamento")
    if request.start_time not in slot_times():
        raise HTTPException(status_code=400, detail="Horário indisponível para agendamento")
    if slot_has_passed(request.date, request.start_time):
        raise HTTPException(status_code=400, detail="Este horário já passou")

    service_name = request.service
    duration = SLOT_MINUTES * 2
    if request.service_id:
        service = (
            db.query(ServiceDB)
            .filter(
                ServiceDB.id == request.service_id,
                ServiceDB.tenant_id == request.tenant_id,
                ServiceDB.is_active.is_(True),
            )
            .first()
        )
        if not service:
            raise HTTPException(status_code=404, detail="Serviço não encontrado")
        service_name = service.name
        duration = service.duration_minutes or duration
    if not service_name:
        raise HTTPException(status_code=400, detail="Informe o serviço do agendamento")

    ensure_slot_free(db, request.tenant_id, request.date, request.start_time)

    appointment = AppointmentDB(
        tenant_id=request.tenant_id,
        client_id=pet.client_id,
        pet_id=pet.id,
        service_id=request.service_id,
        service=service_name,
        date=request.date,
        start_time=request.start_time,
        duration=duration,
        status="pending",
        notes=request.notes,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)

    logfire.info("Appointment booked from portal", tenant_id=request.tenant_id, appointment_id=appointment.id)
    await notify_tenant(request.tenant_id, "appointment.created", {
        "appointment_id": appointment.id,
        "date": appointment.date.isoformat(),
        "start_time": appointment.start_time,
        "service": appointment.service,
        "source": "portal",
    })
    return appointment


@router.get("/appointments", response_model=List[AppointmentOut])
async def list_my_appointments(
    limit: int = Query(20, ge=1, le=100),
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    """Upcoming appointments of the caller's pets, soonest first"""
    return (
        db.query(AppointmentDB)
        .filter(
            AppointmentDB.client_id.in_(_own_client_ids(db, profile)),
            AppointmentDB.date >= now().date(),
        )
        .order_by(AppointmentDB.date.asc(), AppointmentDB.start_time.asc())
        .limit(limit)
        .all()
    )


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentOut)
async def cancel_my_appointment(
    appointment_id: str,
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    appointment = _own_appointment(db, profile, appointment_id)
    if appointment.status in ("completed", "finished"):
        raise HTTPException(status_code=409, detail="Este atendimento já foi concluído")
    if appointment.status != "cancelled":
        previous = appointment.status
        appointment.status = "cancelled"
        db.commit()
        db.refresh(appointment)
        await notify_tenant(appointment.tenant_id, "appointment.status", {
            "appointment_id": appointment.id,
            "previous": previous,
            "status": "cancelled",
        })
    return appointment


# --- Assistant ---

@router.post("/assistant", response_model=AssistantResponse)
async def pet_care_assistant(
    request: AssistantRequest,
    profile: ProfileDB = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    text = await run_tutor_assistant(db, profile, request.message, request.history)
    return AssistantResponse(text=text)
