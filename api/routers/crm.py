"""
CRM API - clients, pets, services, appointments and finance of the caller's company.

Every query is filtered by the caller's tenant_id; rows that belong to
another company are reported as not found.
"""
from datetime import date
from typing import Dict, List, Optional

import logfire
from fastapi import APIRouter, HTTPException, Depends, File, Query, UploadFile
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from auth import require_tenant_member
from database import (
    get_db,
    AppointmentDB,
    ClientDB,
    FinancialTransactionDB,
    PetDB,
    ProfileDB,
    ServiceDB,
)
from entitlements import check_pet_limit
from redis_manager import notify_tenant
from routers.profile import store_image
from routers.tenants import get_tenant_or_404
from models.crm_models import (
    AppointmentIn,
    AppointmentOut,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    ChecklistUpdate,
    ClientIn,
    ClientOut,
    ClientUpdate,
    DashboardOverview,
    FinanceSummary,
    PetIn,
    PetOut,
    PetUpdate,
    ServiceIn,
    ServiceOut,
    ServiceUpdate,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)

router = APIRouter()

# Invoice status cycle used by the finance screen
NEXT_TRANSACTION_STATUS = {"pending": "paid", "paid": "late", "late": "pending"}


def get_owned(db: Session, model, row_id: str, tenant_id: str, label: str):
    """Fetch a tenant-scoped row or raise 404"""
    row = db.query(model).filter(model.id == row_id, model.tenant_id == tenant_id).first()
    if not row:
        raise HTTPException(status_code=404, detail=f"{label} não encontrado")
    return row


def apply_updates(row, request) -> None:
    """Copy the fields sent by the client; required columns cannot be cleared"""
    updates = request.model_dump(exclude_unset=True)
    for field, value in updates.items():
        column = row.__table__.columns[field]
        if value is None and (not column.nullable or column.default is not None):
            raise HTTPException(status_code=400, detail=f"Campo '{field}' não pode ser vazio")
    for field, value in updates.items():
        setattr(row, field, value)


def ensure_slot_free(
    db: Session,
    tenant_id: str,
    day: date,
    start_time: str,
    exclude_id: Optional[str] = None,
) -> None:
    query = db.query(AppointmentDB).filter(
        AppointmentDB.tenant_id == tenant_id,
        AppointmentDB.date == day,
        AppointmentDB.start_time == start_time,
        AppointmentDB.status != "cancelled",
    )
    if exclude_id:
        query = query.filter(AppointmentDB.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail=f"Horário {start_time} de {day.strftime('%d/%m/%Y')} já está reservado")


def _pet_out(pet: PetDB, owner_name: Optional[str]) -> PetOut:
    out = PetOut.model_validate(pet)
    out.owner_name = owner_name
    return out


# --- Clients ---

@router.get("/clients", response_model=List[ClientOut])
async def list_clients(
    q: Optional[str] = None,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    query = db.query(ClientDB).filter(ClientDB.tenant_id == profile.tenant_id)
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(ClientDB.name.ilike(pattern), ClientDB.phone.ilike(pattern)))
    clients = query.order_by(ClientDB.name.asc()).all()

    counts = dict(
        db.query(PetDB.client_id, func.count(PetDB.id))
        .filter(PetDB.tenant_id == profile.tenant_id)
        .group_by(PetDB.client_id)
        .all()
    )
    result = []
    for client in clients:
        out = ClientOut.model_validate(client)
        out.pet_count = counts.get(client.id, 0)
        result.append(out)
    return result


@router.post("/clients", response_model=ClientOut, status_code=201)
async def create_client(request: ClientIn, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    client = ClientDB(tenant_id=profile.tenant_id, **request.model_dump())
    db.add(client)
    db.commit()
    db.refresh(client)
    logfire.info("Client created", tenant_id=profile.tenant_id, client_id=client.id)
    return client


@router.get("/clients/{client_id}", response_model=ClientOut)
async def get_client(client_id: str, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    client = get_owned(db, ClientDB, client_id, profile.tenant_id, "Cliente")
    out = ClientOut.model_validate(client)
    out.pet_count = db.query(PetDB).filter(PetDB.client_id == client.id).count()
    return out


@router.put("/clients/{client_id}", response_model=ClientOut)
async def update_client(
    client_id: str,
    request: ClientUpdate,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    client = get_owned(db, ClientDB, client_id, profile.tenant_id, "Cliente")
    apply_updates(client, request)
    db.commit()
    db.refresh(client)
    return client


@router.delete("/clients/{client_id}")
async def delete_client(client_id: str, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    """Delete a client together with their pets"""
    client = get_owned(db, ClientDB, client_id, profile.tenant_id, "Cliente")
    removed_pets = db.query(PetDB).filter(PetDB.client_id == client.id).delete(synchronize_session=False)
    db.delete(client)
    db.commit()
    logfire.info("Client deleted", tenant_id=profile.tenant_id, client_id=client_id, removed_pets=removed_pets)
    return {"status": "deleted", "id": client_id}


# --- Pets ---

@router.get("/pets", response_model=List[PetOut])
async def list_pets(
    q: Optional[str] = None,
    client_id: Optional[str] = None,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    """List pets; `q` matches the pet's or the owner's name"""
    query = (
        db.query(PetDB, ClientDB.name)
        .outerjoin(ClientDB, ClientDB.id == PetDB.client_id)
        .filter(PetDB.tenant_id == profile.tenant_id)
    )
    if client_id:
        query = query.filter(PetDB.client_id == client_id)
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(PetDB.name.ilike(pattern), ClientDB.name.ilike(pattern)))
    return [_pet_out(pet, owner) for pet, owner in query.order_by(PetDB.name.asc()).all()]


@router.post("/pets", response_model=PetOut, status_code=201)
async def create_pet(request: PetIn, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    client = get_owned(db, ClientDB, request.client_id, profile.tenant_id, "Cliente")
    check_pet_limit(db, get_tenant_or_404(db, profile.tenant_id))

    pet = PetDB(tenant_id=profile.tenant_id, **request.model_dump())
    db.add(pet)
    db.commit()
    db.refresh(pet)
    logfire.info("Pet created", tenant_id=profile.tenant_id, pet_id=pet.id)
    return _pet_out(pet, client.name)


@router.get("/pets/{pet_id}", response_model=PetOut)
async def get_pet(pet_id: str, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    pet = get_owned(db, PetDB, pet_id, profile.tenant_id, "Pet")
    client = db.query(ClientDB).filter(ClientDB.id == pet.client_id).first()
    return _pet_out(pet, client.name if client else None)


@router.put("/pets/{pet_id}", response_model=PetOut)
async def update_pet(
    pet_id: str,
    request: PetUpdate,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    pet = get_owned(db, PetDB, pet_id, profile.tenant_id, "Pet")
    apply_updates(pet, request)
    db.commit()
    db.refresh(pet)
    client = db.query(ClientDB).filter(ClientDB.id == pet.client_id).first()
    return _pet_out(pet, client.name if client else None)


@router.delete("/pets/{pet_id}")
async def delete_pet(pet_id: str, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    pet = get_owned(db, PetDB, pet_id, profile.tenant_id, "Pet")
    db.delete(pet)
    db.commit()
    return {"status": "deleted", "id": pet_id}


@router.post("/pets/{pet_id}/photo", response_model=PetOut)
async def upload_pet_photo(
    pet_id: str,
    file: UploadFile = File(...),
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    pet = get_owned(db, PetDB, pet_id, profile.tenant_id, "Pet")
    pet.photo_url = await store_image(f"tenants/{profile.tenant_id}/pets/{pet.id}", file)
    db.commit()
    db.refresh(pet)
    client = db.query(ClientDB).filter(ClientDB.id == pet.client_id).first()
    return _pet_out(pet, client.name if client else None)


# --- Services ---

@router.get("/services", response_model=List[ServiceOut])
async def list_services(
    include_inactive: bool = False,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    query = db.query(ServiceDB).filter(ServiceDB.tenant_id == profile.tenant_id)
    if not include_inactive:
        query = query.filter(ServiceDB.is_active.is_(True))
    return query.order_by(ServiceDB.name.asc()).all()


@router.post("/services", response_model=ServiceOut, status_code=201)
async def create_service(request: ServiceIn, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    service = ServiceDB(tenant_id=profile.tenant_id, **request.model_dump())
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@router.put("/services/{service_id}", response_model=ServiceOut)
async def update_service(
    service_id: str,
    request: ServiceUpdate,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    service = get_owned(db, ServiceDB, service_id, profile.tenant_id, "Serviço")
    apply_updates(service, request)
    db.commit()
    db.refresh(service)
    return service


@router.delete("/services/{service_id}", response_model=ServiceOut)
async def deactivate_service(service_id: str, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    """Services are deactivated, not deleted, so past appointments keep their reference"""
    service = get_owned(db, ServiceDB, service_id, profile.tenant_id, "Serviço")
    service.is_active = False
    db.commit()
    db.refresh(service)
    return service


# --- Appointments ---

@router.get("/appointments", response_model=List[AppointmentOut])
async def list_appointments(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    query = db.query(AppointmentDB).filter(AppointmentDB.tenant_id == profile.tenant_id)
    if date_from:
        query = query.filter(AppointmentDB.date >= date_from)
    if date_to:
        query = query.filter(AppointmentDB.date <= date_to)
    if status:
        query = query.filter(AppointmentDB.status == status)
    return query.order_by(AppointmentDB.date.asc(), AppointmentDB.start_time.asc()).all()


@router.post("/appointments", response_model=AppointmentOut, status_code=201)
async def create_appointment(
    request: AppointmentIn,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    tenant_id = profile.tenant_id
    data = request.model_dump()

    if request.pet_id:
        pet = get_owned(db, PetDB, request.pet_id, tenant_id, "Pet")
        data["client_id"] = data["client_id"] or pet.client_id
    if data["client_id"]:
        get_owned(db, ClientDB, data["client_id"], tenant_id, "Cliente")

    if request.service_id:
        service = get_owned(db, ServiceDB, request.service_id, tenant_id, "Serviço")
        data["service"] = service.name
        data["duration"] = data["duration"] or service.duration_minutes
    if not data["service"]:
        raise HTTPException(status_code=400, detail="Informe o serviço do agendamento")
    data["duration"] = data["duration"] or 60

    ensure_slot_free(db, tenant_id, request.date, request.start_time)

    appointment = AppointmentDB(tenant_id=tenant_id, **data)
    db.add(appointment)
    db.commit()
    db.refresh(appointment)

    logfire.info("Appointment created", tenant_id=tenant_id, appointment_id=appointment.id)
    await notify_tenant(tenant_id, "appointment.created", {
        "appointment_id": appointment.id,
        "date": appointment.date.isoformat(),
        "start_time": appointment.start_time,
        "service": appointment.service,
    })
    return appointment


@router.put("/appointments/{appointment_id}", response_model=AppointmentOut)
async def update_appointment(
    appointment_id: str,
    request: AppointmentUpdate,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    appointment = get_owned(db, AppointmentDB, appointment_id, profile.tenant_id, "Agendamento")
    new_date = request.date or appointment.date
    new_time = request.start_time or appointment.start_time
    if (new_date, new_time) != (appointment.date, appointment.start_time):
        ensure_slot_free(db, profile.tenant_id, new_date, new_time, exclude_id=appointment.id)

    apply_updates(appointment, request)
    db.commit()
    db.refresh(appointment)
    return appointment


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentOut)
async def update_appointment_status(
    appointment_id: str,
    request: AppointmentStatusUpdate,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    appointment = get_owned(db, AppointmentDB, appointment_id, profile.tenant_id, "Agendamento")
    previous = appointment.status
    if previous == "cancelled" and request.status != "cancelled":
        ensure_slot_free(db, profile.tenant_id, appointment.date, appointment.start_time, exclude_id=appointment.id)
    appointment.status = request.status
    db.commit()
    db.refresh(appointment)

    logfire.info("Appointment status changed", appointment_id=appointment.id, previous=previous, status=request.status)
    await notify_tenant(profile.tenant_id, "appointment.status", {
        "appointment_id": appointment.id,
        "previous": previous,
        "status": appointment.status,
    })
    return appointment


@router.patch("/appointments/{appointment_id}/checklist", response_model=AppointmentOut)
async def update_appointment_checklist(
    appointment_id: str,
    request: ChecklistUpdate,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    """Save the execution checklist progress of a service in progress"""
    appointment = get_owned(db, AppointmentDB, appointment_id, profile.tenant_id, "Agendamento")
    appointment.checklist_state = list(request.checklist_state)
    appointment.current_step = request.current_step
    db.commit()
    db.refresh(appointment)
    return appointment


# --- Finance ---

@router.get("/transactions", response_model=List[TransactionOut])
async def list_transactions(
    type: Optional[str] = Query(None, pattern="^(income|expense)$"),
    status: Optional[str] = Query(None, pattern="^(pending|paid|late)$"),
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    query = db.query(FinancialTransactionDB).filter(FinancialTransactionDB.tenant_id == profile.tenant_id)
    if type:
        query = query.filter(FinancialTransactionDB.type == type)
    if status:
        query = query.filter(FinancialTransactionDB.status == status)
    return query.order_by(FinancialTransactionDB.date.desc(), FinancialTransactionDB.created_at.desc()).all()


@router.post("/transactions", response_model=TransactionOut, status_code=201)
async def create_transaction(
    request: TransactionIn,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    data = request.model_dump()
    data["date"] = data["date"] or date.today()
    transaction = FinancialTransactionDB(tenant_id=profile.tenant_id, **data)
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    return transaction


@router.put("/transactions/{transaction_id}", response_model=TransactionOut)
async def update_transaction(
    transaction_id: str,
    request: TransactionUpdate,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    transaction = get_owned(db, FinancialTransactionDB, transaction_id, profile.tenant_id, "Lançamento")
    apply_updates(transaction, request)
    db.commit()
    db.refresh(transaction)
    return transaction


@router.delete("/transactions/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    transaction = get_owned(db, FinancialTransactionDB, transaction_id, profile.tenant_id, "Lançamento")
    db.delete(transaction)
    db.commit()
    return {"status": "deleted", "id": transaction_id}


@router.post("/transactions/{transaction_id}/toggle-status", response_model=TransactionOut)
async def toggle_transaction_status(
    transaction_id: str,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    """pending -> paid -> late -> pending"""
    transaction = get_owned(db, FinancialTransactionDB, transaction_id, profile.tenant_id, "Lançamento")
    transaction.status = NEXT_TRANSACTION_STATUS.get(transaction.status, "pending")
    db.commit()
    db.refresh(transaction)
    return transaction


def summarize_transactions(transactions: List[FinancialTransactionDB]) -> FinanceSummary:
    income = [t for t in transactions if t.type == "income"]
    expenses = [t for t in transactions if t.type == "expense"]

    def total(rows, status=None):
        return round(sum(t.amount for t in rows if status is None or t.status == status), 2)

    paid_income = total(income, "paid")
    total_expenses = total(expenses)
    return FinanceSummary(
        total_income=total(income),
        total_expenses=total_expenses,
        balance=round(paid_income - total_expenses, 2),
        pending_income=total(income, "pending"),
        late_income=total(income, "late"),
        paid_income=paid_income,
        late_count=sum(1 for t in income if t.status == "late"),
    )


@router.get("/finance/summary", response_model=FinanceSummary)
async def get_finance_summary(profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    transactions = (
        db.query(FinancialTransactionDB)
        .filter(FinancialTransactionDB.tenant_id == profile.tenant_id)
        .all()
    )
    return summarize_transactions(transactions)


# --- Dashboard ---

def build_overview(db: Session, tenant_id: str, today: Optional[date] = None) -> DashboardOverview:
    today = today or date.today()
    rows = (
        db.query(AppointmentDB.status, func.count(AppointmentDB.id))
        .filter(AppointmentDB.tenant_id == tenant_id, AppointmentDB.date == today)
        .group_by(AppointmentDB.status)
        .all()
    )
    by_status: Dict[str, int] = {status: count for status, count in rows}

    month_start = today.replace(day=1)
    month_income = (
        db.query(func.coalesce(func.sum(FinancialTransactionDB.amount), 0.0))
        .filter(
            FinancialTransactionDB.tenant_id == tenant_id,
            FinancialTransactionDB.type == "income",
            FinancialTransactionDB.status == "paid",
            FinancialTransactionDB.date >= month_start,
            FinancialTransactionDB.date <= today,
        )
        .scalar()
    )

    return DashboardOverview(
        date=today,
        appointments_today=sum(by_status.values()),
        appointments_by_status=by_status,
        clients=db.query(ClientDB).filter(ClientDB.tenant_id == tenant_id).count(),
        pets=db.query(PetDB).filter(PetDB.tenant_id == tenant_id).count(),
        month_income=round(float(month_income or 0), 2),
    )


@router.get("/dashboard", response_model=DashboardOverview)
async def get_dashboard(profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    with logfire.span("crm_dashboard", tenant_id=profile.tenant_id):
        return build_overview(db, profile.tenant_id)
