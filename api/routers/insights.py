import os
from typing import Any, Dict, List

import logfire
from fastapi import APIRouter, Depends, HTTPException
from pydantic_ai import Agent, RunContext
from sqlalchemy.orm import Session

from auth import require_tenant_member
from database import get_db, AppointmentDB, ClientDB, FinancialTransactionDB, PetDB, ProfileDB
from routers.crm import build_overview, get_owned, summarize_transactions
from models.insights_models import (
    CopilotMessage,
    CopilotRequest,
    CopilotResponse,
    FinanceAnalysisOutput,
    HealthReportOutput,
    TenantDeps,
    TutorDeps,
)

router = APIRouter()

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "openai:gpt-4o-mini")
HISTORY_LIMIT = 10
COPILOT_FALLBACK = "Desculpe, não consegui responder agora. Tente novamente em instantes."


def _with_history(message: str, history: List[CopilotMessage]) -> str:
    """Fold the last few chat turns into the prompt"""
    recent = history[-HISTORY_LIMIT:]
    if not recent:
        return message
    lines = [f"{'Assistente' if m.role == 'model' else 'Usuário'}: {m.text}" for m in recent]
    return (
        "Conversa recente (mais antiga primeiro):\n"
        + "\n".join(lines)
        + f"\n\nMensagem atual do usuário (responda a esta):\n{message}"
    )


# --- Finance consultant ---

finance_agent = Agent[TenantDeps, FinanceAnalysisOutput](
    OPENAI_MODEL,
    deps_type=TenantDeps,
    output_type=FinanceAnalysisOutput,
    instructions=(
        "You are a financial consultant for a Brazilian pet shop.\n"
        "Call `get_transactions` to read the shop's income and expenses, then answer in Brazilian Portuguese.\n"
        "Be concise and practical. Amounts are in BRL (R$)."
    ),
)


@finance_agent.tool
def get_transactions(ctx: RunContext[TenantDeps]) -> Dict[str, Any]:
    """
    Return the shop's finance summary and its 100 most recent transactions
    (type, amount, status, client, description, date).
    """
    with logfire.span("get_transactions_tool", tenant_id=ctx.deps.tenant_id):
        rows = (
            ctx.deps.db.query(FinancialTransactionDB)
            .filter(FinancialTransactionDB.tenant_id == ctx.deps.tenant_id)
            .order_by(FinancialTransactionDB.created_at.desc())
            .limit(100)
            .all()
        )
        return {
            "summary": summarize_transactions(rows).model_dump(),
            "transactions": [
                {
                    "type": t.type,
                    "amount": t.amount,
                    "status": t.status,
                    "client_name": t.client_name,
                    "description": t.description,
                    "date": t.date.isoformat() if t.date else None,
                }
                for t in rows
            ],
        }


# --- Pet health report ---

health_agent = Agent[TenantDeps, HealthReportOutput](
    OPENAI_MODEL,
    deps_type=TenantDeps,
    output_type=HealthReportOutput,
    instructions=(
        "You are a veterinary assistant writing for the pet's owner.\n"
        "Call `get_pet_history` first. Write a brief, encouraging health analysis in Brazilian Portuguese "
        "with preventive care tips for the species, breed and age. Use markdown. "
        "Never give a diagnosis; recommend a veterinarian for anything worrying."
    ),
)


@health_agent.tool
def get_pet_history(ctx: RunContext[TenantDeps]) -> Dict[str, Any]:
    """Return the pet's profile and its last 10 appointments."""
    db = ctx.deps.db
    pet = db.query(PetDB).filter(PetDB.id == ctx.deps.pet_id, PetDB.tenant_id == ctx.deps.tenant_id).first()
    if not pet:
        return {"error": "pet not found"}

    appointments = (
        db.query(AppointmentDB)
        .filter(AppointmentDB.pet_id == pet.id)
        .order_by(AppointmentDB.date.desc())
        .limit(10)
        .all()
    )
    return {
        "pet": {
            "name": pet.name,
            "species": pet.species,
            "breed": pet.breed,
            "weight": pet.weight,
            "birth_date": pet.birth_date.isoformat() if pet.birth_date else None,
            "notes": pet.notes,
        },
        "appointments": [
            {"service": a.service, "date": a.date.isoformat(), "status": a.status, "notes": a.notes}
            for a in appointments
        ],
    }


# --- CRM copilot ---

copilot_agent = Agent[TenantDeps, str](
    OPENAI_MODEL,
    deps_type=TenantDeps,
    output_type=str,
    instructions=(
        "You are Flow, the assistant inside a pet shop management system.\n"
        "Answer staff questions in Brazilian Portuguese, in two or three short sentences.\n"
        "Call `get_today_overview` when the question is about today's agenda, clients or revenue."
    ),
)


@copilot_agent.tool
def get_today_overview(ctx: RunContext[TenantDeps]) -> Dict[str, Any]:
    """Today's appointment counts by status, client and pet totals and this month's paid income."""
    return build_overview(ctx.deps.db, ctx.deps.tenant_id).model_dump(mode="json")


# --- Tutor assistant ---

tutor_agent = Agent[TutorDeps, str](
    OPENAI_MODEL,
    deps_type=TutorDeps,
    output_type=str,
    instructions=(
        "You are a friendly pet-care assistant for pet owners using the Flow Pet app.\n"
        "Call `get_my_pets` to know the user's pets. Answer in Brazilian Portuguese, briefly. "
        "For health problems always recommend visiting a veterinarian."
    ),
)


@tutor_agent.tool
def get_my_pets(ctx: RunContext[TutorDeps]) -> List[Dict[str, Any]]:
    """The caller's pets with species, breed, weight and birth date."""
    client_ids = [row.id for row in ctx.deps.db.query(ClientDB.id).filter(ClientDB.user_id == ctx.deps.user_id)]
    pets = ctx.deps.db.query(PetDB).filter(PetDB.client_id.in_(client_ids)).all()
    return [
        {
            "name": p.name,
            "species": p.species,
            "breed": p.breed,
            "weight": p.weight,
            "birth_date": p.birth_date.isoformat() if p.birth_date else None,
        }
        for p in pets
    ]


async def run_tutor_assistant(db: Session, profile: ProfileDB, message: str, history: List[CopilotMessage]) -> str:
    with logfire.span("tutor_assistant", user_id=profile.id):
        try:
            result = await tutor_agent.run(_with_history(message, history), deps=TutorDeps(user_id=profile.id, db=db))
        except Exception as e:
            logfire.error("Tutor assistant error", error=str(e), error_type=type(e).__name__)
            return COPILOT_FALLBACK
        return result.output


# --- Endpoints ---

@router.post("/finance-analysis", response_model=FinanceAnalysisOutput)
async def analyze_finances(profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    with logfire.span("finance_analysis_endpoint", tenant_id=profile.tenant_id):
        try:
            result = await finance_agent.run(
                "Analise o fluxo de caixa e a inadimplência desta empresa.",
                deps=TenantDeps(tenant_id=profile.tenant_id, db=db),
            )
        except Exception as e:
            logfire.error("Finance analysis error", error=str(e))
            raise HTTPException(status_code=502, detail="Não foi possível gerar a análise financeira")
        return result.output


@router.post("/pets/{pet_id}/health-report", response_model=HealthReportOutput)
async def pet_health_report(pet_id: str, profile: ProfileDB = Depends(require_tenant_member), db: Session = Depends(get_db)):
    pet = get_owned(db, PetDB, pet_id, profile.tenant_id, "Pet")
    with logfire.span("health_report_endpoint", tenant_id=profile.tenant_id, pet_id=pet.id):
        try:
            result = await health_agent.run(
                f"Gere o relatório de saúde do pet {pet.name}.",
                deps=TenantDeps(tenant_id=profile.tenant_id, db=db, pet_id=pet.id),
            )
        except Exception as e:
            logfire.error("Health report error", error=str(e), pet_id=pet.id)
            raise HTTPException(status_code=502, detail="Não foi possível gerar o relatório de saúde")
        return result.output


@router.post("/copilot", response_model=CopilotResponse)
async def copilot_chat(
    request: CopilotRequest,
    profile: ProfileDB = Depends(require_tenant_member),
    db: Session = Depends(get_db),
):
    """Staff chat. Agent failures are answered with a fallback text, never an error."""
    with logfire.span("copilot_endpoint", tenant_id=profile.tenant_id):
        try:
            result = await copilot_agent.run(
                _with_history(request.message, request.history),
                deps=TenantDeps(tenant_id=profile.tenant_id, db=db),
            )
        except Exception as e:
            logfire.error("Copilot error", error=str(e), error_type=type(e).__name__)
            return CopilotResponse(text=COPILOT_FALLBACK)
        return CopilotResponse(text=result.output)
