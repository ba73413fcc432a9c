from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session


class FinanceAnalysisOutput(BaseModel):
    """Structured report returned by the finance consultant agent."""

    cash_flow_summary: str = Field(description="Short summary of income versus expenses.")
    default_risk: str = Field(description="Biggest late-payment risk, or a note that there is none.")
    collection_message: str = Field(description="Short, polite WhatsApp message asking a client to pay.")
    strategic_tip: str = Field(description="One tip to increase the profit margin.")


class HealthReportOutput(BaseModel):
    report: str = Field(description="Brief, encouraging markdown health analysis with preventive care tips.")


class CopilotMessage(BaseModel):
    role: str  # user | model
    text: str


class CopilotRequest(BaseModel):
    message: str = Field(min_length=1)
    history: List[CopilotMessage] = []


class CopilotResponse(BaseModel):
    text: str


@dataclass
class TenantDeps:
    """Per-run dependencies for agents that read one tenant's data."""

    tenant_id: str
    db: Session
    pet_id: Optional[str] = None


@dataclass
class TutorDeps:
    user_id: str
    db: Session
