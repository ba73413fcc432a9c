"""
Tests for the AI endpoints, with the agents' model replaced by pydantic-ai test models.
"""

from __future__ import annotations

from datetime import date

import pytest
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.models.test import TestModel

from database import AppointmentDB, FinancialTransactionDB
from models.insights_models import CopilotMessage
from routers import insights

BASE = "/api/v1/ai"


def broken_model(messages, info: AgentInfo):
    raise RuntimeError("model unavailable")


class TestHistoryPrompt:
    def test_without_history(self) -> None:
        assert insights._with_history("Oi", []) == "Oi"

    def test_keeps_only_recent_turns(self) -> None:
        history = [CopilotMessage(role="user" if i % 2 else "model", text=f"msg {i}") for i in range(15)]

        prompt = insights._with_history("Quantos banhos hoje?", history)

        assert "msg 4" not in prompt
        assert "msg 5" in prompt
        assert "msg 14" in prompt
        assert prompt.endswith("Quantos banhos hoje?")


class TestFinanceAnalysis:
    def test_structured_report(self, client, db, shop) -> None:
        db.add(FinancialTransactionDB(tenant_id=shop.id, type="income", amount=80.0, status="late", client_name="Carlos"))
        db.commit()

        with insights.finance_agent.override(model=TestModel()):
            resp = client.post(f"{BASE}/finance-analysis")

        assert resp.status_code == 200
        assert set(resp.json()) == {"cash_flow_summary", "default_risk", "collection_message", "strategic_tip"}

    def test_agent_failure(self, client, shop) -> None:
        with insights.finance_agent.override(model=FunctionModel(broken_model)):
            resp = client.post(f"{BASE}/finance-analysis")
        assert resp.status_code == 502

    def test_members_only(self, client) -> None:
        assert client.post(f"{BASE}/finance-analysis").status_code == 403

    def test_transactions_tool(self, db, shop, make) -> None:
        other = make.tenant("Outra Loja")
        db.add_all([
            FinancialTransactionDB(tenant_id=shop.id, type="income", amount=50.0, status="paid", date=date(2026, 10, 1)),
            FinancialTransactionDB(tenant_id=other.id, type="income", amount=999.0, status="paid"),
        ])
        db.commit()

        class Ctx:
            deps = insights.TenantDeps(tenant_id=shop.id, db=db)

        data = insights.get_transactions(Ctx())
        assert data["summary"]["paid_income"] == 50.0
        assert [t["date"] for t in data["transactions"]] == ["2026-10-01"]


class TestHealthReport:
    def test_report(self, client, db, shop, make) -> None:
        pet = make.pet(shop, make.client(shop), species="Cão", breed="Poodle")
        db.add(AppointmentDB(tenant_id=shop.id, pet_id=pet.id, service="Banho", date=date.today(), start_time="09:00"))
        db.commit()

        with insights.health_agent.override(model=TestModel()):
            resp = client.post(f"{BASE}/pets/{pet.id}/health-report")

        assert resp.status_code == 200
        assert isinstance(resp.json()["report"], str)

    def test_other_tenant_pet(self, client, shop, make) -> None:
        other = make.tenant("Outra Loja")
        pet = make.pet(other, make.client(other))
        assert client.post(f"{BASE}/pets/{pet.id}/health-report").status_code == 404


class TestCopilot:
    def test_answer(self, client, shop) -> None:
        with insights.copilot_agent.override(model=TestModel(custom_output_text="Hoje há 3 banhos agendados.")):
            resp = client.post(f"{BASE}/copilot", json={"message": "Como está a agenda hoje?"})

        assert resp.status_code == 200
        assert resp.json()["text"] == "Hoje há 3 banhos agendados."

    def test_failure_falls_back_to_text(self, client, shop) -> None:
        with insights.copilot_agent.override(model=FunctionModel(broken_model)):
            resp = client.post(f"{BASE}/copilot", json={"message": "Oi", "history": [{"role": "user", "text": "Olá"}]})

        assert resp.status_code == 200
        assert resp.json()["text"] == insights.COPILOT_FALLBACK

    @pytest.mark.parametrize("body", [{}, {"message": ""}])
    def test_message_required(self, client, shop, body) -> None:
        assert client.post(f"{BASE}/copilot", json=body).status_code == 422


class TestTutorAssistant:
    def test_portal_assistant(self, client) -> None:
        with insights.tutor_agent.override(model=TestModel(custom_output_text="Escove os dentes do Thor diariamente.")):
            resp = client.post("/api/v1/portal/assistant", json={"message": "Dicas para o Thor?"})

        assert resp.status_code == 200
        assert resp.json()["text"] == "Escove os dentes do Thor diariamente."

    def test_portal_assistant_fallback(self, client) -> None:
        with insights.tutor_agent.override(model=FunctionModel(broken_model)):
            resp = client.post("/api/v1/portal/assistant", json={"message": "Oi"})
        assert resp.json()["text"] == insights.COPILOT_FALLBACK
