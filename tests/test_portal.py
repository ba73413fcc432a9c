"""
Tests for the tutor portal: booking window, slot grid, pet registration and booking.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from database import AppointmentDB, ClientDB, ServiceDB
from entitlements import FREE_PET_LIMIT
from routers import portal
from routers.portal import booking_days, slot_times

BASE = "/api/v1/portal"

MONDAY = date(2026, 10, 19)


@pytest.fixture(autouse=True)
def clock(monkeypatch: pytest.MonkeyPatch):
    """Pin the portal clock to a Monday morning before the first slot."""
    state = {"now": datetime(2026, 10, 19, 7, 30)}
    monkeypatch.setattr(portal, "now", lambda: state["now"])
    return state


@pytest.fixture
def petshop(make):
    tenant = make.tenant("Bicho Feliz")
    make.member(tenant, "u-owner", role="admin")
    return tenant


@pytest.fixture
def my_pet(client, petshop):
    resp = client.post(f"{BASE}/pets", json={"tenant_id": petshop.id, "name": "Mel", "species": "Gato"})
    assert resp.status_code == 201
    return resp.json()


def book(client, petshop, pet, day=None, start="09:00", **extra):
    body = {
        "tenant_id": petshop.id,
        "pet_id": pet["id"],
        "service": "Banho",
        "date": (day or booking_days()[0]).isoformat(),
        "start_time": start,
    }
    body.update(extra)
    return client.post(f"{BASE}/appointments", json=body)


class TestCalendar:
    def test_slot_grid(self) -> None:
        slots = slot_times()
        assert len(slots) == 22
        assert slots[0] == "08:00"
        assert slots[1] == "08:30"
        assert slots[-1] == "18:30"

    def test_booking_window_skips_sundays(self) -> None:
        days = booking_days(MONDAY)

        assert days[0] == MONDAY
        assert len(days) == 12
        assert all(day.weekday() != 6 for day in days)
        # +13 is a Sunday
        assert days[-1] == date(2026, 10, 31)

    def test_window_starting_on_sunday(self) -> None:
        sunday = date(2026, 10, 18)
        days = booking_days(sunday)
        assert days[0] == sunday + timedelta(days=1)
        assert len(days) == 12
        assert days[-1] == date(2026, 10, 31)

    def test_window_follows_clock(self) -> None:
        assert booking_days()[0] == MONDAY

    def test_past_slots_closed_today(self, client, petshop, clock) -> None:
        clock["now"] = datetime(2026, 10, 19, 10, 15)

        data = client.get(f"{BASE}/petshops/{petshop.id}/availability", params={"date": MONDAY.isoformat()}).json()
        closed = [slot["time"] for slot in data["slots"] if not slot["available"]]
        assert closed == ["08:00", "08:30", "09:00", "09:30", "10:00"]

    def test_booking_days_endpoint(self, client) -> None:
        data = client.get(f"{BASE}/booking-days").json()
        assert [d["date"] for d in data] == [d.isoformat() for d in booking_days()]

    def test_availability_marks_booked_slots(self, client, db, petshop) -> None:
        day = booking_days()[0]
        db.add_all([
            AppointmentDB(tenant_id=petshop.id, service="Banho", date=day, start_time="09:00", status="confirmed"),
            AppointmentDB(tenant_id=petshop.id, service="Tosa", date=day, start_time="10:00", status="cancelled"),
        ])
        db.commit()

        data = client.get(f"{BASE}/petshops/{petshop.id}/availability", params={"date": day.isoformat()}).json()
        taken = {slot["time"] for slot in data["slots"] if not slot["available"]}
        assert taken == {"09:00"}

    def test_availability_unknown_shop(self, client) -> None:
        resp = client.get(f"{BASE}/petshops/missing/availability", params={"date": date.today().isoformat()})
        assert resp.status_code == 404


class TestPetShops:
    def test_list(self, client, petshop, make) -> None:
        make.tenant("Aqua Pet")
        names = [shop["name"] for shop in client.get(f"{BASE}/petshops").json()]
        assert names == ["Aqua Pet", "Bicho Feliz"]

    def test_select_is_idempotent(self, client, db, petshop) -> None:
        first = client.post(f"{BASE}/petshops/{petshop.id}/select").json()
        second = client.post(f"{BASE}/petshops/{petshop.id}/select").json()

        assert first["id"] == second["id"]
        assert first["name"] == "Ana Souza"
        assert db.query(ClientDB).filter(ClientDB.tenant_id == petshop.id).count() == 1

    def test_services_only_active(self, client, petshop, make) -> None:
        make._save(ServiceDB(tenant_id=petshop.id, name="Banho", duration_minutes=45))
        make._save(ServiceDB(tenant_id=petshop.id, name="Hidratação", is_active=False))

        names = [s["name"] for s in client.get(f"{BASE}/petshops/{petshop.id}/services").json()]
        assert names == ["Banho"]


class TestPortalPets:
    def test_register_creates_client_record(self, client, db, petshop, my_pet) -> None:
        assert my_pet["owner_name"] == "Ana Souza"
        assert my_pet["tenant_id"] == petshop.id

        client_row = db.query(ClientDB).filter(ClientDB.user_id == "user-ana").one()
        assert my_pet["client_id"] == client_row.id

    def test_list_my_pets_only(self, client, petshop, my_pet, make) -> None:
        stranger = make.client(petshop, name="Outro Tutor")
        make.pet(petshop, stranger, name="Bolt")

        names = [p["name"] for p in client.get(f"{BASE}/pets").json()]
        assert names == ["Mel"]

    def test_pet_limit_applies(self, client, petshop, make) -> None:
        owner = make.client(petshop)
        for i in range(FREE_PET_LIMIT):
            make.pet(petshop, owner, name=f"Pet {i}")

        resp = client.post(f"{BASE}/pets", json={"tenant_id": petshop.id, "name": "Mel"})
        assert resp.status_code == 402


class TestBooking:
    def test_book(self, client, petshop, my_pet) -> None:
        resp = book(client, petshop, my_pet)

        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "pending"
        assert data["pet_id"] == my_pet["id"]
        assert data["client_id"] == my_pet["client_id"]

    def test_taken_slot(self, client, petshop, my_pet) -> None:
        book(client, petshop, my_pet)
        assert book(client, petshop, my_pet).status_code == 409

    def test_someone_elses_pet(self, client, petshop, make) -> None:
        foreign = make.pet(petshop, make.client(petshop, name="Outro"))
        assert book(client, petshop, {"id": foreign.id}).status_code == 404

    def test_outside_booking_window(self, client, petshop, my_pet) -> None:
        resp = book(client, petshop, my_pet, day=MONDAY + timedelta(days=30))
        assert resp.status_code == 400

    def test_off_grid_time(self, client, petshop, my_pet) -> None:
        assert book(client, petshop, my_pet, start="19:00").status_code == 400
        assert book(client, petshop, my_pet, start="09:15").status_code == 400

    def test_slot_already_passed(self, client, petshop, my_pet, clock) -> None:
        clock["now"] = datetime(2026, 10, 19, 10, 15)

        resp = book(client, petshop, my_pet, day=MONDAY, start="10:00")
        assert resp.status_code == 400
        assert book(client, petshop, my_pet, day=MONDAY, start="10:30").status_code == 201

    def test_unknown_service(self, client, petshop, my_pet) -> None:
        assert book(client, petshop, my_pet, service_id="missing").status_code == 404

    def test_upcoming_and_cancel(self, client, db, petshop, my_pet) -> None:
        appointment = book(client, petshop, my_pet).json()

        upcoming = client.get(f"{BASE}/appointments").json()
        assert [a["id"] for a in upcoming] == [appointment["id"]]

        resp = client.post(f"{BASE}/appointments/{appointment['id']}/cancel")
        assert resp.json()["status"] == "cancelled"
        assert book(client, petshop, my_pet).status_code == 201

    def test_cannot_cancel_finished(self, client, db, petshop, my_pet) -> None:
        appointment = book(client, petshop, my_pet).json()
        row = db.query(AppointmentDB).filter(AppointmentDB.id == appointment["id"]).one()
        row.status = "finished"
        db.commit()

        assert client.post(f"{BASE}/appointments/{appointment['id']}/cancel").status_code == 409

    def test_cannot_cancel_others(self, client, db, petshop) -> None:
        other = AppointmentDB(tenant_id=petshop.id, service="Banho", date=date.today(), start_time="08:00")
        db.add(other)
        db.commit()

        assert client.post(f"{BASE}/appointments/{other.id}/cancel").status_code == 404
