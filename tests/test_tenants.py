"""
Tests for the company endpoints: overview, rename, team, invite codes, join and removal.
"""

from __future__ import annotations

from urllib.parse import unquote

from database import ProfileDB

BASE = "/api/v1/tenants"


class TestMyTenant:
    def test_overview(self, client, shop) -> None:
        resp = client.get(f"{BASE}/mine")
        assert resp.status_code == 200
        assert resp.json()["tenant"]["id"] == shop.id
        assert resp.json()["entitlement"]["plan_name"] == "Free"

    def test_requires_membership(self, client) -> None:
        resp = client.get(f"{BASE}/mine")
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Usuário não vinculado a uma empresa"

    def test_rename_recomputes_slug_keeps_code(self, client, shop) -> None:
        resp = client.put(f"{BASE}/mine", json={"name": "Bicho Feliz Ltda"})
        assert resp.status_code == 200
        assert resp.json()["slug"] == "bicho-feliz-ltda"
        assert resp.json()["invite_code"] == shop.invite_code

    def test_rename_requires_admin(self, client, make, current_user) -> None:
        tenant = make.tenant()
        make.member(tenant, current_user["uid"], role="employee")
        assert client.put(f"{BASE}/mine", json={"name": "Outro"}).status_code == 403

    def test_logo_upload(self, client, shop, firebase) -> None:
        resp = client.post(f"{BASE}/mine/logo", files={"file": ("logo.png", b"\x89PNG...", "image/png")})
        assert resp.status_code == 200
        assert resp.json()["logo_url"].startswith("https://storage.example.com/tenants/")
        assert firebase.uploads[0].endswith(".png")

    def test_logo_must_be_image(self, client, shop, firebase) -> None:
        resp = client.post(f"{BASE}/mine/logo", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert resp.status_code == 400
        assert firebase.uploads == []


class TestTeam:
    def test_members_and_seats(self, client, shop, make) -> None:
        make.pro(shop, max_users=3)
        make.member(shop, "u-bruno", full_name="Bruno")

        data = client.get(f"{BASE}/mine/team").json()

        assert [m["full_name"] for m in data["members"]] == ["Ana Souza", "Bruno"]
        assert data["seats_used"] == 2
        assert data["max_users"] == 3
        assert data["seats_left"] == 1
        assert data["limit_reached"] is False

    def test_limit_reached_on_free_plan(self, client, shop) -> None:
        data = client.get(f"{BASE}/mine/team").json()
        assert data["limit_reached"] is True

    def test_remove_member(self, client, db, shop, make) -> None:
        make.member(shop, "u-bruno")

        resp = client.delete(f"{BASE}/mine/team/u-bruno")

        assert resp.status_code == 200
        bruno = db.query(ProfileDB).filter(ProfileDB.id == "u-bruno").first()
        assert bruno.tenant_id is None
        assert bruno.role == "tutor"

    def test_cannot_remove_self(self, client, shop, current_user) -> None:
        assert client.delete(f"{BASE}/mine/team/{current_user['uid']}").status_code == 400

    def test_cannot_remove_other_company_member(self, client, shop, make) -> None:
        other = make.tenant("Outra Loja")
        make.member(other, "u-outsider")
        assert client.delete(f"{BASE}/mine/team/u-outsider").status_code == 404


class TestInvites:
    def test_regenerate(self, client, shop) -> None:
        old_code = shop.invite_code
        resp = client.post(f"{BASE}/mine/invite-code")
        assert resp.status_code == 200
        code = resp.json()["invite_code"]
        assert code != old_code
        assert code.startswith("pet-feliz-")

    def test_share_text(self, client, shop) -> None:
        data = client.get(f"{BASE}/mine/invite-share").json()

        assert data["invite_code"] == shop.invite_code
        assert shop.invite_code in data["text"]
        assert "Pet Feliz" in data["text"]
        assert data["whatsapp_url"].startswith("https://wa.me/?text=")
        assert unquote(data["whatsapp_url"].split("text=", 1)[1]) == data["text"]


class TestJoinExistingUser:
    def test_join(self, client, db, make, current_user) -> None:
        tenant = make.tenant("Pet Feliz", invite_code="pet-feliz-654321")
        make.member(tenant, "owner", role="admin")
        make.pro(tenant, max_users=2)

        resp = client.post(f"{BASE}/join", json={"invite_code": " pet-feliz-654321 "})

        assert resp.status_code == 200
        profile = db.query(ProfileDB).filter(ProfileDB.id == current_user["uid"]).first()
        assert profile.tenant_id == tenant.id
        assert profile.role == "employee"

    def test_join_full_tenant(self, client, make) -> None:
        tenant = make.tenant("Pet Feliz", invite_code="pet-feliz-654321")
        make.member(tenant, "owner", role="admin")

        resp = client.post(f"{BASE}/join", json={"invite_code": "pet-feliz-654321"})

        assert resp.status_code == 402
        assert resp.json()["detail"].startswith("A empresa Pet Feliz atingiu o limite de 1 usuário(s)")

    def test_join_unknown_code(self, client) -> None:
        assert client.post(f"{BASE}/join", json={"invite_code": "nope-000000"}).status_code == 404

    def test_already_member(self, client, shop, make) -> None:
        other = make.tenant("Outra Loja")
        resp = client.post(f"{BASE}/join", json={"invite_code": other.invite_code})
        assert resp.status_code == 409
