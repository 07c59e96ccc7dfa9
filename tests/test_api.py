"""API integration tests: health, auth and the affiliate dashboard endpoints."""
import time

import pytest
from sqlalchemy.exc import OperationalError

from affiliate_portal.auth import create_access_token, verify_token
from affiliate_portal.db.repository import EventStore
from affiliate_portal.services.notifier import notifier
from tests.conftest import get_test_session, seed_clicks, seed_conversion, seed_link, seed_progression


def auth(user_id: str = "u1") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["db"] == "connected"


@pytest.mark.asyncio
async def test_root(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["app"] == "Horizon Affiliates"


# ── Auth ────────────────────────────────────────────────────────────────────

class TestTokens:
    def test_round_trip(self):
        payload = verify_token(create_access_token("u1"))
        assert payload["sub"] == "u1"

    def test_wrong_secret(self):
        assert verify_token(create_access_token("u1", secret="other")) is None

    def test_expired(self):
        assert verify_token(create_access_token("u1", ttl=-10)) is None

    def test_garbage(self):
        assert verify_token("not-a-token") is None
        assert verify_token("a.b.c") is None

    def test_tampered_payload(self):
        header, _, sig = create_access_token("u1").split(".")
        forged = create_access_token("admin").split(".")[1]
        assert verify_token(f"{header}.{forged}.{sig}") is None


@pytest.mark.asyncio
async def test_requires_auth(client):
    resp = await client.get("/api/v1/affiliate/stats")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Authentication required"


@pytest.mark.asyncio
async def test_rejects_bad_token(client):
    resp = await client.get("/api/v1/affiliate/stats", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


# ── Link ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_link_created_once(client):
    first = await client.get("/api/v1/affiliate/link", headers=auth())
    assert first.status_code == 200
    assert first.json()["created"] is True
    code = first.json()["data"]["code"]
    assert first.json()["data"]["share_url"].endswith(f"/?ref={code}")

    second = await client.get("/api/v1/affiliate/link", headers=auth())
    assert second.json()["created"] is False
    assert second.json()["data"]["code"] == code


# ── Stats ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_stats(client):
    link_id = await seed_link("u1", "code-u1")
    await seed_clicks(link_id, ["desktop"] * 7 + ["mobile"] * 3)
    await seed_conversion(link_id, 100.0)
    await seed_conversion(link_id, 50.0)
    await seed_conversion(link_id, 9999.0, status="pending")

    resp = await client.get("/api/v1/affiliate/stats", params={"days": 7}, headers=auth())
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["window"]["days"] == 7
    assert len(data["daily"]) == 7
    assert data["summary"] == {
        "total_clicks": 10,
        "total_conversions": 3,
        "conversion_rate": 30.0,
        "total_revenue": 150.0,
    }
    devices = {d["device"]: d for d in data["devices"]}
    assert devices["desktop"]["revenue"] == 105.0
    assert devices["mobile"]["revenue"] == 45.0


@pytest.mark.asyncio
async def test_stats_without_link(client):
    resp = await client.get("/api/v1/affiliate/stats", headers=auth("newbie"))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert len(data["daily"]) == 30
    assert data["summary"]["conversion_rate"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("days", [0, 366])
async def test_stats_window_validated(client, days):
    resp = await client.get("/api/v1/affiliate/stats", params={"days": days}, headers=auth())
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "validation_error"
    assert body["details"][0]["field"] == "query.days"


@pytest.mark.asyncio
async def test_stats_store_failure_is_503(client, monkeypatch):
    await seed_link("u1", "code-u1")

    async def broken_fetch(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(EventStore, "fetch_conversions", broken_fetch)
    resp = await client.get("/api/v1/affiliate/stats", headers=auth())
    assert resp.status_code == 503
    assert resp.json()["error"] == "stats_unavailable"


# ── Commission ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_commission_creates_progression(client, tiers):
    events = []
    notifier.subscribe(events.append, tables=["user_progression"])

    resp = await client.get("/api/v1/affiliate/commission", headers=auth())
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["position"]["current"]["name"] == "Bronze"
    assert data["position"]["next"]["name"] == "Argent"
    assert data["position"]["progress_percent"] == 0.0
    assert [t["name"] for t in data["tiers"]] == ["Bronze", "Argent", "Or", "Platine"]
    assert len(events) == 1

    async with get_test_session() as session:
        assert await EventStore(session).get_progression("u1") is not None

    again = await client.get("/api/v1/affiliate/commission", headers=auth())
    assert again.json()["data"]["progression"]["id"] == data["progression"]["id"]
    assert len(events) == 1


@pytest.mark.asyncio
async def test_commission_progress(client, tiers):
    await seed_progression("u1", 2, 1250.0)
    resp = await client.get("/api/v1/affiliate/commission", headers=auth())
    position = resp.json()["data"]["position"]
    assert position["current"]["name"] == "Argent"
    assert position["next"]["name"] == "Or"
    assert position["progress_percent"] == 50.0


@pytest.mark.asyncio
async def test_commission_top_tier(client, tiers):
    await seed_progression("u1", 4, 12_000.0)
    resp = await client.get("/api/v1/affiliate/commission", headers=auth())
    position = resp.json()["data"]["position"]
    assert position["next"] is None
    assert position["progress_percent"] == 100.0
    assert position["is_top_tier"] is True


@pytest.mark.asyncio
async def test_commission_without_tiers_is_configuration_error(client):
    resp = await client.get("/api/v1/affiliate/commission", headers=auth())
    assert resp.status_code == 500
    assert resp.json()["error"] == "configuration_error"


# ── Dashboard ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_dashboard(client, tiers):
    link_id = await seed_link("u1", "code-u1")
    await seed_clicks(link_id, ["mobile", "desktop"])
    await seed_conversion(link_id, 99.0)

    resp = await client.get("/api/v1/affiliate/dashboard", params={"days": 14}, headers=auth())
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user_id"] == "u1"
    assert data["link"]["code"] == "code-u1"
    assert "share_url" in data["link"]
    assert len(data["stats"]["daily"]) == 14
    assert data["stats"]["summary"]["total_revenue"] == 99.0
    # read-only: no progression is created here
    assert data["commission"]["progression"] is None
    assert data["commission"]["position"] is None
    assert len(data["commission"]["examples"]) == 4


def test_token_expiry_uses_clock():
    token = create_access_token("u1", ttl=60)
    assert verify_token(token)["exp"] <= int(time.time()) + 60


# ── Profile ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_profile_empty_before_first_update(client):
    resp = await client.get("/api/v1/affiliate/profile", headers=auth())
    assert resp.status_code == 200
    assert resp.json()["data"] == {"user_id": "u1", "first_name": None, "last_name": None, "updated_at": None}


@pytest.mark.asyncio
async def test_profile_requires_auth(client):
    assert (await client.get("/api/v1/affiliate/profile")).status_code == 401
    resp = await client.put("/api/v1/affiliate/profile", json={"firstName": "Alice"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_profile_update_then_read(client):
    resp = await client.put(
        "/api/v1/affiliate/profile",
        json={"firstName": " Alice ", "lastName": "Martin"},
        headers=auth(),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["first_name"] == "Alice"

    data = (await client.get("/api/v1/affiliate/profile", headers=auth())).json()["data"]
    assert data["first_name"] == "Alice"
    assert data["last_name"] == "Martin"
    assert data["updated_at"] is not None


@pytest.mark.asyncio
async def test_profile_update_overwrites(client):
    await client.put("/api/v1/affiliate/profile", json={"first_name": "Alice", "last_name": "Martin"}, headers=auth())
    await client.put("/api/v1/affiliate/profile", json={"firstName": "Alicia", "lastName": ""}, headers=auth())

    async with get_test_session() as session:
        profile = await EventStore(session).get_profile("u1")
    assert profile.first_name == "Alicia"
    assert profile.last_name is None

    other = (await client.get("/api/v1/affiliate/profile", headers=auth("u2"))).json()["data"]
    assert other["first_name"] is None


@pytest.mark.asyncio
async def test_profile_name_length_validated(client):
    resp = await client.put("/api/v1/affiliate/profile", json={"firstName": "x" * 101}, headers=auth())
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_profile_names_reach_leaderboard(client):
    link_id = await seed_link("u1", "code-u1")
    await seed_conversion(link_id, 49.0)
    await client.put("/api/v1/affiliate/profile", json={"firstName": "Alice", "lastName": "martin"}, headers=auth())

    entry = (await client.get("/api/v1/leaderboard")).json()["data"][0]
    assert entry["user_id"] == "u1"
    assert entry["display_name"] == "Alice M."


@pytest.mark.asyncio
async def test_upsert_profile_keeps_email_unless_given():
    async with get_test_session() as session:
        store = EventStore(session)
        await store.upsert_profile("u1", "Alice", None, email="alice@example.com")
        updated = await store.upsert_profile("u1", "Alice", "Martin")
        await session.commit()
    assert updated.email == "alice@example.com"
    assert updated.last_name == "Martin"
