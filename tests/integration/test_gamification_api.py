"""Integration tests for gamification API endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

ALICE = {"X-Trader-Id": "alice"}

# Enough of everything to satisfy every daily challenge in the catalog.
FULL_DAY = {
    "day": "2026-03-02",
    "trades_logged": 5,
    "winning_trades": 5,
    "losing_trades": 0,
    "net_pnl": 420.0,
    "journal_entries": 3,
    "notes_added": 3,
    "trades_reviewed": 3,
    "lessons_documented": 2,
    "trades_with_setup": 2,
    "trades_with_stop_loss": 2,
    "has_pre_market_note": True,
    "has_post_market_note": True,
}


class TestLevelsEndpoint:
    @pytest.mark.asyncio
    async def test_list_levels(self, client: AsyncClient):
        response = await client.get("/api/v1/levels")
        assert response.status_code == 200
        levels = response.json()["levels"]
        assert len(levels) == 15
        assert levels[0]["title"] == "Rookie"
        assert levels[0]["min_xp"] == 0
        assert levels[-1]["max_xp"] is None

    @pytest.mark.asyncio
    async def test_resolve(self, client: AsyncClient):
        response = await client.get("/api/v1/levels/resolve", params={"xp": 250})
        assert response.status_code == 200
        data = response.json()
        assert data["level"]["level"] == 3
        assert data["level"]["title"] == "Novice Trader"
        assert data["next_level"]["level"] == 4
        assert data["xp_to_next_level"] == 250
        assert data["progress"] == 0

    @pytest.mark.asyncio
    async def test_resolve_negative_xp_rejected(self, client: AsyncClient):
        response = await client.get("/api/v1/levels/resolve", params={"xp": -1})
        assert response.status_code == 422


class TestCatalogEndpoint:
    @pytest.mark.asyncio
    async def test_rotation_for_day(self, client: AsyncClient):
        response = await client.get("/api/v1/challenges/catalog", params={"day": "2026-03-02"})
        assert response.status_code == 200
        data = response.json()
        assert data["week"] == "2026-W10"
        assert len(data["daily"]) == 3
        assert len(data["weekly"]) == 4
        assert all(entry["kind"] == "daily" for entry in data["daily"])
        assert all(entry["rule"] for entry in data["weekly"])

    @pytest.mark.asyncio
    async def test_rotation_is_stable(self, client: AsyncClient):
        first = await client.get("/api/v1/challenges/catalog", params={"day": "2026-03-02"})
        second = await client.get("/api/v1/challenges/catalog", params={"day": "2026-03-02"})
        assert first.json() == second.json()


class TestTraderEndpoints:
    @pytest.mark.asyncio
    async def test_missing_trader_header(self, client: AsyncClient):
        response = await client.get("/api/v1/traders/me/gamification")
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing X-Trader-Id header"

    @pytest.mark.asyncio
    async def test_new_trader_summary(self, client: AsyncClient):
        response = await client.get("/api/v1/traders/me/gamification", headers=ALICE)
        assert response.status_code == 200
        data = response.json()
        assert data["trader_id"] == "alice"
        assert data["summary"]["total_xp"] == 0
        assert data["summary"]["level"]["level"] == 1
        assert data["streak"]["current_streak"] == 0
        assert data["streak"]["is_active"] is False

    @pytest.mark.asyncio
    async def test_challenges_created_for_day(self, client: AsyncClient):
        response = await client.get("/api/v1/traders/me/challenges", params={"day": "2026-03-02"}, headers=ALICE)
        assert response.status_code == 200
        challenges = response.json()["challenges"]
        assert len(challenges) == 7
        assert all(c["state"] == "pending" for c in challenges)
        assert {c["period_key"] for c in challenges} == {"2026-03-02", "2026-W10"}

        again = await client.get("/api/v1/traders/me/challenges", params={"day": "2026-03-02"}, headers=ALICE)
        assert [c["id"] for c in again.json()["challenges"]] == [c["id"] for c in challenges]


class TestActivityFlow:
    @pytest.mark.asyncio
    async def test_full_day_completes_daily_challenges(self, client: AsyncClient):
        response = await client.post("/api/v1/traders/me/activity", json=FULL_DAY, headers=ALICE)
        assert response.status_code == 200
        data = response.json()

        assert data["grants"]
        assert data["total_xp"] == sum(g["amount"] for g in data["grants"])
        assert data["streak"]["longest_streak"] == 1
        assert data["streak"]["last_qualifying_date"] == "2026-03-02"
        assert data["violations"] == 0

        challenges = (await client.get(
            "/api/v1/traders/me/challenges", params={"day": "2026-03-02"}, headers=ALICE
        )).json()["challenges"]
        daily = [c for c in challenges if c["kind"] == "daily"]
        assert len(daily) == 3
        assert all(c["state"] == "completed" for c in daily)
        assert all(c["resolved_at"] is not None for c in challenges)

    @pytest.mark.asyncio
    async def test_resubmitting_a_day_grants_nothing_new(self, client: AsyncClient):
        first = (await client.post("/api/v1/traders/me/activity", json=FULL_DAY, headers=ALICE)).json()
        second = await client.post("/api/v1/traders/me/activity", json=FULL_DAY, headers=ALICE)
        assert second.status_code == 200
        assert second.json()["grants"] == []
        assert second.json()["total_xp"] == first["total_xp"]

    @pytest.mark.asyncio
    async def test_backfilled_day_keeps_streak_and_earns_xp(self, client: AsyncClient):
        first = (await client.post("/api/v1/traders/me/activity", json=FULL_DAY, headers=ALICE)).json()
        earlier = {**FULL_DAY, "day": "2026-03-01"}
        response = await client.post("/api/v1/traders/me/activity", json=earlier, headers=ALICE)
        assert response.status_code == 200
        data = response.json()

        assert data["streak"]["last_qualifying_date"] == "2026-03-02"
        assert data["streak"]["longest_streak"] == 1
        assert any(g["idempotency_key"].endswith(":2026-03-01") for g in data["grants"])
        assert data["total_xp"] > first["total_xp"]

    @pytest.mark.asyncio
    async def test_future_day_rejected(self, client: AsyncClient):
        today = datetime.now(timezone.utc).date()
        future = {"day": (today + timedelta(days=30)).isoformat(), "journal_entries": 1}
        response = await client.post("/api/v1/traders/me/activity", json=future, headers=ALICE)
        assert response.status_code == 422
        assert "in the future" in response.json()["detail"]

        current = {"day": today.isoformat(), "journal_entries": 1}
        response = await client.post("/api/v1/traders/me/activity", json=current, headers=ALICE)
        assert response.status_code == 200
        assert response.json()["streak"]["last_qualifying_date"] == today.isoformat()

    @pytest.mark.asyncio
    async def test_negative_counts_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/traders/me/activity",
            json={"day": "2026-03-02", "trades_logged": -1},
            headers=ALICE,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_completions_notified(self, client: AsyncClient):
        data = (await client.post("/api/v1/traders/me/activity", json=FULL_DAY, headers=ALICE)).json()
        completed = [t for t in data["transitions"] if t["new_state"] == "completed"]

        response = await client.get(
            "/api/v1/traders/me/notifications", params={"limit": 100}, headers=ALICE
        )
        assert response.status_code == 200
        notifications = response.json()["notifications"]
        subtypes = [n["subtype"] for n in notifications]
        assert subtypes.count("challenge_completed") == len(completed)
        assert all(n["read"] is False for n in notifications)

    @pytest.mark.asyncio
    async def test_mark_notification_read(self, client: AsyncClient):
        await client.post("/api/v1/traders/me/activity", json=FULL_DAY, headers=ALICE)
        notifications = (await client.get("/api/v1/traders/me/notifications", headers=ALICE)).json()["notifications"]
        target = notifications[0]["id"]

        response = await client.post(f"/api/v1/traders/me/notifications/{target}/read", headers=ALICE)
        assert response.status_code == 200
        assert response.json() == {"status": "read"}

        unread = (await client.get(
            "/api/v1/traders/me/notifications", params={"unread_only": True, "limit": 100}, headers=ALICE
        )).json()["notifications"]
        assert target not in [n["id"] for n in unread]

    @pytest.mark.asyncio
    async def test_mark_all_notifications_read(self, client: AsyncClient):
        await client.post("/api/v1/traders/me/activity", json=FULL_DAY, headers=ALICE)
        notifications = (await client.get(
            "/api/v1/traders/me/notifications", params={"limit": 100}, headers=ALICE
        )).json()["notifications"]
        assert notifications

        response = await client.post("/api/v1/traders/me/notifications/read-all", headers=ALICE)
        assert response.status_code == 200
        assert response.json() == {"status": "read", "count": len(notifications)}

        unread = (await client.get(
            "/api/v1/traders/me/notifications", params={"unread_only": True}, headers=ALICE
        )).json()["notifications"]
        assert unread == []

        again = await client.post("/api/v1/traders/me/notifications/read-all", headers=ALICE)
        assert again.json()["count"] == 0

    @pytest.mark.asyncio
    async def test_mark_unknown_notification(self, client: AsyncClient):
        response = await client.post("/api/v1/traders/me/notifications/9999/read", headers=ALICE)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_summary_reflects_activity(self, client: AsyncClient):
        data = (await client.post("/api/v1/traders/me/activity", json=FULL_DAY, headers=ALICE)).json()
        summary = (await client.get("/api/v1/traders/me/gamification", headers=ALICE)).json()
        assert summary["summary"]["total_xp"] == data["total_xp"]
        assert summary["streak"]["longest_streak"] == 1
