"""HTTP tests for the opportunity routes and the health check."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import pytest

from opportunity_escrow.api.routes import health

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncEngine

BASE = "/api/v1/opportunities"


def opportunity_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "owner_id": "entrepreneur-1",
        "title": "Harare Solar Cold Storage",
        "type": "going_concern",
        "status": "under_review",
        "fields": {
            "equity_offered": 20,
            "expected_roi": 18,
            "funding_goal": 250000,
            "primary_currency": "USD",
            "description": "Expansion of an operating cold storage business",
            "kyc_status": "approved",
        },
    }
    payload.update(overrides)
    return payload


def days_from_now(days: int) -> str:
    return (datetime.now(UTC) + timedelta(days=days)).isoformat()


class TestOpportunityRoutes:
    @pytest.mark.asyncio
    async def test_create_add_milestone_and_validate(self, client: AsyncClient) -> None:
        created = await client.post(BASE, json=opportunity_payload())
        opportunity_id = created.json()["id"]
        milestone = await client.post(
            f"{BASE}/{opportunity_id}/milestones",
            json={"title": "Site lease signed", "target_date": days_from_now(30)},
        )

        result = await client.post(f"{BASE}/{opportunity_id}/validate")
        stored = await client.get(f"{BASE}/{opportunity_id}")

        assert created.status_code == 201
        assert milestone.status_code == 201
        assert result.json()["valid"] is True
        assert result.json()["risk_level"] == "low"
        assert stored.json()["risk_score"] == 0
        assert [m["title"] for m in stored.json()["milestones"]] == ["Site lease signed"]

    @pytest.mark.asyncio
    async def test_validation_reports_rule_failures(self, client: AsyncClient) -> None:
        payload = opportunity_payload(title="")
        payload["fields"]["equity_offered"] = 150
        opportunity_id = (await client.post(BASE, json=payload)).json()["id"]

        result = (await client.post(f"{BASE}/{opportunity_id}/validate")).json()

        assert result["valid"] is False
        assert "Title is required" in result["errors"]
        assert result["compliance_status"] == "requires_review"
        assert "Submit the opportunity for manual review" in result["recommendations"]

    @pytest.mark.asyncio
    async def test_closed_opportunity_is_conflict(self, client: AsyncClient) -> None:
        opportunity_id = (await client.post(BASE, json=opportunity_payload())).json()["id"]

        closed = await client.patch(f"{BASE}/{opportunity_id}/status", json={"status": "closed"})
        reopened = await client.patch(
            f"{BASE}/{opportunity_id}/status", json={"status": "published"}
        )

        assert closed.json()["status"] == "closed"
        assert reopened.status_code == 409

    @pytest.mark.asyncio
    async def test_list_by_owner(self, client: AsyncClient) -> None:
        await client.post(BASE, json=opportunity_payload(title="First"))
        await client.post(BASE, json=opportunity_payload(title="Second"))
        await client.post(BASE, json=opportunity_payload(owner_id="someone-else"))

        response = await client.get(BASE, params={"owner_id": "entrepreneur-1"})

        assert {o["title"] for o in response.json()} == {"First", "Second"}

    @pytest.mark.asyncio
    async def test_unknown_opportunity(self, client: AsyncClient) -> None:
        response = await client.get(f"{BASE}/{uuid.uuid4()}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_and_refresh_milestones(self, client: AsyncClient) -> None:
        opportunity_id = (await client.post(BASE, json=opportunity_payload())).json()["id"]
        milestone_id = (
            await client.post(
                f"{BASE}/{opportunity_id}/milestones",
                json={"title": "Permits", "target_date": days_from_now(10)},
            )
        ).json()["id"]

        updated = await client.patch(
            f"{BASE}/milestones/{milestone_id}",
            json={"target_date": days_from_now(-2)},
        )
        refreshed = await client.post(f"{BASE}/{opportunity_id}/milestones/refresh")

        assert updated.status_code == 200
        assert [m["status"] for m in refreshed.json()] == ["overdue"]


class TestMilestoneCompletionReleasesEscrow:
    async def _funded_account_for_milestone(self, client: AsyncClient) -> tuple[str, str]:
        opportunity_id = (await client.post(BASE, json=opportunity_payload())).json()["id"]
        milestone_id = (
            await client.post(
                f"{BASE}/{opportunity_id}/milestones",
                json={"title": "Factory fit-out", "target_date": days_from_now(20)},
            )
        ).json()["id"]
        account_id = (
            await client.post(
                "/api/v1/escrow",
                json={
                    "opportunity_id": opportunity_id,
                    "investor_id": "investor-1",
                    "entrepreneur_id": "entrepreneur-1",
                    "amount": "2500.00",
                    "conditions": [
                        {
                            "condition_type": "milestone_completion",
                            "description": "Factory fit-out completed",
                            "reference_id": milestone_id,
                        }
                    ],
                },
            )
        ).json()["id"]
        await client.post(f"/api/v1/escrow/{account_id}/fund", json={"amount": "2500.00"})
        return milestone_id, account_id

    @pytest.mark.asyncio
    async def test_completing_the_milestone_pays_out(self, client: AsyncClient) -> None:
        milestone_id, account_id = await self._funded_account_for_milestone(client)

        completed = await client.post(
            f"{BASE}/milestones/{milestone_id}/complete", json={"notes": "Inspected"}
        )
        again = await client.post(f"{BASE}/milestones/{milestone_id}/complete", json={})

        assert completed.status_code == 200
        assert completed.json()["milestone"]["status"] == "completed"
        assert completed.json()["released_accounts"] == [account_id]
        assert again.json()["released_accounts"] == []
        account = (await client.get(f"/api/v1/escrow/{account_id}")).json()
        assert account["status"] == "released"
        assert float(account["available_balance"]) == 0.0

    @pytest.mark.asyncio
    async def test_status_update_to_completed_pays_out(self, client: AsyncClient) -> None:
        milestone_id, account_id = await self._funded_account_for_milestone(client)

        updated = await client.patch(
            f"{BASE}/milestones/{milestone_id}", json={"status": "completed"}
        )

        assert updated.status_code == 200
        assert updated.json()["status"] == "completed"
        conditions = (await client.get(f"/api/v1/escrow/{account_id}/conditions")).json()
        assert all(c["is_met"] for c in conditions)
        assert all(c["completed_at"] is not None for c in conditions)
        account = (await client.get(f"/api/v1/escrow/{account_id}")).json()
        assert account["status"] == "released"
        assert float(account["available_balance"]) == 0.0

    @pytest.mark.asyncio
    async def test_other_updates_leave_conditions_unmet(self, client: AsyncClient) -> None:
        milestone_id, account_id = await self._funded_account_for_milestone(client)

        await client.patch(f"{BASE}/milestones/{milestone_id}", json={"status": "in_progress"})

        conditions = (await client.get(f"/api/v1/escrow/{account_id}/conditions")).json()
        assert not any(c["is_met"] for c in conditions)
        account = (await client.get(f"/api/v1/escrow/{account_id}")).json()
        assert account["status"] == "funded"


class TestHealth:
    @pytest.mark.asyncio
    async def test_degraded_without_redis(
        self,
        client: AsyncClient,
        db_engine: AsyncEngine,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(health, "get_engine", lambda: db_engine)
        monkeypatch.setattr(health, "get_optional_redis", lambda: None)

        body = (await client.get("/health")).json()

        assert body["database"] == "healthy"
        assert body["redis"] == "not connected"
        assert body["status"] == "degraded"
