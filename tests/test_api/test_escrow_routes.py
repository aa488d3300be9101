"""HTTP tests for the escrow routes."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest

from opportunity_escrow.api.deps import get_redis_client

if TYPE_CHECKING:
    from fastapi import FastAPI
    from httpx import AsyncClient

BASE = "/api/v1/escrow"


def escrow_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "opportunity_id": str(uuid.uuid4()),
        "investor_id": "investor-1",
        "entrepreneur_id": "entrepreneur-1",
        "amount": "1000.00",
        "conditions": [
            {
                "condition_type": "milestone_completion",
                "description": "Factory fit-out completed",
                "reference_id": "milestone-fit-out",
            }
        ],
    }
    payload.update(overrides)
    return payload


async def open_funded(client: AsyncClient) -> str:
    created = await client.post(BASE, json=escrow_payload())
    assert created.status_code == 201
    account_id = created.json()["id"]
    funded = await client.post(f"{BASE}/{account_id}/fund", json={"amount": "1000.00"})
    assert funded.status_code == 200
    return account_id


class TestCreateAndRead:
    @pytest.mark.asyncio
    async def test_create_returns_pending_account(self, client: AsyncClient) -> None:
        response = await client.post(BASE, json=escrow_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["account_number"].startswith("ESC-")
        assert float(body["held_amount"]) == 1000.0
        assert float(body["available_balance"]) == 0.0
        assert len(body["conditions"]) == 1
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_create_without_conditions_is_unprocessable(self, client: AsyncClient) -> None:
        response = await client.post(BASE, json=escrow_payload(conditions=[]))

        assert response.status_code == 422
        assert response.json()["error"] == "RELEASE_CONDITIONS_REQUIRED"

    @pytest.mark.asyncio
    async def test_negative_amount_fails_request_validation(self, client: AsyncClient) -> None:
        response = await client.post(BASE, json=escrow_payload(amount="-1.00"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_account_is_404(self, client: AsyncClient) -> None:
        response = await client.get(f"{BASE}/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_status_lists_allowed_events(self, client: AsyncClient) -> None:
        account_id = await open_funded(client)

        body = (await client.get(f"{BASE}/{account_id}/status")).json()

        assert body["status"] == "funded"
        assert body["conditions_met"] is False
        assert set(body["allowed_events"]) == {
            "partial_release",
            "full_release",
            "dispute",
            "cancel",
        }

    @pytest.mark.asyncio
    async def test_user_accounts_and_stats(self, client: AsyncClient) -> None:
        await open_funded(client)
        await client.post(BASE, json=escrow_payload(amount="500.00"))

        accounts = await client.get(f"{BASE}/users/investor-1", params={"role": "investor"})
        stats = await client.get(f"{BASE}/users/investor-1/stats")

        assert len(accounts.json()) == 2
        assert stats.json()["total_accounts"] == 2
        assert stats.json()["funded_accounts"] == 1
        assert float(stats.json()["held_amount"]) == 500.0


class TestMoneyMovements:
    @pytest.mark.asyncio
    async def test_release_and_transaction_log(self, client: AsyncClient) -> None:
        account_id = await open_funded(client)

        released = await client.post(
            f"{BASE}/{account_id}/release",
            json={"amount": "400.00", "recipient_id": "entrepreneur-1", "reason": "Tranche 1"},
        )
        transactions = await client.get(f"{BASE}/{account_id}/transactions")

        assert released.status_code == 200
        assert released.json()["status"] == "active"
        types = [t["type"] for t in transactions.json()]
        assert sorted(types) == ["deposit", "release"]
        release = next(t for t in transactions.json() if t["type"] == "release")
        assert release["metadata"] == {"recipient_id": "entrepreneur-1"}

    @pytest.mark.asyncio
    async def test_overdraw_is_conflict(self, client: AsyncClient) -> None:
        account_id = await open_funded(client)

        response = await client.post(
            f"{BASE}/{account_id}/release",
            json={"amount": "5000.00", "recipient_id": "entrepreneur-1", "reason": "Too much"},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "INSUFFICIENT_FUNDS"

    @pytest.mark.asyncio
    async def test_invalid_transition_is_conflict(self, client: AsyncClient) -> None:
        account_id = await open_funded(client)

        response = await client.post(f"{BASE}/{account_id}/fund", json={"amount": "1000.00"})

        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_fee_dispute_and_cancel(self, client: AsyncClient) -> None:
        account_id = await open_funded(client)

        fee = await client.post(f"{BASE}/{account_id}/fee", json={})
        disputed = await client.post(f"{BASE}/{account_id}/dispute", json={"reason": "Contested"})
        cancelled = await client.post(f"{BASE}/{account_id}/cancel", json={"reason": "Refund"})

        assert float(fee.json()["available_balance"]) == 990.0
        assert disputed.json()["status"] == "disputed"
        assert cancelled.status_code == 409


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_replayed_release_is_rejected(self, app: FastAPI, client: AsyncClient) -> None:
        redis = AsyncMock()
        redis.set.side_effect = [True, None]
        app.dependency_overrides[get_redis_client] = lambda: redis
        account_id = await open_funded(client)
        body = {
            "amount": "100.00",
            "recipient_id": "entrepreneur-1",
            "reason": "Tranche 1",
            "idempotency_key": "req-42",
        }

        first = await client.post(f"{BASE}/{account_id}/release", json=body)
        second = await client.post(f"{BASE}/{account_id}/release", json=body)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error"] == "DUPLICATE_OPERATION"
        account = (await client.get(f"{BASE}/{account_id}")).json()
        assert float(account["available_balance"]) == 900.0
        assert redis.set.await_args.args[0] == f"idempotency:release:{account_id}:req-42"

    @pytest.mark.asyncio
    async def test_failed_release_frees_the_key(self, app: FastAPI, client: AsyncClient) -> None:
        redis = AsyncMock()
        redis.set.return_value = True
        app.dependency_overrides[get_redis_client] = lambda: redis
        account_id = await open_funded(client)

        response = await client.post(
            f"{BASE}/{account_id}/release",
            json={
                "amount": "5000.00",
                "recipient_id": "entrepreneur-1",
                "reason": "Too much",
                "idempotency_key": "req-43",
            },
        )

        assert response.status_code == 409
        redis.delete.assert_awaited_once_with(f"idempotency:release:{account_id}:req-43")


class TestConditionsAndAutoRelease:
    @pytest.mark.asyncio
    async def test_manual_approval_then_auto_release(self, client: AsyncClient) -> None:
        account_id = await open_funded(client)
        conditions = (await client.get(f"{BASE}/{account_id}/conditions")).json()

        blocked = await client.post(f"{BASE}/{account_id}/auto-release")
        met = await client.post(f"{BASE}/conditions/{conditions[0]['id']}/met")
        released = await client.post(f"{BASE}/{account_id}/auto-release")

        assert blocked.json() == {
            "account_id": account_id,
            "released": False,
            "blocking_reasons": ["Not all release conditions have been met"],
        }
        assert met.json()["is_met"] is True
        assert released.json()["released"] is True
        status = (await client.get(f"{BASE}/{account_id}/status")).json()
        assert status["status"] == "released"

    @pytest.mark.asyncio
    async def test_document_upload_marks_matching_conditions(self, client: AsyncClient) -> None:
        account_id = await open_funded(client)
        added = await client.post(
            f"{BASE}/{account_id}/conditions",
            json={
                "condition_type": "document_upload",
                "description": "Signed shareholder agreement",
                "reference_id": "shareholder_agreement",
            },
        )

        response = await client.post(
            f"{BASE}/{account_id}/documents", json={"document_type": "shareholder_agreement"}
        )

        assert added.status_code == 201
        by_type = {c["condition_type"]: c["is_met"] for c in response.json()}
        assert by_type == {"milestone_completion": False, "document_upload": True}

    @pytest.mark.asyncio
    async def test_auto_release_of_unknown_account(self, client: AsyncClient) -> None:
        response = await client.post(f"{BASE}/{uuid.uuid4()}/auto-release")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_condition(self, client: AsyncClient) -> None:
        response = await client.post(f"{BASE}/conditions/{uuid.uuid4()}/met")
        assert response.status_code == 404
