from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from loyalvest_api.core.settings import settings


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _transaction(merchant_id, transaction_id: str, amount: float = 200, **extra) -> dict:
    payload = {
        "merchantId": str(merchant_id),
        "holderId": "holder-1",
        "transactionId": transaction_id,
        "amount": amount,
        "rewardPercentage": 5,
    }
    payload.update(extra)
    return payload


@pytest.mark.asyncio
async def test_transaction_lifecycle_endpoints(app_with_db, make_merchant, assign_tier) -> None:
    app, _ = app_with_db
    merchant = await make_merchant(points_cap=1000)
    await assign_tier("holder-1", multiplier="2.0")

    async with _client(app) as client:
        response = await client.post("/api/v1/rewards/transactions", json=_transaction(merchant.id, "order-1"))
        assert response.status_code == 201
        created = response.json()
        assert created["amount"] == 20.0
        assert created["status"] == "vesting"
        assert created["remainingMonthlyPoints"] == 980.0

        grant = await client.get(f"/api/v1/rewards/grants/{created['grantId']}")
        assert grant.status_code == 200
        assert grant.json()["transactionId"] == "order-1"

        summary = await client.get("/api/v1/rewards/holders/holder-1/vesting")
        assert summary.status_code == 200
        body = summary.json()
        assert len(body["vesting"]) == 1
        assert body["vesting"][0]["daysRemaining"] == 30
        assert body["totals"]["vesting"] == {"count": 1, "amount": 20.0}

        cancelled = await client.post("/api/v1/rewards/transactions/order-1/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["cancelledAt"] is not None

        again = await client.post("/api/v1/rewards/transactions/order-1/cancel")
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "already_cancelled"


@pytest.mark.asyncio
async def test_transaction_error_envelopes(app_with_db, make_merchant) -> None:
    app, _ = app_with_db
    merchant = await make_merchant(points_cap=15)

    async with _client(app) as client:
        first = await client.post("/api/v1/rewards/transactions", json=_transaction(merchant.id, "tx-1"))
        assert first.status_code == 201

        duplicate = await client.post("/api/v1/rewards/transactions", json=_transaction(merchant.id, "tx-1"))
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["code"] == "duplicate_transaction"
        assert duplicate.json()["error"]["grant_id"] == first.json()["grantId"]

        over_cap = await client.post("/api/v1/rewards/transactions", json=_transaction(merchant.id, "tx-2"))
        assert over_cap.status_code == 422
        error = over_cap.json()["error"]
        assert error["code"] == "monthly_points_limit_reached"
        assert float(error["remaining"]) == 5.0

        unknown = await client.post("/api/v1/rewards/transactions", json=_transaction(uuid4(), "tx-3"))
        assert unknown.status_code == 404
        assert unknown.json()["error"]["code"] == "not_found"

        invalid = await client.post(
            "/api/v1/rewards/transactions", json=_transaction(merchant.id, "tx-4", rewardPercentage=150)
        )
        assert invalid.status_code == 422

        missing = await client.get(f"/api/v1/rewards/grants/{uuid4()}")
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_points_usage_endpoint(app_with_db, make_merchant) -> None:
    app, _ = app_with_db
    merchant = await make_merchant(points_cap=100)

    async with _client(app) as client:
        await client.post("/api/v1/rewards/transactions", json=_transaction(merchant.id, "tx-u", amount=1600))
        response = await client.get(f"/api/v1/merchants/{merchant.id}/points-usage")

    assert response.status_code == 200
    usage = response.json()
    assert usage["pointsDistributed"] == 80.0
    assert usage["usagePercentage"] == 80.0
    assert usage["status"] == "warning"


@pytest.mark.asyncio
async def test_maturity_sweep_endpoint_requires_api_key(app_with_db, make_merchant, monkeypatch) -> None:
    app, _ = app_with_db
    merchant = await make_merchant()
    monkeypatch.setattr(settings, "engine_api_key", "sweep-secret")
    reference = (datetime.now(timezone.utc) + timedelta(days=31)).isoformat()

    async with _client(app) as client:
        await client.post("/api/v1/rewards/transactions", json=_transaction(merchant.id, "tx-s"))

        denied = await client.post("/api/v1/rewards/maturity-sweeps", json={"referenceTime": reference})
        assert denied.status_code == 401

        response = await client.post(
            "/api/v1/rewards/maturity-sweeps",
            json={"referenceTime": reference},
            headers={"X-API-Key": "sweep-secret"},
        )
        assert response.status_code == 200
        assert response.json()["matured"] == 1
        assert response.json()["triggered_by"] == "api"

        cancel = await client.post("/api/v1/rewards/transactions/tx-s/cancel")
        assert cancel.status_code == 409
        assert cancel.json()["error"]["code"] == "already_vested"
