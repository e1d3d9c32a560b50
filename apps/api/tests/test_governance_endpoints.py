from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from loyalvest_api.core.settings import settings
from loyalvest_api.models import GovernanceProposal, ProposalStatus


HEADERS = {"X-API-Key": "dao-secret"}


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _proposal(**overrides) -> dict:
    payload = {
        "changeType": "merchant_limits",
        "parameterName": "default_monthly_points_cap",
        "oldValue": 1000,
        "newValue": 2500,
        "reason": "Raise the cap for merchants without a plan",
        "proposedBy": "merchant-council",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_governed_change_flow(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "engine_api_key", "dao-secret")

    async with _client(app) as client:
        unauthorized = await client.post("/api/v1/governance/changes", json=_proposal())
        assert unauthorized.status_code == 401

        created = await client.post("/api/v1/governance/changes", json=_proposal(), headers=HEADERS)
        assert created.status_code == 201
        receipt = created.json()
        assert receipt["category"] == "merchant"
        assert receipt["governanceDomain"] == "Business & Merchant DAO"
        assert receipt["votingType"] == "simple_majority"
        change_id = receipt["changeRequestId"]

        pending = await client.get("/api/v1/governance/changes")
        assert [item["id"] for item in pending.json()] == [change_id]

        blocked = await client.post(f"/api/v1/governance/changes/{change_id}/execute", headers=HEADERS)
        assert blocked.status_code == 409
        assert blocked.json()["error"]["code"] == "change_not_approved"
        assert blocked.json()["error"]["status"] == "pending"

        outcome = await client.post(
            f"/api/v1/governance/proposals/{receipt['proposalId']}/outcome",
            json={"status": "passed", "yesVotes": 80, "noVotes": 20, "totalVotes": 100},
            headers=HEADERS,
        )
        assert outcome.status_code == 200
        assert outcome.json()["status"] == "passed"

        approval = await client.get(f"/api/v1/governance/changes/{change_id}/approval")
        assert approval.json()["approved"] is True
        assert approval.json()["changeStatus"] == "approved"

        executed = await client.post(f"/api/v1/governance/changes/{change_id}/execute", headers=HEADERS)
        assert executed.status_code == 200
        assert executed.json()["status"] == "implemented"
        assert executed.json()["proposal"]["yesVotes"] == 80

        parameters = await client.get("/api/v1/governance/parameters")
        assert parameters.json()["parameters"]["default_monthly_points_cap"] == 2500

        implemented = await client.get("/api/v1/governance/changes", params={"status": "implemented"})
        assert [item["id"] for item in implemented.json()] == [change_id]

        snapshot = await client.get("/api/v1/observability/engine", headers=HEADERS)
        assert snapshot.json()["changes"] == {"proposed": 1, "blocked": 1, "implemented": 1}

        metrics = await client.get("/api/v1/observability/prometheus", headers=HEADERS)
        assert 'loyalvest_governed_changes_total{event="implemented"} 1' in metrics.text


@pytest.mark.asyncio
async def test_rejected_change_reports_rejection(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        created = await client.post("/api/v1/governance/changes", json=_proposal())
        receipt = created.json()

        await client.post(
            f"/api/v1/governance/proposals/{receipt['proposalId']}/outcome",
            json={"status": "rejected"},
        )
        response = await client.post(f"/api/v1/governance/changes/{receipt['changeRequestId']}/execute")

        assert response.status_code == 409
        assert response.json()["error"]["status"] == "rejected"

        detail = await client.get(f"/api/v1/governance/changes/{receipt['changeRequestId']}")
        assert detail.json()["status"] == "rejected"
        assert detail.json()["rejectedAt"] is not None


@pytest.mark.asyncio
async def test_invalid_change_requests(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        bad_type = await client.post("/api/v1/governance/changes", json=_proposal(changeType="warp_drive"))
        assert bad_type.status_code == 400
        assert bad_type.json()["error"]["code"] == "invalid_input"

        bad_value = await client.post("/api/v1/governance/changes", json=_proposal(newValue=-1))
        assert bad_value.status_code == 400

        bad_status = await client.get("/api/v1/governance/changes", params={"status": "someday"})
        assert bad_status.status_code == 400

        missing = await client.get("/api/v1/governance/changes/00000000-0000-0000-0000-000000000000")
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_category_table_and_health(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        categories = await client.get("/api/v1/governance/categories")
        health = await client.get("/api/v1/health")
        healthz = await client.get("/healthz")

    body = categories.json()
    assert len(body["domains"]) == 5
    assert "technical" in body["byPriority"]["high"]
    assert health.json()["status"] == "ok"
    assert healthz.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_change_detail_read_does_not_sync_decision(app_with_db) -> None:
    app, session_factory = app_with_db

    async with _client(app) as client:
        created = await client.post("/api/v1/governance/changes", json=_proposal())
        receipt = created.json()

        async with session_factory() as session:
            await session.execute(
                update(GovernanceProposal)
                .where(GovernanceProposal.id == UUID(receipt["proposalId"]))
                .values(status=ProposalStatus.PASSED)
            )
            await session.commit()

        detail = await client.get(f"/api/v1/governance/changes/{receipt['changeRequestId']}")
        assert detail.json()["status"] == "pending"
        assert detail.json()["approvedAt"] is None

        approval = await client.get(f"/api/v1/governance/changes/{receipt['changeRequestId']}/approval")
        assert approval.json()["changeStatus"] == "approved"

        detail = await client.get(f"/api/v1/governance/changes/{receipt['changeRequestId']}")
        assert detail.json()["status"] == "approved"


@pytest.mark.asyncio
async def test_engine_parameter_cannot_use_weaker_category(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/v1/governance/changes", json=_proposal(category="education"))

        assert response.status_code == 400
        assert response.json()["error"]["minimum_priority"] == "medium"
        listed = await client.get("/api/v1/governance/changes")
        assert listed.json() == []
