"""Integration tests for the HTTP API."""

from datetime import UTC, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.services import get_services
from tests.conftest import SANCTIONED_ID

pytestmark = pytest.mark.integration

T0 = datetime(2026, 3, 2, 3, 0, tzinfo=UTC)


def _transaction(i: int, **kwargs) -> dict:
    body = {
        "transaction_id": f"tx-{i:03d}",
        "timestamp": (T0 + timedelta(hours=12 * i)).isoformat(),
        "sender_id": "user-001",
        "recipient_id": "merchant-001",
        "amount": 9_500_000,
    }
    body.update(kwargs)
    return body


@pytest.fixture
def client(services):
    app.state.services = services
    app.dependency_overrides[get_services] = lambda: services
    transport = ASGITransport(app=app)
    yield AsyncClient(transport=transport, base_url="http://test")
    app.dependency_overrides.clear()
    del app.state.services


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        async with client:
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "uptime_seconds" in data


class TestMonitorEndpoints:
    @pytest.mark.asyncio
    async def test_sanctions_details_hidden_from_caller(self, client):
        async with client:
            response = await client.post(
                "/api/v1/aml/monitor", json=_transaction(0, recipient_id=SANCTIONED_ID)
            )

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is False
        assert "SANCTIONS_HIT" in data["flags"]
        [alert] = data["alerts"]
        assert alert["alert_type"] == "SANCTIONS_HIT"
        assert "description" not in alert

    @pytest.mark.asyncio
    async def test_invalid_event_is_400(self, client):
        async with client:
            response = await client.post(
                "/api/v1/aml/monitor", json=_transaction(0, recipient_id="user-001")
            )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_failed"
        assert response.json()["field"] == "recipient_id"

    @pytest.mark.asyncio
    async def test_thresholds(self, client):
        async with client:
            response = await client.get("/api/v1/aml/thresholds")

        assert response.status_code == 200
        assert response.json()["ctr_threshold"] == 10_000_000

    @pytest.mark.asyncio
    async def test_unknown_alert_is_404(self, client):
        async with client:
            response = await client.get("/api/v1/aml/alerts/ALT-missing")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestCaseAndReportFlow:
    @pytest.mark.asyncio
    async def test_structuring_to_submitted_str(self, client):
        async with client:
            for i in range(5):
                response = await client.post("/api/v1/aml/monitor", json=_transaction(i))
                assert response.status_code == 200

            alerts = (await client.get("/api/v1/aml/alerts?alert_type=STRUCTURING")).json()
            assert alerts["total"] == 1
            alert_id = alerts["items"][0]["alert_id"]

            review = await client.post(
                f"/api/v1/aml/alerts/{alert_id}/review", json={"reviewer": "officer-1"}
            )
            assert review.json()["updated"] is True

            report = await client.post(
                "/api/v1/aml/reports",
                json={
                    "subject_id": "user-001",
                    "alert_ids": [alert_id],
                    "suspicion_type": "STRUCTURING",
                    "created_by": "officer-1",
                },
            )
            assert report.status_code == 200
            report_id = report.json()["report_id"]

            submitted = await client.post(f"/api/v1/aml/reports/{report_id}/submit")
            again = await client.post(f"/api/v1/aml/reports/{report_id}/submit")
            alert = await client.get(f"/api/v1/aml/alerts/{alert_id}")

        assert submitted.json()["submitted"] is True
        assert submitted.json()["blockchain_hash"].startswith("0x")
        assert again.json()["submitted"] is False
        assert alert.json()["status"] == "REPORTED"

    @pytest.mark.asyncio
    async def test_resolve_twice(self, client):
        async with client:
            await client.post(
                "/api/v1/aml/monitor", json=_transaction(0, sender_id=SANCTIONED_ID)
            )
            [alert] = (await client.get("/api/v1/aml/alerts")).json()["items"]
            body = {"decision": "SUSPICIOUS", "notes": "confirmed match", "resolver": "o-1"}

            first = await client.post(f"/api/v1/aml/alerts/{alert['alert_id']}/resolve", json=body)
            second = await client.post(
                f"/api/v1/aml/alerts/{alert['alert_id']}/resolve", json=body
            )

        assert first.json() == {"alert_id": alert["alert_id"], "resolved": True}
        assert second.json()["resolved"] is False


class TestPolicyEndpoints:
    @pytest.mark.asyncio
    async def test_create_validate_and_authorize(self, client):
        async with client:
            await client.post(
                "/api/v1/policies/merchants",
                json={
                    "merchant_id": "merchant-001",
                    "categories": ["FOOD"],
                    "region": "Seongnam",
                    "municipality_id": "seongnam",
                },
            )
            created = await client.post(
                "/api/v1/policies",
                json={
                    "admin_id": "admin-1",
                    "admin_did": "did:example:admin-1",
                    "policy": {
                        "name": "Seongnam Love Gift Card",
                        "municipality_id": "seongnam",
                        "effective_from": "2026-01-01T00:00:00Z",
                        "status": "active",
                        "rules": [
                            {
                                "type": "DISCOUNT_RATE",
                                "parameters": {"rate": 0.05, "max_discount": 10000},
                            },
                            {
                                "type": "MERCHANT_CATEGORY",
                                "parameters": {"categories": ["FOOD"]},
                            },
                        ],
                    },
                },
            )
            assert created.status_code == 200
            policy_id = created.json()["policy_id"]

            validated = await client.post(
                "/api/v1/policies/validate",
                json={
                    "user_id": "user-001",
                    "merchant_id": "merchant-001",
                    "amount": 300000,
                    "timestamp": T0.isoformat(),
                },
            )
            authorized = await client.post(
                "/api/v1/payments/authorize",
                json={
                    "transaction": _transaction(0, amount=300000),
                    "merchant_id": "merchant-001",
                },
            )
            fetched = await client.get(f"/api/v1/policies/{policy_id}")

        assert validated.json()["allowed"] is True
        assert validated.json()["modified_amount"] == 290000
        assert validated.json()["applied_policies"] == [policy_id]
        assert authorized.json()["allowed"] is True
        assert authorized.json()["charged_amount"] == 290000
        assert fetched.json()["status"] == "active"

    @pytest.mark.asyncio
    async def test_unknown_rule_type_is_400(self, client):
        async with client:
            response = await client.post(
                "/api/v1/policies",
                json={
                    "admin_id": "admin-1",
                    "admin_did": "did:example:admin-1",
                    "policy": {
                        "name": "Bad",
                        "municipality_id": "seongnam",
                        "effective_from": "2026-01-01T00:00:00Z",
                        "rules": [{"type": "LOYALTY_POINTS"}],
                    },
                },
            )

        assert response.status_code == 400
        assert response.json()["field"] == "type"

    @pytest.mark.asyncio
    async def test_missing_policy_is_404(self, client):
        async with client:
            response = await client.patch(
                "/api/v1/policies/POL-missing",
                json={"admin_id": "a", "admin_did": "d", "updates": {"name": "x"}},
            )

        assert response.status_code == 404
