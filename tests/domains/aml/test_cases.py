"""Tests for the alert case manager."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from src.domains.aml.cases import CaseManager
from src.domains.aml.models import (
    AlertStatus,
    AlertType,
    AMLAlert,
    PartyType,
    ResolutionDecision,
    RiskLevel,
)
from src.domains.aml.repositories import (
    InMemoryAlertRepository,
    InMemoryReportRepository,
    InMemoryRiskProfileRepository,
    InMemoryTransactionHistory,
)
from src.domains.aml.risk_profiles import RiskProfileManager

T0 = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _make_alert(**kwargs) -> AMLAlert:
    defaults = {
        "alert_id": "alert-001",
        "alert_type": AlertType.STRUCTURING,
        "severity": RiskLevel.HIGH,
        "transaction_id": "tx-005",
        "subject_id": "user-001",
        "subject_type": PartyType.INDIVIDUAL,
        "description": "Suspected structuring",
        "risk_score": 70,
        "created_at": T0,
        "related_transactions": ["tx-001", "tx-005"],
    }
    defaults.update(kwargs)
    return AMLAlert(**defaults)


@pytest.fixture
def alerts() -> InMemoryAlertRepository:
    return InMemoryAlertRepository()


@pytest.fixture
def cases(alerts, audit_sink) -> CaseManager:
    return CaseManager(
        alerts,
        RiskProfileManager(InMemoryRiskProfileRepository()),
        InMemoryTransactionHistory(),
        InMemoryReportRepository(),
        audit_sink,
    )


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolve_open_alert(self, alerts, cases, audit_sink):
        await alerts.add(_make_alert())

        assert await cases.resolve(
            "alert-001", ResolutionDecision.FALSE_POSITIVE, "Payroll batch", "officer-1"
        )

        alert = await alerts.get("alert-001")
        assert alert.status == AlertStatus.CLOSED
        assert alert.resolution.decision == ResolutionDecision.FALSE_POSITIVE
        assert alert.resolution.resolved_by == "officer-1"
        assert alert.history[-1].from_status == AlertStatus.OPEN
        assert audit_sink.actions() == ["ALERT_RESOLVED"]
        assert audit_sink.events[0]["actor_id"] == "officer-1"

    @pytest.mark.asyncio
    async def test_resolving_twice_is_a_no_op(self, alerts, cases, audit_sink):
        await alerts.add(_make_alert())
        await cases.resolve("alert-001", ResolutionDecision.SUSPICIOUS, "first", "officer-1")
        closed = await alerts.get("alert-001")

        assert not await cases.resolve(
            "alert-001", ResolutionDecision.CLEARED, "second", "officer-2"
        )
        assert await alerts.get("alert-001") == closed
        assert audit_sink.actions() == ["ALERT_RESOLVED"]

    @pytest.mark.asyncio
    async def test_resolve_missing_alert(self, cases, audit_sink):
        assert not await cases.resolve("nope", ResolutionDecision.CLEARED, "", "officer-1")
        assert audit_sink.events == []

    @pytest.mark.asyncio
    async def test_concurrent_resolutions_single_winner(self, alerts, cases):
        await alerts.add(_make_alert())
        outcomes = await asyncio.gather(
            *(
                cases.resolve("alert-001", ResolutionDecision.CLEARED, "", f"officer-{i}")
                for i in range(5)
            )
        )
        assert outcomes.count(True) == 1

    @pytest.mark.asyncio
    async def test_reported_alert_can_still_be_closed(self, alerts, cases):
        await alerts.add(_make_alert())
        await cases.mark_reported(["alert-001"])

        assert await cases.resolve("alert-001", ResolutionDecision.REPORTED_TO_FIU, "", "o-1")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_review_escalate_clear(self, alerts, cases):
        await alerts.add(_make_alert())

        reviewed = await cases.start_review("alert-001", "officer-1")
        assert reviewed.status == AlertStatus.UNDER_REVIEW
        assert reviewed.assigned_to == "officer-1"

        escalated = await cases.escalate("alert-001", "officer-1", "linked accounts")
        assert escalated.status == AlertStatus.ESCALATED
        assert "escalation:linked accounts" in escalated.evidence

        cleared = await cases.clear("alert-001", "mlro")
        assert cleared.status == AlertStatus.CLEARED
        assert [c.to_status for c in cleared.history] == [
            AlertStatus.UNDER_REVIEW,
            AlertStatus.ESCALATED,
            AlertStatus.CLEARED,
        ]

    @pytest.mark.asyncio
    async def test_invalid_transitions_rejected(self, alerts, cases):
        await alerts.add(_make_alert())

        assert await cases.clear("alert-001", "mlro") is None
        await cases.resolve("alert-001", ResolutionDecision.CLEARED, "", "o-1")
        assert await cases.start_review("alert-001", "officer-1") is None
        assert await cases.escalate("alert-001", "officer-1") is None

    @pytest.mark.asyncio
    async def test_mark_reported_skips_closed(self, alerts, cases):
        await alerts.add(_make_alert(alert_id="a-open"))
        await alerts.add(_make_alert(alert_id="a-closed"))
        await cases.resolve("a-closed", ResolutionDecision.CLEARED, "", "o-1")

        reported = await cases.mark_reported(["a-open", "a-closed", "a-missing"])

        assert reported == ["a-open"]
        assert (await alerts.get("a-open")).status == AlertStatus.REPORTED
        assert (await alerts.get("a-closed")).status == AlertStatus.CLOSED


class TestQueries:
    @pytest.mark.asyncio
    async def test_open_alerts_newest_first(self, alerts, cases):
        await alerts.add(_make_alert(alert_id="old", created_at=T0))
        await alerts.add(_make_alert(alert_id="new", created_at=T0 + timedelta(hours=1)))
        await alerts.add(_make_alert(alert_id="done", created_at=T0 + timedelta(hours=2)))
        await cases.start_review("old", "officer-1")
        await cases.resolve("done", ResolutionDecision.CLEARED, "", "o-1")

        assert [a.alert_id for a in await cases.get_open_alerts()] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_compliance_stats(self, alerts, cases):
        await alerts.add(_make_alert(alert_id="a1"))
        await alerts.add(_make_alert(alert_id="a2", alert_type=AlertType.SANCTIONS_HIT))
        await cases.resolve("a2", ResolutionDecision.SUSPICIOUS, "", "o-1")

        stats = await cases.get_compliance_stats()

        assert stats["total_alerts"] == 2
        assert stats["open_alerts"] == 1
        assert stats["alerts_by_type"] == {"STRUCTURING": 1, "SANCTIONS_HIT": 1}
        assert stats["alerts_by_status"] == {"OPEN": 1, "CLOSED": 1}
        assert stats["strs_submitted"] == 0
        assert stats["transactions_monitored"] == 0
