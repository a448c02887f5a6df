"""Tests for STR generation and submission."""

import asyncio
import re
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from src.domains.aml.collaborators import AnchoringError
from src.domains.aml.models import (
    AlertStatus,
    AlertType,
    PartyType,
    STRStatus,
    TransactionEvent,
)
from src.services import compose

T0 = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _make_event(i: int, **kwargs) -> TransactionEvent:
    defaults = {
        "transaction_id": f"tx-{i:03d}",
        "timestamp": T0 + timedelta(hours=12 * i),
        "sender_id": "S1",
        "recipient_id": "merchant-001",
        "amount": 9_500_000.0,
    }
    defaults.update(kwargs)
    return TransactionEvent(**defaults)


async def _structuring_alert(services) -> str:
    """Drive five in-band transactions through the monitor; return the alert id."""
    for i in range(5):
        result = await services.monitor.monitor(_make_event(i))
    [alert] = [a for a in result.alerts if a.alert_type == AlertType.STRUCTURING]
    return alert.alert_id


async def _draft(services, alert_ids: list[str]):
    return await services.reports.generate_str(
        subject_id="S1",
        subject_type=PartyType.INDIVIDUAL,
        alert_ids=alert_ids,
        suspicion_type="STRUCTURING",
        description="Repeated transfers just below the CTR threshold",
        created_by="officer-1",
    )


class TestGenerate:
    @pytest.mark.asyncio
    async def test_draft_unions_transactions_and_sums_amounts(self, services):
        alert_id = await _structuring_alert(services)

        report = await _draft(services, [alert_id, "missing-alert"])

        assert report.status == STRStatus.DRAFT
        assert report.alert_ids == [alert_id]
        assert report.transaction_ids == [f"tx-{i:03d}" for i in range(5)]
        assert report.total_amount == pytest.approx(47_500_000)
        assert report.submitted_to == "KOFIU"
        assert re.fullmatch(r"KOR-STR-\d{4}-\d{8}", report.report_number)

    @pytest.mark.asyncio
    async def test_generation_leaves_alerts_untouched(self, services):
        alert_id = await _structuring_alert(services)
        await _draft(services, [alert_id])

        alert = await services.cases.get_alert(alert_id)
        assert alert.status == AlertStatus.OPEN


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_anchors_and_marks_alerts_reported(
        self, services, anchoring, audit_sink
    ):
        alert_id = await _structuring_alert(services)
        report = await _draft(services, [alert_id])

        assert await services.reports.submit_str(report.report_id)

        submitted = await services.reports.get_report(report.report_id)
        assert submitted.status == STRStatus.SUBMITTED
        assert submitted.submitted_at is not None
        assert submitted.blockchain_hash.startswith("0x")
        assert anchoring.calls == [report.report_id]
        assert (await services.cases.get_alert(alert_id)).status == AlertStatus.REPORTED
        assert "STR_SUBMITTED" in audit_sink.actions()

    @pytest.mark.asyncio
    async def test_second_submit_returns_false_without_reanchoring(self, services, anchoring):
        alert_id = await _structuring_alert(services)
        report = await _draft(services, [alert_id])

        assert await services.reports.submit_str(report.report_id)
        first = await services.reports.get_report(report.report_id)
        assert not await services.reports.submit_str(report.report_id)

        assert len(anchoring.calls) == 1
        assert await services.reports.get_report(report.report_id) == first

    @pytest.mark.asyncio
    async def test_concurrent_submits_anchor_once(self, services, anchoring):
        alert_id = await _structuring_alert(services)
        report = await _draft(services, [alert_id])

        outcomes = await asyncio.gather(
            *(services.reports.submit_str(report.report_id) for _ in range(3))
        )

        assert outcomes.count(True) == 1
        assert len(anchoring.calls) == 1

    @pytest.mark.asyncio
    async def test_submit_unknown_report(self, services):
        assert not await services.reports.submit_str("STR-missing")

    @pytest.mark.asyncio
    async def test_anchoring_failure_keeps_draft(self, audit_sink, sanctions):
        anchoring = AsyncMock()
        anchoring.anchor.side_effect = AnchoringError("ledger unreachable")
        services = compose(audit_sink, anchoring, sanctions)
        alert_id = await _structuring_alert(services)
        report = await _draft(services, [alert_id])

        with pytest.raises(AnchoringError):
            await services.reports.submit_str(report.report_id)

        assert (await services.reports.get_report(report.report_id)).status == STRStatus.DRAFT
        assert (await services.cases.get_alert(alert_id)).status == AlertStatus.OPEN
        assert "STR_SUBMITTED" not in audit_sink.actions()


class TestAcknowledge:
    @pytest.mark.asyncio
    async def test_acknowledge_submitted_report(self, services):
        alert_id = await _structuring_alert(services)
        report = await _draft(services, [alert_id])

        assert not await services.reports.acknowledge_str(report.report_id, "FIU-2026-001")
        await services.reports.submit_str(report.report_id)
        assert await services.reports.acknowledge_str(report.report_id, "FIU-2026-001")

        acknowledged = await services.reports.get_report(report.report_id)
        assert acknowledged.status == STRStatus.ACKNOWLEDGED
        assert acknowledged.fiu_reference == "FIU-2026-001"

        stats = await services.cases.get_compliance_stats()
        assert stats["strs_submitted"] == 1
