"""Suspicious Transaction Report (STR) generation and submission.

Report lifecycle: DRAFT → SUBMITTED → ACKNOWLEDGED.

A report bundles alerts raised against one subject. Its alert and
transaction sets are fixed when the draft is generated. Submission anchors
the report content, stores the returned hash, and marks every contributing
alert REPORTED. A report is submitted at most once.
"""

import uuid
from datetime import UTC, datetime

import structlog

from src.shared.audit import AuditLogSink, emit_audit

from .cases import CaseManager
from .collaborators import AnchoringError, AnchoringService
from .models import PartyType, STRStatus, SuspiciousTransactionReport
from .repositories import AlertRepository, ReportRepository, TransactionHistoryRepository

logger = structlog.get_logger()

ANCHOR_RECORD_TYPE = "str_submission"


def generate_report_number(now: datetime) -> str:
    """``KOR-STR-<year>-<8 digits>``"""
    return f"KOR-STR-{now.year}-{uuid.uuid4().int % 10**8:08d}"


class STRGenerator:
    def __init__(
        self,
        reports: ReportRepository,
        alerts: AlertRepository,
        history: TransactionHistoryRepository,
        cases: CaseManager,
        anchoring: AnchoringService,
        audit: AuditLogSink,
    ) -> None:
        self._reports = reports
        self._alerts = alerts
        self._history = history
        self._cases = cases
        self._anchoring = anchoring
        self._audit = audit

    async def generate_str(
        self,
        subject_id: str,
        subject_type: PartyType,
        alert_ids: list[str],
        suspicion_type: str,
        description: str,
        created_by: str,
    ) -> SuspiciousTransactionReport:
        """Create a DRAFT report from the given alerts.

        Unknown alert ids are dropped. The report's transactions are the
        union of the alerts' related transactions, in first-seen order, and
        ``total_amount`` is the sum of those transactions' amounts.
        """
        found = []
        for alert_id in alert_ids:
            alert = await self._alerts.get(alert_id)
            if alert is not None:
                found.append(alert)

        transaction_ids = list(
            dict.fromkeys(tid for alert in found for tid in alert.related_transactions)
        )
        transactions = await self._history.get_many(transaction_ids)
        evidence = list(dict.fromkeys(e for alert in found for e in alert.evidence))

        now = datetime.now(UTC)
        report = SuspiciousTransactionReport(
            report_id=f"STR-{uuid.uuid4().hex[:16]}",
            report_number=generate_report_number(now),
            subject_id=subject_id,
            subject_type=subject_type,
            alert_ids=[a.alert_id for a in found],
            transaction_ids=transaction_ids,
            total_amount=sum(t.amount for t in transactions),
            suspicion_type=suspicion_type,
            description=description,
            supporting_evidence=evidence,
            created_by=created_by,
            created_at=now,
        )
        await self._reports.add(report)

        dropped = len(alert_ids) - len(found)
        logger.info(
            "str_generated",
            report_id=report.report_id,
            report_number=report.report_number,
            subject_id=subject_id,
            alert_count=len(found),
            dropped_alerts=dropped,
            total_amount=report.total_amount,
        )
        return report

    async def submit_str(self, report_id: str) -> bool:
        """Anchor and submit a DRAFT report.

        Returns False when the report is missing or not DRAFT. Raises
        ``AnchoringError`` when no hash could be obtained; the report then
        stays DRAFT and can be submitted again.
        """
        async with self._reports.lock_report(report_id):
            report = await self._reports.get(report_id)
            if report is None or report.status != STRStatus.DRAFT:
                logger.info("str_submit_skipped", report_id=report_id)
                return False

            submitted_at = datetime.now(UTC)
            payload = {
                "reportNumber": report.report_number,
                "subjectId": report.subject_id,
                "totalAmount": report.total_amount,
                "submittedAt": submitted_at.isoformat(),
            }
            try:
                receipt = await self._anchoring.anchor(report_id, ANCHOR_RECORD_TYPE, payload)
            except AnchoringError:
                logger.exception("str_anchoring_failed", report_id=report_id)
                raise

            updated = await self._reports.compare_and_swap(
                report_id,
                {STRStatus.DRAFT},
                lambda r: r.model_copy(
                    update={
                        "status": STRStatus.SUBMITTED,
                        "submitted_at": submitted_at,
                        "blockchain_hash": receipt.hash,
                    }
                ),
            )
            if updated is None:
                return False

        reported = await self._cases.mark_reported(updated.alert_ids)
        await emit_audit(
            self._audit,
            action="STR_SUBMITTED",
            target_type="str_report",
            target_id=report_id,
            metadata={
                "report_number": updated.report_number,
                "blockchain_hash": updated.blockchain_hash,
                "alert_ids": updated.alert_ids,
                "total_amount": updated.total_amount,
            },
            actor_id=updated.created_by,
            actor_type="admin",
        )
        logger.info(
            "str_submitted",
            report_id=report_id,
            report_number=updated.report_number,
            blockchain_hash=updated.blockchain_hash,
            alerts_reported=len(reported),
        )
        return True

    async def acknowledge_str(self, report_id: str, fiu_reference: str) -> bool:
        """Record the FIU's acknowledgement of a SUBMITTED report."""
        now = datetime.now(UTC)
        updated = await self._reports.compare_and_swap(
            report_id,
            {STRStatus.SUBMITTED},
            lambda r: r.model_copy(
                update={
                    "status": STRStatus.ACKNOWLEDGED,
                    "acknowledged_at": now,
                    "fiu_reference": fiu_reference,
                }
            ),
        )
        if updated is None:
            return False
        logger.info("str_acknowledged", report_id=report_id, fiu_reference=fiu_reference)
        return True

    async def get_report(self, report_id: str) -> SuspiciousTransactionReport | None:
        return await self._reports.get(report_id)

    async def list_reports(self) -> list[SuspiciousTransactionReport]:
        reports = await self._reports.list()
        return sorted(reports, key=lambda r: r.created_at, reverse=True)
