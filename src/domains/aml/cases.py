"""Alert case management.

Alert lifecycle:

    OPEN → UNDER_REVIEW → ESCALATED → CLEARED | REPORTED
    any non-CLOSED status → CLOSED   (resolve)

REPORTED is set only by the report generator when an STR carrying the
alert is submitted. Every transition is a compare-and-swap on the alert's
status, so a double resolution or a resolve racing a REPORTED mark cannot
both win.
"""

from collections import Counter
from collections.abc import Iterable
from datetime import UTC, datetime

import structlog

from src.shared.audit import AuditLogSink, emit_audit

from .models import (
    AlertResolution,
    AlertStatus,
    AMLAlert,
    CustomerRiskProfile,
    ResolutionDecision,
    STRStatus,
)
from .repositories import AlertRepository, ReportRepository, TransactionHistoryRepository
from .risk_profiles import RiskProfileManager

logger = structlog.get_logger()

_RESOLVABLE = frozenset(AlertStatus) - {AlertStatus.CLOSED}
_REPORTABLE = frozenset(AlertStatus) - {AlertStatus.CLOSED, AlertStatus.REPORTED}
_OPEN_STATUSES = (AlertStatus.OPEN, AlertStatus.UNDER_REVIEW)


class CaseManager:
    def __init__(
        self,
        alerts: AlertRepository,
        profiles: RiskProfileManager,
        history: TransactionHistoryRepository,
        reports: ReportRepository,
        audit: AuditLogSink,
    ) -> None:
        self._alerts = alerts
        self._profiles = profiles
        self._history = history
        self._reports = reports
        self._audit = audit

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def resolve(
        self,
        alert_id: str,
        decision: ResolutionDecision,
        notes: str,
        resolver: str,
    ) -> bool:
        """Close an alert with a resolution record.

        Returns False, changing nothing, when the alert does not exist or is
        already CLOSED.
        """
        now = datetime.now(UTC)
        resolution = AlertResolution(
            decision=decision, notes=notes, resolved_at=now, resolved_by=resolver
        )
        updated = await self._alerts.compare_and_swap(
            alert_id,
            _RESOLVABLE,
            lambda a: a.transition(AlertStatus.CLOSED, resolver, now, resolution=resolution),
        )
        if updated is None:
            logger.info("alert_resolve_skipped", alert_id=alert_id)
            return False

        await emit_audit(
            self._audit,
            action="ALERT_RESOLVED",
            target_type="aml_alert",
            target_id=alert_id,
            metadata={"decision": decision.value, "notes": notes},
            actor_id=resolver,
            actor_type="admin",
        )
        logger.info("alert_resolved", alert_id=alert_id, decision=decision.value, resolver=resolver)
        return True

    async def start_review(self, alert_id: str, reviewer: str) -> AMLAlert | None:
        now = datetime.now(UTC)
        updated = await self._alerts.compare_and_swap(
            alert_id,
            {AlertStatus.OPEN},
            lambda a: a.transition(AlertStatus.UNDER_REVIEW, reviewer, now, assigned_to=reviewer),
        )
        if updated:
            logger.info("alert_review_started", alert_id=alert_id, reviewer=reviewer)
        return updated

    async def escalate(self, alert_id: str, actor: str, reason: str = "") -> AMLAlert | None:
        now = datetime.now(UTC)

        def _escalate(alert: AMLAlert) -> AMLAlert:
            evidence = [*alert.evidence, f"escalation:{reason}"] if reason else alert.evidence
            return alert.transition(AlertStatus.ESCALATED, actor, now, evidence=evidence)

        updated = await self._alerts.compare_and_swap(alert_id, _OPEN_STATUSES, _escalate)
        if updated:
            logger.warning("alert_escalated", alert_id=alert_id, actor=actor, reason=reason)
        return updated

    async def clear(self, alert_id: str, actor: str) -> AMLAlert | None:
        now = datetime.now(UTC)
        updated = await self._alerts.compare_and_swap(
            alert_id,
            {AlertStatus.ESCALATED},
            lambda a: a.transition(AlertStatus.CLEARED, actor, now),
        )
        if updated:
            logger.info("alert_cleared", alert_id=alert_id, actor=actor)
        return updated

    async def mark_reported(self, alert_ids: Iterable[str], actor: str = "system") -> list[str]:
        """Move alerts to REPORTED. Returns the ids that changed."""
        now = datetime.now(UTC)
        reported = []
        for alert_id in alert_ids:
            updated = await self._alerts.compare_and_swap(
                alert_id,
                _REPORTABLE,
                lambda a: a.transition(AlertStatus.REPORTED, actor, now),
            )
            if updated:
                reported.append(alert_id)
        return reported

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_alert(self, alert_id: str) -> AMLAlert | None:
        return await self._alerts.get(alert_id)

    async def get_open_alerts(self) -> list[AMLAlert]:
        """OPEN and UNDER_REVIEW alerts, newest first."""
        alerts = [a for a in await self._alerts.list() if a.status in _OPEN_STATUSES]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)

    async def get_risk_profile(self, customer_id: str) -> CustomerRiskProfile | None:
        return await self._profiles.get_profile(customer_id)

    async def get_compliance_stats(self) -> dict:
        alerts = await self._alerts.list()
        reports = await self._reports.list()
        high_risk = await self._profiles.get_high_risk_customers()
        return {
            "transactions_monitored": await self._history.count(),
            "total_alerts": len(alerts),
            "open_alerts": sum(1 for a in alerts if a.status in _OPEN_STATUSES),
            "alerts_by_type": dict(Counter(a.alert_type.value for a in alerts)),
            "alerts_by_status": dict(Counter(a.status.value for a in alerts)),
            "strs_submitted": sum(1 for r in reports if r.status != STRStatus.DRAFT),
            "high_risk_customers": len(high_risk),
        }
