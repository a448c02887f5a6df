"""Real-time AML transaction monitoring.

Each inbound transaction runs through six independent checks whose risk
contributions are summed:

  CTR threshold       +30   amount ≥ ctr_threshold
  Sanctions           +100  sender or recipient listed; CRITICAL alert
  Velocity            +25   ≥ max_hourly_transactions in an hour holding it; MEDIUM alert
  Structuring         +40   N in-band transactions in a str_pattern_days span; HIGH alert
  Sender profile      +20 / +15   high-risk sender / amount > 5× baseline average
  Travel rule         0     amount ≥ travel_rule_threshold; records originator/beneficiary

The transaction is blocked when the total reaches ``block_risk_score`` or a
sanctions hit is present.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog

from src.shared.audit import AuditLogSink, emit_audit
from src.shared.errors import ValidationFailure

from .collaborators import SanctionsLookup
from .config import AMLConfig, default_config
from .models import (
    AlertType,
    AMLAlert,
    CustomerRiskProfile,
    MonitoredTransaction,
    MonitorFlag,
    MonitoringResult,
    PartyType,
    RiskLevel,
    TransactionEvent,
)
from .repositories import AlertRepository, TransactionHistoryRepository
from .risk_profiles import RiskProfileManager
from .travel_rule import TravelRuleRecorder

logger = structlog.get_logger()


@dataclass
class AlertDraft:
    """An alert before it is assigned an id and stored."""

    alert_type: AlertType
    severity: RiskLevel
    subject_id: str
    subject_type: PartyType
    description: str
    risk_score: int
    related_transactions: list[str]
    evidence: list[str] = field(default_factory=list)


@dataclass
class CheckResult:
    flags: list[MonitorFlag] = field(default_factory=list)
    risk: int = 0
    alerts: list[AlertDraft] = field(default_factory=list)


def _krw(amount: float) -> str:
    return f"KRW {amount:,.0f}"


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def check_ctr_threshold(
    event: TransactionEvent,
    config: AMLConfig = default_config,
) -> CheckResult:
    """Flag single transactions at or above the CTR reporting threshold."""
    if not config.ctr.enabled or event.amount < config.ctr.ctr_threshold:
        return CheckResult()
    return CheckResult(flags=[MonitorFlag.CTR_THRESHOLD], risk=config.ctr.risk_contribution)


def check_sanctions(
    event: TransactionEvent,
    sanctions: SanctionsLookup,
    config: AMLConfig = default_config,
) -> CheckResult:
    """Screen both parties against the sanctions list.

    One CRITICAL alert per listed party; the risk contribution applies once.
    """
    if not config.sanctions.enabled:
        return CheckResult()

    parties = [
        (event.sender_id, event.sender_type, "sender"),
        (event.recipient_id, event.recipient_type, "recipient"),
    ]
    hits = [p for p in parties if sanctions.is_sanctioned(p[0])]
    if not hits:
        return CheckResult()

    alerts = [
        AlertDraft(
            alert_type=AlertType.SANCTIONS_HIT,
            severity=RiskLevel.CRITICAL,
            subject_id=party_id,
            subject_type=party_type,
            description=(
                f"Transaction {event.transaction_id} involves sanctioned {role} "
                f"{party_id} ({_krw(event.amount)})."
            ),
            risk_score=config.sanctions.alert_risk_score,
            related_transactions=[event.transaction_id],
            evidence=[f"sanctions_list:{party_id}", f"role:{role}"],
        )
        for party_id, party_type, role in hits
    ]
    return CheckResult(
        flags=[MonitorFlag.SANCTIONS_HIT],
        risk=config.sanctions.risk_contribution,
        alerts=alerts,
    )


def densest_window(
    at: datetime,
    transactions: list[MonitoredTransaction],
    window: timedelta,
) -> list[MonitoredTransaction]:
    """Largest group of ``transactions`` sharing one ``window``-long span with ``at``.

    Spans are ``[start, start + window)`` with ``at - window < start <= at``, so
    history timestamped after ``at`` (late or offline-synced transactions)
    counts alongside history before it. Oldest first.
    """
    nearby = sorted(
        (t for t in transactions if at - window < t.timestamp < at + window),
        key=lambda t: t.timestamp,
    )
    starts = [t.timestamp for t in nearby if t.timestamp <= at] + [at]
    best: list[MonitoredTransaction] = []
    for start in starts:
        members = [t for t in nearby if start <= t.timestamp < start + window]
        if len(members) > len(best):
            best = members
    return best


def check_velocity(
    event: TransactionEvent,
    nearby_transactions: list[MonitoredTransaction],
    config: AMLConfig = default_config,
) -> CheckResult:
    """Count the sender's transactions in the busiest window holding this one.

    ``nearby_transactions`` holds the sender's other recorded transactions,
    earlier or later than this one.
    """
    vc = config.velocity
    if not vc.enabled:
        return CheckResult()

    window_transactions = densest_window(
        event.timestamp, nearby_transactions, timedelta(hours=vc.window_hours)
    )
    count = len(window_transactions) + 1
    if count < vc.max_hourly_transactions:
        return CheckResult()

    related = [t.transaction_id for t in window_transactions] + [event.transaction_id]
    return CheckResult(
        flags=[MonitorFlag.VELOCITY_ANOMALY],
        risk=vc.risk_contribution,
        alerts=[
            AlertDraft(
                alert_type=AlertType.VELOCITY_ANOMALY,
                severity=RiskLevel.MEDIUM,
                subject_id=event.sender_id,
                subject_type=event.sender_type,
                description=(
                    f"Unusual transaction frequency: {count} transactions in "
                    f"{vc.window_hours} hour(s) (limit: {vc.max_hourly_transactions})."
                ),
                risk_score=vc.alert_risk_score,
                related_transactions=related,
                evidence=[f"window_count:{count}", f"window_hours:{vc.window_hours}"],
            )
        ],
    )


def check_structuring(
    event: TransactionEvent,
    nearby_transactions: list[MonitoredTransaction],
    config: AMLConfig = default_config,
) -> CheckResult:
    """Detect repeated transactions just under the CTR threshold.

    ``nearby_transactions`` holds the sender's other recorded transactions,
    earlier or later than this one. The check fires when this transaction is
    itself in band and some ``str_pattern_days`` span holding it contains
    ``str_pattern_count`` in-band ones.
    """
    sc = config.structuring
    if not sc.enabled:
        return CheckResult()

    low, high = config.structuring_band
    if not (low <= event.amount < high):
        return CheckResult()

    matched = densest_window(
        event.timestamp,
        [t for t in nearby_transactions if low <= t.amount < high],
        timedelta(days=sc.str_pattern_days),
    )
    if len(matched) < sc.str_pattern_count - 1:
        return CheckResult()

    related = [t.transaction_id for t in matched] + [event.transaction_id]
    total = sum(t.amount for t in matched) + event.amount
    return CheckResult(
        flags=[MonitorFlag.STRUCTURING_SUSPECTED],
        risk=sc.risk_contribution,
        alerts=[
            AlertDraft(
                alert_type=AlertType.STRUCTURING,
                severity=RiskLevel.HIGH,
                subject_id=event.sender_id,
                subject_type=event.sender_type,
                description=(
                    f"Suspected structuring: {len(related)} transactions between "
                    f"{_krw(low)} and {_krw(high)} within {sc.str_pattern_days} days "
                    f"totaling {_krw(total)}."
                ),
                risk_score=sc.alert_risk_score,
                related_transactions=related,
                evidence=[f"band:{low:.0f}-{high:.0f}", f"pattern_count:{len(related)}"],
            )
        ],
    )


def check_profile(
    event: TransactionEvent,
    profile: CustomerRiskProfile | None,
    config: AMLConfig = default_config,
) -> CheckResult:
    """Compare the transaction with the sender's risk profile and baseline."""
    pc = config.profile
    if not pc.enabled or profile is None:
        return CheckResult()

    result = CheckResult()
    if profile.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        result.flags.append(MonitorFlag.HIGH_RISK_SENDER)
        result.risk += pc.high_risk_sender_contribution

    average = profile.transaction_profile.average_transaction_size
    # No baseline yet for first-time senders
    if average > 0 and event.amount > average * pc.unusual_amount_multiplier:
        result.flags.append(MonitorFlag.UNUSUAL_AMOUNT)
        result.risk += pc.unusual_amount_contribution

    return result


def check_travel_rule(
    event: TransactionEvent,
    config: AMLConfig = default_config,
) -> CheckResult:
    """Informational flag only; never adds risk."""
    if not config.travel_rule.enabled:
        return CheckResult()
    if event.amount >= config.travel_rule.travel_rule_threshold:
        return CheckResult(flags=[MonitorFlag.TRAVEL_RULE_REQUIRED])
    return CheckResult()


def validate_event(event: TransactionEvent) -> TransactionEvent:
    """Reject malformed events before evaluation. Naive timestamps are read as UTC."""
    if not event.sender_id.strip() or not event.recipient_id.strip():
        raise ValidationFailure("Sender and recipient are required", field="sender_id")
    if not math.isfinite(event.amount) or event.amount <= 0:
        raise ValidationFailure(
            f"Amount must be a positive finite number, got {event.amount}", field="amount"
        )
    if event.sender_id == event.recipient_id:
        raise ValidationFailure("Sender and recipient must differ", field="recipient_id")
    if event.timestamp.tzinfo is None:
        event = event.model_copy(update={"timestamp": event.timestamp.replace(tzinfo=UTC)})
    return event


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------


class TransactionMonitor:
    """Scores one transaction at a time and records the outcome."""

    def __init__(
        self,
        history: TransactionHistoryRepository,
        alerts: AlertRepository,
        profiles: RiskProfileManager,
        sanctions: SanctionsLookup,
        audit: AuditLogSink,
        travel_rule: TravelRuleRecorder | None = None,
        config: AMLConfig | None = None,
    ) -> None:
        self.config = config or default_config
        self._history = history
        self._alerts = alerts
        self._profiles = profiles
        self._sanctions = sanctions
        self._audit = audit
        self._travel_rule = travel_rule

    def get_thresholds(self) -> dict:
        return self.config.thresholds()

    async def monitor(self, event: TransactionEvent) -> MonitoringResult:
        """Evaluate ``event``, store it, and return the allow/block decision.

        Reading the sender's history, evaluating and appending happen under
        the sender's lock so concurrent transactions from one sender always
        see each other in their velocity and structuring windows.
        """
        event = validate_event(event)
        cfg = self.config
        ts = event.timestamp

        async with self._history.lock_sender(event.sender_id):
            if await self._history.get(event.transaction_id) is not None:
                raise ValidationFailure(
                    f"Transaction {event.transaction_id} was already monitored",
                    field="transaction_id",
                )

            velocity_window = timedelta(hours=cfg.velocity.window_hours)
            pattern_window = timedelta(days=cfg.structuring.str_pattern_days)
            reach = max(velocity_window, pattern_window)
            nearby = await self._history.for_sender(
                event.sender_id, ts - reach, ts + reach
            )

            profile = await self._profiles.ensure_profile(event.sender_id, event.sender_type)

            checks = [
                check_ctr_threshold(event, cfg),
                check_sanctions(event, self._sanctions, cfg),
                check_velocity(event, nearby, cfg),
                check_structuring(event, nearby, cfg),
                check_profile(event, profile, cfg),
                check_travel_rule(event, cfg),
            ]

            flags: list[MonitorFlag] = []
            risk_score = 0
            drafts: list[AlertDraft] = []
            for check in checks:
                flags.extend(f for f in check.flags if f not in flags)
                risk_score += check.risk
                drafts.extend(check.alerts)

            allowed = risk_score < cfg.block_risk_score and MonitorFlag.SANCTIONS_HIT not in flags

            monitored = MonitoredTransaction(
                **event.model_dump(), risk_score=risk_score, flags=flags
            )
            await self._history.append(monitored)

            now = datetime.now(UTC)
            raised: list[AMLAlert] = []
            for draft in drafts:
                alert = AMLAlert(
                    alert_id=f"ALT-{uuid.uuid4().hex[:16]}",
                    alert_type=draft.alert_type,
                    severity=draft.severity,
                    transaction_id=event.transaction_id,
                    subject_id=draft.subject_id,
                    subject_type=draft.subject_type,
                    description=draft.description,
                    risk_score=draft.risk_score,
                    created_at=now,
                    related_transactions=draft.related_transactions,
                    evidence=draft.evidence,
                )
                await self._alerts.add(alert)
                await self._profiles.apply_alert(alert)
                raised.append(alert)

            await self._profiles.record_transaction(monitored)

        travel_record = None
        if MonitorFlag.TRAVEL_RULE_REQUIRED in flags and self._travel_rule is not None:
            travel_record = await self._travel_rule.record_for_transaction(monitored)

        await emit_audit(
            self._audit,
            action="TRANSACTION_MONITORED",
            target_type="aml_monitoring",
            target_id=event.transaction_id,
            metadata={
                "risk_score": risk_score,
                "flags": [f.value for f in flags],
                "alert_count": len(raised),
                "allowed": allowed,
            },
        )

        log = logger.info if allowed else logger.warning
        log(
            "transaction_monitored",
            transaction_id=event.transaction_id,
            sender_id=event.sender_id,
            risk_score=risk_score,
            flags=[f.value for f in flags],
            alert_count=len(raised),
            allowed=allowed,
        )

        return MonitoringResult(
            transaction_id=event.transaction_id,
            allowed=allowed,
            risk_score=risk_score,
            flags=flags,
            alerts=raised,
            transaction=monitored,
            travel_rule_record=travel_record,
        )
