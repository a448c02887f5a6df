"""Pydantic models for the AML domain.

Entities are frozen. State transitions build a new version with
``model_copy(update=...)`` and the owning repository swaps it in.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class PartyType(StrEnum):
    INDIVIDUAL = "INDIVIDUAL"
    MERCHANT = "MERCHANT"
    CORPORATE = "CORPORATE"


class TransactionKind(StrEnum):
    PAYMENT = "PAYMENT"
    TRANSFER = "TRANSFER"
    TOPUP = "TOPUP"
    WITHDRAWAL = "WITHDRAWAL"
    EXCHANGE = "EXCHANGE"


class Channel(StrEnum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    MOBILE = "MOBILE"
    API = "API"


class MonitorFlag(StrEnum):
    CTR_THRESHOLD = "CTR_THRESHOLD"
    SANCTIONS_HIT = "SANCTIONS_HIT"
    VELOCITY_ANOMALY = "VELOCITY_ANOMALY"
    STRUCTURING_SUSPECTED = "STRUCTURING_SUSPECTED"
    HIGH_RISK_SENDER = "HIGH_RISK_SENDER"
    UNUSUAL_AMOUNT = "UNUSUAL_AMOUNT"
    TRAVEL_RULE_REQUIRED = "TRAVEL_RULE_REQUIRED"


class AlertType(StrEnum):
    THRESHOLD_BREACH = "THRESHOLD_BREACH"
    STRUCTURING = "STRUCTURING"
    VELOCITY_ANOMALY = "VELOCITY_ANOMALY"
    PATTERN_MATCH = "PATTERN_MATCH"
    SANCTIONS_HIT = "SANCTIONS_HIT"
    UNUSUAL_BEHAVIOR = "UNUSUAL_BEHAVIOR"
    HIGH_RISK_COUNTERPARTY = "HIGH_RISK_COUNTERPARTY"
    CROSS_BORDER = "CROSS_BORDER"


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertStatus(StrEnum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    ESCALATED = "ESCALATED"
    CLEARED = "CLEARED"
    REPORTED = "REPORTED"
    CLOSED = "CLOSED"


class ResolutionDecision(StrEnum):
    FALSE_POSITIVE = "FALSE_POSITIVE"
    SUSPICIOUS = "SUSPICIOUS"
    CLEARED = "CLEARED"
    REPORTED_TO_FIU = "REPORTED_TO_FIU"


class KYCStatus(StrEnum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    ENHANCED = "ENHANCED"
    REJECTED = "REJECTED"


class STRStatus(StrEnum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ACKNOWLEDGED = "ACKNOWLEDGED"


class TravelRuleStatus(StrEnum):
    PENDING = "PENDING"
    COMPLIANT = "COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class Location(_Frozen):
    region: str
    country: str


class DeviceInfo(_Frozen):
    type: str
    ip: str | None = None


class VASPInfo(_Frozen):
    name: str
    lei_code: str | None = None
    country: str


class TransactionEvent(_Frozen):
    """A settled or pending transaction supplied by the upstream source."""

    transaction_id: str = Field(min_length=1)
    timestamp: datetime
    sender_id: str = Field(min_length=1)
    sender_name: str = ""
    sender_type: PartyType = PartyType.INDIVIDUAL
    recipient_id: str = Field(min_length=1)
    recipient_name: str = ""
    recipient_type: PartyType = PartyType.MERCHANT
    amount: float
    transaction_type: TransactionKind = TransactionKind.PAYMENT
    channel: Channel = Channel.MOBILE
    location: Location | None = None
    device_info: DeviceInfo | None = None
    beneficiary_vasp: VASPInfo | None = None


class MonitoredTransaction(TransactionEvent):
    """A transaction after evaluation; stored once in the history."""

    risk_score: int = 0
    flags: list[MonitorFlag] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class AlertResolution(_Frozen):
    decision: ResolutionDecision
    notes: str
    resolved_at: datetime
    resolved_by: str


class StatusChange(_Frozen):
    from_status: AlertStatus
    to_status: AlertStatus
    changed_at: datetime
    actor: str


class AMLAlert(_Frozen):
    alert_id: str
    alert_type: AlertType
    severity: RiskLevel
    transaction_id: str
    subject_id: str
    subject_type: PartyType
    description: str
    risk_score: int
    created_at: datetime
    status: AlertStatus = AlertStatus.OPEN
    assigned_to: str | None = None
    resolution: AlertResolution | None = None
    related_transactions: list[str] = Field(min_length=1)
    evidence: list[str] = Field(default_factory=list)
    history: list[StatusChange] = Field(default_factory=list)

    def transition(self, to_status: AlertStatus, actor: str, at: datetime, **updates) -> "AMLAlert":
        """Return a new version moved to ``to_status`` with the change recorded."""
        change = StatusChange(
            from_status=self.status, to_status=to_status, changed_at=at, actor=actor
        )
        return self.model_copy(
            update={"status": to_status, "history": [*self.history, change], **updates}
        )


# ---------------------------------------------------------------------------
# Customer risk profiles
# ---------------------------------------------------------------------------


class RiskFactor(_Frozen):
    factor: str
    weight: float
    value: str
    score: float


class OperatingHours(_Frozen):
    start: int = 9
    end: int = 21


class TransactionBaseline(_Frozen):
    average_monthly_volume: float = 0.0
    average_transaction_size: float = 0.0
    typical_counterparties: list[str] = Field(default_factory=list)
    normal_operating_hours: OperatingHours = Field(default_factory=OperatingHours)
    transaction_count: int = 0
    total_volume: float = 0.0
    first_seen: datetime | None = None


class CustomerRiskProfile(_Frozen):
    profile_id: str
    customer_id: str
    customer_type: PartyType
    risk_level: RiskLevel = RiskLevel.LOW
    risk_score: float = 0.0
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    kyc_status: KYCStatus = KYCStatus.PENDING
    last_review_date: datetime
    next_review_date: datetime
    transaction_profile: TransactionBaseline = Field(default_factory=TransactionBaseline)
    alerts: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Regulatory reports
# ---------------------------------------------------------------------------


class SuspiciousTransactionReport(_Frozen):
    report_id: str
    report_number: str
    subject_id: str
    subject_type: PartyType
    alert_ids: list[str]
    transaction_ids: list[str]
    total_amount: float
    suspicion_type: str
    description: str
    supporting_evidence: list[str] = Field(default_factory=list)
    created_by: str
    created_at: datetime
    submitted_at: datetime | None = None
    submitted_to: str = "KOFIU"
    status: STRStatus = STRStatus.DRAFT
    blockchain_hash: str | None = None
    acknowledged_at: datetime | None = None
    fiu_reference: str | None = None


# ---------------------------------------------------------------------------
# Travel rule
# ---------------------------------------------------------------------------


class Originator(_Frozen):
    name: str
    account_id: str
    address: str | None = None
    date_of_birth: str | None = None
    national_id: str | None = None


class Beneficiary(_Frozen):
    name: str
    account_id: str
    vasp_id: str | None = None


class TravelRuleRecord(_Frozen):
    record_id: str
    transaction_id: str
    amount: float
    originator: Originator
    beneficiary: Beneficiary
    originator_vasp: VASPInfo
    beneficiary_vasp: VASPInfo | None = None
    timestamp: datetime
    compliance_status: TravelRuleStatus = TravelRuleStatus.PENDING


# ---------------------------------------------------------------------------
# Monitoring output
# ---------------------------------------------------------------------------


class MonitoringResult(BaseModel):
    transaction_id: str
    allowed: bool
    risk_score: int
    flags: list[MonitorFlag] = Field(default_factory=list)
    alerts: list[AMLAlert] = Field(default_factory=list)
    transaction: MonitoredTransaction | None = None
    travel_rule_record: TravelRuleRecord | None = None

    def public_view(self) -> dict:
        """Caller-facing summary.

        Sanctions match details are admin-only: those alerts expose only
        their id, type and severity.
        """
        alerts = []
        for alert in self.alerts:
            summary = {
                "alert_id": alert.alert_id,
                "alert_type": alert.alert_type.value,
                "severity": alert.severity.value,
            }
            if alert.alert_type != AlertType.SANCTIONS_HIT:
                summary["description"] = alert.description
            alerts.append(summary)
        return {
            "transaction_id": self.transaction_id,
            "allowed": self.allowed,
            "risk_score": self.risk_score,
            "flags": [f.value for f in self.flags],
            "alerts": alerts,
        }
