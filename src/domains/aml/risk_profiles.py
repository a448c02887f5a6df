"""Customer risk profiles.

A profile holds the subject's current risk score and level, KYC status,
review dates, a rolling transaction baseline and the alerts raised against
the subject. Profiles are created on onboarding or lazily on first contact
with the monitor.

Scores move in one direction here: every alert adds
``alert.risk_score × alert_dampening_factor`` (capped). Downward re-scoring
belongs to the periodic review process, which runs outside this module.
"""

import uuid
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

import structlog

from .config import AMLConfig, default_config
from .models import (
    AMLAlert,
    CustomerRiskProfile,
    KYCStatus,
    MonitoredTransaction,
    OperatingHours,
    PartyType,
    RiskFactor,
    RiskLevel,
    TransactionBaseline,
)
from .repositories import RiskProfileRepository

logger = structlog.get_logger()

_HIGH_RISK_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)


def risk_level_for(score: float, config: AMLConfig = default_config) -> RiskLevel:
    """Map a profile score to a level; LOW below ``medium_risk_score``."""
    rc = config.risk_scoring
    if score >= rc.high_risk_score:
        return RiskLevel.HIGH
    if score >= rc.medium_risk_score:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _update_baseline(
    baseline: TransactionBaseline,
    transaction: MonitoredTransaction,
    max_counterparties: int,
) -> TransactionBaseline:
    count = baseline.transaction_count + 1
    total = baseline.total_volume + transaction.amount
    first_seen = baseline.first_seen or transaction.timestamp

    months_observed = max(1.0, (transaction.timestamp - first_seen).days / 30.0)

    counterparties = [c for c in baseline.typical_counterparties if c != transaction.recipient_id]
    counterparties.append(transaction.recipient_id)
    counterparties = counterparties[-max_counterparties:]

    return baseline.model_copy(
        update={
            "transaction_count": count,
            "total_volume": total,
            "first_seen": first_seen,
            "average_transaction_size": total / count,
            "average_monthly_volume": total / months_observed,
            "typical_counterparties": counterparties,
        }
    )


class RiskProfileManager:
    """Owns every write to the risk profile store."""

    def __init__(
        self,
        profiles: RiskProfileRepository,
        config: AMLConfig | None = None,
    ) -> None:
        self.config = config or default_config
        self._profiles = profiles

    def _new_profile(
        self,
        customer_id: str,
        customer_type: PartyType,
        risk_factors: Iterable[RiskFactor] = (),
    ) -> CustomerRiskProfile:
        rc = self.config.risk_scoring
        factors = list(risk_factors)
        score = min(rc.max_risk_score, sum(f.score * f.weight for f in factors))
        now = datetime.now(UTC)
        return CustomerRiskProfile(
            profile_id=f"CRP-{uuid.uuid4().hex[:12]}",
            customer_id=customer_id,
            customer_type=customer_type,
            risk_level=risk_level_for(score, self.config),
            risk_score=score,
            risk_factors=factors,
            kyc_status=KYCStatus.PENDING,
            last_review_date=now,
            next_review_date=now + timedelta(days=rc.review_interval_days),
            transaction_profile=TransactionBaseline(
                normal_operating_hours=OperatingHours(
                    start=rc.normal_hours_start, end=rc.normal_hours_end
                )
            ),
        )

    async def create_risk_profile(
        self,
        customer_id: str,
        customer_type: PartyType,
        initial_risk_factors: list[RiskFactor] | None = None,
    ) -> CustomerRiskProfile:
        """Onboard a customer. Returns the existing profile if there is one.

        The initial score is the weighted sum of the supplied risk factors.
        """
        profile, created = await self._profiles.get_or_create(
            customer_id,
            lambda: self._new_profile(customer_id, customer_type, initial_risk_factors or []),
        )
        if created:
            logger.info(
                "risk_profile_created",
                customer_id=customer_id,
                customer_type=customer_type.value,
                risk_score=profile.risk_score,
                risk_level=profile.risk_level.value,
            )
        return profile

    async def ensure_profile(
        self, customer_id: str, customer_type: PartyType
    ) -> CustomerRiskProfile:
        return await self.create_risk_profile(customer_id, customer_type)

    async def get_profile(self, customer_id: str) -> CustomerRiskProfile | None:
        return await self._profiles.get(customer_id)

    async def apply_alert(self, alert: AMLAlert) -> CustomerRiskProfile:
        """Attach an alert to its subject and raise the subject's score."""
        await self.ensure_profile(alert.subject_id, alert.subject_type)
        rc = self.config.risk_scoring

        def _apply(profile: CustomerRiskProfile) -> CustomerRiskProfile:
            if alert.alert_id in profile.alerts:
                return profile
            score = min(
                rc.max_risk_score,
                profile.risk_score + alert.risk_score * rc.alert_dampening_factor,
            )
            return profile.model_copy(
                update={
                    "alerts": [*profile.alerts, alert.alert_id],
                    "risk_score": score,
                    "risk_level": risk_level_for(score, self.config),
                }
            )

        updated = await self._profiles.update(alert.subject_id, _apply)
        logger.info(
            "risk_profile_alert_applied",
            customer_id=alert.subject_id,
            alert_id=alert.alert_id,
            risk_score=updated.risk_score,
            risk_level=updated.risk_level.value,
        )
        return updated

    async def record_transaction(self, transaction: MonitoredTransaction) -> CustomerRiskProfile:
        """Fold a monitored transaction into the sender's baseline."""
        await self.ensure_profile(transaction.sender_id, transaction.sender_type)
        max_counterparties = self.config.risk_scoring.max_typical_counterparties

        def _fold(profile: CustomerRiskProfile) -> CustomerRiskProfile:
            return profile.model_copy(
                update={
                    "transaction_profile": _update_baseline(
                        profile.transaction_profile, transaction, max_counterparties
                    )
                }
            )

        return await self._profiles.update(transaction.sender_id, _fold)

    async def update_kyc_status(
        self, customer_id: str, kyc_status: KYCStatus
    ) -> CustomerRiskProfile | None:
        updated = await self._profiles.update(
            customer_id, lambda p: p.model_copy(update={"kyc_status": kyc_status})
        )
        if updated:
            logger.info("kyc_status_updated", customer_id=customer_id, kyc_status=kyc_status.value)
        return updated

    async def add_note(self, customer_id: str, note: str) -> CustomerRiskProfile | None:
        return await self._profiles.update(
            customer_id, lambda p: p.model_copy(update={"notes": [*p.notes, note]})
        )

    async def get_high_risk_customers(self) -> list[CustomerRiskProfile]:
        return [p for p in await self._profiles.list() if p.risk_level in _HIGH_RISK_LEVELS]
