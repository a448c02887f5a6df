"""Payment authorization gate.

Runs the AML risk gate and the policy business-rule gate for one payment.
The payment goes ahead only when both pass; the caller is responsible for
actually holding settlement when ``allowed`` is False.
"""

import structlog
from pydantic import BaseModel, Field

from src.domains.aml.models import MonitorFlag, MonitoringResult, TransactionEvent
from src.domains.aml.monitoring import TransactionMonitor
from src.domains.policy.engine import PolicyEngine
from src.domains.policy.models import PolicyValidationResult

logger = structlog.get_logger()


class AuthorizationResult(BaseModel):
    transaction_id: str
    allowed: bool
    charged_amount: float
    monitoring: MonitoringResult
    policy: PolicyValidationResult
    flags: list[MonitorFlag] = Field(default_factory=list)
    violated_rules: list[str] = Field(default_factory=list)

    def public_view(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "allowed": self.allowed,
            "charged_amount": self.charged_amount,
            "risk_score": self.monitoring.risk_score,
            "flags": [f.value for f in self.flags],
            "violated_rules": self.violated_rules,
            "violations": [v.model_dump(mode="json") for v in self.policy.violations],
            "discount_applied": self.policy.discount_applied,
            "monitoring": self.monitoring.public_view(),
        }


class PaymentAuthorizer:
    def __init__(self, monitor: TransactionMonitor, policies: PolicyEngine) -> None:
        self._monitor = monitor
        self._policies = policies

    async def authorize(
        self,
        event: TransactionEvent,
        merchant_id: str,
        user_credentials: list[str] | None = None,
        municipality_id: str | None = None,
    ) -> AuthorizationResult:
        monitoring = await self._monitor.monitor(event)
        policy = await self._policies.validate_transaction(
            user_id=event.sender_id,
            merchant_id=merchant_id,
            amount=event.amount,
            timestamp=event.timestamp,
            user_credentials=user_credentials,
            municipality_id=municipality_id,
        )

        allowed = monitoring.allowed and policy.allowed
        charged = policy.modified_amount if policy.modified_amount is not None else event.amount
        if allowed:
            await self._policies.record_usage(event.sender_id, charged, event.timestamp)

        result = AuthorizationResult(
            transaction_id=event.transaction_id,
            allowed=allowed,
            charged_amount=charged,
            monitoring=monitoring,
            policy=policy,
            flags=monitoring.flags,
            violated_rules=[v.rule_id for v in policy.violations],
        )
        logger.info(
            "payment_authorized" if allowed else "payment_declined",
            transaction_id=event.transaction_id,
            merchant_id=merchant_id,
            aml_allowed=monitoring.allowed,
            policy_allowed=policy.allowed,
            charged_amount=charged,
        )
        return result
