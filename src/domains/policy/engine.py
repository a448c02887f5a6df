"""Municipal policy engine.

Validates a payment against every ACTIVE policy in scope before the bank is
asked to settle it. Policies are ordered by the lowest priority number among
their rules and each policy's enabled rules run in priority order. All rules
are evaluated and every violation is reported; the payment is allowed only
when there are none. DISCOUNT_RATE rules accumulate a discount that is
surfaced as ``modified_amount``.

Policy lifecycle:

    draft → active
    active → paused | expired
    paused → active | expired
    expired is terminal
"""

import math
import uuid
from datetime import UTC, datetime

import structlog

from src.shared.audit import AuditLogSink, emit_audit
from src.shared.errors import ValidationFailure
from src.shared.locks import KeyedLocks

from .config import PolicyConfig, default_config
from .models import (
    MerchantProfile,
    Policy,
    PolicyDraft,
    PolicyRule,
    PolicyRuleInput,
    PolicyRuleType,
    PolicyStatus,
    PolicyUpdate,
    PolicyValidationRequest,
    PolicyValidationResult,
    Violation,
)
from .repositories import MerchantDirectory, PolicyRepository, UsageLedger
from .rules import EvaluationContext, PolicyRuleEvaluator, RuleOutcome, as_utc, build_evaluators

logger = structlog.get_logger()

_TRANSITIONS: dict[PolicyStatus, set[PolicyStatus]] = {
    PolicyStatus.DRAFT: {PolicyStatus.ACTIVE},
    PolicyStatus.ACTIVE: {PolicyStatus.PAUSED, PolicyStatus.EXPIRED},
    PolicyStatus.PAUSED: {PolicyStatus.ACTIVE, PolicyStatus.EXPIRED},
    PolicyStatus.EXPIRED: set(),
}


def _min_priority(policy: Policy) -> float:
    return min((r.priority for r in policy.rules), default=math.inf)


def _in_effect(policy: Policy, at: datetime) -> bool:
    if as_utc(policy.effective_from) > at:
        return False
    return policy.effective_until is None or at < as_utc(policy.effective_until)


class PolicyEngine:
    def __init__(
        self,
        policies: PolicyRepository,
        merchants: MerchantDirectory,
        usage: UsageLedger,
        audit: AuditLogSink,
        config: PolicyConfig | None = None,
        evaluators: dict[PolicyRuleType, PolicyRuleEvaluator] | None = None,
    ) -> None:
        self.config = config or default_config
        self._policies = policies
        self._merchants = merchants
        self._usage = usage
        self._audit = audit
        self._evaluators = evaluators or build_evaluators(self.config.max_discount_rate)
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def _build_rules(self, inputs: list[PolicyRuleInput]) -> list[PolicyRule]:
        rules = []
        for i, item in enumerate(inputs):
            try:
                rule_type = PolicyRuleType(item.type)
            except ValueError:
                raise ValidationFailure(f"Unknown rule type '{item.type}'", field="type") from None

            evaluator = self._evaluators.get(rule_type)
            if evaluator is not None:
                evaluator.validate_parameters(item.parameters)

            rules.append(
                PolicyRule(
                    rule_id=item.rule_id or f"RULE-{i + 1}-{uuid.uuid4().hex[:8]}",
                    type=rule_type,
                    enabled=item.enabled,
                    parameters=item.parameters,
                    priority=(
                        item.priority
                        if item.priority is not None
                        else self.config.default_rule_priority
                    ),
                )
            )
        return rules

    @staticmethod
    def _check_window(effective_from: datetime, effective_until: datetime | None) -> None:
        if effective_until is not None and as_utc(effective_until) <= as_utc(effective_from):
            raise ValidationFailure(
                "effective_until must be after effective_from", field="effective_until"
            )

    async def create_policy(self, draft: PolicyDraft, admin_id: str, admin_did: str) -> Policy:
        if draft.status not in (PolicyStatus.DRAFT, PolicyStatus.ACTIVE):
            raise ValidationFailure(
                f"New policies start as draft or active, not {draft.status}", field="status"
            )
        self._check_window(draft.effective_from, draft.effective_until)

        now = datetime.now(UTC)
        policy = Policy(
            policy_id=f"POL-{uuid.uuid4().hex[:12]}",
            name=draft.name,
            description=draft.description,
            municipality_id=draft.municipality_id,
            rules=self._build_rules(draft.rules),
            effective_from=draft.effective_from,
            effective_until=draft.effective_until,
            status=draft.status,
            created_by=admin_id,
            created_at=now,
            updated_at=now,
        )
        await self._policies.add(policy)

        await emit_audit(
            self._audit,
            action="POLICY_CREATED",
            target_type="policy",
            target_id=policy.policy_id,
            metadata={
                "admin_did": admin_did,
                "before": None,
                "after": policy.model_dump(mode="json"),
            },
            actor_id=admin_id,
            actor_type="admin",
        )
        logger.info(
            "policy_created",
            policy_id=policy.policy_id,
            municipality_id=policy.municipality_id,
            rule_count=len(policy.rules),
            status=policy.status.value,
        )
        return policy

    async def update_policy(
        self,
        policy_id: str,
        updates: PolicyUpdate,
        admin_id: str,
        admin_did: str,
    ) -> Policy | None:
        """Apply ``updates`` to a policy. Returns None if it does not exist."""
        async with self._locks.hold(policy_id):
            existing = await self._policies.get(policy_id)
            if existing is None:
                return None

            # effective_until is the only field that may be cleared
            changes = {
                k: v
                for k, v in updates.model_dump(exclude_unset=True, exclude={"rules"}).items()
                if v is not None or k == "effective_until"
            }
            if updates.rules is not None:
                changes["rules"] = self._build_rules(updates.rules)

            new_status = changes.get("status", existing.status)
            if new_status != existing.status and new_status not in _TRANSITIONS[existing.status]:
                raise ValidationFailure(
                    f"Policy cannot move from {existing.status} to {new_status}", field="status"
                )

            self._check_window(
                changes.get("effective_from", existing.effective_from),
                changes.get("effective_until", existing.effective_until),
            )

            updated = existing.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
            await self._policies.replace(updated)

        await emit_audit(
            self._audit,
            action="POLICY_UPDATED",
            target_type="policy",
            target_id=policy_id,
            metadata={
                "admin_did": admin_did,
                "before": existing.model_dump(mode="json"),
                "after": updated.model_dump(mode="json"),
            },
            actor_id=admin_id,
            actor_type="admin",
        )
        logger.info(
            "policy_updated",
            policy_id=policy_id,
            fields=sorted(changes),
            status=updated.status.value,
        )
        return updated

    async def get_policy(self, policy_id: str) -> Policy | None:
        return await self._policies.get(policy_id)

    async def get_policies(self, municipality_id: str | None = None) -> list[Policy]:
        policies = await self._policies.list()
        if municipality_id is not None:
            policies = [p for p in policies if p.municipality_id == municipality_id]
        return policies

    async def register_merchant(
        self,
        merchant_id: str,
        categories: list[str],
        region: str | None,
        municipality_id: str | None = None,
    ) -> MerchantProfile:
        merchant = MerchantProfile(
            merchant_id=merchant_id,
            categories=categories,
            region=region,
            municipality_id=municipality_id,
        )
        await self._merchants.register(merchant)
        logger.info("merchant_registered", merchant_id=merchant_id, region=region)
        return merchant

    async def record_usage(self, user_id: str, amount: float, timestamp: datetime) -> None:
        await self._usage.record(user_id, amount, as_utc(timestamp))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate_transaction(
        self,
        user_id: str,
        merchant_id: str,
        amount: float,
        timestamp: datetime,
        user_credentials: list[str] | None = None,
        municipality_id: str | None = None,
    ) -> PolicyValidationResult:
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationFailure(
                f"Amount must be a positive finite number, got {amount}", field="amount"
            )

        request = PolicyValidationRequest(
            user_id=user_id,
            merchant_id=merchant_id,
            amount=amount,
            timestamp=as_utc(timestamp),
            user_credentials=user_credentials or [],
            municipality_id=municipality_id,
        )
        merchant = await self._merchants.get(merchant_id)
        scope = municipality_id or (merchant.municipality_id if merchant else None)

        candidates = [
            p
            for p in await self._policies.list()
            if p.status == PolicyStatus.ACTIVE
            and (scope is None or p.municipality_id == scope)
            and _in_effect(p, request.timestamp)
        ]
        candidates.sort(key=_min_priority)

        context = EvaluationContext(merchant=merchant, usage=self._usage, tz=self.config.tzinfo)
        violations: list[Violation] = []
        applied: list[str] = []
        discount = 0.0

        for policy in candidates:
            applied.append(policy.policy_id)
            for rule in sorted(policy.rules, key=lambda r: r.priority):
                if not rule.enabled:
                    continue
                outcome = await self._evaluate_rule(rule, request, context)
                if not outcome.passed:
                    violations.append(
                        Violation(
                            policy_id=policy.policy_id,
                            rule_id=rule.rule_id,
                            rule_type=rule.type,
                            message=outcome.message or "Policy violation",
                        )
                    )
                discount += outcome.discount

        result = PolicyValidationResult(
            allowed=not violations,
            applied_policies=applied,
            violations=violations,
            modified_amount=max(0.0, amount - discount) if discount > 0 else None,
            discount_applied=discount if discount > 0 else None,
        )
        log = logger.info if result.allowed else logger.warning
        log(
            "policy_validation_completed",
            user_id=user_id,
            merchant_id=merchant_id,
            amount=amount,
            allowed=result.allowed,
            policies=len(applied),
            violations=[v.rule_id for v in violations],
            discount=result.discount_applied,
        )
        return result

    async def _evaluate_rule(
        self,
        rule: PolicyRule,
        request: PolicyValidationRequest,
        context: EvaluationContext,
    ) -> RuleOutcome:
        evaluator = self._evaluators.get(rule.type)
        if evaluator is None:
            return RuleOutcome()
        try:
            return await evaluator.evaluate(rule, request, context)
        except Exception:
            # Evaluator errors count as violations
            logger.exception("policy_rule_evaluation_error", rule_id=rule.rule_id)
            return RuleOutcome(False, "Rule evaluation failed")
