"""Policy rule evaluators.

One evaluator per rule type, registered in ``RULE_EVALUATORS``. Rule types
without an evaluator (EXPIRATION, which the engine enforces through the
policy's effective window) pass trivially.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from numbers import Real
from zoneinfo import ZoneInfo

from src.shared.errors import ValidationFailure

from .models import MerchantProfile, PolicyRule, PolicyRuleType, PolicyValidationRequest
from .repositories import UsageLedger


def as_utc(value: datetime) -> datetime:
    """Read naive datetimes as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


@dataclass
class RuleOutcome:
    passed: bool = True
    message: str | None = None
    discount: float = 0.0


@dataclass
class EvaluationContext:
    """Everything a rule may look at besides the request itself.

    ``merchant`` is None for unregistered merchants; region and category
    rules then fail.
    """

    merchant: MerchantProfile | None
    usage: UsageLedger
    tz: ZoneInfo

    def local_time(self, value: datetime) -> datetime:
        return as_utc(value).astimezone(self.tz)


def _require_list(rule_type: PolicyRuleType, parameters: dict, key: str) -> None:
    value = parameters.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationFailure(f"{rule_type} requires '{key}' as a list of strings", field=key)


def _require_number(
    rule_type: PolicyRuleType,
    parameters: dict,
    key: str,
    low: float = 0.0,
    high: float | None = None,
) -> None:
    value = parameters.get(key)
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        raise ValidationFailure(f"{rule_type} requires finite numeric '{key}'", field=key)
    if value < low or (high is not None and value > high):
        bounds = f"[{low}, {high}]" if high is not None else f">= {low}"
        raise ValidationFailure(f"{rule_type} '{key}' must be {bounds}, got {value}", field=key)


class PolicyRuleEvaluator(ABC):
    rule_type: PolicyRuleType

    def validate_parameters(self, parameters: dict) -> None:
        """Raise ``ValidationFailure`` if the rule cannot be evaluated."""

    @abstractmethod
    async def evaluate(
        self,
        rule: PolicyRule,
        request: PolicyValidationRequest,
        context: EvaluationContext,
    ) -> RuleOutcome: ...


class RegionRestriction(PolicyRuleEvaluator):
    rule_type = PolicyRuleType.REGION_RESTRICTION

    def validate_parameters(self, parameters: dict) -> None:
        _require_list(self.rule_type, parameters, "regions")

    async def evaluate(self, rule, request, context) -> RuleOutcome:
        region = context.merchant.region if context.merchant else None
        if region not in rule.parameters["regions"]:
            return RuleOutcome(False, "Merchant outside allowed region")
        return RuleOutcome()


class MerchantCategory(PolicyRuleEvaluator):
    rule_type = PolicyRuleType.MERCHANT_CATEGORY

    def validate_parameters(self, parameters: dict) -> None:
        _require_list(self.rule_type, parameters, "categories")

    async def evaluate(self, rule, request, context) -> RuleOutcome:
        categories = context.merchant.categories if context.merchant else []
        allowed = set(rule.parameters["categories"])
        if not allowed.intersection(categories):
            return RuleOutcome(False, "Merchant category not eligible")
        return RuleOutcome()


class TransactionLimit(PolicyRuleEvaluator):
    rule_type = PolicyRuleType.USAGE_LIMIT_TRANSACTION

    def validate_parameters(self, parameters: dict) -> None:
        _require_number(self.rule_type, parameters, "max_amount")

    async def evaluate(self, rule, request, context) -> RuleOutcome:
        max_amount = rule.parameters["max_amount"]
        if request.amount > max_amount:
            return RuleOutcome(False, f"Transaction exceeds limit of {max_amount:,.0f}")
        return RuleOutcome()


class _PeriodLimit(PolicyRuleEvaluator):
    """Fails when recorded usage in the local period plus this amount exceeds the cap."""

    period_name: str

    def validate_parameters(self, parameters: dict) -> None:
        _require_number(self.rule_type, parameters, "max_amount")

    @abstractmethod
    def period(self, local: datetime) -> tuple[datetime, datetime]: ...

    async def evaluate(self, rule, request, context) -> RuleOutcome:
        max_amount = rule.parameters["max_amount"]
        since, until = self.period(context.local_time(request.timestamp))
        used = await context.usage.total(request.user_id, since, until)
        if used + request.amount > max_amount:
            return RuleOutcome(
                False,
                f"{self.period_name.capitalize()} limit of {max_amount:,.0f} exceeded "
                f"({used:,.0f} already used)",
            )
        return RuleOutcome()


class DailyLimit(_PeriodLimit):
    rule_type = PolicyRuleType.USAGE_LIMIT_DAILY
    period_name = "daily"

    def period(self, local: datetime) -> tuple[datetime, datetime]:
        start = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start + timedelta(days=1)


class MonthlyLimit(_PeriodLimit):
    rule_type = PolicyRuleType.USAGE_LIMIT_MONTHLY
    period_name = "monthly"

    def period(self, local: datetime) -> tuple[datetime, datetime]:
        start = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return start, end


class UserEligibility(PolicyRuleEvaluator):
    rule_type = PolicyRuleType.USER_ELIGIBILITY

    def validate_parameters(self, parameters: dict) -> None:
        _require_list(self.rule_type, parameters, "credentials")

    async def evaluate(self, rule, request, context) -> RuleOutcome:
        if not set(rule.parameters["credentials"]).intersection(request.user_credentials):
            return RuleOutcome(False, "User not eligible for this policy")
        return RuleOutcome()


class DiscountRate(PolicyRuleEvaluator):
    rule_type = PolicyRuleType.DISCOUNT_RATE

    def __init__(self, max_rate: float = 1.0) -> None:
        self.max_rate = max_rate

    def validate_parameters(self, parameters: dict) -> None:
        _require_number(self.rule_type, parameters, "rate", high=self.max_rate)
        _require_number(self.rule_type, parameters, "max_discount")

    async def evaluate(self, rule, request, context) -> RuleOutcome:
        discount = min(request.amount * rule.parameters["rate"], rule.parameters["max_discount"])
        return RuleOutcome(discount=discount)


class TimeRestriction(PolicyRuleEvaluator):
    rule_type = PolicyRuleType.TIME_RESTRICTION

    def validate_parameters(self, parameters: dict) -> None:
        _require_number(self.rule_type, parameters, "start_hour", high=24)
        _require_number(self.rule_type, parameters, "end_hour", high=24)

    async def evaluate(self, rule, request, context) -> RuleOutcome:
        start, end = rule.parameters["start_hour"], rule.parameters["end_hour"]
        hour = context.local_time(request.timestamp).hour
        if hour < start or hour >= end:
            return RuleOutcome(False, f"Transactions allowed only between {start}:00 and {end}:00")
        return RuleOutcome()


def build_evaluators(max_discount_rate: float = 1.0) -> dict[PolicyRuleType, PolicyRuleEvaluator]:
    evaluators: list[PolicyRuleEvaluator] = [
        RegionRestriction(),
        MerchantCategory(),
        TransactionLimit(),
        DailyLimit(),
        MonthlyLimit(),
        UserEligibility(),
        DiscountRate(max_discount_rate),
        TimeRestriction(),
    ]
    return {e.rule_type: e for e in evaluators}


# Default registry
RULE_EVALUATORS = build_evaluators()
