"""Municipal spending policy domain."""

from .engine import PolicyEngine
from .models import (
    MerchantProfile,
    Policy,
    PolicyDraft,
    PolicyRule,
    PolicyRuleInput,
    PolicyRuleType,
    PolicyStatus,
    PolicyUpdate,
    PolicyValidationResult,
    Violation,
)
from .rules import RULE_EVALUATORS

__all__ = [
    "RULE_EVALUATORS",
    "MerchantProfile",
    "Policy",
    "PolicyDraft",
    "PolicyEngine",
    "PolicyRule",
    "PolicyRuleInput",
    "PolicyRuleType",
    "PolicyStatus",
    "PolicyUpdate",
    "PolicyValidationResult",
    "Violation",
]
