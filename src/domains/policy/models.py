"""Pydantic models for municipal spending policies."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PolicyRuleType(StrEnum):
    REGION_RESTRICTION = "REGION_RESTRICTION"
    MERCHANT_CATEGORY = "MERCHANT_CATEGORY"
    USAGE_LIMIT_DAILY = "USAGE_LIMIT_DAILY"
    USAGE_LIMIT_MONTHLY = "USAGE_LIMIT_MONTHLY"
    USAGE_LIMIT_TRANSACTION = "USAGE_LIMIT_TRANSACTION"
    TIME_RESTRICTION = "TIME_RESTRICTION"
    USER_ELIGIBILITY = "USER_ELIGIBILITY"
    DISCOUNT_RATE = "DISCOUNT_RATE"
    EXPIRATION = "EXPIRATION"


class PolicyStatus(StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class PolicyRule(_Frozen):
    """One rule inside a policy.

    ``parameters`` by type:
      REGION_RESTRICTION       regions: list[str]
      MERCHANT_CATEGORY        categories: list[str]
      USAGE_LIMIT_*            max_amount: number
      USER_ELIGIBILITY         credentials: list[str]
      DISCOUNT_RATE            rate: 0..1, max_discount: number
      TIME_RESTRICTION         start_hour, end_hour: 0..24, local time
    """

    rule_id: str
    type: PolicyRuleType
    enabled: bool = True
    parameters: dict[str, Any] = Field(default_factory=dict)
    priority: int = 100


class Policy(_Frozen):
    policy_id: str
    name: str
    description: str = ""
    municipality_id: str
    rules: list[PolicyRule] = Field(default_factory=list)
    effective_from: datetime
    effective_until: datetime | None = None
    status: PolicyStatus = PolicyStatus.DRAFT
    created_by: str
    created_at: datetime
    updated_at: datetime


class MerchantProfile(_Frozen):
    merchant_id: str
    categories: list[str] = Field(default_factory=list)
    region: str | None = None
    municipality_id: str | None = None


# ---------------------------------------------------------------------------
# Admin input
# ---------------------------------------------------------------------------


class PolicyRuleInput(BaseModel):
    """Rule as submitted by an admin. ``type`` is checked by the engine."""

    rule_id: str | None = None
    type: str
    enabled: bool = True
    parameters: dict[str, Any] = Field(default_factory=dict)
    priority: int | None = None


class PolicyDraft(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    municipality_id: str = Field(min_length=1)
    rules: list[PolicyRuleInput] = Field(default_factory=list)
    effective_from: datetime
    effective_until: datetime | None = None
    status: PolicyStatus = PolicyStatus.DRAFT


class PolicyUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    rules: list[PolicyRuleInput] | None = None
    effective_from: datetime | None = None
    effective_until: datetime | None = None
    status: PolicyStatus | None = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class PolicyValidationRequest(BaseModel):
    user_id: str = Field(min_length=1)
    merchant_id: str = Field(min_length=1)
    amount: float
    timestamp: datetime
    user_credentials: list[str] = Field(default_factory=list)
    municipality_id: str | None = None


class Violation(BaseModel):
    policy_id: str
    rule_id: str
    rule_type: PolicyRuleType
    message: str


class PolicyValidationResult(BaseModel):
    allowed: bool
    applied_policies: list[str] = Field(default_factory=list)
    violations: list[Violation] = Field(default_factory=list)
    modified_amount: float | None = None
    discount_applied: float | None = None
