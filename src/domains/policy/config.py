"""Policy engine configuration."""

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo


@dataclass
class PolicyConfig:
    """Policy evaluation settings.

    Time-of-day and daily/monthly usage windows are computed in
    ``timezone``, the local time of the issuing municipalities.
    """

    timezone: str = "Asia/Seoul"
    # Rules without a priority sort after every prioritized rule
    default_rule_priority: int = 100
    # Upper bound accepted for DISCOUNT_RATE.rate
    max_discount_rate: float = 1.0

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls) -> "PolicyConfig":
        """Load config with env var overrides (POLICY_ prefix)."""
        config = cls()
        if v := os.getenv("POLICY_TIMEZONE"):
            config.timezone = v
        if v := os.getenv("POLICY_DEFAULT_RULE_PRIORITY"):
            config.default_rule_priority = int(v)
        if v := os.getenv("POLICY_MAX_DISCOUNT_RATE"):
            config.max_discount_rate = float(v)
        return config


# Module-level default instance
default_config = PolicyConfig()
