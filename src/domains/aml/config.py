"""AML monitoring configuration with regulatory references.

Every threshold, window, and risk contribution is configurable. Defaults
follow the Korean AML framework for local-currency operators.

References:
- Act on Reporting and Use of Specific Financial Transaction Information
  (특정금융정보법), Art. 4 (STR) and Art. 4-2 (CTR)
- Enforcement Decree of the same Act, Art. 8-2: KRW 10M CTR threshold
- Virtual Asset Service Provider rules (2022): KRW 1M travel-rule threshold
- FATF Recommendations 10, 16 and 20
"""

import os
from dataclasses import dataclass, field


@dataclass
class CTRConfig:
    """Currency Transaction Report threshold.

    Regulatory basis: Enforcement Decree Art. 8-2: cash transactions of
    KRW 10,000,000 or more in a single business day are reported to KoFIU.
    """

    enabled: bool = True
    ctr_threshold: float = 10_000_000.0
    risk_contribution: int = 30

    # Enhanced due diligence and cash limits (informational, used by reports)
    high_value_threshold: float = 50_000_000.0
    daily_limit_cash: float = 30_000_000.0
    monthly_limit_p2p: float = 100_000_000.0


@dataclass
class SanctionsConfig:
    """Sanctions screening.

    Regulatory basis: Foreign Exchange Transactions Act Art. 15 and UN
    Security Council designations. Any hit blocks the transaction.
    """

    enabled: bool = True
    risk_contribution: int = 100
    alert_risk_score: int = 100


@dataclass
class VelocityConfig:
    """Transaction frequency limits per sender."""

    enabled: bool = True
    max_hourly_transactions: int = 10
    max_daily_transactions: int = 50
    window_hours: int = 1
    risk_contribution: int = 25
    alert_risk_score: int = 50


@dataclass
class StructuringConfig:
    """Structuring (splitting to evade CTR) detection.

    Regulatory basis: Act Art. 4(1): transactions suspected of being split
    to avoid the CTR threshold must be reported as suspicious.
    """

    enabled: bool = True
    str_pattern_days: int = 3
    str_pattern_count: int = 5
    # Band is [band_lower_ratio × ctr_threshold, ctr_threshold)
    band_lower_ratio: float = 0.7
    risk_contribution: int = 40
    alert_risk_score: int = 70


@dataclass
class ProfileCheckConfig:
    """Checks driven by the sender's customer risk profile."""

    enabled: bool = True
    high_risk_sender_contribution: int = 20
    unusual_amount_multiplier: float = 5.0
    unusual_amount_contribution: int = 15


@dataclass
class TravelRuleConfig:
    """Travel rule (FATF Recommendation 16).

    Transfers of KRW 1,000,000 or more carry originator and beneficiary
    information between VASPs.
    """

    enabled: bool = True
    travel_rule_threshold: float = 1_000_000.0
    originator_vasp_name: str = "Local Currency Platform"
    originator_vasp_lei: str | None = None
    originator_vasp_country: str = "KR"


@dataclass
class RiskScoringConfig:
    """Customer risk profile scoring."""

    medium_risk_score: float = 40.0
    high_risk_score: float = 70.0
    max_risk_score: float = 100.0

    # Each alert raises the subject's score by alert.risk_score × this factor
    alert_dampening_factor: float = 0.1

    review_interval_days: int = 365
    max_typical_counterparties: int = 20
    normal_hours_start: int = 9
    normal_hours_end: int = 21


@dataclass
class AMLConfig:
    """Top-level AML monitoring configuration."""

    ctr: CTRConfig = field(default_factory=CTRConfig)
    sanctions: SanctionsConfig = field(default_factory=SanctionsConfig)
    velocity: VelocityConfig = field(default_factory=VelocityConfig)
    structuring: StructuringConfig = field(default_factory=StructuringConfig)
    profile: ProfileCheckConfig = field(default_factory=ProfileCheckConfig)
    travel_rule: TravelRuleConfig = field(default_factory=TravelRuleConfig)
    risk_scoring: RiskScoringConfig = field(default_factory=RiskScoringConfig)

    # Transactions at or above this score are blocked
    block_risk_score: int = 100

    @property
    def structuring_band(self) -> tuple[float, float]:
        ctr = self.ctr.ctr_threshold
        return ctr * self.structuring.band_lower_ratio, ctr

    def thresholds(self) -> dict:
        """Flat snapshot of the numeric limits, for reporting endpoints."""
        return {
            "ctr_threshold": self.ctr.ctr_threshold,
            "str_pattern_days": self.structuring.str_pattern_days,
            "str_pattern_count": self.structuring.str_pattern_count,
            "travel_rule_threshold": self.travel_rule.travel_rule_threshold,
            "high_value_threshold": self.ctr.high_value_threshold,
            "daily_limit_cash": self.ctr.daily_limit_cash,
            "monthly_limit_p2p": self.ctr.monthly_limit_p2p,
            "max_daily_transactions": self.velocity.max_daily_transactions,
            "max_hourly_transactions": self.velocity.max_hourly_transactions,
            "high_risk_score": self.risk_scoring.high_risk_score,
            "medium_risk_score": self.risk_scoring.medium_risk_score,
            "block_risk_score": self.block_risk_score,
        }

    @classmethod
    def from_env(cls) -> "AMLConfig":
        """Load config with env var overrides (AML_ prefix)."""
        config = cls()

        # CTR overrides
        if v := os.getenv("AML_CTR_THRESHOLD"):
            config.ctr.ctr_threshold = float(v)
        if v := os.getenv("AML_CTR_ENABLED"):
            config.ctr.enabled = v.lower() in ("true", "1", "yes")

        # Velocity overrides
        if v := os.getenv("AML_MAX_HOURLY_TRANSACTIONS"):
            config.velocity.max_hourly_transactions = int(v)
        if v := os.getenv("AML_MAX_DAILY_TRANSACTIONS"):
            config.velocity.max_daily_transactions = int(v)

        # Structuring overrides
        if v := os.getenv("AML_STR_PATTERN_DAYS"):
            config.structuring.str_pattern_days = int(v)
        if v := os.getenv("AML_STR_PATTERN_COUNT"):
            config.structuring.str_pattern_count = int(v)

        # Travel rule overrides
        if v := os.getenv("AML_TRAVEL_RULE_THRESHOLD"):
            config.travel_rule.travel_rule_threshold = float(v)

        # Risk scoring overrides
        if v := os.getenv("AML_MEDIUM_RISK_SCORE"):
            config.risk_scoring.medium_risk_score = float(v)
        if v := os.getenv("AML_HIGH_RISK_SCORE"):
            config.risk_scoring.high_risk_score = float(v)
        if v := os.getenv("AML_ALERT_DAMPENING_FACTOR"):
            config.risk_scoring.alert_dampening_factor = float(v)

        if v := os.getenv("AML_BLOCK_RISK_SCORE"):
            config.block_risk_score = int(v)

        return config


# Module-level default instance
default_config = AMLConfig()
