"""Tests for settings, domain config loading and service composition."""

import pytest

from src.config import Settings
from src.domains.aml.collaborators import LocalHashAnchoring
from src.domains.aml.config import AMLConfig
from src.domains.policy.config import PolicyConfig
from src.services import build_services


class TestAMLConfig:
    def test_defaults(self):
        config = AMLConfig()

        assert config.ctr.ctr_threshold == 10_000_000
        assert config.structuring_band == (7_000_000, 10_000_000)
        assert config.thresholds()["travel_rule_threshold"] == 1_000_000

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("AML_CTR_THRESHOLD", "20000000")
        monkeypatch.setenv("AML_MAX_HOURLY_TRANSACTIONS", "3")
        monkeypatch.setenv("AML_CTR_ENABLED", "false")

        config = AMLConfig.from_env()

        assert config.ctr.ctr_threshold == 20_000_000
        assert config.structuring_band == (14_000_000, 20_000_000)
        assert config.velocity.max_hourly_transactions == 3
        assert config.ctr.enabled is False

    def test_thresholds_is_a_snapshot(self):
        config = AMLConfig()
        snapshot = config.thresholds()
        snapshot["ctr_threshold"] = 1

        assert config.ctr.ctr_threshold == 10_000_000


class TestPolicyConfig:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("POLICY_TIMEZONE", "UTC")
        monkeypatch.setenv("POLICY_MAX_DISCOUNT_RATE", "0.3")

        config = PolicyConfig.from_env()

        assert config.tzinfo.key == "UTC"
        assert config.max_discount_rate == 0.3


class TestSettings:
    def test_sanctioned_ids_parsed(self):
        settings = Settings(sanctions_list=" A-1, ,B-2 ")
        assert settings.sanctioned_ids == ["A-1", "B-2"]


class TestBuildServices:
    @pytest.mark.asyncio
    async def test_log_sink_and_local_anchoring(self):
        settings = Settings(audit_sink="log", anchoring_url="", sanctions_list="X-1")

        services = await build_services(settings)

        assert services.sanctions.is_sanctioned("X-1")
        assert isinstance(services.reports._anchoring, LocalHashAnchoring)
        await services.aclose()

    @pytest.mark.asyncio
    async def test_unknown_audit_sink_rejected(self):
        with pytest.raises(ValueError, match="Unknown audit sink"):
            await build_services(Settings(audit_sink="syslog"))
