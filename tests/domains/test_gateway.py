"""Tests for the combined AML and policy payment gate."""

from datetime import UTC, datetime, timedelta

import pytest

from src.domains.aml.models import TransactionEvent
from src.domains.policy.models import PolicyDraft, PolicyRuleInput, PolicyStatus
from src.shared.errors import ValidationFailure
from tests.conftest import SANCTIONED_ID

# 12:00 KST
NOON = datetime(2026, 3, 2, 3, 0, tzinfo=UTC)


def _make_event(**kwargs) -> TransactionEvent:
    defaults = {
        "transaction_id": "tx-001",
        "timestamp": NOON,
        "sender_id": "user-001",
        "recipient_id": "merchant-001",
        "amount": 300_000.0,
    }
    defaults.update(kwargs)
    return TransactionEvent(**defaults)


async def _seed_policy(services, *rules: dict) -> None:
    await services.policies.register_merchant(
        "merchant-001", ["FOOD"], "Seongnam", municipality_id="seongnam"
    )
    await services.policies.create_policy(
        PolicyDraft(
            name="Seongnam Love Gift Card",
            municipality_id="seongnam",
            rules=[PolicyRuleInput(**r) for r in rules],
            effective_from=NOON - timedelta(days=30),
            status=PolicyStatus.ACTIVE,
        ),
        "admin-1",
        "did:example:admin-1",
    )


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_allowed_payment_charges_discounted_amount(self, services):
        await _seed_policy(
            services,
            {"type": "DISCOUNT_RATE", "parameters": {"rate": 0.05, "max_discount": 10_000}},
        )

        result = await services.payments.authorize(_make_event(), "merchant-001")

        assert result.allowed
        assert result.charged_amount == pytest.approx(290_000)
        assert result.violated_rules == []

    @pytest.mark.asyncio
    async def test_charged_amount_counts_toward_daily_cap(self, services):
        await _seed_policy(
            services,
            {"type": "DISCOUNT_RATE", "parameters": {"rate": 0.05, "max_discount": 10_000}},
            {"type": "USAGE_LIMIT_DAILY", "parameters": {"max_amount": 590_000}},
        )

        first = await services.payments.authorize(_make_event(), "merchant-001")
        second = await services.payments.authorize(
            _make_event(transaction_id="tx-002", timestamp=NOON + timedelta(minutes=5)),
            "merchant-001",
        )

        assert first.allowed
        # 290,000 recorded; 290,000 + 300,000 is exactly the cap
        assert second.allowed

    @pytest.mark.asyncio
    async def test_sanctions_hit_blocks_even_when_policy_passes(self, services):
        await _seed_policy(services)

        result = await services.payments.authorize(
            _make_event(sender_id=SANCTIONED_ID), "merchant-001"
        )

        assert not result.allowed
        assert result.monitoring.allowed is False
        assert result.policy.allowed is True
        view = result.public_view()
        assert "description" not in view["monitoring"]["alerts"][0]

    @pytest.mark.asyncio
    async def test_policy_violation_blocks_and_records_no_usage(self, services):
        await _seed_policy(
            services,
            {
                "rule_id": "max-100k",
                "type": "USAGE_LIMIT_TRANSACTION",
                "parameters": {"max_amount": 100_000},
            },
            {"type": "USAGE_LIMIT_DAILY", "parameters": {"max_amount": 350_000}},
        )

        declined = await services.payments.authorize(_make_event(), "merchant-001")
        assert not declined.allowed
        assert declined.violated_rules == ["max-100k"]
        assert declined.monitoring.allowed

        small = await services.payments.authorize(
            _make_event(transaction_id="tx-002", amount=100_000), "merchant-001"
        )
        # Declined payment left no usage behind
        assert small.allowed

    @pytest.mark.asyncio
    async def test_nan_amount_rejected_before_policy_or_usage(self, services):
        await _seed_policy(
            services,
            {"type": "USAGE_LIMIT_TRANSACTION", "parameters": {"max_amount": 100_000}},
        )

        with pytest.raises(ValidationFailure):
            await services.payments.authorize(_make_event(amount=float("nan")), "merchant-001")

        assert (await services.cases.get_compliance_stats())["transactions_monitored"] == 0
