"""Unit tests for the fraud rules"""

import uuid
import pytest
from datetime import datetime, timezone

from wallet_guard.domain.models import (
    Account,
    AccountLimits,
    AlertType,
    Category,
    EntryKind,
    FraudSignal,
    LedgerEntry,
    Severity,
)
from wallet_guard.domain.rules import (
    CategoryLimitRule,
    FraudPolicy,
    FraudRule,
    FrequencyRule,
    HighAmountRule,
    HistoricalAggregates,
    RuleContext,
    RuleRegistry,
    UnusualTimeRule,
    default_registry,
)

AFTERNOON = datetime(2026, 3, 18, 14, 30, tzinfo=timezone.utc)


def make_entry(amount_cents=1000, kind=EntryKind.OUTFLOW, category=Category.FOOD, occurred_at=AFTERNOON, merchant="Cafe"):
    return LedgerEntry(
        id=uuid.uuid4(),
        account_id="alice",
        kind=kind,
        amount_cents=amount_cents,
        category=category,
        description="Test",
        occurred_at=occurred_at,
        merchant=merchant,
    )


def make_context(aggregates=None, category_limits=None, tz="UTC"):
    account = Account(
        account_id="alice",
        email="alice@example.com",
        display_name="Alice",
        currency="USD",
        balance_cents=0,
        version=0,
        limits=AccountLimits(category_limits=category_limits or {}),
        timezone=tz,
    )
    return RuleContext(account=account, aggregates=aggregates or HistoricalAggregates(), policy=FraudPolicy())


# High amount


def test_high_amount_cold_start_never_fires():
    """No prior-month history means no baseline, whatever the amount"""
    rule = HighAmountRule()
    for amount in (1, 50_000, 10_000_000):
        assert rule.evaluate(make_entry(amount_cents=amount), make_context()) is None


def test_high_amount_medium_between_threshold_and_double():
    """Average $1000/month → threshold $100; $150 is medium"""
    context = make_context(HistoricalAggregates(prior_monthly_expense_totals=(80_000, 120_000)))
    signal = HighAmountRule().evaluate(make_entry(amount_cents=15_000), context)

    assert signal is not None
    assert signal.alert_type == AlertType.HIGH_AMOUNT
    assert signal.severity == Severity.MEDIUM
    assert signal.details["threshold"] == 10_000
    assert signal.details["actual_amount"] == 15_000


def test_high_amount_high_above_double_threshold():
    context = make_context(HistoricalAggregates(prior_monthly_expense_totals=(100_000,)))
    signal = HighAmountRule().evaluate(make_entry(amount_cents=20_001), context)
    assert signal.severity == Severity.HIGH


def test_high_amount_at_threshold_is_quiet():
    context = make_context(HistoricalAggregates(prior_monthly_expense_totals=(100_000,)))
    assert HighAmountRule().evaluate(make_entry(amount_cents=10_000), context) is None


def test_high_amount_ignores_inflows():
    context = make_context(HistoricalAggregates(prior_monthly_expense_totals=(100_000,)))
    entry = make_entry(amount_cents=500_000, kind=EntryKind.INFLOW)
    assert HighAmountRule().evaluate(entry, context) is None


# Category limit: $100 limit with $81 already spent this month


@pytest.mark.parametrize(
    "new_expense_cents,expected",
    [
        (500, Severity.LOW),  # $86, 86%
        (2_500, Severity.MEDIUM),  # $106, 106%
        (6_000, Severity.MEDIUM),  # $141, below 150%
        (7_000, Severity.HIGH),  # $151
    ],
)
def test_category_limit_breakpoints(new_expense_cents, expected):
    limits = {Category.FOOD: 10_000}
    spent = 8_100 + new_expense_cents  # month-to-date total includes the new entry
    context = make_context(HistoricalAggregates(category_month_to_date_cents=spent), category_limits=limits)

    signal = CategoryLimitRule().evaluate(make_entry(amount_cents=new_expense_cents), context)

    assert signal is not None
    assert signal.severity == expected
    assert signal.details["category"] == "food"
    assert signal.details["threshold"] == 10_000
    assert signal.details["actual_amount"] == spent


def test_category_limit_below_warning_is_quiet():
    context = make_context(
        HistoricalAggregates(category_month_to_date_cents=7_999),
        category_limits={Category.FOOD: 10_000},
    )
    assert CategoryLimitRule().evaluate(make_entry(), context) is None


def test_category_limit_exactly_full_is_only_a_warning():
    context = make_context(
        HistoricalAggregates(category_month_to_date_cents=10_000),
        category_limits={Category.FOOD: 10_000},
    )
    signal = CategoryLimitRule().evaluate(make_entry(), context)
    assert signal.severity == Severity.LOW
    assert "Approaching" in signal.message


def test_category_limit_requires_configured_limit():
    context = make_context(
        HistoricalAggregates(category_month_to_date_cents=1_000_000),
        category_limits={Category.TRANSPORT: 10_000},
    )
    assert CategoryLimitRule().evaluate(make_entry(category=Category.FOOD), context) is None


# Frequency


@pytest.mark.parametrize(
    "prior,expected",
    [
        (3, None),
        (4, Severity.MEDIUM),
        (8, Severity.MEDIUM),
        (9, Severity.HIGH),
        (20, Severity.HIGH),
    ],
)
def test_frequency_counts_include_current_entry(prior, expected):
    context = make_context(HistoricalAggregates(recent_entry_count=prior))
    signal = FrequencyRule().evaluate(make_entry(kind=EntryKind.INFLOW), context)

    if expected is None:
        assert signal is None
    else:
        assert signal.severity == expected
        assert signal.details["actual_count"] == prior + 1


# Unusual time


def test_unusual_time_fires_at_night_for_daytime_account():
    entry = make_entry(occurred_at=datetime(2026, 3, 18, 3, 15, tzinfo=timezone.utc))
    signal = UnusualTimeRule().evaluate(entry, make_context(HistoricalAggregates(prior_night_entry_count=2)))

    assert signal.severity == Severity.LOW
    assert signal.details["hour"] == 3


def test_unusual_time_late_evening():
    entry = make_entry(occurred_at=datetime(2026, 3, 18, 23, 30, tzinfo=timezone.utc))
    assert UnusualTimeRule().evaluate(entry, make_context()) is not None


def test_unusual_time_quiet_for_night_owls():
    entry = make_entry(occurred_at=datetime(2026, 3, 18, 2, 0, tzinfo=timezone.utc))
    context = make_context(HistoricalAggregates(prior_night_entry_count=3))
    assert UnusualTimeRule().evaluate(entry, context) is None


def test_unusual_time_quiet_during_the_day():
    assert UnusualTimeRule().evaluate(make_entry(), make_context()) is None


def test_unusual_time_uses_account_timezone():
    """14:30 UTC is 03:30 the next day in Auckland (NZDT, UTC+13)"""
    signal = UnusualTimeRule().evaluate(make_entry(), make_context(tz="Pacific/Auckland"))
    assert signal is not None
    assert signal.details["hour"] == 3


# Registry


class AlwaysRule(FraudRule):
    alert_type = AlertType.HIGH_AMOUNT

    def evaluate(self, entry, context):
        return FraudSignal(self.alert_type, Severity.LOW, "always")


def test_default_registry_has_one_rule_per_alert_type():
    registry = default_registry()
    assert len(registry) == 4
    assert {rule.alert_type for rule in registry} == set(AlertType)


def test_registry_rejects_duplicate_alert_types():
    registry = default_registry()
    with pytest.raises(ValueError):
        registry.register(AlwaysRule())


def test_registry_unregister_then_replace():
    registry = default_registry()
    registry.unregister(AlertType.HIGH_AMOUNT)
    registry.register(AlwaysRule())

    assert len(registry) == 4
    assert any(isinstance(rule, AlwaysRule) for rule in registry)


def test_empty_registry():
    assert list(RuleRegistry()) == []
