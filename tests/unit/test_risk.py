"""Tests for the per-entry risk score"""

import uuid
from datetime import datetime, timezone

from wallet_guard.domain.models import AlertType, Category, EntryKind, FraudSignal, LedgerEntry, Severity
from wallet_guard.domain.risk import calculate_risk_score


def entry(amount_cents=1_000, merchant="Grocer"):
    return LedgerEntry(
        id=uuid.uuid4(),
        account_id="alice",
        kind=EntryKind.OUTFLOW,
        amount_cents=amount_cents,
        category=Category.FOOD,
        description="Groceries",
        occurred_at=datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc),
        merchant=merchant,
    )


def signal(severity):
    return FraudSignal(AlertType.HIGH_AMOUNT, severity, "test")


def test_no_signals_small_amount_known_merchant_scores_zero():
    assert calculate_risk_score(entry(), []) == 0


def test_severity_weights_add_up():
    signals = [signal(Severity.HIGH), signal(Severity.MEDIUM), signal(Severity.LOW)]
    assert calculate_risk_score(entry(), signals) == 60


def test_large_amount_and_missing_merchant_penalties():
    assert calculate_risk_score(entry(amount_cents=100_001), []) == 15
    assert calculate_risk_score(entry(amount_cents=100_000), []) == 0
    assert calculate_risk_score(entry(merchant=None), []) == 5
    assert calculate_risk_score(entry(merchant="   "), []) == 5


def test_score_is_capped_at_100():
    signals = [signal(Severity.HIGH)] * 4
    assert calculate_risk_score(entry(amount_cents=500_000, merchant=None), signals) == 100
