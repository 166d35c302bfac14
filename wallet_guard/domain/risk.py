"""Per-entry risk score derived from the fraud signals it triggered"""

from typing import Iterable

from wallet_guard.domain.models import FraudSignal, LedgerEntry, Severity

SEVERITY_WEIGHTS = {
    Severity.HIGH: 30,
    Severity.MEDIUM: 20,
    Severity.LOW: 10,
}

LARGE_AMOUNT_CENTS = 100_000  # $1000
LARGE_AMOUNT_PENALTY = 15
MISSING_MERCHANT_PENALTY = 5


def calculate_risk_score(entry: LedgerEntry, signals: Iterable[FraudSignal]) -> int:
    """
    Score an entry from 0 (no concern) to 100 (highest concern).

    - Each signal adds its severity weight (high 30, medium 20, low 10)
    - Amounts above $1000 add 15
    - Entries without a merchant add 5
    """
    score = sum(SEVERITY_WEIGHTS[signal.severity] for signal in signals)

    if entry.amount_cents > LARGE_AMOUNT_CENTS:
        score += LARGE_AMOUNT_PENALTY

    if not entry.merchant or not entry.merchant.strip():
        score += MISSING_MERCHANT_PENALTY

    return min(score, 100)
