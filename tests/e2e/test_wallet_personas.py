"""
End-to-end scenarios for typical wallet owners.

Each persona drives the coordinator, fraud engine and alert manager together
against a real database with a frozen clock.

Personas:
- saver: steady deposits and modest spending, never flagged
- overspender: blows through a food budget, escalating alerts
- night_owl: first late-night purchases flagged, later ones accepted as habit
- household: money circulates between three wallets and is conserved
"""

import pytest
from datetime import datetime, timedelta, timezone

from wallet_guard.domain.exceptions import InsufficientFundsError
from wallet_guard.domain.models import AlertStatus, AlertType, ExpenseMetadata, PaymentMethod, Severity

WALLET = ExpenseMetadata(payment_method=PaymentMethod.WALLET, merchant="Market")


@pytest.mark.integration
def test_saver_is_never_flagged(coordinator, make_account, alert_manager, clock):
    """
    saver: one deposit and a few small purchases a day for a week
    Expected: no alerts, balance reflects every wallet expense
    """
    make_account("saver", category_limits={"food": 50_000})

    for day in range(7):
        clock.advance(days=1)
        coordinator.deposit("saver", 3_000)
        for _ in range(2):
            clock.advance(hours=2)
            coordinator.record_expense("saver", 800, "Groceries", category="food", metadata=WALLET)
        clock.now = clock.now.replace(hour=14)

    assert coordinator.get_balance("saver") == 7 * (3_000 - 2 * 800)
    assert alert_manager.summarize("saver").total == 0


@pytest.mark.integration
def test_overspender_escalates(coordinator, make_account, alert_manager, clock):
    """
    overspender: $100 food budget, spending in $30 steps
    Expected: warning at 90%, then medium, then high once past 150%
    """
    make_account("overspender", category_limits={"food": 10_000})
    coordinator.deposit("overspender", 100_000)

    severities = []
    for _ in range(6):
        clock.advance(minutes=20)
        result = coordinator.record_expense("overspender", 3_000, "Takeout", category="food", metadata=WALLET)
        flagged = [a.severity for a in result.alerts if a.alert_type == AlertType.CATEGORY_LIMIT]
        severities.append(flagged[0] if flagged else None)

    # $30, $60, $90, $120, $150, $180
    assert severities == [None, None, Severity.LOW, Severity.MEDIUM, Severity.MEDIUM, Severity.HIGH]


@pytest.mark.integration
def test_night_owl_becomes_a_habit(coordinator, make_account, alert_manager, clock):
    """
    night_owl: a 2am purchase every night
    Expected: the first three nights are flagged, after that it is normal
    """
    make_account("night_owl")
    coordinator.deposit("night_owl", 50_000)

    flagged = []
    start = datetime(2026, 3, 19, 2, 0, tzinfo=timezone.utc)
    for night in range(5):
        clock.now = start + timedelta(days=night)
        result = coordinator.record_expense("night_owl", 1_500, "Late snack", category="food", metadata=WALLET)
        flagged.append(any(a.alert_type == AlertType.UNUSUAL_TIME for a in result.alerts))

    assert flagged == [True, True, True, False, False]

    # Owner marks every flagged purchase as legitimate
    alerts, _ = alert_manager.list_alerts("night_owl", status=AlertStatus.PENDING)
    for alert in alerts:
        alert_manager.review(alert.id, "reviewed", reviewer="night_owl")
    assert alert_manager.summarize("night_owl").by_status == {"reviewed": 3}


@pytest.mark.integration
def test_household_money_is_conserved(coordinator, make_account, clock):
    """
    household: three wallets passing money around, one overdraft attempt
    Expected: total money equals total deposits, failed transfer changes nothing
    """
    for member in ("ana", "ben", "cleo"):
        make_account(member)
    coordinator.deposit("ana", 30_000)
    coordinator.deposit("ben", 10_000)

    moves = [
        ("ana", "ben", 5_000),
        ("ben", "cleo", 12_000),
        ("cleo", "ana", 2_000),
        ("ana", "cleo", 8_000),
    ]
    for sender, recipient, amount in moves:
        clock.advance(minutes=15)
        coordinator.transfer(sender, recipient, amount, "Household")

    with pytest.raises(InsufficientFundsError):
        coordinator.transfer("ben", "ana", 3_001, "Too much")

    balances = {member: coordinator.get_balance(member) for member in ("ana", "ben", "cleo")}
    assert balances == {"ana": 19_000, "ben": 3_000, "cleo": 18_000}
    assert sum(balances.values()) == 40_000
