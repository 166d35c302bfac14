"""Integration tests for alert review"""

import uuid
import pytest
from datetime import datetime, timezone

from wallet_guard.domain.exceptions import InvalidStateError, NotFoundError, ValidationError
from wallet_guard.domain.models import AlertStatus, AlertType, ExpenseMetadata, PaymentMethod, Severity
from wallet_guard.infrastructure.database.repositories import LedgerRepository
from wallet_guard.infrastructure.database.session import atomic
from wallet_guard.services.alert_manager import CONFIRMATION_MESSAGE


@pytest.fixture
def night_alert(coordinator, make_account, clock):
    """A pending unusual-time alert on a fresh deposit"""
    make_account("alice")
    clock.now = datetime(2026, 3, 18, 2, 0, tzinfo=timezone.utc)
    result = coordinator.deposit("alice", 1_000)
    clock.now = datetime(2026, 3, 18, 9, 0, tzinfo=timezone.utc)
    return result.alerts[0]


@pytest.mark.integration
class TestReview:
    def test_review_records_reviewer_and_time(self, alert_manager, night_alert, clock):
        reviewed = alert_manager.review(night_alert.id, "reviewed", reviewer="alice", notes="It was me")

        assert reviewed.status == AlertStatus.REVIEWED
        assert reviewed.reviewed_by == "alice"
        assert reviewed.reviewed_at == clock.now
        assert reviewed.notes == "It was me"

    def test_second_review_is_rejected(self, alert_manager, night_alert):
        alert_manager.review(night_alert.id, "dismissed", reviewer="alice")

        with pytest.raises(InvalidStateError):
            alert_manager.review(night_alert.id, "confirmed", reviewer="alice")

        assert alert_manager.get_alert(night_alert.id).status == AlertStatus.DISMISSED

    def test_invalid_status(self, alert_manager, night_alert):
        with pytest.raises(ValidationError):
            alert_manager.review(night_alert.id, "pending", reviewer="alice")
        with pytest.raises(ValidationError):
            alert_manager.review(night_alert.id, "whatever", reviewer="alice")
        assert alert_manager.get_alert(night_alert.id).status == AlertStatus.PENDING

    def test_unknown_alert(self, alert_manager, night_alert):
        with pytest.raises(NotFoundError):
            alert_manager.review(uuid.uuid4(), "reviewed", reviewer="alice")

    def test_alert_of_another_account_is_not_found(self, alert_manager, night_alert, make_account):
        make_account("mallory")
        with pytest.raises(NotFoundError):
            alert_manager.review(night_alert.id, "dismissed", reviewer="mallory", account_id="mallory")
        assert alert_manager.get_alert(night_alert.id).status == AlertStatus.PENDING

    def test_confirming_tags_the_entry(self, alert_manager, night_alert, db, clock):
        alert_manager.review(night_alert.id, AlertStatus.CONFIRMED, reviewer="alice")

        with atomic(db):
            entry = LedgerRepository(db).get_entry(night_alert.entry_id)

        confirmed = [tag for tag in entry.fraud_tags if tag.confirmed]
        assert len(confirmed) == 1
        assert confirmed[0].message == CONFIRMATION_MESSAGE
        assert confirmed[0].alert_type == AlertType.UNUSUAL_TIME
        assert confirmed[0].flagged_at == clock.now
        # The screening tag is still there
        assert any(not tag.confirmed for tag in entry.fraud_tags)

    def test_dismissing_adds_no_tag(self, alert_manager, night_alert, db):
        alert_manager.review(night_alert.id, "dismissed", reviewer="alice")

        with atomic(db):
            entry = LedgerRepository(db).get_entry(night_alert.entry_id)
        assert not any(tag.confirmed for tag in entry.fraud_tags)


@pytest.mark.integration
class TestReadViews:
    def test_list_filter_and_summary(self, alert_manager, coordinator, make_account, clock):
        make_account("alice", category_limits={"food": 1_000})
        clock.now = datetime(2026, 3, 18, 1, 0, tzinfo=timezone.utc)
        # Unusual time (low) and category limit (high, 200%)
        result = coordinator.record_expense(
            "alice", 2_000, "Midnight feast", category="food",
            metadata=ExpenseMetadata(payment_method=PaymentMethod.CARD, merchant="Diner"),
        )
        assert len(result.alerts) == 2

        alerts, total = alert_manager.list_alerts("alice")
        assert total == 2

        high, high_total = alert_manager.list_alerts("alice", severity=Severity.HIGH)
        assert high_total == 1
        assert high[0].alert_type == AlertType.CATEGORY_LIMIT

        alert_manager.review(high[0].id, "confirmed", reviewer="alice")
        pending, pending_total = alert_manager.list_alerts("alice", status=AlertStatus.PENDING)
        assert pending_total == 1
        assert pending[0].alert_type == AlertType.UNUSUAL_TIME

        summary = alert_manager.summarize("alice")
        assert summary.total == 2
        assert summary.by_status == {"pending": 1, "confirmed": 1}
        assert summary.by_severity == {"low": 1, "high": 1}
        assert summary.by_type == {"unusual_time": 1, "category_limit": 1}

    def test_list_pagination_is_newest_first(self, alert_manager, coordinator, make_account, clock):
        make_account("alice")
        clock.now = datetime(2026, 3, 18, 0, 30, tzinfo=timezone.utc)
        first = coordinator.deposit("alice", 100).alerts[0]
        clock.advance(hours=2)
        second = coordinator.deposit("alice", 100).alerts[0]

        page, total = alert_manager.list_alerts("alice", limit=1)
        assert total == 2
        assert page[0].id == second.id

        page, _ = alert_manager.list_alerts("alice", limit=1, offset=1)
        assert page[0].id == first.id

    def test_empty_summary(self, alert_manager, make_account):
        make_account("alice")
        summary = alert_manager.summarize("alice")
        assert summary.total == 0
        assert summary.by_status == {}
