"""Ledger store and unit-of-work behaviour"""

import pytest
from datetime import datetime, timezone
from sqlalchemy.orm import sessionmaker

from wallet_guard.domain.exceptions import (
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    TransactionTimeoutError,
    ValidationError,
)
from wallet_guard.domain.models import Category, EntryKind, LedgerEntryDraft
from wallet_guard.infrastructure.database.repositories import AccountRepository, LedgerRepository
from wallet_guard.infrastructure.database.session import atomic, build_engine

OCCURRED_AT = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


def draft(account_id, amount_cents, kind=EntryKind.INFLOW):
    return LedgerEntryDraft(
        account_id=account_id,
        kind=kind,
        amount_cents=amount_cents,
        category=Category.OTHER,
        description="Test",
        occurred_at=OCCURRED_AT,
    )


@pytest.mark.integration
class TestConditionalUpdate:
    def test_append_moves_balance_and_version(self, db, make_account):
        make_account("alice")
        ledger = LedgerRepository(db)

        with atomic(db):
            ledger.append_entry(draft("alice", 500), balance_delta_cents=500)
            ledger.append_entry(draft("alice", 200, EntryKind.OUTFLOW), balance_delta_cents=-200)

        with atomic(db):
            account = AccountRepository(db).get("alice")
        assert account.balance_cents == 300
        assert account.version == 2

    def test_overdraw_rejected_without_partial_write(self, db, make_account):
        make_account("alice")
        ledger = LedgerRepository(db)

        with pytest.raises(InsufficientFundsError):
            with atomic(db):
                ledger.append_entry(draft("alice", 1, EntryKind.OUTFLOW), balance_delta_cents=-1)

        with atomic(db):
            assert ledger.get_balance("alice") == 0
            assert ledger.list_entries("alice")[1] == 0

    def test_balance_may_reach_exactly_zero(self, db, make_account):
        make_account("alice")
        ledger = LedgerRepository(db)
        with atomic(db):
            ledger.append_entry(draft("alice", 100), balance_delta_cents=100)
            assert ledger.apply_balance_delta("alice", -100) == 0

    def test_unknown_account(self, db):
        with pytest.raises(NotFoundError):
            with atomic(db):
                LedgerRepository(db).apply_balance_delta("ghost", 100)

    def test_stale_version_conflicts(self, db, make_account):
        make_account("alice")
        ledger = LedgerRepository(db)
        with atomic(db):
            ledger.append_entry(draft("alice", 100), balance_delta_cents=100, expected_version=0)

        with pytest.raises(ConflictError):
            with atomic(db):
                ledger.append_entry(draft("alice", 100), balance_delta_cents=100, expected_version=0)

        with atomic(db):
            assert ledger.get_balance("alice") == 100

    def test_non_positive_entry_amount(self, db, make_account):
        make_account("alice")
        with pytest.raises(ValidationError):
            with atomic(db):
                LedgerRepository(db).append_entry(draft("alice", 0))

    def test_duplicate_account(self, db, make_account):
        make_account("alice")
        with pytest.raises(ConflictError):
            make_account("alice", email="other@example.com")


@pytest.mark.integration
def test_lock_wait_is_bounded(make_account, engine):
    """A writer blocked past the lock timeout gets TransactionTimeoutError"""
    make_account("alice")
    impatient_engine = build_engine(str(engine.url), lock_timeout_ms=200)
    holder = sessionmaker(bind=engine)()
    waiter = sessionmaker(bind=impatient_engine)()

    try:
        # holder opens a write transaction and keeps it open
        LedgerRepository(holder).apply_balance_delta("alice", 100)

        with pytest.raises(TransactionTimeoutError):
            with atomic(waiter, lock_timeout_ms=200):
                LedgerRepository(waiter).apply_balance_delta("alice", 100)
    finally:
        holder.rollback()
        holder.close()
        waiter.close()
        impatient_engine.dispose()
