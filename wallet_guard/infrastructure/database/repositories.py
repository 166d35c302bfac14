"""Data access layer for accounts, ledger entries, alerts and idempotency records"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from wallet_guard.config import settings
from wallet_guard.infrastructure.database.models import (
    AccountRecord,
    AlertRecord,
    FraudTagRecord,
    IdempotencyRecord,
    LedgerEntryRecord,
)
from wallet_guard.domain.exceptions import ConflictError, InsufficientFundsError, NotFoundError, ValidationError
from wallet_guard.domain.models import (
    Account,
    AccountLimits,
    Alert,
    AlertStatus,
    AlertSummary,
    AlertType,
    Category,
    EntryKind,
    FraudSignal,
    FraudTag,
    LedgerEntry,
    LedgerEntryDraft,
    NotificationPolicy,
    PaymentMethod,
    Severity,
)
from wallet_guard.utils.date_utils import ensure_utc, load_timezone


def _account_to_domain(record: AccountRecord) -> Account:
    return Account(
        account_id=record.id,
        email=record.email,
        display_name=record.display_name,
        currency=record.currency,
        balance_cents=record.balance_cents,
        version=record.version,
        limits=AccountLimits.from_raw(record.monthly_limit_cents, record.category_limits),
        notification_policy=NotificationPolicy(
            fraud_alerts=record.fraud_alerts,
            email_notifications=record.email_notifications,
        ),
        timezone=record.timezone,
    )


def _tag_to_domain(record: FraudTagRecord) -> FraudTag:
    return FraudTag(
        alert_type=AlertType(record.alert_type),
        severity=Severity(record.severity),
        message=record.message,
        flagged_at=ensure_utc(record.flagged_at),
        confirmed=record.confirmed,
    )


def _entry_to_domain(record: LedgerEntryRecord) -> LedgerEntry:
    return LedgerEntry(
        id=record.id,
        account_id=record.account_id,
        kind=EntryKind(record.kind),
        amount_cents=record.amount_cents,
        category=Category(record.category),
        description=record.description,
        occurred_at=ensure_utc(record.occurred_at),
        payment_method=PaymentMethod(record.payment_method),
        merchant=record.merchant,
        transfer_group=record.transfer_group,
        counterparty_account_id=record.counterparty_account_id,
        categorized_by_ai=record.categorized_by_ai,
        categorizer_confidence=record.categorizer_confidence,
        notes=record.notes,
        fraud_tags=tuple(_tag_to_domain(tag) for tag in record.tags),
    )


def _alert_to_domain(record: AlertRecord) -> Alert:
    return Alert(
        id=record.id,
        account_id=record.account_id,
        entry_id=record.entry_id,
        alert_type=AlertType(record.alert_type),
        severity=Severity(record.severity),
        message=record.message,
        details=dict(record.details or {}),
        status=AlertStatus(record.status),
        created_at=ensure_utc(record.created_at),
        notified=record.notified,
        notified_at=ensure_utc(record.notified_at) if record.notified_at else None,
        reviewed_by=record.reviewed_by,
        reviewed_at=ensure_utc(record.reviewed_at) if record.reviewed_at else None,
        notes=record.notes,
    )


class AccountRepository:
    """Account directory: resolves identities to wallet state and owns preferences"""

    def __init__(self, db: Session):
        self.db = db

    def create_account(
        self,
        account_id: str,
        email: str,
        display_name: str,
        currency: str | None = None,
        timezone: str | None = None,
        limits: AccountLimits | None = None,
        notification_policy: NotificationPolicy | None = None,
    ) -> Account:
        """Register a new wallet with a zero balance"""
        timezone = timezone or settings.default_timezone
        load_timezone(timezone)
        limits = limits or AccountLimits()
        policy = notification_policy or NotificationPolicy()

        if self.db.get(AccountRecord, account_id) is not None:
            raise ConflictError(f"Account {account_id} already exists")

        record = AccountRecord(
            id=account_id,
            email=email.strip().lower(),
            display_name=display_name,
            currency=(currency or settings.default_currency).upper(),
            balance_cents=0,
            version=0,
            monthly_limit_cents=limits.monthly_limit_cents,
            category_limits=limits.to_raw(),
            fraud_alerts=policy.fraud_alerts,
            email_notifications=policy.email_notifications,
            timezone=timezone,
        )
        self.db.add(record)
        self.db.flush()
        return _account_to_domain(record)

    def get(self, account_id: str) -> Account:
        record = self.db.get(AccountRecord, account_id, populate_existing=True)
        if record is None:
            raise NotFoundError(f"Account {account_id} not found")
        return _account_to_domain(record)

    def resolve(self, identity: str) -> Account:
        """Look an account up by id, falling back to email"""
        record = (
            self.db.query(AccountRecord)
            .filter(or_(AccountRecord.id == identity, AccountRecord.email == identity.strip().lower()))
            .populate_existing()
            .first()
        )
        if record is None:
            raise NotFoundError(f"Account {identity} not found")
        return _account_to_domain(record)

    def apply_preference_update(
        self,
        account_id: str,
        limits: AccountLimits | None = None,
        notification_policy: NotificationPolicy | None = None,
        timezone: str | None = None,
    ) -> Account:
        """Update limits, notification policy or timezone; the balance is never touched here"""
        record = self.db.get(AccountRecord, account_id)
        if record is None:
            raise NotFoundError(f"Account {account_id} not found")

        if limits is not None:
            record.monthly_limit_cents = limits.monthly_limit_cents
            record.category_limits = limits.to_raw()
        if notification_policy is not None:
            record.fraud_alerts = notification_policy.fraud_alerts
            record.email_notifications = notification_policy.email_notifications
        if timezone is not None:
            load_timezone(timezone)
            record.timezone = timezone

        self.db.flush()
        return _account_to_domain(record)


class LedgerRepository:
    """
    Ledger store: append-only entries plus the balances they move.

    Writes must run inside an atomic unit of work supplied by the caller.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_balance(self, account_id: str) -> int:
        balance = (
            self.db.query(AccountRecord.balance_cents)
            .filter(AccountRecord.id == account_id)
            .scalar()
        )
        if balance is None:
            raise NotFoundError(f"Account {account_id} not found")
        return balance

    def apply_balance_delta(
        self,
        account_id: str,
        delta_cents: int,
        expected_version: int | None = None,
    ) -> int:
        """
        Conditionally move an account balance and return the new balance.

        The precondition (balance stays non-negative, and optionally the
        version is unchanged) is checked by the same UPDATE that writes,
        so there is no gap between reading and writing the balance.
        """
        conditions = [
            AccountRecord.id == account_id,
            AccountRecord.balance_cents + delta_cents >= 0,
        ]
        if expected_version is not None:
            conditions.append(AccountRecord.version == expected_version)

        stmt = (
            update(AccountRecord)
            .where(*conditions)
            .values(
                balance_cents=AccountRecord.balance_cents + delta_cents,
                version=AccountRecord.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        if result.rowcount == 0:
            row = (
                self.db.query(AccountRecord.balance_cents, AccountRecord.version)
                .filter(AccountRecord.id == account_id)
                .first()
            )
            if row is None:
                raise NotFoundError(f"Account {account_id} not found")
            if expected_version is not None and row.version != expected_version:
                raise ConflictError(f"Account {account_id} was modified concurrently")
            raise InsufficientFundsError(
                f"Insufficient balance: {row.balance_cents} cents available, {-delta_cents} cents required"
            )

        return self.get_balance(account_id)

    def append_entry(
        self,
        draft: LedgerEntryDraft,
        balance_delta_cents: int = 0,
        expected_version: int | None = None,
    ) -> LedgerEntry:
        """Apply the balance delta and insert the entry as one write"""
        if draft.amount_cents <= 0:
            raise ValidationError("Amount must be greater than 0")

        if balance_delta_cents != 0 or expected_version is not None:
            self.apply_balance_delta(draft.account_id, balance_delta_cents, expected_version)

        record = LedgerEntryRecord(
            id=uuid.uuid4(),
            account_id=draft.account_id,
            kind=draft.kind.value,
            amount_cents=draft.amount_cents,
            category=draft.category.value,
            description=draft.description,
            merchant=draft.merchant,
            payment_method=draft.payment_method.value,
            occurred_at=draft.occurred_at,
            transfer_group=draft.transfer_group,
            counterparty_account_id=draft.counterparty_account_id,
            categorized_by_ai=draft.categorized_by_ai,
            categorizer_confidence=draft.categorizer_confidence,
            notes=draft.notes,
        )
        self.db.add(record)
        self.db.flush()
        return _entry_to_domain(record)

    def get_entry(self, entry_id: uuid.UUID) -> LedgerEntry:
        record = self.db.get(LedgerEntryRecord, entry_id)
        if record is None:
            raise NotFoundError(f"Ledger entry {entry_id} not found")
        return _entry_to_domain(record)

    def get_entries(self, entry_ids: List[uuid.UUID]) -> List[LedgerEntry]:
        """Fetch entries preserving the requested order"""
        return [self.get_entry(entry_id) for entry_id in entry_ids]

    def get_transfer_group(self, transfer_group: str) -> List[LedgerEntry]:
        records = (
            self.db.query(LedgerEntryRecord)
            .filter(LedgerEntryRecord.transfer_group == transfer_group)
            .order_by(LedgerEntryRecord.kind.desc())  # transfer_out before transfer_in
            .all()
        )
        return [_entry_to_domain(r) for r in records]

    def list_entries(
        self,
        account_id: str,
        kind: EntryKind | None = None,
        category: Category | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[LedgerEntry], int]:
        """Newest-first page of an account's entries and the total match count"""
        query = self.db.query(LedgerEntryRecord).filter(LedgerEntryRecord.account_id == account_id)
        if kind is not None:
            query = query.filter(LedgerEntryRecord.kind == kind.value)
        if category is not None:
            query = query.filter(LedgerEntryRecord.category == category.value)
        if start is not None:
            query = query.filter(LedgerEntryRecord.occurred_at >= start)
        if end is not None:
            query = query.filter(LedgerEntryRecord.occurred_at <= end)

        total = query.count()
        records = (
            query.order_by(LedgerEntryRecord.occurred_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [_entry_to_domain(r) for r in records], total

    def append_tag(self, entry_id: uuid.UUID, tag: FraudTag) -> None:
        self.db.add(
            FraudTagRecord(
                entry_id=entry_id,
                alert_type=tag.alert_type.value,
                severity=tag.severity.value,
                message=tag.message,
                confirmed=tag.confirmed,
                flagged_at=tag.flagged_at,
            )
        )
        self.db.flush()

    # Historical reads used by the fraud engine

    def expenses_before(self, account_id: str, before: datetime) -> List[Tuple[int, datetime]]:
        """(amount, occurred_at) for every outflow strictly before a timestamp"""
        rows = (
            self.db.query(LedgerEntryRecord.amount_cents, LedgerEntryRecord.occurred_at)
            .filter(
                LedgerEntryRecord.account_id == account_id,
                LedgerEntryRecord.kind == EntryKind.OUTFLOW.value,
                LedgerEntryRecord.occurred_at < before,
            )
            .all()
        )
        return [(amount, ensure_utc(occurred_at)) for amount, occurred_at in rows]

    def category_spend_between(self, account_id: str, category: Category, start: datetime, end: datetime) -> int:
        """Outflow total in a category over [start, end]"""
        total = (
            self.db.query(func.coalesce(func.sum(LedgerEntryRecord.amount_cents), 0))
            .filter(
                LedgerEntryRecord.account_id == account_id,
                LedgerEntryRecord.kind == EntryKind.OUTFLOW.value,
                LedgerEntryRecord.category == category.value,
                LedgerEntryRecord.occurred_at >= start,
                LedgerEntryRecord.occurred_at <= end,
            )
            .scalar()
        )
        return int(total or 0)

    def count_entries_between(
        self,
        account_id: str,
        start: datetime,
        end: datetime,
        exclude_entry_id: uuid.UUID | None = None,
    ) -> int:
        query = self.db.query(func.count(LedgerEntryRecord.id)).filter(
            LedgerEntryRecord.account_id == account_id,
            LedgerEntryRecord.occurred_at >= start,
            LedgerEntryRecord.occurred_at <= end,
        )
        if exclude_entry_id is not None:
            query = query.filter(LedgerEntryRecord.id != exclude_entry_id)
        return query.scalar() or 0

    def entry_times_between(
        self,
        account_id: str,
        start: datetime,
        end: datetime,
        exclude_entry_id: uuid.UUID | None = None,
    ) -> List[datetime]:
        query = self.db.query(LedgerEntryRecord.occurred_at).filter(
            LedgerEntryRecord.account_id == account_id,
            LedgerEntryRecord.occurred_at >= start,
            LedgerEntryRecord.occurred_at <= end,
        )
        if exclude_entry_id is not None:
            query = query.filter(LedgerEntryRecord.id != exclude_entry_id)
        return [ensure_utc(occurred_at) for (occurred_at,) in query.all()]


class IdempotencyRepository:
    """Stored results of completed operations, keyed per account"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, account_id: str, key: str) -> Optional[IdempotencyRecord]:
        return self.db.get(IdempotencyRecord, (account_id, key))

    def save(self, account_id: str, key: str, operation: str, fingerprint: str, response: Dict[str, Any]) -> None:
        """Record the result; a concurrent duplicate fails at flush with an IntegrityError"""
        self.db.add(
            IdempotencyRecord(
                account_id=account_id,
                key=key,
                operation=operation,
                fingerprint=fingerprint,
                response=response,
            )
        )
        self.db.flush()


class AlertRepository:
    """Repository for fraud alerts"""

    def __init__(self, db: Session):
        self.db = db

    def create_alert(self, account_id: str, entry_id: uuid.UUID, signal: FraudSignal, created_at: datetime) -> Alert:
        record = AlertRecord(
            id=uuid.uuid4(),
            account_id=account_id,
            entry_id=entry_id,
            alert_type=signal.alert_type.value,
            severity=signal.severity.value,
            message=signal.message,
            details=dict(signal.details),
            status=AlertStatus.PENDING.value,
            notified=False,
            created_at=created_at,
        )
        self.db.add(record)
        self.db.flush()
        return _alert_to_domain(record)

    def mark_notified(self, alert_id: uuid.UUID, notified_at: datetime) -> None:
        self.db.execute(
            update(AlertRecord)
            .where(AlertRecord.id == alert_id)
            .values(notified=True, notified_at=notified_at)
            .execution_options(synchronize_session=False)
        )

    def get_alert(self, alert_id: uuid.UUID, account_id: str | None = None) -> Alert:
        query = self.db.query(AlertRecord).filter(AlertRecord.id == alert_id)
        if account_id is not None:
            query = query.filter(AlertRecord.account_id == account_id)
        record = query.populate_existing().first()
        if record is None:
            raise NotFoundError(f"Fraud alert {alert_id} not found")
        return _alert_to_domain(record)

    def transition(
        self,
        alert_id: uuid.UUID,
        from_status: AlertStatus,
        to_status: AlertStatus,
        reviewed_by: str,
        reviewed_at: datetime,
        notes: str | None,
    ) -> bool:
        """Compare-and-set the status; False when the alert already left from_status"""
        result = self.db.execute(
            update(AlertRecord)
            .where(AlertRecord.id == alert_id, AlertRecord.status == from_status.value)
            .values(
                status=to_status.value,
                reviewed_by=reviewed_by,
                reviewed_at=reviewed_at,
                notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_alerts(
        self,
        account_id: str,
        status: AlertStatus | None = None,
        severity: Severity | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Alert], int]:
        query = self.db.query(AlertRecord).filter(AlertRecord.account_id == account_id)
        if status is not None:
            query = query.filter(AlertRecord.status == status.value)
        if severity is not None:
            query = query.filter(AlertRecord.severity == severity.value)

        total = query.count()
        records = (
            query.order_by(AlertRecord.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [_alert_to_domain(r) for r in records], total

    def summarize(self, account_id: str) -> AlertSummary:
        def counts(column) -> Dict[str, int]:
            rows = (
                self.db.query(column, func.count(AlertRecord.id))
                .filter(AlertRecord.account_id == account_id)
                .group_by(column)
                .all()
            )
            return {value: count for value, count in rows}

        by_status = counts(AlertRecord.status)
        return AlertSummary(
            total=sum(by_status.values()),
            by_status=by_status,
            by_severity=counts(AlertRecord.severity),
            by_type=counts(AlertRecord.alert_type),
        )
