"""SQLAlchemy ORM models for accounts, the append-only ledger and fraud alerts"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    Float,
    DateTime,
    Integer,
    ForeignKey,
    Index,
    Text,
    JSON,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class AccountRecord(Base):
    """Wallet owner with a monotonically versioned balance"""

    __tablename__ = "accounts"

    id = Column(Text, primary_key=True)
    email = Column(Text, nullable=False, unique=True, index=True)
    display_name = Column(Text, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    balance_cents = Column(BigInteger, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)
    monthly_limit_cents = Column(BigInteger, nullable=False, default=0)
    category_limits = Column(JSON, nullable=False, default=dict)
    fraud_alerts = Column(Boolean, nullable=False, default=True)
    email_notifications = Column(Boolean, nullable=False, default=True)
    timezone = Column(Text, nullable=False, default="UTC")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LedgerEntryRecord(Base):
    """Immutable monetary event; rows are inserted once and never updated"""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_entries_account_occurred", "account_id", "occurred_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(Text, ForeignKey("accounts.id"), nullable=False)
    kind = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    category = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    merchant = Column(Text, nullable=True)
    payment_method = Column(Text, nullable=False, default="other")
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    transfer_group = Column(Text, nullable=True, index=True)
    counterparty_account_id = Column(Text, nullable=True)
    categorized_by_ai = Column(Boolean, nullable=False, default=False)
    categorizer_confidence = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tags = relationship("FraudTagRecord", back_populates="entry", order_by="FraudTagRecord.id")


class FraudTagRecord(Base):
    """Append-only fraud annotation on a ledger entry"""

    __tablename__ = "fraud_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Uuid, ForeignKey("ledger_entries.id"), nullable=False, index=True)
    alert_type = Column(Text, nullable=False)
    severity = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    confirmed = Column(Boolean, nullable=False, default=False)
    flagged_at = Column(DateTime(timezone=True), nullable=False)

    entry = relationship("LedgerEntryRecord", back_populates="tags")


class AlertRecord(Base):
    """Fraud alert with its review lifecycle"""

    __tablename__ = "fraud_alerts"
    __table_args__ = (
        Index("ix_fraud_alerts_account_status_created", "account_id", "status", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(Text, ForeignKey("accounts.id"), nullable=False)
    entry_id = Column(Uuid, ForeignKey("ledger_entries.id"), nullable=False)
    alert_type = Column(Text, nullable=False)
    severity = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    status = Column(Text, nullable=False, default="pending")
    notified = Column(Boolean, nullable=False, default=False)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class IdempotencyRecord(Base):
    """Result of a completed operation, keyed by the caller's idempotency key"""

    __tablename__ = "idempotency_records"

    account_id = Column(Text, primary_key=True)
    key = Column(Text, primary_key=True)
    operation = Column(Text, nullable=False)
    fingerprint = Column(Text, nullable=False)
    response = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
