"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from wallet_guard.domain.models import (
    Alert,
    AlertStatus,
    Category,
    EntryKind,
    FraudTag,
    LedgerEntry,
    PaymentMethod,
    Severity,
)


class CreateAccountRequest(BaseModel):
    """Request body for POST /v1/accounts"""

    account_id: str = Field(..., min_length=1, description="Account identity")
    email: str = Field(..., min_length=3)
    display_name: str = Field(..., min_length=1, max_length=100)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    timezone: Optional[str] = None


class PreferencesRequest(BaseModel):
    """Request body for PUT /v1/accounts/{account_id}/preferences"""

    email_notifications: Optional[bool] = None
    fraud_alerts: Optional[bool] = None
    monthly_limit_cents: Optional[int] = Field(None, ge=0)
    category_limits: Optional[Dict[str, int]] = None
    timezone: Optional[str] = None


class AccountResponse(BaseModel):
    account_id: str
    email: str
    display_name: str
    currency: str
    balance_cents: int
    monthly_limit_cents: int
    category_limits: Dict[str, int]
    email_notifications: bool
    fraud_alerts: bool
    timezone: str


class BalanceResponse(BaseModel):
    account_id: str
    balance_cents: int
    currency: str


class DepositRequest(BaseModel):
    """Request body for POST /v1/wallet/deposit"""

    amount_cents: int = Field(..., gt=0, description="Amount to add, in cents")
    description: str = Field("Add funds to wallet", min_length=1, max_length=200)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class ExpenseRequest(BaseModel):
    """Request body for POST /v1/transactions/expense"""

    amount_cents: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Category.OTHER.value
    payment_method: PaymentMethod = PaymentMethod.OTHER
    merchant: Optional[str] = Field(None, max_length=200)
    occurred_at: Optional[datetime] = None
    notes: Optional[str] = None


class IncomeRequest(BaseModel):
    """Request body for POST /v1/transactions/income"""

    amount_cents: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Category.OTHER.value
    payment_method: PaymentMethod = PaymentMethod.OTHER
    payer: Optional[str] = Field(None, max_length=200)
    occurred_at: Optional[datetime] = None
    notes: Optional[str] = None


class TransferRequest(BaseModel):
    """Request body for POST /v1/wallet/transfer"""

    to: str = Field(..., min_length=1, description="Recipient account id or email")
    amount_cents: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)


class FraudTagSchema(BaseModel):
    alert_type: str
    severity: str
    message: str
    flagged_at: datetime
    confirmed: bool

    @classmethod
    def from_domain(cls, tag: FraudTag) -> "FraudTagSchema":
        return cls(
            alert_type=tag.alert_type.value,
            severity=tag.severity.value,
            message=tag.message,
            flagged_at=tag.flagged_at,
            confirmed=tag.confirmed,
        )


class EntrySchema(BaseModel):
    """Single ledger entry"""

    entry_id: str
    account_id: str
    kind: EntryKind
    amount_cents: int
    category: Category
    description: str
    merchant: Optional[str] = None
    payment_method: PaymentMethod
    occurred_at: datetime
    transfer_group: Optional[str] = None
    counterparty_account_id: Optional[str] = None
    categorized_by_ai: bool = False
    fraud_tags: List[FraudTagSchema] = []

    @classmethod
    def from_domain(cls, entry: LedgerEntry) -> "EntrySchema":
        return cls(
            entry_id=str(entry.id),
            account_id=entry.account_id,
            kind=entry.kind,
            amount_cents=entry.amount_cents,
            category=entry.category,
            description=entry.description,
            merchant=entry.merchant,
            payment_method=entry.payment_method,
            occurred_at=entry.occurred_at,
            transfer_group=entry.transfer_group,
            counterparty_account_id=entry.counterparty_account_id,
            categorized_by_ai=entry.categorized_by_ai,
            fraud_tags=[FraudTagSchema.from_domain(tag) for tag in entry.fraud_tags],
        )


class AlertSchema(BaseModel):
    """Single fraud alert"""

    alert_id: str
    account_id: str
    entry_id: str
    alert_type: str
    severity: Severity
    message: str
    details: Dict[str, Any]
    status: AlertStatus
    notified: bool
    created_at: datetime
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_domain(cls, alert: Alert) -> "AlertSchema":
        return cls(
            alert_id=str(alert.id),
            account_id=alert.account_id,
            entry_id=str(alert.entry_id),
            alert_type=alert.alert_type.value,
            severity=alert.severity,
            message=alert.message,
            details=alert.details,
            status=alert.status,
            notified=alert.notified,
            created_at=alert.created_at,
            reviewed_by=alert.reviewed_by,
            reviewed_at=alert.reviewed_at,
            notes=alert.notes,
        )


class OperationResponse(BaseModel):
    """Response for deposit, expense and transfer"""

    operation: str
    balance_cents: int
    entries: List[EntrySchema]
    transfer_group: Optional[str] = None
    replayed: bool = False
    alerts: List[AlertSchema] = []


class EntryListResponse(BaseModel):
    entries: List[EntrySchema]
    total: int
    limit: int
    offset: int


class AlertListResponse(BaseModel):
    alerts: List[AlertSchema]
    total: int
    limit: int
    offset: int


class AlertSummaryResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_severity: Dict[str, int]
    by_type: Dict[str, int]


class ReviewRequest(BaseModel):
    """Request body for PUT /v1/alerts/{alert_id}/review"""

    status: str = Field(..., description="reviewed | dismissed | confirmed")
    notes: Optional[str] = Field(None, max_length=1000)
