"""Domain models - pure Python dataclasses representing ledger, fraud and alert entities"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from wallet_guard.domain.exceptions import ValidationError


class EntryKind(str, Enum):
    """Direction of a ledger entry"""

    INFLOW = "inflow"
    OUTFLOW = "outflow"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"


class Category(str, Enum):
    """Recognized spending/income categories"""

    FOOD = "food"
    TRANSPORT = "transport"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    HEALTHCARE = "healthcare"
    UTILITIES = "utilities"
    SALARY = "salary"
    FREELANCE = "freelance"
    INVESTMENT = "investment"
    TRANSFER = "transfer"
    OTHER = "other"  # Generic fallback, eligible for categorizer suggestions

    @classmethod
    def parse(cls, value: "str | Category", allowed: "frozenset[Category] | None" = None) -> "Category":
        """Validate a caller-supplied category at the boundary, optionally against one entry kind's set"""
        try:
            category = cls(value)
        except ValueError:
            raise ValidationError(f"Unknown category: {value!r}") from None
        if allowed is not None and category not in allowed:
            raise ValidationError(f"Category {category.value!r} is not allowed for this entry")
        return category


EXPENSE_CATEGORIES = frozenset(
    {
        Category.FOOD,
        Category.TRANSPORT,
        Category.SHOPPING,
        Category.ENTERTAINMENT,
        Category.HEALTHCARE,
        Category.UTILITIES,
        Category.OTHER,
    }
)
INCOME_CATEGORIES = frozenset({Category.SALARY, Category.FREELANCE, Category.INVESTMENT, Category.OTHER})


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"
    OTHER = "other"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertType(str, Enum):
    """One alert type per fraud rule"""

    HIGH_AMOUNT = "high_amount"
    CATEGORY_LIMIT = "category_limit"
    FREQUENT_TRANSACTIONS = "frequent_transactions"
    UNUSUAL_TIME = "unusual_time"


class AlertStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"  # Legitimate
    DISMISSED = "dismissed"  # False positive
    CONFIRMED = "confirmed"  # Fraud confirmed


@dataclass(frozen=True)
class AccountLimits:
    """Monthly cap and per-category caps, in cents. Zero means no limit."""

    monthly_limit_cents: int = 0
    category_limits: Mapping[Category, int] = field(default_factory=dict)

    def __post_init__(self):
        if self.monthly_limit_cents < 0:
            raise ValidationError("Monthly limit cannot be negative")
        for category, limit in self.category_limits.items():
            if not isinstance(category, Category):
                raise ValidationError(f"Unknown category: {category!r}")
            if limit < 0:
                raise ValidationError(f"Limit for {category.value} cannot be negative")

    @classmethod
    def from_raw(cls, monthly_limit_cents: int = 0, category_limits: Optional[Mapping[str, int]] = None) -> "AccountLimits":
        """Build limits from loosely-typed input (API payloads, JSON columns)"""
        parsed = {Category.parse(name): int(limit) for name, limit in (category_limits or {}).items()}
        return cls(monthly_limit_cents=int(monthly_limit_cents or 0), category_limits=parsed)

    def limit_for(self, category: Category) -> int:
        return self.category_limits.get(category, 0)

    def to_raw(self) -> Dict[str, int]:
        return {category.value: limit for category, limit in self.category_limits.items()}


@dataclass(frozen=True)
class NotificationPolicy:
    """Whether the account owner wants fraud alerts delivered"""

    fraud_alerts: bool = True
    email_notifications: bool = True

    @property
    def allows_alert_dispatch(self) -> bool:
        return self.fraud_alerts and self.email_notifications


@dataclass
class Account:
    """Wallet owner as resolved by the account directory"""

    account_id: str
    email: str
    display_name: str
    currency: str
    balance_cents: int
    version: int
    limits: AccountLimits = field(default_factory=AccountLimits)
    notification_policy: NotificationPolicy = field(default_factory=NotificationPolicy)
    timezone: str = "UTC"


@dataclass(frozen=True)
class FraudTag:
    """Append-only annotation on a ledger entry"""

    alert_type: AlertType
    severity: Severity
    message: str
    flagged_at: datetime
    confirmed: bool = False


@dataclass(frozen=True)
class LedgerEntryDraft:
    """Entry contents before the ledger store assigns an id and commits it"""

    account_id: str
    kind: EntryKind
    amount_cents: int
    category: Category
    description: str
    occurred_at: datetime
    payment_method: PaymentMethod = PaymentMethod.OTHER
    merchant: Optional[str] = None
    transfer_group: Optional[str] = None
    counterparty_account_id: Optional[str] = None
    categorized_by_ai: bool = False
    categorizer_confidence: Optional[float] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class LedgerEntry:
    """Committed, immutable monetary event"""

    id: uuid.UUID
    account_id: str
    kind: EntryKind
    amount_cents: int
    category: Category
    description: str
    occurred_at: datetime
    payment_method: PaymentMethod = PaymentMethod.OTHER
    merchant: Optional[str] = None
    transfer_group: Optional[str] = None
    counterparty_account_id: Optional[str] = None
    categorized_by_ai: bool = False
    categorizer_confidence: Optional[float] = None
    notes: Optional[str] = None
    fraud_tags: tuple = ()

    @property
    def is_expense(self) -> bool:
        return self.kind == EntryKind.OUTFLOW


@dataclass(frozen=True)
class FraudSignal:
    """Ephemeral output of one rule evaluation"""

    alert_type: AlertType
    severity: Severity
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Alert:
    """Reviewable record created from a fraud signal"""

    id: uuid.UUID
    account_id: str
    entry_id: uuid.UUID
    alert_type: AlertType
    severity: Severity
    message: str
    details: Dict[str, Any]
    status: AlertStatus
    created_at: datetime
    notified: bool = False
    notified_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ExpenseMetadata:
    """Optional details supplied with an expense"""

    payment_method: PaymentMethod = PaymentMethod.OTHER
    merchant: Optional[str] = None
    occurred_at: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class IncomeMetadata:
    """Optional details supplied with an income entry; payer is stored as the merchant"""

    payment_method: PaymentMethod = PaymentMethod.OTHER
    payer: Optional[str] = None
    occurred_at: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class CategorySuggestion:
    """Advisory output of the external categorizer"""

    category: str
    confidence: float


@dataclass
class OperationResult:
    """Outcome of a coordinator operation"""

    operation: str
    entries: List[LedgerEntry]
    balance_cents: int
    transfer_group: Optional[str] = None
    replayed: bool = False
    alerts: List[Alert] = field(default_factory=list)


@dataclass
class AlertSummary:
    """Alert counts for one account"""

    total: int
    by_status: Dict[str, int]
    by_severity: Dict[str, int]
    by_type: Dict[str, int]
