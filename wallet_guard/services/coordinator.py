"""Transfer coordinator - every balance-affecting operation as one atomic unit of work"""

import hashlib
import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from sqlalchemy.orm import Session

from wallet_guard.config import settings
from wallet_guard.domain.exceptions import CategorizerError, ConflictError, DomainException, ValidationError
from wallet_guard.domain.models import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    Category,
    EntryKind,
    ExpenseMetadata,
    IncomeMetadata,
    LedgerEntryDraft,
    OperationResult,
    PaymentMethod,
)
from wallet_guard.infrastructure.clients.categorizer import CategorizerClient
from wallet_guard.infrastructure.database.repositories import (
    AccountRepository,
    IdempotencyRepository,
    LedgerRepository,
)
from wallet_guard.infrastructure.database.session import atomic
from wallet_guard.infrastructure.observability.logging import log_ledger_operation
from wallet_guard.infrastructure.observability.metrics import categorizer_counter, record_ledger_operation
from wallet_guard.services.fraud_engine import FraudRuleEngine
from wallet_guard.utils.date_utils import ensure_utc, utcnow

MAX_DESCRIPTION_LENGTH = 200


def _validate_amount(amount_cents: Any) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("Amount must be a whole number of cents")
    if amount_cents <= 0:
        raise ValidationError("Amount must be greater than 0")
    return amount_cents


def _validate_description(description: str) -> str:
    description = (description or "").strip()
    if not 1 <= len(description) <= MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"Description must be between 1 and {MAX_DESCRIPTION_LENGTH} characters")
    return description


def _fingerprint(operation: str, **params: Any) -> str:
    payload = json.dumps({"operation": operation, **params}, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class TransferCoordinator:
    """
    Executes deposits, income, expenses and peer transfers against the ledger store.

    Each operation validates its input, then runs one unit of work in which
    the balance precondition and the balance write are a single conditional
    UPDATE. Committed entries are screened by the fraud engine afterwards;
    screening problems are logged and never undo the operation.
    """

    def __init__(
        self,
        db: Session,
        fraud_engine: Optional[FraudRuleEngine] = None,
        categorizer: Optional[CategorizerClient] = None,
        clock: Callable = utcnow,
        max_deposit_cents: int | None = None,
    ):
        self.db = db
        self.fraud_engine = fraud_engine
        self.categorizer = categorizer
        self.clock = clock
        self.max_deposit_cents = max_deposit_cents if max_deposit_cents is not None else settings.max_deposit_cents
        self.accounts = AccountRepository(db)
        self.ledger = LedgerRepository(db)
        self.idempotency = IdempotencyRepository(db)

    def get_balance(self, account_id: str) -> int:
        with atomic(self.db):
            return self.ledger.get_balance(account_id)

    def deposit(
        self,
        account_id: str,
        amount_cents: int,
        description: str = "Add funds to wallet",
        currency: str | None = None,
        idempotency_key: str | None = None,
    ) -> OperationResult:
        """
        Add funds to a wallet.

        Raises:
            ValidationError: non-positive amount, amount above the deposit ceiling, currency mismatch
            NotFoundError: unknown account
        """
        amount_cents = _validate_amount(amount_cents)
        description = _validate_description(description)
        if amount_cents > self.max_deposit_cents:
            raise ValidationError(f"Amount cannot exceed {self.max_deposit_cents} cents per deposit")
        currency = currency.upper() if currency else None

        def work() -> OperationResult:
            account = self.accounts.get(account_id)
            if currency and currency != account.currency:
                raise ValidationError(f"Currency {currency} does not match wallet currency {account.currency}")

            entry = self.ledger.append_entry(
                LedgerEntryDraft(
                    account_id=account_id,
                    kind=EntryKind.INFLOW,
                    amount_cents=amount_cents,
                    category=Category.OTHER,
                    description=description,
                    occurred_at=self.clock(),
                    payment_method=PaymentMethod.WALLET,
                ),
                balance_delta_cents=amount_cents,
            )
            return OperationResult(
                operation="deposit",
                entries=[entry],
                balance_cents=self.ledger.get_balance(account_id),
            )

        fingerprint = _fingerprint("deposit", amount_cents=amount_cents, description=description, currency=currency)
        return self._execute("deposit", account_id, amount_cents, idempotency_key, fingerprint, work)

    def record_expense(
        self,
        account_id: str,
        amount_cents: int,
        description: str,
        category: "str | Category" = Category.OTHER,
        metadata: ExpenseMetadata | None = None,
        idempotency_key: str | None = None,
    ) -> OperationResult:
        """
        Record an outflow.

        Only wallet-paid expenses move the balance; other payment methods
        are tracked for budgeting and fraud screening.

        Raises:
            ValidationError: bad amount, description, category or timestamp
            InsufficientFundsError: wallet-paid expense exceeds the balance
            NotFoundError: unknown account
        """
        amount_cents = _validate_amount(amount_cents)
        description = _validate_description(description)
        requested_category = Category.parse(category, EXPENSE_CATEGORIES)
        metadata = metadata or ExpenseMetadata()
        occurred_at = self._occurred_at(metadata.occurred_at, "Expense")

        # Ask the categorizer before opening the unit of work; it may be slow
        category, confidence = self._categorize(
            requested_category, EXPENSE_CATEGORIES, description, metadata.merchant, amount_cents
        )
        categorized_by_ai = confidence is not None

        is_wallet_debit = metadata.payment_method == PaymentMethod.WALLET

        def work() -> OperationResult:
            self.accounts.get(account_id)
            entry = self.ledger.append_entry(
                LedgerEntryDraft(
                    account_id=account_id,
                    kind=EntryKind.OUTFLOW,
                    amount_cents=amount_cents,
                    category=category,
                    description=description,
                    occurred_at=occurred_at,
                    payment_method=metadata.payment_method,
                    merchant=metadata.merchant,
                    categorized_by_ai=categorized_by_ai,
                    categorizer_confidence=confidence,
                    notes=metadata.notes,
                ),
                balance_delta_cents=-amount_cents if is_wallet_debit else 0,
            )
            return OperationResult(
                operation="expense",
                entries=[entry],
                balance_cents=self.ledger.get_balance(account_id),
            )

        fingerprint = _fingerprint(
            "expense",
            amount_cents=amount_cents,
            description=description,
            category=requested_category.value,
            payment_method=metadata.payment_method.value,
            merchant=metadata.merchant,
            occurred_at=metadata.occurred_at,
        )
        return self._execute("expense", account_id, amount_cents, idempotency_key, fingerprint, work)

    def record_income(
        self,
        account_id: str,
        amount_cents: int,
        description: str,
        category: "str | Category" = Category.OTHER,
        metadata: IncomeMetadata | None = None,
        idempotency_key: str | None = None,
    ) -> OperationResult:
        """
        Record an inflow such as salary or freelance pay.

        Only income paid into the wallet moves the balance; other payment
        methods are tracked for reporting and fraud screening.

        Raises:
            ValidationError: bad amount, description, category or timestamp
            NotFoundError: unknown account
        """
        amount_cents = _validate_amount(amount_cents)
        description = _validate_description(description)
        requested_category = Category.parse(category, INCOME_CATEGORIES)
        metadata = metadata or IncomeMetadata()
        occurred_at = self._occurred_at(metadata.occurred_at, "Income")

        category, confidence = self._categorize(
            requested_category, INCOME_CATEGORIES, description, metadata.payer, amount_cents
        )
        is_wallet_credit = metadata.payment_method == PaymentMethod.WALLET

        def work() -> OperationResult:
            self.accounts.get(account_id)
            entry = self.ledger.append_entry(
                LedgerEntryDraft(
                    account_id=account_id,
                    kind=EntryKind.INFLOW,
                    amount_cents=amount_cents,
                    category=category,
                    description=description,
                    occurred_at=occurred_at,
                    payment_method=metadata.payment_method,
                    merchant=metadata.payer,
                    categorized_by_ai=confidence is not None,
                    categorizer_confidence=confidence,
                    notes=metadata.notes,
                ),
                balance_delta_cents=amount_cents if is_wallet_credit else 0,
            )
            return OperationResult(
                operation="income",
                entries=[entry],
                balance_cents=self.ledger.get_balance(account_id),
            )

        fingerprint = _fingerprint(
            "income",
            amount_cents=amount_cents,
            description=description,
            category=requested_category.value,
            payment_method=metadata.payment_method.value,
            payer=metadata.payer,
            occurred_at=metadata.occurred_at,
        )
        return self._execute("income", account_id, amount_cents, idempotency_key, fingerprint, work)

    def transfer(
        self,
        from_account_id: str,
        to_identity: str,
        amount_cents: int,
        description: str,
        idempotency_key: str | None = None,
    ) -> OperationResult:
        """
        Move funds between two wallets.

        Both balance updates and both entries commit together or not at all.

        Raises:
            ValidationError: bad input, self-transfer, currency mismatch
            InsufficientFundsError: sender balance below amount
            NotFoundError: unknown sender or recipient
        """
        amount_cents = _validate_amount(amount_cents)
        description = _validate_description(description)
        if not to_identity or not to_identity.strip():
            raise ValidationError("Recipient is required")

        def work() -> OperationResult:
            sender = self.accounts.get(from_account_id)
            recipient = self.accounts.resolve(to_identity)
            if recipient.account_id == sender.account_id:
                raise ValidationError("Cannot transfer to yourself")
            if recipient.currency != sender.currency:
                raise ValidationError("Sender and recipient wallets use different currencies")

            transfer_group = str(uuid.uuid4())
            occurred_at = self.clock()
            outgoing = LedgerEntryDraft(
                account_id=sender.account_id,
                kind=EntryKind.TRANSFER_OUT,
                amount_cents=amount_cents,
                category=Category.TRANSFER,
                description=f"Transfer to {recipient.display_name}: {description}",
                occurred_at=occurred_at,
                payment_method=PaymentMethod.WALLET,
                transfer_group=transfer_group,
                counterparty_account_id=recipient.account_id,
            )
            incoming = LedgerEntryDraft(
                account_id=recipient.account_id,
                kind=EntryKind.TRANSFER_IN,
                amount_cents=amount_cents,
                category=Category.TRANSFER,
                description=f"Transfer from {sender.display_name}: {description}",
                occurred_at=occurred_at,
                payment_method=PaymentMethod.WALLET,
                transfer_group=transfer_group,
                counterparty_account_id=sender.account_id,
            )

            # Lock accounts in id order so opposing transfers cannot deadlock
            if recipient.account_id < sender.account_id:
                in_entry = self.ledger.append_entry(incoming, balance_delta_cents=amount_cents)
                out_entry = self.ledger.append_entry(outgoing, balance_delta_cents=-amount_cents)
            else:
                out_entry = self.ledger.append_entry(outgoing, balance_delta_cents=-amount_cents)
                in_entry = self.ledger.append_entry(incoming, balance_delta_cents=amount_cents)

            return OperationResult(
                operation="transfer",
                entries=[out_entry, in_entry],
                balance_cents=self.ledger.get_balance(sender.account_id),
                transfer_group=transfer_group,
            )

        fingerprint = _fingerprint(
            "transfer",
            to_identity=to_identity.strip().lower(),
            amount_cents=amount_cents,
            description=description,
        )
        return self._execute("transfer", from_account_id, amount_cents, idempotency_key, fingerprint, work)

    def _execute(
        self,
        operation: str,
        account_id: str,
        amount_cents: int,
        idempotency_key: str | None,
        fingerprint: str,
        work: Callable[[], OperationResult],
    ) -> OperationResult:
        """Run work in one unit of work, honouring the idempotency key, then screen"""
        start_time = time.time()
        try:
            with atomic(self.db):
                result = self._replay(operation, account_id, idempotency_key, fingerprint)
                if result is None:
                    result = work()
                    if idempotency_key:
                        self.idempotency.save(
                            account_id,
                            idempotency_key,
                            operation,
                            fingerprint,
                            self._to_response(result),
                        )
        except DomainException as e:
            record_ledger_operation(operation, e.code)
            raise

        duration = time.time() - start_time
        record_ledger_operation(operation, "replayed" if result.replayed else "committed", duration)
        log_ledger_operation(
            operation,
            account_id,
            amount_cents,
            result.balance_cents,
            duration * 1000,
            replayed=result.replayed,
            transfer_group=result.transfer_group,
        )

        if not result.replayed and self.fraud_engine is not None:
            screenings = self.fraud_engine.screen_all(result.entries)
            result.alerts = [alert for screening in screenings for alert in screening.alerts]

        return result

    def _replay(
        self,
        operation: str,
        account_id: str,
        idempotency_key: str | None,
        fingerprint: str,
    ) -> Optional[OperationResult]:
        if not idempotency_key:
            return None

        record = self.idempotency.get(account_id, idempotency_key)
        if record is None:
            return None
        if record.operation != operation or record.fingerprint != fingerprint:
            raise ConflictError("Idempotency key was already used for a different request")

        response = record.response
        return OperationResult(
            operation=operation,
            entries=self.ledger.get_entries([uuid.UUID(entry_id) for entry_id in response["entry_ids"]]),
            balance_cents=response["balance_cents"],
            transfer_group=response.get("transfer_group"),
            replayed=True,
        )

    @staticmethod
    def _to_response(result: OperationResult) -> Dict[str, Any]:
        return {
            "entry_ids": [str(entry.id) for entry in result.entries],
            "balance_cents": result.balance_cents,
            "transfer_group": result.transfer_group,
        }

    def _occurred_at(self, occurred_at: datetime | None, label: str) -> datetime:
        now = self.clock()
        occurred_at = ensure_utc(occurred_at) if occurred_at else now
        if occurred_at > now:
            raise ValidationError(f"{label} date cannot be in the future")
        return occurred_at

    def _categorize(
        self,
        category: Category,
        allowed: "frozenset[Category]",
        description: str,
        merchant: str | None,
        amount_cents: int,
    ) -> "tuple[Category, float | None]":
        """Category to record and the categorizer confidence, None when the caller's category stands"""
        if category != Category.OTHER:
            return category, None
        suggestion = self._suggest_category(description, merchant, amount_cents, allowed)
        if suggestion is None:
            return category, None
        return suggestion

    def _suggest_category(
        self,
        description: str,
        merchant: str | None,
        amount_cents: int,
        allowed: "frozenset[Category]",
    ):
        """Advisory categorization; returns (category, confidence) or None"""
        if self.categorizer is None:
            return None

        try:
            suggestion = self.categorizer.suggest(description, merchant, amount_cents)
        except CategorizerError as e:
            categorizer_counter.labels(outcome="failed").inc()
            logging.warning(f"Categorization failed, keeping manual category: {e}")
            return None

        if suggestion is None:
            categorizer_counter.labels(outcome="empty").inc()
            return None

        try:
            category = Category(suggestion.category)
        except ValueError:
            categorizer_counter.labels(outcome="rejected").inc()
            return None

        if (
            suggestion.confidence < settings.categorizer_min_confidence
            or category == Category.OTHER
            or category not in allowed
        ):
            categorizer_counter.labels(outcome="rejected").inc()
            return None

        categorizer_counter.labels(outcome="accepted").inc()
        return category, suggestion.confidence
