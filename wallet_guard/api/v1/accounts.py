"""Account directory endpoints and read views over an account's ledger"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from wallet_guard.api.dependencies import get_account_id, to_http_exception
from wallet_guard.api.v1.schemas import (
    AccountResponse,
    BalanceResponse,
    CreateAccountRequest,
    EntryListResponse,
    EntrySchema,
    PreferencesRequest,
)
from wallet_guard.domain.exceptions import DomainException
from wallet_guard.domain.models import Account, AccountLimits, Category, EntryKind, NotificationPolicy
from wallet_guard.infrastructure.database.repositories import AccountRepository, LedgerRepository
from wallet_guard.infrastructure.database.session import atomic, get_db

router = APIRouter()


def _account_response(account: Account) -> AccountResponse:
    return AccountResponse(
        account_id=account.account_id,
        email=account.email,
        display_name=account.display_name,
        currency=account.currency,
        balance_cents=account.balance_cents,
        monthly_limit_cents=account.limits.monthly_limit_cents,
        category_limits=account.limits.to_raw(),
        email_notifications=account.notification_policy.email_notifications,
        fraud_alerts=account.notification_policy.fraud_alerts,
        timezone=account.timezone,
    )


def _ensure_owner(account_id: str, acting_account_id: str) -> None:
    if account_id != acting_account_id:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "Account not found"})


@router.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(request_body: CreateAccountRequest, db: Session = Depends(get_db)):
    """Register a wallet with a zero balance"""
    try:
        with atomic(db):
            account = AccountRepository(db).create_account(
                account_id=request_body.account_id,
                email=request_body.email,
                display_name=request_body.display_name,
                currency=request_body.currency,
                timezone=request_body.timezone,
            )
    except DomainException as e:
        raise to_http_exception(e)
    return _account_response(account)


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    acting_account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    _ensure_owner(account_id, acting_account_id)
    try:
        with atomic(db):
            account = AccountRepository(db).get(account_id)
    except DomainException as e:
        raise to_http_exception(e)
    return _account_response(account)


@router.get("/accounts/{account_id}/balance", response_model=BalanceResponse)
def get_balance(
    account_id: str,
    acting_account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    _ensure_owner(account_id, acting_account_id)
    try:
        with atomic(db):
            account = AccountRepository(db).get(account_id)
    except DomainException as e:
        raise to_http_exception(e)
    return BalanceResponse(account_id=account_id, balance_cents=account.balance_cents, currency=account.currency)


@router.put("/accounts/{account_id}/preferences", response_model=AccountResponse)
def update_preferences(
    account_id: str,
    request_body: PreferencesRequest,
    acting_account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Update limits and notification preferences; fields left out are unchanged"""
    _ensure_owner(account_id, acting_account_id)
    try:
        with atomic(db):
            repo = AccountRepository(db)
            current = repo.get(account_id)

            limits = None
            if request_body.monthly_limit_cents is not None or request_body.category_limits is not None:
                limits = AccountLimits.from_raw(
                    request_body.monthly_limit_cents
                    if request_body.monthly_limit_cents is not None
                    else current.limits.monthly_limit_cents,
                    request_body.category_limits
                    if request_body.category_limits is not None
                    else current.limits.to_raw(),
                )

            policy = None
            if request_body.fraud_alerts is not None or request_body.email_notifications is not None:
                existing = current.notification_policy
                policy = NotificationPolicy(
                    fraud_alerts=existing.fraud_alerts if request_body.fraud_alerts is None else request_body.fraud_alerts,
                    email_notifications=(
                        existing.email_notifications
                        if request_body.email_notifications is None
                        else request_body.email_notifications
                    ),
                )

            account = repo.apply_preference_update(
                account_id,
                limits=limits,
                notification_policy=policy,
                timezone=request_body.timezone,
            )
    except DomainException as e:
        raise to_http_exception(e)
    return _account_response(account)


@router.get("/accounts/{account_id}/entries", response_model=EntryListResponse)
def list_entries(
    account_id: str,
    kind: Optional[EntryKind] = Query(None),
    category: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    acting_account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Newest-first page of ledger entries"""
    _ensure_owner(account_id, acting_account_id)
    try:
        parsed_category = Category.parse(category) if category else None
        with atomic(db):
            entries, total = LedgerRepository(db).list_entries(
                account_id,
                kind=kind,
                category=parsed_category,
                start=start,
                end=end,
                limit=limit,
                offset=offset,
            )
    except DomainException as e:
        raise to_http_exception(e)

    return EntryListResponse(
        entries=[EntrySchema.from_domain(entry) for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
    )
