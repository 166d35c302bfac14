"""Wallet endpoints - deposits, income, expenses and peer transfers"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from wallet_guard.api.dependencies import get_account_id, get_coordinator, get_request_id, to_http_exception
from wallet_guard.api.v1.schemas import (
    AlertSchema,
    DepositRequest,
    EntrySchema,
    ExpenseRequest,
    IncomeRequest,
    OperationResponse,
    TransferRequest,
)
from wallet_guard.domain.exceptions import DomainException, NotFoundError
from wallet_guard.domain.models import ExpenseMetadata, IncomeMetadata, OperationResult
from wallet_guard.infrastructure.database.repositories import LedgerRepository
from wallet_guard.infrastructure.database.session import atomic, get_db
from wallet_guard.services.coordinator import TransferCoordinator

router = APIRouter()


def _operation_response(result: OperationResult) -> OperationResponse:
    return OperationResponse(
        operation=result.operation,
        balance_cents=result.balance_cents,
        entries=[EntrySchema.from_domain(entry) for entry in result.entries],
        transfer_group=result.transfer_group,
        replayed=result.replayed,
        alerts=[AlertSchema.from_domain(alert) for alert in result.alerts],
    )


def _failed(e: Exception, request_id: str, operation: str) -> HTTPException:
    if isinstance(e, DomainException):
        logging.warning(f"{operation} rejected: {e}", extra={"request_id": request_id, "code": e.code})
        return to_http_exception(e)
    logging.error(f"Unexpected error during {operation}: {e}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")


@router.post("/wallet/deposit", response_model=OperationResponse)
def deposit(
    request_body: DepositRequest,
    request: Request,
    account_id: str = Depends(get_account_id),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    coordinator: TransferCoordinator = Depends(get_coordinator),
):
    """Add funds to the acting account's wallet"""
    try:
        result = coordinator.deposit(
            account_id,
            request_body.amount_cents,
            description=request_body.description,
            currency=request_body.currency,
            idempotency_key=idempotency_key,
        )
    except Exception as e:
        raise _failed(e, get_request_id(request), "deposit")
    return _operation_response(result)


@router.post("/transactions/expense", response_model=OperationResponse, status_code=201)
def record_expense(
    request_body: ExpenseRequest,
    request: Request,
    account_id: str = Depends(get_account_id),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    coordinator: TransferCoordinator = Depends(get_coordinator),
):
    """Record an expense; wallet-paid expenses debit the balance"""
    try:
        result = coordinator.record_expense(
            account_id,
            request_body.amount_cents,
            request_body.description,
            category=request_body.category,
            metadata=ExpenseMetadata(
                payment_method=request_body.payment_method,
                merchant=request_body.merchant,
                occurred_at=request_body.occurred_at,
                notes=request_body.notes,
            ),
            idempotency_key=idempotency_key,
        )
    except Exception as e:
        raise _failed(e, get_request_id(request), "expense")
    return _operation_response(result)


@router.post("/transactions/income", response_model=OperationResponse, status_code=201)
def record_income(
    request_body: IncomeRequest,
    request: Request,
    account_id: str = Depends(get_account_id),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    coordinator: TransferCoordinator = Depends(get_coordinator),
):
    """Record income; only income paid into the wallet credits the balance"""
    try:
        result = coordinator.record_income(
            account_id,
            request_body.amount_cents,
            request_body.description,
            category=request_body.category,
            metadata=IncomeMetadata(
                payment_method=request_body.payment_method,
                payer=request_body.payer,
                occurred_at=request_body.occurred_at,
                notes=request_body.notes,
            ),
            idempotency_key=idempotency_key,
        )
    except Exception as e:
        raise _failed(e, get_request_id(request), "income")
    return _operation_response(result)


@router.post("/wallet/transfer", response_model=OperationResponse)
def transfer(
    request_body: TransferRequest,
    request: Request,
    account_id: str = Depends(get_account_id),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    coordinator: TransferCoordinator = Depends(get_coordinator),
):
    """Send funds to another wallet, identified by account id or email"""
    try:
        result = coordinator.transfer(
            account_id,
            request_body.to,
            request_body.amount_cents,
            request_body.description,
            idempotency_key=idempotency_key,
        )
    except Exception as e:
        raise _failed(e, get_request_id(request), "transfer")
    return _operation_response(result)


@router.get("/wallet/transfers/{transfer_group}", response_model=List[EntrySchema])
def get_transfer(
    transfer_group: str,
    account_id: str = Depends(get_account_id),
    db: Session = Depends(get_db),
):
    """Both sides of a transfer the acting account took part in"""
    with atomic(db):
        entries = LedgerRepository(db).get_transfer_group(transfer_group)
    if not any(entry.account_id == account_id for entry in entries):
        raise to_http_exception(NotFoundError("Transfer not found"))
    return [EntrySchema.from_domain(entry) for entry in entries]
