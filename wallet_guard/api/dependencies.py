"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from wallet_guard.domain.exceptions import (
    ConflictError,
    DomainException,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    TransactionTimeoutError,
    ValidationError,
)
from wallet_guard.infrastructure.clients.categorizer import CategorizerClient
from wallet_guard.infrastructure.clients.notifications import NotificationClient
from wallet_guard.infrastructure.database.session import get_db
from wallet_guard.services.alert_manager import AlertManager
from wallet_guard.services.coordinator import TransferCoordinator
from wallet_guard.services.fraud_engine import FraudRuleEngine

ERROR_STATUS_CODES = {
    ValidationError: 400,
    InsufficientFundsError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    InvalidStateError: 409,
    TransactionTimeoutError: 503,
}


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_account_id(x_account_id: str = Header(..., alias="X-Account-Id")) -> str:
    """Acting account, established by the authentication layer in front of this service"""
    return x_account_id


def get_categorizer_client() -> CategorizerClient:
    """Provide categorizer client instance"""
    return CategorizerClient()


def get_notification_client() -> NotificationClient:
    """Provide notification sink client instance"""
    return NotificationClient()


def get_alert_manager(
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
) -> AlertManager:
    return AlertManager(db, notifier=notifier)


def get_coordinator(
    db: Session = Depends(get_db),
    alert_manager: AlertManager = Depends(get_alert_manager),
    categorizer: CategorizerClient = Depends(get_categorizer_client),
) -> TransferCoordinator:
    return TransferCoordinator(
        db,
        fraud_engine=FraudRuleEngine(db, alert_manager),
        categorizer=categorizer,
    )


def to_http_exception(error: DomainException) -> HTTPException:
    """Map a domain error to a response carrying its stable code"""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(error, error_type)),
        500,
    )
    return HTTPException(status_code=status_code, detail={"code": error.code, "message": str(error)})
