"""Fraud alert endpoints - listing, summary and review"""

import uuid
from typing import Optional
from fastapi import APIRouter, Depends, Query

from wallet_guard.api.dependencies import get_account_id, get_alert_manager, to_http_exception
from wallet_guard.api.v1.schemas import (
    AlertListResponse,
    AlertSchema,
    AlertSummaryResponse,
    ReviewRequest,
)
from wallet_guard.domain.exceptions import DomainException
from wallet_guard.domain.models import AlertStatus, Severity
from wallet_guard.services.alert_manager import AlertManager

router = APIRouter()


@router.get("/alerts", response_model=AlertListResponse)
def list_alerts(
    status: Optional[AlertStatus] = Query(None),
    severity: Optional[Severity] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    account_id: str = Depends(get_account_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    """Newest-first fraud alerts for the acting account"""
    alerts, total = manager.list_alerts(account_id, status=status, severity=severity, limit=limit, offset=offset)
    return AlertListResponse(
        alerts=[AlertSchema.from_domain(alert) for alert in alerts],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/alerts/summary", response_model=AlertSummaryResponse)
def alert_summary(
    account_id: str = Depends(get_account_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    summary = manager.summarize(account_id)
    return AlertSummaryResponse(
        total=summary.total,
        by_status=summary.by_status,
        by_severity=summary.by_severity,
        by_type=summary.by_type,
    )


@router.get("/alerts/{alert_id}", response_model=AlertSchema)
def get_alert(
    alert_id: uuid.UUID,
    account_id: str = Depends(get_account_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    try:
        alert = manager.get_alert(alert_id, account_id=account_id)
    except DomainException as e:
        raise to_http_exception(e)
    return AlertSchema.from_domain(alert)


@router.put("/alerts/{alert_id}/review", response_model=AlertSchema)
def review_alert(
    alert_id: uuid.UUID,
    request_body: ReviewRequest,
    account_id: str = Depends(get_account_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    """
    Close a pending alert as reviewed, dismissed or confirmed.

    Confirming also tags the originating ledger entry.
    """
    try:
        alert = manager.review(
            alert_id,
            request_body.status,
            reviewer=account_id,
            notes=request_body.notes,
            account_id=account_id,
        )
    except DomainException as e:
        raise to_http_exception(e)
    return AlertSchema.from_domain(alert)
