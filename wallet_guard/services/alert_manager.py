"""Alert lifecycle: creation, notification dispatch and human review"""

import logging
import uuid
from typing import Callable, Iterable, List, Optional, Tuple
from sqlalchemy.orm import Session

from wallet_guard.domain.alert_lifecycle import ensure_transition, parse_review_status
from wallet_guard.domain.exceptions import InvalidStateError
from wallet_guard.domain.models import (
    Account,
    Alert,
    AlertStatus,
    AlertSummary,
    FraudSignal,
    FraudTag,
    LedgerEntry,
    Severity,
)
from wallet_guard.infrastructure.clients.notifications import NotificationClient
from wallet_guard.infrastructure.database.repositories import AlertRepository, LedgerRepository
from wallet_guard.infrastructure.database.session import atomic
from wallet_guard.infrastructure.observability.logging import log_alert_review
from wallet_guard.infrastructure.observability.metrics import alert_review_counter, notification_counter
from wallet_guard.utils.date_utils import utcnow

CONFIRMATION_MESSAGE = "Confirmed by user review"


class AlertManager:
    """Persists alerts, notifies account owners and applies review decisions"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationClient] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.alerts = AlertRepository(db)
        self.ledger = LedgerRepository(db)

    def create_alerts(self, account: Account, entry: LedgerEntry, signals: Iterable[FraudSignal]) -> List[Alert]:
        """
        Persist one pending alert per signal, then notify.

        Alerts are committed before any notification is attempted, so a
        failing sink can never undo them.
        """
        signals = list(signals)
        if not signals:
            return []

        created_at = self.clock()
        with atomic(self.db):
            alerts = [
                self.alerts.create_alert(account.account_id, entry.id, signal, created_at)
                for signal in signals
            ]

        for alert in alerts:
            self._dispatch(account, alert, entry)

        return alerts

    def _dispatch(self, account: Account, alert: Alert, entry: LedgerEntry) -> None:
        if self.notifier is None or not account.notification_policy.allows_alert_dispatch:
            notification_counter.labels(outcome="suppressed").inc()
            return

        try:
            delivered = self.notifier.notify(account.email, alert, entry)
        except Exception as e:
            notification_counter.labels(outcome="failed").inc()
            logging.warning(
                f"Failed to send fraud alert notification: {e}",
                extra={"alert_id": str(alert.id), "account_id": account.account_id},
            )
            return

        if not delivered:
            notification_counter.labels(outcome="failed").inc()
            return

        notification_counter.labels(outcome="sent").inc()
        notified_at = self.clock()
        try:
            with atomic(self.db):
                self.alerts.mark_notified(alert.id, notified_at)
        except Exception as e:
            logging.error(
                f"Notification sent but flag not recorded: {e}",
                extra={"alert_id": str(alert.id), "account_id": account.account_id},
            )
            return
        alert.notified = True
        alert.notified_at = notified_at

    def review(
        self,
        alert_id: uuid.UUID,
        status: "str | AlertStatus",
        reviewer: str,
        notes: str | None = None,
        account_id: str | None = None,
    ) -> Alert:
        """
        Move a pending alert to a terminal status.

        Raises:
            ValidationError: status is not reviewed, dismissed or confirmed
            NotFoundError: no such alert (for this account, when given)
            InvalidStateError: alert was already reviewed
        """
        target = parse_review_status(status)

        with atomic(self.db):
            alert = self.alerts.get_alert(alert_id, account_id)
            ensure_transition(alert.status, target)

            reviewed_at = self.clock()
            if not self.alerts.transition(alert.id, AlertStatus.PENDING, target, reviewer, reviewed_at, notes):
                # Another reviewer won the race
                raise InvalidStateError(f"Alert {alert_id} is no longer pending")

            if target == AlertStatus.CONFIRMED:
                self.ledger.append_tag(
                    alert.entry_id,
                    FraudTag(
                        alert_type=alert.alert_type,
                        severity=alert.severity,
                        message=CONFIRMATION_MESSAGE,
                        flagged_at=reviewed_at,
                        confirmed=True,
                    ),
                )

            reviewed = self.alerts.get_alert(alert.id)

        alert_review_counter.labels(status=target.value).inc()
        log_alert_review(str(alert_id), reviewed.account_id, target.value, reviewer)
        return reviewed

    # Read views; each runs in its own short transaction so no snapshot is held open

    def get_alert(self, alert_id: uuid.UUID, account_id: str | None = None) -> Alert:
        with atomic(self.db):
            return self.alerts.get_alert(alert_id, account_id)

    def list_alerts(
        self,
        account_id: str,
        status: AlertStatus | None = None,
        severity: Severity | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Alert], int]:
        with atomic(self.db):
            return self.alerts.list_alerts(account_id, status=status, severity=severity, limit=limit, offset=offset)

    def summarize(self, account_id: str) -> AlertSummary:
        with atomic(self.db):
            return self.alerts.summarize(account_id)
