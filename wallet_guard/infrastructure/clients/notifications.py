"""Notification sink client: one fire-and-forget delivery attempt per fraud alert"""

import httpx
from wallet_guard.config import settings
from wallet_guard.domain.models import Alert, LedgerEntry
from wallet_guard.domain.exceptions import NotificationError
from wallet_guard.infrastructure.observability.metrics import notification_latency_histogram


def build_alert_payload(email: str, alert: Alert, entry: LedgerEntry) -> dict:
    return {
        "event": "FRAUD_ALERT",
        "to": email,
        "alert": {
            "id": str(alert.id),
            "type": alert.alert_type.value,
            "severity": alert.severity.value,
            "message": alert.message,
            "details": alert.details,
            "created_at": alert.created_at.isoformat(),
        },
        "transaction": {
            "id": str(entry.id),
            "kind": entry.kind.value,
            "amount_cents": entry.amount_cents,
            "category": entry.category.value,
            "description": entry.description,
            "merchant": entry.merchant,
            "occurred_at": entry.occurred_at.isoformat(),
        },
    }


class NotificationClient:
    """Client for posting fraud alert emails to the notification service"""

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds

    def notify(self, email: str, alert: Alert, entry: LedgerEntry) -> bool:
        """
        Hand an alert to the notification service.

        Single attempt, no retries: delivery is the sink's concern.

        Returns:
            True when the sink accepted the message

        Raises:
            NotificationError: On timeout, HTTP errors, or when no sink is configured
        """
        if not self.webhook_url:
            raise NotificationError("No notification sink configured")

        with httpx.Client(timeout=self.timeout) as client:
            try:
                with notification_latency_histogram.time():
                    response = client.post(self.webhook_url, json=build_alert_payload(email, alert, entry))
                    response.raise_for_status()
                return True

            except httpx.TimeoutException as e:
                raise NotificationError(f"Notification sink timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise NotificationError(f"Notification sink error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise NotificationError(f"Notification sink unreachable: {e}") from e
