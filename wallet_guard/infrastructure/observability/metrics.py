"""Prometheus metrics for monitoring ledger operations, fraud signals and alert handling"""

from prometheus_client import Counter, Histogram

# Ledger metrics
ledger_operation_counter = Counter(
    "wallet_ledger_operations_total",
    "Ledger operations by outcome",
    ["operation", "outcome"],  # deposit | expense | transfer ; committed | replayed | <error code>
)

ledger_operation_histogram = Histogram(
    "wallet_ledger_operation_seconds",
    "Time spent inside the ledger unit of work",
    ["operation"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Fraud metrics
fraud_signal_counter = Counter(
    "wallet_fraud_signals_total",
    "Fraud signals raised by rule",
    ["alert_type", "severity"],
)

fraud_engine_failure_counter = Counter(
    "wallet_fraud_engine_failures_total",
    "Screening runs or rule evaluations that failed and were skipped",
    ["stage"],  # rule | screening | tagging
)

risk_score_histogram = Histogram(
    "wallet_entry_risk_score",
    "Risk score assigned to screened ledger entries",
    buckets=[0, 10, 20, 30, 50, 70, 100],
)

# Alert metrics
notification_counter = Counter(
    "wallet_alert_notifications_total",
    "Fraud alert notification attempts",
    ["outcome"],  # sent | failed | suppressed
)

notification_latency_histogram = Histogram(
    "wallet_notification_latency_seconds",
    "Notification sink response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

alert_review_counter = Counter(
    "wallet_alert_reviews_total",
    "Alert reviews by resulting status",
    ["status"],
)

# Categorizer metrics
categorizer_counter = Counter(
    "wallet_categorizer_requests_total",
    "External categorizer outcomes",
    ["outcome"],  # accepted | rejected | empty | failed
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_ledger_operation(operation: str, outcome: str, duration_seconds: float | None = None) -> None:
    """Record operation outcome and, for committed work, its latency"""
    ledger_operation_counter.labels(operation=operation, outcome=outcome).inc()
    if duration_seconds is not None:
        ledger_operation_histogram.labels(operation=operation).observe(duration_seconds)


def record_signals(signals) -> None:
    for signal in signals:
        fraud_signal_counter.labels(alert_type=signal.alert_type.value, severity=signal.severity.value).inc()
