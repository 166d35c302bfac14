"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from wallet_guard.config import settings


# Middleware writes its own access line; these would duplicate it or log every SQL statement
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON records stamped with UTC time, level, service and source logger"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name
        log_record.setdefault("logger", record.name)
        if record.exc_info and "exc_info" not in log_record:
            log_record["exc_info"] = self.formatException(record.exc_info)


def setup_logging(level: str = "INFO") -> None:
    """Install the JSON formatter on the root logger (idempotent)"""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(message)s"))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_ledger_operation(
    operation: str,
    account_id: str,
    amount_cents: int,
    balance_cents: int,
    duration_ms: float,
    replayed: bool = False,
    transfer_group: str | None = None,
) -> None:
    """Log structured ledger outcome for analysis"""
    logging.info(
        "Ledger operation committed",
        extra={
            "step": "ledger_commit",
            "operation": operation,
            "account_id": account_id,
            "amount_cents": amount_cents,
            "balance_cents": balance_cents,
            "transfer_group": transfer_group,
            "replayed": replayed,
            "duration_ms": duration_ms,
        },
    )


def log_screening(account_id: str, entry_id: str, signal_types: list[str], risk_score: int) -> None:
    """Log the outcome of screening one entry"""
    logging.info(
        "Entry screened",
        extra={
            "step": "fraud_screening",
            "account_id": account_id,
            "entry_id": entry_id,
            "signals": signal_types,
            "risk_score": risk_score,
        },
    )


def log_alert_review(alert_id: str, account_id: str, status: str, reviewer: str) -> None:
    logging.info(
        "Alert reviewed",
        extra={
            "step": "alert_review",
            "alert_id": alert_id,
            "account_id": account_id,
            "status": status,
            "reviewer": reviewer,
        },
    )
