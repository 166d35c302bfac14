"""Fraud rule engine - screens committed ledger entries and hands signals to the alert manager"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy.orm import Session

from wallet_guard.config import settings
from wallet_guard.domain.models import Account, Alert, FraudSignal, FraudTag, LedgerEntry
from wallet_guard.domain.risk import calculate_risk_score
from wallet_guard.domain.rules import FraudPolicy, HistoricalAggregates, RuleContext, RuleRegistry, default_registry
from wallet_guard.infrastructure.database.repositories import AccountRepository, LedgerRepository
from wallet_guard.infrastructure.database.session import atomic
from wallet_guard.infrastructure.observability.logging import log_screening
from wallet_guard.infrastructure.observability.metrics import (
    fraud_engine_failure_counter,
    record_signals,
    risk_score_histogram,
)
from wallet_guard.services.alert_manager import AlertManager
from wallet_guard.utils.date_utils import local_hour, month_key, month_start


@dataclass
class ScreeningResult:
    """Signals, alerts and risk score produced for one entry"""

    entry: LedgerEntry
    signals: List[FraudSignal] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)
    risk_score: int = 0


class FraudRuleEngine:
    """
    Runs every registered rule against a newly committed entry.

    Only reads ledger history, in a fresh transaction started after the
    entry committed, so every aggregate includes the triggering entry's
    predecessors.
    """

    def __init__(
        self,
        db: Session,
        alert_manager: AlertManager,
        registry: Optional[RuleRegistry] = None,
        policy: Optional[FraudPolicy] = None,
    ):
        self.db = db
        self.alert_manager = alert_manager
        self.registry = registry if registry is not None else default_registry()
        self.policy = policy or FraudPolicy.from_settings(settings)
        self.accounts = AccountRepository(db)
        self.ledger = LedgerRepository(db)

    def screen_all(self, entries: Iterable[LedgerEntry]) -> List[ScreeningResult]:
        """Screen each entry; a failure is logged and never reaches the caller"""
        results = []
        for entry in entries:
            try:
                results.append(self.screen(entry))
            except Exception as e:
                fraud_engine_failure_counter.labels(stage="screening").inc()
                logging.error(
                    f"Fraud screening failed: {e}",
                    exc_info=True,
                    extra={"entry_id": str(entry.id), "account_id": entry.account_id},
                )
        return results

    def screen(self, entry: LedgerEntry) -> ScreeningResult:
        with atomic(self.db):
            account = self.accounts.get(entry.account_id)
            aggregates = self.build_aggregates(entry, account)

        signals = self.evaluate(entry, RuleContext(account=account, aggregates=aggregates, policy=self.policy))
        risk_score = calculate_risk_score(entry, signals)
        risk_score_histogram.observe(risk_score)

        alerts: List[Alert] = []
        if signals:
            record_signals(signals)
            alerts = self.alert_manager.create_alerts(account, entry, signals)
            self._tag_entry(entry, signals)

        log_screening(
            entry.account_id,
            str(entry.id),
            [signal.alert_type.value for signal in signals],
            risk_score,
        )
        return ScreeningResult(entry=entry, signals=signals, alerts=alerts, risk_score=risk_score)

    def evaluate(self, entry: LedgerEntry, context: RuleContext) -> List[FraudSignal]:
        """Collect the signal of every rule that fires; a broken rule is skipped"""
        signals = []
        for rule in self.registry:
            try:
                signal = rule.evaluate(entry, context)
            except Exception as e:
                fraud_engine_failure_counter.labels(stage="rule").inc()
                logging.error(
                    f"Fraud rule {rule.alert_type.value} failed: {e}",
                    exc_info=True,
                    extra={"entry_id": str(entry.id)},
                )
                continue
            if signal is not None:
                signals.append(signal)
        return signals

    def build_aggregates(self, entry: LedgerEntry, account: Account) -> HistoricalAggregates:
        """Derive rule inputs from the immutable ledger"""
        policy = self.policy
        tz = account.timezone
        occurred_at = entry.occurred_at
        current_month_start = month_start(occurred_at, tz)

        monthly_totals: Dict[Tuple[int, int], int] = defaultdict(int)
        for amount_cents, expense_at in self.ledger.expenses_before(account.account_id, current_month_start):
            monthly_totals[month_key(expense_at, tz)] += amount_cents

        category_spent = 0
        if entry.is_expense:
            category_spent = self.ledger.category_spend_between(
                account.account_id, entry.category, current_month_start, occurred_at
            )

        recent_count = self.ledger.count_entries_between(
            account.account_id,
            occurred_at - timedelta(minutes=policy.frequency_window_minutes),
            occurred_at,
            exclude_entry_id=entry.id,
        )

        night_times = self.ledger.entry_times_between(
            account.account_id,
            occurred_at - timedelta(days=policy.night_lookback_days),
            occurred_at,
            exclude_entry_id=entry.id,
        )
        night_count = sum(1 for t in night_times if local_hour(t, tz) < policy.night_end_hour)

        return HistoricalAggregates(
            prior_monthly_expense_totals=tuple(total for _, total in sorted(monthly_totals.items())),
            category_month_to_date_cents=category_spent,
            recent_entry_count=recent_count,
            prior_night_entry_count=night_count,
        )

    def _tag_entry(self, entry: LedgerEntry, signals: List[FraudSignal]) -> None:
        """Best-effort annotation; alerts already exist whether or not this succeeds"""
        flagged_at = self.alert_manager.clock()
        try:
            with atomic(self.db):
                for signal in signals:
                    self.ledger.append_tag(
                        entry.id,
                        FraudTag(
                            alert_type=signal.alert_type,
                            severity=signal.severity,
                            message=signal.message,
                            flagged_at=flagged_at,
                        ),
                    )
        except Exception as e:
            fraud_engine_failure_counter.labels(stage="tagging").inc()
            logging.warning(
                f"Could not tag ledger entry: {e}",
                extra={"entry_id": str(entry.id), "account_id": entry.account_id},
            )
