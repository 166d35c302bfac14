"""Fraud rules - independent, pure checks evaluated against a committed ledger entry"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from wallet_guard.domain.models import Account, AlertType, FraudSignal, LedgerEntry, Severity
from wallet_guard.utils.date_utils import local_hour


def format_cents(amount_cents: float) -> str:
    return f"${amount_cents / 100:,.2f}"


@dataclass(frozen=True)
class FraudPolicy:
    """
    Tunable thresholds for the built-in rules.

    Defaults:
    - High amount: entry above 10% of the average monthly spend, severe above 2x that
    - Category limit: low from 80%, medium above 100%, high above 150% of the limit
    - Frequency: 5 entries within 60 minutes is medium, 10 is high
    - Unusual time: 23:00-06:00 local, when at most 2 night entries in the last 30 days
    """

    high_amount_ratio: float = 0.10
    high_amount_severe_multiplier: float = 2.0
    category_limit_warning_pct: float = 80.0
    category_limit_exceeded_pct: float = 100.0
    category_limit_severe_pct: float = 150.0
    frequency_window_minutes: int = 60
    frequency_medium_count: int = 5
    frequency_high_count: int = 10
    night_start_hour: int = 23
    night_end_hour: int = 6
    night_lookback_days: int = 30
    night_max_prior_entries: int = 2

    @classmethod
    def from_settings(cls, settings) -> "FraudPolicy":
        return cls(
            high_amount_ratio=settings.high_amount_ratio,
            high_amount_severe_multiplier=settings.high_amount_severe_multiplier,
            category_limit_warning_pct=settings.category_limit_warning_pct,
            category_limit_exceeded_pct=settings.category_limit_exceeded_pct,
            category_limit_severe_pct=settings.category_limit_severe_pct,
            frequency_window_minutes=settings.frequency_window_minutes,
            frequency_medium_count=settings.frequency_medium_count,
            frequency_high_count=settings.frequency_high_count,
            night_start_hour=settings.night_start_hour,
            night_end_hour=settings.night_end_hour,
            night_lookback_days=settings.night_lookback_days,
            night_max_prior_entries=settings.night_max_prior_entries,
        )

    def is_night_hour(self, hour: int) -> bool:
        return hour >= self.night_start_hour or hour < self.night_end_hour


@dataclass(frozen=True)
class HistoricalAggregates:
    """Figures derived from the committed ledger at screening time"""

    prior_monthly_expense_totals: Tuple[int, ...] = ()  # One total per month before the entry's month
    category_month_to_date_cents: int = 0  # Includes the entry itself
    recent_entry_count: int = 0  # Other entries inside the frequency window
    prior_night_entry_count: int = 0  # Other entries in the 00:00-06:00 window over the lookback

    @property
    def average_monthly_expense_cents(self) -> float:
        if not self.prior_monthly_expense_totals:
            return 0.0
        return sum(self.prior_monthly_expense_totals) / len(self.prior_monthly_expense_totals)


@dataclass(frozen=True)
class RuleContext:
    account: Account
    aggregates: HistoricalAggregates
    policy: FraudPolicy = field(default_factory=FraudPolicy)


class FraudRule(ABC):
    """A single fraud heuristic: zero or one signal per entry"""

    alert_type: AlertType

    @abstractmethod
    def evaluate(self, entry: LedgerEntry, context: RuleContext) -> Optional[FraudSignal]:
        ...


class HighAmountRule(FraudRule):
    alert_type = AlertType.HIGH_AMOUNT

    def evaluate(self, entry: LedgerEntry, context: RuleContext) -> Optional[FraudSignal]:
        if not entry.is_expense:
            return None

        average = context.aggregates.average_monthly_expense_cents
        if average <= 0:
            return None  # Cold start: no prior-month history

        threshold = average * context.policy.high_amount_ratio
        if entry.amount_cents <= threshold:
            return None

        severe = entry.amount_cents > threshold * context.policy.high_amount_severe_multiplier
        return FraudSignal(
            alert_type=self.alert_type,
            severity=Severity.HIGH if severe else Severity.MEDIUM,
            message=f"High amount transaction: {format_cents(entry.amount_cents)} exceeds typical spending pattern",
            details={
                "threshold": round(threshold),
                "actual_amount": entry.amount_cents,
                "average_monthly_spend": round(average),
            },
        )


class CategoryLimitRule(FraudRule):
    alert_type = AlertType.CATEGORY_LIMIT

    def evaluate(self, entry: LedgerEntry, context: RuleContext) -> Optional[FraudSignal]:
        if not entry.is_expense:
            return None

        limit = context.account.limits.limit_for(entry.category)
        if limit <= 0:
            return None

        policy = context.policy
        spent = context.aggregates.category_month_to_date_cents
        percentage = spent * 100 / limit
        details = {
            "threshold": limit,
            "actual_amount": spent,
            "category": entry.category.value,
            "percentage": round(percentage),
        }

        if percentage > policy.category_limit_exceeded_pct:
            severe = percentage > policy.category_limit_severe_pct
            return FraudSignal(
                alert_type=self.alert_type,
                severity=Severity.HIGH if severe else Severity.MEDIUM,
                message=(
                    f"Category limit exceeded: {format_cents(spent)} spent in {entry.category.value} "
                    f"(limit: {format_cents(limit)})"
                ),
                details=details,
            )
        if percentage >= policy.category_limit_warning_pct:
            return FraudSignal(
                alert_type=self.alert_type,
                severity=Severity.LOW,
                message=f"Approaching category limit: {round(percentage)}% of {entry.category.value} budget used",
                details=details,
            )
        return None


class FrequencyRule(FraudRule):
    alert_type = AlertType.FREQUENT_TRANSACTIONS

    def evaluate(self, entry: LedgerEntry, context: RuleContext) -> Optional[FraudSignal]:
        policy = context.policy
        total = context.aggregates.recent_entry_count + 1  # Include the entry being screened

        if total >= policy.frequency_high_count:
            severity = Severity.HIGH
        elif total >= policy.frequency_medium_count:
            severity = Severity.MEDIUM
        else:
            return None

        return FraudSignal(
            alert_type=self.alert_type,
            severity=severity,
            message=f"{total} transactions in the last {policy.frequency_window_minutes} minutes - unusually high frequency",
            details={
                "threshold": policy.frequency_medium_count,
                "actual_count": total,
                "timeframe": f"{policy.frequency_window_minutes} minutes",
            },
        )


class UnusualTimeRule(FraudRule):
    alert_type = AlertType.UNUSUAL_TIME

    def evaluate(self, entry: LedgerEntry, context: RuleContext) -> Optional[FraudSignal]:
        policy = context.policy
        hour = local_hour(entry.occurred_at, context.account.timezone)
        if not policy.is_night_hour(hour):
            return None

        # Accounts that regularly transact at night are not flagged
        if context.aggregates.prior_night_entry_count > policy.night_max_prior_entries:
            return None

        return FraudSignal(
            alert_type=self.alert_type,
            severity=Severity.LOW,
            message=f"Transaction at unusual time: {hour:02d}:00",
            details={
                "hour": hour,
                "timeframe": f"night hours (0-{policy.night_end_hour})",
                "prior_night_entries": context.aggregates.prior_night_entry_count,
            },
        )


class RuleRegistry:
    """Ordered set of rules, keyed by the alert type each one produces"""

    def __init__(self, rules: Iterable[FraudRule] = ()):
        self._rules: Dict[AlertType, FraudRule] = {}
        for rule in rules:
            self.register(rule)

    def register(self, rule: FraudRule) -> None:
        if rule.alert_type in self._rules:
            raise ValueError(f"Rule already registered for {rule.alert_type.value}")
        self._rules[rule.alert_type] = rule

    def unregister(self, alert_type: AlertType) -> None:
        self._rules.pop(alert_type, None)

    def __iter__(self):
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)


def default_rules() -> List[FraudRule]:
    return [HighAmountRule(), CategoryLimitRule(), FrequencyRule(), UnusualTimeRule()]


def default_registry() -> RuleRegistry:
    return RuleRegistry(default_rules())
