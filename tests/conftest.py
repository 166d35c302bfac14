"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

from wallet_guard.api.dependencies import get_categorizer_client, get_notification_client
from wallet_guard.api.main import create_app
from wallet_guard.domain.exceptions import CategorizerError, NotificationError
from wallet_guard.domain.models import AccountLimits, CategorySuggestion, NotificationPolicy
from wallet_guard.domain.rules import FraudPolicy
from wallet_guard.infrastructure.database.models import Base
from wallet_guard.infrastructure.database.repositories import AccountRepository
from wallet_guard.infrastructure.database.session import atomic, build_engine, get_db
from wallet_guard.services.alert_manager import AlertManager
from wallet_guard.services.coordinator import TransferCoordinator
from wallet_guard.services.fraud_engine import FraudRuleEngine

# Mid-afternoon UTC on a weekday, well inside the daytime window
DEFAULT_NOW = datetime(2026, 3, 18, 14, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Deterministic clock that only moves when told to"""

    def __init__(self, now: datetime = DEFAULT_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeNotifier:
    """Records notify calls; can be told to fail"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[tuple] = []

    def notify(self, email, alert, entry) -> bool:
        self.calls.append((email, alert, entry))
        if self.fail:
            raise NotificationError("smtp relay down")
        return True


class FakeCategorizer:
    """Returns a canned suggestion, or raises"""

    def __init__(self, suggestion: Optional[CategorySuggestion] = None, error: bool = False):
        self.suggestion = suggestion
        self.error = error
        self.calls: List[tuple] = []

    def suggest(self, description, merchant, amount_cents):
        self.calls.append((description, merchant, amount_cents))
        if self.error:
            raise CategorizerError("categorizer unavailable")
        return self.suggestion


@pytest.fixture
def engine(tmp_path):
    """Throwaway SQLite database file per test"""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create test database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def categorizer() -> FakeCategorizer:
    return FakeCategorizer()


@pytest.fixture
def alert_manager(db: Session, notifier: FakeNotifier, clock: FrozenClock) -> AlertManager:
    return AlertManager(db, notifier=notifier, clock=clock)


@pytest.fixture
def fraud_engine(db: Session, alert_manager: AlertManager) -> FraudRuleEngine:
    return FraudRuleEngine(db, alert_manager, policy=FraudPolicy())


@pytest.fixture
def coordinator(db: Session, fraud_engine: FraudRuleEngine, categorizer: FakeCategorizer, clock: FrozenClock) -> TransferCoordinator:
    return TransferCoordinator(db, fraud_engine=fraud_engine, categorizer=categorizer, clock=clock)


@pytest.fixture
def make_account(db: Session):
    """Factory for accounts in the test database"""

    def _make(
        account_id: str,
        email: str | None = None,
        display_name: str | None = None,
        currency: str = "USD",
        timezone: str = "UTC",
        category_limits: dict | None = None,
        notification_policy: NotificationPolicy | None = None,
    ):
        with atomic(db):
            return AccountRepository(db).create_account(
                account_id=account_id,
                email=email or f"{account_id}@example.com",
                display_name=display_name or account_id.title(),
                currency=currency,
                timezone=timezone,
                limits=AccountLimits.from_raw(0, category_limits or {}),
                notification_policy=notification_policy,
            )

    return _make


@pytest.fixture
def client(db: Session, notifier: FakeNotifier, categorizer: FakeCategorizer) -> TestClient:
    """Create FastAPI test client with test database and fake collaborators"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_client] = lambda: notifier
    app.dependency_overrides[get_categorizer_client] = lambda: categorizer
    return TestClient(app)
