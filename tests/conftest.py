from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

os.environ.setdefault("RELIEF_DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("RELIEF_ENABLE_TRACING", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from relief_finance.api.deps import get_db_session
from relief_finance.core.config import Settings
from relief_finance.main import app
from relief_finance.models import Base, Budget, CostDetail, ExchangeRate, Project, Transaction
from relief_finance.services.context import RequestContext
from relief_finance.services.orchestrator import ConsistencyOrchestrator

DATABASE_URL = "sqlite+pysqlite://"

PROJECT_A = "proj-a"
PROJECT_B = "proj-b"
RATE_TRY_SEK = "rate-try-sek"
RATE_TRY_GBP = "rate-try-gbp"
RATE_TRY_EUR = "rate-try-eur"
RATE_USD_SEK = "rate-usd-sek"


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@dataclass
class Scenario:
    """A TRY budget with one cost line (1100.000 local) and a transaction approved for 1000."""

    budget: Budget
    cost_detail: CostDetail
    transaction: Transaction


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    session.add_all(
        [
            Project(id=PROJECT_A, name="Flood Relief"),
            Project(id=PROJECT_B, name="Winter Relief"),
            ExchangeRate(id=RATE_TRY_SEK, base_currency="TRY", quote_currency="SEK", rate=Decimal("3.5")),
            ExchangeRate(id=RATE_TRY_GBP, base_currency="TRY", quote_currency="GBP", rate=Decimal("0.025")),
            ExchangeRate(id=RATE_TRY_EUR, base_currency="TRY", quote_currency="EUR", rate=Decimal("0.029")),
            ExchangeRate(
                id=RATE_USD_SEK,
                base_currency="USD",
                quote_currency="SEK",
                rate=Decimal("10.4"),
                valid_from=date(2024, 1, 1),
            ),
        ]
    )
    session.commit()

    yield session
    session.close()


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def context() -> RequestContext:
    return RequestContext(actor="finance@example.org", request_id="req-test")


@pytest.fixture()
def orchestrator(db_session: Session, settings: Settings) -> ConsistencyOrchestrator:
    return ConsistencyOrchestrator(db_session, settings=settings)


@pytest.fixture()
def scenario(orchestrator: ConsistencyOrchestrator, context: RequestContext) -> Scenario:
    budget = orchestrator.create_budget(
        {"project_id": PROJECT_A, "local_currency": "TRY", "local_to_sek_rate_id": RATE_TRY_SEK},
        context=context,
    )
    cost_detail = orchestrator.create_cost_detail(
        {
            "budget_id": budget.id,
            "description": "Tents",
            "units": 10,
            "unit_price": Decimal("100"),
            "percentage_charging": Decimal("10"),
        },
        context=context,
    )
    transaction = orchestrator.create_transaction(
        {"project_id": PROJECT_A, "budget_id": budget.id, "approved_amount": Decimal("1000")},
        context=context,
    )
    return Scenario(budget=budget, cost_detail=cost_detail, transaction=transaction)


@pytest.fixture()
def client(db_session: Session) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        try:
            yield db_session
        finally:
            db_session.rollback()

    app.dependency_overrides[get_db_session] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_db_session, None)


@pytest.fixture()
def api_headers() -> dict[str, str]:
    return {"X-Actor": "finance@example.org", "X-Request-ID": "req-api"}
