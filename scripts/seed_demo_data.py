"""Seed script for a demo relief project with a funded, allocated budget."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from relief_finance.db.session import engine, get_session
from relief_finance.models import Base, ExchangeRate, Project
from relief_finance.services.context import SYSTEM_CONTEXT
from relief_finance.services.orchestrator import ConsistencyOrchestrator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_PROJECT_ID = "demo-relief"
DEMO_RATES = {
    "GBP": Decimal("0.025000"),
    "SEK": Decimal("3.500000"),
    "EUR": Decimal("0.029000"),
}


def seed(session: Session) -> None:
    """Seed a TRY-denominated budget, one cost line, one transaction and its allocation."""

    project = session.get(Project, DEMO_PROJECT_ID)
    if project is not None:
        logger.info("Project %s already exists", DEMO_PROJECT_ID)
        return

    session.add(Project(id=DEMO_PROJECT_ID, name="Demo Relief Project"))
    for quote, rate in DEMO_RATES.items():
        session.add(ExchangeRate(base_currency="TRY", quote_currency=quote, rate=rate, valid_from=date.today()))
    session.commit()
    logger.info("Created project %s with TRY rates", DEMO_PROJECT_ID)

    orchestrator = ConsistencyOrchestrator(session)
    budget = orchestrator.create_budget(
        {"project_id": DEMO_PROJECT_ID, "description": "Emergency shelter", "local_currency": "TRY"},
        context=SYSTEM_CONTEXT,
    )
    budget = orchestrator.refresh_budget_rates(budget.id, context=SYSTEM_CONTEXT)
    detail = orchestrator.create_cost_detail(
        {
            "budget_id": budget.id,
            "description": "Tents",
            "units": 10,
            "unit_price": Decimal("100"),
            "percentage_charging": Decimal("10"),
        },
        context=SYSTEM_CONTEXT,
    )
    transaction = orchestrator.create_transaction(
        {"project_id": DEMO_PROJECT_ID, "budget_id": budget.id, "approved_amount": Decimal("1000")},
        context=SYSTEM_CONTEXT,
    )
    orchestrator.create_allocation(
        {"transaction_id": transaction.id, "cost_detail_id": detail.id, "planned_amount": Decimal("900")},
        context=SYSTEM_CONTEXT,
    )
    logger.info(
        "Seeded budget %s (cost line %s, %s SEK) funded by transaction %s",
        budget.id,
        detail.id,
        detail.amount_sek,
        transaction.id,
    )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_session() as session:
        seed(session)


if __name__ == "__main__":
    main()
