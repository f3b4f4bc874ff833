from __future__ import annotations

from collections.abc import Iterator
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from relief_finance.models import Base, Project, Transaction
from relief_finance.obs import ENGINE_REJECTIONS
from relief_finance.services.context import SYSTEM_CONTEXT
from relief_finance.services.errors import ConcurrentModificationError
from relief_finance.services.orchestrator import ConsistencyOrchestrator

from conftest import PROJECT_A, engine as memory_engine


@pytest.fixture()
def file_engine(tmp_path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'relief.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


def _rejections(operation: str, kind: str) -> float:
    family = next(iter(ENGINE_REJECTIONS.collect()))
    for sample in family.samples:
        if sample.name == "engine_rejections_total" and sample.labels == {"operation": operation, "kind": kind}:
            return sample.value
    return 0.0


def test_writes_take_the_database_lock_up_front(orchestrator, context) -> None:
    statements: list[str] = []

    def capture(conn, cursor, statement, parameters, context_, executemany):
        statements.append(statement)

    event.listen(memory_engine, "before_cursor_execute", capture)
    try:
        orchestrator.create_budget({"project_id": PROJECT_A, "local_currency": "TRY"}, context=context)
    finally:
        event.remove(memory_engine, "before_cursor_execute", capture)

    assert statements[0] == "BEGIN IMMEDIATE"
    assert any(statement.startswith("INSERT INTO budgets") for statement in statements)


def test_stale_version_is_rejected_as_concurrent_modification(file_engine: Engine) -> None:
    factory = sessionmaker(bind=file_engine, autoflush=False)

    with factory() as setup:
        setup.add(Project(id=PROJECT_A, name="Flood Relief"))
        setup.commit()
        seeder = ConsistencyOrchestrator(setup)
        budget = seeder.create_budget({"project_id": PROJECT_A, "local_currency": "TRY"}, context=SYSTEM_CONTEXT)
        transaction_id = seeder.create_transaction(
            {"project_id": PROJECT_A, "budget_id": budget.id, "approved_amount": Decimal("1000")},
            context=SYSTEM_CONTEXT,
        ).id

    session_a = factory()
    session_b = factory()
    try:
        stale = session_a.get(Transaction, transaction_id)
        assert stale is not None

        ConsistencyOrchestrator(session_b).update_transaction(
            transaction_id, {"approved_amount": Decimal("1200")}, context=SYSTEM_CONTEXT
        )

        before = _rejections("transaction.update", "ConcurrentModification")
        with pytest.raises(ConcurrentModificationError) as excinfo:
            ConsistencyOrchestrator(session_a).update_transaction(
                transaction_id, {"approved_amount": Decimal("800")}, context=SYSTEM_CONTEXT
            )
        assert excinfo.value.rule == "optimistic_version"
        assert _rejections("transaction.update", "ConcurrentModification") == before + 1
    finally:
        session_a.close()
        session_b.close()

    with factory() as check:
        assert check.get(Transaction, transaction_id).approved_amount == Decimal("1200.000")
