"""Schema integrity tests for the migrated database."""
from __future__ import annotations

from pathlib import Path

import pytest

sqlalchemy = pytest.importorskip("sqlalchemy")
alembic = pytest.importorskip("alembic")
alembic_command = pytest.importorskip("alembic.command")
alembic_config_module = pytest.importorskip("alembic.config")

sa = sqlalchemy
command = alembic_command
Config = alembic_config_module.Config

VERSIONED_TABLES = ["budgets", "transactions", "payment_orders"]
SOFT_DELETE_TABLES = [
    "exchange_rates",
    "budgets",
    "cost_details",
    "transactions",
    "cost_allocations",
    "payment_orders",
    "payment_order_lines",
    "signatures",
]


@pytest.fixture(scope="session")
def alembic_config(tmp_path_factory: pytest.TempPathFactory) -> Config:
    """Provide Alembic config bound to a temporary SQLite database."""

    project_root = Path(__file__).resolve().parents[2]
    db_path = tmp_path_factory.mktemp("db") / "schema.db"

    config = Config(str(project_root / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    config.set_main_option("script_location", str(project_root / "migrations"))
    return config


@pytest.fixture(scope="session")
def migrated_engine(alembic_config: Config):
    """Run migrations against SQLite and yield an engine."""

    command.upgrade(alembic_config, "head")
    engine = sa.create_engine(alembic_config.get_main_option("sqlalchemy.url"))
    try:
        yield engine
    finally:
        engine.dispose()


def test_tables_exist(migrated_engine: sa.Engine) -> None:
    inspector = sa.inspect(migrated_engine)
    tables = set(inspector.get_table_names())
    expected = {
        "projects",
        "exchange_rates",
        "budgets",
        "cost_details",
        "transactions",
        "cost_allocations",
        "payment_orders",
        "payment_order_lines",
        "signatures",
        "audit_logs",
    }
    assert expected.issubset(tables)


@pytest.mark.parametrize("table_name", SOFT_DELETE_TABLES)
def test_tombstone_columns_present(table_name: str, migrated_engine: sa.Engine) -> None:
    inspector = sa.inspect(migrated_engine)
    columns = {column["name"] for column in inspector.get_columns(table_name)}
    assert {"deleted", "deleted_at", "created_at", "updated_at"}.issubset(columns)


@pytest.mark.parametrize("table_name", VERSIONED_TABLES)
def test_root_tables_carry_lock_version(table_name: str, migrated_engine: sa.Engine) -> None:
    inspector = sa.inspect(migrated_engine)
    columns = {column["name"] for column in inspector.get_columns(table_name)}
    assert "lock_version" in columns


def test_foreign_keys_enforced(migrated_engine: sa.Engine) -> None:
    inspector = sa.inspect(migrated_engine)
    fk_expectations = {
        "budgets": {
            "project_id": "projects",
            "local_to_gbp_rate_id": "exchange_rates",
            "local_to_sek_rate_id": "exchange_rates",
            "local_to_eur_rate_id": "exchange_rates",
        },
        "cost_details": {"budget_id": "budgets"},
        "transactions": {"project_id": "projects", "budget_id": "budgets"},
        "cost_allocations": {"transaction_id": "transactions", "cost_detail_id": "cost_details"},
        "payment_orders": {"transaction_id": "transactions"},
        "payment_order_lines": {
            "payment_order_id": "payment_orders",
            "transaction_id": "transactions",
            "cost_detail_id": "cost_details",
        },
        "signatures": {"payment_order_id": "payment_orders"},
        "audit_logs": {"project_id": "projects"},
    }

    for table, expected in fk_expectations.items():
        foreign_keys = inspector.get_foreign_keys(table)
        fk_map = {tuple(fk["constrained_columns"]): fk["referred_table"] for fk in foreign_keys}
        for column, target in expected.items():
            assert (column,) in fk_map
            assert fk_map[(column,)] == target


def test_amount_check_constraints(migrated_engine: sa.Engine) -> None:
    inspector = sa.inspect(migrated_engine)
    check_expectations = {
        "exchange_rates": "ck_exchange_rates_rate_positive",
        "cost_details": "ck_cost_details_units_non_negative",
        "cost_allocations": "ck_cost_allocations_planned_non_negative",
        "payment_order_lines": "ck_payment_order_lines_amount_positive",
    }

    for table, constraint_name in check_expectations.items():
        names = {constraint["name"] for constraint in inspector.get_check_constraints(table)}
        assert constraint_name in names


def test_lookup_indexes(migrated_engine: sa.Engine) -> None:
    inspector = sa.inspect(migrated_engine)
    index_expectations = {
        "exchange_rates": "ix_exchange_rates_pair",
        "budgets": "ix_budgets_project_id",
        "cost_details": "ix_cost_details_budget_id",
        "transactions": "ix_transactions_project_id",
        "cost_allocations": "ix_cost_allocations_pair",
        "payment_orders": "ix_payment_orders_transaction_id",
        "payment_order_lines": "ix_payment_order_lines_payment_order_id",
        "signatures": "ix_signatures_payment_order_id",
        "audit_logs": "ix_audit_logs_resource",
    }

    for table, index_name in index_expectations.items():
        indexes = {index["name"] for index in inspector.get_indexes(table)}
        assert index_name in indexes


def test_downgrade_removes_schema(alembic_config: Config, tmp_path: Path) -> None:
    config = Config(alembic_config.config_file_name)
    config.set_main_option("sqlalchemy.url", f"sqlite:///{tmp_path / 'roundtrip.db'}")
    config.set_main_option("script_location", alembic_config.get_main_option("script_location"))

    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = sa.create_engine(config.get_main_option("sqlalchemy.url"))
    try:
        tables = set(sa.inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert tables <= {"alembic_version"}
