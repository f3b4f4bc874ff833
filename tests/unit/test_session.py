from __future__ import annotations

from sqlalchemy import text

from relief_finance.core.config import Settings
from relief_finance.db.session import build_engine


def test_sqlite_engine_enforces_foreign_keys() -> None:
    engine = build_engine(Settings(database_url="sqlite+pysqlite://", enable_tracing=False))
    try:
        with engine.connect() as connection:
            assert connection.execute(text("PRAGMA foreign_keys")).scalar() == 1
    finally:
        engine.dispose()
