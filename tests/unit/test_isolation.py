from __future__ import annotations

from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import TextClause

from relief_finance.db.isolation import serializable_transaction
from relief_finance.models import Project

from conftest import PROJECT_A, PROJECT_B, engine


def _track(monkeypatch) -> list[str]:
    events: list[str] = []
    original_execute = Session.execute
    original_commit = Session.commit

    def tracking_execute(self: Session, statement, *args, **kwargs):
        if isinstance(statement, TextClause) and str(statement).startswith("SET TRANSACTION"):
            events.append(str(statement))
            return None
        return original_execute(self, statement, *args, **kwargs)

    def tracking_commit(self: Session) -> None:
        events.append("COMMIT")
        original_commit(self)

    monkeypatch.setattr(Session, "execute", tracking_execute)
    monkeypatch.setattr(Session, "commit", tracking_commit)
    return events


def test_isolation_level_is_set_on_a_fresh_transaction(db_session: Session, monkeypatch) -> None:
    # A read after the previous unit leaves a transaction open on the session.
    db_session.get(Project, PROJECT_A)
    assert db_session.in_transaction()

    monkeypatch.setattr(engine.dialect, "name", "postgresql")
    events = _track(monkeypatch)

    with serializable_transaction(db_session):
        db_session.get(Project, PROJECT_B).name = "Winter Relief 2025"

    assert events == ["COMMIT", "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE", "COMMIT"]
    assert db_session.get(Project, PROJECT_B).name == "Winter Relief 2025"


def test_isolation_level_opens_the_first_unit_directly(db_session: Session, monkeypatch) -> None:
    db_session.close()
    monkeypatch.setattr(engine.dialect, "name", "postgresql")
    events = _track(monkeypatch)

    with serializable_transaction(db_session):
        pass

    assert events == ["SET TRANSACTION ISOLATION LEVEL SERIALIZABLE", "COMMIT"]
