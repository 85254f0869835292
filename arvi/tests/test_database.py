import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from arvi.core.database import (
    check_connection,
    drop_all_tables,
    get_db_session,
    habit_actions,
    reset_database,
    users,
)
from arvi.main import app


def test_connection_check():
    assert check_connection() is True


def test_session_rolls_back_on_error(make_user):
    make_user("user_alice", plan="base")

    with pytest.raises(RuntimeError):
        with get_db_session() as session:
            session.execute(users.update().where(users.c.user_id == "user_alice").values(energy_current=1))
            raise RuntimeError("boom")

    with get_db_session() as session:
        balance = session.execute(
            select(users.c.energy_current).where(users.c.user_id == "user_alice")
        ).scalar_one()
    assert balance == 150


def test_actions_require_an_existing_series():
    with pytest.raises(IntegrityError):
        with get_db_session() as session:
            session.execute(
                habit_actions.insert().values(
                    series_id="missing", position=0, name="n", description="d", difficulty="low", score=0
                )
            )


def test_reset_database_empties_tables(make_user):
    make_user("user_alice", plan="base")

    reset_database()

    with get_db_session() as session:
        assert session.execute(select(func.count()).select_from(users)).scalar_one() == 0


def test_readyz_reports_missing_tables():
    drop_all_tables()

    res = TestClient(app).get("/readyz")

    assert res.status_code == 503
    assert "missing tables" in res.json()["detail"]
