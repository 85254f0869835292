# arvi/conftest.py
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

os.environ.setdefault("ENV", "test")
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")

# Add repo root to PYTHONPATH
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture(autouse=True)
def db(tmp_path):
    """
    Fresh SQLite database file per test.

    A file (not :memory:) so threadpool workers each get their own connection
    to the same data.
    """
    from arvi.core.database import init_engine, create_all_tables, get_engine

    engine = init_engine(f"sqlite:///{tmp_path / 'arvi-test.db'}")
    create_all_tables()
    yield engine
    get_engine().dispose()


@pytest.fixture(autouse=True)
def reset_metrics():
    from arvi.core.metrics import METRICS

    METRICS.reset()
    yield


@pytest.fixture
def now():
    return datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_user(now):
    """Create a user and optionally adjust energy, counters and trial."""
    from sqlalchemy import update
    from arvi.core.database import get_db_session, users
    from arvi.features.users.service import create_user, get_user

    def _make(user_id="user_alice", plan="base", *, energy=None, active_series=None, trial_started=None, last_recharged=None):
        create_user(user_id, email=f"{user_id}@example.com", plan=plan, now=now - timedelta(days=30))
        values = {}
        if energy is not None:
            values["energy_current"] = energy
        if active_series is not None:
            values["active_series_count"] = active_series
        # Recharged just now unless a test asks for a due recharge.
        values["energy_last_recharged_at"] = last_recharged or now
        if trial_started is not None:
            values.update(
                trial_active=True,
                trial_started_at=trial_started,
                trial_expires_at=trial_started + timedelta(hours=48),
            )
        with get_db_session() as session:
            session.execute(update(users).where(users.c.user_id == user_id).values(**values))
        return get_user(user_id)

    return _make
