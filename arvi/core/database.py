"""
Store for users, habit series and the energy ledger.

SQLAlchemy Core tables plus one engine per process. Every unit of work goes
through get_db_session(), which commits on clean exit and rolls back on any
exception; the habit series commit relies on that to stay all-or-nothing.

SQLite (development and tests) gets one connection per checkout and waits on
the file lock for up to SQLITE_BUSY_TIMEOUT_SECONDS; other backends get a
bounded QueuePool.
"""
import logging
import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event, MetaData, Table, Column, Integer, String, DateTime, Boolean, Text, Index, ForeignKey, UniqueConstraint, CheckConstraint, false, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, QueuePool

from arvi.core.config import settings

logger = logging.getLogger("arvi")

metadata = MetaData()

QUEUE_POOL_OPTIONS = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 30,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}

_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """TEST_DATABASE_URL wins over DATABASE_URL when both are set."""
    return os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL or settings.DATABASE_URL


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, poolclass=QueuePool, **QUEUE_POOL_OPTIONS)

    engine = create_engine(
        url,
        poolclass=NullPool,
        connect_args={"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS},
    )
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_engine(database_url: Optional[str] = None):
    """(Re)bind the process to a database. Any previous engine is disposed."""
    global _engine, _SessionLocal

    url = database_url or get_database_url()
    if not url:
        raise ValueError("No database configured: set DATABASE_URL (or TEST_DATABASE_URL in tests)")

    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(url)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False)
    logger.info("database.engine_ready", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine():
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """One transaction: commit on success, roll back and re-raise on error."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """Idempotent; existing tables are left alone."""
    metadata.create_all(bind=get_engine())


def drop_all_tables():
    """Destructive. Tests and local development only."""
    metadata.drop_all(bind=get_engine())


def reset_database():
    drop_all_tables()
    create_all_tables()


def check_connection() -> bool:
    """True when a trivial query round-trips."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("database.unreachable", extra={"error_message": str(exc)})
        return False
    return True


# Users table: plan, trial window, limits and energy balance live on one row
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('email', String(255), nullable=True, unique=True),
    Column('display_name', String(255), nullable=True),
    Column('plan', String(20), nullable=False, server_default='freemium'),
    Column('trial_active', Boolean, nullable=False, server_default=false()),
    Column('trial_started_at', DateTime(timezone=True), nullable=True),
    Column('trial_expires_at', DateTime(timezone=True), nullable=True),
    Column('max_active_series', Integer, nullable=False, server_default='0'),
    Column('active_series_count', Integer, nullable=False, server_default='0'),
    Column('max_weekly_summaries', Integer, nullable=False, server_default='0'),
    Column('weekly_summaries_count', Integer, nullable=False, server_default='0'),
    Column('energy_current', Integer, nullable=False, server_default='0'),
    Column('energy_max', Integer, nullable=False, server_default='0'),
    Column('energy_last_recharged_at', DateTime(timezone=True), nullable=True),
    Column('energy_total_consumed', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    CheckConstraint('energy_current >= 0', name='ck_app_users_energy_non_negative'),
    CheckConstraint('active_series_count >= 0', name='ck_app_users_active_series_non_negative'),
    Index('idx_users_created_at', 'created_at'),
)

# Habit series table
habit_series = Table(
    'habit_series',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id', ondelete='CASCADE'), nullable=False),
    Column('title', String(500), nullable=False),
    Column('description', Text, nullable=False),
    Column('language', String(8), nullable=True),
    Column('total_score', Integer, nullable=False, server_default='0'),
    Column('energy_cost', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('last_activity_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    CheckConstraint('total_score >= 0', name='ck_habit_series_score_non_negative'),
    # Composite index for list_habit_series pattern: (user_id, created_at)
    Index('idx_habit_series_user_created', 'user_id', 'created_at'),
)

# Habit actions table (3-5 per series, ordered by position)
habit_actions = Table(
    'habit_actions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('series_id', String(36), ForeignKey('habit_series.id', ondelete='CASCADE'), nullable=False),
    Column('position', Integer, nullable=False),
    Column('name', String(500), nullable=False),
    Column('description', Text, nullable=False),
    Column('difficulty', String(10), nullable=False),
    Column('score', Integer, nullable=False, server_default='0'),
    Column('completed', Boolean, nullable=False, server_default=false()),
    # Unique constraint: (series_id, position) to prevent duplicate positions
    UniqueConstraint('series_id', 'position', name='uq_habit_actions_series_position'),
)

# Energy ledger (append-only)
energy_transactions = Table(
    'energy_transactions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id', ondelete='CASCADE'), nullable=False),
    Column('action', String(50), nullable=False),
    Column('delta', Integer, nullable=False),
    Column('balance_before', Integer, nullable=False),
    Column('balance_after', Integer, nullable=False),
    Column('reference_id', String(100), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    # Composite index for list_transactions pattern: (user_id, created_at)
    Index('idx_energy_transactions_user_created', 'user_id', 'created_at'),
)
