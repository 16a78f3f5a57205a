"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta
from typing import List

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import subsidy.db.models  # noqa: F401  (registers every table on Base.metadata)
from subsidy.core.config import Settings
from subsidy.core.errors import NotificationDispatchError
from subsidy.core.workflow.service import WorkflowService
from subsidy.db.base import Base
from subsidy.services.notifications import NotificationDispatcher, Notifier


def _sqlite_engine(url: str, **kwargs):
    """SQLite engine with driver-level transaction handling switched off.

    pysqlite otherwise defers BEGIN until the first DML statement, which
    breaks SAVEPOINTs (used by the audit recorder).
    """
    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


class FixedClock:
    """Deterministic stand-in for ``utcnow``."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier(Notifier):
    """Keeps every dispatched request instead of delivering it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.dispatched: List = []

    def dispatch(self, request) -> None:
        if self.fail:
            raise NotificationDispatchError("notifier unavailable")
        self.dispatched.append(request)


@pytest.fixture
def engine():
    """In-memory SQLite engine with the full schema."""
    engine = _sqlite_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine, for tests that need independent connections."""
    engine = _sqlite_engine(f"sqlite:///{tmp_path / 'workflow.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    """Settings isolated from the environment and any ``.env`` file."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        transition_timeout_seconds=5.0,
        default_sla_hours=72,
        allow_reject_from_any_state=True,
        require_director_recommendation=False,
    )


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier):
    dispatcher = NotificationDispatcher(notifier, max_workers=1)
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def workflow_service(db_session, dispatcher, settings, clock):
    return WorkflowService(db_session, dispatcher=dispatcher, settings=settings, clock=clock)
