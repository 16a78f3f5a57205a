"""Persistence store for the workflow engine.

``PersistenceStore`` is the interface the workflow consumes.
``SqlAlchemyStore`` implements it on a single SQLAlchemy session; every
write made inside ``atomic()`` lands in one commit or not at all.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from subsidy.core.errors import (
    ConcurrencyConflict,
    PersistenceError,
    TransitionTimeoutError,
)
from subsidy.db.models import Application, ApplicationStep, AuditLog, Task, TaskStatus

logger = logging.getLogger(__name__)

# Error text PostgreSQL uses when statement_timeout / lock_timeout fire
_TIMEOUT_MARKERS = ("statement timeout", "lock timeout", "canceling statement")


class PersistenceStore(ABC):
    """Storage operations the workflow needs, plus one atomic commit."""

    @abstractmethod
    def atomic(self, record_id: Optional[UUID] = None, timeout_seconds: Optional[float] = None):
        """Context manager committing every write made inside it, or none of them."""

    @abstractmethod
    def get_application(self, application_id: UUID, *, for_update: bool = False) -> Optional[Application]:
        ...

    @abstractmethod
    def add_application(self, application: Application) -> Application:
        ...

    @abstractmethod
    def save_application(self, application: Application, expected_version: Optional[int] = None) -> Application:
        ...

    @abstractmethod
    def append_step(self, step: ApplicationStep) -> ApplicationStep:
        ...

    @abstractmethod
    def close_step(self, step_id: UUID, completed_at: datetime, notes: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def reopen_step(self, step_id: UUID) -> None:
        ...

    @abstractmethod
    def steps_for(self, application_id: UUID) -> List[ApplicationStep]:
        ...

    @abstractmethod
    def open_steps(self, application_id: Optional[UUID] = None) -> List[ApplicationStep]:
        ...

    @abstractmethod
    def append_audit(self, entry: AuditLog) -> AuditLog:
        ...

    @abstractmethod
    def add_task(self, task: Task) -> Task:
        ...

    @abstractmethod
    def get_task(self, task_id: UUID, *, for_update: bool = False) -> Optional[Task]:
        ...

    @abstractmethod
    def list_tasks(
        self,
        *,
        application_id: Optional[UUID] = None,
        assigned_to: Optional[UUID] = None,
        status: Optional[str] = None,
    ) -> List[Task]:
        ...

    @abstractmethod
    def due_tasks(self, before: datetime) -> List[Task]:
        ...


class SqlAlchemyStore(PersistenceStore):
    """``PersistenceStore`` backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def atomic(
        self,
        record_id: Optional[UUID] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Iterator[Session]:
        """
        Run a block as one transaction.

        Commits on success. On any exception the session is rolled back and
        SQLAlchemy errors are translated into workflow errors; workflow
        errors raised inside the block propagate unchanged.
        """
        try:
            if timeout_seconds:
                self._apply_timeout(timeout_seconds)
            yield self.db
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"Optimistic lock failed for {record_id}: {e}")
            raise ConcurrencyConflict(record_id) from e
        except OperationalError as e:
            self.db.rollback()
            if _is_timeout(e):
                raise TransitionTimeoutError(
                    f"Persistence exceeded {timeout_seconds}s for {record_id}"
                ) from e
            logger.exception(f"Commit failed for {record_id}")
            raise PersistenceError(f"Commit failed: {e.orig or e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Commit failed for {record_id}")
            raise PersistenceError(f"Commit failed: {e}") from e
        except BaseException:
            self.db.rollback()
            raise

    def _apply_timeout(self, timeout_seconds: float) -> None:
        """Bound every statement of the current transaction (PostgreSQL only)."""
        if self.db.get_bind().dialect.name != "postgresql":
            return
        millis = int(timeout_seconds * 1000)
        self.db.execute(text(f"SET LOCAL statement_timeout = {millis}"))
        self.db.execute(text(f"SET LOCAL lock_timeout = {millis}"))

    # -- applications -------------------------------------------------------

    def get_application(self, application_id: UUID, *, for_update: bool = False) -> Optional[Application]:
        query = self.db.query(Application).filter(Application.id == application_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def add_application(self, application: Application) -> Application:
        self.db.add(application)
        self.db.flush()
        return application

    def save_application(self, application: Application, expected_version: Optional[int] = None) -> Application:
        """
        Flush pending changes to ``application``.

        ``expected_version`` is the version the caller last saw; when given it
        must match before anything is written.

        The ORM version column turns the UPDATE into a compare-and-swap on
        ``version``; a concurrent writer makes the flush raise
        ``StaleDataError``, which ``atomic()`` reports as ``ConcurrencyConflict``.
        """
        if expected_version is not None and application.version != expected_version:
            raise ConcurrencyConflict(application.id, expected_version)
        self.db.add(application)
        self.db.flush()
        return application

    # -- steps --------------------------------------------------------------

    def append_step(self, step: ApplicationStep) -> ApplicationStep:
        if not step.sequence:
            step.sequence = self._next_sequence(step.application_id)
        self.db.add(step)
        self.db.flush()
        return step

    def close_step(self, step_id: UUID, completed_at: datetime, notes: Optional[str] = None) -> None:
        step = self.db.get(ApplicationStep, step_id)
        if step is None:
            return
        step.completed_at = completed_at
        if notes is not None:
            step.notes = notes
        self.db.flush()

    def reopen_step(self, step_id: UUID) -> None:
        step = self.db.get(ApplicationStep, step_id)
        if step is None:
            return
        step.completed_at = None
        self.db.flush()

    def steps_for(self, application_id: UUID) -> List[ApplicationStep]:
        return (
            self.db.query(ApplicationStep)
            .filter(ApplicationStep.application_id == application_id)
            .order_by(ApplicationStep.sequence.asc())
            .all()
        )

    def open_steps(self, application_id: Optional[UUID] = None) -> List[ApplicationStep]:
        query = self.db.query(ApplicationStep).filter(ApplicationStep.completed_at.is_(None))
        if application_id is not None:
            query = query.filter(ApplicationStep.application_id == application_id)
        return query.order_by(ApplicationStep.started_at.asc(), ApplicationStep.sequence.asc()).all()

    def _next_sequence(self, application_id: UUID) -> int:
        current = (
            self.db.query(func.max(ApplicationStep.sequence))
            .filter(ApplicationStep.application_id == application_id)
            .scalar()
        )
        return (current or 0) + 1

    # -- audit --------------------------------------------------------------

    def append_audit(self, entry: AuditLog) -> AuditLog:
        """Insert ``entry`` inside a SAVEPOINT so a failure rolls back only the audit row."""
        with self.db.begin_nested():
            self.db.add(entry)
        return entry

    # -- tasks --------------------------------------------------------------

    def add_task(self, task: Task) -> Task:
        self.db.add(task)
        self.db.flush()
        return task

    def get_task(self, task_id: UUID, *, for_update: bool = False) -> Optional[Task]:
        query = self.db.query(Task).filter(Task.id == task_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_tasks(
        self,
        *,
        application_id: Optional[UUID] = None,
        assigned_to: Optional[UUID] = None,
        status: Optional[str] = None,
    ) -> List[Task]:
        filters = []
        if application_id:
            filters.append(Task.application_id == application_id)
        if assigned_to:
            filters.append(Task.assigned_to == assigned_to)
        if status:
            filters.append(Task.status == status)

        query = self.db.query(Task)
        if filters:
            query = query.filter(and_(*filters))
        return query.order_by(Task.created_at.desc()).all()

    def due_tasks(self, before: datetime) -> List[Task]:
        """Pending, assigned tasks due before ``before``, soonest first."""
        return (
            self.db.query(Task)
            .filter(
                Task.status == TaskStatus.PENDING.value,
                Task.assigned_to.isnot(None),
                Task.due_date.isnot(None),
                Task.due_date < before,
            )
            .order_by(Task.due_date)
            .all()
        )


def _is_timeout(error: OperationalError) -> bool:
    message = str(error.orig or error).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)
