"""Per-application history of stage occupancy.

The ledger never caches the active step. Every query reads the stored
steps and derives the answer from them, so a step closed or opened by
another process is always seen.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

from subsidy.db.base import utcnow
from subsidy.db.models import Application, ApplicationStep
from subsidy.db.store import PersistenceStore

from .sla import get_sla_hours
from .states import PIPELINE_STATES, TERMINAL_STATES, coerce_state

logger = logging.getLogger(__name__)


class StepLedger:
    """Opens, closes and queries ``ApplicationStep`` rows."""

    def __init__(
        self,
        store: PersistenceStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        default_sla_hours: Optional[int] = None,
    ):
        self.store = store
        self.clock = clock
        self.default_sla_hours = default_sla_hours

    # -- writes -------------------------------------------------------------

    def open_step(
        self,
        application_id: UUID,
        state,
        assigned_to: Optional[UUID] = None,
        sla_hours: Optional[int] = None,
        *,
        started_at: Optional[datetime] = None,
    ) -> UUID:
        """Append a new open step and return its ID."""
        state = coerce_state(state)
        if sla_hours is None:
            sla_hours = get_sla_hours(state, self.default_sla_hours)
        step = ApplicationStep(
            application_id=application_id,
            step_name=state.value,
            started_at=started_at or self.clock(),
            assigned_to=assigned_to,
            sla_hours=sla_hours,
        )
        self.store.append_step(step)
        return step.id

    def close_active_step(
        self,
        application_id: UUID,
        notes: Optional[str] = None,
        *,
        completed_at: Optional[datetime] = None,
    ) -> Optional[ApplicationStep]:
        """Close the open step of an application, if there is one."""
        open_steps = self.store.open_steps(application_id)
        if not open_steps:
            return None
        completed_at = completed_at or self.clock()
        # Extra open steps can only come from an interrupted writer
        for stale in open_steps[:-1]:
            logger.warning(f"Closing stray open step {stale.id} ({stale.step_name}) of {application_id}")
            self.store.close_step(stale.id, completed_at, stale.notes)
        active = open_steps[-1]
        self.store.close_step(active.id, completed_at, notes)
        return active

    def advance(
        self,
        application: Application,
        target_state,
        *,
        assigned_to: Optional[UUID] = None,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> ApplicationStep:
        """
        Close the active step and open exactly one step for ``target_state``.

        A step for a terminal state is closed the moment it opens, so that
        terminal applications keep zero open steps while their final stage
        still appears in the history.
        """
        target = coerce_state(target_state)
        now = at or self.clock()

        self.close_active_step(application.id, notes, completed_at=now)

        step_id = self.open_step(
            application.id,
            target,
            assigned_to,
            get_sla_hours(target, self.default_sla_hours),
            started_at=now,
        )
        if target in TERMINAL_STATES:
            self.store.close_step(step_id, now)

        return self._find(application.id, step_id)

    def recover(self, application: Application) -> Optional[ApplicationStep]:
        """
        Restore the one-open-step invariant for an application.

        - terminal application: close any open step
        - open step matching ``current_state``: keep it, close any others
        - last step matches ``current_state`` but is closed: reopen it
        - otherwise: open a fresh step for ``current_state``

        Returns the active step (None for terminal applications).
        """
        state = coerce_state(application.current_state)
        now = self.clock()
        open_steps = self.store.open_steps(application.id)

        if state in TERMINAL_STATES:
            for step in open_steps:
                logger.warning(f"Closing open step {step.step_name} of terminal application {application.id}")
                self.store.close_step(step.id, now)
            return None

        matching = [s for s in open_steps if s.step_name == state.value]
        if matching:
            active = matching[-1]
            for step in open_steps:
                if step is not active:
                    logger.warning(f"Closing stray open step {step.step_name} of {application.id}")
                    self.store.close_step(step.id, now)
            return active

        for step in open_steps:
            logger.warning(f"Closing open step {step.step_name} that does not match {state.value} for {application.id}")
            self.store.close_step(step.id, now)

        history = self.store.steps_for(application.id)
        if history and history[-1].step_name == state.value:
            last = history[-1]
            logger.warning(f"Reopening step {last.step_name} of {application.id}")
            self.store.reopen_step(last.id)
            return last

        logger.warning(f"No step recorded for {state.value} of {application.id}, opening one")
        step_id = self.open_step(application.id, state, application.assigned_to, started_at=now)
        return self._find(application.id, step_id)

    # -- queries ------------------------------------------------------------

    def active_step(self, application: Application) -> Optional[ApplicationStep]:
        """The open step whose name matches the application's state, if any."""
        if coerce_state(application.current_state) in TERMINAL_STATES:
            return None
        open_steps = self.store.open_steps(application.id)
        matching = [s for s in open_steps if s.step_name == application.current_state]
        return matching[-1] if matching else None

    def history(self, application_id: UUID) -> List[ApplicationStep]:
        return self.store.steps_for(application_id)

    def time_in_current_stage(
        self,
        application: Application,
        now: Optional[datetime] = None,
    ) -> Optional[timedelta]:
        step = self.active_step(application)
        if step is None:
            return None
        return (now or self.clock()) - step.started_at

    def is_overdue(self, application: Application, now: Optional[datetime] = None) -> bool:
        """True when the active step has outlived its SLA."""
        step = self.active_step(application)
        if step is None or step.deadline is None:
            return False
        return (now or self.clock()) > step.deadline

    def overdue_steps(self, now: Optional[datetime] = None) -> List[ApplicationStep]:
        """Open steps past their SLA across all applications, oldest first."""
        now = now or self.clock()
        return [
            step for step in self.store.open_steps()
            if step.deadline is not None and now > step.deadline
        ]

    def progress(self, application_id: UUID) -> dict:
        """Completed stage visits against the number of pipeline stages."""
        steps = self.history(application_id)
        completed = sum(1 for step in steps if step.completed_at is not None)
        total = len(PIPELINE_STATES)
        return {
            "completed_steps": completed,
            "total_steps": total,
            "progress": min(100, round(completed / total * 100)),
        }

    def _find(self, application_id: UUID, step_id: UUID) -> ApplicationStep:
        for step in self.store.steps_for(application_id):
            if step.id == step_id:
                return step
        raise LookupError(f"Step {step_id} vanished from application {application_id}")
