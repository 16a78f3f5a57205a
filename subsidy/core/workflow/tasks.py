"""Automatic task generation on stage entry."""

from datetime import datetime
from typing import Dict, NamedTuple, Optional
from uuid import UUID

from subsidy.db.models import Task, TaskStatus

from .states import State, coerce_state

WORKFLOW_STEP_TASK = "WORKFLOW_STEP"


class TaskTemplate(NamedTuple):
    title: str
    description: str
    priority: int  # 1 = most urgent


TASK_TEMPLATES: Dict[State, TaskTemplate] = {
    State.INTAKE_REVIEW: TaskTemplate(
        "Review Application Intake",
        "Review and validate all application information and documents",
        3,
    ),
    State.CONTROL_ASSIGN: TaskTemplate(
        "Assign Control Inspector",
        "Assign a qualified inspector for property control visit",
        3,
    ),
    State.CONTROL_VISIT_SCHEDULED: TaskTemplate(
        "Conduct Control Visit",
        "Perform on-site property inspection and document findings",
        2,
    ),
    State.TECHNICAL_REVIEW: TaskTemplate(
        "Prepare Technical Report",
        "Analyze technical aspects and prepare comprehensive technical report",
        3,
    ),
    State.SOCIAL_REVIEW: TaskTemplate(
        "Prepare Social Report",
        "Assess social circumstances and prepare social impact report",
        3,
    ),
    State.DIRECTOR_REVIEW: TaskTemplate(
        "Director Review and Recommendation",
        "Review all reports and provide recommendation for ministerial decision",
        1,
    ),
    State.MINISTER_DECISION: TaskTemplate(
        "Ministerial Decision Required",
        "Final decision on subsidy application approval and amount",
        1,
    ),
}


def build_stage_task(
    application_id: UUID,
    state,
    *,
    assigned_to: Optional[UUID] = None,
    due_date: Optional[datetime] = None,
) -> Optional[Task]:
    """Task for entering ``state``, or None if the stage needs no task."""
    template = TASK_TEMPLATES.get(coerce_state(state))
    if template is None:
        return None
    return Task(
        application_id=application_id,
        task_type=WORKFLOW_STEP_TASK,
        title=template.title,
        description=template.description,
        assigned_to=assigned_to,
        priority=template.priority,
        due_date=due_date,
        auto_generated=True,
        status=TaskStatus.PENDING.value,
    )
