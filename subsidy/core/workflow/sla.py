"""SLA deadline calculation."""

from datetime import datetime, timedelta
from typing import Optional, Union

from .states import SLA_HOURS, State

# Used for any state the SLA table does not know
DEFAULT_SLA_HOURS = 72


def get_sla_hours(state: Union[State, str], default: Optional[int] = None) -> int:
    """Hours an application may spend in ``state`` before it is overdue.

    Unknown states get ``default`` (72 hours unless configured otherwise)
    rather than an error.
    """
    fallback = DEFAULT_SLA_HOURS if default is None else default
    try:
        key = state if isinstance(state, State) else State(str(state).upper())
    except ValueError:
        return fallback
    return SLA_HOURS.get(key, fallback)


def deadline_for(
    state: Union[State, str],
    started_at: datetime,
    default: Optional[int] = None,
) -> Optional[datetime]:
    """SLA deadline for a step starting at ``started_at``; None for zero-hour states."""
    hours = get_sla_hours(state, default)
    if hours <= 0:
        return None
    return started_at + timedelta(hours=hours)
