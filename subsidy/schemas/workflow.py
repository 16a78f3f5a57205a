"""Request and response schemas for the workflow's inbound call."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from subsidy.core.workflow.states import State


class TransitionRequest(BaseModel):
    """Move an application to ``target_state``."""
    application_id: UUID
    target_state: State
    notes: Optional[str] = None
    assigned_to: Optional[UUID] = None
    approved_amount: Optional[Decimal] = Field(None, ge=0)
    expected_version: Optional[int] = Field(None, ge=1)

    @field_validator("target_state", mode="before")
    @classmethod
    def upper_state(cls, value):
        return value.upper() if isinstance(value, str) else value


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_number: str
    current_state: State
    priority_level: int
    requested_amount: Optional[Decimal] = None
    approved_amount: Optional[Decimal] = None
    assigned_to: Optional[UUID] = None
    created_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None
    version: int


class NotificationResponse(BaseModel):
    title: str
    message: str
    category: str
    application_id: UUID
    recipient_role: Optional[str] = None
    recipient_user_id: Optional[UUID] = None


class TransitionResponse(BaseModel):
    message: str
    changed: bool
    from_state: State
    application: ApplicationResponse
    notifications: List[NotificationResponse] = []


class ErrorResponse(BaseModel):
    """Structured workflow error."""
    kind: str
    reason: str
    retryable: bool = False
    details: Dict[str, Any] = {}
