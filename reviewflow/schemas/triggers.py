"""Trigger event payloads and the structured result every action returns."""

from __future__ import annotations

from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

from reviewflow.core.review_enums import ActionStatus, Trigger
from reviewflow.schemas.reviews import ChangedResponse

RUNTIME_ANNOTATION_TYPES = (UUID,)


class TriggerEvent(SQLModel):
    """Event forwarded by the trigger dispatcher."""

    trigger: Trigger
    application_id: UUID | None = None
    review_id: UUID | None = None
    review_assignment_id: UUID | None = None
    changed_responses: list[ChangedResponse] = Field(default_factory=list)
    latest_decision: str | None = None
    is_regeneration: bool = False


class ActionResult(SQLModel):
    """Calling convention shared by every unit of work run from a trigger."""

    action: str
    status: ActionStatus
    error_log: str = ""
    output: dict[str, object] = Field(default_factory=dict)

    @classmethod
    def success(
        cls,
        action: str,
        output: dict[str, object] | None = None,
        *,
        error_log: str = "",
    ) -> ActionResult:
        return cls(action=action, status=ActionStatus.SUCCESS, error_log=error_log, output=output or {})

    @classmethod
    def fail(cls, action: str, error_log: str, output: dict[str, object] | None = None) -> ActionResult:
        return cls(action=action, status=ActionStatus.FAIL, error_log=error_log, output=output or {})

    @classmethod
    def condition_not_met(cls, action: str, error_log: str) -> ActionResult:
        return cls(action=action, status=ActionStatus.CONDITION_NOT_MET, error_log=error_log)
