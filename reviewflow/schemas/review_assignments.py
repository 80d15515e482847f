"""Schemas describing review assignment plans and reconciliation reports."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class ReviewAssignmentPlan(SQLModel):
    """Target state of one review assignment computed by reconciliation."""

    reviewer_id: UUID
    organisation_id: UUID | None = None
    application_id: UUID
    stage_id: UUID
    stage_number: int
    level_number: int
    time_stage_created: datetime
    status: str
    allowed_sections: list[str] | None = None
    is_self_assignable: bool = False
    is_final_decision: bool = False
    is_locked: bool = False
    is_last_level: bool = False
    is_last_stage: bool = False


class AssignerJoinPlan(SQLModel):
    """Assigner join row derived for a created or updated assignment."""

    assigner_id: UUID
    review_assignment_id: UUID
    organisation_id: UUID | None = None


class OrphanedReference(SQLModel):
    """Rows left pointing at a review assignment deleted by reconciliation."""

    review_assignment_id: UUID
    review_ids: list[UUID] = Field(default_factory=list)
    assigner_join_ids: list[UUID] = Field(default_factory=list)


class LevelReconciliation(SQLModel):
    """Outcome of reconciling one review level."""

    stage_number: int
    level_number: int
    assignments: list[ReviewAssignmentPlan] = Field(default_factory=list)
    assignment_ids: list[UUID] = Field(default_factory=list)
    removed_assignment_ids: list[UUID] = Field(default_factory=list)
    assigner_joins: list[AssignerJoinPlan] = Field(default_factory=list)
    assigner_join_ids: list[UUID] = Field(default_factory=list)
    orphaned_references: list[OrphanedReference] = Field(default_factory=list)


class LockUpdate(SQLModel):
    """Lock flag change applied to a sibling self-assignable assignment."""

    id: UUID
    is_locked: bool
