"""Review assignment, assigner join, and question assignment models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Index, text
from sqlmodel import Field

from reviewflow.core.time import utcnow
from reviewflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

ORG_IS_NULL = text("organisation_id IS NULL")
ORG_IS_NOT_NULL = text("organisation_id IS NOT NULL")

REVIEW_ASSIGNMENT_KEY = ("reviewer_id", "stage_number", "application_id", "level_number")
REVIEW_ASSIGNMENT_ORG_KEY = (
    "reviewer_id",
    "organisation_id",
    "stage_number",
    "application_id",
    "level_number",
)
ASSIGNER_JOIN_KEY = ("assigner_id", "review_assignment_id")
ASSIGNER_JOIN_ORG_KEY = ("assigner_id", "review_assignment_id", "organisation_id")


class ReviewAssignment(QueryModel, table=True):
    """Binding of one reviewer (optionally org-scoped) to an application level."""

    __tablename__ = "review_assignments"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        Index(
            "uq_review_assignments_identity",
            *REVIEW_ASSIGNMENT_KEY,
            unique=True,
            postgresql_where=ORG_IS_NULL,
            sqlite_where=ORG_IS_NULL,
        ),
        Index(
            "uq_review_assignments_identity_org",
            *REVIEW_ASSIGNMENT_ORG_KEY,
            unique=True,
            postgresql_where=ORG_IS_NOT_NULL,
            sqlite_where=ORG_IS_NOT_NULL,
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    application_id: UUID = Field(foreign_key="applications.id", index=True)
    reviewer_id: UUID = Field(index=True)
    organisation_id: UUID | None = Field(default=None)
    stage_id: UUID = Field(index=True)
    stage_number: int
    level_number: int
    time_stage_created: datetime
    status: str = Field(default="Available", index=True)  # Available | Assigned
    allowed_sections: list[str] | None = Field(
        default=None, sa_column=Column(JSON(none_as_null=True))
    )
    # Section codes the reviewer has claimed; empty means the whole application.
    assigned_sections: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    is_self_assignable: bool = Field(default=False)
    is_final_decision: bool = Field(default=False)
    is_locked: bool = Field(default=False)
    is_last_level: bool = Field(default=False)
    is_last_stage: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ReviewAssignmentAssignerJoin(QueryModel, table=True):
    """Grants an assigner the ability to manage one review assignment."""

    __tablename__ = "review_assignment_assigner_joins"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        Index(
            "uq_review_assignment_assigner_joins_identity",
            *ASSIGNER_JOIN_KEY,
            unique=True,
            postgresql_where=ORG_IS_NULL,
            sqlite_where=ORG_IS_NULL,
        ),
        Index(
            "uq_review_assignment_assigner_joins_identity_org",
            *ASSIGNER_JOIN_ORG_KEY,
            unique=True,
            postgresql_where=ORG_IS_NOT_NULL,
            sqlite_where=ORG_IS_NOT_NULL,
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    assigner_id: UUID = Field(index=True)
    # No FK: joins of a revoked assignment are reported as orphans, not cascaded.
    review_assignment_id: UUID = Field(index=True)
    organisation_id: UUID | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)


class ReviewQuestionAssignment(QueryModel, table=True):
    """Template element (question) a review assignment is responsible for."""

    __tablename__ = "review_question_assignments"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    review_assignment_id: UUID = Field(index=True)
    template_element_id: int = Field(index=True)
