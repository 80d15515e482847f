"""Application and template stage models read by review workflows."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from reviewflow.core.time import utcnow
from reviewflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Application(QueryModel, table=True):
    """Submitted workflow instance and the stage it currently sits in."""

    __tablename__ = "applications"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    template_id: UUID = Field(index=True)
    stage_id: UUID = Field(foreign_key="template_stages.id", index=True)
    stage_number: int
    stage_entered_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)


class TemplateStage(QueryModel, table=True):
    """Ordered phase of a template's approval workflow."""

    __tablename__ = "template_stages"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("template_id", "number", name="uq_template_stages_template_number"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    template_id: UUID = Field(index=True)
    number: int
    title: str = Field(default="")


class TemplateStageReviewLevel(QueryModel, table=True):
    """Review level configured for a stage; the row count is the stage's level count."""

    __tablename__ = "template_stage_review_levels"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("stage_id", "number", name="uq_template_stage_review_levels_stage_number"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    stage_id: UUID = Field(foreign_key="template_stages.id", index=True)
    number: int
    name: str = Field(default="")
