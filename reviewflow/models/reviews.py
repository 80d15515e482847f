"""Review, review status history, decision, and response models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from reviewflow.core.time import utcnow
from reviewflow.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Review(QueryModel, table=True):
    """One reviewer's evaluation tied to a review assignment."""

    __tablename__ = "reviews"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    review_assignment_id: UUID = Field(index=True)
    application_id: UUID = Field(foreign_key="applications.id", index=True)
    reviewer_id: UUID = Field(index=True)
    stage_id: UUID = Field(index=True)
    stage_number: int
    level_number: int = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)


class ReviewStatusHistory(QueryModel, table=True):
    """Append-only status log; the highest id per review is its current status."""

    __tablename__ = "review_status_history"  # pyright: ignore[reportAssignmentType]

    id: int | None = Field(default=None, primary_key=True)
    review_id: UUID = Field(foreign_key="reviews.id", index=True)
    status: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)


class ReviewDecision(QueryModel, table=True):
    """Overall decision recorded on a review; the latest row wins."""

    __tablename__ = "review_decisions"  # pyright: ignore[reportAssignmentType]

    id: int | None = Field(default=None, primary_key=True)
    review_id: UUID = Field(foreign_key="reviews.id", index=True)
    decision: str = Field(default="NoDecision")
    comment: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class ReviewResponse(QueryModel, table=True):
    """Answer-level decision within a review."""

    __tablename__ = "review_responses"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    review_id: UUID = Field(foreign_key="reviews.id", index=True)
    template_element_id: int = Field(index=True)
    application_response_id: int = Field(index=True)
    decision: str | None = None  # Approve | Disagree
    created_at: datetime = Field(default_factory=utcnow)
