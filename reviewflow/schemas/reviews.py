"""Schemas for review status propagation inputs and outputs."""

from __future__ import annotations

from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (UUID,)


class ChangedResponse(SQLModel):
    """Application or review answer that changed since the last submission."""

    application_response_id: int
    template_element_id: int
    decision: str | None = None


class AssociatedReview(SQLModel):
    """Review at a level together with its current status."""

    review_id: UUID
    review_assignment_id: UUID
    application_id: UUID
    reviewer_id: UUID
    level_number: int
    review_status: str | None = None


class ReviewStatusUpdate(AssociatedReview):
    """Review whose status was transitioned by propagation."""

    previous_status: str | None = None
