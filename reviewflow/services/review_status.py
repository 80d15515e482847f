"""Review status propagation after application or review submissions.

When an application is resubmitted, or a review is submitted at one level,
reviews at a neighbouring level may need to move:

- Review with `ChangesRequested`: submitted reviews one level down whose
  questions received a `Disagree` move to `ChangesRequested`.
- Review with any other decision: reviews one level up in `Submitted` or
  `Draft` move to `Pending`. Consolidation cannot be partial, so no question
  filter applies.
- Application (re)submission: level 1 reviews whose questions changed move to
  `Pending`, and any `Locked` level 1 review is released to `Pending`.

Transitions are appended to the review status history; the review that caused
the trigger is never transitioned.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from reviewflow.core.logging import get_logger
from reviewflow.core.review_enums import (
    Decision,
    ReviewResponseDecision,
    ReviewStatus,
    TriggeredBy,
)
from reviewflow.schemas.reviews import ChangedResponse, ReviewStatusUpdate

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from reviewflow.schemas.reviews import AssociatedReview
    from reviewflow.services.review_gateway import ReviewPersistenceGateway

logger = get_logger(__name__)


class ReviewStatusPropagator:
    """Computes and records review status transitions for one submission event."""

    def __init__(
        self,
        gateway: ReviewPersistenceGateway,
        *,
        triggered_by: TriggeredBy,
        application_id: UUID,
        stage_id: UUID,
        changed_responses: Sequence[ChangedResponse],
        review_id: UUID | None = None,
    ) -> None:
        self.gateway = gateway
        self.triggered_by = triggered_by
        self.application_id = application_id
        self.stage_id = stage_id
        self.changed_responses = list(changed_responses)
        self.review_id = review_id

    async def _reviews_at(
        self,
        level_number: int,
        statuses: set[str] | None = None,
    ) -> list[AssociatedReview]:
        reviews = await self.gateway.get_associated_reviews(
            application_id=self.application_id,
            stage_id=self.stage_id,
            level_number=level_number,
        )
        return [
            review
            for review in reviews
            if review.review_id != self.review_id
            and (statuses is None or review.review_status in statuses)
        ]

    async def resolve_response_decisions(self) -> None:
        """Fill missing answer decisions from the triggering review's responses."""
        if self.triggered_by != TriggeredBy.REVIEW or self.review_id is None:
            return
        if all(response.decision is not None for response in self.changed_responses):
            return
        decisions = await self.gateway.get_review_response_decisions(self.review_id)
        self.changed_responses = [
            response
            if response.decision is not None
            else response.model_copy(
                update={"decision": decisions.get(response.application_response_id)},
            )
            for response in self.changed_responses
        ]

    async def have_assigned_responses_changed(self, review_assignment_id: UUID) -> bool:
        assigned_elements = await self.gateway.get_review_assigned_element_ids(review_assignment_id)
        for response in self.changed_responses:
            if response.template_element_id not in assigned_elements:
                continue
            if self.triggered_by == TriggeredBy.APPLICATION:
                return True
            if response.decision == ReviewResponseDecision.DISAGREE.value:
                return True
        return False

    async def find_updates(
        self,
        *,
        current_level: int,
        latest_decision: str | None,
    ) -> list[ReviewStatusUpdate]:
        updates: list[ReviewStatusUpdate] = []

        def _transition(review: AssociatedReview, status: ReviewStatus) -> None:
            updates.append(
                ReviewStatusUpdate(
                    **review.model_dump(exclude={"review_status"}),
                    review_status=status.value,
                    previous_status=review.review_status,
                ),
            )

        if self.triggered_by == TriggeredBy.REVIEW:
            if latest_decision == Decision.CHANGES_REQUESTED.value:
                lower = await self._reviews_at(
                    current_level - 1, {ReviewStatus.SUBMITTED.value},
                )
                for review in lower:
                    if await self.have_assigned_responses_changed(review.review_assignment_id):
                        _transition(review, ReviewStatus.CHANGES_REQUESTED)
            else:
                upper = await self._reviews_at(
                    current_level + 1,
                    {ReviewStatus.SUBMITTED.value, ReviewStatus.DRAFT.value},
                )
                for review in upper:
                    _transition(review, ReviewStatus.PENDING)
            return updates

        for review in await self._reviews_at(1):
            if await self.have_assigned_responses_changed(review.review_assignment_id):
                _transition(review, ReviewStatus.PENDING)
            elif review.review_status == ReviewStatus.LOCKED.value:
                _transition(review, ReviewStatus.PENDING)
        return updates

    async def propagate(
        self,
        *,
        current_level: int,
        latest_decision: str | None,
    ) -> list[ReviewStatusUpdate]:
        await self.resolve_response_decisions()
        updates = await self.find_updates(
            current_level=current_level,
            latest_decision=latest_decision,
        )
        for update in updates:
            await self.gateway.append_review_status_history(update.review_id, update.review_status)
        logger.info(
            "review_status.updated",
            extra={
                "application_id": str(self.application_id),
                "triggered_by": self.triggered_by.value,
                "current_level": current_level,
                "updated": len(updates),
            },
        )
        return updates


async def propagate_review_statuses(
    gateway: ReviewPersistenceGateway,
    *,
    triggered_by: TriggeredBy,
    application_id: UUID,
    stage_id: UUID,
    current_level: int,
    changed_responses: Sequence[ChangedResponse],
    latest_decision: str | None,
    review_id: UUID | None = None,
) -> list[ReviewStatusUpdate]:
    """Transition neighbouring reviews affected by a submission."""
    propagator = ReviewStatusPropagator(
        gateway,
        triggered_by=triggered_by,
        application_id=application_id,
        stage_id=stage_id,
        changed_responses=changed_responses,
        review_id=review_id,
    )
    return await propagator.propagate(
        current_level=current_level,
        latest_decision=latest_decision,
    )
