"""Mutual exclusion between self-assignable review assignments at one level."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reviewflow.core.logging import get_logger
from reviewflow.core.review_enums import Trigger
from reviewflow.schemas.review_assignments import LockUpdate

if TYPE_CHECKING:
    from uuid import UUID

    from reviewflow.models.review_assignments import ReviewAssignment
    from reviewflow.services.review_gateway import ReviewPersistenceGateway

logger = get_logger(__name__)

LOCK_EVENTS = frozenset({Trigger.ON_REVIEW_ASSIGN, Trigger.ON_REVIEW_UNASSIGN})


def _target_lock(sibling: ReviewAssignment, event: Trigger) -> bool:
    if event == Trigger.ON_REVIEW_ASSIGN:
        # Only a sibling with no claimed sections is blocked by a whole-application claim.
        return len(sibling.assigned_sections or []) == 0
    return False


async def update_assignment_locks(
    gateway: ReviewPersistenceGateway,
    *,
    review_assignment_id: UUID,
    event: Trigger,
) -> list[LockUpdate]:
    """Lock or unlock siblings after a reviewer claims or releases an assignment."""
    if event not in LOCK_EVENTS:
        msg = f"Unsupported assignment lock event {event!r}"
        raise ValueError(msg)

    assignment = await gateway.get_assignment_by_id(review_assignment_id)
    if assignment is None:
        msg = f"Review assignment {review_assignment_id} not found"
        raise LookupError(msg)

    siblings = await gateway.get_matching_self_assignments(
        exclude_assignment_id=assignment.id,
        application_id=assignment.application_id,
        stage_number=assignment.stage_number,
        level_number=assignment.level_number,
    )
    changes = [
        LockUpdate(id=sibling.id, is_locked=locked)
        for sibling in siblings
        if (locked := _target_lock(sibling, event)) != sibling.is_locked
    ]
    updated = await gateway.set_assignment_locks(changes)
    if updated:
        logger.info(
            "review_assignments.locks.updated",
            extra={
                "review_assignment_id": str(review_assignment_id),
                "event": event.value,
                "updated": len(updated),
            },
        )
    return updated
