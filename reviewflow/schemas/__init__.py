"""Public schema exports shared by API route modules."""

from reviewflow.schemas.review_assignments import (
    AssignerJoinPlan,
    LevelReconciliation,
    LockUpdate,
    OrphanedReference,
    ReviewAssignmentPlan,
)
from reviewflow.schemas.reviews import AssociatedReview, ChangedResponse, ReviewStatusUpdate
from reviewflow.schemas.triggers import ActionResult, TriggerEvent

__all__ = [
    "ActionResult",
    "AssignerJoinPlan",
    "AssociatedReview",
    "ChangedResponse",
    "LevelReconciliation",
    "LockUpdate",
    "OrphanedReference",
    "ReviewAssignmentPlan",
    "ReviewStatusUpdate",
    "TriggerEvent",
]
