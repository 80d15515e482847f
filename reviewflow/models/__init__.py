"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from reviewflow.models.applications import Application, TemplateStage, TemplateStageReviewLevel
from reviewflow.models.permission_grants import PermissionGrant
from reviewflow.models.review_assignments import (
    ReviewAssignment,
    ReviewAssignmentAssignerJoin,
    ReviewQuestionAssignment,
)
from reviewflow.models.reviews import Review, ReviewDecision, ReviewResponse, ReviewStatusHistory

__all__ = [
    "Application",
    "PermissionGrant",
    "Review",
    "ReviewAssignment",
    "ReviewAssignmentAssignerJoin",
    "ReviewDecision",
    "ReviewQuestionAssignment",
    "ReviewResponse",
    "ReviewStatusHistory",
    "TemplateStage",
    "TemplateStageReviewLevel",
]
