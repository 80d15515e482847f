"""Shared enum values for review workflow records and triggers."""

from __future__ import annotations

from enum import Enum


class PermissionType(str, Enum):
    """Kinds of permission grants consumed by assignment reconciliation."""

    REVIEW = "Review"
    ASSIGN = "Assign"


class ReviewAssignmentStatus(str, Enum):
    """Lifecycle states of a review assignment slot."""

    AVAILABLE = "Available"
    ASSIGNED = "Assigned"


class ReviewStatus(str, Enum):
    """States recorded in the review status history."""

    DRAFT = "Draft"
    PENDING = "Pending"
    SUBMITTED = "Submitted"
    CHANGES_REQUESTED = "ChangesRequested"
    LOCKED = "Locked"


class Decision(str, Enum):
    """Overall decision a reviewer records on a review."""

    CONFORM = "Conform"
    NON_CONFORM = "NonConform"
    CHANGES_REQUESTED = "ChangesRequested"
    NO_DECISION = "NoDecision"


class ReviewResponseDecision(str, Enum):
    """Answer-level decision within a review."""

    APPROVE = "Approve"
    DISAGREE = "Disagree"


class Trigger(str, Enum):
    """Events the trigger dispatcher forwards to this service."""

    ON_APPLICATION_CREATE = "OnApplicationCreate"
    ON_APPLICATION_SUBMIT = "OnApplicationSubmit"
    ON_REVIEW_SUBMIT = "OnReviewSubmit"
    ON_REVIEW_ASSIGN = "OnReviewAssign"
    ON_REVIEW_UNASSIGN = "OnReviewUnassign"
    REGENERATE = "Regenerate"


class TriggeredBy(str, Enum):
    """Origin of a status propagation request."""

    APPLICATION = "Application"
    REVIEW = "Review"


class ActionStatus(str, Enum):
    """Outcome reported by every trigger entry point."""

    SUCCESS = "Success"
    FAIL = "Fail"
    CONDITION_NOT_MET = "ConditionNotMet"
