"""Review assignment reconciliation for a single application review level.

Reconciliation compares the assignments already persisted for a level with the
current `Review` permission grants and brings the stored rows in line:

1. Assignments whose reviewer no longer holds a grant are deleted.
2. Every grant produces a target state; reviewers already in progress keep
   their status and self-assignment flag.
3. Grants are folded per `(reviewer_id, organisation_id)` key. The first grant
   for a key decides status and lock flags; later grants for the same key only
   widen `allowed_sections` (`None` means unrestricted and always wins).
4. Targets are written with a conditional upsert. On conflict it refreshes
   `allowed_sections` and, for final-decision targets, the status and flags,
   so re-running with unchanged inputs leaves the stored rows unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from reviewflow.core.logging import get_logger
from reviewflow.core.review_enums import PermissionType, ReviewAssignmentStatus
from reviewflow.schemas.review_assignments import LevelReconciliation, ReviewAssignmentPlan
from reviewflow.services.assigner_joins import build_assigner_joins
from reviewflow.services.review_gateway import AssignmentDeleteKey

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from reviewflow.models.permission_grants import PermissionGrant
    from reviewflow.models.review_assignments import ReviewAssignment
    from reviewflow.services.review_gateway import ReviewPersistenceGateway

logger = get_logger(__name__)


class ReconciliationStateError(RuntimeError):
    """Raised when a level plan cannot be built from the supplied rows."""


@dataclass(frozen=True)
class AssignmentKey:
    """Merge key for permission grants targeting the same assignment."""

    reviewer_id: UUID
    organisation_id: UUID | None = None


@dataclass(frozen=True)
class AssignmentState:
    status: str
    is_self_assignable: bool
    is_locked: bool


@dataclass(frozen=True)
class LevelScope:
    """Application level being reconciled and the stage facts copied onto rows."""

    application_id: UUID
    stage_id: UUID
    stage_number: int
    level_number: int
    time_stage_created: datetime
    is_last_level: bool
    is_last_stage: bool


@dataclass
class LevelPlan:
    """Rows to delete and merged targets to upsert for one level."""

    deletions: list[AssignmentDeleteKey] = field(default_factory=list)
    targets: dict[AssignmentKey, ReviewAssignmentPlan] = field(default_factory=dict)


def merge_allowed_sections(
    current: Sequence[str] | None,
    incoming: Sequence[str] | None,
) -> list[str] | None:
    """Union two section restrictions; `None` (all sections) absorbs the other side."""
    if current is None or incoming is None:
        return None
    return list(dict.fromkeys([*current, *incoming]))


def _normalize_sections(sections: Sequence[str] | None) -> list[str] | None:
    if sections is None:
        return None
    return list(dict.fromkeys(sections))


def assignment_state_for(
    *,
    can_make_final_decision: bool,
    is_self_assignable: bool,
    existing: ReviewAssignment | None,
    assigned_siblings: Sequence[ReviewAssignment],
) -> AssignmentState:
    """Decide status and lock flags for a reviewer at a level."""
    # Final-decision reviewers are never blocked by another reviewer's claim.
    if can_make_final_decision:
        return AssignmentState(
            status=ReviewAssignmentStatus.ASSIGNED.value,
            is_self_assignable=True,
            is_locked=False,
        )

    if existing is None:
        return AssignmentState(
            status=ReviewAssignmentStatus.AVAILABLE.value,
            is_self_assignable=is_self_assignable,
            is_locked=bool(assigned_siblings) and is_self_assignable,
        )

    self_assignable = existing.is_self_assignable
    if existing.status == ReviewAssignmentStatus.ASSIGNED.value:
        is_locked = existing.is_locked
    else:
        is_locked = bool(assigned_siblings) and self_assignable
    return AssignmentState(
        status=existing.status,
        is_self_assignable=self_assignable,
        is_locked=is_locked,
    )


def plan_level(
    *,
    scope: LevelScope,
    previous_assignments: Iterable[ReviewAssignment],
    reviewers: Iterable[PermissionGrant],
) -> LevelPlan:
    """Build the deletions and merged targets for one level without touching storage."""
    reviewers = list(reviewers)
    authorized_ids = {grant.user_id for grant in reviewers}
    if None in authorized_ids:
        msg = "Review permission grant without a user id"
        raise ReconciliationStateError(msg)

    plan = LevelPlan()
    still_authorized: list[ReviewAssignment] = []
    for assignment in previous_assignments:
        if assignment.reviewer_id in authorized_ids:
            still_authorized.append(assignment)
            continue
        plan.deletions.append(
            AssignmentDeleteKey(
                reviewer_id=assignment.reviewer_id,
                application_id=scope.application_id,
                stage_number=scope.stage_number,
                level_number=scope.level_number,
            ),
        )

    existing_by_reviewer: dict[UUID, ReviewAssignment] = {}
    for assignment in still_authorized:
        existing_by_reviewer.setdefault(assignment.reviewer_id, assignment)
    assigned_siblings = [
        a for a in still_authorized if a.status == ReviewAssignmentStatus.ASSIGNED.value
    ]

    # Phase one: the first grant for each key decides the target state.
    extra_grants: list[tuple[AssignmentKey, PermissionGrant]] = []
    for grant in reviewers:
        key = AssignmentKey(grant.user_id, grant.organisation_id)
        if key in plan.targets:
            extra_grants.append((key, grant))
            continue
        state = assignment_state_for(
            can_make_final_decision=grant.can_make_final_decision,
            is_self_assignable=grant.can_self_assign or scope.level_number > 1,
            existing=existing_by_reviewer.get(grant.user_id),
            assigned_siblings=assigned_siblings,
        )
        plan.targets[key] = ReviewAssignmentPlan(
            reviewer_id=grant.user_id,
            organisation_id=grant.organisation_id,
            application_id=scope.application_id,
            stage_id=scope.stage_id,
            stage_number=scope.stage_number,
            level_number=scope.level_number,
            time_stage_created=scope.time_stage_created,
            status=state.status,
            allowed_sections=_normalize_sections(grant.allowed_sections),
            is_self_assignable=state.is_self_assignable,
            is_final_decision=grant.can_make_final_decision,
            is_locked=state.is_locked,
            is_last_level=scope.is_last_level,
            is_last_stage=scope.is_last_stage,
        )

    # Phase two: additional grants for a key only widen the section restriction.
    for key, grant in extra_grants:
        target = plan.targets.get(key)
        if target is None:
            msg = f"Merge state missing target for reviewer {key.reviewer_id}"
            raise ReconciliationStateError(msg)
        target.allowed_sections = merge_allowed_sections(
            target.allowed_sections, grant.allowed_sections,
        )
    return plan


async def reconcile_level(
    gateway: ReviewPersistenceGateway,
    *,
    application_id: UUID,
    stage_id: UUID,
    stage_number: int,
    level_number: int,
    template_id: UUID,
    stage_entered_at: datetime,
    num_review_levels: int,
) -> LevelReconciliation:
    """Bring stored review assignments for one level in line with current grants."""
    last_stage_number = await gateway.get_last_stage_number(application_id)
    previous_assignments = await gateway.get_existing_assignments(
        application_id=application_id,
        stage_number=stage_number,
        level_number=level_number,
    )
    reviewers = await gateway.get_personnel_for_level(
        template_id=template_id,
        stage_number=stage_number,
        level_number=level_number,
        permission_type=PermissionType.REVIEW.value,
    )
    scope = LevelScope(
        application_id=application_id,
        stage_id=stage_id,
        stage_number=stage_number,
        level_number=level_number,
        time_stage_created=stage_entered_at,
        is_last_level=level_number == num_review_levels,
        is_last_stage=stage_number == last_stage_number,
    )
    plan = plan_level(scope=scope, previous_assignments=previous_assignments, reviewers=reviewers)

    removed_ids = await gateway.delete_assignments(plan.deletions)
    orphaned = await gateway.find_orphaned_references(removed_ids)
    if orphaned:
        logger.warning(
            "review_assignments.level.orphaned_references",
            extra={
                "application_id": str(application_id),
                "level_number": level_number,
                "assignment_ids": [str(o.review_assignment_id) for o in orphaned],
            },
        )

    targets = list(plan.targets.values())
    assignment_ids = await gateway.upsert_assignments(targets)
    joins, join_ids = await build_assigner_joins(
        gateway,
        assignment_ids=assignment_ids,
        template_id=template_id,
        stage_number=stage_number,
        level_number=level_number,
    )

    logger.info(
        "review_assignments.level.reconciled",
        extra={
            "application_id": str(application_id),
            "stage_number": stage_number,
            "level_number": level_number,
            "upserted": len(assignment_ids),
            "removed": len(removed_ids),
            "assigner_joins": len(join_ids),
        },
    )
    return LevelReconciliation(
        stage_number=stage_number,
        level_number=level_number,
        assignments=targets,
        assignment_ids=assignment_ids,
        removed_assignment_ids=removed_ids,
        assigner_joins=joins,
        assigner_join_ids=join_ids,
        orphaned_references=orphaned,
    )
