"""Assigner join generation for created or refreshed review assignments."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reviewflow.core.review_enums import PermissionType
from reviewflow.schemas.review_assignments import AssignerJoinPlan

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from reviewflow.services.review_gateway import ReviewPersistenceGateway


async def build_assigner_joins(
    gateway: ReviewPersistenceGateway,
    *,
    assignment_ids: Sequence[UUID],
    template_id: UUID,
    stage_number: int,
    level_number: int,
) -> tuple[list[AssignerJoinPlan], list[UUID]]:
    """Link every `Assign` grant holder at the level to each given assignment.

    Assigners are treated as unrestricted by section.
    """
    if not assignment_ids:
        return [], []
    assigners = await gateway.get_personnel_for_level(
        template_id=template_id,
        stage_number=stage_number,
        level_number=level_number,
        permission_type=PermissionType.ASSIGN.value,
    )
    joins = [
        AssignerJoinPlan(
            assigner_id=assigner.user_id,
            review_assignment_id=assignment_id,
            organisation_id=assigner.organisation_id,
        )
        for assignment_id in assignment_ids
        for assigner in assigners
    ]
    join_ids = await gateway.upsert_assigner_joins(joins)
    return joins, join_ids
