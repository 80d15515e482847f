"""Persistence gateway for review assignment and review status workflows.

Every database read and write used by the reconciliation, locking, and status
propagation services goes through `ReviewPersistenceGateway` so the workflow
logic never builds SQL itself. Writes that must respect the assignment
identity keys use dialect-level `INSERT .. ON CONFLICT DO UPDATE` against the
partial unique indexes declared on the models.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import case, delete, func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import col, select

from reviewflow.core.logging import get_logger
from reviewflow.core.time import utcnow
from reviewflow.models.applications import Application, TemplateStage, TemplateStageReviewLevel
from reviewflow.models.permission_grants import PermissionGrant
from reviewflow.models.review_assignments import (
    ASSIGNER_JOIN_KEY,
    ASSIGNER_JOIN_ORG_KEY,
    ORG_IS_NOT_NULL,
    ORG_IS_NULL,
    REVIEW_ASSIGNMENT_KEY,
    REVIEW_ASSIGNMENT_ORG_KEY,
    ReviewAssignment,
    ReviewAssignmentAssignerJoin,
    ReviewQuestionAssignment,
)
from reviewflow.models.reviews import Review, ReviewDecision, ReviewResponse, ReviewStatusHistory
from reviewflow.schemas.review_assignments import OrphanedReference
from reviewflow.schemas.reviews import AssociatedReview

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from sqlmodel.ext.asyncio.session import AsyncSession

    from reviewflow.schemas.review_assignments import (
        AssignerJoinPlan,
        LockUpdate,
        ReviewAssignmentPlan,
    )

logger = get_logger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _final_decision_or_stored(excluded: Any, column: str) -> Any:
    return case(
        (excluded.is_final_decision.is_(True), getattr(excluded, column)),
        else_=ReviewAssignment.__table__.c[column],  # type: ignore[attr-defined]
    )


@dataclass(frozen=True)
class ApplicationContext:
    """Template and current-stage facts needed to generate assignments."""

    application_id: UUID
    template_id: UUID
    stage_id: UUID
    stage_number: int
    stage_entered_at: datetime


@dataclass(frozen=True)
class AssignmentDeleteKey:
    """Scope of a review assignment removed because permission was revoked."""

    reviewer_id: UUID
    application_id: UUID
    stage_number: int
    level_number: int


class ReviewPersistenceGateway:
    """Semantic read/write operations over review workflow tables."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _insert(self, model: type[Any]) -> Any:
        dialect = self.session.get_bind().dialect.name
        builder = _INSERT_BY_DIALECT.get(dialect)
        if builder is None:
            msg = f"Conditional upsert is not supported for dialect {dialect!r}"
            raise RuntimeError(msg)
        return builder(model)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    # Application and template structure

    async def get_application_context(self, application_id: UUID) -> ApplicationContext | None:
        application = await Application.objects.by_id(application_id).first(self.session)
        if application is None:
            return None
        return ApplicationContext(
            application_id=application.id,
            template_id=application.template_id,
            stage_id=application.stage_id,
            stage_number=application.stage_number,
            stage_entered_at=application.stage_entered_at,
        )

    async def get_num_review_levels(self, stage_id: UUID) -> int:
        statement = select(func.count()).select_from(TemplateStageReviewLevel).where(
            col(TemplateStageReviewLevel.stage_id) == stage_id,
        )
        return int((await self.session.exec(statement)).one() or 0)

    async def get_last_stage_number(self, application_id: UUID) -> int | None:
        statement = (
            select(func.max(TemplateStage.number))
            .select_from(Application)
            .join(TemplateStage, col(TemplateStage.template_id) == col(Application.template_id))
            .where(col(Application.id) == application_id)
        )
        return (await self.session.exec(statement)).one()

    # Permissions and assignments

    async def get_personnel_for_level(
        self,
        *,
        template_id: UUID,
        stage_number: int,
        level_number: int,
        permission_type: str,
    ) -> list[PermissionGrant]:
        return await (
            PermissionGrant.objects.filter_by(
                template_id=template_id,
                stage_number=stage_number,
                review_level=level_number,
                permission_type=permission_type,
            )
            .order_by(col(PermissionGrant.user_id), col(PermissionGrant.id))
            .all(self.session)
        )

    async def get_existing_assignments(
        self,
        *,
        application_id: UUID,
        stage_number: int,
        level_number: int,
    ) -> list[ReviewAssignment]:
        return await ReviewAssignment.objects.filter_by(
            application_id=application_id,
            stage_number=stage_number,
            level_number=level_number,
        ).all(self.session)

    async def get_last_review_level(self, *, application_id: UUID, stage_number: int) -> int | None:
        statement = select(func.max(ReviewAssignment.level_number)).where(
            col(ReviewAssignment.application_id) == application_id,
            col(ReviewAssignment.stage_number) == stage_number,
        )
        return (await self.session.exec(statement)).one()

    async def get_assignment_by_id(self, review_assignment_id: UUID) -> ReviewAssignment | None:
        return await ReviewAssignment.objects.by_id(review_assignment_id).first(self.session)

    async def delete_assignments(self, keys: Sequence[AssignmentDeleteKey]) -> list[UUID]:
        deleted: list[UUID] = []
        for key in keys:
            statement = (
                delete(ReviewAssignment)
                .where(
                    col(ReviewAssignment.reviewer_id) == key.reviewer_id,
                    col(ReviewAssignment.application_id) == key.application_id,
                    col(ReviewAssignment.stage_number) == key.stage_number,
                    col(ReviewAssignment.level_number) == key.level_number,
                )
                .returning(col(ReviewAssignment.id))
            )
            result = await self.session.exec(statement)  # type: ignore[call-overload]
            deleted.extend(result.scalars().all())
        return deleted

    async def upsert_assignments(self, rows: Sequence[ReviewAssignmentPlan]) -> list[UUID]:
        """Insert assignments, refreshing sections and final-decision state on conflict.

        Status and self-assignment/lock flags of an existing row are only
        overwritten when the incoming target is a final-decision assignment.
        """
        ids: list[UUID] = []
        for row in rows:
            now = utcnow()
            values = row.model_dump()
            values.update(id=uuid4(), assigned_sections=[], created_at=now, updated_at=now)
            statement = self._insert(ReviewAssignment).values(**values)
            if row.organisation_id is None:
                conflict_columns, conflict_where = REVIEW_ASSIGNMENT_KEY, ORG_IS_NULL
            else:
                conflict_columns, conflict_where = REVIEW_ASSIGNMENT_ORG_KEY, ORG_IS_NOT_NULL
            excluded = statement.excluded
            statement = statement.on_conflict_do_update(
                index_elements=list(conflict_columns),
                index_where=conflict_where,
                set_={
                    "allowed_sections": excluded.allowed_sections,
                    "is_final_decision": excluded.is_final_decision,
                    "status": _final_decision_or_stored(excluded, "status"),
                    "is_self_assignable": _final_decision_or_stored(excluded, "is_self_assignable"),
                    "is_locked": _final_decision_or_stored(excluded, "is_locked"),
                },
            ).returning(ReviewAssignment.id)
            result = await self.session.exec(statement)
            ids.append(result.scalar_one())
        return ids

    async def upsert_assigner_joins(self, rows: Sequence[AssignerJoinPlan]) -> list[UUID]:
        ids: list[UUID] = []
        for row in rows:
            statement = self._insert(ReviewAssignmentAssignerJoin).values(
                id=uuid4(),
                assigner_id=row.assigner_id,
                review_assignment_id=row.review_assignment_id,
                organisation_id=row.organisation_id,
                created_at=utcnow(),
            )
            if row.organisation_id is None:
                conflict_columns, conflict_where = ASSIGNER_JOIN_KEY, ORG_IS_NULL
            else:
                conflict_columns, conflict_where = ASSIGNER_JOIN_ORG_KEY, ORG_IS_NOT_NULL
            statement = statement.on_conflict_do_update(
                index_elements=list(conflict_columns),
                index_where=conflict_where,
                set_={"organisation_id": statement.excluded.organisation_id},
            ).returning(ReviewAssignmentAssignerJoin.id)
            result = await self.session.exec(statement)
            ids.append(result.scalar_one())
        return ids

    async def find_orphaned_references(
        self,
        review_assignment_ids: Iterable[UUID],
    ) -> list[OrphanedReference]:
        """List reviews and assigner joins still pointing at deleted assignments."""
        assignment_ids = list(review_assignment_ids)
        if not assignment_ids:
            return []
        reviews = await Review.objects.by_field_in(
            "review_assignment_id", assignment_ids,
        ).all(self.session)
        joins = await ReviewAssignmentAssignerJoin.objects.by_field_in(
            "review_assignment_id", assignment_ids,
        ).all(self.session)
        orphans: list[OrphanedReference] = []
        for assignment_id in assignment_ids:
            review_ids = [r.id for r in reviews if r.review_assignment_id == assignment_id]
            join_ids = [j.id for j in joins if j.review_assignment_id == assignment_id]
            if review_ids or join_ids:
                orphans.append(
                    OrphanedReference(
                        review_assignment_id=assignment_id,
                        review_ids=review_ids,
                        assigner_join_ids=join_ids,
                    ),
                )
        return orphans

    async def get_matching_self_assignments(
        self,
        *,
        exclude_assignment_id: UUID,
        application_id: UUID,
        stage_number: int,
        level_number: int,
    ) -> list[ReviewAssignment]:
        return await (
            ReviewAssignment.objects.filter_by(
                application_id=application_id,
                stage_number=stage_number,
                level_number=level_number,
                is_self_assignable=True,
                is_final_decision=False,
            )
            .filter(col(ReviewAssignment.id) != exclude_assignment_id)
            .all(self.session)
        )

    async def set_assignment_locks(self, updates: Sequence[LockUpdate]) -> list[LockUpdate]:
        for item in updates:
            await self.session.exec(  # type: ignore[call-overload]
                update(ReviewAssignment)
                .where(col(ReviewAssignment.id) == item.id)
                .values(is_locked=item.is_locked, updated_at=utcnow()),
            )
        return list(updates)

    # Reviews

    async def get_review(self, review_id: UUID) -> Review | None:
        return await Review.objects.by_id(review_id).first(self.session)

    async def get_review_stage_and_level(self, review_id: UUID) -> tuple[int, int]:
        review = await self.get_review(review_id)
        if review is None:
            msg = f"Review {review_id} not found"
            raise LookupError(msg)
        return review.stage_number, review.level_number

    async def get_current_review_statuses(self, review_ids: Iterable[UUID]) -> dict[UUID, str]:
        history = await (
            ReviewStatusHistory.objects.by_field_in("review_id", review_ids)
            .order_by(col(ReviewStatusHistory.id))
            .all(self.session)
        )
        # Later rows overwrite earlier ones, leaving the latest status per review.
        return {row.review_id: row.status for row in history}

    async def get_associated_reviews(
        self,
        *,
        application_id: UUID,
        stage_id: UUID,
        level_number: int,
    ) -> list[AssociatedReview]:
        reviews = await (
            Review.objects.filter_by(
                application_id=application_id,
                stage_id=stage_id,
                level_number=level_number,
            )
            .order_by(col(Review.created_at), col(Review.id))
            .all(self.session)
        )
        statuses = await self.get_current_review_statuses(r.id for r in reviews)
        return [
            AssociatedReview(
                review_id=review.id,
                review_assignment_id=review.review_assignment_id,
                application_id=review.application_id,
                reviewer_id=review.reviewer_id,
                level_number=review.level_number,
                review_status=statuses.get(review.id),
            )
            for review in reviews
        ]

    async def get_review_assigned_element_ids(self, review_assignment_id: UUID) -> set[int]:
        rows = await ReviewQuestionAssignment.objects.filter_by(
            review_assignment_id=review_assignment_id,
        ).all(self.session)
        return {row.template_element_id for row in rows}

    async def get_review_response_decisions(self, review_id: UUID) -> dict[int, str | None]:
        """Map application response ids to this review's answer-level decisions."""
        rows = await (
            ReviewResponse.objects.filter_by(review_id=review_id)
            .order_by(col(ReviewResponse.created_at))
            .all(self.session)
        )
        return {row.application_response_id: row.decision for row in rows}

    async def get_latest_review_decision(self, review_id: UUID) -> str | None:
        row = await (
            ReviewDecision.objects.filter_by(review_id=review_id)
            .order_by(col(ReviewDecision.id).desc())
            .first(self.session)
        )
        return row.decision if row is not None else None

    async def append_review_status_history(self, review_id: UUID, status: str) -> ReviewStatusHistory:
        entry = ReviewStatusHistory(review_id=review_id, status=status, created_at=utcnow())
        self.session.add(entry)
        await self.session.flush()
        logger.debug(
            "review_status.history.appended",
            extra={"review_id": str(review_id), "status": status},
        )
        return entry
