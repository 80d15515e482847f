"""Selection of the review levels to reconcile for each generation trigger."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from reviewflow.core.logging import get_logger
from reviewflow.schemas.triggers import ActionResult
from reviewflow.services.assignment_reconciler import ReconciliationStateError, reconcile_level

if TYPE_CHECKING:
    from uuid import UUID

    from reviewflow.schemas.review_assignments import LevelReconciliation
    from reviewflow.services.review_gateway import ApplicationContext, ReviewPersistenceGateway

logger = get_logger(__name__)

GENERATE_ACTION = "generateReviewAssignments"


@dataclass
class LevelFailure:
    level_number: int
    error: str


class LevelReconciliationError(RuntimeError):
    """Raised after regeneration when one or more levels failed to reconcile."""

    def __init__(
        self,
        *,
        completed: list[LevelReconciliation],
        failures: list[LevelFailure],
    ) -> None:
        self.completed = completed
        self.failures = failures
        details = "; ".join(f"level {f.level_number}: {f.error}" for f in failures)
        super().__init__(f"Regeneration failed for {len(failures)} level(s): {details}")


def levels_output(levels: list[LevelReconciliation]) -> dict[str, object]:
    return {"levels": [level.model_dump(mode="json") for level in levels]}


class ReviewLevelOrchestrator:
    """Decides which levels a trigger must reconcile and drives the reconciler."""

    def __init__(self, gateway: ReviewPersistenceGateway) -> None:
        self.gateway = gateway

    async def generate(
        self,
        application_id: UUID,
        *,
        review_id: UUID | None = None,
        is_regeneration: bool = False,
    ) -> ActionResult:
        context = await self.gateway.get_application_context(application_id)
        if context is None:
            msg = f"Application {application_id} not found"
            raise LookupError(msg)
        num_review_levels = await self.gateway.get_num_review_levels(context.stage_id)

        if is_regeneration:
            return await self._generate_until_current_level(context, num_review_levels)
        if review_id is not None:
            return await self._generate_next_level(context, review_id, num_review_levels)
        return await self._generate_first_level(context, num_review_levels)

    async def _reconcile(
        self,
        context: ApplicationContext,
        level_number: int,
        num_review_levels: int,
    ) -> LevelReconciliation:
        result = await reconcile_level(
            self.gateway,
            application_id=context.application_id,
            stage_id=context.stage_id,
            stage_number=context.stage_number,
            level_number=level_number,
            template_id=context.template_id,
            stage_entered_at=context.stage_entered_at,
            num_review_levels=num_review_levels,
        )
        await self.gateway.commit()
        return result

    async def _generate_first_level(
        self,
        context: ApplicationContext,
        num_review_levels: int,
    ) -> ActionResult:
        logger.info(
            "review_assignments.generate.application_submitted",
            extra={
                "application_id": str(context.application_id),
                "stage_number": context.stage_number,
            },
        )
        level = await self._reconcile(context, 1, num_review_levels)
        return ActionResult.success(GENERATE_ACTION, levels_output([level]))

    async def _generate_next_level(
        self,
        context: ApplicationContext,
        review_id: UUID,
        num_review_levels: int,
    ) -> ActionResult:
        review_stage, review_level = await self.gateway.get_review_stage_and_level(review_id)
        logger.info(
            "review_assignments.generate.review_submitted",
            extra={
                "application_id": str(context.application_id),
                "review_id": str(review_id),
                "review_stage": review_stage,
                "review_level": review_level,
                "current_stage": context.stage_number,
            },
        )
        if num_review_levels == 0:
            return ActionResult.success(
                GENERATE_ACTION,
                error_log=f"No reviewer with level associated to stage {context.stage_number}",
            )

        if review_stage != context.stage_number:
            # The submission moved the application into a new stage.
            next_level = 1
        else:
            next_level = review_level + 1
            if next_level > num_review_levels:
                return ActionResult.success(
                    GENERATE_ACTION,
                    error_log="Final review level reached for current stage",
                )

        level = await self._reconcile(context, next_level, num_review_levels)
        return ActionResult.success(GENERATE_ACTION, levels_output([level]))

    async def _generate_until_current_level(
        self,
        context: ApplicationContext,
        num_review_levels: int,
    ) -> ActionResult:
        current_level = (
            await self.gateway.get_last_review_level(
                application_id=context.application_id,
                stage_number=context.stage_number,
            )
            or 1
        )
        logger.info(
            "review_assignments.generate.regeneration",
            extra={
                "application_id": str(context.application_id),
                "stage_number": context.stage_number,
                "current_level": current_level,
            },
        )

        # Levels only touch rows scoped to their own level number; each one
        # commits independently so a later failure keeps earlier levels.
        completed: list[LevelReconciliation] = []
        failures: list[LevelFailure] = []
        for level_number in range(1, current_level + 1):
            try:
                completed.append(await self._reconcile(context, level_number, num_review_levels))
            except ReconciliationStateError:
                await self.gateway.rollback()
                raise
            except Exception as exc:
                await self.gateway.rollback()
                logger.exception(
                    "review_assignments.generate.level_failed",
                    extra={
                        "application_id": str(context.application_id),
                        "level_number": level_number,
                    },
                )
                failures.append(LevelFailure(level_number=level_number, error=str(exc)))

        if failures:
            raise LevelReconciliationError(completed=completed, failures=failures)
        return ActionResult.success(GENERATE_ACTION, levels_output(completed))
