"""Trigger entry points for review assignment and review status actions.

Each `run_*` function is the outermost boundary of one unit of work: it bounds
execution with `settings.trigger_timeout_seconds` (or with what remains of the
deadline shared by all actions of one dispatched trigger), commits on success,
and turns persistence errors or timeouts into an `ActionResult` with status
`Fail`. Malformed reconciliation state is a programming error and propagates.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from reviewflow.core.config import settings
from reviewflow.core.logging import get_logger
from reviewflow.core.review_enums import Decision, Trigger, TriggeredBy
from reviewflow.schemas.triggers import ActionResult
from reviewflow.services.assignment_locks import update_assignment_locks
from reviewflow.services.assignment_reconciler import ReconciliationStateError
from reviewflow.services.level_orchestrator import (
    GENERATE_ACTION,
    LevelReconciliationError,
    ReviewLevelOrchestrator,
    levels_output,
)
from reviewflow.services.review_gateway import ReviewPersistenceGateway
from reviewflow.services.review_status import propagate_review_statuses

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from reviewflow.schemas.reviews import ChangedResponse
    from reviewflow.schemas.triggers import TriggerEvent

logger = get_logger(__name__)

LOCKS_ACTION = "updateReviewAssignmentsStatus"
STATUSES_ACTION = "updateReviewStatuses"


async def _safe_rollback(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except SQLAlchemyError:
        logger.exception("review_triggers.rollback_failed")


def trigger_deadline() -> float:
    """Event-loop time by which every action of one trigger must finish."""
    return asyncio.get_running_loop().time() + settings.trigger_timeout_seconds


def _remaining(deadline: float | None) -> float:
    if deadline is None:
        return settings.trigger_timeout_seconds
    return max(deadline - asyncio.get_running_loop().time(), 0.0)


async def _run_action(
    session: AsyncSession,
    action: str,
    work: Callable[[], Awaitable[ActionResult]],
    *,
    failure_prefix: str,
    deadline: float | None = None,
) -> ActionResult:
    timeout = settings.trigger_timeout_seconds
    try:
        return await asyncio.wait_for(work(), timeout=_remaining(deadline))
    except ReconciliationStateError:
        await _safe_rollback(session)
        raise
    except TimeoutError:
        await _safe_rollback(session)
        logger.warning(
            "review_triggers.action_timeout",
            extra={"action": action, "timeout_seconds": timeout},
        )
        return ActionResult.fail(action, f"{failure_prefix}: timed out after {timeout:g}s")
    except LevelReconciliationError as exc:
        return ActionResult.fail(
            action,
            f"{failure_prefix}: {exc}",
            levels_output(exc.completed),
        )
    except Exception as exc:
        await _safe_rollback(session)
        logger.exception("review_triggers.action_failed", extra={"action": action})
        return ActionResult.fail(action, f"{failure_prefix}: {exc}")


async def run_generate_review_assignments(
    session: AsyncSession,
    *,
    application_id: UUID,
    review_id: UUID | None = None,
    is_regeneration: bool = False,
    deadline: float | None = None,
) -> ActionResult:
    """Create, update, and remove review assignments for the levels a trigger implies."""
    orchestrator = ReviewLevelOrchestrator(ReviewPersistenceGateway(session))

    async def _work() -> ActionResult:
        return await orchestrator.generate(
            application_id,
            review_id=review_id,
            is_regeneration=is_regeneration,
        )

    return await _run_action(
        session,
        GENERATE_ACTION,
        _work,
        failure_prefix="Problem creating review_assignment records",
        deadline=deadline,
    )


async def run_update_review_assignment_locks(
    session: AsyncSession,
    *,
    review_assignment_id: UUID,
    trigger: Trigger,
    deadline: float | None = None,
) -> ActionResult:
    """Apply mutual-exclusion locks after an assign or unassign event."""
    gateway = ReviewPersistenceGateway(session)

    async def _work() -> ActionResult:
        updates = await update_assignment_locks(
            gateway,
            review_assignment_id=review_assignment_id,
            event=trigger,
        )
        await gateway.commit()
        return ActionResult.success(
            LOCKS_ACTION,
            {"review_assignment_updates": [u.model_dump(mode="json") for u in updates]},
        )

    return await _run_action(
        session,
        LOCKS_ACTION,
        _work,
        failure_prefix="Problem updating review_assignment statuses",
        deadline=deadline,
    )


async def run_update_review_statuses(
    session: AsyncSession,
    *,
    application_id: UUID,
    triggered_by: TriggeredBy,
    changed_responses: Sequence[ChangedResponse] = (),
    review_id: UUID | None = None,
    stage_id: UUID | None = None,
    level: int | None = None,
    latest_decision: str | None = None,
    deadline: float | None = None,
) -> ActionResult:
    """Propagate review status transitions caused by a submission."""
    gateway = ReviewPersistenceGateway(session)

    async def _work() -> ActionResult:
        resolved_stage_id = stage_id
        if resolved_stage_id is None:
            context = await gateway.get_application_context(application_id)
            if context is None:
                msg = f"Application {application_id} not found"
                raise LookupError(msg)
            resolved_stage_id = context.stage_id

        current_level = level
        decision = latest_decision
        if review_id is not None:
            if current_level is None:
                _, current_level = await gateway.get_review_stage_and_level(review_id)
            if decision is None:
                decision = await gateway.get_latest_review_decision(review_id)

        updates = await propagate_review_statuses(
            gateway,
            triggered_by=triggered_by,
            application_id=application_id,
            stage_id=resolved_stage_id,
            current_level=current_level or 0,
            changed_responses=changed_responses,
            latest_decision=decision or Decision.NO_DECISION.value,
            review_id=review_id,
        )
        await gateway.commit()
        return ActionResult.success(
            STATUSES_ACTION,
            {"updated_reviews": [u.model_dump(mode="json") for u in updates]},
        )

    return await _run_action(
        session,
        STATUSES_ACTION,
        _work,
        failure_prefix="There was a problem updating review statuses",
        deadline=deadline,
    )


async def _application_for_review(session: AsyncSession, review_id: UUID) -> UUID | None:
    review = await ReviewPersistenceGateway(session).get_review(review_id)
    return review.application_id if review is not None else None


async def dispatch_trigger(session: AsyncSession, event: TriggerEvent) -> list[ActionResult]:
    """Run every review action registered for a trigger event, in order."""
    logger.info(
        "review_triggers.dispatch",
        extra={
            "trigger": event.trigger.value,
            "application_id": str(event.application_id) if event.application_id else None,
        },
    )
    trigger = event.trigger
    # One deadline covers every action the trigger runs.
    deadline = trigger_deadline()

    if trigger == Trigger.ON_APPLICATION_CREATE:
        return [
            ActionResult.condition_not_met(
                GENERATE_ACTION,
                "Review assignments are generated on submission, not on creation",
            ),
        ]

    if trigger in (Trigger.ON_REVIEW_ASSIGN, Trigger.ON_REVIEW_UNASSIGN):
        if event.review_assignment_id is None:
            return [ActionResult.condition_not_met(LOCKS_ACTION, "Missing review_assignment_id")]
        return [
            await run_update_review_assignment_locks(
                session,
                review_assignment_id=event.review_assignment_id,
                trigger=trigger,
                deadline=deadline,
            ),
        ]

    application_id = event.application_id
    if application_id is None and event.review_id is not None:
        application_id = await _application_for_review(session, event.review_id)
    if application_id is None:
        return [ActionResult.condition_not_met(GENERATE_ACTION, "Missing application_id")]

    if trigger == Trigger.REGENERATE:
        return [
            await run_generate_review_assignments(
                session, application_id=application_id, is_regeneration=True, deadline=deadline,
            ),
        ]

    if trigger == Trigger.ON_REVIEW_SUBMIT:
        if event.review_id is None:
            return [ActionResult.condition_not_met(GENERATE_ACTION, "Missing review_id")]
        return [
            await run_generate_review_assignments(
                session,
                application_id=application_id,
                review_id=event.review_id,
                is_regeneration=event.is_regeneration,
                deadline=deadline,
            ),
            await run_update_review_statuses(
                session,
                application_id=application_id,
                triggered_by=TriggeredBy.REVIEW,
                changed_responses=event.changed_responses,
                review_id=event.review_id,
                latest_decision=event.latest_decision,
                deadline=deadline,
            ),
        ]

    # Trigger.ON_APPLICATION_SUBMIT
    return [
        await run_generate_review_assignments(
            session,
            application_id=application_id,
            is_regeneration=event.is_regeneration,
            deadline=deadline,
        ),
        await run_update_review_statuses(
            session,
            application_id=application_id,
            triggered_by=TriggeredBy.APPLICATION,
            changed_responses=event.changed_responses,
            deadline=deadline,
        ),
    ]
