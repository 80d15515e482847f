"""Endpoints that let the workflow engine's dispatcher invoke review actions."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from reviewflow.db.session import get_session
from reviewflow.models.applications import Application
from reviewflow.schemas.triggers import ActionResult, TriggerEvent
from reviewflow.services.triggers import dispatch_trigger, run_generate_review_assignments

router = APIRouter(tags=["review-triggers"])
SESSION_DEP = Depends(get_session)


@router.post(
    "/review-triggers",
    response_model=list[ActionResult],
    summary="Dispatch Review Trigger",
    description="Run every review action registered for a workflow trigger event.",
)
async def post_review_trigger(
    event: TriggerEvent,
    session: AsyncSession = SESSION_DEP,
) -> list[ActionResult]:
    return await dispatch_trigger(session, event)


@router.post(
    "/applications/{application_id}/review-assignments/regenerate",
    response_model=ActionResult,
    summary="Regenerate Review Assignments",
    description="Reconcile every review level up to the application's current level.",
)
async def regenerate_review_assignments(
    application_id: UUID,
    session: AsyncSession = SESSION_DEP,
) -> ActionResult:
    application = await Application.objects.by_id(application_id).first(session)
    if application is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")
    return await run_generate_review_assignments(
        session,
        application_id=application_id,
        is_regeneration=True,
    )
