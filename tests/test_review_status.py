# ruff: noqa: INP001

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from reviewflow.core.review_enums import TriggeredBy
from reviewflow.models.applications import Application, TemplateStage
from reviewflow.models.review_assignments import ReviewQuestionAssignment
from reviewflow.models.reviews import (
    Review,
    ReviewDecision,
    ReviewResponse,
    ReviewStatusHistory,
)
from reviewflow.schemas.reviews import ChangedResponse
from reviewflow.services.review_gateway import ReviewPersistenceGateway
from reviewflow.services.review_status import ReviewStatusPropagator
from reviewflow.services.triggers import run_update_review_statuses


async def _make_engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


async def _make_session(engine: AsyncEngine) -> AsyncSession:
    return AsyncSession(engine, expire_on_commit=False)


@dataclass
class Seeded:
    application: Application
    stage: TemplateStage


async def _seed_application(session: AsyncSession) -> Seeded:
    stage = TemplateStage(id=uuid4(), template_id=uuid4(), number=1)
    application = Application(
        id=uuid4(),
        template_id=stage.template_id,
        stage_id=stage.id,
        stage_number=1,
    )
    session.add(stage)
    session.add(application)
    await session.commit()
    return Seeded(application=application, stage=stage)


async def _review(
    session: AsyncSession,
    seeded: Seeded,
    *,
    level_number: int,
    status: str,
    element_ids: tuple[int, ...] = (),
) -> Review:
    review = Review(
        review_assignment_id=uuid4(),
        application_id=seeded.application.id,
        reviewer_id=uuid4(),
        stage_id=seeded.stage.id,
        stage_number=1,
        level_number=level_number,
    )
    session.add(review)
    for element_id in element_ids:
        session.add(
            ReviewQuestionAssignment(
                review_assignment_id=review.review_assignment_id,
                template_element_id=element_id,
            ),
        )
    await session.commit()
    session.add(ReviewStatusHistory(review_id=review.id, status="Draft"))
    await session.commit()
    if status != "Draft":
        session.add(ReviewStatusHistory(review_id=review.id, status=status))
        await session.commit()
    return review


async def _current_status(session: AsyncSession, review_id: UUID) -> str:
    statement = (
        select(ReviewStatusHistory)
        .where(col(ReviewStatusHistory.review_id) == review_id)
        .order_by(col(ReviewStatusHistory.id).desc())
    )
    row = (await session.exec(statement)).first()
    assert row is not None
    return row.status


@pytest.mark.asyncio
async def test_application_resubmission_reopens_changed_level_one_reviews() -> None:
    engine = await _make_engine()
    async with await _make_session(engine) as session:
        seeded = await _seed_application(session)
        changed = await _review(session, seeded, level_number=1, status="Submitted", element_ids=(10,))
        untouched = await _review(session, seeded, level_number=1, status="Draft", element_ids=(20,))
        locked = await _review(session, seeded, level_number=1, status="Locked", element_ids=(30,))
        upper = await _review(session, seeded, level_number=2, status="Submitted", element_ids=(10,))

        result = await run_update_review_statuses(
            session,
            application_id=seeded.application.id,
            triggered_by=TriggeredBy.APPLICATION,
            changed_responses=[ChangedResponse(application_response_id=501, template_element_id=10)],
        )

        assert result.status == "Success"
        updated = {item["review_id"]: item for item in result.output["updated_reviews"]}
        assert set(updated) == {str(changed.id), str(locked.id)}
        assert updated[str(changed.id)]["previous_status"] == "Submitted"
        assert updated[str(locked.id)]["previous_status"] == "Locked"
        assert await _current_status(session, changed.id) == "Pending"
        assert await _current_status(session, untouched.id) == "Draft"
        assert await _current_status(session, locked.id) == "Pending"
        assert await _current_status(session, upper.id) == "Submitted"
    await engine.dispose()


@pytest.mark.asyncio
async def test_changes_requested_sends_disagreed_questions_back_down() -> None:
    engine = await _make_engine()
    async with await _make_session(engine) as session:
        seeded = await _seed_application(session)
        disputed = await _review(session, seeded, level_number=1, status="Submitted", element_ids=(10,))
        agreed = await _review(session, seeded, level_number=1, status="Submitted", element_ids=(20,))
        drafting = await _review(session, seeded, level_number=1, status="Draft", element_ids=(10,))
        consolidator = await _review(session, seeded, level_number=2, status="Submitted")
        session.add(ReviewDecision(review_id=consolidator.id, decision="Conform"))
        await session.commit()
        session.add(ReviewDecision(review_id=consolidator.id, decision="ChangesRequested"))
        session.add(
            ReviewResponse(
                review_id=consolidator.id,
                template_element_id=10,
                application_response_id=701,
                decision="Disagree",
            ),
        )
        session.add(
            ReviewResponse(
                review_id=consolidator.id,
                template_element_id=20,
                application_response_id=702,
                decision="Approve",
            ),
        )
        await session.commit()

        result = await run_update_review_statuses(
            session,
            application_id=seeded.application.id,
            triggered_by=TriggeredBy.REVIEW,
            review_id=consolidator.id,
            changed_responses=[
                ChangedResponse(application_response_id=701, template_element_id=10),
                ChangedResponse(application_response_id=702, template_element_id=20),
            ],
        )

        assert result.status == "Success"
        assert [item["review_id"] for item in result.output["updated_reviews"]] == [
            str(disputed.id),
        ]
        assert await _current_status(session, disputed.id) == "ChangesRequested"
        assert await _current_status(session, agreed.id) == "Submitted"
        assert await _current_status(session, drafting.id) == "Draft"
        assert await _current_status(session, consolidator.id) == "Submitted"
    await engine.dispose()


@pytest.mark.asyncio
async def test_lower_level_submission_marks_consolidation_pending() -> None:
    engine = await _make_engine()
    async with await _make_session(engine) as session:
        seeded = await _seed_application(session)
        submitted = await _review(session, seeded, level_number=1, status="Submitted")
        upper_submitted = await _review(session, seeded, level_number=2, status="Submitted")
        upper_draft = await _review(session, seeded, level_number=2, status="Draft")
        upper_pending = await _review(session, seeded, level_number=2, status="Pending")
        far_level = await _review(session, seeded, level_number=3, status="Submitted")

        result = await run_update_review_statuses(
            session,
            application_id=seeded.application.id,
            triggered_by=TriggeredBy.REVIEW,
            review_id=submitted.id,
            latest_decision="Conform",
        )

        assert result.status == "Success"
        assert {item["review_id"] for item in result.output["updated_reviews"]} == {
            str(upper_submitted.id),
            str(upper_draft.id),
        }
        assert await _current_status(session, upper_submitted.id) == "Pending"
        assert await _current_status(session, upper_draft.id) == "Pending"
        assert await _current_status(session, upper_pending.id) == "Pending"
        assert await _current_status(session, far_level.id) == "Submitted"
        history = list(
            await session.exec(
                select(ReviewStatusHistory).where(
                    col(ReviewStatusHistory.review_id) == upper_pending.id,
                ),
            ),
        )
        assert len(history) == 2
    await engine.dispose()


@pytest.mark.asyncio
async def test_triggering_review_is_never_transitioned() -> None:
    engine = await _make_engine()
    async with await _make_session(engine) as session:
        seeded = await _seed_application(session)
        trigger_review = await _review(session, seeded, level_number=1, status="Locked", element_ids=(10,))

        propagator = ReviewStatusPropagator(
            ReviewPersistenceGateway(session),
            triggered_by=TriggeredBy.APPLICATION,
            application_id=seeded.application.id,
            stage_id=seeded.stage.id,
            changed_responses=[ChangedResponse(application_response_id=1, template_element_id=10)],
            review_id=trigger_review.id,
        )
        updates = await propagator.find_updates(current_level=1, latest_decision=None)

        assert updates == []
    await engine.dispose()


@pytest.mark.asyncio
async def test_review_answer_changes_only_count_disagreements() -> None:
    engine = await _make_engine()
    async with await _make_session(engine) as session:
        seeded = await _seed_application(session)
        lower = await _review(session, seeded, level_number=1, status="Submitted", element_ids=(10,))

        propagator = ReviewStatusPropagator(
            ReviewPersistenceGateway(session),
            triggered_by=TriggeredBy.REVIEW,
            application_id=seeded.application.id,
            stage_id=seeded.stage.id,
            changed_responses=[
                ChangedResponse(application_response_id=1, template_element_id=10, decision="Approve"),
            ],
        )

        assert await propagator.have_assigned_responses_changed(lower.review_assignment_id) is False
    await engine.dispose()


@pytest.mark.asyncio
async def test_status_update_for_unknown_review_fails() -> None:
    engine = await _make_engine()
    async with await _make_session(engine) as session:
        seeded = await _seed_application(session)
        result = await run_update_review_statuses(
            session,
            application_id=seeded.application.id,
            triggered_by=TriggeredBy.REVIEW,
            review_id=uuid4(),
        )

    assert result.status == "Fail"
    assert "not found" in result.error_log
    await engine.dispose()
