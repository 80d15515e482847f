# ruff: noqa: INP001

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any
from uuid import uuid4

import pytest

from reviewflow.core.review_enums import Trigger, TriggeredBy
from reviewflow.schemas.review_assignments import LevelReconciliation
from reviewflow.schemas.reviews import ChangedResponse
from reviewflow.schemas.triggers import ActionResult, TriggerEvent
from reviewflow.services import triggers
from reviewflow.services.assignment_reconciler import ReconciliationStateError
from reviewflow.services.level_orchestrator import (
    LevelFailure,
    LevelReconciliationError,
    ReviewLevelOrchestrator,
)
from reviewflow.services.review_gateway import ReviewPersistenceGateway


@dataclass
class _FakeSession:
    rollbacks: int = 0

    async def rollback(self) -> None:
        self.rollbacks += 1


@dataclass
class _Recorder:
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    deadlines: list[float | None] = field(default_factory=list)

    def action(self, name: str):
        async def _run(session: object, **kwargs: Any) -> ActionResult:
            self.deadlines.append(kwargs.pop("deadline", None))
            self.calls.append((name, kwargs))
            return ActionResult.success(name)

        return _run


@pytest.mark.asyncio
async def test_generation_timeout_is_reported_as_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _slow_generate(self: ReviewLevelOrchestrator, *args: object, **kwargs: object) -> ActionResult:
        await asyncio.sleep(1)
        return ActionResult.success("generateReviewAssignments")

    monkeypatch.setattr(triggers.settings, "trigger_timeout_seconds", 0.01)
    monkeypatch.setattr(ReviewLevelOrchestrator, "generate", _slow_generate)
    session = _FakeSession()

    result = await triggers.run_generate_review_assignments(
        session, application_id=uuid4(),  # type: ignore[arg-type]
    )

    assert result.status == "Fail"
    assert result.action == "generateReviewAssignments"
    assert "timed out" in result.error_log
    assert session.rollbacks == 1


@pytest.mark.asyncio
async def test_state_errors_propagate_out_of_entry_points(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _broken_generate(self: ReviewLevelOrchestrator, *args: object, **kwargs: object) -> ActionResult:
        raise ReconciliationStateError("merge state missing target")

    monkeypatch.setattr(ReviewLevelOrchestrator, "generate", _broken_generate)
    session = _FakeSession()

    with pytest.raises(ReconciliationStateError):
        await triggers.run_generate_review_assignments(
            session, application_id=uuid4(),  # type: ignore[arg-type]
        )
    assert session.rollbacks == 1


@pytest.mark.asyncio
async def test_partial_regeneration_failure_keeps_completed_levels(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _partial_generate(self: ReviewLevelOrchestrator, *args: object, **kwargs: object) -> ActionResult:
        raise LevelReconciliationError(
            completed=[LevelReconciliation(stage_number=1, level_number=1)],
            failures=[LevelFailure(level_number=2, error="deadlock detected")],
        )

    monkeypatch.setattr(ReviewLevelOrchestrator, "generate", _partial_generate)

    result = await triggers.run_generate_review_assignments(
        _FakeSession(), application_id=uuid4(), is_regeneration=True,  # type: ignore[arg-type]
    )

    assert result.status == "Fail"
    assert "level 2: deadlock detected" in result.error_log
    levels = result.output["levels"]
    assert isinstance(levels, list)
    assert [level["level_number"] for level in levels] == [1]


@pytest.mark.asyncio
async def test_application_create_is_not_handled() -> None:
    results = await triggers.dispatch_trigger(
        _FakeSession(),  # type: ignore[arg-type]
        TriggerEvent(trigger=Trigger.ON_APPLICATION_CREATE, application_id=uuid4()),
    )

    assert [r.status for r in results] == ["ConditionNotMet"]


@pytest.mark.asyncio
async def test_assignment_events_require_an_assignment_id() -> None:
    results = await triggers.dispatch_trigger(
        _FakeSession(),  # type: ignore[arg-type]
        TriggerEvent(trigger=Trigger.ON_REVIEW_ASSIGN),
    )

    assert [(r.action, r.status) for r in results] == [
        ("updateReviewAssignmentsStatus", "ConditionNotMet"),
    ]


@pytest.mark.asyncio
async def test_application_submit_generates_then_updates_statuses(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    recorder = _Recorder()
    monkeypatch.setattr(triggers, "run_generate_review_assignments", recorder.action("generate"))
    monkeypatch.setattr(triggers, "run_update_review_statuses", recorder.action("statuses"))
    application_id = uuid4()
    changed = [ChangedResponse(application_response_id=3, template_element_id=7)]

    results = await triggers.dispatch_trigger(
        _FakeSession(),  # type: ignore[arg-type]
        TriggerEvent(
            trigger=Trigger.ON_APPLICATION_SUBMIT,
            application_id=application_id,
            changed_responses=changed,
        ),
    )

    assert [r.action for r in results] == ["generate", "statuses"]
    (_, generate_kwargs), (_, status_kwargs) = recorder.calls
    assert generate_kwargs == {"application_id": application_id, "is_regeneration": False}
    assert status_kwargs["triggered_by"] == TriggeredBy.APPLICATION
    assert status_kwargs["changed_responses"] == changed


@pytest.mark.asyncio
async def test_review_submit_passes_review_context(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr(triggers, "run_generate_review_assignments", recorder.action("generate"))
    monkeypatch.setattr(triggers, "run_update_review_statuses", recorder.action("statuses"))
    application_id, review_id = uuid4(), uuid4()

    await triggers.dispatch_trigger(
        _FakeSession(),  # type: ignore[arg-type]
        TriggerEvent(
            trigger=Trigger.ON_REVIEW_SUBMIT,
            application_id=application_id,
            review_id=review_id,
            latest_decision="ChangesRequested",
        ),
    )

    (_, generate_kwargs), (_, status_kwargs) = recorder.calls
    assert generate_kwargs["review_id"] == review_id
    assert status_kwargs["triggered_by"] == TriggeredBy.REVIEW
    assert status_kwargs["review_id"] == review_id
    assert status_kwargs["latest_decision"] == "ChangesRequested"


@pytest.mark.asyncio
async def test_regenerate_event_runs_full_regeneration(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr(triggers, "run_generate_review_assignments", recorder.action("generate"))
    application_id = uuid4()

    results = await triggers.dispatch_trigger(
        _FakeSession(),  # type: ignore[arg-type]
        TriggerEvent(trigger=Trigger.REGENERATE, application_id=application_id),
    )

    assert len(results) == 1
    assert recorder.calls == [
        ("generate", {"application_id": application_id, "is_regeneration": True}),
    ]


@pytest.mark.asyncio
async def test_unassign_event_runs_locker(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr(triggers, "run_update_review_assignment_locks", recorder.action("locks"))
    assignment_id = uuid4()

    await triggers.dispatch_trigger(
        _FakeSession(),  # type: ignore[arg-type]
        TriggerEvent(trigger=Trigger.ON_REVIEW_UNASSIGN, review_assignment_id=assignment_id),
    )

    assert recorder.calls == [
        ("locks", {"review_assignment_id": assignment_id, "trigger": Trigger.ON_REVIEW_UNASSIGN}),
    ]


@pytest.mark.asyncio
async def test_dispatch_shares_one_deadline_across_actions(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _Recorder()
    monkeypatch.setattr(triggers, "run_generate_review_assignments", recorder.action("generate"))
    monkeypatch.setattr(triggers, "run_update_review_statuses", recorder.action("statuses"))

    await triggers.dispatch_trigger(
        _FakeSession(),  # type: ignore[arg-type]
        TriggerEvent(trigger=Trigger.ON_APPLICATION_SUBMIT, application_id=uuid4()),
    )

    first, second = recorder.deadlines
    assert first is not None
    assert first == second


@pytest.mark.asyncio
async def test_dispatch_fails_actions_that_overrun_the_trigger_deadline(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _generate(self: ReviewLevelOrchestrator, *args: object, **kwargs: object) -> ActionResult:
        await asyncio.sleep(0.35)
        return ActionResult.success("generateReviewAssignments")

    async def _context(self: ReviewPersistenceGateway, application_id: object) -> SimpleNamespace:
        return SimpleNamespace(stage_id=uuid4())

    async def _propagate(*args: object, **kwargs: object) -> list[object]:
        await asyncio.sleep(0.35)
        return []

    monkeypatch.setattr(triggers.settings, "trigger_timeout_seconds", 0.5)
    monkeypatch.setattr(ReviewLevelOrchestrator, "generate", _generate)
    monkeypatch.setattr(ReviewPersistenceGateway, "get_application_context", _context)
    monkeypatch.setattr(triggers, "propagate_review_statuses", _propagate)
    session = _FakeSession()

    results = await triggers.dispatch_trigger(
        session,  # type: ignore[arg-type]
        TriggerEvent(trigger=Trigger.ON_APPLICATION_SUBMIT, application_id=uuid4()),
    )

    assert [r.status for r in results] == ["Success", "Fail"]
    assert "timed out after 0.5s" in results[1].error_log
    assert session.rollbacks == 1
