"""Timeline executors."""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from pydantic import Field

from party_wizard.domain.messages import EVENT_TIMELINE_GENERATED, ConfirmationRequest, StreamEvent
from party_wizard.domain.models import STEP_COMPLETE, TimelineTask, WizardStep
from party_wizard.domain.serialization import serialize_timeline
from party_wizard.workflows.common.summaries import timeline_summary
from party_wizard.workflows.common.types import ActionResult, ToolInput, TurnData, TurnState

logger = logging.getLogger(__name__)


class AdjustTimelineInput(ToolInput):
    changes: str = Field(description="Description of the changes to make to the timeline")


def timeline_event(tasks: Tuple[TimelineTask, ...], message: str) -> StreamEvent:
    return StreamEvent(
        type=EVENT_TIMELINE_GENERATED,
        data={"timeline": serialize_timeline(tasks), "message": message},
    )


async def generate_timeline(state: TurnState, payload: Any = None, *, ticket: Optional[int] = None) -> ActionResult:
    party_info = state.data.party_info
    if party_info is None:
        return ActionResult.fail("No party info available", "I need the party details before building a timeline.")
    scheduler = state.services.scheduler
    if scheduler is None:
        return ActionResult.fail("Timeline generator unavailable", "I can't build a timeline right now.")

    tasks = await scheduler.generate(party_info, state.data.menu_plan)
    message = f"Created {len(tasks)} tasks for your cooking timeline."

    def _apply(_: TurnData) -> None:
        state.update(timeline=tasks)
        state.emit(timeline_event(tasks, message))

    await state.mutate(_apply, ticket=ticket)
    return ActionResult.ok(message, timeline=serialize_timeline(tasks))


async def adjust_timeline(
    state: TurnState,
    payload: AdjustTimelineInput,
    *,
    ticket: Optional[int] = None,
) -> ActionResult:
    scheduler = state.services.scheduler
    if scheduler is None:
        return ActionResult.fail("Timeline generator unavailable", "I can't adjust the timeline right now.")

    tasks = await scheduler.adjust(state.data.timeline or (), payload.changes, state.data.party_info)
    message = "Timeline updated based on your feedback."

    def _apply(_: TurnData) -> None:
        state.update(timeline=tasks)
        state.emit(timeline_event(tasks, message))

    await state.mutate(_apply, ticket=ticket)
    return ActionResult.ok(message, timeline=serialize_timeline(tasks))


async def confirm_timeline(state: TurnState, payload: Any = None, *, ticket: Optional[int] = None) -> ActionResult:
    def _apply(data: TurnData) -> ConfirmationRequest:
        tasks = data.timeline or ()
        request = ConfirmationRequest(
            step=WizardStep.TIMELINE,
            next_step=STEP_COMPLETE,
            summary=timeline_summary(tasks),
            data={"timeline": serialize_timeline(tasks)},
        )
        state.issue_confirmation(request)
        return request

    request = await state.mutate(_apply, ticket=ticket)
    return ActionResult.ok("Please confirm the timeline above to create your party.", request_id=request.id)


__all__ = [
    "AdjustTimelineInput",
    "timeline_event",
    "generate_timeline",
    "adjust_timeline",
    "confirm_timeline",
]
