"""
HIL (human-in-the-loop) confirmation decisions.

Public API:
- approve_confirmation: apply an approve decision against the live request
- begin_revision: consume the live request and return the revision context
- auto_generate_timeline: build the first schedule when the menu is approved

Approvals never run a resolver or the model. A decision whose request id is
not the session's live request changes nothing: a stale approve answers with
a fixed text, a stale revise is treated as an ordinary message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from party_wizard.agents.prompts import Revision
from party_wizard.domain.messages import EVENT_STEP_CONFIRMED, ConfirmationDecision, StreamEvent, WizardMessage
from party_wizard.domain.models import WizardSession, WizardStep
from party_wizard.domain.serialization import serialize_fields
from party_wizard.utils.fallback import create_fallback_context, log_fallback
from party_wizard.workflows.common.confirmation_gate import ApprovalOutcome, ConfirmationStore, evaluate_approval
from party_wizard.workflows.steps.step4_timeline.trigger.actions import timeline_event

if TYPE_CHECKING:
    from party_wizard.workflows.io.database import SessionStore
    from party_wizard.workflows.steps.step4_timeline.trigger.schedule import ScheduleGenerator

logger = logging.getLogger(__name__)

STALE_APPROVAL_TEXT = "That step is already confirmed."
TIMELINE_INTRO_TEXT = "Gathering all the party details to create your cooking timeline..."


def timeline_created_text(task_count: int) -> str:
    return (
        f"{TIMELINE_INTRO_TEXT}\n\nI've created {task_count} tasks for your cooking timeline. "
        "Review the schedule below and let me know if you'd like any adjustments!"
    )


@dataclass
class ApprovalResult:
    """Events and state produced by one approve decision."""

    session: WizardSession
    stale: bool
    text: Optional[str] = None
    events: List[StreamEvent] = field(default_factory=list)
    outcome: Optional[ApprovalOutcome] = None


async def approve_confirmation(
    store: "SessionStore",
    session: WizardSession,
    decision: ConfirmationDecision,
    *,
    scheduler: Optional["ScheduleGenerator"] = None,
) -> ApprovalResult:
    confirmations = ConfirmationStore(store)
    request = confirmations.lookup(session.id, decision.request_id)
    if request is None:
        logger.info("[WIZARD][HIL] stale approve request=%s session=%s", decision.request_id, session.id)
        return ApprovalResult(session=session, stale=True, text=STALE_APPROVAL_TEXT)

    outcome = evaluate_approval(session, request)
    updated = store.update_partial(session.id, session.owner_id, serialize_fields(outcome.session_fields()))
    confirmations.consume(session.id, request.id)
    logger.info(
        "[WIZARD][HIL] approved step=%s next=%s watermark=%s->%s session=%s",
        request.step.value,
        request.next_step if outcome.completes_wizard else outcome.current_step.value,
        outcome.previous_watermark,
        outcome.new_watermark,
        session.id,
    )

    result = ApprovalResult(
        session=updated,
        stale=False,
        events=[StreamEvent(type=EVENT_STEP_CONFIRMED, data=outcome.to_event_data())],
        outcome=outcome,
    )
    if request.step == WizardStep.MENU and request.next_step == WizardStep.TIMELINE:
        timeline_events = await auto_generate_timeline(store, updated, scheduler)
        if timeline_events:
            result.events.extend(timeline_events)
            result.session = store.get(session.id, session.owner_id)
    return result


async def auto_generate_timeline(
    store: "SessionStore",
    session: WizardSession,
    scheduler: Optional["ScheduleGenerator"],
) -> List[StreamEvent]:
    """Generate and persist the first timeline after the menu is approved.

    Needs both party info and a menu plan. The assistant message is stored
    under the timeline step so it is the first thing shown there. Generation
    failures are logged and skipped.
    """
    if session.party_info is None or session.menu_plan is None or scheduler is None:
        return []
    try:
        tasks = await scheduler.generate(session.party_info, session.menu_plan)
    except Exception as exc:
        log_fallback(
            create_fallback_context(
                source="runtime.hil_tasks.auto_timeline",
                trigger="timeline_generation_failed",
                session_id=session.id,
                step=WizardStep.TIMELINE.value,
                error=exc,
            )
        )
        return []

    store.update_partial(session.id, session.owner_id, serialize_fields({"timeline": tasks}))
    text = timeline_created_text(len(tasks))
    event = timeline_event(tasks, text)
    store.append_message(
        session.id,
        WizardStep.TIMELINE,
        WizardMessage(role="assistant", content=text, parts=[{"type": "text", "text": text}, event.as_part()]),
    )
    logger.info("[WIZARD][HIL] auto timeline tasks=%s session=%s", len(tasks), session.id)
    return [StreamEvent.text(text), event]


def begin_revision(store: "SessionStore", session: WizardSession, decision: ConfirmationDecision) -> Optional[Revision]:
    """Consume the live request for a revise decision.

    Returns None when the request is no longer live; the caller then handles
    the message as a plain utterance.
    """
    request = ConfirmationStore(store).consume(session.id, decision.request_id)
    if request is None:
        logger.info("[WIZARD][HIL] stale revise request=%s session=%s", decision.request_id, session.id)
        return None
    logger.info("[WIZARD][HIL] revise step=%s session=%s", request.step.value, session.id)
    return Revision(feedback=decision.feedback or "", summary=request.summary)


__all__ = [
    "STALE_APPROVAL_TEXT",
    "TIMELINE_INTRO_TEXT",
    "timeline_created_text",
    "ApprovalResult",
    "approve_confirmation",
    "auto_generate_timeline",
    "begin_revision",
]
