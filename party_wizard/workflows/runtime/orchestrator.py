"""
MODULE: party_wizard/workflows/runtime/orchestrator.py
PURPOSE: Per-turn pipeline and session lifecycle for the party wizard.

Turn pipeline (first match wins):
    1. confirmation decision    approve / revise via hil_tasks
    2. deterministic resolver   party-info and guests, when enabled
    3. extraction shortcut      menu step: image first, then pasted URL
    4. fallback engine          model with the step's tools

Every turn persists the user message (image data stripped) before any work
and exactly one assistant message afterwards. Step payload changes are
written back once, at the end of the turn.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from party_wizard.activity.telemetry import DecisionPath, TelemetrySink, TurnEvent, emit_safely
from party_wizard.agents.fallback_engine import GENERIC_FALLBACK_MESSAGE, run_fallback_engine
from party_wizard.agents.prompts import PromptContext, Revision, build_system_prompt
from party_wizard.config import WizardSettings, get_settings
from party_wizard.domain.messages import (
    DATA_PART_PREFIX,
    EVENT_SESSION_REFRESH,
    ConfirmationDecision,
    IncomingMessage,
    StreamEvent,
    WizardMessage,
)
from party_wizard.domain.models import FINAL_STEP_INDEX, WizardSession, WizardStep, coerce_step
from party_wizard.errors import SessionClosedError, SessionIncompleteError, StepLockedError
from party_wizard.llm.backend import GenerativeBackend
from party_wizard.llm.extraction import ContentFetcher, RecipeExtractor
from party_wizard.utils.fallback import create_fallback_context, wrap_fallback
from party_wizard.workflows.common.types import TurnData, TurnServices, TurnState
from party_wizard.workflows.io.database import SessionStore
from party_wizard.workflows.runtime.hil_tasks import approve_confirmation, begin_revision
from party_wizard.workflows.runtime.router import dispatch_step, run_resolver_actions
from party_wizard.workflows.steps.step4_timeline.trigger.schedule import ScheduleGenerator

logger = logging.getLogger(__name__)

DECISION_PART_TYPE = f"{DATA_PART_PREFIX}step-confirmation-decision"


def strip_large_data_for_storage(parts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace inline image data with a placeholder that keeps the mime type."""
    stripped: List[Dict[str, Any]] = []
    for part in parts:
        image = part.get("image") if part.get("type") == "image" else None
        if isinstance(image, str) and image:
            mime_type = image.split(";", 1)[0][len("data:"):] if image.startswith("data:") else "image/unknown"
            stripped.append({"type": "image", "image_stripped": True, "mime_type": mime_type})
        else:
            stripped.append(dict(part))
    return stripped


def _message_text(message: WizardMessage) -> str:
    if message.content:
        return message.content
    return "".join(str(part.get("text") or "") for part in message.parts if part.get("type") == "text")


def to_model_messages(
    history: List[WizardMessage],
    text: str,
    images: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """Chat-completions messages: prior text turns plus the current user message."""
    messages: List[Dict[str, Any]] = []
    for message in history:
        if message.role not in ("user", "assistant"):
            continue
        content = _message_text(message)
        if content.strip():
            messages.append({"role": message.role, "content": content})
    if images:
        parts: List[Dict[str, Any]] = [{"type": "text", "text": text}] if text else []
        parts.extend({"type": "image_url", "image_url": {"url": image}} for image in images)
        messages.append({"role": "user", "content": parts})
    else:
        messages.append({"role": "user", "content": text})
    return messages


class WizardOrchestrator:
    """Owns the collaborators for a wizard deployment and runs turns against them."""

    def __init__(
        self,
        store: SessionStore,
        *,
        backend: Optional[GenerativeBackend] = None,
        extractor: Optional[RecipeExtractor] = None,
        fetcher: Optional[ContentFetcher] = None,
        scheduler: Optional[ScheduleGenerator] = None,
        telemetry: Optional[TelemetrySink] = None,
        settings: Optional[WizardSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.extractor = extractor
        self.fetcher = fetcher
        self.scheduler = scheduler
        self.telemetry = telemetry
        self.settings = settings or get_settings()
        self._clock = clock

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(self.settings.tzinfo)

    def _services(self) -> TurnServices:
        return TurnServices(
            store=self.store,
            extractor=self.extractor,
            fetcher=self.fetcher,
            scheduler=self.scheduler,
            telemetry=self.telemetry,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def get_or_create_session(self, owner_id: str) -> Tuple[WizardSession, List[WizardMessage]]:
        session = self.store.find_active(owner_id) or self.store.create(owner_id)
        return session, self.store.list_messages(session.id, session.current_step)

    def get_session(self, session_id: str, owner_id: str) -> WizardSession:
        return self.store.get(session_id, owner_id)

    def start_new_session(self, owner_id: str) -> WizardSession:
        self.store.abandon_active(owner_id)
        return self.store.create(owner_id)

    def _active_session(self, session_id: str, owner_id: str) -> WizardSession:
        session = self.store.get(session_id, owner_id)
        if not session.is_active:
            raise SessionClosedError(session_id, session.status)
        return session

    def change_step(self, session_id: str, owner_id: str, step: Any) -> Tuple[WizardSession, List[WizardMessage]]:
        """Move to an already reached step; the watermark is not touched."""
        target = coerce_step(step)
        session = self._active_session(session_id, owner_id)
        if target.position > session.furthest_step_index:
            raise StepLockedError(target.value, session.furthest_step_index)
        if target != session.current_step:
            session = self.store.update_partial(session_id, owner_id, {"current_step": target.value})
            logger.info("[WIZARD][NAV] session=%s step=%s", session_id, target.value)
        return session, self.store.list_messages(session_id, target)

    def complete_session(self, session_id: str, owner_id: str) -> Dict[str, Any]:
        """Mark the session completed and assign a party id.

        Creating the party records themselves happens outside the wizard.
        """
        session = self._active_session(session_id, owner_id)
        if session.party_info is None:
            raise SessionIncompleteError(session_id, "party info")
        party_id = str(uuid.uuid4())
        self.store.update_partial(
            session_id,
            owner_id,
            {"status": "completed", "party_id": party_id, "furthest_step_index": FINAL_STEP_INDEX},
        )
        self.store.save_pending_confirmation(session_id, None)
        plan = session.menu_plan
        summary = {
            "party_id": party_id,
            "session_id": session_id,
            "guests": len(session.guest_list),
            "recipes": len(plan.existing_recipes) + len(plan.new_recipes) if plan else 0,
            "timeline_tasks": len(session.timeline or ()),
        }
        logger.info("[WIZARD][COMPLETE] %s", summary)
        return summary

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def _save_user_message(
        self,
        session_id: str,
        step: WizardStep,
        message: IncomingMessage,
        decision: Optional[ConfirmationDecision],
    ) -> None:
        text = message.text_content
        parts = strip_large_data_for_storage(message.parts) if message.parts else [{"type": "text", "text": text}]
        if decision is not None:
            parts.append({"type": DECISION_PART_TYPE, "data": decision.model_dump(mode="json")})
        kwargs: Dict[str, Any] = {"role": "user", "content": text, "parts": parts}
        if message.id:
            kwargs["id"] = message.id
        self.store.append_message(session_id, step, WizardMessage(**kwargs))

    def _save_assistant_message(self, session_id: str, step: WizardStep, events: List[StreamEvent]) -> None:
        text = "\n\n".join(event.data.get("text", "") for event in events if event.type == "text")
        self.store.append_message(
            session_id,
            step,
            WizardMessage(role="assistant", content=text, parts=[event.as_part() for event in events]),
        )

    async def process_turn(
        self,
        session_id: str,
        owner_id: str,
        message: IncomingMessage,
        decision: Optional[ConfirmationDecision] = None,
        step: Optional[Any] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn and yield its stream events.

        Raises SessionNotFoundError, SessionClosedError or UnknownStepError
        before anything is yielded or written.
        """
        turn_step = coerce_step(step) if step is not None else None
        session = self._active_session(session_id, owner_id)
        turn_step = turn_step or session.current_step
        history = self.store.list_messages(session_id, turn_step)
        self._save_user_message(session_id, turn_step, message, decision)

        revision: Optional[Revision] = None
        if decision is not None and decision.is_approve:
            approval = await approve_confirmation(self.store, session, decision, scheduler=self.scheduler)
            events = list(approval.events)
            if approval.text:
                events.insert(0, StreamEvent.text(approval.text))
            self._save_assistant_message(session_id, turn_step, events)
            emit_safely(
                self.telemetry,
                TurnEvent(
                    session_id=session_id,
                    step=turn_step.value,
                    decision_path="confirmation",
                    intent="stale-approve" if approval.stale else "approve",
                ),
            )
            for event in events:
                yield event
            return

        text = message.text_content
        if decision is not None:
            revision = begin_revision(self.store, session, decision)
            if revision is not None and revision.feedback:
                text = revision.feedback

        state = TurnState(
            step=turn_step,
            data=TurnData.from_session(session),
            reference=self.now(),
            session_id=session_id,
            owner_id=owner_id,
            services=self._services(),
        )
        reply, path, turn_event = await self._route(state, text, message, history, revision)

        events: List[StreamEvent] = []
        if reply:
            events.append(StreamEvent.text(reply))
        events.extend(state.events)

        state.commit()
        self._save_assistant_message(session_id, turn_step, events)
        emit_safely(self.telemetry, turn_event)
        logger.info(
            "[WIZARD][TURN] session=%s step=%s path=%s events=%s",
            session_id,
            turn_step.value,
            path,
            [event.type for event in events],
        )
        for event in events:
            yield event

    async def _route(
        self,
        state: TurnState,
        text: str,
        message: IncomingMessage,
        history: List[WizardMessage],
        revision: Optional[Revision],
    ) -> Tuple[str, DecisionPath, TurnEvent]:
        handler = dispatch_step(state.step)

        def turn_event(path: DecisionPath, **extra: Any) -> TurnEvent:
            return TurnEvent(session_id=state.session_id, step=state.step.value, decision_path=path, **extra)

        if handler.resolver is not None and self.settings.deterministic_enabled:
            outcome = handler.resolver(text, state.data, state.reference)
            if outcome.handled:
                results = await run_resolver_actions(state, outcome.actions)
                if "guest_list" in state.dirty:
                    state.emit(StreamEvent(type=EVENT_SESSION_REFRESH, data={"action": "updateGuestList"}))
                failed = next((result for result in results if not result.success), None)
                reply = failed.message if failed else outcome.assistant_text
                return reply, "deterministic", turn_event("deterministic", intent=outcome.intent)
            logger.debug("[WIZARD][RESOLVER] unhandled step=%s reason=%s", state.step.value, outcome.reason)

        if handler.shortcut is not None:
            images = message.images
            shortcut = await handler.shortcut(state, text, images[0] if images else None)
            if shortcut is not None:
                intent = f"{shortcut.kind}-duplicate" if shortcut.duplicate else f"{shortcut.kind}-import"
                return shortcut.text, "shortcut", turn_event("shortcut", intent=intent)

        if self.backend is None:
            reply = wrap_fallback(
                GENERIC_FALLBACK_MESSAGE,
                create_fallback_context(
                    source="runtime.orchestrator",
                    trigger="backend_unavailable",
                    session_id=state.session_id,
                    step=state.step.value,
                ),
            )
            return reply, "model", turn_event("model", fallback_message=GENERIC_FALLBACK_MESSAGE)

        context = PromptContext(
            reference=state.reference,
            party_info=state.data.party_info,
            guest_list=state.data.guest_list,
            menu_plan=state.data.menu_plan,
            user_recipes=self.store.list_recipes(state.owner_id) if state.step == WizardStep.MENU else [],
        )
        images = message.images if state.step == WizardStep.MENU else []
        engine = await run_fallback_engine(
            state,
            self.backend,
            system_prompt=build_system_prompt(state.step, context, revision=revision),
            messages=to_model_messages(history, text, images),
            max_steps=self.settings.max_tool_steps,
        )
        return engine.text, "model", turn_event(
            "model",
            retry_attempted=engine.retry_attempted,
            retry_succeeded=engine.retry_succeeded,
            fallback_message=engine.fallback_message,
        )


__all__ = [
    "DECISION_PART_TYPE",
    "strip_large_data_for_storage",
    "to_model_messages",
    "WizardOrchestrator",
]
