"""
MODULE: party_wizard/agents/fallback_engine.py
PURPOSE: Run the model on turns the deterministic paths did not handle.

Attempt policy:
    attempt 1   default tier, step prompt
    attempt 2   only if attempt 1 was silent; strong tier, prompt + retry instruction
    otherwise   a fixed fallback message chosen by the last finish reason

``classify_attempt`` and ``choose_next_action`` are pure so the policy can be
tested without a backend.

Tool calls reserve a write slot on the turn's SequencedWriter the moment the
backend invokes them and always release it when they finish, so a rejected
or failing call never blocks later calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence

from party_wizard.activity.telemetry import AttemptEvent, emit_safely
from party_wizard.agents.prompts import with_retry_instruction
from party_wizard.agents.tools import (
    CONFIRM_TOOL_BY_STEP,
    TOOL_DEFINITIONS,
    ToolExecutionError,
    execute_tool_call,
    openai_tool_specs,
)
from party_wizard.config import ModelTier
from party_wizard.llm.backend import (
    FINISH_CONTENT_FILTER,
    FINISH_LENGTH,
    GenerationResult,
    GenerativeBackend,
    ToolInvoker,
)
from party_wizard.utils.fallback import create_fallback_context, log_fallback, wrap_fallback
from party_wizard.workflows.common.types import TurnState

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2
ATTEMPT_TIERS: Dict[int, ModelTier] = {1: "default", 2: "strong"}

FILTERED_MESSAGE = "I could not send a response because it was filtered. Please rephrase and I will continue."
TRUNCATED_MESSAGE = (
    'My response got cut off before I could send it. Please send "continue" and I will pick up from here.'
)
GENERIC_FALLBACK_MESSAGE = (
    "I hit a temporary issue and did not send a usable response. I still received your message. "
    'Please send "continue" and I will keep going.'
)

NextAction = Literal["accept", "retry", "substitute-fallback"]


@dataclass(frozen=True)
class AttemptClassification:
    attempt: int
    model_tier: ModelTier
    finish_reason: Optional[str]
    is_silent: bool
    has_text: bool
    tool_call_count: int
    tool_result_count: int


def classify_attempt(
    result: GenerationResult,
    *,
    attempt: int = 1,
    model_tier: ModelTier = "default",
) -> AttemptClassification:
    """Silent means no text, no tool activity, and no (or unknown) output tokens."""
    has_text = result.has_text
    produced = has_text or bool(result.tool_calls) or bool(result.tool_results)
    if produced:
        silent = False
    else:
        silent = result.output_tokens is None or result.output_tokens <= 0
    return AttemptClassification(
        attempt=attempt,
        model_tier=model_tier,
        finish_reason=result.finish_reason,
        is_silent=silent,
        has_text=has_text,
        tool_call_count=len(result.tool_calls),
        tool_result_count=len(result.tool_results),
    )


def choose_next_action(attempts: Sequence[AttemptClassification]) -> NextAction:
    if not attempts:
        raise ValueError("choose_next_action needs at least one attempt")
    if not attempts[-1].is_silent:
        return "accept"
    if len(attempts) < MAX_ATTEMPTS:
        return "retry"
    return "substitute-fallback"


def fallback_message_for(finish_reason: Optional[str]) -> str:
    if finish_reason == FINISH_CONTENT_FILTER:
        return FILTERED_MESSAGE
    if finish_reason == FINISH_LENGTH:
        return TRUNCATED_MESSAGE
    return GENERIC_FALLBACK_MESSAGE


@dataclass
class EngineOutcome:
    text: str
    attempts: List[AttemptClassification] = field(default_factory=list)
    results: List[GenerationResult] = field(default_factory=list)
    fallback_message: Optional[str] = None

    @property
    def retry_attempted(self) -> bool:
        return len(self.attempts) > 1

    @property
    def retry_succeeded(self) -> bool:
        return self.retry_attempted and not self.attempts[-1].is_silent

    @property
    def tool_names(self) -> List[str]:
        return [name for result in self.results for name in result.called_tools]


# ---------------------------------------------------------------------------
# Tool invocation
# ---------------------------------------------------------------------------


def _error_content(tool_name: str, tool_call_id: str, content: Dict[str, Any]) -> Dict[str, Any]:
    return {"tool_call_id": tool_call_id, "tool_name": tool_name, "content": {"success": False, **content}}


async def _run_tool(
    state: TurnState,
    tool_name: str,
    arguments: Dict[str, Any],
    tool_call_id: str,
    ticket: Optional[int],
) -> Dict[str, Any]:
    try:
        return await execute_tool_call(state, tool_name, tool_call_id, arguments, ticket=ticket)
    except ToolExecutionError as exc:
        logger.warning("[WIZARD][TOOL] rejected %s: %s", tool_name, exc.detail)
        return _error_content(tool_name, tool_call_id, {"error": "tool_rejected", "detail": exc.detail})
    except Exception as exc:
        log_fallback(
            create_fallback_context(
                source="agents.fallback_engine.tool",
                trigger="tool_failed",
                session_id=state.session_id,
                step=state.step.value,
                error=exc,
                tool=tool_name,
            )
        )
        return _error_content(tool_name, tool_call_id, {"error": f"{tool_name} failed: {exc}"})
    finally:
        if ticket is not None:
            await state.writer.release(ticket)


def build_tool_invoker(state: TurnState) -> ToolInvoker:
    """Invoker that reserves the write slot synchronously at call time."""

    def invoke(tool_name: str, arguments: Dict[str, Any], tool_call_id: str):
        definition = TOOL_DEFINITIONS.get(tool_name)
        ticket = state.writer.reserve() if definition is not None and definition.mutates else None
        return _run_tool(state, tool_name, arguments, tool_call_id, ticket)

    return invoke


def _tool_message_text(result: GenerationResult) -> str:
    """User-facing text from the last successful tool result."""
    for output in reversed(result.tool_results):
        content = output.get("content") or {}
        if content.get("success") and content.get("message"):
            return str(content["message"])
    return ""


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


async def run_fallback_engine(
    state: TurnState,
    backend: GenerativeBackend,
    *,
    system_prompt: str,
    messages: Sequence[Dict[str, Any]],
    max_steps: Optional[int] = None,
) -> EngineOutcome:
    tools = openai_tool_specs(state.step)
    stop_tools = frozenset({CONFIRM_TOOL_BY_STEP[state.step]})
    invoke_tool = build_tool_invoker(state)
    outcome = EngineOutcome(text="")

    while True:
        attempt = len(outcome.attempts) + 1
        tier = ATTEMPT_TIERS[attempt]
        prompt = system_prompt if attempt == 1 else with_retry_instruction(system_prompt)
        try:
            result = await backend.generate(
                system_prompt=prompt,
                messages=messages,
                tools=tools,
                tier=tier,
                invoke_tool=invoke_tool,
                stop_tools=stop_tools,
                max_steps=max_steps,
            )
        except Exception as exc:
            log_fallback(
                create_fallback_context(
                    source="agents.fallback_engine",
                    trigger="backend_error",
                    session_id=state.session_id,
                    step=state.step.value,
                    error=exc,
                    attempt=attempt,
                )
            )
            # Counts as a silent attempt with an unknown finish reason.
            result = GenerationResult(finish_reason=None)
        classification = classify_attempt(result, attempt=attempt, model_tier=tier)
        outcome.attempts.append(classification)
        outcome.results.append(result)
        emit_safely(
            state.services.telemetry,
            AttemptEvent(
                session_id=state.session_id,
                step=state.step.value,
                attempt=attempt,
                model_tier=tier,
                finish_reason=classification.finish_reason,
                is_silent=classification.is_silent,
                tool_call_count=classification.tool_call_count,
                tool_result_count=classification.tool_result_count,
                has_text=classification.has_text,
            ),
        )

        action = choose_next_action(outcome.attempts)
        if action == "accept":
            outcome.text = result.text.strip() or _tool_message_text(result)
            return outcome
        if action == "retry":
            logger.info(
                "[WIZARD][ENGINE] silent attempt=%s finish=%s; retrying on strong tier",
                attempt,
                result.finish_reason,
            )
            continue

        outcome.fallback_message = fallback_message_for(result.finish_reason)
        outcome.text = wrap_fallback(
            outcome.fallback_message,
            create_fallback_context(
                source="agents.fallback_engine",
                trigger="silent_completion",
                session_id=state.session_id,
                step=state.step.value,
                finish_reason=result.finish_reason,
            ),
        )
        return outcome


__all__ = [
    "MAX_ATTEMPTS",
    "FILTERED_MESSAGE",
    "TRUNCATED_MESSAGE",
    "GENERIC_FALLBACK_MESSAGE",
    "NextAction",
    "AttemptClassification",
    "classify_attempt",
    "choose_next_action",
    "fallback_message_for",
    "EngineOutcome",
    "build_tool_invoker",
    "run_fallback_engine",
]
