"""
MODULE: party_wizard/llm/backend.py
PURPOSE: Generative backend used by the tool-calling fallback engine.

One ``generate`` call is one attempt: a bounded chat-completions tool loop
that stops after ``max_steps`` model calls or once a stop tool (the step's
confirm tool) has run. Tool execution is delegated to the caller's
``ToolInvoker``. The invoker is called synchronously once per tool call, in
the order the model issued them, and returns an awaitable; several calls in
one response are then awaited together.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Protocol, Sequence

from openai import AsyncOpenAI

from party_wizard.config import ModelTier, WizardSettings, get_settings

logger = logging.getLogger(__name__)

# Normalized finish reasons.
FINISH_STOP = "stop"
FINISH_LENGTH = "length"
FINISH_CONTENT_FILTER = "content-filter"
FINISH_TOOL_CALLS = "tool-calls"
FINISH_OTHER = "other"

_FINISH_REASON_MAP = {
    "stop": FINISH_STOP,
    "length": FINISH_LENGTH,
    "content_filter": FINISH_CONTENT_FILTER,
    "tool_calls": FINISH_TOOL_CALLS,
    "function_call": FINISH_TOOL_CALLS,
}


def normalize_finish_reason(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    return _FINISH_REASON_MAP.get(raw, FINISH_OTHER)


@dataclass(frozen=True)
class ToolCallRecord:
    id: str
    name: str
    arguments: Dict[str, Any]


@dataclass
class GenerationResult:
    """Everything one attempt produced."""

    text: str = ""
    finish_reason: Optional[str] = None
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    tool_results: List[Dict[str, Any]] = field(default_factory=list)
    output_tokens: Optional[int] = None

    @property
    def has_text(self) -> bool:
        return bool(self.text.strip())

    @property
    def called_tools(self) -> List[str]:
        return [call.name for call in self.tool_calls]


# (tool_name, arguments, tool_call_id) -> awaitable tool result dict
ToolInvoker = Callable[[str, Dict[str, Any], str], Awaitable[Dict[str, Any]]]


class GenerativeBackend(Protocol):
    async def generate(
        self,
        *,
        system_prompt: str,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]],
        tier: ModelTier,
        invoke_tool: ToolInvoker,
        stop_tools: FrozenSet[str] = frozenset(),
        max_steps: Optional[int] = None,
    ) -> GenerationResult: ...


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    try:
        arguments = json.loads(raw or "{}")
    except json.JSONDecodeError:
        logger.warning("[WIZARD][LLM] tool arguments were not valid JSON: %r", raw)
        return {}
    return arguments if isinstance(arguments, dict) else {}


def _message_text(content: Any) -> str:
    if isinstance(content, list):
        return "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
    return str(content or "")


class OpenAIChatBackend:
    """GenerativeBackend over OpenAI chat completions with function tools."""

    def __init__(self, client: AsyncOpenAI, settings: Optional[WizardSettings] = None) -> None:
        self._client = client
        self._settings = settings or get_settings()

    async def generate(
        self,
        *,
        system_prompt: str,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]],
        tier: ModelTier,
        invoke_tool: ToolInvoker,
        stop_tools: FrozenSet[str] = frozenset(),
        max_steps: Optional[int] = None,
    ) -> GenerationResult:
        steps = max_steps or self._settings.max_tool_steps
        model = self._settings.model_for(tier)
        conversation: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}, *messages]
        result = GenerationResult()
        texts: List[str] = []
        tokens_known = False
        output_tokens = 0

        for step in range(steps):
            request: Dict[str, Any] = {"model": model, "messages": conversation, "temperature": 0.2}
            if tools:
                request["tools"] = list(tools)
            response = await self._client.chat.completions.create(**request)

            usage = getattr(response, "usage", None)
            if usage is not None and getattr(usage, "completion_tokens", None) is not None:
                tokens_known = True
                output_tokens += int(usage.completion_tokens)

            if not response.choices:
                result.finish_reason = FINISH_OTHER
                break
            choice = response.choices[0]
            message = choice.message
            content = _message_text(message.content)
            if content.strip():
                texts.append(content.strip())

            tool_calls = message.tool_calls or []
            if not tool_calls:
                result.finish_reason = normalize_finish_reason(choice.finish_reason)
                break

            conversation.append(
                {
                    "role": "assistant",
                    "content": content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.function.name, "arguments": call.function.arguments or "{}"},
                        }
                        for call in tool_calls
                    ],
                }
            )

            records = [
                ToolCallRecord(id=call.id, name=call.function.name, arguments=_parse_arguments(call.function.arguments))
                for call in tool_calls
            ]
            result.tool_calls.extend(records)
            # Invoke in issue order so each call reserves its write slot in order.
            pending = [invoke_tool(record.name, record.arguments, record.id) for record in records]
            outputs = await asyncio.gather(*pending)
            result.tool_results.extend(outputs)

            for record, output in zip(records, outputs):
                conversation.append(
                    {
                        "role": "tool",
                        "tool_call_id": record.id,
                        "name": record.name,
                        "content": json.dumps(output.get("content", {}), ensure_ascii=False, default=str),
                    }
                )

            result.finish_reason = FINISH_TOOL_CALLS
            if stop_tools.intersection(record.name for record in records):
                logger.debug("[WIZARD][LLM] stop tool called at step=%s", step + 1)
                break

        result.text = "\n\n".join(texts)
        result.output_tokens = output_tokens if tokens_known else None
        return result


def build_openai_client(settings: Optional[WizardSettings] = None) -> Optional[AsyncOpenAI]:
    """AsyncOpenAI client for the configured key, or None when no key is set."""
    settings = settings or get_settings()
    if not settings.openai_api_key:
        logger.warning("[WIZARD][LLM] OPENAI_API_KEY not set; model-backed paths are disabled")
        return None
    return AsyncOpenAI(api_key=settings.openai_api_key)


__all__ = [
    "FINISH_STOP",
    "FINISH_LENGTH",
    "FINISH_CONTENT_FILTER",
    "FINISH_TOOL_CALLS",
    "FINISH_OTHER",
    "normalize_finish_reason",
    "ToolCallRecord",
    "GenerationResult",
    "ToolInvoker",
    "GenerativeBackend",
    "OpenAIChatBackend",
    "build_openai_client",
]
