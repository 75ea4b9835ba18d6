"""
OpenAI chat backend tests.

The AsyncOpenAI client is replaced by a namespace exposing
``chat.completions.create`` that replays canned responses.
"""

from __future__ import annotations

import asyncio
import copy
import json
from types import SimpleNamespace

from party_wizard.llm.backend import (
    FINISH_CONTENT_FILTER,
    FINISH_OTHER,
    FINISH_STOP,
    FINISH_TOOL_CALLS,
    OpenAIChatBackend,
    normalize_finish_reason,
)
from tests.fakes import make_settings


class FakeCompletions:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(copy.deepcopy(kwargs))
        return self.responses.pop(0)


def response(content=None, tool_calls=None, finish_reason="stop", completion_tokens=5):
    usage = SimpleNamespace(completion_tokens=completion_tokens) if completion_tokens is not None else None
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)], usage=usage)


def tool_call(call_id, name, arguments):
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=raw))


class RecordingInvoker:
    def __init__(self):
        self.calls = []

    def __call__(self, name, arguments, call_id):
        self.calls.append((name, arguments, call_id))

        async def _result():
            return {"tool_call_id": call_id, "tool_name": name, "content": {"success": True, "message": "ok"}}

        return _result()


def generate(completions, *, tier="default", stop_tools=frozenset(), max_steps=None, tools=None):
    settings = make_settings()
    backend = OpenAIChatBackend(SimpleNamespace(chat=SimpleNamespace(completions=completions)), settings)
    invoker = RecordingInvoker()
    result = asyncio.run(
        backend.generate(
            system_prompt="SYSTEM",
            messages=[{"role": "user", "content": "hello"}],
            tools=tools if tools is not None else [{"type": "function", "function": {"name": "addGuest"}}],
            tier=tier,
            invoke_tool=invoker,
            stop_tools=stop_tools,
            max_steps=max_steps,
        )
    )
    return result, invoker, settings


class TestOpenAIChatBackend:
    def test_plain_text_reply(self):
        completions = FakeCompletions(response(content="Hi there!", completion_tokens=7))

        result, invoker, settings = generate(completions)

        assert result.text == "Hi there!"
        assert result.finish_reason == FINISH_STOP
        assert result.output_tokens == 7
        assert invoker.calls == []
        (request,) = completions.requests
        assert request["model"] == settings.default_model
        assert request["messages"][0] == {"role": "system", "content": "SYSTEM"}
        assert request["tools"][0]["function"]["name"] == "addGuest"

    def test_strong_tier_selects_strong_model(self):
        completions = FakeCompletions(response(content="ok"))

        _, _, settings = generate(completions, tier="strong")

        assert completions.requests[0]["model"] == settings.strong_model

    def test_tool_loop_feeds_results_back(self):
        completions = FakeCompletions(
            response(tool_calls=[tool_call("c1", "addGuest", {"name": "Pete"})], finish_reason="tool_calls"),
            response(content="Added Pete.", completion_tokens=3),
        )

        result, invoker, _ = generate(completions)

        assert invoker.calls == [("addGuest", {"name": "Pete"}, "c1")]
        assert result.text == "Added Pete."
        assert result.called_tools == ["addGuest"]
        assert len(result.tool_results) == 1
        assert result.output_tokens == 8
        followup = completions.requests[1]["messages"]
        assert followup[-2]["role"] == "assistant"
        assert followup[-2]["tool_calls"][0]["id"] == "c1"
        assert followup[-1]["role"] == "tool"
        assert followup[-1]["tool_call_id"] == "c1"
        assert json.loads(followup[-1]["content"]) == {"success": True, "message": "ok"}

    def test_invocations_keep_issue_order(self):
        completions = FakeCompletions(
            response(
                tool_calls=[
                    tool_call("c1", "addGuest", {"name": "Pete"}),
                    tool_call("c2", "addGuest", {"name": "Ross"}),
                    tool_call("c3", "addGuest", {"name": "Dahn"}),
                ],
                finish_reason="tool_calls",
            ),
            response(content="Done"),
        )

        _, invoker, _ = generate(completions)

        assert [call[2] for call in invoker.calls] == ["c1", "c2", "c3"]

    def test_stop_tool_ends_the_attempt(self):
        completions = FakeCompletions(
            response(tool_calls=[tool_call("c1", "confirmGuestList", {})], finish_reason="tool_calls"),
            response(content="never requested"),
        )

        result, _, _ = generate(completions, stop_tools=frozenset({"confirmGuestList"}))

        assert len(completions.requests) == 1
        assert result.finish_reason == FINISH_TOOL_CALLS
        assert result.text == ""

    def test_max_steps_bounds_the_loop(self):
        completions = FakeCompletions(
            *[
                response(tool_calls=[tool_call(f"c{i}", "addGuest", {"name": f"G{i}"})], finish_reason="tool_calls")
                for i in range(5)
            ]
        )

        result, invoker, _ = generate(completions, max_steps=2)

        assert len(completions.requests) == 2
        assert len(invoker.calls) == 2
        assert result.finish_reason == FINISH_TOOL_CALLS

    def test_malformed_arguments_become_empty(self):
        completions = FakeCompletions(
            response(tool_calls=[tool_call("c1", "addGuest", "{not json")], finish_reason="tool_calls"),
            response(content="ok"),
        )

        _, invoker, _ = generate(completions)

        assert invoker.calls == [("addGuest", {}, "c1")]

    def test_missing_usage_means_unknown_tokens(self):
        completions = FakeCompletions(response(content=None, finish_reason="content_filter", completion_tokens=None))

        result, _, _ = generate(completions)

        assert result.output_tokens is None
        assert result.finish_reason == FINISH_CONTENT_FILTER
        assert not result.has_text

    def test_no_tools_omits_tools_parameter(self):
        completions = FakeCompletions(response(content="ok"))

        generate(completions, tools=[])

        assert "tools" not in completions.requests[0]


def test_normalize_finish_reason():
    assert normalize_finish_reason("tool_calls") == FINISH_TOOL_CALLS
    assert normalize_finish_reason("function_call") == FINISH_TOOL_CALLS
    assert normalize_finish_reason("something_new") == FINISH_OTHER
    assert normalize_finish_reason(None) is None
