"""
MODULE: party_wizard/activity/telemetry.py
PURPOSE: Structured per-attempt and per-turn events for the wizard.

The sink is a pure observer. ``emit_safely`` logs and drops any sink failure
so turn processing never depends on telemetry.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Protocol, Union

logger = logging.getLogger(__name__)

DecisionPath = Literal["deterministic", "shortcut", "model", "confirmation"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


@dataclass
class AttemptEvent:
    """One generation attempt inside the fallback engine.

    Attributes:
        attempt: 1 for the primary call, 2 for the escalated retry
        model_tier: "default" or "strong"
        finish_reason: normalized finish reason reported by the backend
        is_silent: no text, no tool activity, no output tokens
    """

    session_id: Optional[str]
    step: str
    attempt: int
    model_tier: str
    finish_reason: Optional[str]
    is_silent: bool
    tool_call_count: int
    tool_result_count: int
    has_text: bool
    timestamp: str = field(default_factory=_now_iso)
    kind: str = "attempt"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TurnEvent:
    """Summary of one processed turn."""

    session_id: Optional[str]
    step: str
    decision_path: DecisionPath
    intent: Optional[str] = None
    retry_attempted: bool = False
    retry_succeeded: bool = False
    fallback_message: Optional[str] = None
    timestamp: str = field(default_factory=_now_iso)
    kind: str = "turn"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


TelemetryEvent = Union[AttemptEvent, TurnEvent]


class TelemetrySink(Protocol):
    def record(self, event: TelemetryEvent) -> None: ...


class LoggingTelemetrySink:
    """Default sink: one structured log line per event."""

    def record(self, event: TelemetryEvent) -> None:
        logger.info("[WIZARD][TELEMETRY] %s", event.to_dict())


class RecordingTelemetrySink:
    """Keeps events in memory (tests, local debugging)."""

    def __init__(self) -> None:
        self.events: List[TelemetryEvent] = []

    def record(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    @property
    def attempts(self) -> List[AttemptEvent]:
        return [e for e in self.events if isinstance(e, AttemptEvent)]

    @property
    def turns(self) -> List[TurnEvent]:
        return [e for e in self.events if isinstance(e, TurnEvent)]


def emit_safely(sink: Optional[TelemetrySink], event: TelemetryEvent) -> None:
    if sink is None:
        return
    try:
        sink.record(event)
    except Exception as exc:  # sink failures never reach the turn
        logger.warning("[WIZARD][TELEMETRY] sink failed for %s event: %s", event.kind, exc)


__all__ = [
    "DecisionPath",
    "AttemptEvent",
    "TurnEvent",
    "TelemetryEvent",
    "TelemetrySink",
    "LoggingTelemetrySink",
    "RecordingTelemetrySink",
    "emit_safely",
]
