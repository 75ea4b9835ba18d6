"""
MODULE: party_wizard/domain/messages.py
PURPOSE: Conversation messages, confirmation objects, and stream events.

Message parts are plain dicts keyed by ``type``:
    text                               {"type": "text", "text": ...}
    image                              {"type": "image", "image": <data url>}
    data-step-confirmation-request     {"type": ..., "data": {"request": {...}}}
    data-step-confirmation-decision    {"type": ..., "data": {...decision}}
    data-step-confirmed                {"type": ..., "data": {...}}
    data-recipe-extracted              {"type": ..., "data": {"recipe": ..., "message": ...}}
    data-timeline-generated            {"type": ..., "data": {"timeline": [...], "message": ...}}
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from party_wizard.domain.models import NextStep, WizardStep


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Confirmation handshake
# ---------------------------------------------------------------------------


class ConfirmationRequest(BaseModel):
    """A pending request for the user to approve a step's collected data."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    step: WizardStep
    next_step: NextStep
    summary: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ApproveDecision(BaseModel):
    type: Literal["approve"] = "approve"


class ReviseDecision(BaseModel):
    type: Literal["revise"] = "revise"
    feedback: str


class ConfirmationDecision(BaseModel):
    request_id: str
    decision: Annotated[Union[ApproveDecision, ReviseDecision], Field(discriminator="type")]

    @property
    def is_approve(self) -> bool:
        return self.decision.type == "approve"

    @property
    def feedback(self) -> Optional[str]:
        if isinstance(self.decision, ReviseDecision):
            return self.decision.feedback
        return None


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


MessageRole = Literal["user", "assistant", "system"]


class WizardMessage(BaseModel):
    """One persisted turn in the per-(session, step) message log."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    role: MessageRole
    content: str = ""
    parts: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


class IncomingMessage(BaseModel):
    """The latest user message as sent by the caller."""

    id: Optional[str] = None
    role: MessageRole = "user"
    content: Optional[str] = None
    parts: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def text_content(self) -> str:
        texts = [str(part.get("text") or "") for part in self.parts if part.get("type") == "text"]
        if texts:
            return "".join(texts)
        return self.content or ""

    @property
    def images(self) -> List[str]:
        return [
            part["image"]
            for part in self.parts
            if part.get("type") == "image" and isinstance(part.get("image"), str) and part["image"]
        ]

    @property
    def has_image(self) -> bool:
        return bool(self.images)


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


EVENT_TEXT = "text"
EVENT_CONFIRMATION_REQUEST = "step-confirmation-request"
EVENT_STEP_CONFIRMED = "step-confirmed"
EVENT_RECIPE_EXTRACTED = "recipe-extracted"
EVENT_TIMELINE_GENERATED = "timeline-generated"
EVENT_SESSION_REFRESH = "session-refresh"
EVENT_ERROR = "error"

DATA_PART_PREFIX = "data-"


class StreamEvent(BaseModel):
    """One element of a streamed turn response."""

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def text(cls, text: str) -> "StreamEvent":
        return cls(type=EVENT_TEXT, data={"text": text})

    @classmethod
    def error(cls, message: str, *, code: str = "turn_failed") -> "StreamEvent":
        return cls(type=EVENT_ERROR, data={"message": message, "code": code})

    @property
    def is_data(self) -> bool:
        return self.type not in (EVENT_TEXT, EVENT_ERROR)

    def as_part(self) -> Dict[str, Any]:
        """Message-part form used when persisting the assistant turn."""
        if self.type == EVENT_TEXT:
            return {"type": "text", "text": self.data.get("text", "")}
        return {"type": f"{DATA_PART_PREFIX}{self.type}", "data": self.data}


__all__ = [
    "ConfirmationRequest",
    "ApproveDecision",
    "ReviseDecision",
    "ConfirmationDecision",
    "MessageRole",
    "WizardMessage",
    "IncomingMessage",
    "StreamEvent",
    "EVENT_TEXT",
    "EVENT_CONFIRMATION_REQUEST",
    "EVENT_STEP_CONFIRMED",
    "EVENT_RECIPE_EXTRACTED",
    "EVENT_TIMELINE_GENERATED",
    "EVENT_SESSION_REFRESH",
    "EVENT_ERROR",
    "DATA_PART_PREFIX",
]
