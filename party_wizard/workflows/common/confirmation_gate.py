"""
Confirmation gate for wizard steps.

Each session has at most one live ConfirmationRequest. Issuing a new request
replaces the previous one; a decision looks the request up by id and
consumes it, so replaying the same decision finds nothing and changes
nothing.

Approval moves the watermark to max(current, target index). The active step
follows the target unless the target is "complete", which only raises the
watermark and leaves the step on timeline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from party_wizard.domain.messages import ConfirmationRequest
from party_wizard.domain.models import STEP_COMPLETE, WizardSession, WizardStep, coerce_step, step_index

if TYPE_CHECKING:
    from party_wizard.workflows.io.database import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class ApprovalOutcome:
    """State change produced by approving a confirmation request."""

    request: ConfirmationRequest
    previous_watermark: int
    new_watermark: int
    current_step: WizardStep

    @property
    def completes_wizard(self) -> bool:
        return self.request.next_step == STEP_COMPLETE

    @property
    def step_changed(self) -> bool:
        return self.current_step != self.request.step

    def session_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"furthest_step_index": self.new_watermark}
        if not self.completes_wizard:
            fields["current_step"] = self.current_step
        return fields

    def to_event_data(self) -> Dict[str, Any]:
        return {
            "request_id": self.request.id,
            "step": self.request.step.value,
            "next_step": self.request.next_step if self.completes_wizard else self.current_step.value,
            "furthest_step_index": self.new_watermark,
        }


def evaluate_approval(session: WizardSession, request: ConfirmationRequest) -> ApprovalOutcome:
    """Compute the approved state without touching the store."""
    target_index = step_index(request.next_step)
    new_watermark = max(session.furthest_step_index, target_index)
    if request.next_step == STEP_COMPLETE:
        current_step = session.current_step
    else:
        current_step = coerce_step(request.next_step)
    return ApprovalOutcome(
        request=request,
        previous_watermark=session.furthest_step_index,
        new_watermark=new_watermark,
        current_step=current_step,
    )


class ConfirmationStore:
    """Keyed view over a session store's single pending confirmation slot."""

    def __init__(self, store: "SessionStore") -> None:
        self._store = store

    def current(self, session_id: str) -> Optional[ConfirmationRequest]:
        return self._store.load_pending_confirmation(session_id)

    def issue(self, session_id: str, request: ConfirmationRequest) -> None:
        previous = self.current(session_id)
        if previous is not None and previous.id != request.id:
            logger.info(
                "[WIZARD][CONFIRM] replacing request=%s with request=%s session=%s",
                previous.id,
                request.id,
                session_id,
            )
        self._store.save_pending_confirmation(session_id, request)

    def lookup(self, session_id: str, request_id: str) -> Optional[ConfirmationRequest]:
        """Return the live request only when its id matches ``request_id``."""
        live = self.current(session_id)
        if live is None or live.id != request_id:
            return None
        return live

    def consume(self, session_id: str, request_id: Optional[str] = None) -> Optional[ConfirmationRequest]:
        live = self.current(session_id)
        if live is None or (request_id is not None and live.id != request_id):
            return None
        self._store.save_pending_confirmation(session_id, None)
        return live


__all__ = [
    "ApprovalOutcome",
    "evaluate_approval",
    "ConfirmationStore",
]
