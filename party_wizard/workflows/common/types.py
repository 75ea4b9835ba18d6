"""
MODULE: party_wizard/workflows/common/types.py
PURPOSE: Turn-scoped value types shared by resolvers, executors and the engine.

A turn threads one ``TurnState`` through every layer. Step payloads live in
an immutable ``TurnData`` that is swapped for an updated copy on each
mutation; the fields touched are tracked so the orchestrator can write them
back in a single ``update_partial`` at the end of the turn.

Mutations coming from model tool calls may be awaited concurrently. Each
call reserves a ticket from the ``SequencedWriter`` when it is invoked and
applies its change only after every earlier ticket is done, so list appends
land in invocation order regardless of completion order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Literal, Optional, Set, Tuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from party_wizard.domain.messages import (
    EVENT_CONFIRMATION_REQUEST,
    ConfirmationRequest,
    StreamEvent,
)
from party_wizard.domain.models import Guest, MenuPlan, PartyInfo, TimelineTask, WizardSession, WizardStep
from party_wizard.domain.serialization import serialize_confirmation, serialize_fields
from party_wizard.workflows.common.confirmation_gate import ConfirmationStore

if TYPE_CHECKING:
    from party_wizard.activity.telemetry import TelemetrySink
    from party_wizard.llm.extraction import ContentFetcher, RecipeExtractor
    from party_wizard.workflows.io.database import SessionStore
    from party_wizard.workflows.steps.step4_timeline.trigger.schedule import ScheduleGenerator

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Resolver outcomes
# ---------------------------------------------------------------------------


UnhandledReason = Literal["ambiguous", "unsupported", "low-confidence", "no-signal"]


@dataclass(frozen=True)
class ResolverAction:
    """An executor invocation proposed by a deterministic resolver."""

    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Handled:
    intent: str
    assistant_text: str
    actions: Tuple[ResolverAction, ...] = ()

    handled = True


@dataclass(frozen=True)
class Unhandled:
    reason: UnhandledReason

    handled = False


ResolverOutcome = Union[Handled, Unhandled]


# ---------------------------------------------------------------------------
# Executor results
# ---------------------------------------------------------------------------


class ToolInput(BaseModel):
    """Executor arguments; camelCase on the wire, snake_case from resolvers.

    Strict so a model sending "2" or true for an integer is rejected rather
    than coerced.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", strict=True)


class NoArguments(ToolInput):
    pass


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one executor call; failures are values, not exceptions."""

    success: bool
    message: str
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **data: Any) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: str, message: str) -> "ActionResult":
        return cls(success=False, message=message, error=error)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.error:
            out["error"] = self.error
        if self.data:
            out.update(self.data)
        return out


# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TurnData:
    party_info: Optional[PartyInfo] = None
    guest_list: Tuple[Guest, ...] = ()
    menu_plan: Optional[MenuPlan] = None
    timeline: Optional[Tuple[TimelineTask, ...]] = None

    @classmethod
    def from_session(cls, session: WizardSession) -> "TurnData":
        return cls(
            party_info=session.party_info,
            guest_list=session.guest_list,
            menu_plan=session.menu_plan,
            timeline=session.timeline,
        )

    @property
    def menu(self) -> MenuPlan:
        return self.menu_plan or MenuPlan()


class SequencedWriter:
    """Applies ticketed mutations strictly in ticket order."""

    def __init__(self) -> None:
        self._issued = 0
        self._next = 0
        self._done: Set[int] = set()
        self._condition: Optional[asyncio.Condition] = None

    def _cond(self) -> asyncio.Condition:
        if self._condition is None:
            self._condition = asyncio.Condition()
        return self._condition

    def reserve(self) -> int:
        ticket = self._issued
        self._issued += 1
        return ticket

    def _finish(self, ticket: int) -> None:
        self._done.add(ticket)
        while self._next in self._done:
            self._next += 1

    async def apply(self, ticket: int, fn: Callable[[], T]) -> T:
        cond = self._cond()
        async with cond:
            if ticket in self._done or ticket >= self._issued:
                raise RuntimeError(f"Ticket {ticket} is not pending")
            await cond.wait_for(lambda: self._next == ticket)
            try:
                return fn()
            finally:
                self._finish(ticket)
                cond.notify_all()

    async def release(self, ticket: int) -> None:
        """Mark a ticket done without applying anything. Safe to call twice."""
        cond = self._cond()
        async with cond:
            if ticket in self._done:
                return
            self._finish(ticket)
            cond.notify_all()

    @property
    def pending(self) -> int:
        return self._issued - len(self._done)


@dataclass
class TurnServices:
    """Collaborators available to executors during a turn."""

    store: Optional["SessionStore"] = None
    extractor: Optional["RecipeExtractor"] = None
    fetcher: Optional["ContentFetcher"] = None
    scheduler: Optional["ScheduleGenerator"] = None
    telemetry: Optional["TelemetrySink"] = None


class TurnState:
    """Mutable holder for the per-turn accumulator, events and confirmation."""

    def __init__(
        self,
        *,
        step: WizardStep,
        data: TurnData,
        reference: datetime,
        session_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        services: Optional[TurnServices] = None,
    ) -> None:
        self.step = step
        self.data = data
        self.reference = reference
        self.session_id = session_id
        self.owner_id = owner_id
        self.services = services or TurnServices()
        self.writer = SequencedWriter()
        self.dirty: Set[str] = set()
        self.events: List[StreamEvent] = []
        self.confirmation: Optional[ConfirmationRequest] = None

    # -- accumulator ------------------------------------------------------

    def update(self, **changes: Any) -> TurnData:
        self.data = replace(self.data, **changes)
        self.dirty.update(changes)
        return self.data

    async def mutate(self, fn: Callable[[TurnData], T], *, ticket: Optional[int] = None) -> T:
        """Run ``fn`` against the current data in ticket order.

        ``fn`` reads ``self.data`` and typically calls ``update``; it must not
        await. Without a ticket one is reserved now, so sequential callers
        keep their call order.
        """
        if ticket is None:
            ticket = self.writer.reserve()
        return await self.writer.apply(ticket, lambda: fn(self.data))

    # -- events -----------------------------------------------------------

    def emit(self, event: StreamEvent) -> None:
        self.events.append(event)

    def issue_confirmation(self, request: ConfirmationRequest) -> None:
        """Make ``request`` the single live confirmation for this turn."""
        if self.confirmation is not None and self.confirmation.id != request.id:
            self.events = [
                event
                for event in self.events
                if not (
                    event.type == EVENT_CONFIRMATION_REQUEST
                    and event.data.get("request", {}).get("id") == self.confirmation.id
                )
            ]
        self.confirmation = request
        self.emit(StreamEvent(type=EVENT_CONFIRMATION_REQUEST, data={"request": serialize_confirmation(request)}))

    # -- persistence ------------------------------------------------------

    def dirty_fields(self) -> Dict[str, Any]:
        return {name: getattr(self.data, name) for name in sorted(self.dirty)}

    def commit(self) -> bool:
        """Write dirty payloads and any issued confirmation back to the store.

        Returns False (and writes nothing) when the turn has no live session.
        """
        store = self.services.store
        if not self.session_id or not self.owner_id or store is None:
            return False
        if self.dirty:
            fields = serialize_fields(self.dirty_fields())
            store.update_partial(self.session_id, self.owner_id, fields)
            logger.debug("[WIZARD][COMMIT] session=%s fields=%s", self.session_id, sorted(fields))
            self.dirty.clear()
        if self.confirmation is not None:
            ConfirmationStore(store).issue(self.session_id, self.confirmation)
        return True


__all__ = [
    "UnhandledReason",
    "ResolverAction",
    "Handled",
    "Unhandled",
    "ResolverOutcome",
    "ToolInput",
    "NoArguments",
    "ActionResult",
    "TurnData",
    "SequencedWriter",
    "TurnServices",
    "TurnState",
]
