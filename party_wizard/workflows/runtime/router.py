"""
MODULE: party_wizard/workflows/runtime/router.py
PURPOSE: Per-step dispatch table and resolver action execution.

STEP_HANDLERS must cover every WizardStep; coverage is checked when this
module is imported, so adding a step without a handler fails at startup
instead of at the first turn on that step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from party_wizard.domain.models import STEP_ORDER, WizardStep, coerce_step
from party_wizard.workflows.common.types import (
    ActionResult,
    ResolverAction,
    ResolverOutcome,
    TurnData,
    TurnState,
)
from party_wizard.workflows.steps.step1_party_info.trigger.actions import ConfirmPartyInfoInput, confirm_party_info
from party_wizard.workflows.steps.step1_party_info.trigger.resolver import resolve_party_info_turn
from party_wizard.workflows.steps.step2_guests.trigger.actions import (
    AddGuestInput,
    RemoveGuestInput,
    add_guest,
    confirm_guest_list,
    remove_guest,
)
from party_wizard.workflows.steps.step2_guests.trigger.resolver import resolve_guests_turn
from party_wizard.workflows.steps.step3_menu.trigger.shortcuts import ShortcutResult, run_menu_shortcuts

logger = logging.getLogger(__name__)

Resolver = Callable[[str, TurnData, datetime], ResolverOutcome]
Shortcut = Callable[[TurnState, str, Optional[str]], Awaitable[Optional[ShortcutResult]]]


@dataclass(frozen=True)
class StepHandler:
    step: WizardStep
    resolver: Optional[Resolver] = None
    shortcut: Optional[Shortcut] = None


STEP_HANDLERS: Dict[WizardStep, StepHandler] = {
    WizardStep.PARTY_INFO: StepHandler(
        step=WizardStep.PARTY_INFO,
        resolver=resolve_party_info_turn,
    ),
    WizardStep.GUESTS: StepHandler(
        step=WizardStep.GUESTS,
        resolver=resolve_guests_turn,
    ),
    WizardStep.MENU: StepHandler(
        step=WizardStep.MENU,
        shortcut=run_menu_shortcuts,
    ),
    WizardStep.TIMELINE: StepHandler(
        step=WizardStep.TIMELINE,
    ),
}


def _check_coverage(handlers: Dict[WizardStep, StepHandler]) -> None:
    missing = [step.value for step in STEP_ORDER if step not in handlers]
    if missing:
        raise RuntimeError(f"No step handler registered for: {', '.join(missing)}")


_check_coverage(STEP_HANDLERS)


def dispatch_step(step: Any) -> StepHandler:
    """Handler for ``step``; raises UnknownStepError for anything that is not a step."""
    return STEP_HANDLERS[coerce_step(step)]


# ---------------------------------------------------------------------------
# Resolver actions
# ---------------------------------------------------------------------------

ActionExecutor = Callable[..., Awaitable[ActionResult]]

RESOLVER_ACTION_EXECUTORS: Dict[str, Tuple[ActionExecutor, Optional[Type[BaseModel]]]] = {
    "confirm-party-info": (confirm_party_info, ConfirmPartyInfoInput),
    "add-guest": (add_guest, AddGuestInput),
    "remove-guest": (remove_guest, RemoveGuestInput),
    "confirm-guest-list": (confirm_guest_list, None),
}


async def run_resolver_actions(state: TurnState, actions: Tuple[ResolverAction, ...]) -> List[ActionResult]:
    """Execute resolver-proposed actions in order against the turn state."""
    results: List[ActionResult] = []
    for action in actions:
        entry = RESOLVER_ACTION_EXECUTORS.get(action.type)
        if entry is None:
            raise ValueError(f"Unsupported resolver action: {action.type}")
        executor, input_model = entry
        payload = input_model(**action.payload) if input_model is not None else None
        result = await executor(state, payload)
        if not result.success:
            logger.info("[WIZARD][RESOLVER] action %s failed: %s", action.type, result.error)
        results.append(result)
    return results


__all__ = [
    "StepHandler",
    "STEP_HANDLERS",
    "dispatch_step",
    "RESOLVER_ACTION_EXECUTORS",
    "run_resolver_actions",
]
