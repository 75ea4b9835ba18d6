"""Domain types for the party wizard."""

from .models import (
    FINAL_STEP_INDEX,
    STEP_COMPLETE,
    STEP_ORDER,
    Guest,
    Ingredient,
    Instruction,
    MenuItem,
    MenuPlan,
    NewRecipe,
    NextStep,
    PartyInfo,
    TimelineTask,
    WizardSession,
    WizardStep,
    coerce_step,
    next_step_after,
    step_index,
)
from .messages import (
    ConfirmationDecision,
    ConfirmationRequest,
    IncomingMessage,
    StreamEvent,
    WizardMessage,
)

__all__ = [
    "FINAL_STEP_INDEX",
    "STEP_COMPLETE",
    "STEP_ORDER",
    "Guest",
    "Ingredient",
    "Instruction",
    "MenuItem",
    "MenuPlan",
    "NewRecipe",
    "NextStep",
    "PartyInfo",
    "TimelineTask",
    "WizardSession",
    "WizardStep",
    "coerce_step",
    "next_step_after",
    "step_index",
    "ConfirmationDecision",
    "ConfirmationRequest",
    "IncomingMessage",
    "StreamEvent",
    "WizardMessage",
]
