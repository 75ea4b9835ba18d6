"""
MODULE: party_wizard/domain/models.py
PURPOSE: Typed step payloads and the wizard session record.

All payload models are frozen; collections are tuples. Code that changes a
payload builds a replacement via model_copy(update=...) rather than mutating.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

from party_wizard.errors import UnknownStepError


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


class WizardStep(str, Enum):
    PARTY_INFO = "party-info"
    GUESTS = "guests"
    MENU = "menu"
    TIMELINE = "timeline"

    @property
    def position(self) -> int:
        return STEP_ORDER.index(self)


STEP_ORDER: Tuple[WizardStep, ...] = (
    WizardStep.PARTY_INFO,
    WizardStep.GUESTS,
    WizardStep.MENU,
    WizardStep.TIMELINE,
)

STEP_COMPLETE = "complete"
FINAL_STEP_INDEX = len(STEP_ORDER) - 1

NextStep = Union[WizardStep, Literal["complete"]]


def coerce_step(value: object) -> WizardStep:
    """Return the WizardStep for ``value`` or raise UnknownStepError."""
    if isinstance(value, WizardStep):
        return value
    try:
        return WizardStep(str(value))
    except ValueError:
        raise UnknownStepError(value) from None


def step_index(target: object) -> int:
    """Index of a step or of the terminal "complete" target."""
    if target == STEP_COMPLETE:
        return FINAL_STEP_INDEX
    return coerce_step(target).position


def next_step_after(step: WizardStep) -> NextStep:
    if step.position >= FINAL_STEP_INDEX:
        return STEP_COMPLETE
    return STEP_ORDER[step.position + 1]


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


Course = Literal["appetizer", "main", "side", "dessert", "drink"]
SourceType = Literal["url", "photo", "ai", "manual"]
AmbitionLevel = Literal["simple", "moderate", "ambitious"]
SessionStatus = Literal["active", "completed", "abandoned"]


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PartyInfo(_Payload):
    name: str = Field(min_length=1)
    date_time: datetime
    location: Optional[str] = None
    description: Optional[str] = None
    allow_contributions: bool = False

    @field_validator("date_time")
    @classmethod
    def _truncate_to_millis(cls, value: datetime) -> datetime:
        return value.replace(microsecond=(value.microsecond // 1000) * 1000)


class Guest(_Payload):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @model_validator(mode="after")
    def _require_contact(self) -> "Guest":
        if not any((value or "").strip() for value in (self.name, self.email, self.phone)):
            raise ValueError("Guest needs at least a name, email, or phone")
        return self

    @property
    def label(self) -> str:
        return self.name or self.email or self.phone or "Guest"


class MenuItem(_Payload):
    recipe_id: str
    name: str
    course: Optional[Course] = None
    scaled_servings: Optional[PositiveInt] = None


class Ingredient(_Payload):
    ingredient: str
    amount: Optional[str] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


class Instruction(_Payload):
    step: int
    description: str


class NewRecipe(_Payload):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    source_url: Optional[str] = None
    source_type: Optional[SourceType] = None
    ingredients: Tuple[Ingredient, ...] = ()
    instructions: Tuple[Instruction, ...] = ()
    prep_time_minutes: Optional[PositiveInt] = None
    cook_time_minutes: Optional[PositiveInt] = None
    servings: Optional[PositiveInt] = None
    tags: Tuple[str, ...] = ()
    dietary_tags: Tuple[str, ...] = ()
    course: Optional[Course] = None
    image_hash: Optional[str] = None


class MenuPlan(_Payload):
    existing_recipes: Tuple[MenuItem, ...] = ()
    new_recipes: Tuple[NewRecipe, ...] = ()
    dietary_restrictions: Tuple[str, ...] = ()
    ambition_level: Optional[AmbitionLevel] = None
    processed_urls: Tuple[str, ...] = ()
    processed_image_hashes: Tuple[str, ...] = ()

    @property
    def item_names(self) -> Tuple[str, ...]:
        return tuple(item.name for item in self.existing_recipes) + tuple(
            recipe.name for recipe in self.new_recipes
        )


class TimelineTask(_Payload):
    recipe_id: Optional[str] = None
    recipe_name: Optional[str] = None
    description: str = Field(min_length=1)
    days_before_party: int = Field(ge=0)
    scheduled_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    duration_minutes: PositiveInt
    is_phase_start: bool = False
    phase_description: Optional[str] = None


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class WizardSession(_Payload):
    id: str
    owner_id: str
    current_step: WizardStep = WizardStep.PARTY_INFO
    furthest_step_index: int = Field(default=0, ge=0, le=FINAL_STEP_INDEX)
    status: SessionStatus = "active"
    party_info: Optional[PartyInfo] = None
    guest_list: Tuple[Guest, ...] = ()
    menu_plan: Optional[MenuPlan] = None
    timeline: Optional[Tuple[TimelineTask, ...]] = None
    party_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == "active"


__all__ = [
    "WizardStep",
    "STEP_ORDER",
    "STEP_COMPLETE",
    "FINAL_STEP_INDEX",
    "NextStep",
    "coerce_step",
    "step_index",
    "next_step_after",
    "Course",
    "SourceType",
    "AmbitionLevel",
    "SessionStatus",
    "PartyInfo",
    "Guest",
    "MenuItem",
    "Ingredient",
    "Instruction",
    "NewRecipe",
    "MenuPlan",
    "TimelineTask",
    "WizardSession",
]
