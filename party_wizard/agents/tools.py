"""
MODULE: party_wizard/agents/tools.py
PURPOSE: Step-aware tool registry for the model fallback path.

Every model tool call goes through ``execute_tool_call``, which enforces the
per-step allowlist, validates the arguments into the executor's pydantic
input model and then runs the executor. The JSON schema offered to the model
is generated from that same input model.
Violations raise ``ToolExecutionError``; the engine hands the error detail
back to the model as the tool result instead of failing the turn.

Tool argument names are camelCase on the wire and snake_case on the input
models (see ``ToolInput``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import ValidationError

from party_wizard.domain.models import WizardStep, coerce_step
from party_wizard.workflows.common.types import ActionResult, NoArguments, ToolInput, TurnState
from party_wizard.workflows.steps.step1_party_info.trigger.actions import ConfirmPartyInfoInput, confirm_party_info
from party_wizard.workflows.steps.step2_guests.trigger.actions import (
    AddGuestInput,
    RemoveGuestInput,
    add_guest,
    confirm_guest_list,
    remove_guest,
)
from party_wizard.workflows.steps.step3_menu.trigger.actions import (
    AddExistingRecipeInput,
    ConfirmMenuInput,
    ExtractRecipeFromUrlInput,
    GenerateRecipeIdeaInput,
    RemoveMenuItemInput,
    add_existing_recipe,
    confirm_menu,
    extract_recipe_from_url,
    generate_recipe_idea,
    remove_menu_item,
)
from party_wizard.workflows.steps.step4_timeline.trigger.actions import (
    AdjustTimelineInput,
    adjust_timeline,
    confirm_timeline,
    generate_timeline,
)

logger = logging.getLogger(__name__)

# Ordered per step; the order is the order tools are offered to the model.
ENGINE_TOOL_ALLOWLIST: Dict[str, Tuple[str, ...]] = {
    WizardStep.PARTY_INFO.value: ("confirmPartyInfo",),
    WizardStep.GUESTS.value: ("addGuest", "removeGuest", "confirmGuestList"),
    WizardStep.MENU.value: (
        "addExistingRecipe",
        "generateRecipeIdea",
        "extractRecipeFromUrl",
        "removeMenuItem",
        "confirmMenu",
    ),
    WizardStep.TIMELINE.value: ("generateTimeline", "adjustTimeline", "confirmTimeline"),
}

CONFIRM_TOOL_BY_STEP: Dict[WizardStep, str] = {
    WizardStep.PARTY_INFO: "confirmPartyInfo",
    WizardStep.GUESTS: "confirmGuestList",
    WizardStep.MENU: "confirmMenu",
    WizardStep.TIMELINE: "confirmTimeline",
}


@dataclass(frozen=True)
class ToolDefinition:
    handler: Callable[..., Any]
    input_model: Type[ToolInput]
    description: str
    mutates: bool = True

    @property
    def parameters(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)


TOOL_DEFINITIONS: Dict[str, ToolDefinition] = {
    "confirmPartyInfo": ToolDefinition(
        confirm_party_info,
        ConfirmPartyInfoInput,
        "Save and confirm the party details. Call this when you have gathered the required information "
        "(party name and date/time). This shows a confirmation dialog to the user.",
    ),
    "addGuest": ToolDefinition(
        add_guest,
        AddGuestInput,
        "Add a guest to the party invitation list. Call this IMMEDIATELY when the user provides any guest "
        "information - do not just acknowledge in text. Requires at least a name, email, or phone number.",
    ),
    "removeGuest": ToolDefinition(
        remove_guest,
        RemoveGuestInput,
        "Remove a guest from the invitation list. Call this when the user wants to remove someone they "
        "previously added.",
    ),
    "confirmGuestList": ToolDefinition(
        confirm_guest_list,
        NoArguments,
        "Finalize the guest list and show confirmation to the user. Call this when the user indicates they're "
        "done adding guests, or wants to proceed. Can be called with an empty list - guests can be added later.",
    ),
    "addExistingRecipe": ToolDefinition(
        add_existing_recipe,
        AddExistingRecipeInput,
        "Add a recipe from the user's existing library to the menu. Use the recipe ID shown in the user-recipes "
        "list. Call this when the user wants to use one of their saved recipes.",
    ),
    "generateRecipeIdea": ToolDefinition(
        generate_recipe_idea,
        GenerateRecipeIdeaInput,
        "Create a new recipe based on a description. Call this when the user describes a dish they want to make.",
    ),
    "extractRecipeFromUrl": ToolDefinition(
        extract_recipe_from_url,
        ExtractRecipeFromUrlInput,
        "Import a recipe from a website URL. Only use URLs from the user's current message.",
    ),
    "removeMenuItem": ToolDefinition(
        remove_menu_item,
        RemoveMenuItemInput,
        "Remove a dish from the menu. Use isNewRecipe=true for AI-generated or imported recipes, false for "
        "recipes from the user's library.",
    ),
    "confirmMenu": ToolDefinition(
        confirm_menu,
        ConfirmMenuInput,
        "Finalize the menu and show confirmation to the user. Call this when the user is happy with the menu "
        "or wants to proceed. Can be called with an empty menu - recipes can be added later.",
    ),
    "generateTimeline": ToolDefinition(
        generate_timeline,
        NoArguments,
        "Create a cooking timeline/schedule for the party based on the menu.",
    ),
    "adjustTimeline": ToolDefinition(
        adjust_timeline,
        AdjustTimelineInput,
        "Modify the cooking timeline based on user feedback.",
    ),
    "confirmTimeline": ToolDefinition(
        confirm_timeline,
        NoArguments,
        "Finalize the timeline and show confirmation to the user. This is the final step before creating "
        "the party.",
    ),
}

# Derived from the input models so the advertised schema and validation agree.
TOOL_SCHEMAS: Dict[str, Dict[str, Any]] = {name: tool.parameters for name, tool in TOOL_DEFINITIONS.items()}


def tools_for_step(step: WizardStep) -> Tuple[str, ...]:
    return ENGINE_TOOL_ALLOWLIST.get(coerce_step(step).value, ())


def openai_tool_specs(step: WizardStep) -> List[Dict[str, Any]]:
    """Function-tool specs for the chat-completions ``tools`` parameter."""
    return [
        {
            "type": "function",
            "function": {
                "name": name,
                "description": TOOL_DEFINITIONS[name].description,
                "parameters": TOOL_SCHEMAS[name],
            },
        }
        for name in tools_for_step(step)
    ]


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ToolExecutionError(RuntimeError):
    """A tool call refused before its executor ran.

    ``detail`` is handed back to the model as the tool result so it can
    correct itself on the next step.
    """

    def __init__(self, tool_name: str, step: WizardStep, reason: str, errors: Sequence[str] = ()) -> None:
        step = coerce_step(step)
        self.detail: Dict[str, Any] = {
            "tool": tool_name,
            "step": step.value,
            "reason": reason,
            "allowed_tools": sorted(tools_for_step(step)),
        }
        if errors:
            self.detail["errors"] = list(errors)
        super().__init__(f"{tool_name} refused on {step.value}: {reason}")


def _format_errors(exc: ValidationError) -> List[str]:
    return [f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}" for err in exc.errors()]


def parse_tool_arguments(tool_name: str, step: WizardStep, arguments: Any) -> ToolInput:
    """Check the call is offered on ``step`` and hydrate its input model.

    Raises ``ToolExecutionError`` for an off-step tool or arguments the model
    does not accept.
    """
    if tool_name not in tools_for_step(step):
        raise ToolExecutionError(tool_name, step, "tool_not_allowed")
    definition = TOOL_DEFINITIONS.get(tool_name)
    if definition is None:
        raise ToolExecutionError(tool_name, step, "tool_not_supported")
    payload = {} if arguments is None else arguments
    if not isinstance(payload, dict):
        raise ToolExecutionError(tool_name, step, "schema_validation_failed", ["arguments: expected an object"])
    try:
        return definition.input_model.model_validate(payload)
    except ValidationError as exc:
        raise ToolExecutionError(tool_name, step, "schema_validation_failed", _format_errors(exc)) from exc


async def execute_tool_call(
    state: TurnState,
    tool_name: str,
    tool_call_id: str,
    arguments: Optional[Dict[str, Any]],
    *,
    ticket: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Validate and execute one model tool call against the turn state.

    ``ticket`` is the write slot reserved when the model issued the call; the
    executor applies its mutation in that slot. Releasing an unused ticket is
    the caller's job. Results echo ``tool_call_id``.
    """
    params = parse_tool_arguments(tool_name, state.step, arguments)
    result = await TOOL_DEFINITIONS[tool_name].handler(state, params, ticket=ticket)
    if isinstance(result, ActionResult):
        content = result.to_dict()
    elif isinstance(result, dict):
        content = result
    else:
        content = {"value": result}

    logger.info("[WIZARD][TOOL] %s step=%s success=%s", tool_name, state.step.value, content.get("success"))
    return {
        "tool_call_id": tool_call_id,
        "tool_name": tool_name,
        "content": content,
    }


__all__ = [
    "ENGINE_TOOL_ALLOWLIST",
    "CONFIRM_TOOL_BY_STEP",
    "ToolDefinition",
    "TOOL_DEFINITIONS",
    "TOOL_SCHEMAS",
    "tools_for_step",
    "openai_tool_specs",
    "ToolExecutionError",
    "parse_tool_arguments",
    "execute_tool_call",
]
