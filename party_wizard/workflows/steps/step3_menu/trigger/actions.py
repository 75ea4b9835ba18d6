"""
MODULE: party_wizard/workflows/steps/step3_menu/trigger/actions.py
PURPOSE: Menu executors (library recipes, generated/imported recipes, removal, confirm).

New recipes imported from a URL or photo carry their source in the plan's
ledgers (``processed_urls`` / ``processed_image_hashes``). Removing such a
recipe purges its ledger entry so the same source can be submitted again.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import Field, PositiveInt

from party_wizard.domain.messages import EVENT_RECIPE_EXTRACTED, ConfirmationRequest, StreamEvent
from party_wizard.domain.models import AmbitionLevel, Course, MenuItem, MenuPlan, NewRecipe, WizardStep
from party_wizard.domain.serialization import serialize_menu_plan
from party_wizard.workflows.common.summaries import menu_summary
from party_wizard.workflows.common.types import ActionResult, ToolInput, TurnData, TurnState

logger = logging.getLogger(__name__)

URL_ALREADY_ADDED = "This recipe URL has already been added to the menu."
IMAGE_ALREADY_ADDED = "This image has already been added to the menu."

_URL_TRAILING = re.compile(r"[)\]}>.,!?;]+$")


class AddExistingRecipeInput(ToolInput):
    recipe_id: str = Field(description="Recipe ID from the user-recipes list")
    course: Optional[Course] = None
    scaled_servings: Optional[PositiveInt] = None


class GenerateRecipeIdeaInput(ToolInput):
    description: str = Field(description="What dish to create")
    course: Optional[Course] = None


class ExtractRecipeFromUrlInput(ToolInput):
    url: str = Field(pattern=r"^\s*https?://\S+\s*$")
    course: Optional[Course] = None


class RemoveMenuItemInput(ToolInput):
    index: int
    is_new_recipe: bool = Field(
        description="Whether this is from the new recipes list or the existing recipes list",
    )


class ConfirmMenuInput(ToolInput):
    dietary_restrictions: Optional[List[str]] = None
    ambition_level: Optional[AmbitionLevel] = None


def normalize_url(url: str) -> str:
    """Strip whitespace and sentence punctuation trailing a pasted link."""
    return _URL_TRAILING.sub("", url.strip())


# ---------------------------------------------------------------------------
# Plan helpers
# ---------------------------------------------------------------------------


def append_new_recipe(
    plan: MenuPlan,
    recipe: NewRecipe,
    *,
    source_url: Optional[str] = None,
    image_hash: Optional[str] = None,
) -> MenuPlan:
    update: Dict[str, Any] = {"new_recipes": plan.new_recipes + (recipe,)}
    if source_url and source_url not in plan.processed_urls:
        update["processed_urls"] = plan.processed_urls + (source_url,)
    if image_hash and image_hash not in plan.processed_image_hashes:
        update["processed_image_hashes"] = plan.processed_image_hashes + (image_hash,)
    return plan.model_copy(update=update)


def recipe_summary_counts(recipe: NewRecipe) -> str:
    return f"{len(recipe.ingredients)} ingredients and {len(recipe.instructions)} steps."


def recipe_event(recipe: NewRecipe, message: str) -> StreamEvent:
    return StreamEvent(
        type=EVENT_RECIPE_EXTRACTED,
        data={"recipe": recipe.model_dump(mode="json", exclude_none=True), "message": message},
    )


def _find_library_recipe(state: TurnState, recipe_id: str) -> Optional[Dict[str, Any]]:
    store = state.services.store
    if store is None or not state.owner_id:
        return None
    for recipe in store.list_recipes(state.owner_id):
        if str(recipe.get("id")) == recipe_id:
            return recipe
    return None


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


async def add_existing_recipe(
    state: TurnState,
    payload: AddExistingRecipeInput,
    *,
    ticket: Optional[int] = None,
) -> ActionResult:
    recipe = _find_library_recipe(state, payload.recipe_id)
    if recipe is None:
        return ActionResult.fail("Recipe not found", "I couldn't find that recipe in your library.")

    item = MenuItem(
        recipe_id=payload.recipe_id,
        name=str(recipe.get("name") or "Untitled recipe"),
        course=payload.course,
        scaled_servings=payload.scaled_servings,
    )

    def _apply(data: TurnData) -> MenuPlan:
        plan = data.menu
        updated = plan.model_copy(update={"existing_recipes": plan.existing_recipes + (item,)})
        state.update(menu_plan=updated)
        return updated

    plan = await state.mutate(_apply, ticket=ticket)
    return ActionResult.ok(f'Added "{item.name}" to the menu.', menu_plan=serialize_menu_plan(plan))


async def generate_recipe_idea(
    state: TurnState,
    payload: GenerateRecipeIdeaInput,
    *,
    ticket: Optional[int] = None,
) -> ActionResult:
    extractor = state.services.extractor
    if extractor is None:
        return ActionResult.fail("Recipe generator unavailable", "I can't create recipes right now.")

    draft = await extractor.generate_from_description(payload.description, payload.course)
    recipe = draft.model_copy(update={"source_type": "ai", "course": payload.course or draft.course})
    message = f'I created "{recipe.name}" for you and added it to the menu! {recipe_summary_counts(recipe)}'

    def _apply(data: TurnData) -> MenuPlan:
        updated = append_new_recipe(data.menu, recipe)
        state.update(menu_plan=updated)
        state.emit(recipe_event(recipe, message))
        return updated

    plan = await state.mutate(_apply, ticket=ticket)
    return ActionResult.ok(message, menu_plan=serialize_menu_plan(plan))


async def extract_recipe_from_url(
    state: TurnState,
    payload: ExtractRecipeFromUrlInput,
    *,
    ticket: Optional[int] = None,
) -> ActionResult:
    url = normalize_url(payload.url)
    if url in state.data.menu.processed_urls:
        return ActionResult.fail(URL_ALREADY_ADDED, URL_ALREADY_ADDED)
    fetcher, extractor = state.services.fetcher, state.services.extractor
    if fetcher is None or extractor is None:
        return ActionResult.fail("Recipe import unavailable", "I can't import recipes from links right now.")

    content = await fetcher.fetch(url)
    draft = await extractor.extract_from_content(content)
    recipe = draft.model_copy(
        update={"source_type": "url", "source_url": url, "course": payload.course or draft.course}
    )
    message = f'I imported "{recipe.name}" from that URL and added it to the menu! {recipe_summary_counts(recipe)}'

    def _apply(data: TurnData) -> Optional[MenuPlan]:
        # A concurrent call may have imported the same URL while we were fetching.
        if url in data.menu.processed_urls:
            return None
        updated = append_new_recipe(data.menu, recipe, source_url=url)
        state.update(menu_plan=updated)
        state.emit(recipe_event(recipe, message))
        return updated

    plan = await state.mutate(_apply, ticket=ticket)
    if plan is None:
        return ActionResult.fail(URL_ALREADY_ADDED, URL_ALREADY_ADDED)
    logger.info("[WIZARD][MENU] imported recipe=%r url=%s", recipe.name, url)
    return ActionResult.ok(message, menu_plan=serialize_menu_plan(plan))


async def remove_menu_item(
    state: TurnState,
    payload: RemoveMenuItemInput,
    *,
    ticket: Optional[int] = None,
) -> ActionResult:
    def _apply(data: TurnData) -> Optional[str]:
        plan = data.menu
        if payload.is_new_recipe:
            recipes = list(plan.new_recipes)
            if payload.index < 0 or payload.index >= len(recipes):
                return None
            removed = recipes.pop(payload.index)
            update: Dict[str, Any] = {"new_recipes": tuple(recipes)}
            if removed.source_url:
                update["processed_urls"] = tuple(u for u in plan.processed_urls if u != removed.source_url)
            if removed.image_hash:
                update["processed_image_hashes"] = tuple(
                    h for h in plan.processed_image_hashes if h != removed.image_hash
                )
            name = removed.name
        else:
            items = list(plan.existing_recipes)
            if payload.index < 0 or payload.index >= len(items):
                return None
            name = items.pop(payload.index).name
            update = {"existing_recipes": tuple(items)}
        state.update(menu_plan=plan.model_copy(update=update))
        return name

    removed_name = await state.mutate(_apply, ticket=ticket)
    if removed_name is None:
        return ActionResult.fail("Invalid index", "That menu item number is not on the menu.")
    return ActionResult.ok(
        f'Removed "{removed_name}" from the menu.',
        menu_plan=serialize_menu_plan(state.data.menu_plan),
    )


async def confirm_menu(
    state: TurnState,
    payload: Optional[ConfirmMenuInput] = None,
    *,
    ticket: Optional[int] = None,
) -> ActionResult:
    payload = payload or ConfirmMenuInput()

    def _apply(data: TurnData) -> ConfirmationRequest:
        plan = data.menu.model_copy(
            update={
                "dietary_restrictions": tuple(payload.dietary_restrictions or ()),
                "ambition_level": payload.ambition_level,
            }
        )
        state.update(menu_plan=plan)
        request = ConfirmationRequest(
            step=WizardStep.MENU,
            next_step=WizardStep.TIMELINE,
            summary=menu_summary(plan),
            data={"menu_plan": serialize_menu_plan(plan)},
        )
        state.issue_confirmation(request)
        return request

    request = await state.mutate(_apply, ticket=ticket)
    return ActionResult.ok("Please confirm the menu above.", request_id=request.id)


__all__ = [
    "URL_ALREADY_ADDED",
    "IMAGE_ALREADY_ADDED",
    "AddExistingRecipeInput",
    "GenerateRecipeIdeaInput",
    "ExtractRecipeFromUrlInput",
    "RemoveMenuItemInput",
    "ConfirmMenuInput",
    "normalize_url",
    "append_new_recipe",
    "recipe_summary_counts",
    "recipe_event",
    "add_existing_recipe",
    "generate_recipe_idea",
    "extract_recipe_from_url",
    "remove_menu_item",
    "confirm_menu",
]
