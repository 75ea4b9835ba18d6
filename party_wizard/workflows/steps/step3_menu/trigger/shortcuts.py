"""
MODULE: party_wizard/workflows/steps/step3_menu/trigger/shortcuts.py
PURPOSE: Direct recipe extraction from an image or a pasted URL on the menu step.

These run before the model. A ledger hit answers "already added" without any
mutation. A fetch or extraction failure is logged and the shortcut reports
``None`` so the turn falls through to the model.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Optional

from party_wizard.utils.fallback import create_fallback_context, log_fallback
from party_wizard.workflows.common.types import TurnData, TurnState
from party_wizard.workflows.steps.step3_menu.trigger.actions import (
    IMAGE_ALREADY_ADDED,
    URL_ALREADY_ADDED,
    append_new_recipe,
    normalize_url,
    recipe_event,
    recipe_summary_counts,
)

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s<>\"{}|\\^`]+", re.IGNORECASE)

FOLLOW_UP = "What else would you like to add, or are you ready to finalize the menu?"


@dataclass
class ShortcutResult:
    kind: str
    text: str
    duplicate: bool = False


def hash_image_data(image: str) -> str:
    return hashlib.sha256(image.encode("utf-8")).hexdigest()


def extract_first_url(text: str) -> Optional[str]:
    match = URL_PATTERN.search(text or "")
    if not match:
        return None
    return normalize_url(match.group(0)) or None


async def run_image_shortcut(state: TurnState, image: str) -> Optional[ShortcutResult]:
    image_hash = hash_image_data(image)
    if image_hash in state.data.menu.processed_image_hashes:
        logger.info("[WIZARD][MENU] image already processed hash=%s", image_hash[:12])
        return ShortcutResult(kind="image", text=IMAGE_ALREADY_ADDED, duplicate=True)

    extractor = state.services.extractor
    if extractor is None:
        return None

    try:
        draft = await extractor.extract_from_image(image)
    except Exception as exc:
        log_fallback(
            create_fallback_context(
                source="menu.image_shortcut",
                trigger="extraction_failed",
                session_id=state.session_id,
                error=exc,
            )
        )
        return None

    recipe = draft.model_copy(update={"source_type": "photo", "image_hash": image_hash})
    text = (
        f'I extracted "{recipe.name}" from your image and added it to the menu! '
        f"{recipe_summary_counts(recipe)}\n\n{FOLLOW_UP}"
    )

    def _apply(data: TurnData) -> None:
        state.update(menu_plan=append_new_recipe(data.menu, recipe, image_hash=image_hash))
        state.emit(recipe_event(recipe, text))

    await state.mutate(_apply)
    logger.info("[WIZARD][MENU] image recipe added name=%r", recipe.name)
    return ShortcutResult(kind="image", text=text)


async def run_url_shortcut(state: TurnState, text: str) -> Optional[ShortcutResult]:
    url = extract_first_url(text)
    if url is None:
        return None
    if url in state.data.menu.processed_urls:
        logger.info("[WIZARD][MENU] URL already processed url=%s", url)
        return ShortcutResult(kind="url", text=URL_ALREADY_ADDED, duplicate=True)

    fetcher, extractor = state.services.fetcher, state.services.extractor
    if fetcher is None or extractor is None:
        return None

    try:
        content = await fetcher.fetch(url)
        draft = await extractor.extract_from_content(content)
    except Exception as exc:
        log_fallback(
            create_fallback_context(
                source="menu.url_shortcut",
                trigger="extraction_failed",
                session_id=state.session_id,
                error=exc,
                url=url,
            )
        )
        return None

    recipe = draft.model_copy(update={"source_type": "url", "source_url": url})
    reply = (
        f'I imported "{recipe.name}" from that URL and added it to the menu! '
        f"{recipe_summary_counts(recipe)}\n\n{FOLLOW_UP}"
    )

    def _apply(data: TurnData) -> None:
        state.update(menu_plan=append_new_recipe(data.menu, recipe, source_url=url))
        state.emit(recipe_event(recipe, reply))

    await state.mutate(_apply)
    logger.info("[WIZARD][MENU] URL recipe added name=%r url=%s", recipe.name, url)
    return ShortcutResult(kind="url", text=reply)


async def run_menu_shortcuts(state: TurnState, text: str, image: Optional[str]) -> Optional[ShortcutResult]:
    """Image first; the URL path only runs on turns without an image."""
    if image:
        return await run_image_shortcut(state, image)
    return await run_url_shortcut(state, text)


__all__ = [
    "ShortcutResult",
    "hash_image_data",
    "extract_first_url",
    "run_image_shortcut",
    "run_url_shortcut",
    "run_menu_shortcuts",
]
