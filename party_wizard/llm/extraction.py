"""
MODULE: party_wizard/llm/extraction.py
PURPOSE: Recipe acquisition collaborators (web content fetch and LLM extraction).

``ContentFetcher`` turns a URL into page text, through Tavily's extract API
when a key is configured and a plain GET otherwise. ``OpenAIRecipeExtractor``
turns page text, an image, or a short description into a ``NewRecipe`` via
JSON-mode chat completions. Both raise on failure; the menu shortcuts catch
that and fall through to the model.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from openai import AsyncOpenAI
from selectolax.parser import HTMLParser

from party_wizard.config import WizardSettings, get_settings
from party_wizard.domain.models import Ingredient, Instruction, NewRecipe

logger = logging.getLogger(__name__)

TAVILY_EXTRACT_URL = "https://api.tavily.com/extract"
MAX_CONTENT_CHARS = 20000


class ContentFetchError(RuntimeError):
    """Raised when a URL cannot be turned into usable text."""


class RecipeExtractionError(RuntimeError):
    """Raised when the model output cannot be read as a recipe."""


# ---------------------------------------------------------------------------
# Content fetch
# ---------------------------------------------------------------------------


NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]


def strip_html(markup: str) -> str:
    """Visible page text, whitespace collapsed."""
    tree = HTMLParser(markup)
    tree.strip_tags(NON_CONTENT_TAGS)
    root = tree.body or tree.root
    if root is None:
        return ""
    return " ".join(root.text(separator=" ").split())


class ContentFetcher:
    def __init__(
        self,
        *,
        tavily_api_key: Optional[str] = None,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.tavily_api_key = tavily_api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport, follow_redirects=True)

    async def fetch(self, url: str) -> str:
        try:
            if self.tavily_api_key:
                content = await self._fetch_tavily(url)
            else:
                content = await self._fetch_plain(url)
        except httpx.HTTPError as exc:
            raise ContentFetchError("Failed to fetch URL content") from exc
        if not content:
            raise ContentFetchError("Could not extract content from URL")
        return content[:MAX_CONTENT_CHARS]

    async def _fetch_tavily(self, url: str) -> str:
        async with self._client() as client:
            response = await client.post(
                TAVILY_EXTRACT_URL,
                headers={"Authorization": f"Bearer {self.tavily_api_key}"},
                json={"urls": [url]},
            )
            response.raise_for_status()
            results = (response.json() or {}).get("results") or []
        if not results:
            return ""
        first = results[0] or {}
        return str(first.get("raw_content") or first.get("content") or "").strip()

    async def _fetch_plain(self, url: str) -> str:
        async with self._client() as client:
            response = await client.get(url, headers={"User-Agent": "party-wizard/0.1"})
            response.raise_for_status()
        return strip_html(response.text)


# ---------------------------------------------------------------------------
# Recipe drafts
# ---------------------------------------------------------------------------


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _ingredients(raw: Any) -> List[Ingredient]:
    items: List[Ingredient] = []
    for entry in raw or []:
        if isinstance(entry, str):
            if entry.strip():
                items.append(Ingredient(ingredient=entry.strip()))
            continue
        if not isinstance(entry, dict):
            continue
        name = _opt_str(entry.get("ingredient") or entry.get("name"))
        if not name:
            continue
        items.append(
            Ingredient(
                ingredient=name,
                amount=_opt_str(entry.get("amount")),
                unit=_opt_str(entry.get("unit")),
                notes=_opt_str(entry.get("notes")),
            )
        )
    return items


def _instructions(raw: Any) -> List[Instruction]:
    steps: List[Instruction] = []
    for position, entry in enumerate(raw or [], start=1):
        if isinstance(entry, str):
            description = entry.strip()
            number = position
        elif isinstance(entry, dict):
            description = str(entry.get("description") or entry.get("text") or "").strip()
            number = _positive_int(entry.get("step")) or position
        else:
            continue
        if description:
            steps.append(Instruction(step=number, description=description))
    return steps


def recipe_from_payload(payload: Dict[str, Any]) -> NewRecipe:
    """Coerce loosely-shaped model JSON into a NewRecipe."""
    name = _opt_str(payload.get("name"))
    if not name:
        raise RecipeExtractionError("Recipe has no name")
    return NewRecipe(
        name=name,
        description=_opt_str(payload.get("description")),
        ingredients=tuple(_ingredients(payload.get("ingredients"))),
        instructions=tuple(_instructions(payload.get("instructions"))),
        prep_time_minutes=_positive_int(payload.get("prep_time_minutes")),
        cook_time_minutes=_positive_int(payload.get("cook_time_minutes")),
        servings=_positive_int(payload.get("servings")),
        tags=tuple(str(tag) for tag in payload.get("tags") or [] if str(tag).strip()),
        dietary_tags=tuple(str(tag) for tag in payload.get("dietary_tags") or [] if str(tag).strip()),
    )


class RecipeExtractor(Protocol):
    async def extract_from_content(self, content: str) -> NewRecipe: ...

    async def extract_from_image(self, image: str) -> NewRecipe: ...

    async def generate_from_description(self, description: str, course: Optional[str] = None) -> NewRecipe: ...


RECIPE_JSON_SHAPE = (
    "Return ONLY a JSON object with keys: name, description, "
    "ingredients (array of {amount, unit, ingredient, notes}), "
    "instructions (array of {step, description}), prep_time_minutes, "
    "cook_time_minutes, servings, tags (array), dietary_tags (array). "
    "Use null when a value is unknown."
)

CONTENT_PROMPT = "Extract the recipe from this webpage. Parse ingredients with amount/unit/name separated."
IMAGE_PROMPT = (
    "Extract the recipe from this image. Parse all ingredients with their amounts, units, and names. "
    "Include step-by-step instructions. If the recipe name isn't clear, give it an appropriate name "
    "based on the dish."
)
GENERATE_PROMPT = """Create a detailed recipe for: {description}

Include:
- A clear, appetizing name
- Complete ingredient list with amounts
- Step-by-step instructions
- Prep and cook times
- Number of servings

Make the recipe practical and achievable for a home cook."""


class OpenAIRecipeExtractor:
    """RecipeExtractor backed by OpenAI chat completions in JSON mode."""

    def __init__(self, client: AsyncOpenAI, settings: Optional[WizardSettings] = None) -> None:
        self._client = client
        self._settings = settings or get_settings()

    async def _complete_json(self, messages: List[Dict[str, Any]], *, model: str) -> Dict[str, Any]:
        response = await self._client.chat.completions.create(
            model=model,
            messages=[{"role": "system", "content": RECIPE_JSON_SHAPE}, *messages],
            temperature=0.2,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content if response.choices else None
        try:
            payload = json.loads(content or "{}")
        except json.JSONDecodeError as exc:
            raise RecipeExtractionError("Model returned malformed recipe JSON") from exc
        if not isinstance(payload, dict):
            raise RecipeExtractionError("Model returned a non-object recipe")
        return payload

    async def extract_from_content(self, content: str) -> NewRecipe:
        payload = await self._complete_json(
            [{"role": "user", "content": f"{CONTENT_PROMPT}\n\n{content}"}],
            model=self._settings.model_for("default"),
        )
        return recipe_from_payload(payload)

    async def extract_from_image(self, image: str) -> NewRecipe:
        payload = await self._complete_json(
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": IMAGE_PROMPT},
                        {"type": "image_url", "image_url": {"url": image}},
                    ],
                }
            ],
            model=self._settings.model_for("vision"),
        )
        return recipe_from_payload(payload)

    async def generate_from_description(self, description: str, course: Optional[str] = None) -> NewRecipe:
        prompt = GENERATE_PROMPT.format(description=description)
        if course:
            prompt += f"\n\nThis dish is served as: {course}."
        payload = await self._complete_json(
            [{"role": "user", "content": prompt}],
            model=self._settings.model_for("default"),
        )
        return recipe_from_payload(payload)


__all__ = [
    "ContentFetchError",
    "RecipeExtractionError",
    "ContentFetcher",
    "strip_html",
    "recipe_from_payload",
    "RecipeExtractor",
    "OpenAIRecipeExtractor",
]
