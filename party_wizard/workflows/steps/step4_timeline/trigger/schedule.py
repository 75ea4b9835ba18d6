"""Cooking-schedule generation for the timeline step."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from openai import AsyncOpenAI

from party_wizard.config import WizardSettings, get_settings
from party_wizard.domain.models import MenuPlan, PartyInfo, TimelineTask
from party_wizard.domain.serialization import serialize_timeline

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULED_TIME = "09:00"
DEFAULT_DURATION_MINUTES = 30

_CLOCK = re.compile(r"^(\d{1,2}):(\d{2})")

TIMELINE_PROMPT = """Create a cooking timeline for a party.

PARTY DETAILS:
- Serving time: {serving_date} at {serving_time}
- Menu items: {menu_items}

Create a practical timeline that includes:
1. Grocery shopping (1-2 days before)
2. Any advance prep (day before)
3. Day-of cooking tasks with specific times
4. Final prep before guests arrive

For each task:
- days_before_party: 0 = day of party, 1 = day before, etc.
- scheduled_time: 24h format like "09:00"
- duration_minutes: realistic time estimate
- is_phase_start: true for major milestones (shopping, cooking start, final prep)
- phase_description: friendly reminder message for phase starts

Keep it manageable - don't overwhelm with too many tasks."""

ADJUST_PROMPT = """Adjust this cooking timeline based on the user's request.

Current timeline:
{timeline}

Requested changes: {changes}

Return the updated timeline with all tasks (keep unchanged tasks as-is, modify or add/remove as needed)."""

TASKS_JSON_SHAPE = (
    "Return ONLY a JSON object {\"tasks\": [...]} where each task has keys: "
    "recipe_name, description, days_before_party, scheduled_time, "
    "duration_minutes, is_phase_start, phase_description."
)


def _non_negative_int(value: Any, default: int) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return default
    return max(0, number)


def _clock(value: Any) -> str:
    match = _CLOCK.match(str(value or "").strip())
    if not match:
        return DEFAULT_SCHEDULED_TIME
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return DEFAULT_SCHEDULED_TIME
    return f"{hour:02d}:{minute:02d}"


def normalize_timeline_tasks(raw_tasks: Iterable[Any]) -> Tuple[TimelineTask, ...]:
    """Coerce model task dicts into TimelineTasks.

    Tasks without a description are dropped. Missing or malformed times fall
    back to 09:00 and non-positive durations to 30 minutes.
    """
    tasks: List[TimelineTask] = []
    for raw in raw_tasks or []:
        if not isinstance(raw, dict):
            continue
        description = str(raw.get("description") or "").strip()
        if not description:
            continue
        duration = _non_negative_int(raw.get("duration_minutes"), DEFAULT_DURATION_MINUTES)
        phase_description = str(raw.get("phase_description") or "").strip() or None
        tasks.append(
            TimelineTask(
                recipe_id=raw.get("recipe_id") or None,
                recipe_name=str(raw.get("recipe_name") or "").strip() or None,
                description=description,
                days_before_party=_non_negative_int(raw.get("days_before_party"), 0),
                scheduled_time=_clock(raw.get("scheduled_time")),
                duration_minutes=duration or DEFAULT_DURATION_MINUTES,
                is_phase_start=bool(raw.get("is_phase_start")),
                phase_description=phase_description,
            )
        )
    return tuple(tasks)


class ScheduleGenerator(Protocol):
    async def generate(self, party_info: PartyInfo, menu_plan: Optional[MenuPlan]) -> Tuple[TimelineTask, ...]: ...

    async def adjust(
        self,
        timeline: Iterable[TimelineTask],
        changes: str,
        party_info: Optional[PartyInfo],
    ) -> Tuple[TimelineTask, ...]: ...


class OpenAIScheduleGenerator:
    def __init__(self, client: AsyncOpenAI, settings: Optional[WizardSettings] = None) -> None:
        self._client = client
        self._settings = settings or get_settings()

    async def _tasks(self, prompt: str) -> Tuple[TimelineTask, ...]:
        response = await self._client.chat.completions.create(
            model=self._settings.model_for("default"),
            messages=[
                {"role": "system", "content": TASKS_JSON_SHAPE},
                {"role": "user", "content": prompt},
            ],
            temperature=0.2,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content if response.choices else None
        payload: Dict[str, Any] = json.loads(content or "{}")
        return normalize_timeline_tasks(payload.get("tasks") or [])

    async def generate(self, party_info: PartyInfo, menu_plan: Optional[MenuPlan]) -> Tuple[TimelineTask, ...]:
        items = list(menu_plan.item_names) if menu_plan else []
        prompt = TIMELINE_PROMPT.format(
            serving_date=f"{party_info.date_time:%A, %B} {party_info.date_time.day}, {party_info.date_time.year}",
            serving_time=f"{party_info.date_time:%H:%M}",
            menu_items=", ".join(items) if items else "No specific menu - create a general party prep timeline",
        )
        tasks = await self._tasks(prompt)
        logger.info("[WIZARD][TIMELINE] generated %s task(s)", len(tasks))
        return tasks

    async def adjust(
        self,
        timeline: Iterable[TimelineTask],
        changes: str,
        party_info: Optional[PartyInfo],
    ) -> Tuple[TimelineTask, ...]:
        prompt = ADJUST_PROMPT.format(
            timeline=json.dumps(serialize_timeline(timeline) or [], indent=2),
            changes=changes,
        )
        if party_info is not None:
            prompt += f"\n\nThe party starts {party_info.date_time:%Y-%m-%d %H:%M}."
        return await self._tasks(prompt)


__all__ = [
    "DEFAULT_SCHEDULED_TIME",
    "normalize_timeline_tasks",
    "ScheduleGenerator",
    "OpenAIScheduleGenerator",
]
