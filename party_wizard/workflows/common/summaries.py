"""Human-readable confirmation summaries for each step's payload."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from party_wizard.domain.models import Guest, MenuPlan, PartyInfo, TimelineTask

SUMMARY_PREVIEW_LIMIT = 3


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def _preview(labels: Sequence[str], total: int) -> str:
    text = ", ".join(labels[:SUMMARY_PREVIEW_LIMIT])
    return f"{text}..." if total > SUMMARY_PREVIEW_LIMIT else text


def format_party_datetime(value: datetime) -> str:
    """e.g. ``Saturday, February 21, 2026, 7:00 PM``."""
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{value:%A, %B} {value.day}, {value.year}, {hour}:{value.minute:02d} {meridiem}"


def party_info_summary(info: PartyInfo) -> str:
    location = f" at {info.location}" if info.location else ""
    return f"Party: {info.name} on {format_party_datetime(info.date_time)}{location}"


def guest_list_summary(guests: Sequence[Guest]) -> str:
    if not guests:
        return "No guests added yet (you can add them later)"
    return f"{_plural(len(guests), 'guest')}: {_preview([g.label for g in guests], len(guests))}"


def menu_summary(plan: Optional[MenuPlan]) -> str:
    names = list(plan.item_names) if plan else []
    if not names:
        return "No recipes added yet"
    return f"{_plural(len(names), 'recipe')}: {_preview(names, len(names))}"


def timeline_summary(tasks: Optional[Iterable[TimelineTask]]) -> str:
    task_list = list(tasks or ())
    if not task_list:
        return "No timeline tasks created"
    phases = sum(1 for task in task_list if task.is_phase_start)
    return f"{_plural(len(task_list), 'task')} across {_plural(phases, 'phase')}"


__all__ = [
    "format_party_datetime",
    "party_info_summary",
    "guest_list_summary",
    "menu_summary",
    "timeline_summary",
]
