"""
MODULE: party_wizard/workflows/steps/step1_party_info/trigger/resolver.py
PURPOSE: Deterministic resolution of party-info turns.

Pulls a name, date/time, location, description and contributions flag out of
one utterance. Anything already on the session fills the gaps. Returns an
``Unhandled`` outcome when the text carries neither a date-like token nor a
party cue, so the caller can hand the turn to the model.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from party_wizard.domain.models import PartyInfo
from party_wizard.workflows.common.datetime_parse import has_datetime_signal, parse_party_datetime
from party_wizard.workflows.common.types import Handled, ResolverAction, ResolverOutcome, TurnData, Unhandled

_NAME_CUE = r"(?:called|call(?:\s+(?:it|this))?|name(?:d)?|title)"
_QUOTED_NAME = re.compile(rf"\b{_NAME_CUE}\s*[\"“]([^\"”]{{2,80}})[\"”]", re.IGNORECASE)
_UNQUOTED_NAME = re.compile(rf"\b{_NAME_CUE}\s+([^,.!?\n]{{2,80}})", re.IGNORECASE)
_NAME_TAIL = re.compile(r"\s+(?:at|in|on|this|next)\b.*$", re.IGNORECASE)
_LOCATION = re.compile(
    r"\b(?:at|in)\s+(.{2,80}?)(?=\s+(?:at|in|on|this|next)\b|[,.!?\n]|$)",
    re.IGNORECASE,
)
_BARE_TIME = re.compile(r"^\d{1,2}(?::\d{2})?\s*(am|pm)?$", re.IGNORECASE)
_DESCRIPTION = re.compile(
    r"\b(?:description|details|occasion|it'?s for|this is for)\s*[:-]?\s*([^\n]{3,120})",
    re.IGNORECASE,
)
_NO_CONTRIBUTIONS = re.compile(
    r"\b(no\s+potluck|no\s+contributions?|don'?t\s+bring|without\s+contributions?)\b",
    re.IGNORECASE,
)
_CONTRIBUTIONS = re.compile(
    r"\b(potluck|bring\s+(?:a\s+)?(?:dish|dishes|food)|contributions?\s+(?:are\s+)?(?:welcome|allowed))\b",
    re.IGNORECASE,
)
_PARTY_SIGNAL = re.compile(r"\b(party|birthday|bbq|celebration|dinner|event|gathering)\b", re.IGNORECASE)

_INFERRED_NAMES = (
    (re.compile(r"\bbirthday\b", re.IGNORECASE), "Birthday Party"),
    (re.compile(r"\bbbq\b", re.IGNORECASE), "BBQ Party"),
    (re.compile(r"\bdinner\b", re.IGNORECASE), "Dinner Party"),
    (re.compile(r"\bparty\b", re.IGNORECASE), "Party"),
)

UNPARSEABLE_DATETIME_NAMED = (
    "I couldn't quite parse the date/time. Can you share it like \"Saturday at 7pm\" or \"March 15 at 6pm\"?"
)
UNPARSEABLE_DATETIME = (
    "I couldn't quite parse that date/time. Can you share it like \"Saturday at 7pm\" or \"March 15 at 6pm\"?"
)


def _clean(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    trimmed = value.strip()
    return trimmed or None


def extract_explicit_name(text: str) -> Optional[str]:
    match = _QUOTED_NAME.search(text)
    if match:
        return _clean(match.group(1))
    match = _UNQUOTED_NAME.search(text)
    if not match:
        return None
    return _clean(_NAME_TAIL.sub("", match.group(1)))


def infer_name(text: str) -> Optional[str]:
    for pattern, label in _INFERRED_NAMES:
        if pattern.search(text):
            return label
    return None


def extract_location(text: str) -> Optional[str]:
    """First "at/in <place>" phrase that is not a time or date."""
    for match in _LOCATION.finditer(text):
        candidate = _clean(match.group(1))
        if candidate is None or _BARE_TIME.match(candidate) or has_datetime_signal(candidate):
            continue
        return candidate
    return None


def extract_description(text: str) -> Optional[str]:
    match = _DESCRIPTION.search(text)
    return _clean(match.group(1)) if match else None


def extract_allow_contributions(text: str) -> Optional[bool]:
    # Negative phrasing wins; "no potluck" also contains "potluck".
    if _NO_CONTRIBUTIONS.search(text):
        return False
    if _CONTRIBUTIONS.search(text):
        return True
    return None


def resolve_party_info_turn(text: str, current: TurnData, reference: datetime) -> ResolverOutcome:
    text = (text or "").strip()
    if not text:
        return Unhandled("no-signal")

    existing: Optional[PartyInfo] = current.party_info
    explicit_name = extract_explicit_name(text)
    name = explicit_name or (existing.name if existing else None) or infer_name(text)

    parsed_date = parse_party_datetime(text, reference)
    date_time = parsed_date or (existing.date_time if existing else None)

    location = extract_location(text) or (existing.location if existing else None)
    description = extract_description(text) or (existing.description if existing else None)
    allow = extract_allow_contributions(text)
    if allow is None:
        allow = existing.allow_contributions if existing else False

    date_signal = has_datetime_signal(text)

    if name and date_time:
        payload = {
            "name": name,
            "resolved_date_time": date_time,
            "location": location,
            "description": description,
            "allow_contributions": allow,
        }
        return Handled(
            intent="confirm-party-info",
            assistant_text="Perfect! Let me confirm those party details.",
            actions=(ResolverAction("confirm-party-info", payload),),
        )

    if name:
        if date_signal:
            return Handled("ask-unparseable-datetime", UNPARSEABLE_DATETIME_NAMED)
        return Handled("ask-missing-datetime", f'Great name. When is "{name}" happening?')

    if date_time:
        return Handled(
            "ask-missing-name",
            "Nice, I have the timing. What would you like to call this party?",
        )

    if date_signal and parsed_date is None:
        return Handled("ask-unparseable-datetime", UNPARSEABLE_DATETIME)

    if _PARTY_SIGNAL.search(text):
        return Handled("ask-missing-name", "Fun. What should we call this party, and when is it happening?")

    return Unhandled("no-signal")


__all__ = [
    "extract_explicit_name",
    "infer_name",
    "extract_location",
    "extract_description",
    "extract_allow_contributions",
    "resolve_party_info_turn",
]
