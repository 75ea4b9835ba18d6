"""
MODULE: party_wizard/workflows/steps/step2_guests/trigger/resolver.py
PURPOSE: Deterministic resolution of guest-list turns (add, remove, close).

A segment without an email or phone is only read as a bare name when the
input looks like a list (an add verb, several lines, or list punctuation),
so ordinary prose is never turned into a guest.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, List, Optional

from party_wizard.workflows.common.types import Handled, ResolverAction, ResolverOutcome, TurnData, Unhandled
from party_wizard.workflows.steps.step2_guests.trigger.actions import find_guest_match_indexes

ADD_SIGNAL = re.compile(r"\b(add|invite|include|put\s+on\s+the\s+list|bring\s+in)\b", re.IGNORECASE)
REMOVE_SIGNAL = re.compile(r"\b(remove|delete|drop|take\s+off)\b", re.IGNORECASE)
DONE_SIGNAL = re.compile(r"\b(done|that'?s\s+all|thats\s+all|no\s+more|ready|move\s+on|proceed)\b", re.IGNORECASE)
SHORT_NEGATIVE = re.compile(r"^(?:no|nope|nah|none)(?:[.!?]+)?$", re.IGNORECASE)

EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"\+?\d[\d().\-\s]{6,}\d")

_LEADING_VERB = re.compile(r"^\s*(?:add|invite|include|also|and|please)\s+", re.IGNORECASE)
_LEADING_GUEST_LABEL = re.compile(r"^\s*(?:guest\s*:?)", re.IGNORECASE)
_NAME_PUNCTUATION = re.compile(r"[-–—:()]")
_ADD_STRUCTURE = re.compile(r"[-@+\d\n;]")
_EXPLICIT_INDEX = re.compile(r"(?:#|number\s*)(\d+)", re.IGNORECASE)
_REMOVE_NUMBER = re.compile(r"\bremove\s+(\d+)\b", re.IGNORECASE)
_REMOVE_NAME = re.compile(r"\bremove\s+([^,.!?\n]{1,60})", re.IGNORECASE)

ORDINALS = ("first", "second", "third", "fourth", "fifth", "sixth", "seventh", "eighth", "ninth", "tenth")

ADD_PREVIEW_LIMIT = 3

REMOVED_TEXT = "Got it. I removed that guest from the list."
AMBIGUOUS_REMOVE_TEXT = "I found more than one matching guest. Which one should I remove?"
MISSING_REMOVE_TEXT = "I couldn't find that guest in the list. Could you share the exact name or email?"
CONFIRM_TEXT = "Wonderful. Here is your guest list for confirmation."
CLARIFY_ADD_TEXT = "Happy to add them. Please share a name, email, or phone for each guest."


def _normalize_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _strip_leading_verbs(value: str) -> str:
    value = _LEADING_VERB.sub("", value, count=1)
    return _LEADING_GUEST_LABEL.sub("", value, count=1).strip()


def parse_segment(segment: str, allow_name_only: bool) -> Optional[Dict[str, str]]:
    working = _strip_leading_verbs(segment)
    if not working:
        return None

    guest: Dict[str, str] = {}
    email = EMAIL_PATTERN.search(working)
    if email:
        guest["email"] = email.group(0)
        working = working.replace(email.group(0), " ", 1)

    phone = PHONE_PATTERN.search(working)
    if phone:
        guest["phone"] = _normalize_whitespace(phone.group(0))
        working = working.replace(phone.group(0), " ", 1)

    name = _normalize_whitespace(_NAME_PUNCTUATION.sub(" ", working))
    if name:
        guest["name"] = name

    if "email" not in guest and "phone" not in guest and not allow_name_only:
        return None
    return guest or None


def parse_guest_entries(text: str) -> List[Dict[str, str]]:
    structured = any(mark in text for mark in ("\n", ";", "-", "–"))
    allow_name_only = bool(ADD_SIGNAL.search(text)) or structured

    if "\n" in text:
        segments = re.split(r"\n+", text)
    elif ";" in text:
        segments = text.split(";")
    elif "," in text and EMAIL_PATTERN.search(text):
        segments = text.split(",")
    else:
        segments = [text]

    guests = []
    for segment in segments:
        parsed = parse_segment(segment.strip(), allow_name_only)
        if parsed:
            guests.append(parsed)
    return guests


def parse_remove_index(text: str) -> Optional[int]:
    """Zero-based index from "#2", "number 2", "remove 2" or an ordinal word."""
    match = _EXPLICIT_INDEX.search(text) or _REMOVE_NUMBER.search(text)
    if match:
        value = int(match.group(1))
        if value > 0:
            return value - 1

    for index, ordinal in enumerate(ORDINALS):
        if re.search(rf"\b{ordinal}\b", text, re.IGNORECASE):
            return index
    return None


def parse_remove_target(text: str) -> Dict[str, Optional[str]]:
    email = EMAIL_PATTERN.search(text)
    phone = PHONE_PATTERN.search(text)
    name = None
    match = _REMOVE_NAME.search(text)
    if match:
        raw = re.sub(r"^(?:guest\s*)", "", match.group(1), flags=re.IGNORECASE)
        raw = re.sub(r"^(?:named\s*)", "", raw, flags=re.IGNORECASE)
        name = _normalize_whitespace(raw)
    return {
        "name": name,
        "email": email.group(0) if email else None,
        "phone": phone.group(0) if phone else None,
    }


def _added_text(guests: List[Dict[str, str]]) -> str:
    labels = [g.get("name") or g.get("email") or g.get("phone") or "guest" for g in guests]
    preview = ", ".join(labels[:ADD_PREVIEW_LIMIT])
    more = " and more" if len(guests) > ADD_PREVIEW_LIMIT else ""
    return f"Added {preview}{more} to the guest list. Anyone else to add?"


def resolve_guests_turn(text: str, current: TurnData, reference: Optional[datetime] = None) -> ResolverOutcome:
    text = (text or "").strip()
    if not text:
        return Unhandled("no-signal")

    if REMOVE_SIGNAL.search(text):
        index = parse_remove_index(text)
        if index is not None:
            return Handled("remove-guest", REMOVED_TEXT, (ResolverAction("remove-guest", {"index": index}),))

        matches = find_guest_match_indexes(current.guest_list, **parse_remove_target(text))
        if len(matches) == 1:
            return Handled("remove-guest", REMOVED_TEXT, (ResolverAction("remove-guest", {"index": matches[0]}),))
        if len(matches) > 1:
            return Handled("clarify-remove-guest", AMBIGUOUS_REMOVE_TEXT)
        return Handled("clarify-remove-guest", MISSING_REMOVE_TEXT)

    guests = parse_guest_entries(text)
    if guests and (ADD_SIGNAL.search(text) or _ADD_STRUCTURE.search(text)):
        return Handled(
            "add-guests",
            _added_text(guests),
            tuple(ResolverAction("add-guest", guest) for guest in guests),
        )

    if DONE_SIGNAL.search(text) or SHORT_NEGATIVE.match(text):
        return Handled("confirm-guest-list", CONFIRM_TEXT, (ResolverAction("confirm-guest-list"),))

    if ADD_SIGNAL.search(text):
        return Handled("clarify-add-guest", CLARIFY_ADD_TEXT)

    return Unhandled("no-signal")


__all__ = [
    "parse_segment",
    "parse_guest_entries",
    "parse_remove_index",
    "parse_remove_target",
    "resolve_guests_turn",
]
