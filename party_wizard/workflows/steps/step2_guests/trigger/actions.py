"""Guest-list executors and lookup helpers."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import Field

from party_wizard.domain.messages import ConfirmationRequest
from party_wizard.domain.models import Guest, WizardStep
from party_wizard.domain.serialization import serialize_guest_list
from party_wizard.workflows.common.summaries import guest_list_summary
from party_wizard.workflows.common.types import ActionResult, ToolInput, TurnData, TurnState

logger = logging.getLogger(__name__)

_EMAIL_SHAPE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class AddGuestInput(ToolInput):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class RemoveGuestInput(ToolInput):
    index: int = Field(description="0-based guest list index")


def _clean(value: Optional[str]) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def looks_like_email(value: str) -> bool:
    return bool(_EMAIL_SHAPE.match(value))


def normalize_guest_input(payload: AddGuestInput) -> Optional[Guest]:
    """Trim fields and recover a bare name the model put in the email slot.

    Returns None when nothing usable is left.
    """
    name = _clean(payload.name)
    email = _clean(payload.email)
    phone = _clean(payload.phone)

    if email and not looks_like_email(email):
        if not name:
            name = email
        email = None

    if not (name or email or phone):
        return None
    return Guest(name=name, email=email, phone=phone)


def find_guest_match_indexes(
    guests: Sequence[Guest],
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> List[int]:
    """Indexes of guests matching any given field exactly, case-insensitively."""

    def norm(value: Optional[str]) -> str:
        return (value or "").strip().lower()

    name, email, phone = norm(name), norm(email), norm(phone)
    matches = []
    for index, guest in enumerate(guests):
        if email and norm(guest.email) == email:
            matches.append(index)
        elif phone and norm(guest.phone) == phone:
            matches.append(index)
        elif name and norm(guest.name) == name:
            matches.append(index)
    return matches


async def add_guest(state: TurnState, payload: AddGuestInput, *, ticket: Optional[int] = None) -> ActionResult:
    guest = normalize_guest_input(payload)
    if guest is None:
        return ActionResult.fail(
            "Missing guest details.",
            "I need at least a name, email, or phone number to add a guest.",
        )

    def _apply(data: TurnData) -> List[Dict[str, Any]]:
        updated = state.update(guest_list=data.guest_list + (guest,))
        return serialize_guest_list(updated.guest_list)

    guest_list = await state.mutate(_apply, ticket=ticket)
    logger.debug("[WIZARD][GUESTS] added guest=%s total=%s", guest.label, len(guest_list))

    if guest.email or guest.phone:
        message = f"Added {guest.label} to the guest list."
    else:
        message = f"Added {guest.name or 'guest'} to the guest list. You can add contact details later."
    return ActionResult.ok(message, guest_list=guest_list)


async def remove_guest(state: TurnState, payload: RemoveGuestInput, *, ticket: Optional[int] = None) -> ActionResult:
    def _apply(data: TurnData) -> Optional[Guest]:
        guests = list(data.guest_list)
        if payload.index < 0 or payload.index >= len(guests):
            return None
        removed = guests.pop(payload.index)
        state.update(guest_list=tuple(guests))
        return removed

    removed = await state.mutate(_apply, ticket=ticket)
    if removed is None:
        return ActionResult.fail("Invalid guest index", "That guest number is not on the list.")
    return ActionResult.ok(
        f"Removed {removed.label} from the guest list.",
        guest_list=serialize_guest_list(state.data.guest_list),
    )


async def confirm_guest_list(state: TurnState, payload: Any = None, *, ticket: Optional[int] = None) -> ActionResult:
    def _apply(data: TurnData) -> ConfirmationRequest:
        request = ConfirmationRequest(
            step=WizardStep.GUESTS,
            next_step=WizardStep.MENU,
            summary=guest_list_summary(data.guest_list),
            data={"guest_list": serialize_guest_list(data.guest_list)},
        )
        state.issue_confirmation(request)
        return request

    request = await state.mutate(_apply, ticket=ticket)
    return ActionResult.ok("Please confirm the guest list above.", request_id=request.id)


__all__ = [
    "AddGuestInput",
    "RemoveGuestInput",
    "looks_like_email",
    "normalize_guest_input",
    "find_guest_match_indexes",
    "add_guest",
    "remove_guest",
    "confirm_guest_list",
]
