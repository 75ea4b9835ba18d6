"""Party-info executors."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pydantic import Field, ValidationError
from pydantic.json_schema import SkipJsonSchema

from party_wizard.domain.messages import ConfirmationRequest
from party_wizard.domain.models import PartyInfo, WizardStep
from party_wizard.domain.serialization import serialize_party_info
from party_wizard.workflows.common.datetime_parse import parse_party_datetime
from party_wizard.workflows.common.summaries import party_info_summary
from party_wizard.workflows.common.types import ActionResult, ToolInput, TurnData, TurnState

logger = logging.getLogger(__name__)

UNPARSEABLE_DATE_MESSAGE = (
    "I couldn't understand that date/time. Please provide a specific date "
    "(e.g., \"Saturday at 7pm\" or \"March 15 at 6pm\")."
)


class ConfirmPartyInfoInput(ToolInput):
    name: str = Field(description="The party name")
    date_time_input: Optional[str] = Field(
        default=None,
        description='Date and time exactly as the user said it, e.g. "next Saturday at 7pm"',
    )
    date_time: Optional[str] = Field(default=None, description="ISO 8601 date/time, only if the user gave an exact one")
    # Set by the deterministic resolver only; never offered to the model.
    resolved_date_time: SkipJsonSchema[Optional[datetime]] = None
    location: Optional[str] = None
    description: Optional[str] = None
    allow_contributions: bool = False


def _resolve_date(payload: ConfirmPartyInfoInput, reference: datetime) -> Optional[datetime]:
    if payload.resolved_date_time is not None:
        return payload.resolved_date_time
    raw = payload.date_time_input or payload.date_time
    if not raw:
        return None
    return parse_party_datetime(raw, reference)


async def confirm_party_info(
    state: TurnState,
    payload: ConfirmPartyInfoInput,
    *,
    ticket: Optional[int] = None,
) -> ActionResult:
    """Store the party details and issue the party-info confirmation request.

    Raw date text is always resolved server-side through the natural-language
    parser against the turn's reference time.
    """
    resolved = _resolve_date(payload, state.reference)
    if resolved is None:
        return ActionResult.fail("Invalid date/time", UNPARSEABLE_DATE_MESSAGE)

    try:
        info = PartyInfo(
            name=payload.name.strip(),
            date_time=resolved,
            location=(payload.location or "").strip() or None,
            description=(payload.description or "").strip() or None,
            allow_contributions=payload.allow_contributions,
        )
    except ValidationError:
        return ActionResult.fail("Missing party name", "I need a name for the party before I can confirm it.")

    def _apply(_: TurnData) -> ConfirmationRequest:
        state.update(party_info=info)
        request = ConfirmationRequest(
            step=WizardStep.PARTY_INFO,
            next_step=WizardStep.GUESTS,
            summary=party_info_summary(info),
            data={"party_info": serialize_party_info(info)},
        )
        state.issue_confirmation(request)
        return request

    request = await state.mutate(_apply, ticket=ticket)
    logger.info("[WIZARD][PARTY_INFO] confirmation issued request=%s", request.id)
    return ActionResult.ok(
        "Please confirm the party details above.",
        party_info=serialize_party_info(info),
        request_id=request.id,
    )


__all__ = ["ConfirmPartyInfoInput", "UNPARSEABLE_DATE_MESSAGE", "confirm_party_info"]
