"""
Serialization between typed wizard payloads and JSON-safe dicts.

Datetimes are written as ISO-8601 with millisecond precision so that a
serialize/deserialize round trip reproduces an equal value.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from party_wizard.domain.messages import ConfirmationRequest, WizardMessage
from party_wizard.domain.models import (
    Guest,
    MenuPlan,
    PartyInfo,
    TimelineTask,
    WizardSession,
    WizardStep,
    coerce_step,
)


def iso_millis(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds")


def parse_iso(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# ---------------------------------------------------------------------------
# Step payloads
# ---------------------------------------------------------------------------


def serialize_party_info(info: Optional[PartyInfo]) -> Optional[Dict[str, Any]]:
    if info is None:
        return None
    data = info.model_dump(mode="json")
    data["date_time"] = iso_millis(info.date_time)
    return data


def deserialize_party_info(data: Optional[Dict[str, Any]]) -> Optional[PartyInfo]:
    if not data:
        return None
    payload = dict(data)
    payload["date_time"] = parse_iso(payload.get("date_time"))
    return PartyInfo.model_validate(payload)


def serialize_guest_list(guests: Iterable[Guest]) -> List[Dict[str, Any]]:
    return [guest.model_dump(mode="json", exclude_none=True) for guest in guests]


def deserialize_guest_list(data: Optional[Iterable[Dict[str, Any]]]) -> Tuple[Guest, ...]:
    return tuple(Guest.model_validate(item) for item in (data or []))


def serialize_menu_plan(plan: Optional[MenuPlan]) -> Optional[Dict[str, Any]]:
    if plan is None:
        return None
    return plan.model_dump(mode="json")


def deserialize_menu_plan(data: Optional[Dict[str, Any]]) -> Optional[MenuPlan]:
    if not data:
        return None
    return MenuPlan.model_validate(data)


def serialize_timeline(tasks: Optional[Iterable[TimelineTask]]) -> Optional[List[Dict[str, Any]]]:
    if tasks is None:
        return None
    return [task.model_dump(mode="json") for task in tasks]


def deserialize_timeline(data: Optional[Iterable[Dict[str, Any]]]) -> Optional[Tuple[TimelineTask, ...]]:
    if data is None:
        return None
    return tuple(TimelineTask.model_validate(item) for item in data)


PAYLOAD_SERIALIZERS = {
    "party_info": serialize_party_info,
    "guest_list": serialize_guest_list,
    "menu_plan": serialize_menu_plan,
    "timeline": serialize_timeline,
}


def serialize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a partial update; payload fields go through their serializer."""
    out: Dict[str, Any] = {}
    for key, value in fields.items():
        serializer = PAYLOAD_SERIALIZERS.get(key)
        if serializer is not None:
            out[key] = serializer(value)
        elif isinstance(value, datetime):
            out[key] = iso_millis(value)
        elif isinstance(value, WizardStep):
            out[key] = value.value
        else:
            out[key] = value
    return out


# ---------------------------------------------------------------------------
# Session rows
# ---------------------------------------------------------------------------


def serialize_session(session: WizardSession) -> Dict[str, Any]:
    return {
        "id": session.id,
        "owner_id": session.owner_id,
        "current_step": session.current_step.value,
        "furthest_step_index": session.furthest_step_index,
        "status": session.status,
        "party_info": serialize_party_info(session.party_info),
        "guest_list": serialize_guest_list(session.guest_list),
        "menu_plan": serialize_menu_plan(session.menu_plan),
        "timeline": serialize_timeline(session.timeline),
        "party_id": session.party_id,
        "created_at": iso_millis(session.created_at),
        "updated_at": iso_millis(session.updated_at),
    }


def deserialize_session(row: Dict[str, Any]) -> WizardSession:
    """Build a WizardSession from a stored row.

    An unrecognized ``current_step`` raises UnknownStepError rather than a
    generic validation error so the turn aborts with an explicit reason.
    """
    return WizardSession(
        id=row["id"],
        owner_id=row["owner_id"],
        current_step=coerce_step(row.get("current_step") or "party-info"),
        furthest_step_index=int(row.get("furthest_step_index") or 0),
        status=row.get("status") or "active",
        party_info=deserialize_party_info(row.get("party_info")),
        guest_list=deserialize_guest_list(row.get("guest_list")),
        menu_plan=deserialize_menu_plan(row.get("menu_plan")),
        timeline=deserialize_timeline(row.get("timeline")),
        party_id=row.get("party_id"),
        created_at=parse_iso(row["created_at"]),
        updated_at=parse_iso(row["updated_at"]),
    )


# ---------------------------------------------------------------------------
# Messages and confirmation requests
# ---------------------------------------------------------------------------


def serialize_message(message: WizardMessage) -> Dict[str, Any]:
    data = message.model_dump(mode="json")
    data["created_at"] = iso_millis(message.created_at)
    return data


def deserialize_message(data: Dict[str, Any]) -> WizardMessage:
    return WizardMessage.model_validate(data)


def serialize_confirmation(request: Optional[ConfirmationRequest]) -> Optional[Dict[str, Any]]:
    if request is None:
        return None
    return request.model_dump(mode="json")


def deserialize_confirmation(data: Optional[Dict[str, Any]]) -> Optional[ConfirmationRequest]:
    if not data:
        return None
    return ConfirmationRequest.model_validate(data)


__all__ = [
    "iso_millis",
    "parse_iso",
    "serialize_party_info",
    "deserialize_party_info",
    "serialize_guest_list",
    "deserialize_guest_list",
    "serialize_menu_plan",
    "deserialize_menu_plan",
    "serialize_timeline",
    "deserialize_timeline",
    "serialize_fields",
    "serialize_session",
    "deserialize_session",
    "serialize_message",
    "deserialize_message",
    "serialize_confirmation",
    "deserialize_confirmation",
]
