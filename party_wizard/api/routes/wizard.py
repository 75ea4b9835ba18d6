"""
MODULE: party_wizard/api/routes/wizard.py
PURPOSE: Party wizard HTTP endpoints.

ROUTES:
    GET  /api/parties/wizard/session                 - Active session (created on demand) + step messages
    GET  /api/parties/wizard/session/{id}            - Session by id
    GET  /api/parties/wizard/session/{id}/progress   - Progress bar state
    POST /api/parties/wizard/session/new             - Abandon the active session and start over
    PUT  /api/parties/wizard/session/{id}/step       - Navigate to a reached step
    POST /api/parties/wizard/chat                    - One turn, streamed as server-sent events
    POST /api/parties/wizard/complete                - Complete the session

The owner is taken from the X-User-Id header; authentication happens in
front of this service.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from party_wizard.activity.progress import get_progress
from party_wizard.domain.messages import ConfirmationDecision, IncomingMessage, StreamEvent, WizardMessage
from party_wizard.domain.models import WizardSession
from party_wizard.domain.serialization import serialize_message, serialize_session
from party_wizard.errors import (
    PersistenceError,
    SessionClosedError,
    SessionIncompleteError,
    SessionNotFoundError,
    StepLockedError,
    UnknownStepError,
    WizardError,
)
from party_wizard.workflows.runtime.orchestrator import WizardOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/parties/wizard", tags=["wizard"])


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    session_id: str
    message: IncomingMessage
    confirmation_decision: Optional[ConfirmationDecision] = None
    step: Optional[str] = None


class StepChangeRequest(BaseModel):
    step: str


class CompleteRequest(BaseModel):
    session_id: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_orchestrator(request: Request) -> WizardOrchestrator:
    return request.app.state.orchestrator


def get_owner_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def _http_error(exc: WizardError) -> HTTPException:
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=404, detail="Session not found")
    if isinstance(exc, (SessionClosedError, StepLockedError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (UnknownStepError, SessionIncompleteError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, PersistenceError):
        logger.error("[WIZARD][API] persistence failure: %s", exc)
        return HTTPException(status_code=503, detail="Session storage unavailable")
    logger.exception("[WIZARD][API] unexpected wizard error: %s", exc)
    return HTTPException(status_code=500, detail="Wizard error")


def _session_payload(session: WizardSession, messages: Optional[List[WizardMessage]] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"session": serialize_session(session)}
    if messages is not None:
        payload["messages"] = [serialize_message(message) for message in messages]
    return payload


def _sse(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.model_dump(mode='json'), ensure_ascii=False)}\n\n"


# ---------------------------------------------------------------------------
# Session Endpoints
# ---------------------------------------------------------------------------


@router.get("/session")
async def get_active_session(
    owner_id: str = Depends(get_owner_id),
    orchestrator: WizardOrchestrator = Depends(get_orchestrator),
):
    """Get the owner's active session, creating one if none exists."""
    try:
        session, messages = orchestrator.get_or_create_session(owner_id)
    except WizardError as exc:
        raise _http_error(exc)
    return _session_payload(session, messages)


@router.get("/session/{session_id}")
async def get_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    orchestrator: WizardOrchestrator = Depends(get_orchestrator),
):
    try:
        session = orchestrator.get_session(session_id, owner_id)
    except WizardError as exc:
        raise _http_error(exc)
    return _session_payload(session)


@router.get("/session/{session_id}/progress")
async def get_session_progress(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    orchestrator: WizardOrchestrator = Depends(get_orchestrator),
):
    try:
        session = orchestrator.get_session(session_id, owner_id)
    except WizardError as exc:
        raise _http_error(exc)
    return get_progress(session)


@router.post("/session/new")
async def start_new_session(
    owner_id: str = Depends(get_owner_id),
    orchestrator: WizardOrchestrator = Depends(get_orchestrator),
):
    """Abandon the active session (if any) and start a fresh one."""
    try:
        session = orchestrator.start_new_session(owner_id)
    except WizardError as exc:
        raise _http_error(exc)
    return _session_payload(session, [])


@router.put("/session/{session_id}/step")
async def change_step(
    session_id: str,
    request: StepChangeRequest,
    owner_id: str = Depends(get_owner_id),
    orchestrator: WizardOrchestrator = Depends(get_orchestrator),
):
    try:
        session, messages = orchestrator.change_step(session_id, owner_id, request.step)
    except WizardError as exc:
        raise _http_error(exc)
    return _session_payload(session, messages)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/chat")
async def chat(
    request: ChatRequest,
    owner_id: str = Depends(get_owner_id),
    orchestrator: WizardOrchestrator = Depends(get_orchestrator),
):
    """
    Run one wizard turn and stream its events.

    Errors raised before the first event become HTTP errors; anything after
    streaming has begun is sent as an ``error`` event.
    """
    if request.message.role != "user":
        raise HTTPException(status_code=400, detail="Message must be from user")

    turn = orchestrator.process_turn(
        request.session_id,
        owner_id,
        request.message,
        decision=request.confirmation_decision,
        step=request.step,
    )
    try:
        first = await turn.__anext__()
    except StopAsyncIteration:
        first = None
    except WizardError as exc:
        raise _http_error(exc)

    async def event_stream() -> AsyncIterator[str]:
        if first is not None:
            yield _sse(first)
            try:
                async for event in turn:
                    yield _sse(event)
            except Exception as exc:
                logger.exception("[WIZARD][API] turn failed mid-stream session=%s: %s", request.session_id, exc)
                yield _sse(StreamEvent.error("Something went wrong while processing your message."))
        yield "data: [DONE]\n\n"

    return StreamingResponse(event_stream(), media_type="text/event-stream")


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


@router.post("/complete")
async def complete(
    request: CompleteRequest,
    owner_id: str = Depends(get_owner_id),
    orchestrator: WizardOrchestrator = Depends(get_orchestrator),
):
    try:
        summary = orchestrator.complete_session(request.session_id, owner_id)
    except WizardError as exc:
        raise _http_error(exc)
    return {"success": True, **summary}


__all__ = ["router", "get_orchestrator", "get_owner_id", "ChatRequest", "StepChangeRequest", "CompleteRequest"]
