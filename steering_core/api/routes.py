"""HTTP routes for the steering relay.

Core endpoints:

- POST /start-session   -> deactivate prior configurations, create config + session
- POST /ai-chat         -> relay one slot (A or B) and store the reply
- POST /ai-chat/stream  -> same relay, delivered as typing/chunk/complete events

Everything else is plain CRUD the console uses (sessions, search, delete,
messages, pause, notes, export/import). All routes require
`Authorization: Bearer <token>`.
"""

import json
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Body, Header, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from steering_core.api.api_models import (
    AiChatRequest,
    ExchangeRequest,
    NoteRequest,
    StartSessionRequest,
    TurnCountRequest,
    config_to_dict,
    message_to_dict,
    provider_to_dict,
    session_to_dict,
)
from steering_core.api.service import SteeringService
from steering_core.infrastructure.auth import Authenticator
from steering_core.providers.registry import list_providers
from steering_core.relay.streaming import ExchangeStream
from steering_core.relay.transcript import MEDIA_TYPES


router = APIRouter()


def _service(request: Request) -> SteeringService:
    return request.app.state.service


def _owner(request: Request, authorization: Optional[str]) -> str:
    authenticator: Authenticator = request.app.state.authenticator
    return authenticator.authenticate(authorization)


@router.post("/start-session")
def start_session(
    body: StartSessionRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    session, config = _service(request).start_session(
        owner_id, body.provider, body.api_key, body.model_a, body.model_b
    )
    return {"session": session_to_dict(session), "config": config_to_dict(config)}


@router.post("/ai-chat")
async def ai_chat(
    body: AiChatRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    result = await _service(request).relay_chat(
        owner_id,
        body.session_id,
        [m.to_domain() for m in body.messages],
        body.model_type,
    )
    return {"response": result.content, "model": result.model_used}


async def _sse(stream: ExchangeStream) -> AsyncIterator[str]:
    async for event in stream:
        yield f"event: {event.kind}\ndata: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"


@router.post("/ai-chat/stream")
async def ai_chat_stream(
    body: AiChatRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> StreamingResponse:
    owner_id = _owner(request, authorization)
    stream = _service(request).stream_chat(
        owner_id,
        body.session_id,
        [m.to_domain() for m in body.messages],
        body.model_type,
    )
    return StreamingResponse(_sse(stream), media_type="text/event-stream")


@router.post("/exchange")
async def exchange(
    body: ExchangeRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    return await _service(request).exchange(
        owner_id,
        body.session_id,
        body.message,
        [m.to_domain() for m in body.history_a],
        [m.to_domain() for m in body.history_b],
    )


# --------------------------------------------------------
# Collaborator CRUD
# --------------------------------------------------------

@router.get("/providers")
def providers() -> Dict[str, Any]:
    return {"providers": [provider_to_dict(p) for p in list_providers()]}


@router.get("/configuration/active")
def active_configuration(request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    return {"config": config_to_dict(_service(request).active_configuration(owner_id))}


@router.get("/sessions")
def list_sessions(
    request: Request,
    q: Optional[str] = None,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    return {"sessions": [session_to_dict(s) for s in _service(request).list_sessions(owner_id, q)]}


@router.delete("/sessions/{session_id}")
def delete_session(
    session_id: str,
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    _service(request).delete_session(owner_id, session_id)
    return {"deleted": session_id}


@router.get("/sessions/{session_id}/messages")
def list_messages(
    session_id: str,
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    return {"messages": [message_to_dict(m) for m in _service(request).list_messages(owner_id, session_id)]}


@router.post("/sessions/{session_id}/pause")
def pause(session_id: str, request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    return {"session": session_to_dict(_service(request).pause(owner_id, session_id))}


@router.post("/sessions/{session_id}/resume")
def resume(session_id: str, request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    return {"session": session_to_dict(_service(request).resume(owner_id, session_id))}


@router.put("/sessions/{session_id}/turn-count")
def set_turn_count(
    session_id: str,
    body: TurnCountRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    session = _service(request).set_turn_count(owner_id, session_id, body.turn_count)
    return {"session": session_to_dict(session)}


@router.get("/sessions/{session_id}/usage")
def usage(session_id: str, request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    return {"usage": _service(request).usage(owner_id, session_id).to_dict()}


@router.post("/sessions/{session_id}/notes")
def inject_note(
    session_id: str,
    body: NoteRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    return {"message": message_to_dict(_service(request).inject_note(owner_id, session_id, body.note))}


@router.get("/sessions/{session_id}/export")
def export(
    session_id: str,
    request: Request,
    format: str = "json",
    filter: str = "all",
    metadata: bool = True,
    timestamps: bool = True,
    authorization: Optional[str] = Header(default=None),
) -> PlainTextResponse:
    owner_id = _owner(request, authorization)
    content = _service(request).export(owner_id, session_id, format, filter, metadata, timestamps)
    return PlainTextResponse(
        content,
        media_type=MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="steering-session-{session_id}.{format}"'},
    )


@router.post("/sessions/{session_id}/import")
def import_transcript(
    session_id: str,
    request: Request,
    transcript: Dict[str, Any] = Body(...),
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    owner_id = _owner(request, authorization)
    messages = _service(request).import_transcript(owner_id, session_id, transcript)
    return {"imported": len(messages)}


@router.get("/healthz")
def health_check():
    """
    Simple health check endpoint for uptime monitoring.
    """
    return {"status": "ok"}
