"""
Chat API
========

Routes:
- POST /api/chat - Ask a question about the identified plant
- GET  /api/chat - Conversation transcript
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response
from pydantic import ValidationError

from floralens.blueprints.api._common import (
    fail as _fail,
    get_json,
    get_orchestrator,
    success as _success,
    validation_errors,
)
from floralens.domain.exceptions import BusyError, FloraLensError
from floralens.domain.exceptions import ValidationError as InputError
from floralens.schemas import ChatRequest
from floralens.services.ai.conversation import CONNECTION_LOST_REPLY
from floralens.utils.http import safe_route

logger = logging.getLogger("chat_api")

chat_api = Blueprint("chat_api", __name__, url_prefix="/api")


@chat_api.post("/chat")
@safe_route("Failed to send chat message")
def send_message() -> Response:
    """
    Send a chat message.

    JSON body:
    {
        "message": "How often should I water it?"
    }

    The reply carries ``answered_by``: ``local``, ``cloud``,
    ``cloud_fallback`` (local failed, cloud answered) or ``static``.
    """
    try:
        body = ChatRequest.model_validate(get_json())
    except ValidationError as ve:
        return _fail("Invalid request", 400, details={"errors": validation_errors(ve)})

    orchestrator = get_orchestrator()
    try:
        reply = orchestrator.chat(body.message)
    except (BusyError, InputError):
        raise
    except FloraLensError as exc:
        history = orchestrator.conversation.history
        apology = history[-1] if history and history[-1].text == CONNECTION_LOST_REPLY else None
        return _fail(
            CONNECTION_LOST_REPLY,
            exc.http_status,
            details={
                "kind": type(exc).__name__,
                "retryable": exc.retryable,
                "guidance": "reconnect",
                "reply": apology.to_dict() if apology else None,
            },
        )

    return _success(reply.to_dict())


@chat_api.get("/chat")
@safe_route("Failed to get conversation")
def get_transcript() -> Response:
    orchestrator = get_orchestrator()
    record = orchestrator.record
    return _success(
        {
            "plant": record.common_name if record else None,
            "history": [turn.to_dict() for turn in orchestrator.transcript()],
        }
    )
