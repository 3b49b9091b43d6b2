"""
Session API
===========

Routes:
- GET  /api/session/status       - Connectivity, model readiness and selected modes
- POST /api/session/connectivity - Host connectivity event ({"online": bool})
- POST /api/session/reset        - Clear the plant and restart the conversation
- GET  /api/health               - Liveness check
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response
from pydantic import ValidationError

from floralens.blueprints.api._common import (
    fail as _fail,
    get_container,
    get_json,
    get_orchestrator,
    success as _success,
    validation_errors,
)
from floralens.schemas import ConnectivityRequest
from floralens.utils.http import safe_route
from floralens.utils.time import iso_now

logger = logging.getLogger("session_api")

session_api = Blueprint("session_api", __name__, url_prefix="/api/session")
health_api = Blueprint("health_api", __name__, url_prefix="/api")


@session_api.get("/status")
@safe_route("Failed to get session status")
def get_status() -> Response:
    return _success(get_orchestrator().status())


@session_api.post("/connectivity")
@safe_route("Failed to update connectivity")
def set_connectivity() -> Response:
    """
    Record a connectivity event from the host.

    JSON body:
    {
        "online": false
    }
    """
    try:
        body = ConnectivityRequest.model_validate(get_json())
    except ValidationError as ve:
        return _fail("Invalid request", 400, details={"errors": validation_errors(ve)})

    orchestrator = get_orchestrator()
    changed = orchestrator.set_online(body.online)
    return _success({"online": body.online, "changed": changed})


@session_api.post("/reset")
@safe_route("Failed to reset session")
def reset_session() -> Response:
    orchestrator = get_orchestrator()
    orchestrator.reset()
    return _success(
        {
            "state": orchestrator.state.value,
            "history": [turn.to_dict() for turn in orchestrator.conversation.history],
        },
        message="Session reset",
    )


@health_api.get("/health")
@safe_route("Health check failed")
def health() -> Response:
    container = get_container()
    return _success(
        {
            "status": "ok",
            "timestamp": iso_now(),
            "environment": container.config.environment,
        }
    )
