"""
Identification API
==================

Routes:
- POST /api/identify - Upload a photo (multipart field ``image``) and identify the plant
- GET  /api/identify - Current identification state and plant record
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, request

from floralens.blueprints.api._common import fail as _fail, get_orchestrator, success as _success
from floralens.domain.exceptions import BusyError, FloraLensError
from floralens.domain.session import IdentificationMode
from floralens.utils.http import safe_route
from floralens.utils.images import load_image_payload

logger = logging.getLogger("identify_api")

identify_api = Blueprint("identify_api", __name__, url_prefix="/api")

ONLINE_FAILURE_MESSAGE = "Failed to identify the plant. Please try another clear photo."
OFFLINE_FAILURE_MESSAGE = "Offline identification failed. Try a clearer photo or reconnect to internet."


@identify_api.post("/identify")
@safe_route("Failed to identify plant")
def identify_plant() -> Response:
    """
    Identify the plant in an uploaded photo.

    Online requests go to the cloud provider; offline requests run the
    on-device classifier followed by the local language model. A successful
    identification starts a new conversation about the plant.

    Form fields:
    - image: JPEG / PNG / WebP photo (HEIC is converted to JPEG)
    """
    image_file = request.files.get("image")
    if image_file is None or not image_file.filename:
        return _fail("No image uploaded (expected multipart field 'image')", 400)

    payload = load_image_payload(
        image_file.read(),
        filename=image_file.filename,
        mime_type=image_file.mimetype,
    )

    orchestrator = get_orchestrator()
    try:
        record = orchestrator.identify(payload)
    except BusyError:
        raise
    except FloraLensError as exc:
        mode = orchestrator.last_identification_mode
        offline = mode is IdentificationMode.LOCAL
        logger.warning("Identification failed (%s): %s", type(exc).__name__, exc)
        return _fail(
            OFFLINE_FAILURE_MESSAGE if offline else ONLINE_FAILURE_MESSAGE,
            exc.http_status,
            details={
                "kind": type(exc).__name__,
                "retryable": exc.retryable,
                "guidance": "retry_photo",
                "mode": mode.value if mode else None,
            },
        )

    # A concurrent reset may already have cleared the mode
    mode = orchestrator.last_identification_mode
    history = orchestrator.conversation.history
    return _success(
        {
            "plant": record.to_dict(),
            "mode": mode.value if mode else None,
            "greeting": history[0].to_dict() if history else None,
        }
    )


@identify_api.get("/identify")
@safe_route("Failed to get identification state")
def get_identification() -> Response:
    orchestrator = get_orchestrator()
    record = orchestrator.record
    error = orchestrator.last_error
    mode = orchestrator.last_identification_mode
    return _success(
        {
            "state": orchestrator.state.value,
            "plant": record.to_dict() if record else None,
            "mode": mode.value if mode else None,
            "error": {"kind": type(error).__name__, "retryable": error.retryable} if error else None,
        }
    )
