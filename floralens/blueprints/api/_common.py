"""
Blueprint Common Utilities
==========================

Shared helper functions for all API blueprints.

Usage:
    from floralens.blueprints.api._common import (
        get_container, get_orchestrator, get_json, success, fail, validation_errors,
    )
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flask import current_app, request
from pydantic import ValidationError

from floralens.utils.http import error_response, success_response

if TYPE_CHECKING:
    from floralens.services.application.orchestrator import PlantSessionOrchestrator
    from floralens.services.container import ServiceContainer

logger = logging.getLogger("api._common")

# ============================================================================
# CONTAINER ACCESS
# ============================================================================


def get_container() -> "ServiceContainer":
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_orchestrator() -> "PlantSessionOrchestrator":
    return get_container().orchestrator


# ============================================================================
# REQUEST HELPERS
# ============================================================================


def get_json() -> dict:
    """Get JSON request body, or an empty dict if not available."""
    return request.get_json(silent=True) or {}


def validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    """JSON-safe view of a pydantic error list."""
    return exc.errors(include_url=False, include_context=False)


# ============================================================================
# RESPONSE HELPERS
# ============================================================================


def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """
    Standard success response wrapper.

    Returns:
        Flask Response with format: {"ok": true, "data": ..., "error": null}
    """
    return success_response(data, status, message=message)


def fail(message: str, status: int = 400, *, details: dict | None = None):
    """
    Standard error response wrapper.

    Returns:
        Flask Response with format: {"ok": false, "data": null, "error": {...}}
    """
    return error_response(message, status, details=details)
