from __future__ import annotations

import atexit
import logging
import threading
from typing import TYPE_CHECKING, Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from floralens.blueprints.api import chat_api, health_api, identify_api, session_api
from floralens.config import apply_overrides, load_config, setup_logging

if TYPE_CHECKING:
    from floralens.services.container import ServiceContainer


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    container: "ServiceContainer" | None = None,
) -> Flask:
    """
    Build the FloraLens Flask application.

    Args:
        config_overrides: ``AppConfig`` field overrides (keys are case-insensitive)
        container: Pre-built service container; built from config when omitted
    """
    config = load_config() if container is None else container.config
    if config_overrides:
        apply_overrides(config, config_overrides)

    # Configure logging early so model loader threads are visible
    setup_logging(debug=config.DEBUG, log_file=config.log_file, level=config.log_level)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    if container is None:
        from floralens.services.container import ServiceContainer

        container = ServiceContainer.build(config)
    flask_app.config["CONTAINER"] = container

    # ── Graceful shutdown ───────────────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    atexit.register(_graceful_shutdown, "atexit")

    # Global JSON error handler for /api/ routes; domain exceptions carry
    # their own ``http_status``.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith("/api/"):
            if isinstance(exc, HTTPException):
                return exc
            raise exc
        from floralens.domain.exceptions import FloraLensError
        from floralens.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status == 413:
                return error_response("Request payload too large", 413)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, FloraLensError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context="unhandled")

    flask_app.register_blueprint(identify_api)
    flask_app.register_blueprint(chat_api)
    flask_app.register_blueprint(session_api)
    flask_app.register_blueprint(health_api)

    for bp_name in flask_app.blueprints:
        logging.debug(" Registered blueprint: %s", bp_name)

    logger = logging.getLogger(__name__)
    logger.info("FloraLens application initialized successfully.")

    return flask_app


__all__ = ["create_app"]
