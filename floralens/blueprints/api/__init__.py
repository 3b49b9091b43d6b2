"""JSON API blueprints."""

from floralens.blueprints.api.chat import chat_api
from floralens.blueprints.api.identify import identify_api
from floralens.blueprints.api.session import health_api, session_api

__all__ = ["chat_api", "health_api", "identify_api", "session_api"]
