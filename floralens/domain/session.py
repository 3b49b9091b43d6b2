"""Per-request session context."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from floralens.domain.plant import PlantRecord


class IdentificationState(str, Enum):
    """Lifecycle of the current identification request."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    SUCCESS = "success"
    FAILURE = "failure"


class IdentificationMode(str, Enum):
    """Which pipeline serves an identification request."""

    CLOUD = "cloud"
    LOCAL = "local"


class ChatMode(str, Enum):
    """Which backend serves a chat message."""

    LOCAL = "local"
    CLOUD = "cloud"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RequestContext:
    """
    Snapshot of the signals a service needs to serve one request.

    Built by the orchestrator at request time and passed explicitly into
    every service call; services never read connectivity or capability
    state from anywhere else.
    """

    is_online: bool
    is_local_model_ready: bool
    plant_context: "PlantRecord" | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_online": self.is_online,
            "is_local_model_ready": self.is_local_model_ready,
            "plant": self.plant_context.common_name if self.plant_context else None,
        }
