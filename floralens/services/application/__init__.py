"""Application services: mode selection, connectivity and orchestration."""

from floralens.services.application.connectivity import ConnectivityMonitor
from floralens.services.application.mode_policy import select_chat_mode, select_identification_mode
from floralens.services.application.orchestrator import PlantSessionOrchestrator

__all__ = [
    "ConnectivityMonitor",
    "PlantSessionOrchestrator",
    "select_chat_mode",
    "select_identification_mode",
]
