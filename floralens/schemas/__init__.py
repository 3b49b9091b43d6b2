"""Request/response schemas."""

from floralens.schemas.plant import (
    CareInstructionsSchema,
    ChatRequest,
    ConnectivityRequest,
    PlantRecordSchema,
)

__all__ = [
    "CareInstructionsSchema",
    "ChatRequest",
    "ConnectivityRequest",
    "PlantRecordSchema",
]
