"""Domain types for FloraLens."""

from floralens.domain.conversation import ConversationTurn, Role
from floralens.domain.plant import CareInstructions, PlantRecord
from floralens.domain.session import ChatMode, IdentificationMode, IdentificationState, RequestContext

__all__ = [
    "CareInstructions",
    "ChatMode",
    "ConversationTurn",
    "IdentificationMode",
    "IdentificationState",
    "PlantRecord",
    "RequestContext",
    "Role",
]
