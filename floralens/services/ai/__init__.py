"""
AI Services
===========
Cloud backends, on-device models and the identification / conversation
services built on top of them.
"""

from floralens.services.ai.capability_probe import CapabilityProbe
from floralens.services.ai.conversation import (
    ChatReply,
    CloudConversationStrategy,
    ConversationService,
    LocalConversationStrategy,
    greeting_for,
)
from floralens.services.ai.identification import (
    PLANT_RECORD_SCHEMA,
    CloudIdentificationStrategy,
    IdentificationStrategy,
    LabelSource,
    LocalIdentificationStrategy,
    strip_code_fences,
)
from floralens.services.ai.llm_backends import (
    CloudBackend,
    GeminiBackend,
    LLMResponse,
    OpenAIBackend,
    create_cloud_backend,
)
from floralens.services.ai.local_models import (
    Availability,
    LocalLanguageModel,
    LocalModelSession,
    TransformersLanguageModel,
)
from floralens.services.ai.vision_classifier import VisionClassifier, rank_labels

__all__ = [
    "PLANT_RECORD_SCHEMA",
    "Availability",
    "CapabilityProbe",
    "ChatReply",
    "CloudBackend",
    "CloudConversationStrategy",
    "CloudIdentificationStrategy",
    "ConversationService",
    "GeminiBackend",
    "IdentificationStrategy",
    "LLMResponse",
    "LabelSource",
    "LocalConversationStrategy",
    "LocalIdentificationStrategy",
    "LocalLanguageModel",
    "LocalModelSession",
    "OpenAIBackend",
    "TransformersLanguageModel",
    "VisionClassifier",
    "create_cloud_backend",
    "greeting_for",
    "rank_labels",
    "strip_code_fences",
]
