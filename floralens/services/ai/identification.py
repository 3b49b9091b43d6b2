"""
Identification Service
======================
Turns a photo (online) or a list of classifier labels (offline) into a
normalized :class:`PlantRecord`.

Two interchangeable strategies implement :class:`IdentificationStrategy`:

* :class:`CloudIdentificationStrategy` - image + instruction sent to a cloud
  multimodal backend with output constrained to :data:`PLANT_RECORD_SCHEMA`.
* :class:`LocalIdentificationStrategy` - labels embedded in a prompt for the
  on-device language model; output is de-fenced, parsed and validated after
  the fact because local models offer no schema enforcement.

Only one strategy runs per request; the orchestrator picks it.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from floralens.domain.exceptions import (
    ConfigurationError,
    EmptyResponseError,
    LocalGenerationError,
    NoObjectDetectedError,
    ProviderError,
)
from floralens.domain.plant import PlantRecord

if TYPE_CHECKING:
    from floralens.services.ai.llm_backends import CloudBackend
    from floralens.services.ai.local_models import LocalLanguageModel
    from floralens.utils.images import ImagePayload

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Output contract
# ---------------------------------------------------------------------------

PLANT_RECORD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "commonName": {"type": "string"},
        "scientificName": {"type": "string"},
        "description": {"type": "string"},
        "petFriendly": {"type": "boolean"},
        "funFact": {"type": "string"},
        "careInstructions": {
            "type": "object",
            "properties": {
                "water": {"type": "string"},
                "light": {"type": "string"},
                "soil": {"type": "string"},
                "humidity": {"type": "string"},
                "temperature": {"type": "string"},
            },
            "required": ["water", "light", "soil", "humidity", "temperature"],
            "additionalProperties": False,
        },
    },
    "required": ["commonName", "scientificName", "description", "careInstructions", "petFriendly", "funFact"],
    "additionalProperties": False,
}

_CLOUD_INSTRUCTION = """\
Identify this plant from the image. Provide detailed care instructions.
Return the result as a structured JSON object exactly matching the schema provided.
Ensure 'petFriendly' is a boolean indicating if it is safe for cats and dogs."""

_LOCAL_SYSTEM_INSTRUCTION = (
    "You are FloraLens, an expert botanist. You answer only with valid JSON, no prose and no markdown."
)

_LOCAL_PROMPT_TEMPLATE = """\
An offline image classifier looked at a photo and suggested these labels, most likely first: {labels}.
Decide which plant the photo most likely shows and describe it.

Respond ONLY with a JSON object of exactly this shape:
{{
  "commonName": "<string>",
  "scientificName": "<string>",
  "description": "<string>",
  "careInstructions": {{
    "water": "<string>",
    "light": "<string>",
    "soil": "<string>",
    "humidity": "<string>",
    "temperature": "<string>"
  }},
  "petFriendly": <true or false, safe for cats and dogs>,
  "funFact": "<string>"
}}"""

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers (```json / ```) from model output."""
    return _FENCE_RE.sub("", text).strip()


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LabelSource:
    """Ranked classifier labels, most confident first."""

    labels: tuple[str, ...]

    @classmethod
    def of(cls, labels) -> "LabelSource":
        return cls(labels=tuple(labels))


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class IdentificationStrategy(ABC):
    """Common contract: ``identify(source) -> PlantRecord``."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier, e.g. ``"cloud"``."""

    @abstractmethod
    def identify(self, source: Any) -> PlantRecord:
        """Produce a validated :class:`PlantRecord` from *source*."""


class CloudIdentificationStrategy(IdentificationStrategy):
    """
    Identify a plant from raw image bytes with a cloud multimodal model.

    Errors are surfaced unmodified and never retried:

    * :class:`ConfigurationError` - no backend / no API key
    * :class:`ProviderError` - transport, auth, or malformed JSON
    * :class:`EmptyResponseError` - provider returned no text
    """

    def __init__(self, backend: "CloudBackend" | None):
        self._backend = backend

    @property
    def name(self) -> str:
        return "cloud"

    @property
    def is_available(self) -> bool:
        return self._backend is not None and self._backend.is_configured

    def identify(self, source: "ImagePayload") -> PlantRecord:
        if self._backend is None:
            raise ConfigurationError("No cloud provider configured (CLOUD_PROVIDER=none)")

        response = self._backend.generate_structured(_CLOUD_INSTRUCTION, source, PLANT_RECORD_SCHEMA)
        text = (response.text or "").strip()
        if not text:
            raise EmptyResponseError("No response text from API")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ProviderError(f"Provider returned malformed JSON: {exc}") from exc

        record = PlantRecord.from_dict(data, error_cls=ProviderError)
        logger.info(
            "Cloud identification: %s (%s) in %.0f ms",
            record.common_name,
            record.scientific_name,
            response.latency_ms,
        )
        return record


class LocalIdentificationStrategy(IdentificationStrategy):
    """
    Identify a plant offline from classifier labels with the local model.

    The local session is scoped to a single call and destroyed on every exit
    path.
    """

    def __init__(self, local_model: "LocalLanguageModel" | None):
        self._local_model = local_model

    @property
    def name(self) -> str:
        return "local"

    def identify(self, source: LabelSource) -> PlantRecord:
        labels = [label for label in source.labels if label and label.strip()]
        if not labels:
            raise NoObjectDetectedError("Could not identify object in offline mode.")

        if self._local_model is None:
            raise LocalGenerationError("No local language model configured")

        prompt = self.build_prompt(labels)
        try:
            with self._local_model.session(_LOCAL_SYSTEM_INSTRUCTION) as session:
                raw = session.prompt(prompt)
        except LocalGenerationError:
            raise
        except Exception as exc:
            raise LocalGenerationError(f"Local generation failed: {exc}") from exc

        record = self.parse(raw)
        logger.info("Local identification from %s: %s", labels, record.common_name)
        return record

    @staticmethod
    def build_prompt(labels: list[str]) -> str:
        return _LOCAL_PROMPT_TEMPLATE.format(labels=", ".join(labels))

    @staticmethod
    def parse(raw: str) -> PlantRecord:
        """
        De-fence, parse and validate local model output.

        Raises:
            LocalGenerationError: Output is empty, not JSON, or incomplete
        """
        cleaned = strip_code_fences(raw or "")
        if not cleaned:
            raise LocalGenerationError("Local model returned no text")
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            logger.warning("Local model output was not valid JSON: %.200s", cleaned)
            raise LocalGenerationError(f"Local model returned unparsable output: {exc}") from exc
        return PlantRecord.from_dict(data, error_cls=LocalGenerationError)
