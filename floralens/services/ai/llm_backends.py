"""
Cloud LLM Backend Abstraction Layer
===================================
Pluggable multimodal backends for the online half of FloraLens.

Supported backends
------------------
* **GeminiBackend** - Gemini via the ``google-genai`` SDK (default).
* **OpenAIBackend** - GPT-4o family via the ``openai`` SDK.

Each backend offers the two calls the application needs:

* :meth:`CloudBackend.generate_structured` - image + instruction, output
  constrained to a JSON schema.
* :meth:`CloudBackend.chat` - system instruction + ordered history + new
  message, free-text output.

SDKs are imported lazily so the module never breaks at import time when a
particular SDK is missing. A missing API key is reported as
:class:`ConfigurationError` on the first call rather than at startup, and
every SDK/transport failure is re-raised as :class:`ProviderError` with the
original exception chained.

Quick-start
-----------
::

    from floralens.services.ai.llm_backends import GeminiBackend

    backend = GeminiBackend(api_key="...")
    reply = backend.chat(
        system_instruction="You are FloraLens, an expert botanist.",
        history=[],
        message="How often should I water a fern?",
    )
    print(reply.text)
"""

from __future__ import annotations

import base64
import copy
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Sequence

from floralens.domain.exceptions import ConfigurationError, ProviderError

if TYPE_CHECKING:
    from floralens.domain.conversation import ConversationTurn
    from floralens.utils.images import ImagePayload

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """Standardised wrapper around every backend response."""

    text: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)  # prompt_tokens, completion_tokens, total_tokens
    latency_ms: float = 0.0
    raw: Any = None  # backend-specific raw response object


# ---------------------------------------------------------------------------
# Abstract backend
# ---------------------------------------------------------------------------


class CloudBackend(ABC):
    """
    Abstract base for every cloud backend.

    Subclasses implement :meth:`_create_client`, :meth:`generate_structured`,
    :meth:`chat` and :attr:`name`.
    """

    def __init__(self, api_key: str, model: str, timeout: int = 60):
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client: Any = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier for this backend (e.g. ``"gemini"``)."""

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_configured(self) -> bool:
        """``True`` when an API key is present."""
        return bool(self._api_key)

    @property
    def is_available(self) -> bool:
        """``True`` when the SDK client has been created."""
        return self._client is not None

    @abstractmethod
    def _create_client(self) -> Any:
        """Build the SDK client. May raise ``ImportError``."""

    def initialize(self) -> bool:
        """
        Create the SDK client.

        Returns ``True`` on success; failures are logged, never raised.
        """
        try:
            self._require_client()
            return True
        except ConfigurationError as exc:
            logger.warning("%s backend: %s", self.name, exc)
        return False

    def _require_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ConfigurationError(f"{self.name} backend: no API key provided (set FLORALENS_API_KEY or API_KEY)")
        try:
            self._client = self._create_client()
        except ImportError as exc:
            raise ConfigurationError(f"{self.name} backend: SDK not installed ({exc})") from exc
        logger.info("%s backend initialised (model=%s)", self.name, self._model)
        return self._client

    @abstractmethod
    def generate_structured(
        self,
        instruction: str,
        image: "ImagePayload",
        schema: dict[str, Any],
    ) -> LLMResponse:
        """
        Describe *image* following *instruction*, constrained to *schema*.

        Parameters
        ----------
        instruction:
            Natural-language task description.
        image:
            Raw image bytes and MIME type.
        schema:
            JSON Schema (lower-case types) the output must satisfy.

        Returns
        -------
        LLMResponse - ``text`` holds the JSON document (possibly empty).
        """

    @abstractmethod
    def chat(
        self,
        system_instruction: str,
        history: Sequence["ConversationTurn"],
        message: str,
    ) -> LLMResponse:
        """
        Send *message* in a fresh chat session seeded with *history*.

        *history* is replayed in order and must not include *message*.
        """

    # -- helpers available to all backends ----------------------------------

    def _timed(self, fn, *args, **kwargs):
        """Call *fn* and return ``(result, elapsed_ms)``."""
        t0 = time.perf_counter()
        result = fn(*args, **kwargs)
        return result, (time.perf_counter() - t0) * 1000

    def _call(self, what: str, fn, *args, **kwargs):
        """Run an SDK call, converting any failure into :class:`ProviderError`."""
        try:
            return self._timed(fn, *args, **kwargs)
        except Exception as exc:
            logger.error("%s %s failed: %s", self.name, what, exc)
            raise ProviderError(f"{self.name} {what} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Gemini backend  (google-genai)
# ---------------------------------------------------------------------------


def _to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert a JSON Schema into the OpenAPI subset Gemini accepts."""
    converted = copy.deepcopy(schema)

    def _walk(node: Any) -> None:
        if isinstance(node, dict):
            node.pop("additionalProperties", None)
            if isinstance(node.get("type"), str):
                node["type"] = node["type"].upper()
            for value in node.values():
                _walk(value)
        elif isinstance(node, list):
            for item in node:
                _walk(item)

    _walk(converted)
    return converted


class GeminiBackend(CloudBackend):
    """
    Backend for Google's Gemini API.

    Requires the ``google-genai`` package (``pip install google-genai``).

    Parameters
    ----------
    api_key:
        Gemini API key.
    model:
        Model identifier (default ``gemini-2.5-flash``).
    timeout:
        Request timeout in seconds.
    """

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash", timeout: int = 60):
        super().__init__(api_key=api_key, model=model, timeout=timeout)

    @property
    def name(self) -> str:
        return "gemini"

    def _create_client(self) -> Any:
        from google import genai
        from google.genai import types

        return genai.Client(
            api_key=self._api_key,
            http_options=types.HttpOptions(timeout=self._timeout * 1000),
        )

    def generate_structured(
        self,
        instruction: str,
        image: "ImagePayload",
        schema: dict[str, Any],
    ) -> LLMResponse:
        client = self._require_client()
        from google.genai import types

        response, latency = self._call(
            "structured generation",
            client.models.generate_content,
            model=self._model,
            contents=[
                types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
                instruction,
            ],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=_to_gemini_schema(schema),
            ),
        )
        return self._wrap(response, latency)

    def chat(
        self,
        system_instruction: str,
        history: Sequence["ConversationTurn"],
        message: str,
    ) -> LLMResponse:
        client = self._require_client()
        from google.genai import types

        contents = [
            types.Content(role=turn.role.value, parts=[types.Part.from_text(text=turn.text)]) for turn in history
        ]
        session, _ = self._call(
            "chat session",
            client.chats.create,
            model=self._model,
            config=types.GenerateContentConfig(system_instruction=system_instruction),
            history=contents,
        )
        response, latency = self._call("chat message", session.send_message, message)
        return self._wrap(response, latency)

    def _wrap(self, response: Any, latency: float) -> LLMResponse:
        usage = {}
        meta = getattr(response, "usage_metadata", None)
        if meta is not None:
            usage = {
                "prompt_tokens": meta.prompt_token_count or 0,
                "completion_tokens": meta.candidates_token_count or 0,
                "total_tokens": meta.total_token_count or 0,
            }
        return LLMResponse(
            text=response.text or "",
            model=self._model,
            usage=usage,
            latency_ms=latency,
            raw=response,
        )


# ---------------------------------------------------------------------------
# OpenAI backend  (GPT-4o family)
# ---------------------------------------------------------------------------


class OpenAIBackend(CloudBackend):
    """
    Backend for OpenAI's Chat Completions API.

    Requires the ``openai`` package (``pip install openai``).

    Parameters
    ----------
    api_key:
        OpenAI API key.
    model:
        Vision-capable model identifier (default ``gpt-4o-mini``).
    base_url:
        Optional custom endpoint (e.g. Azure OpenAI or compatible proxy).
    timeout:
        Request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: int = 60,
    ):
        super().__init__(api_key=api_key, model=model, timeout=timeout)
        self._base_url = base_url

    @property
    def name(self) -> str:
        return "openai"

    def _create_client(self) -> Any:
        import openai

        kwargs: dict[str, Any] = {
            "api_key": self._api_key,
            "timeout": self._timeout,
        }
        if self._base_url:
            kwargs["base_url"] = self._base_url
        return openai.OpenAI(**kwargs)

    def generate_structured(
        self,
        instruction: str,
        image: "ImagePayload",
        schema: dict[str, Any],
    ) -> LLMResponse:
        client = self._require_client()
        encoded = base64.b64encode(image.data).decode("ascii")
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": instruction},
                    {"type": "image_url", "image_url": {"url": f"data:{image.mime_type};base64,{encoded}"}},
                ],
            }
        ]
        response, latency = self._call(
            "structured generation",
            client.chat.completions.create,
            model=self._model,
            messages=messages,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "plant_record", "schema": schema, "strict": True},
            },
        )
        return self._wrap(response, latency)

    def chat(
        self,
        system_instruction: str,
        history: Sequence["ConversationTurn"],
        message: str,
    ) -> LLMResponse:
        client = self._require_client()
        messages: list[dict[str, str]] = [{"role": "system", "content": system_instruction}]
        for turn in history:
            role = "assistant" if turn.role.value == "model" else "user"
            messages.append({"role": role, "content": turn.text})
        messages.append({"role": "user", "content": message})

        response, latency = self._call(
            "chat message",
            client.chat.completions.create,
            model=self._model,
            messages=messages,
        )
        return self._wrap(response, latency)

    def _wrap(self, response: Any, latency: float) -> LLMResponse:
        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        return LLMResponse(
            text=text,
            model=response.model,
            usage=usage,
            latency_ms=latency,
            raw=response,
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_cloud_backend(
    provider: str,
    *,
    api_key: str = "",
    model: str = "",
    base_url: str | None = None,
    timeout: int = 60,
) -> CloudBackend | None:
    """
    Factory: create the right cloud backend from a provider name.

    The client is created eagerly when a key is present; without a key the
    backend is still returned so the first call fails with
    :class:`ConfigurationError`.

    Parameters
    ----------
    provider:
        One of ``"gemini"``, ``"openai"``, or ``"none"``.

    Returns
    -------
    A :class:`CloudBackend`, or ``None`` if the provider is ``"none"`` or
    unknown.
    """
    provider = provider.strip().lower()

    if provider in ("none", ""):
        logger.info("Cloud provider set to 'none' - online features disabled")
        return None

    backend: CloudBackend
    if provider == "gemini":
        backend = GeminiBackend(api_key=api_key, model=model or "gemini-2.5-flash", timeout=timeout)
    elif provider == "openai":
        backend = OpenAIBackend(api_key=api_key, model=model or "gpt-4o-mini", base_url=base_url, timeout=timeout)
    else:
        logger.error("Unknown cloud provider '%s'", provider)
        return None

    if backend.is_configured:
        backend.initialize()
    else:
        logger.warning("Cloud backend '%s' has no API key - cloud calls will fail", provider)
    return backend
