from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from floralens.domain.conversation import ConversationTurn
from floralens.domain.exceptions import ConfigurationError, ProviderError
from floralens.services.ai.identification import PLANT_RECORD_SCHEMA
from floralens.services.ai.llm_backends import (
    GeminiBackend,
    OpenAIBackend,
    _to_gemini_schema,
    create_cloud_backend,
)
from floralens.utils.images import ImagePayload

IMAGE = ImagePayload(data=b"fake", mime_type="image/jpeg")


def _openai_response(text: str):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=5, total_tokens=17),
        model="gpt-4o-mini",
    )


def test_gemini_schema_conversion():
    converted = _to_gemini_schema(PLANT_RECORD_SCHEMA)

    assert converted["type"] == "OBJECT"
    assert converted["properties"]["petFriendly"]["type"] == "BOOLEAN"
    assert converted["properties"]["careInstructions"]["properties"]["soil"]["type"] == "STRING"
    assert "additionalProperties" not in converted
    assert "additionalProperties" not in converted["properties"]["careInstructions"]
    # Source schema untouched
    assert PLANT_RECORD_SCHEMA["type"] == "object"


@pytest.mark.parametrize(
    "provider, expected",
    [("gemini", GeminiBackend), ("OpenAI", OpenAIBackend)],
)
def test_factory_builds_backend(provider, expected):
    backend = create_cloud_backend(provider, api_key="")
    assert isinstance(backend, expected)
    assert backend.is_configured is False


@pytest.mark.parametrize("provider", ["none", "", "mystery"])
def test_factory_without_provider(provider):
    assert create_cloud_backend(provider, api_key="key") is None


def test_missing_key_is_configuration_error():
    backend = GeminiBackend(api_key="")

    with pytest.raises(ConfigurationError, match="no API key"):
        backend.generate_structured("identify", IMAGE, PLANT_RECORD_SCHEMA)
    assert backend.initialize() is False


def test_sdk_failure_becomes_provider_error():
    backend = OpenAIBackend(api_key="key")
    client = MagicMock()
    client.chat.completions.create.side_effect = RuntimeError("connection reset")
    backend._client = client

    with pytest.raises(ProviderError) as exc_info:
        backend.chat("system", [], "hello")

    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_openai_chat_maps_roles():
    backend = OpenAIBackend(api_key="key")
    client = MagicMock()
    client.chat.completions.create.return_value = _openai_response("Weekly.")
    backend._client = client
    history = [ConversationTurn.model("Hello!"), ConversationTurn.user("Hi")]

    response = backend.chat("You are FloraLens.", history, "Water?")

    messages = client.chat.completions.create.call_args.kwargs["messages"]
    assert [m["role"] for m in messages] == ["system", "assistant", "user", "user"]
    assert messages[-1]["content"] == "Water?"
    assert response.text == "Weekly."
    assert response.usage["total_tokens"] == 17


def test_openai_structured_sends_image_and_schema():
    backend = OpenAIBackend(api_key="key")
    client = MagicMock()
    client.chat.completions.create.return_value = _openai_response("{}")
    backend._client = client

    backend.generate_structured("identify", IMAGE, PLANT_RECORD_SCHEMA)

    kwargs = client.chat.completions.create.call_args.kwargs
    image_part = kwargs["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert kwargs["response_format"]["json_schema"]["schema"] is PLANT_RECORD_SCHEMA
