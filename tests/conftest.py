"""
Shared test fixtures for the FloraLens test suite.

Provides:
- A sample plant record (Snake Plant) in wire and domain form
- Stub cloud backend, local language model and image classifier
- A wired ServiceContainer / orchestrator built from the stubs
- A Flask app and test client using that container

No network access or model weights are needed.

Usage:
    def test_example(orchestrator, local_model):
        local_model.prompt_error = RuntimeError("boom")
        ...
"""

from __future__ import annotations

import json
import logging
from io import BytesIO
from typing import Any, Sequence

import pytest
from PIL import Image

from floralens.config import AppConfig
from floralens.domain.exceptions import ModelNotLoadedError
from floralens.domain.plant import PlantRecord
from floralens.domain.session import RequestContext
from floralens.services.ai.llm_backends import CloudBackend, LLMResponse
from floralens.services.ai.local_models import Availability, LocalLanguageModel, LocalModelSession
from floralens.services.application.connectivity import ConnectivityMonitor

# ---------------------------------------------------------------------------
# Logging - keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("floralens").setLevel(logging.WARNING)
logging.getLogger("werkzeug").setLevel(logging.WARNING)


SNAKE_PLANT: dict[str, Any] = {
    "commonName": "Snake Plant",
    "scientificName": "Dracaena trifasciata",
    "description": "A hardy succulent with stiff, upright, sword-shaped leaves.",
    "careInstructions": {
        "water": "Every 2-3 weeks; let the soil dry out completely.",
        "light": "Low to bright indirect light.",
        "soil": "Well-draining cactus mix.",
        "humidity": "Average household humidity.",
        "temperature": "15-29°C",
    },
    "petFriendly": False,
    "funFact": "It releases oxygen at night.",
}


# ========================== Stubs ==========================================


class StubCloudBackend(CloudBackend):
    """Records every call; returns canned text or raises ``error``."""

    def __init__(self, structured_text: str = "", chat_text: str = "Water it every two weeks."):
        super().__init__(api_key="test-key", model="stub-model")
        self.structured_text = structured_text
        self.chat_text = chat_text
        self.error: Exception | None = None
        self.structured_calls: list[dict[str, Any]] = []
        self.chat_calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "stub"

    def _create_client(self) -> Any:
        return object()

    def generate_structured(self, instruction, image, schema) -> LLMResponse:
        self.structured_calls.append({"instruction": instruction, "image": image, "schema": schema})
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.structured_text, model=self.model)

    def chat(self, system_instruction, history: Sequence, message: str) -> LLMResponse:
        self.chat_calls.append(
            {"system_instruction": system_instruction, "history": list(history), "message": message}
        )
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.chat_text, model=self.model)


class StubSession(LocalModelSession):
    def __init__(self, owner: "StubLocalModel", system_instruction: str):
        self.owner = owner
        self.system_instruction = system_instruction
        self.prompts: list[str] = []
        self._destroyed = False

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def prompt(self, text: str) -> str:
        self.prompts.append(text)
        self.owner.prompts.append(text)
        if self.owner.prompt_error is not None:
            raise self.owner.prompt_error
        return self.owner.reply

    def destroy(self) -> None:
        self._destroyed = True


class StubLocalModel(LocalLanguageModel):
    """In-memory local model; availability and replies are set by the test."""

    def __init__(self, availability: Availability = Availability.READILY, reply: str = "Keep it on the dry side."):
        self.availability = availability
        self.reply = reply
        self.prompt_error: Exception | None = None
        self.create_error: Exception | None = None
        self.capability_error: Exception | None = None
        self.capability_calls = 0
        self.sessions: list[StubSession] = []
        self.prompts: list[str] = []

    @property
    def name(self) -> str:
        return "stub-local"

    def capabilities(self) -> Availability:
        self.capability_calls += 1
        if self.capability_error is not None:
            raise self.capability_error
        return self.availability

    def create(self, system_instruction: str) -> StubSession:
        if self.create_error is not None:
            raise self.create_error
        session = StubSession(self, system_instruction)
        self.sessions.append(session)
        return session


class StubClassifier:
    """Stands in for :class:`VisionClassifier`."""

    model_name = "stub-classifier"

    def __init__(self, labels: Sequence[str] = ("rose", "flower", "plant"), ready: bool = True):
        self.labels = list(labels)
        self.ready = ready
        self.calls: list[Any] = []

    @property
    def is_ready(self) -> bool:
        return self.ready

    def start_loading(self) -> None:
        pass

    def classify(self, image) -> list[str]:
        self.calls.append(image)
        if not self.ready:
            raise ModelNotLoadedError("Offline recognition model not loaded yet")
        return list(self.labels)


# ========================== Data Fixtures ==================================


@pytest.fixture()
def snake_plant_dict() -> dict[str, Any]:
    return json.loads(json.dumps(SNAKE_PLANT))


@pytest.fixture()
def snake_plant(snake_plant_dict) -> PlantRecord:
    return PlantRecord.from_dict(snake_plant_dict)


@pytest.fixture()
def fenced_snake_plant(snake_plant_dict) -> str:
    """Local model output wrapped in a Markdown code fence."""
    return "```json\n" + json.dumps(snake_plant_dict, indent=2) + "\n```"


@pytest.fixture()
def png_bytes() -> bytes:
    buf = BytesIO()
    Image.new("RGB", (16, 16), (40, 160, 70)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def make_context(snake_plant):
    """Factory for :class:`RequestContext` snapshots."""

    def _make(online: bool = True, local_ready: bool = True, plant: PlantRecord | None | str = "default"):
        return RequestContext(
            is_online=online,
            is_local_model_ready=local_ready,
            plant_context=snake_plant if plant == "default" else plant,
        )

    return _make


# ========================== Service Fixtures ===============================


@pytest.fixture()
def cloud_backend(snake_plant_dict) -> StubCloudBackend:
    return StubCloudBackend(structured_text=json.dumps(snake_plant_dict))


@pytest.fixture()
def local_model() -> StubLocalModel:
    return StubLocalModel()


@pytest.fixture()
def classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture()
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor(initial_online=True, interval=0)


@pytest.fixture()
def app_config() -> AppConfig:
    return AppConfig(log_file="", cloud_provider="none", connectivity_check_interval=0)


@pytest.fixture()
def container(app_config, cloud_backend, local_model, classifier, connectivity):
    from floralens.services.container import ServiceContainer

    built = ServiceContainer.build(
        app_config,
        cloud_backend=cloud_backend,
        local_model=local_model,
        classifier=classifier,
        connectivity=connectivity,
        start_background=False,
    )
    yield built
    built.shutdown()


@pytest.fixture()
def orchestrator(container):
    return container.orchestrator


# ========================== Flask Fixtures =================================


@pytest.fixture()
def app(container):
    from floralens import create_app

    flask_app = create_app(container=container)
    flask_app.config["TESTING"] = True
    yield flask_app


@pytest.fixture()
def client(app):
    return app.test_client()
