from __future__ import annotations

import threading
from io import BytesIO

from floralens.domain.exceptions import ProviderError
from floralens.services.ai.local_models import Availability


def _identify(client, png_bytes):
    response = client.post(
        "/api/identify",
        data={"image": (BytesIO(png_bytes), "plant.png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 200


def test_transcript_starts_with_greeting(client):
    data = client.get("/api/chat").get_json()["data"]

    assert data["plant"] is None
    assert len(data["history"]) == 1
    assert data["history"][0]["text"].startswith("Hello! I'm your personal gardening expert.")


def test_chat_after_identification(client, png_bytes, local_model):
    _identify(client, png_bytes)

    response = client.post("/api/chat", json={"message": "How much light does it need?"})

    assert response.status_code == 200
    reply = response.get_json()["data"]
    assert reply["role"] == "model"
    assert reply["text"] == local_model.reply
    assert reply["answered_by"] == "local"

    history = client.get("/api/chat").get_json()["data"]["history"]
    assert [turn["role"] for turn in history] == ["model", "user", "model"]


def test_local_failure_falls_back_to_cloud(client, png_bytes, local_model, cloud_backend):
    _identify(client, png_bytes)
    local_model.prompt_error = RuntimeError("generation crashed")

    response = client.post("/api/chat", json={"message": "Is it toxic to cats?"})

    assert response.status_code == 200
    assert response.get_json()["data"]["answered_by"] == "cloud_fallback"
    assert len(cloud_backend.chat_calls) == 1


def test_chat_failure_returns_apology(client, local_model, cloud_backend):
    local_model.availability = Availability.NO
    cloud_backend.error = ProviderError("connection reset")

    response = client.post("/api/chat", json={"message": "hello"})

    assert response.status_code == 502
    body = response.get_json()
    apology = "Sorry, I seem to have lost my connection to the garden. Please try again shortly."
    assert body["error"]["message"] == apology
    assert body["details"]["guidance"] == "reconnect"
    assert body["details"]["reply"]["text"] == apology


def test_empty_message_rejected(client):
    response = client.post("/api/chat", json={"message": "   "})

    assert response.status_code == 400
    assert response.get_json()["details"]["errors"]


def test_non_object_body_rejected(client):
    response = client.post("/api/chat", json=["hello"])

    assert response.status_code == 400


def test_second_chat_while_replying_is_conflict(client, orchestrator, png_bytes, local_model):
    _identify(client, png_bytes)
    entered = threading.Event()
    release = threading.Event()

    def prompt(text):
        entered.set()
        release.wait(timeout=5)
        return "Bright, indirect light."

    local_model.sessions[-1].prompt = prompt
    worker = threading.Thread(target=orchestrator.chat, args=("Where should it go?",))
    worker.start()
    try:
        assert entered.wait(timeout=5)

        response = client.post("/api/chat", json={"message": "And how much water?"})

        assert response.status_code == 409
        body = response.get_json()
        assert body["ok"] is False
        assert body["error"]["message"] == "A chat reply is already in progress"
    finally:
        release.set()
        worker.join(timeout=5)

    history = client.get("/api/chat").get_json()["data"]["history"]
    assert [turn["text"] for turn in history[1:]] == ["Where should it go?", "Bright, indirect light."]
