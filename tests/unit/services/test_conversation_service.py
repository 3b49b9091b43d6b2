"""
ConversationService tests: greeting, local session lifecycle, local → cloud
fallback and the one-reply-per-message rule.
"""

from __future__ import annotations

import json

import pytest

from floralens.domain.conversation import Role
from floralens.domain.exceptions import ProviderError, ValidationError
from floralens.domain.session import ChatMode
from floralens.services.ai.conversation import (
    EMPTY_REPLY_FALLBACK,
    GENERIC_GREETING,
    OFFLINE_LOCAL_FAILURE_REPLY,
    OFFLINE_UNAVAILABLE_REPLY,
    PERSONA,
    CloudConversationStrategy,
    ConversationService,
    LocalConversationStrategy,
    greeting_for,
)


@pytest.fixture()
def service(cloud_backend, local_model):
    return ConversationService(
        cloud=CloudConversationStrategy(cloud_backend),
        local=LocalConversationStrategy(local_model),
    )


def _model_turns(service) -> int:
    return sum(1 for turn in service.history if turn.role is Role.MODEL)


# ========================== Greeting =======================================


def test_greeting_names_the_plant(snake_plant):
    assert greeting_for(snake_plant) == (
        "Hi! I see you're interested in the Snake Plant. What would you like to know about it?"
    )


def test_generic_greeting_without_plant():
    assert greeting_for(None) == GENERIC_GREETING


def test_start_seeds_greeting_and_local_session(service, make_context, local_model):
    turn = service.start(make_context())

    assert service.history == (turn,)
    assert turn.role is Role.MODEL
    assert service.has_local_session
    instruction = local_model.sessions[0].system_instruction
    assert instruction.startswith(PERSONA)
    assert "Snake Plant" in instruction
    assert "Water:" in instruction and "Light:" in instruction


def test_start_without_local_model_opens_no_session(service, make_context, local_model):
    service.start(make_context(local_ready=False))

    assert not service.has_local_session
    assert local_model.sessions == []


# ========================== Local path =====================================


def test_local_ready_uses_no_cloud_calls(service, make_context, cloud_backend, local_model):
    ctx = make_context(online=True)
    service.start(ctx)

    reply = service.send("How much light?", ctx, ChatMode.LOCAL)

    assert reply.answered_by == "local"
    assert reply.turn.text == local_model.reply
    assert cloud_backend.chat_calls == []
    # Only the new message goes to the stateful session
    assert local_model.sessions[0].prompts == ["How much light?"]
    assert [t.role for t in service.history] == [Role.MODEL, Role.USER, Role.MODEL]


def test_local_failure_online_falls_back_to_cloud_once(service, make_context, cloud_backend, local_model):
    ctx = make_context(online=True)
    service.start(ctx)
    local_model.prompt_error = RuntimeError("context overflow")
    before = _model_turns(service)

    reply = service.send("Is it safe for cats?", ctx, ChatMode.LOCAL)

    assert reply.answered_by == "cloud_fallback"
    assert len(cloud_backend.chat_calls) == 1
    assert _model_turns(service) == before + 1
    sent = cloud_backend.chat_calls[0]
    assert sent["message"] == "Is it safe for cats?"
    assert [t.role for t in sent["history"]] == [Role.MODEL]
    assert local_model.sessions[0].is_destroyed
    assert not service.has_local_session


def test_local_failure_offline_apologises(service, make_context, cloud_backend, local_model):
    ctx = make_context(online=False)
    service.start(ctx)
    local_model.prompt_error = RuntimeError("boom")

    reply = service.send("Repot when?", ctx, ChatMode.LOCAL)

    assert reply.answered_by == "static"
    assert reply.turn.text == OFFLINE_LOCAL_FAILURE_REPLY
    assert cloud_backend.chat_calls == []


def test_session_is_recreated_after_failure(service, make_context, local_model):
    ctx = make_context(online=False)
    service.start(ctx)
    local_model.prompt_error = RuntimeError("boom")
    service.send("first", ctx, ChatMode.LOCAL)
    local_model.prompt_error = None

    reply = service.send("second", ctx, ChatMode.LOCAL)

    assert reply.answered_by == "local"
    assert len(local_model.sessions) == 2


def test_empty_local_output_falls_back(service, make_context, cloud_backend, local_model):
    ctx = make_context(online=True)
    service.start(ctx)
    local_model.reply = "   "

    reply = service.send("hello", ctx, ChatMode.LOCAL)

    assert reply.answered_by == "cloud_fallback"
    assert len(cloud_backend.chat_calls) == 1


def test_session_creation_failure_disables_local(service, make_context, local_model):
    local_model.create_error = RuntimeError("no memory")

    service.start(make_context())

    assert not service.local_enabled
    assert not service.has_local_session


def test_context_change_replaces_session(service, make_context, snake_plant_dict, local_model):
    from floralens.domain.plant import PlantRecord

    service.start(make_context())
    snake_plant_dict["commonName"] = "Aloe Vera"
    aloe = PlantRecord.from_dict(snake_plant_dict)

    service.send("and this one?", make_context(plant=aloe), ChatMode.LOCAL)

    assert local_model.sessions[0].is_destroyed
    assert "Aloe Vera" in local_model.sessions[1].system_instruction
    assert service.plant_context is aloe


def test_close_is_idempotent(service, make_context, local_model):
    service.start(make_context())

    service.close()
    service.close()

    assert local_model.sessions[0].is_destroyed
    assert not service.has_local_session


# ========================== Cloud path =====================================


def test_cloud_instruction_embeds_full_record(service, make_context, cloud_backend, snake_plant):
    ctx = make_context(local_ready=False)
    service.start(ctx)

    reply = service.send("Does it flower?", ctx, ChatMode.CLOUD)

    assert reply.answered_by == "cloud"
    instruction = cloud_backend.chat_calls[0]["system_instruction"]
    assert instruction.startswith(PERSONA)
    assert "Dracaena trifasciata" in instruction
    assert json.dumps(snake_plant.to_dict()) in instruction


def test_cloud_history_is_replayed_in_full(service, make_context, cloud_backend):
    ctx = make_context(local_ready=False)
    service.start(ctx)
    service.send("one", ctx, ChatMode.CLOUD)

    service.send("two", ctx, ChatMode.CLOUD)

    history = cloud_backend.chat_calls[1]["history"]
    assert [t.text for t in history][1:] == ["one", cloud_backend.chat_text]


def test_cloud_empty_reply_uses_fallback_text(service, make_context, cloud_backend):
    ctx = make_context(local_ready=False)
    service.start(ctx)
    cloud_backend.chat_text = ""

    reply = service.send("hi", ctx, ChatMode.CLOUD)

    assert reply.turn.text == EMPTY_REPLY_FALLBACK


def test_cloud_error_propagates_after_user_turn(service, make_context, cloud_backend):
    ctx = make_context(local_ready=False)
    service.start(ctx)
    cloud_backend.error = ProviderError("timeout")

    with pytest.raises(ProviderError):
        service.send("hi", ctx, ChatMode.CLOUD)

    assert service.history[-1].role is Role.USER


def test_unavailable_mode_replies_statically(service, make_context, cloud_backend):
    ctx = make_context(online=False, local_ready=False)
    service.start(ctx)

    reply = service.send("hi", ctx, ChatMode.UNAVAILABLE)

    assert reply.answered_by == "static"
    assert reply.turn.text == OFFLINE_UNAVAILABLE_REPLY
    assert cloud_backend.chat_calls == []


def test_empty_message_is_rejected(service, make_context):
    ctx = make_context()
    service.start(ctx)

    with pytest.raises(ValidationError):
        service.send("   ", ctx, ChatMode.LOCAL)

    assert len(service.history) == 1
