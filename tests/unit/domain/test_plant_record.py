from __future__ import annotations

import pytest

from floralens.domain.conversation import ConversationTurn, Role
from floralens.domain.exceptions import ProviderError, ValidationError
from floralens.domain.plant import PlantRecord
from floralens.domain.session import RequestContext


def test_from_dict_maps_camel_case_fields(snake_plant_dict):
    record = PlantRecord.from_dict(snake_plant_dict)

    assert record.common_name == "Snake Plant"
    assert record.scientific_name == "Dracaena trifasciata"
    assert record.pet_friendly is False
    assert record.care_instructions.soil == "Well-draining cactus mix."
    assert record.to_dict() == snake_plant_dict


def test_every_text_field_is_non_empty(snake_plant):
    data = snake_plant.to_dict()
    care = data.pop("careInstructions")
    data.pop("petFriendly")

    assert all(value.strip() for value in data.values())
    assert all(value.strip() for value in care.values())


def test_missing_care_field_is_rejected(snake_plant_dict):
    del snake_plant_dict["careInstructions"]["soil"]

    with pytest.raises(ValidationError) as exc_info:
        PlantRecord.from_dict(snake_plant_dict)

    assert "careInstructions.soil" in exc_info.value.detail["errors"]


def test_blank_name_is_rejected(snake_plant_dict):
    snake_plant_dict["commonName"] = "   "

    with pytest.raises(ValidationError):
        PlantRecord.from_dict(snake_plant_dict)


def test_non_object_is_rejected():
    with pytest.raises(ValidationError, match="Expected a JSON object"):
        PlantRecord.from_dict(["Snake Plant"])


def test_error_class_is_selectable(snake_plant_dict):
    del snake_plant_dict["funFact"]

    with pytest.raises(ProviderError):
        PlantRecord.from_dict(snake_plant_dict, error_cls=ProviderError)


def test_conversation_turn_factories():
    user = ConversationTurn.user("Is it toxic?")
    model = ConversationTurn.model("Yes, for cats.")

    assert user.role is Role.USER
    assert model.role is Role.MODEL
    assert user.to_dict()["role"] == "user"
    assert isinstance(user.timestamp, int) and user.timestamp > 0


def test_request_context_summary(snake_plant):
    ctx = RequestContext(is_online=False, is_local_model_ready=True, plant_context=snake_plant)

    assert ctx.to_dict() == {"is_online": False, "is_local_model_ready": True, "plant": "Snake Plant"}
    assert RequestContext(is_online=True, is_local_model_ready=False).to_dict()["plant"] is None
