"""
Plant identification record.

``PlantRecord`` is the single normalized result of an identification,
whichever provider produced it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from floralens.domain.exceptions import FloraLensError, ValidationError
from floralens.schemas.plant import PlantRecordSchema


@dataclass(frozen=True)
class CareInstructions:
    """Free-text care guidance; every field is mandatory."""

    water: str
    light: str
    soil: str
    humidity: str
    temperature: str

    def to_dict(self) -> dict[str, str]:
        return {
            "water": self.water,
            "light": self.light,
            "soil": self.soil,
            "humidity": self.humidity,
            "temperature": self.temperature,
        }


@dataclass(frozen=True)
class PlantRecord:
    """
    Normalized identification result.

    Attributes:
        common_name: Everyday name, e.g. ``"Snake Plant"``
        scientific_name: Binomial name
        description: Free-text description
        care_instructions: Water / light / soil / humidity / temperature
        pet_friendly: ``True`` when safe for cats and dogs
        fun_fact: One interesting fact
    """

    common_name: str
    scientific_name: str
    description: str
    care_instructions: CareInstructions
    pet_friendly: bool
    fun_fact: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase wire format used by the providers."""
        return {
            "commonName": self.common_name,
            "scientificName": self.scientific_name,
            "description": self.description,
            "careInstructions": self.care_instructions.to_dict(),
            "petFriendly": self.pet_friendly,
            "funFact": self.fun_fact,
        }

    @classmethod
    def from_dict(
        cls,
        data: Any,
        *,
        error_cls: type[FloraLensError] = ValidationError,
    ) -> "PlantRecord":
        """
        Build a record from provider JSON, enforcing every required field.

        Args:
            data: Parsed JSON (camelCase keys)
            error_cls: Exception raised when validation fails, so each
                provider path can surface its own error kind

        Raises:
            error_cls: If a field is missing, empty, or of the wrong type
        """
        if not isinstance(data, dict):
            raise error_cls(f"Expected a JSON object, got {type(data).__name__}")
        try:
            parsed = PlantRecordSchema.model_validate(data)
        except PydanticValidationError as exc:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
            raise error_cls(
                f"Plant record failed validation: {', '.join(fields)}",
                detail={"errors": fields},
            ) from exc

        care = parsed.care_instructions
        return cls(
            common_name=parsed.common_name,
            scientific_name=parsed.scientific_name,
            description=parsed.description,
            care_instructions=CareInstructions(
                water=care.water,
                light=care.light,
                soil=care.soil,
                humidity=care.humidity,
                temperature=care.temperature,
            ),
            pet_friendly=parsed.pet_friendly,
            fun_fact=parsed.fun_fact,
        )
