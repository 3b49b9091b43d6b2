"""
Plant Schemas
=============

Validation schemas for identification results and request bodies.

``PlantRecordSchema`` mirrors the JSON contract the providers are asked to
produce (camelCase keys). It is used to validate both schema-constrained
cloud output and free-form local model output.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CareInstructionsSchema(BaseModel):
    """Care instruction block; all five fields are required."""

    model_config = ConfigDict(str_strip_whitespace=True)

    water: str = Field(..., min_length=1)
    light: str = Field(..., min_length=1)
    soil: str = Field(..., min_length=1)
    humidity: str = Field(..., min_length=1)
    temperature: str = Field(..., min_length=1)


class PlantRecordSchema(BaseModel):
    """Identification result as returned by a provider."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    common_name: str = Field(..., alias="commonName", min_length=1)
    scientific_name: str = Field(..., alias="scientificName", min_length=1)
    description: str = Field(..., min_length=1)
    care_instructions: CareInstructionsSchema = Field(..., alias="careInstructions")
    pet_friendly: bool = Field(..., alias="petFriendly")
    fun_fact: str = Field(..., alias="funFact", min_length=1)


class ChatRequest(BaseModel):
    """Request body for ``POST /api/chat``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    message: str = Field(..., min_length=1, max_length=4000, description="User message")


class ConnectivityRequest(BaseModel):
    """Request body for ``POST /api/session/connectivity``."""

    online: bool = Field(..., description="Whether the host currently has network connectivity")

    @field_validator("online", mode="before")
    @classmethod
    def parse_online(cls, v):
        """Accept the usual string spellings sent by form posts."""
        if isinstance(v, str):
            return v.strip().lower() in {"1", "true", "t", "yes", "on", "online"}
        return v
