"""Conversation transcript entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from floralens.utils.time import now_millis


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class ConversationTurn:
    """A single immutable transcript entry."""

    role: Role
    text: str
    timestamp: int = field(default_factory=now_millis)

    @classmethod
    def user(cls, text: str) -> "ConversationTurn":
        return cls(role=Role.USER, text=text)

    @classmethod
    def model(cls, text: str) -> "ConversationTurn":
        return cls(role=Role.MODEL, text=text)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "text": self.text, "timestamp": self.timestamp}
