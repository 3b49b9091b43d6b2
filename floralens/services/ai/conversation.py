"""
Conversation Service
====================
Follow-up questions about the identified plant.

Two strategies answer a message:

* :class:`CloudConversationStrategy` - stateless on our side: every call
  opens a fresh provider chat seeded with the full transcript and a system
  instruction embedding the complete plant record.
* :class:`LocalConversationStrategy` - stateful: one long-lived local model
  session per plant context, seeded with a compact system instruction; only
  the new message is sent.

:class:`ConversationService` owns the transcript and the single live local
session, and applies the local → cloud fallback for individual messages.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from floralens.domain.conversation import ConversationTurn
from floralens.domain.exceptions import ConfigurationError, LocalGenerationError, ValidationError
from floralens.domain.session import ChatMode

if TYPE_CHECKING:
    from floralens.domain.plant import PlantRecord
    from floralens.domain.session import RequestContext
    from floralens.services.ai.llm_backends import CloudBackend
    from floralens.services.ai.local_models import LocalLanguageModel, LocalModelSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fixed copy
# ---------------------------------------------------------------------------

PERSONA = "You are FloraLens, an expert botanist and gardening assistant. You are helpful, friendly, and concise."

GENERIC_GREETING = (
    "Hello! I'm your personal gardening expert. Ask me anything about plants, pests, or garden planning!"
)
EMPTY_REPLY_FALLBACK = "I'm sorry, I couldn't generate a response."
OFFLINE_LOCAL_FAILURE_REPLY = "I'm having trouble processing that offline. Please reconnect to the internet."
OFFLINE_UNAVAILABLE_REPLY = "I cannot connect to the cloud right now. Please check your internet connection."
CONNECTION_LOST_REPLY = "Sorry, I seem to have lost my connection to the garden. Please try again shortly."


def greeting_for(plant_context: "PlantRecord" | None) -> str:
    """Opening assistant message for a new conversation."""
    if plant_context is not None:
        return (
            f"Hi! I see you're interested in the {plant_context.common_name}. "
            "What would you like to know about it?"
        )
    return GENERIC_GREETING


@dataclass(frozen=True)
class ChatReply:
    """Assistant turn plus the backend that produced it."""

    turn: ConversationTurn
    answered_by: str  # "local", "cloud", "cloud_fallback" or "static"

    def to_dict(self) -> dict[str, Any]:
        return {**self.turn.to_dict(), "answered_by": self.answered_by}


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class CloudConversationStrategy:
    """Answer with a fresh cloud chat session per message."""

    def __init__(self, backend: "CloudBackend" | None):
        self._backend = backend

    @staticmethod
    def build_system_instruction(plant_context: "PlantRecord" | None) -> str:
        instruction = PERSONA
        if plant_context is not None:
            instruction += (
                f" The user is currently looking at a plant identified as {plant_context.common_name}"
                f" ({plant_context.scientific_name})."
                f" Here are its details: {json.dumps(plant_context.to_dict())}."
                " Use this context to answer specific questions about this plant."
            )
        return instruction

    def send(
        self,
        history: Sequence[ConversationTurn],
        message: str,
        plant_context: "PlantRecord" | None = None,
    ) -> str:
        """
        Send *message* after replaying *history* (which excludes it).

        Returns the reply text, or :data:`EMPTY_REPLY_FALLBACK` when the
        provider answers with nothing.
        """
        if self._backend is None:
            raise ConfigurationError("No cloud provider configured (CLOUD_PROVIDER=none)")
        response = self._backend.chat(
            system_instruction=self.build_system_instruction(plant_context),
            history=list(history),
            message=message,
        )
        text = (response.text or "").strip()
        return text or EMPTY_REPLY_FALLBACK


class LocalConversationStrategy:
    """Answer from a long-lived on-device session."""

    def __init__(self, local_model: "LocalLanguageModel" | None):
        self._local_model = local_model

    @staticmethod
    def build_system_instruction(plant_context: "PlantRecord" | None) -> str:
        # Local context windows are small: description, water, light and pet safety only
        if plant_context is None:
            return PERSONA
        care = plant_context.care_instructions
        pet = "safe" if plant_context.pet_friendly else "not safe"
        return (
            f"{PERSONA} The user is asking about {plant_context.common_name}.\n"
            f"Description: {plant_context.description}\n"
            f"Water: {care.water}\n"
            f"Light: {care.light}\n"
            f"Pets: {pet} for cats and dogs."
        )

    def open_session(self, plant_context: "PlantRecord" | None) -> "LocalModelSession":
        if self._local_model is None:
            raise LocalGenerationError("No local language model configured")
        return self._local_model.create(self.build_system_instruction(plant_context))

    @staticmethod
    def send(session: "LocalModelSession", message: str) -> str:
        try:
            text = session.prompt(message)
        except LocalGenerationError:
            raise
        except Exception as exc:
            raise LocalGenerationError(f"Local session failed: {exc}") from exc
        text = (text or "").strip()
        if not text:
            raise LocalGenerationError("Local model returned no text")
        return text


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ConversationService:
    """
    Transcript owner and local-session lifecycle manager.

    At most one local session is alive at a time. It is created when a
    conversation starts (if the local model is ready), recreated whenever the
    grounding plant context changes, released after a failed prompt, and
    released by :meth:`close`.
    """

    def __init__(
        self,
        cloud: CloudConversationStrategy,
        local: LocalConversationStrategy,
    ):
        self._cloud = cloud
        self._local = local
        self._history: list[ConversationTurn] = []
        self._plant_context: "PlantRecord" | None = None
        self._session: "LocalModelSession" | None = None
        self._local_disabled = False
        # Bumped by start(); a reply from an older conversation is dropped
        self._generation = 0
        self._lock = threading.RLock()

    # -- state --------------------------------------------------------------

    @property
    def history(self) -> tuple[ConversationTurn, ...]:
        with self._lock:
            return tuple(self._history)

    @property
    def plant_context(self) -> "PlantRecord" | None:
        return self._plant_context

    @property
    def generation(self) -> int:
        """Counter identifying the current conversation."""
        return self._generation

    @property
    def has_local_session(self) -> bool:
        with self._lock:
            return self._session is not None

    @property
    def local_enabled(self) -> bool:
        """``False`` once session creation failed for this conversation."""
        return not self._local_disabled

    # -- lifecycle ----------------------------------------------------------

    def start(self, context: "RequestContext") -> ConversationTurn:
        """
        Begin a new conversation grounded in ``context.plant_context``.

        Releases any live session, clears the transcript and appends the
        greeting turn.
        """
        with self._lock:
            self._release_session()
            self._generation += 1
            self._plant_context = context.plant_context
            self._local_disabled = False
            self._history = [ConversationTurn.model(greeting_for(context.plant_context))]
            if context.is_local_model_ready:
                self._open_session()
            return self._history[0]

    def close(self) -> None:
        """Release the local session. Safe to call repeatedly."""
        with self._lock:
            self._release_session()

    def append_model_turn(self, text: str, generation: int | None = None) -> ConversationTurn:
        """
        Append an assistant turn produced outside :meth:`send`.

        When *generation* is given and a new conversation has started since,
        the turn is returned but not recorded.
        """
        turn = ConversationTurn.model(text)
        with self._lock:
            if generation is None or generation == self._generation:
                self._history.append(turn)
        return turn

    # -- messaging ----------------------------------------------------------

    def send(self, message: str, context: "RequestContext", mode: ChatMode) -> ChatReply:
        """
        Append the user *message* and exactly one assistant reply.

        The transcript lock is held only while state is read or written; the
        provider call runs unlocked. If the conversation is restarted while the reply is
        being generated, the reply is returned but not recorded.

        Provider errors from the cloud path propagate after the user turn has
        been recorded; the caller decides what to append in that case.
        """
        message = (message or "").strip()
        if not message:
            raise ValidationError("Message must not be empty")

        with self._lock:
            if not self._history:
                self._history.append(ConversationTurn.model(greeting_for(context.plant_context)))
            if context.plant_context is not self._plant_context:
                self._plant_context = context.plant_context
                self._release_session()

            prior = tuple(self._history)
            self._history.append(ConversationTurn.user(message))
            generation = self._generation

        if mode is ChatMode.LOCAL:
            text, answered_by = self._send_local(prior, message, context)
        elif mode is ChatMode.CLOUD:
            text, answered_by = self._cloud.send(prior, message, context.plant_context), "cloud"
        else:
            text, answered_by = OFFLINE_UNAVAILABLE_REPLY, "static"

        turn = self.append_model_turn(text, generation)
        if generation != self._generation:
            logger.info("Conversation restarted while a reply was generated; reply dropped")
        return ChatReply(turn=turn, answered_by=answered_by)

    # -- internal -----------------------------------------------------------

    def _send_local(
        self,
        prior: tuple[ConversationTurn, ...],
        message: str,
        context: "RequestContext",
    ) -> tuple[str, str]:
        with self._lock:
            session = self._session or self._open_session()
        try:
            if session is None:
                raise LocalGenerationError("Local session unavailable")
            return self._local.send(session, message), "local"
        except LocalGenerationError as exc:
            with self._lock:
                if self._session is session:
                    self._release_session()
            if context.is_online:
                logger.warning("Local AI failed, falling back to cloud: %s", exc)
                return self._cloud.send(prior, message, context.plant_context), "cloud_fallback"
            logger.warning("Local AI failed while offline: %s", exc)
            return OFFLINE_LOCAL_FAILURE_REPLY, "static"

    def _open_session(self) -> "LocalModelSession" | None:
        if self._local_disabled:
            return None
        try:
            self._session = self._local.open_session(self._plant_context)
            logger.debug("Local chat session opened")
        except Exception as exc:
            logger.error("Failed to init local session: %s", exc)
            self._session = None
            self._local_disabled = True
        return self._session

    def _release_session(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            session.destroy()
            logger.debug("Local chat session released")
        except Exception as exc:
            logger.warning("Error releasing local session: %s", exc)
