"""
Plant Session Orchestrator
==========================
Entry point for the two user-facing operations, identify and chat.

For every request it snapshots connectivity and local-model readiness into a
:class:`RequestContext`, lets :mod:`mode_policy` pick the pipeline and then
drives exactly one strategy. It also owns the identification state machine
(``IDLE → ANALYZING → SUCCESS | FAILURE``), the active plant record, and one
busy flag per operation kind.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

from floralens.domain.exceptions import BusyError, FloraLensError, ModelNotLoadedError, ValidationError
from floralens.domain.session import IdentificationMode, IdentificationState, RequestContext
from floralens.services.ai.conversation import CONNECTION_LOST_REPLY, ChatReply
from floralens.services.ai.identification import LabelSource
from floralens.services.application.mode_policy import select_chat_mode, select_identification_mode

if TYPE_CHECKING:
    from floralens.domain.conversation import ConversationTurn
    from floralens.domain.plant import PlantRecord
    from floralens.services.ai.capability_probe import CapabilityProbe
    from floralens.services.ai.conversation import ConversationService
    from floralens.services.ai.identification import CloudIdentificationStrategy, LocalIdentificationStrategy
    from floralens.services.ai.vision_classifier import VisionClassifier
    from floralens.services.application.connectivity import ConnectivityMonitor
    from floralens.utils.images import ImagePayload

logger = logging.getLogger(__name__)


class PlantSessionOrchestrator:
    """Coordinates identification and conversation for one user session."""

    def __init__(
        self,
        *,
        cloud_identifier: "CloudIdentificationStrategy",
        local_identifier: "LocalIdentificationStrategy",
        classifier: "VisionClassifier" | None,
        conversation: "ConversationService",
        probe: "CapabilityProbe",
        connectivity: "ConnectivityMonitor",
    ):
        self.cloud_identifier = cloud_identifier
        self.local_identifier = local_identifier
        self.classifier = classifier
        self.conversation = conversation
        self.probe = probe
        self.connectivity = connectivity

        self._state = IdentificationState.IDLE
        self._record: "PlantRecord" | None = None
        self._last_error: FloraLensError | None = None
        self._last_mode: IdentificationMode | None = None
        self._state_lock = threading.Lock()
        self._identify_busy = threading.Lock()
        self._chat_busy = threading.Lock()

        connectivity.add_listener(self._on_connectivity_change)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> IdentificationState:
        return self._state

    @property
    def record(self) -> "PlantRecord" | None:
        return self._record

    @property
    def last_error(self) -> FloraLensError | None:
        return self._last_error

    @property
    def last_identification_mode(self) -> IdentificationMode | None:
        return self._last_mode

    def context(self) -> RequestContext:
        """Snapshot the signals for the request being served."""
        return RequestContext(
            is_online=self.connectivity.is_online,
            is_local_model_ready=self.probe.probe_local_model(),
            plant_context=self._record,
        )

    # ------------------------------------------------------------------
    # Identification
    # ------------------------------------------------------------------

    def identify(self, image: "ImagePayload") -> "PlantRecord":
        """
        Identify the plant in *image* with the pipeline chosen for the
        current connectivity.

        On success the record replaces any previous one and a new
        conversation starts. On failure the state becomes ``FAILURE`` and
        the service error is re-raised unchanged.

        Raises:
            BusyError: Another identification is in flight
        """
        with self._busy(self._identify_busy, "An identification is already in progress"):
            ctx = self.context()
            mode = select_identification_mode(ctx)
            with self._state_lock:
                self._state = IdentificationState.ANALYZING
                self._last_error = None
                self._last_mode = mode
            logger.info("Identification started (mode=%s, online=%s)", mode.value, ctx.is_online)

            try:
                if mode is IdentificationMode.CLOUD:
                    record = self.cloud_identifier.identify(image)
                else:
                    record = self._identify_offline(image)
            except FloraLensError as exc:
                self._fail(exc)
                raise
            except Exception as exc:
                self._fail(FloraLensError(str(exc)))
                raise

            with self._state_lock:
                self._record = record
                self._state = IdentificationState.SUCCESS
            self.conversation.start(self.context())
            return record

    def _identify_offline(self, image: "ImagePayload") -> "PlantRecord":
        if self.classifier is None:
            raise ModelNotLoadedError("Offline recognition model not loaded yet")
        labels = self.classifier.classify(image)
        logger.debug("Offline labels: %s", labels)
        return self.local_identifier.identify(LabelSource.of(labels))

    def _fail(self, exc: FloraLensError) -> None:
        with self._state_lock:
            self._state = IdentificationState.FAILURE
            self._last_error = exc
        logger.error("Identification failed (%s): %s", type(exc).__name__, exc)

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def transcript(self) -> tuple["ConversationTurn", ...]:
        """Current transcript, opening the conversation with a greeting if needed."""
        history = self.conversation.history
        if not history:
            self.conversation.start(self.context())
            history = self.conversation.history
        return history

    def chat(self, message: str) -> ChatReply:
        """
        Answer *message* from the backend chosen for the current context.

        When the chosen backend fails, an apology turn is appended to the
        transcript and the error is re-raised.

        Raises:
            ValidationError: Empty message
            BusyError: Another chat reply is in flight
        """
        if not (message or "").strip():
            raise ValidationError("Message must not be empty")

        with self._busy(self._chat_busy, "A chat reply is already in progress"):
            ctx = self.context()
            mode = select_chat_mode(ctx, self.conversation.local_enabled)
            generation = self.conversation.generation
            logger.debug("Chat message (mode=%s)", mode.value)
            try:
                return self.conversation.send(message, ctx, mode)
            except ValidationError:
                raise
            except FloraLensError as exc:
                logger.error("Chat error (%s): %s", type(exc).__name__, exc)
                self.conversation.append_model_turn(CONNECTION_LOST_REPLY, generation)
                raise

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> bool:
        """Record a host connectivity event. Returns ``True`` on a transition."""
        return self.connectivity.set_online(online)

    def reset(self) -> None:
        """Back to ``IDLE`` with no plant and a fresh greeting."""
        with self._state_lock:
            self._state = IdentificationState.IDLE
            self._record = None
            self._last_error = None
            self._last_mode = None
        self.conversation.start(self.context())
        logger.info("Session reset")

    def status(self) -> dict[str, Any]:
        ctx = self.context()
        error = None
        if self._last_error is not None:
            error = {
                "message": str(self._last_error),
                "kind": type(self._last_error).__name__,
                "retryable": self._last_error.retryable,
            }
        return {
            "state": self._state.value,
            "is_online": ctx.is_online,
            "is_local_model_ready": ctx.is_local_model_ready,
            "is_classifier_ready": bool(self.classifier is not None and self.classifier.is_ready),
            "cloud_configured": self.cloud_identifier.is_available,
            "identification_mode": select_identification_mode(ctx).value,
            "chat_mode": select_chat_mode(ctx, self.conversation.local_enabled).value,
            "last_identification_mode": self._last_mode.value if self._last_mode else None,
            "local_chat_session": self.conversation.has_local_session,
            "plant": self._record.to_dict() if self._record else None,
            "last_error": error,
        }

    def shutdown(self) -> None:
        """Release the local session and stop background polling."""
        self.conversation.close()
        self.connectivity.stop()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    @contextmanager
    def _busy(lock: threading.Lock, message: str) -> Iterator[None]:
        if not lock.acquire(blocking=False):
            raise BusyError(message)
        try:
            yield
        finally:
            lock.release()

    def _on_connectivity_change(self, online: bool) -> None:
        self.probe.invalidate()
