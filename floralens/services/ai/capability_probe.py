"""Runtime check for on-device language model readiness."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from floralens.services.ai.local_models import Availability

if TYPE_CHECKING:
    from floralens.services.ai.local_models import LocalLanguageModel

logger = logging.getLogger(__name__)


class CapabilityProbe:
    """
    Answers "can the local model serve a request right now?".

    Only ``READILY`` counts as ready; a model that would first need a
    download, or no model at all, is reported as not ready. The answer is
    cached until :meth:`invalidate` is called, which the orchestrator does
    on every connectivity change.
    """

    def __init__(self, local_model: "LocalLanguageModel" | None = None):
        self._local_model = local_model
        self._cached: bool | None = None
        self._lock = threading.Lock()

    def probe_local_model(self) -> bool:
        """Return ``True`` when the local model is ready immediately. Never raises."""
        with self._lock:
            if self._cached is None:
                self._cached = self._query()
            return self._cached

    def invalidate(self) -> None:
        """Forget the cached answer so the next probe queries again."""
        with self._lock:
            self._cached = None

    def _query(self) -> bool:
        if self._local_model is None:
            return False
        try:
            availability = self._local_model.capabilities()
        except Exception as exc:
            logger.debug("Local model capability query failed: %s", exc)
            return False
        ready = availability is Availability.READILY
        logger.debug("Local model availability: %s", getattr(availability, "value", availability))
        return ready
