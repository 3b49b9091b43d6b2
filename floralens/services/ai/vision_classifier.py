"""
Vision Classifier Adapter
=========================
Wraps a lightweight pretrained ImageNet classifier (torchvision) that runs on
the device and turns a photo into a short ranked list of label guesses.

The model loads asynchronously (:meth:`VisionClassifier.start_loading`);
calling :meth:`VisionClassifier.classify` before the load has completed
raises :class:`ModelNotLoadedError`, a retryable precondition failure.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import TYPE_CHECKING, Any, Sequence
from urllib.parse import urlparse

import numpy as np

from floralens.domain.exceptions import ModelNotLoadedError
from floralens.utils.images import open_rgb_image

if TYPE_CHECKING:
    from PIL import Image

    from floralens.utils.images import ImagePayload

logger = logging.getLogger(__name__)


def rank_labels(
    scores: Sequence[float] | np.ndarray,
    categories: Sequence[str],
    *,
    max_results: int = 3,
    score_threshold: float = 0.0,
) -> list[str]:
    """
    Pick the most confident category names.

    Args:
        scores: Per-category probabilities, aligned with *categories*
        categories: Category names
        max_results: Maximum number of labels returned
        score_threshold: Confidence floor; scores below it are dropped

    Returns:
        Up to *max_results* labels, most confident first. Empty when no
        score clears the floor.
    """
    probs = np.asarray(scores, dtype=float).ravel()
    if probs.size != len(categories):
        raise ValueError(f"Got {probs.size} scores for {len(categories)} categories")
    if max_results <= 0 or probs.size == 0:
        return []

    # Stable sort keeps category order for ties
    order = np.argsort(-probs, kind="stable")[:max_results]
    return [categories[i] for i in order if probs[i] >= score_threshold]


def cached_checkpoint(url: str, hub_dir: str) -> str | None:
    """
    Path of the torch hub checkpoint for *url* when it is already on disk.

    Mirrors the location ``torch.hub.load_state_dict_from_url`` uses:
    ``<hub_dir>/checkpoints/<basename of the URL path>``.
    """
    filename = os.path.basename(urlparse(url).path)
    if not filename:
        return None
    path = os.path.join(hub_dir, "checkpoints", filename)
    return path if os.path.isfile(path) else None


class VisionClassifier:
    """
    On-device image classifier.

    Parameters
    ----------
    model_name:
        torchvision model builder name, e.g. ``"efficientnet_b0"`` or
        ``"mobilenet_v3_large"``.
    max_results:
        Number of labels returned by :meth:`classify` (top-K).
    score_threshold:
        Confidence floor below which labels are dropped.
    device:
        Inference device (``"cpu"``, ``"cuda"``, ``"mps"``).
    weights_path:
        Local state-dict file. When empty, the weights must already be in
        the torch hub cache; nothing is ever downloaded.
    enabled:
        ``False`` never loads; :meth:`classify` keeps raising
        :class:`ModelNotLoadedError`.
    """

    def __init__(
        self,
        model_name: str = "efficientnet_b0",
        max_results: int = 3,
        score_threshold: float = 0.05,
        device: str = "cpu",
        weights_path: str = "",
        enabled: bool = True,
    ):
        self.model_name = model_name
        self.max_results = max_results
        self.score_threshold = score_threshold
        self.device = device
        self.weights_path = weights_path
        self.enabled = enabled
        self._model: Any = None
        self._preprocess: Any = None
        self._categories: list[str] = []
        self._ready = threading.Event()
        self._loader: threading.Thread | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def start_loading(self) -> None:
        """Kick off the one-time model load on a background thread."""
        if not self.enabled or self.is_ready:
            return
        if self._loader is not None and self._loader.is_alive():
            return
        self._loader = threading.Thread(target=self.load_model, name="vision-classifier-loader", daemon=True)
        self._loader.start()

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until the model is loaded. Returns ``False`` on timeout."""
        return self._ready.wait(timeout)

    def load_model(self) -> bool:
        """
        Load weights, preprocessing transforms and category names.

        Weights come from ``weights_path`` or the torch hub cache only. When
        neither has them the classifier stays unloaded.

        Returns:
            True if loaded successfully
        """
        if not self.enabled:
            return False
        try:
            import torch
            from torchvision import models

            logger.info("Loading vision classifier %s …", self.model_name)
            weights = models.get_model_weights(self.model_name).DEFAULT
            if self.weights_path:
                if not os.path.isfile(self.weights_path):
                    logger.warning(
                        "Vision classifier weights not found at %s - offline identification disabled",
                        self.weights_path,
                    )
                    return False
                model = models.get_model(self.model_name, weights=None)
                state = torch.load(self.weights_path, map_location="cpu", weights_only=True)
                model.load_state_dict(state)
            else:
                if cached_checkpoint(weights.url, torch.hub.get_dir()) is None:
                    logger.warning(
                        "Vision classifier weights for %s not in the torch hub cache - not downloading. "
                        "Set CV_WEIGHTS_PATH or pre-fetch the checkpoint",
                        self.model_name,
                    )
                    return False
                # Served from the hub cache, no network access
                model = models.get_model(self.model_name, weights=weights)
            model.eval().to(torch.device(self.device))

            self._model = model
            self._preprocess = weights.transforms()
            self._categories = list(weights.meta["categories"])
            self._ready.set()
            logger.info("✅ Vision classifier loaded (%s, %d categories)", self.model_name, len(self._categories))
            return True
        except ImportError as exc:
            logger.error("Vision classifier: missing dependency - %s.  Run: pip install torch torchvision", exc)
        except Exception as exc:
            logger.error("Failed to load vision classifier %s: %s", self.model_name, exc, exc_info=True)
        return False

    def classify(self, image: "ImagePayload" | bytes | "Image.Image") -> list[str]:
        """
        Return up to ``max_results`` labels for *image*, most confident first.

        Raises:
            ModelNotLoadedError: If the asynchronous load has not completed
        """
        if not self.is_ready:
            raise ModelNotLoadedError("Offline recognition model not loaded yet")

        import torch

        rgb = open_rgb_image(image)
        batch = self._preprocess(rgb).unsqueeze(0).to(torch.device(self.device))
        with torch.inference_mode():
            logits = self._model(batch)
        probs = torch.softmax(logits, dim=1)[0].cpu().numpy()

        labels = rank_labels(
            probs,
            self._categories,
            max_results=self.max_results,
            score_threshold=self.score_threshold,
        )
        logger.debug("Vision classifier labels: %s", labels)
        return labels
