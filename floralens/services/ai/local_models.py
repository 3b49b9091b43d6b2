"""
On-Device Language Models
=========================
Local language model provider used when FloraLens runs offline, and as the
fast path for chat whenever it is ready.

The provider exposes a small session-oriented interface:

* :meth:`LocalLanguageModel.capabilities` - availability tier
  (``READILY`` / ``AFTER_DOWNLOAD`` / ``NO``). Querying never triggers a
  download or a model load.
* :meth:`LocalLanguageModel.create` - open a :class:`LocalModelSession`
  seeded with a system instruction. The session keeps its own conversation
  memory; callers send only the new message to :meth:`LocalModelSession.prompt`.
* :meth:`LocalModelSession.destroy` - release the session's memory.
* :meth:`LocalLanguageModel.session` - context manager that destroys the
  session on every exit path, for one-shot generations.

:class:`TransformersLanguageModel` implements this on top of any HuggingFace
causal LM (default **EXAONE 4.0 1.2B Instruct**) loaded strictly from local
files. ``torch`` and ``transformers`` are imported lazily.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator

from floralens.domain.exceptions import LocalGenerationError

logger = logging.getLogger(__name__)


class Availability(str, Enum):
    """Availability tier reported by a local model provider."""

    READILY = "readily"
    AFTER_DOWNLOAD = "after-download"
    NO = "no"


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class LocalModelSession(ABC):
    """A live conversation with a local model. Not safe for concurrent use."""

    @abstractmethod
    def prompt(self, text: str) -> str:
        """Send *text* and return the model's reply."""

    @abstractmethod
    def destroy(self) -> None:
        """Release the session. Further prompts raise :class:`LocalGenerationError`."""

    @property
    @abstractmethod
    def is_destroyed(self) -> bool:
        """``True`` once :meth:`destroy` has been called."""


class LocalLanguageModel(ABC):
    """Provider of :class:`LocalModelSession` objects."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier for this provider."""

    @abstractmethod
    def capabilities(self) -> Availability:
        """Report availability without side effects."""

    @abstractmethod
    def create(self, system_instruction: str) -> LocalModelSession:
        """
        Open a new session.

        Raises:
            LocalGenerationError: If the model is not ready
        """

    def start_loading(self, on_loaded: Callable[[], None] | None = None) -> None:
        """Begin any background warm-up. Providers without one do nothing."""

    @contextmanager
    def session(self, system_instruction: str) -> Iterator[LocalModelSession]:
        """Open a session that is destroyed when the block exits."""
        session = self.create(system_instruction)
        try:
            yield session
        finally:
            session.destroy()


# ---------------------------------------------------------------------------
# HuggingFace Transformers implementation
# ---------------------------------------------------------------------------


class TransformersSession(LocalModelSession):
    """
    Session backed by a :class:`TransformersLanguageModel`.

    Conversation memory is the running message list; only the last
    ``max_history_turns`` exchanges are replayed to keep inside the small
    context window of on-device models.
    """

    def __init__(self, model: "TransformersLanguageModel", system_instruction: str, max_history_turns: int = 6):
        self._model = model
        self._system = {"role": "system", "content": system_instruction}
        self._messages: list[dict[str, str]] = []
        self._max_history_turns = max_history_turns
        self._destroyed = False
        self._lock = threading.Lock()

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def prompt(self, text: str) -> str:
        if not self._lock.acquire(blocking=False):
            raise LocalGenerationError("Local session is already processing a prompt")
        try:
            if self._destroyed:
                raise LocalGenerationError("Local session has been destroyed")

            window = self._messages[-2 * self._max_history_turns :] if self._max_history_turns else []
            messages = [self._system, *window, {"role": "user", "content": text}]
            try:
                reply = self._model.generate(messages)
            except LocalGenerationError:
                raise
            except Exception as exc:
                raise LocalGenerationError(f"Local generation failed: {exc}") from exc

            self._messages.append({"role": "user", "content": text})
            self._messages.append({"role": "assistant", "content": reply})
            return reply
        finally:
            self._lock.release()

    def destroy(self) -> None:
        self._destroyed = True
        self._messages.clear()


class TransformersLanguageModel(LocalLanguageModel):
    """
    Locally-hosted HuggingFace causal language model.

    Ideal for small instruct models like **EXAONE 4.0 1.2B** that fit in RAM
    on a laptop or a modest GPU. Weights are only ever read from a local
    directory or the HuggingFace cache (``local_files_only=True``); a model
    that is not present locally reports ``AFTER_DOWNLOAD``.

    Requires ``torch`` and ``transformers``::

        pip install torch transformers

    Parameters
    ----------
    model_path:
        HuggingFace model ID or local directory containing model weights.
    device:
        ``"cpu"``, ``"cuda"``, ``"cuda:0"``, ``"mps"``, or ``"auto"``.
    torch_dtype:
        Data type for model weights (``"float16"``, ``"bfloat16"``,
        ``"float32"``).
    max_tokens:
        Upper-bound on generated tokens per prompt.
    temperature:
        Sampling temperature (0 = deterministic).
    max_model_len:
        Maximum prompt length in tokens.
    enabled:
        ``False`` makes the provider report ``NO`` unconditionally.
    """

    def __init__(
        self,
        model_path: str = "LGAI-EXAONE/EXAONE-4.0-1.2B-Instruct",
        device: str = "auto",
        torch_dtype: str = "float16",
        max_tokens: int = 512,
        temperature: float = 0.3,
        max_model_len: int = 4096,
        enabled: bool = True,
    ):
        self._model_path = model_path
        self._device = device
        self._torch_dtype = torch_dtype
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_model_len = max_model_len
        self._enabled = enabled
        self._model: Any = None
        self._tokenizer: Any = None
        self._load_failed = False
        self._loader: threading.Thread | None = None
        # One generate() at a time per loaded model
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "transformers"

    @property
    def is_loaded(self) -> bool:
        return self._model is not None and self._tokenizer is not None

    # -- availability -------------------------------------------------------

    def capabilities(self) -> Availability:
        if not self._enabled or self._load_failed:
            return Availability.NO
        if self.is_loaded:
            return Availability.READILY
        if not self._dependencies_installed():
            return Availability.NO
        return Availability.AFTER_DOWNLOAD

    @staticmethod
    def _dependencies_installed() -> bool:
        import importlib.util

        return all(importlib.util.find_spec(mod) is not None for mod in ("torch", "transformers"))

    def weights_available(self) -> bool:
        """``True`` when weights exist locally, without touching the network."""
        if Path(self._model_path).is_dir():
            return True
        try:
            from huggingface_hub import try_to_load_from_cache
        except ImportError:
            return False
        cached = try_to_load_from_cache(self._model_path, "config.json")
        return isinstance(cached, str)

    # -- loading ------------------------------------------------------------

    def start_loading(self, on_loaded: Callable[[], None] | None = None) -> None:
        """
        Load the model on a background thread if it is present locally.

        *on_loaded* runs after a successful load, e.g. to invalidate a cached
        capability probe.
        """
        if not self._enabled or self.is_loaded:
            return
        if self._loader is not None and self._loader.is_alive():
            return

        def _load() -> None:
            if self.initialize() and on_loaded is not None:
                on_loaded()

        self._loader = threading.Thread(target=_load, name="local-llm-loader", daemon=True)
        self._loader.start()

    def initialize(self) -> bool:
        """
        Load tokenizer and weights from local files.

        Returns ``True`` on success; never downloads.
        """
        if not self._enabled:
            return False
        if not self._dependencies_installed():
            logger.info("Local model: torch/transformers not installed - on-device chat disabled")
            return False
        if not self.weights_available():
            logger.info("Local model %s not present locally - not downloading", self._model_path)
            return False

        try:
            import torch
            from transformers import AutoModelForCausalLM, AutoTokenizer

            logger.info("Loading local model %s (device=%s) …", self._model_path, self._device)

            dtype_map = {
                "float16": torch.float16,
                "bfloat16": torch.bfloat16,
                "float32": torch.float32,
            }
            torch_dtype = dtype_map.get(self._torch_dtype, torch.float16)

            tokenizer = AutoTokenizer.from_pretrained(
                self._model_path,
                trust_remote_code=True,
                local_files_only=True,
            )
            if tokenizer.pad_token is None:
                tokenizer.pad_token = tokenizer.eos_token

            model_kwargs: dict[str, Any] = {
                "torch_dtype": torch_dtype,
                "trust_remote_code": True,
                "local_files_only": True,
            }
            if self._device == "auto":
                model_kwargs["device_map"] = "auto"
            else:
                model_kwargs["device_map"] = {"": self._device}

            model = AutoModelForCausalLM.from_pretrained(self._model_path, **model_kwargs)
            model.eval()

            self._tokenizer = tokenizer
            self._model = model
            logger.info("✓ Local model loaded: %s (dtype=%s)", self._model_path, torch_dtype)
            return True
        except Exception as exc:
            logger.error("Local model init failed: %s", exc)
            self._load_failed = True
        return False

    # -- sessions -----------------------------------------------------------

    def create(self, system_instruction: str) -> TransformersSession:
        if self.capabilities() is not Availability.READILY:
            raise LocalGenerationError("Local language model is not ready")
        return TransformersSession(self, system_instruction)

    def generate(self, messages: list[dict[str, str]]) -> str:
        """Run one chat-template generation over *messages*."""
        if not self.is_loaded:
            raise LocalGenerationError("Local language model is not loaded")

        import torch

        try:
            input_text = self._tokenizer.apply_chat_template(
                messages,
                tokenize=False,
                add_generation_prompt=True,
            )
        except Exception:
            # Fallback for models without chat template
            parts = [f"### {m['role'].capitalize()}:\n{m['content']}" for m in messages]
            input_text = "\n\n".join(parts) + "\n\n### Assistant:\n"

        with self._lock:
            inputs = self._tokenizer(
                input_text,
                return_tensors="pt",
                truncation=True,
                max_length=self._max_model_len,
            )
            device = next(self._model.parameters()).device
            inputs = {k: v.to(device) for k, v in inputs.items()}
            input_len = inputs["input_ids"].shape[1]

            gen_kwargs: dict[str, Any] = {
                "max_new_tokens": self._max_tokens,
                "do_sample": self._temperature > 0,
                "pad_token_id": self._tokenizer.pad_token_id,
            }
            if self._temperature > 0:
                gen_kwargs["temperature"] = self._temperature
                gen_kwargs["top_p"] = 0.9

            with torch.no_grad():
                outputs = self._model.generate(**inputs, **gen_kwargs)

        new_tokens = outputs[0][input_len:]
        return self._tokenizer.decode(new_tokens, skip_special_tokens=True).strip()
