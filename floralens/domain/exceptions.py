"""Centralized exception hierarchy for FloraLens.

All domain and service exceptions inherit from :class:`FloraLensError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

Blueprint-level error handling (see ``floralens/utils/http.safe_route``) maps
these to the correct HTTP status codes automatically.

Hierarchy
---------
::

    FloraLensError (base - maps to 500)
    ├── ValidationError             (400 - bad input from caller)
    ├── ConflictError               (409 - state conflict)
    │   └── BusyError               (409 - same kind of request in flight)
    ├── ConfigurationError          (500 - missing / invalid config)
    ├── ProviderError               (502 - cloud transport / auth failure)
    │   └── EmptyResponseError      (502 - provider returned no usable text)
    └── OfflinePipelineError        (422 - on-device pipeline failure)
        ├── ModelNotLoadedError     (503 - classifier still loading)
        ├── NoObjectDetectedError   (422 - classifier found nothing)
        └── LocalGenerationError    (422 - local model output unusable)
"""

from __future__ import annotations


class FloraLensError(Exception):
    """Base exception for all FloraLens application errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side, **not** leaked to
        the HTTP client unless the exception class opts in).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(FloraLensError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class ConflictError(FloraLensError):
    """Operation conflicts with existing state (HTTP 409)."""

    http_status: int = 409


class BusyError(ConflictError):
    """A request of the same kind is already being processed (HTTP 409)."""

    retryable: bool = True


# ── Server / provider errors (5xx) ───────────────────────────────────


class ConfigurationError(FloraLensError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500


class ProviderError(FloraLensError):
    """Cloud provider transport or authentication failure (HTTP 502)."""

    http_status: int = 502


class EmptyResponseError(ProviderError):
    """Provider call succeeded but returned no usable text (HTTP 502)."""


# ── Offline pipeline errors ──────────────────────────────────────────


class OfflinePipelineError(FloraLensError):
    """Failure in the on-device classify-then-generate pipeline (HTTP 422)."""

    http_status: int = 422


class ModelNotLoadedError(OfflinePipelineError):
    """On-device model has not finished loading yet (HTTP 503).

    This is a precondition failure: the same request may succeed once the
    asynchronous load completes.
    """

    http_status: int = 503
    retryable: bool = True


class NoObjectDetectedError(OfflinePipelineError):
    """The image classifier produced no label above its confidence floor."""


class LocalGenerationError(OfflinePipelineError):
    """The local language model was unavailable or produced unusable output."""
