"""
Configuration for FloraLens
===========================
Runtime settings for the cloud provider, the on-device pipeline (image
classifier + local language model) and the connectivity signal.
Sets up the logging configuration as well.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


def _env_str_multi(names: tuple[str, ...], default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("FLORALENS_ENV", "development"))
    DEBUG: bool = field(default_factory=lambda: _env_bool("FLORALENS_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("FLORALENS_LOG_LEVEL", "INFO"))
    # Empty string disables the rotating file handler
    log_file: str = field(default_factory=lambda: os.getenv("FLORALENS_LOG_FILE", "logs/floralens.log"))

    # Upload / request size limits
    max_upload_mb: int = field(default_factory=lambda: _env_int("FLORALENS_MAX_UPLOAD_MB", 16))

    # Cloud provider: "gemini", "openai" or "none"
    cloud_provider: str = field(default_factory=lambda: os.getenv("CLOUD_PROVIDER", "gemini"))
    cloud_api_key: str = field(default_factory=lambda: _env_str_multi(("FLORALENS_API_KEY", "API_KEY")))
    cloud_model: str = field(default_factory=lambda: os.getenv("CLOUD_MODEL", ""))
    cloud_base_url: str = field(default_factory=lambda: os.getenv("CLOUD_BASE_URL", ""))
    cloud_timeout: int = field(default_factory=lambda: _env_int("CLOUD_TIMEOUT", 60))

    # On-device language model
    local_llm_enabled: bool = field(default_factory=lambda: _env_bool("LOCAL_LLM_ENABLED", True))
    local_llm_model_path: str = field(
        default_factory=lambda: os.getenv(
            "LOCAL_LLM_MODEL_PATH",
            "LGAI-EXAONE/EXAONE-4.0-1.2B-Instruct",
        )
    )
    local_llm_device: str = field(default_factory=lambda: os.getenv("LOCAL_LLM_DEVICE", "auto"))
    local_llm_torch_dtype: str = field(default_factory=lambda: os.getenv("LOCAL_LLM_TORCH_DTYPE", "float16"))
    local_llm_max_tokens: int = field(default_factory=lambda: _env_int("LOCAL_LLM_MAX_TOKENS", 512))
    local_llm_temperature: float = field(default_factory=lambda: _env_float("LOCAL_LLM_TEMPERATURE", 0.3))

    # On-device image classifier
    cv_enabled: bool = field(default_factory=lambda: _env_bool("CV_ENABLED", True))
    cv_model_type: str = field(default_factory=lambda: os.getenv("CV_MODEL_TYPE", "efficientnet_b0"))
    cv_max_results: int = field(default_factory=lambda: _env_int("CV_MAX_RESULTS", 3))
    cv_confidence_threshold: float = field(default_factory=lambda: _env_float("CV_CONFIDENCE_THRESHOLD", 0.05))
    cv_inference_device: str = field(default_factory=lambda: os.getenv("CV_INFERENCE_DEVICE", "cpu"))
    # State-dict file; empty means the torch hub cache (never downloaded)
    cv_weights_path: str = field(default_factory=lambda: os.getenv("CV_WEIGHTS_PATH", ""))

    # Connectivity signal
    assume_online: bool = field(default_factory=lambda: _env_bool("FLORALENS_ASSUME_ONLINE", True))
    connectivity_check_url: str = field(
        default_factory=lambda: os.getenv("CONNECTIVITY_CHECK_URL", "https://www.gstatic.com/generate_204")
    )
    # Seconds between background probes; 0 disables polling (events only)
    connectivity_check_interval: int = field(default_factory=lambda: _env_int("CONNECTIVITY_CHECK_INTERVAL", 0))
    connectivity_timeout: float = field(default_factory=lambda: _env_float("CONNECTIVITY_TIMEOUT", 3.0))

    def __post_init__(self) -> None:
        """Normalize free-form values."""
        self.cloud_provider = (self.cloud_provider or "none").strip().lower()

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "DEBUG": self.DEBUG,
            "MAX_CONTENT_LENGTH": self.max_upload_mb * 1024 * 1024,
            "JSON_SORT_KEYS": False,
        }


# ==================== CONFIGURATION VALIDATION ====================


def validate_config(config: AppConfig) -> list[str]:
    """
    Validate configuration and return list of warnings.

    Args:
        config: AppConfig instance

    Returns:
        List of warning messages (empty if all valid)
    """
    warnings = []

    if config.cloud_provider not in ("gemini", "openai", "none"):
        warnings.append(f"Unknown CLOUD_PROVIDER '{config.cloud_provider}'. Expected gemini, openai or none")

    # Missing key is only fatal at first cloud call
    if config.cloud_provider != "none" and not config.cloud_api_key:
        warnings.append("No cloud API key set (FLORALENS_API_KEY / API_KEY). Online identification will fail")

    if config.cv_max_results < 1:
        warnings.append(f"CV_MAX_RESULTS ({config.cv_max_results}) must be at least 1")

    if not 0.0 <= config.cv_confidence_threshold < 1.0:
        warnings.append(f"CV_CONFIDENCE_THRESHOLD ({config.cv_confidence_threshold}) should be in [0, 1)")

    if not config.cv_enabled and not config.cloud_api_key:
        warnings.append("Both the image classifier and the cloud key are missing. Identification is unavailable")

    local_path = Path(config.local_llm_model_path)
    if config.local_llm_enabled and local_path.is_absolute() and not local_path.exists():
        warnings.append(f"Local model directory does not exist: {config.local_llm_model_path}")

    return warnings


def setup_logging(
    debug: bool = False,
    log_file: str | None = "logs/floralens.log",
    level: str = "INFO",
) -> None:
    """Setup logging configuration. ``debug`` forces DEBUG over *level*."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    named_level = logging.getLevelName(str(level).upper())
    if debug:
        log_level = logging.DEBUG
    elif isinstance(named_level, int):
        log_level = named_level
    else:
        log_level = logging.INFO

    # Root logger
    root = logging.getLogger()
    root.setLevel(log_level)

    # Keep existing handlers but avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "floralens_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "floralens_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "floralens_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if log_file and not has_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "floralens_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"floralens_console", "floralens_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("FLORALENS_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    # SDK transports log every request at INFO
    for noisy in ("httpx", "httpcore", "urllib3", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def apply_overrides(config: AppConfig, overrides: dict[str, Any]) -> AppConfig:
    """
    Set ``AppConfig`` fields from *overrides*.

    Keys match field names case-insensitively (``"DEBUG"`` and ``"debug"``
    both reach the ``DEBUG`` field).

    Raises:
        ValueError: For a key that names no field
    """
    names = {f.name.lower(): f.name for f in fields(config)}
    for key, value in overrides.items():
        name = names.get(key.lower())
        if name is None:
            raise ValueError(f"Unknown configuration key: {key}")
        setattr(config, name, value)
    return config


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    import logging

    config = AppConfig()
    logger = logging.getLogger("config_loader")
    for warning in validate_config(config):
        logger.warning("Config: %s", warning)
    return config
