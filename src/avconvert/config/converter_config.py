"""
Converter Configuration Module

Configuration dataclass and utilities for the conversion engines, the cloud
client and the batch orchestrator.

Sources, in increasing priority:
- Dataclass defaults
- YAML file (ConverterConfig.from_yaml)
- AVCONVERT_* environment variables (ConverterConfig.from_env)

The cloud API key is never stored in configuration files; it is read from the
environment only (get_api_key).
"""

import os
import logging
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from avconvert.services.cloud.client import DEFAULT_BASE_URL
from avconvert.services.media_info import FFMPEG_SEARCH_PATHS

logger = logging.getLogger(__name__)

API_KEY_ENV = "FREECONVERT_API_KEY"

VALID_ENGINES = ("native", "shell", "cloud")
VALID_COMPLETION_MODES = ("fixed", "poll")


class APIKeyNotFoundError(Exception):
    """Raised when the cloud API key environment variable is not set."""

    def __init__(self, message: str = f"{API_KEY_ENV} environment variable not found"):
        self.message = message
        super().__init__(self.message)


def get_api_key() -> str:
    """
    Retrieve the cloud conversion API key from the environment.

    Returns:
        str: API key

    Raises:
        APIKeyNotFoundError: If FREECONVERT_API_KEY is not set
    """
    key = os.environ.get(API_KEY_ENV)
    if not key:
        raise APIKeyNotFoundError(
            f"{API_KEY_ENV} environment variable not found. "
            f"Please set it with: export {API_KEY_ENV}='your_key'"
        )
    return key


def _default_history_path() -> str:
    return str(Path.home() / ".config" / "avconvert" / "history.json")


@dataclass
class ConverterConfig:
    """
    Conversion configuration.

    Holds the defaults the CLI offers for ConversionOptions plus the knobs of
    each engine and of the orchestrator.
    """

    # Conversion defaults
    default_format: str = "mp3"
    default_engine: str = "native"
    output_dir: Optional[str] = None
    audio_bitrate: str = "192k"
    sample_rate: int = 44100
    channels: int = 2
    video_resolution: str = "1280x720"
    video_bitrate: str = "2M"

    # Shell engine
    ffmpeg_paths: List[str] = field(default_factory=lambda: list(FFMPEG_SEARCH_PATHS))
    progress_reference_seconds: float = 60.0  # used only when ffprobe is unavailable
    probe_duration: bool = True

    # Cloud engine
    cloud_base_url: str = DEFAULT_BASE_URL
    cloud_completion: str = "fixed"
    cloud_fixed_delay: float = 5.0
    cloud_poll_interval: float = 2.0
    cloud_poll_backoff: float = 1.5
    cloud_max_wait: float = 300.0
    cloud_request_timeout: float = 60.0

    # Orchestrator
    auto_fallback: bool = True
    max_concurrent_items: int = 2
    write_metadata_attributes: bool = True

    # History
    history_path: str = field(default_factory=_default_history_path)
    history_limit: int = 20

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, base: Optional["ConverterConfig"] = None) -> "ConverterConfig":
        """
        Create configuration from environment variables.

        Every field can be overridden with AVCONVERT_<FIELD_NAME>, e.g.
        AVCONVERT_DEFAULT_FORMAT=m4a or AVCONVERT_MAX_CONCURRENT_ITEMS=4.
        List fields take a colon separated value (AVCONVERT_FFMPEG_PATHS).

        Args:
            base: Configuration to override (defaults to dataclass defaults)
        """
        config = base if base is not None else cls()
        overrides: Dict[str, Any] = {}

        for f in fields(cls):
            raw = os.environ.get(f"AVCONVERT_{f.name.upper()}")
            if raw is None:
                continue
            overrides[f.name] = _coerce(raw, getattr(config, f.name))

        if overrides:
            logger.debug(f"Configuration overrides from environment: {sorted(overrides)}")
        return cls(**{**asdict(config), **overrides})

    @classmethod
    def from_yaml(cls, config_path: Path) -> "ConverterConfig":
        """
        Load configuration from a YAML file.

        Unknown keys are ignored with a warning. A missing file yields the
        defaults.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            logger.info(f"Config file {config_path} not found, using defaults")
            return cls()

        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")

        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            bool: True if configuration is valid

        Raises:
            ValueError: If configuration is invalid
        """
        if self.default_engine not in VALID_ENGINES:
            raise ValueError(
                f"Invalid default_engine: {self.default_engine}. Valid options: {list(VALID_ENGINES)}"
            )

        if self.cloud_completion not in VALID_COMPLETION_MODES:
            raise ValueError(
                f"Invalid cloud_completion: {self.cloud_completion}. "
                f"Valid options: {list(VALID_COMPLETION_MODES)}"
            )

        if self.max_concurrent_items < 1:
            raise ValueError("max_concurrent_items must be at least 1")

        if self.history_limit < 1:
            raise ValueError("history_limit must be at least 1")

        if self.progress_reference_seconds <= 0:
            raise ValueError("progress_reference_seconds must be positive")

        if self.cloud_max_wait <= 0 or self.cloud_fixed_delay < 0:
            raise ValueError("Cloud wait settings must be positive")

        return True


def _coerce(raw: str, current: Any) -> Any:
    """Convert an environment string to the type of the current field value."""
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, list):
        return [p for p in raw.split(":") if p]
    if current is None:
        return raw or None
    return raw
