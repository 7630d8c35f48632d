"""Run settings: constants-backed defaults, JSON settings file, CLI overrides."""

import json
import logging
import os
from dataclasses import dataclass, fields, replace

from caption_voiceover.constants import (
    DEFAULT_ENGINE,
    DEFAULT_VOICE,
    DEFAULT_SPEED,
    SAMPLE_RATE,
    CHANNELS,
    SYNTHESIS_CONCURRENCY,
    MEDIA_CONCURRENCY,
    WORKER_THREADS,
    SYNTHESIS_TIMEOUT,
    PROBE_TIMEOUT,
    MEDIA_TIMEOUT,
    CONCAT_TIMEOUT,
    SYNTHESIS_ATTEMPTS,
    RETRY_BASE_DELAY,
    PRESERVE_THRESHOLD,
    OUTPUT_DIR,
    CACHE_DIR,
    MAX_ITERATIONS,
    SPEED_STEP,
    SPEED_STEP_LARGE,
    VOLUME_STEP,
)
from caption_voiceover.errors import InputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    engine: str = DEFAULT_ENGINE
    voice: str = DEFAULT_VOICE
    speed: float = DEFAULT_SPEED
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS
    synthesis_concurrency: int = SYNTHESIS_CONCURRENCY
    media_concurrency: int = MEDIA_CONCURRENCY
    worker_threads: int = WORKER_THREADS
    synthesis_timeout: float = SYNTHESIS_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    media_timeout: float = MEDIA_TIMEOUT
    concat_timeout: float = CONCAT_TIMEOUT
    synthesis_attempts: int = SYNTHESIS_ATTEMPTS
    retry_base_delay: float = RETRY_BASE_DELAY
    output_dir: str = OUTPUT_DIR
    cache_dir: str = CACHE_DIR
    preserve_threshold: float = PRESERVE_THRESHOLD
    max_iterations: int = MAX_ITERATIONS
    length_scale: float = 1.0
    speed_step: float = SPEED_STEP
    speed_step_large: float = SPEED_STEP_LARGE
    volume_step: float = VOLUME_STEP
    command: str = ""    # argv template for the "command" engine

    def with_overrides(self, **overrides) -> "Settings":
        """Copy with every non-None override applied."""
        return _coerce(self, {k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _coerce(settings: Settings, values: dict) -> Settings:
    """Apply values onto settings, converting to each field's type."""
    types = {f.name: f.type for f in fields(Settings)}
    changes = {}
    for key, value in values.items():
        if key not in types:
            logger.warning("Ignoring unknown setting: %s", key)
            continue
        kind = types[key]
        try:
            if kind is int and isinstance(value, float) and not value.is_integer():
                raise ValueError(value)
            changes[key] = kind(value)
        except (TypeError, ValueError) as e:
            raise InputError(f"Invalid value for setting '{key}': {value!r}") from e

    result = replace(settings, **changes)
    for key in ("synthesis_concurrency", "media_concurrency", "worker_threads",
                "synthesis_attempts", "max_iterations", "sample_rate", "channels"):
        if getattr(result, key) < 1:
            raise InputError(f"Setting '{key}' must be at least 1")
    for key in ("speed", "length_scale"):
        if getattr(result, key) <= 0:
            raise InputError(f"Setting '{key}' must be positive")
    return result


def load_settings(path: str | None = None) -> Settings:
    """Load settings from a JSON file on top of the defaults.

    Returns defaults when path is None. Raises InputError for a missing or
    malformed file.
    """
    settings = Settings()
    if path is None:
        return settings
    if not os.path.exists(path):
        raise InputError(f"Settings file not found: {path}")
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InputError(f"Settings file is not valid JSON: {path}: {e}") from e
    if not isinstance(data, dict):
        raise InputError(f"Settings file must contain a JSON object: {path}")
    return _coerce(settings, data)
