"""
Project-wide configuration.

This module defines the constants used throughout MdTrans-LLMs and the
user-facing TranslatorSettings.

Module Contents:
    APP_NAME: Application name for display purposes
    CONFIG_DIR: Per-user configuration directory (~/.mdtrans)
    CONFIG_FILE: JSON settings file inside CONFIG_DIR
    DEFAULT_CHUNK_SIZE: Characters translated per pass by default
    REQUEST_CHAR_CEILING: Hard upper bound on characters per generation request
    CACHE_TTL_SECONDS: Lifetime of cache entries (24 hours)
    FUZZY_MATCH_DISTANCE: Max index distance for pairing modified blocks
    TranslatorSettings: Effective settings (defaults < config file < environment)

Settings are resolved in order: dataclass defaults, then CONFIG_FILE, then
MDTRANS_* environment variables.

Example:
    >>> from mdtrans_llms.config import TranslatorSettings
    >>> settings = TranslatorSettings.load()
    >>> print(settings.effective_target_language)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Application name for display and identification
APP_NAME = "MdTrans-LLMs"

# Per-user settings
CONFIG_DIR = Path.home() / ".mdtrans"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Characters translated per pass (user adjustable)
DEFAULT_CHUNK_SIZE = 5000

# Characters per single generation request, independent of chunk size
REQUEST_CHAR_CEILING = 12000

# Cache entries expire after 24 hours
CACHE_TTL_SECONDS = 24 * 60 * 60

# Unmatched blocks of the same kind farther apart than this are not paired
FUZZY_MATCH_DISTANCE = 3

DEFAULT_TARGET_LANGUAGE = "Japanese"

PRESET_LANGUAGES = [
    "Japanese",
    "Chinese (Simplified)",
    "Chinese (Traditional)",
    "Korean",
]

# Sentinel target language meaning "use custom_target_language"
OTHER_LANGUAGE = "Other"

ENV_PREFIX = "MDTRANS_"


@dataclass
class TranslatorSettings:
    """Settings for incremental translation.

    Attributes:
        target_language: One of PRESET_LANGUAGES, any language name, or "Other"
        custom_target_language: Used when target_language is "Other"
        backend: Generation backend name ('dummy', 'openai', 'anthropic', ...)
        model: Backend model id; empty uses the backend default
        chunk_size: Characters translated per pass
        enable_cache: Use the translation cache
        debug: Verbose logging
        auto_translate_threshold: Changed-block count that triggers an
            automatic update (0 disables)
        max_history_turns: Previous user/assistant pairs sent with a request
    """
    target_language: str = DEFAULT_TARGET_LANGUAGE
    custom_target_language: str = ""
    backend: str = "dummy"
    model: str = ""
    chunk_size: int = DEFAULT_CHUNK_SIZE
    enable_cache: bool = True
    debug: bool = False
    auto_translate_threshold: int = 0
    max_history_turns: int = 2

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.auto_translate_threshold < 0:
            raise ValueError("auto_translate_threshold cannot be negative")

    @property
    def effective_target_language(self) -> str:
        """Target language with the "Other" indirection resolved."""
        if self.target_language == OTHER_LANGUAGE:
            return self.custom_target_language.strip() or DEFAULT_TARGET_LANGUAGE
        return self.target_language

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> TranslatorSettings:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown settings: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(
        cls,
        config_file: Optional[Path] = None,
        environ: Optional[dict] = None,
    ) -> TranslatorSettings:
        """Resolve settings from defaults, config file and environment."""
        data: dict = {}

        path = Path(config_file) if config_file else CONFIG_FILE
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data.update(json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Could not read settings from %s: %s", path, e)

        env = os.environ if environ is None else environ
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            try:
                data[f.name] = _coerce(raw, f.default)
            except ValueError:
                logger.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, f.name.upper(), raw)

        try:
            return cls.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Invalid settings, using defaults: %s", e)
            return cls()

    def save(self, config_file: Optional[Path] = None) -> Path:
        """Write settings to the JSON config file."""
        path = Path(config_file) if config_file else CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)
        return path


def _coerce(raw: str, default):
    """Convert an environment string to the type of the field default."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    return raw
