"""
Settings management with JSON persistence.

User settings are loaded field by field so a single bad value falls back to
its default instead of discarding the whole file. A frozen ``SessionConfig``
is derived from them and passed explicitly to each session start.
"""

import json
from pathlib import Path
from typing import List, Optional, Tuple

from platformdirs import user_config_path
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...utils.logger import get_logger
from .config import BUNDLED_MODEL_ID, TARGET_SAMPLE_RATE

logger = get_logger(__name__)

APP_NAME = "voxscribe"


def get_config_dir() -> Path:
    return user_config_path(APP_NAME, ensure_exists=True)


class SessionConfig(BaseModel):
    """Per-session options, copied at start() and never read again."""

    model_config = ConfigDict(frozen=True)

    device_id: Optional[str] = None
    language_hint: Optional[str] = None
    dictionary_hints: Tuple[str, ...] = ()
    streaming_enabled: bool = False
    sample_rate: int = Field(default=TARGET_SAMPLE_RATE, ge=8000, le=192000)


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=False)

    sample_rate: int = Field(default=TARGET_SAMPLE_RATE, ge=8000, le=192000)
    input_device: Optional[str] = None
    model_id: str = BUNDLED_MODEL_ID

    language: str = "en"
    auto_detect_language: bool = False
    dictionary_words: List[str] = Field(default_factory=list)
    streaming_enabled: bool = True

    @field_validator("model_id")
    @classmethod
    def model_id_not_empty(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("model_id must be a non-empty string")
        return v

    @field_validator("dictionary_words")
    @classmethod
    def strip_words(cls, v):
        return [w.strip() for w in v if isinstance(w, str) and w.strip()]

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Settings":
        config_file = path or get_config_dir() / "settings.json"

        if not config_file.exists():
            return cls()

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not load settings: {e}. Using defaults.")
            return cls()

        if not isinstance(data, dict):
            logger.warning("Settings file is not an object. Using defaults.")
            return cls()

        valid_keys = cls.model_fields.keys()
        filtered_data = {k: v for k, v in data.items() if k in valid_keys}
        return cls._load_with_fallbacks(filtered_data)

    @classmethod
    def _load_with_fallbacks(cls, data: dict) -> "Settings":
        """Load settings with field-level fallback to defaults on validation errors."""
        defaults = cls()
        result_data = {}

        for field_name in cls.model_fields:
            if field_name not in data:
                continue
            try:
                validated = cls.model_validate(
                    {**defaults.model_dump(), field_name: data[field_name]}
                )
                result_data[field_name] = getattr(validated, field_name)
            except ValueError:
                default_val = getattr(defaults, field_name)
                logger.warning(
                    f"Invalid {field_name} {data[field_name]!r}, resetting to {default_val}"
                )

        return cls(**result_data)

    def save(self, path: Optional[Path] = None) -> None:
        config_file = path or get_config_dir() / "settings.json"

        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(), f, indent=2)

    def reset_to_defaults(self) -> None:
        default = Settings()
        for key, value in default.model_dump().items():
            setattr(self, key, value)

    def session_config(self) -> SessionConfig:
        return SessionConfig(
            device_id=self.input_device,
            language_hint=None if self.auto_detect_language else self.language,
            dictionary_hints=tuple(self.dictionary_words),
            streaming_enabled=self.streaming_enabled,
            sample_rate=self.sample_rate,
        )
