"""Pydantic configuration models for recall feedback."""

import os
import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _check_unit_interval(name: str, v: float) -> float:
    if not 0.0 <= v <= 1.0:
        raise ValueError(f"{name} must be 0-1, got {v}")
    return v


class DetectionConfig(BaseModel):
    """Which usage detectors run, and their tunables."""

    explicit: bool = True
    semantic: bool = True
    behavioral: bool = True
    semantic_threshold: float = 0.5
    extra_triggers: list[str] = Field(default_factory=list)  # regex sources

    @field_validator("semantic_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        return _check_unit_interval("semantic_threshold", v)

    @field_validator("extra_triggers")
    @classmethod
    def validate_triggers(cls, v: list[str]) -> list[str]:
        for source in v:
            try:
                re.compile(source)
            except re.error as e:
                raise ValueError(f"Invalid trigger pattern {source!r}: {e}")
        return v


class HindsightFeedbackConfig(BaseModel):
    """How feedback flows back into the memory backend."""

    send_feedback: bool = True
    boost_by_usefulness: bool = True
    boost_weight: float = 0.3

    @field_validator("boost_weight")
    @classmethod
    def validate_weight(cls, v: float) -> float:
        return _check_unit_interval("boost_weight", v)


class FeedbackConfig(BaseModel):
    """Feature flag and detection settings for the feedback loop."""

    enabled: bool = False
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    hindsight: HindsightFeedbackConfig = Field(default_factory=HindsightFeedbackConfig)
    debug: bool = False


class BackendConfig(BaseModel):
    """Memory backend connection."""

    host: str = "localhost"
    port: int = 8888
    api_key: Optional[str] = None
    bank_id: Optional[str] = None  # None = project directory name
    timeout: float = 10.0
    recall_timeout: float = 30.0

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"port must be 1-65535, got {v}")
        return v


class RetryConfig(BaseModel):
    """Retry/backoff configuration. Delays in seconds."""

    max_attempts: int = 3
    initial_delay: float = 0.1
    max_delay: float = 5.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < self.initial_delay:
            raise ValueError(
                f"Need 0 <= initial_delay <= max_delay, got {self.initial_delay}/{self.max_delay}"
            )
        return self


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_mode: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class AppConfig(BaseModel):
    """Main configuration model."""

    feedback: FeedbackConfig = Field(default_factory=FeedbackConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in the API key."""
        key = self.backend.api_key
        if key and key.startswith("${") and key.endswith("}"):
            self.backend.api_key = os.getenv(key[2:-1], "") or None
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        """Create config from dict; a bare feedback section at the root is accepted."""
        data = dict(data or {})
        if "feedback" not in data and {"enabled", "detection"} & data.keys():
            feedback = {k: data.pop(k) for k in ("enabled", "detection", "hindsight", "debug") if k in data}
            data["feedback"] = feedback
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")
