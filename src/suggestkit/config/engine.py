"""Engine tuning values."""

from __future__ import annotations

from dataclasses import dataclass

from suggestkit.domain.model import ErrorPolicy

from .env import optional_env_var
from .errors import ConfigurationError

DEFAULT_FAN_OUT = 4
DEFAULT_CALL_TIMEOUT_SECONDS = 30.0
DEFAULT_ROLLBACK_WINDOW_SECONDS = 900.0


@dataclass(frozen=True, slots=True)
class EngineConfig:
    fan_out: int = DEFAULT_FAN_OUT
    call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS
    rollback_window_seconds: float = DEFAULT_ROLLBACK_WINDOW_SECONDS
    default_error_policy: ErrorPolicy = ErrorPolicy.CONTINUE

    def __post_init__(self) -> None:
        if self.fan_out < 1:
            raise ConfigurationError("SUGGESTKIT_FAN_OUT must be at least 1")
        if self.call_timeout_seconds <= 0:
            raise ConfigurationError("SUGGESTKIT_CALL_TIMEOUT_SECONDS must be positive")
        if self.rollback_window_seconds < 0:
            raise ConfigurationError("SUGGESTKIT_ROLLBACK_WINDOW_SECONDS must not be negative")


def get_engine_config() -> EngineConfig:
    return EngineConfig(
        fan_out=optional_env_var("SUGGESTKIT_FAN_OUT", int, DEFAULT_FAN_OUT),
        call_timeout_seconds=optional_env_var(
            "SUGGESTKIT_CALL_TIMEOUT_SECONDS", float, DEFAULT_CALL_TIMEOUT_SECONDS
        ),
        rollback_window_seconds=optional_env_var(
            "SUGGESTKIT_ROLLBACK_WINDOW_SECONDS", float, DEFAULT_ROLLBACK_WINDOW_SECONDS
        ),
        default_error_policy=optional_env_var(
            "SUGGESTKIT_ERROR_POLICY", ErrorPolicy, ErrorPolicy.CONTINUE
        ),
    )
