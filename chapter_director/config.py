"""Director configuration.

One DirectorConfig value is handed to create_service() at startup. It can be
built directly or read from the environment (a .env file in the working
directory is loaded first, as in the dev launcher):

    AI_DIRECTOR_MODE                       sandbox | live (default sandbox)
    AI_DIRECTOR_SANDBOX_FIXTURES           fixture file path (default: bundled)
    AI_DIRECTOR_SANDBOX_DELAY_MILLIS       simulated sandbox latency (default 0)
    AI_DIRECTOR_RATE_LIMIT_MAX_REQUESTS    } both or neither
    AI_DIRECTOR_RATE_LIMIT_INTERVAL_MILLIS }
    GEMINI_API_KEY                         required in live mode
    GEMINI_MODEL, GEMINI_BASE_URL, GEMINI_TIMEOUT_MILLIS
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from chapter_director.errors import ConfigurationError
from chapter_director.live import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_MILLIS,
    LiveClientConfig,
)
from chapter_director.ratelimit import RateLimitConfig
from chapter_director.service import DISPATCH_MODES, DispatchMode

MODE_ENV = "AI_DIRECTOR_MODE"
SANDBOX_FIXTURES_ENV = "AI_DIRECTOR_SANDBOX_FIXTURES"
SANDBOX_DELAY_ENV = "AI_DIRECTOR_SANDBOX_DELAY_MILLIS"
RATE_LIMIT_MAX_ENV = "AI_DIRECTOR_RATE_LIMIT_MAX_REQUESTS"
RATE_LIMIT_INTERVAL_ENV = "AI_DIRECTOR_RATE_LIMIT_INTERVAL_MILLIS"
API_KEY_ENV = "GEMINI_API_KEY"
MODEL_ENV = "GEMINI_MODEL"
BASE_URL_ENV = "GEMINI_BASE_URL"
TIMEOUT_ENV = "GEMINI_TIMEOUT_MILLIS"


class DirectorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: DispatchMode = "sandbox"
    live: LiveClientConfig | None = None
    sandbox_fixtures_path: Path | None = None
    sandbox_delay_millis: int = Field(default=0, ge=0)
    rate_limit: RateLimitConfig | None = None

    @model_validator(mode="after")
    def _live_needs_settings(self) -> DirectorConfig:
        if self.mode == "live" and self.live is None:
            raise ValueError("Live mode requires Gemini settings (GEMINI_API_KEY)")
        return self

    @classmethod
    def from_environment(cls, env: Mapping[str, str] | None = None) -> DirectorConfig:
        """Build a config from environment variables.

        Pass `env` to read from a plain mapping instead (no .env loading).
        Raises ConfigurationError naming the offending variable.
        """
        if env is None:
            load_dotenv(Path.cwd() / ".env")
            env = os.environ

        mode = _str(env, MODE_ENV, "sandbox").lower()
        if mode not in DISPATCH_MODES:
            raise ConfigurationError(f"Unsupported {MODE_ENV} value: {mode}")

        fields: dict[str, Any] = {"mode": mode}

        fixtures = _str(env, SANDBOX_FIXTURES_ENV, "")
        if fixtures:
            fields["sandbox_fixtures_path"] = Path(fixtures)
        delay = _int(env, SANDBOX_DELAY_ENV, 0)
        if delay < 0:
            raise ConfigurationError(f"{SANDBOX_DELAY_ENV} must not be negative, got {delay}")
        fields["sandbox_delay_millis"] = delay

        max_requests = _str(env, RATE_LIMIT_MAX_ENV, "")
        interval = _str(env, RATE_LIMIT_INTERVAL_ENV, "")
        if max_requests or interval:
            fields["rate_limit"] = _build(RateLimitConfig, RATE_LIMIT_MAX_ENV, {
                "max_requests": _int(env, RATE_LIMIT_MAX_ENV, None),
                "interval_millis": _int(env, RATE_LIMIT_INTERVAL_ENV, None),
            })

        api_key = _str(env, API_KEY_ENV, "")
        if mode == "live" and not api_key:
            raise ConfigurationError(f"{API_KEY_ENV} is required when {MODE_ENV}=live")
        if api_key:
            fields["live"] = _build(LiveClientConfig, API_KEY_ENV, {
                "api_key": api_key,
                "model": _str(env, MODEL_ENV, DEFAULT_MODEL),
                "base_url": _str(env, BASE_URL_ENV, DEFAULT_BASE_URL),
                "timeout_millis": _int(env, TIMEOUT_ENV, DEFAULT_TIMEOUT_MILLIS),
            })

        return _build(cls, MODE_ENV, fields)


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------

def _str(env: Mapping[str, str], name: str, default: str) -> str:
    value = env.get(name, "").strip()
    return value or default


def _int(env: Mapping[str, str], name: str, default: int | None) -> int:
    raw = _str(env, name, "")
    if not raw:
        if default is None:
            raise ConfigurationError(f"{name} must be a positive integer")
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _build(model: type[BaseModel], name: str, fields: dict[str, Any]) -> Any:
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration near {name}: {e}") from e
