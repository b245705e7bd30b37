"""Design-backend REST API configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .env import require_env_vars
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

BACKEND_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Holds the backend base URL, target project and client resilience settings."""

    base_url: str
    project_id: str
    resilience: ResilienceConfig
    auth_token: str | None = None


def get_backend_config(*, resilience: ResilienceConfig | None = None) -> BackendConfig:
    values = require_env_vars(("SUGGESTKIT_API_BASE_URL", "SUGGESTKIT_PROJECT_ID"))
    base_url = values["SUGGESTKIT_API_BASE_URL"].rstrip("/")
    auth_token = os.getenv("SUGGESTKIT_API_TOKEN") or None

    headers = {"Accept": "application/json"}
    if auth_token is not None:
        headers["Authorization"] = f"Bearer {auth_token}"

    return BackendConfig(
        base_url=base_url,
        project_id=values["SUGGESTKIT_PROJECT_ID"],
        auth_token=auth_token,
        resilience=resilience
        or ResilienceConfig(
            name="backend",
            base_url=base_url,
            timeout_seconds=BACKEND_TIMEOUT_SECONDS,
            retry=RetryPolicy(),
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            default_headers=headers,
        ),
    )
