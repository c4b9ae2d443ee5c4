"""Runtime configuration for the connector."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator

TUNING_PREFIX = "GITLAB_SYNC_"

# Environment variables holding service endpoints and credentials.
_CONNECTION_ENV = {
    "gitlab_host": "GITLAB_HOST",
    "gitlab_token": "GITLAB_TOKEN",
    "workplace_search_host": "WORKPLACE_SEARCH_HOST",
    "workplace_search_access_token": "WORKPLACE_SEARCH_ACCESS_TOKEN",
    "workplace_search_search_token": "WORKPLACE_SEARCH_SEARCH_TOKEN",
    "content_source_id": "CONTENT_SOURCE_ID",
}


class Settings(BaseModel):
    """Connection details plus tuning knobs, read from env and CLI overrides."""

    gitlab_host: str | None = None
    gitlab_token: str | None = None
    workplace_search_host: str | None = None
    workplace_search_access_token: str | None = None
    workplace_search_search_token: str | None = None
    content_source_id: str | None = None

    batch_size: int = Field(default=100, ge=1, le=100)
    per_page: int = Field(default=100, ge=1, le=100)
    probe_workers: int = Field(default=4, ge=1)
    http_timeout: float = 30.0
    http_max_attempts: int = Field(default=1, ge=1)
    gitlab_rps: float = Field(default=10.0, ge=0)
    readme_path: str = "README.md"
    readme_ref: str = "master"
    search_page_size: int = Field(default=1000, ge=1, le=1000)
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {"extra": "ignore", "validate_assignment": True}

    @field_validator("gitlab_host", "workplace_search_host")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        return value.rstrip("/") if value else value

    @classmethod
    def from_env(cls, overrides: dict[str, Any] | None = None) -> "Settings":
        """Build settings from the environment; non-None overrides win."""
        data: dict[str, Any] = {}
        for field_name, env_key in _CONNECTION_ENV.items():
            if env_key in os.environ:
                data[field_name] = os.environ[env_key]
        for key, value in os.environ.items():
            if not key.startswith(TUNING_PREFIX):
                continue
            field_name = key[len(TUNING_PREFIX) :].lower()
            if field_name in cls.model_fields and field_name not in _CONNECTION_ENV:
                data[field_name] = value
        for key, value in (overrides or {}).items():
            if value is not None:
                data[key] = value
        return cls(**data)

    def require(self, *names: str) -> None:
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            readable = ", ".join(_CONNECTION_ENV.get(name, name) for name in missing)
            raise ValueError(f"Missing required settings: {readable}")


__all__ = ["Settings"]
