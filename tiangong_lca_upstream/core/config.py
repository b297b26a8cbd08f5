"""Application configuration primitives."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import SettingsProfile

DEFAULT_SECRETS_PATH = Path(".secrets/secrets.toml")


class Settings(BaseSettings):
    """Central configuration for the upstream exploration workflow."""

    openai_api_key: str | None = None
    openai_model: str = "gpt-4.1"
    openai_base_url: str | None = None
    request_timeout: float = 120.0
    max_retries: int = 3
    retry_backoff: float = 0.5

    workbook_path: Path | None = None
    process_table_prefix: str = "process"
    flow_table_prefix: str = "flow"

    recursion_mode: Literal["tree", "queue"] = "tree"
    max_depth: int = 3
    max_iterations: int = 10
    canonical_key_length: int = 100

    concurrency_limit: int = 5
    grading_samples: int = 3
    # capped at the profile concurrency
    relevance_analysts: int = 3
    shortlist_size: int = 3

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    workflow_profile: Literal["default", "batch", "debug"] = "default"
    artifacts_dir: Path = Path("artifacts/upstream")

    model_config = SettingsConfigDict(env_prefix="LCA_", env_file=(), extra="ignore")

    @property
    def profile(self) -> SettingsProfile:
        """Expose derived profile information for fan-out policies."""
        if self.workflow_profile == "batch":
            return SettingsProfile(
                concurrency=self.concurrency_limit,
                retry_attempts=self.max_retries + 2,
                grading_samples=self.grading_samples,
                profile_name="batch",
            )
        if self.workflow_profile == "debug":
            return SettingsProfile(
                concurrency=1,
                retry_attempts=1,
                grading_samples=1,
                profile_name="debug",
            )
        return SettingsProfile(
            concurrency=max(self.concurrency_limit, 1),
            retry_attempts=self.max_retries,
            grading_samples=max(self.grading_samples, 1),
            profile_name="default",
        )


@dataclass(slots=True, frozen=True)
class RecursionLimits:
    max_depth: int | None
    max_iterations: int | None


def limits_for(settings: Settings, mode: str | None = None) -> RecursionLimits:
    """Return the caps that bound the configured recursion mode."""
    resolved = mode or settings.recursion_mode
    if resolved == "queue":
        return RecursionLimits(max_depth=None, max_iterations=settings.max_iterations)
    return RecursionLimits(max_depth=settings.max_depth, max_iterations=None)


# [openai] keys in the secrets file and the settings fields they populate
_ORACLE_SECRET_FIELDS: dict[str, str] = {
    "api_key": "openai_api_key",
    "model": "openai_model",
    "base_url": "openai_base_url",
    "timeout": "request_timeout",
}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings(**_load_settings_overrides())


def _load_settings_overrides(secrets_path: Path = DEFAULT_SECRETS_PATH) -> dict[str, Any]:
    """Read oracle credentials and ``[lca]`` field overrides from the secrets TOML file.

    Blank values are skipped so that environment variables still apply for them.
    """
    if not secrets_path.is_file():
        return {}
    with secrets_path.open("rb") as handle:
        data = tomllib.load(handle)

    overrides: dict[str, Any] = {}
    oracle_section = data.get("openai") or data.get("oracle") or {}
    for secret_key, field_name in _ORACLE_SECRET_FIELDS.items():
        overrides[field_name] = oracle_section.get(secret_key)
    overrides["openai_api_key"] = _sanitize_api_key(overrides["openai_api_key"])

    for key, value in (data.get("lca") or {}).items():
        if key in Settings.model_fields:
            overrides[key] = value
    return {key: value for key, value in overrides.items() if value is not None and value != ""}


def _sanitize_api_key(value: str | None) -> str | None:
    """Strip whitespace and a pasted ``Bearer`` prefix from an API key."""
    token = (value or "").strip()
    if token[:7].lower() == "bearer ":
        token = token[7:].strip()
    return token or None
