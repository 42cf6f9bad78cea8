"""Configuration models and loading for gitjump."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

CONFIG_FILENAME = ".gitjump.yaml"


class SyncConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_interval_seconds: float = 5 * 60
    stuck_timeout_seconds: float = 30 * 60
    activity_threshold_days: int = 180
    fetch_workers: int = Field(default=4, ge=1)
    contributor_check_workers: int = Field(default=8, ge=1)


class QuickCheckConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    browsing_interval_seconds: float = Field(default=30.0, gt=0)
    idle_interval_seconds: float = Field(default=600.0, gt=0)
    max_active_repos: int = Field(default=10, ge=1)


class SearchConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cached_results: int = Field(default=2, ge=1, le=2)
    cached_contributors: int = Field(default=2, ge=0)
    progress_notify_throttle_seconds: float = 2.0


class PreferencesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sync_issues: bool = True
    sync_pull_requests: bool = True


class GithubConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    gh_bin: str = "gh"
    page_size: int = Field(default=100, ge=1, le=100)
    max_items_per_repo: int = 0
    rate_limit_retries: int = 2
    secondary_backoff_base_seconds: float = 5.0
    rate_limit_max_sleep_seconds: float = 90.0


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backend: str = "sqlite"
    sqlite_path: str = ".gitjump/gitjump.db"


class GitjumpConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sync: SyncConfig = Field(default_factory=SyncConfig)
    quick_check: QuickCheckConfig = Field(default_factory=QuickCheckConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    preferences: PreferencesConfig = Field(default_factory=PreferencesConfig)
    github: GithubConfig = Field(default_factory=GithubConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text())
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML at {path} must decode to a mapping")
    return data


def load_effective_config(
    config_dir: str | Path = ".",
    system_defaults: dict[str, Any] | None = None,
    runtime_override: dict[str, Any] | None = None,
) -> GitjumpConfig:
    """Load config with precedence runtime > <config_dir>/.gitjump.yaml > system."""
    file_config = _load_yaml(Path(config_dir) / CONFIG_FILENAME)

    merged: dict[str, Any] = {}
    for layer in (system_defaults, file_config, runtime_override):
        if layer:
            merged = _deep_merge(merged, layer)

    return GitjumpConfig.model_validate(merged)
