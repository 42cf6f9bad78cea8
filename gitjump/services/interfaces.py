"""Service interfaces used by command/runtime orchestration."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from gitjump.config import GithubConfig
from gitjump.connectors.base import SourceAdapter
from gitjump.storage.base import LocalStore


class SourceAdapterFactory(Protocol):
    def __call__(self, config: GithubConfig) -> SourceAdapter: ...


class StorageFactory(Protocol):
    def __call__(self, db_path: str | Path) -> LocalStore: ...
