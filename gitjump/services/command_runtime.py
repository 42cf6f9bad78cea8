"""Typed command runtime dependency container."""

from __future__ import annotations

from dataclasses import dataclass

from gitjump.connectors.github_gh import GithubGhSourceAdapter
from gitjump.services.interfaces import SourceAdapterFactory, StorageFactory
from gitjump.storage.sqlite import SQLiteStorage


@dataclass(frozen=True)
class CommandRuntime:
    source_factory: SourceAdapterFactory
    storage_cls: StorageFactory


def default_runtime() -> CommandRuntime:
    return CommandRuntime(
        source_factory=GithubGhSourceAdapter.from_config,
        storage_cls=SQLiteStorage,
    )
