"""Storage backend interfaces for gitjump persistence."""

from __future__ import annotations

from typing import Any, Protocol

from gitjump.models import EntityType, Issue, PullRequest, Repo


class LocalStore(Protocol):
    def init_schema(self) -> None: ...

    def save_repos(self, repos: list[Repo]) -> int: ...

    def save_issues(self, issues: list[Issue]) -> int: ...

    def save_pull_requests(self, pulls: list[PullRequest]) -> int: ...

    def get_repo(self, repo_id: int) -> Repo | None: ...

    def get_repo_by_full_name(self, full_name: str) -> Repo | None: ...

    def get_all_repos(self) -> list[Repo]: ...

    def get_indexed_repos(self) -> list[Repo]: ...

    def get_issues_by_repo(self, repo_id: int) -> list[Issue]: ...

    def get_pull_requests_by_repo(self, repo_id: int) -> list[PullRequest]: ...

    def record_visit(self, entity_type: EntityType, entity_id: int) -> bool: ...

    def set_repo_indexed(self, repo_id: int, indexed: bool) -> bool: ...

    def get_meta(self, key: str) -> Any | None: ...

    def set_meta(self, key: str, value: Any) -> None: ...

    def delete_meta(self, key: str) -> None: ...

    def store_summary(self) -> dict[str, int]: ...
