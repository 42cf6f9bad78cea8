"""Connector interfaces for the remote source of repos, issues and pull requests."""

from __future__ import annotations

from typing import Protocol

from gitjump.models import GithubUser, Issue, PullRequest, RateLimitInfo, Repo


class SourceAdapter(Protocol):
    def list_accessible_repos(self) -> list[Repo]: ...

    def get_repo(self, owner: str, repo: str) -> Repo: ...

    def list_issues(self, owner: str, repo: str, state: str = "all") -> list[Issue]: ...

    def list_pull_requests(self, owner: str, repo: str) -> list[PullRequest]: ...

    def get_authenticated_user(self) -> GithubUser: ...

    def is_contributor(self, owner: str, repo: str, username: str) -> bool: ...

    def get_rate_limit(self) -> RateLimitInfo: ...
