from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from gitjump.connectors.github_gh import GithubApiError
from gitjump.models import GithubUser, Issue, PullRequest, RateLimitInfo, Repo
from gitjump.storage import SQLiteStorage

NOW = datetime.now(UTC).replace(microsecond=0)


class FakeClock:
    def __init__(self, current: datetime = NOW) -> None:
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


class FakeSource:
    """In-memory SourceAdapter keyed by repo full name."""

    def __init__(self, login: str = "me") -> None:
        self.login = login
        self.repos: dict[str, Repo] = {}
        self.issues: dict[str, list[Issue]] = {}
        self.pulls: dict[str, list[PullRequest]] = {}
        self.contributors: dict[str, set[str]] = {}
        self.failing: set[tuple[str, str]] = set()
        self.auth_error: Exception | None = None
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def add_repo(
        self,
        repo: Repo,
        *,
        contributors: tuple[str, ...] = (),
        issues: list[Issue] | None = None,
        pulls: list[PullRequest] | None = None,
    ) -> Repo:
        self.repos[repo.full_name] = repo
        self.contributors[repo.full_name] = set(contributors)
        self.issues[repo.full_name] = list(issues or [])
        self.pulls[repo.full_name] = list(pulls or [])
        return repo

    def _record(self, call: str, full_name: str) -> None:
        with self._lock:
            self.calls.append((call, full_name))
        if (full_name, call) in self.failing:
            raise GithubApiError(f"gh api failed for {full_name} ({call})")

    def fetched(self, call: str) -> set[str]:
        return {name for kind, name in self.calls if kind == call}

    def list_accessible_repos(self) -> list[Repo]:
        return list(self.repos.values())

    def get_repo(self, owner: str, repo: str) -> Repo:
        full_name = f"{owner}/{repo}"
        self._record("repo", full_name)
        if full_name not in self.repos:
            raise GithubApiError(f"gh: Not Found (HTTP 404) repos/{full_name}", not_found=True)
        return self.repos[full_name]

    def list_issues(self, owner: str, repo: str, state: str = "all") -> list[Issue]:
        full_name = f"{owner}/{repo}"
        self._record("issues", full_name)
        return [issue.model_copy() for issue in self.issues.get(full_name, [])]

    def list_pull_requests(self, owner: str, repo: str) -> list[PullRequest]:
        full_name = f"{owner}/{repo}"
        self._record("prs", full_name)
        return [pull.model_copy() for pull in self.pulls.get(full_name, [])]

    def get_authenticated_user(self) -> GithubUser:
        if self.auth_error is not None:
            raise self.auth_error
        return GithubUser(login=self.login, id=1)

    def is_contributor(self, owner: str, repo: str, username: str) -> bool:
        full_name = f"{owner}/{repo}"
        self._record("contributors", full_name)
        return username in self.contributors.get(full_name, set())

    def get_rate_limit(self) -> RateLimitInfo:
        return RateLimitInfo(limit=5000, remaining=4200, used=800, reset_at=NOW + timedelta(hours=1))


def build_repo(repo_id: int, full_name: str, *, pushed_days_ago: float = 1, **overrides: Any) -> Repo:
    owner, _, name = full_name.partition("/")
    pushed_at = NOW - timedelta(days=pushed_days_ago)
    data: dict[str, Any] = {
        "id": repo_id,
        "name": name,
        "full_name": full_name,
        "owner": owner,
        "html_url": f"https://github.com/{full_name}",
        "pushed_at": pushed_at,
        "updated_at": pushed_at,
    }
    data.update(overrides)
    return Repo.model_validate(data)


def build_issue(issue_id: int, number: int, title: str, *, author: str = "alice", **overrides: Any) -> Issue:
    data: dict[str, Any] = {
        "id": issue_id,
        "number": number,
        "title": title,
        "html_url": f"https://github.com/acme/app/issues/{number}",
        "user": {"login": author},
        "created_at": NOW - timedelta(days=10),
        "updated_at": NOW - timedelta(days=2),
    }
    data.update(overrides)
    return Issue.model_validate(data)


def build_pull(pull_id: int, number: int, title: str, *, author: str = "bob", **overrides: Any) -> PullRequest:
    data: dict[str, Any] = {
        "id": pull_id,
        "number": number,
        "title": title,
        "html_url": f"https://github.com/acme/app/pull/{number}",
        "user": {"login": author},
        "created_at": NOW - timedelta(days=10),
        "updated_at": NOW - timedelta(days=1),
    }
    data.update(overrides)
    return PullRequest.model_validate(data)


@pytest.fixture
def storage(tmp_path: Path) -> SQLiteStorage:
    return SQLiteStorage(tmp_path / "gitjump.db")


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_repo():
    return build_repo


@pytest.fixture
def make_issue():
    return build_issue


@pytest.fixture
def make_pull():
    return build_pull
