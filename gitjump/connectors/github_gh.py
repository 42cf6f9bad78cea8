"""GitHub source adapter backed by the gh CLI."""

from __future__ import annotations

import json
import logging
import re
import subprocess
import threading
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gitjump.config import GithubConfig
from gitjump.connectors.base import SourceAdapter
from gitjump.errors import GitjumpError
from gitjump.models import BranchRef, GithubUser, Issue, LabelRef, PullRequest, RateLimitInfo, Repo, UserRef

_RATE_LIMIT_RE = re.compile(r"(?:api|secondary) rate limit", re.IGNORECASE)
_AUTH_RE = re.compile(r"HTTP 401|bad credentials|requires authentication|gh auth login", re.IGNORECASE)
_NOT_FOUND_RE = re.compile(r"HTTP 404", re.IGNORECASE)
logger = logging.getLogger(__name__)


class GithubApiError(GitjumpError):
    def __init__(self, message: str, *, not_found: bool = False) -> None:
        super().__init__(message)
        self.not_found = not_found


class GithubAuthError(GithubApiError):
    pass


class GithubRateLimitError(GithubApiError):
    def __init__(
        self,
        message: str,
        *,
        reset_at: datetime | None = None,
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.reset_at = reset_at
        self.retry_after_seconds = retry_after_seconds


class GithubOwner(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str
    avatar_url: str = ""


class GithubLabel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    color: str = ""


class GithubRepo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    full_name: str
    html_url: str = ""
    description: str | None = None
    owner: GithubOwner
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    size: int = 0
    private: bool = False
    archived: bool = False
    fork: bool = False
    default_branch: str = "main"


class GithubIssue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    number: int
    title: str
    body: str | None = None
    state: str = "open"
    html_url: str = ""
    user: GithubOwner
    assignees: list[GithubOwner] = Field(default_factory=list)
    labels: list[GithubLabel] = Field(default_factory=list)
    comments: int = 0
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None
    author_association: str | None = None
    state_reason: str | None = None
    pull_request: dict[str, Any] | None = None


class GithubPull(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    number: int
    title: str
    body: str | None = None
    state: str = "open"
    html_url: str = ""
    user: GithubOwner
    assignees: list[GithubOwner] = Field(default_factory=list)
    labels: list[GithubLabel] = Field(default_factory=list)
    draft: bool = False
    merged: bool | None = None
    merged_at: datetime | None = None
    head: dict[str, Any] = Field(default_factory=dict)
    base: dict[str, Any] = Field(default_factory=dict)
    comments: int = 0
    review_comments: int = 0
    commits: int = 0
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None
    author_association: str | None = None


class GithubGhClient:
    def __init__(
        self,
        gh_bin: str = "gh",
        *,
        rate_limit_retries: int = 2,
        secondary_backoff_base_seconds: float = 5.0,
        rate_limit_max_sleep_seconds: float = 90.0,
    ) -> None:
        self.gh_bin = gh_bin
        self.rate_limit_retries = max(0, rate_limit_retries)
        self.secondary_backoff_base_seconds = max(1.0, secondary_backoff_base_seconds)
        self.rate_limit_max_sleep_seconds = max(1.0, rate_limit_max_sleep_seconds)
        self._rate_limit_lock = threading.Lock()
        self._global_backoff_until = 0.0

    def get_paginated(self, endpoint: str, per_page: int = 100, max_items: int | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            payload = self.get_page(endpoint, page=page, per_page=per_page)
            if not payload:
                break
            items.extend(payload)
            if max_items is not None and len(items) >= max_items:
                return items[:max_items]
            if len(payload) < per_page:
                break
            page += 1
        return items

    def get_page(self, endpoint: str, *, page: int, per_page: int = 100) -> list[dict[str, Any]]:
        query = f"{endpoint}{'&' if '?' in endpoint else '?'}per_page={per_page}&page={page}"
        payload = self.api_json(query)
        if not isinstance(payload, list):
            return []
        return payload

    def api_json(self, endpoint: str, method: str = "GET") -> Any:
        cmd = [self.gh_bin, "api", endpoint.lstrip("/"), "-X", method, "-H", "Accept: application/vnd.github+json"]
        for attempt in range(self.rate_limit_retries + 1):
            self._wait_for_global_backoff()
            try:
                proc = subprocess.run(cmd, text=True, capture_output=True, check=False)
            except FileNotFoundError as exc:
                raise GithubApiError(f"gh binary not found: {self.gh_bin}") from exc

            if proc.returncode == 0:
                output = proc.stdout.strip()
                if not output:
                    return None
                return json.loads(output)

            stderr = proc.stderr.strip()
            if _AUTH_RE.search(stderr):
                raise GithubAuthError(f"GitHub authentication failed for {endpoint}: {stderr}")
            if not _RATE_LIMIT_RE.search(stderr):
                raise GithubApiError(
                    f"gh api failed: {' '.join(cmd)}\n{stderr}",
                    not_found=bool(_NOT_FOUND_RE.search(stderr)),
                )

            reset_at = self._get_rate_limit_reset_at()
            retry_after_seconds = self._compute_rate_limit_wait_seconds(reset_at=reset_at, attempt=attempt)
            self._set_global_backoff(retry_after_seconds)
            has_retry = attempt < self.rate_limit_retries

            logger.warning(
                "GitHub rate limit hit for %s (attempt %s/%s). backoff=%.1fs reset_at=%s",
                endpoint,
                attempt + 1,
                self.rate_limit_retries + 1,
                retry_after_seconds,
                reset_at.isoformat() if reset_at else "unknown",
            )

            if has_retry and retry_after_seconds <= self.rate_limit_max_sleep_seconds:
                continue

            raise GithubRateLimitError(
                f"gh api rate limited: {endpoint}\n{stderr}",
                reset_at=reset_at,
                retry_after_seconds=retry_after_seconds,
            )
        raise GithubApiError(f"gh api failed unexpectedly after retries for endpoint={endpoint}")

    def rate_limit_payload(self) -> dict[str, Any]:
        cmd = [self.gh_bin, "api", "rate_limit", "-X", "GET", "-H", "Accept: application/vnd.github+json"]
        try:
            proc = subprocess.run(cmd, text=True, capture_output=True, check=False)
        except FileNotFoundError:
            return {}
        if proc.returncode != 0:
            if _AUTH_RE.search(proc.stderr):
                raise GithubAuthError(f"GitHub authentication failed for rate_limit: {proc.stderr.strip()}")
            return {}
        payload = proc.stdout.strip()
        if not payload:
            return {}
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def _wait_for_global_backoff(self) -> None:
        while True:
            with self._rate_limit_lock:
                wait_seconds = self._global_backoff_until - time.monotonic()
            if wait_seconds <= 0:
                return
            time.sleep(wait_seconds)

    def _set_global_backoff(self, wait_seconds: float) -> None:
        target = time.monotonic() + max(0.0, wait_seconds)
        with self._rate_limit_lock:
            self._global_backoff_until = max(self._global_backoff_until, target)

    def _compute_rate_limit_wait_seconds(self, *, reset_at: datetime | None, attempt: int) -> float:
        if reset_at is not None:
            until_reset = (reset_at - datetime.now(UTC)).total_seconds()
            if until_reset > self.rate_limit_max_sleep_seconds:
                return until_reset
            return max(1.0, until_reset + 1.0)
        backoff = self.secondary_backoff_base_seconds * (2**attempt)
        return float(min(self.rate_limit_max_sleep_seconds, max(1.0, backoff)))

    def _get_rate_limit_reset_at(self) -> datetime | None:
        try:
            data = self.rate_limit_payload()
        except GithubAuthError:
            return None

        reset_epochs: list[int] = []
        resources = data.get("resources")
        if isinstance(resources, dict):
            for resource in resources.values():
                if not isinstance(resource, dict):
                    continue
                remaining = resource.get("remaining")
                reset = resource.get("reset")
                if isinstance(remaining, int) and remaining <= 0 and isinstance(reset, int):
                    reset_epochs.append(reset)
        if not reset_epochs:
            return None
        return datetime.fromtimestamp(max(reset_epochs), UTC)


class GithubGhSourceAdapter(SourceAdapter):
    def __init__(
        self,
        gh_bin: str = "gh",
        *,
        page_size: int = 100,
        max_items_per_repo: int = 0,
        rate_limit_retries: int = 2,
        secondary_backoff_base_seconds: float = 5.0,
        rate_limit_max_sleep_seconds: float = 90.0,
    ) -> None:
        self.page_size = page_size
        self.max_items_per_repo = max_items_per_repo
        self.client = GithubGhClient(
            gh_bin=gh_bin,
            rate_limit_retries=rate_limit_retries,
            secondary_backoff_base_seconds=secondary_backoff_base_seconds,
            rate_limit_max_sleep_seconds=rate_limit_max_sleep_seconds,
        )

    @classmethod
    def from_config(cls, config: GithubConfig) -> GithubGhSourceAdapter:
        return cls(
            gh_bin=config.gh_bin,
            page_size=config.page_size,
            max_items_per_repo=config.max_items_per_repo,
            rate_limit_retries=config.rate_limit_retries,
            secondary_backoff_base_seconds=config.secondary_backoff_base_seconds,
            rate_limit_max_sleep_seconds=config.rate_limit_max_sleep_seconds,
        )

    def list_accessible_repos(self) -> list[Repo]:
        payload = self.client.get_paginated(
            "user/repos?affiliation=owner,collaborator,organization_member&sort=pushed",
            per_page=self.page_size,
        )
        repos: dict[int, Repo] = {}
        for item in payload:
            repo = _normalize_repo(GithubRepo.model_validate(item))
            repos[repo.id] = repo
        logger.debug("Listed %s accessible repos", len(repos))
        return list(repos.values())

    def get_repo(self, owner: str, repo: str) -> Repo:
        payload = self.client.api_json(f"repos/{owner}/{repo}")
        return _normalize_repo(GithubRepo.model_validate(payload))

    def list_issues(self, owner: str, repo: str, state: str = "all") -> list[Issue]:
        payload = self.client.get_paginated(
            f"repos/{owner}/{repo}/issues?state={state}",
            per_page=self.page_size,
            max_items=self.max_items_per_repo or None,
        )
        issues: list[Issue] = []
        for item in payload:
            issue = GithubIssue.model_validate(item)
            # GitHub issue API includes PRs; ignore them here.
            if issue.pull_request:
                continue
            issues.append(_normalize_issue(issue))
        return issues

    def list_pull_requests(self, owner: str, repo: str) -> list[PullRequest]:
        payload = self.client.get_paginated(
            f"repos/{owner}/{repo}/pulls?state=all&sort=updated&direction=desc",
            per_page=self.page_size,
            max_items=self.max_items_per_repo or None,
        )
        return [_normalize_pull(GithubPull.model_validate(item)) for item in payload]

    def get_authenticated_user(self) -> GithubUser:
        payload = self.client.api_json("user")
        if not isinstance(payload, dict) or not payload.get("login"):
            raise GithubAuthError("GitHub returned no authenticated user")
        return GithubUser.model_validate(payload)

    def is_contributor(self, owner: str, repo: str, username: str) -> bool:
        # Top 100 contributors by commit count; deeper pages are not worth the extra calls.
        payload = self.client.get_page(f"repos/{owner}/{repo}/contributors", page=1, per_page=100)
        return any(isinstance(item, dict) and item.get("login") == username for item in payload)

    def get_rate_limit(self) -> RateLimitInfo:
        data = self.client.rate_limit_payload()
        core = data.get("resources", {}).get("core") or data.get("rate") or {}
        reset = core.get("reset")
        return RateLimitInfo(
            limit=int(core.get("limit", 0) or 0),
            remaining=int(core.get("remaining", 0) or 0),
            used=int(core.get("used", 0) or 0),
            reset_at=datetime.fromtimestamp(reset, UTC) if isinstance(reset, int) else None,
        )


def _to_utc(value: datetime | None) -> datetime | None:
    return value.astimezone(UTC) if value is not None else None


def _normalize_repo(repo: GithubRepo) -> Repo:
    return Repo(
        id=repo.id,
        name=repo.name,
        full_name=repo.full_name,
        owner=repo.owner.login,
        html_url=repo.html_url,
        description=repo.description,
        created_at=_to_utc(repo.created_at),
        updated_at=_to_utc(repo.updated_at),
        pushed_at=_to_utc(repo.pushed_at),
        stargazers_count=repo.stargazers_count,
        forks_count=repo.forks_count,
        open_issues_count=repo.open_issues_count,
        size=repo.size,
        private=repo.private,
        archived=repo.archived,
        fork=repo.fork,
        default_branch=repo.default_branch,
    )


def _user_ref(owner: GithubOwner) -> UserRef:
    return UserRef(login=owner.login, avatar_url=owner.avatar_url)


def _normalize_issue(issue: GithubIssue) -> Issue:
    return Issue(
        id=issue.id,
        number=issue.number,
        title=issue.title,
        body=issue.body,
        state=issue.state,
        html_url=issue.html_url,
        user=_user_ref(issue.user),
        assignees=[_user_ref(item) for item in issue.assignees],
        labels=[LabelRef(name=label.name, color=label.color) for label in issue.labels],
        comments=issue.comments,
        created_at=issue.created_at.astimezone(UTC),
        updated_at=issue.updated_at.astimezone(UTC),
        closed_at=_to_utc(issue.closed_at),
        author_association=issue.author_association,
        state_reason=issue.state_reason,
    )


def _branch_ref(payload: dict[str, Any]) -> BranchRef | None:
    ref = payload.get("ref")
    if not ref:
        return None
    return BranchRef(ref=ref, sha=payload.get("sha") or "")


def _normalize_pull(pull: GithubPull) -> PullRequest:
    return PullRequest(
        id=pull.id,
        number=pull.number,
        title=pull.title,
        body=pull.body,
        state=pull.state,
        html_url=pull.html_url,
        user=_user_ref(pull.user),
        assignees=[_user_ref(item) for item in pull.assignees],
        labels=[LabelRef(name=label.name, color=label.color) for label in pull.labels],
        comments=pull.comments,
        created_at=pull.created_at.astimezone(UTC),
        updated_at=pull.updated_at.astimezone(UTC),
        closed_at=_to_utc(pull.closed_at),
        author_association=pull.author_association,
        draft=pull.draft,
        # The list endpoint omits `merged`; merged_at is the reliable signal there.
        merged=pull.merged if pull.merged is not None else pull.merged_at is not None,
        merged_at=_to_utc(pull.merged_at),
        head=_branch_ref(pull.head),
        base=_branch_ref(pull.base),
        additions=pull.additions,
        deletions=pull.deletions,
        changed_files=pull.changed_files,
        commits=pull.commits,
        review_comments=pull.review_comments,
    )
