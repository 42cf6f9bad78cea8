"""Core Pydantic domain models for gitjump."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    REPO = "repo"
    PR = "pr"
    ISSUE = "issue"


class EntityState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class SyncEvent(str, Enum):
    REPOS_SAVED = "repos_saved"
    REPO_PROCESSED = "repo_processed"


class QuickCheckMode(str, Enum):
    BROWSING = "browsing"
    IDLE = "idle"


class UserRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str
    avatar_url: str = ""


class LabelRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    color: str = ""


class BranchRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ref: str
    sha: str = ""


class VisitStats(BaseModel):
    """Cumulative visit counters; preserved across every sync upsert."""

    visit_count: int = 0
    first_visited_at: datetime | None = None
    last_visited_at: datetime | None = None


class Repo(VisitStats):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str
    full_name: str
    owner: str
    html_url: str = ""
    description: str | None = None
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
    indexed: bool = False
    indexed_manually: bool = False
    me_contributing: bool = False
    last_fetched_at: datetime | None = None

    @property
    def owner_and_name(self) -> tuple[str, str]:
        owner, _, name = self.full_name.partition("/")
        return owner, name


class Issue(VisitStats):
    model_config = ConfigDict(extra="forbid")

    id: int
    repo_id: int | None = None
    number: int
    title: str
    body: str | None = None
    state: EntityState = EntityState.OPEN
    html_url: str = ""
    user: UserRef
    assignees: list[UserRef] = Field(default_factory=list)
    labels: list[LabelRef] = Field(default_factory=list)
    comments: int = 0
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None
    author_association: str | None = None
    state_reason: str | None = None
    last_fetched_at: datetime | None = None


class PullRequest(Issue):
    draft: bool = False
    merged: bool = False
    merged_at: datetime | None = None
    head: BranchRef | None = None
    base: BranchRef | None = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    commits: int = 0
    review_comments: int = 0


class GithubUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str
    id: int | None = None
    name: str | None = None


class RateLimitInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limit: int
    remaining: int
    used: int = 0
    reset_at: datetime | None = None

    @property
    def level(self) -> str:
        if self.remaining < 100:
            return "critical"
        if self.remaining < 500:
            return "warning"
        return "good"


class SyncPreferences(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sync_issues: bool = True
    sync_pull_requests: bool = True


class SyncProgress(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_repos: int = 0
    indexed_repos: int = 0
    non_indexed_repos: int = 0
    issues_progress: int = 0
    prs_progress: int = 0
    current_repo: str | None = None
    failed_units: int = 0


class SyncStatus(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_running: bool = False
    last_started_at: datetime | None = None
    last_completed_at: datetime | None = None
    last_error: str | None = None
    account_login: str | None = None
    progress: SyncProgress = Field(default_factory=SyncProgress)


class SearchResultItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: EntityType
    id: str
    entity_id: int
    title: str
    url: str = ""
    repo_id: int | None = None
    repo_name: str | None = None
    number: int | None = None
    state: EntityState | None = None
    user: UserRef | None = None
    draft: bool | None = None
    merged: bool | None = None
    score: int = 0
    last_visited_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class SyncResult:
    total_repos: int = 0
    indexed_repos: int = 0
    issues_saved: int = 0
    prs_saved: int = 0
    failed_units: list[str] = field(default_factory=list)
    account_login: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_repos": self.total_repos,
            "indexed_repos": self.indexed_repos,
            "issues_saved": self.issues_saved,
            "prs_saved": self.prs_saved,
            "failed_units": list(self.failed_units),
            "account_login": self.account_login,
        }
