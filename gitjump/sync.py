"""Sync engine: replicates accessible repos and, for indexed repos, their issues and PRs."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from gitjump.config import PreferencesConfig, SyncConfig
from gitjump.connectors.base import SourceAdapter
from gitjump.errors import RepoNotFoundError
from gitjump.models import (
    Issue,
    PullRequest,
    Repo,
    SyncEvent,
    SyncPreferences,
    SyncProgress,
    SyncResult,
    SyncStatus,
)
from gitjump.storage.base import LocalStore

logger = logging.getLogger(__name__)

SYNC_STATUS_KEY = "sync_status"
SYNC_PREFERENCES_KEY = "sync_preferences"

STUCK_RESET_ERROR = "Sync timeout - automatically reset"
INCONSISTENT_RESET_ERROR = "Inconsistent state - automatically reset"
RESTART_RESET_ERROR = "Process restarted - sync state reset"
MANUAL_RESET_ERROR = "Manually reset by user"

ProgressCallback = Callable[[SyncEvent], None]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def should_index_repo(
    *,
    pushed_at: datetime | None,
    me_contributing: bool,
    indexed_manually: bool,
    now: datetime,
    activity_threshold: timedelta,
) -> bool:
    """Decide whether a repo's issues and PRs are actively replicated.

    Manual override always wins; otherwise only repos the user contributes to
    and that saw a push within the activity threshold are indexed. A repo with
    no push timestamp is treated as active.
    """
    if indexed_manually:
        return True
    if not me_contributing:
        return False
    if pushed_at is not None and now - pushed_at > activity_threshold:
        return False
    return True


class SyncStatusStore:
    """Read-modify-write access to the singleton SyncStatus record."""

    def __init__(self, storage: LocalStore) -> None:
        self.storage = storage
        self._lock = threading.RLock()

    def get(self) -> SyncStatus:
        raw = self.storage.get_meta(SYNC_STATUS_KEY)
        if raw is None:
            return SyncStatus()
        return SyncStatus.model_validate(raw)

    def update(self, **changes: Any) -> SyncStatus:
        with self._lock:
            current = self.get()
            updated = current.model_copy(update=changes)
            self.storage.set_meta(SYNC_STATUS_KEY, updated.model_dump(mode="json"))
            return updated

    def update_progress(self, **changes: Any) -> SyncStatus:
        with self._lock:
            current = self.get()
            progress = current.progress.model_copy(update=changes)
            return self.update(progress=progress)

    def check(self, admit: Callable[[SyncStatus], bool]) -> bool:
        with self._lock:
            return admit(self.get())

    def try_begin(self, admit: Callable[[SyncStatus], bool], **changes: Any) -> bool:
        """Run the entry guard and mark the run started as one step under the lock."""
        with self._lock:
            if not admit(self.get()):
                return False
            self.update(is_running=True, **changes)
            return True


@dataclass
class _UnitOutcome:
    repo: Repo
    kind: str
    items: list[Issue] | list[PullRequest]
    error: Exception | None = None


class SyncEngine:
    def __init__(
        self,
        source: SourceAdapter,
        storage: LocalStore,
        *,
        config: SyncConfig | None = None,
        default_preferences: PreferencesConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.source = source
        self.storage = storage
        self.config = config or SyncConfig()
        self.default_preferences = default_preferences or PreferencesConfig()
        self.clock = clock or _utcnow
        self.status = SyncStatusStore(storage)

    @property
    def activity_threshold(self) -> timedelta:
        return timedelta(days=self.config.activity_threshold_days)

    def get_sync_status(self) -> SyncStatus:
        return self.status.get()

    def get_preferences(self) -> SyncPreferences:
        raw = self.storage.get_meta(SYNC_PREFERENCES_KEY)
        if raw is None:
            return SyncPreferences(
                sync_issues=self.default_preferences.sync_issues,
                sync_pull_requests=self.default_preferences.sync_pull_requests,
            )
        return SyncPreferences.model_validate(raw)

    def set_preferences(self, preferences: SyncPreferences) -> None:
        self.storage.set_meta(SYNC_PREFERENCES_KEY, preferences.model_dump(mode="json"))

    def should_run(self) -> bool:
        return self.status.check(self._admit)

    def _admit(self, status: SyncStatus, *, force: bool = False) -> bool:
        # Called with the status lock held.
        now = self.clock()

        if status.is_running and status.last_started_at is not None:
            running_for = now - status.last_started_at
            if running_for.total_seconds() > self.config.stuck_timeout_seconds:
                logger.warning(
                    "Sync appears stuck (running for %smin), forcing reset",
                    round(running_for.total_seconds() / 60),
                )
                status = self.status.update(is_running=False, last_error=STUCK_RESET_ERROR)
            else:
                logger.info("Sync already running since %s, skipping", status.last_started_at.isoformat())
                return False
        elif status.is_running:
            logger.warning("Inconsistent sync state (running without start time), resetting")
            status = self.status.update(is_running=False, last_error=INCONSISTENT_RESET_ERROR)

        if not force and status.last_completed_at is not None:
            since_last = (now - status.last_completed_at).total_seconds()
            if since_last < self.config.min_interval_seconds:
                logger.info("Last sync completed %ss ago, skipping", round(since_last))
                return False

        return True

    def run_full_sync(self, progress_callback: ProgressCallback | None = None) -> SyncResult | None:
        """Run one complete pass; returns None when the entry guard declines to start."""
        return self._run(progress_callback, force=False)

    def force_sync(self, progress_callback: ProgressCallback | None = None) -> SyncResult | None:
        """Ignore the minimum interval but still refuse while another run is live."""
        logger.info("Force sync requested")
        return self._run(progress_callback, force=True)

    def _run(self, progress_callback: ProgressCallback | None, *, force: bool) -> SyncResult | None:
        changes: dict[str, Any] = {
            "last_started_at": self.clock(),
            "last_error": None,
            "progress": SyncProgress(),
        }
        if force:
            changes["last_completed_at"] = None
        if not self.status.try_begin(lambda status: self._admit(status, force=force), **changes):
            return None
        logger.info("Starting full sync")

        try:
            result = self._run_full_sync(progress_callback)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("Sync failed: %s", message)
            self.status.update(is_running=False, last_error=message)
            raise

        self.status.update(is_running=False, last_completed_at=self.clock(), last_error=None)
        self.status.update_progress(current_repo=None)
        logger.info(
            "Sync completed: %s indexed repos, %s non-indexed, %s issues, %s PRs, %s failed units",
            result.indexed_repos,
            result.total_repos - result.indexed_repos,
            result.issues_saved,
            result.prs_saved,
            len(result.failed_units),
        )
        return result

    def force_sync_single_repo(self, full_name: str, progress_callback: ProgressCallback | None = None) -> SyncResult:
        logger.info("Single repo sync requested for %s", full_name)
        return self.sync_repos([full_name], progress_callback)

    def sync_repos(self, full_names: Iterable[str], progress_callback: ProgressCallback | None = None) -> SyncResult:
        """Refresh a narrowed set of repos without touching the global run status."""
        names = list(dict.fromkeys(full_names))
        result = SyncResult()
        if not names:
            return result

        login = self.source.get_authenticated_user().login
        result.account_login = login
        now = self.clock()

        records: list[Repo] = []
        for full_name in names:
            owner, _, name = full_name.partition("/")
            if not owner or not name:
                raise RepoNotFoundError(full_name)
            try:
                remote = self.source.get_repo(owner, name)
            except Exception as exc:
                if getattr(exc, "not_found", False):
                    raise RepoNotFoundError(full_name) from exc
                raise
            records.append(self._prepare_repo(remote, login, now))

        self.storage.save_repos(records)
        self._emit(progress_callback, SyncEvent.REPOS_SAVED)

        indexed = [repo for repo in records if repo.indexed]
        result.total_repos = len(records)
        result.indexed_repos = len(indexed)
        for repo in records:
            if not repo.indexed:
                logger.info("Repo %s is not indexed; refreshed metadata only", repo.full_name)

        preferences = self.get_preferences()
        for outcome in self._fetch_units(indexed, preferences):
            self._save_unit(outcome, result)
            self._emit(progress_callback, SyncEvent.REPO_PROCESSED)
        return result

    def reset_sync(self, reason: str = MANUAL_RESET_ERROR) -> SyncStatus:
        logger.warning("Sync reset requested: %s", reason)
        return self.status.update(is_running=False, last_error=reason, progress=SyncProgress())

    def reset_stale_state(self) -> bool:
        """Clear a running flag left behind by a previous process; returns True if one was found."""
        status = self.status.get()
        if not status.is_running:
            return False
        logger.warning("Clearing stuck sync state from previous session")
        self.status.update(is_running=False, last_error=RESTART_RESET_ERROR)
        return True

    def _run_full_sync(self, progress_callback: ProgressCallback | None) -> SyncResult:
        preferences = self.get_preferences()
        login = self.source.get_authenticated_user().login
        self.status.update(account_login=login)
        logger.info(
            "Syncing account %s (issues=%s, prs=%s)",
            login,
            preferences.sync_issues,
            preferences.sync_pull_requests,
        )

        remote_repos = self.source.list_accessible_repos()
        logger.info("Found %s accessible repositories", len(remote_repos))
        now = self.clock()
        records = self._prepare_repos(remote_repos, login, now)

        self.storage.save_repos(records)
        indexed = [repo for repo in records if repo.indexed]
        logger.info(
            "Saved %s repos (%s contributing, %s indexed)",
            len(records),
            sum(1 for repo in records if repo.me_contributing),
            len(indexed),
        )
        self.status.update_progress(
            total_repos=len(records),
            indexed_repos=len(indexed),
            non_indexed_repos=len(records) - len(indexed),
            issues_progress=0,
            prs_progress=0,
            current_repo=None,
            failed_units=0,
        )
        self._emit(progress_callback, SyncEvent.REPOS_SAVED)

        result = SyncResult(total_repos=len(records), indexed_repos=len(indexed), account_login=login)

        if not preferences.sync_issues and not preferences.sync_pull_requests:
            logger.info("Skipping issues and PRs (disabled in preferences)")
        # A disabled kind counts every indexed repo as processed for that counter.
        issues_done = 0 if preferences.sync_issues else len(indexed)
        prs_done = 0 if preferences.sync_pull_requests else len(indexed)
        failed = 0
        self.status.update_progress(issues_progress=issues_done, prs_progress=prs_done)

        for outcome in self._fetch_units(indexed, preferences):
            self._save_unit(outcome, result)
            if outcome.kind == "issues":
                issues_done += 1
            else:
                prs_done += 1
            if outcome.error is not None:
                failed += 1
            self.status.update_progress(
                issues_progress=issues_done,
                prs_progress=prs_done,
                current_repo=outcome.repo.full_name,
                failed_units=failed,
            )
            self._emit(progress_callback, SyncEvent.REPO_PROCESSED)

        return result

    def _prepare_repos(self, remote_repos: list[Repo], login: str, now: datetime) -> list[Repo]:
        if not remote_repos:
            return []
        workers = min(self.config.contributor_check_workers, len(remote_repos))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            contributing = list(pool.map(lambda repo: self._check_contributor(repo, login), remote_repos))
        return [
            self._prepare_repo(repo, login, now, me_contributing=flag)
            for repo, flag in zip(remote_repos, contributing)
        ]

    def _check_contributor(self, repo: Repo, login: str) -> bool:
        owner, name = repo.owner_and_name
        try:
            return self.source.is_contributor(owner, name, login)
        except Exception as exc:
            logger.warning("Could not check contributor status for %s: %s", repo.full_name, exc)
            return False

    def _prepare_repo(
        self,
        remote: Repo,
        login: str,
        now: datetime,
        *,
        me_contributing: bool | None = None,
    ) -> Repo:
        if me_contributing is None:
            me_contributing = self._check_contributor(remote, login)
        existing = self.storage.get_repo(remote.id)
        indexed_manually = existing.indexed_manually if existing is not None else False
        indexed = should_index_repo(
            pushed_at=remote.pushed_at,
            me_contributing=me_contributing,
            indexed_manually=indexed_manually,
            now=now,
            activity_threshold=self.activity_threshold,
        )
        return remote.model_copy(
            update={
                "me_contributing": me_contributing,
                "indexed_manually": indexed_manually,
                "indexed": indexed,
                "last_fetched_at": now,
            }
        )

    def _fetch_units(self, repos: list[Repo], preferences: SyncPreferences) -> Iterable[_UnitOutcome]:
        """Fetch issues/PRs concurrently; yields each unit on the calling thread as it finishes."""
        if not repos or not (preferences.sync_issues or preferences.sync_pull_requests):
            return
        with ThreadPoolExecutor(max_workers=self.config.fetch_workers) as pool:
            futures: list[Future[_UnitOutcome]] = []
            for repo in repos:
                if preferences.sync_issues:
                    futures.append(pool.submit(self._fetch_unit, repo, "issues"))
                if preferences.sync_pull_requests:
                    futures.append(pool.submit(self._fetch_unit, repo, "prs"))
            for future in as_completed(futures):
                yield future.result()

    def _fetch_unit(self, repo: Repo, kind: str) -> _UnitOutcome:
        owner, name = repo.owner_and_name
        try:
            if kind == "issues":
                items: list[Any] = self.source.list_issues(owner, name, "all")
            else:
                items = self.source.list_pull_requests(owner, name)
        except Exception as exc:
            return _UnitOutcome(repo=repo, kind=kind, items=[], error=exc)
        return _UnitOutcome(repo=repo, kind=kind, items=items)

    def _save_unit(self, outcome: _UnitOutcome, result: SyncResult) -> None:
        repo = outcome.repo
        label = "issues" if outcome.kind == "issues" else "PRs"
        if outcome.error is None:
            fetched_at = self.clock()
            stamped = [
                item.model_copy(update={"repo_id": repo.id, "last_fetched_at": fetched_at})
                for item in outcome.items
            ]
            try:
                if outcome.kind == "issues":
                    result.issues_saved += self.storage.save_issues(stamped)
                else:
                    result.prs_saved += self.storage.save_pull_requests(stamped)
            except Exception as exc:
                outcome.error = exc
            else:
                logger.info("Synced %s: %s %s", repo.full_name, len(stamped), label)
                return
        logger.error("Failed to sync %s for %s: %s", label, repo.full_name, outcome.error)
        result.failed_units.append(f"{repo.full_name}:{outcome.kind}")

    @staticmethod
    def _emit(progress_callback: ProgressCallback | None, event: SyncEvent) -> None:
        if progress_callback is None:
            return
        try:
            progress_callback(event)
        except Exception:
            logger.exception("Progress callback failed for %s", event.value)
