"""Background service facade wiring sync, quick-check, search and cache together."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from gitjump.cache import ResultCache
from gitjump.config import GitjumpConfig
from gitjump.connectors.base import SourceAdapter
from gitjump.connectors.github_gh import GithubApiError, GithubAuthError
from gitjump.errors import EntityNotFoundError
from gitjump.hooks import HookManager, HookName
from gitjump.models import (
    EntityType,
    Issue,
    PullRequest,
    QuickCheckMode,
    RateLimitInfo,
    Repo,
    SearchResultItem,
    SyncEvent,
    SyncPreferences,
    SyncResult,
    SyncStatus,
)
from gitjump.quick_check import QuickCheckLoop
from gitjump.search import UnifiedSearch, normalize_query
from gitjump.storage.base import LocalStore
from gitjump.sync import Clock, ProgressCallback, SyncEngine

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY = "rate_limit"


class GitjumpService:
    def __init__(
        self,
        source: SourceAdapter,
        storage: LocalStore,
        *,
        config: GitjumpConfig | None = None,
        hooks: HookManager | None = None,
        clock: Clock | None = None,
        monotonic: Callable[[], float] | None = None,
    ) -> None:
        self.config = config or GitjumpConfig()
        self.source = source
        self.storage = storage
        self.hooks = hooks or HookManager()
        self.engine = SyncEngine(
            source,
            storage,
            config=self.config.sync,
            default_preferences=self.config.preferences,
            clock=clock,
        )
        self.quick_check = QuickCheckLoop(
            self.engine,
            source,
            storage,
            config=self.config.quick_check,
            progress_callback=self._handle_progress,
        )
        self.searcher = UnifiedSearch(storage)
        self.cache = ResultCache(
            storage,
            cached_results=self.config.search.cached_results,
            cached_contributors=self.config.search.cached_contributors,
        )
        self._monotonic = monotonic or time.monotonic
        self._last_progress_notify: float | None = None
        self._notify_lock = threading.Lock()

    def startup(self, *, initial_sync: bool = True) -> SyncResult | None:
        """Reset leftovers from a previous process, try an initial sync and start the quick-check loop."""
        self.engine.reset_stale_state()
        result: SyncResult | None = None
        if initial_sync:
            try:
                self.source.get_authenticated_user()
            except GithubAuthError as exc:
                logger.warning("No usable GitHub auth, skipping initial sync: %s", exc)
            else:
                try:
                    result = self.run_full_sync()
                except Exception:
                    logger.exception("Initial sync failed")
        self.start_quick_check_loop()
        return result

    def shutdown(self) -> None:
        self.stop_quick_check_loop()

    def run_full_sync(self, progress_callback: ProgressCallback | None = None) -> SyncResult | None:
        return self._run_with_hooks(self.engine.run_full_sync, progress_callback)

    def force_sync(self, progress_callback: ProgressCallback | None = None) -> SyncResult | None:
        return self._run_with_hooks(self.engine.force_sync, progress_callback)

    def force_sync_single_repo(
        self, full_name: str, progress_callback: ProgressCallback | None = None
    ) -> SyncResult:
        return self.engine.force_sync_single_repo(full_name, self._wrap_progress(progress_callback))

    def get_sync_status(self) -> SyncStatus:
        return self.engine.get_sync_status()

    def reset_sync(self, reason: str | None = None) -> SyncStatus:
        if reason:
            return self.engine.reset_sync(reason)
        return self.engine.reset_sync()

    def start_quick_check_loop(self) -> None:
        self.quick_check.start()

    def stop_quick_check_loop(self) -> None:
        self.quick_check.stop()

    def set_quick_check_mode(self, mode: QuickCheckMode | str) -> None:
        self.quick_check.set_mode(mode)

    def search(
        self,
        query: str | None = "",
        current_username: str | None = None,
        current_repo_name: str | None = None,
    ) -> list[SearchResultItem]:
        generation = self.cache.begin_read()
        results = self.searcher.search(query)
        if not normalize_query(query) and results:
            if self.cache.populate(results, current_username, generation):
                self.hooks.emit(
                    HookName.CACHE_UPDATED,
                    {"reason": "search", "current_repo_name": current_repo_name},
                    {"generation": generation},
                )
        return results

    def get_cached_results(self, current_repo_name: str | None = None) -> dict[str, Any]:
        snapshot = self.cache.snapshot()
        target = self.cache.quick_switch_target(current_repo_name)
        snapshot["quick_switch"] = target.model_dump(mode="json") if target else None
        return snapshot

    def record_visit(self, entity_type: EntityType | str, entity_id: int) -> None:
        entity_type = EntityType(entity_type)
        if not self.storage.record_visit(entity_type, entity_id):
            raise EntityNotFoundError(entity_type.value, entity_id)
        logger.info("Recorded visit to %s %s", entity_type.value, entity_id)
        self.hooks.emit(HookName.VISIT_RECORDED, {"entity_type": entity_type.value, "entity_id": entity_id})
        self._invalidate_cache("visit_recorded")

    def set_repo_indexed(self, repo_id: int, indexed: bool) -> None:
        if not self.storage.set_repo_indexed(repo_id, indexed):
            raise EntityNotFoundError(EntityType.REPO.value, repo_id)
        logger.info("Repo %s indexed=%s (manual)", repo_id, indexed)
        self._invalidate_cache("repo_indexed")

    def get_rate_limit(self) -> RateLimitInfo | None:
        """Live rate limit, falling back to the last observed value when the API is unreachable."""
        try:
            info = self.source.get_rate_limit()
        except GithubApiError as exc:
            logger.warning("Could not fetch rate limit: %s", exc)
            stored = self.storage.get_meta(RATE_LIMIT_KEY)
            return RateLimitInfo.model_validate(stored) if stored else None
        self.storage.set_meta(RATE_LIMIT_KEY, info.model_dump(mode="json"))
        return info

    def get_all_repos(self) -> list[Repo]:
        return self.storage.get_all_repos()

    def get_issues_by_repo(self, repo_id: int) -> list[Issue]:
        self._require_repo(repo_id)
        return self.storage.get_issues_by_repo(repo_id)

    def get_pull_requests_by_repo(self, repo_id: int) -> list[PullRequest]:
        self._require_repo(repo_id)
        return self.storage.get_pull_requests_by_repo(repo_id)

    def get_sync_preferences(self) -> SyncPreferences:
        return self.engine.get_preferences()

    def set_sync_preferences(self, preferences: SyncPreferences) -> SyncPreferences:
        self.engine.set_preferences(preferences)
        logger.info(
            "Sync preferences updated (issues=%s, prs=%s)",
            preferences.sync_issues,
            preferences.sync_pull_requests,
        )
        return preferences

    def find_repo(self, ref: str | int) -> Repo:
        """Look a stored repo up by numeric id or by `owner/name`."""
        text = str(ref).strip()
        if text.isdigit():
            return self._require_repo(int(text))
        repo = self.storage.get_repo_by_full_name(text)
        if repo is None:
            raise EntityNotFoundError(EntityType.REPO.value, text)
        return repo

    def _require_repo(self, repo_id: int) -> Repo:
        repo = self.storage.get_repo(repo_id)
        if repo is None:
            raise EntityNotFoundError(EntityType.REPO.value, repo_id)
        return repo

    def _run_with_hooks(
        self,
        run: Callable[[ProgressCallback | None], SyncResult | None],
        progress_callback: ProgressCallback | None,
    ) -> SyncResult | None:
        try:
            result = run(self._wrap_progress(progress_callback))
        except Exception as exc:
            self.hooks.emit(HookName.SYNC_FAILED, {"error": str(exc)})
            raise
        if result is not None:
            self.hooks.emit(HookName.SYNC_COMPLETED, {}, result.as_dict())
        return result

    def _wrap_progress(self, progress_callback: ProgressCallback | None) -> ProgressCallback:
        def callback(event: SyncEvent) -> None:
            self._handle_progress(event)
            if progress_callback is not None:
                progress_callback(event)

        return callback

    def _handle_progress(self, event: SyncEvent) -> None:
        hook = HookName.REPOS_SAVED if event == SyncEvent.REPOS_SAVED else HookName.REPO_PROCESSED
        self.hooks.emit(hook, {"event": event.value})
        self._invalidate_cache(event.value)

        if event == SyncEvent.REPO_PROCESSED and not self._should_notify_progress():
            return
        self.hooks.emit(HookName.CACHE_UPDATED, {"reason": event.value}, {"generation": self.cache.generation})

    def _should_notify_progress(self) -> bool:
        throttle = self.config.search.progress_notify_throttle_seconds
        with self._notify_lock:
            now = self._monotonic()
            if self._last_progress_notify is not None and now - self._last_progress_notify < throttle:
                return False
            self._last_progress_notify = now
            return True

    def _invalidate_cache(self, reason: str) -> None:
        generation = self.cache.invalidate()
        self.hooks.emit(HookName.CACHE_INVALIDATED, {"reason": reason}, {"generation": generation})
