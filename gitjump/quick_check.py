"""Adaptive background loop that re-checks recently active repos."""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from gitjump.config import QuickCheckConfig
from gitjump.connectors.base import SourceAdapter
from gitjump.connectors.github_gh import GithubAuthError
from gitjump.models import QuickCheckMode, Repo
from gitjump.storage.base import LocalStore
from gitjump.sync import ProgressCallback, SyncEngine

logger = logging.getLogger(__name__)


def _sort_stamp(value: datetime | None) -> float:
    return value.timestamp() if value is not None else 0.0


def select_active_repos(repos: list[Repo], limit: int) -> list[Repo]:
    """Indexed repos ordered by most recent visit, then most recent push."""
    indexed = [repo for repo in repos if repo.indexed]
    indexed.sort(
        key=lambda repo: (_sort_stamp(repo.last_visited_at), _sort_stamp(repo.pushed_at)),
        reverse=True,
    )
    return indexed[:limit]


def has_new_activity(stored: Repo, remote: Repo) -> bool:
    if remote.pushed_at is not None and (stored.pushed_at is None or remote.pushed_at > stored.pushed_at):
        return True
    if remote.updated_at is not None and (stored.updated_at is None or remote.updated_at > stored.updated_at):
        return True
    return remote.open_issues_count != stored.open_issues_count


class QuickCheckLoop:
    def __init__(
        self,
        engine: SyncEngine,
        source: SourceAdapter,
        storage: LocalStore,
        *,
        config: QuickCheckConfig | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.engine = engine
        self.source = source
        self.storage = storage
        self.config = config or QuickCheckConfig()
        self.progress_callback = progress_callback
        self.mode = QuickCheckMode.BROWSING
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._running = False
        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def interval_seconds(self) -> float:
        if self.mode == QuickCheckMode.IDLE:
            return self.config.idle_interval_seconds
        return self.config.browsing_interval_seconds

    def start(self) -> None:
        with self._state_lock:
            self._running = True
            self._schedule_locked()
        logger.info("Quick check loop started in %s mode (%ss)", self.mode.value, self.interval_seconds)

    def stop(self) -> None:
        with self._state_lock:
            self._running = False
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.info("Quick check loop stopped")

    def set_mode(self, mode: QuickCheckMode | str) -> None:
        mode = QuickCheckMode(mode)
        with self._state_lock:
            if mode == self.mode:
                return
            self.mode = mode
            if self._running:
                self._schedule_locked()
        logger.info("Quick check mode changed to %s (%ss)", mode.value, self.interval_seconds)

    def check_now(self) -> list[str]:
        """Run one tick synchronously; returns the full names of refreshed repos."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Quick check already in progress, skipping")
            return []
        try:
            return self._tick()
        finally:
            self._tick_lock.release()

    def _schedule_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._generation += 1
        timer = threading.Timer(self.interval_seconds, self._fire, args=(self._generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _fire(self, generation: int) -> None:
        with self._state_lock:
            if generation != self._generation or not self._running:
                return
        try:
            self.check_now()
        except Exception:
            logger.exception("Quick check tick failed")
        finally:
            with self._state_lock:
                if generation == self._generation and self._running:
                    self._schedule_locked()

    def _tick(self) -> list[str]:
        if self.engine.get_sync_status().is_running:
            logger.debug("Full sync running, skipping quick check")
            return []

        active = select_active_repos(self.storage.get_indexed_repos(), self.config.max_active_repos)
        if not active:
            return []

        changed: list[str] = []
        for stored in active:
            owner, name = stored.owner_and_name
            try:
                remote = self.source.get_repo(owner, name)
            except GithubAuthError as exc:
                logger.warning("Quick check stopped, authentication failed: %s", exc)
                break
            except Exception as exc:
                logger.warning("Quick check failed for %s: %s", stored.full_name, exc)
                continue
            if has_new_activity(stored, remote):
                changed.append(stored.full_name)

        if not changed:
            logger.debug("Quick check found no new activity in %s repos", len(active))
            return []

        logger.info("Quick check found activity in %s", ", ".join(changed))
        self.engine.sync_repos(changed, self.progress_callback)
        return changed
