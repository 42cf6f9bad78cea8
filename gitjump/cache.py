"""Small derived cache of the top empty-query results for instant display."""

from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Any

from pydantic import ValidationError

from gitjump.models import EntityType, SearchResultItem
from gitjump.search import extract_contributors
from gitjump.storage.base import LocalStore

logger = logging.getLogger(__name__)

FIRST_RESULT_KEY = "search_cache.first_result"
SECOND_RESULT_KEY = "search_cache.second_result"
CONTRIBUTORS_KEY = "search_cache.contributors"
CACHE_KEYS = (FIRST_RESULT_KEY, SECOND_RESULT_KEY, CONTRIBUTORS_KEY)

_CACHE_ERRORS = (sqlite3.Error, ValidationError, ValueError, TypeError)


class ResultCache:
    """Write-through cache guarded by a generation counter.

    A populate started before an invalidation carries a stale generation and is
    dropped, so a slow search can never overwrite a newer invalidation.
    """

    def __init__(self, storage: LocalStore, *, cached_results: int = 2, cached_contributors: int = 2) -> None:
        self.storage = storage
        self.cached_results = cached_results
        self.cached_contributors = cached_contributors
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def begin_read(self) -> int:
        with self._lock:
            return self._generation

    def invalidate(self) -> int:
        with self._lock:
            self._generation += 1
            self._clear()
            return self._generation

    def populate(self, results: list[SearchResultItem], current_username: str | None, generation: int) -> bool:
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping cache write from generation %s (current %s)", generation, self._generation)
                return False
            if not results:
                return False
            try:
                self._write_result(FIRST_RESULT_KEY, results[0])
                if self.cached_results > 1:
                    self._write_result(SECOND_RESULT_KEY, results[1] if len(results) > 1 else None)
                contributors = extract_contributors(results, current_username, limit=self.cached_contributors)
                self.storage.set_meta(CONTRIBUTORS_KEY, contributors)
            except _CACHE_ERRORS as exc:
                logger.warning("Failed to write search cache: %s", exc)
                self._clear()
                return False
            return True

    def load_first_result(self) -> SearchResultItem | None:
        return self._load_result(FIRST_RESULT_KEY)

    def load_second_result(self) -> SearchResultItem | None:
        return self._load_result(SECOND_RESULT_KEY)

    def load_contributors(self) -> list[str]:
        try:
            raw = self.storage.get_meta(CONTRIBUTORS_KEY)
        except _CACHE_ERRORS as exc:
            logger.warning("Failed to load cached contributors: %s", exc)
            return []
        if not isinstance(raw, list):
            return []
        return [str(login) for login in raw]

    def quick_switch_target(self, current_repo_name: str | None) -> SearchResultItem | None:
        """First cached result unless it points at the repo the user is already on."""
        first = self.load_first_result()
        if first is None:
            return None
        if current_repo_name and _points_at_repo(first, current_repo_name):
            return self.load_second_result()
        return first

    def snapshot(self) -> dict[str, Any]:
        first = self.load_first_result()
        second = self.load_second_result()
        return {
            "generation": self.generation,
            "first_result": first.model_dump(mode="json") if first else None,
            "second_result": second.model_dump(mode="json") if second else None,
            "contributors": self.load_contributors(),
        }

    def _clear(self) -> None:
        for key in CACHE_KEYS:
            try:
                self.storage.delete_meta(key)
            except _CACHE_ERRORS as exc:
                logger.warning("Failed to clear cache key %s: %s", key, exc)

    def _write_result(self, key: str, item: SearchResultItem | None) -> None:
        if item is None:
            self.storage.delete_meta(key)
            return
        self.storage.set_meta(key, item.model_dump(mode="json"))

    def _load_result(self, key: str) -> SearchResultItem | None:
        try:
            raw = self.storage.get_meta(key)
            if raw is None:
                return None
            return SearchResultItem.model_validate(raw)
        except _CACHE_ERRORS as exc:
            logger.warning("Failed to load cached result %s: %s", key, exc)
            return None


def _points_at_repo(item: SearchResultItem, repo_name: str) -> bool:
    target = repo_name.lower()
    if item.type == EntityType.REPO:
        return item.title.lower() == target
    return (item.repo_name or "").lower() == target
