"""Hook registry for sync, visit and cache lifecycle events."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class HookName(str, Enum):
    REPOS_SAVED = "repos_saved"
    REPO_PROCESSED = "repo_processed"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    VISIT_RECORDED = "visit_recorded"
    CACHE_INVALIDATED = "cache_invalidated"
    CACHE_UPDATED = "cache_updated"
    ON_ERROR = "on_error"


HookCallback = Callable[[dict[str, Any], dict[str, Any]], dict[str, Any] | None]


class HookManager:
    """In-process hook manager with deterministic callback ordering."""

    def __init__(self) -> None:
        self._callbacks: dict[HookName, list[HookCallback]] = defaultdict(list)

    def register(self, name: HookName, callback: HookCallback) -> None:
        self._callbacks[HookName(name)].append(callback)

    def emit(self, name: HookName, context: dict[str, Any], envelope: dict[str, Any] | None = None) -> dict[str, Any]:
        result = dict(envelope or {})
        for callback in list(self._callbacks[HookName(name)]):
            try:
                patch = callback(context, dict(result))
            except Exception as exc:
                self._emit_error(exc, {"hook": HookName(name).value, **context})
                continue
            if patch:
                result.update(patch)
        return result

    def _emit_error(self, exc: Exception, context: dict[str, Any]) -> None:
        logger.warning("Hook callback for %s failed: %s", context.get("hook"), exc)
        for callback in list(self._callbacks[HookName.ON_ERROR]):
            try:
                callback({"exception": exc, **context}, {})
            except Exception:
                logger.exception("on_error hook callback failed")
