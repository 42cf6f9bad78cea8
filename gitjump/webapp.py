"""JSON API over the gitjump background service."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from gitjump.connectors.github_gh import GithubAuthError, GithubRateLimitError
from gitjump.errors import EntityNotFoundError
from gitjump.models import EntityType, QuickCheckMode, SyncPreferences
from gitjump.service import GitjumpService

logger = logging.getLogger(__name__)


class SyncRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    repo_name: str | None = None


class ResetRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = None


class IndexedRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    indexed: bool


class VisitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: EntityType
    entity_id: int


class ModeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: QuickCheckMode


def _dump(items: list[Any]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


def create_app(service: GitjumpService) -> FastAPI:
    app = FastAPI(title="gitjump", version="0.1.0")
    app.state.service = service

    @app.exception_handler(EntityNotFoundError)
    async def _not_found(_request: Any, exc: EntityNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(GithubAuthError)
    async def _auth_failed(_request: Any, exc: GithubAuthError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": str(exc)})

    @app.exception_handler(GithubRateLimitError)
    async def _rate_limited(_request: Any, exc: GithubRateLimitError) -> JSONResponse:
        headers = {}
        if exc.retry_after_seconds is not None:
            headers["Retry-After"] = str(int(exc.retry_after_seconds))
        return JSONResponse(status_code=429, content={"detail": str(exc)}, headers=headers)

    @app.get("/api/status")
    def api_status() -> dict[str, Any]:
        return service.get_sync_status().model_dump(mode="json")

    @app.post("/api/sync")
    def api_sync(request: SyncRequest | None = None) -> dict[str, Any]:
        repo_name = request.repo_name if request else None
        logger.info("API sync requested (repo=%s)", repo_name or "all")
        if repo_name:
            result = service.force_sync_single_repo(repo_name)
        else:
            result = service.force_sync()
        return {
            "started": result is not None,
            "result": result.as_dict() if result is not None else None,
            "status": service.get_sync_status().model_dump(mode="json"),
        }

    @app.post("/api/sync/reset")
    def api_sync_reset(request: ResetRequest | None = None) -> dict[str, Any]:
        status = service.reset_sync(request.reason if request else None)
        return status.model_dump(mode="json")

    @app.get("/api/rate-limit")
    def api_rate_limit() -> dict[str, Any]:
        info = service.get_rate_limit()
        if info is None:
            raise HTTPException(status_code=503, detail="Rate limit unavailable")
        return {**info.model_dump(mode="json"), "level": info.level}

    @app.get("/api/repos")
    def api_repos(indexed_only: bool = Query(default=False)) -> list[dict[str, Any]]:
        repos = service.get_all_repos()
        if indexed_only:
            repos = [repo for repo in repos if repo.indexed]
        return _dump(repos)

    @app.get("/api/repos/{repo_id}/issues")
    def api_repo_issues(repo_id: int) -> list[dict[str, Any]]:
        return _dump(service.get_issues_by_repo(repo_id))

    @app.get("/api/repos/{repo_id}/pulls")
    def api_repo_pulls(repo_id: int) -> list[dict[str, Any]]:
        return _dump(service.get_pull_requests_by_repo(repo_id))

    @app.post("/api/repos/{repo_id}/indexed")
    def api_repo_indexed(repo_id: int, request: IndexedRequest) -> dict[str, Any]:
        service.set_repo_indexed(repo_id, request.indexed)
        return {"repo_id": repo_id, "indexed": request.indexed}

    @app.post("/api/visits")
    def api_visit(request: VisitRequest) -> dict[str, Any]:
        service.record_visit(request.type, request.entity_id)
        return {"type": request.type.value, "entity_id": request.entity_id, "recorded": True}

    @app.post("/api/quick-check/mode")
    def api_quick_check_mode(request: ModeRequest) -> dict[str, Any]:
        service.set_quick_check_mode(request.mode)
        return {"mode": request.mode.value}

    @app.get("/api/search")
    def api_search(
        q: str = Query(default=""),
        username: str | None = Query(default=None),
        current_repo: str | None = Query(default=None),
        limit: int = Query(default=50, ge=1, le=1000),
    ) -> dict[str, Any]:
        results = service.search(q, username, current_repo)
        return {"query": q, "total": len(results), "results": _dump(results[:limit])}

    @app.get("/api/search/cache")
    def api_search_cache(current_repo: str | None = Query(default=None)) -> dict[str, Any]:
        return service.get_cached_results(current_repo)

    @app.get("/api/preferences")
    def api_get_preferences() -> dict[str, Any]:
        return service.get_sync_preferences().model_dump(mode="json")

    @app.put("/api/preferences")
    def api_put_preferences(request: SyncPreferences) -> dict[str, Any]:
        return service.set_sync_preferences(request).model_dump(mode="json")

    return app
