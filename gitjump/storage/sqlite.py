"""SQLite storage backend for mirrored GitHub entities."""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from gitjump.models import EntityType, Issue, PullRequest, Repo

# Columns owned by the store rather than the remote payload; never overwritten by a sync upsert.
_VISIT_FIELDS = ("visit_count", "first_visited_at", "last_visited_at")
_ENTITY_TABLES = {
    EntityType.REPO: "repos",
    EntityType.ISSUE: "issues",
    EntityType.PR: "pull_requests",
}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class SQLiteStorage:
    """SQLite-backed mirror of repos, issues and PRs plus a small key/value meta table."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA temp_store = MEMORY")
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS repos (
                  id INTEGER PRIMARY KEY,
                  full_name TEXT NOT NULL,
                  owner TEXT NOT NULL,
                  pushed_at TEXT,
                  indexed INTEGER NOT NULL DEFAULT 0,
                  indexed_manually INTEGER NOT NULL DEFAULT 0,
                  me_contributing INTEGER NOT NULL DEFAULT 0,
                  payload_json TEXT NOT NULL,
                  fetched_at TEXT NOT NULL,
                  visit_count INTEGER NOT NULL DEFAULT 0,
                  first_visited_at TEXT,
                  last_visited_at TEXT
                );

                CREATE TABLE IF NOT EXISTS issues (
                  id INTEGER PRIMARY KEY,
                  repo_id INTEGER NOT NULL,
                  number INTEGER NOT NULL,
                  state TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  payload_json TEXT NOT NULL,
                  fetched_at TEXT NOT NULL,
                  visit_count INTEGER NOT NULL DEFAULT 0,
                  first_visited_at TEXT,
                  last_visited_at TEXT,
                  FOREIGN KEY (repo_id) REFERENCES repos(id)
                );

                CREATE TABLE IF NOT EXISTS pull_requests (
                  id INTEGER PRIMARY KEY,
                  repo_id INTEGER NOT NULL,
                  number INTEGER NOT NULL,
                  state TEXT NOT NULL,
                  is_draft INTEGER NOT NULL,
                  updated_at TEXT NOT NULL,
                  payload_json TEXT NOT NULL,
                  fetched_at TEXT NOT NULL,
                  visit_count INTEGER NOT NULL DEFAULT 0,
                  first_visited_at TEXT,
                  last_visited_at TEXT,
                  FOREIGN KEY (repo_id) REFERENCES repos(id)
                );

                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value_json TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_repos_full_name ON repos(full_name);
                CREATE INDEX IF NOT EXISTS idx_repos_indexed ON repos(indexed);
                CREATE INDEX IF NOT EXISTS idx_issues_repo_number ON issues(repo_id, number);
                CREATE INDEX IF NOT EXISTS idx_pull_requests_repo_number ON pull_requests(repo_id, number);
                """
            )

    def save_repos(self, repos: list[Repo]) -> int:
        if not repos:
            return 0
        now = datetime.now(UTC).isoformat()
        rows = [
            (
                repo.id,
                repo.full_name,
                repo.owner,
                _iso(repo.pushed_at),
                1 if repo.indexed else 0,
                1 if repo.indexed_manually else 0,
                1 if repo.me_contributing else 0,
                repo.model_dump_json(exclude=set(_VISIT_FIELDS)),
                now,
            )
            for repo in repos
        ]
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO repos (
                  id, full_name, owner, pushed_at, indexed, indexed_manually, me_contributing, payload_json, fetched_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  full_name=excluded.full_name,
                  owner=excluded.owner,
                  pushed_at=excluded.pushed_at,
                  indexed=excluded.indexed,
                  indexed_manually=excluded.indexed_manually,
                  me_contributing=excluded.me_contributing,
                  payload_json=excluded.payload_json,
                  fetched_at=excluded.fetched_at
                """,
                rows,
            )
            conn.commit()
        return len(repos)

    def save_issues(self, issues: list[Issue]) -> int:
        if not issues:
            return 0
        now = datetime.now(UTC).isoformat()
        rows = [
            (
                issue.id,
                self._require_repo_id(issue),
                issue.number,
                issue.state.value,
                issue.updated_at.isoformat(),
                issue.model_dump_json(exclude=set(_VISIT_FIELDS)),
                now,
            )
            for issue in issues
        ]
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO issues (id, repo_id, number, state, updated_at, payload_json, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  repo_id=excluded.repo_id,
                  number=excluded.number,
                  state=excluded.state,
                  updated_at=excluded.updated_at,
                  payload_json=excluded.payload_json,
                  fetched_at=excluded.fetched_at
                """,
                rows,
            )
            conn.commit()
        return len(issues)

    def save_pull_requests(self, pulls: list[PullRequest]) -> int:
        if not pulls:
            return 0
        now = datetime.now(UTC).isoformat()
        rows = [
            (
                pull.id,
                self._require_repo_id(pull),
                pull.number,
                pull.state.value,
                1 if pull.draft else 0,
                pull.updated_at.isoformat(),
                pull.model_dump_json(exclude=set(_VISIT_FIELDS)),
                now,
            )
            for pull in pulls
        ]
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO pull_requests (id, repo_id, number, state, is_draft, updated_at, payload_json, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  repo_id=excluded.repo_id,
                  number=excluded.number,
                  state=excluded.state,
                  is_draft=excluded.is_draft,
                  updated_at=excluded.updated_at,
                  payload_json=excluded.payload_json,
                  fetched_at=excluded.fetched_at
                """,
                rows,
            )
            conn.commit()
        return len(pulls)

    def get_repo(self, repo_id: int) -> Repo | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM repos WHERE id = ?", (repo_id,)).fetchone()
        return self._row_to_repo(row) if row is not None else None

    def get_repo_by_full_name(self, full_name: str) -> Repo | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM repos WHERE full_name = ? COLLATE NOCASE ORDER BY fetched_at DESC LIMIT 1",
                (full_name,),
            ).fetchone()
        return self._row_to_repo(row) if row is not None else None

    def get_all_repos(self) -> list[Repo]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM repos ORDER BY full_name").fetchall()
        return [self._row_to_repo(row) for row in rows]

    def get_indexed_repos(self) -> list[Repo]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM repos WHERE indexed = 1 ORDER BY full_name").fetchall()
        return [self._row_to_repo(row) for row in rows]

    def get_issues_by_repo(self, repo_id: int) -> list[Issue]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM issues WHERE repo_id = ? ORDER BY number DESC",
                (repo_id,),
            ).fetchall()
        return [Issue.model_validate(self._merge_visit_columns(row)) for row in rows]

    def get_pull_requests_by_repo(self, repo_id: int) -> list[PullRequest]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM pull_requests WHERE repo_id = ? ORDER BY number DESC",
                (repo_id,),
            ).fetchall()
        return [PullRequest.model_validate(self._merge_visit_columns(row)) for row in rows]

    def record_visit(self, entity_type: EntityType, entity_id: int, *, visited_at: datetime | None = None) -> bool:
        table = _ENTITY_TABLES[EntityType(entity_type)]
        stamp = (visited_at or datetime.now(UTC)).isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                UPDATE {table}
                SET
                  visit_count = visit_count + 1,
                  first_visited_at = COALESCE(first_visited_at, ?),
                  last_visited_at = ?
                WHERE id = ?
                """,
                (stamp, stamp, entity_id),
            )
            conn.commit()
            return bool(cursor.rowcount)

    def set_repo_indexed(self, repo_id: int, indexed: bool) -> bool:
        flag = 1 if indexed else 0
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE repos
                SET indexed = ?, indexed_manually = ?
                WHERE id = ?
                """,
                (flag, flag, repo_id),
            )
            conn.commit()
            return bool(cursor.rowcount)

    def get_meta(self, key: str) -> Any | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value_json FROM meta WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return json.loads(row["value_json"])

    def set_meta(self, key: str, value: Any) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO meta (key, value_json, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                  value_json=excluded.value_json,
                  updated_at=excluded.updated_at
                """,
                (key, json.dumps(value), datetime.now(UTC).isoformat()),
            )
            conn.commit()

    def delete_meta(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM meta WHERE key = ?", (key,))
            conn.commit()

    def store_summary(self) -> dict[str, int]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                  (SELECT COUNT(*) FROM repos) AS repos,
                  (SELECT COUNT(*) FROM repos WHERE indexed = 1) AS indexed_repos,
                  (SELECT COUNT(*) FROM issues) AS issues,
                  (SELECT COUNT(*) FROM pull_requests) AS pull_requests
                """
            ).fetchone()
        return {key: int(row[key] or 0) for key in ("repos", "indexed_repos", "issues", "pull_requests")}

    @staticmethod
    def _require_repo_id(entity: Issue) -> int:
        if entity.repo_id is None:
            raise ValueError(f"Entity {entity.id} (#{entity.number}) has no repo_id")
        return entity.repo_id

    @staticmethod
    def _merge_visit_columns(row: sqlite3.Row) -> dict[str, Any]:
        data = json.loads(row["payload_json"])
        for field_name in _VISIT_FIELDS:
            data[field_name] = row[field_name]
        return data

    def _row_to_repo(self, row: sqlite3.Row) -> Repo:
        data = self._merge_visit_columns(row)
        data["indexed"] = bool(row["indexed"])
        data["indexed_manually"] = bool(row["indexed_manually"])
        data["me_contributing"] = bool(row["me_contributing"])
        return Repo.model_validate(data)
