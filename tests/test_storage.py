import sqlite3
from datetime import UTC, datetime
from pathlib import Path

import pytest

from gitjump.models import EntityType
from gitjump.storage import SQLiteStorage


def test_repo_upsert_replaces_payload_but_keeps_visits(storage, make_repo) -> None:
    storage.save_repos([make_repo(1, "acme/app", stargazers_count=1)])
    visited_at = datetime(2026, 2, 1, 9, 0, tzinfo=UTC)
    assert storage.record_visit(EntityType.REPO, 1, visited_at=visited_at)

    storage.save_repos([make_repo(1, "acme/app", stargazers_count=5, description="updated")])

    repo = storage.get_repo(1)
    assert repo is not None
    assert repo.stargazers_count == 5
    assert repo.description == "updated"
    assert repo.visit_count == 1
    assert repo.first_visited_at == visited_at
    assert repo.last_visited_at == visited_at


def test_record_visit_counts_and_tracks_first_and_last(storage, make_repo, make_pull) -> None:
    storage.save_repos([make_repo(1, "acme/app")])
    storage.save_pull_requests([make_pull(21, 3, "Fix", repo_id=1)])
    first = datetime(2026, 2, 1, 9, 0, tzinfo=UTC)
    second = datetime(2026, 2, 5, 9, 0, tzinfo=UTC)

    assert storage.record_visit(EntityType.PR, 21, visited_at=first)
    assert storage.record_visit(EntityType.PR, 21, visited_at=second)
    assert storage.record_visit(EntityType.ISSUE, 999) is False

    pull = storage.get_pull_requests_by_repo(1)[0]
    assert pull.visit_count == 2
    assert pull.first_visited_at == first
    assert pull.last_visited_at == second


def test_issues_require_existing_repo(storage, make_issue) -> None:
    with pytest.raises(ValueError):
        storage.save_issues([make_issue(11, 1, "No repo")])
    with pytest.raises(sqlite3.IntegrityError):
        storage.save_issues([make_issue(11, 1, "Orphan", repo_id=404)])


def test_indexed_queries_and_manual_toggle(storage, make_repo) -> None:
    storage.save_repos(
        [
            make_repo(1, "acme/b", indexed=True),
            make_repo(2, "acme/a", indexed=False),
        ]
    )

    assert [repo.full_name for repo in storage.get_all_repos()] == ["acme/a", "acme/b"]
    assert [repo.id for repo in storage.get_indexed_repos()] == [1]

    assert storage.set_repo_indexed(2, True)
    repo = storage.get_repo(2)
    assert repo is not None
    assert repo.indexed is True
    assert repo.indexed_manually is True

    assert storage.set_repo_indexed(2, False)
    repo = storage.get_repo(2)
    assert repo is not None
    assert repo.indexed is False
    assert repo.indexed_manually is False
    assert storage.set_repo_indexed(404, True) is False


def test_get_repo_by_full_name_is_case_insensitive(storage, make_repo) -> None:
    storage.save_repos([make_repo(1, "Acme/App")])

    repo = storage.get_repo_by_full_name("acme/app")

    assert repo is not None
    assert repo.id == 1
    assert storage.get_repo_by_full_name("acme/other") is None


def test_meta_roundtrip_and_delete(storage) -> None:
    assert storage.get_meta("missing") is None

    storage.set_meta("sync_status", {"is_running": False})
    storage.set_meta("sync_status", {"is_running": True})
    assert storage.get_meta("sync_status") == {"is_running": True}

    storage.delete_meta("sync_status")
    assert storage.get_meta("sync_status") is None


def test_store_summary_and_persistence_across_instances(tmp_path: Path, make_repo, make_issue) -> None:
    db_path = tmp_path / "nested" / "gitjump.db"
    storage = SQLiteStorage(db_path)
    storage.save_repos([make_repo(1, "acme/app", indexed=True), make_repo(2, "acme/lib")])
    storage.save_issues([make_issue(11, 1, "Bug", repo_id=1)])

    reopened = SQLiteStorage(db_path)

    assert reopened.store_summary() == {"repos": 2, "indexed_repos": 1, "issues": 1, "pull_requests": 0}
    assert reopened.get_issues_by_repo(1)[0].title == "Bug"
