import threading
import time
from datetime import timedelta

import pytest

from gitjump.config import SyncConfig
from gitjump.connectors.github_gh import GithubAuthError
from gitjump.errors import RepoNotFoundError
from gitjump.models import EntityType, SyncEvent, SyncPreferences
from gitjump.sync import (
    INCONSISTENT_RESET_ERROR,
    RESTART_RESET_ERROR,
    STUCK_RESET_ERROR,
    SyncEngine,
    should_index_repo,
)

THRESHOLD = timedelta(days=180)


def _engine(source, storage, clock) -> SyncEngine:
    return SyncEngine(source, storage, config=SyncConfig(fetch_workers=2, contributor_check_workers=2), clock=clock)


def _seed_scenario(source, storage, make_repo, make_issue, make_pull) -> None:
    # A: contributing, active. B: not contributing. C: contributing, stale, manually indexed.
    source.add_repo(
        make_repo(1, "acme/a", pushed_days_ago=1),
        contributors=("me",),
        issues=[make_issue(101, 1, "Crash on start"), make_issue(102, 2, "Docs typo")],
        pulls=[make_pull(201, 3, "Fix crash")],
    )
    source.add_repo(
        make_repo(2, "acme/b", pushed_days_ago=1),
        contributors=("someone-else",),
        issues=[make_issue(111, 1, "Unrelated")],
    )
    source.add_repo(
        make_repo(3, "acme/c", pushed_days_ago=240),
        contributors=("me",),
        issues=[make_issue(121, 7, "Old bug")],
        pulls=[make_pull(221, 8, "Old fix")],
    )
    storage.save_repos([make_repo(3, "acme/c", pushed_days_ago=240, indexed=True, indexed_manually=True)])


@pytest.mark.parametrize(
    ("pushed_days_ago", "me_contributing", "indexed_manually", "expected"),
    [
        (1, True, False, True),
        (1, False, False, False),
        (400, True, False, False),
        (400, False, True, True),
        (1, False, True, True),
        (None, True, False, True),
        (None, False, False, False),
    ],
)
def test_should_index_repo_rules(clock, pushed_days_ago, me_contributing, indexed_manually, expected) -> None:
    pushed_at = None if pushed_days_ago is None else clock() - timedelta(days=pushed_days_ago)
    assert (
        should_index_repo(
            pushed_at=pushed_at,
            me_contributing=me_contributing,
            indexed_manually=indexed_manually,
            now=clock(),
            activity_threshold=THRESHOLD,
        )
        is expected
    )


def test_full_sync_indexes_and_fetches_only_eligible_repos(source, storage, clock, make_repo, make_issue, make_pull) -> None:
    _seed_scenario(source, storage, make_repo, make_issue, make_pull)
    events: list[SyncEvent] = []
    engine = _engine(source, storage, clock)

    result = engine.run_full_sync(events.append)

    assert result is not None
    indexed = {repo.full_name: repo.indexed for repo in storage.get_all_repos()}
    assert indexed == {"acme/a": True, "acme/b": False, "acme/c": True}
    assert source.fetched("issues") == {"acme/a", "acme/c"}
    assert source.fetched("prs") == {"acme/a", "acme/c"}

    assert [issue.number for issue in storage.get_issues_by_repo(1)] == [2, 1]
    assert [pull.number for pull in storage.get_pull_requests_by_repo(3)] == [8]
    assert storage.get_issues_by_repo(2) == []
    assert all(issue.repo_id == 1 for issue in storage.get_issues_by_repo(1))

    assert result.total_repos == 3
    assert result.indexed_repos == 2
    assert result.issues_saved == 3
    assert result.prs_saved == 2
    assert result.failed_units == []
    assert result.account_login == "me"

    assert events[0] == SyncEvent.REPOS_SAVED
    assert events.count(SyncEvent.REPO_PROCESSED) == 4

    status = engine.get_sync_status()
    assert status.is_running is False
    assert status.last_error is None
    assert status.last_completed_at == clock()
    assert status.account_login == "me"
    assert status.progress.total_repos == 3
    assert status.progress.indexed_repos == 2
    assert status.progress.non_indexed_repos == 1
    assert status.progress.issues_progress == 2
    assert status.progress.prs_progress == 2
    assert status.progress.current_repo is None


def test_manual_override_is_sticky_across_syncs(source, storage, clock, make_repo, make_issue, make_pull) -> None:
    _seed_scenario(source, storage, make_repo, make_issue, make_pull)
    engine = _engine(source, storage, clock)
    engine.run_full_sync()

    assert storage.set_repo_indexed(2, True)
    clock.advance(minutes=10)
    engine.run_full_sync()

    repo_b = storage.get_repo(2)
    assert repo_b is not None
    assert repo_b.indexed is True
    assert repo_b.indexed_manually is True
    assert [issue.id for issue in storage.get_issues_by_repo(2)] == [111]


def test_deindexing_keeps_stored_issues(source, storage, clock, make_repo, make_issue, make_pull) -> None:
    _seed_scenario(source, storage, make_repo, make_issue, make_pull)
    engine = _engine(source, storage, clock)
    engine.run_full_sync()

    source.contributors["acme/a"] = set()
    clock.advance(minutes=10)
    engine.run_full_sync()

    repo_a = storage.get_repo(1)
    assert repo_a is not None
    assert repo_a.indexed is False
    assert len(storage.get_issues_by_repo(1)) == 2


def test_guard_blocks_until_interval_and_force_bypasses(source, storage, clock, make_repo) -> None:
    source.add_repo(make_repo(1, "acme/a"), contributors=("me",))
    engine = _engine(source, storage, clock)

    assert engine.run_full_sync() is not None
    assert engine.should_run() is False
    assert engine.run_full_sync() is None

    assert engine.force_sync() is not None

    clock.advance(minutes=4)
    assert engine.should_run() is False
    clock.advance(minutes=2)
    assert engine.should_run() is True


def test_running_sync_refuses_until_stuck_timeout(storage, source, clock) -> None:
    engine = _engine(source, storage, clock)
    engine.status.update(is_running=True, last_started_at=clock() - timedelta(minutes=10))

    assert engine.should_run() is False
    assert engine.force_sync() is None
    assert engine.get_sync_status().is_running is True

    clock.advance(minutes=21)
    assert engine.should_run() is True
    status = engine.get_sync_status()
    assert status.is_running is False
    assert status.last_error == STUCK_RESET_ERROR


def test_concurrent_force_syncs_start_only_one_run(source, storage, clock, make_repo) -> None:
    source.add_repo(make_repo(1, "acme/a"), contributors=("me",))
    engine = _engine(source, storage, clock)
    list_repos = source.list_accessible_repos

    def slow_list_repos():
        time.sleep(0.3)
        return list_repos()

    source.list_accessible_repos = slow_list_repos
    barrier = threading.Barrier(2)
    results = []

    def worker() -> None:
        barrier.wait()
        results.append(engine.force_sync())

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    started = [result for result in results if result is not None]
    assert len(results) == 2
    assert len(started) == 1
    assert started[0].total_repos == 1
    assert engine.get_sync_status().is_running is False


def test_running_without_start_time_is_reset(storage, source, clock) -> None:
    engine = _engine(source, storage, clock)
    engine.status.update(is_running=True, last_started_at=None)

    assert engine.should_run() is True
    assert engine.get_sync_status().last_error == INCONSISTENT_RESET_ERROR


def test_unit_failure_is_counted_and_run_completes(source, storage, clock, make_repo, make_issue, make_pull) -> None:
    _seed_scenario(source, storage, make_repo, make_issue, make_pull)
    source.failing.add(("acme/a", "issues"))
    engine = _engine(source, storage, clock)

    result = engine.run_full_sync()

    assert result is not None
    assert result.failed_units == ["acme/a:issues"]
    assert storage.get_issues_by_repo(1) == []
    assert len(storage.get_pull_requests_by_repo(1)) == 1
    status = engine.get_sync_status()
    assert status.last_error is None
    assert status.last_completed_at is not None
    assert status.progress.failed_units == 1
    assert status.progress.issues_progress == 2


def test_contributor_check_failure_means_not_contributing(source, storage, clock, make_repo) -> None:
    source.add_repo(make_repo(1, "acme/a"), contributors=("me",))
    source.failing.add(("acme/a", "contributors"))
    engine = _engine(source, storage, clock)

    engine.run_full_sync()

    repo = storage.get_repo(1)
    assert repo is not None
    assert repo.me_contributing is False
    assert repo.indexed is False


def test_auth_failure_is_fatal_and_recorded(source, storage, clock, make_repo) -> None:
    source.add_repo(make_repo(1, "acme/a"), contributors=("me",))
    source.auth_error = GithubAuthError("gh: Bad credentials (HTTP 401)")
    engine = _engine(source, storage, clock)

    with pytest.raises(GithubAuthError):
        engine.run_full_sync()

    status = engine.get_sync_status()
    assert status.is_running is False
    assert status.last_completed_at is None
    assert "Bad credentials" in (status.last_error or "")
    assert storage.get_all_repos() == []


def test_disabled_preferences_skip_fetches(source, storage, clock, make_repo, make_issue, make_pull) -> None:
    _seed_scenario(source, storage, make_repo, make_issue, make_pull)
    engine = _engine(source, storage, clock)
    engine.set_preferences(SyncPreferences(sync_issues=False, sync_pull_requests=True))

    result = engine.run_full_sync()

    assert result is not None
    assert source.fetched("issues") == set()
    assert source.fetched("prs") == {"acme/a", "acme/c"}
    progress = engine.get_sync_status().progress
    assert progress.issues_progress == 2
    assert progress.prs_progress == 2


def test_preferences_default_to_config(storage, source) -> None:
    engine = SyncEngine(source, storage)
    assert engine.get_preferences() == SyncPreferences(sync_issues=True, sync_pull_requests=True)


def test_force_sync_single_repo_bypasses_guard(source, storage, clock, make_repo, make_issue) -> None:
    source.add_repo(make_repo(1, "acme/a"), contributors=("me",), issues=[make_issue(101, 1, "Crash")])
    engine = _engine(source, storage, clock)
    engine.status.update(is_running=True, last_started_at=clock())

    events: list[SyncEvent] = []
    result = engine.force_sync_single_repo("acme/a", events.append)

    assert result.indexed_repos == 1
    assert result.issues_saved == 1
    assert events[0] == SyncEvent.REPOS_SAVED
    assert SyncEvent.REPO_PROCESSED in events
    assert engine.get_sync_status().is_running is True


def test_single_repo_sync_of_non_indexed_repo_refreshes_metadata_only(source, storage, clock, make_repo, make_issue) -> None:
    source.add_repo(make_repo(2, "acme/b", stargazers_count=9), issues=[make_issue(111, 1, "Unrelated")])
    engine = _engine(source, storage, clock)

    result = engine.force_sync_single_repo("acme/b")

    assert result.indexed_repos == 0
    repo = storage.get_repo(2)
    assert repo is not None
    assert repo.stargazers_count == 9
    assert source.fetched("issues") == set()


def test_single_repo_sync_unknown_repo(source, storage, clock) -> None:
    engine = _engine(source, storage, clock)

    with pytest.raises(RepoNotFoundError):
        engine.force_sync_single_repo("acme/missing")
    with pytest.raises(RepoNotFoundError):
        engine.force_sync_single_repo("not-a-full-name")


def test_sync_repos_leaves_status_untouched(source, storage, clock, make_repo) -> None:
    source.add_repo(make_repo(1, "acme/a"), contributors=("me",))
    engine = _engine(source, storage, clock)
    before = engine.get_sync_status()

    engine.sync_repos(["acme/a", "acme/a"])

    assert engine.get_sync_status() == before
    assert source.calls.count(("repo", "acme/a")) == 1


def test_reset_stale_state_and_manual_reset(storage, source, clock) -> None:
    engine = _engine(source, storage, clock)
    assert engine.reset_stale_state() is False

    engine.status.update(is_running=True, last_started_at=clock())
    assert engine.reset_stale_state() is True
    assert engine.get_sync_status().last_error == RESTART_RESET_ERROR

    engine.status.update(is_running=True, last_started_at=clock())
    engine.status.update_progress(total_repos=5)
    status = engine.reset_sync("stuck")
    assert status.is_running is False
    assert status.last_error == "stuck"
    assert status.progress.total_repos == 0


def test_sync_preserves_visit_counters(source, storage, clock, make_repo, make_issue) -> None:
    source.add_repo(make_repo(1, "acme/a"), contributors=("me",), issues=[make_issue(101, 1, "Crash")])
    engine = _engine(source, storage, clock)
    engine.run_full_sync()

    assert storage.record_visit(EntityType.REPO, 1)
    assert storage.record_visit(EntityType.ISSUE, 101)
    clock.advance(minutes=10)
    engine.run_full_sync()

    repo = storage.get_repo(1)
    assert repo is not None
    assert repo.visit_count == 1
    assert repo.last_visited_at is not None
    assert storage.get_issues_by_repo(1)[0].visit_count == 1


def test_progress_callback_errors_do_not_break_run(source, storage, clock, make_repo) -> None:
    source.add_repo(make_repo(1, "acme/a"), contributors=("me",))
    engine = _engine(source, storage, clock)

    def explode(event: SyncEvent) -> None:
        raise RuntimeError("listener down")

    assert engine.run_full_sync(explode) is not None
    assert engine.get_sync_status().last_error is None
