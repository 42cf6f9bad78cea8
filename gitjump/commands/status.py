"""Sync status command."""

from __future__ import annotations

import argparse
import json

from gitjump.commands.common import build_service
from gitjump.services.command_runtime import CommandRuntime


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    service = build_service(args, runtime=runtime)
    status = service.get_sync_status()
    summary = service.storage.store_summary()

    if args.json:
        print(json.dumps({"status": status.model_dump(mode="json"), "store": summary}, indent=2))
        return 0

    progress = status.progress
    print(f"Account: {status.account_login or '-'}")
    print(f"Running: {'yes' if status.is_running else 'no'}")
    print(f"Last started: {status.last_started_at.isoformat() if status.last_started_at else '-'}")
    print(f"Last completed: {status.last_completed_at.isoformat() if status.last_completed_at else '-'}")
    print(f"Last error: {status.last_error or '-'}")
    print(
        "Progress: repos={total} indexed={indexed} non_indexed={non_indexed} "
        "issues={issues} prs={prs} failed={failed}".format(
            total=progress.total_repos,
            indexed=progress.indexed_repos,
            non_indexed=progress.non_indexed_repos,
            issues=progress.issues_progress,
            prs=progress.prs_progress,
            failed=progress.failed_units,
        )
    )
    print("Store: repos={repos} indexed={indexed_repos} issues={issues} prs={pull_requests}".format(**summary))
    return 0
