"""Sync command."""

from __future__ import annotations

import argparse
import json
import logging

from gitjump.commands.common import build_service
from gitjump.models import SyncEvent
from gitjump.services.command_runtime import CommandRuntime

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    service = build_service(args, runtime=runtime)

    def on_progress(event: SyncEvent) -> None:
        status = service.get_sync_status()
        progress = status.progress
        if event == SyncEvent.REPOS_SAVED:
            logger.info(
                "Repos saved: total=%s indexed=%s",
                progress.total_repos,
                progress.indexed_repos,
            )
            return
        logger.info(
            "Progress: issues %s/%s prs %s/%s (%s)",
            progress.issues_progress,
            progress.indexed_repos,
            progress.prs_progress,
            progress.indexed_repos,
            progress.current_repo or "-",
        )

    if args.repo:
        result = service.force_sync_single_repo(args.repo, on_progress)
    elif args.force:
        result = service.force_sync(on_progress)
    else:
        result = service.run_full_sync(on_progress)

    if result is None:
        status = service.get_sync_status()
        print("Sync skipped (already running or ran recently); use --force to override")
        if status.last_completed_at is not None:
            print(f"Last completed: {status.last_completed_at.isoformat()}")
        return 0

    print(json.dumps(result.as_dict(), indent=2))
    return 1 if result.failed_units and args.strict else 0
