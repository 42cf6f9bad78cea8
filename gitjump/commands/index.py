"""Toggle manual indexing for a repo."""

from __future__ import annotations

import argparse
import logging

from gitjump.commands.common import build_service
from gitjump.errors import EntityNotFoundError
from gitjump.services.command_runtime import CommandRuntime

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    service = build_service(args, runtime=runtime)
    try:
        repo = service.find_repo(args.repo)
        service.set_repo_indexed(repo.id, args.indexed)
    except EntityNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    print(f"Repo {repo.full_name} indexed={'on' if args.indexed else 'off'}")
    return 0
