"""Record a visit to a repo, pull request or issue."""

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
        service.record_visit(args.type, args.id)
    except EntityNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    print(f"Recorded visit to {args.type} {args.id}")
    return 0
