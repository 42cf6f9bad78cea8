"""Reset a stuck sync."""

from __future__ import annotations

import argparse

from gitjump.commands.common import build_service
from gitjump.services.command_runtime import CommandRuntime


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    service = build_service(args, runtime=runtime)
    status = service.reset_sync(args.reason)
    print(f"Sync state reset: {status.last_error}")
    return 0
