"""Run the background service: initial sync plus the quick-check loop."""

from __future__ import annotations

import argparse
import logging
import time

from gitjump.commands.common import build_service
from gitjump.services.command_runtime import CommandRuntime

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    service = build_service(args, runtime=runtime)
    service.set_quick_check_mode(args.mode)
    service.startup(initial_sync=not args.no_initial_sync)

    logger.info("Watching for activity in %s mode; Ctrl-C to stop", args.mode)
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Stopping")
    finally:
        service.shutdown()
    return 0
