"""Serve the JSON API."""

from __future__ import annotations

import argparse
import logging

from gitjump.commands.common import build_service
from gitjump.services.command_runtime import CommandRuntime

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    service = build_service(args, runtime=runtime)

    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - dependency/runtime
        raise RuntimeError("Missing API server dependency. Install with: pip install uvicorn") from exc

    from gitjump.webapp import create_app

    app = create_app(service)
    if args.background:
        service.startup(initial_sync=not args.no_initial_sync)
    logger.info("Starting API on http://%s:%s", args.host, args.port)
    try:
        uvicorn.run(app, host=args.host, port=args.port, reload=False, log_level=args.log_level.lower())
    finally:
        service.shutdown()
    return 0
