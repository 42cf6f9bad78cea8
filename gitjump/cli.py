"""CLI entrypoint for gitjump."""

from __future__ import annotations

import logging

from gitjump.commands import index, reset, search, serve, status, sync, visit, watch
from gitjump.commands.parser import build_parser
from gitjump.connectors.github_gh import GithubApiError
from gitjump.logging_utils import configure_logging
from gitjump.services.command_runtime import CommandRuntime, default_runtime

logger = logging.getLogger(__name__)

COMMANDS = {
    "sync": sync.run,
    "status": status.run,
    "reset": reset.run,
    "search": search.run,
    "visit": visit.run,
    "index": index.run,
    "watch": watch.run,
    "serve": serve.run,
}


def main(argv: list[str] | None = None, *, runtime: CommandRuntime | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args, runtime=runtime or default_runtime())
    except GithubApiError as exc:
        logger.error("GitHub request failed: %s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
