"""Search command."""

from __future__ import annotations

import argparse
import json

from gitjump.commands.common import build_service
from gitjump.models import EntityType, SearchResultItem
from gitjump.services.command_runtime import CommandRuntime


def _format_row(item: SearchResultItem) -> str:
    if item.type == EntityType.REPO:
        label = item.title
    else:
        label = f"{item.repo_name}#{item.number} {item.title}"
    return f"{item.type.value:<5} {item.score:>6}  {label}  {item.url}"


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    service = build_service(args, runtime=runtime)
    results = service.search(args.query, args.username, args.current_repo)
    shown = results[: args.limit] if args.limit > 0 else results

    if args.json:
        print(json.dumps([item.model_dump(mode="json") for item in shown], indent=2))
        return 0

    if not shown:
        print("No matches")
        return 0
    for item in shown:
        print(_format_row(item))
    if len(shown) < len(results):
        print(f"... {len(results) - len(shown)} more")
    return 0
