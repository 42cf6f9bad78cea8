"""CLI parser construction."""

from __future__ import annotations

import argparse

from gitjump.commands.common import add_common_config_flags
from gitjump.models import EntityType, QuickCheckMode


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Local GitHub repo, issue and PR mirror with instant search")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR)")

    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Sync accessible repos and their issues/PRs into the local store")
    sync.add_argument("--force", action="store_true", help="Ignore the minimum interval since the last sync")
    sync.add_argument("--repo", help="Refresh a single repo, e.g. owner/repo")
    sync.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero when any repo's issues or PRs failed to sync",
    )
    add_common_config_flags(sync)

    status = sub.add_parser("status", help="Show the persisted sync status")
    status.add_argument("--json", action="store_true", help="Emit JSON")
    add_common_config_flags(status)

    reset = sub.add_parser("reset", help="Reset a stuck sync")
    reset.add_argument("--reason", default=None, help="Reason recorded as the last error")
    add_common_config_flags(reset)

    search = sub.add_parser("search", help="Search indexed repos, PRs and issues")
    search.add_argument("query", nargs="?", default="", help="Search text; empty lists by recency")
    search.add_argument("--username", help="Current GitHub login (excluded from cached contributors)")
    search.add_argument("--current-repo", help="Repo currently being viewed, e.g. owner/repo")
    search.add_argument("--limit", type=int, default=20, help="Max results to show (0 = all)")
    search.add_argument("--json", action="store_true", help="Emit JSON")
    add_common_config_flags(search)

    visit = sub.add_parser("visit", help="Record a visit to a repo, PR or issue")
    visit.add_argument("type", choices=[entity_type.value for entity_type in EntityType], help="Entity type")
    visit.add_argument("id", type=int, help="Entity id")
    add_common_config_flags(visit)

    index = sub.add_parser("index", help="Manually turn indexing on or off for a repo")
    index.add_argument("repo", help="Repo id or owner/name")
    toggle = index.add_mutually_exclusive_group(required=True)
    toggle.add_argument("--on", dest="indexed", action="store_true", help="Index this repo")
    toggle.add_argument("--off", dest="indexed", action="store_false", help="Stop indexing this repo")
    add_common_config_flags(index)

    watch = sub.add_parser("watch", help="Run an initial sync, then keep checking active repos")
    watch.add_argument(
        "--mode",
        default=QuickCheckMode.BROWSING.value,
        choices=[mode.value for mode in QuickCheckMode],
        help="Quick-check cadence",
    )
    watch.add_argument("--no-initial-sync", action="store_true", help="Skip the startup sync")
    add_common_config_flags(watch)

    serve = sub.add_parser("serve", help="Serve the JSON API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind host")
    serve.add_argument("--port", type=int, default=8765, help="Bind port")
    serve.add_argument(
        "--background",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Run the startup sync and quick-check loop alongside the API",
    )
    serve.add_argument("--no-initial-sync", action="store_true", help="Skip the startup sync")
    add_common_config_flags(serve)

    return parser
