"""Shared helpers for CLI command modules."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import yaml

from gitjump.config import GitjumpConfig, load_effective_config
from gitjump.service import GitjumpService
from gitjump.services.command_runtime import CommandRuntime

logger = logging.getLogger(__name__)


def load_yaml_dict(path: str | None) -> dict | None:
    if not path:
        return None
    data = yaml.safe_load(Path(path).read_text())
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"YAML at {path} must decode to a mapping")
    return data


def load_config(args: argparse.Namespace) -> GitjumpConfig:
    return load_effective_config(
        config_dir=args.config_dir,
        system_defaults=load_yaml_dict(args.system_config),
        runtime_override=load_yaml_dict(args.runtime_override),
    )


def add_common_config_flags(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--config-dir", default=".", help="Directory holding .gitjump.yaml")
    cmd.add_argument("--system-config", help="Optional system defaults YAML")
    cmd.add_argument("--runtime-override", help="Optional runtime override YAML")
    cmd.add_argument("--db", help="SQLite database path (overrides storage.sqlite_path)")


def build_service(args: argparse.Namespace, *, runtime: CommandRuntime) -> GitjumpService:
    config = load_config(args)
    if config.storage.backend != "sqlite":
        raise ValueError(f"Unsupported storage backend: {config.storage.backend}")

    db_path = Path(args.db or config.storage.sqlite_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    storage = runtime.storage_cls(db_path)
    storage.init_schema()
    logger.debug("Using database %s", db_path)
    return GitjumpService(runtime.source_factory(config.github), storage, config=config)
