from pathlib import Path

import pytest
from pydantic import ValidationError

from gitjump.config import GitjumpConfig, load_effective_config


def test_config_precedence(tmp_path: Path) -> None:
    (tmp_path / ".gitjump.yaml").write_text(
        """
sync:
  min_interval_seconds: 120
  activity_threshold_days: 90
quick_check:
  browsing_interval_seconds: 15
"""
    )

    system = {
        "sync": {"min_interval_seconds": 600, "stuck_timeout_seconds": 900},
        "storage": {"sqlite_path": "/var/lib/gitjump.db"},
    }
    runtime = {"sync": {"activity_threshold_days": 30}}

    cfg = load_effective_config(tmp_path, system_defaults=system, runtime_override=runtime)

    assert cfg.sync.min_interval_seconds == 120
    assert cfg.sync.stuck_timeout_seconds == 900
    assert cfg.sync.activity_threshold_days == 30
    assert cfg.quick_check.browsing_interval_seconds == 15
    assert cfg.quick_check.idle_interval_seconds == 600
    assert cfg.storage.sqlite_path == "/var/lib/gitjump.db"


def test_defaults_without_file(tmp_path: Path) -> None:
    cfg = load_effective_config(tmp_path)

    assert cfg == GitjumpConfig()
    assert cfg.sync.min_interval_seconds == 300
    assert cfg.sync.stuck_timeout_seconds == 1800
    assert cfg.sync.activity_threshold_days == 180
    assert cfg.quick_check.max_active_repos == 10
    assert cfg.search.cached_results == 2


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_effective_config(tmp_path, runtime_override={"sync": {"min_interval": 1}})


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    (tmp_path / ".gitjump.yaml").write_text("- just\n- a list\n")

    with pytest.raises(ValueError, match="mapping"):
        load_effective_config(tmp_path)
