from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from codex_spp.config import (
    DEFAULT_EXCLUDE_PATHS,
    ConfigLoadError,
    GovernanceConfig,
    SppSettings,
    dump_config,
    load_config,
)


def test_defaults_without_config_files(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert config.weekly_ratio_target == pytest.approx(0.70)
    assert config.diff_snapshot_enabled is False
    assert config.recorder.poll_interval_seconds == 2.0
    assert config.recorder.max_event_bytes == 65_536
    assert config.recorder.exclude_paths == list(DEFAULT_EXCLUDE_PATHS)
    assert config.codex.drive.sandbox == "read-only"


def test_runtime_config_wins_over_template(tmp_path: Path) -> None:
    (tmp_path / "template_spp.config.yaml").write_text("weekly_ratio_target: 0.4\n", encoding="utf-8")
    runtime = tmp_path / ".codex-spp"
    runtime.mkdir()
    (runtime / "config.yaml").write_text(
        """
weekly_ratio_target: 0.9
attribution:
  codex_author_emails: bot@example.com
recorder:
  poll_interval_seconds: 0.5
  exclude_paths:
    - dist/
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.weekly_ratio_target == pytest.approx(0.9)
    assert config.attribution.codex_author_emails == ["bot@example.com"]
    assert config.recorder.poll_interval_seconds == 0.5
    assert "dist" in config.recorder.exclude_paths


def test_template_used_when_runtime_missing(tmp_path: Path) -> None:
    (tmp_path / "template_spp.config.yaml").write_text("max_log_bytes: 1024\n", encoding="utf-8")

    assert load_config(tmp_path).max_log_bytes == 1024


def test_empty_file_yields_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_config(tmp_path, path) == GovernanceConfig()


def test_invalid_values_raise_config_error(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("weekly_ratio_target: 1.5\n", encoding="utf-8")

    with pytest.raises(ConfigLoadError, match="validation"):
        load_config(tmp_path, path)


def test_non_mapping_and_missing_files_raise(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigLoadError, match="mapping"):
        load_config(tmp_path, path)
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path, tmp_path / "missing.yaml")


def test_dump_config_round_trips(tmp_path: Path) -> None:
    config = GovernanceConfig(weekly_ratio_target=0.55)
    path = tmp_path / "dumped.yaml"
    path.write_text(dump_config(config), encoding="utf-8")

    assert load_config(tmp_path, path) == config


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SPP_LOG_LEVEL", "debug")
    monkeypatch.setenv("SPP_HISTORY_PATH", str(tmp_path / "history.jsonl"))
    monkeypatch.setenv("SPP_REPO_ROOT", "")

    settings = SppSettings()

    assert settings.log_level == "DEBUG"
    assert settings.history_path == tmp_path / "history.jsonl"
    assert settings.repo_root is None


def test_settings_reject_unknown_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPP_LOG_LEVEL", "chatty")

    with pytest.raises(ValidationError):
        SppSettings()
