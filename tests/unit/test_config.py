"""Tests for editor configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from outreachflow.config import (
    ENV_CHANNEL,
    ENV_HIGHLIGHT_MS,
    ConfigError,
    EditorConfig,
    load_config,
    load_user_config,
    resolve_config,
)
from outreachflow.highlight import DEFAULT_HIGHLIGHT_MS
from outreachflow.models.sequence import ChannelType, Command, DelayUnit

if TYPE_CHECKING:
    from pathlib import Path

FULL_CONFIG = """\
channel_type: linkedin
highlight_duration_ms: 2500
policy:
  auto_delay: true
  default_delay_unit: HOURS
  enforce_action_rules: true
  branching:
    INVITE: ["Pending", "Accepted"]
"""


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestEditorConfig:
    """Tests for EditorConfig."""

    def test_defaults(self) -> None:
        config = EditorConfig()
        assert config.channel_type == ChannelType.LINKEDIN
        assert config.highlight_duration_ms == DEFAULT_HIGHLIGHT_MS
        assert config.policy.auto_delay is False

    def test_from_dict_empty_uses_defaults(self) -> None:
        assert EditorConfig.from_dict({}) == EditorConfig()

    def test_from_dict_full(self) -> None:
        config = EditorConfig.from_dict(
            {
                "channel_type": "linkedin",
                "highlight_duration_ms": "2500",
                "policy": {"auto_delay": True, "default_delay_unit": "HOURS"},
            }
        )
        assert config.channel_type == ChannelType.LINKEDIN
        assert config.highlight_duration_ms == 2500
        assert config.policy.auto_delay is True
        assert config.policy.default_delay_unit == DelayUnit.HOURS

    def test_from_dict_unknown_channel(self) -> None:
        with pytest.raises(ValueError):
            EditorConfig.from_dict({"channel_type": "EMAIL"})

    def test_with_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_CHANNEL, "linkedin")
        monkeypatch.setenv(ENV_HIGHLIGHT_MS, "750")
        base = EditorConfig(highlight_duration_ms=100)

        config = base.with_env()

        assert config.highlight_duration_ms == 750
        assert config.channel_type == ChannelType.LINKEDIN
        assert config.policy is base.policy
        assert base.highlight_duration_ms == 100

    def test_with_env_unset_keeps_values(self) -> None:
        base = EditorConfig(highlight_duration_ms=100)
        assert base.with_env() == base

    def test_with_env_invalid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_HIGHLIGHT_MS, "soon")
        with pytest.raises(ValueError):
            EditorConfig().with_env()


class TestLoadConfig:
    """Tests for load_config."""

    def test_full_file(self, tmp_path: Path) -> None:
        config = load_config(_write(tmp_path / "oflow.yaml", FULL_CONFIG))
        assert config.highlight_duration_ms == 2500
        assert config.policy.enforce_action_rules is True
        assert config.policy.branching == {Command.INVITE: ("Pending", "Accepted")}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="File not found") as exc_info:
            load_config(tmp_path / "missing.yaml")
        assert exc_info.value.path == tmp_path / "missing.yaml"

    def test_empty_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Empty file"):
            load_config(_write(tmp_path / "empty.yaml", ""))

    def test_top_level_list(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Top level must be a mapping"):
            load_config(_write(tmp_path / "list.yaml", "- a\n- b\n"))

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path / "bad.yaml", "policy: [unclosed\n"))

    def test_invalid_values(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "bad.yaml", "policy:\n  branching: [END]\n")
        with pytest.raises(ConfigError, match="not an action command"):
            load_config(path)


class TestUserConfig:
    """Tests for load_user_config and resolve_config."""

    def test_no_user_config(self) -> None:
        assert load_user_config() is None

    def test_user_config_in_default_dir(self, isolate_user_config: Path) -> None:
        _write(isolate_user_config / "config.yaml", "highlight_duration_ms: 1234\n")
        config = load_user_config()
        assert config is not None
        assert config.highlight_duration_ms == 1234

    def test_config_dir_override(self, tmp_path: Path) -> None:
        _write(tmp_path / "config.yaml", "highlight_duration_ms: 42\n")
        config = load_user_config(tmp_path)
        assert config is not None
        assert config.highlight_duration_ms == 42

    def test_resolve_defaults(self) -> None:
        assert resolve_config() == EditorConfig()

    def test_resolve_uses_user_config(self, isolate_user_config: Path) -> None:
        _write(isolate_user_config / "config.yaml", "policy:\n  auto_delay: true\n")
        assert resolve_config().policy.auto_delay is True

    def test_explicit_file_replaces_user_config(
        self, tmp_path: Path, isolate_user_config: Path
    ) -> None:
        _write(isolate_user_config / "config.yaml", "highlight_duration_ms: 1\n")
        explicit = _write(tmp_path / "explicit.yaml", "policy:\n  auto_delay: true\n")

        config = resolve_config(explicit)

        assert config.highlight_duration_ms == DEFAULT_HIGHLIGHT_MS
        assert config.policy.auto_delay is True

    def test_env_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        explicit = _write(tmp_path / "explicit.yaml", "highlight_duration_ms: 10\n")
        monkeypatch.setenv(ENV_HIGHLIGHT_MS, "20")
        assert resolve_config(explicit).highlight_duration_ms == 20

    def test_invalid_env_raises_config_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_CHANNEL, "fax")
        with pytest.raises(ConfigError):
            resolve_config()
