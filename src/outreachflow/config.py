"""Editor configuration loading.

Settings come from, lowest priority first:

1. Built-in defaults
2. User config at ~/.config/outreachflow/config.yaml
3. An explicit config file (``oflow --config``)
4. Environment variables (OUTREACHFLOW_CHANNEL, OUTREACHFLOW_HIGHLIGHT_MS)

Example file::

    channel_type: LINKEDIN
    highlight_duration_ms: 5000
    policy:
      auto_delay: true
      default_delay_unit: DAYS
      enforce_action_rules: false
      branching:
        INVITE: ["Still Not Connected", "Connected"]
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from outreachflow.graph.policy import BranchPolicy
from outreachflow.highlight import DEFAULT_HIGHLIGHT_MS
from outreachflow.models.sequence import ChannelType
from outreachflow.observability.logging import get_logger

log = get_logger(__name__)

# XDG-compliant default config directory
_DEFAULT_CONFIG_DIR = Path.home() / ".config" / "outreachflow"

ENV_CHANNEL = "OUTREACHFLOW_CHANNEL"
ENV_HIGHLIGHT_MS = "OUTREACHFLOW_HIGHLIGHT_MS"


@dataclass
class EditorConfig:
    """Settings for one editing session.

    Attributes:
        channel_type: Channel new drafts target.
        highlight_duration_ms: How long an invalid node stays flagged.
        policy: Mutation engine policy.
    """

    channel_type: ChannelType = ChannelType.LINKEDIN
    highlight_duration_ms: int = DEFAULT_HIGHLIGHT_MS
    policy: BranchPolicy = field(default_factory=BranchPolicy)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EditorConfig:
        """Create config from dictionary.

        Raises:
            ValueError: On unknown channels, commands or units.
        """
        policy_data = data.get("policy") or {}
        return cls(
            channel_type=ChannelType(str(data.get("channel_type", ChannelType.LINKEDIN)).upper()),
            highlight_duration_ms=int(data.get("highlight_duration_ms", DEFAULT_HIGHLIGHT_MS)),
            policy=BranchPolicy.from_dict(dict(policy_data)),
        )

    def with_env(self) -> EditorConfig:
        """Return a copy with environment overrides applied.

        Raises:
            ValueError: If an override has an invalid value.
        """
        channel = os.getenv(ENV_CHANNEL)
        highlight_ms = os.getenv(ENV_HIGHLIGHT_MS)
        return EditorConfig(
            channel_type=ChannelType(channel.upper()) if channel else self.channel_type,
            highlight_duration_ms=int(highlight_ms) if highlight_ms else self.highlight_duration_ms,
            policy=self.policy,
        )


class ConfigError(Exception):
    """Raised when a configuration file cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load config at {path}: {reason}")


def _read_yaml(config_path: Path) -> dict[str, Any]:
    yaml = YAML()
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)
    except Exception as e:
        raise ConfigError(config_path, str(e)) from e
    if data is None:
        raise ConfigError(config_path, "Empty file")
    if not isinstance(data, dict):
        raise ConfigError(config_path, "Top level must be a mapping")
    return dict(data)


def load_config(config_path: Path) -> EditorConfig:
    """Load editor configuration from a YAML file.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    if not config_path.exists():
        raise ConfigError(config_path, "File not found")

    data = _read_yaml(config_path)
    try:
        config = EditorConfig.from_dict(data)
    except ValueError as e:
        raise ConfigError(config_path, str(e)) from e
    log.debug("config_loaded", path=str(config_path))
    return config


def load_user_config(config_dir: Path | None = None) -> EditorConfig | None:
    """Load the user-level config, or None if there is none.

    Args:
        config_dir: Override config directory (for testing).
            Defaults to ~/.config/outreachflow/.
    """
    config_dir = config_dir or _DEFAULT_CONFIG_DIR
    config_path = config_dir / "config.yaml"
    if not config_path.exists():
        return None
    return load_config(config_path)


def resolve_config(
    config_path: Path | None = None,
    *,
    config_dir: Path | None = None,
) -> EditorConfig:
    """Build the effective configuration from all sources.

    An explicit *config_path* replaces the user config rather than merging
    with it.

    Raises:
        ConfigError: If a config file or an environment override is invalid.
    """
    if config_path is not None:
        config = load_config(config_path)
    else:
        config = load_user_config(config_dir) or EditorConfig()

    try:
        return config.with_env()
    except ValueError as e:
        raise ConfigError(Path(f"${ENV_CHANNEL}/${ENV_HIGHLIGHT_MS}"), str(e)) from e
