"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from outreachflow.graph.draft import SequenceDraft
from tests.fixtures.sequence_fixtures import VirtualClock, make_invite_draft, make_linear_draft

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolate_user_config(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Path:
    """Keep tests away from ~/.config/outreachflow and the caller's env."""
    config_dir = tmp_path_factory.mktemp("user_config")
    monkeypatch.setattr("outreachflow.config._DEFAULT_CONFIG_DIR", config_dir)
    for var in ("OUTREACHFLOW_CHANNEL", "OUTREACHFLOW_HIGHLIGHT_MS", "OUTREACHFLOW_CONFIG"):
        monkeypatch.delenv(var, raising=False)
    return config_dir


@pytest.fixture
def draft() -> SequenceDraft:
    """A fresh draft holding only its ROOT."""
    return SequenceDraft.new("Test sequence")


@pytest.fixture
def linear() -> tuple[SequenceDraft, dict[str, str]]:
    return make_linear_draft()


@pytest.fixture
def invite_tree() -> tuple[SequenceDraft, dict[str, str]]:
    return make_invite_draft()


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()
