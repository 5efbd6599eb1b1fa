"""Shared fixtures for forgesync tests."""

from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

AGENT_BODY = "# Security Architect\n\nYou review designs.\n\n  Indented line kept.\n"

AGENT_DOC = dedent("""\
    ---
    claude.name: SecurityArchitect
    claude.description: Reviews designs for security flaws
    claude.model: fast
    claude.tools:
      - Read
      - Grep
    ---
    """) + AGENT_BODY

SKILL_MD = "# Code Review\n\nReview the change.\n"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment out of tier resolution."""
    for var in ("MODEL_MAP_FAST", "MODEL_MAP_STRONG", "AGENTS_DST"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def module_dir(tmp_path: Path) -> Path:
    """A module with one agent source under agents/."""
    module = tmp_path / "module"
    agents = module / "agents"
    agents.mkdir(parents=True)
    (agents / "SecurityArchitect.md").write_text(AGENT_DOC)
    return module


@pytest.fixture
def agents_dir(module_dir: Path) -> Path:
    return module_dir / "agents"


def write_bundle(root: Path, name: str, skill_yaml: str) -> Path:
    """Create a skill bundle directory with SKILL.md and SKILL.yaml."""
    bundle = root / name
    bundle.mkdir(parents=True)
    (bundle / "SKILL.md").write_text(SKILL_MD)
    (bundle / "SKILL.yaml").write_text(dedent(skill_yaml))
    return bundle
