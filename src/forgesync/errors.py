"""forgesync errors — hard failures surfaced to the caller.

Soft skips (templates, documents without a name, disabled skills,
non-whitelisted models) are reported as outcome statuses instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union


class ForgeSyncError(Exception):
    """Base class for all forgesync failures."""


class DeployError(ForgeSyncError):
    """An artifact could not be written or removed.

    Args:
        path: The destination path that failed.
        reason: What went wrong.
    """

    def __init__(self, path: Union[str, Path], reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{reason}: {self.path}")


class SkillMetadataError(ForgeSyncError):
    """A SKILL.yaml is unreadable or misses a required key.

    Args:
        path: Path to the offending SKILL.yaml.
        key: The missing key, if the failure is about one.
        reason: Free-form explanation when no single key is to blame.
    """

    def __init__(self, path: Union[str, Path], key: str = "", reason: str = "") -> None:
        self.path = Path(path)
        self.key = key
        if key:
            message = f"missing required key '{key}' in {self.path}"
        else:
            message = f"{reason or 'invalid skill metadata'}: {self.path}"
        super().__init__(message)


class SkillInstallError(ForgeSyncError):
    """Installing or uninstalling a skill bundle failed."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"skill '{name}': {reason}")
