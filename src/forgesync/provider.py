"""Provider vocabulary — names, tools and paths for each target ecosystem.

Claude is the canonical dialect: agent sources are written with Claude tool
names (``Read``, ``Grep``, ``Bash``...) and PascalCase agent names. The other
providers get translated copies.
"""

from __future__ import annotations

import enum
import re
from pathlib import Path
from typing import Optional

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[ _]")
_HYPHEN_RUNS = re.compile(r"-{2,}")

GEMINI_TOOLS: dict[str, str] = {
    "read": "read_file",
    "write": "write_file",
    "edit": "replace",
    "replace": "replace",
    "grep": "grep_search",
    "glob": "glob",
    "bash": "run_shell_command",
    "shell": "run_shell_command",
    "run": "run_shell_command",
    "websearch": "google_web_search",
    "webfetch": "web_fetch",
}

OPENCODE_TOOLS: dict[str, str] = {
    "read": "read",
    "write": "write",
    "edit": "edit",
    "replace": "edit",
    "grep": "grep",
    "glob": "glob",
    "bash": "bash",
    "shell": "bash",
    "run": "bash",
    "websearch": "websearch",
    "webfetch": "webfetch",
}


def slugify(name: str) -> str:
    """Lowercase kebab-case: ``SecurityArchitect`` -> ``security-architect``.

    Camel-case boundaries and spaces/underscores become hyphens; runs of
    hyphens collapse into one.
    """
    slug = _CAMEL_BOUNDARY.sub(r"\1-\2", name)
    slug = _SEPARATORS.sub("-", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    return slug.lower()


def split_tools(tools: str) -> list[str]:
    """Split a comma-separated tool string, dropping blanks."""
    return [t.strip() for t in tools.split(",") if t.strip()]


class Provider(str, enum.Enum):
    """The four supported target ecosystems."""

    CLAUDE = "claude"
    GEMINI = "gemini"
    CODEX = "codex"
    OPENCODE = "opencode"

    @classmethod
    def from_str(cls, value: str) -> Optional["Provider"]:
        """Case-insensitive lookup; None for unknown providers."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @classmethod
    def from_path(cls, path: Path) -> "Provider":
        """Detect the provider from a destination path (``~/.gemini/agents``...)."""
        parts = set(Path(path).parts)
        for provider in (cls.GEMINI, cls.CODEX, cls.OPENCODE):
            if f".{provider.value}" in parts:
                return provider
        return cls.CLAUDE

    @property
    def is_canonical(self) -> bool:
        return self is Provider.CLAUDE

    @property
    def dot_dir(self) -> str:
        return f".{self.value}"

    @property
    def agent_extension(self) -> str:
        return "toml" if self is Provider.CODEX else "md"

    @property
    def tool_map(self) -> Optional[dict[str, str]]:
        if self is Provider.GEMINI:
            return GEMINI_TOOLS
        if self is Provider.OPENCODE:
            return OPENCODE_TOOLS
        return None

    def format_name(self, name: str) -> str:
        """Agent name in this provider's casing convention."""
        if self is Provider.GEMINI:
            return slugify(name)
        return name

    def map_tool(self, tool: str) -> str:
        table = self.tool_map
        if table is None:
            return tool
        return table.get(tool.lower(), slugify(tool))

    def map_tools(self, tools: str) -> str:
        """Translate a comma-separated canonical tool list, keeping order and duplicates."""
        return ", ".join(self.map_tool(t) for t in split_tools(tools))

    def agent_filename(self, name: str) -> str:
        return f"{name}.{self.agent_extension}"

    def prompt_filename(self, name: str) -> str:
        return f"{name}.prompt.md"

    def root(self, scope: str, home: Path, cwd: Path) -> Path:
        """Provider root directory (``~/.claude``, ``./.gemini``...) for a scope.

        Raises:
            ValueError: For scopes other than user, workspace and project.
        """
        if scope == "user":
            return home / self.dot_dir
        if scope == "workspace":
            return cwd / self.dot_dir
        if scope == "project":
            return home / self.dot_dir / "projects" / project_key(cwd)
        raise ValueError(f"invalid scope '{scope}': use user, workspace, or project")

    def agents_dir(self, scope: str, home: Path, cwd: Path) -> Path:
        return self.root(scope, home, cwd) / "agents"

    def skills_dir(self, scope: str, home: Path, cwd: Path) -> Path:
        return self.root(scope, home, cwd) / "skills"


def project_key(cwd: Path) -> str:
    """Directory key for project scope: the absolute path with ``/`` -> ``-``."""
    return str(cwd).replace("/", "-")
