"""forgesync data models — the facts that flow through a deployment run.

An agent deployment goes:
  Document -> AgentMeta -> DeployedArtifact -> DeployOutcome -> DeployReport

A skill installation goes:
  SKILL.yaml -> SkillMeta -> SkillAction -> SkillReport
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import SYNC_MARKER_PREFIX
from .frontmatter import DELIMITER, parse_document
from .provider import Provider

TRUTHY = frozenset({"true", "yes", "1"})


class ModelTiers(BaseModel):
    """Concrete model identifiers behind the semantic tiers."""

    fast: str = "sonnet"
    strong: str = "opus"

    def get(self, tier: str) -> str:
        return self.fast if tier == "fast" else self.strong


class SyncMarker(BaseModel):
    """Traceability marker naming the source file that produced an artifact.

    Rendered as a single ``# synced-from: <file>`` line. Two markers are
    equal exactly when they name the same source file, which is what gates
    removal of deployed artifacts.
    """

    model_config = ConfigDict(frozen=True)

    source_file: str

    def render(self) -> str:
        return f"{SYNC_MARKER_PREFIX}{self.source_file}"

    @classmethod
    def parse(cls, content: str) -> Optional["SyncMarker"]:
        """Read the marker from deployed artifact content.

        Markdown artifacts carry it as the first body line after the
        frontmatter; TOML agent files and prompt companions carry it as
        their first line.

        Returns:
            SyncMarker or None when the content carries no marker.
        """
        lines = content.splitlines()
        if lines and lines[0] == DELIMITER:
            body_lines = parse_document(content).body.splitlines()
            first = body_lines[0] if body_lines else ""
        else:
            first = lines[0] if lines else ""

        if not first.startswith(SYNC_MARKER_PREFIX):
            return None
        source = first[len(SYNC_MARKER_PREFIX):].strip()
        return cls(source_file=source) if source else None


class AgentMeta(BaseModel):
    """Resolved facts for one agent on one provider."""

    model_config = ConfigDict(protected_namespaces=())

    name: str = Field(description="Canonical agent name (used for file names)")
    display_name: str = Field(description="Name in the provider's casing convention")
    description: str = "Specialist agent"
    model: str = Field(description="Concrete model identifier after tier resolution")
    model_tier: str = Field(default="", description="Declared model before resolution")
    model_allowed: bool = Field(
        default=True, description="False when the provider whitelist rejects the model"
    )
    tools: Optional[str] = Field(
        default=None, description="Comma-space joined tools in the provider vocabulary"
    )
    reasoning_effort: Optional[str] = None
    source_file: str = Field(description="File name of the source document")

    @property
    def marker(self) -> SyncMarker:
        return SyncMarker(source_file=self.source_file)


class DeployedArtifact(BaseModel):
    """The rendered output for one (document, provider) pair."""

    name: str
    path: Path
    content: str
    marker: SyncMarker
    companion_path: Optional[Path] = Field(
        default=None, description="Second file the provider needs (codex prompt)"
    )
    companion_content: Optional[str] = None

    @property
    def paths(self) -> list[Path]:
        return [p for p in (self.path, self.companion_path) if p is not None]


class DeployStatus(str, enum.Enum):
    """What happened to one source document."""

    DEPLOYED = "deployed"
    SKIPPED_TEMPLATE = "skipped_template"
    SKIPPED_NO_NAME = "skipped_no_name"
    SKIPPED_INVALID_NAME = "skipped_invalid_name"
    SKIPPED_UNREADABLE = "skipped_unreadable"
    FAILED = "failed"

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped")


class DeployOutcome(BaseModel):
    """Result of deploying one source document to one destination."""

    source_file: str
    status: DeployStatus
    name: str = ""
    path: Optional[Path] = None
    message: str = Field(default="", description="One-line diagnostic or dry-run record")


class DeployReport(BaseModel):
    """Per-destination tally of a deployment batch."""

    destination: Path
    provider: Provider
    dry_run: bool = False
    outcomes: list[DeployOutcome] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list, description="Names removed by clean-up")
    messages: list[str] = Field(default_factory=list, description="Extra one-line notes")
    error: str = Field(default="", description="Hard failure that aborted the batch")

    @property
    def deployed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == DeployStatus.DEPLOYED)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status.is_skip)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == DeployStatus.FAILED)

    @property
    def deployed_names(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == DeployStatus.DEPLOYED]


def _is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY


class SkillProviderEntry(BaseModel):
    """Per-provider switch in SKILL.yaml."""

    enabled: bool = False
    scope: Optional[str] = None

    @field_validator("enabled", mode="before")
    @classmethod
    def parse_enabled(cls, v: Any) -> bool:
        """Only ``true``, ``yes`` and ``1`` enable a provider."""
        return _is_truthy(v)

    @field_validator("scope", mode="before")
    @classmethod
    def blank_scope(cls, v: Any) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        return str(v).strip()


class SkillMeta(BaseModel):
    """The SKILL.yaml metadata of a skill bundle."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    argument_hint: str = Field(alias="argument-hint")
    providers: dict[str, SkillProviderEntry] = Field(default_factory=dict)

    @field_validator("providers", mode="before")
    @classmethod
    def drop_non_mappings(cls, v: Any) -> dict[str, Any]:
        if not isinstance(v, dict):
            return {}
        return {k: (entry if isinstance(entry, dict) else {}) for k, entry in v.items()}

    def entry_for(self, provider: Provider) -> Optional[SkillProviderEntry]:
        return self.providers.get(provider.value)

    def enabled_for(self, provider: Provider) -> bool:
        entry = self.entry_for(provider)
        return entry is not None and entry.enabled


class SkillActionKind(str, enum.Enum):
    """How a skill bundle reaches a provider."""

    COPY = "copy"
    PROVIDER_CLI = "provider_cli"
    SKIPPED = "skipped"


class SkillAction(BaseModel):
    """A planned install step for one skill bundle."""

    kind: SkillActionKind
    skill_name: str
    src_dir: Optional[Path] = None
    dst_dir: Optional[Path] = None
    scope: str = ""
    reason: str = ""


class GeneratedSkill(BaseModel):
    """A skill wrapper derived from an agent document."""

    agent_name: str
    source_file: str
    skill_md: str
    skill_yaml: str


class SkillReport(BaseModel):
    """Per-destination tally of a skill installation batch."""

    destination: Path
    provider: Provider
    dry_run: bool = False
    installed: list[str] = Field(default_factory=list)
    skipped: list[tuple[str, str]] = Field(default_factory=list)
    failed: list[tuple[str, str]] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)
