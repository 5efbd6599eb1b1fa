"""Agent deployment — render canonical agent documents for each provider.

Per source document and destination:
    extract frontmatter -> resolve sidecar overrides -> translate vocabulary
    -> render provider artifact -> write (or report, in dry-run)

Every artifact carries a ``# synced-from: <file>`` marker. Removal only
happens when that marker names the source file being cleaned, so an artifact
now owned by a different source is never touched.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Iterator, Optional

from . import manifest
from .errors import DeployError
from .frontmatter import Document, read_document
from .models import (
    AgentMeta,
    DeployedArtifact,
    DeployOutcome,
    DeployReport,
    DeployStatus,
    SyncMarker,
)
from .provider import Provider, split_tools
from .sidecar import TIERS, SidecarConfig

logger = logging.getLogger("forgesync.deploy")

TEMPLATE_PREFIXES = ("_Template", "Template")
DEFAULT_DESCRIPTION = "Specialist agent"
DEFAULT_MODEL_TIER = "fast"
SCOPES = ("user", "workspace", "project", "all")

CODEX_BLOCK_BEGIN = "# BEGIN forgesync agents"
CODEX_BLOCK_END = "# END forgesync agents"
CODEX_CONFIG_FILE = "config.toml"
AGENT_NAME = re.compile(r"^[A-Z][a-zA-Z0-9]{2,50}$")


def is_template(filename: str) -> bool:
    return filename.startswith(TEMPLATE_PREFIXES)


def canonical_name(document: Document) -> str:
    """The agent's canonical name: ``claude.name``, else ``name``."""
    return document.first("claude.name", "name")


def is_safe_name(name: str) -> bool:
    """Names become file names; reject anything that could escape the directory."""
    return bool(name) and "/" not in name and "\\" not in name and not name.startswith(".")


def is_valid_agent_name(name: str) -> bool:
    """Agent names double as file names and bare TOML table keys."""
    return AGENT_NAME.match(name) is not None


def _terminated(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


def _toml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


# ── Extraction ───────────────────────────────────────────────────────────


def extract_agent_meta(
    document: Document,
    filename: str,
    provider: Provider,
    config: SidecarConfig,
) -> Optional[AgentMeta]:
    """Gather and resolve everything needed to render one agent.

    Returns:
        AgentMeta, or None for templates and documents without a name.
    """
    if is_template(filename):
        return None

    name = canonical_name(document)
    if not name:
        return None

    declared = (
        config.agent_value(name, "model")
        or document.first("claude.model", "model")
        or DEFAULT_MODEL_TIER
    )
    description = (
        document.first("claude.description", "description")
        or config.agent_value(name, "description")
        or DEFAULT_DESCRIPTION
    )
    tools = (
        config.agent_value(name, "tools")
        or document.list_value("claude.tools")
        or document.scalar("claude.tools")
        or document.list_value("tools")
        or document.scalar("tools")
    )
    if tools and not provider.is_canonical:
        tools = provider.map_tools(tools)

    model = config.resolve_model(declared, provider)
    reasoning_effort = config.agent_value(name, "reasoning_effort")
    if reasoning_effort is None and declared in TIERS:
        reasoning_effort = config.provider_reasoning_effort(provider, declared)

    return AgentMeta(
        name=name,
        display_name=provider.format_name(name),
        description=description,
        model=model,
        model_tier=declared,
        model_allowed=config.is_model_whitelisted(provider, model),
        tools=tools or None,
        reasoning_effort=reasoning_effort,
        source_file=filename,
    )


# ── Rendering ────────────────────────────────────────────────────────────


def _frontmatter_lines(meta: AgentMeta, provider: Provider) -> list[str]:
    lines = ["---"]
    if provider is Provider.OPENCODE:
        lines.append(f"description: {meta.description}")
        lines.append("mode: subagent")
        if meta.model_allowed:
            lines.append(f"model: {meta.model}")
        if meta.tools:
            lines.append("tools:")
            # Mapping keys must be unique.
            lines.extend(f"  {tool}: true" for tool in dict.fromkeys(split_tools(meta.tools)))
    else:
        lines.append(f"name: {meta.display_name}")
        lines.append(f"description: {meta.description}")
        if provider is Provider.GEMINI:
            lines.append("kind: local")
        if meta.model_allowed:
            lines.append(f"model: {meta.model}")
        if meta.tools:
            if provider is Provider.GEMINI:
                lines.append("tools:")
                lines.extend(f"  - {tool}" for tool in split_tools(meta.tools))
            else:
                lines.append(f"tools: {meta.tools}")
    lines.append("---")
    return lines


def render_markdown(meta: AgentMeta, body: str, provider: Provider) -> str:
    """Frontmatter, marker line, blank line, then the body unchanged."""
    lines = _frontmatter_lines(meta, provider)
    lines.append(meta.marker.render())
    lines.append("")
    return "\n".join(lines) + "\n" + _terminated(body)


def render_codex(meta: AgentMeta) -> str:
    """TOML agent file pointing at the companion prompt file."""
    lines = [meta.marker.render(), f'description = "{_toml_escape(meta.description)}"']
    if meta.model_allowed:
        lines.append(f'model = "{_toml_escape(meta.model)}"')
    if meta.reasoning_effort:
        lines.append(f'model_reasoning_effort = "{_toml_escape(meta.reasoning_effort)}"')
    instructions = f"agents/{Provider.CODEX.prompt_filename(meta.name)}"
    lines.append(f'model_instructions_file = "{_toml_escape(instructions)}"')
    return "\n".join(lines) + "\n"


def render_artifact(meta: AgentMeta, body: str, provider: Provider, dst_dir: Path) -> DeployedArtifact:
    """Render the artifact(s) for one agent on one provider."""
    path = dst_dir / provider.agent_filename(meta.name)
    if provider is Provider.CODEX:
        return DeployedArtifact(
            name=meta.name,
            path=path,
            content=render_codex(meta),
            marker=meta.marker,
            companion_path=dst_dir / provider.prompt_filename(meta.name),
            companion_content=f"{meta.marker.render()}\n\n{_terminated(body)}",
        )
    return DeployedArtifact(
        name=meta.name,
        path=path,
        content=render_markdown(meta, body, provider),
        marker=meta.marker,
    )


# ── Writing and removal ──────────────────────────────────────────────────


def write_artifact(artifact: DeployedArtifact) -> None:
    """Write an artifact, overwriting whatever is at its path.

    Raises:
        DeployError: If the destination cannot be created or written.
    """
    files = [(artifact.path, artifact.content)]
    if artifact.companion_path is not None and artifact.companion_content is not None:
        files.append((artifact.companion_path, artifact.companion_content))

    for path, content in files:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DeployError(path.parent, f"cannot create destination ({exc.strerror})") from exc
        if path.is_symlink():
            raise DeployError(path, "destination is a symlink")
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise DeployError(path, f"failed to write ({exc.strerror})") from exc


def read_marker(path: Path) -> Optional[SyncMarker]:
    """The sync marker of a deployed artifact, or None when it has none.

    Raises:
        DeployError: If the artifact exists but cannot be read.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DeployError(path, "failed to read deployed artifact") from exc
    return SyncMarker.parse(content)


def is_synced_from(path: Path, source_file: str) -> bool:
    """True when the artifact at ``path`` was produced by ``source_file``."""
    return path.is_file() and read_marker(path) == SyncMarker(source_file=source_file)


def _remove(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        raise DeployError(path, f"failed to remove ({exc.strerror})") from exc


def _remove_agent(dst_dir: Path, name: str, provider: Provider) -> None:
    _remove(dst_dir / provider.agent_filename(name))
    if provider is Provider.CODEX:
        _remove(dst_dir / provider.prompt_filename(name))


# ── Single document and batch deployment ─────────────────────────────────


def deploy_agent(
    source: Path,
    dst_dir: Path,
    provider: Provider,
    config: SidecarConfig,
    dry_run: bool = False,
) -> DeployOutcome:
    """Deploy one agent source file to one destination directory.

    Args:
        source: The canonical agent document.
        dst_dir: Provider agents directory.
        provider: Target provider.
        config: Sidecar configuration for this run.
        dry_run: Report the intended write without touching the filesystem.

    Returns:
        DeployOutcome: Deployed, or one of the soft-skip statuses.

    Raises:
        FileNotFoundError: If ``source`` is not a regular file.
        DeployError: If the artifact cannot be written.
    """
    filename = source.name
    if is_template(filename):
        logger.info("Skipping template %s", filename)
        return DeployOutcome(
            source_file=filename,
            status=DeployStatus.SKIPPED_TEMPLATE,
            message=f"Skipped template: {filename}",
        )

    try:
        document = read_document(source)
    except UnicodeDecodeError as exc:
        logger.warning("Skipping %s: not valid UTF-8 (%s)", filename, exc.reason)
        return DeployOutcome(
            source_file=filename,
            status=DeployStatus.SKIPPED_UNREADABLE,
            message=f"Skipped {filename}: not valid UTF-8",
        )
    meta = extract_agent_meta(document, filename, provider, config)
    if meta is None:
        logger.info("Skipping %s: no claude.name or name in frontmatter", filename)
        return DeployOutcome(
            source_file=filename,
            status=DeployStatus.SKIPPED_NO_NAME,
            message=f"Skipped {filename}: no agent name",
        )

    if not is_valid_agent_name(meta.name):
        logger.warning("Skipping %s: unusable agent name %r", filename, meta.name)
        return DeployOutcome(
            source_file=filename,
            status=DeployStatus.SKIPPED_INVALID_NAME,
            name=meta.name,
            message=f"Skipped {filename}: invalid agent name {meta.name!r}",
        )

    if not meta.model_allowed:
        logger.warning(
            "Model %s is not whitelisted for %s; omitting model line for %s",
            meta.model,
            provider.value,
            meta.name,
        )

    artifact = render_artifact(meta, document.body, provider, dst_dir)
    shown = artifact.path.name

    if dry_run:
        return DeployOutcome(
            source_file=filename,
            status=DeployStatus.DEPLOYED,
            name=meta.name,
            path=artifact.path,
            message=f"[dry-run] Would install: {shown} to {dst_dir}",
        )

    write_artifact(artifact)
    logger.debug("Wrote %s", artifact.path)
    return DeployOutcome(
        source_file=filename,
        status=DeployStatus.DEPLOYED,
        name=meta.name,
        path=artifact.path,
        message=f"Installed: {shown} to {dst_dir}",
    )


def agent_sources(src_dir: Path) -> list[Path]:
    """Markdown sources in ``src_dir``, sorted by file name."""
    if not src_dir.is_dir():
        return []
    return sorted(p for p in src_dir.glob("*.md") if p.is_file())


def readable_documents(src_dir: Path) -> Iterator[tuple[Path, Document]]:
    """Parsed sources in ``src_dir``; files that are not valid UTF-8 are skipped."""
    for source in agent_sources(src_dir):
        try:
            document = read_document(source)
        except UnicodeDecodeError as exc:
            logger.warning("Skipping %s: not valid UTF-8 (%s)", source.name, exc.reason)
            continue
        yield source, document


def deploy_agents_from_dir(
    src_dir: Path,
    dst_dir: Path,
    provider: Optional[Provider] = None,
    config: Optional[SidecarConfig] = None,
    dry_run: bool = False,
) -> DeployReport:
    """Deploy every agent in ``src_dir`` to ``dst_dir``.

    Soft skips are recorded and the batch continues. A write failure is
    recorded as ``failed`` with the path in ``report.error`` and stops the
    batch for this destination.
    """
    provider = provider or Provider.from_path(dst_dir)
    config = config if config is not None else SidecarConfig.load(src_dir.parent)
    report = DeployReport(destination=dst_dir, provider=provider, dry_run=dry_run)

    for source in agent_sources(src_dir):
        try:
            outcome = deploy_agent(source, dst_dir, provider, config, dry_run=dry_run)
        except DeployError as exc:
            logger.error("Deployment to %s aborted: %s", dst_dir, exc)
            report.outcomes.append(
                DeployOutcome(
                    source_file=source.name,
                    status=DeployStatus.FAILED,
                    path=exc.path,
                    message=str(exc),
                )
            )
            report.error = str(exc)
            break
        report.outcomes.append(outcome)

    return report


def clean_agents(
    src_dir: Path,
    dst_dir: Path,
    provider: Optional[Provider] = None,
    dry_run: bool = False,
) -> list[str]:
    """Remove artifacts previously deployed from ``src_dir``.

    An artifact is removed only when its marker names the exact source file
    currently being examined.

    Returns:
        list[str]: Names removed (or that would be removed, in dry-run).

    Raises:
        DeployError: If an artifact cannot be read or removed.
    """
    if not src_dir.is_dir() or not dst_dir.is_dir():
        return []
    provider = provider or Provider.from_path(dst_dir)

    removed: list[str] = []
    for source, document in readable_documents(src_dir):
        name = canonical_name(document)
        if not is_valid_agent_name(name):
            continue
        path = dst_dir / provider.agent_filename(name)
        if not is_synced_from(path, source.name):
            continue
        if not dry_run:
            _remove_agent(dst_dir, name, provider)
            logger.info("Removed %s", path)
        removed.append(name)
    return removed


def clean_orphaned_agents(
    dst_dir: Path,
    module_name: str,
    current: Iterable[str],
    provider: Provider,
    dry_run: bool = False,
) -> list[str]:
    """Remove agents a module deployed earlier but no longer produces.

    Only artifacts that still carry a sync marker are removed; a file the
    user has since replaced by hand is left alone.
    """
    if not module_name:
        return []
    keep = set(current)
    removed: list[str] = []
    for name in manifest.read(dst_dir, module_name):
        if name in keep or not is_valid_agent_name(name):
            continue
        path = dst_dir / provider.agent_filename(name)
        if not path.is_file() or read_marker(path) is None:
            continue
        if not dry_run:
            _remove_agent(dst_dir, name, provider)
            logger.info("Removed orphan %s", path)
        removed.append(name)
    return removed


# ── Codex config.toml managed block ──────────────────────────────────────


def format_codex_config_block(entries: list[AgentMeta], source_label: str) -> str:
    lines = [CODEX_BLOCK_BEGIN, f"# Generated by forgesync ({source_label})"]
    for meta in entries:
        lines.extend(
            [
                "",
                f"[agents.{meta.name}]",
                f'description = "{_toml_escape(meta.description)}"',
                f'config_file = "agents/{_toml_escape(Provider.CODEX.agent_filename(meta.name))}"',
            ]
        )
    lines.append(CODEX_BLOCK_END)
    return "\n".join(lines) + "\n"


def strip_managed_block(content: str, begin: str = CODEX_BLOCK_BEGIN, end: str = CODEX_BLOCK_END) -> str:
    """Drop the lines from ``begin`` to ``end`` inclusive; keep everything else."""
    kept: list[str] = []
    inside = False
    for line in content.splitlines():
        if line == begin:
            inside = True
            continue
        if line == end:
            inside = False
            continue
        if not inside:
            kept.append(line)
    while kept and not kept[-1].strip():
        kept.pop()
    return "\n".join(kept) + "\n" if kept else ""


def collect_codex_entries(src_dir: Path, config: SidecarConfig) -> list[AgentMeta]:
    entries: list[AgentMeta] = []
    for source, document in readable_documents(src_dir):
        meta = extract_agent_meta(document, source.name, Provider.CODEX, config)
        if meta is not None and is_valid_agent_name(meta.name):
            entries.append(meta)
    return entries


def write_codex_config_block(
    config_path: Path,
    entries: list[AgentMeta],
    source_label: str,
    dry_run: bool = False,
) -> str:
    """Replace the managed agents block in codex ``config.toml``.

    Returns:
        str: The rendered file content.

    Raises:
        DeployError: If the file cannot be written.
    """
    existing = config_path.read_text(encoding="utf-8") if config_path.is_file() else ""
    stripped = strip_managed_block(existing)
    block = format_codex_config_block(entries, source_label)
    rendered = f"{stripped}\n{block}" if stripped else block

    if not dry_run:
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(rendered, encoding="utf-8")
        except OSError as exc:
            raise DeployError(config_path, f"failed to write ({exc.strerror})") from exc
    return rendered


def clean_codex_config_block(config_path: Path, dry_run: bool = False) -> bool:
    """Strip the managed block from ``config_path``; False when there was none."""
    if not config_path.is_file():
        return False
    existing = config_path.read_text(encoding="utf-8")
    if CODEX_BLOCK_BEGIN not in existing.splitlines():
        return False
    if not dry_run:
        try:
            config_path.write_text(strip_managed_block(existing), encoding="utf-8")
        except OSError as exc:
            raise DeployError(config_path, f"failed to write ({exc.strerror})") from exc
    return True


# ── Destinations and full runs ───────────────────────────────────────────


def scope_dirs(scope: str, home: Path, cwd: Path) -> list[Path]:
    """Agent destination directories for every provider in ``scope``.

    Raises:
        ValueError: For an unknown scope.
    """
    if scope not in SCOPES:
        raise ValueError(f"invalid scope '{scope}': use user, workspace, project, or all")
    scopes = ("user", "workspace") if scope == "all" else (scope,)
    return [p.agents_dir(s, home, cwd) for s in scopes for p in Provider]


def sync_agents(
    src_dir: Path,
    destinations: list[Path],
    dry_run: bool = False,
    clean: bool = False,
    config: Optional[SidecarConfig] = None,
) -> list[DeployReport]:
    """Clean (optionally) and deploy ``src_dir`` into every destination.

    The sidecar is loaded once from the parent of ``src_dir`` and shared by
    all destinations. A hard failure in one destination is recorded in its
    report and the remaining destinations still run.
    """
    config = config if config is not None else SidecarConfig.load(src_dir.parent)
    module = manifest.module_name(src_dir) or ""
    source_label = f"{module}/{src_dir.name}" if module else src_dir.name
    reports: list[DeployReport] = []

    for dst_dir in destinations:
        provider = Provider.from_path(dst_dir)
        logger.info("Targeting provider directory: %s (%s)", dst_dir, provider.value)
        removed: list[str] = []
        messages: list[str] = []
        codex_config = dst_dir.parent / CODEX_CONFIG_FILE

        try:
            if clean:
                removed = clean_agents(src_dir, dst_dir, provider, dry_run=dry_run)
                if provider is Provider.CODEX and clean_codex_config_block(codex_config, dry_run):
                    messages.append(f"Cleaned managed block in {codex_config}")
        except DeployError as exc:
            report = DeployReport(destination=dst_dir, provider=provider, dry_run=dry_run, error=str(exc))
            report.removed = removed
            reports.append(report)
            continue

        report = deploy_agents_from_dir(src_dir, dst_dir, provider, config, dry_run=dry_run)
        report.removed = removed
        report.messages = messages
        reports.append(report)
        if report.error:
            continue

        try:
            if module:
                orphans = clean_orphaned_agents(
                    dst_dir, module, report.deployed_names, provider, dry_run=dry_run
                )
                report.removed.extend(orphans)
                if not dry_run:
                    manifest.update(dst_dir, module, report.deployed_names)
            if provider is Provider.CODEX:
                entries = collect_codex_entries(src_dir, config)
                write_codex_config_block(codex_config, entries, source_label, dry_run=dry_run)
                verb = "Would write" if dry_run else "Updated"
                report.messages.append(f"{verb} {codex_config} with {len(entries)} agent entries")
        except (DeployError, OSError) as exc:
            logger.error("Post-deploy step failed for %s: %s", dst_dir, exc)
            report.error = str(exc)

    return reports
