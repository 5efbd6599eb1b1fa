"""Skill packaging — validate, plan, install and remove skill bundles.

Bundle layout::

    skills/
        code-review/
            SKILL.md        # body handed to the provider
            SKILL.yaml      # name, description, argument-hint, providers
            references/     # anything else is copied along

SKILL.yaml::

    name: code-review
    description: Review a change for defects
    argument-hint: "[files or PR]"
    providers:
      claude:
        enabled: true
      gemini:
        enabled: yes
        scope: workspace

Claude, Codex and OpenCode receive a directory copy; Gemini installs through
its own ``gemini skills`` CLI. Skill wrappers can also be generated from
agent documents; those are enabled for Codex only.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Iterable, Optional

import yaml

from . import manifest
from .deploy import canonical_name, is_safe_name, is_template, readable_documents
from .errors import SkillInstallError, SkillMetadataError
from .frontmatter import Document
from .models import GeneratedSkill, SkillAction, SkillActionKind, SkillMeta, SkillReport
from .provider import Provider
from .sidecar import SidecarConfig

logger = logging.getLogger("forgesync.skills")

SKILL_BODY = "SKILL.md"
SKILL_META = "SKILL.yaml"
REQUIRED_KEYS = ("name", "description", "argument-hint")
WRAPPER_PROVIDER = Provider.CODEX
DEFAULT_SKILL_DESCRIPTION = "Specialist skill"
PROVIDER_CLI_TIMEOUT_S = 120


# ── Metadata ─────────────────────────────────────────────────────────────


def parse_skill_meta(text: str, path: Path = Path(SKILL_META)) -> SkillMeta:
    """Parse SKILL.yaml content.

    Scalars are read as plain strings so that ``enabled`` is only true for
    the spellings ``true``, ``yes`` and ``1``.

    Raises:
        SkillMetadataError: On invalid YAML, a non-mapping document, or a
            missing/empty required key (the key is named).
    """
    try:
        raw = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise SkillMetadataError(path, reason=f"invalid YAML ({exc})") from exc

    if not isinstance(raw, dict):
        raise SkillMetadataError(path, reason="SKILL.yaml must be a mapping")

    for key in REQUIRED_KEYS:
        value = raw.get(key)
        if not isinstance(value, str) or not value.strip():
            raise SkillMetadataError(path, key=key)

    return SkillMeta.model_validate(raw)


def load_skill_meta(path: Path) -> SkillMeta:
    """Read and validate a SKILL.yaml file.

    Raises:
        SkillMetadataError: If the file is missing or invalid.
    """
    if not path.is_file():
        raise SkillMetadataError(path, reason=f"{SKILL_META} not found")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SkillMetadataError(path, reason="unreadable") from exc
    return parse_skill_meta(text, path)


def skill_bundles(root_dir: Path) -> list[Path]:
    """Bundle directories (those holding a SKILL.md) in ``root_dir``, sorted."""
    if not root_dir.is_dir():
        return []
    return sorted(p for p in root_dir.iterdir() if p.is_dir() and (p / SKILL_BODY).is_file())


# ── Planning ─────────────────────────────────────────────────────────────


def resolve_scope(
    meta: SkillMeta,
    provider: Provider,
    default_scope: str,
    config: SidecarConfig,
) -> str:
    """Sidecar ``scope`` beats the SKILL.yaml provider entry, which beats the default."""
    sidecar_scope = config.skill_value(meta.name, "scope")
    if sidecar_scope:
        return sidecar_scope
    entry = meta.entry_for(provider)
    if entry is not None and entry.scope:
        return entry.scope
    return default_scope


def plan_skill_install(
    meta: SkillMeta,
    skill_dir: Path,
    provider: Provider,
    dst_dir: Path,
    default_scope: str,
    config: SidecarConfig,
) -> SkillAction:
    """Decide how (and whether) a bundle reaches ``provider``."""
    if not meta.enabled_for(provider):
        return SkillAction(
            kind=SkillActionKind.SKIPPED,
            skill_name=meta.name,
            reason=f"disabled for {provider.value}",
        )
    if not is_safe_name(meta.name):
        return SkillAction(
            kind=SkillActionKind.SKIPPED,
            skill_name=meta.name,
            reason=f"invalid skill name {meta.name!r}",
        )

    if provider is Provider.GEMINI:
        return SkillAction(
            kind=SkillActionKind.PROVIDER_CLI,
            skill_name=meta.name,
            src_dir=skill_dir,
            scope=resolve_scope(meta, provider, default_scope, config),
        )
    return SkillAction(
        kind=SkillActionKind.COPY,
        skill_name=meta.name,
        src_dir=skill_dir,
        dst_dir=dst_dir,
    )


# ── Execution ────────────────────────────────────────────────────────────


def _remove_tree(target: Path) -> None:
    if target.is_symlink() or target.is_file():
        target.unlink()
    elif target.exists():
        shutil.rmtree(target)


def execute_skill_copy(src_dir: Path, skill_name: str, dst_dir: Path) -> Path:
    """Replace ``dst_dir/skill_name`` with a fresh copy of ``src_dir``.

    Returns:
        Path: The installed bundle directory.

    Raises:
        SkillInstallError: If the copy fails.
    """
    target = dst_dir / skill_name
    try:
        dst_dir.mkdir(parents=True, exist_ok=True)
        _remove_tree(target)
        shutil.copytree(src_dir, target)
    except OSError as exc:
        raise SkillInstallError(skill_name, f"copy to {target} failed ({exc})") from exc
    return target


def run_provider_cli(provider: Provider, args: list[str], skill_name: str) -> None:
    """Run the provider's own skill command (``gemini skills ...``).

    Raises:
        SkillInstallError: If the CLI is missing or exits non-zero.
    """
    command = [provider.value, "skills", *args]
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=PROVIDER_CLI_TIMEOUT_S,
        )
    except FileNotFoundError as exc:
        raise SkillInstallError(skill_name, f"{provider.value} CLI not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise SkillInstallError(skill_name, f"{' '.join(command)} timed out") from exc

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise SkillInstallError(
            skill_name,
            f"{' '.join(command[:3])} failed (exit {result.returncode}): {detail}",
        )


def execute_action(action: SkillAction, provider: Provider, dry_run: bool = False) -> str:
    """Carry out a planned action.

    Returns:
        str: One-line record of what was (or would be) done.

    Raises:
        SkillInstallError: If the install fails.
    """
    if action.kind is SkillActionKind.SKIPPED:
        return f"Skipped skill: {action.skill_name} ({action.reason})"

    if action.kind is SkillActionKind.PROVIDER_CLI:
        if dry_run:
            return f"[dry-run] Would install {provider.value} skill: {action.skill_name} (scope: {action.scope})"
        run_provider_cli(
            provider,
            ["install", str(action.src_dir), "--scope", action.scope],
            action.skill_name,
        )
        return f"Installed {provider.value} skill: {action.skill_name} (scope: {action.scope})"

    if dry_run:
        return f"[dry-run] Would install skill: {action.skill_name} -> {action.dst_dir}"
    execute_skill_copy(action.src_dir, action.skill_name, action.dst_dir)
    return f"Installed skill: {action.skill_name} -> {action.dst_dir}"


def install_skill_bundles(
    bundles: Iterable[Path],
    provider: Provider,
    dst_dir: Path,
    scope: str = "user",
    config: Optional[SidecarConfig] = None,
    dry_run: bool = False,
) -> SkillReport:
    """Install each bundle for ``provider``.

    A bundle with invalid metadata or a failing install is recorded in
    ``report.failed`` with its diagnostic; the other bundles still install.
    """
    config = config if config is not None else SidecarConfig()
    report = SkillReport(destination=dst_dir, provider=provider, dry_run=dry_run)

    for bundle in bundles:
        try:
            meta = load_skill_meta(bundle / SKILL_META)
        except SkillMetadataError as exc:
            logger.error("Skipping bundle %s: %s", bundle.name, exc)
            report.failed.append((bundle.name, str(exc)))
            continue

        action = plan_skill_install(meta, bundle, provider, dst_dir, scope, config)
        if action.kind is SkillActionKind.SKIPPED:
            logger.info("Skipping skill %s: %s", meta.name, action.reason)
            report.skipped.append((meta.name, action.reason))
            continue

        try:
            message = execute_action(action, provider, dry_run=dry_run)
        except SkillInstallError as exc:
            logger.error("%s", exc)
            report.failed.append((meta.name, str(exc)))
            continue

        report.installed.append(meta.name)
        report.messages.append(message)

    return report


def install_skills_from_dir(
    skills_dir: Path,
    provider: Provider,
    dst_dir: Path,
    scope: str = "user",
    config: Optional[SidecarConfig] = None,
    dry_run: bool = False,
) -> SkillReport:
    """Install every bundle found in ``skills_dir``."""
    if config is None:
        config = SidecarConfig.load(skills_dir.parent)
    return install_skill_bundles(skill_bundles(skills_dir), provider, dst_dir, scope, config, dry_run)


def uninstall_skill(
    name: str,
    provider: Provider,
    dst_dir: Path,
    scope: str = "user",
    dry_run: bool = False,
) -> bool:
    """Remove an installed skill.

    Returns:
        bool: True if the skill was (or would be) removed.

    Raises:
        SkillInstallError: If removal fails or the name is unusable.
    """
    if not is_safe_name(name):
        raise SkillInstallError(name, "invalid skill name")

    if provider is Provider.GEMINI:
        if not dry_run:
            run_provider_cli(provider, ["uninstall", name, "--scope", scope], name)
        return True

    target = dst_dir / name
    if not (target.exists() or target.is_symlink()):
        return False
    if not dry_run:
        try:
            _remove_tree(target)
        except OSError as exc:
            raise SkillInstallError(name, f"failed to remove {target} ({exc})") from exc
    return True


def clean_module_skills(dst_dir: Path, module_name: str, dry_run: bool = False) -> list[str]:
    """Remove every skill the module installed into ``dst_dir`` last time."""
    if not module_name or not dst_dir.is_dir():
        return []
    removed: list[str] = []
    for name in manifest.read(dst_dir, module_name):
        if is_safe_name(name) and uninstall_skill(name, Provider.CLAUDE, dst_dir, dry_run=dry_run):
            removed.append(name)
    return removed


def clean_orphaned_skills(
    dst_dir: Path,
    module_name: str,
    current: Iterable[str],
    dry_run: bool = False,
) -> list[str]:
    """Remove skills recorded for the module that this run did not install."""
    if not module_name or not dst_dir.is_dir():
        return []
    keep = set(current)
    removed: list[str] = []
    for name in manifest.read(dst_dir, module_name):
        if name in keep or not is_safe_name(name):
            continue
        if uninstall_skill(name, Provider.CLAUDE, dst_dir, dry_run=dry_run):
            removed.append(name)
    return removed


# ── Wrapper generation from agents ───────────────────────────────────────


def _yaml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def format_agent_skill_md(agent_name: str, description: str, body: str, source_file: str) -> str:
    text = (
        "---\n"
        f"name: {agent_name}\n"
        f'description: "{_yaml_escape(description)}"\n'
        f'argument-hint: "[task, files, or question for {agent_name}]"\n'
        "---\n"
        "\n"
        f"# {agent_name}\n"
        "\n"
        f"> Generated from agents/{source_file}. Do not edit manually.\n"
        "\n"
        "Use the specialist guidance below to handle the user's request.\n"
        "\n"
        f"{body}"
    )
    return text if text.endswith("\n") else text + "\n"


def format_agent_skill_yaml(agent_name: str, description: str, source_file: str) -> str:
    data = {
        "name": agent_name,
        "description": description,
        "argument-hint": f"[task, files, or question for {agent_name}]",
        "providers": {
            provider.value: {"enabled": provider is WRAPPER_PROVIDER} for provider in Provider
        },
        "generation": {
            "source": "generated-from-agent",
            "agent": agent_name,
            "synced-from": source_file,
        },
    }
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def generate_skill_from_agent(document: Document, filename: str) -> Optional[GeneratedSkill]:
    """Build a skill wrapper for an agent; None for templates and unnamed agents."""
    if is_template(filename):
        return None
    agent_name = canonical_name(document) or document.scalar("title")
    if not agent_name:
        return None
    description = document.first("claude.description", "description") or DEFAULT_SKILL_DESCRIPTION
    return GeneratedSkill(
        agent_name=agent_name,
        source_file=filename,
        skill_md=format_agent_skill_md(agent_name, description, document.body, filename),
        skill_yaml=format_agent_skill_yaml(agent_name, description, filename),
    )


def generate_skills_from_agents_dir(agents_dir: Path) -> list[GeneratedSkill]:
    generated: list[GeneratedSkill] = []
    for source, document in readable_documents(agents_dir):
        skill = generate_skill_from_agent(document, source.name)
        if skill is None:
            logger.info("Skipping %s: no agent name or title", source.name)
            continue
        generated.append(skill)
    return generated


def write_generated_skills(
    generated: Iterable[GeneratedSkill],
    out_dir: Path,
    dry_run: bool = False,
) -> list[str]:
    """Materialise generated wrappers as bundles under ``out_dir``.

    Returns:
        list[str]: One line per wrapper written (or that would be written).

    Raises:
        SkillInstallError: If a wrapper cannot be written.
    """
    messages: list[str] = []
    for skill in generated:
        if not is_safe_name(skill.agent_name):
            messages.append(f"Skipped wrapper {skill.agent_name!r}: invalid name")
            continue
        if dry_run:
            messages.append(
                f"[dry-run] Would generate skill wrapper: {skill.agent_name} from {skill.source_file}"
            )
            continue
        bundle = out_dir / skill.agent_name
        try:
            bundle.mkdir(parents=True, exist_ok=True)
            (bundle / SKILL_BODY).write_text(skill.skill_md, encoding="utf-8")
            (bundle / SKILL_META).write_text(skill.skill_yaml, encoding="utf-8")
        except OSError as exc:
            raise SkillInstallError(skill.agent_name, f"cannot write wrapper in {bundle} ({exc})") from exc
        messages.append(f"Generated wrapper skill: {skill.agent_name}")
    return messages


# ── Full runs ────────────────────────────────────────────────────────────


def sync_skills(
    skills_dir: Path,
    provider: Provider,
    dst_dir: Path,
    scope: str = "user",
    dry_run: bool = False,
    clean: bool = False,
    agents_dir: Optional[Path] = None,
) -> SkillReport:
    """Install a module's skills (and, optionally, agent wrappers) for one provider.

    Agent wrappers are generated into a temporary directory that only lives
    for this run. For copy-based providers the install manifest is updated
    and skills the module no longer ships are removed.
    """
    config = SidecarConfig.load(skills_dir.parent)
    module = manifest.module_name(skills_dir) or ""
    copy_based = provider is not Provider.GEMINI
    removed: list[str] = []

    if clean and copy_based:
        removed = clean_module_skills(dst_dir, module, dry_run=dry_run)

    with tempfile.TemporaryDirectory(prefix="forgesync-wrappers-") as tmp:
        bundles = skill_bundles(skills_dir)
        notes: list[str] = []
        if agents_dir is not None and copy_based:
            wrappers_dir = Path(tmp)
            notes = write_generated_skills(generate_skills_from_agents_dir(agents_dir), wrappers_dir)
            bundles.extend(skill_bundles(wrappers_dir))

        report = install_skill_bundles(bundles, provider, dst_dir, scope, config, dry_run=dry_run)
        report.messages[:0] = notes

    report.messages.extend(f"Removed skill: {name}" for name in removed)

    if module and copy_based:
        for name in clean_orphaned_skills(dst_dir, module, report.installed, dry_run=dry_run):
            report.messages.append(f"Removed orphaned skill: {name}")
        if not dry_run:
            manifest.update(dst_dir, module, report.installed)

    return report
