"""forgesync CLI — deploy agents and skills from the terminal.

Commands:
    agents install    Render agents for every provider directory in scope
    agents clean      Remove agents previously deployed from a source dir
    skills install    Install skill bundles for one provider
    skills uninstall  Remove an installed skill
    skills generate   Write skill wrappers generated from agent documents
    strip             Print a document without its frontmatter and title
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .deploy import CODEX_CONFIG_FILE, clean_agents, clean_codex_config_block, scope_dirs, sync_agents
from .errors import ForgeSyncError
from .frontmatter import strip_front
from .models import DeployReport, DeployStatus, SkillReport
from .provider import Provider
from .skills import generate_skills_from_agents_dir, sync_skills, uninstall_skill, write_generated_skills

console = Console()

PROVIDER_CHOICE = click.Choice([p.value for p in Provider], case_sensitive=False)
AGENT_SCOPES = click.Choice(["user", "workspace", "project", "all"])
SKILL_SCOPES = click.Choice(["user", "workspace", "project"])


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s: %(message)s")
    logging.getLogger().setLevel(level)


def _agent_destinations(scope: str, dst: Optional[str]) -> list[Path]:
    if dst:
        return [Path(dst)]
    return scope_dirs(scope, Path.home(), Path.cwd())


def _print_deploy_report(report: DeployReport) -> None:
    console.print(f"\n[bold]Targeting provider directory:[/bold] {report.destination}")
    prefix = "[dry-run] Would remove" if report.dry_run else "Removed"
    for name in report.removed:
        console.print(f"  {escape(prefix)}: {name}")
    for outcome in report.outcomes:
        if outcome.status == DeployStatus.DEPLOYED:
            console.print(f"  [green]{escape(outcome.message)}[/green]")
        elif outcome.status == DeployStatus.FAILED:
            console.print(f"  [red]Failed:[/red] {escape(outcome.message)}")
        else:
            console.print(f"  [dim]{escape(outcome.message)}[/dim]")
    for message in report.messages:
        console.print(f"  {escape(message)}")
    if report.error:
        console.print(f"  [red]Error:[/red] {escape(report.error)}")


def _print_tally(reports: list[DeployReport]) -> None:
    table = Table(title="Deployment Summary")
    table.add_column("Destination", style="cyan")
    table.add_column("Provider", style="green")
    table.add_column("Deployed", justify="right")
    table.add_column("Skipped", justify="right", style="dim")
    table.add_column("Failed", justify="right", style="red")
    for report in reports:
        failed = report.failed or (1 if report.error else 0)
        table.add_row(
            str(report.destination),
            report.provider.value,
            str(report.deployed),
            str(report.skipped),
            str(failed),
        )
    console.print(table)


def _print_skill_report(report: SkillReport) -> None:
    console.print(f"\n[bold]Skills for {report.provider.value}:[/bold] {report.destination}")
    for message in report.messages:
        console.print(f"  {escape(message)}")
    for name, reason in report.skipped:
        console.print(f"  [dim]Skipped {escape(name)}: {escape(reason)}[/dim]")
    for name, reason in report.failed:
        console.print(f"  [red]Failed {escape(name)}:[/red] {escape(reason)}")
    console.print(
        f"  Installed: {len(report.installed)}  "
        f"Skipped: {len(report.skipped)}  Failed: {len(report.failed)}"
    )


@click.group()
@click.version_option(__version__, prog_name="forgesync")
@click.option("--verbose", "-v", is_flag=True, help="Log every decision.")
def main(verbose: bool) -> None:
    """forgesync — deploy canonical agents and skills to AI tool providers.

    Claude, Gemini, Codex and OpenCode each get artifacts in their own
    dialect, rendered from one markdown source per agent or skill.
    """
    _configure_logging(verbose)


# ── Agents ────────────────────────────────────────────────────────────────


@main.group()
def agents() -> None:
    """Deploy and clean agent definitions."""


@agents.command("install")
@click.argument("src", type=click.Path(exists=True, file_okay=False))
@click.option("--scope", default="all", type=AGENT_SCOPES, help="Destination scope (default: all).")
@click.option("--dst", envvar="AGENTS_DST", default=None, help="Single destination directory.")
@click.option("--dry-run", is_flag=True, help="Report what would change without writing.")
@click.option("--clean", is_flag=True, help="Remove previously synced agents first.")
def agents_install(src: str, scope: str, dst: Optional[str], dry_run: bool, clean: bool) -> None:
    """Render the agents in SRC for every provider directory."""
    try:
        destinations = _agent_destinations(scope, dst)
        reports = sync_agents(Path(src), destinations, dry_run=dry_run, clean=clean)
    except (ForgeSyncError, FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Install failed:[/red] {escape(str(exc))}")
        sys.exit(1)

    for report in reports:
        _print_deploy_report(report)
    _print_tally(reports)

    if any(report.error for report in reports):
        sys.exit(1)


@agents.command("clean")
@click.argument("src", type=click.Path(exists=True, file_okay=False))
@click.option("--scope", default="all", type=AGENT_SCOPES, help="Destination scope (default: all).")
@click.option("--dst", envvar="AGENTS_DST", default=None, help="Single destination directory.")
@click.option("--dry-run", is_flag=True, help="Report what would be removed.")
def agents_clean(src: str, scope: str, dst: Optional[str], dry_run: bool) -> None:
    """Remove agents that were synced from the files in SRC."""
    prefix = "[dry-run] Would remove" if dry_run else "Removed"
    try:
        for dst_dir in _agent_destinations(scope, dst):
            provider = Provider.from_path(dst_dir)
            for name in clean_agents(Path(src), dst_dir, provider, dry_run=dry_run):
                console.print(f"{escape(prefix)}: {provider.agent_filename(name)} ({dst_dir})")
            if provider is Provider.CODEX:
                config_path = dst_dir.parent / CODEX_CONFIG_FILE
                if clean_codex_config_block(config_path, dry_run=dry_run):
                    console.print(f"{escape(prefix)} managed block: {config_path}")
    except (ForgeSyncError, FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Clean failed:[/red] {escape(str(exc))}")
        sys.exit(1)


# ── Skills ────────────────────────────────────────────────────────────────


@main.group()
def skills() -> None:
    """Install, remove and generate skill bundles."""


@skills.command("install")
@click.argument("skills_dir", type=click.Path(exists=True, file_okay=False))
@click.option("--provider", "provider_name", required=True, type=PROVIDER_CHOICE, help="Target provider.")
@click.option("--scope", default="user", type=SKILL_SCOPES, help="Install scope (default: user).")
@click.option("--dst", default=None, help="Override the destination skills directory.")
@click.option("--dry-run", is_flag=True, help="Report what would be installed.")
@click.option("--clean", is_flag=True, help="Remove the module's previously installed skills first.")
@click.option("--agents-dir", default="agents", help="Agent sources for generated wrappers.")
@click.option("--include-agent-wrappers", is_flag=True, help="Also install skills generated from agents.")
def skills_install(
    skills_dir: str,
    provider_name: str,
    scope: str,
    dst: Optional[str],
    dry_run: bool,
    clean: bool,
    agents_dir: str,
    include_agent_wrappers: bool,
) -> None:
    """Install the skill bundles in SKILLS_DIR for one provider."""
    provider = Provider(provider_name.lower())
    dst_dir = Path(dst) if dst else provider.skills_dir(scope, Path.home(), Path.cwd())
    wrappers_from = Path(agents_dir) if include_agent_wrappers else None

    try:
        report = sync_skills(
            Path(skills_dir),
            provider,
            dst_dir,
            scope=scope,
            dry_run=dry_run,
            clean=clean,
            agents_dir=wrappers_from,
        )
    except (ForgeSyncError, OSError, ValueError) as exc:
        console.print(f"[red]Install failed:[/red] {escape(str(exc))}")
        sys.exit(1)

    _print_skill_report(report)
    if report.failed:
        sys.exit(1)


@skills.command("uninstall")
@click.argument("name")
@click.option("--provider", "provider_name", required=True, type=PROVIDER_CHOICE, help="Target provider.")
@click.option("--scope", default="user", type=SKILL_SCOPES, help="Install scope (default: user).")
@click.option("--dst", default=None, help="Override the destination skills directory.")
@click.option("--dry-run", is_flag=True, help="Report what would be removed.")
def skills_uninstall(name: str, provider_name: str, scope: str, dst: Optional[str], dry_run: bool) -> None:
    """Remove an installed skill."""
    provider = Provider(provider_name.lower())
    dst_dir = Path(dst) if dst else provider.skills_dir(scope, Path.home(), Path.cwd())
    try:
        removed = uninstall_skill(name, provider, dst_dir, scope=scope, dry_run=dry_run)
    except ForgeSyncError as exc:
        console.print(f"[red]Uninstall failed:[/red] {escape(str(exc))}")
        sys.exit(1)

    if not removed:
        console.print(f"[red]Not found:[/red] {name} ({dst_dir})")
        sys.exit(1)
    verb = "[dry-run] Would uninstall" if dry_run else "Uninstalled"
    console.print(f"[green]{escape(verb)}:[/green] {name} ({provider.value})")


@skills.command("generate")
@click.argument("agents_dir", type=click.Path(exists=True, file_okay=False))
@click.argument("out_dir")
@click.option("--dry-run", is_flag=True, help="Report what would be generated.")
def skills_generate(agents_dir: str, out_dir: str, dry_run: bool) -> None:
    """Generate skill wrappers for the agents in AGENTS_DIR into OUT_DIR."""
    try:
        generated = generate_skills_from_agents_dir(Path(agents_dir))
        messages = write_generated_skills(generated, Path(out_dir), dry_run=dry_run)
    except (ForgeSyncError, FileNotFoundError) as exc:
        console.print(f"[red]Generate failed:[/red] {escape(str(exc))}")
        sys.exit(1)

    for message in messages:
        console.print(escape(message))
    if not generated:
        console.print("[dim]No agents with a name found.[/dim]")


# ── Documents ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--keep", default=None, help="Comma-separated frontmatter keys to retain.")
def strip(file: str, keep: Optional[str]) -> None:
    """Print FILE without its frontmatter block and H1 title."""
    try:
        content = Path(file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        console.print(f"[red]Cannot read[/red] {file}: {escape(str(exc))}")
        sys.exit(1)

    keys = keep.split(",") if keep is not None else None
    click.echo(strip_front(content, keys), nl=False)


if __name__ == "__main__":
    main()
