"""
Flow State Dev — CLI entrypoint.

Usage:
    fsd --help
    fsd modules list
    fsd modules validate vue3 vuetify supabase
    fsd generate my-app -m vue3 -m vuetify -m supabase
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from flowstate import __version__
from flowstate.core.observability.logging_config import (
    LOG_FILE_ENV,
    LOG_FILE_LEVEL_ENV,
    LOG_LEVEL_ENV,
    level_from_flags,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="fsd")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to flowstate.yml (default: auto-detect).",
)
@click.option(
    "--modules-dir",
    type=click.Path(exists=False, file_okay=False),
    default=None,
    help="Module root (default: flowstate.yml, $FSD_MODULES_DIR, bundled modules).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    modules_dir: str | None,
) -> None:
    """Flow State Dev — assemble web projects from stack modules."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["modules_dir"] = modules_dir

    setup_logging(
        level=level_from_flags(debug, verbose, quiet, os.environ.get(LOG_LEVEL_ENV)),
        log_file=os.environ.get(LOG_FILE_ENV),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
        quiet_third_party=not debug,
    )


def _parse_vars(values: tuple[str, ...]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected KEY=VALUE, got '{item}'", param_hint="--var")
        variables[key.strip()] = value
    return variables


def _prompt_choice(path, contributions, diff) -> str:
    """Interactive conflict chooser: a module name, 'merge' or 'skip'."""
    click.echo()
    click.secho(f"⚔️  Conflict: {path}", fg="yellow", bold=True)
    if diff:
        click.echo(diff)
    choices = [c.module for c in contributions] + ["merge", "skip"]
    for i, c in enumerate(contributions, 1):
        click.echo(f"   {i}. {c.module} (priority {c.priority})")
    return click.prompt(
        "   Keep which version?",
        type=click.Choice(choices),
        default=contributions[0].module,
    )


@cli.command()
@click.argument("project_dir", type=click.Path(file_okay=False))
@click.option("--module", "-m", "selected", multiple=True, help="Module to include (repeatable).")
@click.option("--name", default=None, help="Project name (default: directory name).")
@click.option("--description", default=None, help="Project description.")
@click.option("--author", default=None, help="Author name.")
@click.option("--email", "author_email", default=None, help="Author email.")
@click.option("--var", "raw_vars", multiple=True, help="Template variable KEY=VALUE (repeatable).")
@click.option(
    "--conflicts",
    "conflict_strategy",
    type=click.Choice(["priority", "merge", "report", "interactive"]),
    default=None,
    help="How to settle file conflicts (default: flowstate.yml or priority).",
)
@click.option("--force", is_flag=True, help="Generate into a non-empty directory.")
@click.option("--dry-run", is_flag=True, help="Show what would be written without writing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def generate(
    ctx: click.Context,
    project_dir: str,
    selected: tuple[str, ...],
    name: str | None,
    description: str | None,
    author: str | None,
    author_email: str | None,
    raw_vars: tuple[str, ...],
    conflict_strategy: str | None,
    force: bool,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Generate a project from a module selection."""
    from flowstate.core.use_cases.generate import run_generate

    variables = _parse_vars(raw_vars)
    interactive = conflict_strategy == "interactive" and not as_json

    result = run_generate(
        Path(project_dir),
        list(selected),
        config_path=ctx.obj.get("config_path"),
        modules_dir=ctx.obj.get("modules_dir"),
        name=name,
        description=description,
        author=author,
        author_email=author_email,
        variables=variables,
        conflict_strategy=conflict_strategy,
        chooser=_prompt_choice if interactive else None,
        force=force,
        dry_run=dry_run,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.success else 1)

    if result.validation is not None and not result.validation.valid:
        from flowstate.ui.cli.modules import echo_validation

        echo_validation(result.validation)

    generation = result.generation
    if generation is None:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    quiet = ctx.obj.get("quiet", False)
    verb = "Would write" if generation.dry_run else "Generated"
    icon = "✅" if generation.success else "⚠️ "
    click.secho(
        f"{icon} {verb} {len(generation.generated)} files in {result.project_path}",
        fg="green" if generation.success else "yellow",
        bold=True,
    )
    click.echo(f"   Modules: {' → '.join(result.modules)}")

    if not quiet and (generation.dry_run or ctx.obj.get("verbose")):
        for path in generation.generated:
            click.echo(f"     • {path}")

    if generation.conflicts:
        click.echo()
        click.secho(f"⚔️  Conflicts ({len(generation.conflicts)}):", fg="yellow")
        for c in generation.conflicts:
            click.echo(f"   • {c.path}: {c.resolution}")

    if generation.skipped:
        click.echo()
        click.secho(f"⏭️  Skipped ({len(generation.skipped)}):", fg="yellow")
        for path in generation.skipped:
            click.echo(f"   • {path}")

    if generation.errors:
        click.echo()
        click.secho(f"❌ Errors ({len(generation.errors)}):", fg="red")
        for err in generation.errors:
            where = " ".join(p for p in (err["path"], f"[{err['module']}]" if err["module"] else "") if p)
            click.echo(f"   • {where}: {err['message']}" if where else f"   • {err['message']}")

    if generation.instructions and not quiet:
        click.echo()
        click.secho("📋 Next steps:", fg="cyan", bold=True)
        for line in generation.instructions:
            click.echo(f"   {line}" if line else "")

    click.echo()
    if not generation.success:
        sys.exit(1)


# ── Register sub-command groups from flowstate/ui/cli/ ────────────

from flowstate.ui.cli.modules import modules  # noqa: E402

cli.add_command(modules)


if __name__ == "__main__":
    cli()
