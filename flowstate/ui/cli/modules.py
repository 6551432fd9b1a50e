"""
CLI commands for browsing and checking stack modules.

Thin wrappers over ``flowstate.core.services`` and
``flowstate.core.use_cases.check``.
"""

from __future__ import annotations

import json
import sys

import click


def _open_registry(ctx: click.Context):
    """Discover modules, or exit with a red message."""
    from flowstate.core.config.loader import ConfigError
    from flowstate.core.services.registry import ModuleDirectoryError
    from flowstate.core.use_cases.check import open_registry

    try:
        loaded = open_registry(ctx.obj.get("modules_dir"), ctx.obj.get("config_path"))
    except (ConfigError, ModuleDirectoryError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if loaded.discovery.skipped and not ctx.obj.get("quiet"):
        for skipped in loaded.discovery.skipped:
            click.secho(f"⚠️  Skipped {skipped['path']}: {skipped['reason']}", fg="yellow", err=True)
    return loaded.registry


def _echo_module_line(summary: dict) -> None:
    click.echo(f"   • {summary['name']:<18} {summary['version']:<8} {summary['description']}")


@click.group()
def modules() -> None:
    """Stack modules — list, search, inspect, validate, suggest."""


# ── Browse ──────────────────────────────────────────────────────


@modules.command("list")
@click.option("--type", "module_type", default=None, help="Only modules of this type.")
@click.option("--category", default=None, help="Only modules in this category.")
@click.option("--tag", default=None, help="Only modules with this tag.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_modules(
    ctx: click.Context,
    module_type: str | None,
    category: str | None,
    tag: str | None,
    as_json: bool,
) -> None:
    """List available modules, grouped by category."""
    registry = _open_registry(ctx)

    items = registry.get_all_modules()
    if module_type:
        items = [m for m in items if m.module_type.value == module_type]
    if category:
        items = [m for m in items if m.category == category]
    if tag:
        items = [m for m in items if tag in m.tags]

    if as_json:
        click.echo(json.dumps([m.summary() for m in items], indent=2))
        return

    if not items:
        click.secho("No modules found.", fg="yellow")
        return

    click.secho(f"📦 Modules ({len(items)}):", fg="cyan", bold=True)
    for cat in sorted({m.category for m in items}):
        click.secho(f"\n   {cat}", fg="white", bold=True)
        for module in items:
            if module.category == cat:
                _echo_module_line(module.summary())
    click.echo()


@modules.command()
@click.argument("query")
@click.option("--category", default=None, help="Restrict to a category.")
@click.option("--tag", "tags", multiple=True, help="Require a tag (repeatable).")
@click.option("--limit", default=10, show_default=True, help="Maximum results.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    category: str | None,
    tags: tuple[str, ...],
    limit: int,
    as_json: bool,
) -> None:
    """Search modules by name, description, tag and category."""
    registry = _open_registry(ctx)
    results = registry.search_modules(query, category=category, tags=list(tags) or None, limit=limit)

    if as_json:
        click.echo(json.dumps([m.summary() for m in results], indent=2))
        return

    if not results:
        click.secho(f"No modules match '{query}'.", fg="yellow")
        return

    click.secho(f"🔍 Results for '{query}' ({len(results)}):", fg="cyan", bold=True)
    for module in results:
        _echo_module_line(module.summary())
    click.echo()


@modules.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show one module's descriptor and compatibility."""
    from flowstate.core.services.resolver import DependencyResolver

    registry = _open_registry(ctx)
    module = registry.get_module(name)
    if module is None:
        if as_json:
            click.echo(json.dumps({"error": f"Unknown module: {name}"}, indent=2))
        else:
            click.secho(f"❌ Unknown module: {name}", fg="red")
        sys.exit(1)

    report = DependencyResolver(registry).get_compatibility_report(name)

    if as_json:
        data = module.model_dump(mode="json", exclude={"templates"})
        data["compatibility"] = report
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"\n📦 {module.display_name or module.name}", fg="cyan", bold=True)
    if module.description:
        click.echo(f"   {module.description}")
    click.echo(f"   Name:      {module.name}")
    click.echo(f"   Version:   {module.version}")
    click.echo(f"   Type:      {module.module_type.value}")
    click.echo(f"   Category:  {module.category}")
    click.echo(f"   Priority:  {module.priority}")
    for label, values in (
        ("Tags", module.tags),
        ("Provides", module.provides),
        ("Requires", module.requires),
        ("Compatible", module.compatible_with),
        ("Conflicts", module.incompatible_with),
    ):
        if values:
            click.echo(f"   {label + ':':<10} {', '.join(values)}")
    if report and report["incompatible_from"]:
        click.echo(f"   Rejected by: {', '.join(report['incompatible_from'])}")
    if module.is_exclusive:
        click.secho("   Exclusive: only one module of this type per project", fg="yellow")
    click.echo()


# ── Check ───────────────────────────────────────────────────────


@modules.command()
@click.argument("names", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def validate(ctx: click.Context, names: tuple[str, ...], as_json: bool) -> None:
    """Validate a module selection (default: modules from flowstate.yml)."""
    from flowstate.core.use_cases.check import check_selection

    result = check_selection(list(names), ctx.obj.get("modules_dir"), ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    echo_validation(result.validation)
    if result.valid:
        click.echo(f"   Install order: {' → '.join(result.order)}")
        click.echo()
    else:
        sys.exit(1)


def echo_validation(validation) -> None:
    """Print a ValidationResult the way every command shows it."""
    if validation.valid:
        click.secho(f"✅ Selection is valid: {', '.join(validation.modules)}", fg="green", bold=True)
    else:
        click.secho("❌ Selection is invalid", fg="red", bold=True)

    for conflict in validation.conflicts:
        click.echo(f"   • [{conflict.type}] {conflict.reason}")
    for missing in validation.missing:
        click.echo(f"   • [missing] {missing.module} requires {missing.requires}")
    for unknown in validation.unknown:
        click.secho(f"   • [unknown] {unknown}", fg="yellow")

    if validation.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in validation.warnings:
            click.echo(f"   • {warn.message}")

    if validation.suggestions:
        click.echo()
        click.secho("💡 Suggestions:", fg="cyan")
        for s in validation.suggestions:
            change = {
                "add": f"add {s.add}",
                "remove": f"remove {s.remove}",
                "replace": f"replace {s.remove} with {s.add}",
            }[s.type]
            click.echo(f"   • {change}  ({s.reason})")
    click.echo()


@modules.command()
@click.argument("names", nargs=-1)
@click.option("--exclude", multiple=True, help="Never recommend this module (repeatable).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def suggest(ctx: click.Context, names: tuple[str, ...], exclude: tuple[str, ...], as_json: bool) -> None:
    """Recommend modules and popular stacks for a selection."""
    from flowstate.core.services.resolver import DependencyResolver
    from flowstate.core.services.suggestions import SuggestionEngine

    registry = _open_registry(ctx)
    engine = SuggestionEngine(DependencyResolver(registry))
    result = engine.get_suggestions(list(names), {"exclude": list(exclude)})

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.recommended:
        click.secho("💡 Recommended:", fg="cyan", bold=True)
        for r in result.recommended:
            click.echo(f"   • {r.module:<18} {r.reason} (score {r.score})")
        click.echo()

    if result.popular:
        click.secho("⭐ Popular stacks:", fg="cyan", bold=True)
        for p in result.popular:
            missing = f"  + {', '.join(p.missing_modules)}" if p.missing_modules else ""
            click.echo(f"   • {p.name:<24} {', '.join(p.modules)}{missing}")
        click.echo()

    if result.alternatives:
        click.secho("🔁 Fixes:", fg="yellow", bold=True)
        for a in result.alternatives:
            click.echo(f"   • {a.type} {a.remove or ''}{' → ' if a.remove and a.add else ''}{a.add or ''}  ({a.reason})")
        click.echo()

    if result.compatible:
        click.secho("🧩 Compatible additions:", fg="white", bold=True)
        for module_type, entries in sorted(result.compatible.items()):
            click.echo(f"   {module_type}: {', '.join(e['name'] for e in entries)}")
        click.echo()


@modules.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def order(ctx: click.Context, names: tuple[str, ...], as_json: bool) -> None:
    """Show the installation order for a set of modules."""
    from flowstate.core.services.resolver import DependencyResolver

    registry = _open_registry(ctx)
    ordered = DependencyResolver(registry).get_installation_order(names)

    if as_json:
        click.echo(json.dumps({"order": ordered}, indent=2))
        return

    for i, name in enumerate(ordered, 1):
        click.echo(f"   {i}. {name}")


@modules.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def stats(ctx: click.Context, as_json: bool) -> None:
    """Show registry statistics."""
    registry = _open_registry(ctx)
    data = registry.get_statistics()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"📊 {data['total_modules']} modules", fg="cyan", bold=True)
    for label, key in (("By category", "by_category"), ("By type", "by_type"), ("By major version", "by_version")):
        click.secho(f"   {label}:", fg="white", bold=True)
        for k, v in data[key].items():
            click.echo(f"     {k:<22} {v}")
    click.echo(f"   With requirements:   {data['with_requirements']}")
    click.echo(f"   With implementation: {data['with_implementation']}")
    click.echo(f"   Recommended:         {data['recommended']}")
