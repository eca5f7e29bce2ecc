"""Metadata CLI commands."""

from pathlib import Path

import click

from formulaforge.automation import AutomationLoader
from formulaforge.config import EngineSettings, resolve_base_path
from formulaforge.formulas.catalog import FunctionCatalog
from formulaforge.metadata.validator import (
    _SUBDIR_SCHEMA,
    CATALOG_FILE,
    CATALOG_SCHEMA,
    validate_metadata_dir,
    validate_yaml_file,
)


def _resolve_paths() -> tuple[Path, Path]:
    """Resolve the project base and metadata paths from cwd and environment."""
    base_path = resolve_base_path()
    return base_path, EngineSettings.from_env(base_path).metadata_path


@click.group()
def metadata():
    """Metadata commands."""
    pass


@metadata.command()
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
@click.option(
    "--path",
    "target_path",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="Validate a single YAML file instead of the whole metadata directory.",
)
def validate(strict: bool, target_path: Path | None):
    """Validate rule, table and catalog YAML files."""
    _, metadata_path = _resolve_paths()

    # ── Schema and formula validation ───────────────────────────────────────
    if target_path is not None:
        # Single-file mode: infer schema from parent directory name
        if target_path.name == CATALOG_FILE:
            schema_name = CATALOG_SCHEMA
        else:
            schema_name = _SUBDIR_SCHEMA.get(target_path.parent.name)
        if schema_name is None:
            click.echo(
                f"Error: cannot determine schema for directory '{target_path.parent.name}'. "
                f"Expected one of: {', '.join(_SUBDIR_SCHEMA)}, or {CATALOG_FILE}.",
                err=True,
            )
            raise SystemExit(1)
        issues = validate_yaml_file(target_path, schema_name, strict=strict)
    else:
        if not metadata_path.exists():
            click.echo(f"Error: Metadata directory not found at {metadata_path}", err=True)
            raise SystemExit(1)
        issues = validate_metadata_dir(metadata_path, strict=strict)

    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]

    for issue in issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if errors:
        click.echo(
            click.style(
                f"\n{len(errors)} error(s) found"
                + (f", {len(warnings)} warning(s)" if warnings else ""),
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    if warnings:
        click.echo(
            click.style(f"{len(warnings)} warning(s) found.", fg="yellow")
        )

    # ── Semantic (loader) validation ─────────────────────────────────────────
    # Only runs when validating the full directory (target_path is None)
    if target_path is None:
        try:
            loader = AutomationLoader(metadata_path)
            loader.load_all()
            catalog = FunctionCatalog(metadata_path / CATALOG_FILE)
            catalog.load()
        except ValueError as e:
            click.echo(click.style(f"\nSemantic validation failed: {e}", fg="red"), err=True)
            raise SystemExit(1)

        rules = loader.list_rules()
        tables = loader.list_tables()
        click.echo(f"\nLoaded {len(rules)} business rules:")
        for rule in sorted(rules, key=lambda r: r.id):
            click.echo(f"  ✓ {rule.id} ({rule.rule_type.value}, priority {rule.priority})")
        click.echo(f"Loaded {len(tables)} decision tables:")
        for table in sorted(tables, key=lambda t: t.id):
            click.echo(
                f"  ✓ {table.id} ({len(table.rules)} rules, hit policy: {table.hit_policy.value})"
            )
        click.echo(f"Loaded {len(catalog.entries)} function catalog entries")

    click.echo(click.style("\nAll metadata is valid.", fg="green", bold=True))
