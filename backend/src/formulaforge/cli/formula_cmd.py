"""Formula CLI commands: eval, validate and functions."""

import json
from typing import Any

import click

from formulaforge.cli.metadata_cmd import _resolve_paths
from formulaforge.formulas import FormulaError, FormulaService
from formulaforge.formulas.catalog import FunctionCatalog
from formulaforge.metadata.validator import CATALOG_FILE


def parse_json_option(name: str, raw: str | None) -> Any:
    """Decode a JSON command-line option; exits with status 1 when malformed."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        click.echo(click.style(f"Error: --{name} is not valid JSON: {e}", fg="red"), err=True)
        raise SystemExit(1)


def report_error(error: FormulaError) -> None:
    """Print an engine error and exit with status 1."""
    location = f" (position {error.position})" if error.position is not None else ""
    click.echo(
        click.style(f"Error [{error.kind.value}]: {error.message}{location}", fg="red"),
        err=True,
    )
    raise SystemExit(1)


@click.command("eval")
@click.argument("formula")
@click.option("--values", "values_json", default=None, help="Input record as JSON.")
@click.option("--collections", "collections_json", default=None, help="Named collections as JSON.")
@click.option("--variables", "variables_json", default=None, help="Variables as JSON.")
@click.option("--show-type", is_flag=True, default=False, help="Print the result kind as well.")
def eval_cmd(formula, values_json, collections_json, variables_json, show_type):
    """Evaluate FORMULA and print the result as JSON."""
    values = parse_json_option("values", values_json)
    collections = parse_json_option("collections", collections_json)
    variables = parse_json_option("variables", variables_json)

    for name, value in (("values", values), ("collections", collections), ("variables", variables)):
        if value is not None and not isinstance(value, dict):
            click.echo(click.style(f"Error: --{name} must be a JSON object", fg="red"), err=True)
            raise SystemExit(1)

    try:
        data = FormulaService().evaluate(formula, values, collections, variables)
    except FormulaError as e:
        report_error(e)

    click.echo(json.dumps(data["result"]))
    if show_type:
        click.echo(f"type: {data['type']}")


@click.command()
@click.argument("formula")
def validate(formula):
    """Check that FORMULA parses, without evaluating it."""
    result = FormulaService().validate(formula)
    if not result.valid:
        report_error(result.error)
    click.echo(click.style("Formula is valid.", fg="green"))


@click.command()
@click.option("--category", default=None, help="Only list functions of this category.")
def functions(category):
    """List the registered formula functions."""
    _, metadata_path = _resolve_paths()
    catalog = FunctionCatalog(metadata_path / CATALOG_FILE)
    try:
        catalog.load()
        listing = FormulaService(catalog=catalog).list_functions(category)
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    current = None
    for row in listing["functions"]:
        if row["category"] != current:
            current = row["category"]
            click.echo(click.style(f"\n{current}", bold=True))
        params = ", ".join(
            p["name"] + ("..." if p["variadic"] else "") + ("" if p["required"] else "?")
            for p in row["parameters"]
        )
        click.echo(f"  {row['name']}({params})  {row.get('description') or ''}".rstrip())

    click.echo(f"\n{listing['count']} function(s)")
