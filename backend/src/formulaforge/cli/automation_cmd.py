"""Business rule and decision table CLI commands."""

import json

import click

from formulaforge.automation import AutomationLoader, DecisionTableExecutor, RuleExecutor
from formulaforge.cli.formula_cmd import parse_json_option, report_error
from formulaforge.cli.metadata_cmd import _resolve_paths
from formulaforge.formulas import FormulaError


def _load() -> AutomationLoader:
    _, metadata_path = _resolve_paths()
    loader = AutomationLoader(metadata_path)
    try:
        loader.load_all()
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    return loader


def _input(raw: str | None) -> dict:
    data = parse_json_option("input", raw) or {}
    if not isinstance(data, dict):
        click.echo(click.style("Error: --input must be a JSON object", fg="red"), err=True)
        raise SystemExit(1)
    return data


@click.group()
def rules():
    """Business rule commands."""
    pass


@rules.command("list")
def list_rules():
    """List loaded business rules."""
    for rule in sorted(_load().list_rules(), key=lambda r: (-r.priority, r.id)):
        state = "" if rule.enabled else " [disabled]"
        click.echo(f"{rule.id}  priority {rule.priority}  {rule.condition}{state}")


@rules.command("run")
@click.argument("rule_id")
@click.option("--input", "input_json", default=None, help="Input record as JSON.")
def run_rule(rule_id, input_json):
    """Execute business rule RULE_ID against an input record."""
    rule = _load().get_rule(rule_id)
    if rule is None:
        click.echo(click.style(f"Error: Business rule '{rule_id}' not found", fg="red"), err=True)
        raise SystemExit(1)

    result = RuleExecutor().execute(rule, _input(input_json))
    if result.error is not None:
        report_error(result.error)
    click.echo(json.dumps(result.to_dict(), indent=2))


@click.group()
def tables():
    """Decision table commands."""
    pass


@tables.command("list")
def list_tables():
    """List loaded decision tables."""
    for table in sorted(_load().list_tables(), key=lambda t: t.id):
        click.echo(
            f"{table.id}  {table.hit_policy.value}  {len(table.rules)} rules  {table.status.value}"
        )


@tables.command("run")
@click.argument("table_id")
@click.option("--input", "input_json", default=None, help="Input record as JSON.")
def run_table(table_id, input_json):
    """Execute decision table TABLE_ID against an input record."""
    table = _load().get_table(table_id)
    if table is None:
        click.echo(click.style(f"Error: Decision table '{table_id}' not found", fg="red"), err=True)
        raise SystemExit(1)

    try:
        result = DecisionTableExecutor().execute(table, _input(input_json))
    except FormulaError as e:
        report_error(e)
    click.echo(json.dumps(result.to_dict(), indent=2))
