"""FormulaForge CLI entry point."""

import logging

import click

from formulaforge.formulas import register_all_builtins


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool):
    """FormulaForge: formula engine, business rules and decision tables."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    register_all_builtins()


# Register subcommands
from formulaforge.cli.automation_cmd import rules, tables  # noqa: E402
from formulaforge.cli.formula_cmd import eval_cmd, functions, validate  # noqa: E402
from formulaforge.cli.metadata_cmd import metadata  # noqa: E402

cli.add_command(eval_cmd)
cli.add_command(validate)
cli.add_command(functions)
cli.add_command(metadata)
cli.add_command(rules)
cli.add_command(tables)
