"""
metadata/validator.py - validation for FormulaForge YAML metadata files.

Two passes per file:

1. JSON Schema validation of the document shape (rules, tables, function
   catalog).
2. Formula validation: every condition, action and output cell must parse.
   Calls to functions missing from the registry are warnings (errors with
   ``strict``), since the registry may be extended at startup.

Usage:
    from formulaforge.metadata.validator import validate_metadata_dir

    issues = validate_metadata_dir(Path("metadata"))
    for issue in issues:
        print(issue)
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, fields, is_dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from formulaforge.automation.decision_tables import condition_formula
from formulaforge.formulas.errors import ParseError
from formulaforge.formulas.functions import FunctionRegistry
from formulaforge.formulas.parser import ASTNode, Call, parse

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"

# Map subdirectory name → schema filename
_SUBDIR_SCHEMA: dict[str, str] = {
    "rules": "business_rule.schema.json",
    "tables": "decision_table.schema.json",
}

CATALOG_FILE = "functions.yaml"
CATALOG_SCHEMA = "function_catalog.schema.json"


@dataclass
class ValidationIssue:
    """A single validation finding for a metadata YAML file."""

    file: Path
    message: str
    path: str = ""          # path within the document, e.g. "table/rules[0]/conditions/amount"
    severity: str = "error" # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{loc}: {self.message}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_schema(name: str) -> dict[str, Any]:
    schema_path = _SCHEMAS_DIR / name
    with schema_path.open() as fh:
        return json.load(fh)


def _load_registry() -> Registry:
    """Build a jsonschema Registry containing all FormulaForge schemas."""
    schema_names = [
        "_defs.schema.json",
        "business_rule.schema.json",
        "decision_table.schema.json",
        "function_catalog.schema.json",
    ]
    resources = []
    for name in schema_names:
        schema = _load_schema(name)
        resources.append(
            (schema["$id"], Resource(contents=schema, specification=DRAFT202012))
        )
    return Registry().with_resources(resources)


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


def _calls(root: Any) -> Iterator[Call]:
    """Every Call node in an AST."""
    stack = [root]
    while stack:
        node = stack.pop()
        if isinstance(node, Call):
            yield node
        if isinstance(node, ASTNode) and is_dataclass(node):
            stack.extend(reversed([getattr(node, f.name) for f in fields(node)]))
        elif isinstance(node, tuple):
            stack.extend(reversed(node))


def _formulas(doc: dict[str, Any]) -> Iterator[tuple[str, str]]:
    """Yield ``(path, formula)`` for every formula cell in a rules or table document."""
    if "table" in doc:
        table = doc["table"]
        for i, rule in enumerate(table.get("rules") or []):
            for name, cell in (rule.get("conditions") or {}).items():
                source = condition_formula(name, None if cell is None else str(cell))
                if source is not None:
                    yield f"table/rules[{i}]/conditions/{name}", source
            for name, cell in (rule.get("outputs") or {}).items():
                if cell is not None:
                    yield f"table/rules[{i}]/outputs/{name}", str(cell)
        return

    rules = doc.get("rules") or ([doc["rule"]] if "rule" in doc else [])
    prefix = "rules" if "rules" in doc else "rule"
    for i, rule in enumerate(rules):
        base = f"{prefix}[{i}]" if prefix == "rules" else prefix
        for key in ("condition", "action"):
            if rule.get(key) is not None:
                yield f"{base}/{key}", str(rule[key])


def check_formulas(
    yaml_path: Path, doc: dict[str, Any], *, strict: bool = False
) -> list[ValidationIssue]:
    """Parse every formula in a document and report syntax errors and unknown functions."""
    issues: list[ValidationIssue] = []
    for path, source in _formulas(doc):
        try:
            ast = parse(source)
        except ParseError as exc:
            issues.append(
                ValidationIssue(
                    file=yaml_path,
                    message=f"Formula {source!r}: {exc.message} (position {exc.position})",
                    path=path,
                )
            )
            continue

        for call in _calls(ast):
            if not FunctionRegistry.is_registered(call.name):
                issues.append(
                    ValidationIssue(
                        file=yaml_path,
                        message=f"Formula {source!r} calls unknown function '{call.name}'",
                        path=path,
                        severity="error" if strict else "warning",
                    )
                )
    return issues


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_yaml_file(
    yaml_path: Path,
    schema_name: str,
    *,
    registry: Registry | None = None,
    strict: bool = False,
) -> list[ValidationIssue]:
    """
    Validate a single YAML file against the named schema, then its formulas.

    Args:
        yaml_path:   Path to the YAML file to validate.
        schema_name: Filename of the schema (e.g. ``"decision_table.schema.json"``).
        registry:    Pre-built schema registry.  Built automatically if omitted.
        strict:      Report unknown functions as errors instead of warnings.

    Returns:
        A list of :class:`ValidationIssue` objects (empty on success).
    """
    issues: list[ValidationIssue] = []

    # 1. Parse YAML
    try:
        with yaml_path.open() as fh:
            doc = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        return [ValidationIssue(file=yaml_path, message=f"YAML parse error: {exc}")]

    if doc is None:
        return [
            ValidationIssue(file=yaml_path, message="File is empty or contains only whitespace")
        ]

    # 2. Load schema + registry
    if registry is None:
        registry = _load_registry()

    schema = _load_schema(schema_name)
    validator = Draft202012Validator(schema, registry=registry)

    # 3. Collect validation errors
    for error in sorted(validator.iter_errors(doc), key=_json_path):
        issues.append(
            ValidationIssue(
                file=yaml_path,
                message=error.message,
                path=_json_path(error),
            )
        )

    # 4. Formulas, only once the shape is known to be right
    if not issues and schema_name != CATALOG_SCHEMA:
        issues.extend(check_formulas(yaml_path, doc, strict=strict))

    return issues


def validate_metadata_dir(
    metadata_dir: Path,
    *,
    strict: bool = False,
) -> list[ValidationIssue]:
    """
    Validate all YAML files under *metadata_dir*.

    Walks ``rules/`` and ``tables/`` and the ``functions.yaml`` catalog,
    validating each file against the appropriate JSON Schema.

    Args:
        metadata_dir: Root metadata directory.
        strict:       If ``True``, warnings are escalated to errors.

    Returns:
        A flat list of :class:`ValidationIssue` objects across all files.
        Empty list means all files are valid.
    """
    if not metadata_dir.is_dir():
        return [
            ValidationIssue(
                file=metadata_dir,
                message=f"Metadata directory does not exist: {metadata_dir}",
            )
        ]

    # Build registry once - shared across all file validations
    try:
        registry = _load_registry()
    except (FileNotFoundError, json.JSONDecodeError) as exc:
        return [
            ValidationIssue(
                file=_SCHEMAS_DIR,
                message=f"Failed to load JSON Schema files: {exc}",
            )
        ]

    all_issues: list[ValidationIssue] = []

    for subdir, schema_name in _SUBDIR_SCHEMA.items():
        target = metadata_dir / subdir
        if not target.is_dir():
            continue
        for yaml_file in sorted(target.glob("*.yaml")):
            all_issues.extend(
                validate_yaml_file(yaml_file, schema_name, registry=registry, strict=strict)
            )

    catalog = metadata_dir / CATALOG_FILE
    if catalog.exists():
        all_issues.extend(validate_yaml_file(catalog, CATALOG_SCHEMA, registry=registry))

    if all_issues:
        logger.warning("Metadata validation found %d issue(s)", len(all_issues))
    return all_issues
