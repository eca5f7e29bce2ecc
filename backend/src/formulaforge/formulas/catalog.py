"""Function catalog loaded from metadata/functions.yaml.

Persisted ``function_library`` rows are a display catalog only: they may
refine the description, examples or display name of a native function, but
never provide behaviour. A row naming a function without a native
implementation is rejected.

Example file:

    functions:
      - name: Round
        category: math
        description: Rounds to the given number of decimals
        examples:
          - Round(total, 2)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from formulaforge.formulas.errors import CatalogError
from formulaforge.formulas.functions import FunctionRegistry

logger = logging.getLogger(__name__)


@dataclass
class CatalogEntry:
    """One persisted function_library row."""

    name: str
    category: str | None = None
    display_name: str | None = None
    description: str | None = None
    examples: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Registry listing enriched with the catalog text."""
        func_def = FunctionRegistry.get(self.name)
        data = func_def.to_dict()
        data["displayName"] = self.display_name or func_def.name
        if self.description:
            data["description"] = self.description
        if self.examples:
            data["examples"] = self.examples
        return data


class FunctionCatalog:
    """Loads and checks the function catalog against the live registry."""

    def __init__(self, catalog_path: Path):
        self.catalog_path = catalog_path
        self.entries: dict[str, CatalogEntry] = {}

    def load(self) -> None:
        """Load catalog rows.

        Raises:
            CatalogError: If a row is malformed or names an unknown function
        """
        if not self.catalog_path.exists():
            logger.info("No function catalog at %s", self.catalog_path)
            return

        with open(self.catalog_path) as f:
            data = yaml.safe_load(f) or {}

        rows = data.get("functions", [])
        if not isinstance(rows, list):
            raise CatalogError(f"{self.catalog_path}: 'functions' must be a list")

        for row in rows:
            entry = self._parse_entry(row)
            self.entries[FunctionRegistry.normalize(entry.name)] = entry

        logger.info("Loaded %d function catalog entries", len(self.entries))

    def _parse_entry(self, row: Any) -> CatalogEntry:
        if not isinstance(row, dict) or not row.get("name"):
            raise CatalogError(f"{self.catalog_path}: catalog row without a name: {row!r}")

        name = row["name"]
        func_def = FunctionRegistry.lookup(name)
        if func_def is None:
            raise CatalogError(
                f"Catalog function '{name}' has no native implementation; "
                "catalog rows cannot define new functions"
            )

        category = row.get("category")
        if category and category != func_def.category.value:
            logger.warning(
                "Catalog lists %s under '%s' but it is a '%s' function",
                name,
                category,
                func_def.category.value,
            )
        if row.get("implementation"):
            logger.warning("Ignoring stored implementation for catalog function %s", name)

        return CatalogEntry(
            name=func_def.name,
            category=category,
            display_name=row.get("displayName"),
            description=row.get("description"),
            examples=list(row.get("examples", [])),
        )

    def get(self, name: str) -> CatalogEntry | None:
        return self.entries.get(FunctionRegistry.normalize(name))

    def describe(self, name: str) -> dict[str, Any]:
        """Listing row for a registered function, enriched when catalogued."""
        entry = self.get(name) or CatalogEntry(name=FunctionRegistry.get(name).name)
        return entry.to_dict()
