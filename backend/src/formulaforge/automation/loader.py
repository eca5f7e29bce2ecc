"""Load business rules and decision tables from YAML files.

Layout under the metadata directory:

    rules/*.yaml     one ``rule:`` mapping or a ``rules:`` list per file
    tables/*.yaml    one ``table:`` mapping per file
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from formulaforge.automation.types import BusinessRule, DecisionTable

logger = logging.getLogger(__name__)


class AutomationLoader:
    """Loads rule and table definitions from metadata/rules and metadata/tables."""

    def __init__(self, metadata_path: Path):
        self.metadata_path = metadata_path
        self.rules: dict[str, BusinessRule] = {}
        self.tables: dict[str, DecisionTable] = {}

    def load_all(self) -> None:
        """Load every rule and table file.

        Raises:
            ValueError: On a malformed definition or a duplicate id
        """
        for data, yaml_file in self._documents("rules"):
            entries = data.get("rules") or ([data["rule"]] if "rule" in data else [])
            for entry in entries:
                rule = self._build(BusinessRule.from_dict, entry, yaml_file)
                self._add(self.rules, rule.id, rule, yaml_file)

        for data, yaml_file in self._documents("tables"):
            if "table" in data:
                table = self._build(DecisionTable.from_dict, data["table"], yaml_file)
                self._add(self.tables, table.id, table, yaml_file)

        logger.info(
            "Loaded %d business rules and %d decision tables from %s",
            len(self.rules),
            len(self.tables),
            self.metadata_path,
        )

    def _documents(self, subdir: str):
        directory = self.metadata_path / subdir
        if not directory.exists():
            return
        for yaml_file in sorted(directory.glob("*.yaml")):
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
            if data:
                yield data, yaml_file

    @staticmethod
    def _build(factory, entry: Any, yaml_file: Path):
        try:
            return factory(entry)
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"{yaml_file.name}: {e}") from e

    @staticmethod
    def _add(registry: dict, key: str, value: Any, yaml_file: Path) -> None:
        if key in registry:
            raise ValueError(f"{yaml_file.name}: duplicate id '{key}'")
        registry[key] = value

    def get_rule(self, rule_id: str) -> BusinessRule | None:
        return self.rules.get(rule_id)

    def list_rules(self) -> list[BusinessRule]:
        return list(self.rules.values())

    def get_table(self, table_id: str) -> DecisionTable | None:
        return self.tables.get(table_id)

    def list_tables(self) -> list[DecisionTable]:
        return list(self.tables.values())
