"""Engine settings from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from formulaforge.formulas.evaluator import (
    DEFAULT_MAX_MILLIS,
    DEFAULT_MAX_NODES,
    ExecutionBudget,
)

DEFAULT_CACHE_SIZE = 4096


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class EngineSettings:
    """Runtime settings for the formula engine and its hosts.

    Attributes:
        max_nodes: Execution budget, AST node visits per evaluation
        max_millis: Execution budget, wall-clock milliseconds per evaluation
        cache_size: Parse cache capacity (0 = unbounded)
        metadata_path: Directory holding rules/, tables/ and functions.yaml
        port: Development server port
        log_level: Logging level name for the API process
    """

    max_nodes: int = DEFAULT_MAX_NODES
    max_millis: int = DEFAULT_MAX_MILLIS
    cache_size: int = DEFAULT_CACHE_SIZE
    metadata_path: Path = Path("metadata")
    port: int = 8000
    log_level: str = "info"

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> EngineSettings:
        """Create settings from environment variables.

        FORMULAFORGE_METADATA_PATH defaults to {base_path}/metadata.
        """
        metadata = os.environ.get("FORMULAFORGE_METADATA_PATH")
        if metadata:
            metadata_path = Path(metadata)
        elif base_path:
            metadata_path = base_path / "metadata"
        else:
            metadata_path = Path("metadata")

        settings = cls(
            max_nodes=_int_env("FORMULAFORGE_MAX_NODES", DEFAULT_MAX_NODES),
            max_millis=_int_env("FORMULAFORGE_MAX_MILLIS", DEFAULT_MAX_MILLIS),
            cache_size=_int_env("FORMULAFORGE_CACHE_SIZE", DEFAULT_CACHE_SIZE),
            metadata_path=metadata_path,
            port=_int_env("FORMULAFORGE_PORT", 8000),
            log_level=os.environ.get("FORMULAFORGE_LOG_LEVEL", "info").lower(),
        )
        if settings.max_nodes <= 0 or settings.max_millis <= 0:
            raise ValueError("Execution budget limits must be positive")
        if settings.cache_size < 0:
            raise ValueError("FORMULAFORGE_CACHE_SIZE must not be negative")
        return settings

    @property
    def budget(self) -> ExecutionBudget:
        return ExecutionBudget(max_nodes=self.max_nodes, max_millis=self.max_millis)


def resolve_base_path(start: Path | None = None) -> Path:
    """Project root: the parent of ``backend/`` when run from inside it."""
    base = start or Path.cwd()
    if base.name == "backend":
        base = base.parent
    return base
