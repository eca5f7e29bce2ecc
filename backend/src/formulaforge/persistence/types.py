"""Saved query types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class SavedQuery:
    """A stored formula with the context it is evaluated against."""

    id: str
    name: str
    formula: str
    description: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    collections: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    version: int = 1
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to API response dict."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "formula": self.formula,
            "context": self.context,
            "collections": self.collections,
            "variables": self.variables,
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class QueryExecution:
    """One recorded run of a saved query."""

    id: str
    query_id: str
    status: ExecutionStatus
    execution_time_ms: float
    result: Any = None
    error_message: str | None = None
    executed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queryId": self.query_id,
            "status": self.status.value,
            "executionTimeMs": self.execution_time_ms,
            "result": self.result,
            "errorMessage": self.error_message,
            "executedAt": self.executed_at,
        }
