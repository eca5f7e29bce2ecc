"""Persistence layer - saved queries and their execution history."""

from formulaforge.persistence.config import DatabaseConfig
from formulaforge.persistence.store import QueryStore
from formulaforge.persistence.types import ExecutionStatus, QueryExecution, SavedQuery

__all__ = ["DatabaseConfig", "QueryStore", "SavedQuery", "QueryExecution", "ExecutionStatus"]
