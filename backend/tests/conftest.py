"""Shared fixtures for FormulaForge tests."""

from pathlib import Path

import pytest

from formulaforge.formulas import FunctionRegistry, register_all_builtins

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture(autouse=True)
def setup_functions():
    """Register built-in functions before each test."""
    FunctionRegistry.clear()
    register_all_builtins()
    yield
    FunctionRegistry.clear()


@pytest.fixture
def metadata_path() -> Path:
    """The sample metadata shipped with the repository."""
    return PROJECT_ROOT / "metadata"
