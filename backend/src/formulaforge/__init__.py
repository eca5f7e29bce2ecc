"""FormulaForge - sandboxed formula engine with business rules and decision tables."""

__version__ = "0.1.0"
