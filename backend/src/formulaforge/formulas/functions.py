"""Function registry for the formula language.

Functions are callable from formulas (e.g., ``Len(name) > 0``, ``Now()``).
Each function is registered with metadata for documentation, arity checking
and the function listing endpoint.

Lookup is case-insensitive: names are normalized once at registration and
the parser stores the normalized key on every ``Call`` node.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from formulaforge.formulas.errors import DuplicateFunctionError


class FunctionCategory(Enum):
    """Categories for organizing functions in documentation."""

    DATA = "data"
    TEXT = "text"
    LOGIC = "logic"
    MATH = "math"
    DATETIME = "datetime"
    CONVERSION = "conversion"
    COLLECTION = "collection"
    VALIDATION = "validation"
    OTHER = "other"


@dataclass
class FunctionParameter:
    """Definition of a function parameter.

    Attributes:
        name: Parameter name
        type: Expected kind ("number", "text", "date", "list", "record", "expression", "any", ...)
        description: Human-readable description
        required: Whether this parameter is required
        default: Default value if not provided
        variadic: If True, this parameter accepts any number of values
    """

    name: str
    type: str
    description: str
    required: bool = True
    default: Any = None
    variadic: bool = False


@dataclass
class FunctionDefinition:
    """Complete definition of a formula function.

    Attributes:
        name: Function name as displayed
        description: Human-readable description
        category: Category for documentation organization
        parameters: List of parameter definitions
        return_type: Kind of the return value
        implementation: The Python callable
        examples: Example formulas using this function
        pure: Deterministic and free of side effects
        lazy: Receives ``(evaluator, argument_nodes, context)`` with the
            arguments unevaluated (short-circuit and iteration forms)
        uses_context: Receives the evaluation context before its arguments
        propagates_errors: An Error argument is returned without calling
            the implementation
    """

    name: str
    description: str
    category: FunctionCategory
    parameters: list[FunctionParameter]
    return_type: str
    implementation: Callable[..., Any]
    examples: list[str] = field(default_factory=list)
    pure: bool = True
    lazy: bool = False
    uses_context: bool = False
    propagates_errors: bool = True

    @property
    def min_args(self) -> int:
        return sum(1 for p in self.parameters if p.required)

    @property
    def max_args(self) -> int | None:
        """Maximum argument count, or None when unbounded."""
        if any(p.variadic for p in self.parameters):
            return None
        return len(self.parameters)

    def arity_error(self, count: int) -> str | None:
        """Describe an arity mismatch for ``count`` arguments, or None if valid."""
        low, high = self.min_args, self.max_args
        if low <= count and (high is None or count <= high):
            return None
        if high is None:
            expected = f"at least {low}"
        elif low == high:
            expected = f"exactly {low}"
        else:
            expected = f"{low} to {high}"
        plural = "" if count == 1 else "s"
        return f"{self.name} expects {expected} argument(s), got {count} argument{plural}"

    def to_dict(self) -> dict[str, Any]:
        """Export for the function listing endpoint."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "parameters": [
                {
                    "name": p.name,
                    "type": p.type,
                    "description": p.description,
                    "required": p.required,
                    "variadic": p.variadic,
                }
                for p in self.parameters
            ],
            "arity": {"min": self.min_args, "max": self.max_args},
            "returnType": self.return_type,
            "pure": self.pure,
            "examples": self.examples,
        }


class FunctionRegistry:
    """Registry for formula functions.

    Functions are registered with full metadata including:
    - Parameter definitions (and therefore arity)
    - Documentation
    - Evaluation style (eager, lazy, context-aware)
    - The actual implementation

    The registry is populated once at startup and only read afterwards.

    Example:
        FunctionRegistry.register(FunctionDefinition(
            name="Len",
            description="Returns the length of a text",
            ...
        ))

        func = FunctionRegistry.get("len")
        result = func.implementation("hello")  # Returns 5
    """

    _functions: dict[str, FunctionDefinition] = {}

    @staticmethod
    def normalize(name: str) -> str:
        """Normalized lookup key for a function name."""
        return name.casefold()

    @classmethod
    def register(cls, func_def: FunctionDefinition) -> None:
        """Register a function definition.

        Re-registering the same definition object is a no-op.

        Raises:
            DuplicateFunctionError: If a different function already uses the name
        """
        key = cls.normalize(func_def.name)
        existing = cls._functions.get(key)
        if existing is func_def:
            return
        if existing is not None:
            raise DuplicateFunctionError(
                f"Function '{func_def.name}' conflicts with registered function "
                f"'{existing.name}'"
            )
        cls._functions[key] = func_def

    @classmethod
    def get(cls, name: str) -> FunctionDefinition:
        """Get a function definition by name (any case).

        Raises:
            ValueError: If function is not registered
        """
        func_def = cls.lookup(name)
        if func_def is None:
            raise ValueError(f"Unknown function: {name}")
        return func_def

    @classmethod
    def lookup(cls, name: str) -> FunctionDefinition | None:
        """Get a function definition by name, or None."""
        return cls._functions.get(cls.normalize(name))

    @classmethod
    def lookup_key(cls, key: str) -> FunctionDefinition | None:
        """Get a function definition by an already-normalized key."""
        return cls._functions.get(key)

    @classmethod
    def is_registered(cls, name: str) -> bool:
        """Check if a function is registered."""
        return cls.normalize(name) in cls._functions

    @classmethod
    def list_all(cls) -> list[FunctionDefinition]:
        """List all registered functions."""
        return list(cls._functions.values())

    @classmethod
    def list_by_category(cls, category: FunctionCategory) -> list[FunctionDefinition]:
        """List functions in a specific category."""
        return [f for f in cls._functions.values() if f.category == category]

    @classmethod
    def export_documentation(cls) -> dict[str, Any]:
        """Export full registry for documentation.

        Returns:
            Dict with all function definitions organized by category
        """
        by_category: dict[str, list[dict[str, Any]]] = {}
        for func_def in cls._functions.values():
            by_category.setdefault(func_def.category.value, []).append(func_def.to_dict())

        return {
            "functions": {f.name: f.to_dict() for f in cls._functions.values()},
            "byCategory": by_category,
        }

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._functions.clear()
