"""Formula language for FormulaForge.

This module provides:
- Lexer: Tokenizes formula text
- Parser: Produces an AST and validates formulas without evaluating them
- FunctionRegistry: Registry of built-in functions
- Evaluator: Evaluates an AST against a context under an execution budget
- FormulaService: Cached, JSON-ready entry point used by the API and CLI
"""

from formulaforge.formulas.builtins import register_all_builtins
from formulaforge.formulas.cache import ParseCache
from formulaforge.formulas.errors import (
    ErrorKind,
    ErrorValue,
    EvaluationError,
    FormulaError,
    LexerError,
    ParseError,
    Span,
)
from formulaforge.formulas.evaluator import (
    Context,
    Evaluator,
    ExecutionBudget,
    evaluate,
    evaluate_bool,
)
from formulaforge.formulas.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionParameter,
    FunctionRegistry,
)
from formulaforge.formulas.lexer import Lexer, Token, TokenType, tokenize
from formulaforge.formulas.parser import (
    ASTNode,
    BinaryOp,
    Call,
    FieldAccess,
    If,
    Index,
    ListLiteral,
    Literal,
    Parser,
    RecordLiteral,
    UnaryOp,
    ValidationResult,
    VarRef,
    parse,
    validate,
)
from formulaforge.formulas.service import FormulaService, error_payload

__all__ = [
    # Errors
    "ErrorKind",
    "ErrorValue",
    "EvaluationError",
    "FormulaError",
    "LexerError",
    "ParseError",
    "Span",
    # Evaluator
    "Context",
    "Evaluator",
    "ExecutionBudget",
    "evaluate",
    "evaluate_bool",
    # Functions
    "FunctionCategory",
    "FunctionDefinition",
    "FunctionParameter",
    "FunctionRegistry",
    "register_all_builtins",
    # Lexer
    "Lexer",
    "Token",
    "TokenType",
    "tokenize",
    # Parser
    "ASTNode",
    "BinaryOp",
    "Call",
    "FieldAccess",
    "If",
    "Index",
    "ListLiteral",
    "Literal",
    "Parser",
    "RecordLiteral",
    "UnaryOp",
    "ValidationResult",
    "VarRef",
    "parse",
    "validate",
    # Service
    "FormulaService",
    "ParseCache",
    "error_payload",
]
