"""Tests for the FormulaForge formula language.

Tests cover:
- Lexer: Tokenization of formula strings
- Parser: AST generation, precedence and validation
- Evaluator: Evaluation against values, collections and variables
- Execution budget and error propagation
"""

import pytest
from datetime import datetime, timezone

from formulaforge.formulas import (
    BinaryOp,
    Call,
    Context,
    ErrorKind,
    ErrorValue,
    EvaluationError,
    Evaluator,
    ExecutionBudget,
    FieldAccess,
    If,
    Index,
    Lexer,
    LexerError,
    ListLiteral,
    Literal,
    ParseError,
    Parser,
    RecordLiteral,
    TokenType,
    UnaryOp,
    VarRef,
    evaluate,
    evaluate_bool,
    parse,
    tokenize,
    validate,
)
from formulaforge.formulas.values import render_literal


# =============================================================================
# Lexer Tests
# =============================================================================


class TestLexer:
    """Tests for the formula lexer."""

    def test_tokenize_numbers(self):
        tokens = Lexer("42 3.14 1e3 2.5E-2").tokenize()

        assert [t.type for t in tokens[:-1]] == [TokenType.NUMBER] * 4
        assert [t.value for t in tokens[:-1]] == [42.0, 3.14, 1000.0, 0.025]
        assert tokens[-1].type == TokenType.EOF

    def test_sign_is_not_part_of_number(self):
        tokens = tokenize("-5")

        assert tokens[0].type == TokenType.MINUS
        assert tokens[1].type == TokenType.NUMBER
        assert tokens[1].value == 5.0

    def test_tokenize_strings(self):
        tokens = tokenize('"hello" \'world\'')

        assert tokens[0].type == TokenType.STRING
        assert tokens[0].value == "hello"
        assert tokens[1].type == TokenType.STRING
        assert tokens[1].value == "world"

    def test_string_escapes(self):
        tokens = tokenize(r'"a\"b\\c\nd\teA"')

        assert tokens[0].value == 'a"b\\c\nd\teA'

    def test_keywords_are_case_insensitive(self):
        tokens = tokenize("TRUE false Null AND or NOT if Then ELSE")
        types = [t.type for t in tokens[:-1]]

        assert types == [
            TokenType.BOOLEAN,
            TokenType.BOOLEAN,
            TokenType.NULL,
            TokenType.AND,
            TokenType.OR,
            TokenType.NOT,
            TokenType.IF,
            TokenType.THEN,
            TokenType.ELSE,
        ]
        assert tokens[0].value is True
        assert tokens[1].value is False
        assert tokens[2].value is None

    def test_multi_char_operators_before_prefixes(self):
        tokens = tokenize("a != b <> c <= d >= e && f || g == h")
        ops = [t.type for t in tokens if t.type != TokenType.IDENTIFIER][:-1]

        assert ops == [
            TokenType.NEQ,
            TokenType.NEQ,
            TokenType.LTE,
            TokenType.GTE,
            TokenType.AND,
            TokenType.OR,
            TokenType.EQ,
        ]

    def test_comments_are_skipped(self):
        tokens = tokenize("1 // line comment\n + /* block */ 2")

        assert [t.type for t in tokens] == [
            TokenType.NUMBER,
            TokenType.PLUS,
            TokenType.NUMBER,
            TokenType.EOF,
        ]

    def test_positions(self):
        tokens = tokenize("ab + 12")

        assert (tokens[0].position, tokens[0].end) == (0, 2)
        assert (tokens[1].position, tokens[1].end) == (3, 4)
        assert (tokens[2].position, tokens[2].end) == (5, 7)

    def test_positions_are_character_offsets(self):
        tokens = tokenize('"été" + x')

        assert (tokens[0].position, tokens[0].end) == (0, 5)
        assert tokens[2].position == 8

    def test_unterminated_string(self):
        with pytest.raises(LexerError) as exc_info:
            tokenize('"abc')
        assert exc_info.value.position == 0
        assert "Unterminated string" in exc_info.value.message

    def test_invalid_escape(self):
        with pytest.raises(LexerError) as exc_info:
            tokenize(r'"a\qb"')
        assert exc_info.value.position == 2

    def test_unexpected_character(self):
        with pytest.raises(LexerError) as exc_info:
            tokenize("1 # 2")
        assert exc_info.value.position == 2


# =============================================================================
# Parser Tests
# =============================================================================


class TestParser:
    """Tests for the formula parser."""

    def test_literals(self):
        assert parse("42") == Literal(42.0)
        assert parse('"x"') == Literal("x")
        assert parse("true") == Literal(True)
        assert parse("null") == Literal(None)

    def test_precedence(self):
        ast = parse("1 + 2 * 3")

        assert ast == BinaryOp("+", Literal(1.0), BinaryOp("*", Literal(2.0), Literal(3.0)))

    def test_left_associative(self):
        ast = parse("10 - 4 - 3")

        assert ast == BinaryOp("-", BinaryOp("-", Literal(10.0), Literal(4.0)), Literal(3.0))

    def test_logical_precedence(self):
        ast = parse("a || b && c")

        assert ast == BinaryOp("||", VarRef("a"), BinaryOp("&&", VarRef("b"), VarRef("c")))

    def test_word_operators(self):
        assert parse("a And b") == BinaryOp("&&", VarRef("a"), VarRef("b"))
        assert parse("a or b") == BinaryOp("||", VarRef("a"), VarRef("b"))
        assert parse("Not a") == UnaryOp("!", VarRef("a"))

    def test_word_operators_as_calls(self):
        ast = parse("And(a, b)")

        assert isinstance(ast, Call)
        assert ast.name == "And"
        assert ast.arguments == (VarRef("a"), VarRef("b"))

    def test_equality_spellings(self):
        assert parse("a = 1") == parse("a == 1")
        assert parse("a != 1") == parse("a <> 1")

    def test_field_access_and_index(self):
        assert parse("customer.name") == FieldAccess(VarRef("customer"), "name")
        assert parse("items.1") == FieldAccess(VarRef("items"), "1")
        assert parse("items[2]") == Index(VarRef("items"), Literal(2.0))

    def test_keyword_if(self):
        ast = parse("if a then 1 else 2")

        assert ast == If(VarRef("a"), Literal(1.0), Literal(2.0))

    def test_list_and_record_literals(self):
        assert parse("[1, 2]") == ListLiteral((Literal(1.0), Literal(2.0)))
        assert parse('{id: 1, "full name": "A"}') == RecordLiteral(
            (("id", Literal(1.0)), ("full name", Literal("A")))
        )

    def test_call_keeps_spelling(self):
        ast = parse('upper("x")')

        assert ast.name == "upper"
        assert ast == Call("upper", (Literal("x"),))

    def test_comparison_chain_is_rejected(self):
        with pytest.raises(ParseError) as exc_info:
            parse("a < b < c")
        assert "cannot be chained" in exc_info.value.message

    def test_arity_checked_at_parse_time(self):
        with pytest.raises(ParseError) as exc_info:
            parse("Upper()")
        assert exc_info.value.kind == ErrorKind.PARSE_ERROR

    def test_unknown_function_is_not_a_parse_error(self):
        ast = parse("NoSuchFunction(1)")

        assert isinstance(ast, Call)

    def test_empty_expression(self):
        with pytest.raises(ParseError):
            parse("   ")

    def test_unbalanced_parenthesis(self):
        with pytest.raises(ParseError) as exc_info:
            parse("(1 + 2")
        assert exc_info.value.position == 6

    def test_lexer_error_becomes_parse_error(self):
        with pytest.raises(ParseError) as exc_info:
            parse('"open')
        assert exc_info.value.kind == ErrorKind.PARSE_ERROR
        assert exc_info.value.position == 0

    def test_deep_nesting_is_a_parse_error(self):
        source = "(" * 500 + "1" + ")" * 500

        with pytest.raises(ParseError) as exc_info:
            parse(source)
        assert exc_info.value.position <= len(source)

    def test_spans(self):
        ast = parse("1 + foo")

        assert (ast.span.start, ast.span.end) == (0, 7)
        assert (ast.right.span.start, ast.right.span.end) == (4, 7)

    def test_parser_without_arity_check(self):
        ast = Parser("Upper()", check_arity=False).parse()

        assert ast == Call("Upper", ())

    @pytest.mark.parametrize(
        "source",
        ["1 +", "(", ")", "a..b", "If(", "{a 1}", "[1,", '"x', "1 2", "* 3"],
    )
    def test_parse_is_total(self, source):
        """Malformed input always yields a ParseError within the source."""
        with pytest.raises(ParseError) as exc_info:
            parse(source)
        assert 0 <= exc_info.value.position <= len(source)


class TestValidate:
    """Tests for validate(): parse only, never evaluate."""

    def test_valid(self):
        assert validate("1 + 2").to_dict() == {"valid": True}

    def test_incomplete_expression(self):
        result = validate("1 + ")

        assert result.valid is False
        assert result.to_dict()["error"]["position"] == 4

    def test_does_not_evaluate(self):
        assert validate("1 / 0").valid is True
        assert validate("undefined_name").valid is True


# =============================================================================
# Evaluator Tests
# =============================================================================


class TestEvaluator:
    """Tests for expression evaluation."""

    def test_arithmetic(self):
        assert evaluate("1 + 2 * 3") == 7
        assert evaluate("(1 + 2) * 3") == 9
        assert evaluate("7 / 2") == 3.5
        assert evaluate("-2 * 3") == -6

    def test_modulo_follows_divisor_sign(self):
        assert evaluate("-7 % 3") == 2
        assert evaluate("7 % -3") == -2

    def test_numeric_text_is_coerced(self):
        assert evaluate('"2" * 3') == 6

    def test_non_numeric_text_is_type_mismatch(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate('"abc" * 3')
        assert exc_info.value.kind == ErrorKind.TYPE_MISMATCH

    def test_text_concatenation(self):
        assert evaluate('"a" + "b"') == "ab"

    def test_mixed_plus_is_type_mismatch(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate('"a" + 1')
        assert exc_info.value.kind == ErrorKind.TYPE_MISMATCH

    def test_equality_across_kinds(self):
        assert evaluate('1 = "1"') is False
        assert evaluate('1 != "1"') is True
        assert evaluate("null = null") is True
        assert evaluate("1 = 1.0") is True

    def test_comparison(self):
        assert evaluate("a > 5", {"a": 10}) is True
        assert evaluate('"abc" < "abd"') is True

    def test_comparison_of_incompatible_kinds(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate('true < "x"')
        assert exc_info.value.kind == ErrorKind.TYPE_MISMATCH

    def test_not(self):
        assert evaluate("!true") is False
        assert evaluate('Not ""') is True
        assert evaluate("Not(0)") is True

    def test_keyword_if(self):
        assert evaluate('if x > 1 then "big" else "small"', {"x": 2}) == "big"

    def test_undefined_name(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("missing + 1")
        assert exc_info.value.kind == ErrorKind.UNDEFINED_NAME
        assert exc_info.value.span.start == 0

    def test_unknown_function(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("NoSuchFunction(1)")
        assert exc_info.value.kind == ErrorKind.UNKNOWN_FUNCTION

    def test_arity_mismatch_on_prebuilt_ast(self):
        ast = Call("Upper", ())

        with pytest.raises(EvaluationError) as exc_info:
            evaluate(ast)
        assert exc_info.value.kind == ErrorKind.ARITY_MISMATCH

    def test_name_resolution_order(self):
        """values shadow variables, which shadow collections."""
        ctx = Context(
            values={"x": "value"},
            variables={"x": "variable", "y": "variable"},
            collections={"x": [], "y": [], "z": [1]},
        )

        assert evaluate("x", context=ctx) == "value"
        assert evaluate("y", context=ctx) == "variable"
        assert evaluate("z", context=ctx) == [1]

    def test_field_access(self):
        values = {"customer": {"name": "Ada", "address": {"city": "London"}}}

        assert evaluate("customer.name", values) == "Ada"
        assert evaluate("customer.address.city", values) == "London"
        assert evaluate("customer.missing", values) is None

    def test_field_access_on_list(self):
        values = {"items": ["a", "b", "c"], "rows": [{"n": 1}, {"n": 2}]}

        assert evaluate("items.2", values) == "b"
        assert evaluate("items.9", values) is None
        assert evaluate("rows.n", values) == [1, 2]

    def test_field_access_on_scalar(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("x.name", {"x": 5})
        assert exc_info.value.kind == ErrorKind.TYPE_MISMATCH

    def test_index(self):
        values = {"items": [10, 20], "row": {"key": "v"}}

        assert evaluate("items[1]", values) == 10
        assert evaluate("items[3]", values) is None
        assert evaluate('row["key"]', values) == "v"

    def test_record_and_list_literals(self):
        assert evaluate("{a: 1 + 1, b: [x, 2]}", {"x": 1}) == {"a": 2, "b": [1, 2]}

    def test_values_are_read_only(self):
        ctx = Context(values={"a": 1})

        with pytest.raises(TypeError):
            ctx.values["a"] = 2

    def test_case_insensitive_function_lookup(self):
        assert evaluate('upper("x")') == evaluate('UPPER("x")') == evaluate('Upper("x")') == "X"

    def test_idempotent_for_pure_expressions(self):
        ast = parse("Round(a * 1.175, 2)")
        values = {"a": 12.34}

        assert evaluate(ast, values) == evaluate(ast, values)

    def test_evaluate_bool(self):
        assert evaluate_bool("CountRows(items)", {"items": [1]}) is True
        assert evaluate_bool('""') is False


class TestShortCircuit:
    """Short-circuit forms never evaluate the arm they skip."""

    def test_if_skips_failing_branch(self):
        assert evaluate("If(false, Fail(), 1)") == 1

    def test_and_skips_failing_operand(self):
        assert evaluate("And(false, Fail())") is False
        assert evaluate("false && Fail()") is False

    def test_or_skips_failing_operand(self):
        assert evaluate("Or(true, Fail())") is True
        assert evaluate("true || Fail()") is True

    def test_switch_skips_unmatched_results(self):
        assert evaluate('Switch(2, 1, Fail(), 2, "two", Fail())') == "two"

    def test_failing_arm_does_fail_when_taken(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("If(true, Fail(), 1)")
        assert exc_info.value.kind == ErrorKind.UNKNOWN_FUNCTION


class TestErrorValues:
    """Domain errors are first-class Error values until they reach the top."""

    def test_division_by_zero(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("1/0")
        assert exc_info.value.kind == ErrorKind.ARITHMETIC

    def test_is_error_wraps_division_by_zero(self):
        assert evaluate("IsError(1/0)") is True
        assert evaluate("IsError(1/1)") is False

    def test_evaluator_returns_error_value(self):
        result = Evaluator(Context()).run(parse("1/0"))

        assert isinstance(result, ErrorValue)
        assert result.kind == ErrorKind.ARITHMETIC

    def test_error_propagates_through_operators(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("(1/0) + 5")
        assert exc_info.value.kind == ErrorKind.ARITHMETIC

    def test_error_propagates_through_eager_calls(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("Abs(Sqrt(-1))")
        assert exc_info.value.kind == ErrorKind.ARITHMETIC

    def test_if_error_fallback(self):
        assert evaluate("IfError(1/0, -1)") == -1
        assert evaluate("IfError(4/2, -1)") == 2

    def test_error_payload(self):
        with pytest.raises(ParseError) as exc_info:
            parse("1 +")
        payload = exc_info.value.to_dict()

        assert payload["success"] is False
        assert payload["error"] == "PARSE_ERROR"
        assert payload["position"] == 3
        assert payload["span"] == {"start": 3, "end": 3}


class TestExecutionBudget:
    """Node-visit and wall-clock limits."""

    def test_node_budget_exhaustion(self):
        ast = Call("Concatenate", [Literal("a")] * 100_001)

        with pytest.raises(EvaluationError) as exc_info:
            evaluate(ast)
        assert exc_info.value.kind == ErrorKind.TIMEOUT

    def test_within_budget(self):
        ast = Call("Concatenate", [Literal("a")] * 1_000)

        assert evaluate(ast) == "a" * 1_000

    def test_custom_budget(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("1 + 2 + 3", budget=ExecutionBudget(max_nodes=3))
        assert exc_info.value.kind == ErrorKind.TIMEOUT

    def test_long_operator_chain(self):
        source = " + ".join(["1"] * 2_000)

        assert validate(source).valid is True
        assert evaluate(source) == 2_000

    def test_long_logical_chain_short_circuits(self):
        source = " && ".join(["true"] * 1_000) + " && false && 1 / 0 > 0"

        assert evaluate(source) is False

    def test_error_span_inside_chain(self):
        with pytest.raises(EvaluationError) as exc_info:
            evaluate("1 + 2 + missing + 4")
        assert exc_info.value.kind == ErrorKind.UNDEFINED_NAME
        assert (exc_info.value.span.start, exc_info.value.span.end) == (8, 15)

    def test_timeout_is_not_caught_by_is_error(self):
        ast = Call("IsError", [Call("Concatenate", [Literal("a")] * 50)])

        with pytest.raises(EvaluationError) as exc_info:
            evaluate(ast, budget=ExecutionBudget(max_nodes=10))
        assert exc_info.value.kind == ErrorKind.TIMEOUT


class TestScenarios:
    """End-to-end formula scenarios."""

    def test_if_adult_minor(self):
        formula = 'If(age >= 18, "adult", "minor")'

        assert evaluate(formula, {"age": 20}) == "adult"
        assert evaluate(formula, {"age": 10}) == "minor"

    def test_sum_of_projected_field(self):
        orders = [{"amount": 10}, {"amount": 20}, {"amount": 5.5}]

        assert evaluate("Sum(orders.amount)", {}, {"orders": orders}) == 35.5

    def test_look_up_with_projection(self):
        users = [{"id": 1, "name": "A"}, {"id": 42, "name": "B"}]

        assert evaluate("LookUp(users, id = 42, name)", {}, {"users": users}) == "B"

    def test_outer_names_visible_inside_iteration(self):
        orders = [{"amount": 50}, {"amount": 150}, {"amount": 300}]

        result = evaluate(
            "CountRows(Filter(orders, amount > threshold))",
            {"threshold": 100},
            {"orders": orders},
        )
        assert result == 2


class TestRoundTrip:
    """Rendering a literal and evaluating it reproduces the value."""

    @pytest.mark.parametrize(
        "value",
        [
            None,
            True,
            False,
            0,
            42,
            -3.5,
            1e-7,
            123456789.125,
            "",
            "plain",
            'quote " and \\ backslash',
            "line\nbreak\ttab",
        ],
    )
    def test_scalar_round_trip(self, value):
        assert evaluate(render_literal(value)) == value

    def test_date_round_trip(self):
        value = datetime(2024, 2, 29, 13, 45, 30, 123000, tzinfo=timezone.utc)

        assert evaluate(render_literal(value)) == value
