"""Tests for the built-in function library."""

import pytest
from datetime import datetime, timezone

from formulaforge.formulas import (
    Context,
    ErrorKind,
    EvaluationError,
    FunctionCategory,
    FunctionDefinition,
    FunctionRegistry,
    evaluate,
)
from formulaforge.formulas.builtins import BUILTIN_FUNCTIONS
from formulaforge.formulas.errors import DuplicateFunctionError


def error_kind(formula, values=None, collections=None):
    with pytest.raises(EvaluationError) as exc_info:
        evaluate(formula, values, collections)
    return exc_info.value.kind


class TestRegistry:
    """Tests for the function registry."""

    def test_lookup_is_case_insensitive(self):
        assert FunctionRegistry.get("countrows") is FunctionRegistry.get("CountRows")
        assert FunctionRegistry.is_registered("LOOKUP")

    def test_unknown_function(self):
        assert FunctionRegistry.lookup("Nope") is None

    def test_every_category_is_populated(self):
        for category in FunctionCategory:
            assert FunctionRegistry.list_by_category(category), category

    def test_required_members(self):
        required = {
            FunctionCategory.LOGIC: ["If", "And", "Or", "Not", "Switch"],
            FunctionCategory.MATH: [
                "Round", "RoundUp", "RoundDown", "Abs", "Sqrt", "Power",
                "Exp", "Ln", "Log", "Mod",
            ],
            FunctionCategory.TEXT: [
                "Text", "Concatenate", "Upper", "Lower", "Trim", "Left", "Right",
                "Mid", "Len", "Replace", "Substitute", "Split",
            ],
            FunctionCategory.DATETIME: [
                "Now", "Today", "Year", "Month", "Day", "Hour", "Minute",
                "Second", "DateAdd", "DateDiff",
            ],
            FunctionCategory.CONVERSION: ["Value", "Boolean"],
            FunctionCategory.VALIDATION: ["IsBlank", "IsEmpty", "IsError", "IsNumeric"],
            FunctionCategory.DATA: [
                "Filter", "LookUp", "Sort", "CountRows", "Sum", "Average", "Min",
                "Max", "Distinct", "First", "Last",
            ],
            FunctionCategory.COLLECTION: ["Collect", "ClearCollect", "Clear"],
        }
        for category, names in required.items():
            for name in names:
                func_def = FunctionRegistry.get(name)
                assert func_def.category == category, name

    def test_duplicate_registration_is_rejected(self):
        impostor = FunctionDefinition(
            name="upper",
            description="Not the real Upper",
            category=FunctionCategory.TEXT,
            parameters=[],
            return_type="text",
            implementation=lambda: "",
        )
        with pytest.raises(DuplicateFunctionError):
            FunctionRegistry.register(impostor)

    def test_registering_same_definitions_again_is_harmless(self):
        count = len(FunctionRegistry.list_all())
        for func_def in BUILTIN_FUNCTIONS:
            FunctionRegistry.register(func_def)
        assert len(FunctionRegistry.list_all()) == count

    def test_export_documentation(self):
        docs = FunctionRegistry.export_documentation()

        assert docs["functions"]["Round"]["category"] == "math"
        assert any(f["name"] == "Round" for f in docs["byCategory"]["math"])


class TestLogicFunctions:
    def test_if(self):
        assert evaluate('If(x > 0, "pos", "neg")', {"x": 1}) == "pos"
        assert evaluate('If(x > 0, "pos")', {"x": -1}) is None

    def test_multi_branch_if(self):
        formula = 'If(score >= 90, "A", score >= 80, "B", "C")'

        assert evaluate(formula, {"score": 95}) == "A"
        assert evaluate(formula, {"score": 85}) == "B"
        assert evaluate(formula, {"score": 10}) == "C"

    def test_and_or_not(self):
        assert evaluate("And(true, 1, \"x\")") is True
        assert evaluate("And(true, 0)") is False
        assert evaluate("Or(false, null, 2)") is True
        assert evaluate("Not(null)") is True

    def test_switch(self):
        formula = 'Switch(status, "new", 1, "open", 2, 0)'

        assert evaluate(formula, {"status": "open"}) == 2
        assert evaluate(formula, {"status": "closed"}) == 0
        assert evaluate('Switch(1, 2, "two")') is None


class TestMathFunctions:
    def test_round_half_away_from_zero(self):
        assert evaluate("Round(2.5)") == 3
        assert evaluate("Round(-2.5)") == -3
        assert evaluate("Round(2.675, 2)") == 2.68
        assert evaluate("Round(1234.5, -2)") == 1200

    def test_round_up_and_down(self):
        assert evaluate("RoundUp(1.21, 1)") == 1.3
        assert evaluate("RoundUp(-1.21, 1)") == -1.3
        assert evaluate("RoundDown(1.29, 1)") == 1.2
        assert evaluate("RoundDown(-1.29, 1)") == -1.2

    def test_basic(self):
        assert evaluate("Abs(-4)") == 4
        assert evaluate("Sqrt(16)") == 4
        assert evaluate("Power(2, 10)") == 1024
        assert evaluate("Exp(0)") == 1
        assert evaluate("Ln(1)") == 0
        assert evaluate("Log(1000)") == pytest.approx(3)
        assert evaluate("Log(8, 2)") == pytest.approx(3)

    def test_mod_sign_follows_divisor(self):
        assert evaluate("Mod(7, 3)") == 1
        assert evaluate("Mod(-7, 3)") == 2
        assert evaluate("Mod(7, -3)") == -2

    @pytest.mark.parametrize(
        "formula",
        ["Sqrt(-1)", "Ln(0)", "Log(-5)", "Mod(1, 0)", "Power(0, -1)", "Exp(1000)"],
    )
    def test_arithmetic_errors(self, formula):
        assert error_kind(formula) == ErrorKind.ARITHMETIC

    def test_non_numeric_argument(self):
        assert error_kind('Abs("abc")') == ErrorKind.TYPE_MISMATCH


class TestTextFunctions:
    def test_case_and_trim(self):
        assert evaluate('Upper("abc")') == "ABC"
        assert evaluate('Lower("ABC")') == "abc"
        assert evaluate('Proper("hello WORLD")') == "Hello World"
        assert evaluate('Trim("  x  ")') == "x"

    def test_concatenate(self):
        assert evaluate('Concatenate("a", 1, true, null)') == "a1true"

    def test_left_right_mid(self):
        assert evaluate('Left("formula", 4)') == "form"
        assert evaluate('Right("formula", 3)') == "ula"
        assert evaluate('Mid("formula", 2, 3)') == "orm"
        assert evaluate('Mid("formula", 5)') == "ula"

    def test_len(self):
        assert evaluate('Len("héllo")') == 5
        assert evaluate("Len(null)") == 0

    def test_replace(self):
        assert evaluate('Replace("abcdef", 2, 3, "XY")') == "aXYef"

    def test_substitute(self):
        assert evaluate('Substitute("a-b-c", "-", "+")') == "a+b+c"
        assert evaluate('Substitute("a-b-c", "-", "+", 2)') == "a-b+c"
        assert evaluate('Substitute("a.b", ".", "")') == "ab"

    def test_split(self):
        assert evaluate('Split("a,b,,c", ",")') == ["a", "b", "", "c"]
        assert evaluate('Split("", ",")') == []

    def test_text_number_formats(self):
        assert evaluate('Text(1234.5, "#,##0.00")') == "1,234.50"
        assert evaluate('Text(0.256, "0%")') == "26%"
        assert evaluate('Text(42, "$#,##0")') == "$42"
        assert evaluate("Text(3)") == "3"
        assert evaluate("Text(2.5)") == "2.5"

    def test_text_date_formats(self):
        values = {"d": datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone.utc)}

        assert evaluate('Text(d, "yyyy-MM-dd")', values) == "2024-03-05"
        assert evaluate('Text(d, "d MMM yy, h:mm tt")', values) == "5 Mar 24, 2:07 PM"
        assert evaluate('Text(d, "iso")', values) == "2024-03-05T14:07:09.000Z"
        assert evaluate("Text(d, \"'Day' d\")", values) == "Day 5"


class TestDateTimeFunctions:
    def test_parts(self):
        values = {"d": datetime(2024, 2, 29, 23, 59, 58, tzinfo=timezone.utc)}

        assert evaluate("Year(d)", values) == 2024
        assert evaluate("Month(d)", values) == 2
        assert evaluate("Day(d)", values) == 29
        assert evaluate("Hour(d)", values) == 23
        assert evaluate("Minute(d)", values) == 59
        assert evaluate("Second(d)", values) == 58
        assert evaluate("Year(null)") is None

    def test_now_and_today_are_utc(self):
        now = evaluate("Now()")
        today = evaluate("Today()")

        assert now.tzinfo is not None
        assert (today.hour, today.minute, today.second) == (0, 0, 0)
        assert today.date() == datetime.now(timezone.utc).date() or today <= now

    def test_date_constructors(self):
        assert evaluate("Date(2024, 1, 31)") == datetime(2024, 1, 31, tzinfo=timezone.utc)
        assert evaluate("DateTime(2024, 1, 31, 8, 30)") == datetime(
            2024, 1, 31, 8, 30, tzinfo=timezone.utc
        )
        assert error_kind("Date(2024, 2, 30)") == ErrorKind.ARITHMETIC
        assert error_kind("Date(100000000000000000000, 1, 1)") == ErrorKind.ARITHMETIC

    def test_date_add(self):
        assert evaluate('DateAdd(Date(2024, 1, 31), 1, "months")') == datetime(
            2024, 2, 29, tzinfo=timezone.utc
        )
        assert evaluate('DateAdd(Date(2024, 1, 1), 36, "hours")') == datetime(
            2024, 1, 2, 12, tzinfo=timezone.utc
        )
        assert evaluate("DateAdd(Date(2024, 1, 1), -1)") == datetime(
            2023, 12, 31, tzinfo=timezone.utc
        )
        assert evaluate('DateAdd(Date(2020, 2, 29), 1, "year")') == datetime(
            2021, 2, 28, tzinfo=timezone.utc
        )

    def test_date_add_unknown_unit(self):
        assert error_kind('DateAdd(Date(2024, 1, 1), 1, "fortnights")') == ErrorKind.TYPE_MISMATCH

    def test_date_diff(self):
        assert evaluate('DateDiff(Date(2024, 1, 1), Date(2024, 1, 11), "days")') == 10
        assert evaluate('DateDiff(Date(2024, 1, 1), Date(2024, 1, 1) , "hours")') == 0
        assert evaluate('DateDiff(Date(2024, 1, 2), Date(2024, 1, 1), "hours")') == -24
        assert evaluate('DateDiff(Date(2023, 1, 1), Date(2024, 1, 1), "years")') == pytest.approx(
            365 / 365.25
        )

    def test_date_diff_requires_dates(self):
        assert error_kind('DateDiff("x", Date(2024, 1, 1))') == ErrorKind.ARITHMETIC


class TestConversionFunctions:
    def test_value(self):
        assert evaluate('Value("42.5")') == 42.5
        assert evaluate('Value(" -3 ")') == -3
        assert evaluate("Value(true)") == 1
        assert evaluate("Value(null)") is None

    def test_value_of_non_numeric_text(self):
        assert error_kind('Value("abc")') == ErrorKind.TYPE_MISMATCH
        assert evaluate('IsError(Value("abc"))') is True

    def test_boolean(self):
        assert evaluate("Boolean(2)") is True
        assert evaluate("Boolean(0)") is False
        assert evaluate('Boolean("x")') is True
        assert evaluate('Boolean("")') is False
        assert evaluate("Boolean([])") is False
        assert evaluate("Boolean(null)") is False

    def test_date_value(self):
        assert evaluate('DateValue("2024-05-01T10:00:00Z")') == datetime(
            2024, 5, 1, 10, tzinfo=timezone.utc
        )
        assert evaluate('DateValue("2024-05-01")') == datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert evaluate('IsError(DateValue("yesterday"))') is True


class TestValidationFunctions:
    def test_is_blank(self):
        assert evaluate("IsBlank(null)") is True
        assert evaluate('IsBlank("")') is True
        assert evaluate('IsBlank(" ")') is False
        assert evaluate("IsBlank(0)") is False

    def test_is_blank_on_undefined_name(self):
        assert evaluate("IsBlank(middleName)") is True

    def test_is_empty(self):
        assert evaluate("IsEmpty([])") is True
        assert evaluate("IsEmpty({})") is True
        assert evaluate("IsEmpty([1])") is False
        assert evaluate("IsEmpty(null)") is True

    def test_is_error(self):
        assert evaluate("IsError(undefinedThing)") is True
        assert evaluate('IsError(1 + "x")') is True
        assert evaluate("IsError(1)") is False

    def test_is_numeric(self):
        assert evaluate("IsNumeric(3)") is True
        assert evaluate('IsNumeric("3.5")') is True
        assert evaluate('IsNumeric("3.5x")') is False
        assert evaluate("IsNumeric(true)") is False

    def test_is_today(self):
        assert evaluate("IsToday(Now())") is True
        assert evaluate("IsToday(Date(2000, 1, 1))") is False


class TestDataFunctions:
    @pytest.fixture
    def orders(self):
        return {
            "orders": [
                {"id": 1, "region": "EU", "amount": 120, "qty": 2},
                {"id": 2, "region": "US", "amount": 80, "qty": 1},
                {"id": 3, "region": "EU", "amount": None, "qty": 5},
                {"id": 4, "region": "APAC", "amount": 300, "qty": 3},
            ]
        }

    def test_filter(self, orders):
        result = evaluate('Filter(orders, region = "EU")', {}, orders)

        assert [o["id"] for o in result] == [1, 3]

    def test_filter_with_several_predicates(self, orders):
        result = evaluate('Filter(orders, region = "EU", qty > 2)', {}, orders)

        assert [o["id"] for o in result] == [3]

    def test_look_up(self, orders):
        assert evaluate("LookUp(orders, amount > 100)", {}, orders)["id"] == 1
        assert evaluate("LookUp(orders, amount > 1000)", {}, orders) is None

    def test_sort(self, orders):
        ascending = evaluate("Sort(orders, amount)", {}, orders)
        descending = evaluate("Sort(orders, amount, Descending)", {}, orders)

        assert [o["id"] for o in ascending] == [2, 1, 4, 3]
        assert [o["id"] for o in descending] == [3, 4, 1, 2]

    def test_sort_is_stable(self, orders):
        result = evaluate('Sort(orders, region, "ascending")', {}, orders)

        assert [o["id"] for o in result] == [4, 1, 3, 2]

    def test_sort_scalars(self):
        assert evaluate("Sort([3, 1, 2], Value)") == [1, 2, 3]

    def test_distinct(self, orders):
        assert evaluate("Distinct(orders, region)", {}, orders) == ["EU", "US", "APAC"]
        assert evaluate("Distinct([1, 1, 2, 1])") == [1, 2]

    def test_count_first_last(self, orders):
        assert evaluate("CountRows(orders)", {}, orders) == 4
        assert evaluate("First(orders).id", {}, orders) == 1
        assert evaluate("Last(orders).id", {}, orders) == 4
        assert len(evaluate("First(orders, 2)", {}, orders)) == 2
        assert evaluate("Last(orders, 0)", {}, orders) == []
        assert evaluate("First([])") is None

    def test_aggregates_ignore_null(self, orders):
        assert evaluate("Sum(orders.amount)", {}, orders) == 500
        assert evaluate("Average(orders.amount)", {}, orders) == pytest.approx(500 / 3)
        assert evaluate("Min(orders.amount)", {}, orders) == 80
        assert evaluate("Max(orders.amount)", {}, orders) == 300

    def test_aggregate_with_expression(self, orders):
        assert evaluate("Sum(orders, qty * 10)", {}, orders) == 110

    def test_aggregate_of_scalars(self):
        assert evaluate("Max(0, x - 10)", {"x": 4}) == 0
        assert evaluate("Sum(1, 2, [3, 4])") == 10

    def test_list_with_constant_operand(self):
        assert evaluate("Max(scores, 0)", {"scores": [5, 10]}) == 10
        assert evaluate("Min(scores, -1)", {"scores": [5, 10]}) == -1
        assert evaluate("Sum([1, 2], [3])") == 6

    def test_two_lists_are_flattened(self):
        assert evaluate("Sum(a, b)", {"a": [1, 2], "b": [3]}) == 6
        assert evaluate("Max(a, limit)", {"a": [1, 2], "limit": 7}) == 7

    def test_item_field_wins_over_outer_name(self, orders):
        assert evaluate("Sum(orders, qty)", {"qty": 100}, orders) == 11

    def test_aggregate_of_non_numeric(self):
        assert error_kind('Sum([1, "abc"])') == ErrorKind.TYPE_MISMATCH
        assert evaluate('IsError(Sum([1, "abc"]))') is True

    def test_empty_aggregates(self):
        assert evaluate("Sum([])") == 0
        assert evaluate("Min([])") is None
        assert error_kind("Average([])") == ErrorKind.ARITHMETIC


class TestCollectionFunctions:
    def test_collect_appends_to_context(self):
        ctx = Context(collections={"cart": [{"sku": "A"}]})

        evaluate('Collect(cart, {sku: "B"})', context=ctx)

        assert ctx.collections["cart"] == [{"sku": "A"}, {"sku": "B"}]

    def test_collect_creates_collection(self):
        ctx = Context()

        result = evaluate('Collect("log", [1, 2])', context=ctx)

        assert result == [1, 2]
        assert ctx.collections["log"] == [1, 2]

    def test_collect_does_not_mutate_caller_list(self):
        original = [{"sku": "A"}]
        ctx = Context(collections={"cart": original})

        evaluate('Collect(cart, {sku: "B"})', context=ctx)

        assert original == [{"sku": "A"}]

    def test_clear_collect_and_clear(self):
        ctx = Context(collections={"items": [1, 2, 3]})

        assert evaluate("ClearCollect(items, [9])", context=ctx) == [9]
        assert evaluate("Clear(items)", context=ctx) == []
        assert ctx.collections["items"] == []

    def test_remove(self):
        ctx = Context(collections={"items": [{"n": 1}, {"n": 2}, {"n": 3}]})

        evaluate("Remove(items, n >= 2)", context=ctx)

        assert ctx.collections["items"] == [{"n": 1}]

    def test_set_and_update_context(self):
        ctx = Context(values={"x": 1})

        assert evaluate("Set(total, x + 1)", context=ctx) == 2
        evaluate("UpdateContext({flag: true, label: \"ok\"})", context=ctx)

        assert ctx.variables == {"total": 2, "flag": True, "label": "ok"}

    def test_set_cannot_overwrite_input_values(self):
        ctx = Context(values={"x": 1})

        with pytest.raises(EvaluationError) as exc_info:
            evaluate("Set(x, 2)", context=ctx)
        assert exc_info.value.kind == ErrorKind.TYPE_MISMATCH

    def test_collection_functions_are_impure(self):
        for name in ("Collect", "ClearCollect", "Clear", "Remove", "Set", "UpdateContext"):
            assert FunctionRegistry.get(name).pure is False


class TestOtherFunctions:
    def test_coalesce(self):
        assert evaluate('Coalesce(null, "", "x", "y")') == "x"
        assert evaluate("Coalesce(null)") is None

    def test_blank(self):
        assert evaluate("Blank()") is None
        assert evaluate("IsBlank(Blank())") is True

    def test_rgba(self):
        assert evaluate("RGBA(255, 128, 0, 0.5)") == "rgba(255, 128, 0, 0.5)"
        assert error_kind("RGBA(256, 0, 0, 1)") == ErrorKind.TYPE_MISMATCH
