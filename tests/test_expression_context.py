"""Tests for expression evaluation, the data context and run variables."""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from excel_filler.context import COL_VAR, ROW_VAR, Context, RunVar
from excel_filler.errors import ExpressionError
from excel_filler.expression import (
    ExpressionEvaluator,
    HyperlinkValue,
    extract_single_expression,
    parse_expressions,
)


class Employee:
    def __init__(self, name, age):
        self.name = name
        self.age = age


@pytest.fixture
def evaluator():
    return ExpressionEvaluator()


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------

class TestEvaluator:
    def test_arithmetic_on_mappings(self, evaluator):
        names = {"e": {"price": 10, "qty": 3}}
        assert evaluator.evaluate("e.price * e.qty", names) == 30
        assert evaluator.evaluate("e['price'] + 1", names) == 11

    def test_object_attributes(self, evaluator):
        assert evaluator.evaluate("e.name", {"e": Employee("Elsa", 28)}) == "Elsa"

    def test_missing_mapping_key_is_none(self, evaluator):
        assert evaluator.evaluate("e.bonus", {"e": {"name": "Elsa"}}) is None

    def test_missing_object_attribute_raises(self, evaluator):
        with pytest.raises(ExpressionError):
            evaluator.evaluate("e.bonus", {"e": Employee("Elsa", 28)})

    def test_undefined_name_is_none(self, evaluator):
        assert evaluator.evaluate("nothing_here", {}) is None

    def test_empty_expression(self, evaluator):
        assert evaluator.evaluate("   ", {}) is None
        with pytest.raises(ExpressionError):
            evaluator.compile("")

    def test_boolean_logic_and_conditional(self, evaluator):
        names = {"e": {"age": 35, "retired": False}}
        assert evaluator.evaluate("e.age > 30 and not e.retired", names) is True
        assert evaluator.evaluate("'senior' if e.age > 30 else 'junior'", names) == "senior"

    def test_builtin_functions(self, evaluator):
        names = {"items": [3, 1, 2]}
        assert evaluator.evaluate("len(items)", names) == 3
        assert evaluator.evaluate("max(items)", names) == 3
        assert evaluator.evaluate("sorted(items)", names) == [1, 2, 3]
        assert evaluator.evaluate("round(2.567, 1)", names) == 2.6

    def test_callables_from_data_and_options(self):
        evaluator = ExpressionEvaluator(functions={"double": lambda x: x * 2})
        assert evaluator.evaluate("double(4)", {}) == 8
        assert evaluator.evaluate("triple(2)", {"triple": lambda x: x * 3}) == 6

    def test_hyperlink(self, evaluator):
        value = evaluator.evaluate("hyperlink(url, 'Site')", {"url": "https://example.com"})
        assert isinstance(value, HyperlinkValue)
        assert value.url == "https://example.com"
        assert str(value) == "Site"
        assert str(HyperlinkValue("https://example.com")) == "https://example.com"

    def test_syntax_error(self, evaluator):
        with pytest.raises(ExpressionError) as info:
            evaluator.evaluate("1 +", {})
        assert info.value.expression == "1 +"

    def test_runtime_error_wrapped(self, evaluator):
        with pytest.raises(ExpressionError):
            evaluator.evaluate("a / b", {"a": 1, "b": 0})

    def test_compile_is_cached(self, evaluator):
        assert evaluator.compile("a + 1") is evaluator.compile(" a + 1 ")

    def test_condition(self, evaluator):
        assert evaluator.is_condition_true("x > 1", {"x": 2}) is True
        assert evaluator.is_condition_true("missing", {}) is False
        assert evaluator.is_condition_true("flag", {"flag": np.bool_(True)}) is True
        assert evaluator.is_condition_true("v > 1", {"v": np.int64(5)}) is True

    def test_condition_must_be_bool(self, evaluator):
        with pytest.raises(ExpressionError):
            evaluator.is_condition_true("name", {"name": "Elsa"})


# ---------------------------------------------------------------------------
# Notation parsing
# ---------------------------------------------------------------------------

class TestParseExpressions:
    def test_mixed_text(self):
        segments = parse_expressions("Hello ${name}!")
        assert [(s.is_expression, s.text) for s in segments] == [
            (False, "Hello "), (True, "name"), (False, "!"),
        ]

    def test_nested_braces(self):
        segments = parse_expressions("${ {'a': 1}['a'] }")
        assert len(segments) == 1
        assert segments[0].is_expression
        assert segments[0].text.strip() == "{'a': 1}['a']"

    def test_brace_inside_string(self):
        segments = parse_expressions("${ '}' ~ name }")
        assert len(segments) == 1
        assert segments[0].text.strip() == "'}' ~ name"

    def test_unclosed_is_literal(self):
        segments = parse_expressions("${name")
        assert [(s.is_expression, s.text) for s in segments] == [(False, "${name")]

    def test_single_expression(self):
        assert extract_single_expression("  ${x}  ") == "x"
        assert extract_single_expression("a ${x}") is None
        assert extract_single_expression("${a}${b}") is None

    def test_custom_notation(self):
        segments = parse_expressions("<<a>> and <<b>>", "<<", ">>")
        assert [s.text for s in segments if s.is_expression] == ["a", "b"]


# ---------------------------------------------------------------------------
# Context and run variables
# ---------------------------------------------------------------------------

class TestContext:
    def test_cell_values_keep_type(self):
        context = Context({"age": 30, "name": "Elsa"})
        assert context.evaluate_cell_value("${age}") == 30
        assert context.evaluate_cell_value("Age: ${age}") == "Age: 30"
        assert context.evaluate_cell_value("${missing}") is None
        assert context.evaluate_cell_value("x${missing}y") == "xy"
        assert context.evaluate_cell_value("plain text") == "plain text"

    def test_run_vars_shadow_data(self):
        context = Context({"name": "data"})
        context.set_run_var("name", "loop")
        assert context.get_var("name") == "loop"
        assert context.evaluate("name") == "loop"
        context.remove_run_var("name")
        assert context.evaluate("name") == "data"

    def test_put_and_remove(self):
        context = Context()
        context.put_var("x", 1)
        assert context.contains_var("x")
        assert context.evaluate("x + 1") == 2
        context.remove_var("x")
        assert not context.contains_var("x")
        assert context.evaluate("x") is None

    def test_merged_view_cached_until_change(self):
        context = Context({"a": 1})
        first = context.to_map()
        assert context.to_map() is first
        context.set_run_var(ROW_VAR, 4)
        second = context.to_map()
        assert second is not first
        assert second[ROW_VAR] == 4

    def test_custom_notation(self):
        context = Context({"x": 5}, notation_begin="{{", notation_end="}}")
        assert context.has_expression("{{ x }}")
        assert not context.has_expression("${x}")
        assert context.evaluate_cell_value("{{ x }}") == 5


class TestRunVar:
    def test_binds_and_removes(self):
        context = Context()
        with RunVar(context, "e", "i") as run_var:
            run_var.set("item", 0)
            assert context.get_var("e") == "item"
            assert context.get_var("i") == 0
        assert not context.contains_var("e")
        assert not context.contains_var("i")

    def test_restores_outer_binding(self):
        context = Context()
        context.set_run_var("e", "outer")
        with RunVar(context, "e") as run_var:
            run_var.set("inner")
            assert context.evaluate("e") == "inner"
        assert context.evaluate("e") == "outer"

    def test_restores_on_error(self):
        context = Context()
        with pytest.raises(RuntimeError):
            with RunVar(context, "e") as run_var:
                run_var.set(1)
                raise RuntimeError("boom")
        assert not context.contains_var("e")

    def test_data_not_touched(self):
        context = Context({"e": "data"})
        with RunVar(context, "e") as run_var:
            run_var.set("loop")
            assert context.get_var("e") == "loop"
        assert context.get_var("e") == "data"
        assert COL_VAR not in context.run_vars
