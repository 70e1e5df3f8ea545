"""
Expression evaluation for ``${...}`` cell content and command attributes.

Expressions are compiled by a sandboxed jinja2 environment, so templates can
only reach the names and functions handed to the evaluator.  The syntax is
jinja2's expression language, which reads like Python for everything
templates need: ``e.price * e.qty``, ``e.age > 30 and not e.retired``,
``len(g.items)``, ``'yes' if flag else 'no'``.

Undefined names evaluate to ``None``; ``e.Name`` works for objects and
mappings alike, and a missing mapping key is ``None`` as well.
"""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np
from jinja2 import TemplateSyntaxError, Undefined
from jinja2.sandbox import SandboxedEnvironment

from excel_filler.errors import ExpressionError

logger = logging.getLogger(__name__)

DEFAULT_NOTATION_BEGIN = "${"
DEFAULT_NOTATION_END = "}"

_QUOTES = ("'", '"')


@dataclass(frozen=True)
class HyperlinkValue:
    """A cell value that is written as display text plus a clickable link."""
    url: str
    display: str = ""

    def __str__(self):
        return self.display or self.url


def hyperlink(url, display=""):
    """Template function: ``${hyperlink(e.url, e.title)}``."""
    return HyperlinkValue(str(url), "" if display is None else str(display))


BUILTIN_FUNCTIONS = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "round": round,
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "sorted": sorted,
    "hyperlink": hyperlink,
}


class _TemplateEnvironment(SandboxedEnvironment):
    """Sandbox where mapping keys win over attributes and missing attributes fail."""

    def getattr(self, obj, attribute):
        if isinstance(obj, Mapping) and not attribute.startswith("_"):
            if attribute in obj:
                return obj[attribute]
            if not hasattr(obj, attribute):
                return None
        value = super().getattr(obj, attribute)
        if isinstance(value, Undefined) and obj is not None and not isinstance(obj, Undefined):
            raise AttributeError(f"{type(obj).__name__} object has no attribute {attribute!r}")
        return value


@dataclass(frozen=True)
class ExpressionSegment:
    is_expression: bool
    text: str


class ExpressionEvaluator:
    """Compiles and runs expressions against a name mapping.

    Compiled expressions are cached per expression text.  The cache is
    guarded by a lock, so one evaluator can serve several fills running in
    parallel.
    """

    def __init__(self, functions=None):
        self._env = _TemplateEnvironment(autoescape=False)
        self._env.globals.update(BUILTIN_FUNCTIONS)
        if functions:
            self._env.globals.update(functions)
        self._cache = {}
        self._lock = threading.Lock()

    @property
    def functions(self):
        return {k: v for k, v in self._env.globals.items() if k in BUILTIN_FUNCTIONS or callable(v)}

    def compile(self, expression: str):
        """Compile *expression* (cached); raises ExpressionError on bad syntax."""
        expression = expression.strip()
        with self._lock:
            compiled = self._cache.get(expression)
        if compiled is not None:
            return compiled
        if not expression:
            raise ExpressionError("empty expression", expression=expression)
        try:
            compiled = self._env.compile_expression(expression, undefined_to_none=True)
        except TemplateSyntaxError as err:
            raise ExpressionError(
                f"invalid expression syntax {expression!r}: {err.message}", expression=expression
            ) from err
        with self._lock:
            compiled = self._cache.setdefault(expression, compiled)
        logger.debug(f"Compiled expression {expression!r}")
        return compiled

    def evaluate(self, expression: str, names=None, functions=None):
        """Evaluate *expression*; an empty expression yields ``None``."""
        expression = (expression or "").strip()
        if not expression:
            return None
        compiled = self.compile(expression)
        variables = dict(functions or {})
        if names:
            variables.update((k, v) for k, v in names.items() if isinstance(k, str))
        try:
            result = compiled(variables)
        except ExpressionError:
            raise
        except Exception as err:
            raise ExpressionError(
                f"cannot evaluate {expression!r}: {type(err).__name__}: {err}",
                expression=expression,
            ) from err
        return None if isinstance(result, Undefined) else result

    def is_condition_true(self, condition: str, names=None, functions=None) -> bool:
        """Evaluate a boolean condition; ``None`` counts as False."""
        result = self.evaluate(condition, names, functions)
        if result is None:
            return False
        if isinstance(result, bool):
            return result
        if isinstance(result, np.bool_):
            return bool(result)
        raise ExpressionError(
            f"condition {condition!r} evaluated to {type(result).__name__}, expected bool",
            expression=condition,
        )


def _find_matching_end(text, start, begin, end):
    """Index of the *end* token closing an expression whose body starts at *start*."""
    depth = 0
    quote = None
    i = start
    while i <= len(text) - len(end):
        char = text[i]
        if quote:
            if char == quote:
                quote = None
            i += 1
            continue
        if char in _QUOTES:
            quote = char
            i += 1
            continue
        if text.startswith(begin, i):
            depth += 1
            i += len(begin)
            continue
        if end == "}" and char == "{":
            depth += 1
            i += 1
            continue
        if text.startswith(end, i):
            if depth == 0:
                return i
            depth -= 1
            i += len(end)
            continue
        i += 1
    return -1


def parse_expressions(value: str, begin=DEFAULT_NOTATION_BEGIN, end=DEFAULT_NOTATION_END):
    """Split *value* into literal and expression segments.

    An opening token without a matching close is kept as literal text.
    """
    begin = begin or DEFAULT_NOTATION_BEGIN
    end = end or DEFAULT_NOTATION_END
    segments = []
    pos = 0
    while True:
        start = value.find(begin, pos)
        if start < 0:
            break
        body_start = start + len(begin)
        close = _find_matching_end(value, body_start, begin, end)
        if close < 0:
            break
        if start > pos:
            segments.append(ExpressionSegment(False, value[pos:start]))
        segments.append(ExpressionSegment(True, value[body_start:close]))
        pos = close + len(end)
    if pos < len(value):
        segments.append(ExpressionSegment(False, value[pos:]))
    return segments


def extract_single_expression(value: str, begin=DEFAULT_NOTATION_BEGIN, end=DEFAULT_NOTATION_END):
    """Return the inner text when *value* is exactly one expression, else None."""
    segments = parse_expressions(value.strip(), begin, end)
    if len(segments) == 1 and segments[0].is_expression:
        return segments[0].text
    return None


def has_expression(value, begin=DEFAULT_NOTATION_BEGIN) -> bool:
    return isinstance(value, str) and (begin or DEFAULT_NOTATION_BEGIN) in value
