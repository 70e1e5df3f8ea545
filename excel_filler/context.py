"""
Fill-time data context.

A Context holds the caller's data plus loop-scoped "run variables".  Run
variables shadow data of the same name and are only ever changed through a
``RunVar`` guard (or by the area engine for the implicit ``_row``/``_col``).
"""

import logging

from excel_filler.expression import (
    DEFAULT_NOTATION_BEGIN,
    DEFAULT_NOTATION_END,
    ExpressionEvaluator,
    extract_single_expression,
    parse_expressions,
)

logger = logging.getLogger(__name__)

ROW_VAR = "_row"  # 1-based output row of the cell being written
COL_VAR = "_col"  # 0-based output column of the cell being written

_MISSING = object()


class Context:
    """Data bindings, run variables and expression evaluation for one fill."""

    def __init__(self, data=None, evaluator=None,
                 notation_begin=DEFAULT_NOTATION_BEGIN, notation_end=DEFAULT_NOTATION_END):
        self._data = data if data is not None else {}
        self._run_vars = {}
        self.evaluator = evaluator or ExpressionEvaluator()
        self.notation_begin = notation_begin
        self.notation_end = notation_end
        self._cached_names = None

    # ---- variables ----

    def get_var(self, name):
        if name in self._run_vars:
            return self._run_vars[name]
        return self._data.get(name)

    def put_var(self, name, value):
        self._data[name] = value
        self._invalidate()

    def remove_var(self, name):
        self._data.pop(name, None)
        self._invalidate()

    def contains_var(self, name) -> bool:
        return name in self._run_vars or name in self._data

    @property
    def run_vars(self) -> dict:
        return dict(self._run_vars)

    def set_run_var(self, name, value):
        self._run_vars[name] = value
        self._invalidate()

    def remove_run_var(self, name):
        self._run_vars.pop(name, None)
        self._invalidate()

    def to_map(self) -> dict:
        """Merged view of data and run variables; run variables win."""
        if self._cached_names is None:
            names = dict(self._data)
            names.update(self._run_vars)
            self._cached_names = names
        return self._cached_names

    def _invalidate(self):
        self._cached_names = None

    # ---- evaluation ----

    def evaluate(self, expression):
        return self.evaluator.evaluate(expression, self.to_map())

    def is_condition_true(self, condition) -> bool:
        return self.evaluator.is_condition_true(condition, self.to_map())

    def has_expression(self, value) -> bool:
        return isinstance(value, str) and self.notation_begin in value

    def evaluate_cell_value(self, value):
        """Evaluate the expressions embedded in a cell's text.

        A cell holding exactly one expression keeps the result's type; mixed
        text always produces a string, with ``None`` rendered as empty.
        """
        single = extract_single_expression(value, self.notation_begin, self.notation_end)
        if single is not None:
            return self.evaluate(single)
        segments = parse_expressions(value, self.notation_begin, self.notation_end)
        if not any(seg.is_expression for seg in segments):
            return value
        parts = []
        for seg in segments:
            if not seg.is_expression:
                parts.append(seg.text)
                continue
            result = self.evaluate(seg.text)
            if result is not None:
                parts.append(str(result))
        return "".join(parts)


class RunVar:
    """Scoped binding of a loop variable (and optionally its index).

    Whatever the names held before is restored on exit, or the names are
    removed if they were unbound, on every exit path::

        with RunVar(context, "e", "idx") as run_var:
            run_var.set(item, i)
            area.apply_at(target, context)
    """

    def __init__(self, context: Context, name: str, index_name: str = None):
        self.context = context
        self.name = name
        self.index_name = index_name or None
        self._old_value = context._run_vars.get(name, _MISSING)
        self._old_index = (
            context._run_vars.get(index_name, _MISSING) if self.index_name else _MISSING
        )
        self._closed = False

    def set(self, value, index=None):
        self.context.set_run_var(self.name, value)
        if self.index_name and index is not None:
            self.context.set_run_var(self.index_name, index)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._restore(self.name, self._old_value)
        if self.index_name:
            self._restore(self.index_name, self._old_index)

    def _restore(self, name, old):
        if old is _MISSING:
            self.context.remove_run_var(name)
        else:
            self.context.set_run_var(name, old)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
