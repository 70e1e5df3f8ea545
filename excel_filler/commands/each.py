"""
The ``each`` command: repeat an area once per item of a collection.

Order of operations on the collection: ``select`` filters first, then
``groupBy`` partitions into GroupData, then ``orderBy`` sorts.  Items are
laid out downwards (default) or to the right, or one sheet per item in
multisheet mode.
"""

import datetime
import logging
from collections.abc import Iterator, Mapping, Sequence, Set
from dataclasses import dataclass, field
from decimal import Decimal
from functools import cmp_to_key
from numbers import Number
from typing import Any

import numpy as np
import pandas as pd

from excel_filler.cell_ref import ZERO_SIZE, CellRef, Size, safe_sheet_name
from excel_filler.commands.base import Command, require
from excel_filler.context import RunVar
from excel_filler.errors import ExpressionError, FillStateError, TemplateStructureError

logger = logging.getLogger(__name__)

DOWN = "DOWN"
RIGHT = "RIGHT"
DIRECTIONS = (DOWN, RIGHT)


@dataclass
class GroupData:
    """One group of a ``groupBy``: ``item`` is the first member, ``items`` all of them."""
    item: Any
    items: list = field(default_factory=list)


@dataclass(frozen=True)
class OrderSpec:
    field: str
    descending: bool = False


# ---------------------------------------------------------------------------
# Collection helpers
# ---------------------------------------------------------------------------

def to_item_list(value):
    """Turn an ``items`` result into a list; None means "no items".

    Ordered sequences, iterators, numpy arrays and pandas objects are
    accepted (a DataFrame yields one dict per row).  Anything else raises
    TypeError.
    """
    if value is None:
        return []
    if isinstance(value, pd.DataFrame):
        return value.to_dict("records")
    if isinstance(value, (pd.Series, np.ndarray)):
        return value.tolist()
    if isinstance(value, (str, bytes, bytearray, Mapping, Set)):
        raise TypeError(f"cannot iterate over {type(value).__name__}")
    if isinstance(value, (Sequence, Iterator)):
        return list(value)
    raise TypeError(f"cannot iterate over {type(value).__name__}")


def get_field(item, path: str):
    """Read a (possibly dotted) field from a mapping or object; missing is None."""
    value = item
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def _strip_var_prefix(path: str, var: str) -> str:
    prefix = var + "."
    return path[len(prefix):] if path.startswith(prefix) else path


def _is_number(value) -> bool:
    return isinstance(value, (Number, Decimal)) and not isinstance(value, bool)


def compare_values(a, b) -> int:
    """Three-way compare: None first, numbers numerically, else by string form."""
    if a is None and b is None:
        return 0
    if a is None:
        return -1
    if b is None:
        return 1
    if _is_number(a) and _is_number(b):
        return (a > b) - (a < b)
    if (isinstance(a, (datetime.date, datetime.datetime))
            and type(a) is type(b)):
        return (a > b) - (a < b)
    sa, sb = str(a), str(b)
    return (sa > sb) - (sa < sb)


def parse_order_by(spec: str, var: str):
    """``"e.Name ASC, e.Age DESC"`` -> [OrderSpec("Name"), OrderSpec("Age", True)]."""
    specs = []
    for part in (spec or "").split(","):
        tokens = part.split()
        if not tokens:
            continue
        descending = len(tokens) > 1 and tokens[1].upper() == "DESC"
        specs.append(OrderSpec(_strip_var_prefix(tokens[0], var), descending))
    return specs


def sort_items(items, specs):
    """Stable multi-key sort."""
    if not specs or len(items) <= 1:
        return list(items)

    def compare(a, b):
        for spec in specs:
            result = compare_values(get_field(a, spec.field), get_field(b, spec.field))
            if spec.descending:
                result = -result
            if result:
                return result
        return 0

    return sorted(items, key=cmp_to_key(compare))


def group_items(items, key_field: str, group_order: str = ""):
    """Partition *items* by *key_field*, keeping first-seen key order.

    ``group_order`` may contain ASC/DESC and IGNORECASE (or IGNORE_CASE).
    """
    groups = []
    index = {}
    keys = []
    for item in items:
        key = get_field(item, key_field)
        key_text = str(key)
        if key_text in index:
            groups[index[key_text]].items.append(item)
        else:
            index[key_text] = len(groups)
            groups.append(GroupData(item, [item]))
            keys.append(key)

    if group_order:
        order = group_order.upper()
        descending = "DESC" in order
        ignore_case = "IGNORECASE" in order or "IGNORE_CASE" in order

        def compare(a, b):
            ka, kb = a[0], b[0]
            if ignore_case:
                sa, sb = str(ka).lower(), str(kb).lower()
                result = (sa > sb) - (sa < sb)
            else:
                result = compare_values(ka, kb)
            return -result if descending else result

        pairs = sorted(zip(keys, groups), key=cmp_to_key(compare))
        groups = [group for _, group in pairs]
    return groups


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

class EachCommand(Command):
    name = "each"
    expression_attrs = ("items", "select", "multisheet")

    def __init__(self, items, var, var_index=None, direction=DOWN, select=None,
                 group_by=None, group_order=None, order_by=None, multisheet=None):
        super().__init__()
        self.items = items
        self.var = var
        self.var_index = var_index or None
        self.direction = (direction or DOWN).upper()
        self.select = select or None
        self.group_by = group_by or None
        self.group_order = group_order or None
        self.order_by = order_by or None
        self.multisheet = multisheet or None

    @classmethod
    def from_attrs(cls, attrs):
        command = cls(
            items=require(attrs, "items", cls.name),
            var=require(attrs, "var", cls.name),
            var_index=attrs.get("varIndex"),
            direction=attrs.get("direction"),
            select=attrs.get("select"),
            group_by=attrs.get("groupBy"),
            group_order=attrs.get("groupOrder"),
            order_by=attrs.get("orderBy"),
            multisheet=attrs.get("multisheet"),
        )
        if not command.var.isidentifier():
            raise TemplateStructureError(
                f"loop variable must be a name, got {command.var!r}",
                command=cls.name, attribute="var",
            )
        return command

    def describe_attrs(self):
        attrs = {"items": self.items, "var": self.var}
        if self.var_index:
            attrs["varIndex"] = self.var_index
        if self.direction != DOWN:
            attrs["direction"] = self.direction
        for key, value in (("select", self.select), ("groupBy", self.group_by),
                           ("groupOrder", self.group_order), ("orderBy", self.order_by),
                           ("multisheet", self.multisheet)):
            if value:
                attrs[key] = value
        return attrs

    # ---- collection pipeline ----

    def _evaluate(self, context, attribute, expression):
        try:
            return context.evaluate(expression)
        except ExpressionError as err:
            raise err.locate(command=self.name, attribute=attribute)

    def resolve_items(self, context):
        """Evaluate ``items`` and apply select, groupBy and orderBy."""
        value = self._evaluate(context, "items", self.items)
        try:
            items = to_item_list(value)
        except TypeError as err:
            raise ExpressionError(
                f"items {self.items!r} is not an ordered sequence: {err}",
                expression=self.items, command=self.name, attribute="items",
            ) from err
        if not items:
            return []
        if self.select:
            items = self._filter(items, context)
            if not items:
                return []
        if self.group_by:
            items = group_items(items, _strip_var_prefix(self.group_by, self.var),
                                self.group_order or "")
        if self.order_by:
            items = sort_items(items, parse_order_by(self.order_by, self.var))
        return items

    def _filter(self, items, context):
        selected = []
        for item in items:
            with RunVar(context, self.var) as run_var:
                run_var.set(item)
                try:
                    keep = context.is_condition_true(self.select)
                except ExpressionError as err:
                    raise err.locate(command=self.name, attribute="select")
            if keep:
                selected.append(item)
        return selected

    # ---- execution ----

    def apply_at(self, target, context, transformer) -> Size:
        items = self.resolve_items(context)
        if not items:
            return ZERO_SIZE
        if self.area is None:
            raise FillStateError("each command has no area", command=self.name)
        if self.multisheet:
            return self._apply_multisheet(target, context, transformer, items)

        right = self.direction == RIGHT
        width = height = 0
        for index, item in enumerate(items):
            if right:
                item_target = CellRef(target.sheet, target.row, target.col + width)
            else:
                item_target = CellRef(target.sheet, target.row + height, target.col)
            with RunVar(context, self.var, self.var_index) as run_var:
                run_var.set(item, index)
                size = self.area.apply_at(item_target, context)
            if right:
                width += size.width
                height = max(height, size.height)
            else:
                height += size.height
                width = max(width, size.width)
        return Size(width, height)

    def _apply_multisheet(self, target, context, transformer, items) -> Size:
        value = self._evaluate(context, "multisheet", self.multisheet)
        try:
            names = [str(name) for name in to_item_list(value)]
        except TypeError as err:
            raise ExpressionError(
                f"multisheet {self.multisheet!r} must be a list of sheet names: {err}",
                expression=self.multisheet, command=self.name, attribute="multisheet",
            ) from err

        template_sheet = target.sheet
        existing = set(transformer.sheet_names)
        previous = template_sheet
        last_size = ZERO_SIZE
        for index, item in enumerate(items):
            raw_name = names[index] if index < len(names) else f"{template_sheet}_{index + 1}"
            sheet = safe_sheet_name(raw_name, existing)
            existing.add(sheet)
            transformer.copy_sheet(template_sheet, sheet, after=previous)
            previous = sheet
            with RunVar(context, self.var, self.var_index) as run_var:
                run_var.set(item, index)
                last_size = self.area.apply_at(CellRef(sheet, target.row, target.col), context)
        logger.info(f"Multisheet: {len(items)} sheets generated from '{template_sheet}'")
        transformer.retire_template_sheet(template_sheet)
        return last_size
