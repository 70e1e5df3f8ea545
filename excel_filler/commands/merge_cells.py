"""The ``mergeCells`` command: replay the inner area, then merge a block at the target."""

import logging

from excel_filler.cell_ref import Size
from excel_filler.commands.base import Command
from excel_filler.errors import ExpressionError, TemplateStructureError

logger = logging.getLogger(__name__)


def _int_attr(attrs, key, command):
    text = (attrs.get(key) or "").strip()
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        raise TemplateStructureError(
            f"{key} must be an integer, got {text!r}", command=command, attribute=key
        )


class MergeCellsCommand(Command):
    name = "mergeCells"
    expression_attrs = ("cols", "rows")

    def __init__(self, cols: str = None, rows: str = None, min_cols: int = 0, min_rows: int = 0):
        super().__init__()
        self.cols = cols or None
        self.rows = rows or None
        self.min_cols = min_cols
        self.min_rows = min_rows

    @classmethod
    def from_attrs(cls, attrs):
        return cls(
            attrs.get("cols"),
            attrs.get("rows"),
            _int_attr(attrs, "minCols", cls.name),
            _int_attr(attrs, "minRows", cls.name),
        )

    def describe_attrs(self):
        attrs = {}
        if self.cols:
            attrs["cols"] = self.cols
        if self.rows:
            attrs["rows"] = self.rows
        return attrs

    def _dimension(self, context, attribute, expression, default):
        if not expression:
            return max(default, 1)
        text = expression.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            value = context.evaluate(text)
        except ExpressionError as err:
            raise err.locate(command=self.name, attribute=attribute)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ExpressionError(
                f"{attribute} {expression!r} evaluated to {value!r}, expected an integer",
                expression=expression, command=self.name, attribute=attribute,
            )

    def apply_at(self, target, context, transformer) -> Size:
        replayed = self._apply_area(target, context)
        cols = self._dimension(context, "cols", self.cols, replayed.width)
        rows = self._dimension(context, "rows", self.rows, replayed.height)

        if cols < self.min_cols or rows < self.min_rows:
            logger.debug(f"mergeCells at {target}: {cols}x{rows} below minimum, not merged")
            return Size(cols, rows)
        if cols <= 1 and rows <= 1:
            return Size(1, 1)

        transformer.merge_cells(target, target.offset(rows - 1, cols - 1))
        return Size(cols, rows)
