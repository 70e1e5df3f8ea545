"""
The ``grid`` command: a header row followed by one row per data item.

    jx:grid(headers="headers" data="rows" props="name,age" lastCell="B2")

The command's own rectangle is the styling template: its first row styles
the headers, its second row (or the first, for a one-row rectangle) the body.
"""

from collections.abc import Mapping, Sequence

from excel_filler.cell_ref import ZERO_SIZE, CellRef, Size
from excel_filler.commands.base import Command, require
from excel_filler.commands.each import get_field, to_item_list
from excel_filler.errors import ExpressionError


def row_values(item, props):
    """Cell values for one data item: sequences as-is, mappings and objects by props."""
    if item is None:
        return []
    if isinstance(item, Sequence) and not isinstance(item, (str, bytes, bytearray)):
        return list(item)
    if props:
        return [get_field(item, prop) for prop in props]
    if isinstance(item, Mapping):
        return list(item.values())
    return [item]


class GridCommand(Command):
    name = "grid"
    expression_attrs = ("headers", "data")

    def __init__(self, headers: str, data: str, props: str = None):
        super().__init__()
        self.headers = headers
        self.data = data
        self.props = [p.strip() for p in (props or "").split(",") if p.strip()]

    @classmethod
    def from_attrs(cls, attrs):
        return cls(
            require(attrs, "headers", cls.name),
            require(attrs, "data", cls.name),
            attrs.get("props"),
        )

    def describe_attrs(self):
        attrs = {"headers": self.headers, "data": self.data}
        if self.props:
            attrs["props"] = ",".join(self.props)
        return attrs

    def _evaluate_list(self, context, attribute, expression):
        try:
            return to_item_list(context.evaluate(expression))
        except ExpressionError as err:
            raise err.locate(command=self.name, attribute=attribute)
        except TypeError as err:
            raise ExpressionError(
                f"{attribute} {expression!r} is not a list: {err}",
                expression=expression, command=self.name, attribute=attribute,
            ) from err

    def _style(self, transformer, template_row, col):
        if self.area is None:
            return None
        start = self.area.start_cell
        row = min(template_row, self.area.size.height - 1)
        col = min(col, self.area.size.width - 1)
        cell_data = transformer.get_cell_data(CellRef(start.sheet, start.row + row, start.col + col))
        return cell_data.style if cell_data is not None else None

    def apply_at(self, target, context, transformer) -> Size:
        headers = self._evaluate_list(context, "headers", self.headers)
        rows = self._evaluate_list(context, "data", self.data)
        if not headers:
            return ZERO_SIZE

        for col, header in enumerate(headers):
            transformer.set_cell_value(target.offset(0, col), header,
                                       style=self._style(transformer, 0, col))
        for row_index, item in enumerate(rows, start=1):
            for col, value in enumerate(row_values(item, self.props)[:len(headers)]):
                transformer.set_cell_value(target.offset(row_index, col), value,
                                           style=self._style(transformer, 1, col))
        return Size(len(headers), 1 + len(rows))
