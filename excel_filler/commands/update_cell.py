"""
The ``updateCell`` command: hand every written cell to a user callback.

The ``updater`` attribute names a context object implementing
``update_cell_data(cell_data, target, context)``.  It receives a CellData
describing the output cell and may change ``value`` or ``formula``.
"""

from excel_filler.cell_ref import Size
from excel_filler.commands.base import Command, require
from excel_filler.errors import ExpressionError


class CellDataUpdater:
    """Base class for ``updateCell`` callbacks."""

    def update_cell_data(self, cell_data, target, context):
        raise NotImplementedError


class UpdateCellCommand(Command):
    name = "updateCell"

    def __init__(self, updater: str):
        super().__init__()
        self.updater = updater

    @classmethod
    def from_attrs(cls, attrs):
        return cls(require(attrs, "updater", cls.name))

    def describe_attrs(self):
        return {"updater": self.updater}

    def _resolve_updater(self, context):
        updater = context.get_var(self.updater)
        if updater is None:
            raise ExpressionError(
                f"updater {self.updater!r} not found in context",
                expression=self.updater, command=self.name, attribute="updater",
            )
        if not callable(getattr(updater, "update_cell_data", None)):
            raise ExpressionError(
                f"{self.updater!r} has no update_cell_data method",
                expression=self.updater, command=self.name, attribute="updater",
            )
        return updater

    def apply_at(self, target, context, transformer) -> Size:
        updater = self._resolve_updater(context)
        size = self._apply_area(target, context) if self.area is not None else Size(1, 1)

        for row in range(size.height):
            for col in range(size.width):
                ref = target.offset(row, col)
                cell_data = transformer.read_output_cell(ref)
                before = (cell_data.value, cell_data.formula)
                updater.update_cell_data(cell_data, ref, context)
                if (cell_data.value, cell_data.formula) == before:
                    continue
                if cell_data.formula:
                    transformer.set_formula(ref, cell_data.formula)
                else:
                    transformer.set_cell_value(ref, cell_data.value)
        return size
