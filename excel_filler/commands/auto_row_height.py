"""The ``autoRowHeight`` command: replay the inner area and let the viewer fit its rows."""

from excel_filler.cell_ref import ZERO_SIZE, Size
from excel_filler.commands.base import Command


class AutoRowHeightCommand(Command):
    name = "autoRowHeight"

    @classmethod
    def from_attrs(cls, attrs):
        return cls()

    def apply_at(self, target, context, transformer) -> Size:
        if self.area is None:
            return ZERO_SIZE
        size = self.area.apply_at(target, context)
        for row in range(size.height):
            transformer.set_row_auto_height(target.sheet, target.row + row)
        return size
