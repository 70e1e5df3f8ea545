"""
Area replay engine.

An Area is a rectangle of the template.  Replaying it at a target cell copies
its static cells and runs the commands bound inside it; commands may grow or
shrink the rows they occupy, and everything after them shifts accordingly.
"""

import logging
from dataclasses import dataclass
from typing import Any

from excel_filler.cell_ref import AreaRef, CellRef, Size
from excel_filler.context import COL_VAR, ROW_VAR
from excel_filler.errors import FillStateError, TemplateError

logger = logging.getLogger(__name__)


class AreaListener:
    """Hook notified around every cell the engine writes.

    ``before_transform_cell`` returning False skips the default copy of that
    cell; ``after_transform_cell`` is still called.
    """

    def before_transform_cell(self, src, target, context, transformer) -> bool:
        return True

    def after_transform_cell(self, src, target, context, transformer):
        pass


@dataclass
class CommandBinding:
    """Where a command sits inside its parent area (template coordinates)."""
    command: Any
    start_ref: CellRef
    size: Size


class Area:
    def __init__(self, start_cell: CellRef, size: Size, transformer=None):
        self.start_cell = start_cell
        self.size = size
        self.transformer = transformer
        self.bindings = []
        self.listeners = []

    @property
    def last_cell(self) -> CellRef:
        return self.start_cell.offset(self.size.height - 1, self.size.width - 1)

    @property
    def area_ref(self) -> AreaRef:
        return AreaRef(self.start_cell, self.last_cell)

    def add_command(self, command, start_ref: CellRef, size: Size):
        self.bindings.append(CommandBinding(command, start_ref, size))

    def sort_bindings(self):
        self.bindings.sort(key=lambda b: (b.start_ref.row, b.start_ref.col))

    def contains(self, ref: CellRef) -> bool:
        return (ref.sheet == self.start_cell.sheet
                and self.start_cell.row <= ref.row < self.start_cell.row + self.size.height
                and self.start_cell.col <= ref.col < self.start_cell.col + self.size.width)

    def __repr__(self):
        return f"Area({self.area_ref} {self.size}, {len(self.bindings)} commands)"

    # ------------------------------------------------------------------

    def apply_at(self, target: CellRef, context) -> Size:
        """Replay this area with its top-left at *target*; returns the size written."""
        if self.transformer is None:
            raise FillStateError("area has no transformer", cell=self.start_cell)
        if not self.bindings:
            return self._transform_static_area(target, context)
        return self._process_with_commands(target, context)

    def _transform_static_area(self, target, context) -> Size:
        for row in range(self.size.height):
            for col in range(self.size.width):
                src = self.start_cell.offset(row, col)
                dst = CellRef(target.sheet, target.row + row, target.col + col)
                self._transform_cell(src, dst, context)
        return self.size

    def _process_with_commands(self, target, context) -> Size:
        total_height = 0
        max_width = self.size.width
        current_row = target.row
        prev_end_row = self.start_cell.row  # source row after the previous binding

        for binding in self.bindings:
            static_rows = binding.start_ref.row - prev_end_row
            if static_rows > 0:
                self._transform_rows(prev_end_row, static_rows, target.sheet,
                                     current_row, target.col, context)
                current_row += static_rows
                total_height += static_rows

            col_start = binding.start_ref.col - self.start_cell.col
            col_end = col_start + binding.size.width
            source_rows = binding.size.height
            self._transform_rows(binding.start_ref.row, source_rows, target.sheet,
                                 current_row, target.col, context,
                                 exclude=(col_start, col_end))

            cmd_target = CellRef(target.sheet, current_row, target.col + col_start)
            command = binding.command
            try:
                cmd_size = command.apply_at(cmd_target, context, self.transformer)
            except TemplateError as err:
                raise err.locate(cell=binding.start_ref, command=command.name)
            logger.debug(f"{command.name} at {cmd_target} -> {cmd_size}")

            rows_consumed = cmd_size.height
            has_static_cols = col_start > 0 or col_end < self.size.width
            if has_static_cols and rows_consumed < source_rows:
                rows_consumed = source_rows
            current_row += rows_consumed
            total_height += rows_consumed
            max_width = max(max_width, col_start + cmd_size.width)

            prev_end_row = binding.start_ref.row + binding.size.height

        remaining = self.start_cell.row + self.size.height - prev_end_row
        if remaining > 0:
            self._transform_rows(prev_end_row, remaining, target.sheet,
                                 current_row, target.col, context)
            total_height += remaining

        return Size(max_width, total_height)

    def _transform_rows(self, src_start_row, row_count, target_sheet, target_row,
                        target_col, context, exclude=None):
        for row in range(row_count):
            src_row = src_start_row + row
            for col in range(self.size.width):
                if exclude is not None and exclude[0] <= col < exclude[1]:
                    continue
                src = CellRef(self.start_cell.sheet, src_row, self.start_cell.col + col)
                dst = CellRef(target_sheet, target_row + row, target_col + col)
                self._transform_cell(src, dst, context)

    def _transform_cell(self, src, target, context):
        context.set_run_var(ROW_VAR, target.row + 1)
        context.set_run_var(COL_VAR, target.col)

        for listener in self.listeners:
            if not listener.before_transform_cell(src, target, context, self.transformer):
                for other in self.listeners:
                    other.after_transform_cell(src, target, context, self.transformer)
                return

        self.transformer.transform(src, target, context)

        for listener in self.listeners:
            listener.after_transform_cell(src, target, context, self.transformer)

    def clear_cells(self):
        """Blank every template cell of this area in the output."""
        if self.transformer is None:
            return
        for row in range(self.size.height):
            for col in range(self.size.width):
                self.transformer.clear_cell(self.start_cell.offset(row, col))
