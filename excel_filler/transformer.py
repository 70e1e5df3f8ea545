"""
openpyxl-backed document transformer.

The whole template is read into memory (values, formulas, comments, styles,
hyperlinks, merged ranges, column widths and row heights) before anything is
written, so template cells are always read from the snapshot even after the
output has overwritten them in the workbook.
"""

import datetime
import io
import logging
import math
from collections import defaultdict
from copy import copy
from decimal import Decimal

import numpy as np
import pandas as pd
from openpyxl import load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE, MergedCell
from openpyxl.drawing.image import Image
from openpyxl.utils import get_column_letter

from excel_filler.cell_data import CellData, CellType, detect_cell_type
from excel_filler.cell_ref import AreaRef, CellRef
from excel_filler.errors import ExpressionError
from excel_filler.expression import HyperlinkValue

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "jx:"

_CELL_TYPES = (str, int, float, bool, Decimal,
               datetime.datetime, datetime.date, datetime.time, datetime.timedelta)


def normalize_value(value):
    """Convert *value* into something openpyxl can store in a cell."""
    if value is None or isinstance(value, (HyperlinkValue,)):
        return value
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, _CELL_TYPES):
        return value
    return str(value)


class Transformer:
    """Reads template cells and writes output cells of one openpyxl workbook."""

    def __init__(self, workbook):
        self.workbook = workbook
        self._cells = {}                      # sheet -> {(row, col): CellData}
        self._column_widths = {}              # sheet -> {col: width}
        self._row_heights = {}                # sheet -> {row: height}
        self._merged = {}                     # sheet -> {(row, col): (height, width)}
        self._target_refs = defaultdict(list)  # source CellRef -> [target CellRef]
        self._deleted_sheets = set()
        self._written = set()                 # output refs written outside transform()
        self._added_images = []               # (worksheet, image) added by the engine
        self.template_sheet_policy = "delete"  # what happens to a multisheet template
        self.retired_sheets = []
        self._read_all_cell_data()

    @classmethod
    def open(cls, source):
        """Load a template from a path, a binary stream or raw bytes."""
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        logger.info(f"Opening template: {source if isinstance(source, str) else '<stream>'}")
        return cls(load_workbook(source))

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def _read_all_cell_data(self):
        for ws in self.workbook.worksheets:
            sheet = ws.title
            cells = {}
            widths = {}
            heights = {}

            for dim in ws.column_dimensions.values():
                if dim.width and dim.min:
                    for col in range(dim.min, (dim.max or dim.min) + 1):
                        widths[col - 1] = dim.width

            for row_num, dim in ws.row_dimensions.items():
                if dim.height:
                    heights[row_num - 1] = dim.height

            self._merged[sheet] = {
                (rng.min_row - 1, rng.min_col - 1): (rng.max_row - rng.min_row + 1,
                                                     rng.max_col - rng.min_col + 1)
                for rng in ws.merged_cells.ranges
            }

            for row in ws.iter_rows():
                for cell in row:
                    if isinstance(cell, MergedCell):
                        continue
                    if cell.value is None and cell.comment is None and not cell.has_style:
                        continue
                    ref = CellRef(sheet, cell.row - 1, cell.column - 1)
                    cell_data = CellData(ref=ref, style=copy(cell._style))
                    value = cell.value
                    if cell.data_type == "f" and isinstance(value, str):
                        cell_data.formula = value[1:] if value.startswith("=") else value
                        cell_data.cell_type = CellType.FORMULA
                    elif hasattr(value, "text") and cell.data_type == "f":
                        # ArrayFormula keeps its text on .text
                        cell_data.formula = value.text.lstrip("=")
                        cell_data.cell_type = CellType.FORMULA
                    else:
                        cell_data.value = value
                        cell_data.cell_type = detect_cell_type(value)
                    if cell.comment is not None:
                        cell_data.comment = cell.comment.text
                    if cell.hyperlink is not None:
                        cell_data.hyperlink = cell.hyperlink.target
                    cells[(ref.row, ref.col)] = cell_data

            self._cells[sheet] = cells
            self._column_widths[sheet] = widths
            self._row_heights[sheet] = heights
            logger.debug(f"  Sheet '{sheet}': {len(cells)} template cells")

    def get_cell_data(self, ref: CellRef):
        return self._cells.get(ref.sheet, {}).get((ref.row, ref.col))

    def template_cells(self):
        for sheet in self._cells:
            for key in sorted(self._cells[sheet]):
                yield self._cells[sheet][key]

    def commented_cells(self):
        """All template cells carrying a comment, in sheet then row/column order."""
        result = []
        for sheet in self._cells:
            for key in sorted(self._cells[sheet]):
                cell_data = self._cells[sheet][key]
                if cell_data.comment:
                    result.append(cell_data)
        return result

    def formula_cells(self):
        result = []
        for sheet in self._cells:
            for key in sorted(self._cells[sheet]):
                cell_data = self._cells[sheet][key]
                if cell_data.is_formula:
                    result.append(cell_data)
        return result

    @property
    def sheet_names(self):
        return list(self.workbook.sheetnames)

    def column_width(self, sheet: str, col: int):
        return self._column_widths.get(sheet, {}).get(col)

    def row_height(self, sheet: str, row: int):
        return self._row_heights.get(sheet, {}).get(row)

    # ------------------------------------------------------------------
    # Target history
    # ------------------------------------------------------------------

    def target_refs(self, src: CellRef):
        return self._target_refs.get(src, [])

    def reset_target_refs(self):
        self._target_refs.clear()
        for cells in self._cells.values():
            for cell_data in cells.values():
                cell_data.reset()

    def _record_target(self, cell_data, src, target):
        cell_data.add_target(target)
        self._target_refs[src].append(target)

    # ------------------------------------------------------------------
    # Cell writes
    # ------------------------------------------------------------------

    def _worksheet(self, sheet: str):
        if sheet in self._deleted_sheets:
            logger.debug(f"Skipping write to deleted sheet '{sheet}'")
            return None
        if sheet not in self.workbook.sheetnames:
            logger.warning(f"Skipping write to missing sheet '{sheet}'")
            return None
        return self.workbook[sheet]

    def _output_cell(self, ref: CellRef):
        ws = self._worksheet(ref.sheet)
        if ws is None:
            return None
        cell = ws.cell(row=ref.row + 1, column=ref.col + 1)
        if isinstance(cell, MergedCell):
            return None
        return cell

    def transform(self, src: CellRef, target: CellRef, context, update_row_height=True):
        """Copy template cell *src* to *target*, evaluating any expressions."""
        cell_data = self.get_cell_data(src)
        ws = self._worksheet(target.sheet)
        if ws is None:
            return
        out = ws.cell(row=target.row + 1, column=target.col + 1)
        if isinstance(out, MergedCell):
            return
        if cell_data is None:
            if out.value is not None:
                out.value = None
            return

        if cell_data.style is not None:
            out._style = copy(cell_data.style)

        width = self.column_width(src.sheet, src.col)
        if width:
            ws.column_dimensions[get_column_letter(target.col + 1)].width = width
        if update_row_height:
            height = self.row_height(src.sheet, src.row)
            if height:
                ws.row_dimensions[target.row + 1].height = height

        merged = self._merged.get(src.sheet, {}).get((src.row, src.col))

        if cell_data.is_formula:
            formula = cell_data.formula
            if context.has_expression(formula):
                try:
                    formula = str(context.evaluate_cell_value(formula))
                except ExpressionError as err:
                    raise err.locate(cell=src)
                cell_data.eval_formulas[target] = formula
            out.value = "=" + formula
        else:
            value = cell_data.value
            if context.has_expression(value):
                try:
                    value = context.evaluate_cell_value(value)
                except ExpressionError as err:
                    raise err.locate(cell=src)
                cell_data.eval_result = value
                self._write_value(out, value)
            else:
                out.value = value
                if cell_data.hyperlink:
                    out.hyperlink = cell_data.hyperlink

        if merged and merged != (1, 1):
            height, width = merged
            ws.merge_cells(start_row=target.row + 1, start_column=target.col + 1,
                           end_row=target.row + height, end_column=target.col + width)

        self._record_target(cell_data, src, target)

    def _write_value(self, cell, value):
        value = normalize_value(value)
        if isinstance(value, HyperlinkValue):
            cell.value = str(value)
            cell.hyperlink = value.url
            return
        if isinstance(value, str):
            value = ILLEGAL_CHARACTERS_RE.sub("", value)
            cell.value = value
            if value.startswith("="):
                # keep expression results literal, never as formulas
                cell.data_type = "s"
            return
        cell.value = value

    def read_output_cell(self, ref: CellRef) -> CellData:
        """CellData describing what the output currently holds at *ref*."""
        cell_data = CellData(ref=ref)
        ws = self._worksheet(ref.sheet)
        if ws is None:
            return cell_data
        cell = ws._cells.get((ref.row + 1, ref.col + 1))
        if cell is None or isinstance(cell, MergedCell):
            return cell_data
        cell_data.style = copy(cell._style)
        if cell.data_type == "f" and isinstance(cell.value, str):
            cell_data.formula = cell.value.lstrip("=")
            cell_data.cell_type = CellType.FORMULA
        else:
            cell_data.value = cell.value
            cell_data.cell_type = detect_cell_type(cell.value)
        if cell.hyperlink is not None:
            cell_data.hyperlink = cell.hyperlink.target
        return cell_data

    def set_cell_value(self, ref: CellRef, value, style=None):
        cell = self._output_cell(ref)
        if cell is None:
            return
        self._written.add(ref)
        if style is not None:
            cell._style = copy(style)
        self._write_value(cell, value)

    def set_formula(self, ref: CellRef, formula: str):
        cell = self._output_cell(ref)
        if cell is None:
            return
        cell.value = "=" + formula.lstrip("=")

    def clear_cell(self, ref: CellRef):
        """Blank a cell's content; its style is kept."""
        ws = self._worksheet(ref.sheet)
        if ws is None:
            return
        cell = ws._cells.get((ref.row + 1, ref.col + 1))
        if cell is None or isinstance(cell, MergedCell):
            return
        cell.value = None
        cell.hyperlink = None

    def clear_targets(self):
        """Blank every output cell and remove every image written by the last fill."""
        written = set(self._written)
        for targets in self._target_refs.values():
            written.update(targets)
        for ref in sorted(written):
            ws = self._worksheet(ref.sheet)
            if ws is None:
                continue
            for rng in list(ws.merged_cells.ranges):
                if rng.min_row == ref.row + 1 and rng.min_col == ref.col + 1:
                    ws.unmerge_cells(rng.coord)
            self.clear_cell(ref)
        for ws, image in self._added_images:
            if image in ws._images:
                ws._images.remove(image)
        self._written.clear()
        self._added_images.clear()
        logger.debug(f"Cleared {len(written)} cells of the previous fill")

    def clear_area(self, area_ref: AreaRef):
        """Blank every template value inside *area_ref* and undo its merges."""
        ws = self._worksheet(area_ref.sheet)
        if ws is None:
            return
        for rng in list(ws.merged_cells.ranges):
            if area_ref.contains(CellRef(area_ref.sheet, rng.min_row - 1, rng.min_col - 1)):
                ws.unmerge_cells(rng.coord)
        for row in range(area_ref.first.row, area_ref.last.row + 1):
            for col in range(area_ref.first.col, area_ref.last.col + 1):
                self.clear_cell(CellRef(area_ref.sheet, row, col))

    def remove_command_comments(self, prefix=COMMAND_PREFIX):
        """Drop annotation comments from every sheet of the output."""
        removed = 0
        for ws in self.workbook.worksheets:
            for row in ws.iter_rows():
                for cell in row:
                    if isinstance(cell, MergedCell) or cell.comment is None:
                        continue
                    if prefix in cell.comment.text:
                        cell.comment = None
                        removed += 1
        logger.debug(f"Removed {removed} annotation comments")

    # ------------------------------------------------------------------
    # Sheet operations
    # ------------------------------------------------------------------

    def copy_sheet(self, src: str, dst: str, after: str = None):
        """Duplicate sheet *src* as *dst*, placed right after *after* (default *src*)."""
        source = self.workbook[src]
        copied = self.workbook.copy_worksheet(source)
        copied.title = dst
        anchor = self.workbook[after or src]
        offset = self.workbook.index(anchor) + 1 - self.workbook.index(copied)
        if offset:
            self.workbook.move_sheet(copied, offset=offset)
        self._deleted_sheets.discard(dst)
        logger.debug(f"Copied sheet '{src}' to '{dst}'")

    def delete_sheet(self, name: str):
        if name not in self.workbook.sheetnames:
            return
        self.workbook.remove(self.workbook[name])
        self._deleted_sheets.add(name)
        self._ensure_visible_active()
        logger.debug(f"Deleted sheet '{name}'")

    def set_hidden(self, name: str, hidden: bool = True):
        ws = self.workbook[name]
        ws.sheet_state = "hidden" if hidden else "visible"
        self._ensure_visible_active()

    def retire_template_sheet(self, name: str):
        """Apply ``template_sheet_policy`` to a sheet fully expanded into copies."""
        if name in self.retired_sheets:
            return
        self.retired_sheets.append(name)
        if self.template_sheet_policy == "keep":
            return
        if self.template_sheet_policy == "hide":
            self.set_hidden(name)
        else:
            self.delete_sheet(name)

    def _ensure_visible_active(self):
        sheets = self.workbook.worksheets
        if not sheets:
            return
        active = self.workbook.active
        if active is not None and active in sheets and active.sheet_state == "visible":
            return
        for index, ws in enumerate(sheets):
            if ws.sheet_state == "visible":
                self.workbook.active = index
                return

    # ------------------------------------------------------------------
    # Merge, image, row height, workbook properties
    # ------------------------------------------------------------------

    def merge_cells(self, first: CellRef, last: CellRef):
        ws = self._worksheet(first.sheet)
        if ws is None:
            return
        ws.merge_cells(start_row=first.row + 1, start_column=first.col + 1,
                       end_row=last.row + 1, end_column=last.col + 1)

    def add_image(self, ref: CellRef, data: bytes, image_type="PNG", scale_x=1.0, scale_y=1.0):
        ws = self._worksheet(ref.sheet)
        if ws is None:
            return
        image = Image(io.BytesIO(data))
        if image.format and image.format.upper() != image_type.upper():
            logger.debug(f"Image at {ref} declared {image_type} but is {image.format.upper()}")
        image.width = image.width * scale_x
        image.height = image.height * scale_y
        ws.add_image(image, ref.cell_name)
        self._added_images.append((ws, image))

    def set_row_auto_height(self, sheet: str, row: int):
        ws = self._worksheet(sheet)
        if ws is None:
            return
        ws.row_dimensions[row + 1].height = None

    def set_recalculate_on_open(self, recalc: bool = True):
        self.workbook.calculation.fullCalcOnLoad = recalc

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write(self, stream):
        self.workbook.save(stream)

    def save(self, path: str):
        self.workbook.save(path)
        logger.info(f"Saved: {path}")

    def close(self):
        self.workbook.close()
