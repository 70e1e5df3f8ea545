"""
Formula reference relocation.

After every area has been replayed, each copied formula is rewritten so
that its cell references point at where the referenced template cells
ended up.  A reference to a cell that was repeated becomes a range (when the
copies are contiguous) or a list of references; a reference to a cell inside
the area that produced no output becomes the cell's default value.
"""

import logging
import re

from excel_filler.cell_data import FormulaStrategy
from excel_filler.cell_ref import CellRef, col_to_name, name_to_col, quote_sheet_name

logger = logging.getLogger(__name__)

DEFAULT_VALUE = "0"
MAX_FUNCTION_ARGS = 255

_CELL = r"\$?[A-Za-z]{1,3}\$?\d+"
_SHEET = r"'(?:[^']|'')+'|[A-Za-z_][\w.]*"

REF_PATTERN = re.compile(
    r"(?<![\w$.'!:])"
    rf"(?:(?P<sheet>{_SHEET})!)?(?P<first>{_CELL})"
    rf"(?::(?P<last>{_CELL}))?"
    r"(?![\w(!])"
)
_STRING_LITERAL = re.compile(r'"(?:[^"]|"")*"')
_CELL_PARTS = re.compile(r"\$?([A-Za-z]{1,3})\$?(\d+)")


def _parse_token_cell(text, sheet):
    match = _CELL_PARTS.fullmatch(text)
    return CellRef(sheet, int(match.group(2)) - 1, name_to_col(match.group(1)))


def _unquote(sheet):
    if sheet.startswith("'") and sheet.endswith("'"):
        return sheet[1:-1].replace("''", "'")
    return sheet


def _dedupe(refs):
    seen = set()
    result = []
    for ref in refs:
        if ref not in seen:
            seen.add(ref)
            result.append(ref)
    return result


class FormulaProcessor:
    """Rewrites the formulas copied by one fill."""

    def process_area(self, transformer, area):
        processed = 0
        for cell_data in transformer.formula_cells():
            if not area.contains(cell_data.ref):
                continue
            for target in transformer.target_refs(cell_data.ref):
                formula = cell_data.eval_formulas.get(target, cell_data.formula)
                transformer.set_formula(target, self.process_formula(formula, cell_data, target,
                                                                     transformer, area))
                processed += 1
        logger.info(f"Processed {processed} formulas in {area.area_ref}")

    def process_formula(self, formula, cell_data, target, transformer, area) -> str:
        """Return *formula* with every reference relocated for the copy at *target*."""
        strings = [m.span() for m in _STRING_LITERAL.finditer(formula)]
        default = cell_data.default_value or DEFAULT_VALUE
        area_sheet = area.start_cell.sheet

        def replace(match):
            if any(start <= match.start() < end for start, end in strings):
                return match.group(0)
            qualified = match.group("sheet")
            sheet = _unquote(qualified) if qualified else area_sheet
            first = _parse_token_cell(match.group("first"), sheet)
            last = _parse_token_cell(match.group("last"), sheet) if match.group("last") else None
            explicit_sheet = bool(qualified) and sheet != area_sheet

            sources = [first] if last is None else [first, last]
            history = [t for src in sources for t in transformer.target_refs(src)]
            if not history:
                if not any(area.contains(src) for src in sources):
                    return match.group(0)
                return default

            candidates = self._filter(_dedupe(history), target, cell_data.formula_strategy)
            if not candidates:
                return default
            if last is not None:
                # an endpoint outside the area that was never copied stays where it is
                fixed = [src for src in sources
                         if not transformer.target_refs(src) and not area.contains(src)]
                return self._bounding_range(candidates + fixed, target, explicit_sheet)
            return self._render_targets(candidates, target, explicit_sheet)

        return REF_PATTERN.sub(replace, formula)

    @staticmethod
    def _filter(refs, target, strategy):
        same_sheet = [r for r in refs if r.sheet == target.sheet]
        if same_sheet:
            refs = same_sheet
        if strategy == FormulaStrategy.BY_COLUMN:
            return [r for r in refs if r.col == target.col]
        if strategy == FormulaStrategy.BY_ROW:
            return [r for r in refs if r.row == target.row]
        return refs

    @staticmethod
    def _prefix(ref, target, explicit_sheet):
        if explicit_sheet or ref.sheet != target.sheet:
            return quote_sheet_name(ref.sheet) + "!"
        return ""

    def _render_targets(self, refs, target, explicit_sheet):
        if len(refs) == 1:
            return self._prefix(refs[0], target, explicit_sheet) + refs[0].cell_name
        contiguous = self._contiguous_range(refs)
        if contiguous is not None:
            first, last = contiguous
            return f"{self._prefix(first, target, explicit_sheet)}{first.cell_name}:{last.cell_name}"
        parts = [self._prefix(r, target, explicit_sheet) + r.cell_name for r in refs]
        return ("+" if len(parts) > MAX_FUNCTION_ARGS else ",").join(parts)

    @staticmethod
    def _contiguous_range(refs):
        """(first, last) when *refs* form one unbroken vertical or horizontal run."""
        sheet = refs[0].sheet
        if any(r.sheet != sheet for r in refs):
            return None
        rows = sorted(r.row for r in refs)
        cols = sorted(r.col for r in refs)
        if cols[0] == cols[-1] and rows[-1] - rows[0] + 1 == len(refs):
            return CellRef(sheet, rows[0], cols[0]), CellRef(sheet, rows[-1], cols[0])
        if rows[0] == rows[-1] and cols[-1] - cols[0] + 1 == len(refs):
            return CellRef(sheet, rows[0], cols[0]), CellRef(sheet, rows[0], cols[-1])
        return None

    def _bounding_range(self, refs, target, explicit_sheet):
        sheet = refs[0].sheet
        refs = [r for r in refs if r.sheet == sheet]
        top = min(r.row for r in refs)
        bottom = max(r.row for r in refs)
        left = min(r.col for r in refs)
        right = max(r.col for r in refs)
        prefix = self._prefix(refs[0], target, explicit_sheet)
        return f"{prefix}{col_to_name(left)}{top + 1}:{col_to_name(right)}{bottom + 1}"
