"""
Cell and area coordinates.

Rows and columns are 0-based everywhere inside the engine; the 1-based A1
notation only appears at the edges (parsing annotations, writing formulas,
talking to openpyxl).
"""

import re
from dataclasses import dataclass
from typing import Optional

from openpyxl.utils import column_index_from_string, get_column_letter

from excel_filler.errors import TemplateStructureError

# Sheet!A1, 'My Sheet'!$A$1 or plain A1
CELL_NAME_PATTERN = re.compile(
    r"^(?:(?:'((?:[^']|'')+)'|([^!]+))!)?"  # optional sheet qualifier
    r"\$?([A-Za-z]{1,4})\$?(\d+)$"         # column and row
)

# Characters Excel refuses in sheet titles
_FORBIDDEN_SHEET_CHARS = re.compile(r"[/\\:*?\[\]]")
MAX_SHEET_NAME_LENGTH = 31


def name_to_col(name: str) -> int:
    """Convert column letter(s) to a 0-based index. A=0, Z=25, AA=26, ZZ=701."""
    if not name or not name.isalpha():
        raise TemplateStructureError(f"invalid column name: {name!r}")
    try:
        return column_index_from_string(name.upper()) - 1
    except ValueError as err:
        raise TemplateStructureError(f"invalid column name: {name!r}") from err


def col_to_name(col: int) -> str:
    """Convert a 0-based column index to letter(s). 0=A, 25=Z, 26=AA."""
    if col < 0:
        raise ValueError(f"column index must be >= 0, got {col}")
    return get_column_letter(col + 1)


def quote_sheet_name(sheet: str) -> str:
    """Return *sheet* ready to prefix a reference, quoted when Excel needs it."""
    if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_.]*", sheet) and not re.fullmatch(
        r"[A-Za-z]{1,3}\d+", sheet
    ):
        return sheet
    return "'" + sheet.replace("'", "''") + "'"


@dataclass(frozen=True, order=True)
class CellRef:
    """A cell position: sheet name plus 0-based row and column."""
    sheet: str
    row: int
    col: int

    @property
    def cell_name(self) -> str:
        """A1-style name without the sheet, e.g. ``B3``."""
        return f"{col_to_name(self.col)}{self.row + 1}"

    def with_sheet(self, sheet: str) -> "CellRef":
        return CellRef(sheet, self.row, self.col)

    def offset(self, rows: int = 0, cols: int = 0) -> "CellRef":
        return CellRef(self.sheet, self.row + rows, self.col + cols)

    def formula_name(self, with_sheet: bool = False) -> str:
        if with_sheet and self.sheet:
            return f"{quote_sheet_name(self.sheet)}!{self.cell_name}"
        return self.cell_name

    def __str__(self):
        if self.sheet:
            return f"{self.sheet}!{self.cell_name}"
        return self.cell_name


@dataclass(frozen=True)
class Size:
    """Width and height in cells."""
    width: int
    height: int

    def add(self, other: "Size") -> "Size":
        return Size(self.width + other.width, self.height + other.height)

    def minus(self, other: "Size") -> "Size":
        return Size(self.width - other.width, self.height - other.height)

    @property
    def cell_count(self) -> int:
        return self.width * self.height

    def __str__(self):
        return f"({self.width}x{self.height})"


ZERO_SIZE = Size(0, 0)


@dataclass(frozen=True)
class AreaRef:
    """An inclusive rectangle between two cells on one sheet."""
    first: CellRef
    last: CellRef

    @property
    def sheet(self) -> str:
        return self.first.sheet

    @property
    def size(self) -> Size:
        return Size(self.last.col - self.first.col + 1, self.last.row - self.first.row + 1)

    def contains(self, ref: CellRef) -> bool:
        if self.first.sheet and ref.sheet != self.first.sheet:
            return False
        return (self.first.row <= ref.row <= self.last.row
                and self.first.col <= ref.col <= self.last.col)

    def __str__(self):
        if self.first.sheet:
            return f"{self.first.sheet}!{self.first.cell_name}:{self.last.cell_name}"
        return f"{self.first.cell_name}:{self.last.cell_name}"


def parse_cell_ref(text: str, default_sheet: str = "") -> CellRef:
    """Parse ``A1``, ``$A$1``, ``Sheet1!B2`` or ``'My Sheet'!C3``.

    The sheet falls back to *default_sheet* when the text has no qualifier.
    """
    match = CELL_NAME_PATTERN.match(text.strip()) if text else None
    if not match:
        raise TemplateStructureError(f"invalid cell reference: {text!r}")
    quoted, plain, col_letters, row_digits = match.groups()
    if quoted is not None:
        sheet = quoted.replace("''", "'")
    elif plain is not None:
        sheet = plain.strip().strip("'")
    else:
        sheet = default_sheet
    row = int(row_digits)
    if row < 1:
        raise TemplateStructureError(f"invalid row number in cell reference: {text!r}")
    return CellRef(sheet, row - 1, name_to_col(col_letters))


def parse_area_ref(text: str, default_sheet: str = "") -> AreaRef:
    """Parse ``A1:C5`` or ``Sheet1!A1:C5``; the last cell inherits the first's sheet."""
    if not text or ":" not in text:
        raise TemplateStructureError(f"invalid area reference (missing ':'): {text!r}")
    first_text, last_text = text.strip().rsplit(":", 1)
    first = parse_cell_ref(first_text, default_sheet)
    last = parse_cell_ref(last_text, first.sheet)
    return AreaRef(first, last)


def safe_sheet_name(name: str, existing: Optional[set] = None) -> str:
    """Sanitise *name* into a legal sheet title, unique against *existing*.

    Forbidden characters become ``_`` and the result is cut to 31 characters.
    Collisions get a ``_2``, ``_3`` ... suffix that still fits the limit.
    """
    cleaned = _FORBIDDEN_SHEET_CHARS.sub("_", str(name)).strip("'")
    if not cleaned:
        cleaned = "Sheet"
    cleaned = cleaned[:MAX_SHEET_NAME_LENGTH]
    if not existing:
        return cleaned
    lowered = {s.lower() for s in existing}
    candidate = cleaned
    counter = 2
    while candidate.lower() in lowered:
        suffix = f"_{counter}"
        candidate = cleaned[:MAX_SHEET_NAME_LENGTH - len(suffix)] + suffix
        counter += 1
    return candidate
