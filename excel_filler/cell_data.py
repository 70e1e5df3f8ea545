"""
In-memory snapshot of a template cell plus its per-fill target history.
"""

from copy import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from excel_filler.cell_ref import CellRef


class CellType(Enum):
    BLANK = "blank"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    FORMULA = "formula"


class FormulaStrategy(Enum):
    """Which relocated targets a rewritten formula reference may point at."""
    DEFAULT = "DEFAULT"
    BY_COLUMN = "BY_COLUMN"
    BY_ROW = "BY_ROW"

    @classmethod
    def from_text(cls, text: str) -> "FormulaStrategy":
        try:
            return cls(text.strip().upper())
        except ValueError:
            return cls.DEFAULT


@dataclass
class CellData:
    """Stores everything the engine knows about one template cell."""
    ref: CellRef
    value: Any = None
    formula: Optional[str] = None  # without the leading '='
    cell_type: CellType = CellType.BLANK
    comment: Optional[str] = None
    style: Any = None              # openpyxl StyleArray copied from the source cell
    hyperlink: Optional[str] = None
    formula_strategy: FormulaStrategy = FormulaStrategy.DEFAULT
    default_value: Optional[str] = None
    target_positions: list = field(default_factory=list)
    eval_result: Any = None
    eval_formulas: dict = field(default_factory=dict)  # target CellRef -> evaluated formula

    @property
    def is_formula(self) -> bool:
        return bool(self.formula)

    def add_target(self, ref: CellRef):
        self.target_positions.append(ref)

    def reset(self):
        """Forget everything recorded during the previous fill."""
        self.target_positions.clear()
        self.eval_formulas.clear()
        self.eval_result = None

    def copy_for(self, ref: CellRef) -> "CellData":
        """Detached copy describing the cell as written at *ref* (used by updaters)."""
        return CellData(
            ref=ref,
            value=self.value,
            formula=self.formula,
            cell_type=self.cell_type,
            style=copy(self.style) if self.style is not None else None,
            hyperlink=self.hyperlink,
        )


def detect_cell_type(value) -> CellType:
    """Map a Python value to the cell type written for it."""
    if value is None or value == "":
        return CellType.BLANK
    if isinstance(value, bool):
        return CellType.BOOLEAN
    if isinstance(value, (int, float)):
        return CellType.NUMBER
    if hasattr(value, "year") and hasattr(value, "month"):
        return CellType.DATE
    return CellType.STRING
