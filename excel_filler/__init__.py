"""
Excel-Filler: template fill engine for .xlsx workbooks.

Cells of a template carry ``${...}`` expressions and, in their comments,
``jx:`` commands (area, each, if, grid, image, mergeCells, updateCell,
autoRowHeight).  Filling projects data through the template, growing or
shrinking the layout as needed and re-pointing formulas at the new cells.
"""

from excel_filler.area import Area, AreaListener
from excel_filler.builder import AreaBuilder
from excel_filler.cell_data import CellData, CellType, FormulaStrategy
from excel_filler.cell_ref import AreaRef, CellRef, Size, ZERO_SIZE
from excel_filler.commands import CellDataUpdater, Command, CommandRegistry, GroupData
from excel_filler.context import Context, RunVar
from excel_filler.describe import describe
from excel_filler.errors import (
    ExpressionError,
    FillStateError,
    TemplateError,
    TemplateStructureError,
)
from excel_filler.expression import ExpressionEvaluator, HyperlinkValue, hyperlink
from excel_filler.filler import Filler, FillOptions, fill, fill_bytes
from excel_filler.formula import FormulaProcessor
from excel_filler.transformer import Transformer
from excel_filler.validate import Severity, ValidationIssue, validate

__all__ = [
    "Area",
    "AreaBuilder",
    "AreaListener",
    "AreaRef",
    "CellData",
    "CellDataUpdater",
    "CellRef",
    "CellType",
    "Command",
    "CommandRegistry",
    "Context",
    "ExpressionError",
    "ExpressionEvaluator",
    "FillOptions",
    "FillStateError",
    "Filler",
    "FormulaProcessor",
    "FormulaStrategy",
    "GroupData",
    "HyperlinkValue",
    "RunVar",
    "Severity",
    "Size",
    "TemplateError",
    "TemplateStructureError",
    "Transformer",
    "ValidationIssue",
    "ZERO_SIZE",
    "describe",
    "fill",
    "fill_bytes",
    "hyperlink",
    "validate",
]
