"""Annotation commands that can be bound inside an area."""

from excel_filler.commands.auto_row_height import AutoRowHeightCommand
from excel_filler.commands.base import Command
from excel_filler.commands.each import EachCommand, GroupData
from excel_filler.commands.grid import GridCommand
from excel_filler.commands.if_command import IfCommand
from excel_filler.commands.image import ImageCommand
from excel_filler.commands.merge_cells import MergeCellsCommand
from excel_filler.commands.registry import CommandRegistry
from excel_filler.commands.update_cell import CellDataUpdater, UpdateCellCommand

__all__ = [
    "AutoRowHeightCommand",
    "CellDataUpdater",
    "Command",
    "CommandRegistry",
    "EachCommand",
    "GridCommand",
    "GroupData",
    "IfCommand",
    "ImageCommand",
    "MergeCellsCommand",
    "UpdateCellCommand",
]
