"""Name -> factory lookup for annotation commands."""

import logging

from excel_filler.commands.auto_row_height import AutoRowHeightCommand
from excel_filler.commands.each import EachCommand
from excel_filler.commands.grid import GridCommand
from excel_filler.commands.if_command import IfCommand
from excel_filler.commands.image import ImageCommand
from excel_filler.commands.merge_cells import MergeCellsCommand
from excel_filler.commands.update_cell import UpdateCellCommand

logger = logging.getLogger(__name__)

AREA_COMMAND = "area"
PARAMS_COMMAND = "params"

BUILTIN_COMMANDS = {
    cls.name: cls.from_attrs
    for cls in (EachCommand, IfCommand, GridCommand, ImageCommand,
                MergeCellsCommand, UpdateCellCommand, AutoRowHeightCommand)
}


class CommandRegistry:
    """Maps command names to factories ``callable(attrs: dict) -> Command``."""

    def __init__(self, commands=None):
        self._factories = dict(BUILTIN_COMMANDS)
        if commands:
            self._factories.update(commands)

    def register(self, name: str, factory):
        self._factories[name] = factory

    def __contains__(self, name):
        return name in self._factories

    @property
    def names(self):
        return sorted(self._factories)

    def create(self, name: str, attrs: dict):
        """Build the command called *name*, or return None for unknown names."""
        factory = self._factories.get(name)
        if factory is None:
            logger.warning(f"Ignoring unknown command '{name}'")
            return None
        command = factory(attrs)
        if not getattr(command, "name", ""):
            command.name = name
        return command
