"""
Builds the area tree from template annotations.

``jx:area`` lines become root areas; every other command gets an inner area
covering its own rectangle and is bound to the tightest enclosing area: the
smallest strictly larger command area containing its first cell, otherwise
the root area containing it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from excel_filler.area import Area
from excel_filler.cell_ref import AreaRef, CellRef, Size
from excel_filler.commands.if_command import IfCommand
from excel_filler.commands.registry import AREA_COMMAND, CommandRegistry
from excel_filler.errors import TemplateStructureError
from excel_filler.parser import parse_comment

logger = logging.getLogger(__name__)


@dataclass
class _CommandEntry:
    command: object
    start: CellRef
    size: Size
    else_ref: Optional[AreaRef] = None


def walk_areas(area, depth=0):
    """Yield ``(area, depth)`` for *area* and every area nested below it."""
    yield area, depth
    for binding in area.bindings:
        for child in binding.command.child_areas:
            yield from walk_areas(child, depth + 1)


def _rectangle_size(parsed) -> Size:
    first, last = parsed.cell, parsed.last_cell
    if last.sheet != first.sheet:
        raise TemplateStructureError(
            f"lastCell {last} is on a different sheet", cell=first,
            command=parsed.name, attribute="lastCell",
        )
    size = Size(last.col - first.col + 1, last.row - first.row + 1)
    if size.width <= 0 or size.height <= 0:
        raise TemplateStructureError(
            f"lastCell {last.cell_name} is above or left of the command cell", cell=first,
            command=parsed.name, attribute="lastCell",
        )
    return size


def _union_size(start: CellRef, size: Size, other) -> Size:
    """Footprint covering both an if-rectangle and its else-rectangle below or right of it."""
    if other.sheet != start.sheet or other.first.row < start.row or other.first.col < start.col:
        return size
    return Size(max(size.width, other.last.col - start.col + 1),
                max(size.height, other.last.row - start.row + 1))


class AreaBuilder:
    """Turns the commented cells of a transformer into root areas."""

    def __init__(self, registry: CommandRegistry = None, listeners=None):
        self.registry = registry or CommandRegistry()
        self.listeners = list(listeners or [])

    def build(self, transformer):
        commented = transformer.commented_cells()
        if not commented:
            raise TemplateStructureError("no commented cells found in template")

        roots = []
        entries = []
        for cell_data in commented:
            parsed_commands, params = parse_comment(cell_data.comment, cell_data.ref)
            if params is not None:
                if params.default_value:
                    cell_data.default_value = params.default_value
                if params.formula_strategy is not None:
                    cell_data.formula_strategy = params.formula_strategy

            for parsed in parsed_commands:
                size = _rectangle_size(parsed)
                if parsed.name == AREA_COMMAND:
                    roots.append(Area(parsed.cell, size, transformer))
                    continue
                command = self.registry.create(parsed.name, parsed.attrs)
                if command is None:
                    continue
                command.attach_area(Area(parsed.cell, size, transformer))
                else_ref = None
                if isinstance(command, IfCommand) and len(parsed.areas) >= 2:
                    else_ref = parsed.areas[1]
                    command.attach_area(Area(else_ref.first, else_ref.size, transformer))
                entries.append(_CommandEntry(command, parsed.cell, size, else_ref))

        if not roots:
            raise TemplateStructureError("no jx:area command found in template")

        # larger rectangles first, then position order for equal sizes
        entries.sort(key=lambda e: (-e.size.cell_count, e.start.sheet, e.start.row, e.start.col))
        for entry in entries:
            parent = self._find_parent(entry, entries)
            if parent is None:
                parent = next((root for root in roots if root.contains(entry.start)), None)
            if parent is None:
                logger.warning(f"Command '{entry.command.name}' at {entry.start} "
                               f"is outside every jx:area, ignored")
                continue
            size = entry.size
            if entry.else_ref is not None and parent.contains(entry.else_ref.first) \
                    and parent.contains(entry.else_ref.last):
                size = _union_size(entry.start, size, entry.else_ref)
            parent.add_command(entry.command, entry.start, size)
            logger.debug(f"Bound {entry.command.name} {size} at {entry.start} to {parent.area_ref}")

        for root in roots:
            for area, _ in walk_areas(root):
                area.sort_bindings()
                if self.listeners:
                    area.listeners = list(self.listeners)

        logger.info(f"Built {len(roots)} root areas with {len(entries)} commands")
        return roots

    @staticmethod
    def _find_parent(entry, entries):
        best = None
        own = entry.command.child_areas
        for other in entries:
            if other is entry:
                continue
            for area in other.command.child_areas:
                if area in own or area.size.cell_count <= entry.size.cell_count:
                    continue
                if not area.contains(entry.start):
                    continue
                if best is None or area.size.cell_count < best.size.cell_count:
                    best = area
        return best
