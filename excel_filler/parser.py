"""
Annotation parser.

Template cells carry their commands in comments, one per line:

    jx:area(lastCell="D10")
    jx:each(items="employees" var="e" lastCell="D4")
    jx:if(condition="e.salary > 1000" lastCell="D4" areas=["A4:D4", "A5:D5"])
    jx:params(defaultValue="0" formulaStrategy="BY_COLUMN")

Lines that do not start with ``jx:`` are ignored, so comments may also hold
free text for the template designer.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from excel_filler.cell_data import FormulaStrategy
from excel_filler.cell_ref import AreaRef, CellRef, parse_area_ref, parse_cell_ref
from excel_filler.errors import TemplateStructureError

COMMAND_PREFIX = "jx:"
PARAMS_NAME = "params"

_ATTR_KEY = re.compile(r"(\w+)\s*=\s*")
_AREAS_ATTR = re.compile(r"areas\s*=\s*\[([^\]]*)\]")
_AREA_REF = re.compile(r"[A-Za-z0-9_!'.$]+:[A-Za-z0-9_!'.$]+")

# opening quote -> closing quote; smart quotes pair with their counterpart
_QUOTES = {
    '"': '"',
    "'": "'",
    "“": "”",
    "”": "”",
    "‘": "’",
    "’": "’",
}


@dataclass
class ParsedCommand:
    """One ``jx:name(...)`` line of a cell comment."""
    name: str
    attrs: dict
    cell: CellRef
    last_cell: Optional[CellRef] = None
    areas: list = field(default_factory=list)

    @property
    def area_ref(self) -> AreaRef:
        return AreaRef(self.cell, self.last_cell)


@dataclass
class ParamsData:
    """Cell-level options from ``jx:params``; None means "not given"."""
    default_value: Optional[str] = None
    formula_strategy: Optional[FormulaStrategy] = None


def split_lines(comment: str):
    return comment.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def is_params(line: str) -> bool:
    return line.strip().startswith(COMMAND_PREFIX + PARAMS_NAME)


def is_command(line: str) -> bool:
    line = line.strip()
    return line.startswith(COMMAND_PREFIX) and not is_params(line)


def parse_attributes(text: str) -> dict:
    """Extract ``key="value"`` pairs.

    A value ends at the quote matching its opening quote, so the other quote
    style can be used inside it: ``select="e.city == 'Berlin'"``.  Keys not
    followed by a quote (e.g. ``areas=[...]``) are skipped.
    """
    attrs = {}
    pos = 0
    while pos < len(text):
        match = _ATTR_KEY.search(text, pos)
        if not match:
            break
        key = match.group(1)
        pos = match.end()
        if pos >= len(text) or text[pos] not in _QUOTES:
            continue
        close = _QUOTES[text[pos]]
        end = text.find(close, pos + 1)
        if end < 0:
            end = len(text)
        attrs[key] = text[pos + 1:end]
        pos = end + 1
    return attrs


def _attribute_text(line: str):
    open_paren = line.find("(")
    if open_paren < 0:
        raise TemplateStructureError(f"missing '(' in command: {line!r}")
    close_paren = line.rfind(")")
    if close_paren < open_paren:
        raise TemplateStructureError(f"missing ')' in command: {line!r}")
    return open_paren, line[open_paren + 1:close_paren]


def parse_params(line: str) -> ParamsData:
    line = line.strip()
    if "(" not in line:
        return ParamsData()
    _, text = _attribute_text(line)
    attrs = parse_attributes(text)
    params = ParamsData()
    if "defaultValue" in attrs:
        params.default_value = attrs["defaultValue"]
    if "formulaStrategy" in attrs:
        params.formula_strategy = FormulaStrategy.from_text(attrs["formulaStrategy"])
    return params


def parse_command_line(line: str, cell: CellRef) -> ParsedCommand:
    line = line.strip()
    open_paren, text = _attribute_text(line)
    name = line[len(COMMAND_PREFIX):open_paren].strip()
    if not name:
        raise TemplateStructureError(f"missing command name: {line!r}", cell=cell)
    attrs = parse_attributes(text)

    last_cell = None
    if "lastCell" in attrs:
        try:
            last_cell = parse_cell_ref(attrs["lastCell"], cell.sheet)
        except TemplateStructureError as err:
            raise TemplateStructureError(
                f"invalid lastCell {attrs['lastCell']!r}: {err.message}",
                cell=cell, command=name, attribute="lastCell",
            ) from err
    elif name != PARAMS_NAME:
        raise TemplateStructureError(
            f"missing lastCell attribute: {line!r}", cell=cell, command=name, attribute="lastCell"
        )

    areas = []
    match = _AREAS_ATTR.search(text)
    if match:
        for ref_text in _AREA_REF.findall(match.group(1)):
            try:
                areas.append(parse_area_ref(ref_text, cell.sheet))
            except TemplateStructureError as err:
                raise TemplateStructureError(
                    f"invalid area {ref_text!r}: {err.message}",
                    cell=cell, command=name, attribute="areas",
                ) from err

    return ParsedCommand(name=name, attrs=attrs, cell=cell, last_cell=last_cell, areas=areas)


def parse_comment(comment: str, cell: CellRef):
    """Parse every annotation line of *comment*.

    Returns ``(commands, params)`` where ``params`` is None when the comment
    has no ``jx:params`` line.
    """
    commands = []
    params = None
    if not comment:
        return commands, params
    for line in split_lines(comment):
        line = line.strip()
        if not line:
            continue
        try:
            if is_params(line):
                params = parse_params(line)
            elif is_command(line):
                commands.append(parse_command_line(line, cell))
        except TemplateStructureError as err:
            raise err.locate(cell=cell)
    return commands, params
