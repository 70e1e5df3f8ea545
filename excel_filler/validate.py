"""
Static template checks that need no data.

Structural problems (no ``jx:area``, bad ``lastCell``) raise
TemplateStructureError while building; everything else is collected as a
list of ValidationIssue so a template designer sees all problems at once.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from excel_filler.builder import walk_areas
from excel_filler.cell_ref import CellRef
from excel_filler.commands.each import DIRECTIONS, EachCommand
from excel_filler.errors import ExpressionError
from excel_filler.expression import parse_expressions
from excel_filler.filler import Filler, FillOptions
from excel_filler.transformer import Transformer

logger = logging.getLogger(__name__)


class Severity(Enum):
    ERROR = "ERROR"    # the fill will fail
    WARNING = "WARN"   # the fill may not do what the designer expects


@dataclass
class ValidationIssue:
    severity: Severity
    cell: CellRef
    message: str

    def __str__(self):
        return f"[{self.severity.value}] {self.cell}: {self.message}"


def _check_bounds(area):
    issues = []
    last = area.last_cell
    for binding in area.bindings:
        end = binding.start_ref.offset(binding.size.height - 1, binding.size.width - 1)
        if end.row > last.row or end.col > last.col:
            issues.append(ValidationIssue(
                Severity.ERROR, binding.start_ref,
                f"command '{binding.command.name}' lastCell {end.cell_name} extends beyond "
                f"parent area {area.area_ref}",
            ))
    return issues


def _check_cell_expressions(transformer, area, evaluator, begin, end):
    issues = []
    for row in range(area.size.height):
        for col in range(area.size.width):
            ref = area.start_cell.offset(row, col)
            cell_data = transformer.get_cell_data(ref)
            if cell_data is None:
                continue
            for text in (cell_data.value, cell_data.formula):
                if not isinstance(text, str) or begin not in text:
                    continue
                for segment in parse_expressions(text, begin, end):
                    if not segment.is_expression:
                        continue
                    try:
                        evaluator.compile(segment.text)
                    except ExpressionError as err:
                        issues.append(ValidationIssue(Severity.ERROR, ref, err.message))
    return issues


def _check_command_attributes(area, evaluator):
    issues = []
    for binding in area.bindings:
        command = binding.command
        for attribute, expression in command.expressions().items():
            try:
                evaluator.compile(expression)
            except ExpressionError as err:
                issues.append(ValidationIssue(
                    Severity.ERROR, binding.start_ref,
                    f"{command.name} command has invalid {attribute} expression: {err.message}",
                ))
        if isinstance(command, EachCommand) and command.direction not in DIRECTIONS:
            issues.append(ValidationIssue(
                Severity.WARNING, binding.start_ref,
                f"each direction {command.direction!r} is not DOWN or RIGHT, DOWN is used",
            ))
    return issues


def validate_transformer(filler, transformer):
    """Run every check against an already opened template."""
    areas = filler.build_areas(transformer)
    begin, end = filler.options.notation_begin, filler.options.notation_end
    issues = []
    for root in areas:
        issues.extend(_check_cell_expressions(transformer, root, filler.evaluator, begin, end))
        for area, _ in walk_areas(root):
            issues.extend(_check_bounds(area))
            issues.extend(_check_command_attributes(area, filler.evaluator))
    return issues


def validate(template, **options):
    """Check *template* (path, stream or bytes) and return the issues found."""
    filler = Filler(FillOptions(**options))
    transformer = Transformer.open(template)
    try:
        issues = validate_transformer(filler, transformer)
    finally:
        transformer.close()
    logger.info(f"Validation found {len(issues)} issues")
    return issues
