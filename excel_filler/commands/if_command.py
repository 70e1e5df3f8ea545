"""The ``if`` command: replay one of two areas depending on a condition."""

import logging

from excel_filler.cell_ref import ZERO_SIZE, Size
from excel_filler.commands.base import Command, require
from excel_filler.errors import ExpressionError

logger = logging.getLogger(__name__)


class IfCommand(Command):
    name = "if"
    expression_attrs = ("condition",)

    def __init__(self, condition: str):
        super().__init__()
        self.condition = condition
        self.else_area = None

    @classmethod
    def from_attrs(cls, attrs):
        return cls(require(attrs, "condition", cls.name))

    @property
    def if_area(self):
        return self.area

    def attach_area(self, area):
        """The first attached area is the if-branch, a second one the else-branch."""
        if self.area is None:
            self.area = area
        else:
            self.else_area = area

    @property
    def child_areas(self):
        return [a for a in (self.area, self.else_area) if a is not None]

    def describe_attrs(self):
        return {"condition": self.condition}

    def apply_at(self, target, context, transformer) -> Size:
        try:
            matched = context.is_condition_true(self.condition)
        except ExpressionError as err:
            raise err.locate(command=self.name, attribute="condition")
        branch = self.area if matched else self.else_area
        if branch is None:
            return ZERO_SIZE
        return branch.apply_at(target, context)
