"""Exceptions raised while building or filling a template."""


class TemplateError(Exception):
    """Base error for the engine.

    ``cell``, ``command`` and ``attribute`` locate the offending template cell
    and are rendered as a prefix of the message.
    """

    def __init__(self, message, cell=None, command=None, attribute=None):
        self.message = message
        self.cell = cell
        self.command = command
        self.attribute = attribute
        super().__init__(self._format())

    def locate(self, cell=None, command=None, attribute=None):
        """Fill in location details that are still unknown; returns ``self``."""
        if self.cell is None and cell is not None:
            self.cell = cell
        if not self.command and command:
            self.command = command
            if not self.attribute:
                self.attribute = attribute
        self.args = (self._format(),)
        return self

    def __str__(self):
        return self._format()

    def _format(self):
        location = []
        if self.cell is not None:
            location.append(str(self.cell))
        if self.command:
            location.append(f"{self.command}.{self.attribute}" if self.attribute else self.command)
        if location:
            return f"[{' '.join(location)}] {self.message}"
        return self.message


class TemplateStructureError(TemplateError):
    """Malformed annotations, unresolvable rectangles, missing root area."""


class ExpressionError(TemplateError):
    """An expression failed to compile or evaluate, or had the wrong type."""

    def __init__(self, message, expression=None, cell=None, command=None, attribute=None):
        self.expression = expression
        super().__init__(message, cell=cell, command=command, attribute=attribute)


class FillStateError(TemplateError):
    """The engine was used in an invalid state (e.g. an area without a transformer)."""
