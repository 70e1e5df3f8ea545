"""
Command base class and attribute helpers.

Commands are built from the flat ``attr -> text`` map of an annotation by
their ``from_attrs`` factory, which checks required keys up front so that
execution only ever sees typed fields.
"""

from excel_filler.cell_ref import ZERO_SIZE, Size
from excel_filler.errors import TemplateStructureError


class Command:
    """A unit of template work bound to a rectangle of an area."""

    name = ""
    #: attributes holding expressions, checked by static validation
    expression_attrs = ()

    def __init__(self):
        self.area = None

    @classmethod
    def from_attrs(cls, attrs: dict) -> "Command":
        raise NotImplementedError

    def attach_area(self, area):
        """Give the command the inner area covering its own rectangle."""
        self.area = area

    @property
    def child_areas(self) -> list:
        return [self.area] if self.area is not None else []

    def apply_at(self, target, context, transformer) -> Size:
        raise NotImplementedError

    def reset(self):
        pass

    def describe_attrs(self) -> dict:
        """Key attributes shown by ``describe``; empty values are omitted."""
        return {}

    def expressions(self) -> dict:
        return {attr: getattr(self, attr) for attr in self.expression_attrs if getattr(self, attr)}

    def _apply_area(self, target, context) -> Size:
        if self.area is None:
            return ZERO_SIZE
        return self.area.apply_at(target, context)

    def __repr__(self):
        attrs = " ".join(f"{k}={v!r}" for k, v in self.describe_attrs().items())
        return f"<{type(self).__name__} {attrs}>".replace(" >", ">")


def require(attrs: dict, key: str, command: str) -> str:
    value = (attrs.get(key) or "").strip()
    if not value:
        raise TemplateStructureError(
            f"{command} command requires '{key}' attribute", command=command, attribute=key
        )
    return value


def parse_float(attrs: dict, key: str, default: float, command: str) -> float:
    text = (attrs.get(key) or "").strip()
    if not text:
        return default
    try:
        return float(text)
    except ValueError:
        raise TemplateStructureError(
            f"{key} must be a number, got {text!r}", command=command, attribute=key
        )
