"""The ``image`` command: embed image bytes anchored at the target cell."""

import logging

from excel_filler.cell_ref import Size
from excel_filler.commands.base import Command, parse_float, require
from excel_filler.errors import ExpressionError

logger = logging.getLogger(__name__)

ONE_CELL = Size(1, 1)


class ImageCommand(Command):
    name = "image"
    expression_attrs = ("src",)

    def __init__(self, src: str, image_type: str = "PNG", scale_x: float = 1.0, scale_y: float = 1.0):
        super().__init__()
        self.src = src
        self.image_type = (image_type or "PNG").upper()
        self.scale_x = scale_x
        self.scale_y = scale_y

    @classmethod
    def from_attrs(cls, attrs):
        return cls(
            require(attrs, "src", cls.name),
            attrs.get("imageType"),
            parse_float(attrs, "scaleX", 1.0, cls.name),
            parse_float(attrs, "scaleY", 1.0, cls.name),
        )

    def describe_attrs(self):
        return {"src": self.src, "imageType": self.image_type}

    def apply_at(self, target, context, transformer) -> Size:
        try:
            data = context.evaluate(self.src)
        except ExpressionError as err:
            raise err.locate(command=self.name, attribute="src")
        if data is None:
            logger.warning(f"Image source {self.src!r} is empty, nothing embedded at {target}")
            return ONE_CELL
        if not isinstance(data, (bytes, bytearray)):
            raise ExpressionError(
                f"image src must be bytes, got {type(data).__name__}",
                expression=self.src, command=self.name, attribute="src",
            )
        transformer.add_image(target, bytes(data), self.image_type, self.scale_x, self.scale_y)
        return ONE_CELL
