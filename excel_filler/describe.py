"""Human-readable dump of a template's area tree, for debugging templates."""

from excel_filler.filler import Filler, FillOptions
from excel_filler.transformer import Transformer

INDENT = "  "


def _covered(ref, bindings):
    for binding in bindings:
        start = binding.start_ref
        if (start.row <= ref.row < start.row + binding.size.height
                and start.col <= ref.col < start.col + binding.size.width):
            return True
    return False


def describe_area(area, transformer, begin, lines, indent=0):
    prefix = INDENT * indent
    lines.append(f"{prefix}{area.area_ref} area {area.size}")

    expressions = []
    for row in range(area.size.height):
        for col in range(area.size.width):
            ref = area.start_cell.offset(row, col)
            if _covered(ref, area.bindings):
                continue
            cell_data = transformer.get_cell_data(ref)
            if cell_data is None:
                continue
            if isinstance(cell_data.value, str) and begin in cell_data.value:
                expressions.append(f"{prefix}    {ref.cell_name}: {cell_data.value}")
            if cell_data.formula and begin in cell_data.formula:
                expressions.append(f"{prefix}    {ref.cell_name}: ={cell_data.formula}")
    if expressions:
        lines.append(f"{prefix}  Expressions:")
        lines.extend(expressions)

    if area.bindings:
        lines.append(f"{prefix}  Commands:")
        for binding in area.bindings:
            command = binding.command
            attrs = "".join(f' {key}="{value}"' for key, value in command.describe_attrs().items())
            lines.append(f"{prefix}    {binding.start_ref} {command.name} {binding.size}{attrs}")
            for child in command.child_areas:
                describe_area(child, transformer, begin, lines, indent + 3)


def describe(template, **options) -> str:
    """Return the area/command/expression tree of *template*."""
    filler = Filler(FillOptions(**options))
    transformer = Transformer.open(template)
    try:
        areas = filler.build_areas(transformer)
        name = template if isinstance(template, str) else "<stream>"
        lines = [f"Template: {name}"]
        for area in areas:
            describe_area(area, transformer, filler.options.notation_begin, lines)
    finally:
        transformer.close()
    return "\n".join(lines) + "\n"
