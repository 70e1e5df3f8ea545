"""
Fill orchestration: template + data -> output workbook.

    from excel_filler import fill
    fill("report_template.xlsx", "report.xlsx", {"employees": employees})

or, with options and reuse:

    filler = Filler(FillOptions(recalculate_on_open=True))
    data = filler.fill_bytes({"employees": employees}, "report_template.xlsx")

    transformer = filler.process(january, "report_template.xlsx")
    transformer = filler.refill(february)    # same parsed template, fresh output
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from excel_filler.builder import AreaBuilder, walk_areas
from excel_filler.commands.registry import CommandRegistry
from excel_filler.context import COL_VAR, ROW_VAR, Context
from excel_filler.errors import FillStateError
from excel_filler.expression import (
    DEFAULT_NOTATION_BEGIN,
    DEFAULT_NOTATION_END,
    ExpressionEvaluator,
)
from excel_filler.formula import FormulaProcessor
from excel_filler.transformer import Transformer

logger = logging.getLogger(__name__)


@dataclass
class FillOptions:
    """Settings for one Filler."""
    notation_begin: str = DEFAULT_NOTATION_BEGIN
    notation_end: str = DEFAULT_NOTATION_END
    commands: dict = field(default_factory=dict)      # name -> factory(attrs) -> Command
    clear_template_cells: bool = True
    keep_template_sheet: bool = False
    hide_template_sheet: bool = False
    recalculate_on_open: bool = False
    area_listeners: list = field(default_factory=list)
    pre_write: Optional[Callable] = None              # called with the Transformer
    evaluator: Optional[ExpressionEvaluator] = None

    @property
    def template_sheet_policy(self) -> str:
        if self.keep_template_sheet:
            return "keep"
        if self.hide_template_sheet:
            return "hide"
        return "delete"


class Filler:
    """Runs templates through the area engine and the formula processor."""

    def __init__(self, options: FillOptions = None):
        self.options = options or FillOptions()
        self.registry = CommandRegistry(self.options.commands)
        self.evaluator = self.options.evaluator or ExpressionEvaluator()
        self.formula_processor = FormulaProcessor()
        self.transformer = None
        self.areas = []

    def build_areas(self, transformer):
        builder = AreaBuilder(self.registry, self.options.area_listeners)
        return builder.build(transformer)

    def make_context(self, data) -> Context:
        if isinstance(data, Context):
            return data
        return Context(dict(data or {}), evaluator=self.evaluator,
                       notation_begin=self.options.notation_begin,
                       notation_end=self.options.notation_end)

    # ------------------------------------------------------------------

    def process(self, data, template) -> Transformer:
        """Open *template*, fill it with *data* and return the transformer holding the result."""
        transformer = Transformer.open(template)
        transformer.template_sheet_policy = self.options.template_sheet_policy
        areas = self.build_areas(transformer)
        self.transformer, self.areas = transformer, areas
        return self._run(transformer, areas, data)

    def refill(self, data) -> Transformer:
        """Fill the template of the last ``process`` call again, without re-parsing it.

        The previous output is blanked first, so the workbook ends up as if
        *data* had been the first fill.
        """
        if self.transformer is None:
            raise FillStateError("no template has been processed yet")
        if self.transformer.retired_sheets:
            raise FillStateError(
                f"multisheet template sheets {self.transformer.retired_sheets} were already "
                f"expanded, open the template again"
            )
        self.transformer.clear_targets()
        self.reset()
        return self._run(self.transformer, self.areas, data)

    def _run(self, transformer, areas, data) -> Transformer:
        context = self.make_context(data)
        for area in areas:
            transformer.clear_area(area.area_ref)
            try:
                size = area.apply_at(area.start_cell, context)
            finally:
                context.remove_run_var(ROW_VAR)
                context.remove_run_var(COL_VAR)
            logger.info(f"Filled {area.area_ref} -> {size}")

        for area in areas:
            self.formula_processor.process_area(transformer, area)

        if self.options.clear_template_cells:
            self._clear_unused_template_cells(transformer, context)
        transformer.remove_command_comments()

        if self.options.recalculate_on_open:
            transformer.set_recalculate_on_open(True)
        if self.options.pre_write is not None:
            self.options.pre_write(transformer)
        return transformer

    def _clear_unused_template_cells(self, transformer, context):
        """Blank template cells still showing notation because nothing was written over them."""
        cleared = 0
        for cell_data in transformer.template_cells():
            text = cell_data.formula if cell_data.is_formula else cell_data.value
            if not context.has_expression(text):
                continue
            current = transformer.read_output_cell(cell_data.ref)
            if (current.formula or current.value) == text:
                transformer.clear_cell(cell_data.ref)
                cleared += 1
        if cleared:
            logger.debug(f"Cleared {cleared} unused template cells")

    def fill(self, data, template, output):
        """Fill *template* (path, stream or bytes) and save to *output* (path or stream)."""
        transformer = self.process(data, template)
        if isinstance(output, str):
            transformer.save(output)
        else:
            transformer.write(output)

    def fill_stream(self, data, template, stream):
        transformer = self.process(data, template)
        transformer.write(stream)

    def fill_bytes(self, data, template) -> bytes:
        buffer = io.BytesIO()
        self.fill_stream(data, template, buffer)
        return buffer.getvalue()

    def reset(self):
        """Forget the state of the last fill; ``refill`` calls this before replaying."""
        for root in self.areas:
            for area, _ in walk_areas(root):
                for binding in area.bindings:
                    binding.command.reset()
        if self.transformer is not None:
            self.transformer.reset_target_refs()


def fill(template, output, data=None, **options):
    """Fill *template* with *data* and write the result to *output*."""
    Filler(FillOptions(**options)).fill(data, template, output)


def fill_bytes(template, data=None, **options) -> bytes:
    """Fill *template* with *data* and return the workbook as bytes."""
    return Filler(FillOptions(**options)).fill_bytes(data, template)
