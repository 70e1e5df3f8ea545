"""End-to-end tests for filling templates."""

import datetime
import io
import math
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import numpy as np
import pandas as pd
import pytest
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from tests.create_sample_template import (
    EMPLOYEES,
    build_template,
    create_employee_template,
    employee_cells,
    employee_template,
    load_output,
    sheet_values,
)
from excel_filler import (
    Context,
    ExpressionError,
    ExpressionEvaluator,
    FillStateError,
    Filler,
    FillOptions,
    HyperlinkValue,
    fill,
    fill_bytes,
)
from excel_filler.cell_ref import CellRef
from excel_filler.transformer import normalize_value

EXPECTED_EMPLOYEES = [
    ["Name", "Age", "Payment"],
    ["Elsa", 28, 1500],
    ["Oleg", 32, 2300],
    ["Neil", 41, 2500],
    ["Total", None, "=SUM(C2:C4)"],
]


@pytest.fixture(scope="module")
def template_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("templates") / "employees.xlsx"
    create_employee_template(str(path))
    return str(path)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

class TestEntryPoints:
    def test_fill_paths(self, template_path, tmp_path):
        output = str(tmp_path / "report.xlsx")
        fill(template_path, output, {"employees": EMPLOYEES})
        wb = load_workbook(output)
        assert sheet_values(wb["Employees"]) == EXPECTED_EMPLOYEES

    def test_fill_stream(self, template_path):
        buffer = io.BytesIO()
        with open(template_path, "rb") as f:
            Filler().fill_stream({"employees": EMPLOYEES}, f, buffer)
        wb = load_workbook(io.BytesIO(buffer.getvalue()))
        assert sheet_values(wb["Employees"]) == EXPECTED_EMPLOYEES

    def test_fill_to_stream_output(self, template_path):
        buffer = io.BytesIO()
        Filler().fill({"employees": EMPLOYEES}, template_path, buffer)
        assert sheet_values(load_output(buffer.getvalue())["Employees"]) == EXPECTED_EMPLOYEES

    def test_context_passed_through(self):
        context = Context({"employees": EMPLOYEES[:1]})
        wb = load_output(fill_bytes(employee_template(), context))
        assert wb["Employees"]["A2"].value == "Elsa"
        assert wb["Employees"]["C3"].value == "=SUM(C2)"

    def test_same_data_same_output(self):
        filler = Filler()
        template = employee_template()
        first = load_output(filler.fill_bytes({"employees": EMPLOYEES}, template))
        second = load_output(filler.fill_bytes({"employees": EMPLOYEES}, template))
        assert sheet_values(first["Employees"]) == sheet_values(second["Employees"])

    def test_reset_forgets_history(self):
        filler = Filler()
        transformer = filler.process({"employees": EMPLOYEES}, employee_template())
        source = CellRef("Employees", 1, 0)
        assert len(transformer.target_refs(source)) == 3
        assert len(transformer.get_cell_data(source).target_positions) == 3
        filler.reset()
        assert transformer.target_refs(source) == []
        assert transformer.get_cell_data(source).target_positions == []

    def test_refill_same_data_identical(self):
        filler = Filler()
        transformer = filler.process({"employees": EMPLOYEES}, employee_template())
        first = sheet_values(transformer.workbook["Employees"])
        again = filler.refill({"employees": EMPLOYEES})
        assert again is transformer
        assert sheet_values(again.workbook["Employees"]) == first == EXPECTED_EMPLOYEES

    def test_refill_with_fewer_items(self):
        filler = Filler()
        filler.process({"employees": EMPLOYEES}, employee_template())
        ws = filler.refill({"employees": EMPLOYEES[:1]}).workbook["Employees"]
        assert sheet_values(ws) == [
            ["Name", "Age", "Payment"],
            ["Elsa", 28, 1500],
            ["Total", None, "=SUM(C2)"],
            [None, None, None],
            [None, None, None],
        ]
        assert ws["A1"].font.bold

    def test_refill_needs_processed_template(self):
        with pytest.raises(FillStateError):
            Filler().refill({"employees": EMPLOYEES})

    def test_refill_after_multisheet_rejected(self):
        template = build_template({"A1": "${e.name}"}, {
            "A1": 'jx:area(lastCell="A1")\n'
                  'jx:each(items="employees" var="e" multisheet="names" lastCell="A1")',
        })
        filler = Filler()
        filler.process({"employees": EMPLOYEES[:2], "names": ["a", "b"]}, template)
        with pytest.raises(FillStateError):
            filler.refill({"employees": EMPLOYEES[:2], "names": ["a", "b"]})

    def test_engine_variables_not_left_in_context(self):
        context = Context({"employees": EMPLOYEES})
        fill_bytes(employee_template(), context)
        assert context.run_vars == {}
        assert not context.contains_var("_row")

    def test_shared_evaluator_across_threads(self):
        evaluator = ExpressionEvaluator()
        template = employee_template()

        def run(count):
            data = fill_bytes(template, {"employees": EMPLOYEES[:count]}, evaluator=evaluator)
            ws = load_output(data)["Employees"]
            return ws.cell(row=count + 2, column=3).value

        with ThreadPoolExecutor(max_workers=4) as pool:
            totals = list(pool.map(run, [1, 2, 3, 1, 2, 3]))
        assert totals == ["=SUM(C2)", "=SUM(C2:C3)", "=SUM(C2:C4)"] * 2


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

class TestOptions:
    CELLS = {"A1": "Header", "A2": "VIP: ${e.name}", "A5": "Regular: ${e.name}"}
    COMMENTS = {
        "A1": 'jx:area(lastCell="A2")',
        "A2": 'jx:if(condition="e.vip" lastCell="A2" areas=["A2:A2", "A5:A5"])',
    }

    def test_unused_template_cells_cleared(self):
        ws = load_output(fill_bytes(build_template(self.CELLS, self.COMMENTS),
                                    {"e": {"name": "Alice", "vip": True}})).active
        assert ws["A2"].value == "VIP: Alice"
        assert ws["A5"].value is None

    def test_unused_template_cells_kept(self):
        ws = load_output(fill_bytes(build_template(self.CELLS, self.COMMENTS),
                                    {"e": {"name": "Alice", "vip": True}},
                                    clear_template_cells=False)).active
        assert ws["A5"].value == "Regular: ${e.name}"

    def test_else_area_outside_root(self):
        ws = load_output(fill_bytes(build_template(self.CELLS, self.COMMENTS),
                                    {"e": {"name": "Bob", "vip": False}})).active
        assert ws["A2"].value == "Regular: Bob"
        assert ws["A5"].value is None

    def test_recalculate_and_pre_write(self):
        seen = []
        options = FillOptions(recalculate_on_open=True, pre_write=seen.append)
        transformer = Filler(options).process({"employees": EMPLOYEES}, employee_template())
        assert seen == [transformer]
        assert transformer.workbook.calculation.fullCalcOnLoad is True

    def test_custom_notation(self):
        template = build_template({"A1": "Hi <<name>>"}, {"A1": 'jx:area(lastCell="A1")'})
        ws = load_output(fill_bytes(template, {"name": "Elsa"},
                                    notation_begin="<<", notation_end=">>")).active
        assert ws["A1"].value == "Hi Elsa"


# ---------------------------------------------------------------------------
# Cell values and formulas
# ---------------------------------------------------------------------------

class TestCellValues:
    def _fill_one(self, text, data):
        template = build_template({"A1": text}, {"A1": 'jx:area(lastCell="A1")'})
        return Filler().process(data, template).workbook["Sheet1"]["A1"]

    def test_typed_values(self):
        assert self._fill_one("${n}", {"n": 5}).value == 5
        assert self._fill_one("${flag}", {"flag": True}).value is True
        day = datetime.datetime(2024, 3, 1, 12, 0)
        assert self._fill_one("${d}", {"d": day}).value == day
        assert self._fill_one("${n}", {"n": np.float64(2.5)}).value == 2.5

    def test_expression_result_never_becomes_formula(self):
        cell = self._fill_one("${s}", {"s": "=1+1"})
        assert cell.value == "=1+1"
        assert cell.data_type == "s"

    def test_hyperlink(self):
        cell = self._fill_one("${hyperlink(url, 'Site')}", {"url": "https://example.com"})
        assert cell.value == "Site"
        assert cell.hyperlink.target == "https://example.com"

    def test_expression_error_located(self):
        with pytest.raises(ExpressionError) as info:
            self._fill_one("${1 +}", {})
        assert info.value.cell == CellRef("Sheet1", 0, 0)

    def test_parameterised_formula(self):
        template = build_template({"A1": "${e.qty}", "B1": "=A1*${rate}"}, {
            "A1": 'jx:area(lastCell="B1")\njx:each(items="rows" var="e" lastCell="B1")',
            "B1": 'jx:params(formulaStrategy="BY_ROW")',
        })
        ws = load_output(fill_bytes(template, {"rows": [{"qty": 2}, {"qty": 3}], "rate": 1.5})).active
        assert sheet_values(ws) == [[2, "=A1*1.5"], [3, "=A2*1.5"]]

    def test_range_end_outside_area_kept(self):
        template = build_template({"A1": "${e}", "A2": "=SUM(A1:A50)"}, {
            "A1": 'jx:area(lastCell="A2")\njx:each(items="xs" var="e" lastCell="A1")',
        })
        ws = load_output(fill_bytes(template, {"xs": [1, 2, 3]})).active
        assert sheet_values(ws) == [[1], [2], [3], ["=SUM(A1:A50)"]]

    def test_cross_sheet_formula(self):
        cells, comments = employee_cells()
        template = build_template(cells, comments, sheet="Employees", extra_sheets={
            "Summary": ({"A1": "Total", "B1": "=SUM(Employees!C2)"},
                        {"A1": 'jx:area(lastCell="B1")'}),
        })
        wb = load_output(fill_bytes(template, {"employees": EMPLOYEES}))
        assert wb["Summary"]["B1"].value == "=SUM(Employees!C2:C4)"
        assert wb["Employees"]["C5"].value == "=SUM(C2:C4)"


class TestNormalizeValue:
    def test_numpy_and_pandas(self):
        value = normalize_value(np.int64(3))
        assert value == 3 and type(value) is int
        assert normalize_value(pd.Timestamp("2024-01-02")) == datetime.datetime(2024, 1, 2)
        assert normalize_value(pd.NaT) is None
        assert normalize_value(float("nan")) is None
        assert normalize_value(np.float64("nan")) is None

    def test_plain_values(self):
        assert normalize_value(None) is None
        assert normalize_value(Decimal("1.5")) == Decimal("1.5")
        assert normalize_value(datetime.date(2024, 1, 2)) == datetime.date(2024, 1, 2)
        assert normalize_value({"a": 1}) == "{'a': 1}"
        link = HyperlinkValue("https://example.com")
        assert normalize_value(link) is link
        assert not math.isnan(normalize_value(1.0))
