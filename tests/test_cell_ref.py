"""Tests for cell and area coordinates."""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from excel_filler.cell_ref import (
    AreaRef,
    CellRef,
    Size,
    ZERO_SIZE,
    col_to_name,
    name_to_col,
    parse_area_ref,
    parse_cell_ref,
    quote_sheet_name,
    safe_sheet_name,
)
from excel_filler.errors import TemplateStructureError


class TestColumnNames(unittest.TestCase):
    def test_name_to_col(self):
        self.assertEqual(name_to_col("A"), 0)
        self.assertEqual(name_to_col("Z"), 25)
        self.assertEqual(name_to_col("AA"), 26)
        self.assertEqual(name_to_col("zz"), 701)

    def test_col_to_name(self):
        self.assertEqual(col_to_name(0), "A")
        self.assertEqual(col_to_name(25), "Z")
        self.assertEqual(col_to_name(26), "AA")
        self.assertEqual(col_to_name(701), "ZZ")

    def test_round_trip_sample(self):
        for col in (0, 51, 52, 702, 16383):
            self.assertEqual(name_to_col(col_to_name(col)), col)

    def test_invalid(self):
        with self.assertRaises(TemplateStructureError):
            name_to_col("A1")
        with self.assertRaises(TemplateStructureError):
            name_to_col("AAAAA")
        with self.assertRaises(ValueError):
            col_to_name(-1)

    def test_last_excel_column(self):
        self.assertEqual(col_to_name(16383), "XFD")
        self.assertEqual(name_to_col("xfd"), 16383)


class TestCellRef(unittest.TestCase):
    def test_names(self):
        ref = CellRef("Sheet1", 2, 1)
        self.assertEqual(ref.cell_name, "B3")
        self.assertEqual(str(ref), "Sheet1!B3")
        self.assertEqual(ref.formula_name(with_sheet=True), "Sheet1!B3")
        self.assertEqual(CellRef("My Sheet", 0, 0).formula_name(with_sheet=True), "'My Sheet'!A1")

    def test_offset_and_ordering(self):
        ref = CellRef("S", 1, 1)
        self.assertEqual(ref.offset(2, 3), CellRef("S", 3, 4))
        self.assertEqual(ref.with_sheet("T"), CellRef("T", 1, 1))
        self.assertLess(CellRef("S", 0, 5), CellRef("S", 1, 0))

    def test_parse(self):
        self.assertEqual(parse_cell_ref("B2", "Data"), CellRef("Data", 1, 1))
        self.assertEqual(parse_cell_ref("$C$3"), CellRef("", 2, 2))
        self.assertEqual(parse_cell_ref("Sheet2!D4"), CellRef("Sheet2", 3, 3))
        self.assertEqual(parse_cell_ref("'My Sheet'!A1"), CellRef("My Sheet", 0, 0))
        self.assertEqual(parse_cell_ref("'O''Brien'!A1"), CellRef("O'Brien", 0, 0))

    def test_parse_invalid(self):
        for text in ("", "1A", "A0", "Sheet1!", "A-1"):
            with self.assertRaises(TemplateStructureError):
                parse_cell_ref(text)


class TestSizeAndArea(unittest.TestCase):
    def test_size(self):
        size = Size(3, 5)
        self.assertEqual(size.add(Size(1, 1)), Size(4, 6))
        self.assertEqual(size.minus(Size(1, 2)), Size(2, 3))
        self.assertEqual(size.cell_count, 15)
        self.assertEqual(str(size), "(3x5)")
        self.assertEqual(ZERO_SIZE.cell_count, 0)

    def test_parse_area(self):
        area = parse_area_ref("Sheet1!A1:C5")
        self.assertEqual(area.first, CellRef("Sheet1", 0, 0))
        self.assertEqual(area.last, CellRef("Sheet1", 4, 2))
        self.assertEqual(area.size, Size(3, 5))
        self.assertEqual(str(area), "Sheet1!A1:C5")

    def test_parse_area_default_sheet(self):
        area = parse_area_ref("A5:C5", "Report")
        self.assertEqual(area.sheet, "Report")
        self.assertEqual(area.last.sheet, "Report")

    def test_parse_area_requires_colon(self):
        with self.assertRaises(TemplateStructureError):
            parse_area_ref("A1")

    def test_contains(self):
        area = AreaRef(CellRef("S", 1, 1), CellRef("S", 3, 2))
        self.assertTrue(area.contains(CellRef("S", 2, 2)))
        self.assertFalse(area.contains(CellRef("S", 0, 1)))
        self.assertFalse(area.contains(CellRef("T", 2, 2)))


class TestSheetNames(unittest.TestCase):
    def test_quote(self):
        self.assertEqual(quote_sheet_name("Sheet1"), "Sheet1")
        self.assertEqual(quote_sheet_name("My Sheet"), "'My Sheet'")
        self.assertEqual(quote_sheet_name("AB12"), "'AB12'")
        self.assertEqual(quote_sheet_name("O'Brien"), "'O''Brien'")

    def test_safe_sheet_name(self):
        self.assertEqual(safe_sheet_name("Q1/Q2"), "Q1_Q2")
        self.assertEqual(safe_sheet_name(""), "Sheet")
        self.assertEqual(len(safe_sheet_name("x" * 40)), 31)

    def test_safe_sheet_name_unique(self):
        self.assertEqual(safe_sheet_name("Sales", {"Sales"}), "Sales_2")
        self.assertEqual(safe_sheet_name("sales", {"Sales", "sales_2"}), "sales_3")
        name = safe_sheet_name("y" * 40, {"y" * 31})
        self.assertEqual(len(name), 31)
        self.assertTrue(name.endswith("_2"))


if __name__ == "__main__":
    unittest.main()
