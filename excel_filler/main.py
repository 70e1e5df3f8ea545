"""
Excel-Filler: Command Line Entry Point
======================================
Fills an annotated .xlsx template with data.

Usage:
    excel-filler template.xlsx --data data.yaml --output report.xlsx
    excel-filler template.xlsx --data employees.csv --data-name employees -o out.xlsx
    excel-filler template.xlsx --validate
    excel-filler template.xlsx --describe

Data files: .yaml/.yml and .json must hold a mapping of names to values;
.csv and .xlsx are read with pandas and exposed as a list of row dicts under
``--data-name`` (default ``items``).
"""

import argparse
import json
import logging
import os
import sys

import pandas as pd
import yaml

from excel_filler.describe import describe
from excel_filler.errors import TemplateError
from excel_filler.filler import Filler, FillOptions
from excel_filler.validate import Severity, validate

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config.yaml"


def setup_logging(level_str: str = "INFO"):
    """Configure logging."""
    level = getattr(logging, level_str.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )


def load_config(config_path):
    """Load configuration from a YAML file on top of the defaults."""
    defaults = {
        "template": None,
        "data": None,
        "output": None,
        "log_level": "INFO",
        "notation_begin": "${",
        "notation_end": "}",
        "clear_template_cells": True,
        "recalculate_on_open": False,
        "keep_template_sheet": False,
        "hide_template_sheet": False,
    }
    if config_path and os.path.exists(config_path):
        with open(config_path, "r") as f:
            user_config = yaml.safe_load(f) or {}
        defaults.update(user_config)
    return defaults


def _records(df: pd.DataFrame) -> list:
    return df.astype(object).where(pd.notna(df), None).to_dict("records")


def load_data(path, data_name="items") -> dict:
    """Read the fill data from a YAML, JSON, CSV or Excel file."""
    if not path:
        return {}
    ext = os.path.splitext(path)[1].lower()
    if ext in (".csv", ".xlsx", ".xls"):
        df = pd.read_csv(path) if ext == ".csv" else pd.read_excel(path)
        logger.info(f"Loaded {len(df)} rows from {path} as '{data_name}'")
        return {data_name: _records(df)}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f) if ext == ".json" else yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"data file {path} must contain a mapping, got {type(data).__name__}")
    return data


def build_options(config: dict) -> FillOptions:
    return FillOptions(
        notation_begin=config["notation_begin"],
        notation_end=config["notation_end"],
        clear_template_cells=config["clear_template_cells"],
        recalculate_on_open=config["recalculate_on_open"],
        keep_template_sheet=config["keep_template_sheet"],
        hide_template_sheet=config["hide_template_sheet"],
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Fill an annotated Excel template with data'
    )
    parser.add_argument('template', nargs='?', default=None, help='Path to the template (.xlsx)')
    parser.add_argument('--data', '-d', type=str, default=None,
                        help='Data file: YAML/JSON mapping, or CSV/XLSX table')
    parser.add_argument('--data-name', type=str, default='items',
                        help='Name a CSV/XLSX table is exposed under (default: items)')
    parser.add_argument('--output', '-o', type=str, default=None, help='Output workbook path')
    parser.add_argument('--config', type=str, default=DEFAULT_CONFIG,
                        help='Path to config YAML file (default: config.yaml)')
    parser.add_argument('--validate', action='store_true',
                        help='Check the template and print issues instead of filling')
    parser.add_argument('--describe', action='store_true',
                        help='Print the template area tree instead of filling')
    parser.add_argument('--no-clear', action='store_true',
                        help='Keep template cells that received no output')
    parser.add_argument('--recalculate', action='store_true',
                        help='Ask Excel to recalculate formulas when the output is opened')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Logging level: DEBUG, INFO, WARNING, ERROR')

    args = parser.parse_args(argv)

    config = load_config(args.config)
    template = args.template or config.get("template")
    data_path = args.data or config.get("data")
    output = args.output or config.get("output")
    if args.no_clear:
        config["clear_template_cells"] = False
    if args.recalculate:
        config["recalculate_on_open"] = True

    setup_logging(args.log_level or config.get("log_level") or "INFO")

    if not template:
        logger.error("No template specified. Pass it as an argument or set 'template' in the config")
        sys.exit(1)
    if not os.path.exists(template):
        logger.error(f"Template not found: {template}")
        sys.exit(1)

    options = build_options(config)
    notation = {"notation_begin": options.notation_begin, "notation_end": options.notation_end}
    try:
        if args.describe:
            print(describe(template, **notation), end="")
            return
        if args.validate:
            issues = validate(template, **notation)
            for issue in issues:
                print(issue)
            if any(issue.severity == Severity.ERROR for issue in issues):
                sys.exit(1)
            logger.info("Template is valid")
            return

        if not output:
            logger.error("No output specified. Use --output or set 'output' in the config")
            sys.exit(1)
        data = load_data(data_path, args.data_name)
        Filler(options).fill(data, template, output)
    except TemplateError as err:
        logger.error(str(err))
        sys.exit(1)


if __name__ == '__main__':
    main()
