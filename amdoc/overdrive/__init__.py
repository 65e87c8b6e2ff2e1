"""
AMDOC - GPU OverDrive (overclocking)

Parsing and editing of `pp_od_clk_voltage`:
https://kernel.org/doc/html/latest/gpu/amdgpu/thermal.html#pp-od-clk-voltage

Usage:
    table = parse_clocks_table(raw_text)
    previous = copy.deepcopy(table)
    table.set_max_sclk(2000)
    commands = table.get_commands(previous)
"""

import logging
from typing import Callable

from .gen1 import Gen1Table
from .gen2 import Gen2Table, OdRange
from .parsing import parse_level_line, parse_range_line, sysfs_lines, trim_sysfs_line
from .primitives import AllowedRanges, ClocksLevel, Range
from .table import (
    COMMIT_COMMAND,
    RESET_COMMAND,
    ClocksTable,
    ClocksTableFormat,
    check_in_range,
)

logger = logging.getLogger(__name__)

FormatDetector = Callable[[str], ClocksTableFormat]

GEN2_MARKERS = ("VDDC_CURVE", "OD_VDDGFX_OFFSET")

TABLE_CLASSES = {
    ClocksTableFormat.GEN1: Gen1Table,
    ClocksTableFormat.GEN2: Gen2Table,
}


def detect_format(text: str) -> ClocksTableFormat:
    """
    Guess the format of a `pp_od_clk_voltage` dump.

    The file carries no version, so this is a best-effort heuristic:
    voltage curve and voltage offset entries only exist in the second
    generation format. Without them, a first data row that has a MHz value
    but no mV value is a min/max clock row, which only the second generation
    uses (integrated GPUs print such tables without a curve).
    """
    if any(marker in text for marker in GEN2_MARKERS):
        return ClocksTableFormat.GEN2

    for _, line in sysfs_lines(text):
        if line.startswith("OD_") and line.endswith(":"):
            continue

        values = [token.lower() for token in line.split()[1:]]
        has_mhz = any(value.endswith("mhz") for value in values)
        has_mv = any(value.endswith("mv") for value in values)
        if has_mhz and not has_mv:
            return ClocksTableFormat.GEN2
        break

    return ClocksTableFormat.GEN1


def parse_clocks_table(text: str, detector: FormatDetector = detect_format) -> ClocksTable:
    """
    Parse `pp_od_clk_voltage` into the table class matching its format.

    Args:
        text: Contents of the file
        detector: Function choosing the format, detect_format() by default

    Raises:
        ParseError: If the text does not match the detected format
    """
    table_format = detector(text)
    logger.debug(f"Detected clocks table format {table_format.value}")
    return TABLE_CLASSES[table_format].parse(text)


__all__ = [
    "AllowedRanges",
    "COMMIT_COMMAND",
    "ClocksLevel",
    "ClocksTable",
    "ClocksTableFormat",
    "FormatDetector",
    "Gen1Table",
    "Gen2Table",
    "OdRange",
    "RESET_COMMAND",
    "Range",
    "check_in_range",
    "detect_format",
    "parse_clocks_table",
    "parse_level_line",
    "parse_range_line",
    "trim_sysfs_line",
]
