"""
AMDOC - Second Generation Clocks Table

The `pp_od_clk_voltage` format used by Vega20 and newer GPUs. Instead of a
list of levels it exposes the minimum and maximum clocks, an optional voltage
curve and, on some hardware, a voltage offset:

    OD_SCLK:
    0: 800Mhz
    1: 2100Mhz
    OD_MCLK:
    1: 875MHz
    OD_VDDC_CURVE:
    0: 800MHz 711mV
    1: 1450MHz 801mV
    2: 2100MHz 1191mV
    OD_RANGE:
    SCLK:     800Mhz       2150Mhz
    MCLK:     625Mhz        950Mhz
    VDDC_CURVE_SCLK[0]:     800Mhz       2150Mhz
    VDDC_CURVE_VOLT[0]:     750mV        1200mV
    ...

The driver validates each written command against its committed state rather
than the final state, so get_commands() orders its output against the table
that was read before editing.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional

from ..errors import NotAllowed, ParseError
from .parsing import (
    end_of_input_line,
    parse_clockspeed_line,
    parse_line_item,
    parse_range_line,
    push_level_line,
    sysfs_lines,
)
from .primitives import ClocksLevel, Range
from .table import ClocksTable, ClocksTableFormat, check_in_range

logger = logging.getLogger(__name__)

MAX_VDDC_CURVE_POINTS = 3

CURVE_RANGE_PATTERN = re.compile(r"^(VDDC_CURVE_SCLK|VDDC_CURVE_VOLT)\[(\d+)\]$")


class _Section(Enum):
    SCLK = "OD_SCLK:"
    MCLK = "OD_MCLK:"
    VDDC_CURVE = "OD_VDDC_CURVE:"
    VOLTAGE_OFFSET = "OD_VDDGFX_OFFSET:"
    RANGE = "OD_RANGE:"


SECTION_MARKERS = {section.value: section for section in _Section}


@dataclass
class OdRange:
    """The allowed ranges reported in the OD_RANGE section."""
    # Clocks range for sclk (in MHz), present on every GPU
    sclk: Range = field(default_factory=Range)
    # Clocks range for mclk (in MHz), missing on integrated GPUs
    mclk: Optional[Range] = None
    # Allowed clockspeed of each voltage curve point
    curve_sclk_points: List[Range] = field(default_factory=list)
    # Allowed voltage of each voltage curve point
    curve_voltage_points: List[Range] = field(default_factory=list)
    # Allowed voltage offset (in mV)
    voltage_offset: Optional[Range] = None


@dataclass
class Gen2Table(ClocksTable):
    """Vega20 (and newer) clocks table."""

    format: ClassVar[ClocksTableFormat] = ClocksTableFormat.GEN2

    current_sclk_range: Range = field(default_factory=Range)
    current_mclk_range: Range = field(default_factory=Range)
    # May be empty if the GPU does not support a voltage curve
    vddc_curve: List[ClocksLevel] = field(default_factory=list)
    # Signed voltage offset (in mV), None if the GPU does not report one
    voltage_offset: Optional[int] = None
    od_range: OdRange = field(default_factory=OdRange)

    @classmethod
    def parse(cls, text: str) -> "Gen2Table":
        """
        Parse the table from the contents of `pp_od_clk_voltage`.

        Raises:
            ParseError: On the first malformed line, or if the current sclk
                range or the allowed SCLK range is missing
        """
        current_section = None

        current_sclk_range = None
        current_mclk_range = None
        vddc_curve: List[ClocksLevel] = []
        voltage_offset = None

        od_range = OdRange()
        allowed_sclk_range = None

        for line_number, line in sysfs_lines(text):
            if line in SECTION_MARKERS:
                current_section = SECTION_MARKERS[line]
            elif current_section is _Section.SCLK:
                current_sclk_range = _parse_min_max_line(line, line_number, current_sclk_range)
            elif current_section is _Section.MCLK:
                current_mclk_range = _parse_min_max_line(line, line_number, current_mclk_range)
            elif current_section is _Section.VDDC_CURVE:
                if len(vddc_curve) >= MAX_VDDC_CURVE_POINTS:
                    raise ParseError(
                        f"Voltage curve has more than {MAX_VDDC_CURVE_POINTS} points",
                        line_number,
                    )
                push_level_line(line, vddc_curve, line_number)
            elif current_section is _Section.VOLTAGE_OFFSET:
                if voltage_offset is not None:
                    raise ParseError("Unexpected second voltage offset", line_number)
                tokens = iter(line.split())
                voltage_offset = parse_line_item(tokens, line_number, "voltage offset", ("mv",))
            elif current_section is _Section.RANGE:
                allowed, name = parse_range_line(line, line_number)
                if name == "SCLK":
                    allowed_sclk_range = allowed
                elif name == "MCLK":
                    od_range.mclk = allowed
                elif name == "VDDGFX_OFFSET":
                    od_range.voltage_offset = allowed
                else:
                    _push_curve_range(name, allowed, od_range, line_number)
            else:
                raise ParseError("Unexpected line without section", line_number)

        end_line = end_of_input_line(text)
        if allowed_sclk_range is None:
            raise ParseError("No sclk range found", end_line)
        if current_sclk_range is None:
            raise ParseError("No current sclk range found", end_line)
        od_range.sclk = allowed_sclk_range

        logger.debug(
            f"Parsed gen2 clocks table with {len(vddc_curve)} curve points, "
            f"voltage offset {voltage_offset}"
        )

        return cls(
            current_sclk_range=current_sclk_range,
            current_mclk_range=current_mclk_range or Range.empty(),
            vddc_curve=vddc_curve,
            voltage_offset=voltage_offset,
            od_range=od_range,
        )

    def get_commands(self, previous: Optional[ClocksTable] = None) -> List[str]:
        self._check_previous(previous)

        commands = []
        raised_first = set()

        # A new minimum above the committed maximum is rejected by the driver
        # unless the maximum has been raised before it.
        if previous is not None:
            pairs = (
                ("s", self.current_sclk_range, previous.current_sclk_range),
                ("m", self.current_mclk_range, previous.current_mclk_range),
            )
            for symbol, new_range, old_range in pairs:
                if (
                    new_range.min is not None
                    and new_range.max is not None
                    and old_range.max is not None
                    and new_range.min > old_range.max
                ):
                    commands.append(clockspeed_command(symbol, 1, new_range.max))
                    raised_first.add(symbol)

        for symbol, current in (("s", self.current_sclk_range), ("m", self.current_mclk_range)):
            if current.min is not None:
                commands.append(clockspeed_command(symbol, 0, current.min))
            if current.max is not None and symbol not in raised_first:
                commands.append(clockspeed_command(symbol, 1, current.max))

        for index, point in enumerate(self.vddc_curve):
            commands.append(f"vc {index} {point.clockspeed} {point.voltage}")

        if self.voltage_offset is not None:
            commands.append(f"vo {self.voltage_offset}")

        return commands

    def clear(self) -> None:
        """
        Unset the current clocks and the voltage offset.

        A cleared table only writes the values that are set afterwards.
        The allowed ranges and the voltage curve are kept.
        """
        self.current_sclk_range = Range.empty()
        self.current_mclk_range = Range.empty()
        self.voltage_offset = None

    def normalize_vddc_curve(self) -> None:
        """Clamp every voltage curve point into its own allowed range."""
        for index, point in enumerate(self.vddc_curve):
            if index < len(self.od_range.curve_sclk_points):
                point.clockspeed = self.od_range.curve_sclk_points[index].clamp(point.clockspeed)
            if index < len(self.od_range.curve_voltage_points):
                point.voltage = self.od_range.curve_voltage_points[index].clamp(point.voltage)

    # =========================================================================
    # Current values
    # =========================================================================

    def get_max_sclk(self) -> Optional[int]:
        return self.current_sclk_range.max

    def get_min_sclk(self) -> Optional[int]:
        return self.current_sclk_range.min

    def get_max_mclk(self) -> Optional[int]:
        return self.current_mclk_range.max

    def get_min_mclk(self) -> Optional[int]:
        return self.current_mclk_range.min

    def get_max_voltage(self) -> Optional[int]:
        return self.vddc_curve[-1].voltage if self.vddc_curve else None

    def get_min_voltage(self) -> Optional[int]:
        return self.vddc_curve[0].voltage if self.vddc_curve else None

    def get_voltage_offset(self) -> Optional[int]:
        return self.voltage_offset

    # =========================================================================
    # Allowed ranges
    # =========================================================================

    def get_max_sclk_range(self) -> Optional[Range]:
        return self.od_range.sclk

    def get_min_sclk_range(self) -> Optional[Range]:
        return self.od_range.sclk

    def get_max_mclk_range(self) -> Optional[Range]:
        return self.od_range.mclk

    def get_min_mclk_range(self) -> Optional[Range]:
        return self.od_range.mclk

    def get_max_voltage_range(self) -> Optional[Range]:
        if not self.vddc_curve:
            return None
        return _point_range(self.od_range.curve_voltage_points, len(self.vddc_curve) - 1)

    def get_min_voltage_range(self) -> Optional[Range]:
        if not self.vddc_curve:
            return None
        return _point_range(self.od_range.curve_voltage_points, 0)

    def get_voltage_offset_range(self) -> Optional[Range]:
        return self.od_range.voltage_offset

    # =========================================================================
    # Setters
    # =========================================================================
    # The endpoints of the voltage curve follow the current sclk range, so
    # editing the clocks and the voltages in any order keeps them in sync.

    def set_max_sclk_unchecked(self, clockspeed: int) -> None:
        self.current_sclk_range.max = clockspeed
        if self.vddc_curve:
            self.vddc_curve[-1].clockspeed = clockspeed

    def set_min_sclk_unchecked(self, clockspeed: int) -> None:
        self.current_sclk_range.min = clockspeed
        if self.vddc_curve:
            self.vddc_curve[0].clockspeed = clockspeed

    def set_max_mclk_unchecked(self, clockspeed: int) -> None:
        self.current_mclk_range.max = clockspeed

    def set_min_mclk_unchecked(self, clockspeed: int) -> None:
        self.current_mclk_range.min = clockspeed

    def set_max_voltage_unchecked(self, voltage: int) -> None:
        point = self._curve_point(-1)
        point.voltage = voltage
        if self.current_sclk_range.max is not None:
            point.clockspeed = self.current_sclk_range.max

    def set_min_voltage_unchecked(self, voltage: int) -> None:
        point = self._curve_point(0)
        point.voltage = voltage
        if self.current_sclk_range.min is not None:
            point.clockspeed = self.current_sclk_range.min

    def set_voltage_offset(self, offset: int) -> None:
        """
        Set the voltage offset (in mV).

        The value is validated only if the GPU reports an allowed offset range.

        Raises:
            NotAllowed: If the offset is outside of the reported range
        """
        if self.od_range.voltage_offset is not None:
            check_in_range(offset, self.od_range.voltage_offset, "voltage offset")
        self.voltage_offset = offset

    def _curve_point(self, index: int) -> ClocksLevel:
        if not self.vddc_curve:
            raise NotAllowed("The GPU does not expose a voltage curve")
        return self.vddc_curve[index]


def _parse_min_max_line(line: str, line_number: int, current: Optional[Range]) -> Range:
    clockspeed, index = parse_clockspeed_line(line, line_number)
    current = current or Range.empty()

    if index not in (0, 1):
        raise ParseError(f"Unexpected range number {index}", line_number)

    bound = "min" if index == 0 else "max"
    if getattr(current, bound) is not None:
        raise ParseError(f"Duplicate range number {index}", line_number)
    setattr(current, bound, clockspeed)

    return current


def _push_curve_range(name: str, allowed: Range, od_range: OdRange, line_number: int) -> None:
    match = CURVE_RANGE_PATTERN.match(name)
    if match is None:
        raise ParseError(f"Unexpected range item: {name}", line_number)

    kind, index = match.group(1), int(match.group(2))
    points = od_range.curve_sclk_points if kind == "VDDC_CURVE_SCLK" else od_range.curve_voltage_points

    if index != len(points):
        raise ParseError(
            f"Unexpected {kind} index: expected {len(points)}, got {index}",
            line_number,
        )
    points.append(allowed)


def _point_range(points: List[Range], index: int) -> Optional[Range]:
    return points[index] if index < len(points) else None


def clockspeed_command(symbol: str, index: int, clockspeed: int) -> str:
    return f"{symbol} {index} {clockspeed}"
