"""
AMDOC - First Generation Clocks Table

The `pp_od_clk_voltage` format used by Vega10 and older GPUs:

    OD_SCLK:
    0:        300MHz        750mV
    ...
    7:       1366MHz       1150mV
    OD_MCLK:
    0:        300MHz        750mV
    ...
    OD_RANGE:
    SCLK:     300MHz       2000MHz
    MCLK:     300MHz       2250MHz
    VDDC:     750mV        1200mV

Every level is written back as `s|m <index> <clockspeed> <voltage>`.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional

from ..errors import NotAllowed, ParseError
from .parsing import end_of_input_line, parse_range_line, push_level_line, sysfs_lines
from .primitives import AllowedRanges, ClocksLevel, Range
from .table import ClocksTable, ClocksTableFormat

logger = logging.getLogger(__name__)


class _Section(Enum):
    SCLK = "OD_SCLK:"
    MCLK = "OD_MCLK:"
    RANGE = "OD_RANGE:"


SECTION_MARKERS = {section.value: section for section in _Section}


@dataclass
class Gen1Table(ClocksTable):
    """Vega10 (and older) clocks table."""

    format: ClassVar[ClocksTableFormat] = ClocksTableFormat.GEN1

    # List of core clock levels
    sclk_levels: List[ClocksLevel] = field(default_factory=list)
    # List of memory clock levels, empty on integrated GPUs
    mclk_levels: List[ClocksLevel] = field(default_factory=list)
    allowed_ranges: AllowedRanges = field(default_factory=lambda: AllowedRanges(sclk=Range.empty()))

    @classmethod
    def parse(cls, text: str) -> "Gen1Table":
        """
        Parse the table from the contents of `pp_od_clk_voltage`.

        Raises:
            ParseError: On the first malformed line, or if the SCLK range is missing
        """
        sclk_levels: List[ClocksLevel] = []
        mclk_levels: List[ClocksLevel] = []
        sclk_range = None
        mclk_range = None
        vddc_range = None

        current_section = None

        for line_number, line in sysfs_lines(text):
            if line in SECTION_MARKERS:
                current_section = SECTION_MARKERS[line]
            elif current_section is _Section.SCLK:
                push_level_line(line, sclk_levels, line_number)
            elif current_section is _Section.MCLK:
                push_level_line(line, mclk_levels, line_number)
            elif current_section is _Section.RANGE:
                allowed, name = parse_range_line(line, line_number)
                if name == "SCLK":
                    sclk_range = allowed
                elif name == "MCLK":
                    mclk_range = allowed
                elif name == "VDDC":
                    vddc_range = allowed
                else:
                    raise ParseError(f"Unexpected range item: {name}", line_number)
            else:
                raise ParseError("Could not find section", line_number)

        if sclk_range is None:
            raise ParseError("No sclk range found", end_of_input_line(text))

        logger.debug(
            f"Parsed gen1 clocks table with {len(sclk_levels)} sclk "
            f"and {len(mclk_levels)} mclk levels"
        )

        return cls(
            sclk_levels=sclk_levels,
            mclk_levels=mclk_levels,
            allowed_ranges=AllowedRanges(sclk=sclk_range, mclk=mclk_range, vddc=vddc_range),
        )

    def get_commands(self, previous: Optional[ClocksTable] = None) -> List[str]:
        self._check_previous(previous)

        commands = [
            level_command(level, index, "s") for index, level in enumerate(self.sclk_levels)
        ]
        commands.extend(
            level_command(level, index, "m") for index, level in enumerate(self.mclk_levels)
        )
        return commands

    # =========================================================================
    # Current values
    # =========================================================================

    def get_max_sclk(self) -> Optional[int]:
        return self.sclk_levels[-1].clockspeed if self.sclk_levels else None

    def get_min_sclk(self) -> Optional[int]:
        return self.sclk_levels[0].clockspeed if self.sclk_levels else None

    def get_max_mclk(self) -> Optional[int]:
        return self.mclk_levels[-1].clockspeed if self.mclk_levels else None

    def get_min_mclk(self) -> Optional[int]:
        return self.mclk_levels[0].clockspeed if self.mclk_levels else None

    def get_max_voltage(self) -> Optional[int]:
        return self.sclk_levels[-1].voltage if self.sclk_levels else None

    def get_min_voltage(self) -> Optional[int]:
        return self.sclk_levels[0].voltage if self.sclk_levels else None

    # =========================================================================
    # Allowed ranges
    # =========================================================================

    def get_max_sclk_range(self) -> Optional[Range]:
        return self.allowed_ranges.sclk

    def get_min_sclk_range(self) -> Optional[Range]:
        return self.allowed_ranges.sclk

    def get_max_mclk_range(self) -> Optional[Range]:
        return self.allowed_ranges.mclk

    def get_min_mclk_range(self) -> Optional[Range]:
        return self.allowed_ranges.mclk

    def get_max_voltage_range(self) -> Optional[Range]:
        return self.allowed_ranges.vddc

    def get_min_voltage_range(self) -> Optional[Range]:
        return self.allowed_ranges.vddc

    # =========================================================================
    # Setters
    # =========================================================================
    # Only the highest level of each list can be changed through this
    # interface; individual levels stay editable through the lists.

    def set_max_sclk_unchecked(self, clockspeed: int) -> None:
        _last_level(self.sclk_levels, "sclk").clockspeed = clockspeed

    def set_max_mclk_unchecked(self, clockspeed: int) -> None:
        _last_level(self.mclk_levels, "mclk").clockspeed = clockspeed

    def set_max_voltage_unchecked(self, voltage: int) -> None:
        _last_level(self.sclk_levels, "sclk").voltage = voltage

    def set_min_sclk_unchecked(self, clockspeed: int) -> None:
        raise NotAllowed("Only the highest sclk level can be changed on gen1 tables")

    def set_min_mclk_unchecked(self, clockspeed: int) -> None:
        raise NotAllowed("Only the highest mclk level can be changed on gen1 tables")

    def set_min_voltage_unchecked(self, voltage: int) -> None:
        raise NotAllowed("Only the highest sclk level voltage can be changed on gen1 tables")

    def set_min_sclk(self, clockspeed: int) -> None:
        self.set_min_sclk_unchecked(clockspeed)

    def set_min_mclk(self, clockspeed: int) -> None:
        self.set_min_mclk_unchecked(clockspeed)

    def set_min_voltage(self, voltage: int) -> None:
        self.set_min_voltage_unchecked(voltage)


def _last_level(levels: List[ClocksLevel], name: str) -> ClocksLevel:
    if not levels:
        raise NotAllowed(f"No {name} levels found")
    return levels[-1]


def level_command(level: ClocksLevel, index: int, symbol: str) -> str:
    return f"{symbol} {index} {level.clockspeed} {level.voltage}"
