"""
AMDOC - DPM Power Levels

Parsing of the `pp_dpm_*` files, which list the power levels of one clock
domain with the active level marked by a `*`:

    0: 300Mhz
    1: 600Mhz
    2: 900Mhz *

PCIe levels carry link descriptions instead of clockspeeds:

    0: 2.5GT/s, x8
    1: 8.0GT/s, x16 *

Writing a space separated list of level indices to the same file restricts
the GPU to those levels; the driver only accepts it in the manual
performance level.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Iterable, List, Optional, TypeVar, Union

from .errors import NotAllowed, ParseError
from .overdrive.parsing import sysfs_lines

logger = logging.getLogger(__name__)

ACTIVE_MARKER = "*"

T = TypeVar("T")


class PowerLevelKind(Enum):
    """Clock domains with DPM power levels."""
    CORE_CLOCK = "core_clock"
    MEMORY_CLOCK = "memory_clock"
    SOC_CLOCK = "soc_clock"
    FABRIC_CLOCK = "fabric_clock"
    DCEF_CLOCK = "dcef_clock"
    PCIE_SPEED = "pcie_speed"

    @property
    def filename(self) -> str:
        return _FILENAMES[self]

    @property
    def value_suffix(self) -> Optional[str]:
        """Lowercase unit suffix of the level values, None for PCIe link descriptions."""
        if self is PowerLevelKind.PCIE_SPEED:
            return None
        return "mhz"

    @classmethod
    def parse(cls, text: str) -> "PowerLevelKind":
        """
        Look a kind up by its value (`core_clock`) or its file name (`pp_dpm_sclk`).

        Raises:
            NotAllowed: If the name matches no kind
        """
        for kind in cls:
            if text in (kind.value, kind.filename):
                return kind
        raise NotAllowed(f"Unknown power level kind {text}")


_FILENAMES = {
    PowerLevelKind.CORE_CLOCK: "pp_dpm_sclk",
    PowerLevelKind.MEMORY_CLOCK: "pp_dpm_mclk",
    PowerLevelKind.SOC_CLOCK: "pp_dpm_socclk",
    PowerLevelKind.FABRIC_CLOCK: "pp_dpm_fclk",
    PowerLevelKind.DCEF_CLOCK: "pp_dpm_dcefclk",
    PowerLevelKind.PCIE_SPEED: "pp_dpm_pcie",
}


@dataclass
class PowerLevels(Generic[T]):
    """Power levels of one clock domain."""
    # Level values in index order: MHz for clocks, link descriptions for PCIe
    levels: List[T] = field(default_factory=list)
    # Index of the currently active level, if the driver marks one
    active: Optional[int] = None

    def active_level(self) -> Optional[T]:
        if self.active is None or not 0 <= self.active < len(self.levels):
            return None
        return self.levels[self.active]


def parse_power_levels(text: str, kind: PowerLevelKind) -> PowerLevels[Union[int, str]]:
    """
    Parse the contents of a `pp_dpm_*` file.

    Clock values are returned as integers (MHz), PCIe levels as strings.

    Raises:
        ParseError: If a clock value lacks its unit or is not a number, or
            the active level has no numeric index
    """
    levels: List[Union[int, str]] = []
    active = None
    suffix = kind.value_suffix

    for line_number, line in sysfs_lines(text):
        if line.endswith(ACTIVE_MARKER):
            line = line[:-len(ACTIVE_MARKER)].rstrip()
            identifier = line.split(":", 1)[0].strip()
            try:
                active = int(identifier)
            except ValueError:
                raise ParseError(f"Unexpected power level identifier {identifier}", line_number)

        raw_value = line.rsplit(":", 1)[-1].strip()
        if suffix is None:
            levels.append(raw_value)
            continue

        value = raw_value.lower()
        if not value.endswith(suffix):
            raise ParseError(f"Level did not have the expected suffix {suffix}", line_number)
        try:
            levels.append(int(value[:-len(suffix)]))
        except ValueError:
            raise ParseError(f"Could not parse power level value {raw_value}", line_number)

    logger.debug(f"Parsed {len(levels)} {kind.value} levels, active {active}")
    return PowerLevels(levels=levels, active=active)


def enabled_levels_command(levels: Iterable[int], available: int) -> str:
    """
    Build the command that enables only the given level indices.

    Args:
        levels: Level indices to enable
        available: Number of levels the GPU reports

    Raises:
        NotAllowed: If no level is given or an index does not exist
    """
    indices = list(levels)
    if not indices:
        raise NotAllowed("At least one power level must stay enabled")
    for index in indices:
        if not 0 <= index < available:
            raise NotAllowed(f"Power level {index} does not exist, the GPU has {available} levels")
    return " ".join(str(index) for index in indices)
