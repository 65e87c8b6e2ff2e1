"""
AMDOC - Power Profile Modes

Parsing and editing of `pp_power_profile_mode`:
https://kernel.org/doc/html/latest/gpu/amdgpu/thermal.html#pp-power-profile-mode

Depending on the GPU generation the driver prints one of four layouts:

    flat     NUM MODE_NAME <heuristic columns...>, one row per mode
    nested   PROFILE_INDEX(NAME) CLOCK_TYPE(NAME) <heuristic columns...>,
             one row per mode followed by one row per clock type
    basic    <index> <name>, one row per mode (integrated GPUs)
    rotated  one column per mode, one row per heuristic

The active mode is marked with a `*`, either glued to the name or separated
from it by a space. A `-` means the heuristic has no value for that mode.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import NotAllowed, ParseError, Unsupported
from .overdrive.parsing import trim_sysfs_line

logger = logging.getLogger(__name__)

CUSTOM_MODE_NAME = "CUSTOM"
UNSET_VALUE = "-"

COMPONENT_PATTERN = re.compile(r"^(\d+)\(\s*([^)]*?)\s*\)\s*(.*)$")

_SEPARATORS = ("*", ":", "*:", ":*")


class PowerProfileLayout(Enum):
    FLAT = "flat"
    NESTED = "nested"
    BASIC = "basic"
    ROTATED = "rotated"


@dataclass
class PowerProfileComponent:
    """Heuristic values of a mode, for a single clock type."""
    # Clock type name (e.g. GFXCLK), None on tables without clock types
    clock_type: Optional[str] = None
    # Values in the order of the table's heuristics; None means unset
    values: List[Optional[int]] = field(default_factory=list)


@dataclass
class PowerProfile:
    """A predefined power profile mode."""
    name: str
    components: List[PowerProfileComponent] = field(default_factory=list)

    def is_custom(self) -> bool:
        return self.name.upper() == CUSTOM_MODE_NAME


@dataclass
class PowerProfileModesTable:
    """Table of power profile modes with their GPU-specific heuristics."""
    # Modes by index, in index order
    modes: Dict[int, PowerProfile]
    # Index of the currently active mode
    active: int
    # Heuristic column names in table order
    available_heuristics: List[str]
    layout: PowerProfileLayout

    @classmethod
    def parse(cls, text: str) -> "PowerProfileModesTable":
        """
        Parse the table from the contents of `pp_power_profile_mode`.

        Raises:
            ParseError: If a line is malformed or there is not exactly one active mode
            Unsupported: If the header does not match a known layout
        """
        lines = [
            (line_number, line)
            for line_number, line in (
                (number, trim_sysfs_line(raw)) for number, raw in enumerate(text.splitlines(), start=1)
            )
            if line
        ]
        if not lines:
            raise ParseError("Could not read header", 1)

        layout = detect_layout(lines[0][1])
        logger.debug(f"Detected power profile mode layout {layout.value}")

        if layout is PowerProfileLayout.FLAT:
            modes, actives, heuristics = _parse_flat(lines)
        elif layout is PowerProfileLayout.NESTED:
            modes, actives, heuristics = _parse_nested(lines)
        elif layout is PowerProfileLayout.BASIC:
            modes, actives, heuristics = _parse_basic(lines)
        else:
            modes, actives, heuristics = _parse_rotated(lines)

        if not actives:
            raise ParseError("No active mode found", lines[-1][0] + 1)
        if len(actives) > 1:
            indices = ", ".join(str(index) for index, _ in actives)
            raise ParseError(f"Multiple active modes found: {indices}", actives[1][1])

        return cls(
            modes=dict(sorted(modes.items())),
            active=actives[0][0],
            available_heuristics=heuristics,
            layout=layout,
        )

    def active_mode(self) -> PowerProfile:
        return self.modes[self.active]

    def custom_mode_index(self) -> Optional[int]:
        """Find the index of the CUSTOM mode, if the GPU has one."""
        for index, mode in self.modes.items():
            if mode.is_custom():
                return index
        return None

    def select_command(self, mode_index: int) -> str:
        """Get the command that makes a mode active."""
        self._get_mode(mode_index)
        return str(mode_index)

    def set_custom_value(
        self,
        mode_index: int,
        component_index: int,
        heuristic_index: int,
        value: Optional[int],
    ) -> None:
        """
        Set a heuristic value of the CUSTOM mode.

        Args:
            mode_index: Index of the mode, must be the CUSTOM mode
            component_index: Clock type index, 0 on single component tables
            heuristic_index: Position in available_heuristics
            value: New value, None to leave it unset

        Raises:
            NotAllowed: If the mode is not CUSTOM or an index is out of range
        """
        mode = self._get_custom_mode(mode_index)

        if not 0 <= heuristic_index < len(self.available_heuristics):
            raise NotAllowed(
                f"Heuristic index {heuristic_index} is out of range, "
                f"the table has {len(self.available_heuristics)} heuristics"
            )
        if not 0 <= component_index < len(mode.components):
            raise NotAllowed(
                f"Component index {component_index} is out of range, "
                f"mode {mode.name} has {len(mode.components)} components"
            )

        values = mode.components[component_index].values
        if heuristic_index >= len(values):
            values.extend([None] * (heuristic_index + 1 - len(values)))
        values[heuristic_index] = value

    def write_commands(self, mode_index: int) -> List[str]:
        """
        Build the commands that write the heuristics of the CUSTOM mode.

        Single component tables take one line with all values, tables with
        clock types take one line per clock type, prefixed by its index.

        Raises:
            NotAllowed: If the mode is not CUSTOM
        """
        mode = self._get_custom_mode(mode_index)

        if len(mode.components) == 1:
            return [_values_command(str(mode_index), mode.components[0].values)]

        return [
            _values_command(f"{mode_index} {component_index}", component.values)
            for component_index, component in enumerate(mode.components)
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert the table to a tagged dictionary for JSON output."""
        return {
            "kind": self.layout.value,
            "data": {
                "modes": {str(index): asdict(mode) for index, mode in self.modes.items()},
                "active": self.active,
                "available_heuristics": list(self.available_heuristics),
            },
        }

    def _get_mode(self, mode_index: int) -> PowerProfile:
        mode = self.modes.get(mode_index)
        if mode is None:
            raise NotAllowed(f"Unknown power profile mode {mode_index}")
        return mode

    def _get_custom_mode(self, mode_index: int) -> PowerProfile:
        mode = self._get_mode(mode_index)
        if not mode.is_custom():
            raise NotAllowed(f"Only the {CUSTOM_MODE_NAME} mode can be changed, got {mode.name}")
        if not self.available_heuristics:
            raise NotAllowed("The GPU does not expose power profile heuristics")
        return mode


def detect_layout(header: str) -> PowerProfileLayout:
    """
    Pick the table layout from the first line.

    Raises:
        Unsupported: If the header does not match any known layout
    """
    tokens = header.split()
    first = tokens[0]

    if first == "NUM":
        return PowerProfileLayout.FLAT
    if first == "PROFILE_INDEX(NAME)":
        return PowerProfileLayout.NESTED
    if first.isdecimal():
        if len(tokens) > 1 and all(token.isdecimal() for token in tokens):
            return PowerProfileLayout.ROTATED
        return PowerProfileLayout.BASIC

    raise Unsupported(f"Unrecognized power profile mode table header: {first}")


# =============================================================================
# Layout parsers
# =============================================================================
# Each returns (modes, actives, heuristics), actives holding (index, line)
# pairs so that duplicates can be reported.

_Lines = List[Tuple[int, str]]
_Actives = List[Tuple[int, int]]


def _parse_flat(lines: _Lines) -> Tuple[Dict[int, PowerProfile], _Actives, List[str]]:
    header_line, header = lines[0]
    heuristics = _parse_header(header, header_line, "MODE_NAME")

    modes: Dict[int, PowerProfile] = {}
    actives: _Actives = []

    for line_number, row in lines[1:]:
        index, name, active, rest = _parse_mode_row(row, line_number)
        if len(rest) > len(heuristics):
            raise ParseError(
                f"Expected at most {len(heuristics)} heuristic values, found {len(rest)}",
                line_number,
            )

        values = [_parse_value(token, line_number) for token in rest]
        values.extend([None] * (len(heuristics) - len(values)))

        _add_mode(modes, index, PowerProfile(name, [PowerProfileComponent(values=values)]), line_number)
        if active:
            actives.append((index, line_number))

    return modes, actives, heuristics


def _parse_nested(lines: _Lines) -> Tuple[Dict[int, PowerProfile], _Actives, List[str]]:
    header_line, header = lines[0]
    heuristics = _parse_header(header, header_line, "CLOCK_TYPE(NAME)")

    modes: Dict[int, PowerProfile] = {}
    actives: _Actives = []
    current_mode: Optional[PowerProfile] = None

    for line_number, row in lines[1:]:
        component_match = COMPONENT_PATTERN.match(row)
        if component_match is not None:
            if current_mode is None:
                raise ParseError("Found a clock type row before any mode", line_number)

            component_index = int(component_match.group(1))
            expected = len(current_mode.components)
            if component_index != expected:
                raise ParseError(
                    f"Unexpected clock type index: expected {expected}, got {component_index}",
                    line_number,
                )

            tokens = component_match.group(3).split()
            if len(tokens) > len(heuristics):
                raise ParseError(
                    f"Expected at most {len(heuristics)} heuristic values, found {len(tokens)}",
                    line_number,
                )
            values = [_parse_value(token, line_number) for token in tokens]
            current_mode.components.append(
                PowerProfileComponent(clock_type=component_match.group(2), values=values)
            )
            continue

        index, name, active, rest = _parse_mode_row(row, line_number)
        if rest:
            raise ParseError(f"Unexpected values after mode name {name}", line_number)

        current_mode = PowerProfile(name)
        _add_mode(modes, index, current_mode, line_number)
        if active:
            actives.append((index, line_number))

    return modes, actives, heuristics


def _parse_basic(lines: _Lines) -> Tuple[Dict[int, PowerProfile], _Actives, List[str]]:
    modes: Dict[int, PowerProfile] = {}
    actives: _Actives = []

    for line_number, row in lines:
        index, name, active, rest = _parse_mode_row(row, line_number)
        if rest:
            raise ParseError(f"Unexpected values after mode name {name}", line_number)

        _add_mode(modes, index, PowerProfile(name), line_number)
        if active:
            actives.append((index, line_number))

    return modes, actives, []


def _parse_rotated(lines: _Lines) -> Tuple[Dict[int, PowerProfile], _Actives, List[str]]:
    header_line, header = lines[0]
    try:
        indices = [int(token) for token in header.split()]
    except ValueError:
        raise ParseError(f"Could not parse mode numbers from header {header}", header_line)

    if len(lines) < 2:
        raise ParseError.unexpected_eol("mode names", header_line + 1)
    names_line, names_row = lines[1]

    names: List[str] = []
    active_columns: List[int] = []
    for token in names_row.split():
        if token in _SEPARATORS:
            if not names:
                raise ParseError("Found an active marker before any mode name", names_line)
            if "*" in token:
                active_columns.append(len(names) - 1)
            continue
        if "*" in token:
            active_columns.append(len(names))
        names.append(token.strip(":*"))

    if len(names) != len(indices):
        raise ParseError(
            f"Expected {len(indices)} mode names, found {len(names)}",
            names_line,
        )

    modes: Dict[int, PowerProfile] = {}
    for index, name in zip(indices, names):
        _add_mode(modes, index, PowerProfile(name, [PowerProfileComponent()]), header_line)

    heuristics: List[str] = []
    for line_number, row in lines[2:]:
        tokens = row.split()
        heuristic, values = tokens[0], tokens[1:]
        if len(values) != len(indices):
            raise ParseError(
                f"Expected {len(indices)} values for heuristic {heuristic}, found {len(values)}",
                line_number,
            )

        heuristics.append(heuristic)
        for index, token in zip(indices, values):
            modes[index].components[0].values.append(_parse_value(token, line_number))

    actives = [(indices[column], names_line) for column in active_columns]
    return modes, actives, heuristics


# =============================================================================
# Row helpers
# =============================================================================

def _parse_header(header: str, line_number: int, second_column: str) -> List[str]:
    tokens = header.split()
    if len(tokens) < 2:
        raise ParseError.unexpected_eol(f"{second_column} column", line_number)
    if tokens[1] != second_column:
        raise ParseError(
            f"Expected the second column to be {second_column}, found {tokens[1]}",
            line_number,
        )
    return tokens[2:]


def _parse_mode_row(row: str, line_number: int) -> Tuple[int, str, bool, List[str]]:
    """Split a `<index> <name>[ ][*][:] ...` row into index, name, active flag and the rest."""
    tokens = row.split()

    try:
        index = int(tokens[0])
    except ValueError:
        raise ParseError(f"Could not parse mode number with value {tokens[0]}", line_number)

    if len(tokens) < 2:
        raise ParseError.unexpected_eol("mode name", line_number)

    raw_name = tokens[1]
    active = "*" in raw_name
    name = raw_name.strip(":*")
    if not name:
        raise ParseError.unexpected_eol("mode name", line_number)

    rest = tokens[2:]
    while rest and rest[0] in _SEPARATORS:
        if "*" in rest[0]:
            active = True
        rest = rest[1:]

    return index, name, active, rest


def _parse_value(token: str, line_number: int) -> Optional[int]:
    if token == UNSET_VALUE:
        return None
    try:
        return int(token)
    except ValueError:
        raise ParseError(f"Could not parse heuristic value {token}", line_number)


def _add_mode(modes: Dict[int, PowerProfile], index: int, mode: PowerProfile, line_number: int) -> None:
    if index in modes:
        raise ParseError(f"Duplicate mode number {index}", line_number)
    modes[index] = mode


def _values_command(prefix: str, values: List[Optional[int]]) -> str:
    parts = [prefix]
    parts.extend(UNSET_VALUE if value is None else str(value) for value in values)
    return " ".join(parts)
