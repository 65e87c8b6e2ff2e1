"""
AMDOC - Clocks Table Interface

The capability surface shared by every `pp_od_clk_voltage` format.
Concrete formats only provide getters, allowed ranges and unchecked setters;
range checking lives here so it behaves the same for every generation.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, List, Optional, TextIO

from ..errors import NotAllowed
from .primitives import Range

COMMIT_COMMAND = "c"
RESET_COMMAND = "r"


class ClocksTableFormat(Enum):
    """Known `pp_od_clk_voltage` layouts."""
    # Vega10 and older: discrete clock/voltage levels
    GEN1 = "gen1"
    # Vega20 and newer: min/max ranges, voltage curve, voltage offset
    GEN2 = "gen2"


def check_in_range(value: int, allowed: Optional[Range], what: str) -> None:
    """
    Validate a value against an allowed OverDrive range.

    Raises:
        NotAllowed: If the range is unknown or the value lies outside of it
    """
    bounds = allowed.into_full() if allowed is not None else None
    if bounds is None:
        raise NotAllowed(f"GPU does not report an allowed range for {what}")

    minimum, maximum = bounds
    if not minimum <= value <= maximum:
        raise NotAllowed(
            f"Given {what} {value} is out of the allowed OD range {minimum} to {maximum}"
        )


class ClocksTable(ABC):
    """Shared functionality across all clocks table formats."""

    format: ClocksTableFormat

    # =========================================================================
    # Commands
    # =========================================================================

    @abstractmethod
    def get_commands(self, previous: Optional["ClocksTable"] = None) -> List[str]:
        """
        Build the commands needed to apply this table on the GPU.

        Args:
            previous: The table as it was read from the GPU before editing.
                Formats that need to order their commands against the
                committed state use it; it must be of the same format.

        Returns:
            Command lines without trailing newlines
        """

    def write_commands(self, writer: TextIO, previous: Optional["ClocksTable"] = None) -> None:
        """Write the newline terminated commands to a text stream."""
        for command in self.get_commands(previous):
            writer.write(f"{command}\n")

    def _check_previous(self, previous: Optional["ClocksTable"]) -> None:
        if previous is not None and previous.format != self.format:
            raise NotAllowed(
                f"Mismatched table format: cannot diff a {self.format.value} table "
                f"against a {previous.format.value} table"
            )

    # =========================================================================
    # Current values
    # =========================================================================

    @abstractmethod
    def get_max_sclk(self) -> Optional[int]:
        """Get the current maximum core clock."""

    @abstractmethod
    def get_min_sclk(self) -> Optional[int]:
        """Get the current minimum core clock."""

    @abstractmethod
    def get_max_mclk(self) -> Optional[int]:
        """Get the current maximum memory clock."""

    @abstractmethod
    def get_min_mclk(self) -> Optional[int]:
        """Get the current minimum memory clock."""

    @abstractmethod
    def get_max_voltage(self) -> Optional[int]:
        """Get the voltage of the highest core clock point."""

    @abstractmethod
    def get_min_voltage(self) -> Optional[int]:
        """Get the voltage of the lowest core clock point."""

    # =========================================================================
    # Allowed ranges
    # =========================================================================

    @abstractmethod
    def get_max_sclk_range(self) -> Optional[Range]: ...

    @abstractmethod
    def get_min_sclk_range(self) -> Optional[Range]: ...

    @abstractmethod
    def get_max_mclk_range(self) -> Optional[Range]: ...

    @abstractmethod
    def get_min_mclk_range(self) -> Optional[Range]: ...

    @abstractmethod
    def get_max_voltage_range(self) -> Optional[Range]: ...

    @abstractmethod
    def get_min_voltage_range(self) -> Optional[Range]: ...

    # =========================================================================
    # Setters
    # =========================================================================

    @abstractmethod
    def set_max_sclk_unchecked(self, clockspeed: int) -> None: ...

    @abstractmethod
    def set_min_sclk_unchecked(self, clockspeed: int) -> None: ...

    @abstractmethod
    def set_max_mclk_unchecked(self, clockspeed: int) -> None: ...

    @abstractmethod
    def set_min_mclk_unchecked(self, clockspeed: int) -> None: ...

    @abstractmethod
    def set_max_voltage_unchecked(self, voltage: int) -> None: ...

    @abstractmethod
    def set_min_voltage_unchecked(self, voltage: int) -> None: ...

    def set_max_sclk(self, clockspeed: int) -> None:
        """
        Set the maximum core clock after validating it.

        Raises:
            NotAllowed: If the value is outside of the reported range
        """
        check_in_range(clockspeed, self.get_max_sclk_range(), "clockspeed")
        self.set_max_sclk_unchecked(clockspeed)

    def set_min_sclk(self, clockspeed: int) -> None:
        check_in_range(clockspeed, self.get_min_sclk_range(), "clockspeed")
        self.set_min_sclk_unchecked(clockspeed)

    def set_max_mclk(self, clockspeed: int) -> None:
        check_in_range(clockspeed, self.get_max_mclk_range(), "clockspeed")
        self.set_max_mclk_unchecked(clockspeed)

    def set_min_mclk(self, clockspeed: int) -> None:
        check_in_range(clockspeed, self.get_min_mclk_range(), "clockspeed")
        self.set_min_mclk_unchecked(clockspeed)

    def set_max_voltage(self, voltage: int) -> None:
        check_in_range(voltage, self.get_max_voltage_range(), "voltage")
        self.set_max_voltage_unchecked(voltage)

    def set_min_voltage(self, voltage: int) -> None:
        check_in_range(voltage, self.get_min_voltage_range(), "voltage")
        self.set_min_voltage_unchecked(voltage)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the table to a tagged dictionary for JSON output."""
        return {"kind": self.format.value, "data": asdict(self)}
