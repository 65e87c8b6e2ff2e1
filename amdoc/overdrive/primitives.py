"""
AMDOC - OverDrive Primitives

Value types shared by every clocks table format.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class Range:
    """
    A range of clockspeeds (MHz) or voltages (mV).

    Either bound may be unknown. When both are present, min <= max.
    """
    min: Optional[int] = None
    max: Optional[int] = None

    @classmethod
    def full(cls, min: int, max: int) -> "Range":
        """Create a range with both bounds."""
        if min > max:
            raise ValueError(f"Range minimum {min} is greater than maximum {max}")
        return cls(min=min, max=max)

    @classmethod
    def min_only(cls, min: int) -> "Range":
        return cls(min=min)

    @classmethod
    def max_only(cls, max: int) -> "Range":
        return cls(max=max)

    @classmethod
    def empty(cls) -> "Range":
        return cls()

    def into_full(self) -> Optional[Tuple[int, int]]:
        """Return (min, max) when both bounds are known, None otherwise."""
        if self.min is None or self.max is None:
            return None
        return (self.min, self.max)

    def contains(self, value: int) -> bool:
        """Check a value against the bounds that are known."""
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def clamp(self, value: int) -> int:
        if self.min is not None and value < self.min:
            return self.min
        if self.max is not None and value > self.max:
            return self.max
        return value

    def is_empty(self) -> bool:
        return self.min is None and self.max is None


@dataclass
class ClocksLevel:
    """A combination of a clockspeed (MHz) and a voltage (mV)."""
    clockspeed: int
    voltage: int


@dataclass
class AllowedRanges:
    """
    The OverDrive limits reported by the driver.

    sclk is present on every GPU, mclk on discrete GPUs only and vddc on
    first generation tables only.
    """
    sclk: Range
    mclk: Optional[Range] = None
    vddc: Optional[Range] = None
