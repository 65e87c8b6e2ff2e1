"""
AMDOC - Error Types

Every failure raised by the parsers, the tables and the controllers derives
from AmdocError, so callers can catch the whole family at once.
"""

from typing import Optional


class AmdocError(Exception):
    """Base exception for amdoc errors."""
    pass


class ParseError(AmdocError):
    """
    Raised when driver text does not match the expected format.

    Attributes:
        message: What went wrong
        line: 1-based line number of the offending input line
    """

    def __init__(self, message: str, line: int = 1):
        self.message = message
        self.line = line
        super().__init__(f"parse error: {message} at line {line}")

    @classmethod
    def unexpected_eol(cls, expected_item: str, line: int) -> "ParseError":
        return cls(f"Unexpected EOL, expected {expected_item}", line)


class NotAllowed(AmdocError):
    """Raised when a well-formed request violates a limit reported by the GPU."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"not allowed: {message}")


class Unsupported(AmdocError):
    """Raised when the driver output has a shape this library does not handle."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"unsupported: {message}")


class SysfsError(AmdocError):
    """Raised when a sysfs file cannot be accessed or the device is invalid."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        super().__init__(message)
