"""
AMDOC - Line Parsing Utilities

Tokenizers for the `NAME: MIN<unit> MAX<unit>` and `INDEX: VALUE<unit> VALUE<unit>`
rows found in `pp_od_clk_voltage`.

The driver output is not fully trustworthy (stray NUL bytes, inconsistent unit
casing such as `Mhz` / `MHz`), so every line goes through trim_sysfs_line()
first and every failure is reported as a ParseError with the line number.
"""

from typing import Iterator, List, Sequence, Tuple

from ..errors import ParseError
from .primitives import ClocksLevel, Range

RANGE_SUFFIXES = ("mhz", "mv")


def trim_sysfs_line(line: str) -> str:
    """Remove NUL bytes and surrounding whitespace from a sysfs line."""
    return line.replace("\0", "").strip()


def sysfs_lines(text: str) -> Iterator[Tuple[int, str]]:
    """
    Iterate over the non-empty lines of a sysfs file.

    Yields:
        (line_number, line) pairs, line_number being the 1-based physical line
    """
    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = trim_sysfs_line(raw_line)
        if line:
            yield line_number, line


def end_of_input_line(text: str) -> int:
    """Line number used for errors about something missing at the end of the input."""
    return len(text.splitlines()) + 1


def parse_line_item(
    tokens: Iterator[str],
    line: int,
    item: str,
    suffixes: Sequence[str],
) -> int:
    """
    Take the next token, strip the given suffixes and parse it as an integer.

    Suffixes are matched case-insensitively and must be given in lowercase.

    Args:
        tokens: Iterator over the whitespace separated tokens of a line
        line: Line number used for error reporting
        item: Description of the expected token
        suffixes: Unit suffixes to strip, e.g. ("mhz", "mv") or (":",)

    Raises:
        ParseError: If the token is missing or not a number
    """
    token = next(tokens, None)
    if token is None:
        raise ParseError.unexpected_eol(item, line)

    text = token.lower()
    for suffix in suffixes:
        while suffix and text.endswith(suffix):
            text = text[:-len(suffix)]

    try:
        return int(text)
    except ValueError:
        raise ParseError(f"Could not parse {item} with value {token}", line)


def parse_range_line(line: str, line_number: int) -> Tuple[Range, str]:
    """
    Parse a `NAME: MIN<unit> MAX<unit>` row.

    Example:
        >>> parse_range_line("SCLK:     300MHz       2000MHz", 1)
        (Range(min=300, max=2000), 'SCLK')
    """
    tokens = iter(line.split())
    name = next(tokens, "").rstrip(":")
    if not name:
        raise ParseError.unexpected_eol("range name", line_number)

    minimum = parse_line_item(tokens, line_number, "range minimum", RANGE_SUFFIXES)
    maximum = parse_line_item(tokens, line_number, "range maximum", RANGE_SUFFIXES)

    if minimum > maximum:
        raise ParseError(
            f"Range {name} has minimum {minimum} above maximum {maximum}",
            line_number,
        )

    return Range.full(minimum, maximum), name


def parse_level_line(line: str, line_number: int) -> Tuple[ClocksLevel, int]:
    """Parse an `INDEX: VALUE<mhz> VALUE<mv>` row into a level and its index."""
    tokens = iter(line.split())
    index = parse_line_item(tokens, line_number, "level number", (":",))
    clockspeed = parse_line_item(tokens, line_number, "clockspeed", ("mhz",))
    voltage = parse_line_item(tokens, line_number, "voltage", ("mv",))

    return ClocksLevel(clockspeed=clockspeed, voltage=voltage), index


def push_level_line(line: str, levels: List[ClocksLevel], line_number: int) -> None:
    """
    Parse a level row and append it to a level list.

    Raises:
        ParseError: If the row's index is not the next index of the list
    """
    level, index = parse_level_line(line, line_number)

    expected = len(levels)
    if index != expected:
        raise ParseError(
            f"Unexpected level num: expected {expected}, got {index}",
            line_number,
        )

    levels.append(level)


def parse_clockspeed_line(line: str, line_number: int) -> Tuple[int, int]:
    """Parse an `INDEX: VALUE<mhz>` row into a clockspeed and its index."""
    tokens = iter(line.split())
    index = parse_line_item(tokens, line_number, "level number", (":",))
    clockspeed = parse_line_item(tokens, line_number, "clockspeed", ("mhz",))

    return clockspeed, index
