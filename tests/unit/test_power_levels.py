from __future__ import annotations

import pytest

from amdoc.errors import NotAllowed, ParseError
from amdoc.power_levels import (
    PowerLevelKind,
    PowerLevels,
    enabled_levels_command,
    parse_power_levels,
)


def test_rx580_core_clock(dpm_text) -> None:
    levels = parse_power_levels(dpm_text("rx580", "core_clock"), PowerLevelKind.CORE_CLOCK)
    assert levels.levels == [300, 600, 900, 1145, 1215, 1257, 1300, 1366]
    assert levels.active == 2
    assert levels.active_level() == 900


def test_rx580_memory_clock(dpm_text) -> None:
    levels = parse_power_levels(dpm_text("rx580", "memory_clock"), PowerLevelKind.MEMORY_CLOCK)
    assert levels == PowerLevels(levels=[300, 1000, 1750], active=2)


def test_rx580_pcie(dpm_text) -> None:
    levels = parse_power_levels(dpm_text("rx580", "pcie_speed"), PowerLevelKind.PCIE_SPEED)
    assert levels.levels == ["2.5GT/s, x8", "8.0GT/s, x16"]
    assert levels.active_level() == "8.0GT/s, x16"


def test_vega56_levels(dpm_text) -> None:
    sclk = parse_power_levels(dpm_text("vega56", "core_clock"), PowerLevelKind.CORE_CLOCK)
    mclk = parse_power_levels(dpm_text("vega56", "memory_clock"), PowerLevelKind.MEMORY_CLOCK)
    pcie = parse_power_levels(dpm_text("vega56", "pcie_speed"), PowerLevelKind.PCIE_SPEED)

    assert sclk.levels == [852, 991, 1138, 1269, 1312, 1474, 1538, 1590]
    assert sclk.active == 0
    assert mclk.levels == [167, 500, 700, 920]
    assert mclk.active_level() == 167
    assert pcie.levels == ["8.0GT/s, x16", "8.0GT/s, x16"]
    assert pcie.active == 1


def test_unit_is_case_insensitive() -> None:
    levels = parse_power_levels("0: 500MHz\n1: 2660mhz *\n", PowerLevelKind.CORE_CLOCK)
    assert levels.levels == [500, 2660]
    assert levels.active == 1


def test_no_active_level() -> None:
    levels = parse_power_levels("0: 500Mhz\n1: 2660Mhz\n", PowerLevelKind.CORE_CLOCK)
    assert levels.active is None
    assert levels.active_level() is None


def test_active_index_out_of_range() -> None:
    assert PowerLevels(levels=[500], active=3).active_level() is None


def test_missing_suffix() -> None:
    with pytest.raises(ParseError) as exc:
        parse_power_levels("0: 500Mhz\n1: 2660\n", PowerLevelKind.CORE_CLOCK)
    assert exc.value.line == 2


def test_invalid_value() -> None:
    with pytest.raises(ParseError) as exc:
        parse_power_levels("0: fastMhz *\n", PowerLevelKind.CORE_CLOCK)
    assert exc.value.line == 1


def test_invalid_active_identifier() -> None:
    with pytest.raises(ParseError) as exc:
        parse_power_levels("0: 500Mhz\n\nx: 2660Mhz *\n", PowerLevelKind.CORE_CLOCK)
    assert exc.value.line == 3


def test_kind_lookup() -> None:
    assert PowerLevelKind.parse("core_clock") is PowerLevelKind.CORE_CLOCK
    assert PowerLevelKind.parse("pp_dpm_mclk") is PowerLevelKind.MEMORY_CLOCK
    assert PowerLevelKind.PCIE_SPEED.filename == "pp_dpm_pcie"
    assert PowerLevelKind.PCIE_SPEED.value_suffix is None
    assert PowerLevelKind.SOC_CLOCK.value_suffix == "mhz"
    with pytest.raises(NotAllowed):
        PowerLevelKind.parse("gfx_clock")


def test_enabled_levels_command() -> None:
    assert enabled_levels_command([1, 2], 8) == "1 2"
    assert enabled_levels_command(iter([0]), 1) == "0"


def test_enabled_levels_command_rejects_empty_list() -> None:
    with pytest.raises(NotAllowed):
        enabled_levels_command([], 8)


def test_enabled_levels_command_rejects_missing_level() -> None:
    with pytest.raises(NotAllowed, match="does not exist"):
        enabled_levels_command([1, 3], 3)
    with pytest.raises(NotAllowed):
        enabled_levels_command([-1], 3)
