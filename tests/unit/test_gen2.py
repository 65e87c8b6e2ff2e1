from __future__ import annotations

import copy

import pytest

from amdoc.errors import NotAllowed, ParseError
from amdoc.overdrive import ClocksLevel, ClocksTableFormat, Gen1Table, Gen2Table, Range


def test_parse_rx5700xt(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx5700xt"))

    assert table.format is ClocksTableFormat.GEN2
    assert table.current_sclk_range == Range(800, 2100)
    assert table.current_mclk_range == Range(None, 875)
    assert table.vddc_curve == [
        ClocksLevel(800, 711),
        ClocksLevel(1450, 801),
        ClocksLevel(2100, 1191),
    ]
    assert table.voltage_offset is None
    assert table.od_range.sclk == Range(800, 2150)
    assert table.od_range.mclk == Range(625, 950)
    assert table.od_range.curve_sclk_points == [Range(800, 2150)] * 3
    assert table.od_range.curve_voltage_points == [Range(750, 1200)] * 3

    assert table.get_max_voltage() == 1191
    assert table.get_min_voltage() == 711
    assert table.get_max_voltage_range() == Range(750, 1200)


def test_commands_rx5700xt(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx5700xt"))
    assert table.get_commands() == [
        "s 0 800",
        "s 1 2100",
        "m 1 875",
        "vc 0 800 711",
        "vc 1 1450 801",
        "vc 2 2100 1191",
    ]


def test_commands_rx7900xt_voltage_offset(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx7900xt"))

    assert table.get_voltage_offset() == 0
    assert table.get_voltage_offset_range() == Range(-450, 0)
    assert table.vddc_curve == []
    assert table.get_commands() == ["s 0 500", "s 1 2400", "m 0 97", "m 1 1250", "vo 0"]


def test_set_voltage_offset(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx7900xt"))
    table.set_voltage_offset(-100)
    assert table.get_commands()[-1] == "vo -100"

    with pytest.raises(NotAllowed):
        table.set_voltage_offset(50)
    assert table.voltage_offset == -100


def test_set_voltage_offset_without_reported_range(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx6900xt"))
    table.set_voltage_offset(-30)
    assert table.get_commands()[-1] == "vo -30"


def test_integrated_gpu_without_mclk(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("internal-4800h"))

    assert table.current_mclk_range.is_empty()
    assert table.od_range.mclk is None
    assert table.get_max_mclk() is None
    assert table.get_commands() == ["s 0 1400", "s 1 1750"]

    with pytest.raises(NotAllowed) as excinfo:
        table.set_max_mclk(1000)
    assert "does not report an allowed range" in str(excinfo.value)


def test_raised_minimum_emits_maximum_first(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx6900xt"))
    previous = copy.deepcopy(table)

    table.set_min_mclk(1100)
    table.set_max_mclk(1200)

    commands = table.get_commands(previous)
    assert commands == ["m 1 1200", "s 0 500", "s 1 2660", "m 0 1100"]
    assert commands.index("m 1 1200") < commands.index("m 0 1100")


def test_raised_sclk_minimum_emits_maximum_first(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx6900xt"))
    previous = copy.deepcopy(table)

    table.set_max_sclk(3000)
    table.set_min_sclk(2800)

    assert table.get_commands(previous) == ["s 1 3000", "s 0 2800", "m 0 97", "m 1 1000"]


def test_commands_keep_order_without_raised_minimum(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx6900xt"))
    previous = copy.deepcopy(table)

    table.set_max_sclk(2700)
    assert table.get_commands(previous) == table.get_commands()


def test_mismatched_previous_format(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx6900xt"))
    previous = Gen1Table.parse(clocks_text("rx580"))

    with pytest.raises(NotAllowed) as excinfo:
        table.get_commands(previous)
    assert "Mismatched table format" in str(excinfo.value)


def test_clear_only_writes_later_edits(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx6900xt"))
    table.clear()
    assert table.get_commands() == []

    table.set_max_sclk(2500)
    assert table.get_commands() == ["s 1 2500"]
    assert table.od_range.sclk == Range(500, 3150)


def test_clear_keeps_voltage_curve(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx5700xt"))
    table.clear()
    assert table.get_commands() == ["vc 0 800 711", "vc 1 1450 801", "vc 2 2100 1191"]


def test_sclk_setters_move_curve_endpoints(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx5700xt"))
    table.set_max_sclk(2000)
    table.set_min_sclk(900)

    assert table.vddc_curve[0].clockspeed == 900
    assert table.vddc_curve[1].clockspeed == 1450
    assert table.vddc_curve[-1].clockspeed == 2000


def test_voltage_setters_follow_sclk(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx5700xt"))
    table.set_max_voltage(1100)
    table.set_min_voltage(760)

    assert table.vddc_curve[-1] == ClocksLevel(2100, 1100)
    assert table.vddc_curve[0] == ClocksLevel(800, 760)

    with pytest.raises(NotAllowed):
        table.set_max_voltage(1300)


def test_voltage_setters_without_curve(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("rx6900xt"))
    assert table.get_max_voltage() is None
    assert table.get_max_voltage_range() is None

    with pytest.raises(NotAllowed):
        table.set_max_voltage(1000)
    with pytest.raises(NotAllowed) as excinfo:
        table.set_min_voltage_unchecked(1000)
    assert str(excinfo.value) == "not allowed: The GPU does not expose a voltage curve"


def test_normalize_vddc_curve(clocks_text) -> None:
    table = Gen2Table.parse(clocks_text("radeonvii"))
    assert table.vddc_curve[0].voltage == 724

    table.normalize_vddc_curve()
    assert table.vddc_curve[0] == ClocksLevel(808, 738)
    assert table.vddc_curve[2] == ClocksLevel(1801, 1054)

    normalized = copy.deepcopy(table.vddc_curve)
    table.normalize_vddc_curve()
    assert table.vddc_curve == normalized


def test_parse_requires_current_sclk() -> None:
    text = "OD_MCLK:\n1: 875MHz\nOD_RANGE:\nSCLK: 800Mhz 2150Mhz\n"
    with pytest.raises(ParseError) as excinfo:
        Gen2Table.parse(text)
    assert excinfo.value.message == "No current sclk range found"
    assert excinfo.value.line == 5


def test_parse_requires_sclk_range() -> None:
    with pytest.raises(ParseError) as excinfo:
        Gen2Table.parse("OD_SCLK:\n0: 800Mhz\n1: 2100Mhz\n")
    assert excinfo.value.message == "No sclk range found"


def test_parse_rejects_bad_min_max_index() -> None:
    text = "OD_SCLK:\n0: 800Mhz\n2: 2100Mhz\nOD_RANGE:\nSCLK: 800Mhz 2150Mhz\n"
    with pytest.raises(ParseError) as excinfo:
        Gen2Table.parse(text)
    assert excinfo.value.line == 3


def test_parse_rejects_second_voltage_offset() -> None:
    text = "OD_SCLK:\n0: 500Mhz\nOD_VDDGFX_OFFSET:\n0mV\n-10mV\nOD_RANGE:\nSCLK: 500Mhz 3000Mhz\n"
    with pytest.raises(ParseError) as excinfo:
        Gen2Table.parse(text)
    assert excinfo.value.line == 5


def test_parse_rejects_non_contiguous_curve_range() -> None:
    text = (
        "OD_SCLK:\n0: 800Mhz\n1: 2100Mhz\n"
        "OD_RANGE:\nSCLK: 800Mhz 2150Mhz\n"
        "VDDC_CURVE_SCLK[0]: 800Mhz 2150Mhz\n"
        "VDDC_CURVE_SCLK[2]: 800Mhz 2150Mhz\n"
    )
    with pytest.raises(ParseError) as excinfo:
        Gen2Table.parse(text)
    assert excinfo.value.line == 7


def test_parse_rejects_too_many_curve_points() -> None:
    text = (
        "OD_SCLK:\n0: 800Mhz\n1: 2100Mhz\n"
        "OD_VDDC_CURVE:\n0: 800MHz 711mV\n1: 1450MHz 801mV\n2: 2100MHz 1191mV\n3: 2200MHz 1200mV\n"
        "OD_RANGE:\nSCLK: 800Mhz 2150Mhz\n"
    )
    with pytest.raises(ParseError) as excinfo:
        Gen2Table.parse(text)
    assert excinfo.value.line == 8


def test_to_dict(clocks_text) -> None:
    data = Gen2Table.parse(clocks_text("rx7900xt")).to_dict()
    assert data["kind"] == "gen2"
    assert data["data"]["current_sclk_range"] == {"min": 500, "max": 2400}
    assert data["data"]["voltage_offset"] == 0
    assert data["data"]["od_range"]["voltage_offset"] == {"min": -450, "max": 0}


def test_parse_rejects_duplicate_min_max_index() -> None:
    text = "OD_SCLK:\n0: 800Mhz\n0: 900Mhz\n1: 2100Mhz\nOD_RANGE:\nSCLK: 800Mhz 2150Mhz\n"
    with pytest.raises(ParseError) as excinfo:
        Gen2Table.parse(text)
    assert excinfo.value.message == "Duplicate range number 0"
    assert excinfo.value.line == 3


def test_parse_rejects_duplicate_mclk_max() -> None:
    text = "OD_SCLK:\n0: 800Mhz\n1: 2100Mhz\nOD_MCLK:\n1: 875MHz\n1: 900MHz\nOD_RANGE:\nSCLK: 800Mhz 2150Mhz\n"
    with pytest.raises(ParseError) as excinfo:
        Gen2Table.parse(text)
    assert excinfo.value.line == 6
