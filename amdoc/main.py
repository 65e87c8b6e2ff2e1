#!/usr/bin/env python3
"""
AMDOC - AMD OverDrive Control

Console entry point. Shows the OverDrive clocks table, the power profile
modes and the DPM power levels of a GPU. Changes run `amdoc-helper` through
pkexec, so the tool itself never needs root.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import get_config
from .errors import AmdocError, ParseError, SysfsError, Unsupported
from .overdrive import ClocksTable, Gen1Table, Gen2Table, Range
from .power_levels import PowerLevelKind, PowerLevels
from .power_profile_mode import PowerProfileModesTable
from .privileged_controller import PrivilegedController
from .sysfs_controller import PerformanceLevel, SysfsController

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="amdoc",
        description="Inspect amdgpu OverDrive clocks, power profile modes and DPM levels",
    )
    parser.add_argument("--card", help="Sysfs device directory of the GPU")
    parser.add_argument("--version", action="store_true", help="Show version information")
    parser.add_argument("--status", action="store_true", help="Show GPU status (default)")
    parser.add_argument("--clocks", action="store_true", help="Show the OverDrive clocks table")
    parser.add_argument("--profiles", action="store_true", help="Show the power profile modes")
    parser.add_argument("--levels", action="store_true", help="Show the DPM power levels")
    parser.add_argument(
        "--commands",
        action="store_true",
        help="Print the commands that re-apply the current clocks table",
    )
    parser.add_argument(
        "--performance-level",
        choices=[level.value for level in PerformanceLevel],
        help="Force a performance level (asks for authentication)",
    )
    parser.add_argument(
        "--reset-clocks",
        action="store_true",
        help="Reset the clocks table to stock (asks for authentication)",
    )
    parser.add_argument(
        "--enable-levels",
        nargs=2,
        metavar=("KIND", "LEVELS"),
        help="Enable only the comma separated DPM levels of KIND, e.g. core_clock 1,2",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def format_range(allowed: Optional[Range], unit: str) -> str:
    if allowed is None:
        return "not reported"
    low = "?" if allowed.min is None else f"{allowed.min}{unit}"
    high = "?" if allowed.max is None else f"{allowed.max}{unit}"
    return f"{low} - {high}"


def print_clocks_table(table: ClocksTable) -> None:
    print(f"Format: {table.format.value}")

    if isinstance(table, Gen1Table):
        for name, levels in (("SCLK", table.sclk_levels), ("MCLK", table.mclk_levels)):
            for index, level in enumerate(levels):
                print(f"{name} {index}: {level.clockspeed}MHz @ {level.voltage}mV")
        print(f"VDDC range: {format_range(table.allowed_ranges.vddc, 'mV')}")
    elif isinstance(table, Gen2Table):
        for index, point in enumerate(table.vddc_curve):
            print(f"Curve point {index}: {point.clockspeed}MHz @ {point.voltage}mV")
        if table.voltage_offset is not None:
            print(
                f"Voltage offset: {table.voltage_offset}mV "
                f"(range {format_range(table.get_voltage_offset_range(), 'mV')})"
            )

    print(f"Core clock: {table.get_min_sclk()} - {table.get_max_sclk()} MHz "
          f"(range {format_range(table.get_max_sclk_range(), 'MHz')})")
    print(f"Memory clock: {table.get_min_mclk()} - {table.get_max_mclk()} MHz "
          f"(range {format_range(table.get_max_mclk_range(), 'MHz')})")


def print_power_profile_modes(table: PowerProfileModesTable) -> None:
    print(f"Layout: {table.layout.value}")
    if table.available_heuristics:
        print(f"Heuristics: {' '.join(table.available_heuristics)}")

    for index, mode in table.modes.items():
        marker = "*" if index == table.active else " "
        print(f"{marker} {index}: {mode.name}")
        for component in mode.components:
            values = " ".join("-" if value is None else str(value) for value in component.values)
            label = f"{component.clock_type}: " if component.clock_type else ""
            print(f"      {label}{values}")


def print_power_levels(kind: PowerLevelKind, levels: PowerLevels) -> None:
    unit = "MHz" if kind.value_suffix else ""
    print(f"{kind.value}:")
    for index, value in enumerate(levels.levels):
        marker = "*" if index == levels.active else " "
        print(f"{marker} {index}: {value}{unit}")


def show_power_levels(ctrl: SysfsController, as_json: bool) -> None:
    """Print the levels of every clock domain the GPU exposes."""
    found = {}
    for kind in PowerLevelKind:
        try:
            found[kind] = ctrl.get_clock_levels(kind)
        except SysfsError:
            logger.debug(f"No {kind.filename} on this GPU")

    if as_json:
        print(json.dumps({
            kind.value: {"levels": levels.levels, "active": levels.active}
            for kind, levels in found.items()
        }, indent=2))
        return

    for kind, levels in found.items():
        print_power_levels(kind, levels)


def apply_changes(args: argparse.Namespace, card: str) -> None:
    """Run the requested write operations through the privileged helper."""
    with PrivilegedController(card) as ctrl:
        if args.reset_clocks:
            ctrl.reset_clocks()
        if args.performance_level:
            ctrl.set_performance_level(PerformanceLevel.parse(args.performance_level))
        if args.enable_levels:
            kind_name, raw_levels = args.enable_levels
            levels = [int(level) for level in raw_levels.split(",")]
            ctrl.set_enabled_power_levels(PowerLevelKind.parse(kind_name), levels)


def show_status(ctrl: SysfsController, as_json: bool) -> None:
    """Print GPU status to console."""
    level = ctrl.get_performance_level()
    pci_id = ctrl.get_pci_id()

    try:
        table: Optional[ClocksTable] = ctrl.get_clocks_table()
    except (SysfsError, ParseError, Unsupported) as e:
        logger.warning(f"OverDrive not available: {e}")
        table = None

    try:
        modes: Optional[PowerProfileModesTable] = ctrl.get_power_profile_modes()
    except (SysfsError, ParseError, Unsupported) as e:
        logger.warning(f"Power profile modes not available: {e}")
        modes = None
    mode_name = modes.active_mode().name if modes else None

    if as_json:
        print(json.dumps({
            "driver": ctrl.get_driver(),
            "pci_id": ":".join(pci_id) if pci_id else None,
            "performance_level": level.value,
            "max_sclk": table.get_max_sclk() if table else None,
            "max_mclk": table.get_max_mclk() if table else None,
            "power_profile_mode": mode_name,
        }))
        return

    print(f"GPU: {ctrl.device_path}")
    print(f"Driver: {ctrl.get_driver()}")
    if pci_id:
        print(f"PCI ID: {pci_id[0]}:{pci_id[1]}")
    print(f"Performance level: {level.value}")
    if table is not None:
        print(f"Max core clock: {table.get_max_sclk()}MHz")
        print(f"Max memory clock: {table.get_max_mclk()}MHz")
        print(f"Max voltage: {table.get_max_voltage()}mV")
    else:
        print("OverDrive: not available")
    print(f"Power profile mode: {mode_name or 'not available'}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.version:
        print(f"AMDOC version {__version__}")
        return 0

    card = args.card or config.card_path

    writes = args.reset_clocks or args.performance_level or args.enable_levels

    try:
        if writes:
            apply_changes(args, card)

        with SysfsController(card) as ctrl:
            if args.clocks or args.commands:
                table = ctrl.get_clocks_table()
                if args.commands:
                    table.write_commands(sys.stdout)
                elif args.json:
                    print(json.dumps(table.to_dict(), indent=2))
                else:
                    print_clocks_table(table)

            if args.profiles:
                modes = ctrl.get_power_profile_modes()
                if args.json:
                    print(json.dumps(modes.to_dict(), indent=2))
                else:
                    print_power_profile_modes(modes)

            if args.levels:
                show_power_levels(ctrl, args.json)

            shown = args.clocks or args.commands or args.profiles or args.levels
            if args.status or not (shown or writes):
                show_status(ctrl, args.json)
    except (AmdocError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
