#!/usr/bin/env python3
"""
AMDOC Privileged Helper

This script runs as root via pkexec to perform privileged GPU operations.
Unprivileged callers read sysfs directly and use this helper for writes.

Usage:
    pkexec amdoc-helper [--card PATH] <command> [args...]

Commands:
    status                          - Get GPU status (JSON output)
    get-clocks                      - Get the OverDrive clocks table
    set-clocks <json>               - Edit and apply the clocks table
    reset-clocks                    - Reset the clocks table to stock
    set-performance-level <level>   - Force auto/low/high/manual
    get-profile-modes               - Get the power profile modes table
    set-profile-mode <index>        - Activate a power profile mode
    set-custom-heuristics <json>    - Write CUSTOM mode heuristics and activate it
    get-power-levels <kind>         - Get the DPM levels of a clock domain
    set-power-levels <kind> <i>...  - Enable only the given DPM levels (manual only)
    list-cards                      - List amdgpu devices
"""

import copy
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from amdoc.config import get_config
from amdoc.errors import AmdocError, NotAllowed, ParseError, SysfsError, Unsupported
from amdoc.overdrive import ClocksTable, Gen2Table
from amdoc.power_levels import PowerLevelKind
from amdoc.power_profile_mode import PowerProfileModesTable
from amdoc.sysfs_controller import PerformanceLevel, SysfsController, find_cards

logging.basicConfig(level=logging.INFO, format='%(message)s', stream=sys.stderr)
logger = logging.getLogger(__name__)

CLOCKS_EDIT_KEYS = (
    "min_sclk",
    "max_sclk",
    "min_mclk",
    "max_mclk",
    "min_voltage",
    "max_voltage",
    "voltage_offset",
)


class HelperExit(Exception):
    """Raised to stop the helper after an error was reported."""
    pass


def output_json(data: Dict[str, Any]) -> None:
    """Output JSON result to stdout."""
    print(json.dumps(data))


def output_error(message: str) -> None:
    """Output error as JSON."""
    output_json({"success": False, "error": message})
    raise HelperExit(message)


def output_success(data: Optional[Dict[str, Any]] = None) -> None:
    """Output success result."""
    result: Dict[str, Any] = {"success": True}
    if data:
        result.update(data)
    output_json(result)


def apply_clocks_edits(table: ClocksTable, edits: Dict[str, Any]) -> None:
    """
    Apply clocks edits through the table's checked setters.

    Clocks are applied before voltages so that the voltage curve endpoints
    pick up the new clockspeeds.

    Raises:
        NotAllowed: On unknown keys or values outside of the allowed ranges
    """
    unknown = sorted(set(edits) - set(CLOCKS_EDIT_KEYS))
    if unknown:
        raise NotAllowed(f"Unknown clocks settings: {', '.join(unknown)}")

    for key in CLOCKS_EDIT_KEYS:
        value = edits.get(key)
        if value is None:
            continue
        if key == "voltage_offset":
            if not isinstance(table, Gen2Table):
                raise NotAllowed("Voltage offset is only available on gen2 clocks tables")
            table.set_voltage_offset(int(value))
        else:
            getattr(table, f"set_{key}")(int(value))


def apply_custom_heuristics(table: PowerProfileModesTable, values: Dict[str, Dict[str, Any]]) -> int:
    """
    Set CUSTOM mode heuristics from `{component: {heuristic: value}}`.

    Heuristics may be given by name or by position.

    Returns:
        The index of the CUSTOM mode
    """
    index = table.custom_mode_index()
    if index is None:
        raise NotAllowed("The GPU does not have a CUSTOM power profile mode")

    for component, heuristics in values.items():
        for heuristic, value in heuristics.items():
            if heuristic in table.available_heuristics:
                position = table.available_heuristics.index(heuristic)
            elif heuristic.isdecimal():
                position = int(heuristic)
            else:
                raise NotAllowed(f"Unknown heuristic {heuristic}")
            table.set_custom_value(
                index,
                int(component),
                position,
                None if value is None else int(value),
            )

    return index


def cmd_status(ctrl: SysfsController) -> None:
    """Get GPU status."""
    status: Dict[str, Any] = {
        "gpu": {
            "path": str(ctrl.device_path),
            "driver": ctrl.get_driver(),
            "pci_id": ":".join(ctrl.get_pci_id() or ()),
        },
        "performance_level": ctrl.get_performance_level().value,
    }

    try:
        table = ctrl.get_clocks_table()
        status["clocks"] = {
            "format": table.format.value,
            "min_sclk": table.get_min_sclk(),
            "max_sclk": table.get_max_sclk(),
            "min_mclk": table.get_min_mclk(),
            "max_mclk": table.get_max_mclk(),
            "max_voltage": table.get_max_voltage(),
        }
    except (SysfsError, ParseError, Unsupported) as e:
        logger.warning(f"OverDrive not available: {e}")
        status["clocks"] = None

    try:
        modes = ctrl.get_power_profile_modes()
        status["power_profile_mode"] = {
            "index": modes.active,
            "name": modes.active_mode().name,
        }
    except (SysfsError, ParseError, Unsupported) as e:
        logger.warning(f"Power profile modes not available: {e}")
        status["power_profile_mode"] = None

    output_success(status)


def cmd_get_clocks(ctrl: SysfsController) -> None:
    table = ctrl.get_clocks_table()
    output_success({"table": table.to_dict(), "commands": table.get_commands()})


def cmd_set_clocks(ctrl: SysfsController, edits_json: str) -> None:
    """Edit the clocks table and write it back."""
    try:
        edits = json.loads(edits_json)
    except json.JSONDecodeError as e:
        output_error(f"Invalid JSON: {e}")
        return

    config = get_config()
    table = ctrl.get_clocks_table()
    previous = copy.deepcopy(table)

    apply_clocks_edits(table, edits)
    if config.normalize_vddc_curve and isinstance(table, Gen2Table):
        table.normalize_vddc_curve()

    commands = ctrl.set_clocks_table(table, previous, commit=config.commit_after_write)
    output_success({"commands": commands})


def cmd_reset_clocks(ctrl: SysfsController) -> None:
    ctrl.reset_clocks_table()
    output_success()


def cmd_set_performance_level(ctrl: SysfsController, level: str) -> None:
    ctrl.set_performance_level(PerformanceLevel.parse(level))
    output_success({"performance_level": level})


def cmd_get_profile_modes(ctrl: SysfsController) -> None:
    output_success({"table": ctrl.get_power_profile_modes().to_dict()})


def cmd_set_profile_mode(ctrl: SysfsController, index: int) -> None:
    # Rejects indices the GPU does not list
    ctrl.get_power_profile_modes().select_command(index)
    ctrl.set_active_power_profile_mode(index)
    output_success({"power_profile_mode": index})


def cmd_set_custom_heuristics(ctrl: SysfsController, values_json: str) -> None:
    """Write CUSTOM mode heuristics, then activate the CUSTOM mode."""
    try:
        values = json.loads(values_json)
    except json.JSONDecodeError as e:
        output_error(f"Invalid JSON: {e}")
        return

    table = ctrl.get_power_profile_modes()
    index = apply_custom_heuristics(table, values)
    commands = ctrl.set_custom_power_profile_mode(table)
    ctrl.set_active_power_profile_mode(index)
    output_success({"commands": commands, "power_profile_mode": index})


def cmd_get_power_levels(ctrl: SysfsController, kind_name: str) -> None:
    kind = PowerLevelKind.parse(kind_name)
    levels = ctrl.get_clock_levels(kind)
    output_success({"kind": kind.value, "levels": levels.levels, "active": levels.active})


def cmd_set_power_levels(ctrl: SysfsController, kind_name: str, levels: List[str]) -> None:
    """Restrict a clock domain to the given DPM levels."""
    kind = PowerLevelKind.parse(kind_name)
    command = ctrl.set_enabled_power_levels(kind, [int(level) for level in levels])
    output_success({"kind": kind.value, "command": command})


def cmd_list_cards() -> None:
    output_success({"cards": [str(path) for path in find_cards()]})


def run(argv: List[str]) -> int:
    card = get_config().card_path
    if len(argv) >= 2 and argv[0] == "--card":
        card = argv[1]
        argv = argv[2:]

    if not argv:
        print(__doc__)
        return 1

    command, args = argv[0], argv[1:]

    if command == "help":
        print(__doc__)
        output_success({"action": "help"})
        return 0

    if command == "list-cards":
        cmd_list_cards()
        return 0

    usages = {
        "set-clocks": "set-clocks <json>",
        "set-performance-level": "set-performance-level <level>",
        "set-profile-mode": "set-profile-mode <index>",
        "set-custom-heuristics": "set-custom-heuristics <json>",
        "get-power-levels": "get-power-levels <kind>",
        "set-power-levels": "set-power-levels <kind> <level> [<level> ...]",
    }
    if command == "set-power-levels" and len(args) < 2:
        output_error(f"Usage: {usages[command]}")
    if command in usages and not args:
        output_error(f"Usage: {usages[command]}")

    with SysfsController(card) as ctrl:
        if command == "status":
            cmd_status(ctrl)
        elif command == "get-clocks":
            cmd_get_clocks(ctrl)
        elif command == "set-clocks":
            cmd_set_clocks(ctrl, args[0])
        elif command == "reset-clocks":
            cmd_reset_clocks(ctrl)
        elif command == "set-performance-level":
            cmd_set_performance_level(ctrl, args[0])
        elif command == "get-profile-modes":
            cmd_get_profile_modes(ctrl)
        elif command == "set-profile-mode":
            cmd_set_profile_mode(ctrl, int(args[0]))
        elif command == "set-custom-heuristics":
            cmd_set_custom_heuristics(ctrl, args[0])
        elif command == "get-power-levels":
            cmd_get_power_levels(ctrl, args[0])
        elif command == "set-power-levels":
            cmd_set_power_levels(ctrl, args[0], args[1:])
        else:
            output_error(f"Unknown command: {command}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    try:
        return run(argv)
    except HelperExit:
        return 1
    except (AmdocError, ValueError) as e:
        output_json({"success": False, "error": str(e)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
