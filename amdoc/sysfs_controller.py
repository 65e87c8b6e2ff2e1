"""
AMDOC - AMD Overclocking Controller
Sysfs Backend Controller

This module provides access to the amdgpu power management files of a GPU
device directory (normally /sys/class/drm/card0/device).

NOTES:
- Reads do not need root, writes do
- pp_od_clk_voltage takes one command per write() call, so commands are
  written one by one and followed by a commit or reset
- Reads and writes are not atomic with respect to the driver; callers that
  need a consistent read-modify-write cycle must serialize it themselves

Kernel documentation: https://kernel.org/doc/html/latest/gpu/amdgpu/thermal.html
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .errors import NotAllowed, ParseError, SysfsError
from .overdrive import (
    COMMIT_COMMAND,
    RESET_COMMAND,
    ClocksTable,
    parse_clocks_table,
    trim_sysfs_line,
)
from .power_levels import PowerLevelKind, PowerLevels, enabled_levels_command, parse_power_levels
from .power_profile_mode import PowerProfileModesTable

logger = logging.getLogger(__name__)

DRM_ROOT = Path("/sys/class/drm")

CLOCKS_TABLE_FILE = "pp_od_clk_voltage"
POWER_PROFILE_MODE_FILE = "pp_power_profile_mode"
PERFORMANCE_LEVEL_FILE = "power_dpm_force_performance_level"


class PerformanceLevel(Enum):
    """
    Performance level forced on the GPU.

    MANUAL is needed to edit pp_od_clk_voltage on most GPUs.
    """
    AUTO = "auto"
    LOW = "low"
    HIGH = "high"
    MANUAL = "manual"

    @classmethod
    def parse(cls, text: str) -> "PerformanceLevel":
        """Parse the contents of power_dpm_force_performance_level."""
        value = trim_sysfs_line(text)
        level = _PERFORMANCE_LEVEL_ALIASES.get(value)
        if level is None:
            raise ParseError(f"Unrecognized performance level {value}", 1)
        return level


_PERFORMANCE_LEVEL_ALIASES = {
    "auto": PerformanceLevel.AUTO,
    "Automatic": PerformanceLevel.AUTO,
    "low": PerformanceLevel.LOW,
    "Lowest Clocks": PerformanceLevel.LOW,
    "high": PerformanceLevel.HIGH,
    "Highest Clocks": PerformanceLevel.HIGH,
    "manual": PerformanceLevel.MANUAL,
    "Manual": PerformanceLevel.MANUAL,
}


class SysfsController:
    """
    Controller for a single amdgpu device directory.

    Usage:
        controller = SysfsController("/sys/class/drm/card0/device")
        controller.initialize()
        table = controller.get_clocks_table()

    Or using context manager:
        with SysfsController(path) as controller:
            modes = controller.get_power_profile_modes()
    """

    def __init__(self, device_path: Union[str, Path]):
        """
        Initialize the controller.

        Args:
            device_path: Sysfs device directory of the GPU
        """
        self._device_path = Path(device_path)
        self._uevent: Optional[Dict[str, str]] = None

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    @property
    def device_path(self) -> Path:
        return self._device_path

    def initialize(self) -> None:
        """
        Read the device's uevent file and check that a driver is bound.

        Raises:
            SysfsError: If the directory is not a valid GPU device
        """
        raw_uevent = self.read_file("uevent")

        uevent = {}
        for line_number, line in enumerate(raw_uevent.splitlines(), start=1):
            if not line:
                continue
            key, sep, value = line.partition("=")
            if not sep:
                raise ParseError.unexpected_eol("=", line_number)
            uevent[key] = value

        if "DRIVER" not in uevent:
            raise SysfsError(f"No driver bound to {self._device_path}", str(self._device_path))

        self._uevent = uevent
        logger.info(f"Using GPU at {self._device_path} (driver {uevent['DRIVER']})")

    def shutdown(self) -> None:
        self._uevent = None

    def _ensure_initialized(self) -> Dict[str, str]:
        if self._uevent is None:
            raise SysfsError("Controller not initialized. Call initialize() first.")
        return self._uevent

    # =========================================================================
    # File access
    # =========================================================================

    def read_file(self, name: str) -> str:
        """
        Read a sysfs file, with NUL bytes and surrounding whitespace removed.

        Raises:
            SysfsError: If the file cannot be read
        """
        path = self._device_path / name
        try:
            contents = path.read_text()
        except OSError as e:
            raise SysfsError(f"Could not read file {path}: {e}", str(path)) from e
        return contents.replace("\0", "").strip()

    def write_file(self, name: str, contents: str) -> None:
        """Write a complete value to a sysfs file."""
        self.write_commands(name, [contents])

    def write_commands(self, name: str, commands: Iterable[str]) -> None:
        """
        Write newline terminated commands to a sysfs file, one per write() call.

        Raises:
            SysfsError: If the file cannot be written (usually a missing
                permission or a value rejected by the driver)
        """
        path = self._device_path / name
        try:
            with open(path, "wb", buffering=0) as f:
                for command in commands:
                    logger.debug(f"Writing '{command}' to {path}")
                    f.write(f"{command}\n".encode("ascii"))
        except OSError as e:
            raise SysfsError(f"Could not write file {path}: {e}", str(path)) from e

    # =========================================================================
    # Device information
    # =========================================================================

    def get_driver(self) -> str:
        """Get the kernel driver bound to the device."""
        return self._ensure_initialized()["DRIVER"]

    def get_pci_id(self) -> Optional[Tuple[str, str]]:
        """Get the PCI vendor and device ID of the GPU chip."""
        pci_id = self._ensure_initialized().get("PCI_ID")
        if pci_id is None or ":" not in pci_id:
            return None
        vendor, _, device = pci_id.partition(":")
        return (vendor, device)

    # =========================================================================
    # Performance level
    # =========================================================================

    def get_performance_level(self) -> PerformanceLevel:
        return PerformanceLevel.parse(self.read_file(PERFORMANCE_LEVEL_FILE))

    def set_performance_level(self, level: PerformanceLevel) -> None:
        self.write_file(PERFORMANCE_LEVEL_FILE, level.value)
        logger.info(f"Performance level set to {level.value}")

    # =========================================================================
    # OverDrive clocks table
    # =========================================================================

    def get_clocks_table(self) -> ClocksTable:
        """
        Read and parse pp_od_clk_voltage.

        Raises:
            SysfsError: If the file cannot be read (OverDrive disabled)
            ParseError: If the contents cannot be parsed
        """
        return parse_clocks_table(self.read_file(CLOCKS_TABLE_FILE))

    def set_clocks_table(
        self,
        table: ClocksTable,
        previous: Optional[ClocksTable] = None,
        commit: bool = True,
    ) -> List[str]:
        """
        Write a clocks table to the GPU.

        Args:
            table: The edited table
            previous: The table as read before editing, used to order the commands
            commit: Whether to commit the changes after writing them

        Returns:
            The commands that were written
        """
        commands = table.get_commands(previous)
        if commit:
            commands.append(COMMIT_COMMAND)

        self.write_commands(CLOCKS_TABLE_FILE, commands)
        logger.info(f"Wrote {len(commands)} commands to {CLOCKS_TABLE_FILE}")
        return commands

    def commit_clocks_table(self) -> None:
        """Commit pending clocks table changes."""
        self.write_file(CLOCKS_TABLE_FILE, COMMIT_COMMAND)

    def reset_clocks_table(self) -> None:
        """Reset the clocks table to the default configuration."""
        self.write_file(CLOCKS_TABLE_FILE, RESET_COMMAND)
        logger.info("Clocks table reset to stock")

    # =========================================================================
    # DPM power levels
    # =========================================================================

    def get_clock_levels(self, kind: PowerLevelKind) -> PowerLevels:
        """
        Read the power levels of a clock domain.

        Raises:
            SysfsError: If the GPU has no such clock domain
            ParseError: If the contents cannot be parsed
        """
        return parse_power_levels(self.read_file(kind.filename), kind)

    def get_core_clock_levels(self) -> PowerLevels:
        return self.get_clock_levels(PowerLevelKind.CORE_CLOCK)

    def get_memory_clock_levels(self) -> PowerLevels:
        return self.get_clock_levels(PowerLevelKind.MEMORY_CLOCK)

    def get_pcie_clock_levels(self) -> PowerLevels:
        return self.get_clock_levels(PowerLevelKind.PCIE_SPEED)

    def set_enabled_power_levels(self, kind: PowerLevelKind, levels: Iterable[int]) -> str:
        """
        Restrict a clock domain to the given level indices.

        Returns:
            The command that was written

        Raises:
            NotAllowed: If the performance level is not manual or an index
                does not exist
        """
        level = self.get_performance_level()
        if level is not PerformanceLevel.MANUAL:
            raise NotAllowed(
                f"Performance level needs to be set to 'manual' to adjust power levels, "
                f"it is '{level.value}'"
            )

        command = enabled_levels_command(levels, len(self.get_clock_levels(kind).levels))
        self.write_file(kind.filename, command)
        logger.info(f"Enabled {kind.value} levels {command}")
        return command

    # =========================================================================
    # Power profile modes
    # =========================================================================

    def get_power_profile_modes(self) -> PowerProfileModesTable:
        return PowerProfileModesTable.parse(self.read_file(POWER_PROFILE_MODE_FILE))

    def set_active_power_profile_mode(self, index: int) -> None:
        """Activate a power profile mode by its index."""
        self.write_file(POWER_PROFILE_MODE_FILE, str(index))
        logger.info(f"Power profile mode set to {index}")

    def set_custom_power_profile_mode(self, table: PowerProfileModesTable) -> List[str]:
        """
        Write the heuristics of the table's CUSTOM mode.

        Raises:
            NotAllowed: If the table has no CUSTOM mode with heuristics
        """
        index = table.custom_mode_index()
        if index is None:
            raise NotAllowed("The GPU does not have a CUSTOM power profile mode")

        commands = table.write_commands(index)
        self.write_commands(POWER_PROFILE_MODE_FILE, commands)
        logger.info(f"Wrote {len(commands)} CUSTOM heuristics commands")
        return commands


def find_cards(drm_root: Union[str, Path] = DRM_ROOT) -> List[Path]:
    """
    List the device directories of all GPUs bound to amdgpu.

    Args:
        drm_root: The DRM class directory, /sys/class/drm by default
    """
    cards = []
    for card_dir in sorted(Path(drm_root).glob("card*")):
        device_dir = card_dir / "device"
        uevent_path = device_dir / "uevent"
        # Connector entries such as card0-DP-1 have no device directory of their own
        if "-" in card_dir.name or not uevent_path.is_file():
            continue
        try:
            uevent = uevent_path.read_text()
        except OSError as e:
            logger.warning(f"Could not read {uevent_path}: {e}")
            continue
        if "DRIVER=amdgpu" in uevent.splitlines():
            cards.append(device_dir)
    return cards
