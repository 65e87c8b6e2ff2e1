"""
AMDOC - Privileged Controller Proxy

Lets an unprivileged process change GPU settings: reads go straight to
sysfs through SysfsController, writes run `amdoc.helper` as root through
pkexec and polkit.
"""

import subprocess
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

from .config import get_config
from .errors import AmdocError
from .overdrive import ClocksTable
from .power_levels import PowerLevelKind, PowerLevels
from .power_profile_mode import PowerProfileModesTable
from .sysfs_controller import PerformanceLevel, SysfsController

logger = logging.getLogger(__name__)

HELPER_MODULE = "amdoc.helper"


class PrivilegedControllerError(AmdocError):
    """Error from privileged operations."""
    pass


class PrivilegedController:
    """
    GPU controller for unprivileged callers.

    Usage:
        with PrivilegedController("/sys/class/drm/card0/device") as ctrl:
            table = ctrl.get_clocks_table()
            ctrl.set_clocks(max_sclk=2100)
    """

    def __init__(self, card_path: Union[str, Path], timeout: Optional[int] = None):
        self._card_path = Path(card_path)
        self._timeout = timeout if timeout is not None else get_config().helper_timeout_seconds
        self._reader: Optional[SysfsController] = None

        self._pkexec = shutil.which("pkexec")
        if self._pkexec is None:
            logger.warning("pkexec not found in PATH, writes will fail")

    def initialize(self) -> None:
        reader = SysfsController(self._card_path)
        reader.initialize()
        self._reader = reader

    def shutdown(self) -> None:
        if self._reader is not None:
            self._reader.shutdown()
        self._reader = None

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    def _helper_command(self, args: List[Any]) -> List[str]:
        return [
            self._pkexec or "pkexec",
            sys.executable,
            "-m",
            HELPER_MODULE,
            "--card",
            str(self._card_path),
            *(str(arg) for arg in args),
        ]

    @staticmethod
    def _parse_response(result: subprocess.CompletedProcess) -> Dict[str, Any]:
        """
        Decode the helper's JSON response.

        Raises:
            PrivilegedControllerError: If polkit refused, the helper crashed
                or it reported a failure
        """
        if result.returncode != 0 and not result.stdout:
            # Nothing on stdout: pkexec failed before the helper ran
            if result.returncode == 126 or "dismissed" in result.stderr.lower():
                raise PrivilegedControllerError("Authentication cancelled")
            raise PrivilegedControllerError(
                result.stderr.strip() or f"Helper failed with code {result.returncode}"
            )

        lines = result.stdout.strip().splitlines()
        try:
            response = json.loads(lines[-1])
        except (json.JSONDecodeError, IndexError) as e:
            raise PrivilegedControllerError(f"Invalid helper response: {result.stdout!r}") from e

        if not response.get("success"):
            raise PrivilegedControllerError(response.get("error", "Unknown helper error"))
        return response

    def _run_helper(self, *args: Any) -> Dict[str, Any]:
        """Run one helper command as root and return its JSON response."""
        cmd = self._helper_command(list(args))
        logger.debug(f"Running helper: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self._timeout)
        except subprocess.TimeoutExpired as e:
            raise PrivilegedControllerError(f"Helper timed out after {self._timeout}s") from e
        except FileNotFoundError as e:
            raise PrivilegedControllerError("pkexec is not installed (polkit missing)") from e

        return self._parse_response(result)

    def _ensure_reader(self) -> SysfsController:
        if self._reader is None:
            raise PrivilegedControllerError("Controller not initialized. Call initialize() first.")
        return self._reader

    # =========================================================================
    # Read operations (no root needed, direct sysfs)
    # =========================================================================

    def get_clocks_table(self) -> ClocksTable:
        """Get the OverDrive clocks table (no root needed)."""
        return self._ensure_reader().get_clocks_table()

    def get_power_profile_modes(self) -> PowerProfileModesTable:
        """Get the power profile modes (no root needed)."""
        return self._ensure_reader().get_power_profile_modes()

    def get_performance_level(self) -> PerformanceLevel:
        """Get the forced performance level (no root needed)."""
        return self._ensure_reader().get_performance_level()

    def get_clock_levels(self, kind: PowerLevelKind) -> PowerLevels:
        """Get the DPM levels of a clock domain (no root needed)."""
        return self._ensure_reader().get_clock_levels(kind)

    # =========================================================================
    # Write operations (via pkexec helper)
    # =========================================================================

    def set_clocks(self, **edits: Optional[int]) -> List[str]:
        """
        Edit and apply the clocks table (requires authentication).

        Accepts min_sclk, max_sclk, min_mclk, max_mclk, min_voltage,
        max_voltage and voltage_offset. Values are validated by the helper
        against the ranges reported by the GPU.

        Returns:
            The commands written by the helper
        """
        values = {key: value for key, value in edits.items() if value is not None}
        response = self._run_helper("set-clocks", json.dumps(values))
        logger.info(f"Clocks set: {values}")
        return response.get("commands", [])

    def reset_clocks(self) -> None:
        """Reset the clocks table to stock (requires authentication)."""
        self._run_helper("reset-clocks")
        logger.info("Clocks table reset to stock")

    def set_performance_level(self, level: PerformanceLevel) -> None:
        """Force a performance level (requires authentication)."""
        self._run_helper("set-performance-level", level.value)
        logger.info(f"Performance level set to {level.value}")

    def set_power_profile_mode(self, index: int) -> None:
        """Activate a power profile mode (requires authentication)."""
        self._run_helper("set-profile-mode", index)
        logger.info(f"Power profile mode set to {index}")

    def set_custom_heuristics(self, values: Dict[int, Dict[str, Optional[int]]]) -> List[str]:
        """
        Write CUSTOM mode heuristics and activate it (requires authentication).

        Args:
            values: Heuristic values by component index, then heuristic name
        """
        payload = {str(component): heuristics for component, heuristics in values.items()}
        response = self._run_helper("set-custom-heuristics", json.dumps(payload))
        logger.info("CUSTOM power profile heuristics applied")
        return response.get("commands", [])

    def set_enabled_power_levels(self, kind: PowerLevelKind, levels: List[int]) -> str:
        """
        Restrict a clock domain to the given DPM levels (requires authentication).

        The GPU must be in the manual performance level.

        Returns:
            The command written by the helper
        """
        response = self._run_helper("set-power-levels", kind.value, *levels)
        logger.info(f"Enabled {kind.value} levels {levels}")
        return response.get("command", "")
