"""
AMDOC - AMD OverDrive Control

Parses and edits the power management files the amdgpu kernel driver
exposes in sysfs: the OverDrive clocks table (pp_od_clk_voltage), the
power profile modes (pp_power_profile_mode) and the DPM power levels
(pp_dpm_*).

License: MIT
"""

__version__ = "0.1.0"
__author__ = "AMDOC Contributors"
__license__ = "MIT"

from .errors import (
    AmdocError,
    ParseError,
    NotAllowed,
    Unsupported,
    SysfsError,
)

from .overdrive import (
    ClocksTable,
    ClocksTableFormat,
    ClocksLevel,
    Range,
    AllowedRanges,
    Gen1Table,
    Gen2Table,
    OdRange,
    detect_format,
    parse_clocks_table,
)

from .power_profile_mode import (
    PowerProfileModesTable,
    PowerProfile,
    PowerProfileComponent,
    PowerProfileLayout,
)

from .power_levels import (
    PowerLevelKind,
    PowerLevels,
    parse_power_levels,
)

from .sysfs_controller import (
    SysfsController,
    PerformanceLevel,
    find_cards,
)

from .privileged_controller import (
    PrivilegedController,
    PrivilegedControllerError,
)

from .config import (
    AppConfig,
    ConfigManager,
    get_config,
    get_config_manager,
)

__all__ = [
    # Errors
    "AmdocError",
    "ParseError",
    "NotAllowed",
    "Unsupported",
    "SysfsError",
    # Clocks table
    "ClocksTable",
    "ClocksTableFormat",
    "ClocksLevel",
    "Range",
    "AllowedRanges",
    "Gen1Table",
    "Gen2Table",
    "OdRange",
    "detect_format",
    "parse_clocks_table",
    # Power profile modes
    "PowerProfileModesTable",
    "PowerProfile",
    "PowerProfileComponent",
    "PowerProfileLayout",
    # Power levels
    "PowerLevelKind",
    "PowerLevels",
    "parse_power_levels",
    # Controller
    "SysfsController",
    "PerformanceLevel",
    "find_cards",
    "PrivilegedController",
    "PrivilegedControllerError",
    # Config
    "AppConfig",
    "ConfigManager",
    "get_config",
    "get_config_manager",
]
