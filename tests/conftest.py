from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from amdoc.config import ConfigManager
from amdoc.power_levels import PowerLevelKind

DATA_DIR = Path(__file__).parent / "data"

UEVENT = "DRIVER=amdgpu\nPCI_CLASS=30000\nPCI_ID=1002:67DF\nPCI_SUBSYS_ID=1DA2:E366\n"


def read_data(gpu: str, name: str) -> str:
    return (DATA_DIR / gpu / name).read_text()


@pytest.fixture
def clocks_text() -> Callable[[str], str]:
    return lambda gpu: read_data(gpu, "pp_od_clk_voltage")


@pytest.fixture
def profile_modes_text() -> Callable[[str], str]:
    return lambda gpu: read_data(gpu, "pp_power_profile_mode")


@pytest.fixture
def dpm_text() -> Callable[[str, str], str]:
    return lambda gpu, kind: read_data(gpu, PowerLevelKind.parse(kind).filename)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch) -> ConfigManager:
    manager = ConfigManager(tmp_path_factory.mktemp("config") / "config.json")
    monkeypatch.setattr("amdoc.config._config_manager", manager)
    return manager


def write_device(root: Path, gpu: str, uevent: str = UEVENT) -> Path:
    """Lay out a fake sysfs device directory holding a GPU's recorded files."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "uevent").write_text(uevent)
    (root / "power_dpm_force_performance_level").write_text("auto\n")
    for recorded in sorted((DATA_DIR / gpu).iterdir()):
        (root / recorded.name).write_text(recorded.read_text())
    return root


@pytest.fixture
def make_device() -> Callable[..., Path]:
    return write_device
