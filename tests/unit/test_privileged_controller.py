from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path
from typing import List

import pytest

from amdoc.power_levels import PowerLevelKind
from amdoc.privileged_controller import PrivilegedController, PrivilegedControllerError
from amdoc.sysfs_controller import PerformanceLevel


class FakeRun:
    def __init__(self, stdout: str = "", stderr: str = "", returncode: int = 0):
        self.result = subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)
        self.calls: List[List[str]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        return self.result


def success(**data) -> str:
    return json.dumps({"success": True, **data}) + "\n"


@pytest.fixture
def fake_run(monkeypatch) -> FakeRun:
    fake = FakeRun(stdout=success())
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


def test_reads_go_through_sysfs(tmp_path: Path, make_device, fake_run) -> None:
    make_device(tmp_path, "rx5700xt")
    with PrivilegedController(tmp_path, timeout=5) as ctrl:
        assert ctrl.get_clocks_table().get_max_sclk() == 2100
        assert ctrl.get_power_profile_modes().active == 1
        assert ctrl.get_performance_level() is PerformanceLevel.AUTO
    assert fake_run.calls == []


def test_set_clocks_runs_helper(tmp_path: Path, make_device, fake_run) -> None:
    make_device(tmp_path, "rx5700xt")
    fake_run.result.stdout = "log noise\n" + success(commands=["s 1 2000", "c"])

    with PrivilegedController(tmp_path, timeout=5) as ctrl:
        commands = ctrl.set_clocks(max_sclk=2000, min_sclk=None)

    assert commands == ["s 1 2000", "c"]
    cmd = fake_run.calls[0]
    assert cmd[1:] == [
        sys.executable,
        "-m",
        "amdoc.helper",
        "--card",
        str(tmp_path),
        "set-clocks",
        json.dumps({"max_sclk": 2000}),
    ]


def test_write_operations(tmp_path: Path, fake_run) -> None:
    ctrl = PrivilegedController(tmp_path, timeout=5)
    ctrl.reset_clocks()
    ctrl.set_performance_level(PerformanceLevel.MANUAL)
    ctrl.set_power_profile_mode(6)
    ctrl.set_custom_heuristics({0: {"FPS": 60}})

    assert [cmd[6:] for cmd in fake_run.calls] == [
        ["reset-clocks"],
        ["set-performance-level", "manual"],
        ["set-profile-mode", "6"],
        ["set-custom-heuristics", json.dumps({"0": {"FPS": 60}})],
    ]


def test_helper_error_is_raised(tmp_path: Path, fake_run) -> None:
    fake_run.result.stdout = json.dumps({"success": False, "error": "not allowed: nope"})
    fake_run.result.returncode = 1

    with pytest.raises(PrivilegedControllerError) as excinfo:
        PrivilegedController(tmp_path, timeout=5).reset_clocks()
    assert str(excinfo.value) == "not allowed: nope"


def test_authentication_cancelled(tmp_path: Path, fake_run) -> None:
    fake_run.result.stdout = ""
    fake_run.result.stderr = "Error executing command as another user: Request dismissed"
    fake_run.result.returncode = 126

    with pytest.raises(PrivilegedControllerError) as excinfo:
        PrivilegedController(tmp_path, timeout=5).reset_clocks()
    assert str(excinfo.value) == "Authentication cancelled"


def test_invalid_response(tmp_path: Path, fake_run) -> None:
    fake_run.result.stdout = "not json\n"

    with pytest.raises(PrivilegedControllerError):
        PrivilegedController(tmp_path, timeout=5).reset_clocks()


def test_timeout(tmp_path: Path, monkeypatch) -> None:
    def timeout(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(subprocess, "run", timeout)
    with pytest.raises(PrivilegedControllerError) as excinfo:
        PrivilegedController(tmp_path, timeout=1).reset_clocks()
    assert "timed out" in str(excinfo.value)


def test_timeout_defaults_to_config(tmp_path: Path, isolated_config, monkeypatch) -> None:
    seen = {}

    def run(cmd, **kwargs):
        seen.update(kwargs)
        return subprocess.CompletedProcess(cmd, 0, stdout=success(), stderr="")

    isolated_config.config.helper_timeout_seconds = 12
    monkeypatch.setattr(subprocess, "run", run)
    PrivilegedController(tmp_path).reset_clocks()
    assert seen["timeout"] == 12


def test_reads_require_initialize(tmp_path: Path) -> None:
    with pytest.raises(PrivilegedControllerError):
        PrivilegedController(tmp_path, timeout=5).get_clocks_table()


def test_set_enabled_power_levels(tmp_path: Path, fake_run) -> None:
    fake_run.result.stdout = success(kind="core_clock", command="1 2")

    command = PrivilegedController(tmp_path, timeout=5).set_enabled_power_levels(
        PowerLevelKind.CORE_CLOCK, [1, 2]
    )

    assert command == "1 2"
    assert fake_run.calls[0][6:] == ["set-power-levels", "core_clock", "1", "2"]


def test_clock_levels_are_read_without_helper(tmp_path: Path, make_device, fake_run) -> None:
    make_device(tmp_path, "rx580")
    with PrivilegedController(tmp_path, timeout=5) as ctrl:
        assert ctrl.get_clock_levels(PowerLevelKind.PCIE_SPEED).active == 1
    assert fake_run.calls == []


def test_exported_from_package() -> None:
    import amdoc

    assert amdoc.PrivilegedController is PrivilegedController
    assert amdoc.PrivilegedControllerError is PrivilegedControllerError
    assert "PrivilegedController" in amdoc.__all__
