"""Point-in-time snapshot of the GPUs, display and CPU topology.

Everything here may touch the system (``lspci``, ``ip``, ``xrandr``,
psutil). The resolver only ever sees the resulting HardwareProfile.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Mapping, Optional, Set

import psutil

from .models import DisplayServer, GpuVendor, HardwareProfile
from .utils import current_xrandr_mode, default_route_nic, find_lsfg_assets, run_quiet

logger = logging.getLogger(__name__)

_GPU_CLASS_RE = re.compile(r"\b(VGA compatible controller|3D controller|Display controller)\b", re.I)
_AMD_RE = re.compile(r"\b(AMD|ATI|Advanced Micro Devices)\b|\[AMD/ATI\]", re.I)
_NVIDIA_RE = re.compile(r"\bNVIDIA\b", re.I)


class InspectionError(RuntimeError):
    pass


class LspciInspector:
    """DeviceInspector backed by ``lspci``."""

    def __init__(self, runner=run_quiet):
        self._run = runner

    def list_gpu_vendors(self) -> Set[GpuVendor]:
        out = self._run(["lspci"])
        if not out.strip():
            raise InspectionError("lspci returned no devices (missing pciutils?)")
        return parse_lspci(out)


def parse_lspci(output: str) -> Set[GpuVendor]:
    vendors: Set[GpuVendor] = set()
    for line in output.splitlines():
        if not _GPU_CLASS_RE.search(line):
            continue
        if _NVIDIA_RE.search(line):
            vendors.add(GpuVendor.NVIDIA)
        elif _AMD_RE.search(line):
            vendors.add(GpuVendor.AMD)
    return vendors


def detect_display_server(environ: Mapping[str, str]) -> DisplayServer:
    session = environ.get("XDG_SESSION_TYPE", "").lower()
    if session == "wayland":
        return DisplayServer.WAYLAND
    if session == "x11":
        return DisplayServer.X11
    if environ.get("WAYLAND_DISPLAY"):
        return DisplayServer.WAYLAND
    if environ.get("DISPLAY"):
        return DisplayServer.X11
    return DisplayServer.UNKNOWN


def _core_counts() -> tuple:
    logical = psutil.cpu_count(logical=True) or os.cpu_count() or 1
    physical = psutil.cpu_count(logical=False) or logical
    return physical, logical


def build_profile(inspector=None, environ: Optional[Mapping[str, str]] = None, runner=run_quiet) -> HardwareProfile:
    """Query the collaborators once and freeze the answers.

    A failing inspector is not fatal: the profile reports no GPUs and the
    resolver degrades to system defaults.
    """
    environ = os.environ if environ is None else environ
    inspector = inspector or LspciInspector(runner)

    try:
        vendors = set(inspector.list_gpu_vendors())
    except Exception as e:
        logger.warning("GPU inspection failed, assuming no dedicated GPUs: %s", e)
        vendors = set()

    display = detect_display_server(environ)
    resolution = None
    if display is DisplayServer.X11:
        resolution = current_xrandr_mode(runner(["xrandr", "--current"]))

    physical, logical = _core_counts()
    profile = HardwareProfile(
        has_amd_gpu=GpuVendor.AMD in vendors,
        has_nvidia_gpu=GpuVendor.NVIDIA in vendors,
        primary_nic=default_route_nic(runner(["ip", "route"])),
        display_server=display,
        physical_cores=physical,
        logical_cores=logical,
        native_resolution=resolution,
        lsfg_assets=find_lsfg_assets(environ),
    )
    logger.debug("Hardware profile: %s", profile)
    return profile
