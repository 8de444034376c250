"""Turn a HardwareProfile and a LaunchRequest into a LaunchPlan.

``resolve`` is pure: no I/O, no reads of ``os.environ``. The plan says
which variables to set, which inherited ones to drop and which wrapper
commands go in front of the target.
"""
from __future__ import annotations

import os
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .models import (
    GamescopeOptions,
    GpuMode,
    GpuVendor,
    HardwareProfile,
    LaunchPlan,
    LaunchRequest,
    Modifier,
)
from .rules import build_table, classify
from .settings import default_settings
from .utils import format_cpu_list

# Inherited from the calling shell; always either overwritten or unset.
GPU_SELECTION_VARS: Tuple[str, ...] = (
    "VK_ICD_FILENAMES",
    "__NV_PRIME_RENDER_OFFLOAD",
    "__GLX_VENDOR_LIBRARY_NAME",
    "DRI_PRIME",
    "__VK_LAYER_NV_optimus",
)

SCALERS: Dict[str, Tuple[str, str]] = {
    "fsr": ("-F", "fsr"),
    "nis": ("-F", "nis"),
    "integer": ("-S", "integer"),
    "linear": ("-S", "linear"),
    "nearest": ("-S", "nearest"),
}

SLICES: Dict[str, Tuple[str, ...]] = {
    "gaming": (),
    "highperf": (
        "CPUWeight=1000",
        "IOWeight=1000",
        "MemoryLow=4G",
        "Nice=-10",
        "CPUSchedulingPolicy=rr",
        "CPUSchedulingPriority=50",
    ),
    "background": ("CPUWeight=10", "IOWeight=10", "Nice=19"),
}

PIN_MODES = ("performance", "gaming", "render", "single", "balanced")

# name -> (internal, output); None output means "native, else 1920x1080"
PRESETS: Dict[str, Tuple[Tuple[int, int], Optional[Tuple[int, int]]]] = {
    "720p": ((1280, 720), None),
    "900p": ((1600, 900), None),
    "1080p": ((1920, 1080), (2560, 1440)),
    "4k-perf": ((1920, 1080), (3840, 2160)),
    "4k-balanced": ((2560, 1440), (3840, 2160)),
    "4k-quality": ((3200, 1800), (3840, 2160)),
}

FALLBACK_OUTPUT = (1920, 1080)


class ValidationError(ValueError):
    """A request that cannot be turned into a plan."""


# ──────────────────────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────────────────────

def _validate_gamescope(gs: GamescopeOptions) -> None:
    for label, value in (
        ("width", gs.width),
        ("height", gs.height),
        ("internal width", gs.internal_width),
        ("internal height", gs.internal_height),
    ):
        if not isinstance(value, int) or value <= 0:
            raise ValidationError(f"gamescope {label} must be a positive integer, got {value!r}")
    if gs.scaler not in SCALERS:
        raise ValidationError(f"unknown scaler {gs.scaler!r} (choose from {', '.join(SCALERS)})")
    if gs.fps_limit < 0:
        raise ValidationError(f"frame limit must be >= 0, got {gs.fps_limit}")
    if gs.sharpness is not None and not 0 <= gs.sharpness <= 20:
        raise ValidationError(f"FSR sharpness must be within 0-20, got {gs.sharpness}")


def validate(request: LaunchRequest) -> None:
    if not request.command or not request.command[0]:
        raise ValidationError("no command given")
    if Modifier.GAMESCOPE in request.modifiers:
        if request.gamescope is None:
            raise ValidationError("gamescope requested without a target resolution")
        _validate_gamescope(request.gamescope)
    if request.slice is not None and request.slice not in SLICES:
        raise ValidationError(f"unknown slice {request.slice!r} (choose from {', '.join(SLICES)})")
    if request.pin is not None and request.pin not in PIN_MODES:
        raise ValidationError(f"unknown pin mode {request.pin!r} (choose from {', '.join(PIN_MODES)})")


# ──────────────────────────────────────────────────────────────────────────────
# Presets
# ──────────────────────────────────────────────────────────────────────────────

def apply_preset(name: str, profile: HardwareProfile, base: Optional[GamescopeOptions] = None) -> GamescopeOptions:
    """Return gamescope options for a named upscaling preset.

    Display options (fullscreen, fps, sharpness) carry over from ``base``.
    """
    try:
        internal, output = PRESETS[name]
    except KeyError:
        raise ValidationError(f"unknown preset {name!r} (choose from {', '.join(PRESETS)})") from None
    if output is None:
        output = profile.native_resolution or FALLBACK_OUTPUT
    kw = {}
    if base is not None:
        kw = {"fullscreen": base.fullscreen, "fps_limit": base.fps_limit, "sharpness": base.sharpness}
    return GamescopeOptions(
        width=output[0],
        height=output[1],
        internal_width=internal[0],
        internal_height=internal[1],
        scaler="fsr",
        **kw,
    )


# ──────────────────────────────────────────────────────────────────────────────
# GPU mode
# ──────────────────────────────────────────────────────────────────────────────

def _present(profile: HardwareProfile) -> List[GpuVendor]:
    out = []
    if profile.has_amd_gpu:
        out.append(GpuVendor.AMD)
    if profile.has_nvidia_gpu:
        out.append(GpuVendor.NVIDIA)
    return out


def _satisfied(mode: GpuMode, profile: HardwareProfile) -> bool:
    if mode is GpuMode.AMD:
        return profile.has_amd_gpu
    if mode is GpuMode.NVIDIA:
        return profile.has_nvidia_gpu
    if mode is GpuMode.BALANCED:
        return profile.has_amd_gpu and profile.has_nvidia_gpu
    return True


def effective_mode(wanted: GpuMode, profile: HardwareProfile) -> Tuple[GpuMode, bool]:
    """Fall back AMD > BALANCED over what is present > degraded.

    Returns ``(mode, degraded)``; a degraded plan sets no GPU variables.
    """
    if _satisfied(wanted, profile):
        return wanted, False
    if profile.has_amd_gpu:
        return GpuMode.AMD, False
    if _present(profile):
        return GpuMode.BALANCED, False
    return GpuMode.AUTO, True


def _icd_list(vendors: Sequence[GpuVendor], settings: Mapping) -> str:
    paths = {GpuVendor.AMD: settings["amd_icd"], GpuVendor.NVIDIA: settings["nvidia_icd"]}
    return os.pathsep.join(paths[v] for v in vendors)


def _gpu_env(mode: GpuMode, profile: HardwareProfile, primary: GpuVendor, settings: Mapping) -> Dict[str, str]:
    if mode is GpuMode.AMD:
        return {"DRI_PRIME": "0", "VK_ICD_FILENAMES": _icd_list([GpuVendor.AMD], settings)}
    if mode is GpuMode.NVIDIA:
        return {
            "__NV_PRIME_RENDER_OFFLOAD": "1",
            "__GLX_VENDOR_LIBRARY_NAME": "nvidia",
            "__VK_LAYER_NV_optimus": "NVIDIA_only",
            "VK_ICD_FILENAMES": _icd_list([GpuVendor.NVIDIA], settings),
        }
    if mode is GpuMode.BALANCED:
        vendors = _present(profile)
        if primary is GpuVendor.NVIDIA:
            vendors.sort(key=lambda v: v is not GpuVendor.NVIDIA)
        env = {"VK_ICD_FILENAMES": _icd_list(vendors, settings)}
        if primary is GpuVendor.NVIDIA and profile.has_nvidia_gpu:
            env["__NV_PRIME_RENDER_OFFLOAD"] = "1"
            env["__GLX_VENDOR_LIBRARY_NAME"] = "nvidia"
        return env
    return {}


# ──────────────────────────────────────────────────────────────────────────────
# Wrappers
# ──────────────────────────────────────────────────────────────────────────────

def gamescope_prefix(gs: GamescopeOptions) -> List[str]:
    argv = [
        "gamescope",
        "-w", str(gs.internal_width), "-h", str(gs.internal_height),
        "-W", str(gs.width), "-H", str(gs.height),
        *SCALERS[gs.scaler],
    ]
    if gs.fullscreen:
        argv.append("-f")
    if gs.fps_limit > 0:
        argv += ["-r", str(gs.fps_limit)]
    argv.append("--")
    return argv


def slice_prefix(name: str) -> List[str]:
    argv = ["systemd-run", "--user", "--scope", f"--slice={name}.slice"]
    argv += [f"--property={p}" for p in SLICES[name]]
    return argv


def pin_cpus(mode: str, physical: int, logical: int) -> List[int]:
    """CPU set for a pin mode, assuming SMT siblings are numbered core+physical.

    Cores 0-1 are left to the system where there are enough of them.
    """
    physical = max(1, physical)
    logical = max(physical, logical)
    smt = logical >= 2 * physical
    first = 2 if physical > 2 else 0

    def with_siblings(cores):
        cores = list(cores)
        return cores + [c + physical for c in cores] if smt else cores

    if mode == "render":
        return list(range(logical))
    if mode == "gaming":
        return list(range(first, physical))
    if mode == "performance":
        return with_siblings(range(first, physical))
    if mode == "single":
        return [physical // 2]
    # balanced
    half = max(1, physical // 2)
    return with_siblings(range(first, min(physical, first + half)))


def pin_prefix(mode: str, profile: HardwareProfile) -> List[str]:
    argv = ["taskset", "-c", format_cpu_list(pin_cpus(mode, profile.physical_cores, profile.logical_cores))]
    if mode == "single":
        argv += ["nice", "-n", "-5"]
    return argv


# ──────────────────────────────────────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────────────────────────────────────

def resolve(profile: HardwareProfile, request: LaunchRequest, settings: Optional[Mapping] = None) -> LaunchPlan:
    """Compute the LaunchPlan for ``request`` on ``profile``.

    Only ``ValidationError`` escapes; a missing GPU degrades the plan
    instead of failing it.
    """
    validate(request)
    settings = {**default_settings(), **(settings or {})}
    notes: List[str] = []

    requested = request.gpu_mode or GpuMode.AUTO
    wanted = requested
    if wanted is GpuMode.AUTO:
        wanted = classify(request.command[0], build_table(settings.get("rules")))
        notes.append(f"{request.command[0]!r} classified as {wanted.value}")

    mode, degraded = effective_mode(wanted, profile)
    if degraded:
        notes.append(f"no usable GPU for {wanted.value} mode, using system defaults")
    elif mode is not wanted:
        notes.append(f"{wanted.value} GPU not present, falling back to {mode.value}")

    env = _gpu_env(mode, profile, request.primary, settings)

    if Modifier.LSFG in request.modifiers:
        env["ENABLE_LSFG"] = "1"
        if profile.lsfg_assets:
            env["LSFG_ASSETS"] = profile.lsfg_assets
        else:
            notes.append("LSFG_ASSETS not set; frame generation needs the Lossless Scaling files")
    if Modifier.MANGOHUD in request.modifiers:
        env["MANGOHUD"] = "1"
        env["MANGOHUD_DLSYM"] = "1"

    wrapper: List[str] = []
    if request.slice:
        wrapper += slice_prefix(request.slice)
    if request.pin:
        wrapper += pin_prefix(request.pin, profile)
    if Modifier.GAMESCOPE in request.modifiers:
        gs = request.gamescope
        wrapper += gamescope_prefix(gs)
        # compositor scans out on the AMD card, the game picks its own GPU
        if profile.has_amd_gpu:
            env["GAMESCOPE_PREFER_OUTPUT"] = "AMD"
        if gs.sharpness is not None:
            env["WINE_FULLSCREEN_FSR"] = "1"
            env["WINE_FULLSCREEN_FSR_STRENGTH"] = str(gs.sharpness)

    unset = tuple(sorted(v for v in GPU_SELECTION_VARS if v not in env))
    return LaunchPlan(
        env=dict(sorted(env.items())),
        unset=unset,
        wrapper=tuple(wrapper),
        command=tuple(request.command),
        mode=mode,
        requested_mode=requested,
        degraded=degraded,
        notes=tuple(notes),
    )
