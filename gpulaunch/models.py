from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

class GpuVendor(Enum):
    AMD = "amd"
    NVIDIA = "nvidia"

class GpuMode(Enum):
    AMD = "amd"
    NVIDIA = "nvidia"
    BALANCED = "balanced"
    AUTO = "auto"               # infer from the command name / system defaults

class DisplayServer(Enum):
    X11 = "x11"
    WAYLAND = "wayland"
    UNKNOWN = "unknown"

class Modifier(Enum):
    LSFG = "lsfg"
    MANGOHUD = "mangohud"
    GAMESCOPE = "gamescope"

@dataclass(frozen=True)
class HardwareProfile:
    has_amd_gpu: bool
    has_nvidia_gpu: bool
    primary_nic: Optional[str] = None
    display_server: DisplayServer = DisplayServer.UNKNOWN
    physical_cores: int = 1
    logical_cores: int = 1
    native_resolution: Optional[Tuple[int, int]] = None
    lsfg_assets: Optional[str] = None

@dataclass(frozen=True)
class GamescopeOptions:
    width: int
    height: int
    internal_width: int = 1280
    internal_height: int = 720
    scaler: str = "fsr"
    fullscreen: bool = False
    fps_limit: int = 0
    sharpness: Optional[int] = None   # None = leave WINE_FULLSCREEN_FSR alone

@dataclass(frozen=True)
class LaunchRequest:
    command: Tuple[str, ...]
    gpu_mode: Optional[GpuMode] = None
    modifiers: FrozenSet[Modifier] = frozenset()
    gamescope: Optional[GamescopeOptions] = None
    primary: GpuVendor = GpuVendor.AMD  # ICD order in BALANCED mode
    slice: Optional[str] = None
    pin: Optional[str] = None

@dataclass(frozen=True)
class LaunchPlan:
    env: Dict[str, str]
    unset: Tuple[str, ...]
    wrapper: Tuple[str, ...]
    command: Tuple[str, ...]
    mode: GpuMode
    requested_mode: GpuMode
    degraded: bool = False
    notes: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def final_argv(self) -> Tuple[str, ...]:
        return self.wrapper + self.command
