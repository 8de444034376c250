"""Command-line front-ends for the launcher family.

``gpu-launch`` (alias ``smart-run``) is the general form. ``multigpu-run``,
``magpie-linux`` and ``gpu-select`` keep the flag spellings of the shell
wrappers they replace and differ only in defaults.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__, setup_logging
from .hardware import build_profile
from .launch import CommandNotFoundError, LaunchError, describe, execute, log_plan
from .models import GamescopeOptions, GpuMode, GpuVendor, LaunchRequest, Modifier
from .resolve import PIN_MODES, PRESETS, SCALERS, SLICES, ValidationError, apply_preset, resolve
from .rules import build_table, describe_table
from .settings import load_settings, settings_path
from .utils import parse_resolution

logger = logging.getLogger(__name__)

EXIT_USAGE = 1
EXIT_INVALID = 2
EXIT_EXEC_FAILED = 126
EXIT_NOT_FOUND = 127

MAGPIE_DEFAULT_OUTPUT = (1920, 1080)

GPU_SELECT_MODES = {
    "amd": GpuMode.AMD,
    "nvidia": GpuMode.NVIDIA,
    "parallel": GpuMode.BALANCED,
    "auto": GpuMode.AUTO,
}


def _resolution(s: str):
    try:
        return parse_resolution(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


class _PrimaryAction(argparse.Action):
    """--primary-amd / --primary-nvidia: both GPUs visible, ordered."""

    def __init__(self, option_strings, dest, vendor=GpuVendor.AMD, **kwargs):
        super().__init__(option_strings, dest, nargs=0, **kwargs)
        self.vendor = vendor

    def __call__(self, parser, namespace, values, option_string=None):
        namespace.primary = self.vendor
        namespace.gpu_mode = GpuMode.BALANCED


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dry-run", action="store_true", help="Print the resolved environment and command, do not run it")
    parser.add_argument("--info", action="store_true", help="Show detected GPUs and the classification table")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only warnings and errors")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")


def _add_gpu_flags(parser: argparse.ArgumentParser, persona: str) -> None:
    g = parser.add_mutually_exclusive_group()
    g.add_argument("--amd", dest="gpu_mode", action="store_const", const=GpuMode.AMD, help="AMD only")
    g.add_argument("--nvidia", dest="gpu_mode", action="store_const", const=GpuMode.NVIDIA, help="Offload to NVIDIA only")
    g.add_argument("--balanced", dest="gpu_mode", action="store_const", const=GpuMode.BALANCED, help="Both GPUs visible to Vulkan")
    g.add_argument("--auto", dest="gpu_mode", action="store_const", const=GpuMode.AUTO, help="Pick by command name (default)")
    g.add_argument("--primary-amd", action=_PrimaryAction, vendor=GpuVendor.AMD, help="Both visible, AMD first")
    g.add_argument("--primary-nvidia", action=_PrimaryAction, vendor=GpuVendor.NVIDIA, help="Both visible, NVIDIA first")
    if persona == "multigpu-run":
        g.add_argument("--amd-only", dest="gpu_mode", action="store_const", const=GpuMode.AMD, help=argparse.SUPPRESS)
        g.add_argument("--nvidia-only", dest="gpu_mode", action="store_const", const=GpuMode.NVIDIA, help=argparse.SUPPRESS)
        g.add_argument("--both", dest="gpu_mode", action="store_const", const=GpuMode.BALANCED, help=argparse.SUPPRESS)


def _add_scheduling(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--slice", choices=sorted(SLICES), default=None, help="Run inside a systemd-run scope in this slice")
    parser.add_argument("--pin", choices=PIN_MODES, default=None, help="Restrict to a CPU set with taskset")


def build_parser(persona: str = "gpu-launch") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=persona,
        description="Launch a program on the right GPU of an AMD + NVIDIA desktop",
    )
    parser.set_defaults(gpu_mode=None, primary=GpuVendor.AMD, persona=persona)

    if persona == "gpu-select":
        parser.add_argument("mode", choices=sorted(GPU_SELECT_MODES), help="GPU to use")
        _add_common(parser)
        parser.add_argument("command", nargs=argparse.REMAINDER, help="Command and its arguments")
        return parser

    _add_gpu_flags(parser, persona)
    parser.add_argument("--lsfg", action="store_true", help="Enable LSFG frame generation")
    parser.add_argument("--mangohud", action="store_true", help="Enable the MangoHud overlay")

    scale = parser.add_argument_group("upscaling (gamescope)")
    scale.add_argument("-i", "--internal", type=_resolution, default=None, metavar="WxH", help="Internal render resolution (default 1280x720)")
    scale.add_argument("-s", "--scaler", choices=sorted(SCALERS), default="fsr", help="Scaling filter")
    scale.add_argument("--fsr-sharpness", type=int, default=None, metavar="0-20", help="FSR sharpness for Wine fullscreen FSR")
    scale.add_argument("--preset", choices=sorted(PRESETS), default=None, help="Upscaling preset")
    if persona == "magpie-linux":
        scale.add_argument("-o", "--output", type=_resolution, default=MAGPIE_DEFAULT_OUTPUT, metavar="WxH", help="Output resolution (default 1920x1080)")
        scale.add_argument("-w", "--windowed", action="store_true", help="Run windowed instead of fullscreen")
        scale.add_argument("-f", "--fps", type=int, default=0, help="Frame rate limit (0 = unlimited)")
        for name in PRESETS:
            scale.add_argument(f"--{name}", dest="preset", action="store_const", const=name, help=argparse.SUPPRESS)
    else:
        scale.add_argument("--gamescope", nargs=2, type=int, default=None, metavar=("W", "H"), help="Run through gamescope at this output size")
        scale.add_argument("--fullscreen", action="store_true", help="Fullscreen gamescope")
        scale.add_argument("--fps", type=int, default=0, help="Frame rate limit (0 = unlimited)")

    _add_scheduling(parser)
    _add_common(parser)
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command and its arguments (optionally after --)")
    return parser


def _command(args) -> List[str]:
    cmd = list(args.command or [])
    if cmd and cmd[0] == "--":
        cmd = cmd[1:]
    return cmd


def _gamescope_options(args, profile, settings) -> Optional[GamescopeOptions]:
    magpie = args.persona == "magpie-linux"
    fullscreen = not args.windowed if magpie else args.fullscreen
    base = GamescopeOptions(
        width=1,
        height=1,
        fullscreen=fullscreen,
        fps_limit=args.fps,
        sharpness=args.fsr_sharpness,
    )
    if args.preset:
        return apply_preset(args.preset, profile, base)

    if magpie:
        width, height = args.output
    elif args.gamescope:
        width, height = args.gamescope
    else:
        return None

    iw, ih = args.internal or tuple(settings.get("internal_resolution") or (1280, 720))
    return GamescopeOptions(
        width=width,
        height=height,
        internal_width=int(iw),
        internal_height=int(ih),
        scaler=args.scaler,
        fullscreen=fullscreen,
        fps_limit=args.fps,
        sharpness=args.fsr_sharpness,
    )


def request_from_args(args, profile, settings) -> LaunchRequest:
    command = tuple(_command(args))
    if args.persona == "gpu-select":
        return LaunchRequest(command=command, gpu_mode=GPU_SELECT_MODES[args.mode])

    gpu_mode = args.gpu_mode
    if gpu_mode is None and args.persona == "multigpu-run":
        gpu_mode = GpuMode.BALANCED

    modifiers = set()
    if args.lsfg:
        modifiers.add(Modifier.LSFG)
    if args.mangohud:
        modifiers.add(Modifier.MANGOHUD)
    gamescope = _gamescope_options(args, profile, settings)
    if gamescope is not None:
        modifiers.add(Modifier.GAMESCOPE)
    elif args.fsr_sharpness is not None:
        raise ValidationError("--fsr-sharpness needs --gamescope or --preset")

    return LaunchRequest(
        command=command,
        gpu_mode=gpu_mode,
        modifiers=frozenset(modifiers),
        gamescope=gamescope,
        primary=args.primary,
        slice=args.slice,
        pin=args.pin,
    )


def _yes(flag: bool) -> str:
    return "yes" if flag else "no"


def print_info(profile, settings) -> None:
    print(f"AMD GPU:        {_yes(profile.has_amd_gpu)}")
    print(f"NVIDIA GPU:     {_yes(profile.has_nvidia_gpu)}")
    print(f"Display server: {profile.display_server.value}")
    if profile.native_resolution:
        print(f"Resolution:     {profile.native_resolution[0]}x{profile.native_resolution[1]}")
    print(f"CPU cores:      {profile.physical_cores} physical / {profile.logical_cores} logical")
    print(f"Primary NIC:    {profile.primary_nic or 'n/a'}")
    print(f"LSFG assets:    {profile.lsfg_assets or '<not found>'}")
    print()
    for key in ("amd_icd", "nvidia_icd"):
        path = settings[key]
        print(f"{key + ':':<15} {path}{'' if Path(path).exists() else '  (missing)'}")
    print()
    print("Classification (first match wins, anything else -> amd):")
    for mode, names in describe_table(build_table(settings.get("rules"))).items():
        print(f"  {mode:<9} {', '.join(names)}")


def main(argv: Optional[List[str]] = None, persona: str = "gpu-launch") -> int:
    parser = build_parser(persona)
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else None
    setup_logging(level)

    settings_file = settings_path()
    settings = load_settings(settings_file)
    logger.debug("Settings from %s: %s", settings_file, settings)
    profile = build_profile()

    if args.info:
        print_info(profile, settings)
        return 0

    if not _command(args):
        parser.print_usage(sys.stderr)
        print(f"{persona}: error: no command given", file=sys.stderr)
        return EXIT_USAGE

    try:
        request = request_from_args(args, profile, settings)
        plan = resolve(profile, request, settings)
    except ValidationError as e:
        print(f"{persona}: {e}", file=sys.stderr)
        return EXIT_INVALID

    log_plan(plan)
    if args.dry_run:
        print(describe(plan))
        return 0

    try:
        execute(plan)
    except CommandNotFoundError as e:
        print(f"{persona}: {e}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except LaunchError as e:
        print(f"{persona}: {e}", file=sys.stderr)
        return EXIT_EXEC_FAILED
    return 0


def gpu_launch():
    sys.exit(main(persona="gpu-launch"))

def smart_run():
    sys.exit(main(persona="smart-run"))

def multigpu_run():
    sys.exit(main(persona="multigpu-run"))

def magpie_linux():
    sys.exit(main(persona="magpie-linux"))

def gpu_select():
    sys.exit(main(persona="gpu-select"))


if __name__ == "__main__":
    gpu_launch()
