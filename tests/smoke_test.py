#!/usr/bin/env python3
"""
End-to-end smoke test: probe -> resolve -> exec, with every system call faked.

Checks:
- lspci/ip/xrandr output turned into a HardwareProfile
- name inference for a store app, a media tool and an unknown binary
- magpie-style gamescope + slice + pin wrapper composed in order
- exec receives the plan environment (inherited GPU vars dropped)
- a box with no dedicated GPUs still launches (degraded)
"""
import os

from gpulaunch.hardware import build_profile
from gpulaunch.launch import execute
from gpulaunch.models import GamescopeOptions, GpuMode, LaunchRequest, Modifier
from gpulaunch.resolve import resolve

LSPCI = (
    "01:00.0 VGA compatible controller: Advanced Micro Devices, Inc. [AMD/ATI] Navi 23\n"
    "02:00.0 3D controller: NVIDIA Corporation TU117 [GeForce GTX 1650]\n"
)


def _runner(outputs):
    def _run(argv, timeout=5):
        return outputs.get(argv[0], "")
    return _run


def mock_exec_calls():
    calls = []
    def _exec(file, argv, env):
        calls.append((file, argv, env))
    return _exec, calls


def _locate(name, path=None):
    return "/usr/bin/" + os.path.basename(name)


def test_smoke():
    environ = {
        "XDG_SESSION_TYPE": "x11",
        "PATH": "/usr/bin",
        "HOME": "/nonexistent",
        "VK_ICD_FILENAMES": "/stale/icd.json",
        "__NV_PRIME_RENDER_OFFLOAD": "1",
    }
    profile = build_profile(
        environ=environ,
        runner=_runner({
            "lspci": LSPCI,
            "ip": "default via 10.0.0.1 dev eno1\n",
            "xrandr": "   3840x2160     60.00*+\n",
        }),
    )
    assert profile.has_amd_gpu and profile.has_nvidia_gpu
    assert profile.native_resolution == (3840, 2160)
    assert profile.primary_nic == "eno1"

    modes = {cmd: resolve(profile, LaunchRequest(command=(cmd,))).mode for cmd in ("steam", "ffmpeg", "vkcube")}
    assert modes == {"steam": GpuMode.NVIDIA, "ffmpeg": GpuMode.BALANCED, "vkcube": GpuMode.AMD}

    request = LaunchRequest(
        command=("./game.x86_64", "-windowed"),
        modifiers=frozenset({Modifier.GAMESCOPE, Modifier.MANGOHUD}),
        gamescope=GamescopeOptions(width=3840, height=2160, internal_width=1920, internal_height=1080, fullscreen=True),
        slice="gaming",
        pin="gaming",
    )
    plan = resolve(profile, request)
    argv = list(plan.final_argv)
    assert argv[0] == "systemd-run"
    assert argv.index("taskset") < argv.index("gamescope") < argv.index("./game.x86_64")

    execvpe, calls = mock_exec_calls()
    execute(plan, environ, locate=_locate, execvpe=execvpe)
    assert calls, "exec not dispatched"
    file, exec_argv, env = calls[0]
    assert file == "systemd-run"
    assert exec_argv == argv
    assert env["DRI_PRIME"] == "0"
    assert env["MANGOHUD"] == "1"
    assert env["VK_ICD_FILENAMES"] != "/stale/icd.json"
    assert "__NV_PRIME_RENDER_OFFLOAD" not in env

    # no dedicated GPUs: still launches, no GPU variables at all
    bare = build_profile(environ={}, runner=_runner({}))
    plan = resolve(bare, LaunchRequest(command=("blender",)))
    assert plan.degraded and plan.env == {}
    execvpe, calls = mock_exec_calls()
    execute(plan, environ, locate=_locate, execvpe=execvpe)
    assert "VK_ICD_FILENAMES" not in calls[0][2]
