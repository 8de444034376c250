import pytest

from gpulaunch.launch import CommandNotFoundError, LaunchError, describe, execute
from gpulaunch.models import GamescopeOptions, HardwareProfile, LaunchRequest, Modifier
from gpulaunch.resolve import resolve

BOTH = HardwareProfile(has_amd_gpu=True, has_nvidia_gpu=True)


def fake_locate(*known):
    def _locate(name, path=None):
        return f"/usr/bin/{name}" if name in known else None
    return _locate


def mock_exec_calls():
    calls = []

    def _exec(file, argv, env):
        calls.append((file, argv, env))

    return _exec, calls


def _plan(*command, gamescope=None):
    kw = {}
    if gamescope:
        kw = dict(modifiers=frozenset({Modifier.GAMESCOPE}), gamescope=GamescopeOptions(*gamescope))
    return resolve(BOTH, LaunchRequest(command=tuple(command), **kw))


def test_execute_replaces_process_with_plan_environment():
    plan = _plan("steam", "-silent")
    execvpe, calls = mock_exec_calls()
    environ = {"PATH": "/usr/bin", "DRI_PRIME": "1", "HOME": "/home/me"}
    execute(plan, environ, locate=fake_locate("steam"), execvpe=execvpe)

    assert len(calls) == 1, "execvpe not called exactly once"
    file, argv, env = calls[0]
    assert file == "steam"
    assert argv == ["steam", "-silent"]
    assert env["__GLX_VENDOR_LIBRARY_NAME"] == "nvidia"
    assert "DRI_PRIME" not in env
    assert env["HOME"] == "/home/me"
    assert environ["DRI_PRIME"] == "1", "caller environment must not be mutated"


def test_missing_command_fails_before_exec():
    plan = _plan("notinstalled")
    execvpe, calls = mock_exec_calls()
    with pytest.raises(CommandNotFoundError) as exc:
        execute(plan, {"PATH": "/usr/bin"}, locate=fake_locate(), execvpe=execvpe)
    assert exc.value.name == "notinstalled"
    assert exc.value.role == "command"
    assert not calls


def test_missing_wrapper_is_reported_as_wrapper():
    plan = _plan("glxgears", gamescope=(1920, 1080))
    execvpe, calls = mock_exec_calls()
    with pytest.raises(CommandNotFoundError) as exc:
        execute(plan, {}, locate=fake_locate("glxgears"), execvpe=execvpe)
    assert exc.value.name == "gamescope"
    assert exc.value.role == "wrapper"
    assert "gamescope" in str(exc.value)
    assert not calls


def test_wrapped_target_is_checked_too():
    plan = _plan("glxgears", gamescope=(1920, 1080))
    execvpe, calls = mock_exec_calls()
    with pytest.raises(CommandNotFoundError) as exc:
        execute(plan, {}, locate=fake_locate("gamescope"), execvpe=execvpe)
    assert exc.value.name == "glxgears"
    assert not calls


def test_wrapped_exec_uses_wrapper_as_file():
    plan = _plan("glxgears", gamescope=(1920, 1080))
    execvpe, calls = mock_exec_calls()
    execute(plan, {}, locate=fake_locate("gamescope", "glxgears"), execvpe=execvpe)
    file, argv, _ = calls[0]
    assert file == "gamescope"
    assert argv[-2:] == ["--", "glxgears"]


def test_exec_failure_becomes_launch_error():
    plan = _plan("glxgears")

    def broken(file, argv, env):
        raise PermissionError(13, "Permission denied")

    with pytest.raises(LaunchError) as exc:
        execute(plan, {}, locate=fake_locate("glxgears"), execvpe=broken)
    assert "Permission denied" in str(exc.value)


def test_describe_renders_shell():
    text = describe(_plan("my game", gamescope=(1920, 1080)))
    lines = text.splitlines()
    assert "unset __NV_PRIME_RENDER_OFFLOAD" in lines
    assert "export DRI_PRIME=0" in lines
    assert lines[-1].startswith("exec gamescope -w 1280 -h 720")
    assert lines[-1].endswith("-- 'my game'")
