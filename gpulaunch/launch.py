# gpulaunch/launch.py
from __future__ import annotations

import logging
import os
import shlex
import shutil
from typing import Callable, Dict, List, Mapping, Optional

from .models import LaunchPlan

logger = logging.getLogger(__name__)

class CommandNotFoundError(LookupError):
    def __init__(self, name: str, role: str = "command"):
        super().__init__(f"{role} not found on PATH: {name}")
        self.name = name
        self.role = role

class LaunchError(RuntimeError):
    pass

# ──────────────────────────────────────────────────────────────────────────────
# Small helpers
# ──────────────────────────────────────────────────────────────────────────────

def child_environment(plan: LaunchPlan, environ: Mapping[str, str]) -> Dict[str, str]:
    """Copy of ``environ`` with the plan's unsets removed and overrides applied."""
    env = {k: v for k, v in environ.items() if k not in plan.unset}
    env.update(plan.env)
    return env

def _check_executables(plan: LaunchPlan, path: Optional[str], locate: Callable) -> None:
    argv = plan.final_argv
    if locate(argv[0], path=path) is None:
        raise CommandNotFoundError(argv[0], "wrapper" if plan.wrapper else "command")
    if plan.wrapper and locate(plan.command[0], path=path) is None:
        raise CommandNotFoundError(plan.command[0], "command")

def describe(plan: LaunchPlan) -> str:
    """Shell-ish rendering of the plan (used by --dry-run)."""
    lines: List[str] = []
    for k in plan.unset:
        lines.append(f"unset {k}")
    for k, v in plan.env.items():
        lines.append(f"export {k}={shlex.quote(v)}")
    lines.append("exec " + " ".join(shlex.quote(a) for a in plan.final_argv))
    return "\n".join(lines)

def log_plan(plan: LaunchPlan) -> None:
    for note in plan.notes:
        logger.info("[GPU] %s", note)
    if plan.degraded:
        logger.warning("[GPU] No dedicated GPU detected, running with driver defaults")
    else:
        logger.info("[GPU] Mode: %s", plan.mode.value)
    if "ENABLE_LSFG" in plan.env:
        logger.info("[LSFG] Frame generation enabled")
    if "MANGOHUD" in plan.env:
        logger.info("[MangoHud] Overlay enabled")
    if plan.wrapper and "gamescope" in plan.wrapper:
        i = plan.wrapper.index("gamescope")
        gs = plan.wrapper[i:]
        logger.info("[Gamescope] %sx%s", gs[gs.index("-W") + 1], gs[gs.index("-H") + 1])

# ──────────────────────────────────────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────────────────────────────────────

def execute(
    plan: LaunchPlan,
    environ: Optional[Mapping[str, str]] = None,
    *,
    locate: Callable = shutil.which,
    execvpe: Callable = os.execvpe,
) -> None:
    """Replace the current process with ``plan.final_argv``.

    Does not return on success. Raises CommandNotFoundError before touching
    anything if the wrapper or target cannot be found, LaunchError if the
    exec itself fails.
    """
    environ = os.environ if environ is None else environ
    env = child_environment(plan, environ)
    _check_executables(plan, env.get("PATH"), locate)

    argv = list(plan.final_argv)
    logger.info("[Exec] %s", " ".join(shlex.quote(a) for a in argv))
    try:
        execvpe(argv[0], argv, env)
    except OSError as e:
        raise LaunchError(f"failed to exec {argv[0]}: {e.strerror or e}") from e
