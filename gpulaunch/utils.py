import re
import subprocess
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Tuple

def run_quiet(argv: List[str], timeout: float = 5) -> str:
    """Run a probe command and return stdout, or "" if it is missing or fails."""
    try:
        result = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
    except (FileNotFoundError, PermissionError, subprocess.TimeoutExpired):
        return ""
    return result.stdout if result.returncode == 0 else ""

def parse_resolution(s: str) -> Tuple[int, int]:
    """'1920x1080' -> (1920, 1080). Raises ValueError on anything else."""
    m = re.fullmatch(r"\s*(\d+)\s*[xX]\s*(\d+)\s*", s or "")
    if not m:
        raise ValueError(f"expected WIDTHxHEIGHT, got {s!r}")
    return int(m.group(1)), int(m.group(2))

def default_route_nic(ip_route_output: str) -> Optional[str]:
    for line in ip_route_output.splitlines():
        parts = line.split()
        if parts[:1] == ["default"] and "dev" in parts:
            i = parts.index("dev")
            if i + 1 < len(parts):
                return parts[i + 1]
    return None

def current_xrandr_mode(xrandr_output: str) -> Optional[Tuple[int, int]]:
    # active mode line looks like: "   2560x1440    143.97*+  120.00"
    for line in xrandr_output.splitlines():
        if "*" not in line:
            continue
        token = line.split()[0] if line.split() else ""
        try:
            return parse_resolution(token)
        except ValueError:
            continue
    return None

def find_lsfg_assets(environ: Mapping[str, str]) -> Optional[str]:
    env = environ.get("LSFG_ASSETS")
    if env:
        return env
    home = environ.get("HOME") or str(Path.home())
    p = Path(home) / ".steam" / "steam" / "steamapps" / "common" / "Lossless Scaling"
    return str(p) if p.is_dir() else None

def format_cpu_list(cpus: Iterable[int]) -> str:
    """[2,3,4,10,11] -> '2-4,10-11' (taskset -c syntax)."""
    ordered = sorted(set(cpus))
    spans: List[str] = []
    i = 0
    while i < len(ordered):
        start = end = ordered[i]
        while i + 1 < len(ordered) and ordered[i + 1] == end + 1:
            i += 1
            end = ordered[i]
        spans.append(str(start) if start == end else f"{start}-{end}")
        i += 1
    return ",".join(spans)
