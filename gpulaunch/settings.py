import json
import logging
import os
from typing import Dict
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path.home() / ".config" / "gpulaunch" / "settings.json"

def default_settings() -> Dict:
    return {
        "amd_icd": "/usr/share/vulkan/icd.d/radeon_icd.x86_64.json",
        "nvidia_icd": "/usr/share/vulkan/icd.d/nvidia_icd.json",
        "internal_resolution": [1280, 720],
        "rules": {},            # {"nvidia": ["blender"], "balanced": [...], "amd": [...]}
    }

def settings_path() -> Path:
    env = os.environ.get("GPULAUNCH_SETTINGS")
    return Path(env).expanduser() if env else DEFAULT_SETTINGS_FILE

def _is_resolution(value) -> bool:
    return (
        isinstance(value, list)
        and len(value) == 2
        and all(isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in value)
    )

def _is_rules(value) -> bool:
    return isinstance(value, dict) and all(
        isinstance(names, list) and all(isinstance(n, str) for n in names)
        for names in value.values()
    )

# Shape each key must have; a value that fails is replaced by its default
VALIDATORS = {
    "amd_icd": lambda v: isinstance(v, str) and bool(v),
    "nvidia_icd": lambda v: isinstance(v, str) and bool(v),
    "internal_resolution": _is_resolution,
    "rules": _is_rules,
}

def load_settings(settings_file: Path) -> Dict:
    default = default_settings()
    try:
        if not settings_file.exists():
            return default
        data = json.loads(settings_file.read_text("utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", settings_file, e)
        return default
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a JSON object, got %s", settings_file, type(data).__name__)
        return default
    for key in default:
        if key not in data:
            continue
        if VALIDATORS[key](data[key]):
            default[key] = data[key]
        else:
            logger.warning("Ignoring bad %r in %s: %r", key, settings_file, data[key])
    return default

def save_settings(settings_file: Path, settings: dict) -> None:
    settings_file.parent.mkdir(parents=True, exist_ok=True)
    settings_file.write_text(json.dumps(settings, indent=2), encoding="utf-8")
