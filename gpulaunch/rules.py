"""Name-based workload classification.

The table is an ordered sequence of ``(predicate, mode)`` pairs; the
first predicate that accepts the executable basename decides the mode.
Anything no rule claims runs on the AMD card, which drives the display.
"""
from __future__ import annotations

import os
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import GpuMode

Predicate = Callable[[str], bool]
Rule = Tuple[Predicate, GpuMode]

FALLBACK_MODE = GpuMode.AMD

def basename_in(names: Iterable[str]) -> Predicate:
    wanted = frozenset(n.lower() for n in names)

    def _match(basename: str) -> bool:
        return basename in wanted

    _match.names = wanted  # type: ignore[attr-defined]
    return _match

DEFAULT_RULES: Tuple[Rule, ...] = (
    (basename_in({"blender", "steam", "obs"}), GpuMode.NVIDIA),
    (basename_in({"ffmpeg", "kdenlive", "darktable"}), GpuMode.BALANCED),
)

def command_basename(argv0: str) -> str:
    return os.path.basename(argv0.rstrip("/")).lower()

def rules_from_settings(rules: Optional[Mapping[str, Sequence[str]]]) -> List[Rule]:
    """Turn the ``rules`` settings block into table entries.

    Unknown mode names are skipped; ``auto`` is not a valid target here.
    """
    table: List[Rule] = []
    for mode_name, names in (rules or {}).items():
        try:
            mode = GpuMode(str(mode_name).lower())
        except ValueError:
            continue
        if mode is GpuMode.AUTO or not names:
            continue
        table.append((basename_in(names), mode))
    return table

def build_table(user_rules: Optional[Mapping[str, Sequence[str]]] = None) -> Tuple[Rule, ...]:
    # user rules shadow the defaults
    return tuple(rules_from_settings(user_rules)) + DEFAULT_RULES

def classify(argv0: str, table: Sequence[Rule] = DEFAULT_RULES) -> GpuMode:
    name = command_basename(argv0)
    for predicate, mode in table:
        if predicate(name):
            return mode
    return FALLBACK_MODE

def describe_table(table: Sequence[Rule]) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for predicate, mode in table:
        names = getattr(predicate, "names", None)
        if names:
            out.setdefault(mode.value, []).extend(sorted(names))
    return out
