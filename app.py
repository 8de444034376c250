#!/usr/bin/env python3
import os
import sys
from gpulaunch.cli import main

PERSONAS = {"gpu-launch", "smart-run", "multigpu-run", "magpie-linux", "gpu-select"}

def _persona() -> str:
    # symlinked under a wrapper's name (e.g. /usr/local/bin/gpu-select -> app.py)
    name = os.path.basename(sys.argv[0])
    return name if name in PERSONAS else "gpu-launch"

if __name__ == "__main__":
    sys.exit(main(persona=_persona()))
