#!/usr/bin/env python3
"""perfbench CLI entrypoint -- run without pip install.

Usage:
    python pbrun.py run tests/ -r --lite
    python pbrun.py --help
"""

import sys
from pathlib import Path

# Add src/ to import path so the perfbench package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from perfbench.cli import app

if __name__ == "__main__":
    app()
