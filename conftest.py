"""
Root conftest to ensure proper import paths.

The project uses a flat layout (config.py, core/, utils/, api/ at the root),
so the root directory must be on sys.path before tests are collected.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
