"""Root conftest.py: puts the package parent on sys.path for test imports."""

import sys
from pathlib import Path

_project_dir = str(Path(__file__).resolve().parent.parent)
if _project_dir not in sys.path:
    sys.path.insert(0, _project_dir)
