"""
Pytest bootstrap for the flat module layout.

Puts the repository root on sys.path so `import generate_population` etc.
resolve without an install, and forces a non-interactive matplotlib backend.
"""
import os
import sys
from pathlib import Path

os.environ.setdefault("MPLBACKEND", "Agg")

repo_root = Path(__file__).resolve().parents[1]
root_str = str(repo_root)
if root_str not in sys.path:
    sys.path.insert(0, root_str)
