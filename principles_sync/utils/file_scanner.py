"""File scanner — bounded-depth listing of a working tree."""

import os
from pathlib import Path

# Directories never worth descending into
SKIP_DIRS = {
    ".git", "__pycache__", "node_modules", ".venv", "venv", ".env",
    "dist", "build", ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    "target", "vendor", ".next", ".nuxt", "coverage", ".terraform",
}


def scan_project_files(root: Path, max_depth: int = 3) -> list[Path]:
    """List files under ``root`` as paths relative to it.

    Depth counts like ``find -maxdepth``: files directly in ``root`` are at
    depth 1. Skipped directories are pruned, not just filtered.
    """
    root = Path(root)
    if max_depth < 1 or not root.is_dir():
        return []

    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root)
        depth = len(rel_dir.parts) + 1
        for name in sorted(filenames):
            files.append(rel_dir / name)
        if depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
    return files
