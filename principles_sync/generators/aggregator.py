"""Aggregate principle files from the mirror into one active document.

The output is a pure function of the mirror contents and the category
list: categories in the given order, items in lexical filename order.
Items are opaque: bytes that are not UTF-8 are carried through unchanged.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable

from principles_sync.analyzers.detector import category_directory
from principles_sync.log import get_logger

log = get_logger(__name__)

CATEGORY_HEADER = "# Category: {label}\n\n"
ITEM_SEPARATOR = "\n---\n\n"


def content_items(category_dir: Path) -> list[Path]:
    """Return the content items of a category directory in lexical order.

    Hidden files (``.gitkeep`` and friends) are not content.
    """
    return sorted(
        (p for p in category_dir.iterdir() if p.is_file() and not p.name.startswith(".")),
        key=lambda p: p.name,
    )


def aggregate(mirror_path: str | Path, categories: Iterable[str]) -> tuple[str, list[str]]:
    """Concatenate the items of every category present in the mirror.

    Returns:
        ``(document, used)`` where ``used`` lists the categories that had a
        mirror directory. Labels without one are skipped silently.
    """
    mirror = Path(mirror_path)
    parts: list[str] = []
    used: list[str] = []

    for label in categories:
        category_dir = mirror / category_directory(label)
        if not category_dir.is_dir():
            log.debug("No principles directory for %s", label)
            continue
        used.append(label)
        parts.append(CATEGORY_HEADER.format(label=label))
        for item in content_items(category_dir):
            text = item.read_text(encoding="utf-8", errors="surrogateescape")
            parts.append(text.rstrip() + "\n")
            parts.append(ITEM_SEPARATOR)

    return "".join(parts), used


def write_document(path: str | Path, document: str) -> Path:
    """Replace ``path`` with ``document`` atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
            f.write(document)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    return path
