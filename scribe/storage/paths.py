"""Output file naming: sanitised titles and collision-safe writes."""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path

_UNSAFE_CHARS_RE = re.compile(r'[/\\?%*:|"<>]')

MAX_FILENAME_CHARS = 100


def sanitize_filename(title: str) -> str:
    """Replace characters that are unsafe in file names and cap the length."""
    cleaned = _UNSAFE_CHARS_RE.sub("-", title).strip()
    return cleaned[:MAX_FILENAME_CHARS].rstrip() or "transcript"


def candidate_paths(path: Path) -> Iterator[Path]:
    """Yield *path*, then ``name (2).ext``, ``name (3).ext``, ..."""
    yield path
    n = 2
    while True:
        yield path.with_name(f"{path.stem} ({n}){path.suffix}")
        n += 1


def write_unique(path: str | Path, content: str) -> Path:
    """Write *content* to *path* or the first free numbered variant of it.

    Files are opened in exclusive-create mode, so an existing document is
    never overwritten.

    Returns:
        The path actually written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    for candidate in candidate_paths(path):
        try:
            with open(candidate, "x", encoding="utf-8") as f:
                f.write(content)
        except FileExistsError:
            continue
        return candidate

    raise AssertionError("unreachable")  # pragma: no cover
