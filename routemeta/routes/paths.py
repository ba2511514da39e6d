"""Path helpers shared by metadata generation and route rendering."""

from __future__ import annotations

import re

_SEPARATORS = re.compile(r"[/\\\s]+")
_EDGES = re.compile(r"^[/\\\s]+|[/\\\s]+$")


def normalise_path(path: str | None, prefix: str = "", suffix: str = "", skip_if_empty: bool = True) -> str:
    """Collapse separators, strip them from both ends, then add prefix and suffix.

    An empty path (or a bare "/") stays empty unless ``skip_if_empty`` is False.
    """
    if (not path or path == "/") and skip_if_empty:
        return ""
    normalised = _EDGES.sub("", str(path or ""))
    normalised = f"{prefix}{normalised}{suffix}"
    return _SEPARATORS.sub("/", normalised)


def strip_suffix(path: str, suffix: str) -> str:
    """Remove ``suffix`` only where it ends the string."""
    if suffix and path.endswith(suffix):
        return path[: -len(suffix)]
    return path
