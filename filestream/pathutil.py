from __future__ import annotations

import os

from .errors import UnsafePathError


def norm_path(p: str) -> str:
    """Normalize a stream path to a relative forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise UnsafePathError(f"path may not contain '..': {p!r}")
    return "/".join(parts)


def join_under(base: str, p: str) -> str:
    """Resolve a stream path below ``base``; the root path maps to ``base`` itself."""
    rel = norm_path(p)
    if not rel:
        return base
    return os.path.join(base, *rel.split("/"))


def stream_path(base: str, fs_path: str) -> str:
    """Name ``fs_path`` relative to ``base`` using forward slashes.

    A base of "/" keeps absolute paths.
    """
    if base == os.sep or base == "/":
        return fs_path.replace(os.sep, "/")
    return os.path.relpath(fs_path, base).replace(os.sep, "/")
