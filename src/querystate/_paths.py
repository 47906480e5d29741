"""Path algebra over dot-delimited field paths."""

from __future__ import annotations

from typing import Iterable


def join_path(ancestor: str | None, key: str) -> str:
    return f"{ancestor}.{key}" if ancestor else key


def same_path(p: str, q: str) -> bool:
    return p == q


def same_ancestor(paths: Iterable[str], path: str) -> bool:
    """True if `path` equals, contains or is contained by any of `paths`.

    Matches: (a.b.c, a) (a.b.c, a.b) (a.b, a.b.c)
    Non-matches: (a.b.c, a.c) (aa.b, a.b) (a, ab)
    """
    for other in paths:
        if same_path(other, path):
            return True
        short, long = (path, other) if len(path) < len(other) else (other, path)
        if long.startswith(short + "."):
            return True
    return False
