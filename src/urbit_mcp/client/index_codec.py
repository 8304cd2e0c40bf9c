"""Index path codec for graph-store nodes.

An index path is a tuple of non-negative integers. Three encodings of the
same path are in use:

- the canonical tuple, e.g. ``(170141184505..., 1)``
- the slash string carried inside posts, e.g. ``"/170141184505.../1"``
- the grouped-decimal string used only when building scry URLs, e.g.
  ``"/170.141.184.505.../1"``

New leaf indices are minted from wall-clock time using Urbit's ``@da``
absolute-time encoding.
"""

from __future__ import annotations

import time

from ..models import InvalidIndexError

IndexPath = tuple[int, ...]

# `@ud` of ~1970.1.1
DA_UNIX_EPOCH = 170141184475152167957503069145530368000
# `@ud` of ~s1
DA_SECOND = 18446744073709551616

_GROUP_SEPARATOR = "."


def parse_index(value: str) -> IndexPath:
    """Parse a slash index string (grouped digits are accepted too)."""
    if not isinstance(value, str) or not value.startswith("/"):
        raise InvalidIndexError(f"Index must be a string starting with '/': {value!r}")
    segments = value[1:].split("/")
    path: list[int] = []
    for segment in segments:
        digits = segment.replace(_GROUP_SEPARATOR, "")
        if not (digits.isascii() and digits.isdigit()):
            raise InvalidIndexError(f"Invalid index segment {segment!r} in {value!r}")
        path.append(int(digits))
    return tuple(path)


def format_index(path: IndexPath) -> str:
    """Render a path as the slash string used inside posts."""
    _check_path(path)
    return "".join(f"/{segment}" for segment in path)


def ud_encode(value: int) -> str:
    """Render an integer as ``@ud``: digit groups of three, most significant first."""
    if value < 0:
        raise InvalidIndexError(f"Index segments must be non-negative: {value}")
    return f"{value:,}".replace(",", _GROUP_SEPARATOR)


def to_url_path(path: IndexPath) -> str:
    """Grouped-decimal form of a path, for scry URLs only."""
    _check_path(path)
    return "".join(f"/{ud_encode(segment)}" for segment in path)


def parent_of(path: IndexPath) -> IndexPath | None:
    if len(path) <= 1:
        return None
    return tuple(path[:-1])


def index_tail(path: IndexPath) -> int:
    return path[-1]


def is_ancestor(a: IndexPath, b: IndexPath) -> bool:
    """True iff ``a`` is a proper prefix of ``b``."""
    return len(a) < len(b) and tuple(b[: len(a)]) == tuple(a)


def is_direct_parent(a: IndexPath, b: IndexPath) -> bool:
    """True iff ``b`` is ``a`` plus exactly one trailing segment."""
    return len(b) == len(a) + 1 and tuple(b[:-1]) == tuple(a)


def unix_ms_to_da(now_ms: int) -> int:
    """Convert Unix milliseconds to an ``@da`` atom."""
    return DA_UNIX_EPOCH + (now_ms * DA_SECOND) // 1000


def da_to_unix_ms(da: int) -> int:
    # Ceiling division undoes the floor in unix_ms_to_da.
    return -((-(da - DA_UNIX_EPOCH) * 1000) // DA_SECOND)


def current_time_ms() -> int:
    return int(time.time() * 1000)


def mint_leaf_index(now_ms: int | None = None) -> IndexPath:
    """Mint a single-segment index from wall-clock time.

    Two calls within the same millisecond yield the same index; callers
    that need distinct indices must space their calls.
    """
    if now_ms is None:
        now_ms = current_time_ms()
    return (unix_ms_to_da(now_ms),)


def _check_path(path: IndexPath) -> None:
    if not path:
        raise InvalidIndexError("Index path must have at least one segment")
    for segment in path:
        if not isinstance(segment, int) or segment < 0:
            raise InvalidIndexError(f"Invalid index segment {segment!r}")
