"""Per-field state reducers applied when concurrent stages write the same field."""

from __future__ import annotations

from typing import Any, Callable, Hashable, Iterable, TypeVar

T = TypeVar("T")


def append(current: list[T] | None, new: Iterable[T] | None) -> list[T]:
    """Accumulate values in arrival order."""
    return [*(current or []), *(new or [])]


def replace(current: T | None, new: T) -> T:
    """Last writer wins."""
    return new


def merge_set_by(key: Callable[[Any], Hashable]) -> Callable[[list[Any] | None, Iterable[Any] | None], list[Any]]:
    """Return a reducer that unions two lists, keeping the first value seen for each key."""

    def _merge(current: list[Any] | None, new: Iterable[Any] | None) -> list[Any]:
        merged = list(current or [])
        seen = {key(item) for item in merged}
        for item in new or []:
            item_key = key(item)
            if item_key in seen:
                continue
            seen.add(item_key)
            merged.append(item)
        return merged

    return _merge


def _identity(value: Any) -> Any:
    return value


merge_set = merge_set_by(_identity)
