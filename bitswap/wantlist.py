"""A list of wanted blocks with their priorities and want types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .cid import Cid
from .pb import WantType


@dataclass(frozen=True)
class Entry:
    """A wanted cid, its priority and whether the block or a HAVE is wanted."""

    cid: Cid
    priority: int = 0
    want_type: WantType = WantType.BLOCK


def new_ref_entry(c: Cid, priority: int) -> Entry:
    return Entry(c, priority, WantType.BLOCK)


def sort_entries(entries: list[Entry]) -> None:
    """Sort entries in place, highest priority first."""
    entries.sort(key=lambda e: e.priority, reverse=True)


class Wantlist:
    """A set of wantlist entries keyed by cid."""

    def __init__(self) -> None:
        self._set: dict[Cid, Entry] = {}

    def __len__(self) -> int:
        return len(self._set)

    def __contains__(self, c: object) -> bool:
        return c in self._set

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._set.values()))

    def add(self, c: Cid, priority: int, want_type: WantType) -> bool:
        """Add an entry; a want-have never replaces an existing want."""
        existing = self._set.get(c)
        if existing is not None and (
            existing.want_type == WantType.BLOCK or want_type == WantType.HAVE
        ):
            return False
        self._set[c] = Entry(c, priority, want_type)
        return True

    def remove(self, c: Cid) -> bool:
        return self._set.pop(c, None) is not None

    def remove_type(self, c: Cid, want_type: WantType) -> bool:
        """Remove c, except that removing a want-have keeps a want-block."""
        existing = self._set.get(c)
        if existing is None:
            return False
        if existing.want_type == WantType.BLOCK and want_type == WantType.HAVE:
            return False
        del self._set[c]
        return True

    def contains(self, c: Cid) -> Entry | None:
        """The entry for c, or None."""
        return self._set.get(c)

    def entries(self) -> list[Entry]:
        return list(self._set.values())

    def absorb(self, other: Wantlist) -> None:
        for e in other.entries():
            self.add(e.cid, e.priority, e.want_type)