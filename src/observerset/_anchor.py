"""Identity anchor — stable keys for owner references.

An ObserverSet buckets handlers by owner. Owners are arbitrary objects,
often unhashable, so the registry never uses them as dict keys directly.
Instead the allocator hands out a stable key per reference.

None and NO_OWNER share one reserved key. Everything else gets an int.
"""

from __future__ import annotations

import itertools
import weakref

NO_OWNER_KEY = "__this__"


class _NoOwner:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NO_OWNER"


# Explicit "registered without an owner" marker, coalesced with None.
NO_OWNER = _NoOwner()


def is_ownerless(ref: object) -> bool:
    return ref is None or ref is NO_OWNER


class IdentityAllocator:
    """Maps references to keys that stay fixed for the reference's lifetime."""

    __slots__ = ("_counter", "_keys", "_pinned", "_holds")

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._keys: dict[int, int] = {}  # id(ref) -> key
        self._pinned: dict[int, object] = {}  # id(ref) -> ref, non-weakrefables
        self._holds: dict[int, int] = {}  # id(ref) -> buckets using a pinned ref

    def key_for(self, ref: object) -> int | str:
        if is_ownerless(ref):
            return NO_OWNER_KEY
        ident = id(ref)
        key = self._keys.get(ident)
        if key is not None:
            return key
        key = next(self._counter)
        try:
            weakref.finalize(ref, self._evict, ident, key)
        except TypeError:
            # Can't watch for collection, so keep it alive to keep id() unique
            # until release().
            self._pinned[ident] = ref
        self._keys[ident] = key
        return key

    def lookup(self, ref: object) -> int | str | None:
        """Key previously issued for ref, or None. Never allocates."""
        if is_ownerless(ref):
            return NO_OWNER_KEY
        return self._keys.get(id(ref))

    def _evict(self, ident: int, key: int) -> None:
        if self._keys.get(ident) == key:
            del self._keys[ident]

    def acquire(self, ref: object) -> int | str:
        """key_for(ref), counting one more holder of a pinned reference."""
        key = self.key_for(ref)
        ident = id(ref)
        if ident in self._pinned:
            self._holds[ident] = self._holds.get(ident, 0) + 1
        return key

    def release(self, ref: object) -> None:
        """Drop one hold on ref. A pinned ref with no holds left is forgotten.

        Weakly watched refs are forgotten when collected, so this is a no-op
        for them.
        """
        ident = id(ref)
        if ident not in self._pinned:
            return
        holds = self._holds.pop(ident, 0) - 1
        if holds > 0:
            self._holds[ident] = holds
            return
        del self._pinned[ident]
        del self._keys[ident]

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"IdentityAllocator({len(self._keys)} keys)"


default_allocator = IdentityAllocator()


def set_default_allocator(allocator: IdentityAllocator) -> None:
    """Replace the allocator used by registries created without one.

    Registries that already exist keep the allocator they were built with.
    """
    global default_allocator
    default_allocator = allocator


def key_for(ref: object) -> int | str:
    return default_allocator.key_for(ref)
