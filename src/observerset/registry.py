"""Observer sets — who to notify when one observable key changes.

An ObserverSet buckets (owner, handler) pairs by owner identity. Each bucket
is a TargetMethodSet: the handlers registered for that owner plus a
non-owning reference back to the owner. Empty buckets are never stored, and
a bucket whose owner is garbage collected removes itself.

members() flattens the buckets into an immutable Members snapshot and caches
it until the next add/remove that changes contents. Because it is a snapshot,
a handler may add or remove observers while the caller is still iterating.

Single-threaded: no locking. A notifier that needs a fixed view for a whole
pass should iterate clone().members() (see observerset.notify).
"""

from __future__ import annotations

import logging
import weakref
from typing import Callable, Hashable, Iterator

from observerset import _anchor
from observerset._anchor import IdentityAllocator, NO_OWNER

logger = logging.getLogger("observerset.registry")

Handler = Callable[..., object]
Member = tuple[object, Handler]


def _strong(owner: object) -> Callable[[], object]:
    return lambda: owner


class _ByIdentity:
    """Set key for a handler that can't be hashed. Equal only to itself."""

    __slots__ = ("handler",)

    def __init__(self, handler: Handler) -> None:
        self.handler = handler

    def __hash__(self) -> int:
        return id(self.handler)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _ByIdentity) and other.handler is self.handler


def _handler_key(handler: object) -> Hashable:
    try:
        hash(handler)
    except TypeError:
        return _ByIdentity(handler)
    return handler


class TargetMethodSet:
    """The handlers registered for a single owner.

    The owner is held weakly when it supports weak references. Owners that
    don't (ints, strings, tuples) and the owner-less sentinels are held
    strongly.
    """

    __slots__ = ("_owner_ref", "handlers")

    def __init__(
        self, owner: object, on_collect: Callable[[weakref.ref], None] | None = None
    ) -> None:
        self._owner_ref = _strong(owner)
        if not _anchor.is_ownerless(owner):
            try:
                self._owner_ref = weakref.ref(owner, on_collect)
            except TypeError:
                pass
        # insertion-ordered set: handler key -> handler
        self.handlers: dict[Hashable, Handler] = {}

    @property
    def owner(self) -> object:
        """The registered owner, or None once a weakly held owner is collected."""
        return self._owner_ref()

    def copy(self, on_collect: Callable[[weakref.ref], None] | None = None) -> TargetMethodSet:
        owner = self._owner_ref()
        new = TargetMethodSet(owner, on_collect)
        new.handlers = dict(self.handlers)
        return new

    def __len__(self) -> int:
        return len(self.handlers)

    def __repr__(self) -> str:
        return f"TargetMethodSet({self.owner!r}, {len(self.handlers)} handlers)"


class Members:
    """Immutable sequence of (owner, handler) pairs returned by members().

    Compares equal to any tuple or list holding the same pairs in order.
    """

    __slots__ = ("_pairs", "__weakref__")

    def __init__(self, pairs: tuple[Member, ...]) -> None:
        self._pairs = pairs

    def __getitem__(self, index):
        return self._pairs[index]

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[Member]:
        return iter(self._pairs)

    def __contains__(self, item: object) -> bool:
        return item in self._pairs

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Members):
            return self._pairs == other._pairs
        if isinstance(other, (tuple, list)):
            return self._pairs == tuple(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Members({list(self._pairs)!r})"


class ObserverSet:
    """Registry of (owner, handler) observers for one observable key."""

    __slots__ = (
        "_allocator",
        "_sets",
        "_flat",
        "_members_ref",
        "_members_valid",
        "__weakref__",
    )

    def __init__(self, allocator: IdentityAllocator | None = None) -> None:
        self._allocator = allocator if allocator is not None else _anchor.default_allocator
        self._sets: dict[int | str, TargetMethodSet] = {}
        # Cache: weak (owner_ref, handler) pairs plus a weak handle on the
        # Members last handed out, so the cache never keeps an owner alive.
        self._flat: tuple[tuple[Callable[[], object], Handler], ...] = ()
        self._members_ref: weakref.ref | None = None
        self._members_valid = False
        # Owners held by identity stay pinned in the allocator only while a
        # bucket here refers to them.
        weakref.finalize(self, _release_owners, self._allocator, self._sets)

    @classmethod
    def create(cls, allocator: IdentityAllocator | None = None) -> ObserverSet:
        """Return a new, empty observer set."""
        return cls(allocator)

    @property
    def owner_count(self) -> int:
        """Number of distinct owners with at least one handler."""
        return len(self._sets)

    @property
    def allocator(self) -> IdentityAllocator:
        return self._allocator

    def add(self, owner: object, handler: Handler) -> None:
        """Register handler for owner. Adding an existing pair is a no-op.

        Pass None or NO_OWNER as owner for handlers without a target; both
        share one bucket, and whichever was registered first is kept as that
        bucket's owner. Callables that can't be hashed are matched by identity.

        Raises:
            TypeError: handler is not callable (method names are not accepted).
                The registry is left untouched.
        """
        if not callable(handler):
            raise TypeError(f"handler must be callable, got {type(handler).__name__}")
        hkey = _handler_key(handler)
        key = self._allocator.key_for(owner)
        methods = self._sets.get(key)
        if methods is None:
            self._allocator.acquire(owner)
            methods = self._sets[key] = TargetMethodSet(owner, self._collector(key))
        elif hkey in methods.handlers:
            return
        methods.handlers[hkey] = handler
        self._invalidate()
        logger.debug("Added observer %r for owner key %r", handler, key)

    def remove(self, owner: object, handler: Handler) -> bool:
        """Unregister handler for owner. Returns False if it was not registered."""
        key = self._allocator.lookup(owner)
        methods = self._sets.get(key) if key is not None else None
        if methods is None:
            return False
        hkey = _handler_key(handler)
        if hkey not in methods.handlers:
            return False
        del methods.handlers[hkey]
        if not methods.handlers:
            del self._sets[key]
            self._allocator.release(methods.owner)
        self._invalidate()
        logger.debug("Removed observer %r for owner key %r", handler, key)
        return True

    def members(self) -> Members:
        """All (owner, handler) pairs. Cached until the next change.

        The same Members object comes back for as long as some caller still
        holds it. Once every caller has dropped it, the next call wraps the
        cached pairs in a new Members without walking the buckets again; the
        registry keeps only weak references to owners between calls.
        """
        members = self._members_ref() if self._members_ref is not None else None
        if self._members_valid and members is not None:
            return members
        if not self._members_valid:
            self._flat = tuple(
                (methods._owner_ref, handler)
                for methods in self._sets.values()
                for handler in methods.handlers.values()
            )
            self._members_valid = True
            logger.debug("Rebuilt member cache: %d members", len(self._flat))
        members = Members(tuple((ref(), handler) for ref, handler in self._flat))
        self._members_ref = weakref.ref(members)
        return members

    def handlers_for(self, owner: object) -> tuple[Handler, ...]:
        methods = self._bucket(owner)
        return tuple(methods.handlers.values()) if methods is not None else ()

    def clone(self) -> ObserverSet:
        """Independent copy. Owners are shared, bucket structures are not."""
        new = ObserverSet(self._allocator)
        for key, methods in self._sets.items():
            new._sets[key] = methods.copy(new._collector(key))
            self._allocator.acquire(methods.owner)
        return new

    slice = clone

    def _bucket(self, owner: object) -> TargetMethodSet | None:
        key = self._allocator.lookup(owner)
        return self._sets.get(key) if key is not None else None

    def _invalidate(self) -> None:
        self._members_valid = False
        self._members_ref = None
        self._flat = ()

    def _collector(self, key: int | str) -> Callable[[weakref.ref], None]:
        """Weakref callback that drops the bucket for key once its owner dies."""
        registry_ref = weakref.ref(self)

        def _collected(_ref: weakref.ref) -> None:
            registry = registry_ref()
            if registry is not None and registry._sets.pop(key, None) is not None:
                registry._invalidate()
                logger.debug("Owner for key %r collected, bucket dropped", key)

        return _collected

    def __copy__(self) -> ObserverSet:
        return self.clone()

    def __len__(self) -> int:
        return sum(len(methods) for methods in self._sets.values())

    def __bool__(self) -> bool:
        return bool(self._sets)

    def __iter__(self) -> Iterator[Member]:
        return iter(self.members())

    def __contains__(self, member: object) -> bool:
        try:
            owner, handler = member  # type: ignore[misc]
        except (TypeError, ValueError):
            return False
        methods = self._bucket(owner)
        return methods is not None and _handler_key(handler) in methods.handlers

    def __repr__(self) -> str:
        return f"ObserverSet({self.owner_count} owners, {len(self)} members)"


def _release_owners(allocator: IdentityAllocator, sets: dict) -> None:
    for methods in sets.values():
        allocator.release(methods.owner)


def create(allocator: IdentityAllocator | None = None) -> ObserverSet:
    """Factory for an empty ObserverSet.

    Usage:
        observers = create()
        observers.add(view, View.title_changed)
        for owner, handler in observers.members():
            handler(owner)
    """
    return ObserverSet.create(allocator)


__all__ = ["NO_OWNER", "Members", "ObserverSet", "TargetMethodSet", "create"]
