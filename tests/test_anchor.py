"""Tests for the identity allocator."""

import gc

import observerset._anchor as _anchor_mod
from observerset import NO_OWNER, IdentityAllocator, create, key_for, set_default_allocator


class Target:
    pass


class TestKeyFor:
    def test_stable(self):
        alloc = IdentityAllocator()
        t = Target()
        assert alloc.key_for(t) == alloc.key_for(t)

    def test_distinct_references(self):
        alloc = IdentityAllocator()
        a, b = Target(), Target()
        assert alloc.key_for(a) != alloc.key_for(b)

    def test_ownerless_reserved_key(self):
        alloc = IdentityAllocator()
        assert alloc.key_for(None) == _anchor_mod.NO_OWNER_KEY
        assert alloc.key_for(NO_OWNER) == _anchor_mod.NO_OWNER_KEY
        assert alloc.key_for(Target()) != _anchor_mod.NO_OWNER_KEY

    def test_unhashable_and_non_weakrefable(self):
        alloc = IdentityAllocator()
        d = {"a": 1}
        assert alloc.key_for(d) == alloc.key_for(d)
        assert alloc.key_for(d) != alloc.key_for({"a": 1})

    def test_module_level_key_for(self):
        t = Target()
        assert key_for(t) == key_for(t)


class TestLifetime:
    def test_evicts_collected_reference(self):
        alloc = IdentityAllocator()
        t = Target()
        alloc.key_for(t)
        assert len(alloc) == 1
        del t
        gc.collect()
        assert len(alloc) == 0

    def test_keys_never_reused(self):
        alloc = IdentityAllocator()
        seen = set()
        for _ in range(50):
            t = Target()
            key = alloc.key_for(t)
            assert key not in seen
            seen.add(key)
            del t

    def test_lookup_does_not_allocate(self):
        alloc = IdentityAllocator()
        t = Target()
        assert alloc.lookup(t) is None
        assert len(alloc) == 0
        key = alloc.key_for(t)
        assert alloc.lookup(t) == key
        assert alloc.lookup(None) == _anchor_mod.NO_OWNER_KEY

    def test_release_forgets_pinned_ref(self):
        alloc = IdentityAllocator()
        owner = ["pinned"]
        first = alloc.acquire(owner)
        assert alloc.lookup(owner) == first
        alloc.release(owner)
        assert alloc.lookup(owner) is None
        assert len(alloc) == 0

    def test_holds_are_counted(self):
        alloc = IdentityAllocator()
        owner = {"a": 1}
        key = alloc.acquire(owner)
        assert alloc.acquire(owner) == key
        alloc.release(owner)
        assert alloc.lookup(owner) == key
        alloc.release(owner)
        assert alloc.lookup(owner) is None

    def test_release_ignores_weakly_watched_refs(self):
        alloc = IdentityAllocator()
        t = Target()
        key = alloc.acquire(t)
        alloc.release(t)
        assert alloc.lookup(t) == key
        alloc.release(None)


class TestDefaultAllocator:
    def test_set_default_allocator(self):
        old = _anchor_mod.default_allocator
        alloc = IdentityAllocator()
        try:
            set_default_allocator(alloc)
            r = create()
            assert r.allocator is alloc
        finally:
            set_default_allocator(old)
        assert create().allocator is old

    def test_existing_registry_keeps_allocator(self):
        old = _anchor_mod.default_allocator
        r = create()
        try:
            set_default_allocator(IdentityAllocator())
            assert r.allocator is old
        finally:
            set_default_allocator(old)
