"""observerset: per-key observer registries for reactive property observation."""

from importlib.metadata import version as _version

__version__ = _version("observerset")

from observerset._anchor import (
    NO_OWNER,
    IdentityAllocator,
    key_for,
    set_default_allocator,
)
from observerset.registry import Members, ObserverSet, TargetMethodSet, create
from observerset.notify import invoke, notify

__all__ = [
    "NO_OWNER",
    "IdentityAllocator",
    "key_for",
    "set_default_allocator",
    "Members",
    "ObserverSet",
    "TargetMethodSet",
    "create",
    "invoke",
    "notify",
]
