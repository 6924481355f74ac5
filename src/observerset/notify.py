"""Dispatch — call every observer in an ObserverSet.

The registry itself never invokes anything. notify() is the small loop a
property-observation layer runs when a key changes.

By default each pass works on a clone, so handlers that add or remove
observers only affect later passes. With snapshot=False the pass iterates
members() directly; that is still a materialized sequence, but a handler
removed mid-pass by an earlier handler will still be called.
"""

from __future__ import annotations

import inspect
import logging

from observerset import _anchor
from observerset.registry import Handler, ObserverSet

logger = logging.getLogger("observerset.notify")


def invoke(owner: object, handler: Handler, *args: object) -> object:
    """Call handler on behalf of owner.

    The owner is passed as the first argument, like a method call on the
    target. Bound methods already carry their receiver and owner-less
    handlers have none, so both are called with args alone. Decorated
    handlers are judged by what they wrap (via __wrapped__).
    """
    if _anchor.is_ownerless(owner) or inspect.ismethod(inspect.unwrap(handler)):
        return handler(*args)
    return handler(owner, *args)


def notify(registry: ObserverSet, *args: object, snapshot: bool = True) -> int:
    """Invoke every (owner, handler) pair in registry. Returns the call count.

    A handler that raises stops the pass; the error is logged and re-raised.
    """
    source = registry.clone() if snapshot else registry
    count = 0
    for owner, handler in source.members():
        try:
            invoke(owner, handler, *args)
        except Exception:
            logger.exception("Observer %r failed for owner %r", handler, owner)
            raise
        count += 1
    return count
