"""Decorator contract checks and ancestor-anchored decorator lookup.

A decorator rewraps values that are already provided. It declares every key it
rewraps among both its parameters and its results, and is indexed under those
keys in the scope it was declared in. When a key is resolved, the decorators
that apply are found by starting at the scope that owns the key's providers and
walking up to the root, so a decorator only affects keys provided at or below
its own scope.
"""

from collections import Counter, deque
from typing import Optional

from digraft.domain import Key
from digraft.errors import DecoratorContractError
from digraft.node import Node

__all__ = ["validate_decorator", "find_owner", "decorator_chain"]


def validate_decorator(decorator: Node) -> None:
    """Check that ``decorator`` only rewraps values it also receives.

    Raises:
        DecoratorContractError: If the decorator produces nothing, consumes or produces
            a key more than once, or produces a key it does not consume.
    """
    inputs = decorator.parameters.keys
    outputs = decorator.results.keys
    location = decorator.location

    for key, count in Counter(inputs).items():
        if count > 1:
            raise DecoratorContractError(f"cannot consume {key} multiple times in decorator", location)
    for key, count in Counter(outputs).items():
        if count > 1:
            raise DecoratorContractError(f"cannot provide {key} multiple times in decorator", location)
    if not outputs:
        raise DecoratorContractError("decorator must produce at least one value", location)

    missing = [key for key in outputs if key not in set(inputs)]
    if missing:
        raise DecoratorContractError(
            "the result types must be present among the input parameters: "
            + ", ".join(str(key) for key in missing),
            location,
        )


def find_owner(scope, key: Key):
    """Find the scope holding providers for ``key``.

    Searches ``scope`` itself and then its descendants breadth-first.

    Returns:
        The owning scope, or ``None`` if no scope at or below ``scope`` provides ``key``.
    """
    queue = deque([scope])
    while queue:
        candidate = queue.popleft()
        if candidate.own_providers(key):
            return candidate
        queue.extend(candidate.children)
    return None


def decorator_chain(scope, key: Key, pending: Optional[tuple] = None) -> list[Node]:
    """Collect the decorators that apply to ``key``, innermost first.

    Starting at the owner of ``key`` (searched from ``scope``), each scope up to the
    root contributes its decorators for ``key`` in registration order.

    Args:
        scope: The scope the lookup starts from, normally the root.
        key: The key being resolved.
        pending: An optional ``(scope, decorator)`` pair treated as registered.
    """
    owner = find_owner(scope, key)
    chain: list[Node] = []
    level = owner
    while level is not None:
        chain.extend(level.own_decorators(key))
        if pending and pending[0] is level and key in pending[1].decorates:
            chain.append(pending[1])
        level = level.parent
    return chain
