"""High level entry points for constructing containers."""

import random
from typing import Optional

from digraft.config import ContainerConfig
from digraft.scope import Scope

__all__ = ["make_container"]


def make_container(
    defer_acyclic_verification: bool = False,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None,
    name: str = "root",
) -> Scope:
    """Create the root :class:`Scope` of a new scope tree.

    Args:
        defer_acyclic_verification: Verify the graph once, on first invocation,
            instead of after every registration.
        seed: Seed for the source of randomness used to order value groups.
            Ignored if ``rng`` is given.
        rng: Source of randomness used to order value groups.
        name: Label of the root scope, for diagnostics.

    Returns:
        An empty root scope.

    Example:
        >>> container = make_container(seed=42)
        >>> container.provide(make_database)
        >>> container.invoke(run_migrations)
    """
    if rng is None and seed is not None:
        rng = random.Random(seed)
    return Scope(ContainerConfig(defer_acyclic_verification, rng), name)
