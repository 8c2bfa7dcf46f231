"""Turning parameter plans into argument values.

The :class:`Resolver` answers every request from the root of the scope tree.
Plain keys resolve through their unique provider, grouped keys through every
contributing provider, and both are then passed through the decorators that
apply to them. Constructors run lazily, the first time one of their outputs is
needed.
"""

import logging
from typing import Any, Optional

from digraft.domain import Dependency, Key, Location, ParameterPlan
from digraft.errors import MissingDependencyError
from digraft.node import Node

__all__ = ["Resolver"]

logger = logging.getLogger(__name__)


class Resolver:
    """Resolve keys against the scope tree rooted at ``root``."""

    def __init__(self, root):
        self._root = root

    def missing(self, parameters: ParameterPlan) -> list[Key]:
        """List the required keys of ``parameters`` that nothing in the tree provides.

        Grouped keys are never missing: a group without contributors is empty.
        """
        return [
            dependency.key
            for dependency in parameters.dependencies
            if not dependency.optional
            and not dependency.key.group
            and not self._root.providers_for(dependency.key)
        ]

    def missing_error(
        self, keys: list[Key], location: Optional[Location] = None
    ) -> MissingDependencyError:
        """Report ``keys`` as missing, suggesting similar keys known to the tree."""
        return MissingDependencyError(keys, location, self._root.known_keys())

    def build_list(self, parameters: ParameterPlan) -> list[Any]:
        """Resolve one value per dependency, in plan order."""
        return [self.resolve(dependency) for dependency in parameters.dependencies]

    def build_arguments(self, node: Node) -> list[Any]:
        """Resolve the values ``node`` is called with.

        Keys the node rewraps as a decorator resolve to the value as seen from just
        inside the node, rather than to the fully decorated value.
        """
        return [
            self.resolve_inner(dependency.key, node)
            if dependency.key in node.decorates
            else self.resolve(dependency)
            for dependency in node.parameters.dependencies
        ]

    def resolve(self, dependency: Dependency) -> Any:
        """Resolve a dependency to its fully decorated value.

        Raises:
            MissingDependencyError: If a required key has no provider.
            ConstructionError: If a constructor on the way fails.
        """
        chain = self._root.decorators_for(dependency.key)
        if chain:
            return self._decorated(dependency.key, chain[-1])
        return self._undecorated(dependency.key, dependency)

    def resolve_inner(self, key: Key, decorator: Node) -> Any:
        """Resolve ``key`` with only the decorators inner to ``decorator`` applied."""
        chain = self._root.decorators_for(key)
        inner = chain[: chain.index(decorator)] if decorator in chain else []
        if inner:
            return self._decorated(key, inner[-1])
        return self._undecorated(key)

    def _decorated(self, key: Key, decorator: Node) -> Any:
        decorator.call(self)
        return decorator.scope.decorated_value(decorator, key)

    def _undecorated(self, key: Key, dependency: Optional[Dependency] = None) -> Any:
        if key.group:
            return self._group(key)

        providers = self._root.providers_for(key)
        if not providers:
            if dependency is not None and dependency.optional:
                return dependency.default
            raise self.missing_error([key])

        provider = providers[0]
        provider.call(self)
        return provider.scope.value(key)

    def _group(self, key: Key) -> list[Any]:
        for provider in self._root.providers_for(key):
            provider.call(self)

        values = [value for scope in self._root.walk() for value in scope.group_values(key)]
        self._root.rng.shuffle(values)
        logger.debug("Resolved %d value(s) for %s", len(values), key)
        return values
