"""Acyclicity verification over a whole scope tree.

Every provider and decorator node in every scope of the tree is traversed
depth-first, following each required key to the nodes that can produce it.
The traversal keeps a global visited set, so each node is expanded once, and
the current path, so a node reached again while still on the path is reported
as a cycle along with the chain of keys that led back to it.
"""

import logging
from typing import Iterable, Iterator, Optional

from digraft.domain import Key
from digraft.errors import CycleError
from digraft.node import Node

__all__ = ["CycleDetector"]

logger = logging.getLogger(__name__)


class CycleDetector:
    """Check that no node depends, directly or transitively, on its own output.

    Args:
        root: The root scope of the tree to verify.
        pending: An optional ``(scope, decorator)`` pair not yet registered in the
            tree. The check treats the decorator as if it had been registered in
            ``scope``, leaving the tree itself untouched.
    """

    def __init__(self, root, pending: Optional[tuple] = None):
        self._root = root
        self._pending = pending

    def verify(self) -> None:
        """Traverse every node in the tree.

        Raises:
            CycleError: If a cycle is found.
        """
        visited: set[int] = set()
        count = 0
        for node in self._all_nodes():
            self._visit(node, [], set(), visited)
            count += 1
        logger.debug("Verified %d node(s) in %r are acyclic", count, self._root)

    def _all_nodes(self) -> Iterator[Node]:
        for scope in self._root.walk():
            yield from scope.nodes
            yield from scope.decorator_nodes
        if self._pending:
            yield self._pending[1]

    def _visit(
        self,
        node: Node,
        path: list[tuple[Node, Key]],
        on_path: set[int],
        visited: set[int],
    ) -> None:
        if node.id in on_path:
            start = next(i for i, (step, _) in enumerate(path) if step is node)
            raise CycleError([(key, step.location) for step, key in path[start:]])
        if node.id in visited:
            return

        on_path.add(node.id)
        for key, dependency in self._edges(node):
            path.append((node, key))
            self._visit(dependency, path, on_path, visited)
            path.pop()
        on_path.discard(node.id)
        visited.add(node.id)

    def _edges(self, node: Node) -> Iterable[tuple[Key, Node]]:
        """Yield ``(key, node)`` for every node that ``node`` needs to run first.

        A key resolves through its providers and then its decorator chain. For a
        key the node itself rewraps, only the decorators inner to it count.
        """
        for dependency in node.parameters.dependencies:
            key = dependency.key
            for provider in self._root.providers_for(key):
                yield key, provider

            chain = self._root.decorators_for(key, self._pending)
            if key in node.decorates:
                chain = chain[: chain.index(node)] if node in chain else []
            for decorator in chain:
                yield key, decorator
