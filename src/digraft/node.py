"""Graph nodes wrapping user constructors.

A :class:`Node` is created once when a constructor is registered and never
destroyed. Its constructor runs at most once; everything it produces is
committed to the scope that owns the node, which serves as the node's cache.
"""

import itertools
import logging
from typing import Any, Callable, Iterable, Optional

from digraft.domain import Key, Location, ParameterPlan, ResultPlan
from digraft.errors import ConstructionError
from digraft.inspection import inspect_parameters, inspect_results
from digraft.options import BindingOptions
from digraft.staging import StagingWriter

__all__ = ["Node"]

logger = logging.getLogger(__name__)

_node_ids = itertools.count(1)


class Node:
    """A constructor in the dependency graph.

    Attributes:
        ctor: The user constructor.
        parameters: The keys the constructor consumes, in call order.
        results: The keys the constructor produces.
        scope: The scope the node was registered in, which stores its output.
        decorates: For decorator nodes, the keys whose values the node rewraps.
        id: Process-unique identifier.
        location: Where the constructor was defined.
        called: Whether the constructor has already run and its output was committed.
    """

    def __init__(
        self,
        ctor: Callable,
        parameters: ParameterPlan,
        results: ResultPlan,
        scope,
        decorates: Iterable[Key] = (),
        location: Optional[Location] = None,
    ):
        self.ctor = ctor
        self.parameters = parameters
        self.results = results
        self.scope = scope
        self.decorates = frozenset(decorates)
        self.id = next(_node_ids)
        self.location = location or Location.of(ctor)
        self.called = False

    @staticmethod
    def from_constructor(
        ctor: Callable, options: BindingOptions, scope, decorator: bool = False
    ) -> "Node":
        """Inspect ``ctor`` and wrap it in a node owned by ``scope``."""
        parameters = inspect_parameters(ctor)
        results = inspect_results(ctor, options, decorator)
        decorates = results.keys if decorator else ()
        return Node(ctor, parameters, results, scope, decorates)

    @property
    def is_decorator(self) -> bool:
        return bool(self.decorates)

    def call(self, resolver) -> None:
        """Run the constructor if it has not run yet and commit its output.

        Args:
            resolver: Builds argument values from the scope tree.

        Raises:
            MissingDependencyError: If required keys have no provider in the tree.
            ConstructionError: If assembling its ``Params`` objects or the constructor
                raised, or its results could not be extracted or iterated. Nothing is
                committed in that case.
        """
        if self.called:
            return

        missing = resolver.missing(self.parameters)
        if missing:
            raise resolver.missing_error(missing, self.location)

        values = resolver.build_arguments(self)
        if self.called:
            return

        logger.debug("Calling constructor %s", self.location)
        try:
            args, kwargs = self.parameters.assemble(values)
            returned = self.ctor(*args, **kwargs)
        except Exception as e:
            logger.warning("Constructor %s failed: %s", self.location, e)
            raise ConstructionError(self.location, str(e)) from e

        writer = StagingWriter()
        try:
            self._stage(writer, returned)
        except Exception as e:
            logger.warning("Constructor %s returned unusable results: %s", self.location, e)
            raise ConstructionError(self.location, str(e)) from e

        if self.called:
            return
        if self.is_decorator:
            writer.commit_decorations(self.scope, self)
        else:
            writer.commit(self.scope)
        self.called = True

    def _stage(self, writer: StagingWriter, returned: Any) -> None:
        outputs = self.results.extract(returned)
        for produced, value in zip(self.results.produced, outputs):
            if self.is_decorator:
                writer.set_value(produced.key, value)
            elif produced.key.group:
                for item in value if produced.flatten else [value]:
                    writer.submit_group_value(produced.key, item)
            else:
                for key in produced.keys:
                    writer.set_value(key, value)

    def __repr__(self):
        kind = "decorator" if self.is_decorator else "node"
        return f"<{kind} {self.id} {self.location}>"
