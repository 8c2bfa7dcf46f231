"""Registration and resolution across a tree of scopes.

A :class:`Scope` is one registry in a tree. Providers registered in any scope
are visible to requests made anywhere in the tree: every request is answered
from the root, which aggregates providers from itself and all of its
descendants. Child scopes exist to organise ownership, for example to let a
subsystem decorate only the values it provides, not to hide types.

Example:
    >>> root = Scope()
    >>> db_scope = root.scope("db")
    >>>
    >>> @db_scope.provides()
    ... def make_database(config: Config) -> Database:
    ...     return Database(config.url)
    >>>
    >>> @root.provides()
    ... def make_config() -> Config:
    ...     return Config("sqlite://")
    >>>
    >>> def ping(db: Database):
    ...     db.ping()
    >>>
    >>> root.invoke(ping)
"""

import logging
import weakref
from collections import defaultdict
from typing import Any, Callable, Iterable, Iterator, Optional

from digraft.config import ContainerConfig
from digraft.cycles import CycleDetector
from digraft.decoration import decorator_chain, find_owner, validate_decorator
from digraft.domain import Key, Location, type_name_of
from digraft.errors import (
    CycleError,
    DecoratorContractError,
    DependencyError,
    DuplicateBindingError,
    InvocationError,
)
from digraft.inspection import inspect_parameters
from digraft.node import Node
from digraft.options import BindingOptions
from digraft.resolver import Resolver

__all__ = ["Scope"]

logger = logging.getLogger(__name__)


class Scope:
    """A registry of constructors in a tree of registries.

    Each scope owns the providers, cached values, group contributions and
    decorators of its own registrations. Configuration and the source of
    randomness belong to the root and are shared with every descendant.

    Args:
        config: Configuration for a root scope. Children inherit their root's.
        name: Label for diagnostics only; it carries no identity.
        parent: The scope this one is a child of. Prefer :meth:`scope` to create
            children. Only a weak reference to the parent is kept.
    """

    def __init__(
        self,
        config: Optional[ContainerConfig] = None,
        name: str = "",
        *,
        parent: Optional["Scope"] = None,
    ):
        self.name = name
        if parent is None:
            self._parent_ref = None
            self.config = config or ContainerConfig()
            self.rng = self.config.make_rng()
        else:
            self._parent_ref = weakref.ref(parent)
            self.config = parent.config
            self.rng = parent.rng

        self._verified_acyclic = False
        self._providers: dict[Key, list[Node]] = {}
        self._nodes: list[Node] = []
        self._values: dict[Key, Any] = {}
        self._groups: dict[Key, list[Any]] = defaultdict(list)
        self._decorators: dict[Key, list[Node]] = {}
        self._decorator_nodes: list[Node] = []
        self._decorated: dict[tuple[int, Key], Any] = {}
        self._children: list[Scope] = []

    def __repr__(self):
        return f"<Scope {self.name!r}>"

    # Tree structure

    @property
    def parent(self) -> Optional["Scope"]:
        if self._parent_ref is None:
            return None
        parent = self._parent_ref()
        if parent is None:
            raise DependencyError(f"the parent of scope {self.name!r} has been discarded")
        return parent

    @property
    def root(self) -> "Scope":
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope

    @property
    def children(self) -> list["Scope"]:
        return list(self._children)

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes)

    @property
    def decorator_nodes(self) -> list[Node]:
        return list(self._decorator_nodes)

    def scope(self, name: str) -> "Scope":
        """Create a child scope.

        The child sees every type in the tree, and every type provided to the child is
        visible to the rest of the tree. The name is for diagnostics only and need not
        be unique.
        """
        child = Scope(name=name, parent=self)
        self._children.append(child)
        logger.debug("Created scope %r under %r", name, self)
        return child

    def walk(self) -> Iterator["Scope"]:
        """Yield this scope and all of its descendants, parents before children."""
        yield self
        for child in self._children:
            yield from child.walk()

    # Lookups

    def own_providers(self, key: Key) -> list[Node]:
        return self._providers.get(key, [])

    def own_decorators(self, key: Key) -> list[Node]:
        return self._decorators.get(key, [])

    def providers_for(self, key: Key) -> list[Node]:
        """Providers of ``key`` registered in this scope or any of its descendants."""
        providers = list(self.own_providers(key))
        for child in self._children:
            providers.extend(child.providers_for(key))
        return providers

    def owner_of(self, key: Key) -> Optional["Scope"]:
        """The scope providing ``key``, searched from this one breadth-first."""
        return find_owner(self, key)

    def decorators_for(self, key: Key, pending: Optional[tuple] = None) -> list[Node]:
        """Decorators applying to ``key``, from the owner of its providers to the root."""
        return decorator_chain(self, key, pending)

    def known_keys(self) -> list[Key]:
        """Every key with a provider anywhere at or below this scope, sorted by name."""
        keys = {key for scope in self.walk() for key in scope._providers}
        return sorted(keys, key=str)

    def known_types(self) -> list[Any]:
        """Every type with a provider anywhere at or below this scope, sorted by name.

        Missing-dependency reports draw their suggestions from the same listing.
        """
        types = {key.type for key in self.known_keys()}
        return sorted(types, key=type_name_of)

    # Storage, written to by committed constructor calls

    def value(self, key: Key) -> Any:
        return self._values[key]

    def set_value(self, key: Key, value: Any) -> None:
        self._values[key] = value

    def group_values(self, key: Key) -> list[Any]:
        return list(self._groups.get(key, ()))

    def submit_group_value(self, key: Key, value: Any) -> None:
        self._groups[key].append(value)

    def decorated_value(self, decorator: Node, key: Key) -> Any:
        return self._decorated[(decorator.id, key)]

    def set_decorated_value(self, decorator: Node, key: Key, value: Any) -> None:
        self._decorated[(decorator.id, key)] = value

    # Registration

    def provide(
        self,
        constructor: Callable,
        *,
        name: str = "",
        group: str = "",
        as_: Iterable[type] = (),
    ) -> None:
        """Teach the tree how to build the values ``constructor`` returns.

        The constructor is called at most once, the first time one of its values,
        or a value depending on one, is needed by an invocation.

        Args:
            constructor: A function or class. Its annotated parameters are its
                dependencies and its return annotation declares what it provides.
            name: Provide every value under this name.
            group: Contribute every value to this value group.
            as_: Further types each value is also provided as.

        Raises:
            InvalidConstructorError: If the constructor or options are malformed.
            DuplicateBindingError: If a provided key is already provided in the tree.
            CycleError: If the registration introduces a dependency cycle. The
                registration is rolled back.
        """
        options = BindingOptions(name, group, tuple(as_))
        options.validate()
        node = Node.from_constructor(constructor, options, self)
        keys = self._validate_results(node)

        root = self.root
        root._verified_acyclic = False
        for key in keys:
            self._providers.setdefault(key, []).append(node)
        self._nodes.append(node)

        if not root.config.defer_acyclic_verification:
            try:
                CycleDetector(root).verify()
            except CycleError:
                self._rollback(node, keys)
                raise
            root._verified_acyclic = True

        logger.debug("Provided %s from %s in %r", ", ".join(map(str, keys)), node.location, self)

    def provides(self, name: str = "", group: str = "", as_: Iterable[type] = ()) -> Callable:
        """Decorator to register a function or class as a provider.

        Example:
            @scope.provides(name="ro")
            def make_connection(config: Config) -> Connection:
                return Connection(config.replica_url)
        """

        def decorator(obj):
            self.provide(obj, name=name, group=group, as_=as_)
            return obj

        return decorator

    def decorate(self, decorator: Callable, *, name: str = "", group: str = "") -> None:
        """Rewrap values already provided at or below this scope.

        Each value the decorator returns replaces the value of the same key for every
        consumer, as long as the key's provider lives in this scope or one of its
        descendants. Decorators of the same key compose from the scope owning the
        provider outwards to the root.

        Args:
            decorator: A function receiving the values to rewrap and returning their
                replacements, plus any further dependencies it needs.
            name: Name of the values being rewrapped.
            group: Group being rewrapped. The decorator receives and returns the whole
                group as a ``list``. A group contributed from several scopes is owned by
                the first contributing scope found breadth-first from the root. A group
                decorator declared below that owner is accepted but never applied; a
                warning is logged when this is already the case at registration.

        Raises:
            InvalidConstructorError: If the decorator or options are malformed.
            DecoratorContractError: If the decorator returns a key it does not receive,
                receives or returns a key twice, or a returned key is not provided at or
                below this scope.
            CycleError: If the decoration introduces a dependency cycle.
        """
        options = BindingOptions(name, group)
        options.validate()
        node = Node.from_constructor(decorator, options, self, decorator=True)
        validate_decorator(node)

        keys = node.results.keys
        for key in keys:
            if self.owner_of(key) is None:
                raise DecoratorContractError(
                    f"no provider for {key} in scope {self.name!r} or its descendants; "
                    "decorators must be declared in the scope of the provider or its ancestors",
                    node.location,
                )

        root = self.root
        root._verified_acyclic = False
        if not root.config.defer_acyclic_verification:
            CycleDetector(root, pending=(self, node)).verify()
            root._verified_acyclic = True

        for key in keys:
            self._decorators.setdefault(key, []).append(node)
        self._decorator_nodes.append(node)
        logger.debug("Decorated %s with %s in %r", ", ".join(map(str, keys)), node.location, self)

        for key in keys:
            owner = root.owner_of(key)
            if not self._encloses(owner):
                logger.warning(
                    "Decorator %s in %r will not be applied to %s, which is owned by %r",
                    node.location,
                    self,
                    key,
                    owner,
                )

    def decorates(self, name: str = "", group: str = "") -> Callable:
        """Decorator form of :meth:`decorate`."""

        def decorator(obj):
            self.decorate(obj, name=name, group=group)
            return obj

        return decorator

    # Resolution

    def invoke(self, function: Callable) -> Any:
        """Call ``function`` with its parameters resolved from the tree.

        Resolution always starts at the root, whichever scope this is called on.
        Exceptions raised by ``function`` itself propagate unchanged.

        Returns:
            Whatever ``function`` returns.

        Raises:
            InvalidConstructorError: If ``function`` cannot be inspected.
            MissingDependencyError: If a required parameter has no provider.
            CycleError: If the graph has a cycle; checked here when verification was
                deferred.
            InvocationError: If building an argument failed, for instance because a
                constructor raised or a ``Params`` object rejected its fields. The
                original error is the ``__cause__``.
        """
        root = self.root
        parameters = inspect_parameters(function)
        location = Location.of(function)
        resolver = Resolver(root)

        missing = resolver.missing(parameters)
        if missing:
            raise resolver.missing_error(missing, location)

        if not root._verified_acyclic:
            CycleDetector(root).verify()
            root._verified_acyclic = True

        try:
            values = resolver.build_list(parameters)
            args, kwargs = parameters.assemble(values)
        except Exception as e:
            raise InvocationError(location, e) from e

        logger.debug("Invoking %s", location)
        return function(*args, **kwargs)

    def _encloses(self, scope: "Scope") -> bool:
        while scope is not None:
            if scope is self:
                return True
            scope = scope.parent
        return False

    def _validate_results(self, node: Node) -> list[Key]:
        """Collect the keys ``node`` provides, rejecting keys already provided."""
        root = self.root
        keys: list[Key] = []
        for produced in node.results.produced:
            for key in produced.keys:
                if key.group:
                    if key not in keys:
                        keys.append(key)
                    continue
                if key in keys:
                    raise DuplicateBindingError(key, produced.path, [node.location])
                existing = root.providers_for(key)
                if existing:
                    raise DuplicateBindingError(
                        key, produced.path, [provider.location for provider in existing]
                    )
                keys.append(key)
        return keys

    def _rollback(self, node: Node, keys: list[Key]) -> None:
        logger.warning("Rolling back registration of %s", node.location)
        for key in keys:
            self._providers[key].remove(node)
            if not self._providers[key]:
                del self._providers[key]
        self._nodes.remove(node)
