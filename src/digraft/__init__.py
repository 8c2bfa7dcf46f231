"""Digraft dependency injection graph.

Digraft builds object graphs from constructors. Each constructor declares, through
standard type hints, the values it consumes and the values it produces. Callers
invoke an entry function against the graph and receive fully-constructed
arguments. Constructors run lazily and at most once, and a constructor that
fails leaves nothing behind.

Key Features:
    - Plain, named and grouped bindings, with interface aliasing
    - A tree of scopes with tree-wide provider visibility
    - Decorators that rewrap values provided at or below their scope
    - Cycle detection at registration time, or deferred to first invocation
    - All-or-nothing commits of constructor results

Basic Usage:
    >>> from digraft import make_container
    >>>
    >>> container = make_container()
    >>>
    >>> @container.provides()
    >>> def make_database(config: Config) -> Database:
    ...     return Database(config.url)
    >>>
    >>> def ping(db: Database):
    ...     db.ping()
    >>>
    >>> container.invoke(ping)

The framework consists of several core modules:
    - scope: The scope tree and its register/decorate/invoke operations
    - inspection: Turning signatures into parameter and result plans
    - node: Memoized constructor invocation
    - resolver: Argument assembly
    - cycles: Acyclicity verification
    - decoration: Decorator contract and lookup
    - domain: Core domain models (Key, Location, plans and annotation markers)
    - errors: Framework-specific exceptions
"""

import logging

from digraft.builders import make_container
from digraft.config import ContainerConfig
from digraft.domain import OPTIONAL, Group, Key, Location, Name, Params, Results
from digraft.errors import (
    ConstructionError,
    CycleError,
    DecoratorContractError,
    DependencyError,
    DuplicateBindingError,
    InvalidConstructorError,
    InvocationError,
    MissingDependencyError,
    root_cause,
)
from digraft.inspection import inspect_parameters, inspect_results
from digraft.options import BindingOptions
from digraft.scope import Scope

__all__ = [
    "make_container",
    "Scope",
    "ContainerConfig",
    "BindingOptions",
    "Key",
    "Location",
    "Name",
    "Group",
    "OPTIONAL",
    "Params",
    "Results",
    "inspect_parameters",
    "inspect_results",
    "DependencyError",
    "InvalidConstructorError",
    "DuplicateBindingError",
    "DecoratorContractError",
    "CycleError",
    "MissingDependencyError",
    "ConstructionError",
    "InvocationError",
    "root_cause",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
