"""Exceptions raised by the dependency graph.

Every failure is surfaced to the caller of the operation that triggered it as a
:class:`DependencyError` subclass carrying the keys, locations and paths needed
to diagnose it. Wrapping errors chain their cause with ``raise ... from``.
"""

from typing import Optional, Sequence

from digraft.domain import Key, Location

__all__ = [
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


class DependencyError(Exception):
    """Raised when a component's dependency cannot be resolved or is misannotated."""

    pass


class InvalidConstructorError(DependencyError):
    """A registration target is not callable or its binding options are malformed."""

    def __init__(self, message: str, location: Optional[Location] = None):
        super().__init__(f"{location}: {message}" if location else message)
        self.location = location


class DuplicateBindingError(DependencyError):
    """A key is already provided elsewhere in the scope tree."""

    def __init__(self, key: Key, path: str, locations: Sequence[Location]):
        super().__init__(
            f"cannot provide {key} from {path or 'result'}: already provided by "
            + "; ".join(str(location) for location in locations)
        )
        self.key = key
        self.locations = list(locations)


class DecoratorContractError(DependencyError):
    """A decorator's declared inputs and outputs break the decoration rules."""

    def __init__(self, message: str, location: Optional[Location] = None):
        super().__init__(f"{location}: {message}" if location else message)
        self.location = location


class CycleError(DependencyError):
    """The dependency graph contains a cycle.

    Attributes:
        path: The ordered chain of ``(key, location)`` pairs forming the cycle,
            beginning and ending with the same constructor.
    """

    def __init__(self, path: Sequence[tuple[Key, Location]]):
        chain = "\n\t".join(
            f"{location} depends on {key}" for key, location in path
        )
        super().__init__(f"cycle detected in dependency graph:\n\t{chain}")
        self.path = list(path)


class MissingDependencyError(DependencyError):
    """One or more required keys have no provider anywhere in the tree.

    Attributes:
        keys: The missing keys, in parameter order.
        location: The constructor or function that asked for them, if known.
        suggestions: For each missing key, the known keys a caller may have meant:
            the same type under another name or group, or a subclass of it that was
            provided without ``as_``.
    """

    def __init__(
        self,
        keys: Sequence[Key],
        location: Optional[Location] = None,
        known: Sequence[Key] = (),
    ):
        self.keys = list(keys)
        self.location = location
        self.suggestions = {key: _similar_keys(key, known) for key in self.keys}

        missing = ", ".join(self._describe(key) for key in self.keys)
        prefix = f"missing dependencies for {location}" if location else "missing dependencies"
        super().__init__(f"{prefix}: {missing}")

    def _describe(self, key: Key) -> str:
        similar = self.suggestions[key]
        if not similar:
            return str(key)
        return f"{key} (did you mean {', '.join(str(k) for k in similar)}?)"


def _similar_keys(missing: Key, known: Sequence[Key]) -> list[Key]:
    similar = []
    for key in known:
        if key == missing:
            continue
        if key.type == missing.type or _is_strict_subclass(key.type, missing.type):
            similar.append(key)
    return sorted(similar, key=str)


def _is_strict_subclass(candidate, base) -> bool:
    if not (isinstance(candidate, type) and isinstance(base, type)) or candidate is base:
        return False
    try:
        return issubclass(candidate, base)
    except TypeError:
        return False


class ConstructionError(DependencyError):
    """A user constructor raised, or returned values not matching its declaration."""

    def __init__(self, location: Location, reason: Optional[str] = None):
        super().__init__(
            f"constructor {location} failed" + (f": {reason}" if reason else "")
        )
        self.location = location


class InvocationError(DependencyError):
    """The arguments for an invoked function could not be assembled."""

    def __init__(self, location: Location, cause: BaseException):
        super().__init__(f"could not build arguments for {location}: {cause}")
        self.location = location


def root_cause(error: BaseException) -> BaseException:
    """Follow the ``__cause__`` chain of a wrapped error to its origin.

    Example:
        >>> try:
        ...     scope.invoke(use_db)
        ... except InvocationError as e:
        ...     assert isinstance(root_cause(e), ConnectionRefusedError)
    """
    while error.__cause__ is not None:
        error = error.__cause__
    return error
