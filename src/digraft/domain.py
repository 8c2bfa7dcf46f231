"""Domain models used throughout the framework."""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class Key:
    """Identity of a bindable value in the graph.

    Attributes:
        type: Hashable type token the value is bound under. Usually a class, but
            any hashable typing construct (e.g. ``Callable[[str], str]``) works.
        name: Discriminator for named values. Mutually exclusive with ``group``.
        group: Name of the value group the value contributes to.
    """

    type: Any
    name: str = ""
    group: str = ""

    def __str__(self) -> str:
        type_name = type_name_of(self.type)
        if self.name:
            return f'{type_name}[name="{self.name}"]'
        if self.group:
            return f'{type_name}[group="{self.group}"]'
        return type_name


def type_name_of(declared_type: Any) -> str:
    if isinstance(declared_type, type):
        return declared_type.__qualname__
    return repr(declared_type).replace("typing.", "")


@dataclass(frozen=True)
class Location:
    """Where a constructor was defined, for diagnostics."""

    name: str
    module: str
    file: Optional[str] = None
    line: Optional[int] = None

    @staticmethod
    def of(target: Any) -> "Location":
        func = inspect.unwrap(target) if callable(target) else target
        name = getattr(func, "__qualname__", None) or repr(func)
        module = getattr(func, "__module__", None) or "<unknown>"
        try:
            file = inspect.getsourcefile(func)
            line = inspect.getsourcelines(func)[1]
        except (TypeError, OSError):
            file, line = None, None
        return Location(name, module, file, line)

    def __str__(self) -> str:
        if self.file is None:
            return f"{self.module}.{self.name}"
        return f"{self.module}.{self.name} ({self.file}:{self.line})"


@dataclass(frozen=True)
class Name:
    """Annotated metadata binding a value under a name.

    A bare string in ``Annotated`` metadata means the same thing:
    ``Annotated[DB, "ro"]`` is ``Annotated[DB, Name("ro")]``.
    """

    value: str


@dataclass(frozen=True)
class Group:
    """Annotated metadata binding a value into a value group.

    On parameters, the annotated type must be ``list[T]``. On results,
    ``flatten=True`` contributes each element of a returned iterable.
    """

    value: str
    flatten: bool = False


class _Optional:
    def __repr__(self):
        return "OPTIONAL"


OPTIONAL = _Optional()
"""Annotated metadata marking a parameter as optional.

Missing optional parameters receive their default, or ``None``.
"""


class Params:
    """Base class for dataclass parameter objects.

    Each field of a ``Params`` subclass is injected as if it were a parameter of
    the constructor, and the constructor receives an instance of the class.

    Example:
        >>> @dataclass
        ... class Handlers(Params):
        ...     db: Annotated[DB, "ro"]
        ...     routes: Annotated[list[Route], Group("routes")]
    """


class Results:
    """Base class for dataclass result objects.

    Each field of a ``Results`` subclass returned from a constructor is
    provided to the graph as if it were returned separately.
    """


@dataclass(frozen=True)
class Dependency:
    """A single value required by a constructor.

    Attributes:
        key: The key the value is resolved under.
        path: Parameter name, followed by the field name for values declared on a
            :class:`Params` object.
        optional: Whether a missing provider resolves to ``default`` instead of failing.
        default: The absence value used for missing optional dependencies.
    """

    key: Key
    path: tuple[str, ...]
    optional: bool = False
    default: Any = None


@dataclass(frozen=True)
class Produced:
    """A single value produced by a constructor.

    Attributes:
        key: The key the value is stored under.
        path: Position or field the value is read from, for diagnostics.
        aliases: Further keys the same value is also bound under.
        flatten: For grouped values, contribute each element of the value.
    """

    key: Key
    path: str
    aliases: tuple[Key, ...] = ()
    flatten: bool = False

    @property
    def keys(self) -> tuple[Key, ...]:
        return (self.key,) + self.aliases


@dataclass(frozen=True)
class ParameterPlan:
    """Ordered, flat list of the dependencies of a callable.

    ``assemble`` turns one resolved value per dependency back into the positional
    and keyword arguments the callable expects.
    """

    dependencies: tuple[Dependency, ...]
    assembler: Callable[[list[Any]], tuple[list[Any], dict[str, Any]]] = field(
        repr=False, compare=False
    )

    def assemble(self, values: list[Any]) -> tuple[list[Any], dict[str, Any]]:
        return self.assembler(values)

    @property
    def keys(self) -> list[Key]:
        return [dependency.key for dependency in self.dependencies]


@dataclass(frozen=True)
class ResultPlan:
    """Ordered, flat list of the values produced by a constructor."""

    produced: tuple[Produced, ...]
    extractor: Callable[[Any], list[Any]] = field(repr=False, compare=False)

    def extract(self, returned: Any) -> list[Any]:
        return self.extractor(returned)

    @property
    def keys(self) -> list[Key]:
        return [key for produced in self.produced for key in produced.keys]
