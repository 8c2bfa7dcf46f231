"""Introspection of constructor signatures into parameter and result plans.

Constructors declare what they consume through their parameter annotations and
what they produce through their return annotation. This module turns those
declarations into flat :class:`~digraft.domain.ParameterPlan` and
:class:`~digraft.domain.ResultPlan` objects; :class:`~digraft.domain.Params`
and :class:`~digraft.domain.Results` aggregates are flattened here so the rest
of the framework only ever sees ordered lists of keys.

Example:
    >>> def make_service(
    ...     db: Annotated[DB, "ro"],
    ...     routes: Annotated[list[Route], Group("routes")],
    ...     cache: Cache = None,
    ... ) -> Service:
    ...     ...
    >>> [str(d.key) for d in inspect_parameters(make_service).dependencies]
    ['DB[name="ro"]', 'Route[group="routes"]', 'Cache']
"""

import dataclasses
import functools
import inspect
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Optional, get_args, get_origin, get_type_hints

from digraft.domain import (
    OPTIONAL,
    Dependency,
    Group,
    Key,
    Location,
    Name,
    ParameterPlan,
    Params,
    Produced,
    ResultPlan,
    Results,
)
from digraft.errors import InvalidConstructorError
from digraft.options import BindingOptions

__all__ = ["inspect_parameters", "inspect_results"]


@dataclass(frozen=True)
class _Slot:
    """How to pass one or more resolved values back as a single argument."""

    name: str
    positional: bool
    params_type: Optional[type] = None
    fields: tuple[str, ...] = ()

    @property
    def width(self) -> int:
        return len(self.fields) if self.params_type else 1


def inspect_parameters(target: Callable) -> ParameterPlan:
    """Build the parameter plan of a callable.

    Args:
        target: A function, class or other callable.

    Returns:
        The :class:`ParameterPlan` listing one dependency per parameter, or per field
        of any :class:`Params` parameter.

    Raises:
        InvalidConstructorError: If the target is not callable, takes variadic
            arguments, or has unannotated or malformed parameters.
    """
    location = _callable_location(target)
    sig = _signature(target, location)
    hints = _type_hints(target, location)

    dependencies: list[Dependency] = []
    slots: list[_Slot] = []
    for parameter in sig.parameters.values():
        if parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
            raise InvalidConstructorError(
                f"variadic parameter {parameter.name!r} cannot be injected", location
            )
        annotation = hints.get(parameter.name)
        if annotation is None:
            raise InvalidConstructorError(
                f"Dependency {parameter.name!r} is not annotated", location
            )

        positional = parameter.kind == parameter.POSITIONAL_ONLY
        if _is_params_type(annotation):
            fields = _params_dependencies(annotation, parameter.name, location)
            dependencies.extend(fields)
            slots.append(
                _Slot(parameter.name, positional, annotation, tuple(f.path[-1] for f in fields))
            )
        else:
            dependencies.append(
                _make_dependency(annotation, (parameter.name,), parameter.default, location)
            )
            slots.append(_Slot(parameter.name, positional))

    return ParameterPlan(tuple(dependencies), functools.partial(_assemble, tuple(slots)))


def inspect_results(
    target: Callable, options: Optional[BindingOptions] = None, decorator: bool = False
) -> ResultPlan:
    """Build the result plan of a constructor.

    Classes produce an instance of themselves. Functions produce whatever their return
    annotation declares: a single value, a ``tuple[...]`` of positional values, or a
    :class:`Results` object whose fields are each provided separately.

    Args:
        target: The constructor to inspect.
        options: Name, group and aliases applied to every produced value.
        decorator: Inspect a decorator, whose grouped results replace a whole group and
            are therefore declared as ``list[T]``.

    Raises:
        InvalidConstructorError: If the constructor declares no usable results or its
            results conflict with the options.
    """
    options = options or BindingOptions()
    location = _callable_location(target)

    if inspect.isclass(target):
        annotation = target
    else:
        hints = _type_hints(target, location)
        if "return" not in hints:
            raise InvalidConstructorError("constructor must declare a return type", location)
        annotation = hints["return"]

    if annotation is None or annotation is type(None):
        raise InvalidConstructorError("must provide at least one non-None type", location)

    if _is_results_type(annotation):
        if options.name or options.group or options.as_:
            raise InvalidConstructorError(
                "name, group and as_ cannot be used with Results objects", location
            )
        return _results_object_plan(annotation, decorator, location)

    if get_origin(annotation) is tuple:
        members = get_args(annotation)
        if not members or Ellipsis in members:
            raise InvalidConstructorError(
                f"cannot provide variable length tuple {annotation!r}", location
            )
        if options.as_:
            raise InvalidConstructorError("as_ requires a single result", location)
        produced = tuple(
            _make_produced(member, f"[{i}]", options, decorator, location)
            for i, member in enumerate(members)
        )
        return ResultPlan(produced, functools.partial(_extract_tuple, len(produced)))

    produced = _make_produced(annotation, "", options, decorator, location)
    return ResultPlan((produced,), _extract_single)


def _callable_location(target: Any) -> Location:
    if not callable(target):
        raise InvalidConstructorError(
            f"must provide a callable, got {target!r} (type {type(target).__name__})"
        )
    return Location.of(target)


def _signature(target: Callable, location: Location) -> inspect.Signature:
    try:
        return inspect.signature(target)
    except (TypeError, ValueError) as e:
        raise InvalidConstructorError(f"cannot inspect signature: {e}", location) from e


def _type_hints(target: Callable, location: Location) -> dict[str, Any]:
    if inspect.isclass(target):
        if target.__init__ is object.__init__:
            return {}
        annotated = target.__init__
    elif isinstance(target, functools.partial):
        annotated = target.func
    elif inspect.isfunction(target) or inspect.ismethod(target):
        annotated = target
    else:
        annotated = type(target).__call__
    try:
        return get_type_hints(annotated, include_extras=True)
    except (NameError, TypeError) as e:
        raise InvalidConstructorError(f"cannot resolve annotations: {e}", location) from e


def _split_annotated(annotation: Any) -> tuple[Any, tuple[Any, ...]]:
    if get_origin(annotation) is Annotated:
        base_type, *metadata = get_args(annotation)
        return base_type, tuple(metadata)
    return annotation, ()


def _list_member(declared: Any, what: str, location: Location) -> Any:
    if get_origin(declared) is not list or len(get_args(declared)) != 1:
        raise InvalidConstructorError(f"{what} must be declared as list[T], got {declared!r}", location)
    return get_args(declared)[0]


def _make_dependency(annotation, path, default, location) -> Dependency:
    base_type, metadata = _split_annotated(annotation)
    optional = default is not inspect.Parameter.empty
    name, group = "", ""
    for item in metadata:
        if isinstance(item, str):
            name = item
        elif isinstance(item, Name):
            name = item.value
        elif isinstance(item, Group):
            group = item.value
        elif item is OPTIONAL:
            optional = True

    if name and group:
        raise InvalidConstructorError(
            f"Dependency {'.'.join(path)!r} cannot be both named and grouped", location
        )
    if group:
        base_type = _list_member(base_type, f"group dependency {'.'.join(path)!r}", location)

    if default is inspect.Parameter.empty:
        default = None
    return Dependency(Key(base_type, name, group), path, optional, default)


def _is_params_type(annotation: Any) -> bool:
    return inspect.isclass(annotation) and issubclass(annotation, Params)


def _is_results_type(annotation: Any) -> bool:
    return inspect.isclass(annotation) and issubclass(annotation, Results)


def _dataclass_fields(cls: type, location: Location):
    if not dataclasses.is_dataclass(cls):
        raise InvalidConstructorError(f"{cls.__qualname__} must be a dataclass", location)
    try:
        hints = get_type_hints(cls, include_extras=True)
    except NameError as e:
        raise InvalidConstructorError(f"cannot resolve annotations: {e}", location) from e
    return [(f, hints[f.name]) for f in dataclasses.fields(cls) if f.init]


def _params_dependencies(cls: type, parameter_name: str, location: Location) -> list[Dependency]:
    dependencies = []
    for f, annotation in _dataclass_fields(cls, location):
        if f.default is not dataclasses.MISSING:
            default = f.default
        elif f.default_factory is not dataclasses.MISSING:
            # Left out of the call so the dataclass builds its own default.
            default = dataclasses.MISSING
        else:
            default = inspect.Parameter.empty
        dependencies.append(_make_dependency(annotation, (parameter_name, f.name), default, location))
    return dependencies


def _assemble(slots: tuple[_Slot, ...], values: list[Any]) -> tuple[list[Any], dict[str, Any]]:
    args: list[Any] = []
    kwargs: dict[str, Any] = {}
    remaining = iter(values)
    for slot in slots:
        if slot.params_type:
            field_values = {
                field_name: value
                for field_name, value in zip(slot.fields, remaining)
                if value is not dataclasses.MISSING
            }
            value = slot.params_type(**field_values)
        else:
            value = next(remaining)
        if slot.positional:
            args.append(value)
        else:
            kwargs[slot.name] = value
    return args, kwargs


def _make_produced(
    annotation: Any, path: str, options: BindingOptions, decorator: bool, location: Location
) -> Produced:
    base_type, metadata = _split_annotated(annotation)
    name, group, flatten = options.name, options.group, False
    for item in metadata:
        if isinstance(item, (str, Name)):
            declared = item if isinstance(item, str) else item.value
            if name and name != declared:
                raise InvalidConstructorError(
                    f"result {path or 'value'} is annotated with name {declared!r} "
                    f"but provided with name {name!r}",
                    location,
                )
            name = declared
        elif isinstance(item, Group):
            if group and group != item.value:
                raise InvalidConstructorError(
                    f"result {path or 'value'} is annotated with group {item.value!r} "
                    f"but provided with group {group!r}",
                    location,
                )
            group, flatten = item.value, item.flatten

    if name and group:
        raise InvalidConstructorError(
            f"result {path or 'value'} cannot be both named and grouped", location
        )
    if base_type is None or base_type is type(None):
        raise InvalidConstructorError(f"result {path or 'value'} cannot be None", location)

    if group and decorator:
        if flatten:
            raise InvalidConstructorError("decorated groups cannot be flattened", location)
        base_type = _list_member(base_type, "decorated group", location)
    elif flatten:
        base_type = _list_member(base_type, "flattened group result", location)

    aliases = tuple(Key(alias, name) for alias in options.as_)
    for alias in options.as_:
        if not _is_subtype(base_type, alias):
            raise InvalidConstructorError(
                f"invalid as_({alias.__qualname__}): "
                f"{getattr(base_type, '__qualname__', base_type)!r} is not a subclass of it",
                location,
            )
    return Produced(Key(base_type, name, group), path, aliases, flatten)


def _is_subtype(declared: Any, alias: type) -> bool:
    if not inspect.isclass(declared) or getattr(alias, "_is_protocol", False):
        # Protocols and typing constructs are structural; trust the declaration.
        return True
    return issubclass(declared, alias)


def _results_object_plan(cls: type, decorator: bool, location: Location) -> ResultPlan:
    produced = tuple(
        _make_produced(annotation, f.name, BindingOptions(), decorator, location)
        for f, annotation in _dataclass_fields(cls, location)
    )
    if not produced:
        raise InvalidConstructorError(f"{cls.__qualname__} declares no results", location)
    return ResultPlan(produced, functools.partial(_extract_fields, cls, produced))


def _extract_single(returned: Any) -> list[Any]:
    return [returned]


def _extract_tuple(width: int, returned: Any) -> list[Any]:
    if not isinstance(returned, tuple) or len(returned) != width:
        raise ValueError(f"expected a tuple of {width} values, got {returned!r}")
    return list(returned)


def _extract_fields(cls: type, produced: tuple[Produced, ...], returned: Any) -> list[Any]:
    if not isinstance(returned, cls):
        raise ValueError(f"expected an instance of {cls.__qualname__}, got {returned!r}")
    return [getattr(returned, p.path) for p in produced]
