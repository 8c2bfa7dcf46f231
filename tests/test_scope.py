import gc
from dataclasses import dataclass
from typing import Annotated, Any, Callable

import pytest

from digraft import (
    OPTIONAL,
    ConstructionError,
    ContainerConfig,
    DependencyError,
    DuplicateBindingError,
    Group,
    InvocationError,
    Key,
    MissingDependencyError,
    Params,
    Results,
    Scope,
    root_cause,
)

DB = Callable[[str], dict[str, Any]]


class Printer:
    def print(self, line):
        pass


class MockPrinter(Printer):
    def __init__(self):
        self.printed = []

    def print(self, user_details):
        for k, v in user_details.items():
            self.printed.append(f"{k}: {v}")


@dataclass(frozen=True)
class Service:
    db: DB
    printer: Printer

    def print_user_details(self, user_id):
        user_details = self.db(user_id)
        self.printer.print(user_details)


class Handler:
    def __init__(self, name: str):
        self.name = name


@pytest.fixture
def root() -> Scope:
    return Scope(ContainerConfig.seeded(1234), "root")


def test_invoke_resolving_by_declared_type(root):
    @root.provides()
    def make_test_db() -> DB:
        def db(_user_id: str) -> dict[str, Any]:
            return {"name": "Arthur Putey", "age": 42}

        return db

    root.provide(MockPrinter, as_=(Printer,))
    root.provide(Service)

    def run(service: Service, printer: MockPrinter) -> list[str]:
        service.print_user_details("id123")
        return printer.printed

    assert root.invoke(run) == ["name: Arthur Putey", "age: 42"]


def test_resolve_by_name(root):
    @root.provides(name="foo")
    def make_foo() -> str:
        return "foo"

    @root.provides(name="bar")
    def make_bar() -> str:
        return "bar"

    @root.provides(name="concat")
    def make_concat(foo: Annotated[str, "foo"], bar: Annotated[str, "bar"]) -> str:
        return foo + bar

    assert root.invoke(read_concat) == "foobar"


def read_concat(concat: Annotated[str, "concat"]) -> str:
    return concat


def test_constructor_runs_at_most_once(root):
    calls = []

    @root.provides()
    def make_printer() -> Printer:
        calls.append(1)
        return Printer()

    @root.provides(name="left")
    def make_left(printer: Printer) -> Handler:
        return Handler(str(id(printer)))

    @root.provides(name="right")
    def make_right(printer: Printer) -> Handler:
        return Handler(str(id(printer)))

    def use(left: Annotated[Handler, "left"], right: Annotated[Handler, "right"], printer: Printer):
        return left.name, right.name, printer

    first = root.invoke(use)
    second = root.invoke(use)

    assert calls == [1]
    assert first[0] == first[1] == str(id(first[2]))
    assert second[2] is first[2]


@pytest.mark.parametrize("order", [("root", "child"), ("child", "root")])
def test_duplicate_plain_binding_rejected_anywhere_in_tree(root, order):
    scopes = {"root": root, "child": root.scope("child").scope("grandchild")}

    def make_printer() -> Printer:
        return Printer()

    def make_other_printer() -> Printer:
        return Printer()

    scopes[order[0]].provide(make_printer)
    with pytest.raises(DuplicateBindingError, match="already provided by") as exc_info:
        scopes[order[1]].provide(make_other_printer)

    assert exc_info.value.key == Key(Printer)
    assert [location.name for location in exc_info.value.locations] == [make_printer.__qualname__]


def test_same_constructor_cannot_provide_key_twice(root):
    def make_pair() -> tuple[Printer, Printer]:
        return Printer(), Printer()

    with pytest.raises(DuplicateBindingError):
        root.provide(make_pair)


def test_alias_collides_with_existing_binding(root):
    root.provide(Printer)

    with pytest.raises(DuplicateBindingError):
        root.provide(MockPrinter, as_=(Printer,))


def test_child_provider_visible_from_root_and_siblings(root):
    left = root.scope("left")
    right = root.scope("right")

    @left.provides()
    def make_printer() -> Printer:
        return MockPrinter()

    @right.provides()
    def make_handler(printer: Printer) -> Handler:
        return Handler(type(printer).__name__)

    assert root.invoke(handler_name) == "MockPrinter"
    assert left.invoke(handler_name) == "MockPrinter"


def handler_name(handler: Handler) -> str:
    return handler.name


def test_values_are_stored_in_owning_scope(root):
    child = root.scope("child")
    child.provide(Printer)

    printer = root.invoke(identity_printer)

    assert child.value(Key(Printer)) is printer
    with pytest.raises(KeyError):
        root.value(Key(Printer))


def identity_printer(printer: Printer) -> Printer:
    return printer


def test_failed_constructor_commits_nothing(root):
    attempts = []

    @root.provides()
    def make_everything() -> tuple[Printer, Handler, Annotated[str, "label"]]:
        printer, handler = Printer(), Handler("h")
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("disk full")
        return printer, handler, "label"

    with pytest.raises(InvocationError) as exc_info:
        root.invoke(identity_printer)

    construction_error = exc_info.value.__cause__
    assert isinstance(construction_error, ConstructionError)
    assert construction_error.location.name == make_everything.__qualname__
    assert isinstance(root_cause(exc_info.value), RuntimeError)
    assert str(root_cause(exc_info.value)) == "disk full"

    for key in (Key(Printer), Key(Handler), Key(str, name="label")):
        with pytest.raises(KeyError):
            root.value(key)

    assert isinstance(root.invoke(identity_printer), Printer)
    assert len(attempts) == 2


def test_mismatched_results_commit_nothing(root):
    @root.provides()
    def make_pair() -> tuple[Printer, Handler]:
        return (Printer(),)

    with pytest.raises(InvocationError) as exc_info:
        root.invoke(identity_printer)

    assert isinstance(exc_info.value.__cause__, ConstructionError)
    with pytest.raises(KeyError):
        root.value(Key(Printer))


def test_group_is_permutation_in_random_order(root):
    names = ["a", "b", "c", "d", "e"]
    for i, name in enumerate(names):
        scope = root if i % 2 else root.scope(f"child-{name}")
        scope.provide(_handler_factory(name), group="handlers")

    def collect(handlers: Annotated[list[Handler], Group("handlers")]) -> list[Handler]:
        return handlers

    orders = []
    for _ in range(20):
        handlers = root.invoke(collect)
        assert sorted(h.name for h in handlers) == names
        orders.append(tuple(id(h) for h in handlers))

    assert len({frozenset(order) for order in orders}) == 1
    assert len(set(orders)) > 1


def _handler_factory(name: str):
    def make_handler() -> Handler:
        return Handler(name)

    return make_handler


def test_empty_group_resolves_to_empty_list(root):
    def collect(handlers: Annotated[list[Handler], Group("handlers")]) -> list[Handler]:
        return handlers

    assert root.invoke(collect) == []


def test_flattened_group_results(root):
    @root.provides()
    def make_handlers() -> Annotated[list[Handler], Group("handlers", flatten=True)]:
        return [Handler("x"), Handler("y")]

    @root.provides(group="handlers")
    def make_handler() -> Handler:
        return Handler("z")

    def collect(handlers: Annotated[list[Handler], Group("handlers")]) -> set[str]:
        return {h.name for h in handlers}

    assert root.invoke(collect) == {"x", "y", "z"}


def test_missing_optional_resolves_to_absence(root):
    @root.provides()
    def make_handler(
        printer: Annotated[Printer, OPTIONAL], retries: int = 3
    ) -> Handler:
        return Handler(f"{printer}-{retries}")

    assert root.invoke(handler_name) == "None-3"


def test_present_optional_is_resolved(root):
    root.provide(Printer)

    @root.provides()
    def make_handler(printer: Annotated[Printer, OPTIONAL]) -> Handler:
        return Handler(type(printer).__name__)

    assert root.invoke(handler_name) == "Printer"


def test_missing_dependencies_are_all_reported(root):
    def run(printer: Printer, handler: Handler, label: Annotated[str, "label"]):
        pass

    with pytest.raises(MissingDependencyError) as exc_info:
        root.invoke(run)

    assert exc_info.value.keys == [Key(Printer), Key(Handler), Key(str, name="label")]
    assert exc_info.value.location.name == run.__qualname__


def test_missing_transitive_dependencies_reported_by_node(root):
    @root.provides()
    def make_handler(printer: Printer, label: Annotated[str, "label"]) -> Handler:
        return Handler(label)

    with pytest.raises(InvocationError) as exc_info:
        root.invoke(handler_name)

    missing = exc_info.value.__cause__
    assert isinstance(missing, MissingDependencyError)
    assert missing.keys == [Key(Printer), Key(str, name="label")]
    assert missing.location.name == make_handler.__qualname__


def test_invoked_function_errors_propagate_unchanged(root):
    root.provide(Printer)

    def run(printer: Printer):
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        root.invoke(run)


@dataclass
class Output(Results):
    printer: Printer
    handler: Annotated[Handler, "main"]


@dataclass
class Input(Params):
    printer: Printer
    handler: Annotated[Handler, "main"]
    extra: Annotated[str, "extra"] = "none"


def test_params_and_results_objects(root):
    @root.provides()
    def make_output() -> Output:
        return Output(MockPrinter(), Handler("main"))

    def run(inputs: Input) -> tuple[str, str, str]:
        return type(inputs.printer).__name__, inputs.handler.name, inputs.extra

    assert root.invoke(run) == ("MockPrinter", "main", "none")


def test_known_types_cover_whole_tree(root):
    root.provide(Printer)
    root.scope("child").provide(_handler_factory("h"), group="handlers")

    assert root.known_types() == [Handler, Printer]
    assert root.known_keys() == [Key(Handler, group="handlers"), Key(Printer)]


def test_discarded_parent_raises():
    parent = Scope()
    child = parent.scope("orphan")
    del parent
    gc.collect()

    with pytest.raises(DependencyError, match="has been discarded"):
        child.invoke(identity_printer)


def test_owner_is_found_breadth_first_from_the_asking_scope(root):
    child = root.scope("child")
    grandchild = child.scope("grandchild")
    grandchild.provide(Printer)

    assert root.owner_of(Key(Printer)) is grandchild
    assert child.owner_of(Key(Printer)) is grandchild
    assert root.scope("other").owner_of(Key(Printer)) is None


def test_flattened_group_failing_midway_is_a_construction_error(root):
    @root.provides()
    def make_handlers() -> Annotated[list[Handler], Group("handlers", flatten=True)]:
        yield Handler("first")
        raise RuntimeError("source went away")

    def collect(handlers: Annotated[list[Handler], Group("handlers")]) -> list[Handler]:
        return handlers

    with pytest.raises(InvocationError) as exc_info:
        root.invoke(collect)

    construction_error = exc_info.value.__cause__
    assert isinstance(construction_error, ConstructionError)
    assert construction_error.location.name == make_handlers.__qualname__
    assert str(root_cause(exc_info.value)) == "source went away"
    assert root.group_values(Key(Handler, group="handlers")) == []


@dataclass
class Limits(Params):
    retries: Annotated[int, "retries"]

    def __post_init__(self):
        if self.retries < 0:
            raise ValueError("retries must not be negative")


def test_params_rejecting_fields_fail_invocation(root):
    @root.provides(name="retries")
    def make_retries() -> int:
        return -1

    def run(limits: Limits) -> int:
        return limits.retries

    with pytest.raises(InvocationError) as exc_info:
        root.invoke(run)

    assert isinstance(exc_info.value.__cause__, ValueError)
    assert exc_info.value.location.name == run.__qualname__


def test_params_rejecting_fields_fail_constructor(root):
    @root.provides(name="retries")
    def make_retries() -> int:
        return -1

    @root.provides()
    def make_handler(limits: Limits) -> Handler:
        return Handler(str(limits.retries))

    with pytest.raises(InvocationError) as exc_info:
        root.invoke(handler_name)

    construction_error = exc_info.value.__cause__
    assert isinstance(construction_error, ConstructionError)
    assert construction_error.location.name == make_handler.__qualname__
    assert str(root_cause(exc_info.value)) == "retries must not be negative"
    with pytest.raises(KeyError):
        root.value(Key(Handler))


def test_missing_dependency_suggests_similar_known_keys(root):
    root.provide(MockPrinter)

    @root.scope("child").provides(name="main")
    def make_main_printer() -> Printer:
        return Printer()

    def run(printer: Printer, handler: Handler):
        pass

    with pytest.raises(MissingDependencyError) as exc_info:
        root.invoke(run)

    error = exc_info.value
    assert error.suggestions == {
        Key(Printer): [Key(MockPrinter), Key(Printer, name="main")],
        Key(Handler): [],
    }
    assert 'Printer (did you mean MockPrinter, Printer[name="main"]?)' in str(error)
    assert str(error).endswith(", Handler")


def test_transitive_missing_dependency_suggests_similar_known_keys(root):
    root.provide(MockPrinter)

    @root.provides()
    def make_handler(printer: Printer) -> Handler:
        return Handler("h")

    with pytest.raises(InvocationError) as exc_info:
        root.invoke(handler_name)

    missing = exc_info.value.__cause__
    assert isinstance(missing, MissingDependencyError)
    assert missing.suggestions == {Key(Printer): [Key(MockPrinter)]}
