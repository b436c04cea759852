"""Unit tests for Executor: nested queries, lazy loading, deferred loads and
multiple result sets."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from row_graph.core.engine import MappingEngine
from row_graph.core.exceptions import (
    DuplicateResultSetError,
    ExecutionError,
    MultipleRowsError,
    StatementNotFoundError,
)
from row_graph.core.executor import Executor
from row_graph.core.registry import MappingRegistry
from row_graph.core.settings import Settings
from row_graph.mapping.builder import result_map
from row_graph.mapping.lazy import Lazy
from row_graph.mapping.plan import Statement


@dataclass
class Customer:
    id: int
    name: str


@dataclass
class Order:
    id: int
    total: int
    customer: Customer | None = None


@dataclass
class Shipment:
    id: int
    carrier: Customer | str = "unassigned"


@dataclass
class Owner:
    org: int
    num: int
    name: str


@dataclass
class Account:
    id: int
    owner: Owner | None = None


@dataclass
class Author:
    id: int
    name: str
    posts: list[Post] = field(default_factory=list)


@dataclass
class Post:
    id: int
    title: str
    author: Author | None = None


@dataclass
class Line:
    id: int
    sku: str


@dataclass
class OrderWithLines:
    id: int
    total: int
    lines: list[Line] = field(default_factory=list)


CUSTOMER_MAP = result_map("customer", Customer).id("id").result("name").build()

STATEMENTS = [
    Statement(id="order.all", result_maps=("order",)),
    Statement(id="customer.by_id", result_maps=("customer",)),
]


def _order_map(lazy: bool | None = None):
    return (
        result_map("order", Order)
        .id("id")
        .result("total")
        .nested_query("customer", "customer.by_id", "customer_id", lazy=lazy)
        .build()
    )


def _customers(customer_id):
    return [(customer_id, f"customer-{customer_id}")]


class TestNestedQueries:
    def test_eager_nested_query(self, runner) -> None:
        registry = MappingRegistry([_order_map(), CUSTOMER_MAP], STATEMENTS)
        runner.register("order.all", ["id", "total", "customer_id"], [(1, 100, 7)])
        runner.register("customer.by_id", ["id", "name"], _customers)
        executor = Executor(registry, runner)

        orders = executor.query("order.all")

        assert orders == [Order(1, 100, Customer(7, "customer-7"))]
        assert runner.calls == [("order.all", None), ("customer.by_id", 7)]
        assert all(cursor.closed for cursor in runner.cursors)

    def test_equal_parameters_run_once(self, runner) -> None:
        registry = MappingRegistry([_order_map(), CUSTOMER_MAP], STATEMENTS)
        runner.register("order.all", ["id", "total", "customer_id"], [(1, 100, 7), (2, 50, 7), (3, 10, 8)])
        runner.register("customer.by_id", ["id", "name"], _customers)
        executor = Executor(registry, runner)

        orders = executor.query("order.all")

        assert runner.count("customer.by_id") == 2
        assert orders[0].customer is orders[1].customer
        assert orders[2].customer == Customer(8, "customer-8")

    def test_null_parameter_skips_query(self, runner) -> None:
        registry = MappingRegistry([_order_map(), CUSTOMER_MAP], STATEMENTS)
        runner.register("order.all", ["id", "total", "customer_id"], [(1, 100, None)])
        runner.register("customer.by_id", ["id", "name"], _customers)
        executor = Executor(registry, runner)

        orders = executor.query("order.all")

        assert orders[0].customer is None
        assert runner.count("customer.by_id") == 0

    def test_lazy_property_loads_once(self, runner) -> None:
        registry = MappingRegistry([_order_map(lazy=True), CUSTOMER_MAP], STATEMENTS)
        runner.register("order.all", ["id", "total", "customer_id"], [(1, 100, 7)])
        runner.register("customer.by_id", ["id", "name"], _customers)
        executor = Executor(registry, runner)

        order = executor.query("order.all")[0]

        assert isinstance(order.customer, Lazy)
        assert not order.customer.loaded
        assert runner.count("customer.by_id") == 0

        first = order.customer.get()
        second = order.customer.get()

        assert first is second
        assert first == Customer(7, "customer-7")
        assert runner.count("customer.by_id") == 1

    def test_lazy_loading_setting(self, runner) -> None:
        registry = MappingRegistry([_order_map(), CUSTOMER_MAP], STATEMENTS)
        runner.register("order.all", ["id", "total", "customer_id"], [(1, 100, 7)])
        runner.register("customer.by_id", ["id", "name"], _customers)
        executor = Executor(registry, runner, settings=Settings(lazy_loading_enabled=True))

        order = executor.query("order.all")[0]

        assert isinstance(order.customer, Lazy)
        assert runner.count("customer.by_id") == 0

    def test_binding_flag_overrides_lazy_setting(self, runner) -> None:
        registry = MappingRegistry([_order_map(lazy=False), CUSTOMER_MAP], STATEMENTS)
        runner.register("order.all", ["id", "total", "customer_id"], [(1, 100, 7)])
        runner.register("customer.by_id", ["id", "name"], _customers)
        executor = Executor(registry, runner, settings=Settings(lazy_loading_enabled=True))

        order = executor.query("order.all")[0]

        assert order.customer == Customer(7, "customer-7")

    def test_singular_property_with_many_rows(self, runner) -> None:
        registry = MappingRegistry([_order_map(), CUSTOMER_MAP], STATEMENTS)
        runner.register("order.all", ["id", "total", "customer_id"], [(1, 100, 7)])
        runner.register("customer.by_id", ["id", "name"], [(7, "a"), (8, "b")])
        executor = Executor(registry, runner)

        with pytest.raises(MultipleRowsError):
            executor.query("order.all")

    def test_engine_without_executor_rejects_nested_query(self, make_cursor) -> None:
        from row_graph.core.exceptions import ConfigurationError

        registry = MappingRegistry([_order_map(), CUSTOMER_MAP], STATEMENTS)
        engine = MappingEngine(registry)
        cursor = make_cursor(["id", "total", "customer_id"], [(1, 100, 7)])

        with pytest.raises(ConfigurationError):
            engine.materialize(cursor, registry.get_result_map("order"))
        assert cursor.closed


class TestCompositeParameters:
    def _setup(self, runner):
        account_map = (
            result_map("account", Account)
            .id("id")
            .nested_query("owner", "owner.by_key", composites={"org": "org_id", "num": "owner_num"})
            .build()
        )
        owner_map = result_map("owner", Owner).build()
        registry = MappingRegistry(
            [account_map, owner_map],
            [
                Statement(id="account.all", result_maps=("account",)),
                Statement(id="owner.by_key", result_maps=("owner",)),
            ],
        )
        runner.register(
            "owner.by_key",
            ["org", "num", "name"],
            lambda key: [(key["org"], key["num"], "owner")],
        )
        return Executor(registry, runner)

    def test_any_null_component_leaves_property_unset(self, runner) -> None:
        executor = self._setup(runner)
        runner.register("account.all", ["id", "org_id", "owner_num"], [(1, 5, None)])

        accounts = executor.query("account.all")

        assert accounts[0].owner is None
        assert runner.count("owner.by_key") == 0

    def test_skipped_query_leaves_property_unset_with_setters_on_nulls(self, runner) -> None:
        shipment_map = (
            result_map("shipment", Shipment)
            .id("id")
            .nested_query("carrier", "customer.by_id", "carrier_id")
            .build()
        )
        registry = MappingRegistry(
            [shipment_map, CUSTOMER_MAP],
            [*STATEMENTS, Statement(id="shipment.all", result_maps=("shipment",))],
        )
        runner.register("shipment.all", ["id", "carrier_id"], [(1, None)])
        executor = Executor(registry, runner, settings=Settings(call_setters_on_nulls=True))

        shipments = executor.query("shipment.all")

        assert shipments[0].carrier == "unassigned"
        assert runner.count("customer.by_id") == 0

    def test_complete_key_runs_query(self, runner) -> None:
        executor = self._setup(runner)
        runner.register("account.all", ["id", "org_id", "owner_num"], [(1, 5, 9)])

        accounts = executor.query("account.all")

        assert accounts[0].owner == Owner(5, 9, "owner")
        assert runner.calls[-1] == ("owner.by_key", {"org": 5, "num": 9})


class TestDeferredLoads:
    def test_cycle_through_nested_queries_is_resolved(self, runner) -> None:
        author_map = (
            result_map("author", Author)
            .id("id")
            .result("name")
            .nested_query("posts", "post.by_author", "id")
            .build()
        )
        post_map = (
            result_map("post", Post)
            .id("id")
            .result("title")
            .nested_query("author", "author.by_id", "author_id")
            .build()
        )
        registry = MappingRegistry(
            [author_map, post_map],
            [
                Statement(id="author.by_id", result_maps=("author",)),
                Statement(id="post.by_author", result_maps=("post",)),
            ],
        )
        runner.register("author.by_id", ["id", "name"], lambda author_id: [(author_id, "Ann")])
        runner.register(
            "post.by_author",
            ["id", "title", "author_id"],
            lambda author_id: [(10, "first", author_id), (11, "second", author_id)],
        )
        executor = Executor(registry, runner)

        author = executor.query("author.by_id", 1)[0]

        assert [p.title for p in author.posts] == ["first", "second"]
        assert all(post.author is author for post in author.posts)
        assert runner.count("author.by_id") == 1

    def test_unknown_statement(self, runner) -> None:
        executor = Executor(MappingRegistry(), runner)

        with pytest.raises(StatementNotFoundError):
            executor.query("missing")

    def test_runner_failure_is_wrapped(self, runner) -> None:
        registry = MappingRegistry([CUSTOMER_MAP], STATEMENTS)

        def _fail(parameters):
            raise OSError("connection reset")

        runner.register_cursor("customer.by_id", _fail)
        executor = Executor(registry, runner)

        with pytest.raises(ExecutionError) as exc_info:
            executor.query("customer.by_id", 1)
        assert isinstance(exc_info.value.__cause__, OSError)


class TestMultipleResultSets:
    LINE_MAP = result_map("line", Line).id("id").result("sku").build()

    def _order_map(self):
        return (
            result_map("order", OrderWithLines)
            .id("id")
            .result("total")
            .result_set("lines", "line", result_set="lines", column="id", foreign_column="order_id")
            .build()
        )

    def test_rows_of_secondary_result_set_join_parents(self, runner, make_multi_cursor) -> None:
        registry = MappingRegistry(
            [self._order_map(), self.LINE_MAP],
            [Statement(id="order.with_lines", result_maps=("order",), result_sets=("orders", "lines"))],
        )
        cursor = make_multi_cursor(
            (["id", "total"], [(1, 100), (2, 50)]),
            (["order_id", "id", "sku"], [(1, 10, "a"), (1, 11, "b"), (2, 20, "c")]),
        )
        runner.register_cursor("order.with_lines", lambda parameters: cursor)
        executor = Executor(registry, runner)

        orders = executor.query("order.with_lines")

        assert [o.id for o in orders] == [1, 2]
        assert [line.id for line in orders[0].lines] == [10, 11]
        assert [line.id for line in orders[1].lines] == [20]
        assert cursor.closed

    def test_several_result_maps_return_list_per_result_set(self, make_multi_cursor) -> None:
        registry = MappingRegistry([CUSTOMER_MAP, self.LINE_MAP])
        statement = Statement(id="both", result_maps=("customer", "line"))
        engine = MappingEngine(registry, statement=statement)
        cursor = make_multi_cursor(
            (["id", "name"], [(1, "Ann")]),
            (["id", "sku"], [(10, "a"), (11, "b")]),
        )
        from row_graph.adapters.dbapi import iter_result_sets

        results = engine.handle_result_sets(iter_result_sets(cursor))

        assert results == [[Customer(1, "Ann")], [Line(10, "a"), Line(11, "b")]]

    def test_two_bindings_claiming_one_result_set(self, make_multi_cursor) -> None:
        order_map = (
            result_map("order", OrderWithLines)
            .id("id")
            .result_set("lines", "line", result_set="lines", column="id", foreign_column="order_id")
            .result_set("total", "line", result_set="lines", column="id", foreign_column="order_id")
            .build()
        )
        registry = MappingRegistry([order_map, self.LINE_MAP])
        statement = Statement(id="dup", result_maps=("order",), result_sets=("orders", "lines"))
        engine = MappingEngine(registry, statement=statement)
        cursor = make_multi_cursor((["id"], [(1,)]), (["order_id", "id", "sku"], []))
        from row_graph.adapters.dbapi import iter_result_sets

        with pytest.raises(DuplicateResultSetError):
            engine.handle_result_sets(iter_result_sets(cursor))

    def test_callback_consumer_over_result_set_binding(self, make_cursor) -> None:
        order_map = self._order_map()
        registry = MappingRegistry([order_map, self.LINE_MAP])
        engine = MappingEngine(registry, statement=Statement(id="orders", result_maps=("order",)))
        cursor = make_cursor(["id", "total"], [(1, 100), (2, 50)])
        received: list[OrderWithLines] = []

        count = engine.materialize(cursor, order_map, None, received.append)

        assert not order_map.has_nested_result_maps
        assert count == 2
        assert [o.id for o in received] == [1, 2]
