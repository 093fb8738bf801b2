"""Tests for the supporting extractors.

Covers state machines (AASM and state_machines), migrations, rake tasks,
factories, test mappings, GraphQL types, routes and the middleware stack.
"""

import textwrap

import pytest

from codeatlas.indexer.extractors.factory import FactoryExtractor
from codeatlas.indexer.extractors.graphql import RuntimeGraphQLExtractor, StaticGraphQLExtractor
from codeatlas.indexer.extractors.middleware import MiddlewareExtractor
from codeatlas.indexer.extractors.migration import MigrationExtractor
from codeatlas.indexer.extractors.rake_task import RakeTaskExtractor, parse_tasks
from codeatlas.indexer.extractors.route import RouteExtractor
from codeatlas.indexer.extractors.state_machine import StateMachineExtractor
from codeatlas.indexer.extractors import test_mapping
from codeatlas.indexer.unit import Dependency

STATE_MACHINES_SOURCE = textwrap.dedent("""\
    class Shipment < ApplicationRecord
      state_machine :status, initial: :pending do
        event :ship do
          transition pending: :shipped
        end
        after_transition to: :shipped, do: :notify
      end

      state_machine :payment_state, initial: :unpaid do
        event :pay do
          transition :unpaid => :paid
        end
      end
    end
    """)


class TestStateMachineExtractor:
    def test_aasm_machine(self, make_context):
        units = StateMachineExtractor(make_context()).extract_all()
        assert [u.identifier for u in units] == ["Order::aasm"]

        meta = units[0].metadata
        assert meta["gem_detected"] == "aasm"
        assert meta["states"] == ["pending", "paid", "shipped"]
        assert meta["initial_state"] == "pending"
        assert [e["name"] for e in meta["events"]] == ["pay", "ship"]
        assert {"from": "paid", "to": "shipped", "guard": "paid_in_full?"} in meta["transitions"]
        assert units[0].dependencies == [Dependency("model", "Order", "state_machine")]

    def test_several_state_machines_per_model(self, make_context):
        extractor = StateMachineExtractor(make_context())
        units = {u.identifier: u for u in extractor.build_units("app/models/shipment.rb", STATE_MACHINES_SOURCE)}

        assert list(units) == ["Shipment::state_machine_status", "Shipment::state_machine_payment_state"]
        status = units["Shipment::state_machine_status"].metadata
        assert status["attribute"] == "status"
        assert status["initial_state"] == "pending"
        assert status["transitions"] == [{"from": "pending", "to": "shipped", "guard": None}]
        assert status["callbacks"] == ["after_transition to: :shipped, do: :notify"]

        payment = units["Shipment::state_machine_payment_state"].metadata
        assert payment["initial_state"] == "unpaid"
        assert payment["transitions"] == [{"from": "unpaid", "to": "paid", "guard": None}]


class TestMigrationExtractor:
    @pytest.fixture
    def migration(self, make_context):
        units = MigrationExtractor(make_context()).extract_all()
        assert len(units) == 1
        return units[0]

    def test_identity_and_version(self, migration):
        assert migration.identifier == "CreateOrders"
        assert migration.metadata["migration_version"] == "20240101000000"
        assert migration.metadata["rails_version"] == "7.1"
        assert migration.metadata["direction"] == "change"
        assert migration.metadata["reversible"]

    def test_schema_changes(self, migration):
        meta = migration.metadata
        assert meta["tables_affected"] == ["orders"]
        assert meta["columns_added"] == [
            {"table": "orders", "column": "status", "type": "string"},
            {"table": "orders", "column": "total", "type": "decimal"},
        ]
        assert meta["references_added"] == [{"table": "orders", "reference": "user"}]
        assert meta["indexes_added"] == [{"table": "orders", "column": ":status"}]

    def test_table_dependencies(self, migration):
        assert migration.dependencies == [
            Dependency("model", "Order", "table_name"),
            Dependency("model", "User", "reference"),
        ]

    def test_handles_only_top_level_files(self, make_context):
        extractor = MigrationExtractor(make_context())
        assert extractor.handles("db/migrate/20240101000000_create_orders.rb")
        assert not extractor.handles("db/seeds.rb")


class TestRakeTaskExtractor:
    @pytest.fixture
    def tasks(self, make_context, index_by_identifier):
        return index_by_identifier(RakeTaskExtractor(make_context()).extract_all())

    def test_fully_qualified_names(self, tasks):
        assert list(tasks) == ["orders:archive", "orders:report"]
        assert tasks["orders:archive"].namespace == "orders"

    def test_description_and_prerequisites(self, tasks):
        meta = tasks["orders:archive"].metadata
        assert meta["description"] == "Archive old orders"
        assert meta["task_dependencies"] == ["environment"]
        assert meta["has_environment_dependency"]
        assert tasks["orders:archive"].dependencies == [Dependency("model", "Order")]

    def test_arguments_and_invocations(self, tasks):
        report = tasks["orders:report"]
        assert report.metadata["arguments"] == ["month"]
        assert report.dependencies == [Dependency("rake_task", "orders:archive", "task_invoke")]

    def test_tooling_namespace_skipped(self, make_context):
        source = "namespace :codeatlas do\n  task :extract do\n  end\nend\n"
        assert RakeTaskExtractor(make_context()).build_units("lib/tasks/codeatlas.rake", source) == []

    def test_string_names(self):
        tasks = parse_tasks('namespace "data" do\n  task "backfill" do\n  end\nend\n')
        assert [t["full_name"] for t in tasks] == ["data:backfill"]


class TestFactoryExtractor:
    @pytest.fixture
    def factories(self, make_context, index_by_identifier):
        return index_by_identifier(FactoryExtractor(make_context()).extract_all())

    def test_each_factory_is_a_unit(self, factories):
        assert list(factories) == ["admin_user", "user", "order"]

    def test_user_factory(self, factories):
        meta = factories["user"].metadata
        assert meta["model_class"] == "User"
        assert meta["traits"] == ["admin"]
        assert meta["sequences"] == ["email"]

    def test_nested_factory_inherits_parent(self, factories):
        admin = factories["admin_user"]
        assert admin.metadata["parent_factory"] == "user"
        assert admin.metadata["model_class"] == "User"
        assert admin.dependencies == [
            Dependency("model", "User", "factory_for"),
            Dependency("factory", "user", "factory_parent"),
        ]

    def test_association_dependency(self, factories):
        assert factories["order"].dependencies == [
            Dependency("model", "Order", "factory_for"),
            Dependency("factory", "user", "factory_association"),
        ]


class TestTestMappingExtractor:
    @pytest.fixture
    def mappings(self, make_context, index_by_identifier):
        return index_by_identifier(test_mapping.TestMappingExtractor(make_context()).extract_all())

    def test_identified_by_path(self, mappings):
        assert list(mappings) == [
            "spec/models/user_spec.rb",
            "test/controllers/orders_controller_test.rb",
        ]

    def test_rspec_subject(self, mappings):
        spec = mappings["spec/models/user_spec.rb"]
        assert spec.metadata["subject_class"] == "User"
        assert spec.metadata["test_count"] == 2
        assert spec.metadata["test_type"] == "model"
        assert spec.dependencies == [Dependency("model", "User", "test_coverage")]

    def test_minitest_subject(self, mappings):
        test = mappings["test/controllers/orders_controller_test.rb"]
        assert test.metadata["test_framework"] == "minitest"
        assert test.metadata["test_count"] == 2
        assert test.dependencies == [Dependency("controller", "OrdersController", "test_coverage")]

    def test_handles(self, make_context):
        extractor = test_mapping.TestMappingExtractor(make_context())
        assert extractor.handles("spec/models/user_spec.rb")
        assert extractor.handles("test/models/user_test.rb")
        assert not extractor.handles("spec/rails_helper.rb")


class TestGraphQLExtractor:
    @pytest.fixture
    def types(self, make_context, index_by_identifier):
        return index_by_identifier(StaticGraphQLExtractor(make_context()).extract_all())

    def test_qualified_identifiers(self, types):
        assert set(types) == {"Types::UserType", "Mutations::CreateOrder"}
        assert all(u.type == "graphql_type" for u in types.values())

    def test_object_type(self, types):
        user_type = types["Types::UserType"]
        assert user_type.metadata["graphql_kind"] == "object"
        assert [f["name"] for f in user_type.metadata["fields"]] == ["id", "email", "orders"]
        assert Dependency("graphql_type", "Types::OrderType", "type_reference") in user_type.dependencies
        assert Dependency("model", "User") in user_type.dependencies
        assert all(d.target != "Types::UserType" for d in user_type.dependencies)

    def test_mutation(self, types):
        mutation = types["Mutations::CreateOrder"]
        assert mutation.metadata["graphql_kind"] == "mutation"
        assert mutation.metadata["arguments"] == [{"name": "address", "type": "String", "required": True}]
        assert mutation.source_code.startswith("# GraphQL Mutation: Mutations::CreateOrder")
        assert Dependency("service", "CheckoutService") in mutation.dependencies

    def test_runtime_schema_types(self, make_context, snapshot_registry):
        units = RuntimeGraphQLExtractor(make_context(snapshot_registry)).extract_all()

        assert [u.identifier for u in units] == ["Types::UserType"]
        unit = units[0]
        assert unit.metadata["discovery"] == "runtime"
        assert unit.metadata["fields"] == [{"name": "id", "type": "ID!"}]
        assert unit.file_path == "app/graphql/types/user_type.rb"


class TestRouteExtractor:
    @pytest.fixture
    def routes(self, make_context, snapshot_registry, index_by_identifier):
        return index_by_identifier(RouteExtractor(make_context(snapshot_registry)).extract_all())

    def test_identifiers_drop_format(self, routes):
        assert list(routes) == ["GET /orders", "GET /orders/:id", "POST /orders"]

    def test_route_unit(self, routes):
        show = routes["GET /orders/:id"]
        assert show.file_path is None
        assert show.metadata["path_params"] == ["id"]
        assert show.metadata["route_name"] == "order"
        assert show.dependencies == [Dependency("controller", "OrdersController", "route_dispatch")]

    def test_no_registry_no_routes(self, make_context):
        assert RouteExtractor(make_context()).extract_all() == []


class TestMiddlewareExtractor:
    def test_single_stack_unit(self, make_context, snapshot_registry):
        units = MiddlewareExtractor(make_context(snapshot_registry)).extract_all()

        assert [u.identifier for u in units] == ["MiddlewareStack"]
        meta = units[0].metadata
        assert meta["middleware_list"] == ["Rack::Attack", "ActionDispatch::Static"]
        assert meta["middleware_details"][1] == {
            "name": "ActionDispatch::Static",
            "args": ["/public"],
            "position": 1,
        }

    def test_no_registry_no_unit(self, make_context):
        assert MiddlewareExtractor(make_context()).extract_all() == []
