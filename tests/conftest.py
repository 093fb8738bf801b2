"""Pytest configuration and fixtures.

``rails_app`` writes a small but complete Rails application into a temp
directory: models with associations and an AASM machine, a controller, a
service, jobs, a mailer, a migration, rake tasks, factories, specs and two
GraphQL classes. ``snapshot_registry`` adds the runtime facts (routes,
middleware, live classes, schema types) a booted app would export.
"""

import json
import textwrap
from pathlib import Path

import pytest

from codeatlas.indexer.core import SourceReader
from codeatlas.indexer.extractors import ExtractorContext
from codeatlas.indexer.live_registry import NullRegistry, SnapshotRegistry
from codeatlas.indexer.model_names import ModelNameSet
from codeatlas.indexer.unit import Dependency, ExtractedUnit

RAILS_FILES = {
    "app/models/application_record.rb": """\
        class ApplicationRecord < ActiveRecord::Base
          self.abstract_class = true
        end
        """,
    "app/models/user.rb": """\
        class User < ApplicationRecord
          has_many :orders, dependent: :destroy
          has_one :profile
          validates :email, presence: true, uniqueness: true
          before_save :normalize_email
          scope :active, -> { where(active: true) }
          enum role: { member: 0, admin: 1 }

          def full_name
            "#{first_name} #{last_name}"
          end

          private

          def normalize_email
            self.email = email.downcase
          end
        end
        """,
    "app/models/order.rb": """\
        class Order < ApplicationRecord
          include AASM
          belongs_to :user
          has_many :line_items

          aasm column: :status do
            state :pending, initial: true
            state :paid, :shipped

            event :pay do
              transitions from: :pending, to: :paid
            end

            event :ship do
              transitions from: :paid, to: :shipped, guard: :paid_in_full?
            end
          end

          def total
            line_items.sum(:price)
          end
        end
        """,
    "app/models/line_item.rb": """\
        class LineItem < ApplicationRecord
          belongs_to :order
        end
        """,
    "app/models/profile.rb": """\
        class Profile < ApplicationRecord
          belongs_to :user
        end
        """,
    "app/models/concerns/trackable.rb": """\
        module Trackable
          extend ActiveSupport::Concern
        end
        """,
    "app/controllers/application_controller.rb": """\
        class ApplicationController < ActionController::Base
        end
        """,
    "app/controllers/orders_controller.rb": """\
        class OrdersController < ApplicationController
          before_action :require_login
          before_action :set_order, only: [:show, :update]

          def index
            @orders = Order.where(user: current_user)
            render json: @orders
          end

          def show
            render json: @order
          end

          def create
            result = CheckoutService.call(current_user, order_params)
            OrderConfirmationJob.perform_later(result.order.id)
            redirect_to result.order
          end

          private

          def set_order
            @order = Order.find(params[:id])
          end

          def order_params
            params.require(:order).permit(:address, :notes)
          end
        end
        """,
    "app/services/checkout_service.rb": """\
        class CheckoutService
          def self.call(user, params)
            new(user, params).call
          end

          def initialize(user, params)
            @user = user
            @params = params
          end

          def call
            order = Order.create!(@params.merge(user: @user))
            OrderMailer.confirmation(order).deliver_later
            Result.new(order: order)
          end
        end
        """,
    "app/services/formatting.rb": """\
        module Formatting
          def self.money(value)
            format("%.2f", value)
          end
        end
        """,
    "app/jobs/order_confirmation_job.rb": """\
        class OrderConfirmationJob < ApplicationJob
          queue_as :mailers
          retry_on Net::OpenTimeout, wait: 5.seconds, attempts: 3

          def perform(order_id)
            order = Order.find(order_id)
            OrderMailer.confirmation(order).deliver_now
          end
        end
        """,
    "app/workers/cleanup_worker.rb": """\
        class CleanupWorker
          include Sidekiq::Worker
          sidekiq_options queue: :low, retry: 5

          def perform
            ReportJob.perform_async
          end
        end
        """,
    "app/mailers/application_mailer.rb": """\
        class ApplicationMailer < ActionMailer::Base
          default from: "noreply@example.com"
          layout "mailer"
        end
        """,
    "app/mailers/order_mailer.rb": """\
        class OrderMailer < ApplicationMailer
          default from: "orders@example.com"

          def confirmation(order)
            @order = order
            @url = order_url(order)
            mail(to: order.user.email, subject: "Order confirmed")
          end
        end
        """,
    "app/views/order_mailer/confirmation.html.erb": "<p>Thanks!</p>\n",
    "db/migrate/20240101000000_create_orders.rb": """\
        class CreateOrders < ActiveRecord::Migration[7.1]
          def change
            create_table :orders do |t|
              t.references :user, null: false, foreign_key: true
              t.string :status
              t.decimal :total
              t.timestamps
            end
            add_index :orders, :status
          end
        end
        """,
    "lib/tasks/orders.rake": """\
        namespace :orders do
          desc "Archive old orders"
          task archive: :environment do
            Order.where("created_at < ?", 1.year.ago).find_each(&:archive!)
          end

          task :report, [:month] => :environment do
            Rake::Task["orders:archive"].invoke
          end
        end
        """,
    "spec/factories/users.rb": """\
        FactoryBot.define do
          factory :user do
            sequence(:email) { |n| "user#{n}@example.com" }
            name { "Jane" }

            trait :admin do
              role { :admin }
            end

            factory :admin_user do
              role { :admin }
            end
          end

          factory :order do
            association :user
            status { "pending" }
          end
        end
        """,
    "spec/models/user_spec.rb": """\
        require "rails_helper"

        RSpec.describe User, type: :model do
          it "normalizes email" do
            expect(true).to eq(true)
          end

          it "has orders" do
          end
        end
        """,
    "spec/rails_helper.rb": """\
        require "spec_helper"
        """,
    "test/controllers/orders_controller_test.rb": """\
        class OrdersControllerTest < ActionDispatch::IntegrationTest
          test "lists orders" do
          end

          def test_show
          end
        end
        """,
    "app/graphql/types/user_type.rb": """\
        module Types
          class UserType < Types::BaseObject
            field :id, ID, null: false
            field :email, String, null: false
            field :orders, [Types::OrderType], null: true

            def orders
              User.find(object.id).orders
            end
          end
        end
        """,
    "app/graphql/mutations/create_order.rb": """\
        module Mutations
          class CreateOrder < Mutations::BaseMutation
            argument :address, String, required: true

            field :order, Types::OrderType, null: true

            def resolve(address:)
              order = CheckoutService.call(context[:current_user], address: address)
              { order: order }
            end
          end
        end
        """,
}

SNAPSHOT = {
    "classes": [
        {"name": "ApplicationRecord", "superclass": "ActiveRecord::Base", "abstract": True},
        {
            "name": "User",
            "superclass": "ApplicationRecord",
            "file": "app/models/user.rb",
            "line": 1,
            "attributes": {"table_name": "users", "columns": ["id", "email", "role"]},
        },
        {"name": "Order", "superclass": "ApplicationRecord", "file": "app/models/order.rb"},
        {"name": "Legacy::Invoice", "superclass": "ApplicationRecord", "file": "lib/legacy/invoice.rb"},
    ],
    "routes": [
        {"verb": "GET", "path": "/orders(.:format)", "controller": "orders", "action": "index", "name": "orders"},
        {"verb": "GET", "path": "/orders/:id(.:format)", "controller": "orders", "action": "show", "name": "order"},
        {"verb": "POST", "path": "/orders(.:format)", "controller": "orders", "action": "create"},
        {"verb": "GET", "path": "/sidekiq", "controller": None, "action": None},
    ],
    "middleware": [
        {"name": "Rack::Attack"},
        {"name": "ActionDispatch::Static", "args": ["/public"]},
    ],
    "schema_types": [
        {
            "name": "Types::UserType",
            "kind": "OBJECT",
            "file": "app/graphql/types/user_type.rb",
            "fields": [{"name": "id", "type": "ID!"}],
        },
        {"name": "__Schema", "kind": "OBJECT"},
    ],
}


def write_tree(root: Path, files: dict[str, str]) -> None:
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content), encoding="utf-8")


@pytest.fixture
def rails_app(tmp_path):
    """Root of a freshly written Rails application."""
    root = (tmp_path / "app_root").resolve()
    root.mkdir()
    write_tree(root, RAILS_FILES)
    return root


@pytest.fixture
def snapshot_path(rails_app):
    """Runtime registry snapshot written next to the application."""
    path = rails_app / "registry.json"
    path.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
    return path


@pytest.fixture
def snapshot_registry():
    return SnapshotRegistry.from_dict(SNAPSHOT, source="fixture")


@pytest.fixture
def make_context(rails_app):
    """Build an ExtractorContext over ``rails_app``."""

    def _make(registry=None, **kwargs):
        registry = registry or NullRegistry()
        return ExtractorContext(
            root_path=rails_app,
            reader=SourceReader(rails_app),
            model_names=ModelNameSet.discover(rails_app, registry),
            registry=registry,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_unit():
    """Build a unit whose dependencies are given as bare target names."""

    def _make(identifier, targets=(), unit_type="model", file_path=None, **kwargs):
        deps = [Dependency("model", target, "code_reference") for target in targets]
        return ExtractedUnit(
            type=unit_type,
            identifier=identifier,
            file_path=file_path,
            dependencies=deps,
            **kwargs,
        )

    return _make


def by_identifier(units):
    return {unit.identifier: unit for unit in units}


@pytest.fixture
def index_by_identifier():
    return by_identifier
