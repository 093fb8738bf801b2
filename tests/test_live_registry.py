"""Tests for the runtime registry capability and snapshot loading."""

import json

import pytest
import yaml

from codeatlas.indexer.exceptions import RegistrySnapshotError
from codeatlas.indexer.live_registry import NullRegistry, SnapshotRegistry, open_registry


class TestNullRegistry:
    def test_nothing_available(self):
        registry = NullRegistry()
        assert not registry.available
        assert registry.subclasses_of("ApplicationRecord") == []
        assert registry.all_routes() == []
        assert registry.middleware_entries() == []
        assert registry.schema_types() == []


class TestSnapshotRegistry:
    """Snapshot parsing and class lineage."""

    def test_subclasses_exclude_base(self, snapshot_registry):
        names = [c.name for c in snapshot_registry.subclasses_of("ApplicationRecord")]
        assert names == ["User", "Order", "Legacy::Invoice"]

    def test_transitive_lineage(self):
        registry = SnapshotRegistry.from_dict({
            "classes": [
                {"name": "Admin", "superclass": "User"},
                {"name": "User", "superclass": "ApplicationRecord"},
            ]
        })
        assert [c.name for c in registry.subclasses_of("ApplicationRecord")] == ["Admin", "User"]

    def test_explicit_ancestors_win(self):
        registry = SnapshotRegistry.from_dict({
            "classes": [{"name": "Audit", "superclass": "Base", "ancestors": ["Base", "ActiveRecord::Base"]}]
        })
        assert [c.name for c in registry.subclasses_of("ActiveRecord::Base")] == ["Audit"]

    def test_route_verb_normalized(self):
        registry = SnapshotRegistry.from_dict({
            "routes": [{"verb": "get", "path": "/health"}, {"path": "/any"}]
        })
        routes = registry.all_routes()
        assert [r.identifier for r in routes] == ["GET /health", "ANY /any"]

    def test_middleware_positions(self, snapshot_registry):
        entries = snapshot_registry.middleware_entries()
        assert [(m.name, m.position) for m in entries] == [
            ("Rack::Attack", 0),
            ("ActionDispatch::Static", 1),
        ]
        assert entries[1].args == ("/public",)

    def test_live_attributes_kept(self, snapshot_registry):
        user = next(c for c in snapshot_registry.subclasses_of("ApplicationRecord") if c.name == "User")
        assert user.attributes["table_name"] == "users"
        assert user.file == "app/models/user.rb"

    @pytest.mark.parametrize("data", [
        [1, 2],
        {"classes": [{"superclass": "X"}]},
        {"routes": [{"verb": "GET"}]},
        {"classes": [1]},
    ])
    def test_malformed_snapshot(self, data):
        with pytest.raises(RegistrySnapshotError):
            SnapshotRegistry.from_dict(data)


class TestLoading:
    """File loading through open_registry."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "registry.yml"
        path.write_text(yaml.safe_dump({"routes": [{"verb": "POST", "path": "/login"}]}))
        registry = open_registry(path)
        assert registry.available
        assert registry.all_routes()[0].identifier == "POST /login"

    def test_load_json(self, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text(json.dumps({"middleware": [{"name": "Rack::Cors"}]}))
        assert open_registry(str(path)).middleware_entries()[0].name == "Rack::Cors"

    def test_empty_file_is_empty_registry(self, tmp_path):
        path = tmp_path / "registry.yml"
        path.write_text("")
        registry = open_registry(path)
        assert registry.available
        assert registry.all_routes() == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(RegistrySnapshotError):
            open_registry(tmp_path / "missing.json")

    @pytest.mark.parametrize("snapshot", [None, ""])
    def test_no_snapshot_means_null_registry(self, snapshot):
        assert isinstance(open_registry(snapshot), NullRegistry)
