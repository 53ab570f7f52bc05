"""Test layered dependency resolution."""

import pytest

from bundle_engine.core.errors import UnresolvableDependencyError
from bundle_engine.core.resolver import DependencyEntry, resolve_layers


def _layer_of(layers):
    return {node: i for i, layer in enumerate(layers) for node in layer}


class TestResolveLayers:
    """Test resolve_layers."""

    # -------------------------
    # ACYCLIC GRAPHS
    # -------------------------

    def test_independent_entries_share_one_layer(self):
        """Test entries without dependencies land in the first layer."""
        layers = resolve_layers([DependencyEntry("a"), DependencyEntry("b")])

        assert layers == [["a", "b"]]

    def test_chain(self):
        """Test a chain produces one layer per link."""
        entries = [
            DependencyEntry("app", ["api"]),
            DependencyEntry("api", ["db"]),
            DependencyEntry("db"),
        ]

        assert resolve_layers(entries) == [["db"], ["api"], ["app"]]

    def test_dependencies_in_strictly_earlier_layers(self):
        """Test every dependency sits in an earlier layer and each ID appears once."""
        entries = [
            DependencyEntry("web", ["api", "cache"]),
            DependencyEntry("api", ["db", "queue"]),
            DependencyEntry("worker", ["queue", "db"]),
            DependencyEntry("cache"),
            DependencyEntry("db"),
            DependencyEntry("queue", ["db"]),
        ]

        layers = resolve_layers(entries)
        position = _layer_of(layers)

        flattened = [node for layer in layers for node in layer]
        assert sorted(flattened) == sorted(e.id for e in entries)
        for entry in entries:
            for dep in entry.deps:
                assert position[dep] < position[entry.id]

    def test_layer_keeps_input_order(self):
        """Test members of a layer keep the order they were given in."""
        layers = resolve_layers([DependencyEntry("z"), DependencyEntry("a"), DependencyEntry("m")])

        assert layers == [["z", "a", "m"]]

    def test_duplicate_ids_merge_dependencies(self):
        """Test an ID listed twice carries the union of its dependencies."""
        entries = [
            DependencyEntry("app", ["db"]),
            DependencyEntry("app", ["cache"]),
            DependencyEntry("db"),
            DependencyEntry("cache"),
        ]

        assert resolve_layers(entries) == [["db", "cache"], ["app"]]

    def test_empty_input(self):
        """Test no entries resolve to no layers."""
        assert resolve_layers([]) == []

    # -------------------------
    # FAILURES
    # -------------------------

    def test_cycle_fails(self):
        """Test a cycle is reported instead of producing layers."""
        entries = [
            DependencyEntry("a", ["b"]),
            DependencyEntry("b", ["c"]),
            DependencyEntry("c", ["a"]),
        ]

        with pytest.raises(UnresolvableDependencyError) as exc_info:
            resolve_layers(entries)

        assert "circular" in str(exc_info.value)

    def test_cycle_behind_resolvable_nodes_fails(self):
        """Test a partial resolution still fails as a whole."""
        entries = [
            DependencyEntry("db"),
            DependencyEntry("a", ["db", "b"]),
            DependencyEntry("b", ["a"]),
        ]

        with pytest.raises(UnresolvableDependencyError):
            resolve_layers(entries)

    def test_unknown_dependency_fails(self):
        """Test a dependency on an ID that is not in the graph fails."""
        with pytest.raises(UnresolvableDependencyError):
            resolve_layers([DependencyEntry("app", ["missing"])])
