"""Test cluster admission checks."""

from decimal import Decimal

import pytest

from bundle_engine.cluster.models import Node
from bundle_engine.core.errors import AdmissionError, ConfigurationError
from bundle_engine.domain.admission import (
    admit,
    parse_quantity,
    verify_node_count,
    verify_resources,
)
from bundle_engine.domain.flavors import HA_FLAVOR
from bundle_engine.domain.models import Registry


class TestParseQuantity:
    """Test parse_quantity."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("4", Decimal(4)),
            ("500m", Decimal("0.5")),
            ("2k", Decimal(2000)),
            ("1Ki", Decimal(1024)),
            ("16Gi", Decimal(16) * 2 ** 30),
        ],
    )
    def test_quantities(self, value, expected):
        """Test plain, milli, decimal and binary quantities."""
        assert parse_quantity(value) == expected

    def test_invalid(self):
        """Test garbage is a configuration error."""
        with pytest.raises(ConfigurationError):
            parse_quantity("lots")


class TestVerify:
    """Test node and resource checks."""

    def test_node_count(self):
        """Test the ha flavor needs three nodes."""
        with pytest.raises(AdmissionError) as exc_info:
            verify_node_count([Node("a"), Node("b")], HA_FLAVOR)

        assert "minimum 3" in str(exc_info.value)
        verify_node_count([Node("a"), Node("b"), Node("c")], HA_FLAVOR)

    def test_resources(self):
        """Test every node must meet the cpu and memory minimums."""
        nodes = [
            Node("big", allocatable={"cpu": "8", "memory": "32Gi"}),
            Node("small", allocatable={"cpu": "2000m", "memory": "4Gi"}),
        ]

        verify_resources(nodes, cpu="2", memory="4Gi")
        with pytest.raises(AdmissionError) as exc_info:
            verify_resources(nodes, cpu="4")
        assert "small" in str(exc_info.value)
        with pytest.raises(AdmissionError):
            verify_resources(nodes, memory="8Gi")

    def test_admit_force(self, caplog):
        """Test force turns a failed check into a warning."""
        def failing():
            raise AdmissionError("too small")

        with pytest.raises(AdmissionError):
            admit(failing, False, "install")

        admit(failing, True, "install")
        assert "too small" in caplog.text


class TestRegistry:
    """Test registry addressing."""

    def test_cluster_url(self):
        """Test special characters in the registry name become dashes."""
        assert Registry(name="team.a+b").cluster_url() == "localhost:6000/registry-team-a-b"
