"""Highly available flavor: spread across at least three nodes."""

from bundle_engine.domain.models import Flavor


HA_FLAVOR = Flavor(
    name="ha",
    stateful_quorum_replicas=3,
    stateful_replication_replicas=2,
    stateless_replicas=2,
    anti_affinity="required",
    minimum_nodes=3,
)
