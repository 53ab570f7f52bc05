"""Single-node flavor: one replica of everything."""

from bundle_engine.domain.models import Flavor


DEFAULT_FLAVOR = Flavor(
    name="default",
    stateful_quorum_replicas=1,
    stateful_replication_replicas=1,
    stateless_replicas=1,
    anti_affinity="optional",
    minimum_nodes=1,
)
