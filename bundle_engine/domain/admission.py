"""Install-time checks that the cluster can hold what is being installed."""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import List

from bundle_engine.cluster.models import Node
from bundle_engine.core.errors import AdmissionError, ConfigurationError
from bundle_engine.domain.models import Flavor

logger = logging.getLogger(__name__)


_QUANTITY = re.compile(r"^([+-]?[0-9.]+(?:[eE][+-]?[0-9]+)?)([A-Za-z]*)$")

_SUFFIXES = {
    "": Decimal(1),
    "m": Decimal("0.001"),
    "k": Decimal(10) ** 3,
    "M": Decimal(10) ** 6,
    "G": Decimal(10) ** 9,
    "T": Decimal(10) ** 12,
    "P": Decimal(10) ** 15,
    "Ki": Decimal(2) ** 10,
    "Mi": Decimal(2) ** 20,
    "Gi": Decimal(2) ** 30,
    "Ti": Decimal(2) ** 40,
    "Pi": Decimal(2) ** 50,
}

_GIB = Decimal(2) ** 30


def parse_quantity(value: str) -> Decimal:
    """Parse a cluster resource quantity such as "500m", "4", "16Gi"."""
    match = _QUANTITY.match(str(value).strip())
    if not match or match.group(2) not in _SUFFIXES:
        raise ConfigurationError(f"invalid quantity '{value}'")
    try:
        return Decimal(match.group(1)) * _SUFFIXES[match.group(2)]
    except InvalidOperation as e:
        raise ConfigurationError(f"invalid quantity '{value}'") from e


def verify_node_count(nodes: List[Node], flavor: Flavor) -> None:
    if len(nodes) < flavor.minimum_nodes:
        raise AdmissionError(
            f"cluster node count {len(nodes)} is lower than minimum "
            f"{flavor.minimum_nodes} required by flavor {flavor.name}"
        )


def verify_resources(nodes: List[Node], cpu: str = "", memory: str = "") -> None:
    """Every node must have at least the given allocatable cpu and memory."""
    min_cpu = parse_quantity(cpu) if cpu else None
    min_memory = parse_quantity(memory) if memory else None

    for node in nodes:
        if min_cpu is not None:
            available = parse_quantity(node.allocatable.get("cpu", "0"))
            if available < min_cpu:
                raise AdmissionError(
                    f"Insufficient CPU in cluster node {node.name}: "
                    f"available CPU {available} is less than required minimum {min_cpu}"
                )

        if min_memory is not None:
            available = parse_quantity(node.allocatable.get("memory", "0"))
            if available < min_memory:
                raise AdmissionError(
                    f"Insufficient Memory in cluster node {node.name}: "
                    f"available Memory {available / _GIB:.1f}Gi is less than required minimum {min_memory / _GIB:.1f}Gi"
                )


def admit(check, force: bool, what: str) -> None:
    """Run a check; with force a failure only warns."""
    try:
        check()
    except AdmissionError as e:
        if not force:
            raise
        logger.warning(f"[admission] forcing {what}: {e}")
