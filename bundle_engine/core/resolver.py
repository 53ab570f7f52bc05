"""Layered topological sort over dependency entries."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from bundle_engine.core.errors import UnresolvableDependencyError

logger = logging.getLogger(__name__)


@dataclass
class DependencyEntry:
    """A graph node: an ID plus the IDs it depends on."""

    id: str
    deps: List[str] = field(default_factory=list)


def resolve_layers(entries: Iterable[DependencyEntry]) -> List[List[str]]:
    """
    Group entries into layers so every dependency sits in an earlier layer.

    Each pass takes every node whose remaining dependencies are all
    satisfied. Members of a layer keep the order they had in the input.
    A cycle or a dependency on an unknown ID fails the whole resolution
    and no layers are returned.
    """
    order: List[str] = []
    remaining = {}
    for entry in entries:
        if entry.id not in remaining:
            order.append(entry.id)
            remaining[entry.id] = set()
        remaining[entry.id].update(entry.deps)

    layers: List[List[str]] = []
    while remaining:
        layer = [node for node in order if node in remaining and not remaining[node]]
        if not layer:
            blocked = sorted(remaining)
            logger.error(f"[resolver] unresolved entries: {blocked}")
            raise UnresolvableDependencyError(
                f"cannot resolve dependencies; may be circular or have missing relationships: {blocked}"
            )

        for node in layer:
            del remaining[node]
        for deps in remaining.values():
            deps.difference_update(layer)

        layers.append(layer)

    logger.debug(f"[resolver] resolved {len(order)} entries into {len(layers)} layers")
    return layers
