"""Built-in flavors."""

from .default import DEFAULT_FLAVOR
from .ha import HA_FLAVOR


BUILTIN_FLAVORS = [DEFAULT_FLAVOR, HA_FLAVOR]

__all__ = ["DEFAULT_FLAVOR", "HA_FLAVOR", "BUILTIN_FLAVORS"]
