"""Flavor lookup and seeding."""

import copy
import logging
from typing import List

from bundle_engine.core.errors import ResourceNotFound
from bundle_engine.core.repository import ResourceRepository
from bundle_engine.domain.flavors import BUILTIN_FLAVORS
from bundle_engine.domain.models import Flavor
from bundle_engine.settings import EngineSettings, settings as default_settings

logger = logging.getLogger(__name__)


class FlavorManager:
    def __init__(self, repository: ResourceRepository, settings: EngineSettings = None):
        self.repository = repository
        self.settings = settings or default_settings

    def get(self, name: str, namespace: str = None) -> Flavor:
        namespace = namespace or self.settings.flavor_namespace
        try:
            return self.repository.get(Flavor, name, namespace)
        except ResourceNotFound as e:
            raise ResourceNotFound(f"couldn't get flavor '{name}'") from e

    def create(self, flavor: Flavor) -> Flavor:
        """Store a flavor. An existing flavor of the same name is returned unchanged."""
        stored, created = self.repository.create_if_absent(flavor)
        if created:
            logger.info(f"[flavor] created flavor '{flavor.name}'")
        return stored

    def list(self, namespace: str = None) -> List[Flavor]:
        return self.repository.list(Flavor, namespace or self.settings.flavor_namespace)

    def seed_defaults(self) -> List[Flavor]:
        seeded = []
        for builtin in BUILTIN_FLAVORS:
            flavor = copy.deepcopy(builtin)
            flavor.namespace = self.settings.flavor_namespace
            seeded.append(self.create(flavor))
        return seeded
