"""Reading and editing an install's parameter overrides."""

import copy
import logging
from typing import Dict

from bundle_engine.core.errors import UnknownConfigError
from bundle_engine.core.repository import ResourceRepository
from bundle_engine.domain.models import Application, Install, ParameterSpec
from bundle_engine.domain.parameters import ParameterManager
from bundle_engine.domain.secrets import SecretResolver

logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Get, list, set and remove install parameters.

    Edits are read-modify-write against the install as last read; a
    concurrent edit in between makes the write fail with
    ResourceConflictError instead of being overwritten.
    """

    def __init__(self, repository: ResourceRepository, resolver: SecretResolver):
        self.repository = repository
        self.resolver = resolver

    def _merged(self, install: Install) -> Dict[str, str]:
        app = self.repository.get(Application, install.application_name, install.namespace)
        pm = ParameterManager(self.resolver, install.name, app.parameters, install.parameters)
        return pm.get_merged_map()

    def list(self, name: str, namespace: str) -> Dict[str, str]:
        return self._merged(self.repository.get(Install, name, namespace))

    def get(self, name: str, namespace: str, key: str) -> str:
        merged = self.list(name, namespace)
        if key not in merged:
            raise UnknownConfigError(f"unknown config '{key}' for install '{name}'")
        return merged[key]

    def set(self, name: str, namespace: str, key: str, value: str) -> Install:
        original = self.repository.get(Install, name, namespace)
        if key not in self._merged(original):
            raise UnknownConfigError(f"unknown config '{key}' for install '{name}'")

        updated = copy.deepcopy(original)
        for parameter in updated.parameters:
            if parameter.name == key:
                logger.debug(f"[config] overriding existing parameter '{key}' on '{name}'")
                parameter.value = value
                parameter.generate_secret = None
                break
        else:
            logger.debug(f"[config] adding parameter '{key}' to '{name}'")
            updated.parameters.append(ParameterSpec(name=key, value=value))

        return self.repository.patch(updated, original)

    def remove(self, name: str, namespace: str, key: str) -> Install:
        """
        Drop an override so the default applies again.

        A parameter with a generated secret is kept pinned to the stored
        secret value.
        """
        original = self.repository.get(Install, name, namespace)
        updated = copy.deepcopy(original)
        updated.parameters = []

        for parameter in original.parameters:
            if parameter.name != key:
                updated.parameters.append(copy.deepcopy(parameter))
                continue

            secret = self.resolver.lookup(name, key)
            if secret is not None:
                updated.parameters.append(
                    ParameterSpec(name=key, value=secret, generate_secret=copy.deepcopy(parameter.generate_secret))
                )
            else:
                logger.debug(f"[config] removing parameter '{key}' from '{name}'")

        return self.repository.patch(updated, original)
