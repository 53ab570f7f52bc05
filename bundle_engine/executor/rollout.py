"""Waiting for an install's declared workloads to roll out."""

import logging
from typing import List

from bundle_engine.cluster.client import ClusterClient
from bundle_engine.core.errors import (
    ExecutionTimeoutError,
    ResourceNotFound,
    RolloutError,
    RolloutTimeoutError,
)
from bundle_engine.core.repository import ResourceRepository
from bundle_engine.domain.models import Application, Install
from bundle_engine.domain.parameters import ParameterManager
from bundle_engine.domain.secrets import SecretResolver
from bundle_engine.resources.base import DeployableResource
from bundle_engine.resources.factory import new_resource
from bundle_engine.settings import EngineSettings, settings as default_settings

logger = logging.getLogger(__name__)


class RolloutStatusManager:
    def __init__(
        self,
        repository: ResourceRepository,
        cluster: ClusterClient,
        resolver: SecretResolver,
        settings: EngineSettings = None,
    ):
        self.repository = repository
        self.cluster = cluster
        self.resolver = resolver
        self.settings = settings or default_settings

    def resources(self, name: str, namespace: str) -> List[DeployableResource]:
        """
        Handles for every resource the install's application declares.

        Resources live in the namespace given by the install's `namespace`
        parameter and carry the install's suffix.
        """
        install = self.repository.get(Install, name, namespace)
        app = self.repository.get(Application, install.application_name, namespace)

        merged = ParameterManager(self.resolver, name, app.parameters, install.parameters).get_merged_map()
        resource_namespace = merged.get("namespace") or namespace
        suffix = f"-{install.suffix}" if install.suffix else ""

        return [
            new_resource(
                definition.type,
                self.cluster,
                definition.category,
                name,
                definition.name + suffix,
                resource_namespace,
                poll_interval=self.settings.rollout_poll_interval,
            )
            for definition in app.resources
        ]

    def wait(self, name: str, namespace: str, timeout: float) -> None:
        """Wait on each resource in declaration order; the first failure stops the rest."""
        for resource in self.resources(name, namespace):
            try:
                resource.wait(timeout)
            except ExecutionTimeoutError as e:
                raise RolloutTimeoutError(f"error waiting on resource category '{resource.category}': {e}") from e
            except (RolloutError, ResourceNotFound) as e:
                raise RolloutError(f"error waiting on resource category '{resource.category}': {e}") from e

            logger.info(
                f"[rollout] wait successful for {resource.name} in {resource.namespace} "
                f"(install={name}, category={resource.category})"
            )
