"""Creation and description of installs."""

import copy
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from bundle_engine.cluster.client import ClusterClient
from bundle_engine.core.errors import ResourceAlreadyExists
from bundle_engine.core.repository import ResourceRepository
from bundle_engine.domain.admission import admit, verify_node_count
from bundle_engine.domain.flavor import FlavorManager
from bundle_engine.domain.models import Application, Install, ParameterSpec
from bundle_engine.domain.parameters import ParameterDesc, ParameterManager

logger = logging.getLogger(__name__)


@dataclass
class InstallDescription:
    name: str
    application: str
    version: str
    parameters: Dict[str, ParameterDesc]


class InstallManager:
    def __init__(self, repository: ResourceRepository, cluster: ClusterClient, flavors: FlavorManager):
        self.repository = repository
        self.cluster = cluster
        self.flavors = flavors

    def install(
        self,
        app_name: str,
        namespace: str,
        version: str,
        name: str = "",
        suffix: str = "",
        flavor: str = "default",
        docker_registry: str = "",
        force: bool = False,
        parameters: Optional[List[ParameterSpec]] = None,
    ) -> Install:
        """
        Create the install for an application, or update an existing one.

        An existing install keeps its own parameter overrides; the
        `parameters` argument only seeds a new install.
        """
        flavor_record = self.flavors.get(flavor)
        admit(
            lambda: verify_node_count(self.cluster.list_nodes(), flavor_record),
            force,
            f"installation with insufficient nodes for flavor {flavor}",
        )

        install_name = Install.compute_name(app_name, name, suffix)

        for _ in range(2):
            existing = self.repository.find(Install, install_name, namespace)
            if existing is None:
                install = Install(
                    name=install_name,
                    application=app_name,
                    version=version,
                    suffix=suffix,
                    flavor=flavor,
                    docker_registry=docker_registry,
                    parameters=copy.deepcopy(list(parameters or [])),
                    namespace=namespace,
                )
                try:
                    created = self.repository.create(install)
                    logger.info(f"[install] created install '{install_name}' in '{namespace}'")
                    return created
                except ResourceAlreadyExists:
                    logger.info(f"[install] install '{install_name}' created concurrently, reloading")
                    continue

            logger.info(f"[install] found install '{install_name}', preserving existing parameters")
            updated = copy.deepcopy(existing)
            updated.application = app_name
            updated.version = version
            updated.suffix = suffix
            updated.flavor = flavor
            updated.docker_registry = docker_registry
            return self.repository.patch(updated, existing)

        return self.repository.get(Install, install_name, namespace)

    def get(self, name: str, namespace: str) -> Install:
        return self.repository.get(Install, name, namespace)

    def list(self, namespace: str) -> List[Install]:
        return self.repository.list(Install, namespace)

    def describe(self, namespace: str, names: Optional[List[str]] = None) -> List[InstallDescription]:
        """Parameter values, defaults and descriptions per install. Secrets are not resolved."""
        if names:
            installs = [self.get(name, namespace) for name in names]
        else:
            installs = self.list(namespace)

        descriptions = []
        for install in installs:
            app = self.repository.get(Application, install.application_name, namespace)
            pm = ParameterManager(None, install.name, app.parameters, install.parameters)
            descriptions.append(
                InstallDescription(
                    name=install.name,
                    application=install.application,
                    version=install.version,
                    parameters=pm.get_parameter_desc(),
                )
            )
        return descriptions
