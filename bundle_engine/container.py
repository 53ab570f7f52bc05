# bundle_engine/container.py

"""Dependency injection container - wires all managers together."""

import logging
from dataclasses import dataclass
from typing import Optional, TextIO

from sqlalchemy.orm import sessionmaker

from bundle_engine.cluster.client import ClusterClient
from bundle_engine.core.events import EventEmitter, LoggingEventEmitter
from bundle_engine.core.repository import ResourceRepository, SecretStore
from bundle_engine.domain.config import ConfigManager
from bundle_engine.domain.flavor import FlavorManager
from bundle_engine.domain.install import InstallManager
from bundle_engine.domain.register import RegisterManager
from bundle_engine.domain.secrets import SecretResolver
from bundle_engine.executor.deploy import DeployManager
from bundle_engine.executor.rollout import RolloutStatusManager
from bundle_engine.executor.smoketest import DeploySmoketestManager, SmoketestManager
from bundle_engine.infrastructure.sql.repository import SqlResourceRepository, SqlSecretStore
from bundle_engine.orchestrator.manifest_orchestrator import ManifestManager
from bundle_engine.settings import EngineSettings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class Container:
    repository: ResourceRepository
    secret_store: SecretStore
    cluster: ClusterClient
    flavors: FlavorManager
    registrar: RegisterManager
    installer: InstallManager
    config: ConfigManager
    rollout: RolloutStatusManager
    deployer: DeployManager
    smoketester: SmoketestManager
    deploy_smoketester: DeploySmoketestManager
    manifests: ManifestManager


def build_container(
    cluster: ClusterClient,
    repository: Optional[ResourceRepository] = None,
    secret_store: Optional[SecretStore] = None,
    settings: Optional[EngineSettings] = None,
    events: Optional[EventEmitter] = None,
    out: Optional[TextIO] = None,
    session_factory: Optional[sessionmaker] = None,
) -> Container:
    """
    Wire every manager around one cluster client.

    Stores default to the SQL implementations (see
    `infrastructure/sql/config.py` for the database URL).
    """
    settings = settings or default_settings

    # ============================================
    # STORES
    # ============================================

    if repository is None:
        repository = SqlResourceRepository(session_factory)
    if secret_store is None:
        secret_store = SqlSecretStore(
            session_factory,
            name=settings.secret_name,
            namespace=settings.secret_namespace,
            max_retries=settings.secret_write_retries,
        )
    resolver = SecretResolver(secret_store)

    # ============================================
    # MANAGERS
    # ============================================

    flavors = FlavorManager(repository, settings)
    registrar = RegisterManager(repository)
    installer = InstallManager(repository, cluster, flavors)
    config = ConfigManager(repository, resolver)
    rollout = RolloutStatusManager(repository, cluster, resolver, settings)
    deployer = DeployManager(
        repository,
        cluster,
        resolver,
        flavors,
        rollout,
        settings=settings,
        events=events or LoggingEventEmitter(),
        out=out,
    )
    smoketester = SmoketestManager(deployer)
    deploy_smoketester = DeploySmoketestManager(deployer, smoketester)
    manifests = ManifestManager(
        repository,
        cluster,
        registrar,
        installer,
        deployer,
        settings=settings,
        smoketester=smoketester,
        deploy_smoketester=deploy_smoketester,
    )

    logger.debug(f"[container] wired managers around {type(cluster).__name__}")
    return Container(
        repository=repository,
        secret_store=secret_store,
        cluster=cluster,
        flavors=flavors,
        registrar=registrar,
        installer=installer,
        config=config,
        rollout=rollout,
        deployer=deployer,
        smoketester=smoketester,
        deploy_smoketester=deploy_smoketester,
        manifests=manifests,
    )
