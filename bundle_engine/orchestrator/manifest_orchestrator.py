# bundle_engine/orchestrator/manifest_orchestrator.py
"""Manifest orchestrator - drives register, install and layered deploy for a set of bundles."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Set

from bundle_engine.bundles.source import BundleRef, MultiSource, Source, new_source
from bundle_engine.core.errors import (
    BundleEngineError,
    LayerExecutionError,
    ResourceNotFound,
)
from bundle_engine.core.repository import ResourceRepository
from bundle_engine.core.resolver import DependencyEntry, resolve_layers
from bundle_engine.domain.admission import admit, verify_resources
from bundle_engine.domain.install import InstallManager
from bundle_engine.domain.models import (
    LATEST,
    Application,
    BundleSpec,
    Install,
    Manifest,
    ParameterSpec,
    Registry,
    SourceDefinition,
    suffixed_name,
)
from bundle_engine.domain.parameters import ParameterManager
from bundle_engine.domain.register import RegisterManager
from bundle_engine.executor.deploy import ACTION_APPLY_OUTPUTS, ACTION_DIFF, DeployManager
from bundle_engine.executor.smoketest import DeploySmoketestManager, SmoketestManager
from bundle_engine.settings import EngineSettings, settings as default_settings

logger = logging.getLogger(__name__)


class ManifestManager:
    """
    Orchestrates a manifest's bundles end to end.

    Flow:
    1. install: admission checks, register every bundle in dependency
       order, then one Install per (application, suffix)
    2. deploy: build the suffix-aware install graph, resolve it into
       layers and deploy layer by layer
    """

    def __init__(
        self,
        repository: ResourceRepository,
        cluster,
        registrar: RegisterManager,
        installer: InstallManager,
        deployer: DeployManager,
        settings: EngineSettings = None,
        smoketester: SmoketestManager = None,
        deploy_smoketester: DeploySmoketestManager = None,
    ):
        self.repository = repository
        self.cluster = cluster
        self.registrar = registrar
        self.installer = installer
        self.deployer = deployer
        self.settings = settings or default_settings
        self.smoketester = smoketester or SmoketestManager(deployer)
        self.deploy_smoketester = deploy_smoketester or DeploySmoketestManager(deployer, self.smoketester)

    def _manifest(self, name: str, namespace: str) -> Manifest:
        try:
            return self.repository.get(Manifest, name, namespace)
        except ResourceNotFound as e:
            raise ResourceNotFound(f"couldn't get manifest '{name}': {e}") from e

    # -------------------------
    # INSTALL
    # -------------------------

    def install(self, name: str, namespace: str, force: bool = False) -> List[Install]:
        manifest = self._manifest(name, namespace)

        admit(
            lambda: verify_resources(self.cluster.list_nodes(), manifest.cpu, manifest.memory),
            force,
            f"installation with insufficient resources for flavor {manifest.flavor or 'default'}",
        )

        refs: List[BundleRef] = []
        parameters: Dict[str, List[ParameterSpec]] = {}
        additional: Dict[str, List[ParameterSpec]] = {}
        for bundle in manifest.bundles:
            parameters[bundle.name] = bundle.parameters
            for requirement in bundle.requires:
                if requirement.parameters:
                    additional[requirement.resource_name] = requirement.parameters
            refs.append(BundleRef(name=bundle.name, version=bundle.version))

        apps = self.registrar.register_all(refs, self._source(manifest, namespace), namespace)

        docker_registry = ""
        if manifest.registry:
            try:
                registry = self.repository.get(Registry, manifest.registry, namespace)
            except ResourceNotFound as e:
                raise ResourceNotFound(f"couldn't get registry '{manifest.registry}'") from e
            docker_registry = registry.cluster_url()

        suffixes = self._install_suffixes(apps, manifest)
        flavor = manifest.flavor or "default"

        installs: List[Install] = []
        for app in apps:
            base = parameters.get(app.name, [])
            for suffix in sorted(suffixes.get(app.name, {""})):
                extra = additional.get(suffixed_name(app.name, suffix))
                app_parameters = base
                if extra:
                    app_parameters = ParameterManager(None, app.name, app.parameters, base).merge_additional_parameters(extra)
                try:
                    install = self.installer.install(
                        app.name,
                        namespace,
                        app.version,
                        name=app.name,
                        suffix=suffix,
                        flavor=flavor,
                        docker_registry=docker_registry,
                        force=force,
                        parameters=app_parameters,
                    )
                except BundleEngineError as e:
                    logger.error(f"[manifest] couldn't install application {app.name}: {e}")
                    raise
                installs.append(install)

        logger.info(f"[manifest] {name}: {len(installs)} installs ready")
        return installs

    def _source(self, manifest: Manifest, namespace: str) -> Source:
        sources = []
        for info in manifest.sources:
            try:
                definition = self.repository.get(SourceDefinition, info.name, namespace)
            except ResourceNotFound as e:
                raise ResourceNotFound(f"couldn't get source '{info.name}'") from e
            sources.append(new_source(definition.type, definition.path, definition.options, info.section, info.release))
        return MultiSource(sources)

    @staticmethod
    def _capability_targets(apps: List[Application]) -> Dict[str, str]:
        """Application name by both its own name and the capability it provides."""
        targets = {}
        for app in apps:
            targets[app.name] = app.name
            targets[app.provided_name] = app.name
        return targets

    @classmethod
    def _install_suffixes(cls, apps: List[Application], manifest: Manifest) -> Dict[str, Set[str]]:
        """Suffixes each application is required under, by other apps or by manifest overrides."""
        targets = cls._capability_targets(apps)

        suffixes: Dict[str, Set[str]] = {}
        requirements = [r for app in apps for r in app.requires]
        requirements += [r for bundle in manifest.bundles for r in bundle.requires]
        for requirement in requirements:
            target = targets.get(requirement.name, requirement.name)
            suffixes.setdefault(target, set()).add(requirement.suffix)
        return suffixes

    # -------------------------
    # DEPLOY
    # -------------------------

    def deploy(self, name: str, namespace: str, timeout: float = 600, show_logs: bool = False) -> List[List[str]]:
        return self._deploy(name, namespace, timeout, show_logs, smoketest=False)

    def deploy_smoketest(self, name: str, namespace: str, timeout: float = 600, show_logs: bool = False) -> List[List[str]]:
        return self._deploy(name, namespace, timeout, show_logs, smoketest=True)

    def _deploy(self, name: str, namespace: str, timeout: float, show_logs: bool, smoketest: bool) -> List[List[str]]:
        manifest = self._manifest(name, namespace)
        layers = resolve_layers(self.deploy_entries(manifest, namespace))

        if smoketest:
            def run(install_name):
                self.deploy_smoketester.deploy_smoketest(install_name, namespace, timeout, show_logs)
        else:
            def run(install_name):
                self.deployer.deploy(install_name, namespace, ACTION_APPLY_OUTPUTS, timeout, show_logs)

        for i, layer in enumerate(layers):
            logger.info(f"[manifest] processing layer {i}: {layer}")
            self._run_layer(i, layer, run)

        return layers

    def deploy_entries(self, manifest: Manifest, namespace: str) -> List[DependencyEntry]:
        """
        One entry per install the manifest created, one per (bundle, suffix).

        Edges are the application's requirements plus the manifest's own
        requirement overrides. A requirement naming a capability points at
        the manifest application that provides it. An edge to an install
        outside the manifest is dropped only when that install exists;
        anything else is left for the resolver to reject.
        """
        apps = [self._manifest_application(bundle, manifest, namespace) for bundle in manifest.bundles]
        targets = self._capability_targets(apps)
        suffixes = self._install_suffixes(apps, manifest)

        entries = []
        seen = set()
        for bundle, app in zip(manifest.bundles, apps):
            for suffix in sorted(suffixes.get(app.name, {""})):
                install_name = Install.compute_name(app.name, app.name, suffix)
                if install_name in seen:
                    continue
                seen.add(install_name)

                try:
                    install = self.repository.get(Install, install_name, namespace)
                except ResourceNotFound as e:
                    raise ResourceNotFound(f"couldn't get install for bundle '{bundle.name}'") from e
                try:
                    installed_app = self.repository.get(Application, install.application_name, namespace)
                except ResourceNotFound as e:
                    raise ResourceNotFound(f"couldn't get application for bundle '{bundle.name}'") from e

                deps: List[str] = []
                for requirement in installed_app.requires + bundle.requires:
                    dep = suffixed_name(targets.get(requirement.name, requirement.name), requirement.suffix)
                    if dep not in deps:
                        deps.append(dep)
                entries.append(DependencyEntry(id=install_name, deps=deps))

        ids = {entry.id for entry in entries}
        for entry in entries:
            for dep in [d for d in entry.deps if d not in ids]:
                if self.repository.find(Install, dep, namespace) is not None:
                    logger.info(f"[manifest] {entry.id} requires '{dep}', installed outside manifest {manifest.name}")
                    entry.deps.remove(dep)
            logger.debug(f"[manifest] deploy entry {entry.id} -> {entry.deps}")
        return entries

    def _manifest_application(self, bundle: BundleSpec, manifest: Manifest, namespace: str) -> Application:
        """The registered application a manifest bundle refers to."""
        version = bundle.version
        if version == LATEST:
            with self._source(manifest, namespace).get(BundleRef(name=bundle.name, version=LATEST)) as bundle_file:
                version = bundle_file.ref.version
        try:
            return self.repository.get(Application, Application.object_name(bundle.name, version), namespace)
        except ResourceNotFound as e:
            raise ResourceNotFound(f"couldn't get application for bundle '{bundle.name}'") from e

    def _run_layer(self, index: int, layer: List[str], run: Callable[[str], None]) -> None:
        failures: Dict[str, Exception] = {}
        names = sorted(layer)

        if self.settings.layer_workers <= 1 or len(names) == 1:
            for install_name in names:
                try:
                    run(install_name)
                except Exception as e:
                    logger.error(f"[manifest] couldn't deploy '{install_name}': {e}")
                    failures[install_name] = e
        else:
            with ThreadPoolExecutor(max_workers=self.settings.layer_workers) as pool:
                futures = {install_name: pool.submit(run, install_name) for install_name in names}
                for install_name, future in futures.items():
                    try:
                        future.result()
                    except Exception as e:
                        logger.error(f"[manifest] couldn't deploy '{install_name}': {e}")
                        failures[install_name] = e

        if failures:
            raise LayerExecutionError(index, failures)

    # -------------------------
    # DIFF / SMOKETEST
    # -------------------------

    def diff(self, name: str, namespace: str, timeout: float = 600) -> None:
        manifest = self._manifest(name, namespace)
        for bundle in manifest.bundles:
            self.deployer.deploy(bundle.name, namespace, ACTION_DIFF, timeout, show_logs=True)

    def smoketest(self, name: str, namespace: str, timeout: float = 600, show_logs: bool = False) -> None:
        manifest = self._manifest(name, namespace)
        for bundle in manifest.bundles:
            self.smoketester.smoketest(bundle.name, namespace, timeout, show_logs)
