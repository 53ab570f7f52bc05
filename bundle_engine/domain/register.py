"""Registration of bundle applications in dependency order."""

import logging
from typing import Dict, List

from bundle_engine.bundles.source import BundleRef, Source
from bundle_engine.core.errors import MissingDependencyError, SelfDependencyError
from bundle_engine.core.repository import ResourceRepository
from bundle_engine.core.resolver import DependencyEntry, resolve_layers
from bundle_engine.domain.models import Application

logger = logging.getLogger(__name__)


class RegisterManager:
    def __init__(self, repository: ResourceRepository):
        self.repository = repository

    # -------------------------
    # PUBLIC
    # -------------------------

    def register(self, ref: BundleRef, source: Source, namespace: str) -> Application:
        """Register one bundle. Its requirements must already be registered."""
        return self.register_all([ref], source, namespace)[0]

    def register_all(self, refs: List[BundleRef], source: Source, namespace: str) -> List[Application]:
        """
        Register bundles, dependencies first.

        Returns the applications in registration order, which generally
        differs from the order of `refs`. Nothing is written if any bundle
        is missing, invalid, or has unsatisfiable requirements.
        """
        apps = self._load(refs, source, namespace)
        self.validate_dependencies(apps, namespace)
        return self.register_applications(apps)

    def register_applications(self, apps: List[Application]) -> List[Application]:
        """Persist already-validated applications in dependency order."""
        by_capability: Dict[str, List[Application]] = {}
        entries = []
        batch_names = {}
        for app in apps:
            batch_names[app.name] = app.provided_name
            batch_names[app.provided_name] = app.provided_name

        for app in apps:
            by_capability.setdefault(app.provided_name, []).append(app)
            # Requirements met outside this batch are already registered
            deps = [batch_names[r.name] for r in app.requires if r.name in batch_names]
            entries.append(DependencyEntry(id=app.provided_name, deps=deps))

        layers = resolve_layers(entries)

        ordered: List[Application] = []
        for i, layer in enumerate(layers):
            logger.info(f"[register] processing layer {i}: {layer}")
            for capability in layer:
                for app in by_capability[capability]:
                    stored, created = self.repository.create_if_absent(app)
                    if created:
                        logger.info(f"[register] application '{app.resource_name}' registered")
                    else:
                        logger.info(f"[register] application '{app.resource_name}' already registered")
                    ordered.append(stored)
        return ordered

    def validate_dependencies(self, apps: List[Application], namespace: str) -> None:
        available = set()
        for registered in self.repository.list(Application, namespace):
            available.add(registered.name)
            available.add(registered.provided_name)
        for app in apps:
            available.add(app.name)
            available.add(app.provided_name)

        for app in apps:
            for requirement in app.requires:
                if requirement.name in (app.name, app.provided_name):
                    raise SelfDependencyError(f"bundle '{requirement.name}' cannot require itself")
                if requirement.name not in available:
                    raise MissingDependencyError(
                        f"required dependency '{requirement.name}' for app '{app.resource_name}' not found"
                    )

    # -------------------------
    # INTERNAL
    # -------------------------

    def _load(self, refs: List[BundleRef], source: Source, namespace: str) -> List[Application]:
        apps: Dict[str, Application] = {}
        for ref in refs:
            with source.get(ref) as bundle:
                app = bundle.application(namespace)
            if app.resource_name in apps:
                continue
            apps[app.resource_name] = app
            logger.debug(f"[register] loaded '{app.resource_name}' from {ref.filename}")
        return list(apps.values())
