"""Domain records stored in the cluster resource store."""

import re
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional

from bundle_engine.core.errors import InvalidApplicationError


LATEST = "latest"

_REGISTRY_NAME_CHARS = re.compile(r"[._^$@!+=()&]")


def suffixed_name(name: str, suffix: str = "") -> str:
    """Resource name of a (possibly suffixed) bundle instance."""
    if suffix:
        return f"{name}-{suffix}"
    return name


# ============================================
# Parameters
# ============================================

@dataclass
class GenerateSecret:
    format: str = ""
    bytes: int = 0
    bits: int = 0


@dataclass
class ParameterSpec:
    """A concrete name/value pair (install override or extra requirement parameter)."""

    name: str
    value: str = ""
    generate_secret: Optional[GenerateSecret] = None


@dataclass
class ParameterDefinition:
    """A parameter declared by an application."""

    name: str
    default: str = ""
    description: str = ""
    required: bool = False
    generate_secret: Optional[GenerateSecret] = None


# ============================================
# Application
# ============================================

@dataclass
class ImageSpec:
    image: str
    scheme: str = "https"


@dataclass
class OutputDefinition:
    name: str
    description: str = ""


@dataclass
class ProvidedCapability:
    name: str
    outputs: List[OutputDefinition] = field(default_factory=list)


@dataclass
class Requirement:
    name: str
    suffix: str = ""
    parameters: List[ParameterSpec] = field(default_factory=list)

    @property
    def resource_name(self) -> str:
        return suffixed_name(self.name, self.suffix)


@dataclass
class ResourceDefinition:
    """A workload the application deploys, checked for rollout after apply."""

    name: str
    category: str
    type: str


@dataclass
class StatusCheck:
    endpoint: str
    expected_code: str = ""


@dataclass
class Application:
    """Immutable bundle template, stored once per (name, version)."""

    KIND: ClassVar[str] = "Application"

    name: str
    version: str
    deploy_image: str = ""
    docker_registry: str = ""
    images: List[ImageSpec] = field(default_factory=list)
    parameters: List[ParameterDefinition] = field(default_factory=list)
    provides: List[ProvidedCapability] = field(default_factory=list)
    requires: List[Requirement] = field(default_factory=list)
    resources: List[ResourceDefinition] = field(default_factory=list)
    status: List[StatusCheck] = field(default_factory=list)
    namespace: str = "default"
    resource_version: int = 0

    @staticmethod
    def object_name(name: str, version: str) -> str:
        return f"{name}-{version}"

    @property
    def resource_name(self) -> str:
        return self.object_name(self.name, self.version)

    @property
    def provided_name(self) -> str:
        if self.provides:
            return self.provides[0].name
        return self.name

    def validate(self) -> None:
        if not self.name.strip():
            raise InvalidApplicationError("empty field 'name'")
        if not self.version.strip():
            raise InvalidApplicationError("empty field 'version'")
        if not self.deploy_image.strip():
            raise InvalidApplicationError("empty field 'deployImage'")
        if len(self.provides) > 1:
            raise InvalidApplicationError(
                f"bundle '{self.name}' can only provide 1 dependency"
            )

    def apply_defaults(self) -> None:
        """An application with no explicit capability provides its own name."""
        if not self.provides:
            self.provides = [ProvidedCapability(name=self.name)]


# ============================================
# Install
# ============================================

@dataclass
class Install:
    """A named, parameterized instance of an application."""

    KIND: ClassVar[str] = "Install"

    name: str
    application: str
    version: str
    suffix: str = ""
    deploy_image: str = ""
    flavor: str = ""
    docker_registry: str = ""
    parameters: List[ParameterSpec] = field(default_factory=list)
    secrets: List[ParameterSpec] = field(default_factory=list)
    namespace: str = "default"
    resource_version: int = 0

    @staticmethod
    def compute_name(app_name: str, name: str = "", suffix: str = "") -> str:
        return suffixed_name(name or app_name, suffix)

    @property
    def resource_name(self) -> str:
        return self.name

    @property
    def application_name(self) -> str:
        return Application.object_name(self.application, self.version)


# ============================================
# Flavor
# ============================================

@dataclass
class Flavor:
    """HA sizing profile."""

    KIND: ClassVar[str] = "Flavor"

    name: str
    stateful_quorum_replicas: int = 1
    stateful_replication_replicas: int = 1
    stateless_replicas: int = 1
    anti_affinity: str = "optional"
    minimum_nodes: int = 1
    namespace: str = "default"
    resource_version: int = 0

    @property
    def resource_name(self) -> str:
        return self.name


# ============================================
# Manifest
# ============================================

@dataclass
class SourceInfo:
    name: str
    section: str = ""
    release: str = ""


@dataclass
class BundleSpec:
    name: str
    version: str = LATEST
    parameters: List[ParameterSpec] = field(default_factory=list)
    requires: List[Requirement] = field(default_factory=list)


@dataclass
class Manifest:
    KIND: ClassVar[str] = "Manifest"

    name: str
    flavor: str = ""
    registry: str = ""
    sources: List[SourceInfo] = field(default_factory=list)
    bundles: List[BundleSpec] = field(default_factory=list)
    cpu: str = ""
    memory: str = ""
    namespace: str = "default"
    resource_version: int = 0

    @property
    def resource_name(self) -> str:
        return self.name


# ============================================
# Registry / Source definitions
# ============================================

@dataclass
class Registry:
    KIND: ClassVar[str] = "Registry"

    name: str
    image: str = ""
    flavor: str = ""
    node_selector: Dict[str, str] = field(default_factory=dict)
    host_path: str = ""
    namespace: str = "default"
    resource_version: int = 0

    @property
    def resource_name(self) -> str:
        return self.name

    def cluster_url(self) -> str:
        return f"localhost:6000/registry-{_REGISTRY_NAME_CHARS.sub('-', self.name)}"


@dataclass
class SourceDefinition:
    """Where bundle files are fetched from (directory or s3)."""

    KIND: ClassVar[str] = "Source"

    name: str
    type: str
    path: str = ""
    options: Dict[str, str] = field(default_factory=dict)
    namespace: str = "default"
    resource_version: int = 0

    @property
    def resource_name(self) -> str:
        return self.name
