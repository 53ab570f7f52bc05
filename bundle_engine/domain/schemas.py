"""Pydantic schemas for bundle documents and stored records."""

from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from bundle_engine.domain.models import (
    Application,
    Flavor,
    Install,
    Manifest,
    Registry,
    SourceDefinition,
    LATEST,
)


# ============================================
# Base Schema
# ============================================

class DocumentBase(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _stringify(v) -> str:
    """YAML scalars (numbers, booleans) become the string form the job sees."""
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


# ============================================
# Parameter Schemas
# ============================================

class GenerateSecretSchema(DocumentBase):
    format: str = ""
    bytes: int = 0
    bits: int = 0


class ParameterSpecSchema(DocumentBase):
    name: str
    value: str = ""
    generate_secret: Optional[GenerateSecretSchema] = None

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v):
        return _stringify(v)


class ParameterDefinitionSchema(DocumentBase):
    name: str
    default: str = ""
    description: str = ""
    required: bool = False
    generate_secret: Optional[GenerateSecretSchema] = None

    @field_validator("default", mode="before")
    @classmethod
    def stringify_default(cls, v):
        return _stringify(v)


# ============================================
# Application Schemas
# ============================================

class ImageSpecSchema(DocumentBase):
    image: str
    scheme: str = "https"


class OutputDefinitionSchema(DocumentBase):
    name: str
    description: str = ""


class ProvidedCapabilitySchema(DocumentBase):
    name: str
    outputs: List[OutputDefinitionSchema] = Field(default_factory=list)


class RequirementSchema(DocumentBase):
    name: str
    suffix: str = ""
    parameters: List[ParameterSpecSchema] = Field(default_factory=list)


class ResourceDefinitionSchema(DocumentBase):
    name: str
    category: str
    type: str


class StatusCheckSchema(DocumentBase):
    endpoint: str
    expected_code: str = ""


class ApplicationSchema(DocumentBase):
    """Application definition as found in a bundle's app.yaml."""

    name: str = ""
    version: str = ""
    deploy_image: str = ""
    docker_registry: str = ""
    images: List[ImageSpecSchema] = Field(default_factory=list)
    parameters: List[ParameterDefinitionSchema] = Field(default_factory=list)
    provides: List[ProvidedCapabilitySchema] = Field(default_factory=list)
    requires: List[RequirementSchema] = Field(default_factory=list)
    resources: List[ResourceDefinitionSchema] = Field(default_factory=list)
    status: List[StatusCheckSchema] = Field(default_factory=list)
    namespace: str = "default"
    resource_version: int = 0

    @field_validator("version", mode="before")
    @classmethod
    def stringify_version(cls, v):
        return "" if v is None else str(v)


# ============================================
# Install / Flavor Schemas
# ============================================

class InstallSchema(DocumentBase):
    name: str
    application: str
    version: str
    suffix: str = ""
    deploy_image: str = ""
    flavor: str = ""
    docker_registry: str = ""
    parameters: List[ParameterSpecSchema] = Field(default_factory=list)
    secrets: List[ParameterSpecSchema] = Field(default_factory=list)
    namespace: str = "default"
    resource_version: int = 0


class FlavorSchema(DocumentBase):
    name: str
    stateful_quorum_replicas: int = 1
    stateful_replication_replicas: int = 1
    stateless_replicas: int = 1
    anti_affinity: str = "optional"
    minimum_nodes: int = 1
    namespace: str = "default"
    resource_version: int = 0

    @field_validator("anti_affinity")
    @classmethod
    def check_anti_affinity(cls, v):
        if v not in ("required", "optional"):
            raise ValueError(f"antiAffinity must be 'required' or 'optional', got '{v}'")
        return v


# ============================================
# Manifest / Registry / Source Schemas
# ============================================

class SourceInfoSchema(DocumentBase):
    name: str
    section: str = ""
    release: str = ""


class BundleSpecSchema(DocumentBase):
    name: str
    version: str = LATEST
    parameters: List[ParameterSpecSchema] = Field(default_factory=list)
    requires: List[RequirementSchema] = Field(default_factory=list)


class ManifestSchema(DocumentBase):
    name: str
    flavor: str = ""
    registry: str = ""
    sources: List[SourceInfoSchema] = Field(default_factory=list)
    bundles: List[BundleSpecSchema] = Field(default_factory=list)
    cpu: str = ""
    memory: str = ""
    namespace: str = "default"
    resource_version: int = 0


class RegistrySchema(DocumentBase):
    name: str
    image: str = ""
    flavor: str = ""
    node_selector: Dict[str, str] = Field(default_factory=dict)
    host_path: str = ""
    namespace: str = "default"
    resource_version: int = 0


class SourceDefinitionSchema(DocumentBase):
    name: str
    type: str
    path: str = ""
    options: Dict[str, str] = Field(default_factory=dict)
    namespace: str = "default"
    resource_version: int = 0


# ============================================
# Record <-> document mapping
# ============================================

SCHEMAS = {
    Application: ApplicationSchema,
    Install: InstallSchema,
    Flavor: FlavorSchema,
    Manifest: ManifestSchema,
    Registry: RegistrySchema,
    SourceDefinition: SourceDefinitionSchema,
}

RECORD_TYPES = {record_type.KIND: record_type for record_type in SCHEMAS}


@lru_cache(maxsize=None)
def _adapter(record_type) -> TypeAdapter:
    return TypeAdapter(record_type)


def to_document(record) -> Dict[str, Any]:
    """Dump a record to its camelCase JSON document."""
    schema = SCHEMAS[type(record)]
    return schema.model_validate(record).model_dump(by_alias=True, mode="json")


def from_document(record_type, document: Dict[str, Any]):
    """Validate a camelCase (or snake_case) document into a record."""
    schema = SCHEMAS[record_type]
    validated = schema.model_validate(document)
    return _adapter(record_type).validate_python(validated.model_dump())


def dump_list(items) -> List[Dict[str, Any]]:
    """Dump nested value objects (requirements, parameters) for config documents."""
    dumped = []
    for item in items:
        schema = _NESTED_SCHEMAS[type(item).__name__]
        dumped.append(schema.model_validate(item).model_dump(by_alias=True, mode="json"))
    return dumped


_NESTED_SCHEMAS = {
    "Requirement": RequirementSchema,
    "ParameterSpec": ParameterSpecSchema,
    "ParameterDefinition": ParameterDefinitionSchema,
    "ResourceDefinition": ResourceDefinitionSchema,
}
