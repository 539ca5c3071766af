"""Pydantic models for desired configurations, plus remote and recorded state.

Desired configurations:
1. Type-safe parsing from manifests (camelCase aliases accepted)
2. Validation at the boundary, before any remote call
3. A flat attribute mapping the reconciler compares against recorded state

The ``adopt`` and ``delete`` control flags steer the reconciler but are not
resource attributes and are never recorded.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import UnknownResourceKind, ValidationFailure

# Names: lowercase letter first, then letters/digits/hyphens, no trailing hyphen
VALID_NAME_PATTERN = r"^[a-z]([-a-z0-9]*[a-z0-9])?$"
MIN_DISK_SIZE_GB = 10
MAX_DISK_SIZE_GB = 65536

DEFAULT_SOURCE_IMAGE = "projects/debian-cloud/global/images/family/debian-11"


class ResourceKind(str, Enum):
    """Supported resource kinds."""

    INSTANCE = "instance"
    DISK = "disk"
    FIREWALL_RULE = "firewall-rule"
    ARTIFACT_REGISTRY = "artifact-registry"


# =============================================================================
# Desired Configuration
# =============================================================================


class BaseSpec(BaseModel):
    """Fields shared by every desired configuration."""

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    CONTROL_FIELDS: ClassVar[frozenset[str]] = frozenset({"adopt", "delete"})

    # Defaults to the recorded name when omitted
    name: Annotated[str, Field(min_length=1, max_length=63)] | None = None

    # Adopt an existing remote object on create conflict (overrides scope default)
    adopt: bool | None = None

    # Opt-in to remote deletion for data-bearing kinds
    delete: bool | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is not None and not re.match(VALID_NAME_PATTERN, v):
            raise ValueError(f"name must match pattern {VALID_NAME_PATTERN}")
        return v

    def attributes(self) -> dict[str, Any]:
        """Resource attributes without control flags."""
        return self.model_dump(exclude=set(self.CONTROL_FIELDS))


class InstanceSpec(BaseSpec):
    """Virtual machine instance."""

    zone: Annotated[str, Field(min_length=1)]
    machine_type: str = Field("e2-medium", alias="machineType")
    source_image: str = Field(DEFAULT_SOURCE_IMAGE, alias="sourceImage")
    disk_size_gb: int = Field(
        MIN_DISK_SIZE_GB, ge=MIN_DISK_SIZE_GB, le=MAX_DISK_SIZE_GB, alias="diskSizeGb"
    )
    disk_type: Literal["pd-standard", "pd-balanced", "pd-ssd"] = Field(
        "pd-standard", alias="diskType"
    )
    network: str = "default"
    assign_external_ip: bool = Field(True, alias="assignExternalIp")
    startup_script: str | None = Field(None, alias="startupScript")
    labels: dict[str, str] | None = None
    # Network tags, used by firewall rules
    tags: list[str] | None = None


class DiskSpec(BaseSpec):
    """Persistent disk. Holds data, so remote deletion is opt-in."""

    zone: Annotated[str, Field(min_length=1)]
    size_gb: int = Field(ge=MIN_DISK_SIZE_GB, le=MAX_DISK_SIZE_GB, alias="sizeGb")
    disk_type: Literal["pd-standard", "pd-balanced", "pd-ssd", "pd-extreme"] = Field(
        "pd-standard", alias="diskType"
    )
    source_image: str | None = Field(None, alias="sourceImage")
    source_snapshot: str | None = Field(None, alias="sourceSnapshot")
    labels: dict[str, str] | None = None

    @model_validator(mode="after")
    def validate_source(self) -> DiskSpec:
        if self.source_image and self.source_snapshot:
            raise ValueError("sourceImage and sourceSnapshot are mutually exclusive")
        return self


class FirewallAllowed(BaseModel):
    """Protocol and ports matched by a firewall rule."""

    model_config = {"extra": "ignore", "frozen": True}

    protocol: Annotated[str, Field(min_length=1)]
    ports: list[str] | None = None


class FirewallRuleSpec(BaseSpec):
    """VPC firewall rule. Global, so identified by name alone."""

    network: str = "default"
    direction: Literal["INGRESS", "EGRESS"] = "INGRESS"
    priority: int = Field(1000, ge=0, le=65535)
    source_ranges: list[str] | None = Field(None, alias="sourceRanges")
    destination_ranges: list[str] | None = Field(None, alias="destinationRanges")
    source_tags: list[str] | None = Field(None, alias="sourceTags")
    target_tags: list[str] | None = Field(None, alias="targetTags")
    allowed: list[FirewallAllowed] | None = None
    denied: list[FirewallAllowed] | None = None
    description: str | None = None
    disabled: bool | None = None

    @model_validator(mode="after")
    def validate_action(self) -> FirewallRuleSpec:
        if self.allowed and self.denied:
            raise ValueError("allowed and denied are mutually exclusive")
        return self


class ArtifactRegistrySpec(BaseSpec):
    """Package/image repository. Holds artifacts, so remote deletion is opt-in."""

    location: Annotated[str, Field(min_length=1)]
    format: Literal["docker", "maven", "npm", "python", "apt", "yum", "go", "kfp"] = "docker"
    description: str | None = None
    labels: dict[str, str] | None = None
    immutable_tags: bool | None = Field(None, alias="immutableTags")
    kms_key_name: str | None = Field(None, alias="kmsKeyName")

    @model_validator(mode="after")
    def validate_docker_config(self) -> ArtifactRegistrySpec:
        if self.immutable_tags is not None and self.format != "docker":
            raise ValueError("immutableTags is only supported for docker repositories")
        return self


SPEC_REGISTRY: dict[ResourceKind, type[BaseSpec]] = {
    ResourceKind.INSTANCE: InstanceSpec,
    ResourceKind.DISK: DiskSpec,
    ResourceKind.FIREWALL_RULE: FirewallRuleSpec,
    ResourceKind.ARTIFACT_REGISTRY: ArtifactRegistrySpec,
}


def get_spec_class(kind: ResourceKind | str) -> type[BaseSpec]:
    """Get the desired-configuration model for a kind.

    Raises:
        UnknownResourceKind: If the kind is not recognized.
    """
    try:
        resolved = ResourceKind(kind)
    except ValueError as e:
        valid_kinds = [k.value for k in ResourceKind]
        raise UnknownResourceKind(
            f"Unknown resource kind '{kind}'. Valid kinds: {valid_kinds}"
        ) from e
    return SPEC_REGISTRY[resolved]


def parse_desired(kind: ResourceKind | str, data: dict[str, Any]) -> BaseSpec:
    """Validate raw desired configuration for a kind.

    Raises:
        UnknownResourceKind: If the kind is not recognized.
        ValidationFailure: If the configuration is invalid.
    """
    spec_class = get_spec_class(kind)
    try:
        return spec_class.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise ValidationFailure(
            f"Invalid {ResourceKind(kind).value} configuration:\n{error_list}"
        ) from e


# =============================================================================
# Remote and Recorded State
# =============================================================================


@dataclass(frozen=True)
class RemoteHandle:
    """Locator of a remote object.

    ``path`` is the canonical resource path; ``uid`` is the identifier the
    remote system assigned at creation. An object recreated under the same
    name gets a new ``uid``, so the handles compare unequal.
    """

    path: str
    uid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "uid": self.uid}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteHandle:
        return cls(path=data["path"], uid=data.get("uid"))


@dataclass
class ObservedState:
    """What a single read of the remote object returned."""

    handle: RemoteHandle
    attributes: dict[str, Any] = field(default_factory=dict)
    status: str | None = None
    created_at: str | None = None
    computed: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RecordedState:
    """Last successfully observed state of a managed resource.

    Owned by the caller. The reconciler only ever returns a new value.
    """

    kind: ResourceKind
    handle: RemoteHandle
    attributes: dict[str, Any]
    status: str
    created_at: str
    computed: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str | None:
        """Recorded resource name."""
        return self.attributes.get("name")

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary for persistence."""
        return {
            "kind": self.kind.value,
            "handle": self.handle.to_dict(),
            "attributes": dict(self.attributes),
            "status": self.status,
            "created_at": self.created_at,
            "computed": dict(self.computed),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecordedState:
        """Rebuild from ``to_dict`` output.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If the kind is unknown.
        """
        return cls(
            kind=ResourceKind(data["kind"]),
            handle=RemoteHandle.from_dict(data["handle"]),
            attributes=dict(data["attributes"]),
            status=data["status"],
            created_at=data["created_at"],
            computed=dict(data.get("computed") or {}),
        )
