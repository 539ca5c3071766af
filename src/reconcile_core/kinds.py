"""Static metadata for each resource kind.

The reconciler is generic: everything kind-specific it needs (which
attributes are immutable, which mutable attributes are updated together,
whether the kind holds data, how to locate an existing object) lives in this
table and is selected by ``ResourceKind``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .config import OperationScope
from .errors import UnknownResourceKind
from .models import ResourceKind


def _registry_host(project: str, attributes: Mapping[str, Any]) -> dict[str, Any]:
    """Repository host, derived locally from identity and format."""
    location = attributes.get("location")
    fmt = attributes.get("format") or "docker"
    name = attributes.get("name")
    return {"host": f"{location}-{fmt}.pkg.dev/{project}/{name}"}


@dataclass(frozen=True)
class KindSpec:
    """Reconciliation metadata for one resource kind.

    Attributes:
        kind: The resource kind.
        identity: Identity attributes. Always immutable.
        immutable: Kind-specific immutable attributes.
        optional_immutable: Immutable attributes compared only when desired sets them.
        monotonic: Attributes that may grow in place but never shrink.
        mutable_groups: Ordered ``group -> attributes``; one update call per group.
        unordered: List attributes whose element order is irrelevant.
        data_bearing: Whether remote deletion needs an explicit opt-in.
        operation_scope: Scope of this kind's long-running operations.
        handle_template: Canonical resource path, formatted with project and identity.
        default_status: Status recorded when the remote reports none.
        derive_computed: Computed fields derived locally from attributes.
    """

    kind: ResourceKind
    identity: tuple[str, ...]
    immutable: tuple[str, ...] = ()
    optional_immutable: frozenset[str] = frozenset()
    monotonic: tuple[str, ...] = ()
    mutable_groups: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    unordered: frozenset[str] = frozenset()
    data_bearing: bool = False
    operation_scope: OperationScope = OperationScope.ZONE
    handle_template: str = ""
    default_status: str = "READY"
    derive_computed: Callable[[str, Mapping[str, Any]], dict[str, Any]] | None = None

    @property
    def immutable_attributes(self) -> tuple[str, ...]:
        """Identity attributes followed by kind-specific immutables."""
        return self.identity + tuple(a for a in self.immutable if a not in self.identity)

    def locate(self, project: str, attributes: Mapping[str, Any]) -> str:
        """Canonical resource path for an object with these identity attributes."""
        values = {attr: attributes.get(attr) for attr in self.identity}
        return self.handle_template.format(project=project, **values)

    def computed_fields(self, project: str, attributes: Mapping[str, Any]) -> dict[str, Any]:
        """Locally derived computed fields (empty for most kinds)."""
        if self.derive_computed is None:
            return {}
        return self.derive_computed(project, attributes)


KIND_TABLE: Mapping[ResourceKind, KindSpec] = MappingProxyType(
    {
        ResourceKind.INSTANCE: KindSpec(
            kind=ResourceKind.INSTANCE,
            identity=("name", "zone"),
            immutable=(
                "machine_type",
                "source_image",
                "disk_size_gb",
                "disk_type",
                "network",
                "assign_external_ip",
            ),
            mutable_groups=MappingProxyType(
                {
                    "labels": ("labels",),
                    "tags": ("tags",),
                    "metadata": ("startup_script",),
                }
            ),
            unordered=frozenset({"tags"}),
            operation_scope=OperationScope.ZONE,
            handle_template="projects/{project}/zones/{zone}/instances/{name}",
            default_status="RUNNING",
        ),
        ResourceKind.DISK: KindSpec(
            kind=ResourceKind.DISK,
            identity=("name", "zone"),
            immutable=("disk_type", "source_image", "source_snapshot"),
            monotonic=("size_gb",),
            mutable_groups=MappingProxyType(
                {
                    "size": ("size_gb",),
                    "labels": ("labels",),
                }
            ),
            data_bearing=True,
            operation_scope=OperationScope.ZONE,
            handle_template="projects/{project}/zones/{zone}/disks/{name}",
        ),
        ResourceKind.FIREWALL_RULE: KindSpec(
            kind=ResourceKind.FIREWALL_RULE,
            identity=("name",),
            immutable=("network", "direction"),
            mutable_groups=MappingProxyType(
                {
                    "rule": (
                        "priority",
                        "source_ranges",
                        "destination_ranges",
                        "source_tags",
                        "target_tags",
                        "allowed",
                        "denied",
                        "description",
                        "disabled",
                    ),
                }
            ),
            unordered=frozenset(
                {"source_ranges", "destination_ranges", "source_tags", "target_tags"}
            ),
            operation_scope=OperationScope.GLOBAL,
            handle_template="projects/{project}/global/firewalls/{name}",
        ),
        ResourceKind.ARTIFACT_REGISTRY: KindSpec(
            kind=ResourceKind.ARTIFACT_REGISTRY,
            identity=("name", "location"),
            immutable=("format", "kms_key_name"),
            optional_immutable=frozenset({"kms_key_name"}),
            mutable_groups=MappingProxyType(
                {"repository": ("description", "labels", "immutable_tags")}
            ),
            data_bearing=True,
            operation_scope=OperationScope.REGION,
            handle_template="projects/{project}/locations/{location}/repositories/{name}",
            derive_computed=_registry_host,
        ),
    }
)


def get_kind_spec(kind: ResourceKind | str) -> KindSpec:
    """Look up metadata for a kind.

    Raises:
        UnknownResourceKind: If the kind is not recognized.
    """
    try:
        return KIND_TABLE[ResourceKind(kind)]
    except (KeyError, ValueError) as e:
        valid_kinds = [k.value for k in KIND_TABLE]
        raise UnknownResourceKind(
            f"Unknown resource kind '{kind}'. Valid kinds: {valid_kinds}"
        ) from e
