"""Desired-configuration manifest loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.

Public entry points: ``load_manifest``, ``load_manifests`` and
``parse_manifest`` produce ``DesiredResource`` values whose ``kind`` and
``spec`` feed a ``ReconcileRequest``.

Two manifest formats are accepted:

Flat::

    kind: disk
    name: data-disk
    zone: us-central1-a
    sizeGb: 20

Kubernetes-style wrapper::

    apiVersion: reconcile/v1
    kind: disk
    metadata:
      name: data-disk
    spec:
      zone: us-central1-a
      sizeGb: 20
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .config import MAX_MANIFEST_FILE_SIZE_BYTES
from .errors import UnknownResourceKind, ValidationFailure
from .models import BaseSpec, ResourceKind, parse_desired

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when manifest loading or validation fails."""

    pass


@dataclass(frozen=True)
class DesiredResource:
    """A validated desired configuration together with its kind."""

    kind: ResourceKind
    spec: BaseSpec
    source: Path | None = None


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        raise SpecLoadError(f"Manifest file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat manifest file {path}: {e}") from e

    if file_size > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Manifest file exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read manifest file {path}: {e}") from e

    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e


def parse_manifest(raw_data: Any, source: Path | None = None) -> DesiredResource:
    """Validate an already-parsed manifest document.

    Raises:
        SpecLoadError: If the document is malformed or fails validation.
    """
    where = source or "<manifest>"
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Manifest must contain a YAML mapping: {where}")

    kind = raw_data.get("kind")
    if not kind:
        raise SpecLoadError(f"Manifest is missing 'kind': {where}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec") or {}
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {where}")
        spec_data = dict(spec_data)
        metadata = raw_data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise SpecLoadError(f"Metadata section must be a mapping: {where}")
        if "name" in metadata and "name" not in spec_data:
            spec_data["name"] = metadata["name"]
    else:
        spec_data = {k: v for k, v in raw_data.items() if k != "kind"}

    try:
        spec = parse_desired(kind, spec_data)
    except UnknownResourceKind as e:
        raise SpecLoadError(f"{e} ({where})") from e
    except ValidationFailure as e:
        raise SpecLoadError(f"Validation failed for {where}:\n{e}") from e

    return DesiredResource(kind=ResourceKind(kind), spec=spec, source=source)


def load_manifest(path: Path) -> DesiredResource:
    """Load and validate one manifest file.

    Args:
        path: YAML manifest file.

    Returns:
        The validated desired resource.

    Raises:
        SpecLoadError: If the manifest cannot be loaded or fails validation.
    """
    resource = parse_manifest(_read_yaml(path), source=path)
    logger.info(
        "Loaded manifest",
        extra={
            "kind": resource.kind.value,
            "resource_name": resource.spec.name,
            "path": str(path),
        },
    )
    return resource


def load_manifests(directory: Path) -> list[DesiredResource]:
    """Load every ``*.yaml`` manifest in a directory, in file name order.

    Raises:
        SpecLoadError: If the directory is missing or any manifest is invalid.
    """
    if not directory.is_dir():
        raise SpecLoadError(f"Manifest directory not found: {directory}")
    return [load_manifest(path) for path in sorted(directory.glob("*.yaml"))]
