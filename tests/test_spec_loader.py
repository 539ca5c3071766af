"""Tests for manifest loading."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from reconcile_core.models import DiskSpec, FirewallRuleSpec, ResourceKind
from reconcile_core.spec_loader import (
    SpecLoadError,
    load_manifest,
    load_manifests,
    parse_manifest,
)

FLAT_DISK = """\
kind: disk
name: data-disk
zone: us-central1-a
sizeGb: 20
labels:
  team: data
"""

WRAPPED_FIREWALL = """\
apiVersion: reconcile/v1
kind: firewall-rule
metadata:
  name: allow-ssh
spec:
  sourceRanges:
    - 0.0.0.0/0
  allowed:
    - protocol: tcp
      ports: ["22"]
"""


def write(directory: Path, name: str, content: str) -> Path:
    path = directory / name
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadManifest:
    """Tests for load_manifest()."""

    def test_flat_format(self, tmp_path: Path) -> None:
        """Flat manifests carry kind next to the attributes."""
        resource = load_manifest(write(tmp_path, "disk.yaml", FLAT_DISK))

        assert resource.kind == ResourceKind.DISK
        assert isinstance(resource.spec, DiskSpec)
        assert resource.spec.name == "data-disk"
        assert resource.spec.size_gb == 20
        assert resource.spec.labels == {"team": "data"}
        assert resource.source == tmp_path / "disk.yaml"

    def test_wrapped_format(self, tmp_path: Path) -> None:
        """Kubernetes-style manifests take the name from metadata."""
        resource = load_manifest(write(tmp_path, "fw.yaml", WRAPPED_FIREWALL))

        assert resource.kind == ResourceKind.FIREWALL_RULE
        assert isinstance(resource.spec, FirewallRuleSpec)
        assert resource.spec.name == "allow-ssh"
        assert resource.spec.source_ranges == ["0.0.0.0/0"]

    def test_spec_name_wins_over_metadata(self) -> None:
        """An explicit spec name is kept."""
        resource = parse_manifest(
            {
                "apiVersion": "reconcile/v1",
                "kind": "firewall-rule",
                "metadata": {"name": "from-metadata"},
                "spec": {"name": "from-spec"},
            }
        )

        assert resource.spec.name == "from-spec"

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file is reported."""
        with pytest.raises(SpecLoadError, match="not found"):
            load_manifest(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Malformed YAML is reported."""
        with pytest.raises(SpecLoadError, match="Invalid YAML"):
            load_manifest(write(tmp_path, "bad.yaml", "kind: [unclosed"))

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        """The document must be a mapping."""
        with pytest.raises(SpecLoadError, match="mapping"):
            load_manifest(write(tmp_path, "list.yaml", "- a\n- b\n"))

    def test_missing_kind(self, tmp_path: Path) -> None:
        """Every manifest names its kind."""
        with pytest.raises(SpecLoadError, match="missing 'kind'"):
            load_manifest(write(tmp_path, "nokind.yaml", "name: data\n"))

    def test_unknown_kind(self, tmp_path: Path) -> None:
        """Unknown kinds are reported."""
        with pytest.raises(SpecLoadError, match="bucket"):
            load_manifest(write(tmp_path, "bucket.yaml", "kind: bucket\nname: b\n"))

    def test_validation_error(self, tmp_path: Path) -> None:
        """Invalid attributes are reported with their location."""
        content = "kind: disk\nname: data\nzone: us-central1-a\nsizeGb: 5\n"

        with pytest.raises(SpecLoadError) as exc_info:
            load_manifest(write(tmp_path, "small.yaml", content))

        assert "Validation failed" in str(exc_info.value)
        assert "sizeGb" in str(exc_info.value)

    def test_spec_section_must_be_mapping(self) -> None:
        """A wrapped manifest's spec must be a mapping."""
        with pytest.raises(SpecLoadError, match="Spec section"):
            parse_manifest({"apiVersion": "v1", "kind": "disk", "spec": ["x"]})

    def test_file_size_limit(self, tmp_path: Path) -> None:
        """Oversized files are rejected before reading."""
        path = write(tmp_path, "big.yaml", FLAT_DISK)

        with patch("reconcile_core.spec_loader.MAX_MANIFEST_FILE_SIZE_BYTES", 10):
            with pytest.raises(SpecLoadError, match="maximum size"):
                load_manifest(path)


class TestLoadManifests:
    """Tests for load_manifests()."""

    def test_loads_yaml_in_name_order(self, tmp_path: Path) -> None:
        """All YAML files load in file name order; other files are ignored."""
        write(tmp_path, "b-firewall.yaml", WRAPPED_FIREWALL)
        write(tmp_path, "a-disk.yaml", FLAT_DISK)
        write(tmp_path, "notes.txt", "not a manifest")

        resources = load_manifests(tmp_path)

        assert [r.kind for r in resources] == [ResourceKind.DISK, ResourceKind.FIREWALL_RULE]

    def test_missing_directory(self, tmp_path: Path) -> None:
        """A missing directory is reported."""
        with pytest.raises(SpecLoadError, match="directory not found"):
            load_manifests(tmp_path / "missing")
