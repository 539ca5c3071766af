"""File-backed persistence of recorded state.

One YAML document per ``(kind, name)`` under ``<root>/<kind>/<name>.yaml``.
Writes go to a temporary file in the same directory and are moved into place
with ``os.replace``, so readers never observe a partially written document.

Public entry point for host processes that keep recorded state on disk
between reconciliations: ``get`` feeds ``ReconcileRequest.recorded`` and
``put`` stores ``ReconcileResult.recorded``.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

import yaml

from .config import MAX_STATE_FILE_SIZE_BYTES
from .models import VALID_NAME_PATTERN, RecordedState, ResourceKind

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Raised when recorded state cannot be read or written."""

    pass


class FileStateStore:
    """Recorded state store on the local filesystem."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, kind: ResourceKind | str, name: str) -> Path:
        try:
            resolved = ResourceKind(kind)
        except ValueError as e:
            raise StateStoreError(f"Unknown resource kind '{kind}'") from e
        # SECURITY: names become file names, so reject anything path-like
        if not name or not re.match(VALID_NAME_PATTERN, name):
            raise StateStoreError(f"Invalid resource name for state store: {name!r}")
        return self._root / resolved.value / f"{name}.yaml"

    def get(self, kind: ResourceKind | str, name: str) -> RecordedState | None:
        """Load recorded state, or ``None`` if nothing is recorded."""
        path = self._path(kind, name)
        if not path.exists():
            return None

        try:
            if path.stat().st_size > MAX_STATE_FILE_SIZE_BYTES:
                raise StateStoreError(
                    f"State file exceeds maximum size of {MAX_STATE_FILE_SIZE_BYTES} bytes: {path}"
                )
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StateStoreError(f"Failed to read state file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise StateStoreError(f"Invalid YAML in state file {path}: {e}") from e

        if not isinstance(data, dict):
            raise StateStoreError(f"State file must contain a YAML mapping: {path}")

        try:
            return RecordedState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StateStoreError(f"Malformed state file {path}: {e}") from e

    def put(self, state: RecordedState) -> Path:
        """Atomically write recorded state. Returns the file path."""
        name = state.name
        if not name:
            raise StateStoreError("Recorded state has no name")
        path = self._path(state.kind, name)

        content = yaml.safe_dump(state.to_dict(), sort_keys=True, default_flow_style=False)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateStoreError(f"Failed to write state file {path}: {e}") from e

        logger.debug(
            "Recorded state written",
            extra={"kind": state.kind.value, "resource_name": name, "path": str(path)},
        )
        return path

    def delete(self, kind: ResourceKind | str, name: str) -> bool:
        """Remove recorded state. Returns whether anything was removed."""
        path = self._path(kind, name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateStoreError(f"Failed to delete state file {path}: {e}") from e
        return True

    def list_keys(self) -> list[tuple[ResourceKind, str]]:
        """All recorded ``(kind, name)`` pairs, sorted."""
        keys: list[tuple[ResourceKind, str]] = []
        for kind in ResourceKind:
            kind_dir = self._root / kind.value
            if not kind_dir.is_dir():
                continue
            keys.extend((kind, path.stem) for path in kind_dir.glob("*.yaml"))
        return sorted(keys, key=lambda key: (key[0].value, key[1]))
