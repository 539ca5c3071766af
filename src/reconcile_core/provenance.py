"""Reconciliation provenance for audit.

Every reconciliation, successful or not, is stamped with a provenance record
that answers:
- "What did the engine do to this resource, and when?"
- "Which remote calls were issued?"
- "What version of the engine was running?"

Records are emitted as structured log entries.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
ENGINE_VERSION = os.environ.get("RECONCILE_VERSION", "dev")


@dataclass
class RemoteCallSummary:
    """Remote calls issued during one reconciliation."""

    create_count: int = 0
    get_count: int = 0
    update_count: int = 0
    delete_count: int = 0
    poll_count: int = 0

    @property
    def total_mutations(self) -> int:
        """Total mutating calls (create + update + delete)."""
        return self.create_count + self.update_count + self.delete_count

    def record(self, call: str) -> None:
        """Count one remote call by name (create, get, update, delete, poll)."""
        attr = f"{call}_count"
        if not hasattr(self, attr):
            raise ValueError(f"Unknown remote call type: {call}")
        setattr(self, attr, getattr(self, attr) + 1)


@dataclass
class ReconcileProvenance:
    """Provenance record for one reconciliation."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Identity
    engine_version: str = ENGINE_VERSION
    instance_id: str = ""
    project: str = ""
    kind: str = ""
    name: str = ""

    # Outcome
    phase: str = ""
    final_state: str = ""
    handle: str = ""
    replaced: bool = False
    adopted: bool = False
    remote_deleted: bool = False
    remote_calls: RemoteCallSummary = field(default_factory=RemoteCallSummary)

    duration_seconds: float = 0.0

    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


class ProvenanceLogger:
    """Emits provenance records as structured log entries."""

    def __init__(self) -> None:
        self._instance_id = os.environ.get("RECONCILE_INSTANCE_ID", "")

    def create_provenance(
        self,
        project: str,
        kind: str,
        name: str,
        phase: str,
    ) -> ReconcileProvenance:
        """Create a new provenance record for a reconciliation.

        Args:
            project: Target project.
            kind: Resource kind.
            name: Resource name (may be empty if unresolved).
            phase: Requested phase (create, update, delete).

        Returns:
            Initialized provenance record.
        """
        return ReconcileProvenance(
            engine_version=ENGINE_VERSION,
            instance_id=self._instance_id,
            project=project,
            kind=kind,
            name=name,
            phase=phase,
        )

    def log_provenance(self, provenance: ReconcileProvenance) -> None:
        """Log a completed provenance record.

        Args:
            provenance: Completed provenance record.
        """
        log_level = logging.INFO
        if provenance.error:
            log_level = logging.ERROR
        elif provenance.replaced:
            log_level = logging.WARNING

        logger.log(
            log_level,
            "Reconciliation provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "kind": provenance.kind,
                "resource_name": provenance.name,
                "phase": provenance.phase,
                "final_state": provenance.final_state,
                "mutations": provenance.remote_calls.total_mutations,
                "engine_version": provenance.engine_version,
                "duration_seconds": provenance.duration_seconds,
            },
        )


_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
