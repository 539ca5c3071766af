"""Deletion safety for data-bearing resources.

Removing a data-bearing resource (disk, repository) from the desired model
only ends the managed relationship unless the caller explicitly opted in to
remote deletion. Compute and network kinds are always deleted remotely.
Replacing a resource is not a removal and does not consult this policy.
"""

from __future__ import annotations

from dataclasses import dataclass

from .kinds import KindSpec


@dataclass(frozen=True)
class DeletionDecision:
    """Whether to delete remotely, and why."""

    delete_remote: bool
    reason: str


def decide_deletion(spec: KindSpec, delete_flag: bool | None) -> DeletionDecision:
    """Apply the deletion safety policy to a kind and its delete flag."""
    if not spec.data_bearing:
        return DeletionDecision(True, "compute/network kinds are always deleted")
    if delete_flag is True:
        return DeletionDecision(True, "delete: true set on data-bearing resource")
    return DeletionDecision(False, "data-bearing resource preserved (delete not set)")


def should_delete_remote(spec: KindSpec, delete_flag: bool | None) -> bool:
    """Only an explicit ``True`` authorizes deleting data-bearing objects."""
    return decide_deletion(spec, delete_flag).delete_remote
