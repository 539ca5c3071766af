"""Replacement policy: in-place update or destroy-then-recreate.

Identity and immutable attributes can only change by replacing the remote
object. Monotonic attributes (disk capacity) may grow in place but never
shrink. Everything else is grouped into mutable attribute groups, one remote
update call per group that differs.

All functions here are pure comparisons and never touch the remote system.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .errors import ImmutableViolation, ValidationFailure
from .kinds import KindSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttributeChange:
    """A single attribute whose desired value differs from the recorded one."""

    attribute: str
    recorded: Any
    desired: Any


@dataclass(frozen=True)
class GroupChange:
    """A mutable attribute group to update with one remote call."""

    group: str
    changes: dict[str, Any] = field(default_factory=dict)

    @property
    def attributes(self) -> list[str]:
        return list(self.changes)


def normalize(spec: KindSpec, attribute: str, value: Any) -> Any:
    """Normalize a value for comparison.

    Unordered list attributes compare as sorted lists.
    """
    if attribute in spec.unordered and isinstance(value, list | tuple):
        return sorted(value, key=str)
    return value


def _differs(spec: KindSpec, attribute: str, desired: Any, recorded: Any) -> bool:
    return normalize(spec, attribute, desired) != normalize(spec, attribute, recorded)


def find_immutable_changes(
    spec: KindSpec,
    desired: Mapping[str, Any],
    recorded: Mapping[str, Any],
) -> list[AttributeChange]:
    """List immutable attributes whose desired value differs from the recorded one.

    Order is deterministic: identity attributes first, then kind-specific
    immutables in table order. Optional immutables are skipped when the
    desired value is unset.
    """
    changes: list[AttributeChange] = []
    for attribute in spec.immutable_attributes:
        desired_value = desired.get(attribute)
        if attribute in spec.optional_immutable and desired_value is None:
            continue
        recorded_value = recorded.get(attribute)
        if _differs(spec, attribute, desired_value, recorded_value):
            changes.append(AttributeChange(attribute, recorded_value, desired_value))
    return changes


def check_monotonic(
    spec: KindSpec,
    desired: Mapping[str, Any],
    recorded: Mapping[str, Any],
) -> None:
    """Reject shrinking a monotonic attribute.

    Raises:
        ValidationFailure: If a monotonic attribute would decrease.
    """
    for attribute in spec.monotonic:
        desired_value = desired.get(attribute)
        recorded_value = recorded.get(attribute)
        if desired_value is None or recorded_value is None:
            continue
        if desired_value < recorded_value:
            raise ValidationFailure(
                f"Cannot decrease {attribute} of {spec.kind.value} "
                f"'{recorded.get('name')}' from {recorded_value} to {desired_value}. "
                f"{attribute} can only be increased."
            )


def requires_replacement(
    spec: KindSpec,
    desired: Mapping[str, Any],
    recorded: Mapping[str, Any],
) -> bool:
    """Decide whether moving from recorded to desired needs a replacement.

    Monotonic attributes are checked first, so an invalid shrink fails before
    anything else is decided.

    Raises:
        ValidationFailure: If a monotonic attribute would decrease.
    """
    check_monotonic(spec, desired, recorded)
    changes = find_immutable_changes(spec, desired, recorded)
    if changes:
        first = changes[0]
        logger.info(
            "Immutable attribute changed, replacement required",
            extra={
                "kind": spec.kind.value,
                "attribute": first.attribute,
                "recorded": first.recorded,
                "desired": first.desired,
                "changed_count": len(changes),
            },
        )
        return True
    return False


def ensure_in_place(
    spec: KindSpec,
    desired: Mapping[str, Any],
    recorded: Mapping[str, Any],
) -> None:
    """Fail if the change cannot be applied without replacement.

    Raises:
        ValidationFailure: If a monotonic attribute would decrease.
        ImmutableViolation: If any immutable attribute differs.
    """
    check_monotonic(spec, desired, recorded)
    changes = find_immutable_changes(spec, desired, recorded)
    if changes:
        first = changes[0]
        raise ImmutableViolation(
            f"{first.attribute} of {spec.kind.value} '{recorded.get('name')}' is immutable "
            f"and cannot change from {first.recorded!r} to {first.desired!r} in place",
            attribute=first.attribute,
        )


def diff_mutable_groups(
    spec: KindSpec,
    desired: Mapping[str, Any],
    recorded: Mapping[str, Any],
) -> list[GroupChange]:
    """Compute the mutable attribute groups that need an update call.

    A desired value of ``None`` means the attribute is not managed and is
    left as-is. Groups are returned in table order.
    """
    groups: list[GroupChange] = []
    for group, attributes in spec.mutable_groups.items():
        changes: dict[str, Any] = {}
        for attribute in attributes:
            desired_value = desired.get(attribute)
            if desired_value is None:
                continue
            if _differs(spec, attribute, desired_value, recorded.get(attribute)):
                changes[attribute] = desired_value
        if changes:
            groups.append(GroupChange(group, changes))
    return groups
