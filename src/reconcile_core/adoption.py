"""Adoption policy for create conflicts.

When a create fails because the remote object already exists, the object is
either adopted (read once and treated as this resource's managed instance)
or the reconciliation fails with ``AdoptionRequired``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .conflicts import is_already_exists
from .errors import AdoptionRequired
from .models import ObservedState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Adopted:
    """The existing remote object, as returned by a single read."""

    observed: ObservedState


def effective_adopt(adopt_flag: bool | None, scope_default_adopt: bool | None) -> bool:
    """Resource flag wins over the scope default; unset means do not adopt."""
    if adopt_flag is not None:
        return adopt_flag
    if scope_default_adopt is not None:
        return scope_default_adopt
    return False


async def resolve_create_conflict(
    error: BaseException,
    *,
    name: str,
    kind: str,
    adopt_flag: bool | None,
    scope_default_adopt: bool | None,
    read_existing: Callable[[], Awaitable[ObservedState]],
) -> Adopted:
    """Adopt the existing object or fail.

    Only call this for errors classified as already-exists.

    Args:
        error: The error raised by the create call.
        name: Name of the conflicting resource, for diagnostics.
        kind: Resource kind, for diagnostics.
        adopt_flag: Resource-level adopt flag.
        scope_default_adopt: Scope-level adopt default.
        read_existing: Reads the existing remote object. Called at most once.

    Returns:
        The adopted object.

    Raises:
        ValueError: If the error is not an already-exists conflict.
        AdoptionRequired: If adoption is not enabled (the conflict is chained).
    """
    if not is_already_exists(error):
        raise ValueError("resolve_create_conflict called for a non-conflict error") from error

    if not effective_adopt(adopt_flag, scope_default_adopt):
        logger.warning(
            "Resource already exists and adoption is disabled",
            extra={"kind": kind, "resource_name": name},
        )
        raise AdoptionRequired(
            f'{kind} "{name}" already exists. Use adopt: true to adopt it.',
            name=name,
        ) from error

    logger.info("Resource already exists, adopting", extra={"kind": kind, "resource_name": name})
    observed = await read_existing()
    return Adopted(observed=observed)
