"""Classification of remote errors into not-found / already-exists / other.

Remote transports report the same condition in different code spaces:
RPC-style clients use status 5 (NOT_FOUND) and 6 (ALREADY_EXISTS), HTTP-style
clients use 404 and 409. The predicates accept either and never raise.
"""

from __future__ import annotations

from enum import Enum

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError

RPC_NOT_FOUND = 5
RPC_ALREADY_EXISTS = 6
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409

NOT_FOUND_CODES = frozenset({RPC_NOT_FOUND, HTTP_NOT_FOUND})
ALREADY_EXISTS_CODES = frozenset({RPC_ALREADY_EXISTS, HTTP_CONFLICT})


class Conflict(str, Enum):
    """Classification of a remote error."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    OTHER = "other"


def _codes(error: object) -> set[int]:
    """Collect the numeric codes an error carries.

    Booleans are ignored even though they are ints.
    """
    codes: set[int] = set()
    for attr in ("code", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            codes.add(value)
    return codes


def _rpc_status_name(error: object) -> str | None:
    """Name of an RPC status enum attached to the error, if any."""
    status = getattr(error, "grpc_status_code", None)
    name = getattr(status, "name", None)
    return name if isinstance(name, str) else None


def is_not_found(error: BaseException | None) -> bool:
    """Check if an error means the remote object does not exist."""
    if error is None:
        return False
    try:
        if isinstance(error, ResourceNotFoundError):
            return True
        if _rpc_status_name(error) == "NOT_FOUND":
            return True
        return bool(_codes(error) & NOT_FOUND_CODES)
    except Exception:  # noqa: BLE001 - classification must never raise
        return False


def is_already_exists(error: BaseException | None) -> bool:
    """Check if an error means the remote object already exists."""
    if error is None:
        return False
    try:
        if isinstance(error, ResourceExistsError):
            return True
        if _rpc_status_name(error) == "ALREADY_EXISTS":
            return True
        return bool(_codes(error) & ALREADY_EXISTS_CODES)
    except Exception:  # noqa: BLE001 - classification must never raise
        return False


def classify(error: BaseException | None) -> Conflict:
    """Classify a remote error."""
    if is_not_found(error):
        return Conflict.NOT_FOUND
    if is_already_exists(error):
        return Conflict.ALREADY_EXISTS
    return Conflict.OTHER
