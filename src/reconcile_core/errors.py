"""Error taxonomy for the reconciliation engine.

NotFound and AlreadyExists are not listed here: they are remote errors that
the conflict classifier recognizes, never errors the engine raises itself.
Any remote error the engine cannot classify propagates unchanged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .operations import OperationErrorEntry


class ReconcileError(Exception):
    """Base class for errors raised by the reconciliation engine."""

    pass


class ValidationFailure(ReconcileError):
    """Desired configuration is invalid. Raised before any remote call."""

    pass


class ImmutableViolation(ReconcileError):
    """An immutable attribute would change but replacement is not permitted."""

    def __init__(self, message: str, attribute: str | None = None) -> None:
        super().__init__(message)
        self.attribute = attribute


class AdoptionRequired(ReconcileError):
    """The remote object already exists and adoption is not enabled.

    The original conflict is available as ``__cause__``.
    """

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message)
        self.name = name


class OperationFailed(ReconcileError):
    """A long-running remote operation finished with errors."""

    def __init__(self, operation_name: str, errors: list[OperationErrorEntry]) -> None:
        details = ", ".join(f"{e.code}: {e.message}" for e in errors)
        super().__init__(f"Operation {operation_name} failed: {details}")
        self.operation_name = operation_name
        self.errors = list(errors)


class OperationTimedOut(ReconcileError):
    """Polling budget exhausted before the operation reached a terminal state.

    Callers may re-poll the same operation with a fresh budget.
    """

    def __init__(self, operation_name: str, max_attempts: int, interval: float) -> None:
        self.operation_name = operation_name
        self.max_attempts = max_attempts
        self.interval = interval
        self.budget_seconds = max_attempts * interval
        super().__init__(
            f"Operation {operation_name} timed out after {self.budget_seconds:g}s "
            f"({max_attempts} attempts, {interval:g}s interval)"
        )


class UnknownResourceKind(ReconcileError):
    """No metadata or client is registered for the requested kind."""

    pass
