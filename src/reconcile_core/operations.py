"""Long-running operation polling.

Remote mutations may return a pending operation instead of completing
synchronously. The poller checks the operation's status at a fixed interval
until it reaches a terminal state or the attempt budget runs out.

The sleep between polls is the only place the engine suspends besides the
remote calls themselves.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from .config import OperationScope
from .errors import OperationFailed, OperationTimedOut

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Operation:
    """Handle to a pending remote operation. Never persisted."""

    name: str
    scope: OperationScope = OperationScope.ZONE


@dataclass(frozen=True)
class OperationErrorEntry:
    """One structured error reported by a failed operation."""

    code: str
    message: str


@dataclass(frozen=True)
class OperationStatus:
    """Status of an operation as reported by a single poll."""

    done: bool
    errors: list[OperationErrorEntry] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        """Check if the operation reached a terminal failure."""
        return self.done and bool(self.errors)


PollFunction = Callable[[Operation], Awaitable[OperationStatus]]


async def wait_for_operation(
    poll: PollFunction,
    operation: Operation,
    max_attempts: int,
    interval: float,
) -> None:
    """Poll an operation until it succeeds, fails, or the budget runs out.

    Args:
        poll: Coroutine function returning the current status of an operation.
        operation: The pending operation.
        max_attempts: Maximum number of status checks.
        interval: Seconds to wait between status checks.

    Raises:
        OperationFailed: The operation finished with one or more errors.
        OperationTimedOut: ``max_attempts`` checks saw no terminal status.
        ValueError: ``max_attempts`` is less than 1.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        status = await poll(operation)

        if status.done:
            if status.errors:
                logger.error(
                    "Operation failed",
                    extra={
                        "operation": operation.name,
                        "attempt": attempt,
                        "error_count": len(status.errors),
                    },
                )
                raise OperationFailed(operation.name, status.errors)

            logger.debug(
                "Operation complete",
                extra={"operation": operation.name, "attempt": attempt},
            )
            return

        logger.debug(
            "Operation pending",
            extra={
                "operation": operation.name,
                "attempt": attempt,
                "max_attempts": max_attempts,
            },
        )

        if attempt < max_attempts:
            await asyncio.sleep(interval)

    logger.warning(
        "Operation polling budget exhausted",
        extra={
            "operation": operation.name,
            "max_attempts": max_attempts,
            "budget_seconds": max_attempts * interval,
        },
    )
    raise OperationTimedOut(operation.name, max_attempts, interval)


class OperationPoller:
    """Waits for operations using per-scope budgets.

    Budgets are ``(max_attempts, interval_seconds)`` pairs keyed by
    operation scope, usually taken from ``Config.poll_budget``.
    """

    def __init__(
        self,
        poll: PollFunction,
        budgets: dict[OperationScope, tuple[int, float]],
    ) -> None:
        self._poll = poll
        self._budgets = budgets

    async def wait(self, operation: Operation) -> None:
        """Wait for an operation with the budget of its scope."""
        try:
            max_attempts, interval = self._budgets[operation.scope]
        except KeyError as e:
            raise ValueError(f"No polling budget for scope: {operation.scope.value}") from e
        await wait_for_operation(self._poll, operation, max_attempts, interval)
