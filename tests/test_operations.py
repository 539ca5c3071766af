"""Tests for long-running operation polling."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from reconcile_core.config import OperationScope
from reconcile_core.errors import OperationFailed, OperationTimedOut
from reconcile_core.operations import (
    Operation,
    OperationErrorEntry,
    OperationPoller,
    OperationStatus,
    wait_for_operation,
)


def scripted_poll(*statuses: OperationStatus) -> AsyncMock:
    """Poll function returning the given statuses in order."""
    return AsyncMock(side_effect=list(statuses))


PENDING = OperationStatus(done=False)
DONE = OperationStatus(done=True)


class TestOperationStatus:
    """Tests for OperationStatus."""

    def test_failed_requires_done(self) -> None:
        """Errors only count once the operation is done."""
        errors = [OperationErrorEntry("QUOTA_EXCEEDED", "Quota exceeded")]

        assert OperationStatus(done=True, errors=errors).failed is True
        assert OperationStatus(done=False, errors=errors).failed is False
        assert DONE.failed is False


class TestWaitForOperation:
    """Tests for wait_for_operation()."""

    @pytest.mark.asyncio
    async def test_done_on_first_poll(self) -> None:
        """A completed operation returns after one check and never sleeps."""
        poll = scripted_poll(DONE)

        with patch("reconcile_core.operations.asyncio.sleep", new=AsyncMock()) as sleep:
            await wait_for_operation(poll, Operation("op-1"), max_attempts=5, interval=1.0)

        assert poll.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_then_done(self) -> None:
        """Sleeps between checks until the operation completes."""
        poll = scripted_poll(PENDING, PENDING, DONE)

        with patch("reconcile_core.operations.asyncio.sleep", new=AsyncMock()) as sleep:
            await wait_for_operation(poll, Operation("op-1"), max_attempts=5, interval=2.0)

        assert poll.await_count == 3
        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.0)

    @pytest.mark.asyncio
    async def test_failure_carries_all_errors(self) -> None:
        """A failed operation raises with every reported error."""
        errors = [
            OperationErrorEntry("RESOURCE_NOT_READY", "Disk is attached"),
            OperationErrorEntry("INVALID_FIELD", "Bad size"),
        ]
        poll = scripted_poll(OperationStatus(done=True, errors=errors))

        with pytest.raises(OperationFailed) as exc_info:
            await wait_for_operation(poll, Operation("op-7"), max_attempts=3, interval=0)

        assert exc_info.value.errors == errors
        assert exc_info.value.operation_name == "op-7"
        message = str(exc_info.value)
        assert "RESOURCE_NOT_READY: Disk is attached" in message
        assert "INVALID_FIELD: Bad size" in message

    @pytest.mark.asyncio
    async def test_timeout_after_exact_budget(self) -> None:
        """Exactly max_attempts checks, with sleeps only between them."""
        poll = AsyncMock(return_value=PENDING)

        with patch("reconcile_core.operations.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(OperationTimedOut) as exc_info:
                await wait_for_operation(poll, Operation("op-2"), max_attempts=4, interval=5.0)

        assert poll.await_count == 4
        assert sleep.await_count == 3
        assert exc_info.value.budget_seconds == 20.0
        assert exc_info.value.max_attempts == 4

    @pytest.mark.asyncio
    async def test_single_attempt_budget(self) -> None:
        """With one attempt, a pending operation times out without sleeping."""
        poll = AsyncMock(return_value=PENDING)

        with patch("reconcile_core.operations.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(OperationTimedOut):
                await wait_for_operation(poll, Operation("op-3"), max_attempts=1, interval=5.0)

        assert poll.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_budget(self) -> None:
        """A budget below one attempt is a programming error."""
        poll = AsyncMock(return_value=DONE)

        with pytest.raises(ValueError):
            await wait_for_operation(poll, Operation("op-4"), max_attempts=0, interval=1.0)

        poll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_poll_errors_propagate(self) -> None:
        """Errors raised by the poll call are not swallowed."""
        poll = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(RuntimeError, match="connection reset"):
            await wait_for_operation(poll, Operation("op-5"), max_attempts=3, interval=0)

    @pytest.mark.asyncio
    async def test_timeout_can_be_resumed(self) -> None:
        """A timed-out operation can be polled again with a fresh budget."""
        poll = scripted_poll(PENDING, PENDING, DONE)
        operation = Operation("op-6")

        with pytest.raises(OperationTimedOut):
            await wait_for_operation(poll, operation, max_attempts=2, interval=0)

        await wait_for_operation(poll, operation, max_attempts=2, interval=0)
        assert poll.await_count == 3


class TestOperationPoller:
    """Tests for OperationPoller."""

    @pytest.mark.asyncio
    async def test_uses_scope_budget(self) -> None:
        """Each scope gets its own attempt budget."""
        poll = AsyncMock(return_value=PENDING)
        poller = OperationPoller(
            poll,
            {OperationScope.ZONE: (3, 0.0), OperationScope.GLOBAL: (2, 0.0)},
        )

        with pytest.raises(OperationTimedOut):
            await poller.wait(Operation("zonal", OperationScope.ZONE))
        assert poll.await_count == 3

        poll.reset_mock()
        with pytest.raises(OperationTimedOut):
            await poller.wait(Operation("global", OperationScope.GLOBAL))
        assert poll.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_scope_budget(self) -> None:
        """An operation in an unconfigured scope is rejected."""
        poller = OperationPoller(AsyncMock(return_value=DONE), {OperationScope.ZONE: (3, 0.0)})

        with pytest.raises(ValueError, match="No polling budget"):
            await poller.wait(Operation("regional", OperationScope.REGION))
