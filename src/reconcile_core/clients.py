"""Capability set the reconciler needs from a concrete cloud client.

One client per resource kind. Clients translate attribute mappings into
provider requests; the reconciler never sees request shapes.

Blocking SDK clients can be used through ``ExecutorClientAdapter``, which runs
every call in the event loop's default executor.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Mapping
from typing import Any, Protocol

from .models import ObservedState, RemoteHandle
from .operations import Operation, OperationStatus


class ResourceClient(Protocol):
    """Async remote operations for one resource kind."""

    async def create(
        self, attributes: Mapping[str, Any]
    ) -> tuple[RemoteHandle, Operation | None]:
        """Create the remote object. Raises an already-exists error on conflict."""
        ...

    async def get(self, handle: RemoteHandle) -> ObservedState:
        """Read the remote object. Raises a not-found error if it is gone."""
        ...

    async def update(
        self, handle: RemoteHandle, group: str, changes: Mapping[str, Any]
    ) -> Operation | None:
        """Apply one mutable attribute group."""
        ...

    async def delete(self, handle: RemoteHandle) -> Operation | None:
        """Delete the remote object. Raises a not-found error if it is gone."""
        ...

    async def poll_operation(self, operation: Operation) -> OperationStatus:
        """Current status of a pending operation."""
        ...


class SyncResourceClient(Protocol):
    """Blocking variant of ``ResourceClient``."""

    def create(self, attributes: Mapping[str, Any]) -> tuple[RemoteHandle, Operation | None]: ...

    def get(self, handle: RemoteHandle) -> ObservedState: ...

    def update(
        self, handle: RemoteHandle, group: str, changes: Mapping[str, Any]
    ) -> Operation | None: ...

    def delete(self, handle: RemoteHandle) -> Operation | None: ...

    def poll_operation(self, operation: Operation) -> OperationStatus: ...


class ExecutorClientAdapter:
    """Expose a blocking client as a ``ResourceClient``.

    Each call runs in the default executor so the event loop is never
    blocked by SDK I/O.
    """

    def __init__(self, client: SyncResourceClient) -> None:
        self._client = client

    async def _run(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def create(
        self, attributes: Mapping[str, Any]
    ) -> tuple[RemoteHandle, Operation | None]:
        return await self._run(self._client.create, attributes)

    async def get(self, handle: RemoteHandle) -> ObservedState:
        return await self._run(self._client.get, handle)

    async def update(
        self, handle: RemoteHandle, group: str, changes: Mapping[str, Any]
    ) -> Operation | None:
        return await self._run(self._client.update, handle, group, changes)

    async def delete(self, handle: RemoteHandle) -> Operation | None:
        return await self._run(self._client.delete, handle)

    async def poll_operation(self, operation: Operation) -> OperationStatus:
        return await self._run(self._client.poll_operation, operation)
