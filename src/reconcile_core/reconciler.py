"""Reconciliation state machine.

One reconciliation converges one remote object to its desired configuration:

    NoState  -> Creating -> Present
    Present  -> Updating -> Present
    Present  -> Replacing -> Creating -> Present   (new remote handle)
    Present/NoState -> Deleting -> Gone

The phase (create, update, delete) is supplied by the caller. The engine is
generic over resource kinds: kind-specific behavior comes from the metadata
table in ``kinds`` and the client registered for the kind.

FAILURE SEMANTICS:
- NotFound during delete and AlreadyExists with adoption enabled are the only
  remote errors converted to success. Everything else propagates unchanged.
- No rollback. A new recorded state is only returned once the whole phase
  has completed, so a failed reconciliation leaves the caller's recorded state
  at its previous value and a retry starts from the same point.

A host process drives the engine with the public entry points of the
sibling modules:

    setup_logging()                          # logging_config
    store = FileStateStore(state_dir)        # state_store
    reconciler = Reconciler(Config.from_env(), clients)
    for resource in load_manifests(manifest_dir):   # spec_loader
        recorded = store.get(resource.kind, resource.spec.name)
        phase = Phase.UPDATE if recorded else Phase.CREATE
        result = await reconciler.reconcile(
            ReconcileRequest(resource.kind, phase, resource.spec, recorded)
        )
        store.put(result.recorded)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .adoption import resolve_create_conflict
from .clients import ResourceClient
from .config import Config, OperationScope
from .conflicts import is_already_exists, is_not_found
from .deletion_safety import decide_deletion
from .errors import UnknownResourceKind, ValidationFailure
from .kinds import KIND_TABLE, KindSpec
from .models import (
    BaseSpec,
    ObservedState,
    RecordedState,
    RemoteHandle,
    ResourceKind,
    get_spec_class,
    parse_desired,
)
from .operations import Operation, OperationPoller, OperationStatus
from .provenance import RemoteCallSummary, get_provenance_logger
from .replacement import (
    check_monotonic,
    diff_mutable_groups,
    ensure_in_place,
    requires_replacement,
)

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Reconciliation phase requested by the caller."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class LifecycleState(str, Enum):
    """States of the reconciliation state machine."""

    NO_STATE = "no_state"
    CREATING = "creating"
    PRESENT = "present"
    UPDATING = "updating"
    REPLACING = "replacing"
    DELETING = "deleting"
    GONE = "gone"


@dataclass(frozen=True)
class ReconcileRequest:
    """Input of a single reconciliation.

    ``desired`` may be omitted for deletes; it then carries no delete flag and
    data-bearing objects are preserved. ``allow_replacement=False`` turns a
    required replacement into ``ImmutableViolation``.
    """

    kind: ResourceKind
    phase: Phase
    desired: BaseSpec | Mapping[str, Any] | None = None
    recorded: RecordedState | None = None
    allow_replacement: bool = True


@dataclass
class ReconcileResult:
    """Outcome of a single reconciliation."""

    kind: ResourceKind
    phase: Phase
    state: LifecycleState = LifecycleState.NO_STATE
    recorded: RecordedState | None = None
    transitions: list[LifecycleState] = field(default_factory=list)
    remote_calls: RemoteCallSummary = field(default_factory=RemoteCallSummary)
    replaced: bool = False
    adopted: bool = False
    remote_deleted: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def handle(self) -> RemoteHandle | None:
        """Remote handle of the resulting state, if any."""
        return self.recorded.handle if self.recorded else None


class _RemoteSession:
    """Client wrapper that counts remote calls and waits for operations."""

    def __init__(
        self,
        client: ResourceClient,
        calls: RemoteCallSummary,
        budgets: dict[OperationScope, tuple[int, float]],
    ) -> None:
        self._client = client
        self._calls = calls
        self._poller = OperationPoller(self._poll, budgets)

    async def _poll(self, operation: Operation) -> OperationStatus:
        self._calls.record("poll")
        return await self._client.poll_operation(operation)

    async def create(self, attributes: Mapping[str, Any]) -> tuple[RemoteHandle, Operation | None]:
        self._calls.record("create")
        return await self._client.create(attributes)

    async def get(self, handle: RemoteHandle) -> ObservedState:
        self._calls.record("get")
        return await self._client.get(handle)

    async def update(
        self, handle: RemoteHandle, group: str, changes: Mapping[str, Any]
    ) -> Operation | None:
        self._calls.record("update")
        return await self._client.update(handle, group, changes)

    async def delete(self, handle: RemoteHandle) -> Operation | None:
        self._calls.record("delete")
        return await self._client.delete(handle)

    async def wait(self, operation: Operation | None) -> None:
        """Wait for an operation, if the mutation returned one."""
        if operation is not None:
            await self._poller.wait(operation)


class Reconciler:
    """Generic reconciler for all registered resource kinds.

    Args:
        config: Resolved configuration. The reconciler holds no other global state.
        clients: Remote client per resource kind.
        kinds: Kind metadata table (defaults to the built-in table).
    """

    def __init__(
        self,
        config: Config,
        clients: Mapping[ResourceKind, ResourceClient],
        kinds: Mapping[ResourceKind, KindSpec] = KIND_TABLE,
    ) -> None:
        self._config = config
        self._clients = dict(clients)
        self._kinds = kinds
        self._budgets = {scope: config.poll_budget(scope) for scope in OperationScope}

    @property
    def config(self) -> Config:
        """Get the reconciler configuration."""
        return self._config

    async def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        """Run one reconciliation.

        Returns:
            ReconcileResult with the new recorded state (``None`` once gone).

        Raises:
            ValidationFailure: Invalid desired configuration (no remote call made).
            ImmutableViolation: Replacement required but not permitted.
            AdoptionRequired: Object exists remotely and adoption is disabled.
            OperationFailed: A long-running operation reported errors.
            OperationTimedOut: A long-running operation exceeded its polling budget.
            UnknownResourceKind: No metadata or client for the kind.
            Exception: Any unclassified remote error, unchanged.
        """
        phase = Phase(request.phase)
        result = ReconcileResult(kind=request.kind, phase=phase)
        initial = LifecycleState.NO_STATE if request.recorded is None else LifecycleState.PRESENT
        result.state = initial
        result.transitions.append(initial)

        name = ""
        if request.recorded is not None:
            name = request.recorded.name or ""

        provenance_logger = get_provenance_logger()
        provenance = provenance_logger.create_provenance(
            project=self._config.project,
            kind=getattr(request.kind, "value", str(request.kind)),
            name=name,
            phase=phase.value,
        )

        try:
            spec = self._kind_spec(request.kind)
            result.kind = spec.kind
            desired = self._coerce_desired(request)

            if request.recorded is not None and request.recorded.kind != spec.kind:
                raise ValidationFailure(
                    f"Recorded state is a {request.recorded.kind.value}, "
                    f"not a {spec.kind.value}"
                )

            if phase == Phase.DELETE:
                await self._reconcile_delete(spec, request, desired, result)
            else:
                if desired is None:
                    raise ValidationFailure(
                        f"Desired configuration is required for phase {phase.value}"
                    )
                attributes = self._resolve_attributes(spec, desired, request.recorded)
                provenance.name = attributes["name"]

                if self._config.local:
                    self._reconcile_local(spec, request, desired, attributes, result)
                elif request.recorded is None:
                    session = self._session(spec, result)
                    result.recorded = await self._create(spec, session, desired, attributes, result)
                else:
                    session = self._session(spec, result)
                    await self._update(
                        spec, session, request, request.recorded, desired, attributes, result
                    )

        except Exception as e:
            provenance.error = str(e)
            provenance.error_type = type(e).__name__
            raise

        finally:
            result.end_time = datetime.now(UTC)
            provenance.final_state = result.state.value
            provenance.handle = result.handle.path if result.handle else ""
            provenance.replaced = result.replaced
            provenance.adopted = result.adopted
            provenance.remote_deleted = result.remote_deleted
            provenance.remote_calls = result.remote_calls
            provenance.duration_seconds = result.duration_seconds
            provenance_logger.log_provenance(provenance)

        return result

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    async def _reconcile_delete(
        self,
        spec: KindSpec,
        request: ReconcileRequest,
        desired: BaseSpec | None,
        result: ReconcileResult,
    ) -> None:
        """Delete phase. Always ends in Gone."""
        self._transition(result, LifecycleState.DELETING)
        recorded = request.recorded
        decision = decide_deletion(spec, desired.delete if desired is not None else None)

        if recorded is None:
            logger.info(
                "No recorded state, nothing to delete",
                extra={"kind": spec.kind.value},
            )
        elif self._config.local:
            logger.info(
                "Local mode, forgetting resource without remote calls",
                extra={"kind": spec.kind.value, "resource_name": recorded.name},
            )
        elif not decision.delete_remote:
            logger.info(
                "Skipping remote deletion",
                extra={
                    "kind": spec.kind.value,
                    "resource_name": recorded.name,
                    "reason": decision.reason,
                },
            )
        else:
            session = self._session(spec, result)
            await self._delete_remote(spec, session, recorded)
            result.remote_deleted = True

        result.recorded = None
        self._transition(result, LifecycleState.GONE)

    async def _create(
        self,
        spec: KindSpec,
        session: _RemoteSession,
        desired: BaseSpec,
        attributes: dict[str, Any],
        result: ReconcileResult,
    ) -> RecordedState:
        """Create the remote object, adopting an existing one if allowed."""
        self._transition(result, LifecycleState.CREATING)
        name = attributes["name"]
        logger.info("Creating resource", extra={"kind": spec.kind.value, "resource_name": name})

        try:
            handle, operation = await session.create(attributes)
        except Exception as e:
            if not is_already_exists(e):
                raise
            locator = RemoteHandle(spec.locate(self._config.project, attributes))
            adopted = await resolve_create_conflict(
                e,
                name=name,
                kind=spec.kind.value,
                adopt_flag=desired.adopt,
                scope_default_adopt=self._config.adopt,
                read_existing=lambda: session.get(locator),
            )
            result.adopted = True
            observed = adopted.observed
            # The existing object is the baseline: what the remote reports wins
            baseline = dict(attributes)
            baseline.update(
                {k: v for k, v in observed.attributes.items() if k in attributes}
            )
            recorded = self._record(spec, baseline, observed, None)
        else:
            await session.wait(operation)
            observed = await session.get(handle)
            recorded = self._record(spec, attributes, observed, None)
            logger.info(
                "Resource created",
                extra={
                    "kind": spec.kind.value,
                    "resource_name": name,
                    "handle": recorded.handle.path,
                },
            )

        self._transition(result, LifecycleState.PRESENT)
        return recorded

    async def _update(
        self,
        spec: KindSpec,
        session: _RemoteSession,
        request: ReconcileRequest,
        recorded: RecordedState,
        desired: BaseSpec,
        attributes: dict[str, Any],
        result: ReconcileResult,
    ) -> None:
        """Update in place, or replace when an immutable attribute changed."""
        if requires_replacement(spec, attributes, recorded.attributes):
            self._ensure_replaceable(spec, request, attributes, recorded)
            await self._replace(spec, session, desired, attributes, recorded, result)
            return

        self._transition(result, LifecycleState.UPDATING)
        groups = diff_mutable_groups(spec, attributes, recorded.attributes)

        for group in groups:
            logger.info(
                "Updating resource",
                extra={
                    "kind": spec.kind.value,
                    "resource_name": recorded.name,
                    "group": group.group,
                    "attributes": group.attributes,
                },
            )
            operation = await session.update(recorded.handle, group.group, group.changes)
            await session.wait(operation)

        if not groups:
            logger.debug(
                "No mutable attribute changes",
                extra={"kind": spec.kind.value, "resource_name": recorded.name},
            )

        observed = await session.get(recorded.handle)
        merged = self._merge_attributes(spec, attributes, recorded.attributes)
        result.recorded = self._record(spec, merged, observed, recorded)
        self._transition(result, LifecycleState.PRESENT)

    async def _replace(
        self,
        spec: KindSpec,
        session: _RemoteSession,
        desired: BaseSpec,
        attributes: dict[str, Any],
        recorded: RecordedState,
        result: ReconcileResult,
    ) -> None:
        """Destroy the old object, then create a new one under the same identity."""
        self._transition(result, LifecycleState.REPLACING)
        logger.warning(
            "Replacing resource",
            extra={
                "kind": spec.kind.value,
                "resource_name": recorded.name,
                "old_handle": recorded.handle.path,
            },
        )
        await self._delete_remote(spec, session, recorded)
        result.remote_deleted = True
        result.replaced = True
        result.recorded = await self._create(spec, session, desired, attributes, result)

    def _reconcile_local(
        self,
        spec: KindSpec,
        request: ReconcileRequest,
        desired: BaseSpec,
        attributes: dict[str, Any],
        result: ReconcileResult,
    ) -> None:
        """Synthesize recorded state without contacting the remote system."""
        previous = request.recorded
        keep_previous = False
        if previous is not None:
            if requires_replacement(spec, attributes, previous.attributes):
                self._ensure_replaceable(spec, request, attributes, previous)
                result.replaced = True
            else:
                keep_previous = True
                attributes = self._merge_attributes(spec, attributes, previous.attributes)

        self._transition(
            result, LifecycleState.UPDATING if keep_previous else LifecycleState.CREATING
        )
        handle = RemoteHandle(
            spec.locate(self._config.project, attributes),
            uid=previous.handle.uid if keep_previous and previous else None,
        )
        observed = ObservedState(
            handle=handle,
            status=spec.default_status,
            created_at=previous.created_at if keep_previous and previous else None,
        )
        result.recorded = self._record(spec, attributes, observed, None)
        self._transition(result, LifecycleState.PRESENT)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _ensure_replaceable(
        self,
        spec: KindSpec,
        request: ReconcileRequest,
        attributes: Mapping[str, Any],
        recorded: RecordedState,
    ) -> None:
        """Fail if a required replacement is not permitted."""
        if not request.allow_replacement:
            ensure_in_place(spec, attributes, recorded.attributes)

    async def _delete_remote(
        self, spec: KindSpec, session: _RemoteSession, recorded: RecordedState
    ) -> None:
        """Delete the remote object. An object that is already gone is fine."""
        logger.info(
            "Deleting resource",
            extra={
                "kind": spec.kind.value,
                "resource_name": recorded.name,
                "handle": recorded.handle.path,
            },
        )
        try:
            operation = await session.delete(recorded.handle)
            await session.wait(operation)
        except Exception as e:
            if not is_not_found(e):
                raise
            logger.info(
                "Resource already deleted",
                extra={"kind": spec.kind.value, "resource_name": recorded.name},
            )
            return
        logger.info(
            "Resource deleted",
            extra={"kind": spec.kind.value, "resource_name": recorded.name},
        )

    def _kind_spec(self, kind: ResourceKind) -> KindSpec:
        try:
            return self._kinds[ResourceKind(kind)]
        except (KeyError, ValueError) as e:
            raise UnknownResourceKind(f"No metadata registered for kind '{kind}'") from e

    def _session(self, spec: KindSpec, result: ReconcileResult) -> _RemoteSession:
        client = self._clients.get(spec.kind)
        if client is None:
            raise UnknownResourceKind(f"No client registered for kind '{spec.kind.value}'")
        return _RemoteSession(client, result.remote_calls, self._budgets)

    def _coerce_desired(self, request: ReconcileRequest) -> BaseSpec | None:
        """Validate the desired configuration against the kind's model."""
        desired = request.desired
        if desired is None:
            return None
        if isinstance(desired, BaseSpec):
            expected = get_spec_class(request.kind)
            if not isinstance(desired, expected):
                raise ValidationFailure(
                    f"Desired configuration is a {type(desired).__name__}, "
                    f"expected {expected.__name__}"
                )
            return desired
        return parse_desired(request.kind, dict(desired))

    def _resolve_attributes(
        self,
        spec: KindSpec,
        desired: BaseSpec,
        recorded: RecordedState | None,
    ) -> dict[str, Any]:
        """Desired attributes with the name resolved; fails on invalid input."""
        attributes = desired.attributes()
        if attributes.get("name") is None:
            recorded_name = recorded.name if recorded is not None else None
            if not recorded_name:
                raise ValidationFailure(
                    f"{spec.kind.value} requires a name: none given and none recorded"
                )
            attributes["name"] = recorded_name
        if recorded is not None:
            check_monotonic(spec, attributes, recorded.attributes)
        return attributes

    def _merge_attributes(
        self,
        spec: KindSpec,
        desired: Mapping[str, Any],
        previous: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Carry previous values for attributes the desired config leaves unset."""
        merged = dict(desired)
        carried = set(spec.optional_immutable)
        for attributes in spec.mutable_groups.values():
            carried.update(attributes)
        for attribute in carried:
            if merged.get(attribute) is None and previous.get(attribute) is not None:
                merged[attribute] = previous[attribute]
        return merged

    def _record(
        self,
        spec: KindSpec,
        attributes: Mapping[str, Any],
        observed: ObservedState,
        previous: RecordedState | None,
    ) -> RecordedState:
        computed = spec.computed_fields(self._config.project, attributes)
        computed.update(observed.computed)
        created_at = observed.created_at
        if not created_at:
            created_at = previous.created_at if previous else datetime.now(UTC).isoformat()
        return RecordedState(
            kind=spec.kind,
            handle=observed.handle,
            attributes=dict(attributes),
            status=observed.status or spec.default_status,
            created_at=created_at,
            computed=computed,
        )

    def _transition(self, result: ReconcileResult, state: LifecycleState) -> None:
        logger.debug(
            "State transition",
            extra={
                "kind": result.kind.value,
                "from_state": result.state.value,
                "to_state": state.value,
            },
        )
        result.state = state
        result.transitions.append(state)
