"""Mock cloud bundle: shared state plus one client per resource kind."""

from __future__ import annotations

from typing import Any

from reconcile_core.config import Config
from reconcile_core.models import ResourceKind
from reconcile_core.reconciler import Reconciler

from .clients import MockResourceClient
from .state import MockCloudState

TEST_PROJECT = "test-project"


def make_config(**overrides: Any) -> Config:
    """Config with zero poll intervals, so tests never sleep."""
    values: dict[str, Any] = {
        "project": TEST_PROJECT,
        "zone_poll_interval_seconds": 0.0,
        "region_poll_interval_seconds": 0.0,
        "global_poll_interval_seconds": 0.0,
    }
    values.update(overrides)
    return Config(**values)


class MockCloud:
    """In-memory provider for reconciler tests.

    Usage:
        cloud = MockCloud()
        reconciler = cloud.reconciler()
        result = await reconciler.reconcile(request)

        assert cloud.state.mutation_count() == 1
    """

    def __init__(self, project: str = TEST_PROJECT, **client_options: Any) -> None:
        """Initialize mock cloud.

        Args:
            project: Project the clients operate in.
            **client_options: Passed to every ``MockResourceClient``
                (pending_polls, operation_errors, return_operations).
        """
        self.project = project
        self.state = MockCloudState()
        self.clients: dict[ResourceKind, MockResourceClient] = {
            kind: MockResourceClient(self.state, kind, project, **client_options)
            for kind in ResourceKind
        }

    def client(self, kind: ResourceKind) -> MockResourceClient:
        return self.clients[kind]

    def reconciler(self, **config_overrides: Any) -> Reconciler:
        """Reconciler wired to this cloud's clients."""
        config_overrides.setdefault("project", self.project)
        return Reconciler(make_config(**config_overrides), self.clients)
