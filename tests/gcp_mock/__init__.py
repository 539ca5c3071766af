"""In-memory cloud provider mock for reconciler testing.

Key Features:
- In-memory remote objects keyed by canonical path, with fresh uids per creation
- Long-running operation simulation (pending polls, terminal errors)
- Error injection using azure-core HTTP errors and RPC-style coded errors
- Call recording for asserting on remote traffic

Usage:
    from gcp_mock import MockCloud

    cloud = MockCloud()
    result = await cloud.reconciler().reconcile(request)
    assert cloud.state.calls_for("create")
"""

from .clients import MockResourceClient, MockRpcError, MockSyncResourceClient
from .context import TEST_PROJECT, MockCloud, make_config
from .state import MockCall, MockCloudState, MockOperation, MockRemoteObject

__all__ = [
    "TEST_PROJECT",
    "MockCall",
    "MockCloud",
    "MockCloudState",
    "MockOperation",
    "MockRemoteObject",
    "MockResourceClient",
    "MockRpcError",
    "MockSyncResourceClient",
    "make_config",
]
