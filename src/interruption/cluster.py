"""Cluster API interface.

The controller reads claims and nodes by instance id and requests claim
deletion. The Kubernetes client lives outside this package: an adapter
implementing ClusterClient is plugged in at start-up through a
"module:callable" factory reference.
"""

from __future__ import annotations

import importlib
from typing import Protocol

from .models import ClusterNode, ComputeClaim


class ClusterAPIError(Exception):
    """Raised when a cluster API request fails."""

    pass


class ClaimNotFoundError(ClusterAPIError):
    """Raised when a claim no longer exists."""

    pass


class ClusterClient(Protocol):
    """Cluster operations used by the controller.

    Implementations raise ClusterAPIError for failures and
    ClaimNotFoundError when deleting a claim that is already gone.
    """

    async def list_claims_by_instance_id(self, instance_id: str) -> list[ComputeClaim]: ...

    async def list_nodes_by_instance_id(self, instance_id: str) -> list[ClusterNode]: ...

    async def delete_claim(self, claim: ComputeClaim) -> None: ...


def load_cluster_client(reference: str) -> ClusterClient:
    """Build a cluster client from a "module:callable" reference.

    Args:
        reference: Import path of a zero-argument factory.

    Returns:
        The client returned by the factory.

    Raises:
        ClusterAPIError: If the reference cannot be imported or called.
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ClusterAPIError(f"cluster client reference must be 'module:callable': {reference}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ClusterAPIError(f"cannot import cluster client module {module_name}: {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ClusterAPIError(f"{reference} is not a callable cluster client factory")

    try:
        return factory()
    except Exception as e:
        raise ClusterAPIError(f"cluster client factory {reference} failed: {e}") from e
