"""In-memory collaborators for testing the interruption controller.

This package provides fakes for every I/O boundary of the controller so the
full fetch, classify, handle and acknowledge flow runs without AWS or a
cluster.

Key Features:
- Claims and nodes indexed by instance id, with deletion markers
- Queue that records deleted messages
- Error injection for lookups, deletions, fetches and acknowledgements
- Recording event sink and offerings cache for assertions
- Builders for EventBridge-style payloads

Usage:
    from cluster_mock import MockCluster, MockQueue, spot_interruption_body

    cluster = MockCluster()
    cluster.add_claim("claim-1", "i-1", zone="us-east-1a")
    queue = MockQueue([spot_interruption_body("i-1")])

    reconciler = InterruptionReconciler(config, cluster, handler, metrics, queue=queue)
    result = await reconciler.reconcile()

    assert cluster.delete_calls == ["claim-1"]
    assert queue.deleted_count == 1
"""

from .cluster import MockCluster
from .payloads import (
    health_event_body,
    rebalance_body,
    spot_interruption_body,
    state_change_body,
)
from .queue import MockQueue
from .sinks import RecordingEventRecorder, RecordingOfferingsCache

__all__ = [
    "MockCluster",
    "MockQueue",
    "RecordingEventRecorder",
    "RecordingOfferingsCache",
    "health_event_body",
    "rebalance_body",
    "spot_interruption_body",
    "state_change_body",
]
