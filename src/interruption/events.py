"""Human-readable events published for interrupted claims and nodes.

Each builder returns the events for the node, when one is registered, and
for the claim. Publishing goes through an EventRecorder so the sink can be
swapped (cluster events API, logs, test recorder).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from .config import DEFAULT_EVENT_DEDUPE_SECONDS
from .models import ClusterNode, ComputeClaim, NotificationKind

logger = logging.getLogger(__name__)

CLAIM_KIND = "NodeClaim"
NODE_KIND = "Node"


class EventType(str, Enum):
    """Event severities."""

    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass(frozen=True)
class ObjectReference:
    """The object an event is about."""

    kind: str
    name: str


@dataclass(frozen=True)
class Event:
    """A single event about one object."""

    involved_object: ObjectReference
    type: EventType
    reason: str
    message: str
    dedupe_values: tuple[str, ...] = field(default_factory=tuple)

    @property
    def dedupe_key(self) -> tuple[str, ...]:
        return (
            self.involved_object.kind,
            self.involved_object.name,
            self.reason,
            *self.dedupe_values,
        )


class EventRecorder(Protocol):
    """Sink for events. Implementations must be safe for concurrent callers."""

    def publish(self, *events: Event) -> None: ...


# =============================================================================
# Builders
# =============================================================================


def _for_objects(
    node: ClusterNode | None,
    claim: ComputeClaim,
    event_type: EventType,
    reason: str,
    message: str,
    node_message: str | None = None,
) -> tuple[Event, ...]:
    events: list[Event] = []
    if node is not None:
        events.append(
            Event(
                involved_object=ObjectReference(NODE_KIND, node.name),
                type=event_type,
                reason=reason,
                message=node_message or message,
                dedupe_values=(node.name,),
            )
        )
    events.append(
        Event(
            involved_object=ObjectReference(CLAIM_KIND, claim.name),
            type=event_type,
            reason=reason,
            message=message,
            dedupe_values=(claim.name,),
        )
    )
    return tuple(events)


def spot_interrupted(node: ClusterNode | None, claim: ComputeClaim) -> tuple[Event, ...]:
    return _for_objects(
        node, claim, EventType.WARNING, "SpotInterrupted", "Spot interruption warning was triggered"
    )


def rebalance_recommendation(node: ClusterNode | None, claim: ComputeClaim) -> tuple[Event, ...]:
    return _for_objects(
        node,
        claim,
        EventType.NORMAL,
        "SpotRebalanceRecommendation",
        "Spot rebalance recommendation was triggered",
    )


def stopping(node: ClusterNode | None, claim: ComputeClaim) -> tuple[Event, ...]:
    return _for_objects(node, claim, EventType.WARNING, "InstanceStopping", "Instance is stopping")


def terminating(node: ClusterNode | None, claim: ComputeClaim) -> tuple[Event, ...]:
    return _for_objects(
        node, claim, EventType.WARNING, "InstanceTerminating", "Instance is terminating"
    )


def unhealthy(node: ClusterNode | None, claim: ComputeClaim) -> tuple[Event, ...]:
    return _for_objects(
        node, claim, EventType.WARNING, "InstanceUnhealthy", "An unhealthy warning was triggered"
    )


def terminating_on_interruption(
    node: ClusterNode | None, claim: ComputeClaim
) -> tuple[Event, ...]:
    return _for_objects(
        node,
        claim,
        EventType.WARNING,
        "TerminatingOnInterruption",
        "Interruption triggered termination for the NodeClaim",
        node_message="Interruption triggered termination for the Node",
    )


_BUILDERS: dict[
    NotificationKind, Callable[[ClusterNode | None, ComputeClaim], tuple[Event, ...]]
] = {
    NotificationKind.REBALANCE_RECOMMENDATION: rebalance_recommendation,
    NotificationKind.SCHEDULED_CHANGE: unhealthy,
    NotificationKind.SPOT_INTERRUPTION: spot_interrupted,
    NotificationKind.INSTANCE_STOPPED: stopping,
    NotificationKind.INSTANCE_TERMINATED: terminating,
}


def events_for_notification(
    kind: NotificationKind, claim: ComputeClaim, node: ClusterNode | None
) -> tuple[Event, ...]:
    """Select the events announcing a notification for one claim.

    NoOp has no events.
    """
    builder = _BUILDERS.get(kind)
    if builder is None:
        return ()
    return builder(node, claim)


# =============================================================================
# Recorders
# =============================================================================


class LoggingEventRecorder:
    """Publishes events as structured log records.

    An event whose dedupe key was published within the dedupe window is
    dropped, so a notification delivered twice does not emit twice.
    """

    def __init__(
        self,
        dedupe_seconds: int = DEFAULT_EVENT_DEDUPE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._dedupe_seconds = dedupe_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._last_seen: dict[tuple[str, ...], float] = {}

    def publish(self, *events: Event) -> None:
        for event in events:
            if self._is_duplicate(event):
                continue
            log = logger.warning if event.type == EventType.WARNING else logger.info
            log(
                event.message,
                extra={
                    "event_reason": event.reason,
                    "event_type": event.type.value,
                    "object_kind": event.involved_object.kind,
                    "object_name": event.involved_object.name,
                },
            )

    def _is_duplicate(self, event: Event) -> bool:
        if self._dedupe_seconds <= 0:
            return False
        now = self._clock()
        with self._lock:
            # Drop expired keys so the map does not grow without bound
            expired = [
                key
                for key, seen in self._last_seen.items()
                if now - seen >= self._dedupe_seconds
            ]
            for key in expired:
                del self._last_seen[key]

            if event.dedupe_key in self._last_seen:
                return True
            self._last_seen[event.dedupe_key] = now
            return False
