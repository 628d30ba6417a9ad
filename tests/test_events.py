"""Tests for event builders and the logging recorder."""

from __future__ import annotations

import logging

import pytest

from interruption.events import (
    CLAIM_KIND,
    NODE_KIND,
    EventType,
    LoggingEventRecorder,
    events_for_notification,
    terminating_on_interruption,
)
from interruption.models import ClusterNode, ComputeClaim, NotificationKind


@pytest.fixture
def claim() -> ComputeClaim:
    return ComputeClaim(name="default-x7k2p", instance_id="i-1")


@pytest.fixture
def node() -> ClusterNode:
    return ClusterNode(name="ip-10-0-1-15.ec2.internal", instance_id="i-1")


class TestEventsForNotification:
    """Tests for kind-to-event selection."""

    @pytest.mark.parametrize(
        ("kind", "reason", "event_type"),
        [
            (NotificationKind.SPOT_INTERRUPTION, "SpotInterrupted", EventType.WARNING),
            (
                NotificationKind.REBALANCE_RECOMMENDATION,
                "SpotRebalanceRecommendation",
                EventType.NORMAL,
            ),
            (NotificationKind.SCHEDULED_CHANGE, "InstanceUnhealthy", EventType.WARNING),
            (NotificationKind.INSTANCE_STOPPED, "InstanceStopping", EventType.WARNING),
            (NotificationKind.INSTANCE_TERMINATED, "InstanceTerminating", EventType.WARNING),
        ],
    )
    def test_reason_per_kind(
        self,
        kind: NotificationKind,
        reason: str,
        event_type: EventType,
        claim: ComputeClaim,
        node: ClusterNode,
    ) -> None:
        """Test that every actionable kind has its own event."""
        events = events_for_notification(kind, claim, node)

        assert [e.reason for e in events] == [reason, reason]
        assert all(e.type == event_type for e in events)

    def test_events_cover_node_and_claim(self, claim: ComputeClaim, node: ClusterNode) -> None:
        """Test that events are emitted for both the node and the claim."""
        events = events_for_notification(NotificationKind.SPOT_INTERRUPTION, claim, node)

        assert [(e.involved_object.kind, e.involved_object.name) for e in events] == [
            (NODE_KIND, node.name),
            (CLAIM_KIND, claim.name),
        ]

    def test_claim_only_without_node(self, claim: ComputeClaim) -> None:
        """Test that only the claim event is emitted when no node exists."""
        events = events_for_notification(NotificationKind.INSTANCE_STOPPED, claim, None)

        assert len(events) == 1
        assert events[0].involved_object.kind == CLAIM_KIND

    def test_noop_has_no_events(self, claim: ComputeClaim, node: ClusterNode) -> None:
        """Test that NoOp emits nothing."""
        assert events_for_notification(NotificationKind.NO_OP, claim, node) == ()

    def test_terminating_on_interruption_messages(
        self, claim: ComputeClaim, node: ClusterNode
    ) -> None:
        """Test the termination events name the object kind in the message."""
        node_event, claim_event = terminating_on_interruption(node, claim)

        assert node_event.message.endswith("for the Node")
        assert claim_event.message.endswith("for the NodeClaim")
        assert node_event.reason == claim_event.reason == "TerminatingOnInterruption"
        assert node_event.involved_object.name == node.name
        assert claim_event.involved_object.name == claim.name

    def test_terminating_on_interruption_without_node(self, claim: ComputeClaim) -> None:
        """Test that only the claim event is built when no node is registered."""
        (event,) = terminating_on_interruption(None, claim)

        assert event.involved_object.kind == CLAIM_KIND
        assert event.message == "Interruption triggered termination for the NodeClaim"


class TestLoggingEventRecorder:
    """Tests for LoggingEventRecorder."""

    def test_publishes_as_log_records(
        self, claim: ComputeClaim, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that events become log records with structured fields."""
        recorder = LoggingEventRecorder(dedupe_seconds=0)
        events = events_for_notification(NotificationKind.SPOT_INTERRUPTION, claim, None)

        with caplog.at_level(logging.INFO, logger="interruption.events"):
            recorder.publish(*events)

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.levelno == logging.WARNING
        assert record.event_reason == "SpotInterrupted"
        assert record.object_name == claim.name

    def test_duplicates_suppressed_in_window(
        self, claim: ComputeClaim, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that the same event is published once inside the window."""
        clock_value = [0.0]
        recorder = LoggingEventRecorder(dedupe_seconds=120, clock=lambda: clock_value[0])
        events = events_for_notification(NotificationKind.REBALANCE_RECOMMENDATION, claim, None)

        with caplog.at_level(logging.INFO, logger="interruption.events"):
            recorder.publish(*events)
            clock_value[0] = 60.0
            recorder.publish(*events)
            clock_value[0] = 121.0
            recorder.publish(*events)

        assert len(caplog.records) == 2
