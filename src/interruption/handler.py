"""Lifecycle actions applied to a single claim.

For every claim bound to an interrupted instance the handler:
1. Publishes the event matching the notification kind (notify first)
2. Marks the offering unavailable on spot interruptions
3. Requests deletion of the claim when the action is EvacuateAndRemove

Deletion is idempotent: a claim already marked for deletion is left alone,
and a claim that is already gone counts as removed.
"""

from __future__ import annotations

import logging
from typing import Any

from .actions import resolve_action
from .cluster import ClaimNotFoundError, ClusterAPIError, ClusterClient
from .events import EventRecorder, events_for_notification, terminating_on_interruption
from .metrics import InterruptionMetrics
from .models import Action, CapacityType, ClusterNode, ComputeClaim, Notification, NotificationKind
from .offerings import CapacityAdvisoryCache

logger = logging.getLogger(__name__)


class ClaimDeletionError(Exception):
    """Raised when deleting a claim fails for a reason other than not found."""

    def __init__(self, claim_name: str, cause: Exception) -> None:
        super().__init__(f"deleting claim {claim_name} on interruption message: {cause}")
        self.claim_name = claim_name
        self.cause = cause


class ClaimHandler:
    """Applies the action for one notification to one claim.

    The recorder, offerings cache and metrics are shared across concurrent
    callers and must be safe for concurrent writes.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        recorder: EventRecorder,
        offerings: CapacityAdvisoryCache,
        metrics: InterruptionMetrics,
    ) -> None:
        self._cluster = cluster
        self._recorder = recorder
        self._offerings = offerings
        self._metrics = metrics

    async def handle(
        self,
        notification: Notification,
        claim: ComputeClaim,
        node: ClusterNode | None = None,
    ) -> None:
        """Handle a notification for one claim.

        Args:
            notification: Classified notification.
            claim: Claim bound to one of the notification's instances.
            node: Node registered for the instance, if any.

        Raises:
            ClaimDeletionError: If the deletion request fails.
        """
        action = resolve_action(notification.kind)
        context: dict[str, Any] = {
            "message_kind": notification.kind.value,
            "message_id": notification.message_id,
            "claim": claim.name,
            "action": action.value,
        }
        if node is not None:
            context["node"] = node.name

        events = events_for_notification(notification.kind, claim, node)
        if events:
            self._recorder.publish(*events)

        if notification.kind == NotificationKind.SPOT_INTERRUPTION:
            self._mark_offering_unavailable(notification, claim, context)

        if action == Action.NO_ACTION:
            return

        await self._delete_claim(notification, claim, node, context)

    def _mark_offering_unavailable(
        self,
        notification: Notification,
        claim: ComputeClaim,
        context: dict[str, Any],
    ) -> None:
        zone = claim.zone
        instance_type = claim.instance_type
        if not zone or not instance_type:
            logger.debug(
                "Claim lacks zone or instance type, not marking offering unavailable",
                extra=context,
            )
            return

        self._offerings.mark_unavailable(
            notification.kind.value, instance_type, zone, CapacityType.SPOT.value
        )

    async def _delete_claim(
        self,
        notification: Notification,
        claim: ComputeClaim,
        node: ClusterNode | None,
        context: dict[str, Any],
    ) -> None:
        # Another message already started removal
        if claim.is_deleting:
            logger.debug("Claim already deleting, skipping", extra=context)
            return

        try:
            await self._cluster.delete_claim(claim)
        except ClaimNotFoundError:
            logger.debug("Claim already gone", extra=context)
            return
        except ClusterAPIError as e:
            raise ClaimDeletionError(claim.name, e) from e

        logger.info("Initiating delete from interruption message", extra=context)
        self._recorder.publish(*terminating_on_interruption(node, claim))
        self._metrics.claims_disrupted.labels(
            reason=notification.kind.value,
            nodepool=claim.node_pool,
            capacity_type=claim.capacity_type,
        ).inc()
