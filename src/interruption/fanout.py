"""Parallel handling of one batch of queue messages.

Each message gets its own slot in a pre-sized result list and is handled
by an independent task; at most MAX_PARALLEL_MESSAGES tasks run at once.
A task only ever writes its own slot, so the slots need no lock. All tasks
are awaited before the slots are combined into one BatchError.

Acknowledgement policy:
- Unclassifiable messages are deleted so a poison message cannot loop.
- Classified messages are deleted after handling, even when lookups or
  deletions failed. Failures are reported, and a later notification or
  the claim's own lifecycle retries the removal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from .cluster import ClusterClient
from .config import MAX_PARALLEL_MESSAGES
from .handler import ClaimHandler
from .messages import ClassificationError, EventParser
from .metrics import InterruptionMetrics
from .models import ComputeClaim, Notification, NotificationKind
from .queue import QueueMessage, QueueTransport

logger = logging.getLogger(__name__)


class BatchError(ExceptionGroup):
    """Aggregate of every failure in one batch."""

    pass


class MessageHandlingError(ExceptionGroup):
    """Failures while acting on the claims of one message."""

    pass


class BatchProcessor:
    """Classifies, handles and acknowledges a batch of queue messages."""

    def __init__(
        self,
        queue: QueueTransport,
        cluster: ClusterClient,
        handler: ClaimHandler,
        metrics: InterruptionMetrics,
        parser: EventParser | None = None,
        max_parallel: int = MAX_PARALLEL_MESSAGES,
    ) -> None:
        self._queue = queue
        self._cluster = cluster
        self._handler = handler
        self._metrics = metrics
        self._parser = parser if parser is not None else EventParser()
        self._max_parallel = max_parallel

    async def process(self, messages: Sequence[QueueMessage]) -> BatchError | None:
        """Process every message of a batch.

        Args:
            messages: Messages fetched in one poll.

        Returns:
            BatchError with every failure, or None when all succeeded.
        """
        if not messages:
            return None

        slots: list[Exception | None] = [None] * len(messages)
        semaphore = asyncio.Semaphore(self._max_parallel)

        async def worker(index: int) -> None:
            async with semaphore:
                try:
                    slots[index] = await self._process_one(messages[index])
                except Exception as e:
                    slots[index] = e

        async with asyncio.TaskGroup() as tg:
            for index in range(len(messages)):
                tg.create_task(worker(index))

        errors = [error for error in slots if error is not None]
        if not errors:
            return None
        return BatchError(f"{len(errors)} of {len(messages)} interruption messages failed", errors)

    async def _process_one(self, message: QueueMessage) -> Exception | None:
        """Handle one message and delete it.

        Returns:
            The failure for this message, or None.
        """
        try:
            notification = self._parser.parse(message.body)
        except ClassificationError as e:
            logger.error(
                "Failed parsing interruption message",
                extra={"message_id": message.message_id, "error": str(e)},
            )
            return _combine(message, [e, await self._delete(message)])

        handling_error = await self._handle_notification(notification)
        return _combine(message, [handling_error, await self._delete(message)])

    async def _handle_notification(self, notification: Notification) -> Exception | None:
        self._metrics.received_messages.labels(message_type=notification.kind.value).inc()
        if notification.kind == NotificationKind.NO_OP:
            return None

        context: dict[str, Any] = {
            "message_kind": notification.kind.value,
            "message_id": notification.message_id,
        }
        errors: list[Exception] = []

        for instance_id in notification.instance_ids:
            try:
                claims = await self._cluster.list_claims_by_instance_id(instance_id)
            except Exception as e:
                logger.warning(
                    "Listing claims failed",
                    extra={**context, "instance_id": instance_id, "error": str(e)},
                )
                errors.append(e)
                continue

            # Capacity outside this controller has no claims
            for claim in claims:
                try:
                    await self._handle_claim(notification, instance_id, claim)
                except Exception as e:
                    logger.warning(
                        "Acting on claim failed",
                        extra={
                            **context,
                            "instance_id": instance_id,
                            "claim": claim.name,
                            "error": str(e),
                        },
                    )
                    errors.append(e)

        self._metrics.observe_latency(notification.start_time)

        if errors:
            return MessageHandlingError(
                f"acting on claims for message {notification.message_id}", errors
            )
        return None

    async def _handle_claim(
        self, notification: Notification, instance_id: str, claim: ComputeClaim
    ) -> None:
        nodes = await self._cluster.list_nodes_by_instance_id(instance_id)
        node = nodes[0] if nodes else None
        await self._handler.handle(notification, claim, node)

    async def _delete(self, message: QueueMessage) -> Exception | None:
        try:
            await self._queue.delete(message)
        except Exception as e:
            logger.error(
                "Failed deleting interruption message",
                extra={"message_id": message.message_id, "error": str(e)},
            )
            return e
        self._metrics.deleted_messages.inc()
        return None


def _combine(
    message: QueueMessage, errors: list[Exception | None]
) -> Exception | None:
    present = [error for error in errors if error is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return ExceptionGroup(f"message {message.message_id}", present)
