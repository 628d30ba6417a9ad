"""Reconciliation loop for the interruption queue.

Each tick:
1. Lazily connects to the queue on first use
2. Fetches one batch of messages
3. Hands the batch to the BatchProcessor
4. Reports the aggregate error and asks to be requeued immediately

The reconciler holds no state between ticks other than the queue handle.
Polling cadence comes from SQS long polling, so there is no backoff on
batch errors. Only a failed fetch makes run() wait before the next tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from .cluster import ClusterClient
from .config import Config
from .fanout import BatchProcessor
from .handler import ClaimHandler
from .messages import EventParser
from .metrics import InterruptionMetrics
from .queue import QueueError, QueueTransport, SQSQueue

logger = logging.getLogger(__name__)

# Requeue hint meaning "run the next tick right away"
REQUEUE_IMMEDIATELY = 0.0

# Circuit breaker constants
MAX_CONSECUTIVE_FAILURES = 5
CIRCUIT_BREAKER_RESET_SECONDS = 300  # 5 minutes

QueueFactory = Callable[[], Awaitable[QueueTransport]]


@dataclass
class ReconcileResult:
    """Result of a single reconcile tick."""

    queue: str = ""
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    messages_received: int = 0

    # None when the caller's scheduling decides when to retry
    requeue_after: float | None = REQUEUE_IMMEDIATELY
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the tick succeeded."""
        return self.error is None


class InterruptionReconciler:
    """Polls the interruption queue and acts on every message.

    Collaborators are injected so tests can substitute fakes; when no queue
    is given, one is created from the configuration on the first tick.
    """

    def __init__(
        self,
        config: Config,
        cluster: ClusterClient,
        handler: ClaimHandler,
        metrics: InterruptionMetrics,
        *,
        queue: QueueTransport | None = None,
        queue_factory: QueueFactory | None = None,
        parser: EventParser | None = None,
    ) -> None:
        self._config = config
        self._cluster = cluster
        self._handler = handler
        self._metrics = metrics
        self._parser = parser if parser is not None else EventParser()
        self._queue = queue
        self._queue_factory = queue_factory or self._connect_sqs
        self._watched_queue: str | None = None

        self._shutdown_event = asyncio.Event()

        # Circuit breaker state
        self._consecutive_failures = 0
        self._circuit_open_until: datetime | None = None

    @property
    def config(self) -> Config:
        """Get the reconciler configuration."""
        return self._config

    async def _connect_sqs(self) -> QueueTransport:
        return await SQSQueue.connect(
            self._config.queue_name,
            region=self._config.region,
            wait_seconds=self._config.queue_wait_seconds,
            visibility_timeout_seconds=self._config.queue_visibility_timeout_seconds,
        )

    async def _ensure_queue(self) -> QueueTransport:
        if self._queue is None:
            self._queue = await self._queue_factory()

        if self._queue.name != self._watched_queue:
            self._watched_queue = self._queue.name
            logger.info("Watching interruption queue", extra={"queue": self._queue.name})
        return self._queue

    async def reconcile(self) -> ReconcileResult:
        """Run one fetch-and-process tick.

        Transport failures leave requeue_after unset so the caller decides
        when to retry. Batch failures still requeue immediately.
        """
        result = ReconcileResult(queue=self._config.queue_name)

        try:
            queue = await self._ensure_queue()
            result.queue = queue.name
            messages = await queue.fetch_batch()
        except Exception as e:
            if not isinstance(e, QueueError):
                logger.exception(
                    "Unexpected error fetching interruption messages",
                    extra={"queue": result.queue, "error": str(e)},
                )
            result.error = e
            result.requeue_after = None
            result.end_time = datetime.now(UTC)
            return result

        result.messages_received = len(messages)
        if messages:
            processor = BatchProcessor(
                queue, self._cluster, self._handler, self._metrics, self._parser
            )
            result.error = await processor.process(messages)

        result.end_time = datetime.now(UTC)
        return result

    async def run(self) -> None:
        """Run reconcile ticks until shutdown.

        Every tick is bounded by reconcile_timeout_seconds. After
        MAX_CONSECUTIVE_FAILURES failed fetches the circuit opens and
        polling pauses for CIRCUIT_BREAKER_RESET_SECONDS.
        """
        logger.info(
            "Starting interruption reconciler",
            extra={
                "queue": self._config.queue_name,
                "timeout_seconds": self._config.reconcile_timeout_seconds,
            },
        )

        while not self._shutdown_event.is_set():
            # Circuit breaker check
            if self._circuit_open_until is not None:
                now = datetime.now(UTC)
                if now < self._circuit_open_until:
                    remaining = (self._circuit_open_until - now).total_seconds()
                    logger.warning(
                        "Circuit breaker open, skipping reconciliation",
                        extra={
                            "remaining_seconds": remaining,
                            "consecutive_failures": self._consecutive_failures,
                        },
                    )
                    await self._wait(remaining)
                    continue

                logger.info("Circuit breaker reset, resuming reconciliation")
                self._circuit_open_until = None
                self._consecutive_failures = 0

            try:
                async with asyncio.timeout(self._config.reconcile_timeout_seconds):
                    result = await self.reconcile()
            except TimeoutError as e:
                result = ReconcileResult(
                    queue=self._config.queue_name,
                    end_time=datetime.now(UTC),
                    error=e,
                )
            self._log_result(result)

            if result.requeue_after is None:
                self._record_transport_failure()
                await self._wait(self._config.error_retry_seconds)
            else:
                self._consecutive_failures = 0
                if result.requeue_after > 0:
                    await self._wait(result.requeue_after)

        logger.info("Interruption reconciler shutdown complete")

    def shutdown(self) -> None:
        """Signal the reconciler to stop."""
        logger.info("Shutdown requested", extra={"queue": self._config.queue_name})
        self._shutdown_event.set()

    def _record_transport_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            self._circuit_open_until = datetime.now(UTC) + timedelta(
                seconds=CIRCUIT_BREAKER_RESET_SECONDS
            )
            logger.error(
                "Circuit breaker opened after consecutive failures",
                extra={
                    "consecutive_failures": self._consecutive_failures,
                    "reset_seconds": CIRCUIT_BREAKER_RESET_SECONDS,
                },
            )

    async def _wait(self, seconds: float) -> None:
        """Sleep until the timeout or shutdown, whichever comes first."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    def _log_result(self, result: ReconcileResult) -> None:
        """Log the tick result with structured data."""
        extra: dict[str, Any] = {
            "queue": result.queue,
            "duration_seconds": result.duration_seconds,
            "messages_received": result.messages_received,
        }

        if result.error is None:
            if result.messages_received:
                logger.info("Reconciliation result", extra=extra)
            return

        extra["error"] = str(result.error)
        if isinstance(result.error, ExceptionGroup):
            extra["failures"] = [str(e) for e in result.error.exceptions]
            logger.error("Reconciliation finished with errors", extra=extra)
        else:
            logger.error("Reconciliation failed", extra=extra)
