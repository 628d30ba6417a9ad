"""Main entry point for the interruption controller.

Wires the collaborators together and runs the reconcile loop:
- Cluster client: adapter loaded from CLUSTER_CLIENT
- Queue: SQS, connected on the first tick
- Sinks: logging event recorder, unavailable offerings cache, Prometheus
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime

from .cluster import ClusterAPIError, ClusterClient, load_cluster_client
from .config import Config, ConfigurationError
from .events import LoggingEventRecorder
from .handler import ClaimHandler
from .metrics import InterruptionMetrics, start_metrics_server
from .offerings import UnavailableOfferingsCache
from .reconciler import InterruptionReconciler

# LogRecord attributes that are not user supplied extra fields
_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging with JSON output for production."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from the AWS SDK
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("aioboto3").setLevel(logging.WARNING)


def build_reconciler(
    config: Config, cluster: ClusterClient, metrics: InterruptionMetrics
) -> InterruptionReconciler:
    """Assemble a reconciler with the production sinks."""
    handler = ClaimHandler(
        cluster=cluster,
        recorder=LoggingEventRecorder(config.event_dedupe_seconds),
        offerings=UnavailableOfferingsCache(config.unavailable_offerings_ttl_seconds),
        metrics=metrics,
    )
    return InterruptionReconciler(config, cluster, handler, metrics)


async def main(config: Config | None = None) -> int:
    """Run the controller.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    try:
        config = config if config is not None else Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Configuration error", extra={"error": str(e)})
        return 1

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    if not config.cluster_client:
        logger.error("Configuration error", extra={"error": "CLUSTER_CLIENT is required"})
        return 1

    try:
        cluster = load_cluster_client(config.cluster_client)
    except ClusterAPIError as e:
        logger.error(
            "Failed to load cluster client",
            extra={"error": str(e), "cluster_client": config.cluster_client},
        )
        return 1

    logger.info(
        "Starting interruption controller",
        extra={
            "queue": config.queue_name,
            "region": config.region,
            "cluster_client": config.cluster_client,
        },
    )

    metrics = InterruptionMetrics()
    if config.metrics_port:
        start_metrics_server(config.metrics_port, metrics.registry)

    reconciler = build_reconciler(config, cluster, metrics)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        reconciler.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await reconciler.run()
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1

    logger.info("Controller stopped")
    return 0


def run() -> None:
    """Entry point for the controller process."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
