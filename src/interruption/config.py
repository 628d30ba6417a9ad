"""Configuration management with validation.

Limits are enforced at configuration load time so that a misconfigured
controller fails on start-up rather than in the middle of a batch.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_QUEUE_WAIT_SECONDS = 20
MAX_QUEUE_WAIT_SECONDS = 20  # SQS long-polling ceiling
DEFAULT_QUEUE_VISIBILITY_TIMEOUT_SECONDS = 20
MAX_QUEUE_VISIBILITY_TIMEOUT_SECONDS = 43200  # 12 hours, SQS limit

DEFAULT_RECONCILE_TIMEOUT_SECONDS = 300
MIN_RECONCILE_TIMEOUT_SECONDS = 30
MAX_RECONCILE_TIMEOUT_SECONDS = 3600

DEFAULT_ERROR_RETRY_SECONDS = 10
DEFAULT_UNAVAILABLE_OFFERINGS_TTL_SECONDS = 180
DEFAULT_EVENT_DEDUPE_SECONDS = 120
DEFAULT_METRICS_PORT = 8080

# Messages handled concurrently inside one batch
MAX_PARALLEL_MESSAGES = 10

# SQS returns at most 10 messages per receive call
MAX_MESSAGES_PER_BATCH = 10

# Input validation patterns
VALID_QUEUE_NAME_PATTERN = r"^[A-Za-z0-9_-]{1,80}(\.fifo)?$"
VALID_REGION_PATTERN = r"^[a-z]{2}(-gov|-iso[a-z]?)?-[a-z]+-\d$"
VALID_CLUSTER_CLIENT_PATTERN = r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Config:
    """Controller configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    queue_name: str

    region: str | None = None

    # Queue polling
    queue_wait_seconds: int = DEFAULT_QUEUE_WAIT_SECONDS
    queue_visibility_timeout_seconds: int = DEFAULT_QUEUE_VISIBILITY_TIMEOUT_SECONDS

    # Timing
    reconcile_timeout_seconds: int = DEFAULT_RECONCILE_TIMEOUT_SECONDS
    error_retry_seconds: int = DEFAULT_ERROR_RETRY_SECONDS

    # Side-effect sinks
    unavailable_offerings_ttl_seconds: int = DEFAULT_UNAVAILABLE_OFFERINGS_TTL_SECONDS
    event_dedupe_seconds: int = DEFAULT_EVENT_DEDUPE_SECONDS
    metrics_port: int = DEFAULT_METRICS_PORT

    # Cluster API adapter, "module:callable"
    cluster_client: str | None = None

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        Every problem is collected so a single error lists them all.
        """
        errors: list[str] = []

        if not self.queue_name:
            errors.append("INTERRUPTION_QUEUE is required")
        elif not re.match(VALID_QUEUE_NAME_PATTERN, self.queue_name):
            errors.append(f"INTERRUPTION_QUEUE is not a valid queue name: {self.queue_name}")

        if self.region and not re.match(VALID_REGION_PATTERN, self.region):
            errors.append(f"AWS_REGION must be a valid region: {self.region}")

        if not (0 <= self.queue_wait_seconds <= MAX_QUEUE_WAIT_SECONDS):
            errors.append(f"QUEUE_WAIT_SECONDS must be between 0 and {MAX_QUEUE_WAIT_SECONDS}")

        if not (0 <= self.queue_visibility_timeout_seconds <= MAX_QUEUE_VISIBILITY_TIMEOUT_SECONDS):
            errors.append(
                "QUEUE_VISIBILITY_TIMEOUT must be between 0 and "
                f"{MAX_QUEUE_VISIBILITY_TIMEOUT_SECONDS}"
            )

        if not (
            MIN_RECONCILE_TIMEOUT_SECONDS
            <= self.reconcile_timeout_seconds
            <= MAX_RECONCILE_TIMEOUT_SECONDS
        ):
            errors.append(
                f"RECONCILE_TIMEOUT must be between {MIN_RECONCILE_TIMEOUT_SECONDS} "
                f"and {MAX_RECONCILE_TIMEOUT_SECONDS} seconds"
            )

        if self.error_retry_seconds < 1:
            errors.append("ERROR_RETRY_SECONDS must be at least 1")

        if self.unavailable_offerings_ttl_seconds < 1:
            errors.append("UNAVAILABLE_OFFERINGS_TTL must be at least 1")

        if self.event_dedupe_seconds < 0:
            errors.append("EVENT_DEDUPE_SECONDS cannot be negative")

        if not (0 <= self.metrics_port <= 65535):
            errors.append("METRICS_PORT must be between 0 and 65535")

        if self.cluster_client and not re.match(VALID_CLUSTER_CLIENT_PATTERN, self.cluster_client):
            errors.append(
                f"CLUSTER_CLIENT must have the form 'module:callable': {self.cluster_client}"
            )

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            INTERRUPTION_QUEUE: Name of the SQS queue carrying interruption events
            AWS_REGION: Region of the queue (default: SDK resolution)
            QUEUE_WAIT_SECONDS: Long-polling wait per receive (default: 20)
            QUEUE_VISIBILITY_TIMEOUT: Visibility timeout for received messages (default: 20)
            RECONCILE_TIMEOUT: Deadline for one fetch-and-process tick (default: 300)
            ERROR_RETRY_SECONDS: Wait after a failed fetch (default: 10)
            UNAVAILABLE_OFFERINGS_TTL: Seconds an offering stays unavailable (default: 180)
            EVENT_DEDUPE_SECONDS: Window for suppressing duplicate events (default: 120)
            METRICS_PORT: Prometheus port, 0 disables the server (default: 8080)
            CLUSTER_CLIENT: Cluster API adapter factory as "module:callable"
            LOG_LEVEL: Root log level (default: INFO)
        """
        return cls._from_mapping(dict(os.environ))

    @classmethod
    def from_file(cls, path: Path) -> Config:
        """Load configuration from a YAML file.

        The file holds a mapping with the same keys as the environment
        variables. Variables set in the environment take precedence.
        """
        try:
            raw = yaml.safe_load(path.read_text())
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        values = {str(k): str(v) for k, v in raw.items() if v is not None}
        values.update(os.environ)
        return cls._from_mapping(values)

    @classmethod
    def _from_mapping(cls, values: dict[str, Any]) -> Config:
        def get_int(key: str, default: int) -> int:
            value = values.get(key)
            if value is None or value == "":
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        return cls(
            queue_name=values.get("INTERRUPTION_QUEUE", ""),
            region=values.get("AWS_REGION") or None,
            queue_wait_seconds=get_int("QUEUE_WAIT_SECONDS", DEFAULT_QUEUE_WAIT_SECONDS),
            queue_visibility_timeout_seconds=get_int(
                "QUEUE_VISIBILITY_TIMEOUT", DEFAULT_QUEUE_VISIBILITY_TIMEOUT_SECONDS
            ),
            reconcile_timeout_seconds=get_int(
                "RECONCILE_TIMEOUT", DEFAULT_RECONCILE_TIMEOUT_SECONDS
            ),
            error_retry_seconds=get_int("ERROR_RETRY_SECONDS", DEFAULT_ERROR_RETRY_SECONDS),
            unavailable_offerings_ttl_seconds=get_int(
                "UNAVAILABLE_OFFERINGS_TTL", DEFAULT_UNAVAILABLE_OFFERINGS_TTL_SECONDS
            ),
            event_dedupe_seconds=get_int("EVENT_DEDUPE_SECONDS", DEFAULT_EVENT_DEDUPE_SECONDS),
            metrics_port=get_int("METRICS_PORT", DEFAULT_METRICS_PORT),
            cluster_client=values.get("CLUSTER_CLIENT") or None,
            log_level=values.get("LOG_LEVEL", "INFO").upper(),
        )
