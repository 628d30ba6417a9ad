"""Cache of offerings that recently lost capacity.

A spot interruption is a strong signal that the provider is reclaiming
capacity for an (instance type, zone) pair. The controller marks the
offering unavailable here and the scheduler skips it until the entry
expires. The controller only writes to the cache.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

from .config import DEFAULT_UNAVAILABLE_OFFERINGS_TTL_SECONDS

logger = logging.getLogger(__name__)


class CapacityAdvisoryCache(Protocol):
    """Write side of the unavailable offerings cache."""

    def mark_unavailable(
        self, reason: str, instance_type: str, zone: str, capacity_type: str
    ) -> None: ...


def offering_key(instance_type: str, zone: str, capacity_type: str) -> str:
    return f"{capacity_type}:{instance_type}:{zone}"


class UnavailableOfferingsCache:
    """Thread-safe TTL cache of unavailable offerings.

    Every write bumps seq_num so readers can tell whether the set of
    unavailable offerings changed since they last looked.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_UNAVAILABLE_OFFERINGS_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._expiry: dict[str, float] = {}
        self._seq_num = 0

    @property
    def seq_num(self) -> int:
        with self._lock:
            return self._seq_num

    def mark_unavailable(
        self, reason: str, instance_type: str, zone: str, capacity_type: str
    ) -> None:
        """Mark an offering unavailable for the cache TTL.

        Marking an entry again extends its expiry.
        """
        key = offering_key(instance_type, zone, capacity_type)
        with self._lock:
            self._expiry[key] = self._clock() + self._ttl
            self._seq_num += 1

        logger.info(
            "Removing offering from offerings",
            extra={
                "reason": reason,
                "instance_type": instance_type,
                "zone": zone,
                "capacity_type": capacity_type,
                "ttl_seconds": self._ttl,
            },
        )

    def is_unavailable(self, instance_type: str, zone: str, capacity_type: str) -> bool:
        key = offering_key(instance_type, zone, capacity_type)
        with self._lock:
            expires_at = self._expiry.get(key)
            if expires_at is None:
                return False
            if self._clock() >= expires_at:
                del self._expiry[key]
                return False
            return True

    def flush(self) -> None:
        """Forget every entry."""
        with self._lock:
            self._expiry.clear()
            self._seq_num += 1
