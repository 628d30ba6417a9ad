"""Tests for the unavailable offerings cache."""

from __future__ import annotations

import threading

from interruption.offerings import UnavailableOfferingsCache, offering_key


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestUnavailableOfferingsCache:
    """Tests for UnavailableOfferingsCache."""

    def test_key_format(self) -> None:
        """Test the offering key layout."""
        assert offering_key("m5.large", "us-east-1a", "spot") == "spot:m5.large:us-east-1a"

    def test_mark_and_query(self) -> None:
        """Test that a marked offering reads as unavailable."""
        cache = UnavailableOfferingsCache(ttl_seconds=180, clock=FakeClock())

        cache.mark_unavailable("SpotInterruption", "m5.large", "us-east-1a", "spot")

        assert cache.is_unavailable("m5.large", "us-east-1a", "spot") is True
        assert cache.is_unavailable("m5.large", "us-east-1b", "spot") is False
        assert cache.is_unavailable("m5.large", "us-east-1a", "on-demand") is False

    def test_entry_expires(self) -> None:
        """Test that entries expire after the TTL."""
        clock = FakeClock()
        cache = UnavailableOfferingsCache(ttl_seconds=180, clock=clock)
        cache.mark_unavailable("SpotInterruption", "m5.large", "us-east-1a", "spot")

        clock.now += 179
        assert cache.is_unavailable("m5.large", "us-east-1a", "spot") is True

        clock.now += 1
        assert cache.is_unavailable("m5.large", "us-east-1a", "spot") is False

    def test_mark_again_extends_expiry(self) -> None:
        """Test that marking an entry again pushes its expiry out."""
        clock = FakeClock()
        cache = UnavailableOfferingsCache(ttl_seconds=100, clock=clock)
        cache.mark_unavailable("SpotInterruption", "c5.xlarge", "us-east-1a", "spot")

        clock.now += 90
        cache.mark_unavailable("SpotInterruption", "c5.xlarge", "us-east-1a", "spot")
        clock.now += 90

        assert cache.is_unavailable("c5.xlarge", "us-east-1a", "spot") is True

    def test_seq_num_increments_per_write(self) -> None:
        """Test that every write bumps the sequence number."""
        cache = UnavailableOfferingsCache()
        start = cache.seq_num

        cache.mark_unavailable("SpotInterruption", "m5.large", "us-east-1a", "spot")
        cache.mark_unavailable("SpotInterruption", "m5.large", "us-east-1a", "spot")
        cache.flush()

        assert cache.seq_num == start + 3
        assert cache.is_unavailable("m5.large", "us-east-1a", "spot") is False

    def test_concurrent_writers(self) -> None:
        """Test that concurrent writers do not lose sequence increments."""
        cache = UnavailableOfferingsCache()

        def writer(zone: str) -> None:
            for _ in range(100):
                cache.mark_unavailable("SpotInterruption", "m5.large", zone, "spot")

        threads = [threading.Thread(target=writer, args=(f"us-east-1{z}",)) for z in "abcd"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert cache.seq_num == 400
        assert all(cache.is_unavailable("m5.large", f"us-east-1{z}", "spot") for z in "abcd")
